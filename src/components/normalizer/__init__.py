"""
Normalizer component.

Public API for turning source documents into canonical ContentItems.
"""

from .component import (
    content_type_for_mime,
    format_duration,
    format_file_size,
    is_allowed_url,
    load_config_from_rules,
    normalize,
    normalize_many,
    parse_timestamp,
    strip_media_extension,
)
from .models import (
    PRECEDENCE,
    SOURCE_KINDS,
    FieldPrecedence,
    NormalizeManyOutput,
    NormalizerConfig,
    Rejected,
    SourceKind,
    SourceRecord,
)

__all__ = [
    # Functions
    "content_type_for_mime",
    "format_duration",
    "format_file_size",
    "is_allowed_url",
    "load_config_from_rules",
    "normalize",
    "normalize_many",
    "parse_timestamp",
    "strip_media_extension",
    # Models
    "FieldPrecedence",
    "NormalizeManyOutput",
    "NormalizerConfig",
    "PRECEDENCE",
    "Rejected",
    "SOURCE_KINDS",
    "SourceKind",
    "SourceRecord",
]
