"""
Normalizer component.

Pure functions that turn heterogeneous source documents into canonical
ContentItems. No I/O and no clock reads: the same input always yields a
structurally identical item.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlparse

from src.core.entities import ContentItem, content_type_for_mime
from src.rules.models import Rules

from .models import (
    PRECEDENCE,
    NormalizeManyOutput,
    NormalizerConfig,
    Rejected,
    SourceKind,
    SourceRecord,
)

# --- Field readers ---


def _first_str(data: Mapping[str, Any], fields: tuple[str, ...]) -> str:
    for name in fields:
        value = data.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def _coerce_number(value: Any) -> float | None:
    """Finite non-negative number, or None when unusable."""
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            return None
    if not isinstance(value, (int, float)):
        return None
    if not math.isfinite(value) or value < 0:
        return None
    return float(value)


def _first_number(data: Mapping[str, Any], fields: tuple[str, ...]) -> float:
    for name in fields:
        number = _coerce_number(data.get(name))
        if number is not None:
            return number
    return 0.0


def is_allowed_url(value: Any, config: NormalizerConfig) -> bool:
    """True for an absolute URL with an allowed scheme and a host."""
    if not isinstance(value, str) or not value.strip():
        return False
    parsed = urlparse(value.strip())
    return parsed.scheme.lower() in config.allowed_url_schemes and bool(parsed.netloc)


def _first_url(
    data: Mapping[str, Any], fields: tuple[str, ...], config: NormalizerConfig
) -> str:
    for name in fields:
        value = data.get(name)
        if is_allowed_url(value, config):
            return str(value).strip()
    return ""


def parse_timestamp(value: Any) -> datetime | None:
    """Parse the timestamp shapes found in stored documents; naive values are UTC."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, Mapping):
        # Serialized store timestamps: {"seconds": ..., "nanoseconds": ...}
        value = value.get("seconds", value.get("_seconds"))
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    number = _coerce_number(value)
    if number is None:
        return None
    if number > 1e11:
        # Epoch milliseconds
        number /= 1000
    try:
        return datetime.fromtimestamp(number, tz=UTC)
    except (OverflowError, OSError, ValueError):
        return None


def _first_timestamp(data: Mapping[str, Any], fields: tuple[str, ...]) -> datetime | None:
    for name in fields:
        parsed = parse_timestamp(data.get(name))
        if parsed is not None:
            return parsed
    return None


def _tags(data: Mapping[str, Any], fields: tuple[str, ...]) -> frozenset[str]:
    for name in fields:
        value = data.get(name)
        if isinstance(value, str):
            value = value.split(",")
        if isinstance(value, (list, tuple, set, frozenset)):
            tags = frozenset(t.strip() for t in value if isinstance(t, str) and t.strip())
            if tags:
                return tags
    return frozenset()


def _resolution(data: Mapping[str, Any], fields: tuple[str, ...]) -> str:
    for name in fields:
        value = data.get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()
        if isinstance(value, int) and not isinstance(value, bool) and value > 0:
            return f"{value}p"
    return ""


# --- Derivations ---


def strip_media_extension(title: str, config: NormalizerConfig | None = None) -> str:
    """Drop a trailing known media extension, e.g. ``clip.MP4`` -> ``clip``."""
    config = config or NormalizerConfig()
    if not config.media_extensions:
        return title
    pattern = r"\.(" + "|".join(re.escape(e) for e in config.media_extensions) + r")$"
    stripped = re.sub(pattern, "", title, flags=re.IGNORECASE).strip()
    return stripped or title


# --- Main operations ---


def normalize(
    record: SourceRecord,
    source_id: str,
    config: NormalizerConfig | None = None,
) -> ContentItem | Rejected:
    """
    Normalize one source record.

    Args:
        record: Raw document tagged with its source kind
        source_id: Id of the document in its source collection
        config: Optional normalizer config

    Returns:
        ContentItem, or Rejected when no usable file URL exists
    """
    config = config or NormalizerConfig()
    table = PRECEDENCE[record.kind]
    data = record.data

    if not source_id:
        return Rejected(source_id="", kind=record.kind, reason="missing id")

    file_url = _first_url(data, table.file_url, config)
    if not file_url:
        return Rejected(source_id=source_id, kind=record.kind, reason="no usable file URL")

    mime_type = _first_str(data, table.mime_type).lower() or config.default_mime_type
    title = _first_str(data, table.title) or config.fallback_title
    display_title = strip_media_extension(title, config)

    filename = _first_str(data, table.filename)
    if not filename:
        extension = config.extension_by_mime.get(mime_type)
        filename = f"{display_title}.{extension}" if extension else display_title

    return ContentItem(
        id=source_id,
        title=title,
        display_title=display_title,
        file_url=file_url,
        mime_type=mime_type,
        content_type=content_type_for_mime(mime_type),
        file_size_bytes=int(_first_number(data, table.file_size)),
        duration_seconds=_first_number(data, table.duration),
        thumbnail_url=_first_url(data, table.thumbnail_url, config),
        tags=_tags(data, table.tags),
        creator_id=_first_str(data, table.creator_id) or None,
        created_at=_first_timestamp(data, table.created_at),
        filename=filename,
        description=_first_str(data, table.description),
        resolution=_resolution(data, table.resolution),
        source=record.kind,
    )


def normalize_many(
    records: Iterable[tuple[str, Mapping[str, Any]]],
    kind: SourceKind,
    config: NormalizerConfig | None = None,
) -> NormalizeManyOutput:
    """
    Normalize ``(source_id, document)`` pairs of one kind.

    Order is preserved; a repeated id is rejected after its first occurrence.
    """
    items: list[ContentItem] = []
    rejected: list[Rejected] = []
    seen: set[str] = set()

    for source_id, data in records:
        if source_id in seen:
            rejected.append(Rejected(source_id=source_id, kind=kind, reason="duplicate id"))
            continue
        result = normalize(SourceRecord(kind=kind, data=data), source_id, config)
        if isinstance(result, Rejected):
            rejected.append(result)
        else:
            seen.add(source_id)
            items.append(result)

    return NormalizeManyOutput(items=tuple(items), rejected=tuple(rejected))


# --- Display helpers ---


def format_file_size(size_bytes: int | float) -> str:
    """Human readable size: ``1536`` -> ``1.5 KB``."""
    number = _coerce_number(size_bytes)
    if not number:
        return "0 Bytes"
    units = ("Bytes", "KB", "MB", "GB", "TB")
    exponent = 0
    while number >= 1024 and exponent < len(units) - 1:
        number /= 1024
        exponent += 1
    return f"{round(number, 2):g} {units[exponent]}"


def format_duration(seconds: int | float) -> str:
    """``m:ss``, or ``h:mm:ss`` from one hour up."""
    total = int(_coerce_number(seconds) or 0)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


# --- Configuration Loader ---


def load_config_from_rules(rules: Rules) -> NormalizerConfig:
    """Build NormalizerConfig from validated rules."""
    section = rules.normalizer
    return NormalizerConfig(
        allowed_url_schemes=tuple(s.lower() for s in section.allowed_url_schemes),
        media_extensions=tuple(section.media_extensions),
        default_mime_type=section.default_mime_type,
        fallback_title=section.fallback_title,
    )
