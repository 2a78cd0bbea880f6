"""
Bundle content component.

Public API for quota-bounded content mutation of bundles.
"""

from .component import (
    add_content,
    compute_metadata,
    get_content,
    resolve_candidate,
    run,
)
from .models import AddContentInput, AddContentOutput, BundleContentView

__all__ = [
    # Functions
    "add_content",
    "compute_metadata",
    "get_content",
    "resolve_candidate",
    "run",
    # Models
    "AddContentInput",
    "AddContentOutput",
    "BundleContentView",
]
