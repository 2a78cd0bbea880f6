"""
Identity port.

Identity is issued elsewhere; the core only consumes a verified
``(buyer_id, email)`` assertion and never re-derives it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class VerifiedIdentity:
    """Identity asserted by the identity provider."""

    user_id: str
    email: str = ""


class IdentityPort(Protocol):
    def verify(self, credential: str) -> VerifiedIdentity | None:
        """Return the identity behind a bearer credential, or None if invalid."""
        ...
