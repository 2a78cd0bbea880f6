"""
Time port.

All timestamps are UTC. ``sleep`` is part of the port so bounded polling
loops can be driven by a fake clock in tests.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class TimePort(Protocol):
    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...

    def sleep(self, seconds: float) -> None:
        """Block the caller for ``seconds``."""
        ...
