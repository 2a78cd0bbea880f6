import time
from datetime import UTC, datetime, timedelta


class SystemClock:
    def now_utc(self) -> datetime:
        return datetime.now(UTC)

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class FrozenClock:
    """Deterministic clock for tests; ``sleep`` advances time instead of blocking."""

    def __init__(self, start: datetime):
        self.current = start
        self.sleeps: list[float] = []

    def now_utc(self) -> datetime:
        return self.current

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += timedelta(seconds=seconds)
