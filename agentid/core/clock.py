# agentid/core/clock.py
import time
from datetime import datetime, timezone


def now_ms() -> int:
    """Milliseconds since the Unix epoch."""
    return time.time_ns() // 1_000_000


def utc_iso(dt: datetime | None = None) -> str:
    """ISO 8601 UTC with millis, e.g. ``2026-02-13T12:00:00.000+00:00``."""
    return (dt or datetime.now(timezone.utc)).isoformat(timespec="milliseconds")


def ms_to_iso(ms: int) -> str:
    return utc_iso(datetime.fromtimestamp(ms / 1000, tz=timezone.utc))
