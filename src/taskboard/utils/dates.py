"""
Date and timestamp helpers shared by the writer, cache and API envelopes.
"""

import time
from datetime import date, datetime, timezone


def today_iso() -> str:
    """Local calendar date as YYYY-MM-DD (used for started:/completed: tokens)."""
    return date.today().isoformat()


def epoch_ms() -> int:
    return int(time.time() * 1000)


def to_iso(ts: float) -> str:
    """Epoch seconds → ISO 8601 UTC with millisecond precision and a Z suffix."""
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def now_iso() -> str:
    return to_iso(time.time())
