"""Human-readable timestamps used in release records (`YYYY-MM-DD hh:mm:ss`, local time).

The fixed-width format sorts lexicographically in chronological order, which the
release ledger relies on when ordering builds by `releasedAt`.
"""

from __future__ import annotations

from datetime import datetime


def to_readable_date_string(timestamp_ms: int | float) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


def now_ms() -> int:
    return int(datetime.now().timestamp() * 1000)
