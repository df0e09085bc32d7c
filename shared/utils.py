"""
utils.py – small generic helpers reused in multiple services
"""

from __future__ import annotations
from datetime import datetime, timedelta, timezone
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Wall clock, always tz-aware UTC."""

    def now(self) -> datetime:
        return datetime.now(tz=timezone.utc)


def truncate_to_minute(ts: datetime) -> datetime:
    """Floor `ts` to its one-minute candle bucket."""
    return ts.replace(second=0, microsecond=0)


def from_millis(ms: int | str) -> datetime:
    return datetime.fromtimestamp(int(ms) / 1000, tz=timezone.utc)


def format_elapsed(delta: timedelta) -> str:
    """HH:MM:SS – hours keep counting past 24."""
    secs = max(0, int(delta.total_seconds()))
    return f"{secs // 3600:02d}:{secs % 3600 // 60:02d}:{secs % 60:02d}"
