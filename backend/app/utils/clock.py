from __future__ import annotations
from datetime import datetime, timezone

def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def hms(ts: datetime | None = None) -> str:
    """job 日志行前缀用的 HH:MM:SS"""
    return (ts or now_utc()).strftime("%H:%M:%S")
