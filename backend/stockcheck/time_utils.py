# Overview: UTC clock, ISO-8601 parsing and serialization for tickets, counts and history rows.

"""
All timestamps are stored UTC-naive. Input may carry an offset or a trailing
"Z"; it is converted to UTC and the tzinfo dropped. Output always ends in "Z".
"""
from __future__ import annotations

from datetime import date, datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: str | None) -> datetime | None:
    """
    Parse due dates and filter bounds.

    "2024-05-01" reads as midnight UTC, naive values as UTC, "Z" and offsets
    are converted. Blank input returns None; malformed input raises ValueError.
    """
    if value is None or not value.strip():
        return None
    text = value.strip()
    if text[-1] in "zZ":
        text = f"{text[:-1]}+00:00"
    return _as_utc_naive(datetime.fromisoformat(text))


def to_utc_z(dt: datetime | None) -> str | None:
    """Second-precision ISO-8601 with a trailing Z; naive values are taken as UTC."""
    if dt is None:
        return None
    stamp = _as_utc_naive(dt).replace(microsecond=0)
    return f"{stamp.isoformat()}Z"


def day_stamp(dt: datetime | date) -> str:
    """YYYYMMDD part of a ticket number."""
    return dt.strftime("%Y%m%d")
