"""Timestamp helpers for loan metadata.

Due dates arrive either as ISO-8601 strings (HTTP clients) or as unix epoch
seconds (the way on-chain clients express them). Everything is normalised to
UTC; the database layer stores naive UTC values.
"""
from __future__ import annotations

import datetime as _dt
from typing import Union

from dateutil.parser import isoparse as _isoparse

__all__ = ["parse_iso8601", "parse_timestamp", "to_naive_utc"]


def _ensure_utc(dt: _dt.datetime) -> _dt.datetime:
    if dt.tzinfo is None or dt.tzinfo.utcoffset(dt) is None:
        return dt.replace(tzinfo=_dt.timezone.utc)
    return dt.astimezone(_dt.timezone.utc)


def parse_iso8601(value: Union[str, _dt.datetime]) -> _dt.datetime:
    """Parse *value* into a timezone-aware UTC datetime."""
    if isinstance(value, _dt.datetime):
        return _ensure_utc(value)

    if not isinstance(value, str):
        raise TypeError("parse_iso8601 expects str or datetime, got " + type(value).__name__)

    try:
        dt = _isoparse(value)
    except ValueError as exc:
        raise ValueError(f"invalid ISO-8601 datetime: {value}") from exc

    return _ensure_utc(dt)


def parse_timestamp(value: Union[str, int, float, _dt.datetime]) -> _dt.datetime:
    """Accept epoch seconds, ISO-8601 text or a datetime; return aware UTC."""
    if isinstance(value, bool):
        raise TypeError("timestamp must not be a boolean")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"negative epoch timestamp: {value}")
        return _dt.datetime.fromtimestamp(value, tz=_dt.timezone.utc)
    if isinstance(value, str) and value.isdigit():
        return parse_timestamp(int(value))
    return parse_iso8601(value)


def to_naive_utc(value: _dt.datetime) -> _dt.datetime:
    """Drop tzinfo after converting to UTC (storage representation)."""
    return _ensure_utc(value).replace(tzinfo=None)
