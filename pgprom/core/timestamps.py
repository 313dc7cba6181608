"""Millisecond <-> datetime conversion for the store's timestamptz columns."""

from datetime import datetime, timedelta, timezone

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)

# Prometheus uses roughly +/-9.2e15 ms for open ranges, far beyond datetime.
MIN_MS = (datetime.min.replace(tzinfo=timezone.utc) - EPOCH) // _ONE_MS
MAX_MS = (datetime.max.replace(tzinfo=timezone.utc) - EPOCH) // _ONE_MS


def to_timestamp(milliseconds: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime, exact to the millisecond."""
    return EPOCH + timedelta(milliseconds=milliseconds)


def to_milliseconds(ts: datetime) -> int:
    """Convert a datetime to epoch milliseconds. Naive datetimes are taken as UTC."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return (ts - EPOCH) // _ONE_MS


def format_timestamp(milliseconds: int) -> str:
    """
    Render epoch milliseconds as a timestamptz literal.

    Values outside the datetime range become PostgreSQL's '-infinity' and
    'infinity', which compare below and above every finite timestamp.
    """
    if milliseconds < MIN_MS:
        return "-infinity"
    if milliseconds > MAX_MS:
        return "infinity"
    return to_timestamp(milliseconds).isoformat(timespec="milliseconds")
