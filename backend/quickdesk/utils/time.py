"""Time Utilities - UTC timestamps and formatting"""
from datetime import datetime, timezone, timedelta
from typing import Union
from dateutil import parser as date_parser


def utc_now() -> datetime:
    """Get current UTC datetime"""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (as returned by some drivers)"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO 8601 string

    Args:
        dt: Datetime object

    Returns:
        ISO formatted string with Z suffix for UTC
    """
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 string to datetime

    Args:
        iso_string: ISO formatted datetime string

    Returns:
        Datetime object in UTC
    """
    return ensure_utc(date_parser.isoparse(iso_string))


def format_display(value: Union[str, datetime, None]) -> str:
    """Human readable timestamp for emails, e.g. 'Mar 04, 2026 14:05 UTC'"""
    if value is None:
        return "N/A"
    if isinstance(value, str):
        value = parse_iso(value)
    return ensure_utc(value).strftime("%b %d, %Y %H:%M UTC")


def days_ago(days: int) -> datetime:
    """Datetime `days` days before now"""
    return utc_now() - timedelta(days=days)
