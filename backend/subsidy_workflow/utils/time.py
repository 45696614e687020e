"""Time Utilities - UTC timestamps and formatting"""
from datetime import datetime, timezone, timedelta
from typing import Optional
from dateutil import parser as date_parser


def utc_now() -> datetime:
    """Get current UTC datetime, truncated to the millisecond precision BSON stores"""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


def ensure_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes (MongoDB returns naive UTC values)"""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def format_iso(dt: datetime) -> str:
    """
    Format datetime to ISO 8601 string

    Returns:
        ISO formatted string with Z suffix for UTC
    """
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")


def parse_iso(iso_string: str) -> datetime:
    """Parse ISO 8601 string to a UTC datetime"""
    return ensure_utc(date_parser.isoparse(iso_string))


def add_hours(dt: datetime, hours: int) -> datetime:
    """Add hours to datetime"""
    return dt + timedelta(hours=hours)


def calculate_sla_deadline(start_time: datetime, sla_hours: Optional[int]) -> Optional[datetime]:
    """
    Calculate the SLA deadline for a state entered at start_time

    States without an SLA (terminal states, ON_HOLD) have no deadline.
    """
    if not sla_hours:
        return None
    return add_hours(start_time, sla_hours)


def is_overdue(due_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """Check if due datetime has passed"""
    if due_at is None:
        return False
    return (now or utc_now()) > ensure_utc(due_at)


def backoff_delay(retry_count: int, base_seconds: int = 30, max_seconds: int = 3600) -> timedelta:
    """Exponential backoff delay for the given retry attempt"""
    seconds = min(base_seconds * (2 ** max(retry_count - 1, 0)), max_seconds)
    return timedelta(seconds=seconds)
