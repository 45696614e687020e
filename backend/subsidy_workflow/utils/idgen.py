"""Identifiers for applications, outbox entries and request tracing"""
import uuid
from datetime import datetime, timezone
from typing import Optional


def _token(length: int = 12) -> str:
    return uuid.uuid4().hex[:length]


def generate_id(prefix: Optional[str] = None) -> str:
    """Random 12-hex id, prefixed as ``PREFIX-abc123...`` when a prefix is given"""
    return f"{prefix}-{_token()}" if prefix else _token()


def generate_application_id(now: Optional[datetime] = None) -> str:
    """
    Application case ID stamped with the filing year, e.g. ``APP-2026-1f0c9a2b7d3e``

    Cases are filed and audited per budget year, so the year is part of the id.
    """
    year = (now or datetime.now(timezone.utc)).year
    return f"APP-{year}-{_token()}"


def generate_notification_id() -> str:
    return generate_id("NTF")


def generate_task_id() -> str:
    return generate_id("TSK")


def generate_correlation_id() -> str:
    """``COR-<utc seconds>-<8 hex>``; sortable by request time in the logs"""
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"COR-{timestamp}-{_token(8)}"
