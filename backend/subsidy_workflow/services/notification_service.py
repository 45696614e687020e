"""Notification Service - Transition events via the outbox

Committed transitions are written to the notification outbox by the
OutboxPublisher; the scheduler later hands each entry to the configured
sink through NotificationService.send_notification.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
import httpx

from ..config.settings import Settings
from ..domain.models import ApplicationCase, NotificationOutbox, TransitionRecord
from ..domain.enums import NotificationStatus
from ..domain.errors import ConfigurationError, NotificationDeliveryError
from ..engine.definition import notify_role_for
from ..repositories.base import OutboxStore, TransitionPublisher
from ..utils.idgen import generate_notification_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# Sinks
# =============================================================================

class NotificationSink(ABC):
    """Fire-and-forget receiver of transition events"""

    @abstractmethod
    async def deliver(self, payload: Dict[str, Any]) -> None:
        """Deliver one event; raise NotificationDeliveryError on failure"""


class LoggingNotificationSink(NotificationSink):
    """Writes events to the application log"""

    async def deliver(self, payload: Dict[str, Any]) -> None:
        logger.info(
            f"Transition event: {payload['from_state']} -> {payload['to_state']}",
            extra={
                "notification_id": payload["notification_id"],
                "application_id": payload["application_id"],
                "from_state": payload["from_state"],
                "to_state": payload["to_state"],
                "actor_id": payload["actor_id"],
            }
        )


class WebhookNotificationSink(NotificationSink):
    """POSTs the event JSON to an HTTP endpoint"""

    def __init__(self, url: str, timeout_seconds: float = 10.0, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = url
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    async def deliver(self, payload: Dict[str, Any]) -> None:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.post(
                    self.url,
                    json=payload,
                    headers={"Content-Type": "application/json"}
                )
        except httpx.HTTPError as e:
            raise NotificationDeliveryError(
                f"Webhook request failed: {e}",
                details={"url": self.url}
            )

        if response.status_code >= 300:
            raise NotificationDeliveryError(
                f"Webhook error: {response.status_code}",
                details={"url": self.url, "response": response.text[:500]}
            )


def build_sink(settings: Settings) -> NotificationSink:
    """Sink selected by NOTIFICATION_SINK"""
    sink = settings.notification_sink.lower()
    if sink == "log":
        return LoggingNotificationSink()
    if sink == "webhook":
        if not settings.notification_webhook_url:
            raise ConfigurationError("NOTIFICATION_WEBHOOK_URL is required for the webhook sink")
        return WebhookNotificationSink(
            settings.notification_webhook_url,
            timeout_seconds=settings.notification_timeout_seconds
        )
    raise ConfigurationError(f"Unknown notification sink: {settings.notification_sink}")


# =============================================================================
# Outbox
# =============================================================================

class OutboxPublisher(TransitionPublisher):
    """Enqueues one outbox entry per committed transition"""

    def __init__(self, outbox: OutboxStore):
        self.outbox = outbox

    def publish(self, case: ApplicationCase, record: TransitionRecord) -> None:
        notification = NotificationOutbox(
            notification_id=generate_notification_id(),
            application_id=case.application_id,
            sequence_number=record.sequence_number,
            from_state=record.from_state,
            to_state=record.to_state,
            actor_id=record.actor_id,
            notes=record.notes,
            assigned_to=case.assigned_to,
            target_role=notify_role_for(record.to_state),
            status=NotificationStatus.PENDING,
            created_at=utc_now(),
        )
        try:
            self.outbox.create_notification(notification)
        except Exception as e:
            raise NotificationDeliveryError(
                f"Could not enqueue transition event: {e}",
                details={"application_id": case.application_id, "sequence_number": record.sequence_number}
            )


class NotificationService:
    """Delivers outbox entries to the sink and records the outcome"""

    def __init__(self, outbox: OutboxStore, sink: NotificationSink, max_retries: int = 5):
        self.outbox = outbox
        self.sink = sink
        self.max_retries = max_retries

    async def send_notification(self, notification: NotificationOutbox) -> bool:
        """
        Deliver a single notification

        Locking is handled by the scheduler before calling this method.
        Returns True if sent successfully, False otherwise.
        """
        start_time = utc_now()

        try:
            await self.sink.deliver(notification.event_payload())
        except Exception as e:
            updated = self.outbox.mark_failed(notification.notification_id, str(e), self.max_retries)
            logger.error(
                f"Failed to deliver notification: {notification.notification_id}",
                extra={
                    "notification_id": notification.notification_id,
                    "application_id": notification.application_id,
                    "error_code": getattr(e, "error_code", type(e).__name__),
                }
            )
            if updated.status == NotificationStatus.FAILED:
                logger.warning(
                    f"Notification {notification.notification_id} gave up after {updated.retry_count} attempts",
                    extra={"notification_id": notification.notification_id}
                )
            return False

        self.outbox.mark_sent(notification.notification_id)
        processing_time_ms = (utc_now() - start_time).total_seconds() * 1000
        logger.info(
            f"Sent notification: {notification.notification_id} ({round(processing_time_ms, 2)} ms)",
            extra={
                "notification_id": notification.notification_id,
                "application_id": notification.application_id,
            }
        )
        return True
