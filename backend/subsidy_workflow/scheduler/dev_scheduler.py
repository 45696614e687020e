"""Dev Scheduler - Outbox dispatch for transition notifications

Supports multi-server deployment with distributed locking via the outbox
store. Handles:
- Delivery of pending transition events with lock-based concurrency control
- Stale lock cleanup for crash recovery
"""
import socket
import os
from typing import Optional
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.settings import settings
from ..repositories.base import OutboxStore
from ..services.notification_service import NotificationService
from ..utils.logger import get_logger, set_correlation_id
from ..utils.idgen import generate_correlation_id, generate_id
from ..utils.time import utc_now

logger = get_logger(__name__)


class DevScheduler:
    """
    APScheduler jobs that drain the notification outbox

    Each server runs its own scheduler instance; entries are locked before
    delivery so only one server sends each event.
    """

    def __init__(self, outbox: OutboxStore, notification_service: NotificationService):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.outbox = outbox
        self.notification_service = notification_service
        self._is_running = False
        self._server_id = self._generate_server_id()
        self._process_count = 0

    def _generate_server_id(self) -> str:
        """Generate unique server identifier for distributed locking"""
        return f"{socket.gethostname()}-{os.getpid()}-{generate_id()[:8]}"

    def start(self) -> None:
        """Start the scheduler"""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()

        self.scheduler.add_job(
            self.process_notifications,
            trigger=IntervalTrigger(seconds=settings.scheduler_interval_seconds),
            id="process_notifications",
            name="Deliver pending transition notifications",
            replace_existing=True,
            max_instances=1
        )

        self.scheduler.add_job(
            self.cleanup_stale_locks,
            trigger=IntervalTrigger(minutes=5),
            id="cleanup_stale_locks",
            name="Cleanup stale notification locks",
            replace_existing=True
        )

        self.scheduler.start()
        self._is_running = True
        logger.info(f"Scheduler started (server {self._server_id}, every {settings.scheduler_interval_seconds}s)")

    def stop(self) -> None:
        """Stop the scheduler"""
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self._is_running = False
            logger.info("Dev scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._is_running

    async def process_notifications(self) -> int:
        """
        Deliver pending notifications, locking each one first

        Returns the number of notifications sent in this cycle.
        """
        set_correlation_id(generate_correlation_id())
        start_time = utc_now()
        processed = failed = skipped = 0

        try:
            notifications = self.outbox.get_pending_notifications(limit=settings.notification_batch_size)
        except Exception as e:
            logger.error(f"Error loading pending notifications: {e}")
            return 0

        if not notifications:
            return 0

        for notification in notifications:
            lock_id = f"{self._server_id}-{generate_id()[:8]}"
            try:
                if not self.outbox.acquire_lock(
                    notification.notification_id,
                    lock_id,
                    lock_duration_seconds=settings.notification_lock_duration_seconds
                ):
                    skipped += 1
                    continue

                try:
                    if await self.notification_service.send_notification(notification):
                        processed += 1
                        self._process_count += 1
                    else:
                        failed += 1
                finally:
                    self.outbox.release_lock(notification.notification_id, lock_id)

            except Exception as e:
                failed += 1
                logger.error(
                    f"Error processing notification {notification.notification_id}: {e}",
                    extra={"notification_id": notification.notification_id}
                )

        duration_ms = (utc_now() - start_time).total_seconds() * 1000
        if processed or failed:
            logger.info(
                f"Notification cycle complete: {processed} sent, {failed} failed, "
                f"{skipped} skipped in {round(duration_ms, 2)} ms"
            )
        return processed

    async def cleanup_stale_locks(self) -> int:
        """Release locks held by crashed processes"""
        try:
            return self.outbox.cleanup_stale_locks(
                max_lock_age_minutes=settings.stale_lock_cleanup_minutes
            )
        except Exception as e:
            logger.error(f"Error cleaning up stale locks: {e}")
            return 0


# Global scheduler instance
_scheduler: Optional[DevScheduler] = None


def start_scheduler(outbox: OutboxStore, notification_service: NotificationService) -> DevScheduler:
    """Create and start the global scheduler"""
    global _scheduler
    if _scheduler is None:
        _scheduler = DevScheduler(outbox, notification_service)
    _scheduler.start()
    return _scheduler


def stop_scheduler() -> None:
    """Stop the global scheduler"""
    global _scheduler
    if _scheduler:
        _scheduler.stop()
        _scheduler = None
