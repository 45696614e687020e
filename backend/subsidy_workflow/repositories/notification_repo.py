"""Notification Repository - Data access for notification outbox

Uses MongoDB atomic operations as a distributed lock so that several
dispatcher processes never deliver the same transition event twice.
"""
from typing import Any, Dict, List, Optional
from datetime import timedelta
from pymongo.collection import Collection
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from .base import OutboxStore
from .mongo_client import get_collection
from ..domain.models import NotificationOutbox
from ..domain.enums import NotificationStatus
from ..domain.errors import NotFoundError, StoreUnavailableError
from ..utils.logger import get_logger
from ..utils.time import utc_now, backoff_delay

logger = get_logger(__name__)


def _notification_to_doc(notification: NotificationOutbox) -> Dict[str, Any]:
    doc = notification.model_dump()
    doc["from_state"] = notification.from_state.value
    doc["to_state"] = notification.to_state.value
    doc["status"] = notification.status.value
    doc["target_role"] = notification.target_role.value if notification.target_role else None
    doc["_id"] = notification.notification_id
    return doc


def _doc_to_notification(doc: Dict[str, Any]) -> NotificationOutbox:
    doc.pop("_id", None)
    doc.pop("lock_acquired_at", None)
    return NotificationOutbox.model_validate(doc)


class NotificationRepository(OutboxStore):
    """Repository for notification outbox operations"""

    def __init__(self, collection: Optional[Collection] = None):
        self._outbox: Collection = collection if collection is not None else get_collection("notification_outbox")

    def create_notification(self, notification: NotificationOutbox) -> NotificationOutbox:
        """Create a notification in outbox"""
        try:
            self._outbox.insert_one(_notification_to_doc(notification))
        except PyMongoError as e:
            raise StoreUnavailableError(f"Could not enqueue notification: {e}")

        logger.info(
            f"Created notification for {notification.to_state.value}",
            extra={
                "notification_id": notification.notification_id,
                "application_id": notification.application_id
            }
        )
        return notification

    def get_notification(self, notification_id: str) -> Optional[NotificationOutbox]:
        """Get notification by ID"""
        doc = self._outbox.find_one({"notification_id": notification_id})
        if doc:
            return _doc_to_notification(doc)
        return None

    def get_pending_notifications(self, limit: int = 100) -> List[NotificationOutbox]:
        """
        Get pending notifications ready for sending

        Only returns notifications that:
        - Have PENDING status
        - Are not locked (or lock expired)
        - Are ready for retry (or first attempt)
        """
        now = utc_now()

        try:
            cursor = self._outbox.find({
                "status": NotificationStatus.PENDING.value,
                "$and": [
                    {"$or": [
                        {"next_retry_at": {"$lte": now}},
                        {"next_retry_at": None}
                    ]},
                    {"$or": [
                        {"locked_until": {"$lte": now}},
                        {"locked_until": None}
                    ]}
                ]
            }).sort("created_at", ASCENDING).limit(limit)

            return [_doc_to_notification(doc) for doc in cursor]

        except PyMongoError as e:
            logger.error(
                f"Database error fetching pending notifications: {e}",
                extra={"error_code": type(e).__name__}
            )
            return []

    def acquire_lock(
        self,
        notification_id: str,
        lock_by: str,
        lock_duration_seconds: int = 60
    ) -> bool:
        """
        Try to acquire the delivery lock with an atomic find-and-modify

        Args:
            notification_id: The notification to lock
            lock_by: Unique identifier for this locker (e.g., "host-pid-uuid")
            lock_duration_seconds: How long to hold the lock

        Returns:
            True if lock acquired, False otherwise
        """
        now = utc_now()
        lock_until = now + timedelta(seconds=lock_duration_seconds)

        try:
            result = self._outbox.find_one_and_update(
                {
                    "notification_id": notification_id,
                    "status": NotificationStatus.PENDING.value,
                    "$or": [
                        {"locked_until": {"$lte": now}},
                        {"locked_until": None}
                    ]
                },
                {
                    "$set": {
                        "locked_until": lock_until,
                        "locked_by": lock_by,
                        "lock_acquired_at": now
                    }
                },
                return_document=ReturnDocument.BEFORE
            )
        except PyMongoError as e:
            logger.error(
                f"Database error acquiring lock on notification {notification_id}: {e}",
                extra={"notification_id": notification_id}
            )
            return False

        if result:
            logger.debug(
                f"Lock acquired on notification {notification_id}",
                extra={"notification_id": notification_id}
            )
            return True

        logger.debug(
            f"Could not acquire lock on notification {notification_id} - already locked or not found",
            extra={"notification_id": notification_id}
        )
        return False

    def release_lock(self, notification_id: str, lock_by: Optional[str] = None) -> bool:
        """Release lock; when lock_by is given only that locker's lock is released"""
        query: Dict[str, Any] = {"notification_id": notification_id}
        if lock_by:
            query["locked_by"] = lock_by

        try:
            result = self._outbox.update_one(
                query,
                {
                    "$set": {"locked_until": None, "locked_by": None},
                    "$unset": {"lock_acquired_at": ""}
                }
            )
        except PyMongoError as e:
            logger.error(
                f"Database error releasing lock on notification {notification_id}: {e}",
                extra={"notification_id": notification_id}
            )
            return False

        return result.modified_count > 0

    def cleanup_stale_locks(self, max_lock_age_minutes: int = 10) -> int:
        """Clean up locks left by crashed dispatchers"""
        cutoff = utc_now() - timedelta(minutes=max_lock_age_minutes)

        try:
            result = self._outbox.update_many(
                {
                    "locked_until": {"$lte": cutoff},
                    "locked_by": {"$ne": None}
                },
                {
                    "$set": {"locked_until": None, "locked_by": None},
                    "$unset": {"lock_acquired_at": ""}
                }
            )
        except PyMongoError as e:
            logger.error(f"Error cleaning up stale locks: {e}")
            return 0

        if result.modified_count > 0:
            logger.warning(f"Cleaned up {result.modified_count} stale notification locks")
        return result.modified_count

    def mark_sent(self, notification_id: str) -> NotificationOutbox:
        """Mark notification as sent"""
        result = self._outbox.find_one_and_update(
            {"notification_id": notification_id},
            {
                "$set": {
                    "status": NotificationStatus.SENT.value,
                    "sent_at": utc_now(),
                    "locked_until": None,
                    "locked_by": None
                }
            },
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            raise NotFoundError(f"Notification {notification_id} not found")

        logger.info(f"Notification sent: {notification_id}", extra={"notification_id": notification_id})
        return _doc_to_notification(result)

    def mark_failed(self, notification_id: str, error: str, max_retries: int) -> NotificationOutbox:
        """Record a failed attempt and schedule the retry with exponential backoff"""
        notification = self.get_notification(notification_id)
        if not notification:
            raise NotFoundError(f"Notification {notification_id} not found")

        new_retry_count = notification.retry_count + 1
        if new_retry_count >= max_retries:
            new_status = NotificationStatus.FAILED.value
            next_retry = None
        else:
            new_status = NotificationStatus.PENDING.value
            next_retry = utc_now() + backoff_delay(new_retry_count)

        result = self._outbox.find_one_and_update(
            {"notification_id": notification_id},
            {
                "$set": {
                    "status": new_status,
                    "retry_count": new_retry_count,
                    "last_error": error,
                    "next_retry_at": next_retry,
                    "locked_until": None,
                    "locked_by": None
                }
            },
            return_document=ReturnDocument.AFTER
        )

        logger.warning(
            f"Notification failed: {notification_id} (attempt {new_retry_count}/{max_retries})",
            extra={"notification_id": notification_id, "application_id": notification.application_id}
        )
        return _doc_to_notification(result)

    def get_notifications_for_application(self, application_id: str) -> List[NotificationOutbox]:
        """Get all notifications for an application"""
        cursor = self._outbox.find({"application_id": application_id}).sort("sequence_number", ASCENDING)
        return [_doc_to_notification(doc) for doc in cursor]
