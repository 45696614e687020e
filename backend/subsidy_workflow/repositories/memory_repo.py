"""In-Memory Repositories - Process-local collaborators for tests and demos

Selected with STORE_BACKEND=memory. Same contracts as the MongoDB
repositories; commits are serialized with a lock.
"""
import threading
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from datetime import datetime, timedelta

from .base import CaseStore, OutboxStore, FactsProvider, RoleProvider, TaskStore
from ..domain.models import ApplicationCase, TransitionRecord, NotificationOutbox, WorkflowTask
from ..domain.enums import ApplicationState, NotificationStatus, Role
from ..domain.errors import (
    AlreadyExistsError, ApplicationNotFoundError, ConcurrentModificationError,
    NotFoundError
)
from ..engine.permission_guard import parse_roles
from ..engine.queue_policy import queue_order
from ..utils.logger import get_logger
from ..utils.time import utc_now, backoff_delay

logger = get_logger(__name__)


class InMemoryCaseStore(CaseStore):
    """Case store backed by a dict"""

    def __init__(self):
        self._cases: Dict[str, ApplicationCase] = {}
        self._lock = threading.Lock()

    def create_case(self, case: ApplicationCase) -> ApplicationCase:
        with self._lock:
            if case.application_id in self._cases:
                raise AlreadyExistsError(
                    f"Application {case.application_id} already exists",
                    details={"application_id": case.application_id}
                )
            self._cases[case.application_id] = case.model_copy(deep=True)
        logger.info(
            f"Created application: {case.application_id}",
            extra={"application_id": case.application_id}
        )
        return case

    def get_case(self, application_id: str) -> Optional[ApplicationCase]:
        with self._lock:
            case = self._cases.get(application_id)
            return case.model_copy(deep=True) if case else None

    def commit_transition(
        self,
        application_id: str,
        expected_version: int,
        record: TransitionRecord,
        sla_deadline: Optional[datetime]
    ) -> ApplicationCase:
        with self._lock:
            current = self._cases.get(application_id)
            if current is None:
                raise ApplicationNotFoundError(
                    f"Application {application_id} not found",
                    details={"application_id": application_id}
                )
            if current.version != expected_version:
                raise ConcurrentModificationError(
                    f"Application {application_id} was modified. Please refresh and try again.",
                    details={
                        "application_id": application_id,
                        "expected_version": expected_version,
                        "current_version": current.version,
                    }
                )

            updates: Dict[str, Any] = {
                "current_state": record.to_state,
                "sla_deadline": sla_deadline,
                "updated_at": record.timestamp,
                "version": expected_version + 1,
                "history": list(current.history) + [record],
            }
            if record.assigned_to is not None:
                updates["assigned_to"] = record.assigned_to

            committed = current.model_copy(update=updates, deep=True)
            self._cases[application_id] = committed

        logger.info(
            f"Committed transition {record.from_state.value} -> {record.to_state.value}",
            extra={
                "application_id": application_id,
                "from_state": record.from_state.value,
                "to_state": record.to_state.value,
                "version": expected_version + 1,
            }
        )
        return committed.model_copy(deep=True)

    def list_by_state(
        self,
        state: Optional[ApplicationState] = None,
        limit: int = 50
    ) -> List[ApplicationCase]:
        with self._lock:
            cases = [
                c.model_copy(deep=True) for c in self._cases.values()
                if state is None or c.current_state == state
            ]
        return queue_order(cases)[:limit]


class InMemoryOutboxStore(OutboxStore):
    """Outbox backed by a dict, with the same lock semantics as MongoDB"""

    def __init__(self):
        self._entries: Dict[str, NotificationOutbox] = {}
        self._lock = threading.Lock()

    def _update(self, notification_id: str, **changes) -> NotificationOutbox:
        entry = self._entries.get(notification_id)
        if entry is None:
            raise NotFoundError(f"Notification {notification_id} not found")
        entry = entry.model_copy(update=changes)
        self._entries[notification_id] = entry
        return entry

    def create_notification(self, notification: NotificationOutbox) -> NotificationOutbox:
        with self._lock:
            self._entries[notification.notification_id] = notification
        return notification

    def get_notification(self, notification_id: str) -> Optional[NotificationOutbox]:
        with self._lock:
            return self._entries.get(notification_id)

    def get_pending_notifications(self, limit: int = 100) -> List[NotificationOutbox]:
        now = utc_now()
        with self._lock:
            ready = [
                n for n in self._entries.values()
                if n.status == NotificationStatus.PENDING
                and (n.next_retry_at is None or n.next_retry_at <= now)
                and (n.locked_until is None or n.locked_until <= now)
            ]
        return sorted(ready, key=lambda n: n.created_at)[:limit]

    def acquire_lock(self, notification_id: str, lock_by: str, lock_duration_seconds: int = 60) -> bool:
        now = utc_now()
        with self._lock:
            entry = self._entries.get(notification_id)
            if entry is None or entry.status != NotificationStatus.PENDING:
                return False
            if entry.locked_until is not None and entry.locked_until > now:
                return False
            self._update(
                notification_id,
                locked_until=now + timedelta(seconds=lock_duration_seconds),
                locked_by=lock_by
            )
            return True

    def release_lock(self, notification_id: str, lock_by: Optional[str] = None) -> bool:
        with self._lock:
            entry = self._entries.get(notification_id)
            if entry is None or (lock_by and entry.locked_by != lock_by):
                return False
            self._update(notification_id, locked_until=None, locked_by=None)
            return True

    def mark_sent(self, notification_id: str) -> NotificationOutbox:
        with self._lock:
            return self._update(
                notification_id,
                status=NotificationStatus.SENT,
                sent_at=utc_now(),
                locked_until=None,
                locked_by=None
            )

    def mark_failed(self, notification_id: str, error: str, max_retries: int) -> NotificationOutbox:
        with self._lock:
            entry = self._entries.get(notification_id)
            if entry is None:
                raise NotFoundError(f"Notification {notification_id} not found")

            retry_count = entry.retry_count + 1
            exhausted = retry_count >= max_retries
            return self._update(
                notification_id,
                status=NotificationStatus.FAILED if exhausted else NotificationStatus.PENDING,
                retry_count=retry_count,
                last_error=error,
                next_retry_at=None if exhausted else utc_now() + backoff_delay(retry_count),
                locked_until=None,
                locked_by=None
            )

    def cleanup_stale_locks(self, max_lock_age_minutes: int = 10) -> int:
        cutoff = utc_now() - timedelta(minutes=max_lock_age_minutes)
        cleaned = 0
        with self._lock:
            for entry in list(self._entries.values()):
                if entry.locked_by is not None and entry.locked_until is not None and entry.locked_until <= cutoff:
                    self._update(entry.notification_id, locked_until=None, locked_by=None)
                    cleaned += 1
        if cleaned:
            logger.warning(f"Cleaned up {cleaned} stale notification locks")
        return cleaned

    def get_notifications_for_application(self, application_id: str) -> List[NotificationOutbox]:
        with self._lock:
            entries = [n for n in self._entries.values() if n.application_id == application_id]
        return sorted(entries, key=lambda n: n.sequence_number)


class InMemoryTaskStore(TaskStore):
    """Tasks keyed by (application_id, sequence_number), like the unique index in MongoDB"""

    def __init__(self):
        self._tasks: Dict[Tuple[str, int], WorkflowTask] = {}
        self._lock = threading.Lock()

    def create_task(self, task: WorkflowTask) -> WorkflowTask:
        key = (task.application_id, task.sequence_number)
        with self._lock:
            return self._tasks.setdefault(key, task)

    def get_tasks_for_application(self, application_id: str) -> List[WorkflowTask]:
        with self._lock:
            tasks = [t for (app_id, _), t in self._tasks.items() if app_id == application_id]
        return sorted(tasks, key=lambda t: t.sequence_number)


class StaticFactsProvider(FactsProvider):
    """Facts held per case in a dict; missing cases have no facts"""

    def __init__(self, facts: Optional[Dict[str, Dict[str, Any]]] = None):
        self._facts: Dict[str, Dict[str, Any]] = {k: dict(v) for k, v in (facts or {}).items()}
        self._lock = threading.Lock()

    def set_facts(self, application_id: str, **facts: Any) -> None:
        """Merge facts for a case; dotted keys may be passed via a dict: set_facts(id, **{"a.b": 1})"""
        with self._lock:
            self._facts.setdefault(application_id, {}).update(facts)

    def get_facts(self, application_id: str) -> Dict[str, Any]:
        with self._lock:
            return dict(self._facts.get(application_id, {}))


class StaticRoleProvider(RoleProvider):
    """Roles held per actor in a dict"""

    def __init__(self, roles: Optional[Dict[str, Iterable[str]]] = None):
        self._roles: Dict[str, Set[Role]] = {
            actor_id: parse_roles(raw) for actor_id, raw in (roles or {}).items()
        }

    def set_roles(self, actor_id: str, roles: Iterable[str]) -> None:
        self._roles[actor_id] = parse_roles(roles)

    def get_roles(self, actor_id: str) -> Set[Role]:
        return set(self._roles.get(actor_id, set()))
