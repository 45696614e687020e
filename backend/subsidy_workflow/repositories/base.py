"""Repository Interfaces - Collaborators the workflow engine depends on

Each interface has a MongoDB implementation and an in-memory one.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from ..domain.models import ApplicationCase, TransitionRecord, NotificationOutbox, WorkflowTask
from ..domain.enums import ApplicationState, Role
from ..domain.errors import ApplicationNotFoundError


class CaseStore(ABC):
    """Durable application cases with their embedded transition history"""

    @abstractmethod
    def create_case(self, case: ApplicationCase) -> ApplicationCase:
        """Insert a new case; AlreadyExistsError if the id is taken"""

    @abstractmethod
    def get_case(self, application_id: str) -> Optional[ApplicationCase]:
        """Get case by ID"""

    def get_case_or_raise(self, application_id: str) -> ApplicationCase:
        """Get case by ID or raise error"""
        case = self.get_case(application_id)
        if case is None:
            raise ApplicationNotFoundError(
                f"Application {application_id} not found",
                details={"application_id": application_id}
            )
        return case

    @abstractmethod
    def commit_transition(
        self,
        application_id: str,
        expected_version: int,
        record: TransitionRecord,
        sla_deadline: Optional[datetime]
    ) -> ApplicationCase:
        """
        Atomically apply a transition

        Sets current_state to record.to_state, assigned_to to
        record.assigned_to when it is not None, the new sla_deadline,
        updated_at to record.timestamp and version to expected_version + 1,
        and appends the record to history. Only succeeds while the stored
        version equals expected_version; otherwise raises
        ConcurrentModificationError. Returns the committed case.
        """

    @abstractmethod
    def list_by_state(
        self,
        state: Optional[ApplicationState] = None,
        limit: int = 50
    ) -> List[ApplicationCase]:
        """Cases in queue order (priority, created_at, application_id)"""


class OutboxStore(ABC):
    """Durable queue of transition events awaiting delivery"""

    @abstractmethod
    def create_notification(self, notification: NotificationOutbox) -> NotificationOutbox:
        """Create a notification in outbox"""

    @abstractmethod
    def get_notification(self, notification_id: str) -> Optional[NotificationOutbox]:
        """Get notification by ID"""

    @abstractmethod
    def get_pending_notifications(self, limit: int = 100) -> List[NotificationOutbox]:
        """Pending, unlocked entries whose retry time has come, oldest first"""

    @abstractmethod
    def acquire_lock(self, notification_id: str, lock_by: str, lock_duration_seconds: int = 60) -> bool:
        """Lock a pending entry for delivery; False if someone else holds it"""

    @abstractmethod
    def release_lock(self, notification_id: str, lock_by: Optional[str] = None) -> bool:
        """Release the delivery lock"""

    @abstractmethod
    def mark_sent(self, notification_id: str) -> NotificationOutbox:
        """Mark notification as sent"""

    @abstractmethod
    def mark_failed(self, notification_id: str, error: str, max_retries: int) -> NotificationOutbox:
        """Record a failed attempt; FAILED once max_retries is reached, else PENDING with backoff"""

    @abstractmethod
    def cleanup_stale_locks(self, max_lock_age_minutes: int = 10) -> int:
        """Release locks left behind by crashed dispatchers"""

    @abstractmethod
    def get_notifications_for_application(self, application_id: str) -> List[NotificationOutbox]:
        """All outbox entries for a case, oldest first"""


class TaskStore(ABC):
    """Workflow tasks opened when a case enters a working state"""

    @abstractmethod
    def create_task(self, task: WorkflowTask) -> WorkflowTask:
        """Store a new task"""

    @abstractmethod
    def get_tasks_for_application(self, application_id: str) -> List[WorkflowTask]:
        """All tasks for a case, in the order the case entered the states"""


class FactsProvider(ABC):
    """Completion predicates the transition guards consult"""

    @abstractmethod
    def get_facts(self, application_id: str) -> Dict[str, Any]:
        """
        Facts for the case, keyed by dotted name

        Keys: documents.uploaded, documents.verified, documents.unverified,
        control_visit.status, control_visit.outcome_recorded,
        control_photos.count, control_photos.missing_categories,
        technical_report.complete, social_report.complete,
        director_review.recommendation_recorded
        """


class RoleProvider(ABC):
    """Source of truth for actor roles"""

    @abstractmethod
    def get_roles(self, actor_id: str) -> Set[Role]:
        """Roles held by the actor; empty when unknown"""


class TransitionPublisher(ABC):
    """Receiver of committed-transition events"""

    @abstractmethod
    def publish(self, case: ApplicationCase, record: TransitionRecord) -> None:
        """Hand the event over for asynchronous delivery; must not block on delivery"""
