"""
Workflow Engine - Owner of application state changes

The WorkflowEngine is the only writer of ApplicationCase state. Every change
goes through apply_transition:

    load -> idempotency check -> gather facts -> validate -> commit -> publish

The commit is a single conditional write on the case version; history is
embedded in the case, so state and history never diverge. Publishing happens
after the commit and never rolls it back.

=============================================================================
DEPENDENCIES
=============================================================================

    - WorkflowRegistry: closed set of states and transition rules
    - CaseStore: durable cases (MongoDB or in-memory)
    - FactsProvider: document/task completion predicates for guards
    - TransitionPublisher: notification outbox for committed transitions
    - Task creator (a TransitionPublisher): opens the task for the entered state
    - TransitionValidator: pure verdicts (roles + guard requirements)

=============================================================================
"""
from typing import Any, Dict, List, Optional, Tuple, Type

from ..domain.models import (
    ActorContext, ApplicationCase, AvailableTransition, TransitionRecord,
    TransitionRule, ValidationResult
)
from ..domain.enums import ApplicationState
from ..domain.errors import (
    ConcurrentModificationError, DomainError, NotificationDeliveryError, TaskCreationError,
    TransitionRejectedError
)
from ..repositories.base import CaseStore, FactsProvider, TransitionPublisher
from .registry import WorkflowRegistry
from .transition_validator import TransitionValidator
from .queue_policy import queue_order
from ..utils.idgen import generate_application_id
from ..utils.time import utc_now, calculate_sla_deadline, is_overdue, format_iso
from ..utils.logger import get_logger

logger = get_logger(__name__)

IDEMPOTENCY_KEY_REUSED = "idempotency key already used for a different transition"

# States that are not steps on the way to CLOSURE
NON_PROGRESS_STATES = frozenset({ApplicationState.REJECTED, ApplicationState.ON_HOLD})

ASSIGNEE_FIELD = "case.assigned_to"


class WorkflowEngine:
    """
    Central orchestrator for application workflow operations

    Responsibilities:
    - Open cases in DRAFT
    - Validate and apply transitions for an actor
    - Ensure idempotency and concurrency safety
    - Enqueue a notification event for every committed transition
    - Open the workflow task for the state a case enters
    - Answer queue and status queries
    """

    def __init__(
        self,
        registry: WorkflowRegistry,
        store: CaseStore,
        facts_provider: FactsProvider,
        publisher: TransitionPublisher,
        validator: Optional[TransitionValidator] = None,
        task_creator: Optional[TransitionPublisher] = None
    ):
        self.registry = registry
        self.store = store
        self.facts_provider = facts_provider
        self.publisher = publisher
        self.validator = validator or TransitionValidator(registry)
        self.task_creator = task_creator

    # =========================================================================
    # Case creation
    # =========================================================================

    def open_case(
        self,
        application_id: Optional[str] = None,
        priority: int = 3,
        created_by: Optional[str] = None
    ) -> ApplicationCase:
        """Create a case in DRAFT with an empty history"""
        now = utc_now()
        case = ApplicationCase(
            application_id=application_id or generate_application_id(),
            current_state=ApplicationState.DRAFT,
            priority=priority,
            sla_deadline=calculate_sla_deadline(
                now, self.registry.state_definition(ApplicationState.DRAFT).sla_hours
            ),
            created_by=created_by,
            created_at=now,
            updated_at=now,
        )
        return self.store.create_case(case)

    def get_case(self, application_id: str) -> ApplicationCase:
        return self.store.get_case_or_raise(application_id)

    # =========================================================================
    # Queries
    # =========================================================================

    def validate_transition(
        self,
        application_id: str,
        target_state: ApplicationState,
        actor: ActorContext
    ) -> ValidationResult:
        """Dry run of apply_transition's checks; nothing is written"""
        case = self.store.get_case_or_raise(application_id)
        facts = self.facts_provider.get_facts(application_id)
        return self.validator.validate(case, target_state, actor.roles, facts, actor.actor_id)

    def available_transitions(
        self,
        application_id: str,
        actor: ActorContext
    ) -> Tuple[ApplicationCase, List[AvailableTransition]]:
        case = self.store.get_case_or_raise(application_id)
        facts = self.facts_provider.get_facts(application_id)
        return case, self.validator.available_transitions(case, actor.roles, facts, actor.actor_id)

    def list_queue(
        self,
        state: Optional[ApplicationState] = None,
        limit: int = 50
    ) -> List[ApplicationCase]:
        """Work queue: most urgent first, then oldest"""
        return queue_order(self.store.list_by_state(state, limit))

    def get_workflow_status(self, application_id: str) -> Dict[str, Any]:
        """
        Progress summary for a case

        SLA breach is reported only; no escalation transition is taken.
        """
        case = self.store.get_case_or_raise(application_id)

        total_steps = len([s for s in self.registry.states if s.state not in NON_PROGRESS_STATES])
        completed = len([r for r in case.history if r.from_state != ApplicationState.ON_HOLD])
        completed = min(completed, total_steps)

        if case.current_state == ApplicationState.CLOSURE:
            progress = 100
        else:
            progress = round(100 * completed / total_steps) if total_steps else 0

        return {
            "application_id": case.application_id,
            "current_state": case.current_state.value,
            "assigned_to": case.assigned_to,
            "progress": progress,
            "completed_steps": completed,
            "total_steps": total_steps,
            "sla_deadline": format_iso(case.sla_deadline) if case.sla_deadline else None,
            "sla_breached": is_overdue(case.sla_deadline),
            "workflow_history": [r.model_dump(mode="json") for r in case.history],
        }

    # =========================================================================
    # Transitions
    # =========================================================================

    def apply_transition(
        self,
        application_id: str,
        target_state: ApplicationState,
        actor: ActorContext,
        notes: Optional[str] = None,
        assigned_to: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> TransitionRecord:
        """
        Validate and commit a transition

        Returns:
            The committed TransitionRecord, or the original record when the
            idempotency key replays the most recent transition

        Raises:
            ApplicationNotFoundError: unknown case
            TransitionRejectedError: rule, role or guard refused
            ConcurrentModificationError: the case changed since it was loaded
        """
        case = self.store.get_case_or_raise(application_id)
        log_extra = {
            "application_id": application_id,
            "from_state": case.current_state.value,
            "to_state": target_state.value,
            "actor_id": actor.actor_id,
            "idempotency_key": idempotency_key,
        }

        if idempotency_key:
            replay = self._check_idempotency(case, target_state, idempotency_key)
            if replay is not None:
                logger.info("Idempotent replay of transition", extra=log_extra)
                return replay

        facts = self.facts_provider.get_facts(application_id)
        result = self.validator.validate(case, target_state, actor.roles, facts, actor.actor_id)
        if not result.valid:
            logger.info(f"Transition rejected: {'; '.join(result.reasons)}", extra=log_extra)
            raise TransitionRejectedError(
                result.reasons,
                details={
                    "application_id": application_id,
                    "current_state": case.current_state.value,
                    "target_state": target_state.value,
                }
            )

        rule = self.registry.find_rule(case.current_state, target_state)
        now = utc_now()
        record = TransitionRecord(
            sequence_number=case.next_sequence_number,
            from_state=case.current_state,
            to_state=target_state,
            actor_id=actor.actor_id,
            timestamp=now,
            notes=notes,
            assigned_to=assigned_to,
            idempotency_key=idempotency_key,
            requirements_snapshot=self.validator.requirements_snapshot(
                rule, case, facts, actor.actor_id
            ),
        )
        sla_deadline = calculate_sla_deadline(
            now, self.registry.state_definition(target_state).sla_hours
        )

        committed = self.store.commit_transition(
            application_id,
            expected_version=case.version,
            record=record,
            sla_deadline=sla_deadline
        )
        committed_record = committed.last_transition
        logger.info("Transition applied", extra={**log_extra, "version": committed.version})

        self._after_commit(self.publisher, NotificationDeliveryError, committed, committed_record)
        if self.task_creator is not None:
            self._after_commit(self.task_creator, TaskCreationError, committed, committed_record)
        return committed_record

    def claim_case(
        self,
        application_id: str,
        actor: ActorContext,
        notes: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> TransitionRecord:
        """
        Assign the case to the acting user

        Applies the outbound rule of the current state that carries the
        assignee requirement, with assigned_to set to the actor. When another
        actor wins the race the loser gets that requirement's reason.
        """
        case = self.store.get_case_or_raise(application_id)
        rule = self._claim_rule(case.current_state)
        if rule is None:
            raise TransitionRejectedError(
                [f"case cannot be claimed in state {case.current_state.value}"],
                details={"application_id": application_id}
            )

        try:
            return self.apply_transition(
                application_id,
                rule.to_state,
                actor,
                notes=notes,
                assigned_to=actor.actor_id,
                idempotency_key=idempotency_key
            )
        except ConcurrentModificationError:
            latest = self.store.get_case_or_raise(application_id)
            if latest.assigned_to and latest.assigned_to != actor.actor_id:
                reasons = [
                    r.unmet_reason for r in rule.guard
                    if any(c.field == ASSIGNEE_FIELD for c in r.condition.conditions)
                ]
                logger.info(
                    f"Claim lost to {latest.assigned_to}",
                    extra={"application_id": application_id, "actor_id": actor.actor_id}
                )
                raise TransitionRejectedError(
                    reasons,
                    details={"application_id": application_id, "assigned_to": latest.assigned_to}
                )
            raise

    # =========================================================================
    # Helpers
    # =========================================================================

    def _check_idempotency(
        self,
        case: ApplicationCase,
        target_state: ApplicationState,
        idempotency_key: str
    ) -> Optional[TransitionRecord]:
        """Replayed record, None for a fresh key; rejects a key reused for another transition"""
        used = [r for r in case.history if r.idempotency_key == idempotency_key]
        if not used:
            return None

        last = case.last_transition
        if used[-1] is last and last.to_state == target_state:
            return last

        raise TransitionRejectedError(
            [IDEMPOTENCY_KEY_REUSED],
            details={
                "application_id": case.application_id,
                "idempotency_key": idempotency_key,
                "sequence_number": used[-1].sequence_number,
            }
        )

    def _claim_rule(self, state: ApplicationState) -> Optional[TransitionRule]:
        for rule in self.registry.rules_from(state):
            for requirement in rule.guard:
                if any(c.field == ASSIGNEE_FIELD for c in requirement.condition.conditions):
                    return rule
        return None

    def _after_commit(
        self,
        collaborator: TransitionPublisher,
        error_type: Type[DomainError],
        case: ApplicationCase,
        record: TransitionRecord
    ) -> None:
        """Best effort; the committed transition stands regardless"""
        try:
            collaborator.publish(case, record)
        except Exception as e:
            error = e if isinstance(e, error_type) else error_type(
                f"Post-commit step failed for transition to {record.to_state.value}: {e}"
            )
            logger.error(
                error.message,
                extra={
                    "application_id": case.application_id,
                    "from_state": record.from_state.value,
                    "to_state": record.to_state.value,
                    "error_code": error.error_code,
                }
            )
