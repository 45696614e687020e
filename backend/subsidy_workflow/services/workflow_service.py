"""Workflow Service - Request/response contract over the workflow engine"""
from typing import Any, Dict, Iterable, List, Optional

from ..domain.models import ActorContext, ApplicationCase, TransitionRecord
from ..domain.enums import ApplicationState
from ..engine.engine import WorkflowEngine
from ..engine.permission_guard import parse_roles
from ..repositories.base import RoleProvider, TaskStore
from ..utils.time import format_iso
from ..utils.logger import get_logger

logger = get_logger(__name__)


def case_summary(case: ApplicationCase) -> Dict[str, Any]:
    """Case without its history, for queue listings"""
    return {
        "application_id": case.application_id,
        "current_state": case.current_state.value,
        "assigned_to": case.assigned_to,
        "priority": case.priority,
        "sla_deadline": format_iso(case.sla_deadline) if case.sla_deadline else None,
        "created_at": format_iso(case.created_at),
        "updated_at": format_iso(case.updated_at),
        "version": case.version,
    }


def case_detail(case: ApplicationCase) -> Dict[str, Any]:
    detail = case_summary(case)
    detail["created_by"] = case.created_by
    detail["history"] = [r.model_dump(mode="json") for r in case.history]
    return detail


def transition_response(record: TransitionRecord) -> Dict[str, Any]:
    return {
        "success": True,
        "new_state": record.to_state.value,
        "transition_record": record.model_dump(mode="json"),
    }


class WorkflowService:
    """
    Service for application workflow operations

    Resolves the acting user's roles, calls the engine and shapes the
    response dicts returned by the API.
    """

    def __init__(
        self,
        engine: WorkflowEngine,
        role_provider: RoleProvider,
        tasks: Optional[TaskStore] = None,
        trust_request_roles: bool = True
    ):
        self.engine = engine
        self.role_provider = role_provider
        self.tasks = tasks
        self.trust_request_roles = trust_request_roles

    def resolve_actor(
        self,
        actor_id: Optional[str],
        actor_roles: Optional[Iterable[str]] = None
    ) -> ActorContext:
        """
        Build the actor context for a request

        Caller-supplied roles are used as is when trust_request_roles is on;
        otherwise (or when none are supplied) the role provider decides.
        """
        if actor_roles and self.trust_request_roles:
            roles = parse_roles(actor_roles)
        elif actor_id:
            roles = self.role_provider.get_roles(actor_id)
        else:
            roles = set()
        return ActorContext(actor_id=actor_id or "anonymous", roles=frozenset(roles))

    # =========================================================================
    # Transitions
    # =========================================================================

    def transition(
        self,
        application_id: str,
        target_state: ApplicationState,
        actor_id: str,
        actor_roles: Optional[List[str]] = None,
        notes: Optional[str] = None,
        assigned_to: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        actor = self.resolve_actor(actor_id, actor_roles)
        record = self.engine.apply_transition(
            application_id,
            target_state,
            actor,
            notes=notes,
            assigned_to=assigned_to,
            idempotency_key=idempotency_key
        )
        return transition_response(record)

    def claim(
        self,
        application_id: str,
        actor_id: str,
        actor_roles: Optional[List[str]] = None,
        notes: Optional[str] = None,
        idempotency_key: Optional[str] = None
    ) -> Dict[str, Any]:
        actor = self.resolve_actor(actor_id, actor_roles)
        record = self.engine.claim_case(
            application_id, actor, notes=notes, idempotency_key=idempotency_key
        )
        return transition_response(record)

    def validate_transition(
        self,
        application_id: str,
        target_state: ApplicationState,
        actor_id: Optional[str] = None,
        actor_roles: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        actor = self.resolve_actor(actor_id, actor_roles)
        result = self.engine.validate_transition(application_id, target_state, actor)
        return {"valid": result.valid, "reasons": result.reasons}

    def available_transitions(
        self,
        application_id: str,
        actor_id: Optional[str] = None,
        actor_roles: Optional[List[str]] = None
    ) -> Dict[str, Any]:
        actor = self.resolve_actor(actor_id, actor_roles)
        case, available = self.engine.available_transitions(application_id, actor)
        return {
            "application_id": case.application_id,
            "current_state": case.current_state.value,
            "available_transitions": [t.model_dump(mode="json") for t in available],
        }

    # =========================================================================
    # Cases and queries
    # =========================================================================

    def open_application(
        self,
        application_id: Optional[str] = None,
        priority: int = 3,
        created_by: Optional[str] = None
    ) -> Dict[str, Any]:
        case = self.engine.open_case(application_id, priority=priority, created_by=created_by)
        return case_detail(case)

    def get_application(self, application_id: str) -> Dict[str, Any]:
        return case_detail(self.engine.get_case(application_id))

    def workflow_status(self, application_id: str) -> Dict[str, Any]:
        return self.engine.get_workflow_status(application_id)

    def application_tasks(self, application_id: str) -> Dict[str, Any]:
        """Workflow tasks opened for the case, oldest first"""
        case = self.engine.get_case(application_id)
        tasks = self.tasks.get_tasks_for_application(case.application_id) if self.tasks else []
        return {
            "application_id": case.application_id,
            "tasks": [t.model_dump(mode="json") for t in tasks],
            "total": len(tasks),
        }

    def queue(self, state: Optional[ApplicationState] = None, limit: int = 50) -> Dict[str, Any]:
        cases = self.engine.list_queue(state, limit)
        return {
            "state": state.value if state else None,
            "items": [case_summary(c) for c in cases],
            "total": len(cases),
        }

    def definition(self) -> Dict[str, Any]:
        """States and rules of the loaded workflow"""
        registry = self.engine.registry
        return {
            "states": [
                {
                    "state": s.state.value,
                    "label": s.label,
                    "sla_hours": s.sla_hours,
                    "terminal": s.terminal,
                }
                for s in registry.states
            ],
            "rules": [
                {
                    "from_state": r.from_state.value,
                    "to_state": r.to_state.value,
                    "label": r.label,
                    "allowed_roles": sorted(role.value for role in r.allowed_roles),
                    "requirements": [req.label for req in r.guard],
                }
                for r in registry.rules
            ],
        }
