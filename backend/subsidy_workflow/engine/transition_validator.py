"""Transition Validator - Pure verdicts on requested transitions"""
from typing import Any, Dict, Iterable, List, Optional

from ..domain.models import (
    ApplicationCase, AvailableTransition, TransitionRule, ValidationResult
)
from ..domain.enums import ApplicationState, Role
from .condition_evaluator import ConditionEvaluator
from .permission_guard import PermissionGuard
from .registry import WorkflowRegistry

NO_SUCH_TRANSITION = "no such transition defined"
INSUFFICIENT_ROLE = "insufficient role"


def build_guard_context(
    case: ApplicationCase,
    facts: Optional[Dict[str, Any]],
    actor_id: Optional[str]
) -> Dict[str, Any]:
    """Guard context the requirement conditions are evaluated against"""
    held_from = case.held_from
    return {
        "facts": dict(facts or {}),
        "case": {
            "application_id": case.application_id,
            "current_state": case.current_state.value,
            "assigned_to": case.assigned_to,
            "priority": case.priority,
            "version": case.version,
            "held_from": held_from.value if held_from else None,
        },
        "actor": {"actor_id": actor_id},
    }


class TransitionValidator:
    """
    Decide whether an actor may move a case to a target state

    Has no side effects and touches no store. All reasons are collected:
    a caller lacking the role also learns which requirements are unmet.
    """

    def __init__(
        self,
        registry: WorkflowRegistry,
        evaluator: Optional[ConditionEvaluator] = None,
        permission_guard: Optional[PermissionGuard] = None
    ):
        self.registry = registry
        self.evaluator = evaluator or ConditionEvaluator()
        self.permission_guard = permission_guard or PermissionGuard()

    def validate(
        self,
        case: ApplicationCase,
        target_state: ApplicationState,
        actor_roles: Iterable[Role],
        facts: Optional[Dict[str, Any]] = None,
        actor_id: Optional[str] = None
    ) -> ValidationResult:
        rule = self.registry.find_rule(case.current_state, target_state)
        if rule is None:
            return ValidationResult(valid=False, reasons=[NO_SUCH_TRANSITION])

        reasons: List[str] = []
        if not self.permission_guard.can_use_rule(actor_roles, rule):
            reasons.append(INSUFFICIENT_ROLE)

        context = build_guard_context(case, facts, actor_id)
        for requirement in self.evaluator.unmet_requirements(list(rule.guard), context):
            reasons.append(self.evaluator.describe_unmet(requirement, context))

        return ValidationResult(valid=not reasons, reasons=reasons)

    def available_transitions(
        self,
        case: ApplicationCase,
        actor_roles: Iterable[Role],
        facts: Optional[Dict[str, Any]] = None,
        actor_id: Optional[str] = None
    ) -> List[AvailableTransition]:
        """
        Rules out of the current state that the actor's roles permit

        Guards are not applied as a filter; each entry lists the labels of
        its requirements that do not hold yet.
        """
        roles = set(actor_roles)
        context = build_guard_context(case, facts, actor_id)

        available = []
        for rule in self.registry.rules_from(case.current_state):
            if not self.permission_guard.can_use_rule(roles, rule):
                continue
            unmet = self.evaluator.unmet_requirements(list(rule.guard), context)
            available.append(AvailableTransition(
                state=rule.to_state,
                label=rule.label,
                requirements=[r.label for r in unmet]
            ))
        return available

    def requirements_snapshot(
        self,
        rule: TransitionRule,
        case: ApplicationCase,
        facts: Optional[Dict[str, Any]],
        actor_id: Optional[str]
    ) -> Dict[str, bool]:
        """Which guard requirements of the rule held, keyed by label"""
        context = build_guard_context(case, facts, actor_id)
        return {
            r.label: self.evaluator.evaluate(r.condition, context)
            for r in rule.guard
        }
