"""Housing Subsidy Workflow Definition

The state table for the subsidy application lifecycle:

    DRAFT -> INTAKE_REVIEW -> CONTROL_ASSIGN -> CONTROL_VISIT_SCHEDULED
          -> CONTROL_IN_PROGRESS -> TECHNICAL_REVIEW <-> SOCIAL_REVIEW
          -> DIRECTOR_REVIEW -> MINISTER_DECISION -> CLOSURE

REJECTED is reachable from intake, director, minister and hold.
ON_HOLD is reachable from every working state and resumes to the state it
was held from.
"""
from typing import Dict, List, Optional

from ..domain.models import (
    Condition, ConditionGroup, Requirement, StateDefinition, TaskTemplate, TransitionRule
)
from ..domain.enums import (
    ApplicationState as S, Role, ConditionOperator as Op, ConditionLogic,
    REQUIRED_PHOTO_CATEGORIES, MIN_CONTROL_PHOTOS
)
from .registry import WorkflowRegistry


# ============================================================================
# States
# ============================================================================

STATE_DEFINITIONS: List[StateDefinition] = [
    StateDefinition(state=S.DRAFT, label="Draft", sla_hours=72),
    StateDefinition(state=S.INTAKE_REVIEW, label="Intake Review", sla_hours=48),
    StateDefinition(state=S.CONTROL_ASSIGN, label="Control Assignment", sla_hours=24),
    StateDefinition(state=S.CONTROL_VISIT_SCHEDULED, label="Control Visit Scheduled", sla_hours=168),
    StateDefinition(state=S.CONTROL_IN_PROGRESS, label="Control In Progress", sla_hours=72),
    StateDefinition(state=S.TECHNICAL_REVIEW, label="Technical Review", sla_hours=120),
    StateDefinition(state=S.SOCIAL_REVIEW, label="Social Review", sla_hours=120),
    StateDefinition(state=S.DIRECTOR_REVIEW, label="Director Review", sla_hours=168),
    StateDefinition(state=S.MINISTER_DECISION, label="Minister Decision", sla_hours=240),
    StateDefinition(state=S.CLOSURE, label="Closure", terminal=True),
    StateDefinition(state=S.REJECTED, label="Rejected", terminal=True),
    StateDefinition(state=S.ON_HOLD, label="On Hold"),
]


# Role notified when a case enters the state
STATE_NOTIFY_ROLES: Dict[S, Role] = {
    S.CONTROL_ASSIGN: Role.CONTROL,
    S.TECHNICAL_REVIEW: Role.STAFF,
    S.SOCIAL_REVIEW: Role.STAFF,
    S.DIRECTOR_REVIEW: Role.DIRECTOR,
    S.MINISTER_DECISION: Role.MINISTER,
}


# Task opened for the next actor when a case enters the state
STATE_TASK_TEMPLATES: Dict[S, TaskTemplate] = {
    S.INTAKE_REVIEW: TaskTemplate(
        title="Review Application Intake",
        description="Review and validate all application information and documents",
        priority=3,
    ),
    S.CONTROL_ASSIGN: TaskTemplate(
        title="Assign Control Inspector",
        description="Assign a qualified inspector for property control visit",
        priority=3,
    ),
    S.CONTROL_VISIT_SCHEDULED: TaskTemplate(
        title="Conduct Control Visit",
        description="Perform on-site property inspection and document findings",
        priority=2,
    ),
    S.TECHNICAL_REVIEW: TaskTemplate(
        title="Prepare Technical Report",
        description="Analyze technical aspects and prepare comprehensive technical report",
        priority=3,
    ),
    S.SOCIAL_REVIEW: TaskTemplate(
        title="Prepare Social Report",
        description="Assess social circumstances and prepare social impact report",
        priority=3,
    ),
    S.DIRECTOR_REVIEW: TaskTemplate(
        title="Director Review and Recommendation",
        description="Review all reports and provide recommendation for ministerial decision",
        priority=1,
    ),
    S.MINISTER_DECISION: TaskTemplate(
        title="Ministerial Decision Required",
        description="Final decision on subsidy application approval and amount",
        priority=1,
    ),
}


# ============================================================================
# Requirements
# ============================================================================

def _fact_is_true(key: str, label: str, unmet_reason: str, detail_key: Optional[str] = None) -> Requirement:
    return Requirement(
        label=label,
        unmet_reason=unmet_reason,
        detail_field=f"facts.{detail_key}" if detail_key else None,
        condition=ConditionGroup(conditions=(
            Condition(field=f"facts.{key}", operator=Op.EQUALS, value=True),
        ))
    )


DOCUMENTS_UPLOADED = _fact_is_true(
    "documents.uploaded",
    "All required documents uploaded",
    "required documents not uploaded",
)

DOCUMENTS_VERIFIED = _fact_is_true(
    "documents.verified",
    "All required documents verified",
    "required documents not verified",
    detail_key="documents.unverified",
)

CONTROL_VISIT_OUTCOME_RECORDED = _fact_is_true(
    "control_visit.outcome_recorded",
    "Control visit outcome recorded",
    "control visit outcome not recorded",
)

CONTROL_VISIT_COMPLETED = Requirement(
    label="Control visit completed",
    unmet_reason="control visit not completed",
    condition=ConditionGroup(conditions=(
        Condition(field="facts.control_visit.status", operator=Op.EQUALS, value="COMPLETED"),
    ))
)

CONTROL_PHOTOS_UPLOADED = Requirement(
    label=f"Minimum {MIN_CONTROL_PHOTOS} control photos uploaded",
    unmet_reason=f"minimum {MIN_CONTROL_PHOTOS} control visit photos required",
    detail_field="facts.control_photos.count",
    detail_format=" (currently {})",
    condition=ConditionGroup(conditions=(
        Condition(field="facts.control_photos.count", operator=Op.GREATER_THAN_OR_EQUALS, value=MIN_CONTROL_PHOTOS),
    ))
)

CONTROL_PHOTO_CATEGORIES = Requirement(
    label="Required photo categories covered ({})".format(
        ", ".join(c.value for c in REQUIRED_PHOTO_CATEGORIES)
    ),
    unmet_reason="required control photo categories missing",
    detail_field="facts.control_photos.missing_categories",
    condition=ConditionGroup(conditions=(
        Condition(field="facts.control_photos.missing_categories", operator=Op.EQUALS, value=[]),
    ))
)

TECHNICAL_REPORT_COMPLETE = _fact_is_true(
    "technical_report.complete",
    "Technical report submitted with conclusion and recommendations",
    "technical report missing conclusion or recommendations",
)

SOCIAL_REPORT_COMPLETE = _fact_is_true(
    "social_report.complete",
    "Social report submitted with conclusion and recommendations",
    "social report missing conclusion or recommendations",
)

DIRECTOR_RECOMMENDATION_RECORDED = _fact_is_true(
    "director_review.recommendation_recorded",
    "Director recommendation provided",
    "director recommendation not recorded",
)

# Assign-to-self: nobody else may already own the case
UNASSIGNED_OR_SELF = Requirement(
    label="Case unassigned or assigned to you",
    unmet_reason="case already assigned to another actor",
    condition=ConditionGroup(logic=ConditionLogic.OR, conditions=(
        Condition(field="case.assigned_to", operator=Op.IS_EMPTY),
        Condition(field="case.assigned_to", operator=Op.EQUALS, value_field="actor.actor_id"),
    ))
)

DIRECTOR_REVIEW_PACKAGE = (
    DOCUMENTS_VERIFIED,
    CONTROL_VISIT_COMPLETED,
    CONTROL_PHOTOS_UPLOADED,
    CONTROL_PHOTO_CATEGORIES,
    TECHNICAL_REPORT_COMPLETE,
    SOCIAL_REPORT_COMPLETE,
)


def held_from(state: S) -> Requirement:
    """Resume from hold only back to the state the case was held from"""
    return Requirement(
        label=f"Case was put on hold from {state.value}",
        unmet_reason=f"case was not put on hold from {state.value}",
        condition=ConditionGroup(conditions=(
            Condition(field="case.held_from", operator=Op.EQUALS, value=state.value),
        ))
    )


# ============================================================================
# Rules (declared order is display and tie-break order)
# ============================================================================

def _rule(
    from_state: S,
    to_state: S,
    roles: List[Role],
    label: str,
    guard: tuple = ()
) -> TransitionRule:
    return TransitionRule(
        from_state=from_state,
        to_state=to_state,
        allowed_roles=frozenset(roles),
        guard=guard,
        label=label,
    )


INTAKE = [Role.STAFF, Role.FRONT_OFFICE]

TRANSITION_RULES: List[TransitionRule] = [
    _rule(S.DRAFT, S.INTAKE_REVIEW, INTAKE + [Role.APPLICANT], "Submit for Intake Review"),

    _rule(S.INTAKE_REVIEW, S.CONTROL_ASSIGN, INTAKE, "Send to Control", (DOCUMENTS_UPLOADED,)),
    _rule(S.INTAKE_REVIEW, S.REJECTED, INTAKE, "Reject Application"),
    _rule(S.INTAKE_REVIEW, S.ON_HOLD, INTAKE + [Role.DIRECTOR], "Put On Hold"),

    _rule(S.CONTROL_ASSIGN, S.CONTROL_VISIT_SCHEDULED, [Role.CONTROL], "Schedule Control Visit",
          (UNASSIGNED_OR_SELF,)),
    _rule(S.CONTROL_ASSIGN, S.TECHNICAL_REVIEW, [Role.CONTROL], "Send to Technical Review",
          (CONTROL_VISIT_OUTCOME_RECORDED,)),
    _rule(S.CONTROL_ASSIGN, S.ON_HOLD, [Role.CONTROL, Role.DIRECTOR], "Put On Hold"),

    _rule(S.CONTROL_VISIT_SCHEDULED, S.CONTROL_IN_PROGRESS, [Role.CONTROL], "Start Control Visit",
          (UNASSIGNED_OR_SELF,)),
    _rule(S.CONTROL_VISIT_SCHEDULED, S.ON_HOLD, [Role.CONTROL, Role.DIRECTOR], "Put On Hold"),

    _rule(S.CONTROL_IN_PROGRESS, S.TECHNICAL_REVIEW, [Role.CONTROL], "Send to Technical Review",
          (CONTROL_VISIT_OUTCOME_RECORDED, CONTROL_PHOTOS_UPLOADED, CONTROL_PHOTO_CATEGORIES)),
    _rule(S.CONTROL_IN_PROGRESS, S.SOCIAL_REVIEW, [Role.CONTROL], "Send to Social Review",
          (CONTROL_VISIT_OUTCOME_RECORDED,)),
    _rule(S.CONTROL_IN_PROGRESS, S.ON_HOLD, [Role.CONTROL, Role.DIRECTOR], "Put On Hold"),

    _rule(S.TECHNICAL_REVIEW, S.SOCIAL_REVIEW, [Role.STAFF, Role.CONTROL], "Send to Social Review",
          (TECHNICAL_REPORT_COMPLETE,)),
    _rule(S.TECHNICAL_REVIEW, S.DIRECTOR_REVIEW, [Role.STAFF, Role.CONTROL], "Send to Director Review",
          DIRECTOR_REVIEW_PACKAGE),
    _rule(S.TECHNICAL_REVIEW, S.ON_HOLD, [Role.STAFF, Role.CONTROL, Role.DIRECTOR], "Put On Hold"),

    _rule(S.SOCIAL_REVIEW, S.TECHNICAL_REVIEW, [Role.STAFF], "Send to Technical Review",
          (SOCIAL_REPORT_COMPLETE,)),
    _rule(S.SOCIAL_REVIEW, S.DIRECTOR_REVIEW, [Role.STAFF], "Send to Director Review",
          DIRECTOR_REVIEW_PACKAGE),
    _rule(S.SOCIAL_REVIEW, S.ON_HOLD, [Role.STAFF, Role.DIRECTOR], "Put On Hold"),

    _rule(S.DIRECTOR_REVIEW, S.MINISTER_DECISION, [Role.DIRECTOR], "Forward to Minister",
          (DIRECTOR_RECOMMENDATION_RECORDED,)),
    _rule(S.DIRECTOR_REVIEW, S.REJECTED, [Role.DIRECTOR], "Reject Application"),
    _rule(S.DIRECTOR_REVIEW, S.ON_HOLD, [Role.DIRECTOR], "Put On Hold"),

    _rule(S.MINISTER_DECISION, S.CLOSURE, [Role.MINISTER], "Approve and Close"),
    _rule(S.MINISTER_DECISION, S.REJECTED, [Role.MINISTER], "Reject Application"),

    _rule(S.ON_HOLD, S.INTAKE_REVIEW, [Role.DIRECTOR], "Resume Intake Review", (held_from(S.INTAKE_REVIEW),)),
    _rule(S.ON_HOLD, S.CONTROL_ASSIGN, [Role.DIRECTOR], "Resume Control Assignment", (held_from(S.CONTROL_ASSIGN),)),
    _rule(S.ON_HOLD, S.CONTROL_VISIT_SCHEDULED, [Role.DIRECTOR], "Resume Control Visit",
          (held_from(S.CONTROL_VISIT_SCHEDULED),)),
    _rule(S.ON_HOLD, S.CONTROL_IN_PROGRESS, [Role.DIRECTOR], "Resume Control In Progress",
          (held_from(S.CONTROL_IN_PROGRESS),)),
    _rule(S.ON_HOLD, S.TECHNICAL_REVIEW, [Role.DIRECTOR], "Resume Technical Review", (held_from(S.TECHNICAL_REVIEW),)),
    _rule(S.ON_HOLD, S.SOCIAL_REVIEW, [Role.DIRECTOR], "Resume Social Review", (held_from(S.SOCIAL_REVIEW),)),
    _rule(S.ON_HOLD, S.DIRECTOR_REVIEW, [Role.DIRECTOR], "Resume Director Review", (held_from(S.DIRECTOR_REVIEW),)),
    _rule(S.ON_HOLD, S.REJECTED, [Role.DIRECTOR], "Reject Application"),
]


def notify_role_for(state: S) -> Optional[Role]:
    """Role to notify when a case enters the given state"""
    return STATE_NOTIFY_ROLES.get(state)


def task_template_for(state: S) -> Optional[TaskTemplate]:
    return STATE_TASK_TEMPLATES.get(state)


def build_registry() -> WorkflowRegistry:
    """Build the housing subsidy workflow registry (fails fast on bad config)"""
    return WorkflowRegistry(STATE_DEFINITIONS, TRANSITION_RULES)
