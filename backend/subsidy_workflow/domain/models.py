"""Domain Models - Pydantic schemas for all entities"""
from datetime import datetime
from typing import Any, Dict, FrozenSet, List, Optional, Tuple
from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from .enums import (
    ApplicationState, Role, ConditionOperator, ConditionLogic, NotificationStatus, TaskStatus
)
from ..utils.time import ensure_utc


def _utc_or_none(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


# ============================================================================
# Actor
# ============================================================================

class ActorContext(BaseModel):
    """Acting user and the roles resolved for this request"""
    model_config = ConfigDict(extra="forbid")

    actor_id: str = Field(..., description="Opaque actor identifier")
    roles: FrozenSet[Role] = Field(default_factory=frozenset, description="Resolved roles")


# ============================================================================
# Guard Conditions (Workflow Definition)
# ============================================================================

class Condition(BaseModel):
    """Single comparison against the guard context"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    field: str = Field(..., description="Dot path into the guard context, e.g. facts.documents.verified")
    operator: ConditionOperator = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Literal value to compare against")
    value_field: Optional[str] = Field(None, description="Dot path to compare against instead of a literal")


class ConditionGroup(BaseModel):
    """Group of conditions with AND/OR logic"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    logic: ConditionLogic = ConditionLogic.AND
    conditions: Tuple[Condition, ...] = ()


class Requirement(BaseModel):
    """One labelled guard requirement of a transition rule"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    label: str = Field(..., description="What must hold, shown as 'needs: ...'")
    unmet_reason: str = Field(..., description="Reason reported when the requirement does not hold")
    condition: ConditionGroup
    detail_field: Optional[str] = Field(
        None, description="Context field whose value is appended to the reason, e.g. the missing documents"
    )
    detail_format: str = ": {}"


class TransitionRule(BaseModel):
    """Legal transition between two states"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    from_state: ApplicationState
    to_state: ApplicationState
    allowed_roles: FrozenSet[Role]
    guard: Tuple[Requirement, ...] = ()
    label: str


class StateDefinition(BaseModel):
    """Per-state metadata"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    state: ApplicationState
    label: str
    sla_hours: Optional[int] = Field(None, description="Hours allowed in this state; None means no SLA")
    terminal: bool = False


# ============================================================================
# Application Case
# ============================================================================

class TransitionRecord(BaseModel):
    """Immutable fact describing one committed transition"""
    model_config = ConfigDict(extra="ignore", frozen=True)

    sequence_number: int = Field(..., ge=1)
    from_state: ApplicationState
    to_state: ApplicationState
    actor_id: str
    timestamp: datetime
    notes: Optional[str] = None
    assigned_to: Optional[str] = None
    idempotency_key: Optional[str] = None
    requirements_snapshot: Dict[str, bool] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ApplicationCase(BaseModel):
    """Workflow-relevant projection of a housing subsidy application"""
    model_config = ConfigDict(extra="ignore")

    application_id: str
    current_state: ApplicationState = ApplicationState.DRAFT
    assigned_to: Optional[str] = None
    priority: int = Field(3, ge=1, le=5, description="1 = urgent ... 5 = lowest")
    sla_deadline: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    version: int = Field(1, ge=1)
    history: List[TransitionRecord] = Field(default_factory=list)

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("sla_deadline")
    @classmethod
    def normalize_deadline(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _utc_or_none(value)

    @model_validator(mode="after")
    def check_state_matches_history(self) -> "ApplicationCase":
        expected = self.history[-1].to_state if self.history else ApplicationState.DRAFT
        if self.current_state != expected:
            raise ValueError(
                f"current_state {self.current_state.value} does not match history ({expected.value})"
            )
        return self

    @property
    def last_transition(self) -> Optional[TransitionRecord]:
        return self.history[-1] if self.history else None

    @property
    def next_sequence_number(self) -> int:
        return len(self.history) + 1

    @property
    def held_from(self) -> Optional[ApplicationState]:
        """State the case was put on hold from, while it is ON_HOLD"""
        last = self.last_transition
        if self.current_state == ApplicationState.ON_HOLD and last is not None:
            return last.from_state
        return None


# ============================================================================
# Validation Results
# ============================================================================

class ValidationResult(BaseModel):
    """Verdict of the transition validator"""
    valid: bool
    reasons: List[str] = Field(default_factory=list)


class AvailableTransition(BaseModel):
    """Transition the actor's roles allow, with requirements still unmet"""
    state: ApplicationState
    label: str
    requirements: List[str] = Field(default_factory=list)


# ============================================================================
# Notification Outbox
# ============================================================================

class NotificationOutbox(BaseModel):
    """Transition event awaiting delivery to the notification sink"""
    model_config = ConfigDict(extra="ignore")

    notification_id: str
    application_id: str
    sequence_number: int
    from_state: ApplicationState
    to_state: ApplicationState
    actor_id: str
    notes: Optional[str] = None
    assigned_to: Optional[str] = None
    target_role: Optional[Role] = None
    status: NotificationStatus = NotificationStatus.PENDING
    retry_count: int = 0
    next_retry_at: Optional[datetime] = None
    locked_until: Optional[datetime] = None
    locked_by: Optional[str] = None
    last_error: Optional[str] = None
    created_at: datetime
    sent_at: Optional[datetime] = None

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_validator("next_retry_at", "locked_until", "sent_at")
    @classmethod
    def normalize_optional_timestamps(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _utc_or_none(value)

    def event_payload(self) -> Dict[str, Any]:
        """Payload handed to the notification sink"""
        return {
            "notification_id": self.notification_id,
            "application_id": self.application_id,
            "sequence_number": self.sequence_number,
            "from_state": self.from_state.value,
            "to_state": self.to_state.value,
            "actor_id": self.actor_id,
            "notes": self.notes,
            "assigned_to": self.assigned_to,
            "target_role": self.target_role.value if self.target_role else None,
        }


# ============================================================================
# Workflow Tasks
# ============================================================================

WORKFLOW_STEP_TASK = "WORKFLOW_STEP"


class TaskTemplate(BaseModel):
    """Task opened automatically when a case enters a state"""
    model_config = ConfigDict(extra="forbid", frozen=True)

    title: str
    description: str
    priority: int = Field(3, ge=1, le=5)


class WorkflowTask(BaseModel):
    """Work item for the actor handling the state a case just entered"""
    model_config = ConfigDict(extra="ignore")

    task_id: str
    application_id: str
    state: ApplicationState
    sequence_number: int
    task_type: str = WORKFLOW_STEP_TASK
    title: str
    description: str
    assigned_to: Optional[str] = None
    priority: int = 3
    auto_generated: bool = True
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)
