"""Workflow API Routes - Transitions, queue and case status"""
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..deps import get_workflow_service_dep, get_correlation_id_dep
from ...domain.enums import ApplicationState
from ...services.workflow_service import WorkflowService

router = APIRouter()


# ============================================================================
# Request Models
# ============================================================================

class TransitionRequest(BaseModel):
    """Request to move an application to another state"""
    application_id: str = Field(..., min_length=1)
    target_state: ApplicationState
    actor_id: str = Field(..., min_length=1)
    actor_roles: List[str] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=5000)
    assigned_to: Optional[str] = None
    idempotency_key: Optional[str] = Field(None, max_length=200)


class ValidateTransitionRequest(BaseModel):
    """Dry-run of a transition"""
    application_id: str = Field(..., min_length=1)
    target_state: ApplicationState
    actor_id: Optional[str] = None
    actor_roles: List[str] = Field(default_factory=list)


class ClaimRequest(BaseModel):
    """Assign an application to the acting user"""
    application_id: str = Field(..., min_length=1)
    actor_id: str = Field(..., min_length=1)
    actor_roles: List[str] = Field(default_factory=list)
    notes: Optional[str] = Field(None, max_length=5000)
    idempotency_key: Optional[str] = Field(None, max_length=200)


class OpenApplicationRequest(BaseModel):
    """Open a new application case in DRAFT"""
    application_id: Optional[str] = Field(None, min_length=1, max_length=100)
    priority: int = Field(3, ge=1, le=5)
    created_by: Optional[str] = None


# ============================================================================
# Transitions
# ============================================================================

@router.post("/transition")
def transition(
    request: TransitionRequest,
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
) -> Dict[str, Any]:
    """
    Apply a transition

    Rejections return 422 with the reasons; a concurrent change returns 409
    and the caller should reload and retry with the same idempotency key.
    """
    return service.transition(
        application_id=request.application_id,
        target_state=request.target_state,
        actor_id=request.actor_id,
        actor_roles=request.actor_roles,
        notes=request.notes,
        assigned_to=request.assigned_to,
        idempotency_key=request.idempotency_key
    )


@router.get("/available-transitions")
def available_transitions(
    application_id: str = Query(..., min_length=1),
    actor_id: Optional[str] = Query(None),
    actor_roles: List[str] = Query(default=[]),
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
) -> Dict[str, Any]:
    """Transitions the actor's roles allow, each with its unmet requirements"""
    return service.available_transitions(application_id, actor_id, _split_roles(actor_roles))


@router.post("/validate-transition")
def validate_transition(
    request: ValidateTransitionRequest,
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
) -> Dict[str, Any]:
    return service.validate_transition(
        request.application_id,
        request.target_state,
        actor_id=request.actor_id,
        actor_roles=request.actor_roles
    )


@router.post("/claim")
def claim(
    request: ClaimRequest,
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
) -> Dict[str, Any]:
    """Assign-to-self via the current state's claim transition"""
    return service.claim(
        request.application_id,
        request.actor_id,
        actor_roles=request.actor_roles,
        notes=request.notes,
        idempotency_key=request.idempotency_key
    )


# ============================================================================
# Queries
# ============================================================================

@router.get("/workflow-status")
def workflow_status(
    application_id: str = Query(..., min_length=1),
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
) -> Dict[str, Any]:
    return service.workflow_status(application_id)


@router.get("/queue")
def queue(
    state: Optional[ApplicationState] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
) -> Dict[str, Any]:
    """Cases ordered by priority, then age"""
    return service.queue(state, limit)


@router.get("/definition")
def definition(
    service: WorkflowService = Depends(get_workflow_service_dep)
) -> Dict[str, Any]:
    return service.definition()


# ============================================================================
# Applications
# ============================================================================

@router.post("/applications", status_code=status.HTTP_201_CREATED)
def open_application(
    request: OpenApplicationRequest,
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
) -> Dict[str, Any]:
    return service.open_application(
        application_id=request.application_id,
        priority=request.priority,
        created_by=request.created_by
    )


@router.get("/applications/{application_id}")
def get_application(
    application_id: str,
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
) -> Dict[str, Any]:
    return service.get_application(application_id)


@router.get("/applications/{application_id}/tasks")
def get_application_tasks(
    application_id: str,
    service: WorkflowService = Depends(get_workflow_service_dep),
    correlation_id: str = Depends(get_correlation_id_dep)
) -> Dict[str, Any]:
    """Tasks opened as the case entered working states"""
    return service.application_tasks(application_id)


def _split_roles(actor_roles: List[str]) -> List[str]:
    """Accept both ?actor_roles=a&actor_roles=b and ?actor_roles=a,b"""
    return [role for raw in actor_roles for role in raw.split(",") if role.strip()]
