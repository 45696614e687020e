"""API Dependencies - Common dependencies for routes"""
from typing import Optional
from fastapi import Header, Request

from ..domain.errors import StoreUnavailableError
from ..services.factory import ServiceContainer
from ..services.workflow_service import WorkflowService
from ..utils.logger import get_correlation_id, set_correlation_id
from ..utils.idgen import generate_correlation_id
from .middleware.correlation import accepted_correlation_id


async def get_correlation_id_dep(
    x_correlation_id: Optional[str] = Header(None, alias="X-Correlation-Id")
) -> str:
    """The id CorrelationIdMiddleware put in context, else the same header rules"""
    correlation_id = (
        get_correlation_id()
        or accepted_correlation_id(x_correlation_id)
        or generate_correlation_id()
    )
    set_correlation_id(correlation_id)
    return correlation_id


def get_container(request: Request) -> ServiceContainer:
    """Components built by the application lifespan"""
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise StoreUnavailableError("Service is still starting up")
    return container


def get_workflow_service_dep(request: Request) -> WorkflowService:
    return get_container(request).workflow_service
