"""Service Factory - Wires the engine to its collaborators from settings"""
from typing import Optional

from ..config.settings import Settings
from ..domain.errors import ConfigurationError
from ..engine.definition import build_registry
from ..engine.engine import WorkflowEngine
from ..engine.registry import WorkflowRegistry
from ..repositories.base import CaseStore, FactsProvider, OutboxStore, RoleProvider, TaskStore
from .notification_service import NotificationService, NotificationSink, OutboxPublisher, build_sink
from .task_service import WorkflowTaskCreator
from .workflow_service import WorkflowService
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ServiceContainer:
    """Process-wide components; built once at startup"""

    def __init__(
        self,
        registry: WorkflowRegistry,
        store: CaseStore,
        outbox: OutboxStore,
        tasks: TaskStore,
        facts_provider: FactsProvider,
        role_provider: RoleProvider,
        sink: NotificationSink,
        trust_request_roles: bool = True,
        notification_max_retries: int = 5,
        backend: str = "memory"
    ):
        self.backend = backend
        self.registry = registry
        self.store = store
        self.outbox = outbox
        self.tasks = tasks
        self.facts_provider = facts_provider
        self.role_provider = role_provider
        self.engine = WorkflowEngine(
            registry=registry,
            store=store,
            facts_provider=facts_provider,
            publisher=OutboxPublisher(outbox),
            task_creator=WorkflowTaskCreator(tasks),
        )
        self.workflow_service = WorkflowService(
            self.engine, role_provider, tasks=tasks, trust_request_roles=trust_request_roles
        )
        self.notification_service = NotificationService(
            outbox, sink, max_retries=notification_max_retries
        )


def build_memory_container(
    settings: Settings,
    facts_provider: Optional[FactsProvider] = None,
    role_provider: Optional[RoleProvider] = None,
    sink: Optional[NotificationSink] = None
) -> ServiceContainer:
    """In-memory collaborators (STORE_BACKEND=memory and tests)"""
    from ..repositories.memory_repo import (
        InMemoryCaseStore, InMemoryOutboxStore, InMemoryTaskStore, StaticFactsProvider, StaticRoleProvider
    )

    return ServiceContainer(
        registry=build_registry(),
        store=InMemoryCaseStore(),
        outbox=InMemoryOutboxStore(),
        tasks=InMemoryTaskStore(),
        facts_provider=facts_provider or StaticFactsProvider(),
        role_provider=role_provider or StaticRoleProvider(),
        sink=sink or build_sink(settings),
        trust_request_roles=settings.trust_request_roles,
        notification_max_retries=settings.notification_max_retries,
    )


def build_mongo_container(settings: Settings) -> ServiceContainer:
    from ..repositories.case_repo import CaseRepository
    from ..repositories.notification_repo import NotificationRepository
    from ..repositories.facts_repo import FactsRepository
    from ..repositories.role_repo import RoleRepository
    from ..repositories.task_repo import TaskRepository

    return ServiceContainer(
        registry=build_registry(),
        store=CaseRepository(),
        outbox=NotificationRepository(),
        tasks=TaskRepository(),
        facts_provider=FactsRepository(),
        role_provider=RoleRepository(),
        sink=build_sink(settings),
        trust_request_roles=settings.trust_request_roles,
        notification_max_retries=settings.notification_max_retries,
        backend="mongo",
    )


def build_container(settings: Settings) -> ServiceContainer:
    """
    Build components for the configured STORE_BACKEND

    Raises:
        ConfigurationError: unknown backend or malformed workflow definition
    """
    backend = settings.store_backend.lower()
    if backend == "memory":
        container = build_memory_container(settings)
    elif backend == "mongo":
        container = build_mongo_container(settings)
    else:
        raise ConfigurationError(f"Unknown store backend: {settings.store_backend}")

    logger.info(f"Services built with {backend} store")
    return container
