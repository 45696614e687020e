"""Repository modules - Data access layer"""
from .base import CaseStore, OutboxStore, FactsProvider, RoleProvider, TaskStore, TransitionPublisher
from .mongo_client import get_database, get_collection
from .case_repo import CaseRepository
from .notification_repo import NotificationRepository
from .facts_repo import FactsRepository
from .role_repo import RoleRepository
from .task_repo import TaskRepository
from .memory_repo import (
    InMemoryCaseStore, InMemoryOutboxStore, InMemoryTaskStore, StaticFactsProvider, StaticRoleProvider
)

__all__ = [
    "CaseStore",
    "OutboxStore",
    "FactsProvider",
    "RoleProvider",
    "TaskStore",
    "TransitionPublisher",
    "get_database",
    "get_collection",
    "CaseRepository",
    "NotificationRepository",
    "FactsRepository",
    "RoleRepository",
    "TaskRepository",
    "InMemoryCaseStore",
    "InMemoryOutboxStore",
    "InMemoryTaskStore",
    "StaticFactsProvider",
    "StaticRoleProvider",
]
