"""Workflow Engine - State machine, guards and transition application"""
from .engine import WorkflowEngine
from .registry import WorkflowRegistry
from .transition_validator import TransitionValidator
from .permission_guard import PermissionGuard, parse_roles
from .condition_evaluator import ConditionEvaluator
from .queue_policy import queue_order, queue_sort_key
from .definition import build_registry

__all__ = [
    "WorkflowEngine",
    "WorkflowRegistry",
    "TransitionValidator",
    "PermissionGuard",
    "parse_roles",
    "ConditionEvaluator",
    "queue_order",
    "queue_sort_key",
    "build_registry",
]
