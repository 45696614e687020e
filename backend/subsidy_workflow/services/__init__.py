"""Service modules - Business logic layer"""
from .workflow_service import WorkflowService
from .notification_service import (
    NotificationService, NotificationSink, LoggingNotificationSink,
    WebhookNotificationSink, OutboxPublisher
)
from .task_service import WorkflowTaskCreator
from .factory import ServiceContainer, build_container

__all__ = [
    "WorkflowService",
    "NotificationService",
    "NotificationSink",
    "LoggingNotificationSink",
    "WebhookNotificationSink",
    "OutboxPublisher",
    "WorkflowTaskCreator",
    "ServiceContainer",
    "build_container",
]
