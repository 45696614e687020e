"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, List, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class ApplicationNotFoundError(NotFoundError):
    """Application case not found"""
    error_code = "APPLICATION_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Resource conflict"""
    error_code = "CONFLICT"
    http_status = 409


class ConcurrentModificationError(ConflictError):
    """Optimistic version check failed; reload the case and retry the intent"""
    error_code = "CONCURRENT_MODIFICATION"


class AlreadyExistsError(ConflictError):
    """Resource already exists"""
    error_code = "ALREADY_EXISTS"


# Workflow Errors
class TransitionRejectedError(DomainError):
    """Transition refused by the workflow rules; reasons are shown verbatim"""
    error_code = "TRANSITION_REJECTED"
    http_status = 422

    def __init__(
        self,
        reasons: List[str],
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message or "; ".join(reasons) or "Transition rejected", details=details)
        self.reasons = list(reasons)

    def to_dict(self) -> Dict[str, Any]:
        payload = super().to_dict()
        payload["success"] = False
        payload["reasons"] = self.reasons
        return payload


class ConfigurationError(DomainError):
    """Workflow definition is malformed; fatal at startup"""
    error_code = "CONFIGURATION_ERROR"
    http_status = 500


# Infrastructure Errors
class StoreUnavailableError(DomainError):
    """Durable store could not be reached; safe to retry"""
    error_code = "STORE_UNAVAILABLE"
    http_status = 503


class NotificationDeliveryError(DomainError):
    """Transition event could not be handed to the notification sink"""
    error_code = "NOTIFICATION_DELIVERY_FAILED"
    http_status = 502


class TaskCreationError(DomainError):
    """Workflow task for an entered state could not be stored"""
    error_code = "TASK_CREATION_FAILED"
    http_status = 500
