"""Domain Enumerations - All state, role and type definitions"""
from enum import Enum


class ApplicationState(str, Enum):
    """Workflow state of a housing subsidy application"""
    DRAFT = "DRAFT"
    INTAKE_REVIEW = "INTAKE_REVIEW"
    CONTROL_ASSIGN = "CONTROL_ASSIGN"
    CONTROL_VISIT_SCHEDULED = "CONTROL_VISIT_SCHEDULED"
    CONTROL_IN_PROGRESS = "CONTROL_IN_PROGRESS"
    TECHNICAL_REVIEW = "TECHNICAL_REVIEW"
    SOCIAL_REVIEW = "SOCIAL_REVIEW"
    DIRECTOR_REVIEW = "DIRECTOR_REVIEW"
    MINISTER_DECISION = "MINISTER_DECISION"
    CLOSURE = "CLOSURE"  # Approved and closed
    REJECTED = "REJECTED"
    ON_HOLD = "ON_HOLD"  # Paused, resumes to the state it was held from


class Role(str, Enum):
    """Roles an actor can hold"""
    ADMIN = "admin"
    IT = "it"
    STAFF = "staff"
    CONTROL = "control"  # Control department inspectors
    DIRECTOR = "director"
    MINISTER = "minister"
    FRONT_OFFICE = "front_office"
    APPLICANT = "applicant"


# Roles that pass the role check of every rule (guards still apply)
OVERRIDE_ROLES = frozenset({Role.ADMIN, Role.IT})


class ConditionOperator(str, Enum):
    """Operators for guard condition evaluation"""
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    GREATER_THAN = "GREATER_THAN"
    LESS_THAN = "LESS_THAN"
    GREATER_THAN_OR_EQUALS = "GREATER_THAN_OR_EQUALS"
    LESS_THAN_OR_EQUALS = "LESS_THAN_OR_EQUALS"
    CONTAINS = "CONTAINS"
    NOT_CONTAINS = "NOT_CONTAINS"
    IN = "IN"
    NOT_IN = "NOT_IN"
    IS_EMPTY = "IS_EMPTY"
    IS_NOT_EMPTY = "IS_NOT_EMPTY"


class ConditionLogic(str, Enum):
    """How conditions in a group are combined"""
    AND = "AND"
    OR = "OR"


class NotificationStatus(str, Enum):
    """Notification outbox status"""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


class TaskStatus(str, Enum):
    """Status of a workflow task"""
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class DocumentStatus(str, Enum):
    """Verification status of an applicant document"""
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"
    MISSING = "MISSING"


class ControlVisitStatus(str, Enum):
    """Status of the control (inspection) visit"""
    SCHEDULED = "SCHEDULED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PhotoCategory(str, Enum):
    """Control visit photo categories"""
    EXTERIOR_FRONT = "EXTERIOR_FRONT"
    EXTERIOR_BACK = "EXTERIOR_BACK"
    INTERIOR_MAIN = "INTERIOR_MAIN"
    STRUCTURAL_ISSUES = "STRUCTURAL_ISSUES"
    UTILITIES = "UTILITIES"
    OTHER = "OTHER"


# Categories that must be covered before director review
REQUIRED_PHOTO_CATEGORIES = [
    PhotoCategory.EXTERIOR_FRONT,
    PhotoCategory.INTERIOR_MAIN,
    PhotoCategory.STRUCTURAL_ISSUES,
    PhotoCategory.UTILITIES,
]

MIN_CONTROL_PHOTOS = 8
