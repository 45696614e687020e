"""
Pytest Configuration and Fixtures

Shared fixtures build the workflow on in-memory collaborators.
"""

import pytest
from typing import Any, Dict, Iterable, List, Tuple

from subsidy_workflow.config.settings import Settings
from subsidy_workflow.domain.enums import ApplicationState as S, Role
from subsidy_workflow.domain.models import ActorContext
from subsidy_workflow.repositories.memory_repo import StaticFactsProvider, StaticRoleProvider
from subsidy_workflow.services.factory import ServiceContainer, build_memory_container


COMPLETE_FACTS: Dict[str, Any] = {
    "documents.uploaded": True,
    "documents.verified": True,
    "documents.unverified": [],
    "control_visit.status": "COMPLETED",
    "control_visit.outcome_recorded": True,
    "control_photos.count": 8,
    "control_photos.missing_categories": [],
    "technical_report.complete": True,
    "social_report.complete": True,
    "director_review.recommendation_recorded": True,
}

# (target state, acting role, actor id) from DRAFT to CLOSURE
HAPPY_PATH: List[Tuple[S, Role, str]] = [
    (S.INTAKE_REVIEW, Role.APPLICANT, "applicant-1"),
    (S.CONTROL_ASSIGN, Role.STAFF, "staff-1"),
    (S.CONTROL_VISIT_SCHEDULED, Role.CONTROL, "inspector-1"),
    (S.CONTROL_IN_PROGRESS, Role.CONTROL, "inspector-1"),
    (S.TECHNICAL_REVIEW, Role.CONTROL, "inspector-1"),
    (S.SOCIAL_REVIEW, Role.STAFF, "staff-1"),
    (S.DIRECTOR_REVIEW, Role.STAFF, "staff-1"),
    (S.MINISTER_DECISION, Role.DIRECTOR, "director-1"),
    (S.CLOSURE, Role.MINISTER, "minister-1"),
]


def make_actor(actor_id: str, *roles: Role) -> ActorContext:
    return ActorContext(actor_id=actor_id, roles=frozenset(roles))


# States entered by assigning the case to the acting user
ASSIGNING_STATES = frozenset({S.CONTROL_VISIT_SCHEDULED})


def step(engine, application_id: str, target: S, role: Role, actor_id: str):
    """Apply one happy path transition as the given actor"""
    assigned_to = actor_id if target in ASSIGNING_STATES else None
    return engine.apply_transition(
        application_id, target, make_actor(actor_id, role), assigned_to=assigned_to
    )


def advance(engine, application_id: str, until: S) -> None:
    """Walk the happy path until the case reaches the given state"""
    case = engine.get_case(application_id)
    if case.current_state == until:
        return
    started = case.current_state == S.DRAFT
    for target, role, actor_id in HAPPY_PATH:
        if not started:
            started = target == case.current_state
            continue
        step(engine, application_id, target, role, actor_id)
        if target == until:
            return
    raise AssertionError(f"{until} is not on the happy path")


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        store_backend="memory",
        scheduler_enabled=False,
        notification_sink="log",
        trust_request_roles=True,
        notification_max_retries=3,
    )


@pytest.fixture
def facts() -> StaticFactsProvider:
    return StaticFactsProvider()


@pytest.fixture
def roles() -> StaticRoleProvider:
    return StaticRoleProvider({
        "staff-1": ["staff"],
        "inspector-1": ["control"],
        "director-1": ["director"],
        "minister-1": ["minister"],
        "admin-1": ["admin"],
    })


@pytest.fixture
def container(test_settings, facts, roles) -> ServiceContainer:
    return build_memory_container(test_settings, facts_provider=facts, role_provider=roles)


@pytest.fixture
def engine(container):
    return container.engine


@pytest.fixture
def service(container):
    return container.workflow_service


@pytest.fixture
def complete_case(engine, facts):
    """An open case whose guard facts are all satisfied"""
    case = engine.open_case("APP-TEST-1", priority=3, created_by="front-1")
    facts.set_facts(case.application_id, **COMPLETE_FACTS)
    return case
