"""Tests for transition validation and available transitions"""
from datetime import datetime, timezone

import pytest

from subsidy_workflow.domain.enums import ApplicationState as S, Role
from subsidy_workflow.domain.models import ApplicationCase, TransitionRecord
from subsidy_workflow.engine.definition import build_registry
from subsidy_workflow.engine.transition_validator import TransitionValidator

from tests.conftest import COMPLETE_FACTS

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def case_in(state, assigned_to=None, held_from=None):
    """A case whose history ends in the given state"""
    history = []
    if state != S.DRAFT:
        history.append(TransitionRecord(
            sequence_number=1,
            from_state=held_from or S.DRAFT,
            to_state=state,
            actor_id="someone",
            timestamp=T0,
        ))
    return ApplicationCase(
        application_id="APP-V",
        current_state=state,
        assigned_to=assigned_to,
        created_at=T0,
        updated_at=T0,
        history=history,
    )


@pytest.fixture(scope="module")
def registry():
    return build_registry()


@pytest.fixture
def validator(registry):
    return TransitionValidator(registry)


def test_unrecorded_control_visit_outcome(validator):
    result = validator.validate(
        case_in(S.CONTROL_ASSIGN), S.TECHNICAL_REVIEW, {Role.CONTROL}, facts={}, actor_id="inspector-1"
    )
    assert result.valid is False
    assert result.reasons == ["control visit outcome not recorded"]


def test_director_forwards_to_minister(validator):
    result = validator.validate(
        case_in(S.DIRECTOR_REVIEW), S.MINISTER_DECISION, {Role.DIRECTOR},
        facts={"director_review.recommendation_recorded": True}, actor_id="director-1"
    )
    assert result.valid is True
    assert result.reasons == []


def test_undefined_transition(validator):
    result = validator.validate(case_in(S.DRAFT), S.CLOSURE, {Role.ADMIN}, facts=COMPLETE_FACTS)
    assert result.valid is False
    assert result.reasons == ["no such transition defined"]


def test_role_and_guard_reasons_are_collected(validator):
    result = validator.validate(case_in(S.INTAKE_REVIEW), S.CONTROL_ASSIGN, {Role.APPLICANT}, facts={})
    assert result.reasons == ["insufficient role", "required documents not uploaded"]


@pytest.mark.parametrize("terminal", [S.CLOSURE, S.REJECTED])
def test_no_transition_leaves_terminal_states(validator, terminal):
    for target in S:
        result = validator.validate(case_in(terminal), target, {Role.ADMIN, Role.IT}, facts=COMPLETE_FACTS)
        assert result.valid is False
        assert result.reasons == ["no such transition defined"]


@pytest.mark.parametrize("override", [Role.ADMIN, Role.IT])
def test_override_roles_pass_every_rule_whose_guard_holds(validator, registry, override):
    for rule in registry.rules:
        held_from = None
        if rule.from_state == S.ON_HOLD:
            held_from = rule.to_state if rule.to_state != S.REJECTED else S.INTAKE_REVIEW
        case = case_in(rule.from_state, held_from=held_from)
        result = validator.validate(case, rule.to_state, {override}, facts=COMPLETE_FACTS, actor_id="admin-1")
        assert result.valid, f"{rule.from_state} -> {rule.to_state}: {result.reasons}"


def test_override_roles_do_not_bypass_guards(validator):
    result = validator.validate(case_in(S.CONTROL_ASSIGN), S.TECHNICAL_REVIEW, {Role.ADMIN}, facts={})
    assert result.reasons == ["control visit outcome not recorded"]


def test_director_review_package_lists_every_gap(validator):
    result = validator.validate(case_in(S.TECHNICAL_REVIEW), S.DIRECTOR_REVIEW, {Role.STAFF}, facts={
        "documents.verified": True,
        "control_visit.status": "COMPLETED",
        "control_photos.count": 5,
        "control_photos.missing_categories": ["UTILITIES"],
        "technical_report.complete": True,
        "social_report.complete": False,
    })
    assert result.reasons == [
        "minimum 8 control visit photos required (currently 5)",
        "required control photo categories missing: UTILITIES",
        "social report missing conclusion or recommendations",
    ]



def test_unverified_documents_are_named(validator):
    result = validator.validate(case_in(S.TECHNICAL_REVIEW), S.DIRECTOR_REVIEW, {Role.STAFF}, facts={
        **COMPLETE_FACTS,
        "documents.verified": False,
        "documents.unverified": ["ID card", "Property deed"],
    })
    assert result.reasons == ["required documents not verified: ID card, Property deed"]


def test_reasons_without_detail_facts_stay_plain(validator):
    result = validator.validate(case_in(S.TECHNICAL_REVIEW), S.DIRECTOR_REVIEW, {Role.STAFF}, facts={
        **COMPLETE_FACTS,
        "documents.verified": False,
        "documents.unverified": [],
        "control_photos.count": None,
    })
    assert result.reasons == [
        "required documents not verified",
        "minimum 8 control visit photos required",
    ]


def test_no_photos_reports_zero(validator):
    result = validator.validate(case_in(S.TECHNICAL_REVIEW), S.DIRECTOR_REVIEW, {Role.STAFF}, facts={
        **COMPLETE_FACTS, "control_photos.count": 0,
    })
    assert result.reasons == ["minimum 8 control visit photos required (currently 0)"]

class TestAssignment:

    def test_unassigned_case_can_be_taken(self, validator):
        result = validator.validate(
            case_in(S.CONTROL_ASSIGN), S.CONTROL_VISIT_SCHEDULED, {Role.CONTROL}, actor_id="inspector-1"
        )
        assert result.valid

    def test_own_case_can_be_progressed(self, validator):
        result = validator.validate(
            case_in(S.CONTROL_VISIT_SCHEDULED, assigned_to="inspector-1"),
            S.CONTROL_IN_PROGRESS, {Role.CONTROL}, actor_id="inspector-1"
        )
        assert result.valid

    def test_someone_elses_case_is_refused(self, validator):
        result = validator.validate(
            case_in(S.CONTROL_VISIT_SCHEDULED, assigned_to="inspector-2"),
            S.CONTROL_IN_PROGRESS, {Role.CONTROL}, actor_id="inspector-1"
        )
        assert result.reasons == ["case already assigned to another actor"]


class TestHoldResume:

    def test_resume_only_to_held_from_state(self, validator):
        held = case_in(S.ON_HOLD, held_from=S.TECHNICAL_REVIEW)
        assert validator.validate(held, S.TECHNICAL_REVIEW, {Role.DIRECTOR}).valid
        result = validator.validate(held, S.SOCIAL_REVIEW, {Role.DIRECTOR})
        assert result.reasons == ["case was not put on hold from SOCIAL_REVIEW"]

    def test_rejection_from_hold(self, validator):
        held = case_in(S.ON_HOLD, held_from=S.SOCIAL_REVIEW)
        assert validator.validate(held, S.REJECTED, {Role.DIRECTOR}).valid


class TestAvailableTransitions:

    def test_filtered_by_role_with_unmet_requirements(self, validator):
        available = validator.available_transitions(case_in(S.CONTROL_IN_PROGRESS), {Role.CONTROL}, facts={})
        assert [a.state for a in available] == [S.TECHNICAL_REVIEW, S.SOCIAL_REVIEW, S.ON_HOLD]
        assert available[0].requirements == [
            "Control visit outcome recorded",
            "Minimum 8 control photos uploaded",
            "Required photo categories covered (EXTERIOR_FRONT, INTERIOR_MAIN, STRUCTURAL_ISSUES, UTILITIES)",
        ]
        assert available[2].requirements == []

    def test_no_roles_no_transitions(self, validator):
        assert validator.available_transitions(case_in(S.DIRECTOR_REVIEW), set(), facts={}) == []

    def test_applicant_only_submits_drafts(self, validator):
        available = validator.available_transitions(case_in(S.DRAFT), {Role.APPLICANT})
        assert [(a.state, a.requirements) for a in available] == [(S.INTAKE_REVIEW, [])]
