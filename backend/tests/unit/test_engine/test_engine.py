"""Tests for the workflow engine on in-memory collaborators"""
from datetime import datetime, timedelta, timezone

import pytest

from subsidy_workflow.domain.enums import ApplicationState as S, NotificationStatus, Role, TaskStatus
from subsidy_workflow.domain.errors import (
    AlreadyExistsError, ApplicationNotFoundError, ConcurrentModificationError,
    TransitionRejectedError
)
from subsidy_workflow.domain.models import ApplicationCase
from subsidy_workflow.engine.definition import build_registry
from subsidy_workflow.engine.engine import IDEMPOTENCY_KEY_REUSED, WorkflowEngine
from subsidy_workflow.repositories.base import FactsProvider, TransitionPublisher
from subsidy_workflow.repositories.memory_repo import (
    InMemoryCaseStore, InMemoryOutboxStore, InMemoryTaskStore, StaticFactsProvider
)
from subsidy_workflow.services.notification_service import OutboxPublisher
from subsidy_workflow.services.task_service import WorkflowTaskCreator

from tests.conftest import COMPLETE_FACTS, HAPPY_PATH, advance, make_actor, step

APP = "APP-TEST-1"


class RacingFacts(FactsProvider):
    """Runs a competing transition the first time facts are read"""

    def __init__(self, facts, competitor):
        self.facts = facts
        self.competitor = competitor
        self.fired = False

    def get_facts(self, application_id):
        if not self.fired:
            self.fired = True
            self.competitor()
        return self.facts.get_facts(application_id)


class BrokenPublisher(TransitionPublisher):

    def publish(self, case, record):
        raise RuntimeError("outbox offline")


def build_engine(facts_provider, publisher=None, task_creator=None):
    return WorkflowEngine(
        registry=build_registry(),
        store=InMemoryCaseStore(),
        facts_provider=facts_provider,
        publisher=publisher or OutboxPublisher(InMemoryOutboxStore()),
        task_creator=task_creator,
    )


class TestOpenCase:

    def test_opens_in_draft(self, engine):
        case = engine.open_case(priority=2, created_by="front-1")
        assert case.current_state == S.DRAFT
        assert case.history == []
        assert case.version == 1
        assert case.application_id.startswith("APP-")
        assert case.sla_deadline == case.created_at + timedelta(hours=72)

    def test_duplicate_id(self, engine):
        engine.open_case(APP)
        with pytest.raises(AlreadyExistsError):
            engine.open_case(APP)

    def test_unknown_case(self, engine):
        with pytest.raises(ApplicationNotFoundError):
            engine.get_case("APP-MISSING")
        with pytest.raises(ApplicationNotFoundError):
            engine.apply_transition("APP-MISSING", S.INTAKE_REVIEW, make_actor("a", Role.APPLICANT))


class TestHappyPath:

    def test_draft_to_closure(self, engine, container, complete_case):
        for target, role, actor_id in HAPPY_PATH:
            record = step(engine, APP, target, role, actor_id)
            case = engine.get_case(APP)
            assert record.to_state == target
            assert case.current_state == case.history[-1].to_state == target

        case = engine.get_case(APP)
        assert [r.sequence_number for r in case.history] == list(range(1, 10))
        assert case.version == 10
        assert case.assigned_to == "inspector-1"
        assert case.sla_deadline is None
        assert engine.get_workflow_status(APP)["progress"] == 100

        events = container.outbox.get_notifications_for_application(APP)
        assert [e.to_state for e in events] == [target for target, _, _ in HAPPY_PATH]
        assert all(e.status == NotificationStatus.PENDING for e in events)
        control = next(e for e in events if e.to_state == S.CONTROL_ASSIGN)
        assert control.target_role == Role.CONTROL

    def test_record_carries_requirements_snapshot(self, engine, complete_case):
        advance(engine, APP, S.CONTROL_IN_PROGRESS)
        record = engine.apply_transition(APP, S.TECHNICAL_REVIEW, make_actor("inspector-1", Role.CONTROL))
        assert record.requirements_snapshot == {
            "Control visit outcome recorded": True,
            "Minimum 8 control photos uploaded": True,
            "Required photo categories covered (EXTERIOR_FRONT, INTERIOR_MAIN, STRUCTURAL_ISSUES, UTILITIES)": True,
        }

    def test_sla_deadline_follows_target_state(self, engine, complete_case):
        record = engine.apply_transition(APP, S.INTAKE_REVIEW, make_actor("applicant-1", Role.APPLICANT))
        case = engine.get_case(APP)
        assert case.sla_deadline == record.timestamp + timedelta(hours=48)
        assert case.updated_at == record.timestamp

        engine.apply_transition(APP, S.ON_HOLD, make_actor("staff-1", Role.STAFF))
        assert engine.get_case(APP).sla_deadline is None


class TestRejections:

    def test_rejected_transition_writes_nothing(self, engine, facts):
        engine.open_case(APP)
        advance(engine, APP, S.INTAKE_REVIEW)
        with pytest.raises(TransitionRejectedError) as exc_info:
            engine.apply_transition(APP, S.CONTROL_ASSIGN, make_actor("staff-1", Role.STAFF))
        assert exc_info.value.reasons == ["required documents not uploaded"]

        case = engine.get_case(APP)
        assert case.current_state == S.INTAKE_REVIEW
        assert len(case.history) == 1
        assert case.version == 2

    def test_terminal_state_is_final(self, engine, complete_case):
        advance(engine, APP, S.INTAKE_REVIEW)
        engine.apply_transition(APP, S.REJECTED, make_actor("staff-1", Role.STAFF))
        with pytest.raises(TransitionRejectedError) as exc_info:
            engine.apply_transition(APP, S.INTAKE_REVIEW, make_actor("admin-1", Role.ADMIN))
        assert exc_info.value.reasons == ["no such transition defined"]


class TestIdempotency:

    def test_replay_returns_original_record(self, engine, container, complete_case):
        actor = make_actor("applicant-1", Role.APPLICANT)
        first = engine.apply_transition(APP, S.INTAKE_REVIEW, actor, idempotency_key="submit-1")
        second = engine.apply_transition(APP, S.INTAKE_REVIEW, actor, idempotency_key="submit-1")

        assert second == first
        case = engine.get_case(APP)
        assert len(case.history) == 1
        assert case.version == 2
        assert len(container.outbox.get_notifications_for_application(APP)) == 1

    def test_key_reused_for_another_target(self, engine, complete_case):
        engine.apply_transition(
            APP, S.INTAKE_REVIEW, make_actor("applicant-1", Role.APPLICANT), idempotency_key="k1"
        )
        with pytest.raises(TransitionRejectedError) as exc_info:
            engine.apply_transition(APP, S.CONTROL_ASSIGN, make_actor("staff-1", Role.STAFF), idempotency_key="k1")
        assert exc_info.value.reasons == [IDEMPOTENCY_KEY_REUSED]

    def test_key_of_an_older_transition(self, engine, complete_case):
        engine.apply_transition(
            APP, S.INTAKE_REVIEW, make_actor("applicant-1", Role.APPLICANT), idempotency_key="k1"
        )
        engine.apply_transition(APP, S.ON_HOLD, make_actor("staff-1", Role.STAFF))
        with pytest.raises(TransitionRejectedError) as exc_info:
            engine.apply_transition(APP, S.INTAKE_REVIEW, make_actor("director-1", Role.DIRECTOR), idempotency_key="k1")
        assert exc_info.value.reasons == [IDEMPOTENCY_KEY_REUSED]


class TestConcurrency:

    def test_stale_commit_is_refused(self):
        static = StaticFactsProvider({APP: COMPLETE_FACTS})
        holder = {}

        def put_on_hold():
            holder["engine"].apply_transition(APP, S.ON_HOLD, make_actor("director-1", Role.DIRECTOR))

        racing = RacingFacts(static, put_on_hold)
        engine = build_engine(racing)
        holder["engine"] = engine
        engine.open_case(APP)
        racing.fired = True
        engine.apply_transition(APP, S.INTAKE_REVIEW, make_actor("applicant-1", Role.APPLICANT))
        racing.fired = False

        with pytest.raises(ConcurrentModificationError):
            engine.apply_transition(APP, S.CONTROL_ASSIGN, make_actor("staff-1", Role.STAFF))

        case = engine.get_case(APP)
        assert [r.to_state for r in case.history] == [S.INTAKE_REVIEW, S.ON_HOLD]
        assert case.version == 3

    def test_claim_race_has_one_winner(self):
        static = StaticFactsProvider({APP: COMPLETE_FACTS})
        holder = {}

        def rival_claims():
            holder["engine"].claim_case(APP, make_actor("inspector-2", Role.CONTROL))

        racing = RacingFacts(static, rival_claims)
        engine = build_engine(racing)
        holder["engine"] = engine
        engine.open_case(APP)
        racing.fired = True
        advance(engine, APP, S.CONTROL_ASSIGN)
        racing.fired = False

        with pytest.raises(TransitionRejectedError) as exc_info:
            engine.claim_case(APP, make_actor("inspector-1", Role.CONTROL))
        assert exc_info.value.reasons == ["case already assigned to another actor"]

        case = engine.get_case(APP)
        assert case.assigned_to == "inspector-2"
        assert case.current_state == S.CONTROL_VISIT_SCHEDULED
        assert len(case.history) == 3


class TestClaim:

    def test_claim_assigns_actor(self, engine, complete_case):
        advance(engine, APP, S.CONTROL_ASSIGN)
        record = engine.claim_case(APP, make_actor("inspector-1", Role.CONTROL), notes="mine")
        assert record.to_state == S.CONTROL_VISIT_SCHEDULED
        assert record.assigned_to == "inspector-1"
        assert engine.get_case(APP).assigned_to == "inspector-1"

    def test_claim_assigned_case(self, engine, complete_case):
        advance(engine, APP, S.CONTROL_VISIT_SCHEDULED)
        with pytest.raises(TransitionRejectedError) as exc_info:
            engine.claim_case(APP, make_actor("inspector-2", Role.CONTROL))
        assert exc_info.value.reasons == ["case already assigned to another actor"]

    def test_nothing_to_claim(self, engine, complete_case):
        with pytest.raises(TransitionRejectedError) as exc_info:
            engine.claim_case(APP, make_actor("inspector-1", Role.CONTROL))
        assert exc_info.value.reasons == ["case cannot be claimed in state DRAFT"]


class TestHoldResume:

    def test_resume_to_held_state(self, engine, complete_case):
        advance(engine, APP, S.TECHNICAL_REVIEW)
        director = make_actor("director-1", Role.DIRECTOR)
        engine.apply_transition(APP, S.ON_HOLD, director, notes="awaiting land registry")

        with pytest.raises(TransitionRejectedError) as exc_info:
            engine.apply_transition(APP, S.SOCIAL_REVIEW, director)
        assert exc_info.value.reasons == ["case was not put on hold from SOCIAL_REVIEW"]

        engine.apply_transition(APP, S.TECHNICAL_REVIEW, director)
        case = engine.get_case(APP)
        assert case.current_state == S.TECHNICAL_REVIEW
        assert case.sla_deadline is not None


class TestWorkflowStatus:

    def test_counts_progress_steps(self, engine, complete_case):
        advance(engine, APP, S.CONTROL_ASSIGN)
        status = engine.get_workflow_status(APP)
        assert status["current_state"] == "CONTROL_ASSIGN"
        assert status["completed_steps"] == 2
        assert status["total_steps"] == 10
        assert status["progress"] == 20
        assert status["sla_breached"] is False
        assert len(status["workflow_history"]) == 2

    def test_resume_does_not_count_as_a_step(self, engine, complete_case):
        advance(engine, APP, S.INTAKE_REVIEW)
        director = make_actor("director-1", Role.DIRECTOR)
        engine.apply_transition(APP, S.ON_HOLD, director)
        engine.apply_transition(APP, S.INTAKE_REVIEW, director)
        assert engine.get_workflow_status(APP)["completed_steps"] == 2

    def test_breached_sla(self, engine):
        past = datetime(2020, 1, 1, tzinfo=timezone.utc)
        engine.store.create_case(ApplicationCase(
            application_id=APP, sla_deadline=past, created_at=past, updated_at=past
        ))
        status = engine.get_workflow_status(APP)
        assert status["sla_breached"] is True
        assert status["sla_deadline"] == "2020-01-01T00:00:00Z"
        assert status["progress"] == 0


class TestPublishing:

    def test_publish_failure_keeps_commit(self, facts):
        facts.set_facts(APP, **COMPLETE_FACTS)
        engine = build_engine(facts, publisher=BrokenPublisher())
        engine.open_case(APP)

        record = engine.apply_transition(APP, S.INTAKE_REVIEW, make_actor("applicant-1", Role.APPLICANT))
        assert record.sequence_number == 1
        assert engine.get_case(APP).current_state == S.INTAKE_REVIEW


class TestQueue:

    def test_priority_then_age(self, engine):
        t0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
        t1 = t0 + timedelta(hours=1)
        for app_id, priority, created in [("APP-B", 2, t0), ("APP-A", 1, t1), ("APP-C", 2, t1)]:
            engine.store.create_case(ApplicationCase(
                application_id=app_id, priority=priority, created_at=created, updated_at=created
            ))

        assert [c.application_id for c in engine.list_queue()] == ["APP-A", "APP-B", "APP-C"]
        assert [c.application_id for c in engine.list_queue(limit=1)] == ["APP-A"]

    def test_filtered_by_state(self, engine, complete_case):
        engine.open_case("APP-TEST-2")
        advance(engine, APP, S.INTAKE_REVIEW)
        assert [c.application_id for c in engine.list_queue(S.INTAKE_REVIEW)] == [APP]
        assert [c.application_id for c in engine.list_queue(S.DRAFT)] == ["APP-TEST-2"]


class BrokenTaskStore(InMemoryTaskStore):

    def create_task(self, task):
        raise RuntimeError("tasks collection offline")


class TestWorkflowTasks:

    def test_director_review_opens_one_urgent_task(self, engine, container, complete_case):
        advance(engine, APP, S.DIRECTOR_REVIEW)

        tasks = [t for t in container.tasks.get_tasks_for_application(APP) if t.state == S.DIRECTOR_REVIEW]
        assert len(tasks) == 1
        task = tasks[0]
        assert task.title == "Director Review and Recommendation"
        assert task.priority == 1
        assert task.status == TaskStatus.PENDING
        assert task.auto_generated is True
        assert task.task_type == "WORKFLOW_STEP"
        assert task.task_id.startswith("TSK-")

    def test_one_task_per_working_state_on_the_happy_path(self, engine, container, complete_case):
        advance(engine, APP, S.CLOSURE)
        states = [t.state for t in container.tasks.get_tasks_for_application(APP)]
        assert states == [
            S.INTAKE_REVIEW, S.CONTROL_ASSIGN, S.CONTROL_VISIT_SCHEDULED, S.TECHNICAL_REVIEW,
            S.SOCIAL_REVIEW, S.DIRECTOR_REVIEW, S.MINISTER_DECISION,
        ]

    def test_task_goes_to_the_assignee_of_the_transition(self, engine, container, complete_case):
        advance(engine, APP, S.CONTROL_VISIT_SCHEDULED)
        visit = container.tasks.get_tasks_for_application(APP)[-1]
        assert visit.title == "Conduct Control Visit"
        assert visit.assigned_to == "inspector-1"
        assert visit.priority == 2
        assert container.tasks.get_tasks_for_application(APP)[0].assigned_to is None

    def test_hold_opens_no_task(self, engine, container, complete_case):
        advance(engine, APP, S.INTAKE_REVIEW)
        engine.apply_transition(APP, S.ON_HOLD, make_actor("director-1", Role.DIRECTOR))
        assert [t.state for t in container.tasks.get_tasks_for_application(APP)] == [S.INTAKE_REVIEW]

    def test_idempotent_replay_opens_no_second_task(self, engine, container, complete_case):
        applicant = make_actor("applicant-1", Role.APPLICANT)
        engine.apply_transition(APP, S.INTAKE_REVIEW, applicant, idempotency_key="submit-1")
        engine.apply_transition(APP, S.INTAKE_REVIEW, applicant, idempotency_key="submit-1")
        assert len(container.tasks.get_tasks_for_application(APP)) == 1

    def test_task_failure_keeps_commit(self, facts):
        facts.set_facts(APP, **COMPLETE_FACTS)
        engine = build_engine(facts, task_creator=WorkflowTaskCreator(BrokenTaskStore()))
        engine.open_case(APP)

        record = engine.apply_transition(APP, S.INTAKE_REVIEW, make_actor("applicant-1", Role.APPLICANT))
        assert record.sequence_number == 1
        assert engine.get_case(APP).current_state == S.INTAKE_REVIEW
