"""Tests for the MongoDB repositories against mocked collections"""
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from subsidy_workflow.domain.enums import ApplicationState as S, Role
from subsidy_workflow.domain.errors import (
    AlreadyExistsError, ApplicationNotFoundError, ConcurrentModificationError,
    StoreUnavailableError
)
from subsidy_workflow.domain.models import ApplicationCase, TransitionRecord, WorkflowTask
from subsidy_workflow.repositories.case_repo import CaseRepository, case_to_doc
from subsidy_workflow.repositories.facts_repo import compile_facts
from subsidy_workflow.repositories.notification_repo import NotificationRepository
from subsidy_workflow.repositories.role_repo import RoleRepository
from subsidy_workflow.repositories.task_repo import TaskRepository

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)


def draft_case():
    return ApplicationCase(application_id="APP-1", created_at=T0, updated_at=T0)


def submit_record():
    return TransitionRecord(
        sequence_number=1,
        from_state=S.DRAFT,
        to_state=S.INTAKE_REVIEW,
        actor_id="applicant-1",
        timestamp=T0 + timedelta(minutes=5),
    )


class TestCaseRepository:

    def test_create_stores_application_id_as_key(self):
        collection = MagicMock()
        CaseRepository(collection).create_case(draft_case())

        doc = collection.insert_one.call_args[0][0]
        assert doc["_id"] == "APP-1"
        assert doc["current_state"] == "DRAFT"
        assert doc["history"] == []
        assert doc["created_at"] == T0

    def test_create_duplicate(self):
        collection = MagicMock()
        collection.insert_one.side_effect = DuplicateKeyError("dup")
        with pytest.raises(AlreadyExistsError):
            CaseRepository(collection).create_case(draft_case())

    def test_get_round_trips_document(self):
        collection = MagicMock()
        collection.find_one.return_value = case_to_doc(draft_case())
        case = CaseRepository(collection).get_case("APP-1")
        assert case == draft_case()

    def test_get_missing(self):
        collection = MagicMock()
        collection.find_one.return_value = None
        repo = CaseRepository(collection)
        assert repo.get_case("APP-1") is None
        with pytest.raises(ApplicationNotFoundError):
            repo.get_case_or_raise("APP-1")

    def test_commit_is_one_conditional_write(self):
        record = submit_record().model_copy(update={"assigned_to": "staff-1"})
        committed = case_to_doc(draft_case().model_copy(update={
            "current_state": S.INTAKE_REVIEW, "version": 2, "history": [record], "assigned_to": "staff-1"
        }))
        collection = MagicMock()
        collection.find_one_and_update.return_value = committed

        deadline = T0 + timedelta(hours=48)
        case = CaseRepository(collection).commit_transition("APP-1", 1, record, deadline)

        query, update = collection.find_one_and_update.call_args[0]
        assert query == {"application_id": "APP-1", "version": 1}
        assert update["$set"] == {
            "current_state": "INTAKE_REVIEW",
            "sla_deadline": deadline,
            "updated_at": record.timestamp,
            "version": 2,
            "assigned_to": "staff-1",
        }
        assert update["$push"]["history"]["to_state"] == "INTAKE_REVIEW"
        assert collection.find_one_and_update.call_args[1]["return_document"] == ReturnDocument.AFTER
        assert case.current_state == S.INTAKE_REVIEW
        assert case.version == 2

    def test_commit_leaves_assignee_alone_when_not_given(self):
        collection = MagicMock()
        collection.find_one_and_update.return_value = None
        collection.find_one.return_value = {"version": 2}
        with pytest.raises(ConcurrentModificationError):
            CaseRepository(collection).commit_transition("APP-1", 1, submit_record(), None)

        update = collection.find_one_and_update.call_args[0][1]
        assert "assigned_to" not in update["$set"]

    def test_commit_on_missing_case(self):
        collection = MagicMock()
        collection.find_one_and_update.return_value = None
        collection.find_one.return_value = None
        with pytest.raises(ApplicationNotFoundError):
            CaseRepository(collection).commit_transition("APP-1", 1, submit_record(), None)

    def test_store_outage(self):
        collection = MagicMock()
        collection.find_one_and_update.side_effect = ServerSelectionTimeoutError("no servers")
        with pytest.raises(StoreUnavailableError):
            CaseRepository(collection).commit_transition("APP-1", 1, submit_record(), None)

    def test_list_sorts_by_queue_order(self):
        collection = MagicMock()
        collection.find.return_value.sort.return_value.limit.return_value = [case_to_doc(draft_case())]
        cases = CaseRepository(collection).list_by_state(S.DRAFT, limit=10)

        collection.find.assert_called_once_with({"current_state": "DRAFT"})
        collection.find.return_value.sort.assert_called_once_with(
            [("priority", 1), ("created_at", 1), ("application_id", 1)]
        )
        collection.find.return_value.sort.return_value.limit.assert_called_once_with(10)
        assert [c.application_id for c in cases] == ["APP-1"]


class TestCompileFacts:

    def complete(self):
        documents = [
            {"document_name": "national_id", "is_required": True, "file_path": "/d/1.pdf", "verification_status": "VERIFIED"},
            {"document_name": "deed", "is_required": True, "file_path": "/d/2.pdf", "verification_status": "VERIFIED"},
            {"document_name": "letter", "is_required": False, "file_path": None},
        ]
        photos = [
            {"photo_category": c}
            for c in ["EXTERIOR_FRONT", "INTERIOR_MAIN", "STRUCTURAL_ISSUES", "UTILITIES"] * 2
        ]
        return dict(
            documents=documents,
            control_visit={"visit_status": "COMPLETED", "outcome": "repairs needed"},
            photos=photos,
            technical_report={"technical_conclusion": "ok", "recommendations": "roof"},
            social_report={"social_conclusion": "eligible", "recommendations": "full"},
            director_review={"director_recommendation": "approve"},
        )

    def test_complete_dossier(self):
        facts = compile_facts(**self.complete())
        assert facts == {
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

    def test_empty_dossier(self):
        facts = compile_facts([], None, [], None, None, None)
        assert facts["documents.uploaded"] is False
        assert facts["documents.verified"] is False
        assert facts["control_visit.outcome_recorded"] is False
        assert facts["control_photos.count"] == 0
        assert len(facts["control_photos.missing_categories"]) == 4
        assert facts["technical_report.complete"] is False

    def test_unverified_and_missing_pieces(self):
        sources = self.complete()
        sources["documents"][1]["verification_status"] = "PENDING"
        sources["photos"] = [p for p in sources["photos"] if p["photo_category"] != "UTILITIES"]
        sources["social_report"] = {"social_conclusion": "eligible", "recommendations": "  "}

        facts = compile_facts(**sources)
        assert facts["documents.uploaded"] is True
        assert facts["documents.verified"] is False
        assert facts["documents.unverified"] == ["deed"]
        assert facts["control_photos.count"] == 6
        assert facts["control_photos.missing_categories"] == ["UTILITIES"]
        assert facts["social_report.complete"] is False


class TestRoleRepository:

    def test_roles_from_document(self):
        collection = MagicMock()
        collection.find_one.return_value = {"actor_id": "u1", "roles": ["staff", "Director", "ghost"]}
        assert RoleRepository(collection).get_roles("u1") == {Role.STAFF, Role.DIRECTOR}
        collection.find_one.assert_called_once_with({"actor_id": "u1"})

    def test_unknown_actor(self):
        collection = MagicMock()
        collection.find_one.return_value = None
        assert RoleRepository(collection).get_roles("u1") == set()


class TestNotificationRepository:

    def stored(self, **overrides):
        doc = {
            "_id": "NTF-1",
            "notification_id": "NTF-1",
            "application_id": "APP-1",
            "sequence_number": 1,
            "from_state": "DRAFT",
            "to_state": "INTAKE_REVIEW",
            "actor_id": "applicant-1",
            "status": "PENDING",
            "retry_count": 0,
            "created_at": T0,
        }
        doc.update(overrides)
        return doc

    def test_lock_only_pending_and_unlocked(self):
        collection = MagicMock()
        collection.find_one_and_update.return_value = self.stored()
        assert NotificationRepository(collection).acquire_lock("NTF-1", "server-a", 60)

        query, update = collection.find_one_and_update.call_args[0]
        assert query["notification_id"] == "NTF-1"
        assert query["status"] == "PENDING"
        assert {"locked_until": None} in query["$or"]
        assert update["$set"]["locked_by"] == "server-a"

    def test_lock_taken(self):
        collection = MagicMock()
        collection.find_one_and_update.return_value = None
        assert not NotificationRepository(collection).acquire_lock("NTF-1", "server-b")

    def test_last_retry_marks_failed(self):
        collection = MagicMock()
        collection.find_one.return_value = self.stored(retry_count=2)
        collection.find_one_and_update.return_value = self.stored(retry_count=3, status="FAILED", last_error="down")

        updated = NotificationRepository(collection).mark_failed("NTF-1", "down", max_retries=3)
        update = collection.find_one_and_update.call_args[0][1]
        assert update["$set"]["status"] == "FAILED"
        assert update["$set"]["next_retry_at"] is None
        assert updated.status.value == "FAILED"


class TestTaskRepository:

    def task(self):
        return WorkflowTask(
            task_id="TSK-1",
            application_id="APP-1",
            state=S.DIRECTOR_REVIEW,
            sequence_number=7,
            title="Director Review and Recommendation",
            description="Review all reports",
            priority=1,
            created_at=T0,
        )

    def test_create_stores_enum_values(self):
        collection = MagicMock()
        TaskRepository(collection).create_task(self.task())

        doc = collection.insert_one.call_args[0][0]
        assert doc["_id"] == "TSK-1"
        assert doc["state"] == "DIRECTOR_REVIEW"
        assert doc["status"] == "PENDING"
        assert doc["priority"] == 1
        assert doc["created_at"] == T0

    def test_second_task_for_same_transition_returns_first(self):
        first = self.task()
        collection = MagicMock()
        collection.insert_one.side_effect = DuplicateKeyError("dup")
        collection.find_one.return_value = {"_id": "TSK-1", **first.model_dump()}

        again = first.model_copy(update={"task_id": "TSK-2"})
        stored = TaskRepository(collection).create_task(again)

        collection.find_one.assert_called_once_with({"application_id": "APP-1", "sequence_number": 7})
        assert stored.task_id == "TSK-1"

    def test_store_outage(self):
        collection = MagicMock()
        collection.insert_one.side_effect = ServerSelectionTimeoutError("no servers")
        with pytest.raises(StoreUnavailableError):
            TaskRepository(collection).create_task(self.task())

    def test_list_in_transition_order(self):
        collection = MagicMock()
        collection.find.return_value.sort.return_value = [{"_id": "TSK-1", **self.task().model_dump()}]

        tasks = TaskRepository(collection).get_tasks_for_application("APP-1")

        collection.find.assert_called_once_with({"application_id": "APP-1"})
        collection.find.return_value.sort.assert_called_once_with("sequence_number", 1)
        assert [t.task_id for t in tasks] == ["TSK-1"]
