"""Case Repository - Data access for application cases"""
from typing import Any, Dict, List, Optional
from datetime import datetime
from pymongo.collection import Collection
from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from .base import CaseStore
from .mongo_client import get_collection
from ..domain.models import ApplicationCase, TransitionRecord
from ..domain.enums import ApplicationState
from ..domain.errors import (
    AlreadyExistsError, ApplicationNotFoundError, ConcurrentModificationError,
    StoreUnavailableError
)
from ..utils.logger import get_logger

logger = get_logger(__name__)

QUEUE_SORT = [("priority", ASCENDING), ("created_at", ASCENDING), ("application_id", ASCENDING)]


def record_to_doc(record: TransitionRecord) -> Dict[str, Any]:
    """History entry as stored (datetimes kept native for BSON)"""
    doc = record.model_dump()
    doc["from_state"] = record.from_state.value
    doc["to_state"] = record.to_state.value
    return doc


def case_to_doc(case: ApplicationCase) -> Dict[str, Any]:
    # Don't use mode="json" - it converts datetime to strings, breaking MongoDB sorting
    doc = case.model_dump(exclude={"history"})
    doc["current_state"] = case.current_state.value
    doc["history"] = [record_to_doc(r) for r in case.history]
    doc["_id"] = case.application_id
    return doc


def doc_to_case(doc: Dict[str, Any]) -> ApplicationCase:
    doc.pop("_id", None)
    return ApplicationCase.model_validate(doc)


class CaseRepository(CaseStore):
    """MongoDB store for application cases (one document per case)"""

    def __init__(self, collection: Optional[Collection] = None):
        self._applications: Collection = collection if collection is not None else get_collection("applications")

    def create_case(self, case: ApplicationCase) -> ApplicationCase:
        """Create a new case"""
        try:
            self._applications.insert_one(case_to_doc(case))
        except DuplicateKeyError:
            raise AlreadyExistsError(
                f"Application {case.application_id} already exists",
                details={"application_id": case.application_id}
            )
        except PyMongoError as e:
            raise StoreUnavailableError(f"Could not create application: {e}")

        logger.info(
            f"Created application: {case.application_id}",
            extra={"application_id": case.application_id}
        )
        return case

    def get_case(self, application_id: str) -> Optional[ApplicationCase]:
        """Get case by ID"""
        try:
            doc = self._applications.find_one({"application_id": application_id})
        except PyMongoError as e:
            raise StoreUnavailableError(f"Could not load application {application_id}: {e}")
        if doc:
            return doc_to_case(doc)
        return None

    def commit_transition(
        self,
        application_id: str,
        expected_version: int,
        record: TransitionRecord,
        sla_deadline: Optional[datetime]
    ) -> ApplicationCase:
        """Apply a transition with optimistic concurrency in a single write"""
        updates: Dict[str, Any] = {
            "current_state": record.to_state.value,
            "sla_deadline": sla_deadline,
            "updated_at": record.timestamp,
            "version": expected_version + 1,
        }
        if record.assigned_to is not None:
            updates["assigned_to"] = record.assigned_to

        try:
            result = self._applications.find_one_and_update(
                {"application_id": application_id, "version": expected_version},
                {"$set": updates, "$push": {"history": record_to_doc(record)}},
                return_document=ReturnDocument.AFTER
            )

            if result is None:
                exists = self._applications.find_one(
                    {"application_id": application_id}, {"version": 1}
                )
        except PyMongoError as e:
            raise StoreUnavailableError(f"Could not commit transition for {application_id}: {e}")

        if result is None:
            if exists:
                raise ConcurrentModificationError(
                    f"Application {application_id} was modified. Please refresh and try again.",
                    details={
                        "application_id": application_id,
                        "expected_version": expected_version,
                        "current_version": exists.get("version"),
                    }
                )
            raise ApplicationNotFoundError(
                f"Application {application_id} not found",
                details={"application_id": application_id}
            )

        logger.info(
            f"Committed transition {record.from_state.value} -> {record.to_state.value}",
            extra={
                "application_id": application_id,
                "from_state": record.from_state.value,
                "to_state": record.to_state.value,
                "version": expected_version + 1,
            }
        )
        return doc_to_case(result)

    def list_by_state(
        self,
        state: Optional[ApplicationState] = None,
        limit: int = 50
    ) -> List[ApplicationCase]:
        """List cases in queue order, optionally filtered by state"""
        query: Dict[str, Any] = {}
        if state is not None:
            query["current_state"] = state.value

        try:
            cursor = self._applications.find(query).sort(QUEUE_SORT).limit(limit)
            return [doc_to_case(doc) for doc in cursor]
        except PyMongoError as e:
            raise StoreUnavailableError(f"Could not list applications: {e}")
