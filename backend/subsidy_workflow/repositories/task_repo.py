"""Task Repository - Workflow tasks in the tasks collection

One task per transition that enters a working state; the unique index on
(application_id, sequence_number) keeps a repeated call from opening a second.
"""
from typing import Any, Dict, List, Optional
from pymongo import ASCENDING
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from .base import TaskStore
from .mongo_client import get_collection
from ..domain.models import WorkflowTask
from ..domain.errors import StoreUnavailableError
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _task_to_doc(task: WorkflowTask) -> Dict[str, Any]:
    doc = task.model_dump(mode="python")
    doc["state"] = task.state.value
    doc["status"] = task.status.value
    doc["_id"] = task.task_id
    return doc


def _doc_to_task(doc: Dict[str, Any]) -> WorkflowTask:
    doc.pop("_id", None)
    return WorkflowTask.model_validate(doc)


class TaskRepository(TaskStore):
    """Repository for workflow task operations"""

    def __init__(self, collection: Optional[Collection] = None):
        self._tasks: Collection = collection if collection is not None else get_collection("tasks")

    def create_task(self, task: WorkflowTask) -> WorkflowTask:
        try:
            self._tasks.insert_one(_task_to_doc(task))
        except DuplicateKeyError:
            existing = self._tasks.find_one({
                "application_id": task.application_id,
                "sequence_number": task.sequence_number,
            })
            logger.info(
                "Task already opened for this transition",
                extra={"application_id": task.application_id, "to_state": task.state.value}
            )
            return _doc_to_task(existing) if existing else task
        except PyMongoError as e:
            raise StoreUnavailableError(f"Could not store task: {e}")

        logger.info(
            f"Opened task '{task.title}'",
            extra={"application_id": task.application_id, "to_state": task.state.value}
        )
        return task

    def get_tasks_for_application(self, application_id: str) -> List[WorkflowTask]:
        try:
            cursor = self._tasks.find({"application_id": application_id}).sort("sequence_number", ASCENDING)
            return [_doc_to_task(doc) for doc in cursor]
        except PyMongoError as e:
            raise StoreUnavailableError(f"Could not load tasks for {application_id}: {e}")
