"""Task Service - Opens the workflow task for the state a case just entered"""
from ..domain.models import ApplicationCase, TransitionRecord, WorkflowTask
from ..domain.errors import TaskCreationError
from ..engine.definition import task_template_for
from ..repositories.base import TaskStore, TransitionPublisher
from ..utils.idgen import generate_task_id
from ..utils.time import utc_now


class WorkflowTaskCreator(TransitionPublisher):
    """
    Opens one task per transition into a working state

    States without a template (DRAFT, ON_HOLD, terminal states) open none.
    The task goes to the assignee given with the transition, if any.
    """

    def __init__(self, tasks: TaskStore):
        self.tasks = tasks

    def publish(self, case: ApplicationCase, record: TransitionRecord) -> None:
        template = task_template_for(record.to_state)
        if template is None:
            return

        task = WorkflowTask(
            task_id=generate_task_id(),
            application_id=case.application_id,
            state=record.to_state,
            sequence_number=record.sequence_number,
            title=template.title,
            description=template.description,
            assigned_to=record.assigned_to,
            priority=template.priority,
            created_at=utc_now(),
        )
        try:
            self.tasks.create_task(task)
        except Exception as e:
            raise TaskCreationError(
                f"Could not open task '{template.title}': {e}",
                details={"application_id": case.application_id, "sequence_number": record.sequence_number}
            )
