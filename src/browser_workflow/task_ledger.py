"""
Task ledger for workflow phase bookkeeping.

The ledger tracks a small fixed set of named tasks through their status states
and notifies subscribers on every change. It observes the workflow; it never
drives control flow.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from browser_workflow.errors import TaskConcurrencyError
from browser_workflow.models import Task, TaskStatus, TaskUpdate


logger = logging.getLogger(__name__)

TaskListener = Callable[[TaskUpdate], None]

WORKFLOW_TASKS = (
    ("plan", "Planning browser actions"),
    ("context", "Gathering page context"),
    ("execute", "Executing browser actions"),
    ("evaluate", "Evaluating results"),
    ("summarize", "Summarizing outcome"),
)

_ACTIVE_STATUSES = (TaskStatus.IN_PROGRESS, TaskStatus.RETRYING)


class TaskLedger:
    """
    Ordered set of workflow tasks with change notification.

    Attributes:
        max_concurrent: Maximum number of tasks that may be active at once
    """

    def __init__(self, max_concurrent: int = 1):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self._tasks: Dict[str, Task] = {}
        self._listeners: List[TaskListener] = []

    @classmethod
    def for_workflow(cls, max_concurrent: int = 1) -> "TaskLedger":
        """Create a ledger pre-populated with the standard workflow tasks."""
        ledger = cls(max_concurrent=max_concurrent)
        for task_id, title in WORKFLOW_TASKS:
            ledger.create(task_id, title)
        return ledger

    def subscribe(self, listener: TaskListener) -> Callable[[], None]:
        """
        Register a listener for task changes.

        Returns:
            Callable that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def create(self, task_id: str, title: str) -> Task:
        if task_id in self._tasks:
            raise ValueError(f"Task '{task_id}' already exists")
        task = Task(id=task_id, title=title)
        self._tasks[task_id] = task
        self._notify(task)
        return task

    def get(self, task_id: str) -> Task:
        try:
            return self._tasks[task_id]
        except KeyError:
            raise KeyError(f"Unknown task '{task_id}'") from None

    def get_all(self) -> List[Task]:
        return list(self._tasks.values())

    def active_tasks(self) -> List[Task]:
        return [task for task in self._tasks.values() if task.status in _ACTIVE_STATUSES]

    def start(self, task_id: str, note: Optional[str] = None) -> Task:
        """
        Move a task to in_progress.

        A task that is already active (for example one marked for retry) does
        not count against the concurrency limit.

        Raises:
            TaskConcurrencyError: If the concurrency limit is already reached
        """
        task = self.get(task_id)
        others = [t for t in self.active_tasks() if t.id != task_id]
        if len(others) >= self.max_concurrent:
            active = ", ".join(t.id for t in others)
            raise TaskConcurrencyError(
                f"Cannot start '{task_id}': {len(others)} task(s) already in progress ({active})"
            )
        return self._transition(task, TaskStatus.IN_PROGRESS, note)

    def complete(self, task_id: str, note: Optional[str] = None) -> Task:
        return self._transition(self.get(task_id), TaskStatus.COMPLETED, note)

    def fail(self, task_id: str, note: str) -> Task:
        return self._transition(self.get(task_id), TaskStatus.ERROR, note)

    def cancel(self, task_id: str, note: Optional[str] = None) -> Task:
        return self._transition(self.get(task_id), TaskStatus.CANCELLED, note)

    def retry(self, task_id: str, note: Optional[str] = None) -> Task:
        """Mark a task as being retried. Observers see it as in_progress."""
        task = self.get(task_id)
        others = [t for t in self.active_tasks() if t.id != task_id]
        if len(others) >= self.max_concurrent:
            raise TaskConcurrencyError(f"Cannot retry '{task_id}' while other tasks are in progress")
        return self._transition(task, TaskStatus.RETRYING, note)

    def _transition(self, task: Task, status: TaskStatus, note: Optional[str]) -> Task:
        task.status = status
        if note is not None:
            task.description = note
        task.updated_at = time.time()
        logger.debug("Task %s -> %s%s", task.id, status.value, f" ({note})" if note else "")
        self._notify(task)
        return task

    def _notify(self, task: Task) -> None:
        update = TaskUpdate(task_id=task.id, status=task.display_status, description=task.description)
        for listener in list(self._listeners):
            listener(update)
