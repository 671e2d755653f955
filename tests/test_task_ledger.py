"""
Tests for TaskLedger.

These tests verify:
- The standard workflow tasks and their order
- Status transitions and change notification
- The concurrency limit on active tasks
- Retrying tasks being reported as in progress
"""

import pytest

from browser_workflow.errors import TaskConcurrencyError
from browser_workflow.models import TaskStatus
from browser_workflow.task_ledger import TaskLedger


def test_for_workflow_creates_standard_tasks():
    """Test that the workflow ledger holds the five phases, all pending."""
    ledger = TaskLedger.for_workflow()

    tasks = ledger.get_all()
    assert [t.id for t in tasks] == ["plan", "context", "execute", "evaluate", "summarize"]
    assert all(t.status == TaskStatus.PENDING for t in tasks)


def test_start_and_complete():
    """Test a task moving through in_progress to completed with a note."""
    ledger = TaskLedger.for_workflow()

    ledger.start("plan")
    assert ledger.get("plan").status == TaskStatus.IN_PROGRESS

    ledger.complete("plan", "3 steps")
    task = ledger.get("plan")
    assert task.status == TaskStatus.COMPLETED
    assert task.description == "3 steps"


def test_second_active_task_rejected():
    """Test that only one task may be in progress at a time by default."""
    ledger = TaskLedger.for_workflow()
    ledger.start("plan")

    with pytest.raises(TaskConcurrencyError):
        ledger.start("context")

    assert ledger.get("context").status == TaskStatus.PENDING
    assert len(ledger.active_tasks()) == 1


def test_restarting_active_task_is_allowed():
    """Test that starting the already-active task does not trip the limit."""
    ledger = TaskLedger.for_workflow()
    ledger.start("execute")
    ledger.start("execute", "attempt 2")

    assert ledger.get("execute").description == "attempt 2"


def test_higher_concurrency_limit():
    """Test that a larger limit allows several active tasks."""
    ledger = TaskLedger.for_workflow(max_concurrent=2)
    ledger.start("plan")
    ledger.start("context")

    with pytest.raises(TaskConcurrencyError):
        ledger.start("execute")


def test_invalid_concurrency_limit():
    with pytest.raises(ValueError):
        TaskLedger(max_concurrent=0)


def test_listener_receives_updates():
    """Test that subscribers see every transition."""
    ledger = TaskLedger.for_workflow()
    updates = []
    ledger.subscribe(updates.append)

    ledger.start("plan")
    ledger.fail("plan", "boom")

    assert [(u.task_id, u.status) for u in updates] == [
        ("plan", TaskStatus.IN_PROGRESS),
        ("plan", TaskStatus.ERROR),
    ]
    assert updates[-1].description == "boom"


def test_unsubscribe_stops_updates():
    ledger = TaskLedger.for_workflow()
    updates = []
    unsubscribe = ledger.subscribe(updates.append)

    unsubscribe()
    ledger.start("plan")

    assert updates == []


def test_retrying_reported_as_in_progress():
    """Test that a retrying task keeps its internal state but shows as in progress."""
    ledger = TaskLedger.for_workflow()
    updates = []
    ledger.subscribe(updates.append)

    ledger.start("execute")
    ledger.complete("execute")
    ledger.retry("execute", "Retry 1/2")

    assert ledger.get("execute").status == TaskStatus.RETRYING
    assert ledger.get("execute").display_status == TaskStatus.IN_PROGRESS
    assert updates[-1].status == TaskStatus.IN_PROGRESS
    assert [t.id for t in ledger.active_tasks()] == ["execute"]


def test_retry_blocked_while_other_task_active():
    ledger = TaskLedger.for_workflow()
    ledger.start("evaluate")

    with pytest.raises(TaskConcurrencyError):
        ledger.retry("execute")


def test_cancel_task():
    ledger = TaskLedger.for_workflow()
    ledger.start("execute")
    ledger.cancel("execute", "Cancelled")

    assert ledger.get("execute").status == TaskStatus.CANCELLED
    assert ledger.active_tasks() == []


def test_unknown_task_raises_key_error():
    ledger = TaskLedger.for_workflow()

    with pytest.raises(KeyError):
        ledger.get("finalize")


def test_duplicate_task_rejected():
    ledger = TaskLedger()
    ledger.create("plan", "Planning")

    with pytest.raises(ValueError):
        ledger.create("plan", "Planning again")
