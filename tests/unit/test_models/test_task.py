"""Tests for task models."""

import pytest
from pydantic import ValidationError

from src.models.task import STATUS_ORDER, Task, TaskPriority, TaskStatus, TaskUpdate


@pytest.mark.unit
def test_status_order_is_linear():
    """Pipeline statuses are ordered inbox through done."""
    ordered = sorted(STATUS_ORDER, key=STATUS_ORDER.get)
    assert [s.value for s in ordered] == [
        "inbox", "assigned", "in_progress", "review", "testing", "monitoring", "done"
    ]


@pytest.mark.unit
def test_planning_is_out_of_band():
    assert TaskStatus.PLANNING.order == -1
    assert TaskStatus.INBOX.order == 0
    assert TaskStatus.DONE.order == 6


@pytest.mark.unit
def test_task_defaults():
    task = Task(title="Fix login")

    assert task.status == TaskStatus.INBOX
    assert task.priority == TaskPriority.NORMAL
    assert task.assigned_agent_id is None
    assert task.tags == []
    assert len(task.id) == 26  # ULID


@pytest.mark.unit
def test_task_rejects_unknown_status():
    with pytest.raises(ValidationError):
        Task(title="Fix login", status="archived")


@pytest.mark.unit
def test_task_update_tracks_supplied_fields():
    """An explicit null counts as supplied; an omitted field does not."""
    update = TaskUpdate.model_validate({"assigned_agent_id": None, "status": "review"})

    assert update.supplied("assigned_agent_id")
    assert update.supplied("status")
    assert not update.supplied("title")
    assert update.status == TaskStatus.REVIEW


@pytest.mark.unit
def test_task_update_rejects_empty_title():
    with pytest.raises(ValidationError):
        TaskUpdate(title="")
