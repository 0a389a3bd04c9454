"""
Task Store — status lifecycle of roadmap tasks and completion events.

Completion listeners:
    Other subsystems (payroll, notifications, completion detection) subscribe
    with ``on_task_completed`` and are called after a task reaches ``done``
    and the change is committed. This module computes nothing for them; it
    only makes the transition observable.

Usage:
    from roadmap_engine.services.task_service import on_task_completed

    @on_task_completed
    def _credit_executor(task):
        ...
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from roadmap_engine.core.exceptions import InvalidStateError, NotFoundError, ValidationError
from roadmap_engine.models import db
from roadmap_engine.models.task import TASK_STATUSES, TASK_TRANSITIONS, Task, validate_task_transition
from roadmap_engine.utils.helpers import utcnow

logger = logging.getLogger(__name__)


# ── Completion listener registry ─────────────────────────────────────────────

_completion_listeners: list[Callable[[Task], None]] = []


def on_task_completed(fn: Callable[[Task], None]) -> Callable[[Task], None]:
    """Decorator registering ``fn(task)`` to run when a task becomes done."""
    if fn not in _completion_listeners:
        _completion_listeners.append(fn)
    return fn


def remove_task_completed_listener(fn: Callable[[Task], None]) -> None:
    if fn in _completion_listeners:
        _completion_listeners.remove(fn)


def _emit_task_completed(task: Task) -> None:
    for listener in list(_completion_listeners):
        try:
            listener(task)
        except Exception:
            # status is already committed; remaining listeners still run
            logger.exception(
                "Task completion listener %s failed for task=%s",
                getattr(listener, "__name__", listener), task.id,
            )


# ── Transitions ──────────────────────────────────────────────────────────────


def transition_task(task_id: int, new_status: str, *, now: datetime | None = None) -> Task:
    """Move a task to ``new_status`` and publish completion when it becomes done.

    Raises:
        NotFoundError: Task does not exist.
        ValidationError: ``new_status`` is not a known status.
        InvalidStateError: The transition is not allowed from the current status.
    """
    if new_status not in TASK_STATUSES:
        raise ValidationError(
            f"Unknown task status '{new_status}'",
            details={"status": sorted(TASK_STATUSES)},
        )

    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFoundError(resource="Task", resource_id=task_id)

    old = task.status
    if not validate_task_transition(old, new_status):
        raise InvalidStateError(
            "Task", task.id, current=old, expected="|".join(TASK_TRANSITIONS.get(old, [])) or "none",
        )

    task.status = new_status
    if new_status == "done":
        task.completed_at = now or utcnow()

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Task transitioned: %s %s → %s", task.id, old, new_status,
                extra={"project_id": task.project_id, "stage_id": task.stage_id})
    if new_status == "done":
        _emit_task_completed(task)
    return task
