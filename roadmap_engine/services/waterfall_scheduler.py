"""
Waterfall Scheduler — per-executor deadline computation for a started stage.

Business context:
    Work sharing an executor runs back to back; work of different executors
    runs side by side. Every executor lane starts at the stage's
    ``started_at`` and advances by each unit's ``duration_days``:

        lanes = {}                                  # executor_key → running deadline
        for unit in ordered(units):
            start = lanes.get(key(unit), started_at)
            unit.deadline = start + duration(unit)
            lanes[key(unit)] = unit.deadline

    Executor key:
        template stage → required role code, else "unassigned"
        manual stage   → current assignee id,  else "unassigned"

    Order:
        template stage → TemplateTask.order_index
        manual stage   → Task.created_at (ties by id)

    The lane map lives only for one call. The stage's effective end (latest
    deadline across lanes) is derived, never stored.

Two layers:
    - plan_template_tasks / plan_manual_tasks: pure, return ScheduledUnit lists
    - schedule_stage: loads inputs, applies the plan to Task rows (flush only;
      the caller owns the transaction)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable

from flask import current_app
from sqlalchemy import func, select

from roadmap_engine.core.exceptions import ConflictError, InvalidStateError, ValidationError
from roadmap_engine.models import db
from roadmap_engine.models.roadmap import DEFAULT_DURATION_DAYS, ProjectRoadmapStage, TemplateTask
from roadmap_engine.models.task import Task
from roadmap_engine.services.membership_service import resolve_assignee
from roadmap_engine.services.roadmap_template_service import list_template_tasks
from roadmap_engine.utils.helpers import ensure_utc

logger = logging.getLogger(__name__)

UNASSIGNED_EXECUTOR = "unassigned"


# ═════════════════════════════════════════════════════════════════════════════
# Data Classes
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ScheduledUnit:
    """One scheduling decision: which lane, which deadline, which owner."""
    executor_key: str
    deadline: datetime
    duration_days: int
    template_task: TemplateTask | None = None
    task: Task | None = None
    assignee_id: int | None = None

    @property
    def auto_assigned(self) -> bool:
        return self.assignee_id is not None


@dataclass
class ScheduleResult:
    """All decisions taken for one stage activation or recomputation."""
    stage_id: int
    started_at: datetime
    units: list[ScheduledUnit] = field(default_factory=list)
    tasks: list[Task] = field(default_factory=list)

    @property
    def effective_end(self) -> datetime | None:
        """Latest deadline across all executor lanes (None when empty)."""
        if not self.units:
            return None
        return max(u.deadline for u in self.units)

    @property
    def lanes(self) -> dict[str, datetime]:
        """Final running deadline per executor key."""
        result: dict[str, datetime] = {}
        for unit in self.units:
            result[unit.executor_key] = unit.deadline
        return result

    def to_dict(self) -> dict:
        end = self.effective_end
        return {
            "stage_id": self.stage_id,
            "started_at": self.started_at.isoformat(),
            "tasks_scheduled": len(self.units),
            "effective_end": end.isoformat() if end else None,
            "lanes": {k: v.isoformat() for k, v in self.lanes.items()},
        }


# ═════════════════════════════════════════════════════════════════════════════
# Pure planning
# ═════════════════════════════════════════════════════════════════════════════


def resolve_duration(value: int | None, default: int = DEFAULT_DURATION_DAYS) -> int:
    """Duration in days; None falls back to ``default``.

    Raises:
        ValidationError: For zero or negative durations.
    """
    if value is None:
        return default
    days = int(value)
    if days < 1:
        raise ValidationError(
            f"duration_days must be a positive integer, got {value}",
            details={"duration_days": value},
        )
    return days


def _advance(lanes: dict[str, datetime], key: str, started_at: datetime, days: int) -> datetime:
    deadline = lanes.get(key, started_at) + timedelta(days=days)
    lanes[key] = deadline
    return deadline


def template_executor_key(template_task: TemplateTask) -> str:
    role = template_task.job_role
    return role.code if role is not None else UNASSIGNED_EXECUTOR


def manual_executor_key(task: Task) -> str:
    return str(task.assignee_id) if task.assignee_id is not None else UNASSIGNED_EXECUTOR


def plan_template_tasks(
    template_tasks: Iterable[TemplateTask],
    started_at: datetime,
    *,
    resolve_owner: Callable[[int | None], int | None] | None = None,
    default_duration: int = DEFAULT_DURATION_DAYS,
) -> list[ScheduledUnit]:
    """Plan deadlines and owners for template tasks of one stage.

    Args:
        template_tasks: Tasks of a single template stage (any order).
        started_at: Stage start; every lane begins here.
        resolve_owner: ``job_role_id → user_id | None``. When omitted no
            owner is assigned.
        default_duration: Days used when a template task has none.

    Returns:
        One ScheduledUnit per template task, in processing order.
    """
    lanes: dict[str, datetime] = {}
    units: list[ScheduledUnit] = []
    for template_task in sorted(template_tasks, key=lambda t: (t.order_index, t.id or 0)):
        days = resolve_duration(template_task.duration_days, default_duration)
        key = template_executor_key(template_task)
        owner = None
        if resolve_owner is not None and template_task.job_role_id is not None:
            owner = resolve_owner(template_task.job_role_id)
        units.append(ScheduledUnit(
            executor_key=key,
            deadline=_advance(lanes, key, started_at, days),
            duration_days=days,
            template_task=template_task,
            assignee_id=owner,
        ))
    return units


def plan_manual_tasks(
    tasks: Iterable[Task],
    started_at: datetime,
    *,
    default_duration: int = DEFAULT_DURATION_DAYS,
) -> list[ScheduledUnit]:
    """Plan deadlines for existing tasks of a manual stage, laned by assignee."""
    lanes: dict[str, datetime] = {}
    units: list[ScheduledUnit] = []
    ordered = sorted(tasks, key=lambda t: (ensure_utc(t.created_at), t.id or 0))
    for task in ordered:
        days = resolve_duration(task.duration_days, default_duration)
        key = manual_executor_key(task)
        units.append(ScheduledUnit(
            executor_key=key,
            deadline=_advance(lanes, key, started_at, days),
            duration_days=days,
            task=task,
            assignee_id=task.assignee_id,
        ))
    return units


# ═════════════════════════════════════════════════════════════════════════════
# Persistence
# ═════════════════════════════════════════════════════════════════════════════


def _task_from_unit(stage: ProjectRoadmapStage, unit: ScheduledUnit, priority: str) -> Task:
    template_task = unit.template_task
    role = template_task.job_role

    tags = list(template_task.tags or [])
    if not tags and role is not None:
        tags = [role.name]

    description = template_task.description
    if not description:
        description = f"Requires: {role.name}" if role is not None else ""

    return Task(
        project_id=stage.project_id,
        stage_id=stage.id,
        template_task_id=template_task.id,
        title=template_task.title,
        description=description,
        tags=tags,
        estimated_hours=template_task.estimated_hours,
        duration_days=template_task.duration_days,
        status="todo",
        priority=priority,
        assignee_id=unit.assignee_id,
        auto_assigned=unit.auto_assigned,
        deadline=unit.deadline,
    )


def _guard_duplicate_generation(stage: ProjectRoadmapStage, template_tasks: list[TemplateTask]) -> None:
    if not template_tasks:
        return
    ids = [t.id for t in template_tasks]
    existing = db.session.execute(
        select(func.count(Task.id)).where(
            Task.stage_id == stage.id,
            Task.template_task_id.in_(ids),
        )
    ).scalar() or 0
    if existing:
        raise ConflictError("Task", "stage_id", str(stage.id))


def schedule_stage(stage: ProjectRoadmapStage) -> ScheduleResult:
    """Compute and persist deadlines (and owners) for a started stage.

    Template stage: creates one Task per TemplateTask.
    Manual stage: rewrites deadlines of the stage's existing tasks.

    Flushes; the caller commits or rolls back.

    Raises:
        InvalidStateError: Stage has no started_at.
        ConflictError: Tasks were already generated for this stage.
        ValidationError: A non-positive duration was found.
    """
    if stage.started_at is None:
        raise InvalidStateError(
            "ProjectRoadmapStage", stage.id, current=stage.status, expected="active",
        )
    started_at = ensure_utc(stage.started_at)
    default_duration = current_app.config.get("DEFAULT_TASK_DURATION_DAYS", DEFAULT_DURATION_DAYS)
    result = ScheduleResult(stage_id=stage.id, started_at=started_at)

    if stage.is_manual:
        tasks = db.session.execute(
            select(Task).where(Task.stage_id == stage.id).order_by(Task.created_at, Task.id)
        ).scalars().all()
        result.units = plan_manual_tasks(tasks, started_at, default_duration=default_duration)
        for unit in result.units:
            unit.task.deadline = unit.deadline
            result.tasks.append(unit.task)
    else:
        template_tasks = list_template_tasks(stage.template_stage_id)
        _guard_duplicate_generation(stage, template_tasks)
        result.units = plan_template_tasks(
            template_tasks,
            started_at,
            resolve_owner=lambda role_id: resolve_assignee(stage.project_id, role_id),
            default_duration=default_duration,
        )
        priority = current_app.config.get("DEFAULT_TASK_PRIORITY", "medium")
        for unit in result.units:
            task = _task_from_unit(stage, unit, priority)
            db.session.add(task)
            result.tasks.append(task)

    db.session.flush()
    logger.info(
        "Scheduled stage=%s (%s): %d tasks across %d lanes",
        stage.id, "manual" if stage.is_manual else "template",
        len(result.units), len(result.lanes),
        extra={"project_id": stage.project_id, "stage_id": stage.id},
    )
    return result


def stage_effective_end(stage_id: int) -> datetime | None:
    """Latest task deadline in a stage, or None when it has no dated tasks."""
    value = db.session.execute(
        select(func.max(Task.deadline)).where(Task.stage_id == stage_id)
    ).scalar()
    return ensure_utc(value)
