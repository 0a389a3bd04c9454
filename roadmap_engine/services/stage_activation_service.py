"""
Stage Activation Controller — lifecycle of roadmap stages (Level 2) and
macro-phases (Level 1).

Business logic for:
    - start_stage:             pending → active, stamp started_at, run the
                               waterfall scheduler (one transaction)
    - complete_stage:          active → completed, start the next pending
                               stage of the same macro-phase
    - complete_level1_stage:   macro-phase active → completed, unlock the
                               macro-phase at order_index + 1 and start its
                               first pending stage
    - recompute_stage_deadlines: re-run the waterfall for an active manual stage
    - stage_tasks_completed:   completion check used before complete_stage
    - get_project_roadmap:     read model for both levels

Transactions:
    Every public mutator commits exactly once on success and rolls back the
    whole unit of work on any error, so a failed activation never leaves a
    half-generated task batch or a flipped status behind. Stage rows are
    read with SELECT ... FOR UPDATE; the macro-phase cascade additionally
    uses a compare-and-set UPDATE (WHERE status = 'locked') so two racing
    completions activate the successor at most once.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from roadmap_engine.core.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from roadmap_engine.models import db
from roadmap_engine.models.project import Project
from roadmap_engine.models.roadmap import (
    ProjectLevel1StageStatus,
    ProjectRoadmapStage,
    validate_level1_transition,
    validate_stage_transition,
)
from roadmap_engine.models.task import FINISHED_TASK_STATUSES, Task
from roadmap_engine.services.waterfall_scheduler import ScheduleResult, schedule_stage
from roadmap_engine.utils.helpers import ensure_utc, utcnow

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Results
# ═════════════════════════════════════════════════════════════════════════════


@dataclass
class StageStartResult:
    stage: ProjectRoadmapStage
    schedule: ScheduleResult

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.to_dict(),
            "schedule": self.schedule.to_dict(),
            "tasks": [t.to_dict() for t in self.schedule.tasks],
        }


@dataclass
class StageCompletionResult:
    stage: ProjectRoadmapStage
    next_stage: ProjectRoadmapStage | None
    already_completed: bool
    message: str

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.to_dict(),
            "next_stage_id": self.next_stage.id if self.next_stage else None,
            "already_completed": self.already_completed,
            "message": self.message,
        }


@dataclass
class Level1CompletionResult:
    status: ProjectLevel1StageStatus
    next_status: ProjectLevel1StageStatus | None
    started_stage: ProjectRoadmapStage | None
    already_completed: bool
    message: str

    def to_dict(self) -> dict:
        return {
            "level1": self.status.to_dict(),
            "next_level1_id": self.next_status.level1_stage_id if self.next_status else None,
            "started_stage_id": self.started_stage.id if self.started_stage else None,
            "already_completed": self.already_completed,
            "message": self.message,
        }


# ═════════════════════════════════════════════════════════════════════════════
# Internals
# ═════════════════════════════════════════════════════════════════════════════


def _lock_stage(stage_id: int) -> ProjectRoadmapStage:
    stage = db.session.execute(
        select(ProjectRoadmapStage)
        .where(ProjectRoadmapStage.id == stage_id)
        .with_for_update()
    ).scalar_one_or_none()
    if stage is None:
        raise NotFoundError(resource="ProjectRoadmapStage", resource_id=stage_id)
    return stage


def _activate_stage(stage: ProjectRoadmapStage, now: datetime) -> ScheduleResult:
    if not validate_stage_transition(stage.status, "active"):
        raise InvalidStateError(
            "ProjectRoadmapStage", stage.id, current=stage.status, expected="pending",
        )
    stage.status = "active"
    stage.started_at = now
    db.session.flush()
    return schedule_stage(stage)


def _next_pending_stage(stage: ProjectRoadmapStage) -> ProjectRoadmapStage | None:
    """Lowest-ordered pending stage after ``stage`` within the same macro-phase."""
    stmt = select(ProjectRoadmapStage).where(
        ProjectRoadmapStage.project_id == stage.project_id,
        ProjectRoadmapStage.order_index > stage.order_index,
        ProjectRoadmapStage.status == "pending",
    )
    if stage.level1_stage_id is None:
        stmt = stmt.where(ProjectRoadmapStage.level1_stage_id.is_(None))
    else:
        stmt = stmt.where(ProjectRoadmapStage.level1_stage_id == stage.level1_stage_id)
    return db.session.execute(
        stmt.order_by(ProjectRoadmapStage.order_index, ProjectRoadmapStage.id)
        .limit(1)
        .with_for_update()
    ).scalars().first()


def _first_pending_stage(project_id: int, level1_stage_id: int) -> ProjectRoadmapStage | None:
    return db.session.execute(
        select(ProjectRoadmapStage)
        .where(
            ProjectRoadmapStage.project_id == project_id,
            ProjectRoadmapStage.level1_stage_id == level1_stage_id,
            ProjectRoadmapStage.status == "pending",
        )
        .order_by(ProjectRoadmapStage.order_index, ProjectRoadmapStage.id)
        .limit(1)
        .with_for_update()
    ).scalars().first()


def _check_completion_time(stage_id: int, started_at: datetime | None, now: datetime) -> None:
    if started_at is not None and ensure_utc(now) < ensure_utc(started_at):
        raise ValidationError(
            "completed_at cannot precede started_at",
            details={"stage_id": stage_id},
        )


def _cascade_level1(current: ProjectLevel1StageStatus, now: datetime):
    """Unlock the macro-phase directly after ``current``.

    Returns (successor | None, started level-2 stage | None).
    """
    next_index = current.order_index + 1
    candidate = db.session.execute(
        select(ProjectLevel1StageStatus)
        .where(
            ProjectLevel1StageStatus.project_id == current.project_id,
            ProjectLevel1StageStatus.order_index == next_index,
        )
        .with_for_update()
    ).scalar_one_or_none()

    if candidate is None:
        later = db.session.execute(
            select(func.count(ProjectLevel1StageStatus.id)).where(
                ProjectLevel1StageStatus.project_id == current.project_id,
                ProjectLevel1StageStatus.order_index > next_index,
            )
        ).scalar() or 0
        if later:
            logger.warning(
                "Level-1 cascade stopped at gap: project=%s has no order_index=%s "
                "but %d later macro-phase(s)",
                current.project_id, next_index, later,
                extra={"project_id": current.project_id},
            )
        return None, None

    if candidate.status != "locked":
        logger.info(
            "Level-1 successor project=%s order_index=%s already %s; not reactivated",
            current.project_id, next_index, candidate.status,
        )
        return None, None

    result = db.session.execute(
        update(ProjectLevel1StageStatus)
        .where(
            ProjectLevel1StageStatus.id == candidate.id,
            ProjectLevel1StageStatus.status == "locked",
        )
        .values(status="active", started_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.info("Level-1 successor id=%s activated concurrently; skipping", candidate.id)
        return None, None
    db.session.refresh(candidate)

    started = _first_pending_stage(current.project_id, candidate.level1_stage_id)
    if started is not None:
        _activate_stage(started, now)
    return candidate, started


def _commit_or_raise(resource: str, field: str, value: int) -> None:
    """Commit; a unique-constraint failure becomes ConflictError(resource, field, value)."""
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning(
            "Integrity error committing %s %s=%s: %s", resource, field, value, exc.orig,
        )
        raise ConflictError(resource, field, str(value)) from exc


# ═════════════════════════════════════════════════════════════════════════════
# Public API
# ═════════════════════════════════════════════════════════════════════════════


def start_stage(stage_id: int, *, now: datetime | None = None) -> StageStartResult:
    """Activate a pending stage and schedule its tasks.

    Args:
        stage_id: ProjectRoadmapStage PK.
        now: Activation instant; defaults to the current UTC time.

    Returns:
        StageStartResult with the stage and the scheduling decisions.

    Raises:
        NotFoundError: Stage (or its template stage) does not exist.
        InvalidStateError: Stage is not pending.
        ConflictError: Tasks for this stage were already generated.
        ValidationError: A task carries a non-positive duration.
    """
    now = now or utcnow()
    try:
        stage = _lock_stage(stage_id)
        schedule = _activate_stage(stage, now)
        _commit_or_raise("Task", "stage_id", stage_id)
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Started stage=%s project=%s (%d tasks, effective end %s)",
        stage_id, stage.project_id, len(schedule.units), schedule.effective_end,
        extra={"project_id": stage.project_id, "stage_id": stage_id},
    )
    return StageStartResult(stage=stage, schedule=schedule)


def complete_stage(
    stage_id: int,
    *,
    require_tasks_done: bool = False,
    now: datetime | None = None,
) -> StageCompletionResult:
    """Complete an active stage and start the next pending one in its macro-phase.

    Re-completing a completed stage is a no-op.

    Raises:
        NotFoundError: Stage does not exist.
        InvalidStateError: Stage is still pending.
        ValidationError: ``require_tasks_done`` and open tasks remain.
    """
    now = now or utcnow()
    try:
        stage = _lock_stage(stage_id)
        if stage.status == "completed":
            db.session.commit()
            return StageCompletionResult(
                stage=stage, next_stage=None, already_completed=True,
                message="Stage already completed",
            )
        if not validate_stage_transition(stage.status, "completed"):
            raise InvalidStateError(
                "ProjectRoadmapStage", stage.id, current=stage.status, expected="active",
            )
        if require_tasks_done:
            open_count = _open_task_count(stage.id)
            if open_count:
                raise ValidationError(
                    f"{open_count} task(s) in stage are not finished",
                    details={"open_tasks": open_count},
                )
        _check_completion_time(stage.id, stage.started_at, now)

        stage.status = "completed"
        stage.completed_at = now
        next_stage = _next_pending_stage(stage)
        if next_stage is not None:
            _activate_stage(next_stage, now)
            _commit_or_raise("Task", "stage_id", next_stage.id)
        else:
            _commit_or_raise("ProjectRoadmapStage", "id", stage_id)
    except Exception:
        db.session.rollback()
        raise

    if next_stage is not None:
        message = "Stage completed and next stage activated"
    else:
        message = "Stage completed. This was the last stage in this phase."
    logger.info(
        "Completed stage=%s next=%s", stage_id, next_stage.id if next_stage else None,
        extra={"project_id": stage.project_id, "stage_id": stage_id},
    )
    return StageCompletionResult(
        stage=stage, next_stage=next_stage, already_completed=False, message=message,
    )


def complete_level1_stage(
    project_id: int,
    level1_stage_id: int,
    *,
    now: datetime | None = None,
) -> Level1CompletionResult:
    """Complete a project's macro-phase and unlock the one at order_index + 1.

    The successor is activated only when it is still locked; an active or
    completed successor is left untouched. A gap in order_index stops the
    cascade. Re-completing is a no-op.

    Raises:
        NotFoundError: No status row for (project, level1 stage).
        InvalidStateError: Macro-phase is still locked.
    """
    now = now or utcnow()
    try:
        status = db.session.execute(
            select(ProjectLevel1StageStatus)
            .where(
                ProjectLevel1StageStatus.project_id == project_id,
                ProjectLevel1StageStatus.level1_stage_id == level1_stage_id,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if status is None:
            raise NotFoundError(resource="ProjectLevel1StageStatus", resource_id=level1_stage_id)

        if status.status == "completed":
            db.session.commit()
            return Level1CompletionResult(
                status=status, next_status=None, started_stage=None,
                already_completed=True, message="Level 1 phase already completed",
            )
        if not validate_level1_transition(status.status, "completed"):
            raise InvalidStateError(
                "ProjectLevel1StageStatus", status.id, current=status.status, expected="active",
            )
        _check_completion_time(status.id, status.started_at, now)

        status.status = "completed"
        status.completed_at = now
        db.session.flush()
        successor, started = _cascade_level1(status, now)
        if started is not None:
            _commit_or_raise("Task", "stage_id", started.id)
        else:
            _commit_or_raise("ProjectLevel1StageStatus", "id", status.id)
    except Exception:
        db.session.rollback()
        raise

    if successor is not None:
        message = "Level 1 phase completed and next phase activated"
    else:
        message = "Level 1 phase completed. No locked phase follows."
    logger.info(
        "Completed level-1 stage=%s project=%s next=%s",
        level1_stage_id, project_id, successor.level1_stage_id if successor else None,
        extra={"project_id": project_id},
    )
    return Level1CompletionResult(
        status=status, next_status=successor, started_stage=started,
        already_completed=False, message=message,
    )


def recompute_stage_deadlines(stage_id: int) -> ScheduleResult:
    """Re-run the waterfall for an active manual stage from its stored start.

    Deterministic: unchanged tasks produce identical deadlines, and no rows
    are created.

    Raises:
        NotFoundError: Stage does not exist.
        ValidationError: Stage is template-based.
        InvalidStateError: Stage is not active.
    """
    try:
        stage = _lock_stage(stage_id)
        if not stage.is_manual:
            raise ValidationError(
                "Deadlines can only be recomputed for manual stages",
                details={"template_stage_id": stage.template_stage_id},
            )
        if stage.status != "active":
            raise InvalidStateError(
                "ProjectRoadmapStage", stage.id, current=stage.status, expected="active",
            )
        schedule = schedule_stage(stage)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return schedule


def _open_task_count(stage_id: int) -> int:
    return db.session.execute(
        select(func.count(Task.id)).where(
            Task.stage_id == stage_id,
            Task.status.notin_(FINISHED_TASK_STATUSES),
        )
    ).scalar() or 0


def stage_tasks_completed(stage_id: int) -> bool:
    """True when every task of the stage is finished (vacuously for no tasks)."""
    if db.session.get(ProjectRoadmapStage, stage_id) is None:
        raise NotFoundError(resource="ProjectRoadmapStage", resource_id=stage_id)
    return _open_task_count(stage_id) == 0


def get_project_roadmap(project_id: int) -> dict:
    """Both roadmap levels of a project with per-stage effective end."""
    project = db.session.get(Project, project_id)
    if project is None:
        raise NotFoundError(resource="Project", resource_id=project_id)

    level1 = db.session.execute(
        select(ProjectLevel1StageStatus)
        .where(ProjectLevel1StageStatus.project_id == project_id)
        .order_by(ProjectLevel1StageStatus.order_index)
    ).scalars().all()
    stages = db.session.execute(
        select(ProjectRoadmapStage)
        .where(ProjectRoadmapStage.project_id == project_id)
        .order_by(ProjectRoadmapStage.order_index, ProjectRoadmapStage.id)
    ).scalars().all()

    # one grouped query for effective ends (no N+1)
    ends = dict(db.session.execute(
        select(Task.stage_id, func.max(Task.deadline))
        .where(Task.project_id == project_id)
        .group_by(Task.stage_id)
    ).all())

    stage_dicts = []
    for stage in stages:
        d = stage.to_dict()
        end = ensure_utc(ends.get(stage.id))
        d["effective_end"] = end.isoformat() if end else None
        stage_dicts.append(d)

    return {
        "project": project.to_dict(),
        "level1": [s.to_dict() for s in level1],
        "stages": stage_dicts,
    }
