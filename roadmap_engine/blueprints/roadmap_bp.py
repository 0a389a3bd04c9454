"""
Roadmap stage lifecycle API.

Blueprint: roadmap_bp
Prefix: /api/v1

Endpoints:
  Level 2 stages:
    GET   /roadmap-stages/<sid>                       -- Stage + tasks + effective end
    GET   /roadmap-stages/<sid>/planned-tasks         -- Template tasks the stage will generate
    POST  /roadmap-stages/<sid>/start                 -- pending → active, schedule tasks
    POST  /roadmap-stages/<sid>/complete              -- active → completed, advance
    POST  /roadmap-stages/<sid>/recompute-deadlines   -- Re-run waterfall (manual stages)

  Projects:
    GET   /projects/<pid>/roadmap                     -- Level 1 + Level 2 overview
    POST  /projects/<pid>/roadmap/apply-template      -- Create stages from a template
    POST  /projects/<pid>/level1-stages/<l1id>/complete -- Complete macro-phase, cascade

  Tasks:
    PATCH /tasks/<tid>/status                         -- Task status transition
"""

import logging

from flask import Blueprint, jsonify, request
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from roadmap_engine.core.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from roadmap_engine.models import db
from roadmap_engine.models.roadmap import ProjectRoadmapStage
from roadmap_engine.models.task import Task
from roadmap_engine.services import roadmap_template_service, stage_activation_service, task_service
from roadmap_engine.services.waterfall_scheduler import stage_effective_end
from roadmap_engine.utils.errors import E, api_error
from roadmap_engine.utils.helpers import get_or_404

logger = logging.getLogger(__name__)

roadmap_bp = Blueprint("roadmap", __name__, url_prefix="/api/v1")


# ── Error mapping ────────────────────────────────────────────────────────────


@roadmap_bp.errorhandler(NotFoundError)
def _handle_not_found(exc):
    return api_error(E.NOT_FOUND, str(exc))


@roadmap_bp.errorhandler(InvalidStateError)
def _handle_invalid_state(exc):
    return api_error(
        E.CONFLICT_STATE, str(exc),
        details={"current": exc.current, "expected": exc.expected},
    )


@roadmap_bp.errorhandler(ConflictError)
def _handle_conflict(exc):
    return api_error(E.CONFLICT_DUPLICATE, str(exc))


@roadmap_bp.errorhandler(ValidationError)
def _handle_validation(exc):
    return api_error(E.VALIDATION_CONSTRAINT, str(exc), details=exc.details)


@roadmap_bp.errorhandler(SQLAlchemyError)
def _handle_database(exc):
    db.session.rollback()
    logger.error("Database error on %s: %s", request.path, exc, exc_info=True)
    return api_error(E.DATABASE, "Database error")


# ── Level 2 stages ───────────────────────────────────────────────────────────


@roadmap_bp.route("/roadmap-stages/<int:sid>", methods=["GET"])
def get_stage(sid):
    """Stage detail with its tasks ordered by deadline."""
    stage, err = get_or_404(ProjectRoadmapStage, sid)
    if err:
        return err

    tasks = db.session.execute(
        select(Task).where(Task.stage_id == sid).order_by(Task.deadline, Task.id)
    ).scalars().all()
    end = stage_effective_end(sid)
    return jsonify({
        "stage": stage.to_dict(),
        "tasks": [t.to_dict() for t in tasks],
        "effective_end": end.isoformat() if end else None,
        "tasks_completed": stage_activation_service.stage_tasks_completed(sid),
    }), 200


@roadmap_bp.route("/roadmap-stages/<int:sid>/planned-tasks", methods=["GET"])
def planned_tasks(sid):
    items = roadmap_template_service.list_planned_tasks(sid)
    return jsonify({"items": [t.to_dict() for t in items], "total": len(items)}), 200


@roadmap_bp.route("/roadmap-stages/<int:sid>/start", methods=["POST"])
def start_stage(sid):
    """Activate a pending stage and generate / reschedule its tasks."""
    result = stage_activation_service.start_stage(sid)
    return jsonify(result.to_dict()), 200


@roadmap_bp.route("/roadmap-stages/<int:sid>/complete", methods=["POST"])
def complete_stage(sid):
    data = request.get_json(silent=True) or {}
    result = stage_activation_service.complete_stage(
        sid, require_tasks_done=bool(data.get("require_tasks_done", False)),
    )
    return jsonify(result.to_dict()), 200


@roadmap_bp.route("/roadmap-stages/<int:sid>/recompute-deadlines", methods=["POST"])
def recompute_deadlines(sid):
    schedule = stage_activation_service.recompute_stage_deadlines(sid)
    return jsonify({
        "schedule": schedule.to_dict(),
        "tasks": [t.to_dict() for t in schedule.tasks],
    }), 200


# ── Projects ─────────────────────────────────────────────────────────────────


@roadmap_bp.route("/projects/<int:pid>/roadmap", methods=["GET"])
def project_roadmap(pid):
    return jsonify(stage_activation_service.get_project_roadmap(pid)), 200


@roadmap_bp.route("/projects/<int:pid>/roadmap/apply-template", methods=["POST"])
def apply_template(pid):
    """Create pending stages for the project from a roadmap template."""
    data = request.get_json(silent=True) or {}
    template_id = data.get("template_id")
    if template_id is None:
        return api_error(E.VALIDATION_REQUIRED, "template_id is required")
    try:
        template_id = int(template_id)
    except (TypeError, ValueError):
        return api_error(E.VALIDATION_INVALID, "template_id must be an integer")

    stages = roadmap_template_service.apply_template_to_project(pid, template_id)
    return jsonify({"stages": [s.to_dict() for s in stages]}), 201


@roadmap_bp.route("/projects/<int:pid>/level1-stages/<int:l1id>/complete", methods=["POST"])
def complete_level1(pid, l1id):
    result = stage_activation_service.complete_level1_stage(pid, l1id)
    return jsonify(result.to_dict()), 200


# ── Tasks ────────────────────────────────────────────────────────────────────


@roadmap_bp.route("/tasks/<int:tid>/status", methods=["PATCH"])
def transition_task(tid):
    data = request.get_json(silent=True) or {}
    new_status = str(data.get("status", "") or "").strip()
    if not new_status:
        return api_error(E.VALIDATION_REQUIRED, "status is required")

    task = task_service.transition_task(tid, new_status)
    return jsonify({"task": task.to_dict()}), 200
