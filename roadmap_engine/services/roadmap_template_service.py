"""
Roadmap Template Repository — read side of reusable roadmap definitions,
plus project adoption of a template.

Business logic for:
    - Ordered template task listing (the scheduler's input)
    - Planned-task preview for a not-yet-started project stage
    - Level-1 macro-phase initialisation per project
    - Applying a template: one pending project stage per template stage
    - Default level-1 catalogue seed
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from roadmap_engine.core.exceptions import ConflictError, NotFoundError, ValidationError
from roadmap_engine.models import db
from roadmap_engine.models.project import Project
from roadmap_engine.models.roadmap import (
    Level1Stage,
    ProjectLevel1StageStatus,
    ProjectRoadmapStage,
    RoadmapTemplate,
    TemplateStage,
    TemplateTask,
)

logger = logging.getLogger(__name__)

DEFAULT_LEVEL1_STAGES = (
    ("Preparation", 1),
    ("Production", 2),
    ("Launch", 3),
    ("Final", 4),
)


def seed_default_level1_stages() -> int:
    """Create the standard macro-phase catalogue. Returns number of rows added."""
    existing = set(db.session.execute(select(Level1Stage.order_index)).scalars().all())
    added = 0
    for name, order_index in DEFAULT_LEVEL1_STAGES:
        if order_index in existing:
            continue
        db.session.add(Level1Stage(name=name, order_index=order_index))
        added += 1
    db.session.flush()
    return added


def get_template(template_id: int) -> RoadmapTemplate:
    template = db.session.get(RoadmapTemplate, template_id)
    if template is None:
        raise NotFoundError(resource="RoadmapTemplate", resource_id=template_id)
    return template


def list_template_tasks(template_stage_id: int) -> list[TemplateTask]:
    """Template tasks of a stage in ascending order_index.

    Raises:
        NotFoundError: If the template stage does not exist.
    """
    if db.session.get(TemplateStage, template_stage_id) is None:
        raise NotFoundError(resource="TemplateStage", resource_id=template_stage_id)

    return db.session.execute(
        select(TemplateTask)
        .where(TemplateTask.stage_id == template_stage_id)
        .order_by(TemplateTask.order_index, TemplateTask.id)
    ).scalars().all()


def list_planned_tasks(stage_id: int) -> list[TemplateTask]:
    """Template tasks a project stage will generate when started.

    Manual stages have no plan and return an empty list.
    """
    stage = db.session.get(ProjectRoadmapStage, stage_id)
    if stage is None:
        raise NotFoundError(resource="ProjectRoadmapStage", resource_id=stage_id)
    if stage.template_stage_id is None:
        return []
    return list_template_tasks(stage.template_stage_id)


def initialize_project_level1_stages(project_id: int, *, now: datetime | None = None) -> list[ProjectLevel1StageStatus]:
    """Create one status row per catalogue macro-phase for a project.

    The lowest macro-phase starts active, the rest locked. Does nothing if
    the project already has status rows. Flushes, does not commit.
    """
    existing = db.session.execute(
        select(ProjectLevel1StageStatus)
        .where(ProjectLevel1StageStatus.project_id == project_id)
        .order_by(ProjectLevel1StageStatus.order_index)
    ).scalars().all()
    if existing:
        return existing

    now = now or datetime.now(timezone.utc)
    catalogue = db.session.execute(
        select(Level1Stage).order_by(Level1Stage.order_index)
    ).scalars().all()

    rows = []
    for index, stage in enumerate(catalogue):
        first = index == 0
        row = ProjectLevel1StageStatus(
            project_id=project_id,
            level1_stage_id=stage.id,
            order_index=stage.order_index,
            status="active" if first else "locked",
            started_at=now if first else None,
        )
        db.session.add(row)
        rows.append(row)
    db.session.flush()
    logger.info("Initialized %d level-1 stages for project=%s", len(rows), project_id)
    return rows


def apply_template_to_project(project_id: int, template_id: int) -> list[ProjectRoadmapStage]:
    """Adopt a roadmap template: create one pending stage per template stage.

    Template stages without a macro-phase fall into the lowest catalogue
    macro-phase. When the project already has stages, the new ones are
    numbered after the highest existing order_index, keeping the
    template's relative order. Stages are created pending; nothing is
    scheduled until ``start_stage`` runs.

    Raises:
        NotFoundError: Project or template missing.
        ValidationError: Template has no stages.
        ConflictError: The template was already applied to this project, or
            a concurrent application took the same order_index.
    """
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)
    template = get_template(template_id)
    if not template.stages:
        raise ValidationError("Template has no stages", details={"template_id": template_id})

    stage_ids = [s.id for s in template.stages]
    already = db.session.execute(
        select(func.count(ProjectRoadmapStage.id)).where(
            ProjectRoadmapStage.project_id == project_id,
            ProjectRoadmapStage.template_stage_id.in_(stage_ids),
        )
    ).scalar() or 0
    if already:
        raise ConflictError("ProjectRoadmapStage", "template_id", str(template_id))

    # a second template goes after the stages the project already has
    current_max = db.session.execute(
        select(func.max(ProjectRoadmapStage.order_index))
        .where(ProjectRoadmapStage.project_id == project_id)
    ).scalar()
    offset = 0
    if current_max is not None:
        offset = current_max - min(s.order_index for s in template.stages) + 1

    try:
        initialize_project_level1_stages(project_id)
        fallback_level1 = db.session.execute(
            select(Level1Stage.id).order_by(Level1Stage.order_index).limit(1)
        ).scalar_one_or_none()

        created = []
        for template_stage in template.stages:
            stage = ProjectRoadmapStage(
                project_id=project_id,
                level1_stage_id=template_stage.level1_stage_id or fallback_level1,
                template_stage_id=template_stage.id,
                name=template_stage.name,
                description=template_stage.description,
                order_index=template_stage.order_index + offset,
                status="pending",
            )
            db.session.add(stage)
            created.append(stage)
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ConflictError(
            "ProjectRoadmapStage", "order_index",
            ",".join(str(s.order_index) for s in created),
        ) from exc
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Applied template=%s to project=%s (%d stages)",
        template_id, project_id, len(created),
    )
    return created
