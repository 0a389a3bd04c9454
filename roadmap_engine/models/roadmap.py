"""
Roadmap Engine
Roadmap template & stage hierarchy models.

Models:
    - RoadmapTemplate / TemplateStage / TemplateTask: reusable definitions
    - Level1Stage: catalogue of macro-phases (level 1)
    - ProjectLevel1StageStatus: per-project macro-phase gate
    - ProjectRoadmapStage: per-project concrete phase (level 2) owning tasks

Both per-project state machines move strictly forward:
    level 1:  locked  → active → completed
    level 2:  pending → active → completed
"""

from datetime import datetime, timezone

from roadmap_engine.models import db
from roadmap_engine.utils.helpers import iso_utc


# ── Constants ────────────────────────────────────────────────────────────────

DEFAULT_DURATION_DAYS = 3

STAGE_STATUSES = {"pending", "active", "completed"}
LEVEL1_STATUSES = {"locked", "active", "completed"}

STAGE_TRANSITIONS = {
    "pending":   ["active"],
    "active":    ["completed"],
    "completed": [],
}

LEVEL1_TRANSITIONS = {
    "locked":    ["active"],
    "active":    ["completed"],
    "completed": [],
}


def validate_stage_transition(old_status, new_status):
    """Return True if ProjectRoadmapStage status transition is valid."""
    return new_status in STAGE_TRANSITIONS.get(old_status, [])


def validate_level1_transition(old_status, new_status):
    """Return True if ProjectLevel1StageStatus transition is valid."""
    return new_status in LEVEL1_TRANSITIONS.get(old_status, [])


# ═════════════════════════════════════════════════════════════════════════════
# Templates
# ═════════════════════════════════════════════════════════════════════════════


class RoadmapTemplate(db.Model):
    """Reusable roadmap: an ordered list of stages, each with ordered tasks."""

    __tablename__ = "roadmap_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    stages = db.relationship(
        "TemplateStage", backref="template",
        order_by="TemplateStage.order_index",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_stages=False):
        d = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "created_at": iso_utc(self.created_at),
        }
        if include_stages:
            d["stages"] = [s.to_dict(include_tasks=True) for s in self.stages]
        return d

    def __repr__(self):
        return f"<RoadmapTemplate {self.id}: {self.name}>"


class TemplateStage(db.Model):
    """Stage definition inside a template."""

    __tablename__ = "roadmap_template_stages"
    __table_args__ = (
        db.UniqueConstraint("template_id", "order_index", name="uq_template_stage_order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer,
        db.ForeignKey("roadmap_templates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    level1_stage_id = db.Column(
        db.Integer,
        db.ForeignKey("roadmap_stage_level1.id", ondelete="SET NULL"),
        nullable=True,
        comment="Macro-phase the instantiated stage belongs to",
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    order_index = db.Column(db.Integer, nullable=False)

    tasks = db.relationship(
        "TemplateTask", backref="stage",
        order_by="TemplateTask.order_index",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_tasks=False):
        d = {
            "id": self.id,
            "template_id": self.template_id,
            "level1_stage_id": self.level1_stage_id,
            "name": self.name,
            "description": self.description,
            "order_index": self.order_index,
        }
        if include_tasks:
            d["tasks"] = [t.to_dict() for t in self.tasks]
        return d

    def __repr__(self):
        return f"<TemplateStage {self.id}: {self.name} #{self.order_index}>"


class TemplateTask(db.Model):
    """Abstract work item materialised into a Task when its stage starts."""

    __tablename__ = "roadmap_template_tasks"
    __table_args__ = (
        db.UniqueConstraint("stage_id", "order_index", name="uq_template_task_order"),
        db.CheckConstraint(
            "duration_days IS NULL OR duration_days > 0",
            name="ck_template_task_duration_positive",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    stage_id = db.Column(
        db.Integer,
        db.ForeignKey("roadmap_template_stages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    tags = db.Column(db.JSON, nullable=True)
    job_role_id = db.Column(
        db.Integer,
        db.ForeignKey("job_roles.id", ondelete="SET NULL"),
        nullable=True,
        comment="Required executor role; drives auto-assignment and waterfall lane",
    )
    duration_days = db.Column(db.Integer, nullable=True,
                              comment=f"Working span in days (NULL → {DEFAULT_DURATION_DAYS})")
    estimated_hours = db.Column(db.Float, nullable=True)
    order_index = db.Column(db.Integer, nullable=False)

    job_role = db.relationship("JobRole", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "stage_id": self.stage_id,
            "title": self.title,
            "description": self.description,
            "tags": list(self.tags or []),
            "job_role_id": self.job_role_id,
            "job_role": self.job_role.code if self.job_role else None,
            "duration_days": self.duration_days,
            "estimated_hours": self.estimated_hours,
            "order_index": self.order_index,
        }

    def __repr__(self):
        return f"<TemplateTask {self.id}: {self.title[:40]}>"


# ═════════════════════════════════════════════════════════════════════════════
# Level 1: macro-phases
# ═════════════════════════════════════════════════════════════════════════════


class Level1Stage(db.Model):
    """Global macro-phase catalogue (e.g. Onboarding, Production, Reporting)."""

    __tablename__ = "roadmap_stage_level1"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    order_index = db.Column(db.Integer, nullable=False, unique=True)

    def to_dict(self):
        return {"id": self.id, "name": self.name, "order_index": self.order_index}

    def __repr__(self):
        return f"<Level1Stage {self.id}: {self.name} #{self.order_index}>"


class ProjectLevel1StageStatus(db.Model):
    """Per-project state of a macro-phase."""

    __tablename__ = "project_level1_stage_status"
    __table_args__ = (
        db.UniqueConstraint("project_id", "level1_stage_id", name="uq_level1_status_project_stage"),
        db.UniqueConstraint("project_id", "order_index", name="uq_level1_status_project_order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    level1_stage_id = db.Column(
        db.Integer,
        db.ForeignKey("roadmap_stage_level1.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    order_index = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default="locked",
                       comment="locked | active | completed")
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    level1_stage = db.relationship("Level1Stage", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "level1_stage_id": self.level1_stage_id,
            "name": self.level1_stage.name if self.level1_stage else None,
            "order_index": self.order_index,
            "status": self.status,
            "started_at": iso_utc(self.started_at),
            "completed_at": iso_utc(self.completed_at),
        }

    def __repr__(self):
        return f"<ProjectLevel1StageStatus project={self.project_id} #{self.order_index} [{self.status}]>"


# ═════════════════════════════════════════════════════════════════════════════
# Level 2: concrete roadmap stages
# ═════════════════════════════════════════════════════════════════════════════


class ProjectRoadmapStage(db.Model):
    """
    Concrete phase of a project's roadmap.

    template_stage_id NULL means a manually added stage: its tasks are
    created by hand and only their deadlines are computed on start.
    order_index is unique per project; auto-advance walks it upwards
    within one macro-phase.
    """

    __tablename__ = "project_roadmap_stages"
    __table_args__ = (
        db.UniqueConstraint("project_id", "order_index", name="uq_roadmap_stages_project_order"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    level1_stage_id = db.Column(
        db.Integer,
        db.ForeignKey("roadmap_stage_level1.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    template_stage_id = db.Column(
        db.Integer,
        db.ForeignKey("roadmap_template_stages.id", ondelete="SET NULL"),
        nullable=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    order_index = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | active | completed")
    started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    template_stage = db.relationship("TemplateStage", lazy="select")
    tasks = db.relationship(
        "Task", backref="stage", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    @property
    def is_manual(self):
        return self.template_stage_id is None

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "level1_stage_id": self.level1_stage_id,
            "template_stage_id": self.template_stage_id,
            "name": self.name,
            "description": self.description,
            "order_index": self.order_index,
            "status": self.status,
            "started_at": iso_utc(self.started_at),
            "completed_at": iso_utc(self.completed_at),
        }

    def __repr__(self):
        return f"<ProjectRoadmapStage {self.id}: {self.name} [{self.status}]>"
