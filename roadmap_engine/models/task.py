"""
Roadmap Engine
Task model — concrete work items generated or rescheduled by stage activation.
"""

from datetime import datetime, timezone

from roadmap_engine.models import db
from roadmap_engine.utils.helpers import iso_utc


# ── Constants ────────────────────────────────────────────────────────────────

TASK_STATUSES = {"todo", "in_progress", "review", "done", "approved", "archived"}
TASK_PRIORITIES = {"low", "medium", "high", "critical"}

# A stage counts as finished once every task is in one of these.
FINISHED_TASK_STATUSES = frozenset({"done", "approved", "archived"})

TASK_TRANSITIONS = {
    "todo":        ["in_progress", "archived"],
    "in_progress": ["review", "done", "todo", "archived"],
    "review":      ["done", "in_progress", "archived"],
    # done is terminal for work; only sign-off or archiving follow
    "done":        ["approved", "archived"],
    "approved":    ["archived"],
    "archived":    [],
}


def validate_task_transition(old_status, new_status):
    """Return True if Task status transition is valid."""
    return new_status in TASK_TRANSITIONS.get(old_status, [])


class Task(db.Model):
    """Work item owned by a roadmap stage."""

    __tablename__ = "tasks"
    __table_args__ = (
        # NULL template_task_id (manual tasks) never collides.
        db.UniqueConstraint("stage_id", "template_task_id", name="uq_tasks_stage_template_task"),
        db.Index("ix_tasks_stage_created", "stage_id", "created_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    stage_id = db.Column(
        db.Integer,
        db.ForeignKey("project_roadmap_stages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    template_task_id = db.Column(
        db.Integer,
        db.ForeignKey("roadmap_template_tasks.id", ondelete="SET NULL"),
        nullable=True,
        comment="Template row this task was instantiated from",
    )
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True, default="")
    tags = db.Column(db.JSON, nullable=True, default=list)
    estimated_hours = db.Column(db.Float, nullable=True)
    duration_days = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="todo",
                       comment="todo | in_progress | review | done | approved | archived")
    priority = db.Column(db.String(20), nullable=False, default="medium",
                         comment="low | medium | high | critical")
    assignee_id = db.Column(db.Integer, nullable=True, index=True)
    auto_assigned = db.Column(db.Boolean, nullable=False, default=False)
    deadline = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "stage_id": self.stage_id,
            "template_task_id": self.template_task_id,
            "title": self.title,
            "description": self.description,
            "tags": list(self.tags or []),
            "estimated_hours": self.estimated_hours,
            "duration_days": self.duration_days,
            "status": self.status,
            "priority": self.priority,
            "assignee_id": self.assignee_id,
            "auto_assigned": self.auto_assigned,
            "deadline": iso_utc(self.deadline),
            "completed_at": iso_utc(self.completed_at),
            "created_at": iso_utc(self.created_at),
        }

    def __repr__(self):
        return f"<Task {self.id}: {self.title[:40]} [{self.status}]>"
