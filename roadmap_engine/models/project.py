"""Project anchor, typed job roles and the project membership directory."""

import re
from datetime import datetime, timezone

from roadmap_engine.models import db
from roadmap_engine.utils.helpers import iso_utc


_ROLE_CODE_RE = re.compile(r"[^a-z0-9]+")


def normalize_role_code(value: str) -> str:
    """Canonical role code: lower-case, words joined by underscores.

    "Video Editor", " video-editor " and "VIDEO_EDITOR" all map to
    "video_editor".
    """
    return _ROLE_CODE_RE.sub("_", str(value or "").strip().lower()).strip("_")


class JobRole(db.Model):
    """Typed role identifier referenced by template tasks and project members."""

    __tablename__ = "job_roles"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(100), nullable=False, unique=True,
                     comment="Normalised identifier, e.g. smm_manager")
    name = db.Column(db.String(200), nullable=False,
                     comment="Display label, e.g. SMM Manager")
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict:
        return {"id": self.id, "code": self.code, "name": self.name}

    def __repr__(self) -> str:
        return f"<JobRole {self.id}: {self.code}>"


class Project(db.Model):
    """Execution unit owning roadmap stages, tasks and members."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)
    status = db.Column(db.String(30), nullable=False, default="active")
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    members = db.relationship(
        "ProjectMember", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    roadmap_stages = db.relationship(
        "ProjectRoadmapStage", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )
    level1_statuses = db.relationship(
        "ProjectLevel1StageStatus", backref="project", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "status": self.status,
            "created_at": iso_utc(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.code}>"


class ProjectMember(db.Model):
    """
    Membership directory row: a user working on a project in a given role.

    user_id points at the external identity provider; this engine only
    reads it to fill Task.assignee_id.
    """

    __tablename__ = "project_members"
    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
        db.Index("ix_project_members_project_role", "project_id", "job_role_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = db.Column(db.Integer, nullable=False, index=True)
    job_role_id = db.Column(
        db.Integer,
        db.ForeignKey("job_roles.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    job_role = db.relationship("JobRole", lazy="joined")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "job_role_id": self.job_role_id,
            "job_role": self.job_role.code if self.job_role else None,
        }

    def __repr__(self) -> str:
        return f"<ProjectMember project={self.project_id} user={self.user_id}>"
