"""
Project Membership Directory & Auto-Assignment Matcher.

Business context:
    A template task names the role it needs (e.g. "smm_manager"). When its
    stage starts, the engine looks for a project member holding exactly that
    role and makes them the task owner.

    Matching is exact on the typed role id (``job_roles`` table). Free-text
    job titles are normalised into role codes once, when the role is created
    or looked up, so formatting drift ("SMM manager" vs "smm_manager") cannot
    cause silent mismatches at assignment time.

    When several members share the role, the one with the lowest
    ProjectMember.id wins. No load balancing is attempted.
"""

import logging

from sqlalchemy import select

from roadmap_engine.core.exceptions import NotFoundError, ValidationError
from roadmap_engine.models import db
from roadmap_engine.models.project import JobRole, Project, ProjectMember, normalize_role_code

logger = logging.getLogger(__name__)


# ── Roles ────────────────────────────────────────────────────────────────────


def get_job_role_by_code(code: str) -> JobRole | None:
    """Look up a role by code, after normalisation. Returns None if unknown."""
    normalized = normalize_role_code(code)
    if not normalized:
        return None
    return db.session.execute(
        select(JobRole).where(JobRole.code == normalized)
    ).scalar_one_or_none()


def ensure_job_role(code: str, name: str | None = None) -> JobRole:
    """Return the role for ``code``, creating it if missing.

    Args:
        code: Free-text or code form; normalised before use.
        name: Display label for a newly created role. Defaults to ``code``.

    Raises:
        ValidationError: If ``code`` is empty after normalisation.
    """
    normalized = normalize_role_code(code)
    if not normalized:
        raise ValidationError("Role code is required", details={"code": code})

    role = get_job_role_by_code(normalized)
    if role is None:
        role = JobRole(code=normalized, name=(name or str(code)).strip())
        db.session.add(role)
        db.session.flush()
        logger.info("Created job role %s (id=%s)", role.code, role.id)
    return role


# ── Membership ───────────────────────────────────────────────────────────────


def add_project_member(project_id: int, user_id: int, job_role_id: int | None = None) -> ProjectMember:
    """Add ``user_id`` to a project with an optional role. Flushes, does not commit."""
    if db.session.get(Project, project_id) is None:
        raise NotFoundError(resource="Project", resource_id=project_id)

    member = ProjectMember(project_id=project_id, user_id=user_id, job_role_id=job_role_id)
    db.session.add(member)
    db.session.flush()
    return member


def list_project_members(project_id: int) -> list[ProjectMember]:
    """Members of a project in directory order (ProjectMember.id)."""
    return db.session.execute(
        select(ProjectMember)
        .where(ProjectMember.project_id == project_id)
        .order_by(ProjectMember.id)
    ).scalars().all()


def resolve_assignee(project_id: int, job_role_id: int | None) -> int | None:
    """Return the user who should own work requiring ``job_role_id``.

    Args:
        project_id: Project whose members are searched.
        job_role_id: Required role, or None for tasks without a role.

    Returns:
        user_id of the first matching member (lowest ProjectMember.id), or
        None when the role is None or nobody on the project holds it.
    """
    if job_role_id is None:
        return None

    user_id = db.session.execute(
        select(ProjectMember.user_id)
        .where(
            ProjectMember.project_id == project_id,
            ProjectMember.job_role_id == job_role_id,
        )
        .order_by(ProjectMember.id)
        .limit(1)
    ).scalar_one_or_none()

    if user_id is None:
        logger.debug("No member with role_id=%s on project=%s", job_role_id, project_id)
    return user_id
