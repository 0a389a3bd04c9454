"""
Project Membership Directory & Auto-Assignment Matcher tests.

Covers:
    - Role code normalisation and idempotent role creation
    - Exact typed-role matching
    - Lowest ProjectMember.id wins ties
    - None for missing role / no match / other project's members
"""

import pytest
from sqlalchemy.exc import IntegrityError

from roadmap_engine.core.exceptions import NotFoundError, ValidationError
from roadmap_engine.models import db
from roadmap_engine.models.project import Project, normalize_role_code
from roadmap_engine.services.membership_service import (
    add_project_member,
    ensure_job_role,
    get_job_role_by_code,
    list_project_members,
    resolve_assignee,
)


def _make_project(code="PRJ-2", name="Other"):
    p = Project(code=code, name=name)
    db.session.add(p)
    db.session.commit()
    return p


@pytest.mark.parametrize("raw", ["Video Editor", " video-editor ", "VIDEO_EDITOR", "video__editor"])
def test_normalize_role_code(raw):
    assert normalize_role_code(raw) == "video_editor"


class TestJobRoles:
    def test_ensure_creates_once(self):
        first = ensure_job_role("SMM Manager")
        second = ensure_job_role("smm_manager", "Ignored")
        db.session.commit()

        assert first.id == second.id
        assert first.code == "smm_manager"
        assert first.name == "SMM Manager"

    def test_lookup_tolerates_formatting_drift(self):
        role = ensure_job_role("pm", "Project Manager")
        db.session.commit()
        assert get_job_role_by_code(" PM ").id == role.id
        assert get_job_role_by_code("unknown") is None
        assert get_job_role_by_code("") is None

    def test_empty_code_rejected(self):
        with pytest.raises(ValidationError):
            ensure_job_role("  --  ")


class TestMembership:
    def test_add_member_requires_project(self):
        with pytest.raises(NotFoundError):
            add_project_member(999, user_id=1)

    def test_user_joins_project_once(self, project):
        add_project_member(project.id, user_id=1)
        db.session.commit()
        with pytest.raises(IntegrityError):
            add_project_member(project.id, user_id=1)
        db.session.rollback()

    def test_list_in_directory_order(self, project):
        for uid in (30, 10, 20):
            add_project_member(project.id, user_id=uid)
        db.session.commit()
        assert [m.user_id for m in list_project_members(project.id)] == [30, 10, 20]


class TestResolveAssignee:
    def test_exact_role_match(self, project):
        editor = ensure_job_role("editor", "Editor")
        pm = ensure_job_role("pm", "PM")
        add_project_member(project.id, user_id=1, job_role_id=pm.id)
        add_project_member(project.id, user_id=2, job_role_id=editor.id)
        db.session.commit()

        assert resolve_assignee(project.id, editor.id) == 2
        assert resolve_assignee(project.id, pm.id) == 1

    def test_lowest_member_id_wins(self, project):
        smm = ensure_job_role("smm", "SMM")
        add_project_member(project.id, user_id=99, job_role_id=smm.id)
        add_project_member(project.id, user_id=3, job_role_id=smm.id)
        db.session.commit()

        assert resolve_assignee(project.id, smm.id) == 99

    def test_no_role_means_no_owner(self, project):
        add_project_member(project.id, user_id=1)
        db.session.commit()
        assert resolve_assignee(project.id, None) is None

    def test_no_matching_member(self, project):
        video = ensure_job_role("videographer", "Videographer")
        pm = ensure_job_role("pm", "PM")
        add_project_member(project.id, user_id=1, job_role_id=pm.id)
        db.session.commit()
        assert resolve_assignee(project.id, video.id) is None

    def test_members_of_other_projects_ignored(self, project):
        other = _make_project()
        pm = ensure_job_role("pm", "PM")
        add_project_member(other.id, user_id=5, job_role_id=pm.id)
        db.session.commit()

        assert resolve_assignee(project.id, pm.id) is None
        assert resolve_assignee(other.id, pm.id) == 5
