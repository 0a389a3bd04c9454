"""
Template Repository tests.

Covers:
    - list_template_tasks ordering and not-found
    - list_planned_tasks for template and manual stages
    - Level-1 catalogue seed and per-project initialisation
    - apply_template_to_project: pending stages, macro-phase fallback,
      duplicate application, empty template, numbering after existing stages
"""

from datetime import datetime, timedelta, timezone

import pytest

from roadmap_engine.core.exceptions import ConflictError, NotFoundError, ValidationError
from roadmap_engine.models import db
from roadmap_engine.models.roadmap import (
    Level1Stage,
    ProjectLevel1StageStatus,
    ProjectRoadmapStage,
    RoadmapTemplate,
    TemplateStage,
    TemplateTask,
)
from roadmap_engine.services.roadmap_template_service import (
    apply_template_to_project,
    initialize_project_level1_stages,
    list_planned_tasks,
    list_template_tasks,
    seed_default_level1_stages,
)
from roadmap_engine.services.stage_activation_service import complete_stage, start_stage
from roadmap_engine.utils.helpers import ensure_utc

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
DAY = timedelta(days=1)


def _make_template(stage_specs):
    """stage_specs: list of (name, order_index, level1 | None, [task titles])."""
    template = RoadmapTemplate(name="Product launch")
    db.session.add(template)
    db.session.flush()
    for name, order_index, level1, titles in stage_specs:
        ts = TemplateStage(
            template_id=template.id, name=name, order_index=order_index,
            level1_stage_id=level1.id if level1 else None,
        )
        db.session.add(ts)
        db.session.flush()
        for i, title in enumerate(titles, start=1):
            db.session.add(TemplateTask(stage_id=ts.id, title=title, order_index=i))
    db.session.commit()
    return template


class TestTemplateTasks:
    def test_ordered_by_order_index(self):
        template = RoadmapTemplate(name="T")
        db.session.add(template)
        db.session.flush()
        ts = TemplateStage(template_id=template.id, name="S", order_index=1)
        db.session.add(ts)
        db.session.flush()
        for order, title in [(3, "c"), (1, "a"), (2, "b")]:
            db.session.add(TemplateTask(stage_id=ts.id, title=title, order_index=order))
        db.session.commit()

        assert [t.title for t in list_template_tasks(ts.id)] == ["a", "b", "c"]

    def test_missing_template_stage(self):
        with pytest.raises(NotFoundError):
            list_template_tasks(404)

    def test_planned_tasks_for_template_stage(self, project):
        template = _make_template([("Prep", 1, None, ["brief", "budget"])])
        stage = ProjectRoadmapStage(
            project_id=project.id, template_stage_id=template.stages[0].id, name="Prep",
        )
        db.session.add(stage)
        db.session.commit()

        assert [t.title for t in list_planned_tasks(stage.id)] == ["brief", "budget"]

    def test_planned_tasks_for_manual_stage_is_empty(self, project):
        stage = ProjectRoadmapStage(project_id=project.id, name="Ad-hoc")
        db.session.add(stage)
        db.session.commit()
        assert list_planned_tasks(stage.id) == []

    def test_planned_tasks_missing_stage(self):
        with pytest.raises(NotFoundError):
            list_planned_tasks(404)


class TestLevel1Initialisation:
    def test_seed_is_idempotent(self):
        assert seed_default_level1_stages() == 4
        db.session.commit()
        assert seed_default_level1_stages() == 0
        names = [s.name for s in Level1Stage.query.order_by(Level1Stage.order_index)]
        assert names == ["Preparation", "Production", "Launch", "Final"]

    def test_first_active_rest_locked(self, project, level1_catalogue):
        rows = initialize_project_level1_stages(project.id, now=T0)
        db.session.commit()

        assert [r.status for r in rows] == ["active", "locked", "locked", "locked"]
        assert ensure_utc(rows[0].started_at) == T0
        assert all(r.started_at is None for r in rows[1:])

    def test_second_call_returns_existing(self, project, level1_catalogue):
        initialize_project_level1_stages(project.id, now=T0)
        db.session.commit()
        again = initialize_project_level1_stages(project.id)
        assert len(again) == 4
        assert ProjectLevel1StageStatus.query.filter_by(project_id=project.id).count() == 4


class TestApplyTemplate:
    def test_creates_pending_stages(self, project, level1_catalogue):
        prep, production = level1_catalogue[0], level1_catalogue[1]
        template = _make_template([
            ("Research", 1, prep, ["interviews"]),
            ("Shoot", 2, production, ["storyboard", "shoot"]),
            ("Loose", 3, None, []),
        ])

        stages = apply_template_to_project(project.id, template.id)

        assert [s.status for s in stages] == ["pending", "pending", "pending"]
        assert [s.level1_stage_id for s in stages] == [prep.id, production.id, prep.id]
        assert [s.order_index for s in stages] == [1, 2, 3]
        assert all(s.started_at is None for s in stages)
        statuses = ProjectLevel1StageStatus.query.filter_by(project_id=project.id).all()
        assert len(statuses) == 4

    def test_applying_twice_conflicts(self, project, level1_catalogue):
        template = _make_template([("Research", 1, None, ["interviews"])])
        apply_template_to_project(project.id, template.id)

        with pytest.raises(ConflictError):
            apply_template_to_project(project.id, template.id)
        assert ProjectRoadmapStage.query.filter_by(project_id=project.id).count() == 1

    def test_empty_template_rejected(self, project):
        template = RoadmapTemplate(name="Empty")
        db.session.add(template)
        db.session.commit()
        with pytest.raises(ValidationError):
            apply_template_to_project(project.id, template.id)

    def test_missing_project_or_template(self, project):
        template = _make_template([("Research", 1, None, [])])
        with pytest.raises(NotFoundError):
            apply_template_to_project(999, template.id)
        with pytest.raises(NotFoundError):
            apply_template_to_project(project.id, 999)

    def test_second_template_numbered_after_existing_stages(self, project, level1_catalogue):
        prep = level1_catalogue[0]
        first = _make_template([("A-1", 1, prep, ["a"]), ("A-2", 2, prep, [])])
        second = _make_template([("B-1", 1, prep, ["b"]), ("B-2", 2, prep, [])])

        apply_template_to_project(project.id, first.id)
        stages = apply_template_to_project(project.id, second.id)

        assert [(s.name, s.order_index) for s in stages] == [("B-1", 3), ("B-2", 4)]
        indices = [s.order_index for s in ProjectRoadmapStage.query.filter_by(project_id=project.id)]
        assert sorted(indices) == [1, 2, 3, 4]

    def test_completion_advances_into_second_template(self, project, level1_catalogue):
        prep = level1_catalogue[0]
        first = _make_template([("A-1", 1, prep, ["a"])])
        second = _make_template([("B-1", 1, prep, ["b"])])
        (a1,) = apply_template_to_project(project.id, first.id)
        (b1,) = apply_template_to_project(project.id, second.id)
        a1_id, b1_id = a1.id, b1.id

        start_stage(a1_id, now=T0)
        result = complete_stage(a1_id, now=T0 + DAY)

        assert result.next_stage.id == b1_id
        assert result.message == "Stage completed and next stage activated"
        started = db.session.get(ProjectRoadmapStage, b1_id)
        assert started.status == "active"
        assert ensure_utc(started.started_at) == T0 + DAY
