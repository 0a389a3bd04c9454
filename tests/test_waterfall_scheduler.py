"""
Unit tests for the pure waterfall planning functions.

Covers:
    - Scenario A: two SMM tasks chain, the PM task runs in parallel
    - Per-executor monotonic deadlines and lane independence
    - Default duration, non-positive duration rejection
    - Owner resolution only for tasks with a role
    - Manual path lanes keyed by assignee, ordered by creation time
"""

from datetime import datetime, timedelta, timezone

import pytest

from roadmap_engine.core.exceptions import ValidationError
from roadmap_engine.models.project import JobRole
from roadmap_engine.models.roadmap import TemplateTask
from roadmap_engine.models.task import Task
from roadmap_engine.services.waterfall_scheduler import (
    UNASSIGNED_EXECUTOR,
    ScheduleResult,
    plan_manual_tasks,
    plan_template_tasks,
    resolve_duration,
)

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
DAY = timedelta(days=1)


def _smm():
    return JobRole(id=1, code="smm", name="SMM")


def _pm():
    return JobRole(id=2, code="pm", name="PM")


def _tt(order, title, role=None, duration=None):
    return TemplateTask(
        title=title,
        order_index=order,
        job_role=role,
        job_role_id=role.id if role else None,
        duration_days=duration,
    )


def _task(task_id, assignee=None, duration=None, offset_min=0):
    return Task(
        id=task_id,
        title=f"Task {task_id}",
        assignee_id=assignee,
        duration_days=duration,
        created_at=T0 - timedelta(days=10) + timedelta(minutes=offset_min),
    )


def _by_title(units):
    return {u.template_task.title: u for u in units}


class TestTemplatePlanning:
    def test_scenario_a_parallel_lanes(self):
        units = plan_template_tasks(
            [_tt(1, "SMM-A", _smm(), 1), _tt(2, "SMM-B", _smm(), 1), _tt(3, "PM-C", _pm(), 3)],
            T0,
        )
        by_title = _by_title(units)
        assert by_title["SMM-A"].deadline == T0 + 1 * DAY
        assert by_title["SMM-B"].deadline == T0 + 2 * DAY
        assert by_title["PM-C"].deadline == T0 + 3 * DAY

    def test_processing_follows_order_index_not_input_order(self):
        units = plan_template_tasks(
            [_tt(3, "third", _smm(), 1), _tt(1, "first", _smm(), 2), _tt(2, "second", _smm(), 4)],
            T0,
        )
        assert [u.template_task.title for u in units] == ["first", "second", "third"]
        assert [u.deadline for u in units] == [T0 + 2 * DAY, T0 + 6 * DAY, T0 + 7 * DAY]

    def test_same_lane_deadlines_non_decreasing(self):
        tasks = [_tt(i, f"t{i}", _smm(), d) for i, d in enumerate([2, 1, 5, 1, 3], start=1)]
        deadlines = [u.deadline for u in plan_template_tasks(tasks, T0)]
        assert deadlines == sorted(deadlines)
        assert deadlines[-1] == T0 + 12 * DAY

    def test_changing_one_lane_leaves_other_lane_untouched(self):
        base = [_tt(1, "s1", _smm(), 1), _tt(2, "p1", _pm(), 2), _tt(3, "s2", _smm(), 1), _tt(4, "p2", _pm(), 2)]
        longer_smm = [_tt(1, "s1", _smm(), 9), _tt(2, "p1", _pm(), 2), _tt(3, "s2", _smm(), 9), _tt(4, "p2", _pm(), 2)]

        before = _by_title(plan_template_tasks(base, T0))
        after = _by_title(plan_template_tasks(longer_smm, T0))

        assert before["p1"].deadline == after["p1"].deadline == T0 + 2 * DAY
        assert before["p2"].deadline == after["p2"].deadline == T0 + 4 * DAY
        assert after["s2"].deadline == T0 + 18 * DAY

    def test_tasks_without_role_share_unassigned_lane(self):
        units = plan_template_tasks([_tt(1, "a"), _tt(2, "b", duration=1)], T0)
        assert {u.executor_key for u in units} == {UNASSIGNED_EXECUTOR}
        assert units[0].deadline == T0 + 3 * DAY
        assert units[1].deadline == T0 + 4 * DAY

    def test_missing_duration_defaults_to_three_days(self):
        units = plan_template_tasks([_tt(1, "x", _pm())], T0)
        assert units[0].duration_days == 3
        assert units[0].deadline == T0 + 3 * DAY

    def test_custom_default_duration(self):
        units = plan_template_tasks([_tt(1, "x", _pm())], T0, default_duration=5)
        assert units[0].deadline == T0 + 5 * DAY

    def test_empty_input_is_noop(self):
        assert plan_template_tasks([], T0) == []

    def test_owner_resolved_only_for_roles(self):
        calls = []

        def resolver(role_id):
            calls.append(role_id)
            return 700 if role_id == _pm().id else None

        units = plan_template_tasks(
            [_tt(1, "pm task", _pm(), 1), _tt(2, "smm task", _smm(), 1), _tt(3, "free task", None, 1)],
            T0,
            resolve_owner=resolver,
        )
        by_title = _by_title(units)
        assert calls == [_pm().id, _smm().id]
        assert by_title["pm task"].assignee_id == 700
        assert by_title["pm task"].auto_assigned is True
        assert by_title["smm task"].assignee_id is None
        assert by_title["smm task"].auto_assigned is False
        assert by_title["free task"].auto_assigned is False

    def test_lane_key_is_role_even_when_owner_missing(self):
        units = plan_template_tasks([_tt(1, "x", _smm(), 1)], T0, resolve_owner=lambda _: None)
        assert units[0].executor_key == "smm"


class TestManualPlanning:
    def test_lanes_keyed_by_assignee_in_creation_order(self):
        tasks = [
            _task(1, assignee=10, duration=2, offset_min=0),
            _task(2, assignee=20, duration=1, offset_min=1),
            _task(3, assignee=10, duration=1, offset_min=2),
            _task(4, assignee=None, duration=None, offset_min=3),
        ]
        units = {u.task.id: u for u in plan_manual_tasks(reversed(tasks), T0)}

        assert units[1].deadline == T0 + 2 * DAY
        assert units[3].deadline == T0 + 3 * DAY
        assert units[2].deadline == T0 + 1 * DAY
        assert units[4].deadline == T0 + 3 * DAY
        assert units[4].executor_key == UNASSIGNED_EXECUTOR
        assert units[1].executor_key == "10"

    def test_same_created_at_breaks_tie_by_id(self):
        a = _task(5, assignee=1, duration=1)
        b = _task(4, assignee=1, duration=2)
        units = plan_manual_tasks([a, b], T0)
        assert [u.task.id for u in units] == [4, 5]
        assert units[1].deadline == T0 + 3 * DAY

    def test_replanning_is_deterministic(self):
        tasks = [_task(i, assignee=i % 2, duration=i, offset_min=i) for i in range(1, 6)]
        first = [(u.task.id, u.deadline) for u in plan_manual_tasks(tasks, T0)]
        second = [(u.task.id, u.deadline) for u in plan_manual_tasks(tasks, T0)]
        assert first == second


class TestDurationAndResult:
    @pytest.mark.parametrize("bad", [0, -1])
    def test_non_positive_duration_rejected(self, bad):
        with pytest.raises(ValidationError):
            resolve_duration(bad)

    def test_non_positive_duration_aborts_planning(self):
        with pytest.raises(ValidationError):
            plan_template_tasks([_tt(1, "ok", _smm(), 1), _tt(2, "bad", _smm(), 0)], T0)

    def test_effective_end_is_max_across_lanes(self):
        units = plan_template_tasks(
            [_tt(1, "SMM-A", _smm(), 1), _tt(2, "SMM-B", _smm(), 1), _tt(3, "PM-C", _pm(), 3)],
            T0,
        )
        result = ScheduleResult(stage_id=1, started_at=T0, units=units)
        assert result.effective_end == T0 + 3 * DAY
        assert result.lanes == {"smm": T0 + 2 * DAY, "pm": T0 + 3 * DAY}

    def test_effective_end_empty(self):
        assert ScheduleResult(stage_id=1, started_at=T0).effective_end is None
