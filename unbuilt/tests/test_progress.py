"""Tests for progress tracking."""

import pytest
from datetime import datetime, timedelta

from unbuilt.core.models import PlanTask, TaskStatus
from unbuilt.services import ProgressService, TaskService
from unbuilt.services.progress import (
    average_task_hours,
    calculate_velocity,
    estimate_completion,
    parse_estimated_duration,
    percent_complete,
    round_half_up,
)


NOW = datetime(2025, 6, 30, 12, 0)


def completed_task(days_ago: float, hours_taken: float = 24) -> PlanTask:
    done = NOW - timedelta(days=days_ago)
    return PlanTask(
        title="t",
        order=0,
        status=TaskStatus.COMPLETED,
        created_at=done - timedelta(hours=hours_taken),
        completed_at=done,
    )


class TestDurationParsing:
    """Tests for estimated duration strings."""

    @pytest.mark.parametrize("text,days", [
        ("2 weeks", 14),
        ("1 week", 7),
        ("3 days", 3),
        ("2 months", 60),
        ("About 4 Weeks", 28),
    ])
    def test_known_units(self, text, days):
        assert parse_estimated_duration(text) == days

    def test_unknown_formats(self):
        """Unparseable or missing durations give None."""
        assert parse_estimated_duration("soon") is None
        assert parse_estimated_duration(None) is None


class TestRounding:
    """Tests for half-up rounding of reported numbers."""

    @pytest.mark.parametrize("value,expected", [(12.5, 13), (6.5, 7), (2.5, 3), (2.4, 2), (0, 0)])
    def test_halves_round_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_one_decimal(self):
        assert round_half_up(0.25, 1) == 0.3
        assert round_half_up(1.04, 1) == 1.0

    def test_percent_complete(self):
        assert percent_complete(1, 8) == 13
        assert percent_complete(0, 0) == 0


class TestVelocity:
    """Tests for velocity and completion estimates."""

    def test_no_completions(self):
        """Without recent completions velocity is zero."""
        assert calculate_velocity([], NOW) == 0.0
        assert calculate_velocity([completed_task(45)], NOW) == 0.0

    def test_tasks_per_week(self):
        """Four completions spread over two weeks give two per week."""
        tasks = [completed_task(d) for d in (14, 10, 5, 1)]
        assert calculate_velocity(tasks, NOW) == 2.0

    def test_burst_counts_raw(self):
        """Completions within a few hours count as-is."""
        tasks = [completed_task(0.01), completed_task(0.02)]
        assert calculate_velocity(tasks, NOW) == 2.0

    def test_estimate_completion(self):
        """Remaining work divided by weekly velocity, rounded up to days."""
        assert estimate_completion(3, 2.0, NOW) == NOW + timedelta(days=11)
        assert estimate_completion(0, 2.0, NOW) is None
        assert estimate_completion(3, 0.0, NOW) is None

    def test_average_task_hours(self):
        """Average time from creation to completion."""
        tasks = [completed_task(1, hours_taken=10), completed_task(2, hours_taken=20)]
        assert average_task_hours(tasks) == 15
        assert average_task_hours([]) == 0.0


class TestProgressService:
    """Tests for plan-level progress."""

    def test_fresh_plan(self, db_session, plan, user):
        """A new plan has nothing done and starts in its first phase."""
        progress = ProgressService(db_session).calculate_progress(plan.id, user.id)

        assert progress["total_tasks"] == 10
        assert progress["completion_percentage"] == 0
        assert progress["current_phase"] == "Research & Validation"
        assert progress["estimated_completion"] is None

    def test_current_phase_advances(self, db_session, plan, user):
        """Once the first phase is closed the next one is current."""
        tasks = TaskService(db_session)
        for task in plan.phases[0].tasks:
            tasks.update_task_status(task.id, user.id, TaskStatus.COMPLETED)

        progress = ProgressService(db_session).calculate_progress(plan.id, user.id)

        assert progress["current_phase"] == "MVP Development"
        assert progress["completed_tasks"] == 3
        assert progress["completion_percentage"] == 30
        assert progress["estimated_completion"] is not None

    def test_one_of_eight_reports_thirteen_percent(self, db_session, plan, user):
        tasks = TaskService(db_session)
        for task in list(plan.phases[3].tasks):
            tasks.delete_task(task.id, user.id)
        tasks.update_task_status(plan.phases[0].tasks[0].id, user.id, TaskStatus.COMPLETED)

        progress = ProgressService(db_session).calculate_progress(plan.id, user.id)

        assert progress["total_tasks"] == 8
        assert progress["completion_percentage"] == 13

    def test_snapshot_once_per_day(self, db_session, plan, user):
        """A snapshot today suppresses another until tomorrow."""
        service = ProgressService(db_session)
        assert service.should_create_snapshot(plan.id) is True

        snapshot = service.create_snapshot(plan.id, user.id)

        assert snapshot.total_tasks == 10
        assert service.should_create_snapshot(plan.id) is False
        assert service.should_create_snapshot(plan.id, now=datetime.utcnow() + timedelta(days=1)) is True
        assert [s.id for s in service.get_progress_history(plan.id, user.id)] == [snapshot.id]

    def test_slow_phases_include_open_work(self, db_session, plan, user):
        """Phases with open tasks are reported."""
        slow = ProgressService(db_session).identify_slow_phases(plan.id, user.id)

        assert len(slow) == 4
        assert slow[0]["is_overdue"] is False

    def test_overdue_phase(self, db_session, plan, user):
        """A phase running past its estimate is flagged overdue."""
        later = datetime.utcnow() + timedelta(days=30)

        slow = ProgressService(db_session).identify_slow_phases(plan.id, user.id, now=later)

        research = next(p for p in slow if p["phase_name"] == "Research & Validation")
        assert research["is_overdue"] is True

    def test_user_summary(self, db_session, plan, user):
        """The summary covers active plans."""
        summary = ProgressService(db_session).get_user_progress_summary(user.id)

        assert summary["active_plans"] == 1
        assert summary["total_tasks"] == 10
        assert summary["overall_completion_percentage"] == 0
