"""Tests for task operations and their history."""

import uuid

import pytest

from unbuilt.core.errors import NotFoundError, ValidationFailed
from unbuilt.core.models import HistoryAction, TaskStatus
from unbuilt.services import DependencyService, TaskService


@pytest.fixture
def service(db_session):
    return TaskService(db_session)


@pytest.fixture
def first_phase(plan):
    return plan.phases[0]


class TestCreateTask:
    """Tests for adding tasks."""

    def test_appends_after_existing_tasks(self, service, first_phase, user):
        """Without an explicit order the task goes last."""
        existing = len(first_phase.tasks)
        task = service.create_task(first_phase.id, user.id, "Write survey")

        assert task.order == existing
        assert task.is_custom is True
        assert task.status == TaskStatus.NOT_STARTED
        assert task.plan_id == first_phase.plan_id

    def test_records_created_history(self, service, first_phase, user):
        """Creation is written to the audit trail."""
        task = service.create_task(first_phase.id, user.id, "Write survey")

        history = service.get_task_history(task.id, user.id)
        assert [h.action for h in history] == [HistoryAction.CREATED]
        assert history[0].previous_state is None
        assert history[0].new_state["title"] == "Write survey"

    def test_unknown_phase(self, service, user, plan):
        """Creating in another user's phase fails."""
        with pytest.raises(NotFoundError):
            service.create_task(uuid.uuid4(), user.id, "Nope")


class TestUpdateTask:
    """Tests for editing tasks."""

    def test_update_marks_custom(self, service, first_phase, user):
        """Edits flag generated tasks as customized."""
        task = first_phase.tasks[0]
        assert task.is_custom is False

        updated = service.update_task(task.id, user.id, {"title": "Interview 20 customers"})

        assert updated.title == "Interview 20 customers"
        assert updated.is_custom is True

    def test_update_rejects_unknown_fields(self, service, first_phase, user):
        """Status changes go through the status operation."""
        with pytest.raises(ValidationFailed):
            service.update_task(first_phase.tasks[0].id, user.id, {"status": "completed"})

    def test_update_history_keeps_previous_state(self, service, first_phase, user):
        """The history row holds before and after snapshots."""
        task = first_phase.tasks[0]
        original_title = task.title

        service.update_task(task.id, user.id, {"title": "Changed"})

        latest = service.get_task_history(task.id, user.id)[0]
        assert latest.action == HistoryAction.UPDATED
        assert latest.previous_state["title"] == original_title
        assert latest.new_state["title"] == "Changed"


class TestUpdateStatus:
    """Tests for status transitions."""

    def test_complete_sets_completion_fields(self, service, first_phase, user):
        """Completing stamps who and when."""
        task = service.update_task_status(first_phase.tasks[0].id, user.id, TaskStatus.COMPLETED)

        assert task.completed_at is not None
        assert task.completed_by == user.id

    def test_reopen_clears_completion_fields(self, service, first_phase, user):
        """Moving away from completed clears who and when."""
        task_id = first_phase.tasks[0].id
        service.update_task_status(task_id, user.id, TaskStatus.COMPLETED)

        task = service.update_task_status(task_id, user.id, TaskStatus.IN_PROGRESS)

        assert task.completed_at is None
        assert task.completed_by is None

    def test_history_action_matches_status(self, service, first_phase, user):
        """Completed and skipped get their own history actions."""
        a, b = first_phase.tasks[0], first_phase.tasks[1]
        service.update_task_status(a.id, user.id, TaskStatus.COMPLETED)
        service.update_task_status(b.id, user.id, TaskStatus.SKIPPED)

        assert service.get_task_history(a.id, user.id)[0].action == HistoryAction.COMPLETED
        assert service.get_task_history(b.id, user.id)[0].action == HistoryAction.SKIPPED

    def test_blocked_task_cannot_start(self, db_session, service, first_phase, user):
        """Incomplete prerequisites block starting or completing."""
        a, b = first_phase.tasks[0], first_phase.tasks[1]
        DependencyService(db_session).add_dependency(b.id, a.id, user.id)

        with pytest.raises(ValidationFailed) as exc_info:
            service.update_task_status(b.id, user.id, TaskStatus.IN_PROGRESS)

        blockers = exc_info.value.details["incomplete_prerequisites"]
        assert blockers == [{"id": str(a.id), "title": a.title}]

    def test_blocked_task_can_be_skipped(self, db_session, service, first_phase, user):
        """Skipping is allowed while blocked."""
        a, b = first_phase.tasks[0], first_phase.tasks[1]
        DependencyService(db_session).add_dependency(b.id, a.id, user.id)

        task = service.update_task_status(b.id, user.id, TaskStatus.SKIPPED)

        assert task.status == TaskStatus.SKIPPED

    def test_override_is_recorded(self, db_session, service, first_phase, user):
        """An override bypasses the block and is noted in history."""
        a, b = first_phase.tasks[0], first_phase.tasks[1]
        DependencyService(db_session).add_dependency(b.id, a.id, user.id)

        service.update_task_status(b.id, user.id, TaskStatus.COMPLETED, override_prerequisites=True)

        latest = service.get_task_history(b.id, user.id)[0]
        assert latest.new_state["override_prerequisites"] is True

    def test_bulk_update(self, service, first_phase, user):
        """Bulk updates apply to every listed task."""
        ids = [t.id for t in first_phase.tasks]

        updated = service.bulk_update_status(ids, user.id, TaskStatus.IN_PROGRESS)

        assert {t.status for t in updated} == {TaskStatus.IN_PROGRESS}


class TestReorderAndDelete:
    """Tests for reordering and deleting tasks."""

    def test_reorder_listed_first(self, service, first_phase, user):
        """Listed tasks take the first slots, the rest keep their relative order."""
        a, b, c = [t.id for t in first_phase.tasks]

        result = service.reorder_tasks(first_phase.id, user.id, [c])

        assert [t.id for t in result] == [c, a, b]
        assert [t.order for t in result] == [0, 1, 2]

    def test_reorder_rejects_foreign_task(self, service, plan, user):
        """Tasks from another phase cannot be reordered here."""
        other_task = plan.phases[1].tasks[0]
        with pytest.raises(ValidationFailed):
            service.reorder_tasks(plan.phases[0].id, user.id, [other_task.id])

    def test_delete_removes_edges(self, db_session, service, first_phase, user):
        """Deleting a task drops its dependency edges."""
        deps = DependencyService(db_session)
        a, b = first_phase.tasks[0], first_phase.tasks[1]
        deps.add_dependency(b.id, a.id, user.id)

        service.delete_task(a.id, user.id)

        assert deps.get_prerequisites(b.id, user.id) == []
        with pytest.raises(NotFoundError):
            service.get_task(a.id, user.id)

    def test_filter_by_status(self, service, plan, first_phase, user):
        """Plan task listing filters by status."""
        service.update_task_status(first_phase.tasks[0].id, user.id, TaskStatus.COMPLETED)

        completed = service.list_tasks_by_plan(plan.id, user.id, TaskStatus.COMPLETED)

        assert [t.id for t in completed] == [first_phase.tasks[0].id]
