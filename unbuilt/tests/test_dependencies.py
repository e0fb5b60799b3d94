"""Tests for the task prerequisite graph."""

import uuid

import pytest

from unbuilt.core.errors import ConflictError, NotFoundError, ValidationFailed
from unbuilt.core.models import TaskStatus
from unbuilt.services import DependencyService, PlanService, TaskService
from unbuilt.services.dependencies import find_cycle


@pytest.fixture
def tasks(db_session, plan, user):
    return TaskService(db_session).list_tasks_by_plan(plan.id, user.id)


@pytest.fixture
def deps(db_session):
    return DependencyService(db_session)


class TestFindCycle:
    """Tests for the depth-first cycle search."""

    def test_no_cycle(self):
        """A chain has no cycle."""
        a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        assert find_cycle({a: [b], b: [c], c: []}, a) == []

    def test_cycle_path_starts_and_ends_with_repeated_node(self):
        """The returned path closes on itself."""
        a, b, c = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
        cycle = find_cycle({a: [b], b: [c], c: [a]}, a)

        assert cycle[0] == cycle[-1] == a
        assert set(cycle) == {a, b, c}

    def test_diamond_is_not_a_cycle(self):
        """Two paths to the same node are fine."""
        a, b, c, d = (uuid.uuid4() for _ in range(4))
        assert find_cycle({a: [b, c], b: [d], c: [d], d: []}, a) == []


class TestAddDependency:
    """Tests for adding prerequisite edges."""

    def test_add_and_read_back(self, deps, tasks, user):
        """Edges are visible from both ends."""
        deps.add_dependency(tasks[1].id, tasks[0].id, user.id)

        assert deps.get_prerequisites(tasks[1].id, user.id) == [tasks[0].id]
        assert deps.get_dependents(tasks[0].id, user.id) == [tasks[1].id]

    def test_self_dependency_rejected(self, deps, tasks, user):
        """A task cannot depend on itself."""
        with pytest.raises(ValidationFailed):
            deps.add_dependency(tasks[0].id, tasks[0].id, user.id)

    def test_duplicate_rejected(self, deps, tasks, user):
        """The same edge cannot be added twice."""
        deps.add_dependency(tasks[1].id, tasks[0].id, user.id)

        with pytest.raises(ConflictError):
            deps.add_dependency(tasks[1].id, tasks[0].id, user.id)

    def test_two_node_cycle_rejected(self, deps, tasks, user):
        """Reversing an existing edge would close a cycle."""
        deps.add_dependency(tasks[1].id, tasks[0].id, user.id)

        with pytest.raises(ValidationFailed) as exc_info:
            deps.add_dependency(tasks[0].id, tasks[1].id, user.id)

        assert exc_info.value.details["circular_dependencies"]

    def test_three_node_cycle_rejected(self, deps, tasks, user):
        """Longer cycles are caught as well."""
        a, b, c = tasks[0], tasks[1], tasks[2]
        deps.add_dependency(b.id, a.id, user.id)
        deps.add_dependency(c.id, b.id, user.id)

        with pytest.raises(ValidationFailed):
            deps.add_dependency(a.id, c.id, user.id)

    def test_cross_plan_rejected(self, db_session, deps, tasks, user, make_search):
        """Both tasks must belong to the same plan."""
        other_search = make_search(user, query="second idea")
        other_plan = PlanService(db_session).create_plan(user.id, other_search.id, "Other plan")
        other_task = TaskService(db_session).list_tasks_by_plan(other_plan.id, user.id)[0]

        with pytest.raises(ValidationFailed):
            deps.add_dependency(tasks[0].id, other_task.id, user.id)

    def test_foreign_user_cannot_link(self, deps, tasks, make_user):
        """Tasks in someone else's plan look missing."""
        stranger = make_user()
        with pytest.raises(NotFoundError):
            deps.add_dependency(tasks[1].id, tasks[0].id, stranger.id)


class TestBlocking:
    """Tests for blocked and ready tasks."""

    def test_blocked_until_prerequisite_completed(self, db_session, deps, tasks, user):
        """A task with an open prerequisite is blocked."""
        deps.add_dependency(tasks[1].id, tasks[0].id, user.id)
        assert deps.is_task_blocked(tasks[1].id, user.id) is True

        TaskService(db_session).update_task_status(tasks[0].id, user.id, TaskStatus.COMPLETED)

        assert deps.is_task_blocked(tasks[1].id, user.id) is False

    def test_skipped_prerequisite_still_blocks(self, db_session, deps, tasks, user):
        """Only completion unblocks dependents."""
        deps.add_dependency(tasks[1].id, tasks[0].id, user.id)
        TaskService(db_session).update_task_status(tasks[0].id, user.id, TaskStatus.SKIPPED)

        assert deps.is_task_blocked(tasks[1].id, user.id) is True

    def test_ready_tasks_exclude_blocked(self, deps, tasks, plan, user):
        """Ready tasks are not started and unblocked."""
        deps.add_dependency(tasks[1].id, tasks[0].id, user.id)

        ready = deps.get_ready_tasks(plan.id, user.id)

        assert tasks[0].id in ready
        assert tasks[1].id not in ready

    def test_plan_dependency_map(self, deps, tasks, plan, user):
        """Every task appears in the map, edges on both ends."""
        deps.add_dependency(tasks[2].id, tasks[0].id, user.id)

        graph = deps.get_plan_dependencies(plan.id, user.id)

        assert len(graph) == len(tasks)
        assert graph[tasks[2].id]["prerequisites"] == [tasks[0].id]
        assert graph[tasks[0].id]["dependents"] == [tasks[2].id]

    def test_remove_dependency(self, deps, tasks, user):
        """Removing the edge unblocks the task."""
        dependency = deps.add_dependency(tasks[1].id, tasks[0].id, user.id)

        deps.remove_dependency(dependency.id, user.id)

        assert deps.get_prerequisites(tasks[1].id, user.id) == []
