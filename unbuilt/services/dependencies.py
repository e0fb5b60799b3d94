"""Task prerequisite graph: edges, cycle detection and blocking checks.

Edges point from a task to its prerequisite. A task is blocked while any
prerequisite is not completed. New edges are rejected when they would close
a cycle in the plan's graph.
"""

from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from unbuilt.core.errors import ConflictError, NotFoundError, ValidationFailed
from unbuilt.core.logging import get_logger
from unbuilt.core.models import ActionPlan, PlanTask, TaskDependency, TaskStatus

logger = get_logger(__name__)


def get_task_with_access(db: Session, task_id: UUID, user_id: UUID) -> Optional[PlanTask]:
    """Load a task only if it belongs to a plan owned by the user."""
    return (
        db.query(PlanTask)
        .join(ActionPlan, PlanTask.plan_id == ActionPlan.id)
        .filter(PlanTask.id == task_id, ActionPlan.user_id == user_id)
        .first()
    )


def find_cycle(graph: Dict[UUID, List[UUID]], start: UUID) -> List[UUID]:
    """Depth-first search from ``start`` along prerequisite edges.

    Returns the cycle as a path that begins and ends with the repeated node,
    or an empty list when no cycle is reachable.
    """
    visited = set()
    on_stack = set()
    path: List[UUID] = []

    def visit(node: UUID) -> bool:
        visited.add(node)
        on_stack.add(node)
        path.append(node)

        for prereq in graph.get(node, []):
            if prereq not in visited:
                if visit(prereq):
                    return True
            elif prereq in on_stack:
                path.append(prereq)
                return True

        on_stack.discard(node)
        path.pop()
        return False

    if visit(start):
        repeated = path[-1]
        return path[path.index(repeated):]
    return []


class DependencyService:
    """Manages prerequisite edges between tasks of one plan."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # Edges
    # =========================================================================

    def add_dependency(self, task_id: UUID, prerequisite_task_id: UUID, user_id: UUID) -> TaskDependency:
        if task_id == prerequisite_task_id:
            raise ValidationFailed("Task cannot depend on itself")

        task = get_task_with_access(self.db, task_id, user_id)
        if not task:
            raise NotFoundError("Task not found or access denied")
        prerequisite = get_task_with_access(self.db, prerequisite_task_id, user_id)
        if not prerequisite:
            raise NotFoundError("Prerequisite task not found or access denied")

        if task.plan_id != prerequisite.plan_id:
            raise ValidationFailed("Tasks must belong to the same plan")

        existing = self.db.query(TaskDependency).filter(
            TaskDependency.task_id == task_id,
            TaskDependency.prerequisite_task_id == prerequisite_task_id,
        ).first()
        if existing:
            raise ConflictError("Dependency already exists")

        validation = self.validate_dependency(task_id, prerequisite_task_id)
        if not validation["is_valid"]:
            logger.info(
                "dependency_rejected",
                task_id=str(task_id),
                prerequisite_task_id=str(prerequisite_task_id),
                errors=validation["errors"],
            )
            raise ValidationFailed(
                f"Cannot add dependency: {', '.join(validation['errors'])}",
                {"circular_dependencies": validation["circular_dependencies"]},
            )

        dependency = TaskDependency(task_id=task_id, prerequisite_task_id=prerequisite_task_id)
        self.db.add(dependency)
        self.db.flush()

        logger.info("dependency_added", task_id=str(task_id), prerequisite_task_id=str(prerequisite_task_id))
        return dependency

    def remove_dependency(self, dependency_id: UUID, user_id: UUID) -> None:
        dependency = self.db.query(TaskDependency).filter(TaskDependency.id == dependency_id).first()
        if not dependency:
            raise NotFoundError("Dependency not found")
        if not get_task_with_access(self.db, dependency.task_id, user_id):
            raise NotFoundError("Dependency not found")

        self.db.delete(dependency)
        self.db.flush()
        logger.info("dependency_removed", dependency_id=str(dependency_id))

    def remove_task_edges(self, task_id: UUID) -> int:
        """Delete every edge touching a task, in both directions."""
        return self.db.query(TaskDependency).filter(or_(
            TaskDependency.task_id == task_id,
            TaskDependency.prerequisite_task_id == task_id,
        )).delete(synchronize_session=False)

    # =========================================================================
    # Validation
    # =========================================================================

    def validate_dependency(self, task_id: UUID, prerequisite_task_id: UUID) -> dict:
        errors = []
        circular = []

        cycle = self.detect_circular_dependency(task_id, prerequisite_task_id)
        if cycle:
            errors.append("Circular dependency detected")
            circular.append([str(node) for node in cycle])

        return {"is_valid": not errors, "errors": errors, "circular_dependencies": circular}

    def detect_circular_dependency(self, task_id: UUID, prerequisite_task_id: UUID) -> List[UUID]:
        """Return the cycle that adding task -> prerequisite would create, if any."""
        task = self.db.query(PlanTask).filter(PlanTask.id == task_id).first()
        if not task:
            return []

        graph = self._prerequisite_graph(task.plan_id)
        graph.setdefault(task_id, []).append(prerequisite_task_id)
        return find_cycle(graph, prerequisite_task_id)

    def _prerequisite_graph(self, plan_id: UUID) -> Dict[UUID, List[UUID]]:
        task_ids = [row.id for row in self.db.query(PlanTask.id).filter(PlanTask.plan_id == plan_id)]
        graph: Dict[UUID, List[UUID]] = {tid: [] for tid in task_ids}
        if not task_ids:
            return graph

        edges = self.db.query(TaskDependency).filter(TaskDependency.task_id.in_(task_ids)).all()
        for edge in edges:
            graph.setdefault(edge.task_id, []).append(edge.prerequisite_task_id)
        return graph

    # =========================================================================
    # Queries
    # =========================================================================

    def _require_task(self, task_id: UUID, user_id: UUID) -> PlanTask:
        task = get_task_with_access(self.db, task_id, user_id)
        if not task:
            raise NotFoundError("Task not found or access denied")
        return task

    def get_prerequisites(self, task_id: UUID, user_id: UUID) -> List[UUID]:
        self._require_task(task_id, user_id)
        rows = self.db.query(TaskDependency.prerequisite_task_id).filter(TaskDependency.task_id == task_id)
        return [row.prerequisite_task_id for row in rows]

    def get_dependents(self, task_id: UUID, user_id: UUID) -> List[UUID]:
        self._require_task(task_id, user_id)
        rows = self.db.query(TaskDependency.task_id).filter(TaskDependency.prerequisite_task_id == task_id)
        return [row.task_id for row in rows]

    def get_task_dependencies(self, task_id: UUID, user_id: UUID) -> dict:
        return {
            "prerequisites": self.get_prerequisites(task_id, user_id),
            "dependents": self.get_dependents(task_id, user_id),
        }

    def get_plan_dependencies(self, plan_id: UUID, user_id: UUID) -> Dict[UUID, dict]:
        """Map every task in a plan to its prerequisites and dependents."""
        plan = self.db.query(ActionPlan).filter(ActionPlan.id == plan_id, ActionPlan.user_id == user_id).first()
        if not plan:
            raise NotFoundError("Plan not found or access denied")

        result = {
            row.id: {"prerequisites": [], "dependents": []}
            for row in self.db.query(PlanTask.id).filter(PlanTask.plan_id == plan_id)
        }
        if not result:
            return result

        edges = self.db.query(TaskDependency).filter(TaskDependency.task_id.in_(list(result))).all()
        for edge in edges:
            if edge.task_id in result:
                result[edge.task_id]["prerequisites"].append(edge.prerequisite_task_id)
            if edge.prerequisite_task_id in result:
                result[edge.prerequisite_task_id]["dependents"].append(edge.task_id)
        return result

    def get_incomplete_prerequisites(self, task_id: UUID, user_id: UUID) -> List[PlanTask]:
        prerequisite_ids = self.get_prerequisites(task_id, user_id)
        if not prerequisite_ids:
            return []
        return (
            self.db.query(PlanTask)
            .filter(PlanTask.id.in_(prerequisite_ids), PlanTask.status != TaskStatus.COMPLETED)
            .all()
        )

    def is_task_blocked(self, task_id: UUID, user_id: UUID) -> bool:
        return bool(self.get_incomplete_prerequisites(task_id, user_id))

    def get_ready_tasks(self, plan_id: UUID, user_id: UUID) -> List[UUID]:
        """Not-started tasks whose prerequisites are all completed."""
        plan = self.db.query(ActionPlan).filter(ActionPlan.id == plan_id, ActionPlan.user_id == user_id).first()
        if not plan:
            raise NotFoundError("Plan not found or access denied")

        tasks = self.db.query(PlanTask).filter(
            PlanTask.plan_id == plan_id,
            PlanTask.status == TaskStatus.NOT_STARTED,
        ).order_by(PlanTask.order).all()
        return [task.id for task in tasks if not self.is_task_blocked(task.id, user_id)]
