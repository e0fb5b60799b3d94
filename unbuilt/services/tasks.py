"""Plan task operations with an audit trail in ``task_history``."""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from unbuilt.core.errors import NotFoundError, ValidationFailed
from unbuilt.core.logging import get_logger
from unbuilt.core.models import (
    ActionPlan, PlanPhase, PlanTask, TaskHistory, HistoryAction, TaskStatus,
)
from unbuilt.services.dependencies import DependencyService, get_task_with_access

logger = get_logger(__name__)

EDITABLE_FIELDS = ("title", "description", "estimated_time", "resources", "assignee_id")
BLOCKING_TARGETS = (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED)


def task_state(task: PlanTask) -> Dict[str, Any]:
    """JSON-safe snapshot of a task for history rows and API responses."""
    def iso(value: Optional[datetime]) -> Optional[str]:
        return value.isoformat() if value else None

    def text(value: Any) -> Optional[str]:
        return str(value) if value is not None else None

    return {
        "id": str(task.id),
        "phase_id": str(task.phase_id),
        "plan_id": str(task.plan_id),
        "title": task.title,
        "description": task.description,
        "estimated_time": task.estimated_time,
        "resources": list(task.resources or []),
        "order": task.order,
        "status": task.status.value if task.status else None,
        "is_custom": task.is_custom,
        "assignee_id": text(task.assignee_id),
        "completed_at": iso(task.completed_at),
        "completed_by": text(task.completed_by),
        "created_at": iso(task.created_at),
        "updated_at": iso(task.updated_at),
    }


class TaskService:
    """Create, edit, reorder and complete tasks inside a user's plans."""

    def __init__(self, db: Session):
        self.db = db
        self.dependencies = DependencyService(db)

    # =========================================================================
    # Access
    # =========================================================================

    def get_task(self, task_id: UUID, user_id: UUID) -> PlanTask:
        task = get_task_with_access(self.db, task_id, user_id)
        if not task:
            raise NotFoundError("Task not found or access denied")
        return task

    def _get_phase(self, phase_id: UUID, user_id: UUID) -> PlanPhase:
        phase = (
            self.db.query(PlanPhase)
            .join(ActionPlan, PlanPhase.plan_id == ActionPlan.id)
            .filter(PlanPhase.id == phase_id, ActionPlan.user_id == user_id)
            .first()
        )
        if not phase:
            raise NotFoundError("Phase not found or access denied")
        return phase

    def _require_plan(self, plan_id: UUID, user_id: UUID) -> ActionPlan:
        plan = self.db.query(ActionPlan).filter(ActionPlan.id == plan_id, ActionPlan.user_id == user_id).first()
        if not plan:
            raise NotFoundError("Plan not found or access denied")
        return plan

    def _record(self, task_id: UUID, user_id: UUID, action: HistoryAction, previous: Optional[dict], new: Optional[dict]) -> None:
        self.db.add(TaskHistory(
            task_id=task_id,
            user_id=user_id,
            action=action,
            previous_state=previous,
            new_state=new,
        ))

    # =========================================================================
    # CRUD
    # =========================================================================

    def create_task(
        self,
        phase_id: UUID,
        user_id: UUID,
        title: str,
        description: Optional[str] = None,
        estimated_time: Optional[str] = None,
        resources: Optional[List[str]] = None,
        order: Optional[int] = None,
        is_custom: bool = True,
        assignee_id: Optional[UUID] = None,
    ) -> PlanTask:
        """Add a task to a phase, appending it when no order is given."""
        phase = self._get_phase(phase_id, user_id)

        if order is None:
            current_max = self.db.query(func.max(PlanTask.order)).filter(PlanTask.phase_id == phase_id).scalar()
            order = 0 if current_max is None else current_max + 1

        task = PlanTask(
            phase_id=phase.id,
            plan_id=phase.plan_id,
            title=title,
            description=description,
            estimated_time=estimated_time,
            resources=resources or [],
            order=order,
            status=TaskStatus.NOT_STARTED,
            is_custom=is_custom,
            assignee_id=assignee_id,
        )
        self.db.add(task)
        self.db.flush()

        self._record(task.id, user_id, HistoryAction.CREATED, None, task_state(task))
        self.db.flush()

        logger.info("task_created", task_id=str(task.id), phase_id=str(phase_id))
        return task

    def list_tasks_by_phase(self, phase_id: UUID, user_id: UUID) -> List[PlanTask]:
        self._get_phase(phase_id, user_id)
        return self.db.query(PlanTask).filter(PlanTask.phase_id == phase_id).order_by(PlanTask.order).all()

    def list_tasks_by_plan(self, plan_id: UUID, user_id: UUID, status: Optional[TaskStatus] = None) -> List[PlanTask]:
        self._require_plan(plan_id, user_id)
        query = (
            self.db.query(PlanTask)
            .join(PlanPhase, PlanTask.phase_id == PlanPhase.id)
            .filter(PlanTask.plan_id == plan_id)
        )
        if status:
            query = query.filter(PlanTask.status == status)
        return query.order_by(PlanPhase.order, PlanTask.order).all()

    def list_tasks_by_assignee(self, plan_id: UUID, assignee_id: UUID, user_id: UUID) -> List[PlanTask]:
        self._require_plan(plan_id, user_id)
        return (
            self.db.query(PlanTask)
            .filter(PlanTask.plan_id == plan_id, PlanTask.assignee_id == assignee_id)
            .order_by(PlanTask.order)
            .all()
        )

    def update_task(self, task_id: UUID, user_id: UUID, updates: Dict[str, Any]) -> PlanTask:
        """Edit task fields. Any edit marks the task as user-customized."""
        task = self.get_task(task_id, user_id)
        previous = task_state(task)

        unknown = set(updates) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationFailed(f"Cannot update fields: {', '.join(sorted(unknown))}")

        for field, value in updates.items():
            setattr(task, field, value)
        task.is_custom = True
        task.updated_at = datetime.utcnow()
        self.db.flush()

        self._record(task.id, user_id, HistoryAction.UPDATED, previous, task_state(task))
        self.db.flush()

        logger.info("task_updated", task_id=str(task_id), fields=sorted(updates))
        return task

    def update_task_status(
        self,
        task_id: UUID,
        user_id: UUID,
        status: TaskStatus,
        override_prerequisites: bool = False,
    ) -> PlanTask:
        """Change a task's status, tracking completion and prerequisite blocking."""
        task = self.get_task(task_id, user_id)
        status = TaskStatus(status)

        if status in BLOCKING_TARGETS and not override_prerequisites:
            incomplete = self.dependencies.get_incomplete_prerequisites(task_id, user_id)
            if incomplete:
                raise ValidationFailed(
                    "Task has incomplete prerequisites",
                    {"incomplete_prerequisites": [{"id": str(t.id), "title": t.title} for t in incomplete]},
                )

        previous = task_state(task)
        now = datetime.utcnow()

        if status == TaskStatus.COMPLETED and task.status != TaskStatus.COMPLETED:
            task.completed_at = now
            task.completed_by = user_id
        elif status != TaskStatus.COMPLETED and task.status == TaskStatus.COMPLETED:
            task.completed_at = None
            task.completed_by = None

        task.status = status
        task.updated_at = now
        self.db.flush()

        if status == TaskStatus.COMPLETED:
            action = HistoryAction.COMPLETED
        elif status == TaskStatus.SKIPPED:
            action = HistoryAction.SKIPPED
        else:
            action = HistoryAction.UPDATED

        new_state = task_state(task)
        if override_prerequisites:
            new_state["override_prerequisites"] = True
        self._record(task.id, user_id, action, previous, new_state)
        self.db.flush()

        logger.info(
            "task_status_changed",
            task_id=str(task_id),
            previous=previous["status"],
            status=status.value,
            override=override_prerequisites,
        )
        return task

    def bulk_update_status(self, task_ids: List[UUID], user_id: UUID, status: TaskStatus) -> List[PlanTask]:
        return [self.update_task_status(task_id, user_id, status) for task_id in task_ids]

    def delete_task(self, task_id: UUID, user_id: UUID) -> None:
        """Delete a task along with its dependency edges and history."""
        task = self.get_task(task_id, user_id)

        removed = self.dependencies.remove_task_edges(task_id)
        self.db.query(TaskHistory).filter(TaskHistory.task_id == task_id).delete(synchronize_session=False)
        self.db.delete(task)
        self.db.flush()

        logger.info("task_deleted", task_id=str(task_id), dependencies_removed=removed)

    # =========================================================================
    # Ordering and History
    # =========================================================================

    def reorder_tasks(self, phase_id: UUID, user_id: UUID, task_ids: List[UUID]) -> List[PlanTask]:
        """Reorder tasks within a phase.

        Listed tasks take orders 0..n-1 in the given sequence. Tasks of the
        phase that were not listed keep their relative order after them.
        """
        self._get_phase(phase_id, user_id)
        phase_tasks = self.db.query(PlanTask).filter(PlanTask.phase_id == phase_id).order_by(PlanTask.order).all()
        phase_task_ids = {t.id for t in phase_tasks}

        for task_id in task_ids:
            if task_id not in phase_task_ids:
                raise ValidationFailed(f"Task {task_id} does not belong to phase {phase_id}")

        previous_ids = [str(t.id) for t in phase_tasks]
        final_ids = list(dict.fromkeys(task_ids)) + [t.id for t in phase_tasks if t.id not in task_ids]

        # Negative orders first so the (phase_id, order) unique constraint never collides
        for i, task_id in enumerate(final_ids):
            self.db.query(PlanTask).filter(PlanTask.id == task_id).update(
                {"order": -(i + 1)}, synchronize_session=False
            )
        now = datetime.utcnow()
        for i, task_id in enumerate(final_ids):
            self.db.query(PlanTask).filter(PlanTask.id == task_id).update(
                {"order": i, "updated_at": now}, synchronize_session=False
            )
        self.db.expire_all()

        if final_ids:
            self._record(
                final_ids[0],
                user_id,
                HistoryAction.REORDERED,
                {"task_ids": previous_ids},
                {"task_ids": [str(t) for t in final_ids]},
            )
            self.db.flush()

        logger.info("tasks_reordered", phase_id=str(phase_id), count=len(final_ids))
        return self.db.query(PlanTask).filter(PlanTask.phase_id == phase_id).order_by(PlanTask.order).all()

    def get_task_history(self, task_id: UUID, user_id: UUID, limit: int = 50) -> List[TaskHistory]:
        self.get_task(task_id, user_id)
        return (
            self.db.query(TaskHistory)
            .filter(TaskHistory.task_id == task_id)
            .order_by(TaskHistory.timestamp.desc())
            .limit(limit)
            .all()
        )
