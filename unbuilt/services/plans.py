"""Action plans and their phases.

A plan is created from one of the user's searches. Its generated structure
is stored once in ``original_plan`` and materialised as ``PlanPhase`` and
``PlanTask`` rows that the user then edits.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from unbuilt.core.errors import ConflictError, NotFoundError, ValidationFailed
from unbuilt.core.logging import get_logger
from unbuilt.core.models import (
    ActionPlan, PlanPhase, PlanTask, PlanStatus, PlanTemplate, Search,
    SearchResult, TaskDependency, TaskHistory, TaskStatus, ProgressSnapshot,
)
from unbuilt.services.llm import LLMClient, get_llm_client
from unbuilt.services.progress import percent_complete

logger = get_logger(__name__)


def materialize_phases(db: Session, plan: ActionPlan, phases: List[Dict[str, Any]], is_custom: bool = False) -> List[PlanPhase]:
    """Create phase and task rows for a plan from a phases structure."""
    created = []
    ordered = sorted(enumerate(phases), key=lambda item: (item[1].get("order", item[0]), item[0]))

    for phase_index, (_, phase_data) in enumerate(ordered):
        if not phase_data.get("name"):
            raise ValidationFailed("Every phase needs a name")
        phase = PlanPhase(
            plan_id=plan.id,
            name=phase_data["name"][:100],
            description=phase_data.get("description"),
            order=phase_index,
            estimated_duration=phase_data.get("estimated_duration"),
            is_custom=is_custom,
        )
        db.add(phase)
        db.flush()

        tasks = phase_data.get("tasks") or []
        ordered_tasks = sorted(enumerate(tasks), key=lambda item: (item[1].get("order", item[0]), item[0]))
        for task_index, (_, task_data) in enumerate(ordered_tasks):
            if not task_data.get("title"):
                raise ValidationFailed(f"Every task in phase '{phase.name}' needs a title")
            db.add(PlanTask(
                phase_id=phase.id,
                plan_id=plan.id,
                title=task_data["title"][:200],
                description=task_data.get("description"),
                estimated_time=task_data.get("estimated_time"),
                resources=list(task_data.get("resources") or []),
                order=task_index,
                status=TaskStatus.NOT_STARTED,
                is_custom=is_custom,
            ))
        created.append(phase)

    db.flush()
    return created


def clear_plan_structure(db: Session, plan_id: UUID) -> None:
    """Remove every phase and task of a plan, with their edges and history."""
    task_ids = [row.id for row in db.query(PlanTask.id).filter(PlanTask.plan_id == plan_id)]
    if task_ids:
        db.query(TaskDependency).filter(TaskDependency.task_id.in_(task_ids)).delete(synchronize_session=False)
        db.query(TaskDependency).filter(TaskDependency.prerequisite_task_id.in_(task_ids)).delete(synchronize_session=False)
        db.query(TaskHistory).filter(TaskHistory.task_id.in_(task_ids)).delete(synchronize_session=False)
    db.query(PlanTask).filter(PlanTask.plan_id == plan_id).delete(synchronize_session=False)
    db.query(PlanPhase).filter(PlanPhase.plan_id == plan_id).delete(synchronize_session=False)
    db.flush()
    db.expire_all()


class PlanService:
    """Owner-scoped access to action plans."""

    def __init__(self, db: Session, llm: Optional[LLMClient] = None):
        self.db = db
        self.llm = llm

    # =========================================================================
    # Plans
    # =========================================================================

    def create_plan(
        self,
        user_id: UUID,
        search_id: UUID,
        title: str,
        description: Optional[str] = None,
        template_id: Optional[UUID] = None,
        original_plan: Optional[Dict[str, Any]] = None,
    ) -> ActionPlan:
        search = self.db.query(Search).filter(Search.id == search_id, Search.user_id == user_id).first()
        if not search:
            raise NotFoundError("Search not found or access denied")

        existing = self.db.query(ActionPlan).filter(
            ActionPlan.search_id == search_id,
            ActionPlan.user_id == user_id,
            ActionPlan.status == PlanStatus.ACTIVE,
        ).first()
        if existing:
            raise ConflictError("Action plan already exists for this search", {"plan_id": str(existing.id)})

        template = None
        if template_id:
            template = self.db.query(PlanTemplate).filter(
                PlanTemplate.id == template_id, PlanTemplate.is_active == True
            ).first()
            if not template:
                raise NotFoundError("Template not found")

        if original_plan and original_plan.get("phases"):
            structure = original_plan
        elif template:
            structure = {"phases": template.phases or []}
        else:
            top = (
                self.db.query(SearchResult)
                .filter(SearchResult.search_id == search_id)
                .order_by(SearchResult.innovation_score.desc())
                .first()
            )
            gap = {
                "title": top.title,
                "description": top.description,
                "category": top.category,
                "market_size": top.market_size,
                "feasibility": top.feasibility,
                "gap_reason": top.gap_reason,
            } if top else None
            structure = (self.llm or get_llm_client()).generate_action_plan(search.query, gap)

        plan = ActionPlan(
            search_id=search_id,
            user_id=user_id,
            template_id=template.id if template else None,
            title=title,
            description=description,
            status=PlanStatus.ACTIVE,
            original_plan=structure,
            customizations={},
        )
        self.db.add(plan)
        self.db.flush()

        materialize_phases(self.db, plan, structure["phases"])
        self.db.refresh(plan)

        logger.info("plan_created", plan_id=str(plan.id), search_id=str(search_id), phases=len(plan.phases))
        return plan

    def get_plan(self, plan_id: UUID, user_id: UUID) -> ActionPlan:
        plan = self.db.query(ActionPlan).filter(ActionPlan.id == plan_id, ActionPlan.user_id == user_id).first()
        if not plan:
            raise NotFoundError("Plan not found or access denied")
        return plan

    def get_plan_by_search(self, search_id: UUID, user_id: UUID) -> ActionPlan:
        plan = (
            self.db.query(ActionPlan)
            .filter(ActionPlan.search_id == search_id, ActionPlan.user_id == user_id)
            .order_by(ActionPlan.created_at.desc())
            .first()
        )
        if not plan:
            raise NotFoundError("No action plan exists for this search")
        return plan

    def list_user_plans(self, user_id: UUID, status: Optional[PlanStatus] = None) -> List[ActionPlan]:
        query = self.db.query(ActionPlan).filter(ActionPlan.user_id == user_id)
        if status:
            query = query.filter(ActionPlan.status == status)
        return query.order_by(ActionPlan.updated_at.desc()).all()

    def update_plan(
        self,
        plan_id: UUID,
        user_id: UUID,
        title: Optional[str] = None,
        description: Optional[str] = None,
        status: Optional[PlanStatus] = None,
    ) -> ActionPlan:
        plan = self.get_plan(plan_id, user_id)

        if title is not None:
            if not title.strip():
                raise ValidationFailed("Plan title cannot be empty")
            plan.title = title[:200]
        if description is not None:
            plan.description = description

        if status is not None:
            status = PlanStatus(status)
            if status == PlanStatus.ACTIVE and plan.status != PlanStatus.ACTIVE:
                other = self.db.query(ActionPlan).filter(
                    ActionPlan.search_id == plan.search_id,
                    ActionPlan.status == PlanStatus.ACTIVE,
                    ActionPlan.id != plan.id,
                ).first()
                if other:
                    raise ConflictError("Action plan already exists for this search")
            if status == PlanStatus.COMPLETED and plan.status != PlanStatus.COMPLETED:
                plan.completed_at = datetime.utcnow()
            elif status == PlanStatus.ACTIVE:
                plan.completed_at = None
            plan.status = status

        plan.updated_at = datetime.utcnow()
        self.db.flush()
        logger.info("plan_updated", plan_id=str(plan_id), status=plan.status.value)
        return plan

    def update_customizations(self, plan_id: UUID, user_id: UUID, customizations: Dict[str, Any]) -> ActionPlan:
        plan = self.get_plan(plan_id, user_id)
        merged = dict(plan.customizations or {})
        merged.update(customizations)
        plan.customizations = merged
        plan.updated_at = datetime.utcnow()
        self.db.flush()
        return plan

    def delete_plan(self, plan_id: UUID, user_id: UUID) -> None:
        plan = self.get_plan(plan_id, user_id)
        clear_plan_structure(self.db, plan.id)
        self.db.query(ProgressSnapshot).filter(ProgressSnapshot.plan_id == plan_id).delete(synchronize_session=False)
        self.db.query(ActionPlan).filter(ActionPlan.id == plan_id).delete(synchronize_session=False)
        self.db.flush()
        logger.info("plan_deleted", plan_id=str(plan_id))

    def get_plan_with_details(self, plan_id: UUID, user_id: UUID) -> ActionPlan:
        """Plan with phases ordered by ``order`` and their tasks ordered the same way."""
        plan = self.get_plan(plan_id, user_id)
        self.db.refresh(plan)
        return plan

    def get_plan_statistics(self, plan_id: UUID, user_id: UUID) -> Dict[str, int]:
        self.get_plan(plan_id, user_id)
        counts = dict(
            self.db.query(PlanTask.status, func.count(PlanTask.id))
            .filter(PlanTask.plan_id == plan_id)
            .group_by(PlanTask.status)
            .all()
        )
        total = sum(counts.values())
        completed = counts.get(TaskStatus.COMPLETED, 0)
        total_phases = self.db.query(func.count(PlanPhase.id)).filter(PlanPhase.plan_id == plan_id).scalar()

        return {
            "total_phases": total_phases,
            "total_tasks": total,
            "completed_tasks": completed,
            "in_progress_tasks": counts.get(TaskStatus.IN_PROGRESS, 0),
            "not_started_tasks": counts.get(TaskStatus.NOT_STARTED, 0),
            "skipped_tasks": counts.get(TaskStatus.SKIPPED, 0),
            "completion_percentage": percent_complete(completed, total),
        }

    def restore_original_plan(self, plan_id: UUID, user_id: UUID) -> ActionPlan:
        """Discard user edits and rebuild phases and tasks from ``original_plan``."""
        plan = self.get_plan(plan_id, user_id)
        phases = (plan.original_plan or {}).get("phases") or []

        clear_plan_structure(self.db, plan.id)
        plan = self.get_plan(plan_id, user_id)
        materialize_phases(self.db, plan, phases)

        plan.customizations = {}
        plan.updated_at = datetime.utcnow()
        self.db.flush()
        self.db.refresh(plan)

        logger.info("plan_restored", plan_id=str(plan_id), phases=len(phases))
        return plan

    # =========================================================================
    # Phases
    # =========================================================================

    def get_phase(self, phase_id: UUID, user_id: UUID) -> PlanPhase:
        phase = (
            self.db.query(PlanPhase)
            .join(ActionPlan, PlanPhase.plan_id == ActionPlan.id)
            .filter(PlanPhase.id == phase_id, ActionPlan.user_id == user_id)
            .first()
        )
        if not phase:
            raise NotFoundError("Phase not found or access denied")
        return phase

    def create_phase(
        self,
        plan_id: UUID,
        user_id: UUID,
        name: str,
        description: Optional[str] = None,
        estimated_duration: Optional[str] = None,
    ) -> PlanPhase:
        self.get_plan(plan_id, user_id)
        current_max = self.db.query(func.max(PlanPhase.order)).filter(PlanPhase.plan_id == plan_id).scalar()

        phase = PlanPhase(
            plan_id=plan_id,
            name=name[:100],
            description=description,
            order=0 if current_max is None else current_max + 1,
            estimated_duration=estimated_duration,
            is_custom=True,
        )
        self.db.add(phase)
        self.db.flush()
        logger.info("phase_created", plan_id=str(plan_id), phase_id=str(phase.id))
        return phase

    def update_phase(self, phase_id: UUID, user_id: UUID, updates: Dict[str, Any]) -> PlanPhase:
        phase = self.get_phase(phase_id, user_id)
        for field in ("name", "description", "estimated_duration"):
            if field in updates:
                setattr(phase, field, updates[field])
        phase.is_custom = True
        phase.updated_at = datetime.utcnow()
        self.db.flush()
        return phase

    def delete_phase(self, phase_id: UUID, user_id: UUID) -> None:
        phase = self.get_phase(phase_id, user_id)
        task_ids = [row.id for row in self.db.query(PlanTask.id).filter(PlanTask.phase_id == phase_id)]
        if task_ids:
            self.db.query(TaskDependency).filter(TaskDependency.task_id.in_(task_ids)).delete(synchronize_session=False)
            self.db.query(TaskDependency).filter(TaskDependency.prerequisite_task_id.in_(task_ids)).delete(synchronize_session=False)
            self.db.query(TaskHistory).filter(TaskHistory.task_id.in_(task_ids)).delete(synchronize_session=False)
            self.db.query(PlanTask).filter(PlanTask.phase_id == phase_id).delete(synchronize_session=False)
        self.db.query(PlanPhase).filter(PlanPhase.id == phase.id).delete(synchronize_session=False)
        self.db.flush()
        self.db.expire_all()
        logger.info("phase_deleted", phase_id=str(phase_id), tasks_removed=len(task_ids))

    def reorder_phases(self, plan_id: UUID, user_id: UUID, phase_ids: List[UUID]) -> List[PlanPhase]:
        self.get_plan(plan_id, user_id)
        phases = self.db.query(PlanPhase).filter(PlanPhase.plan_id == plan_id).order_by(PlanPhase.order).all()
        known = {p.id for p in phases}

        for phase_id in phase_ids:
            if phase_id not in known:
                raise ValidationFailed(f"Phase {phase_id} does not belong to plan {plan_id}")

        final_ids = list(dict.fromkeys(phase_ids)) + [p.id for p in phases if p.id not in phase_ids]
        for i, phase_id in enumerate(final_ids):
            self.db.query(PlanPhase).filter(PlanPhase.id == phase_id).update({"order": -(i + 1)}, synchronize_session=False)
        for i, phase_id in enumerate(final_ids):
            self.db.query(PlanPhase).filter(PlanPhase.id == phase_id).update({"order": i}, synchronize_session=False)
        self.db.expire_all()

        logger.info("phases_reordered", plan_id=str(plan_id), count=len(final_ids))
        return self.db.query(PlanPhase).filter(PlanPhase.plan_id == plan_id).order_by(PlanPhase.order).all()
