"""Plan progress metrics, snapshots and slow-phase detection."""

import math
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from unbuilt.core.errors import NotFoundError
from unbuilt.core.logging import get_logger
from unbuilt.core.models import (
    ActionPlan, PlanPhase, PlanStatus, PlanTask, ProgressSnapshot, TaskStatus,
)

logger = get_logger(__name__)

VELOCITY_WINDOW_DAYS = 30
DURATION_PATTERN = re.compile(r"(\d+)\s*(day|week|month)s?", re.IGNORECASE)
DAYS_PER_UNIT = {"day": 1, "week": 7, "month": 30}
OPEN_STATUSES = (TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS)


def round_half_up(value: float, digits: int = 0):
    """Halves round up (12.5 -> 13), unlike the built-in round()."""
    factor = 10 ** digits
    rounded = math.floor(value * factor + 0.5) / factor
    return int(rounded) if digits == 0 else rounded


def percent_complete(done: int, total: int) -> int:
    return round_half_up(done / total * 100) if total else 0


def parse_estimated_duration(duration: Optional[str]) -> Optional[int]:
    """Convert "2 weeks" style strings to days. Unknown formats give None."""
    if not duration:
        return None
    match = DURATION_PATTERN.search(duration)
    if not match:
        return None
    return int(match.group(1)) * DAYS_PER_UNIT[match.group(2).lower()]


def average_task_hours(tasks: List[PlanTask]) -> float:
    """Mean hours from creation to completion over completed tasks."""
    durations = [
        (t.completed_at - t.created_at).total_seconds() / 3600
        for t in tasks
        if t.status == TaskStatus.COMPLETED and t.completed_at and t.created_at
    ]
    if not durations:
        return 0.0
    return round_half_up(sum(durations) / len(durations))


def calculate_velocity(tasks: List[PlanTask], now: Optional[datetime] = None) -> float:
    """Tasks completed per week over the last 30 days."""
    now = now or datetime.utcnow()
    window_start = now - timedelta(days=VELOCITY_WINDOW_DAYS)
    recent = [
        t.completed_at for t in tasks
        if t.status == TaskStatus.COMPLETED and t.completed_at and t.completed_at >= window_start
    ]
    if not recent:
        return 0.0

    weeks = (now - min(recent)).total_seconds() / (7 * 24 * 3600)
    if weeks < 0.1:
        return float(len(recent))
    return round_half_up(len(recent) / weeks, 1)


def estimate_completion(remaining: int, velocity: float, now: Optional[datetime] = None) -> Optional[datetime]:
    if remaining == 0 or not velocity:
        return None
    now = now or datetime.utcnow()
    return now + timedelta(days=math.ceil(remaining / velocity * 7))


class ProgressService:
    """Computes progress for a user's plans."""

    def __init__(self, db: Session):
        self.db = db

    def _get_plan(self, plan_id: UUID, user_id: UUID) -> ActionPlan:
        plan = self.db.query(ActionPlan).filter(ActionPlan.id == plan_id, ActionPlan.user_id == user_id).first()
        if not plan:
            raise NotFoundError("Plan not found or access denied")
        return plan

    def calculate_progress(self, plan_id: UUID, user_id: UUID, now: Optional[datetime] = None) -> Dict[str, Any]:
        self._get_plan(plan_id, user_id)
        now = now or datetime.utcnow()
        tasks = self.db.query(PlanTask).filter(PlanTask.plan_id == plan_id).all()

        def count(status: TaskStatus) -> int:
            return sum(1 for t in tasks if t.status == status)

        total = len(tasks)
        completed = count(TaskStatus.COMPLETED)
        in_progress = count(TaskStatus.IN_PROGRESS)
        not_started = count(TaskStatus.NOT_STARTED)
        velocity = calculate_velocity(tasks, now)
        estimated = estimate_completion(not_started + in_progress, velocity, now)

        return {
            "total_tasks": total,
            "completed_tasks": completed,
            "in_progress_tasks": in_progress,
            "not_started_tasks": not_started,
            "skipped_tasks": count(TaskStatus.SKIPPED),
            "completion_percentage": percent_complete(completed, total),
            "current_phase": self._current_phase(plan_id, tasks),
            "estimated_completion": estimated.isoformat() if estimated else None,
            "velocity": velocity,
            "average_task_time": average_task_hours(tasks),
        }

    def _current_phase(self, plan_id: UUID, tasks: List[PlanTask]) -> Optional[str]:
        phases = self.db.query(PlanPhase).filter(PlanPhase.plan_id == plan_id).order_by(PlanPhase.order).all()
        for phase in phases:
            if any(t.phase_id == phase.id and t.status in OPEN_STATUSES for t in tasks):
                return phase.name
        return phases[-1].name if phases else None

    # =========================================================================
    # Snapshots
    # =========================================================================

    def create_snapshot(self, plan_id: UUID, user_id: UUID) -> ProgressSnapshot:
        progress = self.calculate_progress(plan_id, user_id)
        snapshot = ProgressSnapshot(
            plan_id=plan_id,
            total_tasks=progress["total_tasks"],
            completed_tasks=progress["completed_tasks"],
            in_progress_tasks=progress["in_progress_tasks"],
            skipped_tasks=progress["skipped_tasks"],
            completion_percentage=progress["completion_percentage"],
            average_task_time=progress["average_task_time"] or None,
            velocity=progress["velocity"] or None,
        )
        self.db.add(snapshot)
        self.db.flush()
        logger.info("progress_snapshot_created", plan_id=str(plan_id), completion=snapshot.completion_percentage)
        return snapshot

    def should_create_snapshot(self, plan_id: UUID, now: Optional[datetime] = None) -> bool:
        """True when the plan has no snapshot yet today."""
        now = now or datetime.utcnow()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        existing = self.db.query(ProgressSnapshot).filter(
            ProgressSnapshot.plan_id == plan_id,
            ProgressSnapshot.timestamp >= start_of_day,
        ).first()
        return existing is None

    def get_progress_history(self, plan_id: UUID, user_id: UUID, limit: int = 30) -> List[ProgressSnapshot]:
        self._get_plan(plan_id, user_id)
        return (
            self.db.query(ProgressSnapshot)
            .filter(ProgressSnapshot.plan_id == plan_id)
            .order_by(ProgressSnapshot.timestamp.desc())
            .limit(limit)
            .all()
        )

    # =========================================================================
    # Analysis
    # =========================================================================

    def identify_slow_phases(self, plan_id: UUID, user_id: UUID, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        """Phases that are overdue against their estimate or still have open tasks."""
        self._get_plan(plan_id, user_id)
        now = now or datetime.utcnow()
        phases = self.db.query(PlanPhase).filter(PlanPhase.plan_id == plan_id).order_by(PlanPhase.order).all()

        slow = []
        for phase in phases:
            tasks = list(phase.tasks)
            if not tasks:
                continue

            started = min(t.created_at for t in tasks)
            completions = [t.completed_at for t in tasks if t.status == TaskStatus.COMPLETED and t.completed_at]
            finished = max(completions) if completions else now
            actual_days = math.ceil((finished - started).total_seconds() / 86400)

            estimated_days = parse_estimated_duration(phase.estimated_duration)
            is_overdue = estimated_days is not None and actual_days > estimated_days
            has_open = any(t.status in OPEN_STATUSES for t in tasks)

            if is_overdue or has_open:
                slow.append({
                    "phase_id": str(phase.id),
                    "phase_name": phase.name,
                    "estimated_duration": phase.estimated_duration,
                    "actual_duration": actual_days,
                    "is_overdue": is_overdue,
                })
        return slow

    def get_user_progress_summary(self, user_id: UUID) -> Dict[str, Any]:
        plans = self.db.query(ActionPlan).filter(
            ActionPlan.user_id == user_id,
            ActionPlan.status == PlanStatus.ACTIVE,
        ).all()

        total = completed = 0
        velocities = []
        for plan in plans:
            progress = self.calculate_progress(plan.id, user_id)
            total += progress["total_tasks"]
            completed += progress["completed_tasks"]
            if progress["velocity"] > 0:
                velocities.append(progress["velocity"])

        return {
            "active_plans": len(plans),
            "total_tasks": total,
            "completed_tasks": completed,
            "overall_completion_percentage": percent_complete(completed, total),
            "average_velocity": round_half_up(sum(velocities) / len(velocities), 1) if velocities else 0,
        }
