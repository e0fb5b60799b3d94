"""Rule-based recommendations from plan progress."""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from unbuilt.core.errors import NotFoundError
from unbuilt.core.logging import get_logger
from unbuilt.core.models import ActionPlan, PlanPhase, PlanTask, Resource, TaskStatus
from unbuilt.services.progress import round_half_up

logger = get_logger(__name__)

STUCK_AFTER_DAYS = 7
STUCK_HIGH_AFTER_DAYS = 14
SKIPPED_REVIEW_PERCENT = 20
SKIPPED_REVIEW_MIN_TASKS = 3
TIP_TASK_LIMIT = 5
PHASE_RESOURCE_LIMIT = 5
PRIORITY_ORDER = {"high": 0, "medium": 1, "low": 2}

TASK_TIPS: Dict[str, List[str]] = {
    "research": [
        "Start with secondary research (online sources, reports) before conducting primary research",
        "Use tools like Google Trends, SimilarWeb, and industry reports to validate market size",
        "Interview at least 10-15 potential customers to get meaningful insights",
        "Document all research findings in a centralized location for easy reference",
    ],
    "validation": [
        "Create a simple landing page to test demand before building the full product",
        "Use surveys and polls to validate assumptions quickly and cost-effectively",
        "Run small paid ad campaigns to test messaging and gauge interest",
        "Build a minimum viable product (MVP) to test core functionality with real users",
    ],
    "development": [
        "Break large development tasks into smaller, manageable chunks (2-3 days each)",
        "Use agile methodologies with short sprints to maintain momentum",
        "Prioritize features based on user value and technical complexity",
        "Set up continuous integration/deployment early to streamline releases",
    ],
    "launch": [
        "Create a pre-launch email list to build anticipation",
        "Prepare press releases and reach out to relevant media outlets",
        "Leverage social media and content marketing to generate buzz",
        "Have a clear launch day plan with specific goals and metrics",
    ],
    "marketing": [
        "Focus on one or two marketing channels initially rather than spreading thin",
        "Create valuable content that addresses your target audience's pain points",
        "Use analytics to track what's working and double down on successful tactics",
        "Build partnerships with complementary businesses for cross-promotion",
    ],
    "sales": [
        "Develop a clear value proposition that resonates with your target customers",
        "Create a sales process with defined stages and conversion metrics",
        "Use CRM tools to track leads and follow-ups systematically",
        "Practice your pitch and refine it based on customer feedback",
    ],
    "operations": [
        "Document all processes and procedures for consistency and scalability",
        "Automate repetitive tasks wherever possible to save time",
        "Set up key performance indicators (KPIs) to monitor business health",
        "Build systems that can scale as your business grows",
    ],
    "finance": [
        "Separate personal and business finances from day one",
        "Track all expenses meticulously for tax purposes and financial planning",
        "Create financial projections with conservative, realistic, and optimistic scenarios",
        "Maintain a cash reserve for unexpected expenses or opportunities",
    ],
}

# Checked in order when no category name appears in the task text
TIP_KEYWORDS = [
    ("research", ("research", "analyze", "study")),
    ("validation", ("test", "validate", "prototype")),
    ("development", ("build", "develop", "create")),
    ("launch", ("launch", "release")),
    ("marketing", ("market", "promote", "advertise")),
    ("sales", ("sell", "sales", "customer")),
    ("operations", ("process", "system", "workflow")),
    ("finance", ("budget", "finance", "cost")),
]

PHASE_RESOURCE_MAPPING = [
    ("research", ["research"]),
    ("validation", ["validation", "research"]),
    ("development", ["development"]),
    ("prototype", ["development", "validation"]),
    ("mvp", ["development"]),
    ("launch", ["launch"]),
    ("marketing", ["launch"]),
    ("growth", ["launch"]),
]
DEFAULT_PHASE_RELEVANCE = ["research", "validation", "development", "launch"]


def tip_category(text: str) -> Optional[str]:
    """Pick the tip category for a task's title and description."""
    text = text.lower()
    for category in TASK_TIPS:
        if category in text:
            return category
    for category, keywords in TIP_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return None


def phase_relevance(phase_name: str) -> List[str]:
    lowered = phase_name.lower()
    for key, values in PHASE_RESOURCE_MAPPING:
        if key in lowered:
            return values
    return DEFAULT_PHASE_RELEVANCE


def _recommendation(rec_id: str, rec_type: str, priority: str, title: str, message: str,
                    actionable: bool, metadata: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": rec_id,
        "type": rec_type,
        "priority": priority,
        "title": title,
        "message": message,
        "actionable": actionable,
        "metadata": metadata,
        "created_at": datetime.utcnow().isoformat(),
    }


class RecommendationService:

    def __init__(self, db: Session):
        self.db = db

    def get_recommendations(self, plan_id: UUID, user_id: UUID, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
        plan = self.db.query(ActionPlan).filter(ActionPlan.id == plan_id, ActionPlan.user_id == user_id).first()
        if not plan:
            raise NotFoundError("Plan not found or access denied")

        now = now or datetime.utcnow()
        phases = self.db.query(PlanPhase).filter(PlanPhase.plan_id == plan_id).order_by(PlanPhase.order).all()
        tasks = self.db.query(PlanTask).filter(PlanTask.plan_id == plan_id).all()

        recommendations = (
            self.detect_stuck_tasks(tasks, now)
            + self.recommend_next_phase_resources(phases, tasks)
            + self.detect_plan_review(plan_id, phases, tasks)
            + self.generate_task_tips(phases, tasks)
        )
        recommendations.sort(key=lambda rec: PRIORITY_ORDER[rec["priority"]])

        logger.debug("recommendations_generated", plan_id=str(plan_id), count=len(recommendations))
        return recommendations

    def detect_stuck_tasks(self, tasks: List[PlanTask], now: datetime) -> List[Dict[str, Any]]:
        cutoff = now - timedelta(days=STUCK_AFTER_DAYS)
        recs = []
        for task in tasks:
            if task.status != TaskStatus.IN_PROGRESS or not task.updated_at or task.updated_at >= cutoff:
                continue
            days = (now - task.updated_at).days
            recs.append(_recommendation(
                f"stuck-task-{task.id}",
                "stuck_task",
                "high" if days > STUCK_HIGH_AFTER_DAYS else "medium",
                "Task Appears Stuck",
                f'"{task.title}" has been in progress for {days} days. Consider breaking it into '
                "smaller subtasks or reassessing the approach.",
                True,
                {
                    "task_id": str(task.id),
                    "phase_id": str(task.phase_id),
                    "days_since_update": days,
                    "suggestions": [
                        "Break the task into 2-3 smaller, more manageable subtasks",
                        "Review if you have all the resources and information needed",
                        "Consider if the task scope needs to be adjusted",
                        "Reach out for help or collaboration if you're blocked",
                    ],
                },
            ))
        return recs

    def recommend_next_phase_resources(self, phases: List[PlanPhase], tasks: List[PlanTask]) -> List[Dict[str, Any]]:
        recs = []
        done = (TaskStatus.COMPLETED, TaskStatus.SKIPPED)
        for index, phase in enumerate(phases[:-1]):
            phase_tasks = [t for t in tasks if t.phase_id == phase.id]
            if not phase_tasks or not all(t.status in done for t in phase_tasks):
                continue

            next_phase = phases[index + 1]
            resources = self.resources_for_phase(next_phase.name)
            if not resources:
                continue

            recs.append(_recommendation(
                f"phase-complete-{phase.id}",
                "phase_complete",
                "medium",
                f"{phase.name} Complete!",
                f"Great job completing {phase.name}! Here are some resources to help you with "
                f"the next phase: {next_phase.name}",
                True,
                {
                    "phase_id": str(phase.id),
                    "next_phase_id": str(next_phase.id),
                    "next_phase_name": next_phase.name,
                    "resources": [
                        {"id": str(r.id), "title": r.title, "url": r.url, "resource_type": r.resource_type}
                        for r in resources
                    ],
                },
            ))
        return recs

    def resources_for_phase(self, phase_name: str) -> List[Resource]:
        wanted = set(phase_relevance(phase_name))
        candidates = self.db.query(Resource).filter(Resource.is_active == True).all()
        matching = [r for r in candidates if wanted & set(r.phase_relevance or [])]
        matching.sort(key=lambda r: (r.average_rating, r.view_count), reverse=True)
        return matching[:PHASE_RESOURCE_LIMIT]

    def detect_plan_review(self, plan_id: UUID, phases: List[PlanPhase], tasks: List[PlanTask]) -> List[Dict[str, Any]]:
        recs = []
        skipped = [t for t in tasks if t.status == TaskStatus.SKIPPED]
        percent = len(skipped) / len(tasks) * 100 if tasks else 0

        if percent > SKIPPED_REVIEW_PERCENT and len(skipped) >= SKIPPED_REVIEW_MIN_TASKS:
            recs.append(_recommendation(
                f"plan-review-{plan_id}",
                "plan_review",
                "high",
                "Plan Review Recommended",
                f"You've skipped {len(skipped)} tasks ({round_half_up(percent)}% of your plan). Consider reviewing "
                "your action plan to ensure it aligns with your current goals and resources.",
                True,
                {
                    "skipped_count": len(skipped),
                    "total_tasks": len(tasks),
                    "skipped_percentage": round_half_up(percent),
                    "skipped_tasks": [{"id": str(t.id), "title": t.title} for t in skipped],
                },
            ))

        for phase in phases:
            phase_tasks = [t for t in tasks if t.phase_id == phase.id]
            if phase_tasks and all(t.status == TaskStatus.SKIPPED for t in phase_tasks):
                recs.append(_recommendation(
                    f"phase-review-{phase.id}",
                    "plan_review",
                    "medium",
                    f"{phase.name} Phase Skipped",
                    f"All tasks in {phase.name} have been skipped. Consider if this phase is still "
                    "relevant to your plan or if it needs to be restructured.",
                    True,
                    {"phase_id": str(phase.id), "phase_name": phase.name},
                ))
        return recs

    def generate_task_tips(self, phases: List[PlanPhase], tasks: List[PlanTask]) -> List[Dict[str, Any]]:
        phase_order = {p.id: p.order for p in phases}
        active = sorted(
            (t for t in tasks if t.status in (TaskStatus.NOT_STARTED, TaskStatus.IN_PROGRESS)),
            key=lambda t: (phase_order.get(t.phase_id, 0), t.order),
        )[:TIP_TASK_LIMIT]

        recs = []
        for task in active:
            category = tip_category(f"{task.title} {task.description or ''}")
            if not category:
                continue
            tips = TASK_TIPS[category]
            recs.append(_recommendation(
                f"task-tip-{task.id}",
                "task_tip",
                "low",
                f'Tip for "{task.title}"',
                tips[task.order % len(tips)],
                False,
                {"task_id": str(task.id), "category": category, "all_tips": tips},
            ))
        return recs
