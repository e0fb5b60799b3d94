"""Plan export to CSV, JSON and Markdown."""

import csv
import io
import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from unbuilt.core.errors import ValidationFailed
from unbuilt.core.logging import get_logger
from unbuilt.core.models import ActionPlan, PlanPhase, PlanTask, TaskStatus
from unbuilt.services.progress import percent_complete

logger = get_logger(__name__)

EXPORT_VERSION = "1.0"

CSV_HEADER = [
    "Phase",
    "Phase Order",
    "Task",
    "Task Order",
    "Description",
    "Status",
    "Estimated Time",
    "Resources",
    "Assignee ID",
    "Completed At",
    "Completed By",
    "Is Custom",
]

MEDIA_TYPES = {
    "csv": "text/csv",
    "json": "application/json",
    "markdown": "text/markdown",
}

EXTENSIONS = {"csv": "csv", "json": "json", "markdown": "md"}


@dataclass
class ExportResult:
    content: bytes
    media_type: str
    filename: str


@dataclass
class ExportOptions:
    format: str = "json"
    include_completed: bool = True
    include_skipped: bool = True

    def keeps(self, task: PlanTask) -> bool:
        if not self.include_completed and task.status == TaskStatus.COMPLETED:
            return False
        if not self.include_skipped and task.status == TaskStatus.SKIPPED:
            return False
        return True


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _status(task: PlanTask) -> str:
    return task.status.value if task.status else ""


def _slug(title: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")[:50] or "plan"


def export_plan(plan: ActionPlan, options: ExportOptions) -> ExportResult:
    """Render a plan with its ordered phases and tasks."""
    renderers = {"csv": to_csv, "json": to_json, "markdown": to_markdown}
    renderer = renderers.get(options.format)
    if not renderer:
        raise ValidationFailed(f"Unsupported export format: {options.format}")

    content = renderer(plan, list(plan.phases), options)
    logger.info("plan_exported", plan_id=str(plan.id), format=options.format, size=len(content))

    stamp = datetime.utcnow().strftime("%Y%m%d")
    return ExportResult(
        content=content.encode("utf-8"),
        media_type=MEDIA_TYPES[options.format],
        filename=f"{_slug(plan.title)}-{stamp}.{EXTENSIONS[options.format]}",
    )


# =============================================================================
# Renderers
# =============================================================================

def to_csv(plan: ActionPlan, phases: List[PlanPhase], options: ExportOptions) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADER)

    for phase in phases:
        for task in phase.tasks:
            if not options.keeps(task):
                continue
            writer.writerow([
                phase.name,
                phase.order,
                task.title,
                task.order,
                task.description or "",
                _status(task),
                task.estimated_time or "",
                "; ".join(task.resources or []),
                str(task.assignee_id) if task.assignee_id else "",
                _iso(task.completed_at) or "",
                str(task.completed_by) if task.completed_by else "",
                "Yes" if task.is_custom else "No",
            ])
    return buffer.getvalue()


def to_json(plan: ActionPlan, phases: List[PlanPhase], options: ExportOptions) -> str:
    filtered = [(phase, [t for t in phase.tasks if options.keeps(t)]) for phase in phases]
    tasks = [t for _, phase_tasks in filtered for t in phase_tasks]
    completed = sum(1 for t in tasks if t.status == TaskStatus.COMPLETED)

    data: Dict[str, Any] = {
        "exportMetadata": {
            "exportDate": datetime.utcnow().isoformat(),
            "exportFormat": "json",
            "version": EXPORT_VERSION,
            "includeCompleted": options.include_completed,
            "includeSkipped": options.include_skipped,
        },
        "plan": {
            "id": str(plan.id),
            "title": plan.title,
            "description": plan.description,
            "status": plan.status.value,
            "createdAt": _iso(plan.created_at),
            "updatedAt": _iso(plan.updated_at),
            "completedAt": _iso(plan.completed_at),
        },
        "statistics": {
            "totalPhases": len(filtered),
            "totalTasks": len(tasks),
            "completedTasks": completed,
            "inProgressTasks": sum(1 for t in tasks if t.status == TaskStatus.IN_PROGRESS),
            "notStartedTasks": sum(1 for t in tasks if t.status == TaskStatus.NOT_STARTED),
            "skippedTasks": sum(1 for t in tasks if t.status == TaskStatus.SKIPPED),
            "completionPercentage": percent_complete(completed, len(tasks)),
        },
        "phases": [
            {
                "id": str(phase.id),
                "name": phase.name,
                "description": phase.description,
                "order": phase.order,
                "estimatedDuration": phase.estimated_duration,
                "isCustom": phase.is_custom,
                "tasks": [
                    {
                        "id": str(task.id),
                        "title": task.title,
                        "description": task.description,
                        "order": task.order,
                        "status": _status(task),
                        "estimatedTime": task.estimated_time,
                        "resources": list(task.resources or []),
                        "isCustom": task.is_custom,
                        "assigneeId": str(task.assignee_id) if task.assignee_id else None,
                        "completedAt": _iso(task.completed_at),
                        "completedBy": str(task.completed_by) if task.completed_by else None,
                        "createdAt": _iso(task.created_at),
                        "updatedAt": _iso(task.updated_at),
                    }
                    for task in phase_tasks
                ],
            }
            for phase, phase_tasks in filtered
        ],
    }
    return json.dumps(data, indent=2)


def to_markdown(plan: ActionPlan, phases: List[PlanPhase], options: ExportOptions) -> str:
    """Markdown checklist. Progress counts cover every task, filters only hide lines."""
    lines = [f"# {plan.title}", ""]
    if plan.description:
        lines += [plan.description, ""]

    all_tasks = [t for phase in phases for t in phase.tasks]
    completed = sum(1 for t in all_tasks if t.status == TaskStatus.COMPLETED)
    percent = percent_complete(completed, len(all_tasks))

    lines += [
        f"**Status:** {plan.status.value}",
        f"**Progress:** {completed}/{len(all_tasks)} tasks completed ({percent}%)",
        f"**Created:** {plan.created_at.date().isoformat() if plan.created_at else ''}",
        f"**Last Updated:** {plan.updated_at.date().isoformat() if plan.updated_at else ''}",
        "",
        "---",
        "",
    ]

    for phase in phases:
        lines += [f"## {phase.name}", ""]
        if phase.description:
            lines += [phase.description, ""]
        if phase.estimated_duration:
            lines += [f"**Estimated Duration:** {phase.estimated_duration}", ""]

        phase_done = sum(1 for t in phase.tasks if t.status == TaskStatus.COMPLETED)
        phase_total = len(phase.tasks)
        phase_percent = percent_complete(phase_done, phase_total)
        lines += [f"**Phase Progress:** {phase_done}/{phase_total} tasks ({phase_percent}%)", ""]

        for task in phase.tasks:
            if not options.keeps(task):
                continue
            checkbox = "[x]" if task.status == TaskStatus.COMPLETED else "[ ]"
            line = f"- {checkbox} {task.title}"
            if task.status == TaskStatus.IN_PROGRESS:
                line += " _(in progress)_"
            elif task.status == TaskStatus.SKIPPED:
                line += " _(skipped)_"
            if task.is_custom:
                line += " _(custom)_"
            lines.append(line)

            if task.description:
                lines.append(f"  - **Description:** {task.description}")
            if task.estimated_time:
                lines.append(f"  - **Estimated Time:** {task.estimated_time}")
            if task.resources:
                lines.append(f"  - **Resources:** {', '.join(task.resources)}")
            if task.completed_at:
                lines.append(f"  - **Completed:** {task.completed_at.date().isoformat()}")
            lines.append("")
        lines.append("")

    lines += ["---", "", f"*Exported from Unbuilt on {datetime.utcnow().date().isoformat()}*", ""]
    return "\n".join(lines)
