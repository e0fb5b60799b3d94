"""Action plans, their phases, progress, dependencies and exports."""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from fastapi.encoders import jsonable_encoder

from unbuilt.api.deps import load_user, parse_enum, parse_optional_uuid, parse_uuid
from unbuilt.api.schemas import (
    ApplyTemplateRequest, CustomizationsUpdate, PhaseCreate, PhaseResponse, PhaseUpdate,
    PlanCreate, PlanDetailResponse, PlanResponse, PlanUpdate, ReorderRequest, SnapshotResponse,
    TaskResponse, phase_to_response, plan_to_response, snapshot_to_response, task_to_response,
)
from unbuilt.core.auth import AuthContext, get_current_auth
from unbuilt.core.database import get_db
from unbuilt.core.logging import get_logger
from unbuilt.core.models import PlanStatus, TaskStatus
from unbuilt.realtime import plan_rooms
from unbuilt.services import (
    DependencyService, PlanService, ProgressService, RecommendationService, TaskService, TemplateService,
)
from unbuilt.services.export import ExportOptions, export_plan
from unbuilt.services.usage import consume_export

logger = get_logger(__name__)

router = APIRouter(prefix="/api/plans", tags=["plans"])


# =============================================================================
# Plans
# =============================================================================

@router.post("", response_model=PlanDetailResponse, status_code=201)
async def create_plan(body: PlanCreate, auth: AuthContext = Depends(get_current_auth)):
    """Create a plan for one of the user's searches."""
    with get_db() as db:
        plan = PlanService(db).create_plan(
            user_id=auth.user_uuid,
            search_id=parse_uuid(body.search_id, "search"),
            title=body.title,
            description=body.description,
            template_id=parse_optional_uuid(body.template_id, "template"),
            original_plan=body.original_plan,
        )
        return plan_to_response(plan, include_details=True)


@router.get("", response_model=List[PlanResponse])
async def list_plans(
    status: Optional[str] = None,
    auth: AuthContext = Depends(get_current_auth),
):
    with get_db() as db:
        status_enum = parse_enum(PlanStatus, status) if status else None
        plans = PlanService(db).list_user_plans(auth.user_uuid, status_enum)
        return [plan_to_response(p) for p in plans]


@router.get("/summary")
async def progress_summary(auth: AuthContext = Depends(get_current_auth)):
    """Progress across all of the user's active plans."""
    with get_db() as db:
        return ProgressService(db).get_user_progress_summary(auth.user_uuid)


@router.get("/search/{search_id}", response_model=PlanDetailResponse)
async def get_plan_by_search(search_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        plan = PlanService(db).get_plan_by_search(parse_uuid(search_id, "search"), auth.user_uuid)
        return plan_to_response(plan, include_details=True)


@router.get("/{plan_id}", response_model=PlanDetailResponse)
async def get_plan(plan_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        plan = PlanService(db).get_plan_with_details(parse_uuid(plan_id, "plan"), auth.user_uuid)
        return plan_to_response(plan, include_details=True)


@router.patch("/{plan_id}", response_model=PlanResponse)
async def update_plan(plan_id: str, body: PlanUpdate, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        plan = PlanService(db).update_plan(
            parse_uuid(plan_id, "plan"),
            auth.user_uuid,
            title=body.title,
            description=body.description,
            status=parse_enum(PlanStatus, body.status) if body.status else None,
        )
        return plan_to_response(plan)


@router.patch("/{plan_id}/customizations", response_model=PlanResponse)
async def update_customizations(
    plan_id: str,
    body: CustomizationsUpdate,
    auth: AuthContext = Depends(get_current_auth),
):
    with get_db() as db:
        plan = PlanService(db).update_customizations(parse_uuid(plan_id, "plan"), auth.user_uuid, body.customizations)
        return plan_to_response(plan)


@router.delete("/{plan_id}", status_code=204)
async def delete_plan(plan_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        PlanService(db).delete_plan(parse_uuid(plan_id, "plan"), auth.user_uuid)
    return Response(status_code=204)


@router.get("/{plan_id}/statistics")
async def plan_statistics(plan_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return PlanService(db).get_plan_statistics(parse_uuid(plan_id, "plan"), auth.user_uuid)


@router.post("/{plan_id}/restore", response_model=PlanDetailResponse)
async def restore_plan(plan_id: str, auth: AuthContext = Depends(get_current_auth)):
    """Throw away edits and rebuild the plan from its original structure."""
    with get_db() as db:
        plan = PlanService(db).restore_original_plan(parse_uuid(plan_id, "plan"), auth.user_uuid)
        return plan_to_response(plan, include_details=True)


@router.post("/{plan_id}/apply-template", response_model=PlanDetailResponse)
async def apply_template(plan_id: str, body: ApplyTemplateRequest, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        plan = TemplateService(db).apply_template(
            parse_uuid(plan_id, "plan"), parse_uuid(body.template_id, "template"), auth.user_uuid,
        )
        return plan_to_response(plan, include_details=True)


@router.get("/{plan_id}/export")
async def export(
    plan_id: str,
    format: str = Query("json", pattern="^(csv|json|markdown)$"),
    include_completed: bool = True,
    include_skipped: bool = True,
    auth: AuthContext = Depends(get_current_auth),
):
    """Download the plan as CSV, JSON or Markdown. Counts against the export quota."""
    with get_db() as db:
        plan = PlanService(db).get_plan_with_details(parse_uuid(plan_id, "plan"), auth.user_uuid)
        result = export_plan(plan, ExportOptions(format, include_completed, include_skipped))
        consume_export(load_user(db, auth))

    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )


# =============================================================================
# Progress and Recommendations
# =============================================================================

@router.get("/{plan_id}/progress")
async def get_progress(plan_id: str, auth: AuthContext = Depends(get_current_auth)):
    """Current progress. Takes the day's snapshot on the first read."""
    plan_uuid = parse_uuid(plan_id, "plan")
    with get_db() as db:
        service = ProgressService(db)
        progress = service.calculate_progress(plan_uuid, auth.user_uuid)
        if service.should_create_snapshot(plan_uuid):
            service.create_snapshot(plan_uuid, auth.user_uuid)
        return progress


@router.get("/{plan_id}/progress/history", response_model=List[SnapshotResponse])
async def get_progress_history(
    plan_id: str,
    limit: int = Query(30, ge=1, le=365),
    auth: AuthContext = Depends(get_current_auth),
):
    with get_db() as db:
        snapshots = ProgressService(db).get_progress_history(parse_uuid(plan_id, "plan"), auth.user_uuid, limit)
        return [snapshot_to_response(s) for s in snapshots]


@router.get("/{plan_id}/slow-phases")
async def slow_phases(plan_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return ProgressService(db).identify_slow_phases(parse_uuid(plan_id, "plan"), auth.user_uuid)


@router.get("/{plan_id}/recommendations")
async def recommendations(plan_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return jsonable_encoder(
            RecommendationService(db).get_recommendations(parse_uuid(plan_id, "plan"), auth.user_uuid)
        )


# =============================================================================
# Tasks and Dependencies
# =============================================================================

@router.get("/{plan_id}/tasks", response_model=List[TaskResponse])
async def list_plan_tasks(
    plan_id: str,
    status: Optional[str] = None,
    assignee_id: Optional[str] = None,
    auth: AuthContext = Depends(get_current_auth),
):
    plan_uuid = parse_uuid(plan_id, "plan")
    with get_db() as db:
        service = TaskService(db)
        if assignee_id:
            tasks = service.list_tasks_by_assignee(plan_uuid, parse_uuid(assignee_id, "assignee"), auth.user_uuid)
        else:
            status_enum = parse_enum(TaskStatus, status) if status else None
            tasks = service.list_tasks_by_plan(plan_uuid, auth.user_uuid, status_enum)
        return [task_to_response(t) for t in tasks]


@router.get("/{plan_id}/dependencies")
async def plan_dependencies(plan_id: str, auth: AuthContext = Depends(get_current_auth)):
    """Every task in the plan with its prerequisites and dependents."""
    with get_db() as db:
        graph = DependencyService(db).get_plan_dependencies(parse_uuid(plan_id, "plan"), auth.user_uuid)
        return {
            str(task_id): {
                "prerequisites": [str(t) for t in edges["prerequisites"]],
                "dependents": [str(t) for t in edges["dependents"]],
            }
            for task_id, edges in graph.items()
        }


@router.get("/{plan_id}/ready-tasks")
async def ready_tasks(plan_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        ready = DependencyService(db).get_ready_tasks(parse_uuid(plan_id, "plan"), auth.user_uuid)
        return {"task_ids": [str(t) for t in ready]}


# =============================================================================
# Phases
# =============================================================================

@router.post("/{plan_id}/phases", response_model=PhaseResponse, status_code=201)
async def create_phase(plan_id: str, body: PhaseCreate, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        phase = PlanService(db).create_phase(
            parse_uuid(plan_id, "plan"),
            auth.user_uuid,
            name=body.name,
            description=body.description,
            estimated_duration=body.estimated_duration,
        )
        return phase_to_response(phase)


@router.put("/{plan_id}/phases/reorder", response_model=List[PhaseResponse])
async def reorder_phases(plan_id: str, body: ReorderRequest, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        phases = PlanService(db).reorder_phases(
            parse_uuid(plan_id, "plan"), auth.user_uuid, [parse_uuid(i, "phase") for i in body.ids],
        )
        return [phase_to_response(p) for p in phases]


@router.get("/phases/{phase_id}/tasks", response_model=List[TaskResponse])
async def list_phase_tasks(phase_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        tasks = TaskService(db).list_tasks_by_phase(parse_uuid(phase_id, "phase"), auth.user_uuid)
        return [task_to_response(t) for t in tasks]


@router.patch("/phases/{phase_id}", response_model=PhaseResponse)
async def update_phase(phase_id: str, body: PhaseUpdate, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        phase = PlanService(db).update_phase(
            parse_uuid(phase_id, "phase"), auth.user_uuid, body.model_dump(exclude_unset=True),
        )
        return phase_to_response(phase)


@router.delete("/phases/{phase_id}", status_code=204)
async def delete_phase(phase_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        PlanService(db).delete_phase(parse_uuid(phase_id, "phase"), auth.user_uuid)
    return Response(status_code=204)


@router.post("/phases/{phase_id}/tasks/reorder", response_model=List[TaskResponse])
async def reorder_tasks(phase_id: str, body: ReorderRequest, auth: AuthContext = Depends(get_current_auth)):
    """Reorder a phase's tasks and tell the rest of the plan room."""
    with get_db() as db:
        tasks = TaskService(db).reorder_tasks(
            parse_uuid(phase_id, "phase"), auth.user_uuid, [parse_uuid(i, "task") for i in body.ids],
        )
        response = [task_to_response(t) for t in tasks]
        plan_id = tasks[0].plan_id if tasks else None

    if plan_id is not None:
        await plan_rooms.broadcast_task_reordered(plan_id, [t.id for t in response], auth.user_id)
    return response
