"""Task CRUD, status changes and prerequisites.

Every change is also pushed to the plan's WebSocket room so other
collaborators see it without reloading.
"""

from typing import List

from fastapi import APIRouter, Depends, Query, Response

from unbuilt.api.deps import parse_enum, parse_optional_uuid, parse_uuid
from unbuilt.api.schemas import (
    BulkStatusUpdate, DependencyCreate, DependencyResponse, HistoryResponse, TaskCreate, TaskResponse,
    TaskStatusUpdate, TaskUpdate, dependency_to_response, history_to_response, task_to_response,
)
from unbuilt.core.auth import AuthContext, get_current_auth
from unbuilt.core.database import get_db
from unbuilt.core.models import TaskStatus
from unbuilt.realtime import plan_rooms
from unbuilt.services import DependencyService, ProgressService, TaskService
from unbuilt.services.tasks import task_state

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


@router.post("", response_model=TaskResponse, status_code=201)
async def create_task(body: TaskCreate, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        task = TaskService(db).create_task(
            phase_id=parse_uuid(body.phase_id, "phase"),
            user_id=auth.user_uuid,
            title=body.title,
            description=body.description,
            estimated_time=body.estimated_time,
            resources=body.resources,
            order=body.order,
            assignee_id=parse_optional_uuid(body.assignee_id, "assignee"),
        )
        state = task_state(task)
        response = task_to_response(task)

    await plan_rooms.broadcast_task_created(state["plan_id"], state, auth.user_id)
    return response


@router.post("/bulk-status", response_model=List[TaskResponse])
async def bulk_update_status(body: BulkStatusUpdate, auth: AuthContext = Depends(get_current_auth)):
    """Set one status on several tasks. Fails as a whole if any task is blocked."""
    status = parse_enum(TaskStatus, body.status)
    with get_db() as db:
        tasks = TaskService(db).bulk_update_status(
            [parse_uuid(t, "task") for t in body.task_ids], auth.user_uuid, status,
        )
        states = [task_state(t) for t in tasks]
        response = [task_to_response(t) for t in tasks]

    for state in states:
        await plan_rooms.broadcast_task_updated(state["plan_id"], state, auth.user_id)
    return response


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(task_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        return task_to_response(TaskService(db).get_task(parse_uuid(task_id, "task"), auth.user_uuid))


@router.patch("/{task_id}", response_model=TaskResponse)
async def update_task(task_id: str, body: TaskUpdate, auth: AuthContext = Depends(get_current_auth)):
    updates = body.model_dump(exclude_unset=True)
    if "assignee_id" in updates:
        updates["assignee_id"] = parse_optional_uuid(updates["assignee_id"], "assignee")

    with get_db() as db:
        task = TaskService(db).update_task(parse_uuid(task_id, "task"), auth.user_uuid, updates)
        state = task_state(task)
        response = task_to_response(task)

    await plan_rooms.broadcast_task_updated(state["plan_id"], state, auth.user_id)
    return response


@router.patch("/{task_id}/status", response_model=TaskResponse)
async def update_task_status(task_id: str, body: TaskStatusUpdate, auth: AuthContext = Depends(get_current_auth)):
    """Change status. Starting or completing a blocked task needs ``override_prerequisites``."""
    status = parse_enum(TaskStatus, body.status)
    with get_db() as db:
        task = TaskService(db).update_task_status(
            parse_uuid(task_id, "task"), auth.user_uuid, status, body.override_prerequisites,
        )
        state = task_state(task)
        response = task_to_response(task)
        progress = ProgressService(db).calculate_progress(task.plan_id, auth.user_uuid)

    await plan_rooms.broadcast_task_updated(state["plan_id"], state, auth.user_id)
    await plan_rooms.broadcast_progress_updated(state["plan_id"], progress, auth.user_id)
    return response


@router.delete("/{task_id}", status_code=204)
async def delete_task(task_id: str, auth: AuthContext = Depends(get_current_auth)):
    task_uuid = parse_uuid(task_id, "task")
    with get_db() as db:
        service = TaskService(db)
        plan_id = service.get_task(task_uuid, auth.user_uuid).plan_id
        service.delete_task(task_uuid, auth.user_uuid)

    await plan_rooms.broadcast_task_deleted(plan_id, task_uuid, auth.user_id)
    return Response(status_code=204)


@router.get("/{task_id}/history", response_model=List[HistoryResponse])
async def task_history(
    task_id: str,
    limit: int = Query(50, ge=1, le=200),
    auth: AuthContext = Depends(get_current_auth),
):
    with get_db() as db:
        entries = TaskService(db).get_task_history(parse_uuid(task_id, "task"), auth.user_uuid, limit)
        return [history_to_response(e) for e in entries]


# =============================================================================
# Dependencies
# =============================================================================

@router.get("/{task_id}/dependencies")
async def task_dependencies(task_id: str, auth: AuthContext = Depends(get_current_auth)):
    task_uuid = parse_uuid(task_id, "task")
    with get_db() as db:
        service = DependencyService(db)
        edges = service.get_task_dependencies(task_uuid, auth.user_uuid)
        return {
            "prerequisites": [str(t) for t in edges["prerequisites"]],
            "dependents": [str(t) for t in edges["dependents"]],
            "is_blocked": service.is_task_blocked(task_uuid, auth.user_uuid),
        }


@router.post("/{task_id}/dependencies", response_model=DependencyResponse, status_code=201)
async def add_dependency(task_id: str, body: DependencyCreate, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        dependency = DependencyService(db).add_dependency(
            parse_uuid(task_id, "task"),
            parse_uuid(body.prerequisite_task_id, "prerequisite task"),
            auth.user_uuid,
        )
        return dependency_to_response(dependency)


@router.post("/{task_id}/dependencies/validate")
async def validate_dependency(task_id: str, body: DependencyCreate, auth: AuthContext = Depends(get_current_auth)):
    """Check whether a prerequisite could be added without creating a cycle."""
    task_uuid = parse_uuid(task_id, "task")
    with get_db() as db:
        TaskService(db).get_task(task_uuid, auth.user_uuid)
        return DependencyService(db).validate_dependency(task_uuid, parse_uuid(body.prerequisite_task_id, "prerequisite task"))


@router.get("/{task_id}/blocking")
async def blocking_prerequisites(task_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        incomplete = DependencyService(db).get_incomplete_prerequisites(parse_uuid(task_id, "task"), auth.user_uuid)
        return {
            "is_blocked": bool(incomplete),
            "incomplete_prerequisites": [task_to_response(t) for t in incomplete],
        }


@router.delete("/dependencies/{dependency_id}", status_code=204)
async def remove_dependency(dependency_id: str, auth: AuthContext = Depends(get_current_auth)):
    with get_db() as db:
        DependencyService(db).remove_dependency(parse_uuid(dependency_id, "dependency"), auth.user_uuid)
    return Response(status_code=204)
