"""Plan collaboration socket."""

from fastapi import APIRouter, Depends, WebSocket

from unbuilt.core.auth import AuthContext, require_admin
from unbuilt.realtime import plan_rooms

router = APIRouter(tags=["realtime"])


@router.websocket("/ws/plans")
async def plan_socket(websocket: WebSocket):
    """Authenticate with ``?token=`` or a Bearer header, then send join-plan/leave-plan/ping."""
    await plan_rooms.handle(websocket)


@router.get("/api/realtime/rooms")
async def list_rooms(auth: AuthContext = Depends(require_admin)):
    return {"rooms": plan_rooms.get_all_rooms()}


@router.get("/api/realtime/rooms/{plan_id}")
async def room_info(plan_id: str, auth: AuthContext = Depends(require_admin)):
    return {"room": plan_rooms.get_room_info(plan_id)}
