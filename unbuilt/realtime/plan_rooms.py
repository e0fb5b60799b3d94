"""WebSocket rooms for collaborating on an action plan.

Each plan id maps to a room of participants. Clients join and leave rooms
over a single socket, and task changes made through the REST API are pushed
to everyone else in the room.
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Set
from uuid import UUID

from fastapi import HTTPException, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from unbuilt.core.auth import decode_token
from unbuilt.core.config import settings
from unbuilt.core.database import get_db
from unbuilt.core.logging import get_logger
from unbuilt.core.models import ActionPlan

logger = get_logger(__name__)

POLICY_VIOLATION = 1008
GOING_AWAY = 1001


def _now() -> datetime:
    return datetime.utcnow()


def _timestamp() -> str:
    return _now().isoformat()


@dataclass
class ConnectedUser:
    user_id: str
    email: str

    @property
    def user_name(self) -> str:
        return self.email.split("@")[0]


@dataclass
class Participant:
    user_id: str
    user_name: str
    email: str
    websocket: WebSocket
    joined_at: datetime = field(default_factory=_now)
    last_activity: datetime = field(default_factory=_now)


@dataclass
class PlanRoom:
    plan_id: str
    participants: Dict[str, Participant] = field(default_factory=dict)
    last_activity: datetime = field(default_factory=_now)


def token_from_websocket(websocket: WebSocket) -> Optional[str]:
    """Access token from the ``token`` query parameter or a Bearer header."""
    token = websocket.query_params.get("token")
    if token:
        return token
    header = websocket.headers.get("authorization", "")
    if header.lower().startswith("bearer "):
        return header[7:].strip() or None
    return None


def authenticate_websocket(websocket: WebSocket) -> Optional[ConnectedUser]:
    token = token_from_websocket(websocket)
    if not token:
        return None
    try:
        payload = decode_token(token)
    except (HTTPException, ValidationError):
        return None
    if payload.type != "access" or not payload.email:
        return None
    return ConnectedUser(user_id=payload.sub, email=payload.email)


def user_owns_plan(user_id: str, plan_id: str) -> bool:
    """Same ownership rule the REST services apply before touching a plan."""
    try:
        plan_uuid, user_uuid = UUID(plan_id), UUID(user_id)
    except ValueError:
        return False
    with get_db() as db:
        owned = db.query(ActionPlan.id).filter(ActionPlan.id == plan_uuid, ActionPlan.user_id == user_uuid).first()
    return owned is not None


class PlanRoomManager:
    """Tracks plan rooms and user sockets, and fans out plan events."""

    def __init__(
        self,
        inactivity_minutes: Optional[int] = None,
        can_access: Callable[[str, str], bool] = user_owns_plan,
    ):
        self.can_access = can_access
        self.rooms: Dict[str, PlanRoom] = {}
        self.user_connections: Dict[str, Set[WebSocket]] = {}
        self.inactivity = timedelta(minutes=inactivity_minutes or settings.ws_inactivity_minutes)
        self._cleanup_task: Optional[asyncio.Task] = None

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def handle(self, websocket: WebSocket) -> None:
        """Serve one socket until it disconnects."""
        await websocket.accept()
        user = authenticate_websocket(websocket)
        if not user:
            logger.warning("websocket_rejected", reason="authentication_required")
            await websocket.close(code=POLICY_VIOLATION, reason="Authentication required")
            return

        await self.connect(websocket, user)
        try:
            while True:
                raw = await websocket.receive_text()
                await self.handle_raw(websocket, user, raw)
        except WebSocketDisconnect:
            pass
        finally:
            await self.disconnect(websocket, user.user_id)

    async def connect(self, websocket: WebSocket, user: ConnectedUser) -> None:
        self.user_connections.setdefault(user.user_id, set()).add(websocket)
        await self._send(websocket, {
            "type": "pong",
            "data": {"userId": user.user_id, "connected": True, "timestamp": _timestamp()},
        })
        logger.info("websocket_connected", user_id=user.user_id)

    async def disconnect(self, websocket: WebSocket, user_id: str) -> None:
        sockets = self.user_connections.get(user_id)
        if sockets is not None:
            sockets.discard(websocket)
            if not sockets:
                del self.user_connections[user_id]

        for plan_id, room in list(self.rooms.items()):
            participant = room.participants.get(user_id)
            if participant and participant.websocket is websocket:
                await self.leave_plan(user_id, plan_id)

        logger.info("websocket_disconnected", user_id=user_id)

    async def handle_raw(self, websocket: WebSocket, user: ConnectedUser, raw: str) -> None:
        try:
            message = json.loads(raw)
            if not isinstance(message, dict):
                raise ValueError("message must be an object")
        except ValueError:
            await self._send_error(websocket, "Invalid message format")
            return
        await self.handle_message(websocket, user, message)

    async def handle_message(self, websocket: WebSocket, user: ConnectedUser, message: Dict[str, Any]) -> None:
        kind = message.get("type")
        plan_id = message.get("planId")

        if kind == "join-plan" and plan_id:
            await self.join_plan(websocket, user, str(plan_id))
        elif kind == "leave-plan" and plan_id:
            await self.leave_plan(user.user_id, str(plan_id))
        elif kind == "ping":
            await self._send(websocket, {"type": "pong", "timestamp": _timestamp()})
        else:
            logger.warning("websocket_unknown_message", message_type=kind, user_id=user.user_id)

    # =========================================================================
    # Rooms
    # =========================================================================

    async def join_plan(self, websocket: WebSocket, user: ConnectedUser, plan_id: str) -> Optional[PlanRoom]:
        if not self.can_access(user.user_id, plan_id):
            logger.warning("plan_room_access_denied", plan_id=plan_id, user_id=user.user_id)
            await self._send_error(websocket, "Plan not found or access denied")
            return None

        room = self.rooms.setdefault(plan_id, PlanRoom(plan_id=plan_id))
        room.participants[user.user_id] = Participant(
            user_id=user.user_id,
            user_name=user.user_name,
            email=user.email,
            websocket=websocket,
        )
        room.last_activity = _now()

        await self._send(websocket, {
            "type": "join-plan",
            "planId": plan_id,
            "data": {
                "success": True,
                "participantCount": len(room.participants),
                "participants": [
                    {"userId": p.user_id, "userName": p.user_name} for p in room.participants.values()
                ],
            },
        })
        await self.broadcast(plan_id, {
            "type": "user-joined",
            "planId": plan_id,
            "data": {
                "userId": user.user_id,
                "userName": user.user_name,
                "participantCount": len(room.participants),
            },
        }, exclude_user_id=user.user_id)

        logger.info("plan_room_joined", plan_id=plan_id, user_id=user.user_id, participants=len(room.participants))
        return room

    async def leave_plan(self, user_id: str, plan_id: str) -> None:
        room = self.rooms.get(plan_id)
        if not room:
            return

        room.participants.pop(user_id, None)
        room.last_activity = _now()
        await self.broadcast(plan_id, {
            "type": "user-left",
            "planId": plan_id,
            "data": {"userId": user_id, "participantCount": len(room.participants)},
        })

        if not room.participants:
            del self.rooms[plan_id]
            logger.info("plan_room_closed", plan_id=plan_id)

        logger.info("plan_room_left", plan_id=plan_id, user_id=user_id)

    async def broadcast(self, plan_id: str, message: Dict[str, Any], exclude_user_id: Optional[str] = None) -> int:
        """Send to every participant except ``exclude_user_id``. Returns the delivery count."""
        room = self.rooms.get(str(plan_id))
        if not room:
            return 0

        sent = 0
        for participant in list(room.participants.values()):
            if participant.user_id == exclude_user_id:
                continue
            if await self._send(participant.websocket, message):
                participant.last_activity = _now()
                sent += 1

        room.last_activity = _now()
        if sent:
            logger.debug("plan_room_broadcast", plan_id=str(plan_id), message_type=message.get("type"), recipients=sent)
        return sent

    # =========================================================================
    # Plan events
    # =========================================================================

    async def _plan_event(self, kind: str, plan_id: Any, data: Dict[str, Any], user_id: Optional[Any]) -> int:
        return await self.broadcast(
            str(plan_id),
            {"type": kind, "planId": str(plan_id), "data": data, "timestamp": _timestamp()},
            exclude_user_id=str(user_id) if user_id is not None else None,
        )

    async def broadcast_task_updated(self, plan_id: Any, task: Dict[str, Any], user_id: Optional[Any] = None) -> int:
        return await self._plan_event("task-updated", plan_id, {"task": task}, user_id)

    async def broadcast_task_created(self, plan_id: Any, task: Dict[str, Any], user_id: Optional[Any] = None) -> int:
        return await self._plan_event("task-created", plan_id, {"task": task}, user_id)

    async def broadcast_task_deleted(self, plan_id: Any, task_id: Any, user_id: Optional[Any] = None) -> int:
        return await self._plan_event("task-deleted", plan_id, {"taskId": str(task_id)}, user_id)

    async def broadcast_task_reordered(self, plan_id: Any, task_ids: List[Any], user_id: Optional[Any] = None) -> int:
        return await self._plan_event("task-reordered", plan_id, {"taskIds": [str(t) for t in task_ids]}, user_id)

    async def broadcast_progress_updated(self, plan_id: Any, progress: Dict[str, Any], user_id: Optional[Any] = None) -> int:
        return await self._plan_event("progress-updated", plan_id, {"progress": progress}, user_id)

    # =========================================================================
    # Introspection and maintenance
    # =========================================================================

    def get_room_info(self, plan_id: str) -> Optional[Dict[str, Any]]:
        room = self.rooms.get(str(plan_id))
        if not room:
            return None
        return {
            "planId": room.plan_id,
            "participantCount": len(room.participants),
            "participants": [
                {
                    "userId": p.user_id,
                    "userName": p.user_name,
                    "joinedAt": p.joined_at.isoformat(),
                    "lastActivity": p.last_activity.isoformat(),
                }
                for p in room.participants.values()
            ],
            "lastActivity": room.last_activity.isoformat(),
        }

    def get_all_rooms(self) -> List[Dict[str, Any]]:
        return [
            {
                "planId": plan_id,
                "participantCount": len(room.participants),
                "lastActivity": room.last_activity.isoformat(),
            }
            for plan_id, room in self.rooms.items()
        ]

    def get_user_connection_count(self, user_id: str) -> int:
        return len(self.user_connections.get(str(user_id), ()))

    def cleanup_inactive(self, now: Optional[datetime] = None) -> int:
        """Drop idle participants and idle empty rooms. Returns participants removed."""
        now = now or _now()
        removed = 0
        for plan_id, room in list(self.rooms.items()):
            for user_id, participant in list(room.participants.items()):
                if now - participant.last_activity > self.inactivity:
                    del room.participants[user_id]
                    removed += 1
                    logger.info("plan_room_participant_expired", plan_id=plan_id, user_id=user_id)

            if not room.participants and now - room.last_activity > self.inactivity:
                del self.rooms[plan_id]
                logger.info("plan_room_expired", plan_id=plan_id)
        return removed

    async def start_cleanup_task(self, interval_seconds: Optional[int] = None) -> None:
        if self._cleanup_task is not None:
            return
        interval = interval_seconds or settings.ws_cleanup_interval_seconds
        self._cleanup_task = asyncio.create_task(self._cleanup_loop(interval))
        logger.info("plan_room_cleanup_started", interval_seconds=interval)

    async def stop_cleanup_task(self) -> None:
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None

    async def _cleanup_loop(self, interval: int) -> None:
        while True:
            await asyncio.sleep(interval)
            self.cleanup_inactive()

    async def shutdown(self) -> None:
        await self.stop_cleanup_task()
        for sockets in list(self.user_connections.values()):
            for websocket in list(sockets):
                try:
                    await websocket.close(code=GOING_AWAY, reason="Server shutting down")
                except RuntimeError:
                    # Already closed by the client
                    pass
        self.rooms.clear()
        self.user_connections.clear()
        logger.info("plan_rooms_shutdown")

    # =========================================================================
    # Sending
    # =========================================================================

    async def _send(self, websocket: WebSocket, message: Dict[str, Any]) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except (WebSocketDisconnect, RuntimeError, ConnectionError) as e:
            logger.warning("websocket_send_failed", error=str(e))
            return False

    async def _send_error(self, websocket: WebSocket, error: str) -> None:
        await self._send(websocket, {"type": "pong", "data": {"error": error}, "timestamp": _timestamp()})


plan_rooms = PlanRoomManager()
