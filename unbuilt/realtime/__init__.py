"""Real-time collaboration over WebSockets."""

from .plan_rooms import PlanRoomManager, plan_rooms

__all__ = ["PlanRoomManager", "plan_rooms"]
