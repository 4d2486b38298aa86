"""
Health and statistics endpoints.

Provides:
- / - Liveness banner with room and player counts
- /health - Basic liveness check (is the app running?)
- /stats - Active rooms and connected players
"""

from datetime import datetime, timezone

from fastapi import APIRouter

router = APIRouter(tags=["health"])

# Service references (set during app initialization)
_room_manager = None


def set_health_dependencies(room_manager=None):
    """Set dependencies for health checks."""
    global _room_manager
    _room_manager = room_manager


def _counts() -> dict:
    if _room_manager is None:
        return {"active_games": 0, "active_players": 0}
    return {
        "active_games": _room_manager.room_count(),
        "active_players": _room_manager.connection_count(),
    }


@router.get("/")
async def index():
    """Banner for anyone pointing a browser at the server."""
    return {"message": "Mao Game Server is running!", **_counts()}


@router.get("/health")
async def health_check():
    """
    Basic liveness check - is the app running?

    This endpoint should always return 200 if the process is alive.
    Used by container orchestration for restart decisions.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/stats")
async def stats():
    """Active rooms and connected players."""
    return {
        **_counts(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
