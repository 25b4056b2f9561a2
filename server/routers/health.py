"""
Health and monitoring endpoints.

- /health: liveness; 200 while the process runs
- /ready: readiness; rooms are in memory, so only a configured but
  unreachable pack database makes the server unready
- /metrics: room, connection and round counts
"""

import logging
from collections import Counter
from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from game import GameStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Set by main.py during startup
_db_pool = None
_room_manager = None


def set_health_dependencies(db_pool=None, room_manager=None):
    global _db_pool, _room_manager
    _db_pool = db_pool
    _room_manager = room_manager


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health")
async def health_check():
    return {"status": "ok", "timestamp": _now()}


async def _check_database() -> dict:
    if _db_pool is None:
        return {"status": "not_configured"}
    try:
        async with _db_pool.acquire() as conn:
            await conn.fetchval("SELECT 1")
    except Exception as e:
        logger.warning(f"Pack database health check failed: {e}")
        return {"status": "error", "message": str(e)}
    return {"status": "ok"}


@router.get("/ready")
async def readiness_check():
    checks = {
        "database": await _check_database(),
        "rooms": {"status": "ok" if _room_manager is not None else "not_configured"},
    }
    ready = checks["database"]["status"] != "error"
    return JSONResponse(
        status_code=200 if ready else 503,
        content={
            "status": "ok" if ready else "degraded",
            "checks": checks,
            "timestamp": _now(),
        },
    )


@router.get("/metrics")
async def metrics():
    """
    Live room counts.

    rounds_in_progress counts rooms that are debating or playing;
    rooms_by_status and rounds_by_mode break the rooms down further.
    """
    data = {"timestamp": _now()}
    if _room_manager is None:
        return data

    rooms = list(_room_manager.rooms.values())
    in_round = [
        r for r in rooms
        if r.game.status in (GameStatus.DEBATING, GameStatus.PLAYING)
    ]
    data.update({
        "active_rooms": len(rooms),
        "open_connections": sum(len(r.connections) for r in rooms),
        "joined_players": sum(len(r.game.players) for r in rooms),
        "spectators": sum(
            len(r.game.players) - len(r.game.active_players()) for r in rooms
        ),
        "rounds_in_progress": len(in_round),
        "rooms_by_status": dict(Counter(r.game.status.value for r in rooms)),
        "rounds_by_mode": dict(Counter(r.game.settings.game_mode.value for r in in_round)),
    })
    return data
