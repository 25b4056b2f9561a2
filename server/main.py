"""FastAPI WebSocket server for ListUp."""

import json
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from config import config
from handlers import ConnectionContext, dispatch_message
from logging_config import connection_id_var, room_code_var, setup_logging
from room import RoomManager

__version__ = "1.0.0"

setup_logging(level=config.LOG_LEVEL, environment=config.ENVIRONMENT)
logger = logging.getLogger(__name__)


def init_sentry() -> None:
    """Report handler and timer crashes to Sentry when SENTRY_DSN is set."""
    if not config.SENTRY_DSN:
        return
    try:
        import sentry_sdk
        from sentry_sdk.integrations.fastapi import FastApiIntegration
        from sentry_sdk.integrations.starlette import StarletteIntegration
    except ImportError:
        logger.warning("SENTRY_DSN is set but sentry-sdk is not installed (pip install listup[sentry])")
        return

    sentry_sdk.init(
        dsn=config.SENTRY_DSN,
        environment=config.ENVIRONMENT,
        release=f"listup@{__version__}",
        traces_sample_rate=0.1 if config.ENVIRONMENT == "production" else 1.0,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
    )
    logger.info("Sentry error tracking initialized")


init_sentry()

room_manager = RoomManager()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for async service initialization."""
    from routers.health import set_health_dependencies
    from routers.packs import set_pack_store
    from stores.pack_store import close_pack_store, get_pack_store

    pack_store = None
    if config.POSTGRES_URL:
        try:
            pack_store = await get_pack_store(config.POSTGRES_URL)
            logger.info("Pack store initialized")
        except Exception as e:
            logger.error(f"Failed to initialize pack store: {e}")
            raise
    else:
        logger.warning("POSTGRES_URL not configured - community pack endpoints will not work")

    set_pack_store(pack_store)
    set_health_dependencies(
        db_pool=pack_store.pool if pack_store else None,
        room_manager=room_manager,
    )

    logger.info(f"ListUp server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    for code in list(room_manager.rooms):
        await room_manager.remove_room(code)
    set_pack_store(None)
    await close_pack_store()
    logger.info("Shutdown complete")


app = FastAPI(
    title="ListUp",
    debug=config.DEBUG,
    version=__version__,
    lifespan=lifespan,
)


# =============================================================================
# Routers
# =============================================================================

from routers.health import router as health_router
from routers.packs import router as packs_router
app.include_router(health_router)
app.include_router(packs_router)


@app.post("/api/rooms")
async def create_room_code():
    """Hand out a room code that no open room is using."""
    return {"room_code": room_manager.generate_code()}


# =============================================================================
# WebSocket transport
# =============================================================================


def _reject_constant(token: str):
    raise ValueError(f"{token} is not valid JSON")


def decode_frame(message: dict):
    """
    Decode one inbound WebSocket frame as strict JSON.

    NaN, Infinity and -Infinity are rejected.

    Returns:
        The decoded value, or None if the frame is not valid JSON.
    """
    payload = message.get("text")
    if payload is None:
        payload = message.get("bytes")
    if payload is None:
        return None
    try:
        return json.loads(payload, parse_constant=_reject_constant)
    except ValueError:
        return None


@app.websocket("/ws/{room_code}")
async def websocket_endpoint(websocket: WebSocket, room_code: str):
    await websocket.accept()

    connection_id = str(uuid.uuid4())
    room = await room_manager.open_connection(room_code, connection_id, websocket)
    room_code_var.set(room.code)
    connection_id_var.set(connection_id)
    logger.debug("WebSocket connected")

    ctx = ConnectionContext(
        websocket=websocket,
        connection_id=connection_id,
        room=room,
    )

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            data = decode_frame(message)
            if data is None:
                await ctx.error("Invalid message")
                continue
            await dispatch_message(data, ctx)
    except WebSocketDisconnect:
        pass
    finally:
        await room_manager.close_connection(room, connection_id)
        logger.debug("WebSocket disconnected")


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting ListUp server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
