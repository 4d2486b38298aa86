"""FastAPI WebSocket server for the Mao card game."""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from config import config
from constants import ROOM_MAX_AGE_MS, ROOM_SWEEP_INTERVAL_SECONDS
from handlers import ConnectionContext, dispatch_raw, leave_current_room
from logging_config import connection_id_var, setup_logging
from room import RoomManager
from routers.health import router as health_router, set_health_dependencies

# Initialize Sentry if configured
if config.SENTRY_DSN:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration

    sentry_sdk.init(
        dsn=config.SENTRY_DSN,
        environment=config.ENVIRONMENT,
        traces_sample_rate=0.1 if config.ENVIRONMENT == "production" else 1.0,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
    )
    logging.getLogger(__name__).info("Sentry error tracking initialized")

setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)

room_manager = RoomManager()


async def _periodic_room_sweep():
    """Periodic task that closes rooms older than the configured maximum age."""
    while True:
        try:
            await asyncio.sleep(ROOM_SWEEP_INTERVAL_SECONDS)
            await room_manager.close_stale_rooms(ROOM_MAX_AGE_MS)
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error(f"Room sweep failed: {e}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler: starts and stops the room sweeper."""
    set_health_dependencies(room_manager=room_manager)
    sweep_task = asyncio.create_task(_periodic_room_sweep())
    logger.info(f"Mao server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    sweep_task.cancel()
    try:
        await sweep_task
    except asyncio.CancelledError:
        pass
    await _close_all_websockets()
    room_manager.rooms.clear()
    logger.info("Shutdown complete")


async def _close_all_websockets():
    """Close all active WebSocket connections gracefully."""
    for room in list(room_manager.rooms.values()):
        for websocket in list(room.connections.values()):
            try:
                await websocket.close(code=1001, reason="Server shutting down")
            except Exception as e:
                logger.debug(f"Close failed: {e}")
    logger.info("All WebSocket connections closed")


app = FastAPI(
    title="Mao Card Game",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(health_router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    connection_id = str(uuid.uuid4())
    connection_id_var.set(connection_id)
    logger.debug("WebSocket connected")

    ctx = ConnectionContext(websocket=websocket, connection_id=connection_id)

    try:
        while True:
            raw = await websocket.receive_text()
            await dispatch_raw(raw, ctx, room_manager=room_manager)
    except WebSocketDisconnect:
        logger.debug("WebSocket disconnected")
    finally:
        await leave_current_room(ctx, room_manager)


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting Mao server on {config.HOST}:{config.PORT}")
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
