from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from routers.health import health_router
from backend import RedisBackend
from gateway import ConnectionGateway
from hub import Hub
from constants import CORS_ALLOW_ORIGINS, LOG_FILE, LOG_LEVEL, TELEMETRY_ENABLED
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

app = FastAPI(title="CollabHub")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(health_router)

# One hub per process. Its connection and session registries are in-memory and
# only touched from the event loop.
app.state.hub = Hub(telemetry=RedisBackend() if TELEMETRY_ENABLED else None)

logger.info(f"FastAPI application initialized (telemetry {'enabled' if TELEMETRY_ENABLED else 'disabled'})")


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """Collaboration socket.

    The first envelope must be ``authenticate``; the connection is closed with
    1008 if that fails or does not happen within the auth timeout.
    """
    await websocket.accept()
    gateway = ConnectionGateway(websocket.app.state.hub, websocket)
    gateway.start()

    try:
        while not gateway.closed:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"WebSocket disconnected normally for connection {gateway.connection.id}")
                break
            if message.get("text") is not None:
                await gateway.handle_text(message["text"])
            else:
                await gateway.handle_bytes(message.get("bytes") or b"")
    except Exception as e:
        logger.error(f"WebSocket error for connection {gateway.connection.id}: {e}", exc_info=True)
    finally:
        await gateway.disconnect()
        try:
            await websocket.close()
        except Exception as e:
            logger.debug(f"Socket for connection {gateway.connection.id} already closed: {e}")
