"""roomcast Backend Application.

This is the main entry point for the roomcast server: room-scoped,
real-time broadcast chat over WebSockets.

Modules:
    - chat: WebSocket chat rooms (registry, rooms, connection handles)
    - media: Trending GIF lookup (Klipy)
    - chain: Blockchain RPC connectivity probe
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from roomcast import __version__
from roomcast.chain.router import router as chain_router
from roomcast.chat.router import router as chat_router
from roomcast.chat.server import BroadcastServer
from roomcast.config import AppSettings, get_config
from roomcast.media.router import router as media_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# httpx/httpcore log every TCP connection and TLS handshake.
for _noisy in (
    "httpx",
    "httpcore",
    "httpcore.http11",
    "httpcore.connection",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config: AppSettings = app.state.config

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in roomcast.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    logger.info(
        f"roomcast ready on ws://{config.server.host}:{config.server.port}/ws "
        f"(history={config.rooms.history_limit}, replay={config.rooms.replay_limit})"
    )

    yield  # Application runs here

    # Shutdown
    await app.state.broadcast_server.shutdown()
    logger.info("Application shutdown complete")


def create_app(config: Optional[AppSettings] = None) -> FastAPI:
    """Build the FastAPI application and its BroadcastServer.

    Args:
        config: Settings to use; defaults to the process-wide config.
    """
    config = config or get_config()

    app = FastAPI(
        title="roomcast API",
        description="Room-scoped real-time broadcast chat server",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = config
    app.state.broadcast_server = BroadcastServer.from_settings(config.rooms)

    # Register all routers
    app.include_router(chat_router)
    app.include_router(media_router)
    app.include_router(chain_router)

    @app.get("/health")
    async def health() -> dict:
        """Health check endpoint.

        Returns:
            dict: Status object indicating the server is running.
        """
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    """Serve the application with uvicorn using the configured host/port."""
    import uvicorn

    config = get_config()
    uvicorn.run(
        "roomcast.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level,
    )
