from fastapi import APIRouter, Request
from logging_config import get_logger

logger = get_logger(__name__)

health_router = APIRouter(prefix="/api", tags=["health"])


@health_router.get("/health")
async def health(request: Request):
    """Liveness probe with live connection and session counts.

    Returns:
    - status: always "ok" while the process serves requests
    - clients: authenticated connections currently open
    - projects: sessions that currently have at least one member
    """
    stats = request.app.state.hub.stats()
    logger.debug(f"Health check: {stats['clients']} clients, {stats['projects']} projects")
    return {"status": "ok", **stats}
