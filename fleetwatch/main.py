"""FastAPI application setup for the fleet dashboard enrichment service."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api import router as api_router
from .session_manager import get_registry
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="fleetwatch/main")


@asynccontextmanager
async def lifespan(_app: FastAPI):
    yield
    # Stop every drain loop before the event loop goes away.
    await get_registry().close_all()
    logger.info("All dashboard sessions closed")


app = FastAPI(title="Fleetwatch Enrichment", lifespan=lifespan)


@app.get("/healthz")
def healthz():
    """Liveness probe."""
    return {"status": "ok"}


# API routes
app.include_router(api_router, prefix="/v1")
