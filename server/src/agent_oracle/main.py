"""FastAPI application entry point for Agent Oracle."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agent_oracle import __version__
from agent_oracle.api.routes import router, get_coordinator, get_event_bus
from agent_oracle.config import get_settings
from agent_oracle.exceptions import StoreUnavailableError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Background task handle
_maintenance_task: asyncio.Task | None = None


async def maintenance_loop() -> None:
    """Background cleanup loop.

    Periodically drops SSE event history for finished requests and
    forgets finished coordination tasks. Stored requests are untouched.
    """
    settings = get_settings()
    logger.info(f"Maintenance loop started: every {settings.maintenance_interval}s")

    while True:
        try:
            await asyncio.sleep(settings.maintenance_interval)

            events_cleaned = get_event_bus().cleanup_stale()
            tasks_cleaned = await get_coordinator().task_manager.cleanup_old_tasks(
                max_age_seconds=settings.finished_task_max_age,
            )
            if events_cleaned or tasks_cleaned:
                logger.info(
                    f"Maintenance: pruned {events_cleaned} event histories, "
                    f"{tasks_cleaned} finished tasks"
                )

        except asyncio.CancelledError:
            logger.info("Maintenance loop shutting down")
            break
        except Exception as e:
            logger.error(f"Maintenance loop error: {e}")
            await asyncio.sleep(5)  # Back off on error


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    global _maintenance_task

    # Startup
    logger.info(f"Starting Agent Oracle Server v{__version__}")
    settings = get_settings()
    logger.info(f"Store backend: {settings.store_backend}, debug: {settings.debug}")

    if settings.maintenance_enabled:
        _maintenance_task = asyncio.create_task(maintenance_loop())

    yield

    # Shutdown
    if _maintenance_task:
        _maintenance_task.cancel()
        try:
            await _maintenance_task
        except asyncio.CancelledError:
            pass

    active = get_coordinator().task_manager.get_active_tasks()
    if active:
        logger.warning(f"Shutting down with {len(active)} requests still processing")
    logger.info("Shutting down Agent Oracle Server")


async def store_unavailable_handler(request: Request, exc: StoreUnavailableError) -> JSONResponse:
    """Map store failures to 503."""
    logger.error(f"Store unavailable during {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Request store unavailable"},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Agent Oracle",
        description="Multi-agent data oracle with median consensus",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StoreUnavailableError, store_unavailable_handler)
    app.include_router(router)

    return app


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "agent_oracle.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
