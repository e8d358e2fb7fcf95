"""Main FastAPI application - health checker lifecycle and query API."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import settings
from .database import init_db, close_db
from .routers import health_router
from .services.scheduler import SchedulerService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown."""
    logger.info("Starting sitewatch health checker")

    await init_db()
    logger.info("Database initialized")

    scheduler = SchedulerService.from_settings(settings)
    app.state.scheduler = scheduler
    scheduler.start()

    yield

    # A round in flight is left to finish on its own
    scheduler.stop()
    await close_db()
    logger.info("Shutdown complete")


def create_app(with_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="sitewatch",
        description="Health monitoring and alerting for deployed sites",
        version="1.0.0",
        lifespan=lifespan if with_lifespan else None,
    )

    app.include_router(health_router)

    @app.get("/health")
    async def health_check():
        scheduler = getattr(app.state, "scheduler", None)
        return {
            "status": "healthy",
            "round_in_progress": bool(scheduler and scheduler.round_in_progress),
        }

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.web_port)
