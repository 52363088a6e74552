"""Main entry point for the venue cache server.

Startup sequence:
1. Initialize DI container and check Redis connectivity
2. Inject the venue handler into the router
3. Start scheduled background jobs
4. Serve HTTP with FastAPI
"""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from app.config import Settings
from app.container import Container
from app.routers import venue_router, set_venue_handler
from app.middleware import PrometheusMiddleware
from app.metrics import (
    BACKGROUND_JOB_RUNS_TOTAL,
    BACKGROUND_JOB_DURATION_SECONDS,
    BACKGROUND_JOB_LAST_RUN_TIMESTAMP,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global container and scheduler
container: Container = None
scheduler: AsyncIOScheduler = None


async def run_cache_stats_job():
    """Background job: Refresh venue store and search log gauges."""
    job_name = "cache_stats_refresh"
    logger.debug("[Scheduler] Running CacheStatsJob")
    start_time = time.perf_counter()
    try:
        await container.venue_cache.update_cache_metrics()
        BACKGROUND_JOB_RUNS_TOTAL.labels(job_name=job_name, status="success").inc()
        BACKGROUND_JOB_LAST_RUN_TIMESTAMP.labels(job_name=job_name).set_to_current_time()
    except Exception as e:
        BACKGROUND_JOB_RUNS_TOTAL.labels(job_name=job_name, status="error").inc()
        logger.error(f"[Scheduler] CacheStatsJob failed: {e}")
    finally:
        duration = time.perf_counter() - start_time
        BACKGROUND_JOB_DURATION_SECONDS.labels(job_name=job_name).observe(duration)


def start_background_jobs(settings: Settings):
    """Start all background jobs using APScheduler."""
    global scheduler
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        run_cache_stats_job,
        trigger=IntervalTrigger(minutes=settings.cache_stats_refresh_minutes),
        id="cache_stats_refresh",
        name="Venue Cache Stats Refresh",
        replace_existing=True,
    )
    logger.info(
        f"[Scheduler] Scheduled cache stats refresh every "
        f"{settings.cache_stats_refresh_minutes} minutes"
    )

    scheduler.start()
    logger.info("[Scheduler] Background jobs started")


async def startup_sequence(settings: Settings):
    """Wire dependencies and start jobs."""
    global container

    logger.info("[Main] Starting startup sequence")

    logger.info("[Main] Initializing DI container")
    container = Container(settings)
    await container.start()

    # Inject handler into router (routes already registered at app creation)
    set_venue_handler(container.venue_handler)

    start_background_jobs(settings)

    logger.info("[Main] Startup sequence completed")


async def shutdown_sequence():
    """Clean up resources on shutdown."""
    global container, scheduler

    logger.info("[Main] Starting shutdown sequence")

    if scheduler:
        logger.info("[Main] Stopping scheduler")
        scheduler.shutdown(wait=False)

    if container:
        logger.info("[Main] Shutting down container")
        await container.shutdown()

    logger.info("[Main] Shutdown sequence completed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan context manager for startup and shutdown."""
    await startup_sequence(Settings())
    yield
    await shutdown_sequence()


# Create FastAPI app
settings = Settings()
app = FastAPI(
    title="Venue Cache API",
    description="Venue proximity cache for location-aware chat rooms",
    version="1.0.0",
    lifespan=lifespan,
)

# Add Prometheus metrics middleware
app.add_middleware(PrometheusMiddleware)

# Register router at app creation time (before uvicorn starts)
app.include_router(venue_router)


# Health check endpoint
@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Prometheus metrics endpoint
@app.get("/metrics", response_class=PlainTextResponse)
def metrics():
    """Prometheus metrics endpoint for scraping."""
    return PlainTextResponse(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )


if __name__ == "__main__":
    import uvicorn

    logging.getLogger().setLevel(settings.log_level.upper())
    logger.info("[Main] Starting venue cache server")
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )
