"""Main FastAPI application."""

import asyncio
import logging
import time
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Query, Request
from fastapi.responses import FileResponse, JSONResponse

from .analytics.models import HistoryRecord
from .analytics.pace import PaceCalculator
from .api.models import HealthResponse, HistoryPage, HistoryStats, TriggerResponse
from .config import settings
from .coordinator import RunCoordinator, RunStatus
from .dashboard.renderer import DashboardRenderer
from .eci.client import ECIClient
from .eci.collector import SnapshotCollector
from .errors import StoreError
from .scheduler import run_periodically
from .storage.store import build_store

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_coordinator() -> RunCoordinator:
    """Wire collector, calculator and store from settings."""
    client = ECIClient(
        settings.counter_url,
        settings.description_url,
        counter_timeout=settings.counter_timeout,
        description_timeout=settings.description_timeout,
    )
    return RunCoordinator(
        collector=SnapshotCollector(client),
        calculator=PaceCalculator(
            observed_window=timedelta(days=settings.observed_window_days)
        ),
        store=build_store(settings),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build components (unless already provided) and run the scheduler."""
    logger.info("🚀 Starting ECI progress monitor...")
    app.state.started_at = time.monotonic()

    if getattr(app.state, "coordinator", None) is None:
        app.state.coordinator = build_coordinator()
    if getattr(app.state, "renderer", None) is None:
        app.state.renderer = DashboardRenderer(settings.dashboard_output_dir)

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = asyncio.create_task(
            run_periodically(
                app.state.coordinator,
                interval=settings.run_interval_seconds,
                initial_delay=settings.initial_run_delay,
            )
        )

    try:
        yield
    finally:
        logger.info("Stopping ECI progress monitor...")
        if scheduler:
            scheduler.cancel()
            with suppress(asyncio.CancelledError):
                await scheduler
        coordinator = app.state.coordinator
        await coordinator.store.close()
        await coordinator.collector.client.close()


# Initialize FastAPI app
app = FastAPI(
    title="ECI Progress Monitor",
    description="Signature count tracker with pace and trend analytics",
    version="1.0.0",
    lifespan=lifespan,
)


def get_coordinator(request: Request) -> RunCoordinator:
    return request.app.state.coordinator


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    logger.error(f"Store error serving {request.url.path}: {exc}")
    return JSONResponse(
        status_code=503, content={"error": exc.reason, "message": str(exc)}
    )


@app.get("/")
async def root(request: Request):
    """Root endpoint."""
    coordinator = get_coordinator(request)
    return {
        "service": "ECI Progress Monitor",
        "status": "running",
        "version": "1.0.0",
        "schedule": f"Every {settings.run_interval_seconds} seconds",
        "store_enabled": coordinator.store.enabled,
        "files": {
            "latest": coordinator.store.latest_name,
            "history": coordinator.store.history_name,
        },
        "endpoints": {
            "health": "/health",
            "manual_trigger": "/monitor",
            "latest": "/latest",
            "history": "/history",
            "history_stats": "/history-stats",
            "dashboard": "/dashboard.png",
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health", response_model=HealthResponse)
async def health(request: Request):
    """Coordinator state and error counters."""
    coordinator = get_coordinator(request)
    state = coordinator.health()

    return HealthResponse(
        status="healthy" if state["consecutive_error_count"] == 0 else "degraded",
        store_enabled=coordinator.store.enabled,
        uptime_seconds=time.monotonic() - request.app.state.started_at,
        timestamp=datetime.now(timezone.utc),
        **state,
    )


@app.get("/latest", response_model=HistoryRecord)
async def latest(request: Request):
    """Most recent record."""
    record = await get_coordinator(request).store.latest()
    if record is None:
        return JSONResponse(status_code=404, content={"message": "No data yet"})
    return record


@app.get("/history", response_model=HistoryPage)
async def history(
    request: Request,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    """Page of records, newest first."""
    records, total = await get_coordinator(request).store.page(limit=limit, offset=offset)
    return HistoryPage(data=records, total=total, limit=limit, offset=offset)


@app.get("/history-stats", response_model=HistoryStats)
async def history_stats(request: Request):
    """Summary of the stored history."""
    stats = await get_coordinator(request).store.stats()
    if stats is None:
        return JSONResponse(
            status_code=404, content={"message": "No history data available yet"}
        )
    return HistoryStats(**stats)


@app.api_route("/monitor", methods=["GET", "POST"], response_model=TriggerResponse)
async def monitor(request: Request):
    """
    Run the pipeline now and report the outcome.

    Shares the coordinator with the scheduler, so a run already in flight
    makes this a skip (HTTP 409).
    """
    logger.info("🔄 Manual trigger received")
    result = await get_coordinator(request).run()

    if result.status == RunStatus.SKIPPED:
        response = TriggerResponse(
            success=False,
            status=result.status.value,
            message="A run is already in progress",
            timestamp=result.timestamp,
        )
        return JSONResponse(status_code=409, content=response.model_dump(mode="json"))

    if result.status == RunStatus.FAILED:
        response = TriggerResponse(
            success=False,
            status=result.status.value,
            error=f"{result.reason}: {result.error}",
            timestamp=result.timestamp,
        )
        return JSONResponse(status_code=500, content=response.model_dump(mode="json"))

    return TriggerResponse(
        success=True,
        status=result.status.value,
        message="Monitor executed successfully"
        if result.persisted
        else "Monitor executed, store disabled so nothing was saved",
        signatures=result.record.count,
        progress=f"{result.record.progress_percent:.2f}%",
        timestamp=result.timestamp,
    )


@app.get("/dashboard.png")
async def dashboard(request: Request):
    """Progress card rendered from the latest record and its history."""
    store = get_coordinator(request).store
    record = await store.latest()
    if record is None:
        return JSONResponse(status_code=404, content={"message": "No data yet"})

    history = await store.history()
    _, file_path = request.app.state.renderer.render(record, history)
    return FileResponse(file_path, media_type="image/png")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )
