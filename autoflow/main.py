"""
Autoflow - FastAPI Application Entry Point.

Event-driven marketing automations: triggers, node graphs, durable delays.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from autoflow.config import settings
from autoflow.api.routes import actions, automations, events, runs
from autoflow.runtime import build_runtime
from autoflow.workflows.lead_routing import DEMO_AUTOMATION_ID, register_lead_routing_automation


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    runtime = build_runtime(settings)
    runtime.start()
    app.state.runtime = runtime

    if settings.REGISTER_DEMO:
        await register_lead_routing_automation(runtime.automations)

    yield

    # Shutdown
    logger.info("Shutting down...")
    await runtime.stop()
    app.state.runtime = None


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="""
## Automation Engine API

Runs marketing automations for individual subscribers when domain events occur.

### Features
- **Triggers**: `new_lead` and `click` events, filtered by list or predicate
- **Actions**: Send emails, tag subscribers
- **Conditions**: Branch on subscriber/event data
- **Delays**: Durable waits that survive restarts
- **Automation Log**: Every node attempt is recorded for reporting

### Quick Start
1. List available actions: `GET /actions`
2. Save an automation: `PUT /automations/{id}`
3. Publish an event: `POST /events`
4. Inspect the log: `GET /automations/{id}/logs`

### Demo Automation
A pre-registered lead routing automation is available with ID: `lead-routing-demo`
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(automations.router)
app.include_router(events.router)
app.include_router(runs.router)
app.include_router(actions.router)


# ============================================================
# Root Endpoints
# ============================================================

@app.get("/", tags=["Root"])
async def root():
    """API root - returns basic info and links."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "An event-driven marketing automation engine",
        "docs": "/docs",
        "redoc": "/redoc",
        "endpoints": {
            "automations": "/automations",
            "events": "/events",
            "runs": "/runs/{run_id}",
            "subscriber_logs": "/subscribers/{subscriber_id}/logs",
            "actions": "/actions",
        },
        "demo_automation": DEMO_AUTOMATION_ID,
    }


@app.get("/health", tags=["Root"])
async def health():
    """Health check endpoint."""
    runtime = getattr(app.state, "runtime", None)
    if runtime is None:
        return {"status": "starting", "version": settings.APP_VERSION}

    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "automations_count": await runtime.automations.count(),
        "runs_count": await runtime.runs.count(),
        "log_entries_count": await runtime.logs.count(),
        "active_runs": runtime.executor.active_runs,
        "scheduler_running": runtime.scheduler.running,
    }


# ============================================================
# Error Handlers
# ============================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception(f"Unhandled error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
        },
    )
