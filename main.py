"""
Cohort sync service entry point.

Architecture:
- One Python process, one asyncio event loop
- Two peer services running concurrently:
  1. FastAPI (HTTP admin API)
  2. APScheduler (periodic full sync and sync retries)

We use FastAPI's lifespan to manage startup/shutdown. The lifespan pattern
gives us uvicorn's signal handling and --reload for free.

Run with: python main.py [--port PORT] [--dev]
"""

import logging
import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path

project_root = Path(__file__).parent

from dotenv import load_dotenv

# Load .env.local first (if exists), then .env as fallback
# .env.local is gitignored and used for local dev overrides
load_dotenv(project_root / ".env.local")  # Local overrides (gitignored)
load_dotenv()  # Fallback to .env

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import check_required_env_vars, get_allowed_origins, get_api_port, is_dev_mode
from core.database import close_engine, is_configured
from core.scheduler import init_scheduler, shutdown_scheduler
from web_api.routes.cohorts import router as cohorts_router
from web_api.routes.enrolments import router as enrolments_router
from web_api.routes.exclusions import router as exclusions_router
from web_api.routes.instances import router as instances_router
from web_api.routes.sync import router as sync_router

logging.basicConfig(
    level=logging.DEBUG if is_dev_mode() else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

SENTRY_DSN = os.environ.get("SENTRY_DSN")
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment="development" if is_dev_mode() else "production",
        traces_sample_rate=0.0,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    FastAPI lifespan context manager.

    Starts the scheduler alongside FastAPI in the same event loop.
    """
    ok, warnings = check_required_env_vars()
    for warning in warnings:
        print(warning)
    if not ok:
        print("Missing required environment variables, see above")

    if is_configured():
        print("Starting cohort sync scheduler...")
        init_scheduler()
    else:
        print("Warning: DATABASE_URL not set, scheduler will not start")

    yield  # FastAPI runs here, scheduler runs alongside it

    print("Shutting down peer services...")
    shutdown_scheduler()
    await close_engine()  # Close database connections


# Create FastAPI app with lifespan
app = FastAPI(
    title="Cohort Sync API",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(instances_router)
app.include_router(exclusions_router)
app.include_router(enrolments_router)
app.include_router(cohorts_router)
app.include_router(sync_router)


@app.get("/api/status")
async def api_status():
    return {"status": "ok"}


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "database_configured": is_configured(),
    }


if __name__ == "__main__":
    import argparse
    import uvicorn

    parser = argparse.ArgumentParser(description="Cohort Sync Server")
    parser.add_argument(
        "--port",
        type=int,
        default=get_api_port(),
        help="Port to run the server on (default: API_PORT or 8000)",
    )
    parser.add_argument(
        "--dev",
        action="store_true",
        help="Development mode (verbose logging, relaxed env checks)",
    )
    args = parser.parse_args()

    # Set env var so it persists across uvicorn reloads
    if args.dev:
        os.environ["DEV_MODE"] = "true"

    if not check_required_env_vars()[0]:
        sys.exit(1)

    # Pass app object directly (not string) to avoid module reimport issues
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=args.port,
    )
