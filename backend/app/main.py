import logging
import os
import subprocess
from datetime import datetime, timedelta

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.config import (
    CORS_ORIGINS,
    LOG_LEVEL,
    RECONCILE_ENABLED,
    RECONCILE_GRACE_SECONDS,
    RECONCILE_INTERVAL_SECONDS,
)
from app.database import engine, init_db
from app.db_schema_patch import ensure_idle_tracking_columns, ensure_match_columns
from app.routes import resources, runtime
from app.services.sweep_scheduler import SweepScheduler

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

app = FastAPI(title="Tournament Operations API")


# Get build info
def get_build_info():
    """Get git commit hash or build timestamp"""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=os.path.dirname(os.path.dirname(__file__)),
            capture_output=True,
            text=True,
            timeout=2,
        )
        if result.returncode == 0:
            return result.stdout.strip()
    except (OSError, subprocess.SubprocessError):
        pass

    # Fallback to build timestamp
    return datetime.now().strftime("%Y%m%d-%H%M%S")


BUILD_HASH = get_build_info()

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Match start / result / reconciliation
app.include_router(runtime.router, prefix="/api", tags=["runtime"])
# Umpire and court idle status (read-only)
app.include_router(resources.router, prefix="/api", tags=["resources"])

sweep_scheduler = SweepScheduler(
    engine,
    interval_seconds=RECONCILE_INTERVAL_SECONDS,
    grace=timedelta(seconds=RECONCILE_GRACE_SECONDS),
)


@app.on_event("startup")
async def on_startup():
    init_db()  # Use centralized init_db() which imports models and creates tables
    ensure_match_columns(engine)
    ensure_idle_tracking_columns(engine)

    if RECONCILE_ENABLED:
        sweep_scheduler.start()
    logger.info("Build hash: %s", BUILD_HASH)


@app.on_event("shutdown")
async def on_shutdown():
    await sweep_scheduler.stop()


@app.get("/api/health")
def health_check():
    """Diagnostic endpoint to verify which code is running"""
    last = sweep_scheduler.last_report
    return {
        "app_name": "Tournament Operations API",
        "build_hash": BUILD_HASH,
        "status": "healthy",
        "reconcile_enabled": RECONCILE_ENABLED,
        "last_sweep_at": last.started_at.isoformat() if last else None,
    }
