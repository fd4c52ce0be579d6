"""
RTB Assets API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Database and Redis connections
- Automation job scheduler
- CORS middleware
- API routing
- Health check and debug endpoints
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from rtb_assets.api import api_router
from rtb_assets.core.config import settings
from rtb_assets.core.database import async_session_maker, close_db, init_db
from rtb_assets.core.notifications import drain_pending, get_notification_stats
from rtb_assets.core.redis import close_redis, get_redis_client, init_redis
from rtb_assets.core.scheduler import (
    list_registered_jobs,
    pause_job,
    resume_job,
    start_scheduler,
    stop_scheduler,
    trigger_job_manually,
)
from rtb_assets.modules.automation import register_automation_jobs


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Application lifespan manager.

    Startup connects Redis and the database and starts the scheduler.
    Shutdown stops the scheduler, lets queued notification emails finish,
    then closes connections.
    """
    print(f"Starting RTB Assets API in {settings.python_env} mode...")

    try:
        await init_redis()
        print("[OK] Redis connected")
    except Exception as e:
        print(f"[FAIL] Redis connection failed: {e}")
        if settings.is_production:
            raise

    try:
        await init_db()
        print("[OK] Database connected")
    except Exception as e:
        print(f"[FAIL] Database connection failed: {e}")
        if settings.is_production:
            raise

    # Jobs are registered either way so /debug/jobs can trigger them
    register_automation_jobs()
    if settings.scheduler_enabled:
        try:
            await start_scheduler()
            print("[OK] Background scheduler started")
        except Exception as e:
            print(f"[FAIL] Background scheduler failed to start: {e}")
            if settings.is_production:
                raise
    else:
        print("[OK] Background scheduler disabled")

    yield

    print("Shutting down RTB Assets API...")

    await stop_scheduler()
    print("[OK] Background scheduler stopped")

    await drain_pending(timeout=10)
    print("[OK] Pending notifications flushed")

    await close_redis()
    await close_db()
    print("[OK] Cleanup complete")


app = FastAPI(
    title="RTB Assets API",
    description="Rwanda TVET Board asset management API",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint - API welcome message."""
    return {
        "message": "Welcome to RTB Assets API",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    """Readiness check: the database must answer."""
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        raise HTTPException(status_code=503, detail={"status": "not ready", "error": str(e)}) from e
    return {"status": "ready"}


@app.get("/debug/db", tags=["Debug"])
async def debug_db():
    """Test database connection."""
    try:
        async with async_session_maker() as session:
            result = await session.execute(text("SELECT 1"))
            return {"database": "connected", "result": result.scalar()}
    except Exception as e:
        return {"database": "error", "message": str(e)}


@app.get("/debug/redis", tags=["Debug"])
async def debug_redis():
    """Test Redis connection."""
    client = get_redis_client()
    try:
        if client:
            await client.ping()
            return {"redis": "connected"}
        return {"redis": "not initialized"}
    except Exception as e:
        return {"redis": "error", "message": str(e)}


# ============================================
# Background Job Debug Endpoints
# ============================================


@app.get("/debug/jobs", tags=["Debug"])
async def list_jobs():
    """List registered automation jobs with next run time and pause state."""
    return {"jobs": list_registered_jobs()}


@app.post("/debug/jobs/{job_id}/trigger", tags=["Debug"])
async def trigger_job(job_id: str):
    """
    Run a job immediately, bypassing its schedule.

    Job ids are `automation_<rule id>`, for example
    `automation_offline-device-detection`.
    """
    try:
        return await trigger_job_manually(job_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@app.post("/debug/jobs/{job_id}/pause", tags=["Debug"])
async def pause_job_endpoint(job_id: str):
    success = pause_job(job_id)
    return {"job_id": job_id, "paused": success}


@app.post("/debug/jobs/{job_id}/resume", tags=["Debug"])
async def resume_job_endpoint(job_id: str):
    success = resume_job(job_id)
    return {"job_id": job_id, "resumed": success}


@app.get("/debug/notifications", tags=["Debug"])
async def notification_stats():
    """Counters for background notification delivery."""
    return get_notification_stats()
