"""audiencesync — FastAPI Application Entry Point.

Phone audience sync, lookalike derivation and campaign metrics for Meta Ads.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from audiencesync.api.audience_routes import router as audience_router
from audiencesync.api.metrics_routes import router as metrics_router
from audiencesync.config import settings
from audiencesync.core.errors import MissingCredentialsError
from audiencesync.core.logging import get_logger
from audiencesync.database import init_db, test_connection
from audiencesync.scheduler.jobs import start_scheduler, stop_scheduler

logger = get_logger("main")

IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info("🚀 audiencesync starting up...")
    logger.info(f"🌍 Environment: {'SERVERLESS' if IS_SERVERLESS else 'LOCAL'}")
    if test_connection():
        try:
            init_db()
        except Exception as e:
            logger.error(f"❌ Table creation failed: {e}")
    else:
        logger.error("❌ Database NOT connected — cache lookups will miss")
    if not settings.has_meta_credentials:
        logger.error("Meta credentials missing: META_ACCESS_TOKEN / META_AD_ACCOUNT_ID")
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    logger.info("audiencesync shut down")


app = FastAPI(
    title="audiencesync",
    description="Sync hashed phone audiences to Meta, derive lookalikes, and collect campaign metrics.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(MissingCredentialsError)
async def missing_credentials_handler(request: Request, exc: MissingCredentialsError):
    logger.error(f"Rejected {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Missing Meta API credentials configuration."},
    )


# Routers
app.include_router(audience_router)
app.include_router(metrics_router)


@app.get("/", include_in_schema=False)
async def root():
    """List the available endpoints."""
    return {
        "success": True,
        "message": "Meta Ads audience sync API",
        "endpoints": [
            path
            for path in (getattr(route, "path", None) for route in app.routes)
            if path and path.startswith("/api/")
        ],
    }


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "audiencesync",
        "version": "1.0.0",
    }
