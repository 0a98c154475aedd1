"""
FLUX Backend - FastAPI Application

This is the main entry point for the FLUX REST API. It owns the progress
registry for capture requests and maps pipeline errors onto HTTP answers.

Usage:
    uvicorn flux.dashboard.backend.main:app --host 127.0.0.1 --port 3000 --reload

    Or run directly:
    python -m flux.dashboard.backend.main
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

# Load .env file before anything else
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from flux import __version__
from flux.config_models import get_config
from flux.dashboard.backend.models import ErrorResponse, HealthCheck
from flux.dashboard.backend.routes import api_router
from flux.database import get_connection
from flux.errors import FluxError
from flux.llm.client import get_llm_client
from flux.logging_config import setup_logging
from flux.profile.manager import seed_default_user
from flux.progress import ProgressRegistry
from flux.voice.recognition.deepgram_adapter import get_transcriber

setup_logging()
logger = logging.getLogger(__name__)

config = get_config()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting FLUX backend...")
    app.state.started_at = datetime.now()

    # Creates tables on first run
    get_connection().close()
    logger.info("Database initialized")

    try:
        seeded = seed_default_user(config.seed.default_user_path)
        if seeded:
            logger.info(f"Default user ready: {seeded['user_id']}")
    except Exception as e:
        logger.warning(f"Default user seeding failed: {e}")

    app.state.progress = ProgressRegistry(retention_seconds=config.progress.retention_seconds)
    app.state.transcriber = get_transcriber()
    app.state.llm_client = get_llm_client()

    if not app.state.transcriber.is_available:
        logger.warning("DEEPGRAM_API_KEY not set; voice capture will answer 503")
    if not app.state.llm_client.is_available:
        logger.warning("OPENROUTER_API_KEY not set; extraction and breakdown will answer 503")

    yield

    logger.info("Shutting down FLUX backend...")
    await app.state.progress.close()


# Create FastAPI application
app = FastAPI(
    title="FLUX API",
    description="Voice capture, energy-matched bundles and task breakdown",
    version=__version__,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.dashboard.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# Health Check Endpoint
# =============================================================================


@app.get("/api/health", response_model=HealthCheck, tags=["health"])
async def health_check(request: Request):
    """Database reachability plus whether each provider has a credential."""
    services = {}

    try:
        conn = get_connection()
        conn.execute("SELECT 1")
        conn.close()
        services["database"] = "healthy"
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        services["database"] = "unhealthy"

    transcriber = getattr(request.app.state, "transcriber", None) or get_transcriber()
    llm_client = getattr(request.app.state, "llm_client", None) or get_llm_client()
    services["transcription"] = "configured" if transcriber.is_available else "not_configured"
    services["llm"] = "configured" if llm_client.is_available else "not_configured"

    overall = "healthy" if services["database"] == "healthy" else "degraded"
    return HealthCheck(status=overall, version=__version__, timestamp=datetime.now(), services=services)


# =============================================================================
# Error Handlers
# =============================================================================


@app.exception_handler(FluxError)
async def flux_exception_handler(request: Request, exc: FluxError):
    """Pipeline and storage errors carry their own status and code."""
    if exc.status_code >= 500:
        logger.error(f"{exc.error_code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=str(exc.detail), code=f"HTTP_{exc.status_code}").model_dump(),
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(error="Internal server error", code="INTERNAL_ERROR").model_dump(),
    )


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(api_router)


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "flux.dashboard.backend.main:app",
        host=config.dashboard.host,
        port=config.dashboard.api_port,
        reload=True,
        log_level="info",
    )
