"""FastAPI application for the Unbuilt backend.

Serves gap searches, action plans and their tasks, plan templates, AI
conversations about search results, the resource library and the
``/ws/plans`` collaboration socket. Services raise ``UnbuiltError``
subclasses which are turned into JSON error bodies here.
"""

from datetime import datetime

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from unbuilt import __version__
from unbuilt.api.routes import auth, conversations, plans, resources, search, tasks, templates, websocket
from unbuilt.core.cache import cache
from unbuilt.core.config import settings
from unbuilt.core.database import get_db, init_db
from unbuilt.core.errors import UnbuiltError
from unbuilt.core.logging import configure_logging, get_logger, RequestIDMiddleware
from unbuilt.core.rate_limit import RateLimitMiddleware
from unbuilt.realtime import plan_rooms
from unbuilt.services.llm import LLMError, get_llm_client

configure_logging()
logger = get_logger(__name__)

# =============================================================================
# FastAPI App Setup
# =============================================================================

app = FastAPI(
    title="Unbuilt API",
    description="Market gap discovery, action planning and AI follow-up conversations",
    version=__version__,
    docs_url=None if settings.is_production else "/docs",
    redoc_url=None if settings.is_production else "/redoc",
)

app.add_middleware(RequestIDMiddleware)

if settings.rate_limit_enabled:
    app.add_middleware(RateLimitMiddleware, use_redis=True)

origins = settings.cors_origins.split(",") if settings.cors_origins != "*" else ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    # Browsers reject credentials with a wildcard origin
    allow_credentials=origins != ["*"],
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID", "X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
)

for module in (auth, search, plans, tasks, templates, conversations, resources, websocket):
    app.include_router(module.router)


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(UnbuiltError)
async def domain_exception_handler(request: Request, exc: UnbuiltError):
    """Quota, ownership and validation failures raised by services."""
    logger.info(
        "request_rejected",
        path=request.url.path,
        status_code=exc.status_code,
        error_type=exc.error_type,
        detail=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(LLMError)
async def llm_exception_handler(request: Request, exc: LLMError):
    logger.error("llm_request_failed", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=503,
        content={"detail": "The AI service is unavailable. Please try again shortly.", "type": "ai_unavailable"},
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    logger.warning(
        "http_exception",
        path=request.url.path,
        status_code=exc.status_code,
        detail=exc.detail,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "type": "internal_error"},
    )


# =============================================================================
# Lifecycle
# =============================================================================

@app.on_event("startup")
async def startup():
    """Create tables and start the plan-room inactivity sweep."""
    logger.info("application_starting", version=__version__, environment=settings.environment)
    init_db()
    await plan_rooms.start_cleanup_task()
    logger.info("application_started", ai_mode="live" if get_llm_client().is_available else "offline")


@app.on_event("shutdown")
async def shutdown():
    await plan_rooms.shutdown()
    logger.info("application_stopped")


# =============================================================================
# Info & Health
# =============================================================================

@app.get("/")
async def root():
    return {
        "name": "Unbuilt API",
        "version": __version__,
        "status": "running",
        "docs": None if settings.is_production else "/docs",
    }


@app.get("/health")
async def health_check():
    """Database, cache and AI status plus live collaboration counts.

    Only the database is required; a missing cache or AI key degrades
    features but the API keeps serving.
    """
    try:
        with get_db() as db:
            db.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as e:
        logger.error("health_database_unreachable", error=str(e))
        db_status = "unhealthy"

    rooms = plan_rooms.get_all_rooms()
    return {
        "status": "healthy" if db_status == "healthy" else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "database": db_status,
        "cache": "healthy" if cache.ping() else "unavailable",
        "ai": "live" if get_llm_client().is_available else "offline",
        "realtime": {
            "rooms": len(rooms),
            "participants": sum(room["participantCount"] for room in rooms),
        },
    }
