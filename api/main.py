"""
FastAPI application for the spreadsheet import system.

This module creates and configures the FastAPI application, registering
all routers and middleware.
"""

import logging
import time
from contextlib import asynccontextmanager

import redis
from fastapi import Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from api.config import settings
from api.dependencies import engine, get_db, get_redis
from api.routers import file_router, websocket
from api.schemas.common import ErrorResponse, HealthCheckResponse
from backend.models.schema import Base
from tasks.celery_app import celery_app

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT,
    handlers=[
        logging.FileHandler(settings.LOG_FILE),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the record tables on startup."""
    logger.info(f"Starting {settings.API_TITLE} v{settings.API_VERSION}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[-1]}")  # Hide credentials
    logger.info(f"Redis: {settings.REDIS_URL.split('@')[-1]}")

    # Ensure database tables exist
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables verified")
    except SQLAlchemyError as e:
        logger.error(f"Database initialization failed: {e}")

    yield

    logger.info("Shutting down application")


# Create FastAPI application
app = FastAPI(
    title=settings.API_TITLE,
    description=settings.API_DESCRIPTION,
    version=settings.API_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS
)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal server error",
            detail={"message": str(exc)} if settings.DEBUG else None,
            path=str(request.url)
        ).model_dump(mode='json')
    )


# Register routers with API prefix
app.include_router(file_router.router, prefix=settings.API_PREFIX)
app.include_router(websocket.router)  # WebSocket doesn't use /api prefix


@app.get('/', include_in_schema=False)
async def root():
    """Point at the import endpoints."""
    return {
        'service': settings.API_TITLE,
        'version': settings.API_VERSION,
        'templates': f'{settings.API_PREFIX}/file/templates',
        'upload': f'{settings.API_PREFIX}/file/upload/{{template}}/async',
        'websocket': '/ws/file-upload',
    }


def import_workers(queue: str) -> int:
    """
    Count Celery workers consuming the given queue.

    Returns 0 when no worker answers within the inspect timeout.
    """
    active_queues = celery_app.control.inspect(timeout=1.0).active_queues() or {}
    return sum(
        1 for queues in active_queues.values()
        if any(declared.get('name') == queue for declared in queues or [])
    )


@app.get('/health', response_model=HealthCheckResponse, tags=['health'])
def health_check(db: Session = Depends(get_db), redis_client: redis.Redis = Depends(get_redis)):
    """
    Health check endpoint.

    The service is unhealthy without its database, and degraded when Redis
    is down or no worker consumes the import queue (uploads would queue up
    but never run).
    """
    health_status = {
        'status': 'healthy',
        'version': settings.API_VERSION,
        'database': 'connected',
        'redis': 'connected',
        'celery': 'unknown'
    }

    try:
        db.execute(text('SELECT 1'))
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        health_status['database'] = 'disconnected'
        health_status['status'] = 'unhealthy'

    try:
        redis_client.ping()
    except redis.RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        health_status['redis'] = 'disconnected'

    try:
        workers = import_workers(settings.IMPORT_QUEUE)
        health_status['celery'] = f"{workers} active on '{settings.IMPORT_QUEUE}'"
    except Exception as e:
        logger.error(f"Celery health check failed: {e}")
        workers = 0

    if health_status['status'] == 'healthy' and (
            health_status['redis'] != 'connected' or workers == 0):
        health_status['status'] = 'degraded'

    return HealthCheckResponse(**health_status)


@app.get('/api/ping', tags=['health'])
async def ping():
    """Liveness check for load balancers."""
    return {'ping': 'pong'}


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log each request with its status and duration."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        f"http.request {request.method} {request.url.path} "
        f"status={response.status_code} duration_ms={elapsed_ms:.1f}"
    )
    return response


if __name__ == '__main__':
    import uvicorn

    uvicorn.run(
        'api.main:app',
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
        log_level=settings.LOG_LEVEL.lower()
    )
