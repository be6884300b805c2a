"""
FastAPI application for the finance report API.

This module creates and configures the FastAPI application, registering
all routers, exception handlers and middleware.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.config import resolve_file_path, settings
from api.dependencies import get_cache_store
from api.routers import report
from api.schemas.common import ErrorResponse, HealthCheckResponse
from services.errors import InvalidRequest, ReportError

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
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.API_TITLE} v{settings.API_VERSION}")
    logger.info(f"Report workbook: {resolve_file_path()}")
    logger.info(f"Cache: {settings.CACHE_BACKEND}, key mode '{settings.CACHE_KEY_MODE}', "
                f"TTL {settings.CACHE_TTL_MINUTES} min")

    # Create the shared cache store before the first request
    get_cache_store()

    yield

    # Shutdown
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


# Exception handlers

def _error_response(request: Request, exc: ReportError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.error,
            detail=exc.to_detail(),
            path=str(request.url)
        ).model_dump(mode='json')
    )


@app.exception_handler(ReportError)
async def report_error_handler(request: Request, exc: ReportError):
    """Translate tagged report errors into client or server responses."""
    if exc.is_client_error:
        logger.warning(f"Client error on {request.url.path}: {exc.message}")
    else:
        logger.error(f"Server error on {request.url.path}: {exc.message}", exc_info=exc)

    return _error_response(request, exc)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Reject malformed request bodies as invalid requests."""
    errors = [
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in exc.errors()
    ]
    logger.warning(f"Invalid request on {request.url.path}: {errors}")

    return _error_response(request, InvalidRequest("Invalid request.", errors=errors))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="An error occurred while processing your request.",
            detail={"message": str(exc)} if settings.DEBUG else None,
            path=str(request.url)
        ).model_dump(mode='json')
    )


# Register routers with API prefix
app.include_router(report.router, prefix=settings.API_PREFIX)


# Root endpoints

@app.get('/', include_in_schema=False)
async def root():
    """
    Root endpoint - redirect to docs.
    """
    return {
        'message': f'Welcome to {settings.API_TITLE}',
        'version': settings.API_VERSION,
        'docs': '/docs',
        'redoc': '/redoc',
        'openapi': '/openapi.json'
    }


@app.get('/health', response_model=HealthCheckResponse, tags=['health'])
async def health_check():
    """
    Health check endpoint.

    Checks:
    - Report workbook is present
    - Cache store is reachable

    **Example:**
    ```bash
    curl http://localhost:8000/health
    ```
    """
    health_status = {
        'status': 'healthy',
        'timestamp': datetime.now(timezone.utc),
        'version': settings.API_VERSION,
        'workbook': 'unknown',
        'cache': 'unknown'
    }

    # Check workbook
    file_path = resolve_file_path()
    if os.path.isfile(file_path):
        health_status['workbook'] = 'available'
    else:
        logger.error(f"Report workbook missing: {file_path}")
        health_status['workbook'] = 'missing'
        health_status['status'] = 'unhealthy'

    # Check cache store
    if get_cache_store().ping():
        health_status['cache'] = f'{settings.CACHE_BACKEND} (connected)'
    else:
        health_status['cache'] = f'{settings.CACHE_BACKEND} (disconnected)'
        if health_status['status'] == 'healthy':
            health_status['status'] = 'degraded'

    return HealthCheckResponse(**health_status)


@app.get('/api/ping', tags=['health'])
async def ping():
    """
    Simple ping endpoint for load balancers.

    **Returns:**
    ```json
    {"ping": "pong"}
    ```
    """
    return {'ping': 'pong'}


# Middleware for request logging

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all HTTP requests."""
    logger.info(f"{request.method} {request.url.path}")
    response = await call_next(request)
    logger.info(f"{request.method} {request.url.path} - {response.status_code}")
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
