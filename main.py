"""
FastAPI application entry point.

Sets up the aggregation API: logging, request logging middleware,
exception handlers, routers and the shared aggregation session.
"""
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from routers import athletes
from core.config import settings
from core.logging import setup_logging
from core.exceptions import APIException
import logging
import time

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="VALD Aggregation Engine API",
    description="Cross-tenant athlete aggregation, metric canonicalization and percentile ranking",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)


@app.on_event("shutdown")
async def close_aggregation_session():
    """Close the shared vendor HTTP client."""
    session = getattr(app.state, "vald_session", None)
    if session is not None:
        await session.aclose()
        app.state.vald_session = None


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests with timing information."""
    start_time = time.time()

    logger.info(
        f"Request: {request.method} {request.url.path}",
        extra={
            "extra_fields": {
                "method": request.method,
                "path": request.url.path,
                "client_ip": request.client.host if request.client else None,
            }
        }
    )

    try:
        response = await call_next(request)
        process_time = time.time() - start_time

        logger.info(
            f"Response: {request.method} {request.url.path} - {response.status_code}",
            extra={
                "extra_fields": {
                    "method": request.method,
                    "path": request.url.path,
                    "status_code": response.status_code,
                    "process_time_ms": round(process_time * 1000, 2),
                }
            }
        )

        response.headers["X-Process-Time"] = str(process_time)
        return response
    except Exception as e:
        logger.error(
            f"Request failed: {request.method} {request.url.path}",
            exc_info=True,
            extra={
                "extra_fields": {
                    "method": request.method,
                    "path": request.url.path,
                    "error": str(e),
                }
            }
        )
        raise


@app.exception_handler(APIException)
async def api_exception_handler(request: Request, exc: APIException):
    """Structured error body for application errors."""
    logger.warning(
        f"{exc.error_code or 'API_ERROR'}: {exc.detail}",
        extra={
            "extra_fields": {
                "method": request.method,
                "path": request.url.path,
                "status_code": exc.status_code,
            }
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_code": exc.error_code},
        headers=exc.headers,
    )


# Error handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error(
        f"Unhandled exception: {exc}",
        exc_info=True,
        extra={
            "extra_fields": {
                "method": request.method,
                "path": request.url.path,
            }
        }
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.get("/health")
async def health():
    """Simple health check for load balancers and uptime monitors."""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "secondary_tenant": settings.secondary_configured,
        "timestamp": time.time(),
    }


app.include_router(athletes.router)
