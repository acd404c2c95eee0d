"""
FastAPI application initialization
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from api.routes import configs, connections, executions, health, preview
from core.config import settings
from core.exceptions import (
    ConfigurationError,
    ETLException,
    ExtractionError,
    ResourceNotFoundError,
    RetryableError,
    RunInProgressError,
    TransformationError,
)
from core.logging import setup_logging
from schemas.api import ErrorResponse
import logging
from api.middleware import RequestContextMiddleware

logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="Dealer Inventory Pipeline API",
    description="Configure and run SFTP vehicle inventory imports and exports",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(RequestContextMiddleware)

# Include routers
app.include_router(health.router)
app.include_router(configs.router)
app.include_router(executions.router)
app.include_router(preview.router)
app.include_router(connections.router)


def status_for(exc: ETLException) -> int:
    if isinstance(exc, ResourceNotFoundError):
        return 404
    if isinstance(exc, RunInProgressError):
        return 409
    if isinstance(exc, ConfigurationError):
        # a missing server setting is a server error
        return 500 if "setting" in exc.context else 400
    if isinstance(exc, RetryableError):
        return 502
    if isinstance(exc, (TransformationError, ExtractionError)):
        return 422
    return 500


@app.exception_handler(ETLException)
async def etl_exception_handler(request: Request, exc: ETLException):
    status_code = status_for(exc)
    request_id = getattr(request.state, "request_id", "-")
    if status_code >= 500:
        logger.error(f"[{request_id}] {exc}", extra={"error_context": exc.to_dict()})
    else:
        logger.info(f"[{request_id}] {type(exc).__name__}: {exc.message}")

    context = {k: v for k, v in exc.context.items() if k != "error_timestamp"}
    body = ErrorResponse(
        error_type=type(exc).__name__,
        message=exc.message,
        retryable=isinstance(exc, RetryableError),
        context=context
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    setup_logging()
    logger.info("Starting Dealer Inventory Pipeline API")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Database: {settings.DATABASE_URL.split('@')[1] if '@' in settings.DATABASE_URL else 'configured'}")
    if not settings.ENCRYPTION_KEY:
        logger.warning("ENCRYPTION_KEY is not set; configs with credentials cannot be created")


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown event"""
    logger.info("Shutting down Dealer Inventory Pipeline API")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Dealer Inventory Pipeline API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "configs": "/configs",
            "preview": "/preview",
            "connections": "/connections/test"
        }
    }
