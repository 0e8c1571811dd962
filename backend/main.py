"""
FastAPI Backend for the video asset portal
"""

import logging
import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
import time

# Configure structured logging
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer()
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=False,
)

logger = structlog.get_logger()

from config import settings
from services.errors import AssetError, ErrorCode


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info("application_startup", message="FastAPI application starting up")

    try:
        settings.validate_dynamodb_config()
        settings.validate_storage_config()
        logger.info("config_validated", message="Configuration validated successfully")
    except ValueError as e:
        logger.error("config_validation_failed", error=str(e))
        raise

    try:
        from dynamodb_config import init_dynamodb_tables
        init_dynamodb_tables()
        logger.info("dynamodb_tables_created", message="DynamoDB tables initialized successfully")
    except Exception as e:
        logger.error("dynamodb_init_error", error=str(e))

    if not settings.GENERATE_VIDEO_WEBHOOK_URL:
        logger.warning("generation_webhook_not_configured", message="Video generation requests will be rejected")

    yield

    logger.info("application_shutdown", message="FastAPI application shutting down")


app = FastAPI(
    title="Video Asset API",
    description="Storage, access control and lifecycle of generated listing videos",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.DEBUG,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# API Authentication middleware - applies to all /api/ routes
@app.middleware("http")
async def api_authentication_middleware(request: Request, call_next):
    """Authenticate all /api/ routes with API key"""
    if not request.url.path.startswith("/api/"):
        return await call_next(request)

    # Generator callbacks are authenticated by their signature instead
    if request.url.path.startswith("/api/webhooks/"):
        return await call_next(request)

    if request.method == "OPTIONS":
        return await call_next(request)

    import auth

    api_key = request.headers.get(auth.API_KEY_HEADER) or request.query_params.get(auth.API_KEY_QUERY)

    if not auth.get_api_key_from_env():
        return await call_next(request)

    if not api_key:
        return JSONResponse(
            status_code=401,
            content={
                "error": "Unauthorized",
                "message": "API key missing. Provide X-API-Key header or ?api_key=YOUR_KEY",
                "details": "Authentication required for /api/ endpoints"
            },
            headers={"WWW-Authenticate": "ApiKey"}
        )

    if not auth.check_api_key(api_key):
        return JSONResponse(
            status_code=401,
            content={
                "error": "Unauthorized",
                "message": "Invalid API key",
                "details": "The provided API key is not valid"
            },
            headers={"WWW-Authenticate": "ApiKey"}
        )

    return await call_next(request)


# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming requests"""
    start_time = time.time()

    logger.info(
        "request_started",
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None
    )

    try:
        response = await call_next(request)
        process_time = time.time() - start_time

        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            process_time=f"{process_time:.3f}s"
        )

        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.error(
            "request_failed",
            method=request.method,
            path=request.url.path,
            error=str(e),
            process_time=f"{process_time:.3f}s"
        )
        raise


@app.exception_handler(AssetError)
async def asset_error_handler(request: Request, exc: AssetError):
    """Map asset lifecycle errors to HTTP responses"""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "asset_error",
        path=request.url.path,
        method=request.method,
        error_code=exc.code.value,
        error=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Report malformed request bodies the same way as missing fields"""
    return JSONResponse(
        status_code=400,
        content={
            "error": ErrorCode.VALIDATION_ERROR.value,
            "message": "Invalid request",
            "details": {"errors": [
                {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
                for err in exc.errors()
            ]},
        },
    )


# Global error handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle all unhandled exceptions"""
    logger.error(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error=str(exc),
        exc_type=type(exc).__name__
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later.",
            "details": str(exc) if app.debug else None
        }
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint

    Returns:
        dict: Health status of the API
    """
    return {
        "status": "healthy",
        "service": "video-asset-api",
        "version": "1.0.0"
    }


from routers import videos, webhooks

app.include_router(videos.router)
app.include_router(webhooks.router)


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information"""
    return {
        "message": "Video Asset API",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "store": "/api/videos/store",
            "generate": "/api/videos/generate",
            "gallery": "/api/videos/gallery",
            "download": "/api/videos/{video_id}/download",
            "rename": "/api/videos/{video_id}",
            "delete": "/api/videos/{video_id}",
            "status": "/api/videos/{video_id}/status",
            "video_complete_webhook": "/api/webhooks/video-complete"
        }
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=True,
        log_level="info"
    )
