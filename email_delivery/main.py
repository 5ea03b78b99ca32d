"""
FastAPI application with Redis and email service lifecycle management.
"""

import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request

from email_delivery.config import settings
from email_delivery.infrastructure.observability.logging import get_logger, setup_logging
from email_delivery.routes import email, health
from email_delivery.services.cache import RedisEmailCache
from email_delivery.services.email_service import build_email_service

# Setup logging before creating the app
setup_logging(log_level=settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown with proper resource management."""

    logger.info("Application starting", environment=settings.environment, debug=settings.debug)

    cache = RedisEmailCache(settings.REDIS_URL)
    startup_tasks = []

    try:
        logger.info("Initializing Redis connection")
        await cache.connect()
        startup_tasks.append("redis")

        service = build_email_service(cache, settings)
        service.start_queue_processor()
        startup_tasks.append("email_retry_queue")

        app.state.email_cache = cache
        app.state.email_service = service

        logger.info("All services initialized successfully", services=startup_tasks)

    except Exception as e:
        logger.error("Failed to initialize services", error=str(e), completed_tasks=startup_tasks)

        if "redis" in startup_tasks:
            try:
                await cache.close()
            except Exception as cleanup_error:
                logger.error("Error cleaning up Redis", error=str(cleanup_error))

        raise

    yield

    # Shutdown sequence (reverse order)
    logger.info("Application shutting down")

    shutdown_errors = []

    try:
        await service.stop_queue_processor()
    except Exception as e:
        logger.error("Error stopping email retry queue", error=str(e))
        shutdown_errors.append(f"Email retry queue: {e}")

    try:
        logger.info("Closing Redis connection")
        await cache.close()
    except Exception as e:
        logger.error("Error closing Redis", error=str(e))
        shutdown_errors.append(f"Redis: {e}")

    if shutdown_errors:
        logger.warning("Some services had shutdown errors", errors=shutdown_errors)
    else:
        logger.info("All services closed successfully")


def create_app(use_lifespan: bool = True) -> FastAPI:
    application = FastAPI(
        title="Email Delivery",
        description="Transactional email delivery with provider fallback",
        version="0.1.0",
        lifespan=lifespan if use_lifespan else None,
    )

    application.include_router(health.router)
    application.include_router(email.router)

    @application.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log HTTP requests with timing."""
        start_time = time.time()
        response = await call_next(request)
        process_time = (time.time() - start_time) * 1000

        logger.info(
            "HTTP request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(process_time, 2),
        )
        return response

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
