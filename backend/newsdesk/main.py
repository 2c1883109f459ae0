"""FastAPI application entry point"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from newsdesk import __version__
from newsdesk.core.config import settings
from newsdesk.core.exceptions import NewsdeskError
from newsdesk.core.logging import setup_logging
from newsdesk.core.middleware import setup_cors_middleware, access_log_middleware
from newsdesk.core.otel import initialize_otel, setup_otel_logging, instrument_fastapi, instrument_sqlalchemy
from newsdesk.db.redis import get_redis_client
from newsdesk.db.session import SessionLocal, engine, init_db
from newsdesk.services.email_service import validate_email_config
from newsdesk.services.newsletter_service import seed_defaults

# Import routers
from newsdesk.api import admin, newsletter, posts

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan event handler for startup and shutdown"""
    # Startup
    if initialize_otel():
        if setup_otel_logging():
            logger.info(f"OpenTelemetry fully initialized, exporting to {settings.OTEL_EXPORTER_OTLP_ENDPOINT}")
        else:
            logger.warning("OpenTelemetry metrics/traces initialized but logging setup failed")
    else:
        logger.info("OpenTelemetry not configured - running without distributed tracing")

    logger.info("Initializing database...")
    try:
        init_db()
        db = SessionLocal()
        try:
            seed_defaults(db)
        finally:
            db.close()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise

    logger.info("Testing Redis connection...")
    try:
        get_redis_client().ping()
        logger.info("Redis connection successful")
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        raise

    instrument_sqlalchemy(engine)

    email_ok, email_error = validate_email_config()
    if not email_ok:
        logger.warning(f"Email is not configured, every send will fail: {email_error}")

    # Start background tasks
    from newsdesk.tasks.dispatch_worker import dispatch_worker_task
    from newsdesk.tasks.scheduler import scheduler_task

    background_tasks = [
        asyncio.create_task(dispatch_worker_task()),
        asyncio.create_task(scheduler_task()),
    ]
    logger.info("Dispatch worker and campaign scheduler started")

    yield

    # Shutdown
    logger.info("Shutting down...")
    for task in background_tasks:
        task.cancel()
    await asyncio.gather(*background_tasks, return_exceptions=True)


# Create FastAPI app
app = FastAPI(
    title="Newsdesk Backend",
    description="Content publishing with newsletter campaign dispatch",
    version=__version__,
    lifespan=lifespan
)

# Instrument FastAPI with OpenTelemetry
instrument_fastapi(app)

setup_cors_middleware(app)
app.middleware("http")(access_log_middleware)

# Include routers
app.include_router(newsletter.router)
app.include_router(admin.router)
app.include_router(posts.router)


@app.exception_handler(NewsdeskError)
async def newsdesk_error_handler(request: Request, exc: NewsdeskError):
    """Domain errors become {"error": message} with the error's status code"""
    content = {"error": exc.message}
    if exc.errors is not None:
        content["errors"] = exc.errors
    return JSONResponse(status_code=exc.status_code, content=content)


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"}
    )


# Prometheus metrics endpoint
@app.get("/metrics")
def metrics_endpoint():
    """Prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Health check endpoint
@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    config = {
        "host": "0.0.0.0",
        "port": 8000,
        "timeout_graceful_shutdown": 30,
    }
    if settings.ENVIRONMENT == "development":
        # Reload needs the app as an import string
        uvicorn.run("newsdesk.main:app", reload=True, **config)
    else:
        uvicorn.run(app, **config)
