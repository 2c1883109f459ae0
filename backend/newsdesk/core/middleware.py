"""Middleware configuration for FastAPI application"""
import logging
import time
from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware

from newsdesk.core.config import settings

api_access_logger = logging.getLogger("api_access")


def get_allowed_origins():
    """Get list of allowed CORS origins"""
    allowed_origins = [settings.FRONTEND_URL]
    if settings.ENVIRONMENT == "development":
        allowed_origins.extend([
            "http://localhost:3000",
            "http://localhost:5173",
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173"
        ])
    return allowed_origins


def setup_cors_middleware(app):
    """Setup CORS middleware for FastAPI app"""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_allowed_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


async def access_log_middleware(request: Request, call_next):
    """Log method, path, status and latency of every API request"""
    start = time.perf_counter()
    status_code = 500
    try:
        response = await call_next(request)
        status_code = response.status_code
        return response
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000
        client = request.client.host if request.client else "unknown"
        message = f"{request.method} {request.url.path} - {status_code} ({elapsed_ms:.1f}ms) from {client}"
        if status_code >= 500:
            api_access_logger.error(message)
        elif status_code >= 400:
            api_access_logger.warning(message)
        else:
            api_access_logger.info(message)
