"""Security dependencies for admin endpoints"""
import logging
import secrets
from typing import Optional

from fastapi import Header, HTTPException, Request

from newsdesk.core.config import settings
from newsdesk.db.redis import check_rate_limit

security_logger = logging.getLogger("security")


def require_admin(
    request: Request,
    x_admin_token: Optional[str] = Header(None, alias="X-Admin-Token")
) -> str:
    """Dependency: Require a valid admin API token, return it"""
    if not settings.ADMIN_API_TOKEN:
        security_logger.error("Admin request rejected: ADMIN_API_TOKEN is not configured")
        raise HTTPException(503, "Admin API is not configured")

    if not x_admin_token:
        raise HTTPException(401, "Missing admin token")

    if not secrets.compare_digest(x_admin_token, settings.ADMIN_API_TOKEN):
        security_logger.warning(
            f"Invalid admin token - "
            f"IP: {request.client.host if request.client else 'unknown'}, "
            f"Path: {request.url.path}"
        )
        raise HTTPException(403, "Invalid admin token")

    return x_admin_token


def get_client_identifier(request: Request) -> str:
    """Rate limit key for a request: forwarded client IP if present, else socket peer"""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    return f"ip:{request.client.host if request.client else 'unknown'}"


def rate_limit_public(request: Request) -> None:
    """Dependency: Reject public newsletter requests over the per-IP rate limit"""
    identifier = get_client_identifier(request)
    if not check_rate_limit(identifier):
        security_logger.warning(f"Rate limit exceeded - Identifier: {identifier}, Path: {request.url.path}")
        raise HTTPException(429, "Rate limit exceeded. Please try again later.")
