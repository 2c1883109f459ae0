"""Admin content API routes - the publishing path that triggers newsletters"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from newsdesk.api.serializers import post_to_dict
from newsdesk.core.security import require_admin
from newsdesk.db.session import get_db
from newsdesk.schemas.content import CreatePostRequest, UpdatePostStatusRequest
from newsdesk.services.content_service import create_post, update_post_status, list_posts

router = APIRouter(
    prefix="/api/admin/posts",
    tags=["posts"],
    dependencies=[Depends(require_admin)]
)
logger = logging.getLogger(__name__)


@router.get("/{post_type}")
def get_posts(post_type: str, status: Optional[str] = None, db: Session = Depends(get_db)):
    return {"posts": [post_to_dict(p, post_type) for p in list_posts(post_type, db, status=status)]}


@router.post("/{post_type}", status_code=201)
def create_post_endpoint(post_type: str, request_data: CreatePostRequest, db: Session = Depends(get_db)):
    """Create a post; creating it as published sends the newsletter"""
    post = create_post(post_type, request_data.model_dump(), db)
    return {"post": post_to_dict(post, post_type)}


@router.patch("/{post_type}/{post_id}/status")
def update_post_status_endpoint(
    post_type: str,
    post_id: int,
    request_data: UpdatePostStatusRequest,
    db: Session = Depends(get_db)
):
    """Change a post's status; publishing it sends the newsletter"""
    post = update_post_status(post_type, post_id, request_data.status, db)
    return {"post": post_to_dict(post, post_type)}
