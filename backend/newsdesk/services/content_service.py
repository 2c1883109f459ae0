"""Content service - blog/news posts and the publishing path"""
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from newsdesk.core.exceptions import NotFoundError, ValidationError
from newsdesk.models.post import BlogPost, NewsPost, POST_PUBLISHED, POST_STATUSES
from newsdesk.services.publication_service import handle_post_saved

logger = logging.getLogger(__name__)

POST_MODELS = {
    "blog": BlogPost,
    "news": NewsPost,
}


def get_post_model(post_type: str):
    model = POST_MODELS.get(post_type)
    if model is None:
        raise NotFoundError(f"Unknown post type: {post_type}")
    return model


def slugify(text: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (text or "").lower()).strip("-")
    return slug or "post"


def find_post(post_type: Optional[str], post_id: Optional[int], db: Session):
    """Post by type and id, or None when either is missing or the post does not exist"""
    if not post_type or not post_id:
        return None
    model = POST_MODELS.get(post_type)
    if model is None:
        logger.warning(f"Campaign references unknown post type {post_type!r}")
        return None
    return db.query(model).filter(model.id == post_id).first()


def list_posts(post_type: str, db: Session, status: Optional[str] = None) -> List:
    model = get_post_model(post_type)
    query = db.query(model)
    if status:
        query = query.filter(model.status == status)
    return query.order_by(model.created_at.desc(), model.id.desc()).all()


def _unique_slug(model, base: str, db: Session) -> str:
    slug = base
    suffix = 2
    while db.query(model.id).filter(model.slug == slug).first() is not None:
        slug = f"{base}-{suffix}"
        suffix += 1
    return slug


def create_post(post_type: str, data: Dict, db: Session):
    """Create a post; a post created as published triggers the newsletter

    Args:
        post_type: 'blog' or 'news'
        data: title, slug (optional), sub_title, excerpt, body, status
        db: Database session

    Returns:
        The created post
    """
    model = get_post_model(post_type)
    status = data.get("status") or "draft"
    if status not in POST_STATUSES:
        raise ValidationError(f"Invalid post status: {status}")

    if data.get("slug"):
        if db.query(model.id).filter(model.slug == data["slug"]).first() is not None:
            raise ValidationError(f"Slug already exists: {data['slug']}")
        slug = data["slug"]
    else:
        slug = _unique_slug(model, slugify(data.get("title", "")), db)

    post = model(
        title=data["title"],
        slug=slug,
        sub_title=data.get("sub_title"),
        excerpt=data.get("excerpt"),
        body=data.get("body"),
        status=status,
        published_at=datetime.now(timezone.utc) if status == POST_PUBLISHED else None,
    )
    db.add(post)
    db.commit()
    db.refresh(post)
    logger.info(f"Created {post_type} post {post.id} ({status})")

    handle_post_saved(post, post_type, None, db)
    return post


def update_post_status(post_type: str, post_id: int, status: str, db: Session):
    """Change a post's status; moving into published triggers the newsletter"""
    if status not in POST_STATUSES:
        raise ValidationError(f"Invalid post status: {status}")

    model = get_post_model(post_type)
    post = db.query(model).filter(model.id == post_id).first()
    if not post:
        raise NotFoundError(f"{post_type.capitalize()} post {post_id} not found")

    previous_status = post.status
    post.status = status
    if status == POST_PUBLISHED and post.published_at is None:
        post.published_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(post)
    logger.info(f"{post_type.capitalize()} post {post_id} status {previous_status} -> {status}")

    handle_post_saved(post, post_type, previous_status, db)
    return post
