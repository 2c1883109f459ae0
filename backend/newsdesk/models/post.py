"""Blog and news post models (content store read by the newsletter pipeline)"""
from sqlalchemy import Column, Integer, String, Text, DateTime
from datetime import datetime, timezone
from newsdesk.models.base import Base

POST_DRAFT = "draft"
POST_PUBLISHED = "published"
POST_ARCHIVED = "archived"

POST_STATUSES = (POST_DRAFT, POST_PUBLISHED, POST_ARCHIVED)


class PostMixin:
    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    sub_title = Column(String(255), nullable=True)
    excerpt = Column(Text, nullable=True)
    body = Column(Text, nullable=True)
    status = Column(String(20), default=POST_DRAFT, nullable=False)  # draft, published, archived
    published_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)


class BlogPost(PostMixin, Base):
    """Blog article"""
    __tablename__ = "blog_posts"


class NewsPost(PostMixin, Base):
    """News item"""
    __tablename__ = "news_posts"
