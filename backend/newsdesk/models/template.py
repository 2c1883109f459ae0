"""NewsletterTemplate model"""
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from datetime import datetime, timezone
from newsdesk.models.base import Base


class NewsletterTemplate(Base):
    """Email template with merge tags such as {{name}} and {{post_url}}"""
    __tablename__ = "newsletter_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    content = Column(Text, nullable=False)  # HTML content with merge tags
    meta = Column(JSON, nullable=True)  # Editor/design data, not used for rendering
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)
