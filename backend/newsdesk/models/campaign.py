"""NewsletterCampaign model"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from datetime import datetime, timezone
from newsdesk.models.base import Base

STATUS_DRAFT = "draft"
STATUS_SCHEDULED = "scheduled"
STATUS_SENDING = "sending"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"

CAMPAIGN_STATUSES = (STATUS_DRAFT, STATUS_SCHEDULED, STATUS_SENDING, STATUS_SENT, STATUS_FAILED)


class NewsletterCampaign(Base):
    """One newsletter send operation"""
    __tablename__ = "newsletter_campaigns"

    id = Column(Integer, primary_key=True, index=True)
    subject = Column(String(255), nullable=False)
    template_id = Column(Integer, ForeignKey("newsletter_templates.id", ondelete="CASCADE"), nullable=False, index=True)
    topic_id = Column(Integer, ForeignKey("newsletter_topics.id", ondelete="SET NULL"), nullable=True, index=True)  # NULL = all eligible subscribers
    post_id = Column(Integer, nullable=True)  # Triggering content, resolved through post_type
    post_type = Column(String(20), nullable=True)  # blog, news
    status = Column(String(20), default=STATUS_DRAFT, nullable=False)  # draft, scheduled, sending, sent, failed
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    total_recipients = Column(Integer, default=0, nullable=False)
    last_error = Column(Text, nullable=True)
    dispatch_attempt = Column(Integer, default=0, nullable=False)  # Incremented on every transition into sending
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index('ix_newsletter_campaigns_status_scheduled_at', 'status', 'scheduled_at'),
    )
