"""NewsletterCampaignLog model"""
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index, UniqueConstraint
from datetime import datetime, timezone
from newsdesk.models.base import Base

LOG_SENT = "sent"
LOG_FAILED = "failed"


class NewsletterCampaignLog(Base):
    """Append-only per-recipient delivery outcome"""
    __tablename__ = "newsletter_campaign_logs"

    id = Column(Integer, primary_key=True, index=True)
    campaign_id = Column(Integer, ForeignKey("newsletter_campaigns.id", ondelete="CASCADE"), nullable=False, index=True)
    subscriber_id = Column(Integer, ForeignKey("newsletter_subscribers.id", ondelete="CASCADE"), nullable=False, index=True)
    attempt = Column(Integer, default=1, nullable=False)  # Matches campaign.dispatch_attempt of the run that wrote it
    status = Column(String(20), nullable=False)  # sent, failed
    error_message = Column(Text, nullable=True)
    opened_at = Column(DateTime(timezone=True), nullable=True)  # Written by tracking, not by dispatch
    clicked_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        UniqueConstraint('campaign_id', 'subscriber_id', 'attempt', name='uq_newsletter_campaign_logs_recipient_attempt'),
        Index('ix_newsletter_campaign_logs_campaign_attempt_status', 'campaign_id', 'attempt', 'status'),
    )
