"""NewsletterSubscriber model"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from newsdesk.models.base import Base
from newsdesk.models.topic import subscriber_topics


class NewsletterSubscriber(Base):
    """Newsletter subscriber with verification and opt-in state"""
    __tablename__ = "newsletter_subscribers"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=True)
    subscribed = Column(Boolean, default=False, nullable=False)
    unsubscribe_reason = Column(String(255), nullable=True)
    token = Column(String(64), nullable=True, unique=True, index=True)  # Verification token, kept as preference-center key
    verified_at = Column(DateTime(timezone=True), nullable=True)
    locale = Column(String(5), default="id", nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc), nullable=False)

    topics = relationship("NewsletterTopic", secondary=subscriber_topics, lazy="selectin")

    @property
    def is_verified(self) -> bool:
        return self.verified_at is not None

    @property
    def is_eligible(self) -> bool:
        """Subscribed and verified - may receive campaigns"""
        return bool(self.subscribed) and self.is_verified
