"""NewsletterTopic model and subscriber/topic association table"""
from sqlalchemy import Column, Integer, String, Boolean, ForeignKey, Table
from newsdesk.models.base import Base


subscriber_topics = Table(
    "newsletter_subscriber_topic",
    Base.metadata,
    Column("subscriber_id", Integer, ForeignKey("newsletter_subscribers.id", ondelete="CASCADE"), primary_key=True),
    Column("topic_id", Integer, ForeignKey("newsletter_topics.id", ondelete="CASCADE"), primary_key=True, index=True),
)


class NewsletterTopic(Base):
    """Interest category subscribers opt into; scopes campaign audiences"""
    __tablename__ = "newsletter_topics"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(String(255), nullable=True)
    is_default = Column(Boolean, default=False, nullable=False)  # Auto-assigned when a subscriber picks no topics
