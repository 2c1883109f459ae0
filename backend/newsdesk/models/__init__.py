"""SQLAlchemy models package - imports all models so they register with Base.metadata"""
from newsdesk.models.base import Base
from newsdesk.models.topic import NewsletterTopic, subscriber_topics
from newsdesk.models.subscriber import NewsletterSubscriber
from newsdesk.models.template import NewsletterTemplate
from newsdesk.models.campaign import NewsletterCampaign
from newsdesk.models.campaign_log import NewsletterCampaignLog
from newsdesk.models.post import BlogPost, NewsPost

# Export all for convenience
__all__ = [
    "Base", "NewsletterTopic", "subscriber_topics", "NewsletterSubscriber",
    "NewsletterTemplate", "NewsletterCampaign", "NewsletterCampaignLog",
    "BlogPost", "NewsPost"
]
