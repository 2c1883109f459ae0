"""Automatic newsletter campaigns when blog/news content is published"""
import logging
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from newsdesk.core.metrics import publication_triggers_counter
from newsdesk.models.campaign import NewsletterCampaign
from newsdesk.models.post import POST_PUBLISHED
from newsdesk.models.template import NewsletterTemplate
from newsdesk.models.topic import NewsletterTopic
from newsdesk.services.campaign_service import create_campaign, send_campaign_now

logger = logging.getLogger(__name__)
newsletter_logger = logging.getLogger("newsletter")

# Per post type: template name patterns, topic slugs, subject prefix
TEMPLATE_PATTERNS = {
    "blog": ("%New Post%", "%Artikel%"),
    "news": ("%New Post%", "%Berita%"),
}
TOPIC_SLUGS = {
    "blog": ("blog",),
    "news": ("news", "berita"),
}
SUBJECT_PREFIXES = {
    "blog": "Artikel Baru",
    "news": "Berita Baru",
}


def find_notification_template(post_type: str, db: Session) -> Optional[NewsletterTemplate]:
    patterns = TEMPLATE_PATTERNS.get(post_type, ("%New Post%",))
    return db.query(NewsletterTemplate).filter(
        or_(*[NewsletterTemplate.name.like(pattern) for pattern in patterns])
    ).order_by(NewsletterTemplate.id).first()


def find_notification_topic(post_type: str, db: Session) -> Optional[NewsletterTopic]:
    slugs = TOPIC_SLUGS.get(post_type, ())
    if not slugs:
        return None
    return db.query(NewsletterTopic).filter(
        NewsletterTopic.slug.in_(slugs)
    ).order_by(NewsletterTopic.id).first()


def on_content_published(post_id: int, post_type: str, title: str, db: Session) -> Optional[NewsletterCampaign]:
    """Create and start a campaign announcing a newly published post

    Never raises: publishing content must not fail because of the newsletter.

    Returns:
        The campaign, or None when no template matched or an error occurred
    """
    try:
        template = find_notification_template(post_type, db)
        if template is None:
            publication_triggers_counter.labels(outcome="no_template").inc()
            newsletter_logger.warning(
                f"No newsletter template found for {post_type} post {post_id}; skipping newsletter"
            )
            return None

        topic = find_notification_topic(post_type, db)
        prefix = SUBJECT_PREFIXES.get(post_type, "Konten Baru")

        campaign = create_campaign({
            "subject": f"{prefix}: {title}",
            "template_id": template.id,
            "topic_id": topic.id if topic else None,
            "post_id": post_id,
            "post_type": post_type,
        }, db)
        send_campaign_now(campaign.id, db)

        publication_triggers_counter.labels(outcome="triggered").inc()
        newsletter_logger.info(f"Newsletter campaign {campaign.id} started for {post_type} post {post_id}")
        return campaign
    except Exception as e:
        db.rollback()
        publication_triggers_counter.labels(outcome="error").inc()
        newsletter_logger.error(
            f"Failed to send newsletter for {post_type} post {post_id}: {e}", exc_info=True
        )
        return None


def handle_post_saved(post, post_type: str, previous_status: Optional[str], db: Session) -> Optional[NewsletterCampaign]:
    """Trigger the newsletter when a post becomes published

    Fires when the post is created already published (previous_status None)
    or moves from any other status to published.
    """
    if post.status != POST_PUBLISHED or previous_status == POST_PUBLISHED:
        return None
    return on_content_published(post.id, post_type, post.title, db)
