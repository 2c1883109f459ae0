"""Audience resolution for newsletter campaigns"""
from typing import List

from sqlalchemy import func
from sqlalchemy.orm import Session

from newsdesk.models.subscriber import NewsletterSubscriber
from newsdesk.models.topic import subscriber_topics


def _audience_query(campaign, db: Session):
    query = db.query(NewsletterSubscriber).filter(
        NewsletterSubscriber.subscribed.is_(True),
        NewsletterSubscriber.verified_at.isnot(None)
    )
    if campaign.topic_id is not None:
        query = query.join(
            subscriber_topics,
            subscriber_topics.c.subscriber_id == NewsletterSubscriber.id
        ).filter(subscriber_topics.c.topic_id == campaign.topic_id)
    return query


def resolve_audience(campaign, db: Session) -> List[NewsletterSubscriber]:
    """Subscribed, verified subscribers (in the campaign topic, if set), ordered by id"""
    return _audience_query(campaign, db).order_by(NewsletterSubscriber.id).all()


def count_audience(campaign, db: Session) -> int:
    return _audience_query(campaign, db).with_entities(func.count(NewsletterSubscriber.id)).scalar() or 0
