"""Newsletter service - subscriptions, preferences, topics and templates"""
import logging
import secrets
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from newsdesk.core.exceptions import NotFoundError, ValidationError
from newsdesk.models.subscriber import NewsletterSubscriber
from newsdesk.models.template import NewsletterTemplate
from newsdesk.models.topic import NewsletterTopic
from newsdesk.services.email_service import send_verification_email, send_welcome_email

logger = logging.getLogger(__name__)
newsletter_logger = logging.getLogger("newsletter")

SUPPORTED_LOCALES = ("id", "en")

DEFAULT_TOPICS = (
    {"name": "Blog & Artikel", "slug": "blog", "description": "Artikel dan tulisan terbaru", "is_default": True},
    {"name": "Berita & Kegiatan", "slug": "news", "description": "Berita dan kegiatan terbaru", "is_default": True},
)
DEFAULT_TEMPLATE_NAME = "New Post Notification"
DEFAULT_TEMPLATE_CONTENT = (
    "<h1>Halo {{name}}!</h1>"
    "<h2>{{title}}</h2>"
    "<h3>{{sub_title}}</h3>"
    "<div>{{excerpt}}</div>"
    "{{button}}"
)


def generate_token() -> str:
    """64-character hex token used for verification and the preference center"""
    return secrets.token_hex(32)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _load_topics(topic_ids: List[int], db: Session) -> List[NewsletterTopic]:
    unique_ids = sorted(set(topic_ids))
    if not unique_ids:
        return []
    topics = db.query(NewsletterTopic).filter(NewsletterTopic.id.in_(unique_ids)).all()
    missing = set(unique_ids) - {t.id for t in topics}
    if missing:
        raise ValidationError(
            f"Unknown topic ids: {', '.join(str(i) for i in sorted(missing))}",
            errors={"topic_ids": sorted(missing)}
        )
    return topics


def _default_topics(db: Session) -> List[NewsletterTopic]:
    return db.query(NewsletterTopic).filter(NewsletterTopic.is_default.is_(True)).order_by(NewsletterTopic.id).all()


def get_subscriber_by_token(token: str, db: Session) -> NewsletterSubscriber:
    subscriber = None
    if token:
        subscriber = db.query(NewsletterSubscriber).filter(NewsletterSubscriber.token == token).first()
    if not subscriber:
        raise NotFoundError("Invalid or expired token")
    return subscriber


def subscribe(
    email: str,
    db: Session,
    name: Optional[str] = None,
    topic_ids: Optional[List[int]] = None,
    locale: str = "id"
) -> Tuple[NewsletterSubscriber, bool]:
    """Subscribe an email address (double opt-in)

    An address that is already subscribed only gets its topics synced.
    New and returning addresses get a fresh token, lose any previous
    verification and are sent a confirmation email.

    Returns:
        (subscriber, already_subscribed)
    """
    email = normalize_email(email)
    locale = locale if locale in SUPPORTED_LOCALES else "id"
    topics = _load_topics(topic_ids, db) if topic_ids else None

    subscriber = db.query(NewsletterSubscriber).filter(NewsletterSubscriber.email == email).first()

    if subscriber and subscriber.subscribed:
        if topics is not None:
            subscriber.topics = topics
            db.commit()
            db.refresh(subscriber)
        newsletter_logger.info(f"Subscribe request for existing subscriber {subscriber.id}; topics synced")
        return subscriber, True

    if subscriber is None:
        subscriber = NewsletterSubscriber(email=email)
        db.add(subscriber)

    subscriber.name = name or subscriber.name
    subscriber.subscribed = True
    subscriber.unsubscribe_reason = None
    subscriber.locale = locale
    subscriber.token = generate_token()
    subscriber.verified_at = None
    subscriber.topics = topics if topics is not None else _default_topics(db)
    db.commit()
    db.refresh(subscriber)

    newsletter_logger.info(f"Subscriber {subscriber.id} subscribed; verification pending")
    send_verification_email(subscriber)
    return subscriber, False


def verify_subscriber(token: str, db: Session) -> NewsletterSubscriber:
    """Confirm a subscription; repeating the confirmation is a no-op

    The token stays on the subscriber afterwards and keeps working as the
    preference-center key.
    """
    subscriber = get_subscriber_by_token(token, db)
    if subscriber.verified_at is not None:
        return subscriber

    subscriber.verified_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(subscriber)

    newsletter_logger.info(f"Subscriber {subscriber.id} verified")
    send_welcome_email(subscriber)
    return subscriber


def update_preferences(token: str, topic_ids: List[int], db: Session) -> NewsletterSubscriber:
    """Replace the subscriber's topics with exactly topic_ids"""
    subscriber = get_subscriber_by_token(token, db)
    subscriber.topics = _load_topics(topic_ids or [], db)
    db.commit()
    db.refresh(subscriber)
    return subscriber


def unsubscribe(email: str, db: Session, reason: Optional[str] = None) -> NewsletterSubscriber:
    email = normalize_email(email)
    subscriber = db.query(NewsletterSubscriber).filter(NewsletterSubscriber.email == email).first()
    if not subscriber:
        raise ValidationError("Email not found in our newsletter list", errors={"email": [email]})

    subscriber.subscribed = False
    subscriber.unsubscribe_reason = reason
    db.commit()
    db.refresh(subscriber)

    newsletter_logger.info(f"Subscriber {subscriber.id} unsubscribed")
    return subscriber


def list_subscribers(
    db: Session,
    page: int = 1,
    limit: int = 50,
    search: Optional[str] = None,
    status: Optional[str] = None
) -> Dict:
    """Paginated subscribers, newest first

    Args:
        status: 'active' (subscribed+verified), 'unverified', 'unsubscribed' or None for all

    Returns:
        Dict with 'subscribers', 'total', 'page', 'limit'
    """
    query = db.query(NewsletterSubscriber)
    if search:
        query = query.filter(NewsletterSubscriber.email.ilike(f"%{search}%"))
    if status == "active":
        query = query.filter(NewsletterSubscriber.subscribed.is_(True), NewsletterSubscriber.verified_at.isnot(None))
    elif status == "unverified":
        query = query.filter(NewsletterSubscriber.subscribed.is_(True), NewsletterSubscriber.verified_at.is_(None))
    elif status == "unsubscribed":
        query = query.filter(NewsletterSubscriber.subscribed.is_(False))

    total = query.count()
    subscribers = query.order_by(
        NewsletterSubscriber.created_at.desc(), NewsletterSubscriber.id.desc()
    ).offset((page - 1) * limit).limit(limit).all()

    return {"subscribers": subscribers, "total": total, "page": page, "limit": limit}


def get_statistics(db: Session) -> Dict[str, int]:
    def count(*filters) -> int:
        return db.query(func.count(NewsletterSubscriber.id)).filter(*filters).scalar() or 0

    return {
        "total": count(),
        "active": count(NewsletterSubscriber.subscribed.is_(True)),
        "verified": count(NewsletterSubscriber.subscribed.is_(True), NewsletterSubscriber.verified_at.isnot(None)),
        "unverified": count(NewsletterSubscriber.subscribed.is_(True), NewsletterSubscriber.verified_at.is_(None)),
        "unsubscribed": count(NewsletterSubscriber.subscribed.is_(False)),
    }


def list_topics(db: Session) -> List[NewsletterTopic]:
    return db.query(NewsletterTopic).order_by(NewsletterTopic.id).all()


def create_topic(data: Dict, db: Session) -> NewsletterTopic:
    if db.query(NewsletterTopic.id).filter(NewsletterTopic.slug == data["slug"]).first() is not None:
        raise ValidationError(f"Topic slug already exists: {data['slug']}")

    topic = NewsletterTopic(
        name=data["name"],
        slug=data["slug"],
        description=data.get("description"),
        is_default=bool(data.get("is_default", False)),
    )
    db.add(topic)
    db.commit()
    db.refresh(topic)
    return topic


def list_templates(db: Session) -> List[NewsletterTemplate]:
    return db.query(NewsletterTemplate).order_by(NewsletterTemplate.id).all()


def create_template(data: Dict, db: Session) -> NewsletterTemplate:
    template = NewsletterTemplate(name=data["name"], content=data["content"], meta=data.get("meta"))
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


def seed_defaults(db: Session) -> Dict[str, int]:
    """Create the default topics and the post notification template if missing

    Returns:
        Counts of created topics and templates
    """
    created = {"topics": 0, "templates": 0}
    for topic_data in DEFAULT_TOPICS:
        if db.query(NewsletterTopic.id).filter(NewsletterTopic.slug == topic_data["slug"]).first() is None:
            db.add(NewsletterTopic(**topic_data))
            created["topics"] += 1

    if db.query(NewsletterTemplate.id).filter(NewsletterTemplate.name == DEFAULT_TEMPLATE_NAME).first() is None:
        db.add(NewsletterTemplate(name=DEFAULT_TEMPLATE_NAME, content=DEFAULT_TEMPLATE_CONTENT))
        created["templates"] += 1

    db.commit()
    if created["topics"] or created["templates"]:
        logger.info(f"Seeded newsletter defaults: {created}")
    return created
