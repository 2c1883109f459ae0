"""Model -> JSON dict helpers shared by the API routers"""
from typing import Any, Dict, Optional


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def topic_to_dict(topic) -> Dict[str, Any]:
    return {
        "id": topic.id,
        "name": topic.name,
        "slug": topic.slug,
        "description": topic.description,
        "is_default": topic.is_default,
    }


def subscriber_to_dict(subscriber) -> Dict[str, Any]:
    return {
        "id": subscriber.id,
        "email": subscriber.email,
        "name": subscriber.name,
        "subscribed": subscriber.subscribed,
        "verified": subscriber.is_verified,
        "verified_at": _iso(subscriber.verified_at),
        "locale": subscriber.locale,
        "unsubscribe_reason": subscriber.unsubscribe_reason,
        "topics": [topic_to_dict(t) for t in subscriber.topics],
        "created_at": _iso(subscriber.created_at),
    }


def template_to_dict(template) -> Dict[str, Any]:
    return {
        "id": template.id,
        "name": template.name,
        "content": template.content,
        "meta": template.meta,
        "created_at": _iso(template.created_at),
        "updated_at": _iso(template.updated_at),
    }


def campaign_to_dict(campaign) -> Dict[str, Any]:
    return {
        "id": campaign.id,
        "subject": campaign.subject,
        "template_id": campaign.template_id,
        "topic_id": campaign.topic_id,
        "post_id": campaign.post_id,
        "post_type": campaign.post_type,
        "status": campaign.status,
        "scheduled_at": _iso(campaign.scheduled_at),
        "sent_at": _iso(campaign.sent_at),
        "total_recipients": campaign.total_recipients,
        "last_error": campaign.last_error,
        "dispatch_attempt": campaign.dispatch_attempt,
        "created_at": _iso(campaign.created_at),
    }


def campaign_log_to_dict(log) -> Dict[str, Any]:
    return {
        "id": log.id,
        "campaign_id": log.campaign_id,
        "subscriber_id": log.subscriber_id,
        "attempt": log.attempt,
        "status": log.status,
        "error_message": log.error_message,
        "created_at": _iso(log.created_at),
    }


def post_to_dict(post, post_type: str) -> Dict[str, Any]:
    return {
        "id": post.id,
        "type": post_type,
        "title": post.title,
        "slug": post.slug,
        "sub_title": post.sub_title,
        "excerpt": post.excerpt,
        "status": post.status,
        "published_at": _iso(post.published_at),
        "created_at": _iso(post.created_at),
    }
