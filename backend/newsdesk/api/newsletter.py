"""Public newsletter API routes (subscribe, verify, preferences, unsubscribe)"""
import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from newsdesk.api.serializers import subscriber_to_dict, topic_to_dict
from newsdesk.core.security import rate_limit_public
from newsdesk.db.session import get_db
from newsdesk.schemas.newsletter import SubscribeRequest, UnsubscribeRequest, UpdatePreferencesRequest
from newsdesk.services.newsletter_service import (
    subscribe, verify_subscriber, get_subscriber_by_token, update_preferences,
    unsubscribe, list_topics
)

router = APIRouter(prefix="/api/newsletter", tags=["newsletter"])
logger = logging.getLogger(__name__)


@router.get("/topics")
def get_topics(db: Session = Depends(get_db)):
    """List topics a subscriber can choose from"""
    return {"topics": [topic_to_dict(t) for t in list_topics(db)]}


@router.post("/subscribe", dependencies=[Depends(rate_limit_public)])
def subscribe_endpoint(request_data: SubscribeRequest, db: Session = Depends(get_db)):
    """Subscribe to the newsletter (sends a confirmation email)"""
    _, already_subscribed = subscribe(
        request_data.email,
        db,
        name=request_data.name,
        topic_ids=request_data.topic_ids,
        locale=request_data.locale
    )
    if already_subscribed:
        message = "You are already subscribed. Your topic preferences have been updated."
    else:
        message = "Please check your email to confirm your subscription."
    return {"message": message, "already_subscribed": already_subscribed}


@router.get("/verify")
def verify_endpoint(token: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """Confirm a subscription from the emailed link"""
    subscriber = verify_subscriber(token, db)
    return {"message": "Subscription confirmed", "email": subscriber.email}


@router.get("/preferences")
def get_preferences(token: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """Preference center: subscriber's topics plus all available topics"""
    subscriber = get_subscriber_by_token(token, db)
    return {
        "subscriber": subscriber_to_dict(subscriber),
        "topics": [topic_to_dict(t) for t in list_topics(db)],
    }


@router.post("/preferences")
def update_preferences_endpoint(request_data: UpdatePreferencesRequest, db: Session = Depends(get_db)):
    subscriber = update_preferences(request_data.token, request_data.topic_ids, db)
    return {"message": "Preferences updated", "subscriber": subscriber_to_dict(subscriber)}


@router.post("/unsubscribe", dependencies=[Depends(rate_limit_public)])
def unsubscribe_endpoint(request_data: UnsubscribeRequest, db: Session = Depends(get_db)):
    unsubscribe(request_data.email, db, reason=request_data.reason)
    return {"message": "You have been unsubscribed"}
