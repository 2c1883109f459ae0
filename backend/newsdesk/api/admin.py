"""Admin newsletter API routes"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from newsdesk.api.serializers import (
    subscriber_to_dict, topic_to_dict, template_to_dict, campaign_to_dict, campaign_log_to_dict
)
from newsdesk.core.exceptions import ValidationError
from newsdesk.core.security import require_admin
from newsdesk.db.session import get_db
from newsdesk.models.campaign import CAMPAIGN_STATUSES
from newsdesk.schemas.newsletter import (
    CreateTopicRequest, CreateTemplateRequest, CreateCampaignRequest,
    UpdateCampaignRequest, ScheduleCampaignRequest
)
from newsdesk.services.audience_service import count_audience
from newsdesk.services.campaign_service import (
    create_campaign, get_campaign, list_campaigns, update_campaign, delete_campaign,
    schedule_campaign, send_campaign_now, list_campaign_logs, get_campaign_stats
)
from newsdesk.services.newsletter_service import (
    list_subscribers, get_statistics, list_topics, create_topic, list_templates, create_template
)
router = APIRouter(
    prefix="/api/admin/newsletter",
    tags=["admin"],
    dependencies=[Depends(require_admin)]
)
logger = logging.getLogger(__name__)


@router.get("/subscribers")
def get_subscribers(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=200),
    search: Optional[str] = None,
    status: Optional[str] = Query(None, pattern="^(active|unverified|unsubscribed)$"),
    db: Session = Depends(get_db)
):
    """List subscribers with pagination and filters"""
    result = list_subscribers(db, page=page, limit=limit, search=search, status=status)
    result["subscribers"] = [subscriber_to_dict(s) for s in result["subscribers"]]
    return result


@router.get("/statistics")
def get_subscriber_statistics(db: Session = Depends(get_db)):
    return get_statistics(db)


@router.get("/topics")
def get_topics(db: Session = Depends(get_db)):
    return {"topics": [topic_to_dict(t) for t in list_topics(db)]}


@router.post("/topics", status_code=201)
def create_topic_endpoint(request_data: CreateTopicRequest, db: Session = Depends(get_db)):
    topic = create_topic(request_data.model_dump(), db)
    return {"topic": topic_to_dict(topic)}


@router.get("/templates")
def get_templates(db: Session = Depends(get_db)):
    return {"templates": [template_to_dict(t) for t in list_templates(db)]}


@router.post("/templates", status_code=201)
def create_template_endpoint(request_data: CreateTemplateRequest, db: Session = Depends(get_db)):
    template = create_template(request_data.model_dump(), db)
    return {"template": template_to_dict(template)}


@router.get("/campaigns")
def get_campaigns(status: Optional[str] = None, db: Session = Depends(get_db)):
    """List campaigns, newest first"""
    if status is not None and status not in CAMPAIGN_STATUSES:
        raise ValidationError(f"Invalid campaign status: {status}")
    return {"campaigns": [campaign_to_dict(c) for c in list_campaigns(db, status=status)]}


@router.post("/campaigns", status_code=201)
def create_campaign_endpoint(request_data: CreateCampaignRequest, db: Session = Depends(get_db)):
    campaign = create_campaign(request_data.model_dump(), db)
    return {"campaign": campaign_to_dict(campaign)}


@router.get("/campaigns/{campaign_id}")
def get_campaign_endpoint(campaign_id: int, db: Session = Depends(get_db)):
    """Campaign details plus the size of its current audience"""
    campaign = get_campaign(campaign_id, db)
    return {"campaign": campaign_to_dict(campaign), "audience_size": count_audience(campaign, db)}


@router.patch("/campaigns/{campaign_id}")
def update_campaign_endpoint(
    campaign_id: int,
    request_data: UpdateCampaignRequest,
    db: Session = Depends(get_db)
):
    campaign = update_campaign(campaign_id, request_data.model_dump(exclude_unset=True), db)
    return {"campaign": campaign_to_dict(campaign)}


@router.delete("/campaigns/{campaign_id}")
def delete_campaign_endpoint(campaign_id: int, db: Session = Depends(get_db)):
    delete_campaign(campaign_id, db)
    return {"message": "Campaign deleted"}


@router.post("/campaigns/{campaign_id}/schedule")
def schedule_campaign_endpoint(
    campaign_id: int,
    request_data: ScheduleCampaignRequest,
    db: Session = Depends(get_db)
):
    campaign = schedule_campaign(campaign_id, request_data.scheduled_at, db)
    return {"campaign": campaign_to_dict(campaign)}


@router.post("/campaigns/{campaign_id}/send", status_code=202)
def send_campaign_endpoint(campaign_id: int, db: Session = Depends(get_db)):
    """Start sending a campaign now; delivery happens in the background worker"""
    task_id = send_campaign_now(campaign_id, db)
    campaign = get_campaign(campaign_id, db)
    return {"message": "Campaign is being sent", "task_id": task_id, "campaign": campaign_to_dict(campaign)}


@router.get("/campaigns/{campaign_id}/logs")
def get_campaign_logs(campaign_id: int, attempt: Optional[int] = None, db: Session = Depends(get_db)):
    logs = list_campaign_logs(campaign_id, db, attempt=attempt)
    return {"logs": [campaign_log_to_dict(log) for log in logs]}


@router.get("/campaigns/{campaign_id}/stats")
def get_campaign_stats_endpoint(campaign_id: int, db: Session = Depends(get_db)):
    return get_campaign_stats(campaign_id, db)
