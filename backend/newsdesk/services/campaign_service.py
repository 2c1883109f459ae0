"""Campaign service - campaign CRUD and status transitions

Status flow:
    draft -> scheduled -> sending -> sent | failed
    draft -> sending
    failed -> sending (manual re-send)

Only send_campaign_now moves a campaign into sending, and it does so with a
conditional UPDATE so two concurrent callers cannot both start a dispatch.
Only finalize_campaign moves a campaign out of sending.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from newsdesk.core.config import settings
from newsdesk.core.exceptions import CampaignStateError, NotFoundError, ValidationError
from newsdesk.db.task_queue import enqueue_task
from newsdesk.models.campaign import (
    NewsletterCampaign, STATUS_DRAFT, STATUS_SCHEDULED, STATUS_SENDING, STATUS_SENT, STATUS_FAILED
)
from newsdesk.models.campaign_log import NewsletterCampaignLog, LOG_SENT, LOG_FAILED
from newsdesk.models.template import NewsletterTemplate
from newsdesk.models.topic import NewsletterTopic

logger = logging.getLogger(__name__)
dispatch_logger = logging.getLogger("dispatch")

EDITABLE_STATUSES = (STATUS_DRAFT, STATUS_SCHEDULED)
POST_TYPES = ("blog", "news")
EDITABLE_FIELDS = ("subject", "template_id", "topic_id", "post_id", "post_type")


def _validate_references(data: Dict, db: Session) -> None:
    if "template_id" in data:
        template_exists = db.query(NewsletterTemplate.id).filter(
            NewsletterTemplate.id == data["template_id"]
        ).first()
        if template_exists is None:
            raise NotFoundError(f"Template {data['template_id']} not found")

    if data.get("topic_id") is not None:
        topic_exists = db.query(NewsletterTopic.id).filter(NewsletterTopic.id == data["topic_id"]).first()
        if topic_exists is None:
            raise NotFoundError(f"Topic {data['topic_id']} not found")

    if data.get("post_type") is not None and data["post_type"] not in POST_TYPES:
        raise ValidationError(f"Invalid post type: {data['post_type']}")


def get_campaign(campaign_id: int, db: Session) -> NewsletterCampaign:
    campaign = db.query(NewsletterCampaign).filter(NewsletterCampaign.id == campaign_id).first()
    if not campaign:
        raise NotFoundError(f"Campaign {campaign_id} not found")
    return campaign


def list_campaigns(db: Session, status: Optional[str] = None) -> List[NewsletterCampaign]:
    """Campaigns newest first, optionally filtered by status"""
    query = db.query(NewsletterCampaign)
    if status:
        query = query.filter(NewsletterCampaign.status == status)
    return query.order_by(NewsletterCampaign.created_at.desc(), NewsletterCampaign.id.desc()).all()


def create_campaign(data: Dict, db: Session) -> NewsletterCampaign:
    """Create a draft campaign

    Args:
        data: subject, template_id, and optional topic_id, post_id, post_type
        db: Database session

    Returns:
        The new campaign (status draft)
    """
    _validate_references(data, db)

    campaign = NewsletterCampaign(
        subject=data["subject"],
        template_id=data["template_id"],
        topic_id=data.get("topic_id"),
        post_id=data.get("post_id"),
        post_type=data.get("post_type"),
        status=STATUS_DRAFT,
    )
    db.add(campaign)
    db.commit()
    db.refresh(campaign)

    logger.info(f"Created campaign {campaign.id}: {campaign.subject!r}")
    return campaign


def update_campaign(campaign_id: int, data: Dict, db: Session) -> NewsletterCampaign:
    campaign = get_campaign(campaign_id, db)
    if campaign.status not in EDITABLE_STATUSES:
        raise CampaignStateError(f"Cannot edit a campaign with status '{campaign.status}'")

    changes = {k: v for k, v in data.items() if k in EDITABLE_FIELDS}
    _validate_references(changes, db)
    for field, value in changes.items():
        setattr(campaign, field, value)

    db.commit()
    db.refresh(campaign)
    return campaign


def delete_campaign(campaign_id: int, db: Session) -> None:
    campaign = get_campaign(campaign_id, db)
    if campaign.status == STATUS_SENDING:
        raise CampaignStateError("Cannot delete a campaign that is being sent")

    db.query(NewsletterCampaignLog).filter(NewsletterCampaignLog.campaign_id == campaign_id).delete()
    db.delete(campaign)
    db.commit()
    logger.info(f"Deleted campaign {campaign_id}")


def schedule_campaign(campaign_id: int, when: datetime, db: Session) -> NewsletterCampaign:
    """Schedule a campaign for later dispatch by the scheduler loop"""
    campaign = get_campaign(campaign_id, db)
    if campaign.status == STATUS_SENT:
        raise CampaignStateError("Cannot schedule a campaign that has already been sent")
    if campaign.status == STATUS_SENDING:
        raise CampaignStateError("Cannot schedule a campaign that is being sent")

    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    campaign.status = STATUS_SCHEDULED
    campaign.scheduled_at = when
    db.commit()
    db.refresh(campaign)

    logger.info(f"Scheduled campaign {campaign_id} for {when.isoformat()}")
    return campaign


def send_campaign_now(campaign_id: int, db: Session) -> str:
    """Move a campaign into sending and enqueue its dispatch task

    Returns:
        task_id of the enqueued dispatch task

    Raises:
        NotFoundError: Campaign does not exist
        CampaignStateError: Campaign is already sending or sent
    """
    campaign = get_campaign(campaign_id, db)
    previous_status = campaign.status

    result = db.execute(
        update(NewsletterCampaign)
        .where(
            NewsletterCampaign.id == campaign_id,
            NewsletterCampaign.status.notin_([STATUS_SENDING, STATUS_SENT])
        )
        .values(
            status=STATUS_SENDING,
            dispatch_attempt=NewsletterCampaign.dispatch_attempt + 1,
            last_error=None,
            sent_at=None,
            updated_at=datetime.now(timezone.utc)
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        raise CampaignStateError("Campaign is already sent or being sent")
    db.commit()
    db.refresh(campaign)

    try:
        task_id = enqueue_task(
            settings.DISPATCH_QUEUE_NAME,
            {"campaign_id": campaign.id, "attempt": campaign.dispatch_attempt}
        )
    except Exception:
        # Nothing will pick the campaign up; hand it back so it can be re-sent
        campaign.status = previous_status
        db.commit()
        dispatch_logger.error(f"Failed to enqueue dispatch for campaign {campaign_id}", exc_info=True)
        raise

    dispatch_logger.info(
        f"Campaign {campaign_id} is sending (attempt {campaign.dispatch_attempt}, task {task_id})"
    )
    return task_id


def _attempt_logs(campaign: NewsletterCampaign, db: Session):
    return db.query(NewsletterCampaignLog).filter(
        NewsletterCampaignLog.campaign_id == campaign.id,
        NewsletterCampaignLog.attempt == campaign.dispatch_attempt
    )


def finalize_campaign(campaign: NewsletterCampaign, total_recipients: int, db: Session) -> NewsletterCampaign:
    """Derive the final status from this attempt's log rows

    A campaign is failed only when it had recipients and every one of them
    failed; anything else (including an empty audience) is sent.
    """
    failed_count = _attempt_logs(campaign, db).filter(NewsletterCampaignLog.status == LOG_FAILED).count()

    if total_recipients > 0 and failed_count == total_recipients:
        campaign.status = STATUS_FAILED
    else:
        campaign.status = STATUS_SENT

    if failed_count > 0:
        error = f"Failed to send to {failed_count} recipients. Check logs for details."
        first_failure = _attempt_logs(campaign, db).filter(
            NewsletterCampaignLog.status == LOG_FAILED,
            NewsletterCampaignLog.error_message.isnot(None)
        ).order_by(NewsletterCampaignLog.id).first()
        if first_failure is not None:
            error += f" First error: {first_failure.error_message}"
        campaign.last_error = error
    else:
        campaign.last_error = None

    campaign.total_recipients = total_recipients
    campaign.sent_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(campaign)

    dispatch_logger.info(
        f"Campaign {campaign.id} finalized as {campaign.status}: "
        f"{total_recipients - failed_count}/{total_recipients} delivered"
    )
    return campaign


def list_campaign_logs(campaign_id: int, db: Session, attempt: Optional[int] = None) -> List[NewsletterCampaignLog]:
    """Delivery log rows of a campaign in write order, optionally for one attempt"""
    get_campaign(campaign_id, db)
    query = db.query(NewsletterCampaignLog).filter(NewsletterCampaignLog.campaign_id == campaign_id)
    if attempt is not None:
        query = query.filter(NewsletterCampaignLog.attempt == attempt)
    return query.order_by(NewsletterCampaignLog.id).all()


def get_campaign_stats(campaign_id: int, db: Session) -> Dict:
    """Sent/failed counts of the campaign's current attempt"""
    campaign = get_campaign(campaign_id, db)
    sent = _attempt_logs(campaign, db).filter(NewsletterCampaignLog.status == LOG_SENT).count()
    failed = _attempt_logs(campaign, db).filter(NewsletterCampaignLog.status == LOG_FAILED).count()
    return {
        "campaign_id": campaign.id,
        "status": campaign.status,
        "attempt": campaign.dispatch_attempt,
        "total_recipients": campaign.total_recipients,
        "sent": sent,
        "failed": failed,
    }


def get_due_campaign_ids(db: Session, now: Optional[datetime] = None) -> List[int]:
    """Ids of scheduled campaigns whose scheduled_at has passed"""
    now = now or datetime.now(timezone.utc)
    rows = db.query(NewsletterCampaign.id).filter(
        NewsletterCampaign.status == STATUS_SCHEDULED,
        NewsletterCampaign.scheduled_at.isnot(None),
        NewsletterCampaign.scheduled_at <= now
    ).order_by(NewsletterCampaign.scheduled_at).all()
    return [row.id for row in rows]
