"""Campaign dispatch - render and send one email per recipient, then finalize"""
import asyncio
import logging
from typing import Callable, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from newsdesk.core.config import settings
from newsdesk.core.exceptions import DispatchAbortedError
from newsdesk.core.metrics import (
    campaigns_dispatched_counter,
    recipient_sends_counter,
    dispatch_aborted_counter,
    campaigns_in_flight_gauge
)
from newsdesk.db.redis import acquire_lock, release_lock, refresh_lock, campaign_dispatch_lock_key
from newsdesk.models.campaign import NewsletterCampaign, STATUS_SENDING
from newsdesk.models.campaign_log import NewsletterCampaignLog, LOG_SENT, LOG_FAILED
from newsdesk.models.template import NewsletterTemplate
from newsdesk.services.audience_service import resolve_audience
from newsdesk.services.campaign_service import finalize_campaign
from newsdesk.services.content_service import find_post
from newsdesk.services.email_service import send_email
from newsdesk.services.template_renderer import (
    RenderConfig, render_template, wrap_in_layout, unsubscribe_url, preference_url
)

logger = logging.getLogger(__name__)
dispatch_logger = logging.getLogger("dispatch")

SendFunc = Callable[[str, str, str], object]


def _lock_timeout() -> int:
    # Long enough for one recipient; the lock is refreshed after every send
    return int(settings.MAIL_SEND_TIMEOUT) * 2 + 60


def _logged_subscriber_ids(campaign: NewsletterCampaign, db: Session) -> set:
    rows = db.query(NewsletterCampaignLog.subscriber_id).filter(
        NewsletterCampaignLog.campaign_id == campaign.id,
        NewsletterCampaignLog.attempt == campaign.dispatch_attempt
    ).all()
    return {row.subscriber_id for row in rows}


def _is_logged(campaign_id: int, subscriber_id: int, attempt: int, db: Session) -> bool:
    return db.query(NewsletterCampaignLog.id).filter(
        NewsletterCampaignLog.campaign_id == campaign_id,
        NewsletterCampaignLog.subscriber_id == subscriber_id,
        NewsletterCampaignLog.attempt == attempt
    ).first() is not None


def _count_logs(campaign: NewsletterCampaign, status: str, db: Session) -> int:
    return db.query(NewsletterCampaignLog).filter(
        NewsletterCampaignLog.campaign_id == campaign.id,
        NewsletterCampaignLog.attempt == campaign.dispatch_attempt,
        NewsletterCampaignLog.status == status
    ).count()


async def _deliver(send: SendFunc, to: str, subject: str, html: str, timeout: float) -> None:
    # The transport is blocking; run it off the event loop with a deadline.
    # A timed-out thread is not cancelled, so the message may still go out.
    await asyncio.wait_for(asyncio.to_thread(send, to, subject, html), timeout=timeout)


async def dispatch_campaign(
    campaign_id: int,
    db: Session,
    send: Optional[SendFunc] = None,
    config: Optional[RenderConfig] = None,
    heartbeat: Optional[Callable[[], None]] = None
) -> Dict:
    """Send a campaign that is in the sending state to its whole audience

    A failure for one recipient is recorded as a failed log row and never
    stops the run. Recipients that already have a log row for the current
    attempt are skipped, so a redelivered task resumes where the previous
    one stopped. Only one run per campaign holds the dispatch lock; a run
    that finds it taken returns without sending.

    Args:
        campaign_id: Campaign to dispatch
        db: Database session owned by the caller
        send: Mail transport (to, subject, html); defaults to Resend
        config: URL configuration for rendering
        heartbeat: Called after each recipient to show the run is alive

    Returns:
        Dict with campaign_id, status, total_recipients, sent, failed

    Raises:
        DispatchAbortedError: The campaign template is missing
    """
    send = send or send_email
    config = config or RenderConfig.from_settings()

    campaign = db.query(NewsletterCampaign).filter(NewsletterCampaign.id == campaign_id).first()
    if campaign is None:
        dispatch_logger.warning(f"Dispatch skipped: campaign {campaign_id} no longer exists")
        return {"campaign_id": campaign_id, "status": "skipped"}
    if campaign.status != STATUS_SENDING:
        dispatch_logger.info(f"Dispatch skipped: campaign {campaign_id} is {campaign.status}, not sending")
        return {"campaign_id": campaign_id, "status": "skipped"}

    template = db.query(NewsletterTemplate).filter(NewsletterTemplate.id == campaign.template_id).first()
    if template is None or template.content is None:
        dispatch_aborted_counter.inc()
        dispatch_logger.critical(
            f"Campaign {campaign_id} cannot be sent: template {campaign.template_id} is missing. "
            f"Campaign left in sending."
        )
        raise DispatchAbortedError(campaign_id, f"template {campaign.template_id} not found")

    lock_key = campaign_dispatch_lock_key(campaign_id)
    if not acquire_lock(lock_key, timeout=_lock_timeout()):
        dispatch_logger.warning(f"Dispatch skipped: campaign {campaign_id} is already being dispatched")
        return {"campaign_id": campaign_id, "status": "skipped"}

    campaigns_in_flight_gauge.inc()
    try:
        post = find_post(campaign.post_type, campaign.post_id, db)
        recipients = resolve_audience(campaign, db)
        attempt = campaign.dispatch_attempt
        already_logged = _logged_subscriber_ids(campaign, db)

        # Recipients handled earlier in this attempt still count, even if they left the audience since
        total = len(already_logged | {subscriber.id for subscriber in recipients})
        campaign.total_recipients = total
        db.commit()

        if already_logged:
            dispatch_logger.info(
                f"Resuming campaign {campaign_id} attempt {attempt}: "
                f"{len(already_logged)}/{total} recipients already processed"
            )
        else:
            dispatch_logger.info(f"Dispatching campaign {campaign_id} attempt {attempt} to {total} recipients")

        for subscriber in recipients:
            if subscriber.id in already_logged or _is_logged(campaign.id, subscriber.id, attempt, db):
                continue

            error_message = None
            try:
                body = render_template(template.content, campaign, subscriber, config, post)
                html = wrap_in_layout(
                    body,
                    unsubscribe_url(config, subscriber.email),
                    preference_url(config, subscriber.token)
                )
                await _deliver(send, subscriber.email, campaign.subject, html, settings.MAIL_SEND_TIMEOUT)
            except asyncio.TimeoutError:
                error_message = (
                    f"Mail send timed out after {settings.MAIL_SEND_TIMEOUT:g}s; delivery outcome unknown"
                )
            except Exception as exc:
                error_message = str(exc) or type(exc).__name__

            status = LOG_SENT if error_message is None else LOG_FAILED
            db.add(NewsletterCampaignLog(
                campaign_id=campaign.id,
                subscriber_id=subscriber.id,
                attempt=attempt,
                status=status,
                error_message=error_message
            ))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                dispatch_logger.error(
                    f"Campaign {campaign_id}: subscriber {subscriber.id} was already logged "
                    f"for attempt {attempt} by another run"
                )
                continue
            recipient_sends_counter.labels(status=status).inc()

            if error_message is not None:
                dispatch_logger.warning(
                    f"Campaign {campaign_id}: failed to send to {subscriber.email}: {error_message}"
                )

            refresh_lock(lock_key, _lock_timeout())
            if heartbeat is not None:
                heartbeat()

        finalize_campaign(campaign, total, db)
    finally:
        campaigns_in_flight_gauge.dec()
        release_lock(lock_key)

    campaigns_dispatched_counter.labels(status=campaign.status).inc()

    return {
        "campaign_id": campaign.id,
        "status": campaign.status,
        "total_recipients": total,
        "sent": _count_logs(campaign, LOG_SENT, db),
        "failed": _count_logs(campaign, LOG_FAILED, db),
    }
