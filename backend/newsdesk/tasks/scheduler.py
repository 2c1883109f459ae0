"""Background scheduler that starts scheduled campaigns once they are due"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from newsdesk.core.config import settings
from newsdesk.core.exceptions import CampaignStateError
from newsdesk.core.metrics import scheduler_runs_counter
from newsdesk.db.redis import acquire_lock, release_lock, SCHEDULER_LOCK_KEY
from newsdesk.db.session import SessionLocal
from newsdesk.services.campaign_service import get_due_campaign_ids, send_campaign_now

logger = logging.getLogger(__name__)
dispatch_logger = logging.getLogger("dispatch")


def promote_due_campaigns(db, now: Optional[datetime] = None) -> int:
    """Start every scheduled campaign whose time has come

    Returns:
        Number of campaigns moved into sending
    """
    started = 0
    for campaign_id in get_due_campaign_ids(db, now or datetime.now(timezone.utc)):
        try:
            send_campaign_now(campaign_id, db)
            started += 1
        except CampaignStateError:
            # Another instance or an admin got there first
            logger.debug(f"Scheduled campaign {campaign_id} already started")
        except Exception as e:
            db.rollback()
            dispatch_logger.error(f"Failed to start scheduled campaign {campaign_id}: {e}", exc_info=True)
    return started


async def scheduler_task():
    """Check for due scheduled campaigns every SCHEDULER_INTERVAL_SECONDS"""
    while True:
        try:
            await asyncio.sleep(settings.SCHEDULER_INTERVAL_SECONDS)

            # One instance per interval does the work
            if not acquire_lock(SCHEDULER_LOCK_KEY, timeout=settings.SCHEDULER_INTERVAL_SECONDS):
                continue

            db = SessionLocal()
            try:
                started = promote_due_campaigns(db)
                if started:
                    dispatch_logger.info(f"Scheduler started {started} campaigns")
                scheduler_runs_counter.labels(status="success").inc()
            finally:
                db.close()
                release_lock(SCHEDULER_LOCK_KEY)

        except asyncio.CancelledError:
            raise
        except Exception as e:
            scheduler_runs_counter.labels(status="failure").inc()
            logger.error(f"Error in scheduler task: {e}", exc_info=True)
