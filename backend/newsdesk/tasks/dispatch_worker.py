"""Background worker for campaign dispatch tasks from the Redis queue

Each dequeued task is processed in its own asyncio task, so several
campaigns can be dispatched at once while the polling loop keeps running.
Recipients within one campaign are sent sequentially.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from newsdesk.core.config import settings
from newsdesk.core.exceptions import DispatchAbortedError
from newsdesk.db.session import SessionLocal
from newsdesk.db.task_queue import (
    dequeue_task, mark_task_processing, mark_task_completed,
    mark_task_failed, cleanup_stale_tasks, get_retry_after, touch_task
)
from newsdesk.services.dispatch_service import dispatch_campaign

logger = logging.getLogger(__name__)
dispatch_logger = logging.getLogger("dispatch")

STALE_CLEANUP_INTERVAL = 600  # seconds


async def _wait_for_retry_window(task_id: str, retry_count: int) -> None:
    retry_after = get_retry_after(task_id)
    if retry_after is None:
        return
    delay_seconds = (retry_after - datetime.now(timezone.utc)).total_seconds()
    if delay_seconds > 0:
        logger.info(
            f"Task {task_id} is retry attempt {retry_count}, "
            f"waiting {delay_seconds:.0f}s before processing (exponential backoff)"
        )
        await asyncio.sleep(delay_seconds)


async def process_dispatch_task(task_data: Dict[str, Any]) -> None:
    """Run one dispatch task and record its outcome on the queue

    Args:
        task_data: Task data from queue
    """
    task_id = task_data.get("task_id")
    campaign_id = task_data.get("payload", {}).get("campaign_id")

    if not campaign_id:
        logger.error(f"Task {task_id} missing campaign_id in payload")
        mark_task_failed(task_id, "Missing campaign_id in task payload", retry=False)
        return

    await _wait_for_retry_window(task_id, task_data.get("retry_count", 0))

    mark_task_processing(task_id)
    db = SessionLocal()
    try:
        dispatch_logger.info(f"Processing dispatch task {task_id} for campaign {campaign_id}")
        result = await dispatch_campaign(campaign_id, db, heartbeat=lambda: touch_task(task_id))
        mark_task_completed(task_id, result)

    except DispatchAbortedError as e:
        # Retrying cannot bring a deleted template back
        mark_task_failed(task_id, str(e), retry=False)

    except Exception as e:
        db.rollback()
        logger.error(f"Dispatch task {task_id} for campaign {campaign_id} failed: {e}", exc_info=True)
        mark_task_failed(task_id, str(e), retry=True)

    finally:
        db.close()


async def dispatch_worker_task() -> None:
    """Main worker loop: poll the dispatch queue and spawn a task per item"""
    queue_name = settings.DISPATCH_QUEUE_NAME
    logger.info(f"Starting dispatch worker on queue {queue_name}")
    last_cleanup = None
    loop = asyncio.get_running_loop()

    while True:
        try:
            if last_cleanup is None or loop.time() - last_cleanup >= STALE_CLEANUP_INTERVAL:
                cleaned = cleanup_stale_tasks(timeout_seconds=settings.STALE_TASK_TIMEOUT)
                if cleaned:
                    logger.warning(f"Requeued {cleaned} stale dispatch tasks")
                last_cleanup = loop.time()

            task_data = await dequeue_task(queue_name, timeout=5)
            if task_data is None:
                continue

            asyncio.create_task(process_dispatch_task(task_data))

        except asyncio.CancelledError:
            logger.info("Dispatch worker stopped")
            raise
        except Exception as e:
            logger.error(f"Error in dispatch worker loop: {e}", exc_info=True)
            await asyncio.sleep(5)
