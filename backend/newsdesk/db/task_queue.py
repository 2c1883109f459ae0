"""Redis-backed task queue for campaign dispatch jobs

Tasks are JSON documents pushed onto a Redis list per task type; each task
also has a metadata hash that tracks its lifecycle
(pending -> processing -> completed | retrying | failed).
Delivery is at-least-once: a task may be seen again after a worker crash,
so handlers must be idempotent.
"""
import json
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from newsdesk.core.config import settings
from newsdesk.db.redis import get_redis_client, get_async_redis_client

logger = logging.getLogger(__name__)

# Redis key prefixes
QUEUE_KEY_PREFIX = "newsdesk:queue:"
META_KEY_PREFIX = "newsdesk:task:"
PROCESSING_SET_KEY = "newsdesk:processing"

# Metadata of finished tasks is kept for 24 hours
TASK_META_TTL = 24 * 60 * 60
MAX_RETRY_DELAY = 300


def _meta_key(task_id: str) -> str:
    return f"{META_KEY_PREFIX}{task_id}"


def _queue_key(task_type: str) -> str:
    return f"{QUEUE_KEY_PREFIX}{task_type}"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def retry_delay(retry_count: int) -> int:
    """Exponential backoff in seconds for the given retry attempt, capped at 5 minutes"""
    return min(MAX_RETRY_DELAY, 2 ** retry_count)


def enqueue_task(
    task_type: str,
    payload: Dict[str, Any],
    retry_count: int = 0,
    max_retries: Optional[int] = None,
    retry_after: Optional[datetime] = None
) -> str:
    """Push a task onto its queue and record its metadata

    Args:
        task_type: Queue name (e.g. 'dispatch_campaign')
        payload: JSON-serializable task payload
        retry_count: Current retry attempt (0 for new tasks)
        max_retries: Maximum number of automatic retries (defaults to DISPATCH_MAX_RETRIES)
        retry_after: Earliest time the worker may process this task

    Returns:
        task_id: Unique task identifier
    """
    if max_retries is None:
        max_retries = settings.DISPATCH_MAX_RETRIES

    task_id = str(uuid.uuid4())
    created_at = _now_iso()
    client = get_redis_client()

    meta = {
        "task_id": task_id,
        "task_type": task_type,
        "payload": json.dumps(payload),
        "retry_count": str(retry_count),
        "max_retries": str(max_retries),
        "created_at": created_at,
        "status": "pending",
    }
    if retry_after is not None:
        meta["retry_after"] = retry_after.isoformat()

    client.hset(_meta_key(task_id), mapping=meta)
    client.expire(_meta_key(task_id), TASK_META_TTL)

    client.lpush(_queue_key(task_type), json.dumps({
        "task_id": task_id,
        "task_type": task_type,
        "payload": payload,
        "retry_count": retry_count,
        "max_retries": max_retries,
        "created_at": created_at,
    }))

    logger.info(f"Enqueued task {task_id} of type {task_type} (retry_count={retry_count})")
    return task_id


async def dequeue_task(task_type: str, timeout: int = 5) -> Optional[Dict[str, Any]]:
    """Blocking pop of the oldest task of a type; None on timeout"""
    client = get_async_redis_client()
    if client is None:
        logger.error("Async Redis client not available")
        return None

    try:
        result = await client.brpop(_queue_key(task_type), timeout=timeout)
    except Exception as e:
        logger.error(f"Error dequeuing {task_type} task: {e}", exc_info=True)
        return None

    if result is None:
        return None

    _, task_json = result
    return json.loads(task_json)


def get_task_status(task_id: str) -> Optional[Dict[str, Any]]:
    """Task metadata with payload and counters decoded, or None if unknown"""
    meta = get_redis_client().hgetall(_meta_key(task_id))
    if not meta:
        return None

    if "payload" in meta:
        meta["payload"] = json.loads(meta["payload"])
    for field in ("retry_count", "max_retries"):
        if field in meta:
            meta[field] = int(meta[field])
    return meta


def get_retry_after(task_id: str) -> Optional[datetime]:
    """When a retried task becomes eligible for processing, if it was delayed"""
    value = get_redis_client().hget(_meta_key(task_id), "retry_after")
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace('Z', '+00:00'))
    except ValueError:
        logger.warning(f"Ignoring malformed retry_after for task {task_id}: {value}")
        return None


def mark_task_processing(task_id: str) -> None:
    client = get_redis_client()
    now = _now_iso()
    client.hset(_meta_key(task_id), mapping={"status": "processing", "started_at": now, "heartbeat_at": now})
    client.sadd(PROCESSING_SET_KEY, task_id)
    logger.debug(f"Marked task {task_id} as processing")


def touch_task(task_id: str) -> None:
    """Record that a processing task is still alive so stale cleanup leaves it alone"""
    get_redis_client().hset(_meta_key(task_id), "heartbeat_at", _now_iso())


def mark_task_completed(task_id: str, result: Optional[Dict[str, Any]] = None) -> None:
    client = get_redis_client()
    fields = {"status": "completed", "completed_at": _now_iso()}
    if result:
        fields["result"] = json.dumps(result)
    client.hset(_meta_key(task_id), mapping=fields)
    client.srem(PROCESSING_SET_KEY, task_id)
    logger.info(f"Marked task {task_id} as completed")


def mark_task_failed(task_id: str, error: str, retry: bool = True) -> Optional[str]:
    """Mark task as failed and, when allowed, enqueue a delayed retry

    Args:
        task_id: Task identifier
        error: Error message
        retry: Whether an automatic retry may be scheduled

    Returns:
        New task_id if a retry was scheduled, None otherwise
    """
    client = get_redis_client()
    meta = get_task_status(task_id)
    if not meta:
        logger.warning(f"Task {task_id} metadata not found")
        return None

    retry_count = meta.get("retry_count", 0)
    max_retries = meta.get("max_retries", settings.DISPATCH_MAX_RETRIES)
    client.srem(PROCESSING_SET_KEY, task_id)

    if retry and retry_count < max_retries:
        delay_seconds = retry_delay(retry_count + 1)
        client.hset(_meta_key(task_id), mapping={
            "status": "retrying",
            "error": error,
            "retry_scheduled_at": _now_iso(),
            "retry_delay_seconds": str(delay_seconds),
        })
        logger.info(
            f"Task {task_id} failed (attempt {retry_count + 1}/{max_retries + 1}), "
            f"scheduling retry in {delay_seconds}s: {error}"
        )
        return enqueue_task(
            task_type=meta["task_type"],
            payload=meta.get("payload", {}),
            retry_count=retry_count + 1,
            max_retries=max_retries,
            retry_after=datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        )

    client.hset(_meta_key(task_id), mapping={
        "status": "failed",
        "error": error,
        "failed_at": _now_iso(),
    })
    logger.warning(f"Task {task_id} failed permanently after {retry_count + 1} attempts: {error}")
    return None


def get_processing_tasks() -> List[str]:
    return list(get_redis_client().smembers(PROCESSING_SET_KEY))


def queue_length(task_type: str) -> int:
    """Number of tasks waiting in a queue"""
    return int(get_redis_client().llen(_queue_key(task_type)))


def cleanup_stale_tasks(timeout_seconds: int = 3600) -> int:
    """Retry tasks with no sign of life for longer than timeout_seconds (crashed worker)

    A task is alive while its worker keeps calling touch_task; the last
    heartbeat, or the start time for tasks that never sent one, is what ages.

    Returns:
        Number of tasks cleaned up
    """
    client = get_redis_client()
    cleaned = 0

    for task_id in get_processing_tasks():
        seen_at_str = client.hget(_meta_key(task_id), "heartbeat_at") or client.hget(_meta_key(task_id), "started_at")
        if not seen_at_str:
            continue
        try:
            seen_at = datetime.fromisoformat(seen_at_str.replace('Z', '+00:00'))
        except (ValueError, TypeError) as e:
            logger.warning(f"Error parsing heartbeat for task {task_id}: {e}")
            client.srem(PROCESSING_SET_KEY, task_id)
            cleaned += 1
            continue

        elapsed = (datetime.now(timezone.utc) - seen_at).total_seconds()
        if elapsed > timeout_seconds:
            logger.warning(
                f"Cleaning up stale task {task_id} "
                f"(no heartbeat for {elapsed:.0f}s, timeout={timeout_seconds}s)"
            )
            # Redeliver; dispatch skips recipients already logged for the run
            mark_task_failed(task_id, f"Task timeout after {elapsed:.0f} seconds", retry=True)
            cleaned += 1

    return cleaned
