"""Task queue and background worker tests"""
import asyncio
import json
import time
import pytest
from datetime import datetime, timezone, timedelta
from unittest.mock import patch, AsyncMock

from newsdesk.db.task_queue import (
    enqueue_task, dequeue_task, get_task_status, mark_task_processing,
    mark_task_completed, mark_task_failed, cleanup_stale_tasks, queue_length,
    retry_delay, get_retry_after, touch_task
)
from newsdesk.core.exceptions import DispatchAbortedError
from newsdesk.models.campaign_log import NewsletterCampaignLog
from newsdesk.services import dispatch_service
from newsdesk.services.campaign_service import create_campaign, schedule_campaign, send_campaign_now
from newsdesk.tasks import dispatch_worker
from newsdesk.tasks.scheduler import promote_due_campaigns


@pytest.mark.high
class TestTaskQueue:
    """Test Redis task queue operations"""

    def test_enqueue_records_pending_metadata(self, mock_redis):
        task_id = enqueue_task("dispatch_campaign", {"campaign_id": 1})

        meta = get_task_status(task_id)
        assert meta["status"] == "pending"
        assert meta["payload"] == {"campaign_id": 1}
        assert meta["retry_count"] == 0
        assert queue_length("dispatch_campaign") == 1

    @pytest.mark.asyncio
    async def test_dequeue_is_fifo(self, mock_redis):
        first = enqueue_task("dispatch_campaign", {"campaign_id": 1})
        second = enqueue_task("dispatch_campaign", {"campaign_id": 2})

        assert (await dequeue_task("dispatch_campaign", timeout=1))["task_id"] == first
        assert (await dequeue_task("dispatch_campaign", timeout=1))["task_id"] == second

    def test_completed_task_leaves_processing_set(self, mock_redis):
        task_id = enqueue_task("dispatch_campaign", {"campaign_id": 1})
        mark_task_processing(task_id)
        mark_task_completed(task_id, {"status": "sent"})

        meta = get_task_status(task_id)
        assert meta["status"] == "completed"
        assert task_id not in mock_redis.smembers("newsdesk:processing")

    def test_failed_task_is_retried_with_backoff(self, mock_redis):
        task_id = enqueue_task("dispatch_campaign", {"campaign_id": 1}, max_retries=2)
        mark_task_processing(task_id)

        new_task_id = mark_task_failed(task_id, "boom", retry=True)

        assert new_task_id is not None
        assert get_task_status(task_id)["status"] == "retrying"
        new_meta = get_task_status(new_task_id)
        assert new_meta["retry_count"] == 1
        assert new_meta["payload"] == {"campaign_id": 1}
        assert get_retry_after(new_task_id) > datetime.now(timezone.utc)

    def test_no_retry_when_disabled_or_exhausted(self, mock_redis):
        task_id = enqueue_task("dispatch_campaign", {"campaign_id": 1})
        assert mark_task_failed(task_id, "fatal", retry=False) is None
        assert get_task_status(task_id)["status"] == "failed"

        exhausted = enqueue_task("dispatch_campaign", {"campaign_id": 1}, retry_count=3, max_retries=3)
        assert mark_task_failed(exhausted, "boom") is None

    def test_retry_delay_is_capped(self):
        assert retry_delay(1) == 2
        assert retry_delay(3) == 8
        assert retry_delay(20) == 300

    def test_stale_tasks_are_requeued(self, mock_redis):
        task_id = enqueue_task("dispatch_campaign", {"campaign_id": 1})
        mock_redis.rpop("newsdesk:queue:dispatch_campaign")
        mark_task_processing(task_id)
        started = (datetime.now(timezone.utc) - timedelta(hours=2)).isoformat()
        mock_redis.hset(f"newsdesk:task:{task_id}", mapping={"started_at": started, "heartbeat_at": started})

        assert cleanup_stale_tasks(timeout_seconds=3600) == 1
        assert get_task_status(task_id)["status"] == "retrying"
        assert queue_length("dispatch_campaign") == 1

    def test_heartbeat_keeps_long_task_alive(self, mock_redis):
        task_id = enqueue_task("dispatch_campaign", {"campaign_id": 1})
        mock_redis.rpop("newsdesk:queue:dispatch_campaign")
        mark_task_processing(task_id)
        started = (datetime.now(timezone.utc) - timedelta(hours=2)).isoformat()
        mock_redis.hset(f"newsdesk:task:{task_id}", mapping={"started_at": started, "heartbeat_at": started})

        touch_task(task_id)

        assert cleanup_stale_tasks(timeout_seconds=3600) == 0
        assert get_task_status(task_id)["status"] == "processing"
        assert queue_length("dispatch_campaign") == 0


@pytest.mark.high
class TestDispatchWorker:
    """Test processing of a single dequeued dispatch task"""

    @pytest.mark.asyncio
    async def test_successful_task_is_completed(self, mock_redis, db_session):
        task_id = enqueue_task("dispatch_campaign", {"campaign_id": 7})
        task = {"task_id": task_id, "payload": {"campaign_id": 7}, "retry_count": 0}

        with patch.object(dispatch_worker, "SessionLocal", return_value=db_session):
            with patch.object(dispatch_worker, "dispatch_campaign", AsyncMock(return_value={"status": "sent"})) as mock_dispatch:
                await dispatch_worker.process_dispatch_task(task)

        mock_dispatch.assert_awaited_once()
        assert mock_dispatch.call_args.args == (7, db_session)
        mock_redis.hset(f"newsdesk:task:{task_id}", "heartbeat_at", "2000-01-01T00:00:00+00:00")
        mock_dispatch.call_args.kwargs["heartbeat"]()
        assert get_task_status(task_id)["heartbeat_at"] != "2000-01-01T00:00:00+00:00"
        assert get_task_status(task_id)["status"] == "completed"

    @pytest.mark.asyncio
    async def test_aborted_dispatch_is_not_retried(self, mock_redis, db_session):
        task_id = enqueue_task("dispatch_campaign", {"campaign_id": 7})
        task = {"task_id": task_id, "payload": {"campaign_id": 7}, "retry_count": 0}
        aborted = AsyncMock(side_effect=DispatchAbortedError(7, "template 3 not found"))

        with patch.object(dispatch_worker, "SessionLocal", return_value=db_session):
            with patch.object(dispatch_worker, "dispatch_campaign", aborted):
                await dispatch_worker.process_dispatch_task(task)

        assert get_task_status(task_id)["status"] == "failed"
        assert queue_length("dispatch_campaign") == 1  # only the original enqueue

    @pytest.mark.asyncio
    async def test_unexpected_error_is_retried(self, mock_redis, db_session):
        task_id = enqueue_task("dispatch_campaign", {"campaign_id": 7})
        mock_redis.rpop("newsdesk:queue:dispatch_campaign")
        task = {"task_id": task_id, "payload": {"campaign_id": 7}, "retry_count": 0}

        with patch.object(dispatch_worker, "SessionLocal", return_value=db_session):
            with patch.object(dispatch_worker, "dispatch_campaign", AsyncMock(side_effect=RuntimeError("db gone"))):
                await dispatch_worker.process_dispatch_task(task)

        assert get_task_status(task_id)["status"] == "retrying"
        assert queue_length("dispatch_campaign") == 1

    @pytest.mark.asyncio
    async def test_missing_campaign_id_fails_without_retry(self, mock_redis):
        task_id = enqueue_task("dispatch_campaign", {})
        await dispatch_worker.process_dispatch_task({"task_id": task_id, "payload": {}})
        assert get_task_status(task_id)["status"] == "failed"

    @pytest.mark.asyncio
    async def test_requeued_task_does_not_resend_live_campaign(self, mock_redis, db_session, seeded, make_subscriber):
        readers = [make_subscriber() for _ in range(4)]
        campaign = create_campaign({"subject": "Edisi", "template_id": seeded["template"].id}, db_session)
        send_campaign_now(campaign.id, db_session)
        sent = []

        def slow_send(to, subject, html):
            time.sleep(0.05)
            sent.append(to)
            return "email_test123"

        with patch.object(dispatch_worker, "SessionLocal", return_value=db_session), \
                patch.object(db_session, "close"), \
                patch.object(dispatch_worker, "_wait_for_retry_window", AsyncMock()), \
                patch.object(dispatch_service, "send_email", slow_send):
            task = await dequeue_task("dispatch_campaign", timeout=1)
            running = asyncio.create_task(dispatch_worker.process_dispatch_task(task))
            await asyncio.sleep(0.02)

            # A cleanup that misjudges the live task still redelivers it
            assert cleanup_stale_tasks(timeout_seconds=0) == 1
            redelivered = await dequeue_task("dispatch_campaign", timeout=1)
            await dispatch_worker.process_dispatch_task(redelivered)
            await running

        assert sorted(sent) == sorted(r.email for r in readers)
        assert db_session.query(NewsletterCampaignLog).filter_by(campaign_id=campaign.id).count() == 4
        assert json.loads(get_task_status(redelivered["task_id"])["result"])["status"] == "skipped"


@pytest.mark.medium
class TestScheduler:
    """Test promotion of due scheduled campaigns"""

    def test_due_campaign_is_started(self, db_session, seeded, mock_redis):
        campaign = create_campaign({"subject": "Later", "template_id": seeded["template"].id}, db_session)
        schedule_campaign(campaign.id, datetime.now(timezone.utc) - timedelta(minutes=5), db_session)

        assert promote_due_campaigns(db_session) == 1
        db_session.refresh(campaign)
        assert campaign.status == "sending"
        assert queue_length("dispatch_campaign") == 1

    def test_future_campaign_is_left_alone(self, db_session, seeded, mock_redis):
        campaign = create_campaign({"subject": "Later", "template_id": seeded["template"].id}, db_session)
        schedule_campaign(campaign.id, datetime.now(timezone.utc) + timedelta(days=1), db_session)

        assert promote_due_campaigns(db_session) == 0
        db_session.refresh(campaign)
        assert campaign.status == "scheduled"
