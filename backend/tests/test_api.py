"""API endpoint tests"""
import pytest
from unittest.mock import patch

from newsdesk.db.task_queue import get_task_status
from newsdesk.models.campaign import NewsletterCampaign
from newsdesk.models.subscriber import NewsletterSubscriber


@pytest.mark.critical
class TestPublicNewsletterAPI:
    """Test public subscribe/verify/preferences/unsubscribe endpoints"""

    def test_subscribe_then_verify(self, client, db_session, seeded, mock_email_service):
        response = client.post("/api/newsletter/subscribe", json={
            "email": "delivered+api@resend.dev", "name": "Budi"
        })
        assert response.status_code == 200
        assert response.json()["already_subscribed"] is False

        subscriber = db_session.query(NewsletterSubscriber).filter_by(email="delivered+api@resend.dev").one()
        response = client.get("/api/newsletter/verify", params={"token": subscriber.token})
        assert response.status_code == 200
        assert response.json()["email"] == "delivered+api@resend.dev"

        db_session.refresh(subscriber)
        assert subscriber.verified_at is not None

    def test_subscribe_rejects_invalid_email(self, client):
        response = client.post("/api/newsletter/subscribe", json={"email": "not-an-email"})
        assert response.status_code == 422

    def test_subscribe_unknown_topic_is_422(self, client, seeded):
        response = client.post("/api/newsletter/subscribe", json={
            "email": "delivered+topic@resend.dev", "topic_ids": [999]
        })
        assert response.status_code == 422
        assert "Unknown topic ids" in response.json()["error"]

    def test_verify_invalid_token_is_404(self, client):
        response = client.get("/api/newsletter/verify", params={"token": "invalid"})
        assert response.status_code == 404
        assert response.json() == {"error": "Invalid or expired token"}

    def test_preferences_roundtrip(self, client, seeded, make_subscriber):
        subscriber = make_subscriber(topics=[seeded["blog"]])

        response = client.get("/api/newsletter/preferences", params={"token": subscriber.token})
        assert response.status_code == 200
        body = response.json()
        assert [t["slug"] for t in body["subscriber"]["topics"]] == ["blog"]
        assert {t["slug"] for t in body["topics"]} == {"blog", "news"}

        response = client.post("/api/newsletter/preferences", json={
            "token": subscriber.token, "topic_ids": [seeded["news"].id]
        })
        assert response.status_code == 200
        assert [t["slug"] for t in response.json()["subscriber"]["topics"]] == ["news"]

    def test_unsubscribe(self, client, db_session, make_subscriber):
        subscriber = make_subscriber()
        response = client.post("/api/newsletter/unsubscribe", json={
            "email": subscriber.email, "reason": "Terlalu sering"
        })
        assert response.status_code == 200
        db_session.refresh(subscriber)
        assert subscriber.subscribed is False
        assert subscriber.unsubscribe_reason == "Terlalu sering"

    def test_unsubscribe_unknown_email_is_422(self, client):
        response = client.post("/api/newsletter/unsubscribe", json={"email": "delivered+ghost@resend.dev"})
        assert response.status_code == 422

    def test_public_topics(self, client, seeded):
        response = client.get("/api/newsletter/topics")
        assert response.status_code == 200
        assert len(response.json()["topics"]) == 2

    def test_subscribe_rate_limited(self, client):
        with patch("newsdesk.db.redis.RATE_LIMIT_REQUESTS", 1):
            first = client.post("/api/newsletter/subscribe", json={"email": "delivered+r1@resend.dev"})
            second = client.post("/api/newsletter/subscribe", json={"email": "delivered+r2@resend.dev"})
        assert first.status_code == 200
        assert second.status_code == 429


@pytest.mark.critical
class TestAdminAuth:
    """Test admin token enforcement"""

    def test_missing_token_is_401(self, client, admin_headers):
        assert client.get("/api/admin/newsletter/campaigns").status_code == 401

    def test_wrong_token_is_403(self, client, admin_headers):
        response = client.get("/api/admin/newsletter/campaigns", headers={"X-Admin-Token": "wrong"})
        assert response.status_code == 403

    def test_unconfigured_token_is_503(self, client):
        response = client.get("/api/admin/newsletter/campaigns", headers={"X-Admin-Token": "anything"})
        assert response.status_code == 503


@pytest.mark.high
class TestAdminCampaignAPI:
    """Test admin campaign endpoints"""

    def _create(self, client, admin_headers, seeded, **fields):
        response = client.post("/api/admin/newsletter/campaigns", headers=admin_headers, json={
            "subject": "Edisi Mingguan", "template_id": seeded["template"].id, **fields
        })
        assert response.status_code == 201
        return response.json()["campaign"]

    def test_create_and_get_campaign(self, client, admin_headers, seeded, make_subscriber):
        make_subscriber(topics=[seeded["blog"]])
        campaign = self._create(client, admin_headers, seeded, topic_id=seeded["blog"].id)
        assert campaign["status"] == "draft"

        response = client.get(f"/api/admin/newsletter/campaigns/{campaign['id']}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["audience_size"] == 1

    def test_send_returns_202_and_enqueues(self, client, admin_headers, seeded):
        campaign = self._create(client, admin_headers, seeded)

        response = client.post(f"/api/admin/newsletter/campaigns/{campaign['id']}/send", headers=admin_headers)
        assert response.status_code == 202
        body = response.json()
        assert body["campaign"]["status"] == "sending"
        assert get_task_status(body["task_id"])["payload"]["campaign_id"] == campaign["id"]

    def test_double_send_is_422(self, client, admin_headers, seeded):
        campaign = self._create(client, admin_headers, seeded)
        client.post(f"/api/admin/newsletter/campaigns/{campaign['id']}/send", headers=admin_headers)

        response = client.post(f"/api/admin/newsletter/campaigns/{campaign['id']}/send", headers=admin_headers)
        assert response.status_code == 422
        assert response.json()["error"] == "Campaign is already sent or being sent"

    def test_schedule_sent_campaign_is_422(self, client, admin_headers, seeded, db_session):
        campaign = self._create(client, admin_headers, seeded)
        db_session.query(NewsletterCampaign).filter_by(id=campaign["id"]).update({"status": "sent"})
        db_session.commit()

        response = client.post(
            f"/api/admin/newsletter/campaigns/{campaign['id']}/schedule",
            headers=admin_headers,
            json={"scheduled_at": "2030-01-01T08:00:00Z"}
        )
        assert response.status_code == 422

    def test_unknown_campaign_is_404(self, client, admin_headers):
        response = client.get("/api/admin/newsletter/campaigns/999", headers=admin_headers)
        assert response.status_code == 404

    def test_stats_and_logs(self, client, admin_headers, seeded):
        campaign = self._create(client, admin_headers, seeded)

        stats = client.get(f"/api/admin/newsletter/campaigns/{campaign['id']}/stats", headers=admin_headers)
        assert stats.json()["sent"] == 0
        logs = client.get(f"/api/admin/newsletter/campaigns/{campaign['id']}/logs", headers=admin_headers)
        assert logs.json() == {"logs": []}

    def test_subscribers_and_statistics(self, client, admin_headers, make_subscriber):
        make_subscriber()
        make_subscriber(verified=False)

        response = client.get("/api/admin/newsletter/subscribers", headers=admin_headers, params={"status": "active"})
        assert response.json()["total"] == 1
        response = client.get("/api/admin/newsletter/statistics", headers=admin_headers)
        assert response.json()["unverified"] == 1

    def test_create_topic_and_template(self, client, admin_headers):
        response = client.post("/api/admin/newsletter/topics", headers=admin_headers, json={
            "name": "Pengumuman", "slug": "pengumuman"
        })
        assert response.status_code == 201
        response = client.post("/api/admin/newsletter/templates", headers=admin_headers, json={
            "name": "Pengumuman", "content": "<p>{{name}}</p>"
        })
        assert response.status_code == 201
        assert response.json()["template"]["content"] == "<p>{{name}}</p>"


@pytest.mark.high
class TestAdminPostsAPI:
    """Test the publishing endpoints"""

    def test_publishing_post_creates_campaign(self, client, admin_headers, seeded, db_session):
        response = client.post("/api/admin/posts/blog", headers=admin_headers, json={"title": "Panduan Baru"})
        assert response.status_code == 201
        post = response.json()["post"]
        assert post["slug"] == "panduan-baru"
        assert db_session.query(NewsletterCampaign).count() == 0

        response = client.patch(
            f"/api/admin/posts/blog/{post['id']}/status", headers=admin_headers, json={"status": "published"}
        )
        assert response.status_code == 200
        campaign = db_session.query(NewsletterCampaign).one()
        assert campaign.subject == "Artikel Baru: Panduan Baru"
        assert campaign.status == "sending"

    def test_unknown_post_type_is_404(self, client, admin_headers):
        response = client.post("/api/admin/posts/events", headers=admin_headers, json={"title": "X"})
        assert response.status_code == 404


@pytest.mark.medium
class TestOperationalEndpoints:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "newsdesk_recipient_sends_total" in response.text
