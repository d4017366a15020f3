"""
Tests for email engagement tracking and dashboard analytics.
"""
from datetime import datetime

import pytest

from analytics_service import (
    get_campaign_analytics,
    get_dashboard_stats,
    get_subscriber_growth,
    track_email_open,
    track_link_click,
    update_subscriber_activity,
)
from db_models import Campaign, CampaignStatus, EngagementEventType, EngagementMetric, Subscriber


def sent_campaign(db, recipients, name="Launch", sent_at=None):
    campaign = Campaign(
        name=name,
        subject="News",
        status=CampaignStatus.SENT,
        recipients=list(recipients),
        sent_at=sent_at or datetime(2026, 5, 1, 9, 0),
    )
    db.add(campaign)
    db.commit()
    return campaign


def make_subscribers(db, count):
    subscribers = [Subscriber(email=f"reader{i}@example.com") for i in range(count)]
    db.add_all(subscribers)
    db.commit()
    return subscribers


class TestEngagementEvents:

    def test_open_records_metric_and_activity(self, db_session):
        subscriber, = make_subscribers(db_session, 1)
        campaign = sent_campaign(db_session, [subscriber.email])

        metric = track_email_open(db_session, subscriber.id, campaign.id)

        assert metric.event_type == EngagementEventType.EMAIL_OPEN
        db_session.refresh(subscriber)
        assert subscriber.tracking_data["email_interactions"][0]["email_id"] == str(campaign.id)
        assert subscriber.tracking_data["email_interactions"][0]["action"] == "open"
        assert subscriber.tracking_data["engagement_score"] == 3
        assert subscriber.last_active is not None

    def test_click_keeps_url(self, db_session):
        subscriber, = make_subscribers(db_session, 1)
        campaign = sent_campaign(db_session, [subscriber.email])

        metric = track_link_click(db_session, subscriber.id, campaign.id, "https://example.com/a")

        assert metric.event_type == EngagementEventType.LINK_CLICK
        assert metric.event_metadata == {"url": "https://example.com/a"}

    def test_unknown_subscriber_or_campaign_ignored(self, db_session):
        subscriber, = make_subscribers(db_session, 1)
        campaign = sent_campaign(db_session, [subscriber.email])

        assert track_email_open(db_session, 999, campaign.id) is None
        assert track_email_open(db_session, subscriber.id, 999) is None
        assert db_session.query(EngagementMetric).count() == 0

    def test_update_subscriber_activity(self, db_session):
        subscriber, = make_subscribers(db_session, 1)
        assert update_subscriber_activity(db_session, subscriber.id) is True
        assert subscriber.last_active is not None
        assert update_subscriber_activity(db_session, 999) is False


class TestCampaignAnalytics:

    def test_rates_count_distinct_subscribers(self, db_session):
        subscribers = make_subscribers(db_session, 4)
        campaign = sent_campaign(db_session, [s.email for s in subscribers])

        # Two opens from the same subscriber count once
        track_email_open(db_session, subscribers[0].id, campaign.id)
        track_email_open(db_session, subscribers[0].id, campaign.id)
        track_email_open(db_session, subscribers[1].id, campaign.id)
        track_link_click(db_session, subscribers[1].id, campaign.id, "https://example.com")

        result = get_campaign_analytics(db_session)

        assert result["total_campaigns"] == 1
        stats = result["campaigns"][0]
        assert stats["opens"] == 2
        assert stats["clicks"] == 1
        assert stats["open_rate"] == 50.0
        assert stats["click_rate"] == 25.0
        assert stats["sent_date"] == "2026-05-01T09:00:00"
        assert result["average_open_rate"] == 50.0

    def test_drafts_excluded_and_empty_recipients_zero(self, db_session):
        db_session.add(Campaign(name="Draft", subject="S", recipients=["a@example.com"]))
        db_session.commit()
        sent_campaign(db_session, [], name="Nobody")

        result = get_campaign_analytics(db_session)

        assert [c["campaign_name"] for c in result["campaigns"]] == ["Nobody"]
        assert result["campaigns"][0]["open_rate"] == 0.0

    def test_no_campaigns(self, db_session):
        assert get_campaign_analytics(db_session) == {
            "campaigns": [],
            "total_campaigns": 0,
            "average_open_rate": 0.0,
            "average_click_rate": 0.0,
        }


class TestGrowthAndDashboard:

    def test_growth_by_month(self, db_session):
        db_session.add_all([
            Subscriber(email="a@example.com", created_at=datetime(2026, 1, 5)),
            Subscriber(email="b@example.com", created_at=datetime(2026, 1, 20)),
            Subscriber(email="c@example.com", created_at=datetime(2026, 3, 2)),
        ])
        db_session.commit()

        assert get_subscriber_growth(db_session) == [
            {"date": "Jan 2026", "count": 2},
            {"date": "Mar 2026", "count": 1},
        ]

    def test_dashboard_counts(self, db_session):
        db_session.add_all([
            Subscriber(email="a@example.com", created_at=datetime(2026, 1, 5)),
            Subscriber(email="b@example.com", subscribed=False, created_at=datetime(2026, 1, 6)),
            Campaign(name="Later", subject="S", status=CampaignStatus.SCHEDULED, created_at=datetime(2026, 1, 7)),
        ])
        db_session.commit()
        a = db_session.query(Subscriber).filter(Subscriber.email == "a@example.com").one()
        campaign = sent_campaign(db_session, ["a@example.com", "b@example.com"])
        campaign.created_at = datetime(2026, 1, 1)
        db_session.commit()
        track_email_open(db_session, a.id, campaign.id)

        stats = get_dashboard_stats(db_session)

        assert stats["total_subscribers"] == 2
        assert stats["active_subscribers"] == 1
        assert stats["total_campaigns"] == 2
        assert stats["campaigns_sent"] == 1
        assert stats["scheduled_campaigns"] == 1
        assert stats["average_open_rate"] == 50.0

        activity = stats["recent_activity"]
        assert len(activity) == 4
        assert activity[0]["title"] == 'Campaign "Later" scheduled'
        assert activity[1]["title"] == "New subscriber: b@example.com"
        assert activity[-1]["type"] == "campaign"


class TestEngagementEndpoints:

    @pytest.mark.asyncio
    async def test_open_pixel(self, client, db_session):
        subscriber, = make_subscribers(db_session, 1)
        campaign = sent_campaign(db_session, [subscriber.email])

        response = await client.get(f"/api/email/open/{campaign.id}/{subscriber.id}")

        assert response.status_code == 200
        assert response.headers["content-type"] == "image/gif"
        assert response.content.startswith(b"GIF89a")
        assert db_session.query(EngagementMetric).count() == 1

    @pytest.mark.asyncio
    async def test_open_pixel_for_unknown_ids_still_served(self, client):
        response = await client.get("/api/email/open/1/1")
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_click_redirects(self, client, db_session):
        subscriber, = make_subscribers(db_session, 1)
        campaign = sent_campaign(db_session, [subscriber.email])

        response = await client.get(
            f"/api/email/click/{campaign.id}/{subscriber.id}",
            params={"url": "https://example.com/post"},
        )

        assert response.status_code == 302
        assert response.headers["location"] == "https://example.com/post"

    @pytest.mark.asyncio
    async def test_click_rejects_non_http_url(self, client):
        response = await client.get("/api/email/click/1/1", params={"url": "javascript:alert(1)"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_analytics_endpoints_require_admin(self, client, admin_headers):
        for path in ("/api/analytics/dashboard", "/api/analytics/campaigns", "/api/analytics/growth"):
            assert (await client.get(path)).status_code == 403
            assert (await client.get(path, headers=admin_headers)).status_code == 200
