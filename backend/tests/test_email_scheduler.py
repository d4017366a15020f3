"""
Tests for the background jobs and the welcome email.
"""
from datetime import datetime, timedelta
from urllib.parse import urlparse
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.orm import Session

import email_scheduler
import email_service
from db_models import Subscriber
from subscriber_service import subscribe


@pytest.fixture
def scheduler_db(db_session):
    """Hand the jobs a session on the test database."""
    with patch("email_scheduler.get_db", side_effect=lambda: Session(bind=db_session.get_bind())):
        yield db_session


def add_subscriber(db, email, hours_ago, **kwargs):
    subscriber = Subscriber(
        email=email,
        first_name="Ann",
        unsubscribe_token=f"token-{email}",
        created_at=datetime.utcnow() - timedelta(hours=hours_ago),
        **kwargs,
    )
    db.add(subscriber)
    db.commit()
    return subscriber


class TestWelcomeEmails:

    def test_sends_after_delay(self, scheduler_db):
        due = add_subscriber(scheduler_db, "due@example.com", hours_ago=2)
        fresh = add_subscriber(scheduler_db, "fresh@example.com", hours_ago=0)

        with patch("email_scheduler.is_email_enabled", return_value=True), \
             patch("email_scheduler.send_welcome_email", return_value=True) as mock_send:
            email_scheduler.process_pending_welcome_emails()

        mock_send.assert_called_once_with(
            first_name="Ann", email="due@example.com", unsubscribe_token="token-due@example.com",
        )
        scheduler_db.refresh(due)
        scheduler_db.refresh(fresh)
        assert due.welcome_email_sent is True
        assert due.welcome_email_sent_at is not None
        assert fresh.welcome_email_sent is False

    def test_skips_unsubscribed_and_already_welcomed(self, scheduler_db):
        add_subscriber(scheduler_db, "gone@example.com", hours_ago=2, subscribed=False)
        add_subscriber(scheduler_db, "done@example.com", hours_ago=2, welcome_email_sent=True)

        with patch("email_scheduler.is_email_enabled", return_value=True), \
             patch("email_scheduler.send_welcome_email", return_value=True) as mock_send:
            email_scheduler.process_pending_welcome_emails()

        mock_send.assert_not_called()

    def test_failed_send_is_retried_later(self, scheduler_db):
        subscriber = add_subscriber(scheduler_db, "due@example.com", hours_ago=2)

        with patch("email_scheduler.is_email_enabled", return_value=True), \
             patch("email_scheduler.send_welcome_email", return_value=False):
            email_scheduler.process_pending_welcome_emails()

        scheduler_db.refresh(subscriber)
        assert subscriber.welcome_email_sent is False

    def test_disabled_email_does_nothing(self, scheduler_db):
        add_subscriber(scheduler_db, "due@example.com", hours_ago=2)

        with patch("email_scheduler.is_email_enabled", return_value=False), \
             patch("email_scheduler.send_welcome_email") as mock_send:
            email_scheduler.process_pending_welcome_emails()

        mock_send.assert_not_called()


class TestScheduledCampaignJob:

    def test_runs_due_campaigns(self, scheduler_db):
        with patch("email_scheduler.send_due_campaigns", new=AsyncMock(return_value=[(1, True), (2, False)])) as mock_due:
            email_scheduler.process_scheduled_campaigns()

        mock_due.assert_awaited_once()

    def test_errors_are_logged_not_raised(self, scheduler_db):
        with patch("email_scheduler.send_due_campaigns", new=AsyncMock(side_effect=RuntimeError("boom"))):
            email_scheduler.process_scheduled_campaigns()

    def test_process_all_pending_runs_both_jobs(self):
        with patch("email_scheduler.process_pending_welcome_emails") as welcome, \
             patch("email_scheduler.process_scheduled_campaigns") as campaigns:
            email_scheduler.process_all_pending()

        welcome.assert_called_once()
        campaigns.assert_called_once()


class TestSchedulerLifecycle:

    def test_start_registers_single_job(self):
        fake = MagicMock()
        fake.running = False
        with patch("email_scheduler.scheduler", fake):
            email_scheduler.start_scheduler()

        fake.add_job.assert_called_once()
        assert fake.add_job.call_args.kwargs["id"] == "process_pending"
        fake.start.assert_called_once()

    def test_start_is_idempotent(self):
        fake = MagicMock()
        fake.running = True
        with patch("email_scheduler.scheduler", fake):
            email_scheduler.start_scheduler()

        fake.add_job.assert_not_called()

    def test_stop(self):
        fake = MagicMock()
        fake.running = True
        with patch("email_scheduler.scheduler", fake):
            email_scheduler.stop_scheduler()

        fake.shutdown.assert_called_once()


class TestWelcomeEmail:

    def test_not_sent_without_api_key(self):
        with patch.object(email_service, "SENDGRID_API_KEY", None):
            assert email_service.send_email("a@example.com", "Hi", "<p>Hi</p>") is False

    def test_sent_through_sendgrid(self):
        response = MagicMock(status_code=202)
        with patch.object(email_service, "SENDGRID_API_KEY", "SG.test"), \
             patch("email_service.SendGridAPIClient") as mock_client:
            mock_client.return_value.send.return_value = response
            assert email_service.send_email("a@example.com", "Hi", "<p>Hi</p>") is True

        mock_client.assert_called_once_with("SG.test")

    def test_sendgrid_failure_returns_false(self):
        with patch.object(email_service, "SENDGRID_API_KEY", "SG.test"), \
             patch("email_service.SendGridAPIClient") as mock_client:
            mock_client.return_value.send.side_effect = Exception("unauthorized")
            assert email_service.send_email("a@example.com", "Hi", "<p>Hi</p>") is False

    def test_welcome_email_has_unsubscribe_link(self):
        with patch("email_service.send_email", return_value=True) as mock_send:
            assert email_service.send_welcome_email("Ann", "ann@example.com", unsubscribe_token="abc") is True

        to_email, subject, html = mock_send.call_args.args
        assert to_email == "ann@example.com"
        assert "Ann" in subject
        assert f'href="{email_service.unsubscribe_url("abc")}"' in html
        assert email_service.unsubscribe_url("abc").endswith("/api/unsubscribe/abc")
        assert "Hi Ann" in html

    @pytest.mark.asyncio
    async def test_unsubscribe_link_is_served(self, client, db_session):
        subscriber, _ = subscribe(db_session, "reader@example.com")

        link = urlparse(email_service.unsubscribe_url(subscriber.unsubscribe_token))
        response = await client.get(link.path)

        assert response.status_code == 200
        assert "Yes, unsubscribe me" in response.text

    def test_welcome_email_without_name(self):
        with patch("email_service.send_email", return_value=True) as mock_send:
            email_service.send_welcome_email(None, "ann@example.com")

        _, subject, html = mock_send.call_args.args
        assert "Hi there" in html
        assert "/unsubscribe/" not in html
