"""
Background scheduler using APScheduler.

Two jobs run on the same interval:
- Welcome email: sent welcome_email_delay_hours after subscription
- Scheduled campaigns: sent once their scheduled time has passed
"""
import asyncio
import logging
from datetime import datetime, timedelta
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from campaign_service import send_due_campaigns
from config import get_settings
from database import SessionLocal
from db_models import Subscriber
from email_service import send_welcome_email, is_email_enabled

logger = logging.getLogger(__name__)

# Scheduler instance
scheduler = BackgroundScheduler()


def get_db() -> Session:
    """Get a database session."""
    return SessionLocal()


def process_pending_welcome_emails():
    """
    Find subscribers who signed up more than welcome_email_delay_hours ago
    and haven't received their welcome email yet.
    """
    if not is_email_enabled():
        return

    db = get_db()
    try:
        delay = get_settings().welcome_email_delay_hours
        cutoff_time = datetime.utcnow() - timedelta(hours=delay)

        pending = db.query(Subscriber).filter(
            Subscriber.subscribed == True,
            Subscriber.welcome_email_sent == False,
            Subscriber.created_at <= cutoff_time,
        ).limit(10).all()  # Process 10 at a time to avoid overwhelming

        for subscriber in pending:
            logger.info(f"Sending welcome email to {subscriber.email}")

            success = send_welcome_email(
                first_name=subscriber.first_name,
                email=subscriber.email,
                unsubscribe_token=subscriber.unsubscribe_token,
            )

            if success:
                subscriber.welcome_email_sent = True
                subscriber.welcome_email_sent_at = datetime.utcnow()
                db.commit()
                logger.info(f"Welcome email sent to {subscriber.email}")
            else:
                logger.error(f"Failed to send welcome email to {subscriber.email}")

    except Exception as e:
        logger.error(f"Error processing welcome emails: {str(e)}")
        db.rollback()
    finally:
        db.close()


def process_scheduled_campaigns():
    """Send scheduled campaigns whose time has come. Each is attempted once."""
    db = get_db()
    try:
        outcomes = asyncio.run(send_due_campaigns(db))
        for campaign_id, success in outcomes:
            if success:
                logger.info(f"Scheduled campaign {campaign_id} sent")
            else:
                logger.error(f"Scheduled campaign {campaign_id} failed for some recipients")
    except Exception as e:
        logger.error(f"Error processing scheduled campaigns: {str(e)}")
        db.rollback()
    finally:
        db.close()


def process_all_pending():
    """Main job that runs every background task."""
    logger.debug("Checking for pending emails and due campaigns...")
    process_pending_welcome_emails()
    process_scheduled_campaigns()


def start_scheduler():
    """Start the background scheduler."""
    if scheduler.running:
        logger.info("Scheduler already running")
        return

    interval = get_settings().scheduler_interval_minutes
    scheduler.add_job(
        process_all_pending,
        trigger=IntervalTrigger(minutes=interval),
        id="process_pending",
        name="Send welcome emails and due campaigns",
        replace_existing=True,
    )

    scheduler.start()
    logger.info(f"Scheduler started - checking every {interval} minutes")


def stop_scheduler():
    """Stop the background scheduler."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
