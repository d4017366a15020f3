"""
Campaign lifecycle: draft -> scheduled -> sent.

Status only ever moves forward. A campaign becomes sent only after the mail
API accepted every recipient; on any failure the status is left unchanged.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

import mail_service
from campaign_templates import get_template, template_content
from db_models import Campaign, CampaignStatus, CAMPAIGN_STATUS_ORDER, Subscriber
from mail_service import SendReport, add_tracking, blocks_to_html, parse_blocks
from models import CampaignCreate, CampaignFromTemplateRequest, CampaignUpdate

logger = logging.getLogger(__name__)


class CampaignStateError(ValueError):
    """Raised when an operation is not allowed in the campaign's current status."""


class UnknownTemplateError(LookupError):
    """Raised when a template id is not in the catalogue."""


def _advance(campaign: Campaign, new_status: CampaignStatus):
    """Move a campaign forward, refusing any backwards or sideways transition."""
    current = campaign.status or CampaignStatus.DRAFT
    if CAMPAIGN_STATUS_ORDER[new_status] <= CAMPAIGN_STATUS_ORDER[current]:
        raise CampaignStateError(
            f"Cannot move campaign from {current.value} to {new_status.value}"
        )
    campaign.status = new_status


def _clean_recipients(recipients: List[str]) -> List[str]:
    """Lowercase, strip and de-duplicate while keeping order."""
    seen = set()
    cleaned = []
    for email in recipients:
        email = (email or "").strip().lower()
        if email and email not in seen:
            seen.add(email)
            cleaned.append(email)
    return cleaned


# ============== CRUD ==============

def get_campaign(db: Session, campaign_id: int) -> Optional[Campaign]:
    """Get campaign by ID."""
    return db.query(Campaign).filter(Campaign.id == campaign_id).first()


def list_campaigns(db: Session, status: Optional[CampaignStatus] = None) -> List[Campaign]:
    """List campaigns, newest first."""
    query = db.query(Campaign)
    if status:
        query = query.filter(Campaign.status == status)
    return query.order_by(Campaign.created_at.desc(), Campaign.id.desc()).all()


def create_campaign(db: Session, data: CampaignCreate) -> Campaign:
    """Create a new draft campaign."""
    campaign = Campaign(
        name=data.name,
        subject=data.subject,
        content=data.content or "[]",
        recipients=_clean_recipients(data.recipients),
        status=CampaignStatus.DRAFT,
    )
    db.add(campaign)
    db.commit()
    db.refresh(campaign)
    logger.info(f"Created campaign {campaign.id} '{campaign.name}'")
    return campaign


def create_campaign_from_template(db: Session, data: CampaignFromTemplateRequest) -> Campaign:
    """Create a draft seeded with a template's blocks."""
    template = get_template(data.template_id)
    if template is None:
        raise UnknownTemplateError(f"Unknown template {data.template_id}")

    return create_campaign(db, CampaignCreate(
        name=(data.name or "").strip() or template.name,
        subject=(data.subject or "").strip() or template.name,
        content=template_content(template),
        recipients=data.recipients,
    ))


def update_campaign(db: Session, campaign: Campaign, data: CampaignUpdate) -> Campaign:
    """Edit a campaign. Only drafts can be edited."""
    if campaign.status != CampaignStatus.DRAFT:
        raise CampaignStateError("Only draft campaigns can be edited")

    if data.name is not None:
        campaign.name = data.name.strip()
    if data.subject is not None:
        campaign.subject = data.subject.strip()
    if data.content is not None:
        campaign.content = data.content
    if data.recipients is not None:
        campaign.recipients = _clean_recipients(data.recipients)

    db.commit()
    db.refresh(campaign)
    return campaign


def delete_campaign(db: Session, campaign: Campaign):
    """Delete a campaign and its engagement metrics."""
    db.delete(campaign)
    db.commit()
    logger.info(f"Deleted campaign {campaign.id}")


def reuse_campaign(db: Session, campaign: Campaign) -> Campaign:
    """Copy a campaign into a new draft named '<name> (Copy)'."""
    duplicate = Campaign(
        name=f"{campaign.name} (Copy)",
        subject=campaign.subject,
        content=campaign.content,
        recipients=list(campaign.recipients or []),
        status=CampaignStatus.DRAFT,
    )
    db.add(duplicate)
    db.commit()
    db.refresh(duplicate)
    return duplicate


# ============== SCHEDULING AND SENDING ==============

def schedule_campaign(
    db: Session,
    campaign: Campaign,
    scheduled_for: datetime,
    now: Optional[datetime] = None,
) -> Campaign:
    """Schedule a draft for sending at a future time."""
    now = now or datetime.utcnow()
    # Stored as naive UTC
    if scheduled_for.tzinfo is not None:
        scheduled_for = scheduled_for.astimezone(timezone.utc).replace(tzinfo=None)
    if scheduled_for <= now:
        raise CampaignStateError("Scheduled time must be in the future")
    if not campaign.recipients:
        raise CampaignStateError("Campaign has no recipients")

    _advance(campaign, CampaignStatus.SCHEDULED)
    campaign.scheduled_for = scheduled_for
    db.commit()
    db.refresh(campaign)
    logger.info(f"Campaign {campaign.id} scheduled for {scheduled_for.isoformat()}")
    return campaign


def render_campaign_html(campaign: Campaign) -> str:
    """Flatten the campaign's stored blocks into HTML."""
    return blocks_to_html(parse_blocks(campaign.content))


async def send_campaign_now(
    db: Session,
    campaign: Campaign,
    now: Optional[datetime] = None,
) -> SendReport:
    """
    Send a draft or scheduled campaign to its recipients.

    Raises CampaignStateError if already sent and mail_service.MailServiceError
    if the send cannot be attempted. The status moves to sent only when every
    recipient succeeded.
    """
    if campaign.status == CampaignStatus.SENT:
        raise CampaignStateError("Campaign has already been sent")

    recipients = list(campaign.recipients or [])
    html_content = render_campaign_html(campaign)

    # Known subscribers get their own open pixel and click redirects
    subscriber_ids = dict(
        db.query(Subscriber.email, Subscriber.id).filter(Subscriber.email.in_(recipients)).all()
    ) if recipients else {}

    def personalize(email: str) -> str:
        if email not in subscriber_ids:
            return html_content
        return add_tracking(html_content, campaign.id, subscriber_ids[email])

    report = await mail_service.send_campaign(
        name=campaign.name,
        subject=campaign.subject,
        html_content=html_content,
        recipients=recipients,
        personalize=personalize,
    )

    now = now or datetime.utcnow()
    campaign.last_send_attempt_at = now
    if report.success:
        _advance(campaign, CampaignStatus.SENT)
        campaign.sent_at = now
    db.commit()
    db.refresh(campaign)
    return report


def get_due_campaigns(db: Session, now: Optional[datetime] = None) -> List[Campaign]:
    """Scheduled campaigns whose time has come and that were not yet attempted."""
    now = now or datetime.utcnow()
    return db.query(Campaign).filter(
        Campaign.status == CampaignStatus.SCHEDULED,
        Campaign.scheduled_for <= now,
        or_(
            Campaign.last_send_attempt_at.is_(None),
            Campaign.last_send_attempt_at < Campaign.scheduled_for,
        ),
    ).limit(10).all()  # Process 10 at a time


async def send_due_campaigns(db: Session, now: Optional[datetime] = None) -> List[Tuple[int, bool]]:
    """Send every due scheduled campaign once. Returns (campaign id, success) pairs."""
    now = now or datetime.utcnow()
    outcomes = []
    for campaign in get_due_campaigns(db, now):
        try:
            report = await send_campaign_now(db, campaign, now)
            outcomes.append((campaign.id, report.success))
        except mail_service.MailServiceError as e:
            logger.error(f"Scheduled campaign {campaign.id} could not be sent: {e}")
            campaign.last_send_attempt_at = now
            db.commit()
            outcomes.append((campaign.id, False))
    return outcomes


async def quick_send(subject: str, content: str, recipients: List[str]) -> SendReport:
    """Send an ad-hoc email to hand-picked subscribers."""
    return await mail_service.send_campaign(
        name=subject,
        subject=subject,
        html_content=f'<div style="font-family: Arial, sans-serif;">{content}</div>',
        recipients=_clean_recipients(recipients),
    )
