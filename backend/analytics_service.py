"""
Email engagement tracking and dashboard analytics.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from db_models import (
    Campaign, CampaignStatus, EngagementEventType, EngagementMetric, Subscriber
)
from segmentation import track_subscriber_activity

logger = logging.getLogger(__name__)

RECENT_ACTIVITY_LIMIT = 3


# ============== ENGAGEMENT EVENTS ==============

def _record_engagement(
    db: Session,
    subscriber_id: int,
    campaign_id: int,
    event_type: EngagementEventType,
    metadata: Optional[Dict[str, Any]] = None,
) -> Optional[EngagementMetric]:
    subscriber = db.query(Subscriber).filter(Subscriber.id == subscriber_id).first()
    campaign = db.query(Campaign).filter(Campaign.id == campaign_id).first()
    if not subscriber or not campaign:
        logger.warning(
            f"Ignoring {event_type.value} for subscriber {subscriber_id} / campaign {campaign_id}"
        )
        return None

    metric = EngagementMetric(
        subscriber_id=subscriber_id,
        campaign_id=campaign_id,
        event_type=event_type,
        event_metadata=metadata,
    )
    db.add(metric)
    db.commit()
    db.refresh(metric)

    action = "open" if event_type == EngagementEventType.EMAIL_OPEN else "click"
    track_subscriber_activity(
        db,
        subscriber_id,
        email_interaction={"email_id": str(campaign_id), "action": action},
    )
    return metric


def track_email_open(db: Session, subscriber_id: int, campaign_id: int) -> Optional[EngagementMetric]:
    """Record that a subscriber opened a campaign email."""
    return _record_engagement(db, subscriber_id, campaign_id, EngagementEventType.EMAIL_OPEN)


def track_link_click(db: Session, subscriber_id: int, campaign_id: int, url: str) -> Optional[EngagementMetric]:
    """Record that a subscriber clicked a link in a campaign email."""
    return _record_engagement(
        db, subscriber_id, campaign_id, EngagementEventType.LINK_CLICK, metadata={"url": url}
    )


def update_subscriber_activity(db: Session, subscriber_id: int) -> bool:
    """Stamp last_active on a subscriber. Returns False if not found."""
    subscriber = db.query(Subscriber).filter(Subscriber.id == subscriber_id).first()
    if not subscriber:
        return False
    subscriber.last_active = datetime.utcnow()
    db.commit()
    return True


# ============== ANALYTICS ==============

def _distinct_engaged(db: Session, campaign_id: int, event_type: EngagementEventType) -> int:
    return db.query(func.count(func.distinct(EngagementMetric.subscriber_id))).filter(
        EngagementMetric.campaign_id == campaign_id,
        EngagementMetric.event_type == event_type,
    ).scalar() or 0


def _rate(count: int, total: int) -> float:
    return (count / total) * 100 if total else 0.0


def get_campaign_analytics(db: Session) -> Dict[str, Any]:
    """Per-campaign opens, clicks and rates for sent campaigns, with averages."""
    campaigns = db.query(Campaign).filter(
        Campaign.status == CampaignStatus.SENT
    ).order_by(Campaign.sent_at.desc()).all()

    stats = []
    for campaign in campaigns:
        total = len(campaign.recipients or [])
        opens = _distinct_engaged(db, campaign.id, EngagementEventType.EMAIL_OPEN)
        clicks = _distinct_engaged(db, campaign.id, EngagementEventType.LINK_CLICK)
        stats.append({
            "campaign_id": campaign.id,
            "campaign_name": campaign.name,
            "total_recipients": total,
            "opens": opens,
            "clicks": clicks,
            "open_rate": _rate(opens, total),
            "click_rate": _rate(clicks, total),
            "sent_date": campaign.sent_at.isoformat() if campaign.sent_at else None,
        })

    count = len(stats)
    return {
        "campaigns": stats,
        "total_campaigns": count,
        "average_open_rate": sum(s["open_rate"] for s in stats) / count if count else 0.0,
        "average_click_rate": sum(s["click_rate"] for s in stats) / count if count else 0.0,
    }


def get_subscriber_growth(db: Session) -> List[Dict[str, Any]]:
    """New subscribers per month, oldest month first (e.g. 'Jan 2026')."""
    created = db.query(Subscriber.created_at).filter(
        Subscriber.created_at.isnot(None)
    ).order_by(Subscriber.created_at.asc()).all()

    growth: Dict[str, int] = {}
    for (created_at,) in created:
        key = created_at.strftime("%b %Y")
        growth[key] = growth.get(key, 0) + 1
    return [{"date": month, "count": count} for month, count in growth.items()]


def get_dashboard_stats(db: Session) -> Dict[str, Any]:
    """Headline numbers and recent activity for the dashboard."""
    total_subscribers = db.query(func.count(Subscriber.id)).scalar() or 0
    active_subscribers = db.query(func.count(Subscriber.id)).filter(
        Subscriber.subscribed == True
    ).scalar() or 0

    sent = db.query(Campaign).filter(Campaign.status == CampaignStatus.SENT).all()
    scheduled_count = db.query(func.count(Campaign.id)).filter(
        Campaign.status == CampaignStatus.SCHEDULED
    ).scalar() or 0

    total_recipients = sum(len(c.recipients or []) for c in sent)
    total_opens = sum(_distinct_engaged(db, c.id, EngagementEventType.EMAIL_OPEN) for c in sent)

    recent_campaigns = db.query(Campaign).order_by(
        Campaign.created_at.desc(), Campaign.id.desc()
    ).limit(RECENT_ACTIVITY_LIMIT).all()
    recent_subscribers = db.query(Subscriber).order_by(
        Subscriber.created_at.desc(), Subscriber.id.desc()
    ).limit(RECENT_ACTIVITY_LIMIT).all()

    activity = [
        {
            "id": c.id,
            "title": f'Campaign "{c.name}" {c.status.value}',
            "time": c.created_at,
            "type": "campaign",
        }
        for c in recent_campaigns
    ] + [
        {
            "id": s.id,
            "title": f"New subscriber: {s.email}",
            "time": s.created_at,
            "type": "subscriber",
        }
        for s in recent_subscribers
    ]
    activity.sort(key=lambda a: a["time"] or datetime.min, reverse=True)

    return {
        "total_subscribers": total_subscribers,
        "active_subscribers": active_subscribers,
        "total_campaigns": db.query(func.count(Campaign.id)).scalar() or 0,
        "campaigns_sent": len(sent),
        "scheduled_campaigns": scheduled_count,
        "average_open_rate": _rate(total_opens, total_recipients),
        "recent_activity": [
            {**a, "time": a["time"].isoformat() if a["time"] else None} for a in activity
        ],
    }
