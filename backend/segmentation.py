"""
Subscriber segmentation, engagement scoring and interest inference.

A single filtering engine is used for every criteria category: within one
criteria field the allowed values are OR-ed, across fields and categories
everything present is AND-ed, and empty or missing fields impose nothing.
"""
import copy
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

from sqlalchemy.orm import Session

from db_models import Subscriber
from models import SegmentCriteria

logger = logging.getLogger(__name__)

# Engagement score weights
PAGE_VIEW_WEIGHT = 1
CONTENT_INTERACTION_WEIGHT = 2
EMAIL_INTERACTION_WEIGHT = 3

# Interest inference weights
PAGE_VIEW_TOPIC_WEIGHT = 1
CONTENT_TOPIC_WEIGHT = 2
MAX_INTERESTS = 5

# Minimum engagement score per engagement level
ENGAGEMENT_THRESHOLDS = {
    "high": 50,
    "medium": 20,
    "low": 0,
}

DEFAULT_TOPIC = "general"

# category -> (subscriber attribute bag, {criteria field: key in the bag})
LIST_CRITERIA = {
    "demographic": ("demographic", {
        "age_groups": "age_group",
        "gender": "gender",
        "income_range": "income_range",
        "education_level": "education_level",
        "occupation": "occupation",
        "marital_status": "marital_status",
    }),
    "geographic": ("location", {
        "country": "country",
        "city": "city",
        "region": "region",
        "timezone": "timezone",
        "language": "language",
    }),
    "psychographic": ("psychographic", {
        "lifestyle": "lifestyle",
        "values": "values",
        "personality_traits": "personality_traits",
        "social_class": "social_class",
    }),
    "behavioral": ("behavioral", {
        "usage_rate": "usage_rate",
        "brand_loyalty": "brand_loyalty",
        "benefits_sought": "benefits_sought",
        "readiness_stage": "readiness_stage",
        "occasions": "occasions",
    }),
    "lifecycle": ("lifecycle", {
        "stage": "stage",
        "customer_status": "customer_status",
        "acquisition_source": "acquisition_source",
        "membership_duration": "membership_duration",
    }),
    "purchase_history": ("purchase_history", {
        "frequency": "frequency",
        "product_categories": "product_categories",
        "total_spent_range": "total_spent_range",
    }),
}


# =============================================================================
# Tracking data helpers
# =============================================================================

def empty_tracking_data() -> Dict[str, Any]:
    """Tracking data for a subscriber with no recorded activity."""
    return {
        "page_views": [],
        "content_interactions": [],
        "email_interactions": [],
        "interests": [],
        "engagement_score": 0,
    }


def calculate_engagement_score(tracking_data: Dict[str, Any]) -> int:
    """page views x1 + content interactions x2 + email interactions x3."""
    return (
        len(tracking_data.get("page_views") or []) * PAGE_VIEW_WEIGHT
        + len(tracking_data.get("content_interactions") or []) * CONTENT_INTERACTION_WEIGHT
        + len(tracking_data.get("email_interactions") or []) * EMAIL_INTERACTION_WEIGHT
    )


def extract_topic_from_path(path: str) -> str:
    """
    Extract a topic from the last segment of a URL path.

    Example: /blog/health-tips -> 'health'
    """
    if not path:
        return DEFAULT_TOPIC
    segments = [s for s in urlparse(path).path.split("/") if s]
    if not segments:
        return DEFAULT_TOPIC
    return segments[-1].split("-")[0] or DEFAULT_TOPIC


def extract_topic_from_content(content_id: str) -> str:
    """Extract a topic from a content identifier like 'fitness-1'."""
    if not content_id:
        return DEFAULT_TOPIC
    return content_id.split("-")[0] or DEFAULT_TOPIC


def infer_interests(tracking_data: Dict[str, Any], limit: int = MAX_INTERESTS) -> List[str]:
    """
    Return the top topics by weighted tally.

    Ties keep the order in which topics were first seen.
    """
    counts: Dict[str, int] = {}

    for view in tracking_data.get("page_views") or []:
        topic = extract_topic_from_path(view.get("path", ""))
        counts[topic] = counts.get(topic, 0) + PAGE_VIEW_TOPIC_WEIGHT

    for interaction in tracking_data.get("content_interactions") or []:
        topic = extract_topic_from_content(interaction.get("content", ""))
        counts[topic] = counts.get(topic, 0) + CONTENT_TOPIC_WEIGHT

    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [topic for topic, _ in ranked[:limit]]


def get_min_engagement_score(levels: Iterable[str]) -> int:
    """Lowest threshold among the requested engagement levels."""
    thresholds = [ENGAGEMENT_THRESHOLDS.get(level, 0) for level in levels]
    return min(thresholds) if thresholds else 0


# =============================================================================
# Matching engine
# =============================================================================

def _utc_naive(value) -> Optional[datetime]:
    """Normalize datetimes and ISO strings to naive UTC for comparisons."""
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _value_allowed(value: Any, allowed: List[Any]) -> bool:
    """Scalar attribute must be in the list; list attribute must overlap it."""
    if value is None:
        return False
    if isinstance(value, (list, tuple, set)):
        return any(item in allowed for item in value)
    return value in allowed


def _number(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _match_list_criteria(subscriber: Subscriber, criteria: SegmentCriteria) -> bool:
    for category, (bag_name, fields) in LIST_CRITERIA.items():
        category_criteria = getattr(criteria, category)
        if category_criteria is None:
            continue
        bag = getattr(subscriber, bag_name) or {}
        for field, key in fields.items():
            allowed = getattr(category_criteria, field, None)
            if allowed and not _value_allowed(bag.get(key), allowed):
                return False
    return True


def _match_interests(subscriber: Subscriber, criteria: SegmentCriteria) -> bool:
    wanted: List[str] = []
    if criteria.psychographic and criteria.psychographic.interests:
        wanted.extend(criteria.psychographic.interests)
    if criteria.behavioral and criteria.behavioral.interests:
        wanted.extend(criteria.behavioral.interests)
    if not wanted:
        return True

    inferred = list((subscriber.tracking_data or {}).get("interests") or [])
    declared = (subscriber.psychographic or {}).get("interests") or []
    if isinstance(declared, str):
        declared = [declared]
    return _value_allowed(inferred + list(declared), wanted)


def _match_purchase_history(subscriber: Subscriber, criteria: SegmentCriteria, now: datetime) -> bool:
    history_criteria = criteria.purchase_history
    if history_criteria is None:
        return True
    history = subscriber.purchase_history or {}

    if history_criteria.recency is not None:
        last_purchase = _utc_naive(history.get("last_purchase_at"))
        if last_purchase is None or last_purchase < now - timedelta(days=history_criteria.recency):
            return False

    if history_criteria.average_order_value:
        bounds = history_criteria.average_order_value
        value = _number(history.get("average_order_value"))
        if value is None or value < bounds[0]:
            return False
        if len(bounds) > 1 and value > bounds[1]:
            return False

    return True


def _match_email_engagement(subscriber: Subscriber, criteria: SegmentCriteria, now: datetime) -> bool:
    engagement_criteria = criteria.email_engagement
    if engagement_criteria is None:
        return True
    engagement = subscriber.email_engagement or {}

    if engagement_criteria.open_rate is not None:
        open_rate = _number(engagement.get("open_rate"))
        if open_rate is None or open_rate < engagement_criteria.open_rate:
            return False

    if engagement_criteria.click_rate is not None:
        click_rate = _number(engagement.get("click_rate"))
        if click_rate is None or click_rate < engagement_criteria.click_rate:
            return False

    if engagement_criteria.last_opened is not None:
        last_active = _utc_naive(subscriber.last_active)
        if last_active is None or last_active < now - timedelta(days=engagement_criteria.last_opened):
            return False

    if engagement_criteria.subscription_duration is not None:
        created_at = _utc_naive(subscriber.created_at)
        if created_at is None or created_at > now - timedelta(days=engagement_criteria.subscription_duration):
            return False

    if engagement_criteria.engagement_level:
        score = (subscriber.tracking_data or {}).get("engagement_score") or 0
        if score < get_min_engagement_score(engagement_criteria.engagement_level):
            return False

    return True


def subscriber_matches(
    subscriber: Subscriber,
    criteria: SegmentCriteria,
    now: Optional[datetime] = None,
) -> bool:
    """Check whether a subscriber satisfies every present criteria field."""
    now = _utc_naive(now) or datetime.utcnow()
    return (
        _match_list_criteria(subscriber, criteria)
        and _match_interests(subscriber, criteria)
        and _match_purchase_history(subscriber, criteria, now)
        and _match_email_engagement(subscriber, criteria, now)
    )


def filter_subscribers(
    subscribers: Iterable[Subscriber],
    criteria: SegmentCriteria,
    now: Optional[datetime] = None,
) -> List[Subscriber]:
    """Return the subscribers matching the criteria, preserving order."""
    return [s for s in subscribers if subscriber_matches(s, criteria, now)]


def calculate_segment_size(
    subscribers: Iterable[Subscriber],
    criteria: SegmentCriteria,
    now: Optional[datetime] = None,
) -> int:
    """Count the subscribers matching the criteria."""
    return len(filter_subscribers(subscribers, criteria, now))


def get_segmented_subscribers(
    db: Session,
    criteria: SegmentCriteria,
    now: Optional[datetime] = None,
) -> List[Subscriber]:
    """Load subscribed subscribers and apply the segmentation engine."""
    subscribers = db.query(Subscriber).filter(
        Subscriber.subscribed == True
    ).order_by(Subscriber.created_at.desc(), Subscriber.id.desc()).all()

    return filter_subscribers(subscribers, criteria, now)


# =============================================================================
# Activity tracking
# =============================================================================

def apply_activity(
    tracking_data: Optional[Dict[str, Any]],
    page_view: Optional[str] = None,
    content_interaction: Optional[str] = None,
    email_interaction: Optional[Dict[str, str]] = None,
    timestamp: Optional[str] = None,
) -> Dict[str, Any]:
    """Return a new tracking data dict with the activity appended and rescored."""
    data = copy.deepcopy(tracking_data) if tracking_data else empty_tracking_data()
    for key, default in empty_tracking_data().items():
        data.setdefault(key, default)

    timestamp = timestamp or datetime.utcnow().isoformat()

    if page_view:
        data["page_views"].append({"path": page_view, "timestamp": timestamp})

    if content_interaction:
        data["content_interactions"].append({"content": content_interaction, "timestamp": timestamp})

    if email_interaction:
        data["email_interactions"].append({**email_interaction, "timestamp": timestamp})

    data["engagement_score"] = calculate_engagement_score(data)
    data["interests"] = infer_interests(data)
    return data


def track_subscriber_activity(
    db: Session,
    subscriber_id: int,
    page_view: Optional[str] = None,
    content_interaction: Optional[str] = None,
    email_interaction: Optional[Dict[str, str]] = None,
) -> Optional[Subscriber]:
    """
    Record a page view, content interaction or email interaction.

    Recomputes the engagement score and inferred interests and stamps
    last_active. Returns None if the subscriber does not exist.
    """
    subscriber = db.query(Subscriber).filter(Subscriber.id == subscriber_id).first()
    if not subscriber:
        logger.warning(f"Activity for unknown subscriber {subscriber_id} ignored")
        return None

    now = datetime.utcnow()
    subscriber.tracking_data = apply_activity(
        subscriber.tracking_data,
        page_view=page_view,
        content_interaction=content_interaction,
        email_interaction=email_interaction,
        timestamp=now.isoformat(),
    )
    subscriber.last_active = now
    db.commit()
    db.refresh(subscriber)

    logger.debug(
        f"Tracked activity for subscriber {subscriber_id}: "
        f"score={subscriber.tracking_data['engagement_score']}"
    )
    return subscriber
