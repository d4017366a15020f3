"""
Event ingestion for the tracking client.

Events are appended as-is: no deduplication, rate limiting or batching.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from db_models import AnonymousEvent, Client, EventType, TrackingEvent
from models import ClientEventRequest
from segmentation import track_subscriber_activity
from subscriber_service import subscribe

logger = logging.getLogger(__name__)

# Envelope keys that get their own columns
RESERVED_KEYS = ("clientId", "anonymousId", "type")

PAGE_VIEW_TYPES = {EventType.PAGEVIEW.value, EventType.PAGE_VIEW.value}


class MissingFieldsError(ValueError):
    """Raised when an event has no identifier or no type."""


def get_client_ip(request: Optional[Request]) -> Optional[str]:
    """Client IP, preferring the first x-forwarded-for entry (handles proxies)."""
    if request is None:
        return None
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_user_agent(request: Optional[Request]) -> Optional[str]:
    if request is None:
        return None
    return request.headers.get("user-agent", "")[:500]


def _as_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def record_anonymous_event(
    db: Session,
    payload: Dict[str, Any],
    request: Optional[Request] = None,
) -> AnonymousEvent:
    """
    Append one event posted to the public ingestion endpoint.

    Raises MissingFieldsError if neither anonymousId nor clientId is present
    or the type is missing. Storage errors propagate to the caller.
    """
    anonymous_id = payload.get("anonymousId")
    client_id = payload.get("clientId")
    event_type = payload.get("type")

    if not (anonymous_id or client_id) or not event_type:
        raise MissingFieldsError("Missing required fields")

    event_data = {k: v for k, v in payload.items() if k not in RESERVED_KEYS}

    event = AnonymousEvent(
        anonymous_id=anonymous_id,
        client_id=client_id,
        event_type=str(event_type),
        page_url=event_data.get("url"),
        user_agent=get_user_agent(request),
        ip_address=get_client_ip(request),
        data=event_data,
    )
    db.add(event)
    db.commit()
    db.refresh(event)
    return event


def record_client_event(
    db: Session,
    client: Client,
    event: ClientEventRequest,
    request: Optional[Request] = None,
) -> TrackingEvent:
    """Append one event posted by an authenticated client."""
    row = TrackingEvent(
        client_id=client.client_id,
        subscriber_id=event.subscriber_id,
        event_type=event.event_type,
        page_url=event.page_url,
        user_agent=get_user_agent(request),
        ip_address=get_client_ip(request),
        data=event.data,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def apply_event_effects(
    db: Session,
    event_type: str,
    data: Dict[str, Any],
    anonymous_id: Optional[str] = None,
):
    """
    Fold an ingested event into subscriber state.

    A subscription event with an email subscribes it; events carrying a
    subscriberId update that subscriber's tracking data. Failures here are
    logged and never undo the stored event.
    """
    # Extension fields may arrive flat or under "data"
    nested = data.get("data")
    if isinstance(nested, dict):
        data = {**nested, **{k: v for k, v in data.items() if k != "data" and v is not None}}

    try:
        if event_type == EventType.SUBSCRIPTION.value and data.get("email"):
            subscriber, is_new = subscribe(
                db,
                email=data["email"],
                first_name=data.get("firstName"),
                source="tracker",
                anonymous_id=anonymous_id,
            )
            if is_new:
                logger.info(f"Tracker subscription for {subscriber.email}")
            return

        subscriber_id = _as_int(data.get("subscriberId"))
        if subscriber_id is None:
            return

        if event_type in PAGE_VIEW_TYPES:
            track_subscriber_activity(db, subscriber_id, page_view=data.get("path") or data.get("url"))
        elif event_type == EventType.CONTENT_INTERACTION.value and data.get("contentId"):
            track_subscriber_activity(db, subscriber_id, content_interaction=data["contentId"])
    except Exception as e:
        logger.error(f"Failed to apply {event_type} event to subscriber state: {e}")
        db.rollback()
