"""
Subscriber CRUD, subscribe/unsubscribe and CSV import/export.
"""
import io
import logging
import secrets
from datetime import datetime
from typing import List, Optional, Tuple

import pandas as pd
from sqlalchemy.orm import Session

from db_models import EngagementMetric, Subscriber, TrackingEvent
from models import SubscriberCreate, SubscriberUpdate

logger = logging.getLogger(__name__)

EXPORT_HEADERS = ["Email", "First Name", "Subscribed", "Joined"]

ATTRIBUTE_BAGS = (
    "demographic",
    "location",
    "psychographic",
    "behavioral",
    "lifecycle",
    "purchase_history",
    "email_engagement",
)


class DuplicateSubscriberError(ValueError):
    """Raised when a subscriber with the same email already exists."""


def normalize_email(email: str) -> str:
    """Normalize an email for storage and comparison."""
    return email.strip().lower() if email else ""


# ============== SUBSCRIBER OPERATIONS ==============

def get_subscriber(db: Session, subscriber_id: int) -> Optional[Subscriber]:
    """Get subscriber by ID."""
    return db.query(Subscriber).filter(Subscriber.id == subscriber_id).first()


def get_subscriber_by_email(db: Session, email: str) -> Optional[Subscriber]:
    """Get subscriber by email address."""
    return db.query(Subscriber).filter(Subscriber.email == normalize_email(email)).first()


def list_subscribers(db: Session, subscribed: Optional[bool] = None) -> List[Subscriber]:
    """List subscribers newest first, optionally filtered by subscription state."""
    query = db.query(Subscriber)
    if subscribed is not None:
        query = query.filter(Subscriber.subscribed == subscribed)
    return query.order_by(Subscriber.created_at.desc(), Subscriber.id.desc()).all()


def create_subscriber(db: Session, data: SubscriberCreate) -> Subscriber:
    """Create a subscriber. Raises DuplicateSubscriberError for a known email."""
    if get_subscriber_by_email(db, data.email):
        raise DuplicateSubscriberError(f"Subscriber {data.email} already exists")

    subscriber = Subscriber(
        email=normalize_email(data.email),
        first_name=data.first_name.strip() if data.first_name else None,
        last_name=data.last_name.strip() if data.last_name else None,
        source=data.source,
        subscribed=True,
        unsubscribe_token=secrets.token_urlsafe(32),
    )
    for bag in ATTRIBUTE_BAGS:
        setattr(subscriber, bag, getattr(data, bag))

    db.add(subscriber)
    db.commit()
    db.refresh(subscriber)
    logger.info(f"Created subscriber {subscriber.email}")
    return subscriber


def update_subscriber(db: Session, subscriber: Subscriber, data: SubscriberUpdate) -> Subscriber:
    """Update names, subscription state and attribute bags (bags are merged)."""
    if data.first_name is not None:
        subscriber.first_name = data.first_name.strip() or None
    if data.last_name is not None:
        subscriber.last_name = data.last_name.strip() or None

    for bag in ATTRIBUTE_BAGS:
        update = getattr(data, bag)
        if update is not None:
            # Reassign so SQLAlchemy notices the JSON change
            setattr(subscriber, bag, {**(getattr(subscriber, bag) or {}), **update})

    if data.subscribed is not None:
        set_subscribed(subscriber, data.subscribed)

    db.commit()
    db.refresh(subscriber)
    return subscriber


def set_subscribed(subscriber: Subscriber, subscribed: bool):
    """Flip subscription state without committing."""
    if subscribed and not subscriber.subscribed:
        subscriber.subscribed = True
        subscriber.unsubscribed_at = None
        # New unsubscribe token for security
        subscriber.unsubscribe_token = secrets.token_urlsafe(32)
    elif not subscribed and subscriber.subscribed:
        subscriber.subscribed = False
        subscriber.unsubscribed_at = datetime.utcnow()


def delete_subscriber(db: Session, subscriber: Subscriber):
    """Hard-delete a subscriber (explicit admin action only)."""
    db.query(EngagementMetric).filter(
        EngagementMetric.subscriber_id == subscriber.id
    ).delete(synchronize_session=False)
    db.query(TrackingEvent).filter(
        TrackingEvent.subscriber_id == subscriber.id
    ).update({"subscriber_id": None}, synchronize_session=False)
    db.delete(subscriber)
    db.commit()
    logger.info(f"Deleted subscriber {subscriber.email}")


def subscribe(
    db: Session,
    email: str,
    first_name: Optional[str] = None,
    source: str = "tracker",
    anonymous_id: Optional[str] = None,
) -> Tuple[Subscriber, bool]:
    """
    Subscribe an email, re-subscribing it if it previously unsubscribed.

    Returns:
        tuple: (Subscriber, is_new) - is_new is True for new or re-subscribed emails
    """
    existing = get_subscriber_by_email(db, email)

    if existing:
        if existing.subscribed:
            return existing, False
        set_subscribed(existing, True)
        if first_name:
            existing.first_name = first_name.strip()
        existing.welcome_email_sent = False
        existing.welcome_email_sent_at = None
        db.commit()
        db.refresh(existing)
        return existing, True

    subscriber = Subscriber(
        email=normalize_email(email),
        first_name=first_name.strip() if first_name else None,
        source=source,
        subscribed=True,
        anonymous_id=anonymous_id,
        unsubscribe_token=secrets.token_urlsafe(32),
    )
    db.add(subscriber)
    db.commit()
    db.refresh(subscriber)
    return subscriber, True


def get_subscriber_by_token(db: Session, token: str) -> Optional[Subscriber]:
    if not token:
        return None
    return db.query(Subscriber).filter(Subscriber.unsubscribe_token == token).first()


def unsubscribe_by_token(db: Session, token: str) -> Optional[Subscriber]:
    """Unsubscribe the subscriber owning the token. None if the token is unknown."""
    subscriber = get_subscriber_by_token(db, token)
    if not subscriber:
        return None
    set_subscribed(subscriber, False)
    db.commit()
    db.refresh(subscriber)
    return subscriber


# ============== CSV IMPORT / EXPORT ==============

def _read_csv(csv_data: str, bad_rows: List[str]) -> pd.DataFrame:
    def skip_bad_row(cells):
        bad_rows.append(f"Skipped malformed row: {','.join(cells)}")
        return None

    try:
        df = pd.read_csv(
            io.StringIO(csv_data.strip()),
            dtype=str,
            keep_default_na=False,
            skipinitialspace=True,
            engine="python",
            on_bad_lines=skip_bad_row,
        )
    except pd.errors.EmptyDataError:
        raise ValueError("CSV must contain an email column")
    except pd.errors.ParserError as e:
        raise ValueError(f"Could not parse CSV: {e}")
    return df.fillna("")


def parse_subscriber_csv(csv_data: str) -> Tuple[List[Tuple[str, Optional[str]]], List[str]]:
    """
    Parse a CSV with a header row into (email, first_name) pairs.

    The email column is the first header containing "email" and the name
    column the first containing "name" (case-insensitive). Quoted cells may
    contain commas. Rows with fewer than two cells or an empty first or
    second cell are skipped.

    Raises ValueError if there is no email column.
    """
    errors: List[str] = []
    df = _read_csv(csv_data, errors)

    columns = [str(col).strip() for col in df.columns]
    email_index = next((i for i, col in enumerate(columns) if "email" in col.lower()), -1)
    name_index = next((i for i, col in enumerate(columns) if "name" in col.lower()), -1)

    if email_index == -1:
        raise ValueError("CSV must contain an email column")

    entries = []
    for line_num, row in enumerate(df.itertuples(index=False), start=2):
        cells = [str(cell).strip() for cell in row]
        if len(cells) < 2 or not cells[0] or not cells[1]:
            continue

        email = cells[email_index]
        if "@" not in email:
            errors.append(f"Row {line_num}: invalid email '{email}'")
            continue
        first_name = cells[name_index] if name_index != -1 else None
        entries.append((normalize_email(email), first_name or None))

    return entries, errors


def import_subscribers_csv(db: Session, csv_data: str) -> dict:
    """
    Import subscribers from CSV text. Existing emails are skipped.

    Returns dict with counts.
    """
    entries, errors = parse_subscriber_csv(csv_data)

    imported = 0
    skipped = 0
    seen = set()
    for email, first_name in entries:
        if email in seen or get_subscriber_by_email(db, email):
            skipped += 1
            continue
        seen.add(email)
        db.add(Subscriber(
            email=email,
            first_name=first_name,
            source="csv_import",
            subscribed=True,
            unsubscribe_token=secrets.token_urlsafe(32),
        ))
        imported += 1

    db.commit()
    logger.info(f"CSV import: {imported} imported, {skipped} skipped, {len(errors)} errors")

    return {
        "success": True,
        "imported": imported,
        "skipped": skipped,
        "errors": errors[:10] if errors else []  # Return first 10 errors
    }


def export_subscribers_csv(subscribers: List[Subscriber]) -> str:
    """Render subscribers as CSV: Email, First Name, Subscribed, Joined."""
    rows = [
        {
            "Email": sub.email,
            "First Name": sub.first_name or "",
            "Subscribed": "Yes" if sub.subscribed else "No",
            "Joined": sub.created_at.strftime("%Y-%m-%d") if sub.created_at else "",
        }
        for sub in subscribers
    ]
    df = pd.DataFrame(rows, columns=EXPORT_HEADERS)
    return df.to_csv(index=False, lineterminator="\n")
