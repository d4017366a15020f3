"""
SQLAlchemy database models for the newsletter backend.
"""
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Enum, Boolean, Text, JSON
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from database import Base
import enum


class CampaignStatus(enum.Enum):
    """Status of a campaign. Only ever moves forward."""
    DRAFT = "draft"               # Created, still editable
    SCHEDULED = "scheduled"       # Waiting for the scheduler to send it
    SENT = "sent"                 # Delivered to the mail API


# Forward-only ordering used by the campaign service
CAMPAIGN_STATUS_ORDER = {
    CampaignStatus.DRAFT: 0,
    CampaignStatus.SCHEDULED: 1,
    CampaignStatus.SENT: 2,
}


class ClientStatus(enum.Enum):
    """Status of a registered tracking client (tenant website)."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class EventType(enum.Enum):
    """Types of events the tracking client may emit."""
    PAGEVIEW = "pageview"
    PAGE_VIEW = "page_view"
    FORM_INTERACTION = "form_interaction"
    CONTENT_INTERACTION = "content_interaction"
    SUBSCRIPTION = "subscription"
    FORM_SUBMIT = "form_submit"
    CLICK = "click"
    SCROLL = "scroll"
    CUSTOM = "custom"


class EngagementEventType(enum.Enum):
    """Email engagement events recorded against a campaign."""
    EMAIL_OPEN = "email_open"
    LINK_CLICK = "link_click"


class Subscriber(Base):
    """Newsletter subscriber with loosely-typed segmentation attributes."""
    __tablename__ = "subscribers"

    id = Column(Integer, primary_key=True, index=True)

    email = Column(String(255), unique=True, nullable=False, index=True)
    first_name = Column(String(100))
    last_name = Column(String(100))

    subscribed = Column(Boolean, default=True, nullable=False)
    source = Column(String(50), default="dashboard")  # dashboard, csv_import, tracker, etc.

    # Attribute bags used by segmentation (free-form JSON objects)
    demographic = Column(JSON)
    location = Column(JSON)
    psychographic = Column(JSON)
    behavioral = Column(JSON)
    lifecycle = Column(JSON)
    purchase_history = Column(JSON)
    email_engagement = Column(JSON)

    # page_views, content_interactions, email_interactions, interests, engagement_score
    tracking_data = Column(JSON)

    # Anonymous visitor this subscriber converted from (if known)
    anonymous_id = Column(String(100), index=True)

    # Unsubscribe tracking
    unsubscribe_token = Column(String(64), unique=True, index=True)
    unsubscribed_at = Column(DateTime(timezone=True))

    # Welcome email tracking
    welcome_email_sent = Column(Boolean, default=False)
    welcome_email_sent_at = Column(DateTime(timezone=True))

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
    last_active = Column(DateTime(timezone=True))

    def __repr__(self):
        return f"<Subscriber {self.email} ({'subscribed' if self.subscribed else 'unsubscribed'})>"


class Campaign(Base):
    """Email campaign built from an ordered list of content blocks."""
    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True, index=True)

    name = Column(String(255), nullable=False)
    subject = Column(String(255), nullable=False)
    content = Column(Text, default="[]")  # JSON-serialized list of blocks

    status = Column(Enum(CampaignStatus), default=CampaignStatus.DRAFT, nullable=False, index=True)

    # Subscriber emails captured when the campaign was created/edited
    recipients = Column(JSON, default=list)

    scheduled_for = Column(DateTime(timezone=True))
    sent_at = Column(DateTime(timezone=True))

    # Set on every send attempt, successful or not
    last_send_attempt_at = Column(DateTime(timezone=True))

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    engagement = relationship("EngagementMetric", back_populates="campaign", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Campaign {self.name} ({self.status.value if self.status else 'new'})>"


class Client(Base):
    """A tenant website registered to embed the tracking snippet."""
    __tablename__ = "clients"

    id = Column(Integer, primary_key=True, index=True)

    client_id = Column(String(50), unique=True, nullable=False, index=True)  # nlt_XXXXXXXXXXXXXXXX
    api_key = Column(String(64), unique=True, nullable=False)

    name = Column(String(255), nullable=False)
    domain = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False)
    owner = Column(String(255))  # Dashboard user that registered the client

    status = Column(Enum(ClientStatus), default=ClientStatus.ACTIVE, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<Client {self.client_id} ({self.domain})>"


class AnonymousEvent(Base):
    """Append-only log of events posted by the public ingestion endpoint."""
    __tablename__ = "anonymous_events"

    id = Column(Integer, primary_key=True, index=True)

    anonymous_id = Column(String(100), index=True)
    client_id = Column(String(50), index=True)  # Can be null for pure anonymous events
    event_type = Column(String(50), nullable=False, index=True)
    page_url = Column(String(2000))

    # Request context
    user_agent = Column(String(500))
    ip_address = Column(String(45))  # IPv6 compatible

    data = Column(JSON)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    def __repr__(self):
        return f"<AnonymousEvent {self.event_type} - {self.anonymous_id}>"


class TrackingEvent(Base):
    """Append-only log of events posted by registered clients."""
    __tablename__ = "tracking_events"

    id = Column(Integer, primary_key=True, index=True)

    client_id = Column(String(50), nullable=False, index=True)
    subscriber_id = Column(Integer, ForeignKey("subscribers.id"), nullable=True, index=True)
    event_type = Column(Enum(EventType), nullable=False, index=True)
    page_url = Column(String(2000))

    user_agent = Column(String(500))
    ip_address = Column(String(45))

    data = Column(JSON)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    subscriber = relationship("Subscriber")

    def __repr__(self):
        return f"<TrackingEvent {self.event_type.value} - {self.client_id}>"


class EngagementMetric(Base):
    """Email opens and link clicks per subscriber and campaign."""
    __tablename__ = "engagement_metrics"

    id = Column(Integer, primary_key=True, index=True)

    subscriber_id = Column(Integer, ForeignKey("subscribers.id"), nullable=False, index=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id"), nullable=False, index=True)
    event_type = Column(Enum(EngagementEventType), nullable=False)
    event_metadata = Column("metadata", JSON)  # e.g. {"url": ...} for clicks

    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    campaign = relationship("Campaign", back_populates="engagement")
    subscriber = relationship("Subscriber")

    def __repr__(self):
        return f"<EngagementMetric {self.event_type.value} campaign={self.campaign_id}>"


class ErrorSeverity(enum.Enum):
    """Severity levels for error logs."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorLog(Base):
    """Error log for API and service errors."""
    __tablename__ = "error_logs"

    id = Column(Integer, primary_key=True, index=True)

    # Error classification
    severity = Column(Enum(ErrorSeverity), default=ErrorSeverity.ERROR, nullable=False, index=True)
    error_type = Column(String(100), nullable=False, index=True)  # e.g., "mail_api", "tracking", "csv_import"
    error_code = Column(String(50))  # HTTP status or custom code

    # Error details
    message = Column(Text, nullable=False)
    stack_trace = Column(Text)
    request_data = Column(Text)  # JSON blob with sanitized request data

    # Context
    endpoint = Column(String(200), index=True)
    campaign_id = Column(Integer, index=True)
    ip_address = Column(String(45))
    user_agent = Column(String(500))

    # Timestamp
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    def __repr__(self):
        return f"<ErrorLog {self.severity.value} - {self.error_type}: {self.message[:50]}>"
