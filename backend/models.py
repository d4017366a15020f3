"""
Data models for the newsletter backend API.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Literal
from pydantic import BaseModel, Field, field_validator

from db_models import CampaignStatus, ClientStatus, EventType


# =============================================================================
# Campaign content
# =============================================================================

class Block(BaseModel):
    """One unit of campaign content."""
    id: str
    type: Literal["text", "image", "button"]
    content: str = ""
    url: Optional[str] = None  # Only used by button blocks


class CampaignTemplate(BaseModel):
    """Predefined block list a campaign can start from."""
    id: str
    name: str
    thumbnail: str
    blocks: List[Block]


# =============================================================================
# Segmentation criteria
# =============================================================================

class DemographicCriteria(BaseModel):
    age_groups: Optional[List[str]] = None
    gender: Optional[List[str]] = None
    income_range: Optional[List[str]] = None
    education_level: Optional[List[str]] = None
    occupation: Optional[List[str]] = None
    marital_status: Optional[List[str]] = None


class GeographicCriteria(BaseModel):
    country: Optional[List[str]] = None
    city: Optional[List[str]] = None
    region: Optional[List[str]] = None
    timezone: Optional[List[str]] = None
    language: Optional[List[str]] = None


class PsychographicCriteria(BaseModel):
    interests: Optional[List[str]] = None
    lifestyle: Optional[List[str]] = None
    values: Optional[List[str]] = None
    personality_traits: Optional[List[str]] = None
    social_class: Optional[List[str]] = None


class BehavioralCriteria(BaseModel):
    usage_rate: Optional[List[str]] = None
    brand_loyalty: Optional[List[str]] = None
    benefits_sought: Optional[List[str]] = None
    readiness_stage: Optional[List[str]] = None
    occasions: Optional[List[str]] = None
    interests: Optional[List[str]] = None


class LifecycleCriteria(BaseModel):
    stage: Optional[List[str]] = None
    customer_status: Optional[List[str]] = None
    acquisition_source: Optional[List[str]] = None
    membership_duration: Optional[List[str]] = None


class PurchaseHistoryCriteria(BaseModel):
    frequency: Optional[List[str]] = None
    recency: Optional[int] = None  # days since last purchase
    average_order_value: Optional[List[float]] = None  # [min, max]
    product_categories: Optional[List[str]] = None
    total_spent_range: Optional[List[str]] = None


class EmailEngagementCriteria(BaseModel):
    open_rate: Optional[float] = None
    click_rate: Optional[float] = None
    last_opened: Optional[int] = None  # days ago
    subscription_duration: Optional[int] = None  # days subscribed
    engagement_level: Optional[List[Literal["high", "medium", "low"]]] = None


class SegmentCriteria(BaseModel):
    """Optional, multi-category filter used to select subscribers."""
    demographic: Optional[DemographicCriteria] = None
    geographic: Optional[GeographicCriteria] = None
    psychographic: Optional[PsychographicCriteria] = None
    behavioral: Optional[BehavioralCriteria] = None
    lifecycle: Optional[LifecycleCriteria] = None
    purchase_history: Optional[PurchaseHistoryCriteria] = None
    email_engagement: Optional[EmailEngagementCriteria] = None


# =============================================================================
# Tracking
# =============================================================================

EVENT_TYPES = {event.value for event in EventType}


class EventEnvelope(BaseModel):
    """
    Event emitted by the tracking client.

    The envelope is closed: every known field is declared here and anything
    site-specific goes into ``data``.
    """
    client_id: Optional[str] = Field(default=None, alias="clientId")
    anonymous_id: str = Field(alias="anonymousId")
    subscriber_id: Optional[str] = Field(default=None, alias="subscriberId")
    type: str
    timestamp: str

    url: Optional[str] = None
    path: Optional[str] = None
    title: Optional[str] = None

    is_returning: Optional[bool] = Field(default=None, alias="isReturning")
    visit_count: Optional[int] = Field(default=None, alias="visitCount")
    last_visit: Optional[str] = Field(default=None, alias="lastVisit")

    data: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        populate_by_name = True
        extra = "forbid"

    @field_validator('type')
    @classmethod
    def check_type(cls, v):
        if v not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {v}")
        return v

    @field_validator('anonymous_id', 'timestamp')
    @classmethod
    def check_not_empty(cls, v):
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v


class TrackResponse(BaseModel):
    success: bool


class ClientEventRequest(BaseModel):
    """Event posted by a registered client with its API key."""
    client_id: str
    api_key: str
    event_type: EventType
    page_url: Optional[str] = None
    subscriber_id: Optional[int] = None
    data: Dict[str, Any] = Field(default_factory=dict)


class SubscriberActivityRequest(BaseModel):
    """Activity to fold into a subscriber's tracking data."""
    page_view: Optional[str] = None
    content_interaction: Optional[str] = None
    email_interaction: Optional[Dict[str, str]] = None  # {"email_id": ..., "action": "open"|"click"}


# =============================================================================
# Subscribers
# =============================================================================

class SubscriberCreate(BaseModel):
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    source: Optional[str] = "dashboard"
    demographic: Optional[Dict[str, Any]] = None
    location: Optional[Dict[str, Any]] = None
    psychographic: Optional[Dict[str, Any]] = None
    behavioral: Optional[Dict[str, Any]] = None
    lifecycle: Optional[Dict[str, Any]] = None
    purchase_history: Optional[Dict[str, Any]] = None
    email_engagement: Optional[Dict[str, Any]] = None

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class SubscriberUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    subscribed: Optional[bool] = None
    demographic: Optional[Dict[str, Any]] = None
    location: Optional[Dict[str, Any]] = None
    psychographic: Optional[Dict[str, Any]] = None
    behavioral: Optional[Dict[str, Any]] = None
    lifecycle: Optional[Dict[str, Any]] = None
    purchase_history: Optional[Dict[str, Any]] = None
    email_engagement: Optional[Dict[str, Any]] = None


class SubscriberResponse(BaseModel):
    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    subscribed: bool
    source: Optional[str] = None
    demographic: Optional[Dict[str, Any]] = None
    location: Optional[Dict[str, Any]] = None
    psychographic: Optional[Dict[str, Any]] = None
    behavioral: Optional[Dict[str, Any]] = None
    lifecycle: Optional[Dict[str, Any]] = None
    purchase_history: Optional[Dict[str, Any]] = None
    email_engagement: Optional[Dict[str, Any]] = None
    tracking_data: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    last_active: Optional[datetime] = None

    class Config:
        from_attributes = True


class QuickSendRequest(BaseModel):
    """Ad-hoc email to a hand-picked list of subscribers."""
    subject: str
    content: str
    recipients: List[str]


# =============================================================================
# Campaigns
# =============================================================================

class CampaignCreate(BaseModel):
    name: str
    subject: str
    content: str = "[]"
    recipients: List[str] = Field(default_factory=list)

    @field_validator('name', 'subject')
    @classmethod
    def check_required(cls, v):
        if not v.strip():
            raise ValueError("must not be empty")
        return v.strip()


class CampaignFromTemplateRequest(BaseModel):
    template_id: str
    name: Optional[str] = None  # Defaults to the template name
    subject: Optional[str] = None
    recipients: List[str] = Field(default_factory=list)


class CampaignUpdate(BaseModel):
    name: Optional[str] = None
    subject: Optional[str] = None
    content: Optional[str] = None
    recipients: Optional[List[str]] = None


class CampaignScheduleRequest(BaseModel):
    scheduled_for: datetime


class CampaignResponse(BaseModel):
    id: int
    name: str
    subject: str
    content: str
    status: CampaignStatus
    recipients: List[str] = Field(default_factory=list)
    scheduled_for: Optional[datetime] = None
    sent_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    last_send_attempt_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CampaignSendResponse(BaseModel):
    success: bool
    message: str
    campaign: CampaignResponse
    sent: int = 0
    failed: int = 0
    failed_recipients: List[str] = Field(default_factory=list)
    results: List[Dict[str, Any]] = Field(default_factory=list)


# =============================================================================
# Clients
# =============================================================================

class ClientRegisterRequest(BaseModel):
    domain: str
    name: str
    email: str
    owner: Optional[str] = None


class ClientRegisterResponse(BaseModel):
    client_id: str
    api_key: str


class ClientResponse(BaseModel):
    client_id: str
    name: str
    domain: str
    email: str
    owner: Optional[str] = None
    status: ClientStatus
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ClientStatusUpdate(BaseModel):
    status: ClientStatus


# =============================================================================
# Public subscribe / CSV import
# =============================================================================

class SubscribeRequest(BaseModel):
    email: str
    first_name: Optional[str] = None
    source: Optional[str] = "website"

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class SubscribeResponse(BaseModel):
    success: bool
    message: str
    is_new_subscriber: bool = False


class CsvImportRequest(BaseModel):
    csv_data: str
