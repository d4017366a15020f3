"""
FastAPI application for the newsletter backend.

Provides REST API endpoints for the admin dashboard and embedded sites to:
- Ingest visitor tracking events
- Register tracking clients (tenant websites)
- Manage subscribers, segments and CSV import/export
- Create, schedule and send campaigns
- Record email opens/clicks and report analytics
"""
import html
import json
import logging
import secrets
import traceback
from datetime import date
from typing import List, Optional
from urllib.parse import urlparse

from fastapi import FastAPI, HTTPException, Query, Request, Header, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import get_settings, is_mail_api_configured
from database import get_db, init_db
from db_models import CampaignStatus, ErrorLog, ErrorSeverity
from models import (
    CampaignCreate,
    CampaignFromTemplateRequest,
    CampaignResponse,
    CampaignScheduleRequest,
    CampaignSendResponse,
    CampaignTemplate,
    CampaignUpdate,
    ClientEventRequest,
    ClientRegisterRequest,
    ClientRegisterResponse,
    ClientResponse,
    ClientStatusUpdate,
    CsvImportRequest,
    QuickSendRequest,
    SegmentCriteria,
    SubscribeRequest,
    SubscribeResponse,
    SubscriberActivityRequest,
    SubscriberCreate,
    SubscriberResponse,
    SubscriberUpdate,
    TrackResponse,
)
import analytics_service
import campaign_service
import campaign_templates
import client_registry
import subscriber_service
from campaign_service import CampaignStateError, UnknownTemplateError
from mail_service import MailServiceError
from segmentation import (
    calculate_segment_size,
    get_segmented_subscribers,
    track_subscriber_activity,
)
from subscriber_service import DuplicateSubscriberError
from tracking import (
    MissingFieldsError,
    apply_event_effects,
    get_client_ip,
    get_user_agent,
    record_anonymous_event,
    record_client_event,
)

# Email scheduler
from email_scheduler import start_scheduler, stop_scheduler

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


# Initialize FastAPI app
app = FastAPI(
    title="Newsletter API",
    description="Backend API for the newsletter dashboard and visitor tracker",
    version="1.0.0",
)

# Configure CORS for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(dict.fromkeys(settings.cors_origins + [settings.frontend_url])),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
async def startup_event():
    """Initialize database and start background scheduler on startup."""
    init_db()
    start_scheduler()


@app.on_event("shutdown")
async def shutdown_event():
    """Stop background scheduler on shutdown."""
    stop_scheduler()


# ============================================================================
# LOGGING HELPERS
# ============================================================================

def log_error(
    db: Session,
    error_type: str,
    message: str,
    request: Request = None,
    severity: ErrorSeverity = ErrorSeverity.ERROR,
    error_code: str = None,
    stack_trace: str = None,
    request_data: dict = None,
    campaign_id: int = None,
):
    """
    Log an error to the database.

    Args:
        db: Database session
        error_type: Category of error (e.g., "mail_api", "tracking", "csv_import")
        message: Human-readable error message
        request: FastAPI request object (for endpoint/IP/user agent)
        severity: Error severity level
        error_code: HTTP status or custom error code
        stack_trace: Full stack trace if available
        request_data: Sanitized request data (remove sensitive info)
        campaign_id: Associated campaign if known
    """
    try:
        endpoint = f"{request.method} {request.url.path}" if request else None

        # Sanitize request_data to remove sensitive fields
        if request_data:
            sanitized = {k: v for k, v in request_data.items()
                        if k.lower() not in ('password', 'api_key', 'secret', 'token')}
        else:
            sanitized = None

        error_log = ErrorLog(
            severity=severity,
            error_type=error_type,
            error_code=error_code,
            message=message,
            stack_trace=stack_trace,
            request_data=json.dumps(sanitized, default=str) if sanitized else None,
            endpoint=endpoint,
            campaign_id=campaign_id,
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )
        db.add(error_log)
        db.commit()
    except Exception as e:
        # Don't let logging failures break the main flow
        logger.error(f"Failed to log error: {e}")
        db.rollback()


# ============================================================================
# ADMIN ACCESS
# ============================================================================

def require_admin(
    x_admin_secret: Optional[str] = Header(None),
    secret: Optional[str] = Query(None, description="Admin secret key"),
):
    """Admin endpoints need X-Admin-Secret (or ?secret=) matching ADMIN_SECRET."""
    provided = x_admin_secret or secret
    if not provided or not secrets.compare_digest(provided, get_settings().admin_secret):
        raise HTTPException(status_code=403, detail="Invalid admin secret")


# API Endpoints

@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "healthy", "service": "Newsletter API"}


# ============================================================================
# TRACKING
# ============================================================================

@app.post("/api/track", response_model=TrackResponse)
async def track_event(request: Request, db: Session = Depends(get_db)):
    """
    Public ingestion endpoint for the embedded tracker.

    Body: {clientId?, anonymousId?, type, ...}. Responds 400 when neither
    identifier or the type is present and 500 when the event can't be stored.
    """
    try:
        payload = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON"})

    if not isinstance(payload, dict):
        return JSONResponse(status_code=400, content={"error": "Missing required fields"})

    try:
        event = record_anonymous_event(db, payload, request)
    except MissingFieldsError:
        return JSONResponse(status_code=400, content={"error": "Missing required fields"})
    except SQLAlchemyError as e:
        logger.error(f"Tracking error: {e}")
        db.rollback()
        return JSONResponse(status_code=500, content={"error": "Failed to store tracking data"})

    apply_event_effects(db, event.event_type, event.data or {}, anonymous_id=event.anonymous_id)
    return {"success": True}


@app.api_route("/api/track", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def track_method_not_allowed():
    return JSONResponse(status_code=405, content={"error": "Method not allowed"})


@app.post("/api/tracking/events", response_model=TrackResponse)
async def track_client_event(
    event: ClientEventRequest,
    request: Request,
    db: Session = Depends(get_db),
):
    """Event posted by a registered client authenticating with its API key."""
    client = client_registry.authenticate_client(db, event.client_id, event.api_key)
    if not client:
        raise HTTPException(status_code=401, detail="Invalid client credentials")

    try:
        record_client_event(db, client, event, request)
    except SQLAlchemyError as e:
        db.rollback()
        log_error(
            db,
            error_type="tracking",
            message=f"Failed to store client event: {e}",
            request=request,
            stack_trace=traceback.format_exc(),
            request_data={"client_id": event.client_id, "event_type": event.event_type.value},
        )
        raise HTTPException(status_code=500, detail="Failed to store tracking data")

    data = dict(event.data)
    if event.subscriber_id is not None:
        data.setdefault("subscriberId", event.subscriber_id)
    if event.page_url:
        data.setdefault("url", event.page_url)
    apply_event_effects(db, event.event_type.value, data)
    return {"success": True}


# ============================================================================
# CLIENTS
# ============================================================================

@app.post("/api/clients", response_model=ClientRegisterResponse, dependencies=[Depends(require_admin)])
async def register_client(request: ClientRegisterRequest, db: Session = Depends(get_db)):
    """Register a tenant website and issue its client id and API key."""
    if not request.domain.strip() or not request.name.strip() or "@" not in request.email:
        raise HTTPException(status_code=400, detail="Domain, name and a valid email are required")

    client = client_registry.generate_client_id(
        db,
        domain=request.domain,
        name=request.name,
        email=request.email,
        owner=request.owner,
    )
    return ClientRegisterResponse(client_id=client.client_id, api_key=client.api_key)


@app.get("/api/clients", response_model=List[ClientResponse], dependencies=[Depends(require_admin)])
async def get_clients(
    owner: Optional[str] = Query(None),
    active_only: bool = Query(False),
    db: Session = Depends(get_db),
):
    """List registered clients."""
    return client_registry.list_clients(db, owner=owner, active_only=active_only)


@app.get("/api/clients/{client_id}/validate")
async def validate_client(client_id: str, db: Session = Depends(get_db)):
    """Check whether a client id may be used by the tracker."""
    return {"client_id": client_id, "valid": client_registry.validate_client_id(db, client_id)}


@app.patch(
    "/api/clients/{client_id}/status",
    response_model=ClientResponse,
    dependencies=[Depends(require_admin)],
)
async def update_client_status(client_id: str, request: ClientStatusUpdate, db: Session = Depends(get_db)):
    """Activate, deactivate or suspend a client."""
    client = client_registry.set_client_status(db, client_id, request.status)
    if not client:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


# ============================================================================
# SUBSCRIBERS
# ============================================================================

def _get_subscriber_or_404(db: Session, subscriber_id: int):
    subscriber = subscriber_service.get_subscriber(db, subscriber_id)
    if not subscriber:
        raise HTTPException(status_code=404, detail="Subscriber not found")
    return subscriber


@app.post("/api/subscribe", response_model=SubscribeResponse)
async def subscribe_to_newsletter(request: SubscribeRequest, db: Session = Depends(get_db)):
    """
    Public signup.

    If the email already exists and is subscribed, returns success with is_new_subscriber=False.
    If the email exists but was unsubscribed, re-subscribes them.
    """
    existing = subscriber_service.get_subscriber_by_email(db, request.email)
    was_unsubscribed = bool(existing and not existing.subscribed)

    try:
        _, is_new = subscriber_service.subscribe(
            db,
            email=request.email,
            first_name=request.first_name,
            source=request.source or "website",
        )
    except SQLAlchemyError as e:
        db.rollback()
        raise HTTPException(status_code=400, detail=f"Failed to subscribe: {str(e)}")

    if not is_new:
        return SubscribeResponse(success=True, message="You're already on the list!", is_new_subscriber=False)
    if was_unsubscribed:
        return SubscribeResponse(
            success=True,
            message="Welcome back! You've been re-subscribed.",
            is_new_subscriber=True,  # Treat as new for welcome email purposes
        )
    return SubscribeResponse(success=True, message="Thanks for signing up!", is_new_subscriber=True)


@app.get("/api/subscribers", response_model=List[SubscriberResponse], dependencies=[Depends(require_admin)])
async def get_subscribers(
    subscribed: Optional[bool] = Query(None),
    db: Session = Depends(get_db),
):
    """List subscribers, newest first."""
    return subscriber_service.list_subscribers(db, subscribed=subscribed)


@app.post("/api/subscribers", response_model=SubscriberResponse, dependencies=[Depends(require_admin)])
async def create_subscriber(request: SubscriberCreate, db: Session = Depends(get_db)):
    """Add a subscriber from the dashboard."""
    try:
        return subscriber_service.create_subscriber(db, request)
    except DuplicateSubscriberError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/api/subscribers/export", dependencies=[Depends(require_admin)])
async def export_subscribers(db: Session = Depends(get_db)):
    """Download every subscriber as CSV."""
    csv_data = subscriber_service.export_subscribers_csv(subscriber_service.list_subscribers(db))
    filename = f"subscribers_{date.today().isoformat()}.csv"
    return Response(
        content=csv_data,
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/subscribers/import", dependencies=[Depends(require_admin)])
async def import_subscribers(
    request: CsvImportRequest,
    http_request: Request,
    db: Session = Depends(get_db),
):
    """
    Import subscribers from CSV text.

    The header row must have a column containing "email"; a column
    containing "name" is used for first names. Existing emails are skipped.
    """
    try:
        return subscriber_service.import_subscribers_csv(db, request.csv_data)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SQLAlchemyError as e:
        db.rollback()
        log_error(
            db,
            error_type="csv_import",
            message=f"CSV import failed: {e}",
            request=http_request,
            stack_trace=traceback.format_exc(),
        )
        raise HTTPException(status_code=500, detail="Failed to import subscribers")


@app.post("/api/subscribers/segment", dependencies=[Depends(require_admin)])
async def segment_subscribers(criteria: SegmentCriteria, db: Session = Depends(get_db)):
    """Subscribed subscribers matching the criteria."""
    subscribers = get_segmented_subscribers(db, criteria)
    return {
        "count": len(subscribers),
        "subscribers": [SubscriberResponse.model_validate(s) for s in subscribers],
    }


@app.post("/api/subscribers/segment/size", dependencies=[Depends(require_admin)])
async def segment_size(criteria: SegmentCriteria, db: Session = Depends(get_db)):
    """Number of subscribed subscribers matching the criteria."""
    subscribers = subscriber_service.list_subscribers(db, subscribed=True)
    return {"count": calculate_segment_size(subscribers, criteria)}


@app.post("/api/subscribers/send-email", dependencies=[Depends(require_admin)])
async def quick_send_email(request: QuickSendRequest, http_request: Request, db: Session = Depends(get_db)):
    """Send an ad-hoc email to selected subscribers."""
    if not request.subject.strip() or not request.content.strip():
        raise HTTPException(status_code=400, detail="Subject and content are required")
    if not is_mail_api_configured():
        raise HTTPException(status_code=503, detail="Mail API not configured")

    try:
        report = await campaign_service.quick_send(request.subject, request.content, request.recipients)
    except MailServiceError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not report.success:
        log_error(
            db,
            error_type="mail_api",
            message=f"Quick send failed for {report.failed} recipients",
            request=http_request,
            severity=ErrorSeverity.WARNING,
            request_data={"failed_recipients": report.failed_recipients},
        )
    return report.to_dict()


@app.get("/api/subscribers/{subscriber_id}", response_model=SubscriberResponse, dependencies=[Depends(require_admin)])
async def get_subscriber(subscriber_id: int, db: Session = Depends(get_db)):
    return _get_subscriber_or_404(db, subscriber_id)


@app.patch("/api/subscribers/{subscriber_id}", response_model=SubscriberResponse, dependencies=[Depends(require_admin)])
async def update_subscriber(subscriber_id: int, request: SubscriberUpdate, db: Session = Depends(get_db)):
    subscriber = _get_subscriber_or_404(db, subscriber_id)
    return subscriber_service.update_subscriber(db, subscriber, request)


@app.delete("/api/subscribers/{subscriber_id}", dependencies=[Depends(require_admin)])
async def delete_subscriber(subscriber_id: int, db: Session = Depends(get_db)):
    subscriber = _get_subscriber_or_404(db, subscriber_id)
    subscriber_service.delete_subscriber(db, subscriber)
    return {"success": True, "message": "Subscriber deleted"}


@app.post(
    "/api/subscribers/{subscriber_id}/activity",
    response_model=SubscriberResponse,
    dependencies=[Depends(require_admin)],
)
async def record_subscriber_activity(
    subscriber_id: int,
    request: SubscriberActivityRequest,
    db: Session = Depends(get_db),
):
    """Fold a page view, content interaction or email interaction into tracking data."""
    subscriber = track_subscriber_activity(
        db,
        subscriber_id,
        page_view=request.page_view,
        content_interaction=request.content_interaction,
        email_interaction=request.email_interaction,
    )
    if not subscriber:
        raise HTTPException(status_code=404, detail="Subscriber not found")
    return subscriber


# ============================================================================
# UNSUBSCRIBE
# ============================================================================

UNSUBSCRIBE_PAGE = """
<!DOCTYPE html>
<html>
<head>
    <title>{title}</title>
    <style>
        body {{ font-family: Arial, sans-serif; text-align: center; padding: 50px; background: #1a1a1a; color: white; }}
        .container {{ max-width: 500px; margin: 0 auto; }}
        p {{ color: #ccc; }}
        .btn {{
            display: inline-block;
            background: #ffffff;
            color: #1a1a1a;
            padding: 15px 40px;
            border-radius: 6px;
            font-weight: bold;
            font-size: 16px;
            border: none;
            cursor: pointer;
            margin-top: 20px;
        }}
    </style>
</head>
<body>
    <div class="container">
        <h1>{title}</h1>
        {body}
    </div>
</body>
</html>
"""


def _page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(content=UNSUBSCRIBE_PAGE.format(title=title, body=body), status_code=status_code)


@app.get("/api/unsubscribe/{token}")
async def unsubscribe_confirmation_page(token: str, db: Session = Depends(get_db)):
    """
    Show unsubscribe confirmation page (step 1).

    Returns an HTML page asking user to confirm unsubscription.
    """
    subscriber = subscriber_service.get_subscriber_by_token(db, token)

    if not subscriber:
        return _page("Invalid Link", "<p>This unsubscribe link is not valid or has expired.</p>", 404)

    if not subscriber.subscribed:
        return _page(
            "Already Unsubscribed",
            f"<p>You have already been unsubscribed.</p><p>Email: {html.escape(subscriber.email)}</p>",
        )

    return _page(
        "Unsubscribe",
        f"""<p>Are you sure you want to unsubscribe from our emails?</p>
        <p>Email: {html.escape(subscriber.email)}</p>
        <form method="POST" action="/api/unsubscribe/{token}">
            <button type="submit" class="btn">Yes, unsubscribe me</button>
        </form>""",
    )


@app.post("/api/unsubscribe/{token}")
async def unsubscribe(token: str, db: Session = Depends(get_db)):
    """
    Actually unsubscribe (step 2).

    Returns an HTML page confirming the unsubscription.
    """
    subscriber = subscriber_service.unsubscribe_by_token(db, token)
    if not subscriber:
        return _page("Invalid Link", "<p>This unsubscribe link is not valid or has expired.</p>", 404)

    logger.info(f"Unsubscribed {subscriber.email}")
    return _page(
        "Unsubscribed",
        f"<p>You've been unsubscribed and won't receive further emails.</p><p>Email: {html.escape(subscriber.email)}</p>",
    )


# ============================================================================
# CAMPAIGNS
# ============================================================================

def _get_campaign_or_404(db: Session, campaign_id: int):
    campaign = campaign_service.get_campaign(db, campaign_id)
    if not campaign:
        raise HTTPException(status_code=404, detail="Campaign not found")
    return campaign


@app.get("/api/campaigns", response_model=List[CampaignResponse], dependencies=[Depends(require_admin)])
async def get_campaigns(
    status: Optional[CampaignStatus] = Query(None),
    db: Session = Depends(get_db),
):
    """List campaigns, newest first."""
    return campaign_service.list_campaigns(db, status=status)


@app.post("/api/campaigns", response_model=CampaignResponse, dependencies=[Depends(require_admin)])
async def create_campaign(request: CampaignCreate, db: Session = Depends(get_db)):
    """Create a draft campaign."""
    return campaign_service.create_campaign(db, request)


@app.get("/api/campaigns/templates", response_model=List[CampaignTemplate], dependencies=[Depends(require_admin)])
async def get_campaign_templates():
    """Predefined block lists a campaign can start from."""
    return campaign_templates.list_templates()


@app.post("/api/campaigns/from-template", response_model=CampaignResponse, dependencies=[Depends(require_admin)])
async def create_campaign_from_template(request: CampaignFromTemplateRequest, db: Session = Depends(get_db)):
    """Create a draft campaign seeded with a template."""
    try:
        return campaign_service.create_campaign_from_template(db, request)
    except UnknownTemplateError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get("/api/campaigns/{campaign_id}", response_model=CampaignResponse, dependencies=[Depends(require_admin)])
async def get_campaign(campaign_id: int, db: Session = Depends(get_db)):
    return _get_campaign_or_404(db, campaign_id)


@app.patch("/api/campaigns/{campaign_id}", response_model=CampaignResponse, dependencies=[Depends(require_admin)])
async def update_campaign(campaign_id: int, request: CampaignUpdate, db: Session = Depends(get_db)):
    campaign = _get_campaign_or_404(db, campaign_id)
    try:
        return campaign_service.update_campaign(db, campaign, request)
    except CampaignStateError as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.delete("/api/campaigns/{campaign_id}", dependencies=[Depends(require_admin)])
async def delete_campaign(campaign_id: int, db: Session = Depends(get_db)):
    campaign = _get_campaign_or_404(db, campaign_id)
    campaign_service.delete_campaign(db, campaign)
    return {"success": True, "message": "Campaign deleted"}


@app.post(
    "/api/campaigns/{campaign_id}/reuse",
    response_model=CampaignResponse,
    dependencies=[Depends(require_admin)],
)
async def reuse_campaign(campaign_id: int, db: Session = Depends(get_db)):
    """Copy a campaign into a new draft."""
    return campaign_service.reuse_campaign(db, _get_campaign_or_404(db, campaign_id))


@app.post(
    "/api/campaigns/{campaign_id}/recipients",
    response_model=CampaignResponse,
    dependencies=[Depends(require_admin)],
)
async def set_campaign_recipients(
    campaign_id: int,
    criteria: SegmentCriteria,
    db: Session = Depends(get_db),
):
    """Replace a draft's recipients with the subscribers matching the criteria."""
    campaign = _get_campaign_or_404(db, campaign_id)
    emails = [s.email for s in get_segmented_subscribers(db, criteria)]
    try:
        return campaign_service.update_campaign(db, campaign, CampaignUpdate(recipients=emails))
    except CampaignStateError as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.get("/api/campaigns/{campaign_id}/preview", dependencies=[Depends(require_admin)])
async def preview_campaign(campaign_id: int, db: Session = Depends(get_db)):
    """Rendered HTML for a campaign."""
    campaign = _get_campaign_or_404(db, campaign_id)
    return {"subject": campaign.subject, "html": campaign_service.render_campaign_html(campaign)}


@app.post(
    "/api/campaigns/{campaign_id}/schedule",
    response_model=CampaignResponse,
    dependencies=[Depends(require_admin)],
)
async def schedule_campaign(
    campaign_id: int,
    request: CampaignScheduleRequest,
    db: Session = Depends(get_db),
):
    """Schedule a draft campaign for a future time."""
    campaign = _get_campaign_or_404(db, campaign_id)
    try:
        return campaign_service.schedule_campaign(db, campaign, request.scheduled_for)
    except CampaignStateError as e:
        raise HTTPException(status_code=409, detail=str(e))


@app.post(
    "/api/campaigns/{campaign_id}/send",
    response_model=CampaignSendResponse,
    dependencies=[Depends(require_admin)],
)
async def send_campaign(campaign_id: int, http_request: Request, db: Session = Depends(get_db)):
    """
    Send a campaign now.

    The campaign becomes sent only when every recipient succeeded; otherwise
    it keeps its status and the per-recipient results are returned.
    """
    campaign = _get_campaign_or_404(db, campaign_id)
    if campaign.status == CampaignStatus.SENT:
        raise HTTPException(status_code=409, detail="Campaign has already been sent")
    if not is_mail_api_configured():
        raise HTTPException(status_code=503, detail="Mail API not configured")

    try:
        report = await campaign_service.send_campaign_now(db, campaign)
    except MailServiceError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CampaignStateError as e:
        raise HTTPException(status_code=409, detail=str(e))

    if report.success:
        message = f"Campaign sent to {report.sent} recipients"
    else:
        message = f"Campaign failed for {report.failed} of {len(report.results)} recipients"
        log_error(
            db,
            error_type="mail_api",
            message=message,
            request=http_request,
            severity=ErrorSeverity.WARNING,
            request_data={"failed_recipients": report.failed_recipients},
            campaign_id=campaign.id,
        )

    return CampaignSendResponse(
        success=report.success,
        message=message,
        campaign=CampaignResponse.model_validate(campaign),
        sent=report.sent,
        failed=report.failed,
        failed_recipients=report.failed_recipients,
        results=[r.model_dump() for r in report.results],
    )


# ============================================================================
# ANALYTICS
# ============================================================================

@app.get("/api/analytics/dashboard", dependencies=[Depends(require_admin)])
async def dashboard_stats(db: Session = Depends(get_db)):
    return analytics_service.get_dashboard_stats(db)


@app.get("/api/analytics/campaigns", dependencies=[Depends(require_admin)])
async def campaign_analytics(db: Session = Depends(get_db)):
    return analytics_service.get_campaign_analytics(db)


@app.get("/api/analytics/growth", dependencies=[Depends(require_admin)])
async def subscriber_growth(db: Session = Depends(get_db)):
    return analytics_service.get_subscriber_growth(db)


# 1x1 transparent GIF
TRACKING_PIXEL = (
    b"GIF89a\x01\x00\x01\x00\x80\x00\x00\x00\x00\x00\xff\xff\xff!\xf9\x04\x01\x00\x00\x00\x00"
    b",\x00\x00\x00\x00\x01\x00\x01\x00\x00\x02\x02D\x01\x00;"
)


@app.get("/api/email/open/{campaign_id}/{subscriber_id}")
async def track_email_open(campaign_id: int, subscriber_id: int, db: Session = Depends(get_db)):
    """Open-tracking pixel embedded in campaign emails."""
    analytics_service.track_email_open(db, subscriber_id, campaign_id)
    return Response(
        content=TRACKING_PIXEL,
        media_type="image/gif",
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )


@app.get("/api/email/click/{campaign_id}/{subscriber_id}")
async def track_link_click(
    campaign_id: int,
    subscriber_id: int,
    url: str = Query(..., description="Destination URL"),
    db: Session = Depends(get_db),
):
    """Record a link click and redirect to the destination."""
    if urlparse(url).scheme not in ("http", "https"):
        raise HTTPException(status_code=400, detail="Invalid redirect URL")
    analytics_service.track_link_click(db, subscriber_id, campaign_id, url)
    return RedirectResponse(url=url, status_code=302)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
