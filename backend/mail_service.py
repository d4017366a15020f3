"""
Campaign delivery through the third-party lead/campaign API.

One request is issued per recipient and all of them are awaited together.
The result is a per-recipient report; the campaign only counts as sent when
every recipient succeeded.
"""
import asyncio
import html
import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from config import get_settings

logger = logging.getLogger(__name__)

LEADS_ENDPOINT = "/api/leads"


class MailServiceError(Exception):
    """Raised when a send cannot be attempted at all."""


class RecipientResult(BaseModel):
    """Outcome of the request for one recipient."""
    email: str
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


class SendReport(BaseModel):
    """Outcome of a whole campaign send."""
    results: List[RecipientResult]

    @property
    def success(self) -> bool:
        return bool(self.results) and all(r.success for r in self.results)

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return len(self.results) - self.sent

    @property
    def failed_recipients(self) -> List[str]:
        return [r.email for r in self.results if not r.success]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "sent": self.sent,
            "failed": self.failed,
            "results": [r.model_dump() for r in self.results],
        }


# =============================================================================
# Content rendering
# =============================================================================

def parse_blocks(content: Optional[str]) -> List[Dict[str, Any]]:
    """
    Parse serialized campaign content into a list of blocks.

    Malformed or non-list content degrades to an empty list.
    """
    if not content:
        return []
    try:
        blocks = json.loads(content)
    except (TypeError, ValueError) as e:
        logger.warning(f"Could not parse campaign content: {e}")
        return []
    if not isinstance(blocks, list):
        logger.warning("Campaign content is not a list of blocks")
        return []
    return [b for b in blocks if isinstance(b, dict)]


def block_to_html(block: Dict[str, Any]) -> str:
    """Render one content block."""
    block_type = block.get("type")
    content = block.get("content") or ""

    if block_type == "text":
        return f'<div class="text-block">{html.escape(content).replace(chr(10), "<br>")}</div>'
    if block_type == "image":
        return (
            f'<img src="{html.escape(content, quote=True)}" alt="Email content" '
            f'style="max-width: 100%; height: auto;" />'
        )
    if block_type == "button":
        href = html.escape(block.get("url") or "#", quote=True)
        return (
            f'<a href="{href}" style="display: inline-block; padding: 10px 20px; '
            f'background-color: #4F46E5; color: white; text-decoration: none; '
            f'border-radius: 6px;">{html.escape(content)}</a>'
        )
    return ""


def blocks_to_html(blocks: List[Dict[str, Any]]) -> str:
    """Flatten an ordered list of blocks into HTML."""
    return "".join(block_to_html(block) for block in blocks)


HREF_PATTERN = re.compile(r'href="(https?://[^"]+)"')


def add_tracking(html_content: str, campaign_id: int, subscriber_id: int, base_url: Optional[str] = None) -> str:
    """
    Route http(s) links through the click redirect and append the open pixel
    for one recipient.
    """
    base = (base_url or get_settings().api_base_url).rstrip("/")

    def track_link(match):
        target = quote(html.unescape(match.group(1)), safe="")
        click_url = f"{base}/api/email/click/{campaign_id}/{subscriber_id}?url={target}"
        return f'href="{html.escape(click_url, quote=True)}"'

    pixel = (
        f'<img src="{base}/api/email/open/{campaign_id}/{subscriber_id}" '
        f'width="1" height="1" alt="" style="display: none;" />'
    )
    return HREF_PATTERN.sub(track_link, html_content) + pixel


def campaign_tag(name: str) -> str:
    """Tag attached to every lead of a campaign, e.g. campaign_monthly_update."""
    return "campaign_" + re.sub(r"\s+", "_", name.strip().lower())


# =============================================================================
# API client
# =============================================================================

class MailServiceClient:
    """Async client for the lead/campaign API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        sender_email: Optional[str] = None,
        sender_name: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.mail_api_key
        self.base_url = (base_url or settings.mail_api_url).rstrip("/")
        self.sender_email = sender_email or settings.sender_email
        self.sender_name = sender_name or settings.sender_name

        if not self.api_key:
            raise MailServiceError("Mail API key not configured")

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": self.api_key,
                "Content-Type": "application/json",
                "Cache-Control": "no-cache",
            },
            timeout=timeout or settings.mail_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def aclose(self):
        await self._client.aclose()

    def _lead_payload(
        self,
        email: str,
        name: str,
        subject: str,
        html_content: str,
    ) -> Dict[str, Any]:
        return {
            "email": email,
            "firstName": "",
            "lastName": "",
            "timezone": "UTC",
            "subscribed": True,
            "tags": [campaign_tag(name)],
            "metadata": {
                "campaign_name": name,
                "subject": subject,
                "content": html_content,
                "sender_email": self.sender_email,
            },
            "from_email": self.sender_email,
            "from_name": self.sender_name,
        }

    async def _send_one(self, email: str, payload: Dict[str, Any]) -> RecipientResult:
        try:
            response = await self._client.post(LEADS_ENDPOINT, json=payload)
        except httpx.TimeoutException:
            logger.error(f"Mail API timeout for {email}")
            return RecipientResult(email=email, success=False, error="timeout")
        except httpx.HTTPError as e:
            logger.error(f"Mail API request failed for {email}: {e}")
            return RecipientResult(email=email, success=False, error=str(e))

        if response.is_success:
            return RecipientResult(email=email, success=True, status_code=response.status_code)

        logger.error(f"Mail API returned {response.status_code} for {email}")
        return RecipientResult(
            email=email,
            success=False,
            status_code=response.status_code,
            error=f"HTTP {response.status_code}",
        )

    async def send_campaign(
        self,
        name: str,
        subject: str,
        html_content: str,
        recipients: List[str],
        personalize: Optional[Callable[[str], str]] = None,
    ) -> SendReport:
        """
        Issue one request per recipient and report each outcome.

        personalize, when given, maps a recipient email to that recipient's HTML.
        """
        if not recipients:
            raise MailServiceError("No recipients specified")

        logger.info(f"Sending campaign '{name}' to {len(recipients)} recipients")

        results = await asyncio.gather(*[
            self._send_one(email, self._lead_payload(
                email, name, subject, personalize(email) if personalize else html_content,
            ))
            for email in recipients
        ])
        report = SendReport(results=list(results))

        if report.success:
            logger.info(f"Campaign '{name}' sent to all {report.sent} recipients")
        else:
            logger.warning(
                f"Campaign '{name}' failed for {report.failed} of {len(recipients)} recipients"
            )
        return report

    async def add_subscriber(self, email: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Create or update a single lead."""
        metadata = metadata or {}
        try:
            response = await self._client.post(LEADS_ENDPOINT, json={
                "email": email,
                "firstName": metadata.get("firstName", ""),
                "lastName": metadata.get("lastName", ""),
                "timezone": "UTC",
                "subscribed": True,
                "metadata": metadata,
            })
            return {"success": response.is_success, "data": response.json() if response.content else None}
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to add lead {email}: {e}")
            return {"success": False, "error": str(e)}

    async def get_campaign_stats(self, campaign_id: str) -> Dict[str, Any]:
        """Fetch delivery statistics the provider keeps for a campaign."""
        try:
            response = await self._client.get(f"/api/campaigns/{campaign_id}/stats")
            return {"success": response.is_success, "data": response.json() if response.content else None}
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to fetch stats for campaign {campaign_id}: {e}")
            return {"success": False, "error": str(e)}


async def send_campaign(
    name: str,
    subject: str,
    html_content: str,
    recipients: List[str],
    transport: Optional[httpx.AsyncBaseTransport] = None,
    personalize: Optional[Callable[[str], str]] = None,
) -> SendReport:
    """Send a campaign with a client built from settings."""
    async with MailServiceClient(transport=transport) as client:
        return await client.send_campaign(name, subject, html_content, recipients, personalize=personalize)
