"""
Visitor identity and event emission for sites embedding the tracker.

A TrackerClient is created once per page/session and held by the caller.
Identity lives in a VisitorStorage (any MutableMapping[str, str]); events are
validated locally against EventEnvelope and posted to the ingestion endpoint.
Delivery is best-effort: no retry, no queue, failures go to on_error.
"""
import asyncio
import json
import logging
import uuid
from collections.abc import MutableMapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

import httpx
from pydantic import BaseModel, ValidationError

from config import get_settings
from db_models import EventType
from models import EventEnvelope

logger = logging.getLogger(__name__)

# Storage keys shared with the browser snippet
VISIT_COUNT_KEY = "nlt_visit_count"
LAST_VISIT_KEY = "nlt_last_visit"
ANONYMOUS_ID_KEY = "nlt_anonymous_id"
SUBSCRIBER_ID_KEY = "subscriber_id"

ANONYMOUS_ID_PREFIX = "anon_"

# DOM marker attributes
FORM_MARKER = "data-newsletter-form"
CONTENT_ID_MARKER = "data-content-id"
CONTENT_TYPE_MARKER = "data-content-type"

ErrorCallback = Callable[[Exception, str], None]


# ============== STORAGE ==============

class MemoryStorage(MutableMapping):
    """In-process storage, lost when the process exits."""

    def __init__(self, initial: Optional[Mapping[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __setitem__(self, key: str, value: str):
        self._data[key] = str(value)

    def __delitem__(self, key: str):
        del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)


class JsonFileStorage(MemoryStorage):
    """Storage persisted to a JSON file, rewritten on every change."""

    def __init__(self, path):
        self.path = Path(path)
        initial = {}
        if self.path.exists():
            try:
                initial = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning(f"Ignoring unreadable visitor storage {self.path}: {e}")
        super().__init__({k: str(v) for k, v in initial.items()} if isinstance(initial, dict) else {})

    def _save(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._data), encoding="utf-8")

    def __setitem__(self, key: str, value: str):
        super().__setitem__(key, value)
        self._save()

    def __delitem__(self, key: str):
        super().__delitem__(key)
        self._save()


# ============== IDENTITY ==============

class VisitorIdentity(BaseModel):
    anonymous_id: str
    is_returning: bool
    visit_count: int
    last_visit: Optional[str] = None


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_anonymous_id() -> str:
    """Random visitor id: 'anon_' followed by a version 4 UUID."""
    return f"{ANONYMOUS_ID_PREFIX}{uuid.uuid4()}"


def bootstrap_identity(storage: MutableMapping) -> VisitorIdentity:
    """
    Load or create the visitor identity and count this visit.

    The anonymous id is created once and then reused. Each call counts as
    one visit. Concurrent callers sharing a storage may race on the counter.
    """
    anonymous_id = storage.get(ANONYMOUS_ID_KEY)
    if not anonymous_id:
        anonymous_id = generate_anonymous_id()
        storage[ANONYMOUS_ID_KEY] = anonymous_id

    try:
        visit_count = int(storage.get(VISIT_COUNT_KEY) or 0)
    except ValueError:
        visit_count = 0
    visit_count += 1
    storage[VISIT_COUNT_KEY] = str(visit_count)

    last_visit = storage.get(LAST_VISIT_KEY)
    return VisitorIdentity(
        anonymous_id=anonymous_id,
        is_returning=bool(last_visit),
        visit_count=visit_count,
        last_visit=last_visit,
    )


def update_last_visit(storage: MutableMapping) -> str:
    now = _now_iso()
    storage[LAST_VISIT_KEY] = now
    return now


def log_tracking_error(error: Exception, event_type: str):
    """Default error callback."""
    logger.warning(f"Tracking error for {event_type} event: {error}")


# ============== CLIENT ==============

class TrackerClient:
    """
    Emits tracking events for one visitor.

    Args:
        storage: where the visitor identity is kept (defaults to memory)
        endpoint: ingestion URL (defaults to settings.tracker_url)
        transport: optional httpx transport, mainly for tests
        on_error: called with (exception, event type) when a send fails
    """

    def __init__(
        self,
        storage: Optional[MutableMapping] = None,
        endpoint: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_error: Optional[ErrorCallback] = None,
        timeout: float = 10.0,
    ):
        self.storage = storage if storage is not None else MemoryStorage()
        self.endpoint = endpoint or get_settings().tracker_url
        self.transport = transport
        self.on_error = on_error or log_tracking_error
        self.timeout = timeout
        self.client_id: Optional[str] = None
        self.identity: Optional[VisitorIdentity] = None
        self._tasks = set()

    def init(self, client_id: str) -> VisitorIdentity:
        """Bind to a registered client and count this visit."""
        self.client_id = client_id
        self.identity = bootstrap_identity(self.storage)
        return self.identity

    def identify(self, subscriber_id: str):
        """Attach a known subscriber to subsequent events."""
        self.storage[SUBSCRIBER_ID_KEY] = str(subscriber_id)

    def _report(self, error: Exception, event_type: str):
        try:
            self.on_error(error, event_type)
        except Exception as e:
            logger.error(f"Tracking error callback failed: {e}")

    async def send_event(
        self,
        event_type: str,
        data: Optional[Dict[str, Any]] = None,
        url: Optional[str] = None,
        path: Optional[str] = None,
        title: Optional[str] = None,
    ) -> bool:
        """
        Validate and post one event. Returns True when the endpoint accepted it.

        Never raises: invalid events and delivery failures go to on_error.
        """
        if self.identity is None:
            self.identity = bootstrap_identity(self.storage)

        try:
            envelope = EventEnvelope(
                client_id=self.client_id,
                anonymous_id=self.identity.anonymous_id,
                subscriber_id=self.storage.get(SUBSCRIBER_ID_KEY),
                type=event_type,
                timestamp=_now_iso(),
                url=url,
                path=path,
                title=title,
                is_returning=self.identity.is_returning,
                visit_count=self.identity.visit_count,
                last_visit=self.identity.last_visit,
                data=data or {},
            )
        except ValidationError as e:
            self._report(e, str(event_type))
            return False

        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.timeout) as http:
                response = await http.post(
                    self.endpoint,
                    json=envelope.model_dump(mode="json", by_alias=True, exclude_none=True),
                )
                response.raise_for_status()
            update_last_visit(self.storage)
        except Exception as e:
            # httpx errors, unencodable data and storage write failures alike
            self._report(e, envelope.type)
            return False

        return True

    def dispatch(self, coro) -> asyncio.Task:
        """Schedule a send without waiting for it. Needs a running event loop."""
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def flush(self):
        """Wait for every dispatched send to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    # ============== EVENT HELPERS ==============

    async def track_page_view(self, url: str, path: Optional[str] = None, title: Optional[str] = None) -> bool:
        return await self.send_event(EventType.PAGEVIEW.value, url=url, path=path, title=title)

    async def track_form_interaction(self, form_id: str, element: str = "BUTTON", action: str = "click") -> bool:
        return await self.send_event(
            EventType.FORM_INTERACTION.value,
            data={"formId": form_id, "element": element, "action": action},
        )

    async def track_content_interaction(self, content_id: str, content_type: Optional[str] = None) -> bool:
        data = {"contentId": content_id, "contentType": content_type or "unknown"}
        subscriber_id = self.storage.get(SUBSCRIBER_ID_KEY)
        if subscriber_id:
            data["subscriberId"] = subscriber_id
        return await self.send_event(EventType.CONTENT_INTERACTION.value, data=data)

    async def track_subscription(self, email: str, form_id: Optional[str] = None, first_name: Optional[str] = None) -> bool:
        data = {"email": email}
        if form_id:
            data["formId"] = form_id
        if first_name:
            data["firstName"] = first_name
        return await self.send_event(EventType.SUBSCRIPTION.value, data=data)

    async def handle_click(
        self,
        markers: Mapping[str, str],
        element: str = "BUTTON",
        action: str = "click",
    ) -> List[bool]:
        """
        Handle a click given the marker attributes of the clicked element's
        marked ancestors, e.g. {"data-content-id": "post-1"}.

        Sends a form interaction inside a newsletter form and a content
        interaction inside tagged content; both when both apply.
        """
        results = []
        if markers.get(FORM_MARKER):
            results.append(await self.track_form_interaction(markers[FORM_MARKER], element, action))
        if markers.get(CONTENT_ID_MARKER):
            results.append(await self.track_content_interaction(
                markers[CONTENT_ID_MARKER], markers.get(CONTENT_TYPE_MARKER)
            ))
        return results
