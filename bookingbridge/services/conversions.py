"""
Server-side conversion reporting to the Facebook Conversions API.

Events are shaped here (request context, defaults, hashed identifiers),
sent through ``ConversionsAPIClient`` and recorded in a bounded history
used by the status query.
"""

from __future__ import annotations

import hashlib
import logging
import re
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Optional, Protocol, Sequence

import pendulum

from ..domain.exceptions import BookingBridgeError

logger = logging.getLogger(__name__)

SHA256_HEX = re.compile(r"^[0-9a-f]{64}$")


class ConversionsSenderProtocol(Protocol):
    """Protocol describing the sender used by the conversions service."""

    pixel_id: Optional[str]

    def send_events(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Send a payload and return the decoded response."""


@dataclass
class RequestContext:
    """What the inbound HTTP request tells us about the browser."""
    client_ip_address: Optional[str] = None
    client_user_agent: Optional[str] = None
    referer: Optional[str] = None


@dataclass
class EventRecord:
    """One entry of the conversion event history."""
    id: str
    event_name: Optional[str]
    timestamp: str
    status: str
    response: Any = None
    error: Optional[str] = None
    batch: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "event_name": self.event_name,
            "timestamp": self.timestamp,
            "status": self.status,
        }
        if self.status == "success" and not self.batch:
            data["response"] = self.response
        if self.error is not None:
            data["error"] = self.error
        if self.batch:
            data["batch"] = True
        return data


class EventHistory:
    """
    Newest-first ring buffer of event records.

    Appending beyond ``maxlen`` evicts the oldest record.
    """

    def __init__(self, maxlen: int = 100) -> None:
        self._records: Deque[EventRecord] = deque(maxlen=maxlen)

    @property
    def maxlen(self) -> int:
        return self._records.maxlen or 0

    def add(self, record: EventRecord) -> None:
        self._records.appendleft(record)

    def recent(self, limit: int) -> List[EventRecord]:
        return list(self._records)[: max(limit, 0)]

    def __len__(self) -> int:
        return len(self._records)

    def count(self, status: str) -> int:
        return sum(1 for record in self._records if record.status == status)


def hash_email(email: str) -> str:
    """SHA-256 of the lower-cased, stripped email."""
    return hashlib.sha256(email.strip().lower().encode("utf-8")).hexdigest()


def hash_phone(phone: str) -> str:
    """SHA-256 of the phone number's digits."""
    digits = re.sub(r"\D", "", phone)
    return hashlib.sha256(digits.encode("utf-8")).hexdigest()


def prepare_user_data(user_data: Optional[Dict[str, Any]], context: RequestContext) -> Dict[str, Any]:
    """
    Hash identifying fields and attach the browser context.

    Values that already look like SHA-256 digests are passed through.
    """
    prepared = dict(user_data or {})

    email = prepared.get("em")
    if email and not SHA256_HEX.match(email):
        prepared["em"] = hash_email(email)

    phone = prepared.get("ph")
    if phone and not SHA256_HEX.match(phone):
        prepared["ph"] = hash_phone(phone)

    if context.client_ip_address:
        prepared["client_ip_address"] = context.client_ip_address
    if context.client_user_agent:
        prepared["client_user_agent"] = context.client_user_agent
    return prepared


class ConversionsService:
    """
    Shapes, sends and records conversion events.
    """

    def __init__(
        self,
        sender: ConversionsSenderProtocol,
        history: EventHistory,
        *,
        default_source_url: str,
        test_event_code: str = "TEST12345",
        development: bool = False,
        environment: str = "production",
        clock: Callable[[], pendulum.DateTime] = lambda: pendulum.now("UTC"),
    ) -> None:
        self._sender = sender
        self._history = history
        self._default_source_url = default_source_url
        self._test_event_code = test_event_code
        self._development = development
        self._environment = environment
        self._clock = clock

    @property
    def history(self) -> EventHistory:
        return self._history

    def build_event(
        self,
        event_name: str,
        context: RequestContext,
        *,
        user_data: Optional[Dict[str, Any]] = None,
        custom_data: Optional[Dict[str, Any]] = None,
        event_time: Optional[int] = None,
        apply_custom_defaults: bool = True,
    ) -> Dict[str, Any]:
        """Build one Conversions API event."""
        event: Dict[str, Any] = {
            "event_name": event_name,
            "event_time": event_time or self._clock().int_timestamp,
            "action_source": "website",
            "event_source_url": context.referer or self._default_source_url,
            "user_data": prepare_user_data(user_data, context),
        }

        custom = dict(custom_data or {})
        if apply_custom_defaults:
            custom["content_name"] = custom.get("content_name") or event_name
            custom["content_category"] = custom.get("content_category") or "conversion"
        if custom or apply_custom_defaults:
            event["custom_data"] = custom
        return event

    def build_payload(self, events: List[Dict[str, Any]], test: bool = False) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"data": events}
        if test or self._development:
            payload["test_event_code"] = self._test_event_code
        return payload

    def send_event(
        self,
        event_name: str,
        context: RequestContext,
        *,
        user_data: Optional[Dict[str, Any]] = None,
        custom_data: Optional[Dict[str, Any]] = None,
    ) -> EventRecord:
        """
        Send a single event and record the outcome.

        Raises:
            BookingBridgeError: The sender's error, after the failure was recorded
        """
        payload = self.build_payload(
            [self.build_event(event_name, context, user_data=user_data, custom_data=custom_data)]
        )

        try:
            response = self._sender.send_events(payload)
        except BookingBridgeError as exc:
            logger.error("Error sending conversion event %s: %s", event_name, exc)
            self._history.add(self._record(event_name, "failed", error=str(exc)))
            raise

        record = self._record(event_name, "success", response=response)
        self._history.add(record)
        return record

    def send_batch(self, events: Sequence[Dict[str, Any]], context: RequestContext) -> Dict[str, Any]:
        """
        Send several events in one request.

        Each event keeps its own ``event_time`` when given; custom data is
        passed through untouched.
        """
        shaped = [
            self.build_event(
                event["event_name"],
                context,
                user_data=event.get("user_data"),
                custom_data=event.get("custom_data"),
                event_time=event.get("event_time"),
                apply_custom_defaults=False,
            )
            for event in events
        ]

        response = self._sender.send_events(self.build_payload(shaped))

        for event in events:
            self._history.add(self._record(event["event_name"], "success", batch=True))
        logger.info("Sent batch of %d conversion events", len(events))
        return response

    def send_test_event(self, context: RequestContext) -> Dict[str, Any]:
        """Send a ``TestEvent`` tagged with the test event code."""
        event = self.build_event(
            "TestEvent",
            RequestContext(
                client_ip_address=context.client_ip_address,
                client_user_agent=context.client_user_agent,
                referer=f"{self._default_source_url.rstrip('/')}/test",
            ),
            custom_data={"content_name": "Test Event", "content_category": "test"},
        )
        response = self._sender.send_events(self.build_payload([event], test=True))
        return {
            "facebook_response": response,
            "environment": self._environment,
            "pixel_id": self._sender.pixel_id,
        }

    def get_status(self, limit: int = 20) -> Dict[str, Any]:
        """Counts and the most recent records of the history."""
        return {
            "total": len(self._history),
            "successful": self._history.count("success"),
            "failed": self._history.count("failed"),
            "recent_events": [record.to_dict() for record in self._history.recent(limit)],
        }

    def _record(
        self,
        event_name: Optional[str],
        status: str,
        *,
        response: Any = None,
        error: Optional[str] = None,
        batch: bool = False,
    ) -> EventRecord:
        return EventRecord(
            id=uuid.uuid4().hex,
            event_name=event_name,
            timestamp=self._clock().to_iso8601_string(),
            status=status,
            response=response,
            error=error,
            batch=batch,
        )
