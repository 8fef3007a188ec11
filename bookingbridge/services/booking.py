"""
Booking orchestration against SimplyBook.me.

The upstream API has no atomic "book if free" call and no locking, so the
orchestrator re-checks the slot right before every write:

    START -> TOKEN_ACQUIRED -> AVAILABILITY_CONFIRMED -> CLIENT_CREATED
          -> BOOKING_ATTEMPTED{1..n} -> DONE | FAILED

This narrows the race between the read and the write but cannot close it.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..adapters.simplybook_client import SimplyBookClient
from ..domain.exceptions import (
    BookingError,
    InvalidRequestError,
    SimplyBookAPIError,
    SlotConflictError,
    UpstreamError,
)
from ..domain.models import BookingRequest, BookingResult, ResourceUnit, TimeSlot
from .availability import AvailabilityService, TokenProviderProtocol

logger = logging.getLogger(__name__)


class BookingClientProtocol(Protocol):
    """Protocol describing the write calls needed by the booking service."""

    def add_client(self, user_token: str, client_data: Dict[str, Any]) -> Any:
        """Create a client and return its id."""

    def book(self, user_token: str, **kwargs: Any) -> Dict[str, Any]:
        """Create a booking."""


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how patiently the booking call is retried."""
    max_attempts: int = 3
    delay_seconds: float = 1.0


def is_unavailable_error(error: SimplyBookAPIError, markers: Sequence[str]) -> bool:
    """
    Decide whether a ``book`` error means the slot was taken.

    SimplyBook reports this only through its free-text error message, so the
    check is a case-insensitive substring match against configured markers.
    """
    message = (error.message or "").lower()
    return any(marker.lower() in message for marker in markers if marker)


def extract_booking_id(result: Any) -> Any:
    """Pick the booking identifier out of a ``book`` result."""
    if not isinstance(result, dict):
        return result
    for key in ("bookingHash", "booking_id", "id"):
        if result.get(key):
            return result[key]
    bookings = result.get("bookings")
    if isinstance(bookings, list) and bookings and isinstance(bookings[0], dict):
        return bookings[0].get("id")
    return None


class BookingService:
    """
    Books a slot for a client with availability re-checks and bounded retry.
    """

    def __init__(
        self,
        client: BookingClientProtocol,
        authenticator: TokenProviderProtocol,
        availability: AvailabilityService,
        retry_policy: RetryPolicy = RetryPolicy(),
        client_time_offset: int = 0,
        unavailable_markers: Sequence[str] = ("not available",),
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._authenticator = authenticator
        self._availability = availability
        self._retry_policy = retry_policy
        self._client_time_offset = client_time_offset
        self._unavailable_markers = list(unavailable_markers)
        self._sleep = sleep

    def resolve_unit(self, unit_id: int) -> ResourceUnit:
        """Return the allow-listed unit for an id."""
        for unit in self._availability.units:
            if unit.unit_id == unit_id:
                return unit
        raise InvalidRequestError(f"Unknown unit: {unit_id}")

    def build_slot(self, start_time: str) -> TimeSlot:
        try:
            return self._availability.slot_calculator.build_slot(start_time)
        except ValueError as exc:
            raise InvalidRequestError(str(exc)) from exc

    def book(self, request: BookingRequest) -> BookingResult:
        """
        Run the full booking sequence.

        Raises:
            InvalidRequestError: Unknown unit or malformed start time
            AuthenticationError: Admin token could not be obtained
            SlotConflictError: Slot is taken (never retried)
            BookingError: Client creation failed or all attempts failed
        """
        unit = self.resolve_unit(request.unit_id)
        slot = self.build_slot(request.start_time)
        logger.info("Attempting to book %s (unit %s) at %s", unit.name, unit.unit_id, slot.start_time)

        admin_token = self._authenticator.get_admin_token()

        try:
            try:
                self._ensure_slot_free(admin_token, slot, request.service_id, unit.unit_id)
            except SimplyBookAPIError as exc:
                logger.warning("Availability check rejected (%s); retrying with a fresh token", exc)
                admin_token = self._authenticator.get_admin_token(force_refresh=True)
                self._ensure_slot_free(admin_token, slot, request.service_id, unit.unit_id)
        except UpstreamError as exc:
            raise BookingError(f"Failed to verify availability: {exc}") from exc
        logger.info("Time slot confirmed available, proceeding with booking")

        client_id = self._create_client(admin_token, request)

        result, attempts = self._book_with_retry(admin_token, slot, request, unit, client_id)
        booking_id = extract_booking_id(result)
        logger.info("Booking %s created on attempt %d", booking_id, attempts)

        self._verify_booking(admin_token, slot, request.service_id, unit.unit_id)

        return BookingResult(
            booking_id=booking_id,
            unit=unit,
            start_time=request.start_time,
            attempts=attempts,
            raw=result if isinstance(result, dict) else {},
        )

    def _ensure_slot_free(
        self,
        admin_token: str,
        slot: TimeSlot,
        service_id: int,
        unit_id: int,
    ) -> None:
        conflict = self._availability.find_slot_conflict(admin_token, slot, service_id, unit_id)
        if conflict is not None:
            logger.info("Slot %s conflicts with %s", slot.start_time, conflict)
            raise SlotConflictError()

    def _create_client(self, admin_token: str, request: BookingRequest) -> Any:
        try:
            client_id = self._client.add_client(admin_token, request.client_payload())
        except UpstreamError as exc:
            logger.error("Client creation error: %s", exc)
            raise BookingError(f"Failed to create client: {exc}") from exc

        if not client_id:
            raise BookingError("Failed to create client: Unknown error")

        logger.info("Client created with ID %s", client_id)
        return client_id

    def _book_with_retry(
        self,
        admin_token: str,
        slot: TimeSlot,
        request: BookingRequest,
        unit: ResourceUnit,
        client_id: Any,
    ) -> tuple[Any, int]:
        """
        Re-check and book until success, a conflict, or the attempts run out.

        Only ``UpstreamError`` is retried; ``SlotConflictError`` ends the loop.
        An API error re-issues the admin token before the next attempt.
        """
        max_attempts = self._retry_policy.max_attempts
        token = {"admin": admin_token}
        attempts = 0

        def attempt_booking() -> Any:
            nonlocal attempts
            attempts += 1
            self._ensure_slot_free(token["admin"], slot, request.service_id, unit.unit_id)
            try:
                return self._client.book(
                    token["admin"],
                    service_id=request.service_id,
                    unit_id=unit.unit_id,
                    client_id=client_id,
                    start_date=slot.date,
                    start_time=f"{slot.time}:00",
                    end_date=slot.end_date,
                    end_time=slot.end_time_of_day,
                    client_time_offset=self._client_time_offset,
                    additional_fields={},
                    count=1,
                )
            except SimplyBookAPIError as exc:
                if is_unavailable_error(exc, self._unavailable_markers):
                    logger.info("Upstream reports slot unavailable on attempt %d", attempts)
                    raise SlotConflictError() from exc
                raise

        def log_before_attempt(retry_state: RetryCallState) -> None:
            logger.info("Booking attempt %d/%d", retry_state.attempt_number, max_attempts)

        def before_next_attempt(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning("Booking error on attempt %d: %s", retry_state.attempt_number, error)
            if isinstance(error, SimplyBookAPIError):
                token["admin"] = self._authenticator.get_admin_token(force_refresh=True)
            logger.info("Waiting %.1f seconds before retry", self._retry_policy.delay_seconds)

        retrying = Retrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_fixed(self._retry_policy.delay_seconds),
            retry=retry_if_exception_type(UpstreamError),
            before=log_before_attempt,
            before_sleep=before_next_attempt,
            sleep=self._sleep,
            reraise=True,
        )

        try:
            result = retrying(attempt_booking)
        except UpstreamError as exc:
            logger.error("All booking attempts failed: %s", exc)
            raise BookingError(f"Failed to create booking: {exc}") from exc
        return result, attempts

    def _verify_booking(
        self,
        admin_token: str,
        slot: TimeSlot,
        service_id: int,
        unit_id: int,
    ) -> None:
        """Log whether the new booking already shows up as reserved."""
        try:
            conflict = self._availability.find_slot_conflict(admin_token, slot, service_id, unit_id)
        except UpstreamError as exc:
            logger.warning("Booking verification failed: %s", exc)
            return
        logger.info(
            "Post-booking check: %s is %s",
            slot.start_time,
            "reserved" if conflict is not None else "NOT yet reserved",
        )

    def booking_params(
        self,
        start_time: str,
        service_id: int,
        unit_id: int,
        client_time_offset: Optional[int] = None,
    ) -> List[Any]:
        """``book`` parameters for a slot, with a placeholder client id."""
        slot = self.build_slot(start_time)
        return SimplyBookClient.booking_params(
            service_id=service_id,
            unit_id=unit_id,
            client_id="CLIENT_ID_PLACEHOLDER",
            start_date=slot.date,
            start_time=f"{slot.time}:00",
            end_date=slot.end_date,
            end_time=slot.end_time_of_day,
            client_time_offset=(
                self._client_time_offset if client_time_offset is None else client_time_offset
            ),
        )
