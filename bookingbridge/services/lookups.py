"""
Read-only booking lookups and diagnostics against SimplyBook.me.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import pendulum

from ..domain.exceptions import BookingError, BookingNotFoundError, UpstreamError
from ..adapters.simplybook_client import SimplyBookClient
from .availability import TokenProviderProtocol, with_token_refresh
from .booking import BookingService

logger = logging.getLogger(__name__)


class BookingLookupService:
    """Booking status, booking lists and booking-parameter diagnostics."""

    def __init__(
        self,
        client: SimplyBookClient,
        authenticator: TokenProviderProtocol,
        booking_service: BookingService,
        service_duration: int,
    ) -> None:
        self._client = client
        self._authenticator = authenticator
        self._booking_service = booking_service
        self._service_duration = service_duration

    def get_booking_status(self, booking_id: str) -> Dict[str, Any]:
        """
        Fetch a booking through the public API.

        Raises:
            AuthenticationError: If the public token cannot be obtained
            BookingNotFoundError: If the upstream lookup fails
        """
        try:
            booking = with_token_refresh(
                self._authenticator.get_public_token,
                lambda token: self._client.get_booking(token, booking_id),
            )
        except UpstreamError as exc:
            logger.info("Booking %s not found: %s", booking_id, exc)
            raise BookingNotFoundError("Booking not found") from exc
        if not booking:
            raise BookingNotFoundError("Booking not found")
        return booking

    def list_bookings(self, date_from: str, date_to: str) -> Any:
        """All bookings in a date range, as returned upstream."""
        try:
            return with_token_refresh(
                self._authenticator.get_admin_token,
                lambda token: self._client.get_booking_list(token, date_from, date_to),
            )
        except UpstreamError as exc:
            raise BookingError(f"Failed to get bookings: {exc}") from exc

    def get_company_timezone_offset(self, admin_token: str) -> int:
        """
        Company timezone offset in seconds.

        Falls back to the company info (explicit offset, else the offset of
        its named timezone right now) and finally to 0.
        """
        try:
            offset = self._client.get_company_timezone_offset(admin_token)
        except UpstreamError as exc:
            logger.info("getCompanyTimezoneOffset failed, trying company info: %s", exc)
        else:
            if offset is not None:
                return int(offset)

        try:
            info = self._client.get_company_info(admin_token) or {}
        except UpstreamError as exc:
            logger.warning("Could not get company timezone info, using offset 0: %s", exc)
            return 0

        if info.get("timezone_offset") is not None:
            return int(info["timezone_offset"])
        if info.get("timezone"):
            try:
                return int(pendulum.now(info["timezone"]).offset)
            except (ValueError, KeyError) as exc:
                logger.warning("Unknown company timezone %r: %s", info["timezone"], exc)
        return 0

    def debug_booking_params(self, start_time: str, service_id: int, unit_id: int) -> Dict[str, Any]:
        """Show the parameters a booking for this slot would be sent with."""
        admin_token = self._authenticator.get_admin_token()
        timezone_offset = self.get_company_timezone_offset(admin_token)
        slot = self._booking_service.build_slot(start_time)

        try:
            company_info: Any = self._client.get_company_info(admin_token)
        except UpstreamError as exc:
            company_info = {"error": str(exc)}

        return {
            "start_time": start_time,
            "start_date": slot.date,
            "start_time_formatted": f"{slot.time}:00",
            "end_date": slot.end_date,
            "end_time": slot.end_time_of_day,
            "service_duration": self._service_duration,
            "timezone_offset": timezone_offset,
            "company_info": company_info,
            "booking_params": self._booking_service.booking_params(
                start_time,
                service_id,
                unit_id,
                client_time_offset=timezone_offset,
            ),
        }
