"""
SimplyBook.me JSON-RPC client for scheduling data.
"""

import itertools
import logging
from typing import Any, Dict, List, Optional

import requests

from ..domain.exceptions import SimplyBookAPIError, UpstreamError
from ..domain.models import IntervalKind, ReservedInterval

logger = logging.getLogger(__name__)

INTERVAL_FIELDS = {
    "reserved_time": IntervalKind.RESERVED,
    "not_worked_time": IntervalKind.NOT_WORKED,
}


class SimplyBookClient:
    """
    Client for the SimplyBook.me JSON-RPC API.

    Three endpoints are used:
    - ``/login`` issues tokens
    - ``/`` is the public API, authenticated with ``X-Token``
    - ``/admin/`` is the company admin API, authenticated with ``X-User-Token``
    """

    DEFAULT_BASE_URL = "https://user-api.simplybook.it"

    def __init__(
        self,
        company_login: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the SimplyBook client.

        Args:
            company_login: Company login sent as ``X-Company-Login``
            base_url: API host
            timeout: Optional per-request timeout in seconds (none by default)
            session: Optional requests session, mainly for tests
        """
        self.company_login = company_login
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self._ids = itertools.count(1)

    def call(
        self,
        path: str,
        method: str,
        params: Any,
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """
        Perform one JSON-RPC call and return its ``result``.

        Raises:
            UpstreamError: If the request fails or the body is not JSON
            SimplyBookAPIError: If the response carries an ``error`` object
        """
        url = f"{self.base_url}{path}"
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }
        request_headers = {"Content-Type": "application/json"}
        request_headers.update(headers or {})

        try:
            response = self.session.post(
                url,
                json=payload,
                headers=request_headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f"Request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"Failed to parse response: {e}") from e

        if not isinstance(data, dict):
            raise UpstreamError(f"Unexpected response from {method}: {data!r}")

        if data.get("error"):
            raise SimplyBookAPIError.from_payload(data["error"])

        return data.get("result")

    def _public_headers(self, token: str) -> Dict[str, str]:
        return {"X-Company-Login": self.company_login, "X-Token": token}

    def _admin_headers(self, user_token: str) -> Dict[str, str]:
        return {"X-Company-Login": self.company_login, "X-User-Token": user_token}

    # Authentication

    def get_token(self, api_key: str) -> str:
        """Get a public API token."""
        return self.call(
            "/login",
            "getToken",
            {"company_login": self.company_login, "api_key": api_key},
        )

    def get_user_token(self, username: str, password: str) -> str:
        """Get an admin (user) API token."""
        return self.call(
            "/login",
            "getUserToken",
            [self.company_login, username, password],
        )

    # Public API

    def get_start_time_matrix(
        self,
        token: str,
        date_from: str,
        date_to: str,
        service_id: int,
        unit_id: int,
        count: int = 1,
    ) -> Dict[str, List[str]]:
        """
        Theoretical start times per date for one unit.

        Raises:
            UpstreamError: If the result is not a date-keyed mapping
        """
        result = self.call(
            "/",
            "getStartTimeMatrix",
            [date_from, date_to, service_id, unit_id, count],
            headers=self._public_headers(token),
        )
        if not result:
            return {}
        if not isinstance(result, dict):
            raise UpstreamError(f"Unexpected getStartTimeMatrix result: {result!r}")
        return result

    def get_booking(self, token: str, booking_id: Any) -> Dict[str, Any]:
        return self.call(
            "/",
            "getBooking",
            [booking_id],
            headers=self._public_headers(token),
        )

    # Admin API

    def get_reserved_time_intervals(
        self,
        user_token: str,
        date_from: str,
        date_to: str,
        service_id: int,
        unit_id: int,
        count: int = 1,
    ) -> Dict[str, List[ReservedInterval]]:
        """
        Reserved and not-worked intervals per date for one unit.

        Returns:
            Dictionary mapping date -> flattened list of ReservedInterval
        """
        result = self.call(
            "/admin/",
            "getReservedTimeIntervals",
            [date_from, date_to, int(service_id), int(unit_id), count],
            headers=self._admin_headers(user_token),
        )
        if result and not isinstance(result, dict):
            raise UpstreamError(f"Unexpected getReservedTimeIntervals result: {result!r}")
        return self._parse_reserved_intervals(result or {})

    def add_client(self, user_token: str, client_data: Dict[str, Any]) -> Any:
        """Create a client record and return its id."""
        return self.call(
            "/admin/",
            "addClient",
            [client_data],
            headers=self._admin_headers(user_token),
        )

    def book(
        self,
        user_token: str,
        *,
        service_id: int,
        unit_id: int,
        client_id: Any,
        start_date: str,
        start_time: str,
        end_date: str,
        end_time: str,
        client_time_offset: int = 0,
        additional_fields: Optional[Dict[str, Any]] = None,
        count: int = 1,
    ) -> Dict[str, Any]:
        """Create a booking; times are ``HH:MM:SS``."""
        return self.call(
            "/admin/",
            "book",
            self.booking_params(
                service_id=service_id,
                unit_id=unit_id,
                client_id=client_id,
                start_date=start_date,
                start_time=start_time,
                end_date=end_date,
                end_time=end_time,
                client_time_offset=client_time_offset,
                additional_fields=additional_fields,
                count=count,
            ),
            headers=self._admin_headers(user_token),
        )

    @staticmethod
    def booking_params(
        *,
        service_id: int,
        unit_id: int,
        client_id: Any,
        start_date: str,
        start_time: str,
        end_date: str,
        end_time: str,
        client_time_offset: int = 0,
        additional_fields: Optional[Dict[str, Any]] = None,
        count: int = 1,
    ) -> List[Any]:
        """Positional parameters of the ``book`` method."""
        return [
            service_id,
            unit_id,
            client_id,
            start_date,
            start_time,
            end_date,
            end_time,
            client_time_offset,
            additional_fields or {},
            count,
        ]

    def get_booking_list(self, user_token: str, date_from: str, date_to: str) -> Any:
        return self.call(
            "/admin/",
            "getBookingList",
            [{"from": date_from, "to": date_to}],
            headers=self._admin_headers(user_token),
        )

    def get_company_timezone_offset(self, user_token: str) -> Any:
        return self.call(
            "/admin/",
            "getCompanyTimezoneOffset",
            [],
            headers=self._admin_headers(user_token),
        )

    def get_company_info(self, user_token: str) -> Dict[str, Any]:
        return self.call(
            "/admin/",
            "getCompanyInfo",
            [],
            headers=self._admin_headers(user_token),
        )

    def _parse_reserved_intervals(
        self,
        response_data: Dict[str, Any],
    ) -> Dict[str, List[ReservedInterval]]:
        """
        Parse the getReservedTimeIntervals response into our domain model.

        Response format:
        {
            "2024-11-25": [
                {"type": "reserved", "reserved_time": [{"from": "16:00", "to": "16:55"}]},
                {"type": "busy_time", "not_worked_time": [{"from": "12:00", "to": "13:00"}]}
            ]
        }

        The ``intervals`` field is always empty upstream and is ignored.
        """
        reserved: Dict[str, List[ReservedInterval]] = {}

        if not isinstance(response_data, dict):
            return reserved

        for date, groups in response_data.items():
            day_intervals: List[ReservedInterval] = []

            for group in groups or []:
                if not isinstance(group, dict):
                    continue
                for field_name, kind in INTERVAL_FIELDS.items():
                    for entry in group.get(field_name) or []:
                        try:
                            day_intervals.append(
                                ReservedInterval.from_clock(entry["from"], entry["to"], kind)
                            )
                        except (KeyError, TypeError, ValueError) as e:
                            logger.warning("Could not parse %s entry on %s: %s", field_name, date, e)
                            continue

            reserved[date] = day_intervals

        return reserved
