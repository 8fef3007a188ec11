"""
Tests for the BookingService: re-checks, client creation and bounded retry.
"""

import pytest

from bookingbridge.domain.exceptions import (
    BookingError,
    InvalidRequestError,
    SimplyBookAPIError,
    SlotConflictError,
    UpstreamError,
)
from bookingbridge.domain.models import BookingRequest, IntervalKind, ReservedInterval
from bookingbridge.services.booking import extract_booking_id, is_unavailable_error

from stubs import JOSH, MASON, StubSimplyBookClient, build_booking


def _request(unit_id=MASON.unit_id, start_time="2024-11-25 16:00", notes=""):
    return BookingRequest(
        start_time=start_time,
        service_id=2,
        unit_id=unit_id,
        client_name="Ada Lovelace",
        client_email="ada@example.com",
        client_phone="+441234567",
        client_notes=notes,
    )


class TestBookingFlow:
    """Happy path and request validation."""

    def test_successful_booking(self):
        client = StubSimplyBookClient(book_outcomes=[{"bookingHash": "abc"}])
        service = build_booking(client)

        result = service.book(_request(notes=" hi "))

        assert result.booking_id == "abc"
        assert result.attempts == 1
        assert result.message == "Booking confirmed with Mason for 2024-11-25 16:00!"
        assert client.client_calls == [
            {"name": "Ada Lovelace", "email": "ada@example.com", "phone": "+441234567", "notes": "hi"}
        ]
        call = client.book_calls[0]
        assert call["client_id"] == 501
        assert call["start_date"] == "2024-11-25"
        assert call["start_time"] == "16:00:00"
        assert call["end_date"] == "2024-11-25"
        assert call["end_time"] == "16:55:00"
        assert call["unit_id"] == MASON.unit_id

    def test_unknown_unit_is_rejected(self):
        service = build_booking(StubSimplyBookClient())

        with pytest.raises(InvalidRequestError):
            service.book(_request(unit_id=99))

    def test_malformed_start_time_is_rejected(self):
        service = build_booking(StubSimplyBookClient())

        with pytest.raises(InvalidRequestError):
            service.book(_request(start_time="tomorrow"))


class TestConflicts:
    """The slot is checked before client creation and before every attempt."""

    def test_conflict_before_client_creation(self):
        client = StubSimplyBookClient(
            reserved={
                JOSH.unit_id: {
                    "2024-11-25": [ReservedInterval.from_clock("16:00", "16:55", IntervalKind.RESERVED)]
                }
            },
        )
        service = build_booking(client)

        with pytest.raises(SlotConflictError):
            service.book(_request(unit_id=JOSH.unit_id))

        assert client.client_calls == []
        assert client.book_calls == []

    def test_upstream_not_available_is_not_retried(self):
        sleeps = []
        client = StubSimplyBookClient(
            book_outcomes=[SimplyBookAPIError("Selected time start is NOT AVAILABLE")]
        )
        service = build_booking(client, sleeps)

        with pytest.raises(SlotConflictError):
            service.book(_request())

        assert len(client.book_calls) == 1
        assert sleeps == []

    def test_verification_failure_before_booking(self):
        client = StubSimplyBookClient()
        client.reserved_errors.append(UpstreamError("Request failed: timeout"))
        service = build_booking(client)

        with pytest.raises(BookingError, match="Failed to verify availability"):
            service.book(_request())

    def test_slot_taken_between_attempts(self):
        """Free at the pre-check, reserved by someone else before the retry."""
        sleeps = []
        taken = ReservedInterval.from_clock("16:00", "16:55", IntervalKind.RESERVED)
        client = StubSimplyBookClient(
            book_outcomes=[UpstreamError("Request failed: connection reset"), {"id": 77}]
        )
        client.reserved_sequence = [{}, {}, {MASON.unit_id: {"2024-11-25": [taken]}}]
        service = build_booking(client, sleeps)

        with pytest.raises(SlotConflictError):
            service.book(_request())

        assert len(client.book_calls) == 1
        assert sleeps == [1.0]


class TestRetry:
    """Bounded retry of transient booking failures."""

    def test_two_transient_errors_then_success(self):
        sleeps = []
        client = StubSimplyBookClient(
            book_outcomes=[
                SimplyBookAPIError("Internal error"),
                UpstreamError("Request failed: connection reset"),
                {"id": 77},
            ]
        )
        service = build_booking(client, sleeps)

        result = service.book(_request())

        assert result.booking_id == 77
        assert result.attempts == 3
        assert sleeps == [1.0, 1.0]

    def test_exhausted_attempts(self):
        sleeps = []
        client = StubSimplyBookClient(
            book_outcomes=[SimplyBookAPIError("Internal error")] * 3
        )
        service = build_booking(client, sleeps)

        with pytest.raises(BookingError, match="Failed to create booking: Internal error"):
            service.book(_request())

        assert len(client.book_calls) == 3
        assert sleeps == [1.0, 1.0]


class TestTokenRefresh:
    """An API error re-issues the admin token instead of reusing a revoked one."""

    def test_rejected_pre_check_uses_fresh_token(self):
        client = StubSimplyBookClient(book_outcomes=[{"id": 77}])
        client.rejected_tokens.add("admin-token")
        service = build_booking(client)

        result = service.book(_request())

        assert result.booking_id == 77
        assert client.book_tokens == ["admin-token-2"]

    def test_api_error_on_book_refreshes_before_next_attempt(self):
        client = StubSimplyBookClient(
            book_outcomes=[SimplyBookAPIError("Access denied"), {"id": 77}]
        )
        service = build_booking(client)

        result = service.book(_request())

        assert result.attempts == 2
        assert client.book_tokens == ["admin-token", "admin-token-2"]


class TestClientCreation:
    """Failures creating the client record."""

    def test_client_creation_error(self):
        client = StubSimplyBookClient(client_id=SimplyBookAPIError("Email is invalid"))
        service = build_booking(client)

        with pytest.raises(BookingError, match="Failed to create client: Email is invalid"):
            service.book(_request())

        assert client.book_calls == []

    def test_missing_client_id(self):
        service = build_booking(StubSimplyBookClient(client_id=None))

        with pytest.raises(BookingError, match="Failed to create client"):
            service.book(_request())


def test_booking_params_uses_placeholder_client():
    service = build_booking(StubSimplyBookClient())

    params = service.booking_params("2024-11-25 17:05", 2, MASON.unit_id)

    assert params == [
        2, MASON.unit_id, "CLIENT_ID_PLACEHOLDER",
        "2024-11-25", "17:05:00", "2024-11-25", "18:00:00", 0, {}, 1,
    ]


@pytest.mark.parametrize(
    "result, expected",
    [
        ({"bookingHash": "h1", "id": 3}, "h1"),
        ({"booking_id": 5}, 5),
        ({"id": 9}, 9),
        ({"bookings": [{"id": 11}]}, 11),
        ({}, None),
        ("raw-id", "raw-id"),
    ],
)
def test_extract_booking_id(result, expected):
    assert extract_booking_id(result) == expected


def test_unavailable_markers_are_case_insensitive():
    error = SimplyBookAPIError("Time Not Available")

    assert is_unavailable_error(error, ["not available"])
    assert not is_unavailable_error(error, ["fully booked"])
