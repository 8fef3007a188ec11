"""
Tests for the SimplyBook JSON-RPC client and token authenticator.
"""

from unittest.mock import MagicMock

import pytest
import requests

from bookingbridge.adapters.simplybook_authenticator import SimplyBookAuthenticator
from bookingbridge.adapters.simplybook_client import SimplyBookClient
from bookingbridge.domain.exceptions import AuthenticationError, SimplyBookAPIError, UpstreamError
from bookingbridge.domain.models import IntervalKind


def _client(body=None, json_error=None, post_error=None):
    session = MagicMock()
    if post_error is not None:
        session.post.side_effect = post_error
    response = session.post.return_value
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = body
    return SimplyBookClient(company_login="acme", session=session), session


class TestCall:
    """Tests for the JSON-RPC envelope and error mapping."""

    def test_envelope_and_headers(self):
        client, session = _client({"jsonrpc": "2.0", "result": {"2024-11-25": ["16:00"]}, "id": 1})

        matrix = client.get_start_time_matrix("tok", "2024-11-25", "2024-11-29", 2, 4)

        assert matrix == {"2024-11-25": ["16:00"]}
        args, kwargs = session.post.call_args
        assert args[0] == "https://user-api.simplybook.it/"
        assert kwargs["json"]["jsonrpc"] == "2.0"
        assert kwargs["json"]["method"] == "getStartTimeMatrix"
        assert kwargs["json"]["params"] == ["2024-11-25", "2024-11-29", 2, 4, 1]
        assert kwargs["headers"]["X-Company-Login"] == "acme"
        assert kwargs["headers"]["X-Token"] == "tok"

    def test_admin_calls_use_user_token(self):
        client, session = _client({"result": 17})

        assert client.add_client("admin-tok", {"name": "Ada"}) == 17

        args, kwargs = session.post.call_args
        assert args[0].endswith("/admin/")
        assert kwargs["headers"]["X-User-Token"] == "admin-tok"
        assert kwargs["json"]["params"] == [{"name": "Ada"}]

    def test_login_uses_login_endpoint(self):
        client, session = _client({"result": "secret"})

        assert client.get_user_token("admin", "pw") == "secret"

        args, kwargs = session.post.call_args
        assert args[0].endswith("/login")
        assert kwargs["json"]["params"] == ["acme", "admin", "pw"]

    def test_rpc_error_raises_api_error(self):
        client, _ = _client({"error": {"code": -32000, "message": "Selected time is not available"}})

        with pytest.raises(SimplyBookAPIError) as excinfo:
            client.get_booking("tok", 5)

        assert excinfo.value.code == -32000
        assert "not available" in str(excinfo.value)

    def test_non_json_body_raises_upstream_error(self):
        client, _ = _client(json_error=ValueError("Expecting value"))

        with pytest.raises(UpstreamError, match="Failed to parse response"):
            client.get_token("key")

    def test_transport_error_raises_upstream_error(self):
        client, _ = _client(post_error=requests.exceptions.ConnectionError("boom"))

        with pytest.raises(UpstreamError, match="Request failed"):
            client.get_token("key")


class TestReservedIntervals:
    """Tests for getReservedTimeIntervals parsing."""

    def test_groups_are_flattened_per_date(self):
        client, _ = _client({
            "result": {
                "2024-11-25": [
                    {"type": "reserved", "reserved_time": [{"from": "16:00", "to": "16:55"}], "intervals": []},
                    {"type": "not_worked", "not_worked_time": [{"from": "00:00", "to": "09:00"}]},
                ],
                "2024-11-26": [],
            }
        })

        reserved = client.get_reserved_time_intervals("admin-tok", "2024-11-25", "2024-11-26", 2, 4)

        monday = reserved["2024-11-25"]
        assert [(i.start, i.end, i.kind) for i in monday] == [
            (960, 1015, IntervalKind.RESERVED),
            (0, 540, IntervalKind.NOT_WORKED),
        ]
        assert reserved["2024-11-26"] == []

    def test_malformed_entries_are_skipped(self):
        client, _ = _client({
            "result": {"2024-11-25": [{"reserved_time": [{"from": "16:00"}, {"from": "17:00", "to": "17:55"}]}]}
        })

        reserved = client.get_reserved_time_intervals("admin-tok", "2024-11-25", "2024-11-25", 2, 4)

        assert len(reserved["2024-11-25"]) == 1

    def test_empty_result(self):
        client, _ = _client({"result": None})

        assert client.get_reserved_time_intervals("admin-tok", "2024-11-25", "2024-11-25", 2, 4) == {}


class TestStartTimeMatrix:
    """Tests for the getStartTimeMatrix result shape."""

    def test_date_mapping_is_returned(self):
        client, _ = _client({"result": {"2024-11-25": ["16:00", "17:00"]}})

        assert client.get_start_time_matrix("tok", "2024-11-25", "2024-11-25", 2, 4) == {
            "2024-11-25": ["16:00", "17:00"]
        }

    def test_empty_result(self):
        client, _ = _client({"result": []})

        assert client.get_start_time_matrix("tok", "2024-11-25", "2024-11-25", 2, 4) == {}

    def test_list_result_raises_upstream_error(self):
        client, _ = _client({"result": ["16:00"]})

        with pytest.raises(UpstreamError, match="Unexpected getStartTimeMatrix result"):
            client.get_start_time_matrix("tok", "2024-11-25", "2024-11-25", 2, 4)


def test_booking_params_layout():
    params = SimplyBookClient.booking_params(
        service_id=2,
        unit_id=4,
        client_id=99,
        start_date="2024-11-25",
        start_time="16:00:00",
        end_date="2024-11-25",
        end_time="16:55:00",
    )

    assert params == [2, 4, 99, "2024-11-25", "16:00:00", "2024-11-25", "16:55:00", 0, {}, 1]


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestAuthenticator:
    """Tests for token acquisition and caching."""

    def _authenticator(self, ttl_seconds, clock=None):
        client = MagicMock()
        client.get_token.side_effect = ["public-1", "public-2"]
        client.get_user_token.side_effect = ["admin-1", "admin-2"]
        authenticator = SimplyBookAuthenticator(
            client=client,
            api_key="key",
            admin_username="admin",
            admin_password="pw",
            ttl_seconds=ttl_seconds,
            clock=clock or FakeClock(),
        )
        return authenticator, client

    def test_no_cache_fetches_every_time(self):
        authenticator, client = self._authenticator(ttl_seconds=0)

        assert authenticator.get_public_token() == "public-1"
        assert authenticator.get_public_token() == "public-2"
        assert client.get_token.call_count == 2

    def test_cached_token_reused_until_expiry(self):
        clock = FakeClock()
        authenticator, client = self._authenticator(ttl_seconds=3300, clock=clock)

        assert authenticator.get_admin_token() == "admin-1"
        clock.now += 3299
        assert authenticator.get_admin_token() == "admin-1"
        clock.now += 1
        assert authenticator.get_admin_token() == "admin-2"
        assert client.get_user_token.call_count == 2

    def test_clear_cache_forces_login(self):
        authenticator, client = self._authenticator(ttl_seconds=3300)

        authenticator.get_public_token()
        authenticator.clear_cache()
        assert authenticator.get_public_token() == "public-2"

    def test_upstream_failure_becomes_authentication_error(self):
        authenticator, client = self._authenticator(ttl_seconds=0)
        client.get_token.side_effect = UpstreamError("Request failed: timeout")

        with pytest.raises(AuthenticationError, match="Failed to get public access token"):
            authenticator.get_public_token()

    def test_empty_token_is_rejected(self):
        authenticator, client = self._authenticator(ttl_seconds=0)
        client.get_user_token.side_effect = [""]

        with pytest.raises(AuthenticationError, match="Failed to get admin access token"):
            authenticator.get_admin_token()
