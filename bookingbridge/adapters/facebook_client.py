"""
Facebook Conversions API client.
"""

import logging
from typing import Any, Dict, Optional

import requests

from ..domain.exceptions import ConversionsAPIError, ConversionsConfigError

logger = logging.getLogger(__name__)


class ConversionsAPIClient:
    """
    Posts event batches to ``/<pixel_id>/events`` on the Graph API.
    """

    GRAPH_API_ENDPOINT = "https://graph.facebook.com"
    USER_AGENT = "Conversions-API-Server/1.0"

    def __init__(
        self,
        pixel_id: Optional[str],
        access_token: Optional[str],
        api_version: str = "v18.0",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ):
        self.pixel_id = pixel_id
        self.access_token = access_token
        self.api_version = api_version
        self.timeout = timeout
        self.session = session or requests.Session()

    @property
    def events_url(self) -> str:
        return f"{self.GRAPH_API_ENDPOINT}/{self.api_version}/{self.pixel_id}/events"

    def send_events(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Send an event payload and return the decoded response body.

        The access token is filled in from the client when the payload has none.

        Raises:
            ConversionsConfigError: If pixel id or access token is missing
            ConversionsAPIError: If the request fails or is rejected
        """
        if not self.pixel_id:
            raise ConversionsConfigError("Facebook Pixel ID is not configured")
        if not self.access_token:
            raise ConversionsConfigError("Facebook Access Token is not configured")

        body = dict(payload)
        body.setdefault("access_token", self.access_token)
        if body.get("test_event_code") is None:
            body.pop("test_event_code", None)

        try:
            response = self.session.post(
                self.events_url,
                json=body,
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": self.USER_AGENT,
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            logger.error("Facebook API request timed out: %s", e)
            raise ConversionsAPIError("Facebook API request timed out") from e
        except requests.exceptions.ConnectionError as e:
            logger.error("Unable to connect to Facebook API: %s", e)
            raise ConversionsAPIError("Unable to connect to Facebook API") from e
        except requests.exceptions.HTTPError as e:
            raise self._translate_http_error(e) from e
        except requests.exceptions.RequestException as e:
            logger.error("Facebook API Error: %s", e)
            raise ConversionsAPIError(str(e)) from e

        try:
            data = response.json()
        except ValueError as e:
            raise ConversionsAPIError(f"Failed to parse Facebook API response: {e}") from e

        logger.debug(
            "Facebook API response: status=%s events_received=%s messages=%s",
            response.status_code,
            data.get("events_received"),
            data.get("messages"),
        )
        return data

    @staticmethod
    def _translate_http_error(error: requests.exceptions.HTTPError) -> ConversionsAPIError:
        response = error.response
        status = response.status_code if response is not None else None
        try:
            body = response.json() if response is not None else {}
        except ValueError:
            body = {}

        logger.error("Facebook API Error: status=%s body=%s", status, body)

        fb_error = body.get("error") if isinstance(body, dict) else None
        if isinstance(fb_error, dict):
            return ConversionsAPIError(
                f"Facebook API Error: {fb_error.get('message')} (Code: {fb_error.get('code')})"
            )
        return ConversionsAPIError(str(error))
