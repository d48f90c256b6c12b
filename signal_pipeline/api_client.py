"""
HTTP client for the remote prospecting API.

Every call carries the current bearer token. A 401 is handed to the
SessionManager, which decides per endpoint whether to resync and retry
once or to end the session. Other failures raise ApiError with the most
useful message the response offers. Nothing here retries on its own.
"""

import json
import logging
from typing import Any, Dict, Optional

import requests

from .config import API_BASE, HTTP_TIMEOUT
from .errors import ApiError

logger = logging.getLogger(__name__)


def error_message(response: requests.Response) -> str:
    """
    Pick the message to show for a failed response.

    JSON "message" field, else the JSON itself, else the raw body,
    else a generic status line.
    """
    body = response.text or ""
    try:
        data = json.loads(body)
    except ValueError:
        return body or f"API error: {response.status_code}"
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return json.dumps(data)


class ApiClient:
    """
    Attributes:
        sessions: SessionManager supplying tokens and handling 401s
        base_url: API root, e.g. http://localhost:3002
        http: requests.Session (tests inject a fake)
    """

    def __init__(
        self,
        sessions,
        base_url: str = API_BASE,
        http: Optional[requests.Session] = None,
        timeout: float = HTTP_TIMEOUT,
    ):
        self.sessions = sessions
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()
        self.timeout = timeout
        self.request_count = 0

    def _send(self, method: str, endpoint: str, body: Optional[Dict], params: Optional[Dict]) -> requests.Response:
        headers = {"Content-Type": "application/json"}
        token = self.sessions.get_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            self.request_count += 1
            return self.http.request(
                method,
                f"{self.base_url}{endpoint}",
                headers=headers,
                json=body,
                params=params,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"{method} {endpoint} failed: {e}")
            raise ApiError(f"Network error: {e}", endpoint=endpoint)

    @staticmethod
    def _parse(response: requests.Response) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    def request(self, method: str, endpoint: str, body: Optional[Dict] = None, params: Optional[Dict] = None) -> Any:
        """
        Perform one API call and return the decoded JSON body.

        Raises:
            SessionExpiredError: the session itself is gone (verification endpoint)
            ApiError: any other failure
        """
        logger.debug(f"API call: {method} {endpoint}")
        response = self._send(method, endpoint, body, params)

        if response.status_code == 401:
            # resyncs; ends the session and raises for the verification endpoint
            if self.sessions.on_unauthorized(endpoint):
                response = self._send(method, endpoint, body, params)
                if response.ok:
                    return self._parse(response)
            if response.status_code == 401:
                self.sessions.unauthorized_after_retry(endpoint)
                raise ApiError("Not authorized. Please sign in again.", status=401, endpoint=endpoint)

        if not response.ok:
            message = error_message(response)
            logger.error(f"API error {response.status_code} on {endpoint}: {message}")
            raise ApiError(message, status=response.status_code, endpoint=endpoint)

        return self._parse(response)

    def get(self, endpoint: str, params: Optional[Dict] = None) -> Any:
        return self.request("GET", endpoint, params=params)

    def post(self, endpoint: str, body: Optional[Dict] = None) -> Any:
        return self.request("POST", endpoint, body=body)
