"""HTTP client shared by the badge fetcher and the status reporter.

Usage:
    client = HttpClient(token="ghp_xxx", timeout=30)
    body   = client.get_bytes("https://coverage.example.com/bo/badges/flat.svg")
    ack    = client.post_json("https://api.github.com/repos/o/r/statuses/abc", payload)
"""

import logging
from typing import Any

import requests

logger = logging.getLogger(__name__)

API_HEADERS = {"Accept": "application/vnd.github+json"}


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ClientError(Exception):
    """Base exception for all client errors."""


class AuthenticationError(ClientError):
    """Raised on HTTP 401/403: invalid, expired or under-scoped token."""


class NotFoundError(ClientError):
    """Raised on HTTP 404 (or any 4xx on a plain artifact GET)."""


class EmptyResponseError(ClientError):
    """Raised when an artifact GET succeeds but returns no body."""


class TransientError(ClientError):
    """Raised on HTTP 5xx: safe to retry."""


class NetworkError(TransientError):
    """Raised on connection timeout or unreachable server."""


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class HttpClient:
    """Thin wrapper around ``requests`` mapping HTTP failures to exceptions."""

    def __init__(self, token: str | None = None, timeout: float = 30) -> None:
        self._timeout = timeout
        self._session = requests.Session()
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def get_bytes(self, url: str) -> bytes:
        """GET *url* anonymously and return the raw body.

        Raises:
            NotFoundError:      any 4xx response
            TransientError:     5xx response
            NetworkError:       timeout or connection failure
            EmptyResponseError: 2xx with an empty body
        """
        # Public artifacts never need the review-system token.
        response = self._send("GET", url, headers={"Authorization": None})

        if 400 <= response.status_code < 500:
            raise NotFoundError(
                f"Artifact not available: {url} (HTTP {response.status_code})"
            )
        self._raise_for_server_error(response, url)
        if not response.ok:
            raise ClientError(
                f"Unexpected response {response.status_code} from {url}"
            )

        body = response.content
        if not body or not body.strip():
            raise EmptyResponseError(f"Empty response body from {url}")
        return body

    def post_json(self, url: str, payload: dict[str, Any]) -> dict:
        """POST *payload* as JSON and return the decoded JSON response.

        Raises:
            AuthenticationError: HTTP 401 or 403
            NotFoundError:       HTTP 404
            TransientError:      HTTP 5xx
            NetworkError:        timeout or connection failure
            ClientError:         any other non-2xx response
        """
        response = self._send("POST", url, headers=API_HEADERS, json=payload)

        if response.status_code in (401, 403):
            raise AuthenticationError(
                f"Authentication failed ({response.status_code}); check that the "
                "token is valid and allowed to write commit statuses."
            )
        if response.status_code == 404:
            raise NotFoundError(f"Resource not found: {url}")
        self._raise_for_server_error(response, url)
        if not response.ok:
            raise ClientError(
                f"Unexpected response {response.status_code} from {url}: {response.text[:200]}"
            )

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        logger.debug("%s %s", method, url)
        try:
            return self._session.request(
                method, url, timeout=self._timeout, **kwargs
            )
        except requests.exceptions.Timeout as exc:
            raise NetworkError(
                f"Request timed out after {self._timeout}s while contacting '{url}'"
            ) from exc
        except requests.exceptions.ConnectionError as exc:
            raise NetworkError(f"Unable to reach '{url}'") from exc

    @staticmethod
    def _raise_for_server_error(response: requests.Response, url: str) -> None:
        if response.status_code >= 500:
            raise TransientError(
                f"Server error {response.status_code} from {url}: {response.text[:200]}"
            )
