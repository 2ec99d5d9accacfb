"""Base client for the OSF API and its file downloads."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

import httpx

from .exceptions import (
    APIError,
    ConnectionError,
    ForbiddenError,
    GoneError,
    NotFoundError,
    RateLimitError,
)

logger = logging.getLogger(__name__)

ERRORS_BY_STATUS = {
    403: (ForbiddenError, "Access forbidden"),
    404: (NotFoundError, "Resource not found"),
    410: (GoneError, "Resource gone"),
    429: (RateLimitError, "Rate limit exceeded"),
}


class Client(ABC):
    """Base class for network clients.

    Wraps a lazily created httpx.Client that follows redirects (OSF download
    links answer with one). Every request is made once: failures surface as
    ClientError subclasses and retrying is left to the caller, which retries
    a whole preprint rather than a single request.

    Config keys:
        base_url (required): Base URL for relative paths
        timeout: Request timeout in seconds (default: 30)
        headers: Additional headers to include in requests
    """

    def __init__(self, config: dict):
        if "base_url" not in config:
            raise ValueError("config must include 'base_url'")

        self._config = config
        self._client: httpx.Client | None = None

    @property
    def base_url(self) -> str:
        return str(self._config["base_url"])

    @property
    def timeout(self) -> float:
        return float(self._config.get("timeout", 30))

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._config.get("headers", {}))

    @property
    def client(self) -> httpx.Client:
        """Lazy-initialized httpx client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.headers,
                follow_redirects=True,
            )
        return self._client

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Map HTTP errors to exceptions.

        Raises:
            ForbiddenError: For 403 responses
            NotFoundError: For 404 responses
            GoneError: For 410 responses
            RateLimitError: For 429 responses
            APIError: For other non-2xx responses
        """
        if response.is_success:
            return response

        status_code = response.status_code
        if status_code in ERRORS_BY_STATUS:
            error_class, reason = ERRORS_BY_STATUS[status_code]
            raise error_class(f"{reason}: {response.url}")
        raise APIError(
            f"API error {status_code}: {response.url}",
            status_code=status_code,
        )

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Make a single request.

        Args:
            method: HTTP method
            path: URL path (joined to base_url) or absolute URL
            **kwargs: Additional arguments passed to httpx.request

        Raises:
            ConnectionError: If the request fails below HTTP (refused, reset, timed out)
            APIError: If the API returns a non-2xx response
        """
        try:
            response = self.client.request(method, path, **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise ConnectionError(f"Request to {path} failed: {e}") from e
        return self._handle_response(response)

    def get(self, path: str, **kwargs) -> httpx.Response:
        return self._request("GET", path, **kwargs)

    def get_json(self, path: str, **kwargs) -> dict[str, Any]:
        """GET a URL and decode its JSON body.

        Raises:
            APIError: If a successful response does not carry JSON
        """
        response = self.get(path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise APIError(
                f"Response from {path} is not JSON",
                status_code=response.status_code,
            ) from e

    def download(self, url: str, destination: Path) -> int:
        """Download a URL to a local file.

        Returns:
            Number of bytes written
        """
        content = self.download_bytes(url)
        destination.write_bytes(content)
        return len(content)

    def download_bytes(self, url: str) -> bytes:
        """Download a URL and return its raw content."""
        return self.get(url).content

    @abstractmethod
    def fetch(self, *args, **kwargs) -> Any:
        """Fetch data from the API. Must be implemented by subclasses."""
        pass
