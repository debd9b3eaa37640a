"""
HTTP transport for Git hosting APIs.

Wraps an httpx client and turns error responses into typed exceptions.
Retrying is left to the caller (see gitpr.retry) so that rate limiting and
cancellation are applied uniformly to every attempt.
"""

import time
from typing import Any

import httpx

from gitpr.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NetworkError,
    NotFoundError,
    ProviderError,
    RateLimitedError,
    ServerError,
    ValidationError,
)
from gitpr.logging import log_http_request, log_http_response

DEFAULT_RETRY_AFTER = 60.0


class HTTPTransport:
    """
    HTTP transport layer shared by the provider backends.

    Handles:
    - Base URL, default headers and authentication
    - Request/response debug logging with credentials masked
    - Error response parsing into typed exceptions
    """

    def __init__(
        self,
        base_url: str,
        provider: str,
        headers: dict[str, str] | None = None,
        auth: httpx.Auth | tuple[str, str] | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize HTTP transport.

        Args:
            base_url: Base URL for API requests (e.g., "https://api.github.com")
            provider: Provider name used in error reports
            headers: Default headers sent with every request
            auth: Optional httpx auth (e.g., basic auth for Bitbucket)
            timeout: Request timeout in seconds
            transport: Optional httpx transport (e.g., httpx.MockTransport in tests)
        """
        self.base_url = base_url.rstrip("/")
        self.provider = provider
        self.timeout = timeout

        default_headers = {"Accept": "application/json"}
        default_headers.update(headers or {})

        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            headers=default_headers,
            auth=auth,
            transport=transport,
        )

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> "HTTPTransport":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """
        Make a request and return the decoded JSON body.

        Args:
            method: HTTP method
            path: API path relative to the base URL, or an absolute URL
            params: Query parameters
            json: Request body

        Returns:
            Parsed JSON response, or None for an empty body

        Raises:
            ProviderError: On API or network errors
        """
        response = self.request_raw(method, path, params=params, json=json)
        if not response.content:
            return None
        return response.json()

    def request_raw(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """
        Make a request and return the response (for pagination headers).

        Raises:
            ProviderError: On API or network errors
        """
        url = path if path.startswith(("http://", "https://")) else f"{self.base_url}{path}"
        log_http_request(method, url, body=json)

        start = time.monotonic()
        try:
            response = self._client.request(method, path, params=params, json=json)
        except httpx.TransportError as e:
            raise NetworkError(self.provider, "NETWORK_ERROR", str(e)) from e

        log_http_response(
            response.status_code, url, elapsed_ms=(time.monotonic() - start) * 1000
        )

        if response.status_code >= 400:
            raise self._parse_error_response(response)
        return response

    def _parse_error_response(self, response: httpx.Response) -> ProviderError:
        """
        Parse an error response into a typed exception.

        Args:
            response: HTTP response with error status

        Returns:
            Appropriate ProviderError subclass
        """
        message = _extract_message(response)
        status_code = response.status_code
        provider = self.provider

        if status_code == 401:
            return AuthenticationError(provider, "UNAUTHORIZED", message, status_code)
        elif status_code == 403:
            if response.headers.get("X-RateLimit-Remaining") == "0":
                return RateLimitedError(
                    provider,
                    "RATE_LIMITED",
                    message,
                    _reset_after(response),
                    status_code,
                )
            return AuthorizationError(provider, "FORBIDDEN", message, status_code)
        elif status_code == 404:
            return NotFoundError(provider, "NOT_FOUND", message, status_code)
        elif status_code in (405, 409):
            return ConflictError(provider, "CONFLICT", message, status_code)
        elif status_code == 429:
            return RateLimitedError(
                provider, "RATE_LIMITED", message, _retry_after(response), status_code
            )
        elif status_code >= 500:
            return ServerError(provider, "SERVER_ERROR", message, status_code)
        else:
            return ValidationError(provider, "VALIDATION_ERROR", message, status_code)


def _extract_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None

    fallback = f"HTTP {response.status_code}"
    if not isinstance(data, dict):
        return fallback

    error = data.get("error")
    if isinstance(error, dict):
        return str(error.get("message") or fallback)
    message = data.get("message") or error or data.get("error_description")
    if isinstance(message, (dict, list)):
        return str(message)
    return str(message) if message else fallback


def _retry_after(response: httpx.Response) -> float:
    value = response.headers.get("Retry-After")
    if value is None:
        return _reset_after(response)
    try:
        return float(value)
    except ValueError:
        return DEFAULT_RETRY_AFTER


def _reset_after(response: httpx.Response) -> float:
    reset = response.headers.get("X-RateLimit-Reset")
    if reset is None:
        return DEFAULT_RETRY_AFTER
    try:
        return max(0.0, float(reset) - time.time())
    except ValueError:
        return DEFAULT_RETRY_AFTER


__all__ = ["HTTPTransport"]
