# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.errors",
#   "purpose": "Typed error taxonomy shared by providers, cache and fallback tiers.",
#   "sections": [
#     {
#       "id": "errorkind",
#       "name": "ErrorKind",
#       "anchor": "class-errorkind",
#       "kind": "class"
#     },
#     {
#       "id": "mapserviceerror",
#       "name": "MapServiceError",
#       "anchor": "class-mapserviceerror",
#       "kind": "class"
#     },
#     {
#       "id": "fallbackexhaustederror",
#       "name": "FallbackExhaustedError",
#       "anchor": "class-fallbackexhaustederror",
#       "kind": "class"
#     },
#     {
#       "id": "error-for-status",
#       "name": "error_for_status",
#       "anchor": "function-error-for-status",
#       "kind": "function"
#     },
#     {
#       "id": "classify-exception",
#       "name": "classify_exception",
#       "anchor": "function-classify-exception",
#       "kind": "function"
#     },
#     {
#       "id": "get-actionable-error-message",
#       "name": "get_actionable_error_message",
#       "anchor": "function-get-actionable-error-message",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""Error taxonomy for geospatial provider access.

Responsibilities
----------------
- Define one exception type per failure kind (``NetworkError``,
  ``RateLimitError``, ``AuthError``, ``ProviderError``, ``CacheError``,
  ``ConfigurationError``) so callers branch on :class:`ErrorKind` instead of
  matching message strings.
- Aggregate a failed primary and failed fallback attempt into
  :class:`FallbackExhaustedError`, keeping both underlying exceptions.
- Translate HTTP statuses and foreign exceptions (``httpx`` transport errors,
  ``asyncio`` timeouts) into the taxonomy via :func:`error_for_status` and
  :func:`classify_exception`.
- Produce operator-facing remediation hints through
  :func:`get_actionable_error_message`.

Design Notes
------------
- ``ErrorKind.recoverable`` decides whether the fallback tier may be tried.
  Cache and configuration failures are never escalated.
- Metadata dictionaries default to empty mappings to simplify serialisation
  into log records.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

import httpx

__all__ = (
    "ErrorKind",
    "MapServiceError",
    "NetworkError",
    "RateLimitError",
    "AuthError",
    "ProviderError",
    "CacheError",
    "ConfigurationError",
    "FallbackExhaustedError",
    "error_for_status",
    "classify_exception",
    "get_actionable_error_message",
)

LOGGER = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Failure categories understood by the fallback coordinator."""

    NETWORK = "network"
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    PROVIDER = "provider"
    CACHE = "cache"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"

    @property
    def recoverable(self) -> bool:
        """Return ``True`` when a failure of this kind may escalate to a fallback tier."""

        return self not in (ErrorKind.CACHE, ErrorKind.CONFIGURATION)


class MapServiceError(Exception):
    """Base class for every error raised by the map services layer."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.status_code = status_code
        self.details = details or {}

    @property
    def recoverable(self) -> bool:
        return self.kind.recoverable

    def to_dict(self) -> dict[str, Any]:
        """Return a log-friendly representation of the error."""

        return {
            "kind": self.kind.value,
            "message": self.message,
            "provider": self.provider,
            "status_code": self.status_code,
            "details": dict(self.details),
        }


class NetworkError(MapServiceError):
    """Transport failure, timeout, or no connectivity."""

    kind = ErrorKind.NETWORK


class RateLimitError(MapServiceError):
    """Raised on HTTP 429 or when a local rate window or daily quota is exhausted."""

    kind = ErrorKind.RATE_LIMIT

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        status_code: int | None = None,
        retry_after: float | None = None,
        remaining_daily: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, provider=provider, status_code=status_code, details=details)
        self.retry_after = retry_after
        self.remaining_daily = remaining_daily


class AuthError(MapServiceError):
    """Invalid or missing API key (HTTP 401/403)."""

    kind = ErrorKind.AUTH


class ProviderError(MapServiceError):
    """Non-2xx response or a payload that cannot be adapted."""

    kind = ErrorKind.PROVIDER


class CacheError(MapServiceError):
    """Persistent cache I/O failure."""

    kind = ErrorKind.CACHE


class ConfigurationError(MapServiceError):
    """Fallback is disabled or misconfigured and no alternative exists."""

    kind = ErrorKind.CONFIGURATION


class FallbackExhaustedError(MapServiceError):
    """Both the primary and fallback tiers failed for one logical call."""

    def __init__(self, op_id: str, primary: BaseException, fallback: BaseException):
        message = f"Primary {op_id} failed: {primary}. Fallback also failed: {fallback}"
        super().__init__(message, details={"op_id": op_id})
        self.op_id = op_id
        self.primary_error = primary
        self.fallback_error = fallback
        self.kind = classify_exception(fallback)


def error_for_status(
    status_code: int,
    *,
    provider: str | None = None,
    body: str | None = None,
    retry_after: float | None = None,
) -> MapServiceError:
    """Map a non-2xx HTTP status onto the error taxonomy.

    Args:
        status_code: HTTP status returned by the provider
        provider: Provider name used in the message and error metadata
        body: Optional response text, truncated into ``details``
        retry_after: Parsed ``Retry-After`` header, if any

    Returns:
        An exception instance (not raised) of the matching kind

    Examples:
        >>> type(error_for_status(429, provider="nominatim")).__name__
        'RateLimitError'
        >>> type(error_for_status(401, provider="openrouteservice")).__name__
        'AuthError'
    """

    details: dict[str, Any] = {}
    if body:
        details["body"] = body[:200]
    label = provider or "provider"
    message, _ = get_actionable_error_message(status_code)

    if status_code == 429:
        return RateLimitError(
            f"{label}: {message}",
            provider=provider,
            status_code=status_code,
            retry_after=retry_after,
            details=details,
        )
    if status_code in (401, 403):
        return AuthError(
            f"{label}: {message}", provider=provider, status_code=status_code, details=details
        )
    return ProviderError(
        f"{label}: {message}", provider=provider, status_code=status_code, details=details
    )


def classify_exception(exc: BaseException) -> ErrorKind:
    """Return the :class:`ErrorKind` for any exception raised by a tier."""

    if isinstance(exc, MapServiceError):
        return exc.kind
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, httpx.TransportError)):
        return ErrorKind.NETWORK
    if isinstance(exc, httpx.HTTPStatusError):
        return error_for_status(exc.response.status_code).kind
    if isinstance(exc, (KeyError, IndexError, TypeError, ValueError)):
        return ErrorKind.PROVIDER
    return ErrorKind.UNKNOWN


def get_actionable_error_message(
    http_status: int | None,
    kind: ErrorKind | None = None,
) -> tuple[str, str | None]:
    """Generate an operator-facing message with a remediation hint.

    Args:
        http_status: HTTP status code from the failed request
        kind: Error kind when no HTTP status is available

    Returns:
        Tuple of (error_message, suggestion) where suggestion may be None

    Examples:
        >>> msg, suggestion = get_actionable_error_message(401)
        >>> print(msg)
        Invalid API key (HTTP 401)
    """

    if http_status == 401:
        return (
            "Invalid API key (HTTP 401)",
            "Check the provider API key in configuration or the RIDELINK_ environment overrides",
        )
    elif http_status == 403:
        return (
            "Access forbidden (HTTP 403)",
            "The API key lacks permission for this endpoint or the quota plan was revoked",
        )
    elif http_status == 404:
        return (
            "Endpoint not found (HTTP 404)",
            "Verify the provider base URL in configuration",
        )
    elif http_status == 429:
        return (
            "Rate limit exceeded (HTTP 429)",
            "Slow down requests or lower the configured rate policy for this provider",
        )
    elif http_status in (502, 503):
        return (
            f"Service temporarily unavailable (HTTP {http_status})",
            "The provider is overloaded. The fallback provider will be used when enabled.",
        )
    elif http_status == 504:
        return (
            "Gateway timeout (HTTP 504)",
            "The provider took too long to respond. Consider raising http.timeout_s.",
        )
    elif http_status and http_status >= 500:
        return (
            f"Server error (HTTP {http_status})",
            "The provider encountered an error. Retry later.",
        )
    elif http_status and http_status >= 400:
        return (
            f"HTTP error {http_status}",
            "Check the request parameters sent to the provider",
        )

    if kind is ErrorKind.NETWORK:
        return (
            "Network request failed",
            "Check network connectivity, DNS resolution, or proxy configuration",
        )
    elif kind is ErrorKind.RATE_LIMIT:
        return (
            "Local rate budget exhausted",
            "Wait for the rate window to elapse or reset the daily quota",
        )
    elif kind is ErrorKind.CACHE:
        return (
            "Cache storage failure",
            "Check that the cache directory is writable. The request will bypass the cache.",
        )
    elif kind is ErrorKind.CONFIGURATION:
        return (
            "No provider available for this operation",
            "Enable fallback or configure an API key for the paid provider",
        )

    return (
        "Map service request failed",
        "Check logs for detailed error information",
    )
