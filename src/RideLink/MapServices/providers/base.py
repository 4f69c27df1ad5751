# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.providers.base",
#   "purpose": "Shared HTTP plumbing and status-to-error mapping for provider transports.",
#   "sections": [
#     {
#       "id": "parse-retry-after",
#       "name": "parse_retry_after",
#       "anchor": "function-parse-retry-after",
#       "kind": "function"
#     },
#     {
#       "id": "httpprovider",
#       "name": "HttpProvider",
#       "anchor": "class-httpprovider",
#       "kind": "class"
#     }
#   ]
# }
# === /NAVMAP ===

"""Shared HTTP plumbing for provider transports.

Every provider performs its calls through :class:`HttpProvider`, which owns
the status-to-error mapping: transport failures become ``NetworkError``,
non-2xx statuses go through :func:`~RideLink.MapServices.errors.error_for_status`
and undecodable JSON becomes ``ProviderError``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import httpx

from ..errors import NetworkError, ProviderError, error_for_status

LOGGER = logging.getLogger(__name__)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds from a numeric ``Retry-After`` header; HTTP dates are ignored."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


class HttpProvider:
    """Base class wrapping one shared ``httpx.AsyncClient``.

    Attributes:
        name: Provider identifier used in errors, health and analytics
        client: Async client owned by the bootstrap container
        user_agent: Client identifier header value
    """

    name = "provider"

    def __init__(self, client: httpx.AsyncClient, *, user_agent: str) -> None:
        self.client = client
        self.user_agent = user_agent

    def _headers(self, extra: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json_body: Optional[Any] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        kwargs: Dict[str, Any] = {"params": params, "headers": self._headers(headers)}
        if json_body is not None:
            kwargs["json"] = json_body
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise NetworkError(f"{self.name}: request timed out", provider=self.name) from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"{self.name}: {exc}", provider=self.name) from exc

        if not response.is_success:
            LOGGER.debug("%s %s -> %d", method, url, response.status_code)
            raise error_for_status(
                response.status_code,
                provider=self.name,
                body=response.text,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )
        return response

    async def _json(self, method: str, url: str, **kwargs: Any) -> Any:
        response = await self._request(method, url, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise ProviderError(
                f"{self.name}: response is not valid JSON", provider=self.name
            ) from exc

    async def _probe(self, url: str, *, headers: Optional[Mapping[str, str]] = None) -> bool:
        """``True`` when ``url`` answers 200 within 5 seconds; never raises."""
        try:
            response = await self.client.get(url, headers=self._headers(headers), timeout=5.0)
        except httpx.HTTPError as exc:
            LOGGER.debug("%s availability probe failed: %s", self.name, exc)
            return False
        return response.status_code == 200


__all__ = ["HttpProvider", "parse_retry_after"]
