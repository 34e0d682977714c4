"""Request executor seam.

The retry layer never builds requests itself: it replays a
CapturedRequest through anything that satisfies RequestExecutor.
HttpxExecutor is the adapter used in practice.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

import httpx

from quota_coordinator.config import get_settings
from quota_coordinator.exceptions import ApiError, TransportError
from quota_coordinator.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CapturedRequest:
    """A fully built request that can be issued again unchanged."""

    method: str
    path: str
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)


@runtime_checkable
class ApiResponse(Protocol):
    """What the retry layer needs from a response."""

    @property
    def status_code(self) -> int: ...

    @property
    def headers(self) -> Mapping[str, str]: ...


class RequestExecutor(Protocol):
    """Issues a captured request.

    Implementations return the response on success and raise ApiError
    (status code + headers) for HTTP error statuses. Any other exception
    is treated as an opaque transport failure.
    """

    async def execute(self, request: CapturedRequest) -> ApiResponse: ...


def _parse_detail(response: httpx.Response) -> str:
    """Extract an error message from a JSON error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and "message" in error:
            return str(error["message"])
        if "message" in body:
            return str(body["message"])
    return response.text


class HttpxExecutor:
    """Replays captured requests through an ``httpx.AsyncClient``.

    Usage:
        async with HttpxExecutor("https://api.example.com/v2/") as executor:
            response = await executor.execute(CapturedRequest("GET", "subscribers"))
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            base_url: API base URL (uses settings if not provided)
            timeout: Request timeout in seconds (uses settings if not provided)
            headers: Headers sent with every request
            transport: Optional httpx transport (e.g. MockTransport in tests)
        """
        settings = get_settings()
        kwargs: dict[str, Any] = {
            "base_url": base_url or settings.api_base_url,
            "headers": dict(headers or {}),
            "timeout": timeout if timeout is not None else settings.request_timeout,
        }
        if transport is not None:
            kwargs["transport"] = transport
        self._client = httpx.AsyncClient(**kwargs)

    async def execute(self, request: CapturedRequest) -> httpx.Response:
        """Issue the captured request.

        Raises:
            ApiError: If the API answered with status >= 400
            TransportError: If no response was received
        """
        kwargs: dict[str, Any] = {"headers": dict(request.headers)}
        if isinstance(request.body, (bytes, str)):
            kwargs["content"] = request.body
        elif request.body is not None:
            kwargs["json"] = request.body

        try:
            response = await self._client.request(request.method, request.path, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(f"{request.method} {request.path} failed: {e}") from e

        if response.status_code >= 400:
            logger.debug(
                "Request failed with status {status}",
                status=response.status_code,
                method=request.method,
                path=request.path,
            )
            raise ApiError(response.status_code, response.headers, _parse_detail(response))
        return response

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> HttpxExecutor:
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Async context manager exit."""
        await self.close()
