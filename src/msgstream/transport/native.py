"""Native transport on ``httpx.AsyncClient``."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import AsyncIterator

import httpx

from msgstream.errors import NetworkError

from .base import (
    DEFAULT_TIMEOUT,
    HTTPRequest,
    HTTPResponse,
    Transport,
    error_from_response,
    iter_line_chunks,
)

_logger = logging.getLogger(__name__)


def _network_error(exc: httpx.HTTPError) -> NetworkError:
    if isinstance(exc, httpx.TimeoutException):
        return NetworkError(f"Request timed out: {exc}")
    return NetworkError(f"{type(exc).__name__}: {exc}")


class NativeTransport(Transport):
    """Transport backed by a pooled ``httpx.AsyncClient``.

    Pass *client* to share a pool (or to inject ``httpx.MockTransport`` in
    tests); otherwise the transport owns and closes its own client.
    """

    name = "native"

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=30),
        )

    async def send(self, request: HTTPRequest) -> HTTPResponse:
        try:
            resp = await self._client.request(
                request.method,
                request.url,
                headers=request.headers,
                content=request.body,
                timeout=request.timeout,
            )
        except httpx.HTTPError as e:
            raise _network_error(e) from e
        return HTTPResponse(
            status_code=resp.status_code,
            headers=dict(resp.headers),
            body=resp.content,
        )

    async def send_streaming(self, request: HTTPRequest) -> AsyncIterator[bytes]:
        try:
            async with self._client.stream(
                request.method,
                request.url,
                headers=request.headers,
                content=request.body,
                timeout=request.timeout,
            ) as resp:
                if not resp.is_success:
                    body = await resp.aread()
                    _logger.debug(
                        "Stream request to %s failed with %d",
                        request.url, resp.status_code,
                    )
                    raise error_from_response(resp.status_code, body)

                async with aclosing(iter_line_chunks(resp.aiter_bytes())) as chunks:
                    async for chunk in chunks:
                        yield chunk
        except httpx.HTTPError as e:
            raise _network_error(e) from e

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
