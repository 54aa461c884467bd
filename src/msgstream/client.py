"""Async client for the Messages API.

``MessagesClient`` builds requests, applies the retry policy and drives the
streaming pipeline (transport chunks -> ``FrameBuffer`` -> ``decode_event``)
for a caller.  It holds no per-call state and can be shared across tasks.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing
from dataclasses import replace
from typing import Any, AsyncIterator

from msgstream import json_value
from msgstream.config import FILES_API_BETA, ClientConfig
from msgstream.errors import (
    APIStatusError,
    ClientError,
    DecodingError,
    EncodingError,
    NetworkError,
    StreamParsingError,
    UnknownError,
)
from msgstream.stream import FrameBuffer, StreamAccumulator, decode_event
from msgstream.transport import (
    HTTPRequest,
    HTTPResponse,
    Transport,
    create_transport,
    error_from_response,
)
from msgstream.types import (
    ErrorEvent,
    MessageRequest,
    Response,
    StreamEvent,
    UploadedFile,
)

_logger = logging.getLogger(__name__)

# Retry configuration
_BACKOFF_BASE = 0.5  # seconds -- exponential: 0.5, 1, 2
_RATE_LIMIT_BASE = 1  # seconds -- exponential: 1, 2, 4

MESSAGES_PATH = "/v1/messages"
FILES_PATH = "/v1/files"

# Custom headers may not override these
_RESERVED_HEADERS = frozenset({"x-api-key", "anthropic-version"})


def _raise_on_error(event: StreamEvent) -> StreamEvent:
    if isinstance(event, ErrorEvent):
        raise APIStatusError(event.error)
    return event


class MessagesClient:
    """Client for ``/v1/messages`` and ``/v1/files``."""

    def __init__(
        self, config: ClientConfig, transport: Transport | None = None,
    ) -> None:
        config.validate()
        self.config = config
        self._owns_transport = transport is None
        self._transport = transport or create_transport(config)

    @classmethod
    def from_environment(cls, **overrides: Any) -> MessagesClient:
        """Client configured from ``ANTHROPIC_API_KEY`` / ``ANTHROPIC_BASE_URL``."""
        return cls(ClientConfig.from_environment(**overrides))

    @property
    def transport(self) -> Transport:
        return self._transport

    async def aclose(self) -> None:
        if self._owns_transport:
            await self._transport.aclose()

    async def __aenter__(self) -> MessagesClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Request building
    # ------------------------------------------------------------------

    def _headers(
        self,
        extra: dict[str, str] | None = None,
        beta: tuple[str, ...] = (),
    ) -> dict[str, str]:
        headers = {"content-type": "application/json"}
        betas = self.config.beta_features | set(beta)
        if betas:
            headers["anthropic-beta"] = ",".join(sorted(betas))
        if extra:
            headers.update(extra)

        for name, value in self.config.custom_headers.items():
            key = name.lower()
            if key in _RESERVED_HEADERS:
                continue
            headers[key] = value

        headers["x-api-key"] = self.config.api_key
        headers["anthropic-version"] = self.config.api_version
        return headers

    def _encode(self, request: MessageRequest) -> bytes:
        try:
            return json_value.dumps(request.to_dict()).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise EncodingError(f"Could not encode request: {e}") from e

    def _build_request(
        self,
        path: str,
        body: bytes | None = None,
        extra_headers: dict[str, str] | None = None,
        beta: tuple[str, ...] = (),
    ) -> HTTPRequest:
        return HTTPRequest(
            method="POST",
            url=self.config.url(path),
            headers=self._headers(extra_headers, beta),
            body=body,
            timeout=self.config.timeout,
        )

    # ------------------------------------------------------------------
    # Retry
    # ------------------------------------------------------------------

    @staticmethod
    def _retry_delay(error: ClientError, attempt: int) -> float | None:
        """Seconds to wait before the next attempt, or ``None`` if *error* is final."""
        if getattr(error, "status_code", None) == 429:
            return _RATE_LIMIT_BASE * (2 ** attempt)
        if isinstance(error, APIStatusError) and not error.retryable:
            return None
        return _BACKOFF_BASE * (2 ** attempt)

    async def _send_with_retry(self, request: HTTPRequest) -> HTTPResponse:
        max_attempts = self.config.max_retries
        last_error: ClientError | None = None

        for attempt in range(max_attempts):
            try:
                resp = await self._transport.send(request)
            except (APIStatusError, NetworkError) as e:
                error: ClientError = e
            else:
                if resp.ok:
                    return resp
                error = error_from_response(resp.status_code, resp.body)

            delay = self._retry_delay(error, attempt)
            if delay is None:
                raise error
            last_error = error
            _logger.warning(
                "Request to %s failed (attempt %d/%d): %s",
                request.url, attempt + 1, max_attempts, error,
            )
            if attempt < max_attempts - 1:
                await asyncio.sleep(delay)

        raise last_error or UnknownError("Request failed with no attempts made")

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def create_message(self, request: MessageRequest) -> Response:
        """Send a buffered request and return the decoded response."""
        body = self._encode(replace(request, stream=False))
        resp = await self._send_with_retry(self._build_request(MESSAGES_PATH, body))
        try:
            payload = resp.json()
        except ValueError as e:
            raise DecodingError(f"Response body is not JSON: {e}") from e
        return Response.from_dict(payload)

    async def create_streaming_message(
        self, request: MessageRequest,
    ) -> AsyncIterator[StreamEvent]:
        """Yield stream events in arrival order.

        Malformed frames are logged and skipped.  A server ``error`` event
        ends the stream with ``APIStatusError``.  Streams are not retried.
        """
        body = self._encode(replace(request, stream=True))
        http_request = self._build_request(
            MESSAGES_PATH, body, {"accept": "text/event-stream"},
        )
        frames = FrameBuffer()
        async with aclosing(self._transport.send_streaming(http_request)) as chunks:
            async for chunk in chunks:
                for event in self._decode(frames, chunk):
                    yield _raise_on_error(event)
        for event in self._decode(frames, None):
            yield _raise_on_error(event)

    @staticmethod
    def _decode(frames: FrameBuffer, chunk: bytes | None) -> list[StreamEvent]:
        """Frames completed by *chunk* (or the flushed tail when ``None``)."""
        try:
            parsed = frames.feed(chunk) if chunk is not None else frames.flush()
        except StreamParsingError as e:
            _logger.warning("Skipping undecodable stream data: %s", e)
            return []

        events: list[StreamEvent] = []
        for frame in parsed:
            try:
                event = decode_event(frame)
            except StreamParsingError as e:
                _logger.warning("Skipping malformed %s event: %s", frame.event, e)
                continue
            if event is not None:
                events.append(event)
        return events

    async def stream_message(self, request: MessageRequest) -> Response:
        """Stream a request and return the accumulated response."""
        accumulator = StreamAccumulator()
        async with aclosing(self.create_streaming_message(request)) as events:
            async for event in events:
                final = accumulator.process(event)
                if final is not None:
                    return final
        raise StreamParsingError("Stream ended without message_stop")

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    async def upload_file(
        self, data: bytes, filename: str, mime_type: str,
    ) -> UploadedFile:
        """Upload *data* through the Files API (beta)."""
        request = self._build_request(FILES_PATH, beta=(FILES_API_BETA,))
        resp = await self._transport.upload_multipart(
            request, data, filename, mime_type,
        )
        if not resp.ok:
            raise error_from_response(resp.status_code, resp.body)
        try:
            payload = resp.json()
        except ValueError as e:
            raise DecodingError(f"Response body is not JSON: {e}") from e
        uploaded = UploadedFile.from_dict(payload)
        _logger.info("Uploaded %s as %s", filename, uploaded.id)
        return uploaded
