"""Transport abstraction shared by the native and curl implementations."""

from __future__ import annotations

import abc
import json
import secrets
from dataclasses import dataclass, field, replace
from typing import Any, AsyncIterator

from msgstream.errors import (
    APIStatusError,
    ClientError,
    NetworkError,
    parse_error_envelope,
)

DEFAULT_TIMEOUT = 600.0


# ---------------------------------------------------------------------------
# Request / response values
# ---------------------------------------------------------------------------

@dataclass
class HTTPRequest:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes | None = None
    timeout: float = DEFAULT_TIMEOUT


@dataclass
class HTTPResponse:
    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        return json.loads(self.body)


def error_from_response(status_code: int, body: bytes | str) -> ClientError:
    """Exception for a failed HTTP exchange.

    A body holding the API error envelope becomes ``APIStatusError``;
    anything else becomes ``NetworkError("HTTP <code>")``.
    """
    error = parse_error_envelope(body) if body else None
    if error is not None:
        return APIStatusError(error, status_code=status_code)
    return NetworkError(f"HTTP {status_code}", status_code=status_code)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def build_multipart(
    file_data: bytes,
    filename: str,
    mime_type: str,
    boundary: str | None = None,
) -> tuple[bytes, str]:
    """Encode a single-file ``multipart/form-data`` body.

    Returns ``(body, content_type)``.  A fresh random boundary is used unless
    one is given.
    """
    if boundary is None:
        boundary = f"Boundary-{secrets.token_hex(16)}"
    head = (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="file"; filename="{filename}"\r\n'
        f"Content-Type: {mime_type}\r\n"
        "\r\n"
    ).encode("utf-8")
    tail = f"\r\n--{boundary}--\r\n".encode("utf-8")
    return head + file_data + tail, f"multipart/form-data; boundary={boundary}"


async def iter_line_chunks(chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
    """Re-chunk a byte stream so every chunk ends on a newline.

    Whatever follows the last newline is held back until more data arrives;
    the trailing partial line is flushed when *chunks* ends.
    """
    pending = bytearray()
    async for chunk in chunks:
        pending.extend(chunk)
        cut = pending.rfind(b"\n")
        if cut < 0:
            continue
        yield bytes(pending[: cut + 1])
        del pending[: cut + 1]
    if pending:
        yield bytes(pending)


# ---------------------------------------------------------------------------
# Transport ABC
# ---------------------------------------------------------------------------

class Transport(abc.ABC):
    """Moves one HTTP exchange; knows nothing about the message protocol.

    ``send_streaming`` returns a lazy, single-use iterator of body chunks.
    Closing it early (``aclose()``, ``break`` inside ``aclosing``, task
    cancellation) releases the underlying connection or process.
    """

    name: str = "transport"

    @abc.abstractmethod
    async def send(self, request: HTTPRequest) -> HTTPResponse:
        """Perform a buffered request."""

    @abc.abstractmethod
    def send_streaming(self, request: HTTPRequest) -> AsyncIterator[bytes]:
        """Perform a request and yield body chunks as they arrive.

        Raises ``APIStatusError`` / ``NetworkError`` for non-2xx responses
        before any chunk is yielded.
        """

    async def upload_multipart(
        self,
        request: HTTPRequest,
        file_data: bytes,
        filename: str,
        mime_type: str,
    ) -> HTTPResponse:
        body, content_type = build_multipart(file_data, filename, mime_type)
        headers = {
            k: v for k, v in request.headers.items()
            if k.lower() != "content-type"
        }
        headers["content-type"] = content_type
        return await self.send(replace(request, headers=headers, body=body))

    async def aclose(self) -> None:
        """Release pooled resources."""

    async def __aenter__(self) -> Transport:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
