"""HTTP transports for msgstream."""

from __future__ import annotations

import importlib.util
import logging

from msgstream.config import ClientConfig
from msgstream.errors import InvalidConfigurationError
from msgstream.transport.base import (
    HTTPRequest,
    HTTPResponse,
    Transport,
    build_multipart,
    error_from_response,
    iter_line_chunks,
)
from msgstream.transport.curl import CurlTransport
from msgstream.transport.native import NativeTransport

_logger = logging.getLogger(__name__)


def _has_tls() -> bool:
    return importlib.util.find_spec("ssl") is not None


def create_transport(config: ClientConfig) -> Transport:
    """Pick the transport named by ``config.transport``.

    ``"auto"`` prefers the native transport whenever TLS is available (or
    the base URL is plain http) and falls back to curl otherwise.
    """
    kind = config.transport
    if kind == "auto":
        if _has_tls() or config.base_url.startswith("http://"):
            kind = "native"
        else:
            kind = "curl"
        _logger.debug("Auto-selected %s transport", kind)

    if kind == "native":
        return NativeTransport(timeout=config.timeout)
    if kind == "curl":
        transport = CurlTransport(config.curl_command)
        if not transport.is_available():
            raise InvalidConfigurationError(
                f"curl transport requested but {config.curl_command!r} "
                "was not found on PATH"
            )
        return transport
    raise InvalidConfigurationError(f"Unknown transport {kind!r}")


__all__ = [
    "CurlTransport",
    "HTTPRequest",
    "HTTPResponse",
    "NativeTransport",
    "Transport",
    "build_multipart",
    "create_transport",
    "error_from_response",
    "iter_line_chunks",
]
