"""Error taxonomy for msgstream.

Every failure surfaced by the public API is a ``ClientError`` subclass with
typed attributes; ``str(exc)`` gives the human-readable description used for
logging.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from typing import Any


# ---------------------------------------------------------------------------
# Server-side error values
# ---------------------------------------------------------------------------

class ErrorType(str, enum.Enum):
    """Error types carried in the API error envelope."""

    INVALID_REQUEST = "invalid_request_error"
    AUTHENTICATION = "authentication_error"
    PERMISSION = "permission_error"
    NOT_FOUND = "not_found_error"
    REQUEST_TOO_LARGE = "request_too_large"
    RATE_LIMIT = "rate_limit_error"
    API = "api_error"
    OVERLOADED = "overloaded_error"

    @classmethod
    def parse(cls, value: str) -> ErrorType:
        """Map a wire value to an ``ErrorType``; unknown values become ``API``."""
        try:
            return cls(value)
        except ValueError:
            return cls.API


# Errors that a retry can never fix
NON_RETRYABLE_ERROR_TYPES = frozenset({
    ErrorType.INVALID_REQUEST,
    ErrorType.AUTHENTICATION,
    ErrorType.PERMISSION,
    ErrorType.NOT_FOUND,
})


@dataclass(frozen=True)
class APIError:
    """An error reported by the API."""

    type: ErrorType
    message: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> APIError:
        return cls(
            type=ErrorType.parse(str(data["type"])),
            message=str(data.get("message", "")),
        )

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type.value, "message": self.message}


def parse_error_envelope(body: bytes | str) -> APIError | None:
    """Parse ``{"error": {"type": ..., "message": ...}}``.

    Returns ``None`` if *body* is not a valid envelope.
    """
    try:
        data = json.loads(body)
        return APIError.from_dict(data["error"])
    except (ValueError, KeyError, TypeError):
        return None


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class ClientError(Exception):
    """Base class for all msgstream errors."""

    label = "Unknown Error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.label}: {self.message}"


class APIStatusError(ClientError):
    """The server rejected the request with a typed API error."""

    label = "API Error"

    def __init__(self, error: APIError, status_code: int | None = None) -> None:
        super().__init__(error.message)
        self.error = error
        self.status_code = status_code

    @property
    def error_type(self) -> ErrorType:
        return self.error.type

    @property
    def retryable(self) -> bool:
        return self.error.type not in NON_RETRYABLE_ERROR_TYPES

    def __str__(self) -> str:
        return f"{self.label} ({self.error.type.value}): {self.error.message}"


class NetworkError(ClientError):
    """Transport or connectivity failure."""

    label = "Network Error"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class DecodingError(ClientError):
    """A response body did not match the expected shape."""

    label = "Decoding Error"


class EncodingError(ClientError):
    """A request body could not be serialized."""

    label = "Encoding Error"


class InvalidConfigurationError(ClientError):
    """Missing or malformed client setup."""

    label = "Invalid Configuration"


class StreamParsingError(ClientError):
    """Malformed SSE data for a recognized event."""

    label = "Stream Parsing Error"


class UnknownError(ClientError):
    """Catch-all."""

    label = "Unknown Error"
