"""msgstream: streaming client for the Anthropic Messages API."""

from msgstream.client import MessagesClient
from msgstream.config import FILES_API_BETA, ClientConfig, load_config
from msgstream.errors import (
    APIError,
    APIStatusError,
    ClientError,
    DecodingError,
    EncodingError,
    ErrorType,
    InvalidConfigurationError,
    NetworkError,
    StreamParsingError,
    UnknownError,
)
from msgstream.stream import FrameBuffer, SSEFrame, StreamAccumulator, decode_event
from msgstream.transport import CurlTransport, NativeTransport, Transport, create_transport
from msgstream.types import (
    ContentBlock,
    ContentBlockType,
    Message,
    MessageRequest,
    Response,
    StopReason,
    StreamEvent,
    Tool,
    ToolChoice,
    UploadedFile,
    Usage,
)

__version__ = "0.1.0"

__all__ = [
    "APIError",
    "APIStatusError",
    "ClientConfig",
    "ClientError",
    "ContentBlock",
    "ContentBlockType",
    "CurlTransport",
    "DecodingError",
    "EncodingError",
    "ErrorType",
    "FILES_API_BETA",
    "FrameBuffer",
    "InvalidConfigurationError",
    "Message",
    "MessageRequest",
    "MessagesClient",
    "NativeTransport",
    "NetworkError",
    "Response",
    "SSEFrame",
    "StopReason",
    "StreamAccumulator",
    "StreamEvent",
    "StreamParsingError",
    "Tool",
    "ToolChoice",
    "Transport",
    "UnknownError",
    "UploadedFile",
    "Usage",
    "create_transport",
    "decode_event",
    "load_config",
]
