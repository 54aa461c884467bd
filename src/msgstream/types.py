"""Shared data types for msgstream."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, ClassVar, Union

from msgstream.errors import APIError, DecodingError
from msgstream.json_value import JSONValue, coerce, format_datetime, loads, parse_datetime


def _decoding_error(what: str, exc: Exception) -> DecodingError:
    return DecodingError(f"Invalid {what}: {exc!r}")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class StopReason(str, enum.Enum):
    """Why generation ended."""

    END_TURN = "end_turn"
    MAX_TOKENS = "max_tokens"
    STOP_SEQUENCE = "stop_sequence"
    TOOL_USE = "tool_use"


class ContentBlockType(str, enum.Enum):
    TEXT = "text"
    IMAGE = "image"
    TOOL_USE = "tool_use"
    TOOL_RESULT = "tool_result"


def _stop_reason(value: Any) -> StopReason | None:
    return None if value is None else StopReason(value)


# ---------------------------------------------------------------------------
# Usage
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Usage:
    """Token counts for one response."""

    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Usage:
        return cls(
            input_tokens=int(data["input_tokens"]),
            output_tokens=int(data["output_tokens"]),
            cache_creation_input_tokens=data.get("cache_creation_input_tokens"),
            cache_read_input_tokens=data.get("cache_read_input_tokens"),
        )

    def to_dict(self) -> dict[str, int]:
        out = {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
        }
        if self.cache_creation_input_tokens is not None:
            out["cache_creation_input_tokens"] = self.cache_creation_input_tokens
        if self.cache_read_input_tokens is not None:
            out["cache_read_input_tokens"] = self.cache_read_input_tokens
        return out

    def with_output_tokens(self, output_tokens: int) -> Usage:
        """Copy with only the output count replaced."""
        return replace(self, output_tokens=output_tokens)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class StreamingUsage:
    """Usage update carried by ``message_delta`` (output tokens only)."""

    output_tokens: int


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ImageSource:
    media_type: str
    data: str  # base64
    type: str = "base64"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ImageSource:
        return cls(
            media_type=data["media_type"],
            data=data["data"],
            type=data.get("type", "base64"),
        )

    def to_dict(self) -> dict[str, str]:
        return {"type": self.type, "media_type": self.media_type, "data": self.data}


@dataclass(frozen=True)
class ContentBlock:
    """One piece of a message: text, image, tool-use request or tool result.

    Only the fields belonging to ``type`` are set; build blocks with the
    factory classmethods.  ``partial_json`` holds the raw concatenated
    argument fragments of a tool-use block while it is being streamed; use
    ``parsed_input()`` to get the structured arguments.
    """

    type: ContentBlockType
    text: str | None = None
    source: ImageSource | None = None
    id: str | None = None
    name: str | None = None
    input: JSONValue = None
    tool_use_id: str | None = None
    content: str | tuple[ContentBlock, ...] | None = None
    is_error: bool | None = None
    partial_json: str | None = None

    # -- factories ----------------------------------------------------------

    @classmethod
    def text_block(cls, text: str = "") -> ContentBlock:
        return cls(type=ContentBlockType.TEXT, text=text)

    @classmethod
    def image(cls, media_type: str, data: str) -> ContentBlock:
        return cls(
            type=ContentBlockType.IMAGE,
            source=ImageSource(media_type=media_type, data=data),
        )

    @classmethod
    def tool_use(cls, id: str, name: str, input: Any = None) -> ContentBlock:
        return cls(
            type=ContentBlockType.TOOL_USE,
            id=id,
            name=name,
            input=coerce(input if input is not None else {}),
        )

    @classmethod
    def tool_result(
        cls,
        tool_use_id: str,
        content: str | list[ContentBlock] | tuple[ContentBlock, ...] = "",
        is_error: bool | None = None,
    ) -> ContentBlock:
        if not isinstance(content, str):
            content = tuple(content)
        return cls(
            type=ContentBlockType.TOOL_RESULT,
            tool_use_id=tool_use_id,
            content=content,
            is_error=is_error,
        )

    # -- accessors ----------------------------------------------------------

    def parsed_input(self) -> JSONValue:
        """Structured tool arguments.

        Parses the accumulated ``partial_json`` when present, otherwise
        returns ``input``.  Raises ``DecodingError`` if the fragments do not
        form valid JSON.
        """
        if self.partial_json:
            try:
                return loads(self.partial_json)
            except ValueError as exc:
                raise DecodingError(
                    f"Tool input for {self.name!r} is not valid JSON: {exc}"
                ) from exc
        return self.input

    # -- wire format --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ContentBlock:
        try:
            block_type = ContentBlockType(data["type"])
            if block_type is ContentBlockType.TEXT:
                return cls.text_block(str(data.get("text", "")))
            if block_type is ContentBlockType.IMAGE:
                return cls(
                    type=block_type,
                    source=ImageSource.from_dict(data["source"]),
                )
            if block_type is ContentBlockType.TOOL_USE:
                return cls.tool_use(
                    id=data["id"], name=data["name"], input=data.get("input"),
                )
            raw = data.get("content", "")
            content: str | list[ContentBlock]
            if isinstance(raw, list):
                content = [cls.from_dict(item) for item in raw]
            else:
                content = str(raw)
            return cls.tool_result(
                tool_use_id=data["tool_use_id"],
                content=content,
                is_error=data.get("is_error"),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise _decoding_error("content block", exc) from exc

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"type": self.type.value}
        if self.type is ContentBlockType.TEXT:
            out["text"] = self.text or ""
        elif self.type is ContentBlockType.IMAGE:
            if self.source is not None:
                out["source"] = self.source.to_dict()
        elif self.type is ContentBlockType.TOOL_USE:
            out["id"] = self.id
            out["name"] = self.name
            out["input"] = self.parsed_input() if self.partial_json else self.input
        else:
            out["tool_use_id"] = self.tool_use_id
            if isinstance(self.content, tuple):
                out["content"] = [block.to_dict() for block in self.content]
            else:
                out["content"] = self.content or ""
            if self.is_error is not None:
                out["is_error"] = self.is_error
        return out


# ---------------------------------------------------------------------------
# Response
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Response:
    """A completed generation."""

    id: str
    model: str
    content: tuple[ContentBlock, ...] = ()
    usage: Usage = field(default_factory=Usage)
    role: str = "assistant"
    stop_reason: StopReason | None = None
    stop_sequence: str | None = None
    type: str = "message"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Response:
        try:
            return cls(
                id=data["id"],
                model=data["model"],
                role=data.get("role", "assistant"),
                type=data.get("type", "message"),
                content=tuple(
                    ContentBlock.from_dict(block) for block in data["content"]
                ),
                stop_reason=_stop_reason(data.get("stop_reason")),
                stop_sequence=data.get("stop_sequence"),
                usage=Usage.from_dict(data["usage"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise _decoding_error("message response", exc) from exc

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "role": self.role,
            "model": self.model,
            "content": [block.to_dict() for block in self.content],
            "stop_reason": self.stop_reason.value if self.stop_reason else None,
            "stop_sequence": self.stop_sequence,
            "usage": self.usage.to_dict(),
        }

    @property
    def text(self) -> str:
        """Concatenated text of all text blocks."""
        return "".join(
            block.text or ""
            for block in self.content
            if block.type is ContentBlockType.TEXT
        )

    @property
    def tool_uses(self) -> list[ContentBlock]:
        return [b for b in self.content if b.type is ContentBlockType.TOOL_USE]


# ---------------------------------------------------------------------------
# Stream events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MessageStartEvent:
    """Stream opened; carries the response shell (usage not final)."""

    type: ClassVar[str] = "message_start"
    message: Response


@dataclass(frozen=True)
class ContentBlockStartEvent:
    type: ClassVar[str] = "content_block_start"
    index: int
    content_block: ContentBlock


@dataclass(frozen=True)
class Delta:
    """Partial update to a content block.

    ``type`` is the wire discriminator: ``text_delta`` fills ``text``,
    ``input_json_delta`` fills ``partial_json``.  Other delta types are kept
    with no payload.
    """

    type: str
    text: str | None = None
    partial_json: str | None = None


@dataclass(frozen=True)
class ContentBlockDeltaEvent:
    type: ClassVar[str] = "content_block_delta"
    index: int
    delta: Delta


@dataclass(frozen=True)
class ContentBlockStopEvent:
    type: ClassVar[str] = "content_block_stop"
    index: int


@dataclass(frozen=True)
class MessageDeltaEvent:
    type: ClassVar[str] = "message_delta"
    stop_reason: StopReason | None = None
    stop_sequence: str | None = None
    usage: StreamingUsage | None = None


@dataclass(frozen=True)
class MessageStopEvent:
    type: ClassVar[str] = "message_stop"


@dataclass(frozen=True)
class PingEvent:
    type: ClassVar[str] = "ping"


@dataclass(frozen=True)
class ErrorEvent:
    type: ClassVar[str] = "error"
    error: APIError


StreamEvent = Union[
    MessageStartEvent,
    ContentBlockStartEvent,
    ContentBlockDeltaEvent,
    ContentBlockStopEvent,
    MessageDeltaEvent,
    MessageStopEvent,
    PingEvent,
    ErrorEvent,
]


# ---------------------------------------------------------------------------
# Request types
# ---------------------------------------------------------------------------

@dataclass
class Message:
    """A single conversation turn."""

    role: str
    content: str | list[ContentBlock]

    @classmethod
    def text(cls, text: str, role: str = "user") -> Message:
        return cls(role=role, content=text)

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, str):
            return {"role": self.role, "content": self.content}
        return {
            "role": self.role,
            "content": [block.to_dict() for block in self.content],
        }


@dataclass
class Tool:
    """A tool the model may call."""

    name: str
    input_schema: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}},
    )
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.description is not None:
            out["description"] = self.description
        out["input_schema"] = self.input_schema
        return out


@dataclass(frozen=True)
class ToolChoice:
    type: str  # "auto" | "any" | "tool"
    name: str | None = None

    @classmethod
    def auto(cls) -> ToolChoice:
        return cls("auto")

    @classmethod
    def any(cls) -> ToolChoice:
        return cls("any")

    @classmethod
    def tool(cls, name: str) -> ToolChoice:
        return cls("tool", name)

    def to_dict(self) -> dict[str, str]:
        if self.name is None:
            return {"type": self.type}
        return {"type": self.type, "name": self.name}


@dataclass
class MessageRequest:
    """Everything needed for one ``/v1/messages`` call.

    Field validation (non-empty model, positive ``max_tokens``) is left to
    the server.
    """

    model: str
    max_tokens: int
    messages: list[Message | dict[str, Any]]
    system: str | None = None
    metadata: dict[str, str] | None = None
    stop_sequences: list[str] | None = None
    temperature: float | None = None
    top_p: float | None = None
    top_k: int | None = None
    stream: bool | None = None
    tools: list[Tool] | None = None
    tool_choice: ToolChoice | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "messages": [
                m.to_dict() if isinstance(m, Message) else m
                for m in self.messages
            ],
        }
        optional = {
            "system": self.system,
            "metadata": self.metadata,
            "stop_sequences": self.stop_sequences,
            "temperature": self.temperature,
            "top_p": self.top_p,
            "top_k": self.top_k,
            "stream": self.stream,
        }
        payload.update({k: v for k, v in optional.items() if v is not None})
        if self.tools:
            payload["tools"] = [t.to_dict() for t in self.tools]
        if self.tool_choice is not None:
            payload["tool_choice"] = self.tool_choice.to_dict()
        return payload


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class UploadedFile:
    """File object returned by the Files API."""

    id: str
    filename: str
    mime_type: str
    size_bytes: int
    created_at: datetime
    downloadable: bool = False
    type: str = "file"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UploadedFile:
        try:
            return cls(
                id=data["id"],
                type=data.get("type", "file"),
                filename=data["filename"],
                mime_type=data["mime_type"],
                size_bytes=int(data["size_bytes"]),
                created_at=parse_datetime(data["created_at"]),
                downloadable=bool(data.get("downloadable", False)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise _decoding_error("file object", exc) from exc

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "filename": self.filename,
            "mime_type": self.mime_type,
            "size_bytes": self.size_bytes,
            "created_at": format_datetime(self.created_at),
            "downloadable": self.downloadable,
        }
