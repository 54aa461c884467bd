"""Decode SSE frames into typed stream events."""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

from msgstream import json_value
from msgstream.errors import APIError, DecodingError, StreamParsingError
from msgstream.types import (
    ContentBlock,
    ContentBlockDeltaEvent,
    ContentBlockStartEvent,
    ContentBlockStopEvent,
    Delta,
    ErrorEvent,
    MessageDeltaEvent,
    MessageStartEvent,
    MessageStopEvent,
    PingEvent,
    Response,
    StopReason,
    StreamEvent,
    StreamingUsage,
)

from .frames import SSEFrame

_logger = logging.getLogger(__name__)


def _object(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise StreamParsingError(f"Expected an object for {what}, got {value!r}")
    return value


def _string(value: Any, what: str) -> str:
    if not isinstance(value, str):
        raise StreamParsingError(f"Expected a string for {what}, got {value!r}")
    return value


def _index(data: dict[str, Any]) -> int:
    index = data["index"]
    # bool is an int subclass
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise StreamParsingError(f"Invalid content block index {index!r}")
    return index


def _message_start(data: dict[str, Any]) -> StreamEvent:
    return MessageStartEvent(message=Response.from_dict(_object(data["message"], "message")))


def _content_block_start(data: dict[str, Any]) -> StreamEvent:
    return ContentBlockStartEvent(
        index=_index(data),
        content_block=ContentBlock.from_dict(
            _object(data["content_block"], "content_block"),
        ),
    )


def _content_block_delta(data: dict[str, Any]) -> StreamEvent:
    raw = _object(data["delta"], "delta")
    delta_type = _string(raw["type"], "delta.type")
    if delta_type == "text_delta":
        delta = Delta(type=delta_type, text=_string(raw["text"], "delta.text"))
    elif delta_type == "input_json_delta":
        delta = Delta(
            type=delta_type,
            partial_json=_string(raw["partial_json"], "delta.partial_json"),
        )
    else:
        delta = Delta(type=delta_type)
    return ContentBlockDeltaEvent(index=_index(data), delta=delta)


def _content_block_stop(data: dict[str, Any]) -> StreamEvent:
    return ContentBlockStopEvent(index=_index(data))


def _message_delta(data: dict[str, Any]) -> StreamEvent:
    delta = _object(data.get("delta") or {}, "delta")
    usage = _object(data.get("usage") or {}, "usage")
    stop_reason = delta.get("stop_reason")
    stop_sequence = delta.get("stop_sequence")
    if stop_sequence is not None:
        stop_sequence = _string(stop_sequence, "delta.stop_sequence")
    output_tokens = usage.get("output_tokens")
    if output_tokens is not None and (
        isinstance(output_tokens, bool) or not isinstance(output_tokens, int)
    ):
        raise StreamParsingError(f"Invalid output_tokens {output_tokens!r}")
    return MessageDeltaEvent(
        stop_reason=StopReason(stop_reason) if stop_reason is not None else None,
        stop_sequence=stop_sequence,
        usage=(
            StreamingUsage(output_tokens=output_tokens)
            if output_tokens is not None else None
        ),
    )


def _message_stop(data: dict[str, Any]) -> StreamEvent:
    return MessageStopEvent()


def _error(data: dict[str, Any]) -> StreamEvent:
    return ErrorEvent(error=APIError.from_dict(data["error"]))


_DECODERS: dict[str, Callable[[dict[str, Any]], StreamEvent]] = {
    "message_start": _message_start,
    "content_block_start": _content_block_start,
    "content_block_delta": _content_block_delta,
    "content_block_stop": _content_block_stop,
    "message_delta": _message_delta,
    "message_stop": _message_stop,
    "error": _error,
}


def decode_event(frame: SSEFrame) -> StreamEvent | None:
    """Map one frame to its event.

    Returns ``None`` for unknown event names.  Raises ``StreamParsingError``
    when the data of a known event is not valid JSON or has the wrong shape.
    """
    if frame.event == "ping":
        return PingEvent()

    decoder = _DECODERS.get(frame.event)
    if decoder is None:
        _logger.debug("Ignoring unknown stream event %r", frame.event)
        return None

    try:
        data = json_value.loads(frame.data)
    except ValueError as e:
        raise StreamParsingError(
            f"Invalid JSON in {frame.event} event: {e}"
        ) from e
    if not isinstance(data, dict):
        raise StreamParsingError(f"Expected an object in {frame.event} event")

    try:
        return decoder(data)
    except (KeyError, TypeError, ValueError, AttributeError, DecodingError) as e:
        raise StreamParsingError(
            f"Malformed {frame.event} event: {e}"
        ) from e


def decode_frames(frames: Iterable[SSEFrame]) -> list[StreamEvent]:
    """Decode *frames* in order, dropping unknown events."""
    events: list[StreamEvent] = []
    for frame in frames:
        event = decode_event(frame)
        if event is not None:
            events.append(event)
    return events
