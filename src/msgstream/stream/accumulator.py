"""Rebuild a complete ``Response`` from stream events."""

from __future__ import annotations

from dataclasses import replace

from msgstream.types import (
    ContentBlock,
    ContentBlockDeltaEvent,
    ContentBlockStartEvent,
    MessageDeltaEvent,
    MessageStartEvent,
    MessageStopEvent,
    Response,
    StreamEvent,
)


class StreamAccumulator:
    """Fold stream events into the final response.

    Text and tool-input fragments are collected per content index.  Deltas
    for an index whose slot does not exist yet only grow the buffer; the
    slot picks up the buffered text on the next delta after its start
    event.  Only ``message_stop`` produces a result.
    """

    def __init__(self) -> None:
        self._response: Response | None = None
        self._content: list[ContentBlock] = []
        self._text: dict[int, str] = {}
        self._json: dict[int, str] = {}

    def process(self, event: StreamEvent) -> Response | None:
        if isinstance(event, MessageStartEvent):
            self._response = event.message
            self._content = list(event.message.content)
        elif isinstance(event, ContentBlockStartEvent):
            self._start_block(event)
        elif isinstance(event, ContentBlockDeltaEvent):
            self._apply_delta(event)
        elif isinstance(event, MessageDeltaEvent):
            self._apply_message_delta(event)
        elif isinstance(event, MessageStopEvent):
            return self.response
        # ping, error and block-stop carry no state
        return None

    # ------------------------------------------------------------------

    def _start_block(self, event: ContentBlockStartEvent) -> None:
        while len(self._content) <= event.index:
            self._content.append(ContentBlock.text_block())
        self._content[event.index] = event.content_block

    def _apply_delta(self, event: ContentBlockDeltaEvent) -> None:
        index = event.index
        delta = event.delta
        if delta.type == "text_delta" and delta.text is not None:
            text = self._text.get(index, "") + delta.text
            self._text[index] = text
            if index < len(self._content):
                self._content[index] = replace(self._content[index], text=text)
        elif delta.type == "input_json_delta" and delta.partial_json is not None:
            raw = self._json.get(index, "") + delta.partial_json
            self._json[index] = raw
            if index < len(self._content):
                self._content[index] = replace(
                    self._content[index], partial_json=raw,
                )

    def _apply_message_delta(self, event: MessageDeltaEvent) -> None:
        if self._response is None:
            return
        response = self._response
        if event.stop_reason is not None:
            response = replace(response, stop_reason=event.stop_reason)
        if event.stop_sequence is not None:
            response = replace(response, stop_sequence=event.stop_sequence)
        if event.usage is not None:
            response = replace(
                response,
                usage=response.usage.with_output_tokens(event.usage.output_tokens),
            )
        self._response = response

    # ------------------------------------------------------------------

    @property
    def content(self) -> tuple[ContentBlock, ...]:
        return tuple(self._content)

    @property
    def response(self) -> Response | None:
        """Snapshot of the response so far (``None`` before message_start)."""
        if self._response is None:
            return None
        return replace(self._response, content=tuple(self._content))
