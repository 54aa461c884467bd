"""Server-Sent Events framing.

Turns raw response bytes into ``SSEFrame`` values.  ``FrameBuffer`` holds
the unfinished tail between network chunks so that the frames produced do
not depend on where the chunks were cut.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from msgstream.errors import StreamParsingError

_LINE_SPLIT = re.compile(r"\r\n|\r|\n")
_FRAME_ENDS = (b"\r\n\r\n", b"\n\n", b"\r\r")
_DONE = "[DONE]"


@dataclass(frozen=True)
class SSEFrame:
    event: str
    data: str


def parse_frames(buffer: bytes | str) -> list[SSEFrame]:
    """Parse every frame in *buffer*, including an unterminated last one.

    A frame is kept only if it has both an ``event:`` name and non-empty
    data; ``[DONE]`` sentinels are dropped.  Multiple ``data:`` lines are
    joined with ``\\n``.  Raises ``StreamParsingError`` if *buffer* is not
    valid UTF-8.
    """
    if isinstance(buffer, (bytes, bytearray)):
        try:
            text = bytes(buffer).decode("utf-8")
        except UnicodeDecodeError as e:
            raise StreamParsingError(f"Invalid UTF-8 in event stream: {e}") from e
    else:
        text = buffer

    frames: list[SSEFrame] = []
    event: str | None = None
    data: list[str] = []

    def emit() -> None:
        nonlocal event, data
        if event and data:
            joined = "\n".join(data)
            if joined and joined != _DONE:
                frames.append(SSEFrame(event=event, data=joined))
        event = None
        data = []

    for raw_line in _LINE_SPLIT.split(text):
        line = raw_line.strip()
        if not line:
            emit()
        elif line.startswith("event:"):
            event = line[6:].strip()
        elif line.startswith("data:"):
            data.append(line[5:].strip())
        # comments, id:, retry: ignored

    emit()
    return frames


def find_frame_boundary(buffer: bytes | bytearray) -> int:
    """Number of leading bytes of *buffer* made of complete frames (0 if none)."""
    end = 0
    for sep in _FRAME_ENDS:
        idx = buffer.rfind(sep)
        if idx >= 0:
            end = max(end, idx + len(sep))
    return end


class FrameBuffer:
    """Incremental frame parser for one stream."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def feed(self, chunk: bytes) -> list[SSEFrame]:
        """Add *chunk* and return the frames it completed."""
        self._buffer.extend(chunk)
        cut = find_frame_boundary(self._buffer)
        if cut == 0:
            return []
        region = bytes(self._buffer[:cut])
        del self._buffer[:cut]
        return parse_frames(region)

    def flush(self) -> list[SSEFrame]:
        """Parse whatever is left once the body has ended."""
        if not self._buffer:
            return []
        region = bytes(self._buffer)
        self._buffer.clear()
        return parse_frames(region)

    @property
    def pending(self) -> int:
        return len(self._buffer)
