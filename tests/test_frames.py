"""Tests for SSE framing and chunk-boundary handling."""

from __future__ import annotations

import pytest

from msgstream.errors import StreamParsingError
from msgstream.stream.frames import (
    FrameBuffer,
    SSEFrame,
    find_frame_boundary,
    parse_frames,
)


SAMPLE = (
    'event: message_start\n'
    'data: {"type":"message_start"}\n'
    '\n'
    ': keep-alive comment\n'
    '\n'
    'event: content_block_delta\n'
    'data: {"text":"héllo ✓ \U0001f600"}\n'
    '\n'
    'event: ping\n'
    'data: {"type": "ping"}\n'
    '\n'
).encode("utf-8")


def _feed_in_chunks(data: bytes, size: int) -> list[SSEFrame]:
    buf = FrameBuffer()
    frames: list[SSEFrame] = []
    for i in range(0, len(data), size):
        frames.extend(buf.feed(data[i:i + size]))
    frames.extend(buf.flush())
    return frames


# ---------------------------------------------------------------------------
# parse_frames
# ---------------------------------------------------------------------------

class TestParseFrames:
    def test_single_frame(self):
        frames = parse_frames(b'event: ping\ndata: {"type": "ping"}\n\n')
        assert frames == [SSEFrame(event="ping", data='{"type": "ping"}')]

    def test_accepts_str(self):
        frames = parse_frames("event: a\ndata: 1\n\n")
        assert frames == [SSEFrame("a", "1")]

    def test_multiple_frames(self):
        frames = parse_frames(SAMPLE)
        assert [f.event for f in frames] == [
            "message_start", "content_block_delta", "ping",
        ]

    def test_crlf_line_endings(self):
        frames = parse_frames(b"event: a\r\ndata: 1\r\n\r\nevent: b\r\ndata: 2\r\n\r\n")
        assert frames == [SSEFrame("a", "1"), SSEFrame("b", "2")]

    def test_bare_cr_line_endings(self):
        frames = parse_frames(b"event: a\rdata: 1\r\r")
        assert frames == [SSEFrame("a", "1")]

    def test_multiple_data_lines_joined_with_newline(self):
        frames = parse_frames(b"event: a\ndata: first\ndata: second\n\n")
        assert frames == [SSEFrame("a", "first\nsecond")]

    def test_whitespace_trimmed(self):
        frames = parse_frames(b"  event:   a  \n  data:   x y  \n\n")
        assert frames == [SSEFrame("a", "x y")]

    def test_done_sentinel_dropped(self):
        frames = parse_frames(b"event: a\ndata: [DONE]\n\nevent: b\ndata: 1\n\n")
        assert frames == [SSEFrame("b", "1")]

    def test_frame_without_event_dropped(self):
        assert parse_frames(b"data: orphan\n\n") == []

    def test_frame_without_data_dropped(self):
        assert parse_frames(b"event: lonely\n\n") == []

    def test_empty_data_dropped(self):
        assert parse_frames(b"event: a\ndata:\n\n") == []

    def test_unterminated_trailing_frame_emitted(self):
        frames = parse_frames(b"event: a\ndata: 1\n\nevent: b\ndata: 2")
        assert frames == [SSEFrame("a", "1"), SSEFrame("b", "2")]

    def test_other_fields_ignored(self):
        frames = parse_frames(b"id: 7\nretry: 100\nevent: a\n: note\ndata: 1\n\n")
        assert frames == [SSEFrame("a", "1")]

    def test_invalid_utf8_raises(self):
        with pytest.raises(StreamParsingError):
            parse_frames(b"event: a\ndata: \xff\xfe\n\n")

    def test_empty_buffer(self):
        assert parse_frames(b"") == []


# ---------------------------------------------------------------------------
# find_frame_boundary
# ---------------------------------------------------------------------------

class TestFrameBoundary:
    def test_no_complete_frame(self):
        assert find_frame_boundary(b"event: a\ndata: 1\n") == 0

    def test_lf_boundary(self):
        data = b"event: a\ndata: 1\n\nevent: b"
        assert find_frame_boundary(data) == len(b"event: a\ndata: 1\n\n")

    def test_crlf_boundary(self):
        data = b"event: a\r\ndata: 1\r\n\r\nevent"
        assert find_frame_boundary(data) == len(b"event: a\r\ndata: 1\r\n\r\n")

    def test_last_boundary_wins(self):
        data = b"event: a\ndata: 1\n\nevent: b\ndata: 2\n\n"
        assert find_frame_boundary(data) == len(data)


# ---------------------------------------------------------------------------
# FrameBuffer
# ---------------------------------------------------------------------------

class TestFrameBuffer:
    def test_holds_partial_frame(self):
        buf = FrameBuffer()
        assert buf.feed(b"event: a\nda") == []
        assert buf.pending > 0
        assert buf.feed(b"ta: 1\n\n") == [SSEFrame("a", "1")]
        assert buf.pending == 0

    def test_flush_emits_tail(self):
        buf = FrameBuffer()
        assert buf.feed(b"event: a\ndata: 1") == []
        assert buf.flush() == [SSEFrame("a", "1")]
        assert buf.flush() == []

    @pytest.mark.parametrize("size", [1, 2, 3, 5, 7, 16, 1000])
    def test_chunk_boundaries_do_not_matter(self, size):
        assert _feed_in_chunks(SAMPLE, size) == parse_frames(SAMPLE)

    @pytest.mark.parametrize("size", [1, 3, 4])
    def test_crlf_chunk_boundaries(self, size):
        data = SAMPLE.replace(b"\n", b"\r\n")
        assert _feed_in_chunks(data, size) == parse_frames(SAMPLE)

    def test_split_multibyte_character(self):
        data = 'event: a\ndata: "✓"\n\n'.encode("utf-8")
        cut = data.index(b"\xe2") + 1  # inside the 3-byte sequence
        buf = FrameBuffer()
        assert buf.feed(data[:cut]) == []
        assert buf.feed(data[cut:]) == [SSEFrame("a", '"✓"')]
