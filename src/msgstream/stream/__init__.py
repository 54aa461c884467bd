"""SSE framing, event decoding and response accumulation."""

from msgstream.stream.accumulator import StreamAccumulator
from msgstream.stream.decoder import decode_event, decode_frames
from msgstream.stream.frames import FrameBuffer, SSEFrame, find_frame_boundary, parse_frames

__all__ = [
    "FrameBuffer",
    "SSEFrame",
    "StreamAccumulator",
    "decode_event",
    "decode_frames",
    "find_frame_boundary",
    "parse_frames",
]
