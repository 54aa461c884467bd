"""Transport that shells out to the ``curl`` binary.

Used where the interpreter has no TLS support.  Output is read with awaited
pipe reads so chunks reach the caller as curl writes them; the header block
printed by ``-i`` is split off and checked before any body bytes are
yielded.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import signal
from typing import AsyncIterator

from msgstream.errors import NetworkError

from .base import HTTPRequest, HTTPResponse, Transport, error_from_response

_logger = logging.getLogger(__name__)

_READ_SIZE = 64 * 1024
_KILL_GRACE = 5.0  # seconds between SIGTERM and SIGKILL


# ---------------------------------------------------------------------------
# Header parsing
# ---------------------------------------------------------------------------

def _find_blank_line(buffer: bytes, start: int) -> tuple[int, int]:
    """Return ``(index, separator_length)`` of the first blank line, or (-1, 0)."""
    best = (-1, 0)
    for sep in (b"\r\n\r\n", b"\n\n"):
        idx = buffer.find(sep, start)
        if idx >= 0 and (best[0] < 0 or idx < best[0]):
            best = (idx, len(sep))
    return best


def _parse_status_line(line: str) -> int:
    # "HTTP/1.1 200 OK" or "HTTP/2 200"
    parts = line.split()
    if len(parts) < 2 or not parts[0].startswith("HTTP/"):
        raise NetworkError(f"invalid response: {line!r}")
    try:
        return int(parts[1])
    except ValueError:
        raise NetworkError(f"invalid response: {line!r}") from None


def parse_header_block(buffer: bytes) -> tuple[int, dict[str, str], int] | None:
    """Split curl ``-i`` output into status, headers and body offset.

    Interim ``1xx`` blocks are skipped.  Returns ``None`` while the final
    header block is still incomplete.
    """
    offset = 0
    while True:
        end, sep_len = _find_blank_line(buffer, offset)
        if end < 0:
            return None
        lines = buffer[offset:end].decode("latin-1").splitlines()
        body_start = end + sep_len
        if not lines:
            raise NetworkError("invalid response: empty header block")
        status = _parse_status_line(lines[0])
        if 100 <= status < 200:
            offset = body_start
            continue
        headers: dict[str, str] = {}
        for line in lines[1:]:
            name, sep, value = line.partition(":")
            if sep:
                headers[name.strip().lower()] = value.strip()
        return status, headers, body_start


# ---------------------------------------------------------------------------
# Process helpers
# ---------------------------------------------------------------------------

def _signal_group(proc: asyncio.subprocess.Process, sig: int) -> None:
    try:
        if os.name != "nt":
            os.killpg(os.getpgid(proc.pid), sig)
        elif sig == signal.SIGTERM:
            proc.terminate()
        else:
            proc.kill()
    except (ProcessLookupError, OSError):
        pass  # already dead


async def _kill_process_tree(
    proc: asyncio.subprocess.Process, grace: float = _KILL_GRACE,
) -> None:
    """Terminate a process and its group: SIGTERM, then SIGKILL after *grace*."""
    if proc.returncode is not None:
        return
    _logger.debug("Terminating curl process %d", proc.pid)
    _signal_group(proc, signal.SIGTERM)
    try:
        await asyncio.wait_for(proc.wait(), timeout=grace)
    except asyncio.TimeoutError:
        _logger.warning("curl process %d ignored SIGTERM, killing", proc.pid)
        _signal_group(proc, signal.SIGKILL)
        await proc.wait()


# ---------------------------------------------------------------------------
# Transport
# ---------------------------------------------------------------------------

class CurlTransport(Transport):
    """Transport that runs one ``curl`` process per request."""

    name = "curl"

    def __init__(self, command: str = "curl", kill_grace: float = _KILL_GRACE) -> None:
        self.command = command
        self.kill_grace = kill_grace

    def is_available(self) -> bool:
        return shutil.which(self.command) is not None

    def build_args(self, request: HTTPRequest) -> list[str]:
        args = [
            self.command,
            "-X", request.method,
            request.url,
            "-N", "--no-buffer",
            "-sS", "-i",
            "--max-time", f"{request.timeout:g}",
        ]
        for name, value in request.headers.items():
            args.extend(["-H", f"{name}: {value}"])
        if request.body is not None:
            args.extend(["--data-binary", "@-"])
        return args

    async def send(self, request: HTTPRequest) -> HTTPResponse:
        body = bytearray()
        async for chunk in self.send_streaming(request):
            body.extend(chunk)
        # Headers are not surfaced on the buffered path
        return HTTPResponse(status_code=200, headers={}, body=bytes(body))

    async def send_streaming(self, request: HTTPRequest) -> AsyncIterator[bytes]:
        args = self.build_args(request)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=(
                    asyncio.subprocess.PIPE
                    if request.body is not None
                    else asyncio.subprocess.DEVNULL
                ),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as e:
            raise NetworkError(f"Failed to launch {self.command}: {e}") from e

        assert proc.stdout is not None and proc.stderr is not None
        stderr_task = asyncio.ensure_future(proc.stderr.read())
        finished = False
        try:
            if request.body is not None:
                assert proc.stdin is not None
                try:
                    proc.stdin.write(request.body)
                    await proc.stdin.drain()
                    proc.stdin.close()
                except (BrokenPipeError, ConnectionResetError):
                    # curl exited early; its exit status reports why
                    _logger.debug("curl closed stdin before the body was written")

            buffer = bytearray()
            parsed = None
            while parsed is None:
                chunk = await proc.stdout.read(_READ_SIZE)
                if not chunk:
                    break
                buffer.extend(chunk)
                parsed = parse_header_block(bytes(buffer))

            if parsed is None:
                await self._check_exit(proc, stderr_task)
                raise NetworkError("invalid response")

            status, _headers, body_start = parsed
            rest = bytes(buffer[body_start:])
            if status >= 400:
                rest += await proc.stdout.read()
                await proc.wait()
                raise error_from_response(status, rest)

            if rest:
                yield rest
            while True:
                chunk = await proc.stdout.read(_READ_SIZE)
                if not chunk:
                    break
                yield chunk

            await self._check_exit(proc, stderr_task)
            finished = True
        finally:
            if not finished:
                await _kill_process_tree(proc, self.kill_grace)
            if not stderr_task.done():
                stderr_task.cancel()

    async def _check_exit(
        self, proc: asyncio.subprocess.Process, stderr_task: asyncio.Future[bytes],
    ) -> None:
        returncode = await proc.wait()
        if returncode == 0:
            return
        stderr = (await stderr_task).decode("utf-8", "replace").strip()
        raise NetworkError(
            f"{self.command} exited with code {returncode}: {stderr}"
            if stderr else f"{self.command} exited with code {returncode}"
        )
