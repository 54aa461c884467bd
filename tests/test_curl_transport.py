"""Tests for CurlTransport using a fake curl executable.

The fake records its argv and stdin, then replays canned ``curl -i``
output so the header parsing, error mapping and process cleanup paths run
against a real subprocess.
"""

from __future__ import annotations

import json
import os
import stat
import sys
import time
from pathlib import Path
from unittest.mock import patch

import pytest

from msgstream.config import ClientConfig
from msgstream.errors import APIStatusError, ErrorType, InvalidConfigurationError, NetworkError
from msgstream.transport import CurlTransport, HTTPRequest, NativeTransport, create_transport
from msgstream.transport.curl import parse_header_block


pytestmark = pytest.mark.skipif(os.name == "nt", reason="fake curl needs a POSIX shebang")


_FAKE_CURL = """#!{python}
import json, os, pathlib, sys, time
base = pathlib.Path({base!r})
(base / "argv.json").write_text(json.dumps(sys.argv[1:]))
(base / "pid").write_text(str(os.getpid()))
(base / "stdin.bin").write_bytes(sys.stdin.buffer.read())
sys.stdout.buffer.write((base / "out.bin").read_bytes())
sys.stdout.buffer.flush()
sys.stderr.write({stderr!r})
sys.stderr.flush()
time.sleep({hang})
sys.exit({code})
"""


def make_fake_curl(
    tmp_path: Path,
    output: bytes,
    *,
    code: int = 0,
    stderr: str = "",
    hang: float = 0,
) -> Path:
    (tmp_path / "out.bin").write_bytes(output)
    script = tmp_path / "fake-curl"
    script.write_text(_FAKE_CURL.format(
        python=sys.executable, base=str(tmp_path), stderr=stderr, hang=hang, code=code,
    ))
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script


def _request(body: bytes | None = b'{"stream": true}') -> HTTPRequest:
    return HTTPRequest(
        method="POST",
        url="https://api.example.test/v1/messages",
        headers={"x-api-key": "k", "content-type": "application/json"},
        body=body,
        timeout=30,
    )


async def _collect(stream) -> bytes:
    return b"".join([chunk async for chunk in stream])


SSE_BODY = b'event: ping\r\ndata: {"type": "ping"}\r\n\r\n'


# ---------------------------------------------------------------------------
# Header parsing
# ---------------------------------------------------------------------------

class TestParseHeaderBlock:
    def test_incomplete(self):
        assert parse_header_block(b"HTTP/1.1 200 OK\r\ncontent-type: x\r\n") is None

    def test_crlf(self):
        data = b"HTTP/1.1 200 OK\r\nContent-Type: text/event-stream\r\n\r\nbody"
        status, headers, start = parse_header_block(data)
        assert status == 200
        assert headers == {"content-type": "text/event-stream"}
        assert data[start:] == b"body"

    def test_lf_only(self):
        data = b"HTTP/2 404\nx-a: 1\n\n{}"
        status, headers, start = parse_header_block(data)
        assert status == 404
        assert headers == {"x-a": "1"}
        assert data[start:] == b"{}"

    def test_skips_interim_blocks(self):
        data = b"HTTP/1.1 100 Continue\r\n\r\nHTTP/1.1 201 Created\r\n\r\nrest"
        status, _, start = parse_header_block(data)
        assert status == 201
        assert data[start:] == b"rest"

    def test_interim_block_then_incomplete(self):
        assert parse_header_block(b"HTTP/1.1 100 Continue\r\n\r\nHTTP/1.1 200") is None

    def test_garbage_status_line(self):
        with pytest.raises(NetworkError, match="invalid response"):
            parse_header_block(b"hello world\r\n\r\n")


# ---------------------------------------------------------------------------
# Arguments
# ---------------------------------------------------------------------------

class TestBuildArgs:
    def test_streaming_flags_and_headers(self):
        args = CurlTransport("curl").build_args(_request())
        assert args[:4] == ["curl", "-X", "POST", "https://api.example.test/v1/messages"]
        for flag in ("-N", "--no-buffer", "-sS", "-i"):
            assert flag in args
        assert args[args.index("--max-time") + 1] == "30"
        assert "x-api-key: k" in args
        assert args[-2:] == ["--data-binary", "@-"]

    def test_no_body_no_data_flag(self):
        args = CurlTransport("curl").build_args(_request(body=None))
        assert "--data-binary" not in args

    def test_availability(self, tmp_path):
        script = make_fake_curl(tmp_path, b"")
        assert CurlTransport(str(script)).is_available()
        assert not CurlTransport(str(tmp_path / "missing-curl")).is_available()


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------

class TestCurlStreaming:
    async def test_success_yields_body_only(self, tmp_path):
        script = make_fake_curl(
            tmp_path,
            b"HTTP/1.1 200 OK\r\ncontent-type: text/event-stream\r\n\r\n" + SSE_BODY,
        )
        body = await _collect(CurlTransport(str(script)).send_streaming(_request()))
        assert body == SSE_BODY

        argv = json.loads((tmp_path / "argv.json").read_text())
        assert argv[:3] == ["-X", "POST", "https://api.example.test/v1/messages"]
        assert (tmp_path / "stdin.bin").read_bytes() == b'{"stream": true}'

    async def test_interim_response_skipped(self, tmp_path):
        script = make_fake_curl(
            tmp_path,
            b"HTTP/1.1 100 Continue\r\n\r\nHTTP/2 200\r\n\r\n" + SSE_BODY,
        )
        body = await _collect(CurlTransport(str(script)).send_streaming(_request()))
        assert body == SSE_BODY

    async def test_error_envelope_raises_before_body(self, tmp_path):
        envelope = json.dumps({
            "type": "error",
            "error": {"type": "rate_limit_error", "message": "Too many requests"},
        }).encode()
        script = make_fake_curl(
            tmp_path, b"HTTP/1.1 429 Too Many Requests\r\n\r\n" + envelope,
        )
        received = []
        with pytest.raises(APIStatusError) as exc_info:
            async for chunk in CurlTransport(str(script)).send_streaming(_request()):
                received.append(chunk)
        assert received == []
        assert exc_info.value.status_code == 429
        assert exc_info.value.error_type is ErrorType.RATE_LIMIT
        assert exc_info.value.message == "Too many requests"

    async def test_error_without_envelope(self, tmp_path):
        script = make_fake_curl(tmp_path, b"HTTP/1.1 500 Internal Server Error\r\n\r\noops")
        with pytest.raises(NetworkError) as exc_info:
            await _collect(CurlTransport(str(script)).send_streaming(_request()))
        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "HTTP 500"

    async def test_curl_failure_carries_stderr(self, tmp_path):
        script = make_fake_curl(
            tmp_path, b"", code=6, stderr="curl: (6) Could not resolve host",
        )
        with pytest.raises(NetworkError, match="Could not resolve host"):
            await _collect(CurlTransport(str(script)).send_streaming(_request()))

    async def test_empty_output_is_invalid_response(self, tmp_path):
        script = make_fake_curl(tmp_path, b"")
        with pytest.raises(NetworkError, match="invalid response"):
            await _collect(CurlTransport(str(script)).send_streaming(_request()))

    async def test_missing_binary(self, tmp_path):
        transport = CurlTransport(str(tmp_path / "no-such-curl"))
        with pytest.raises(NetworkError, match="Failed to launch"):
            await _collect(transport.send_streaming(_request()))

    async def test_early_close_kills_process(self, tmp_path):
        script = make_fake_curl(
            tmp_path, b"HTTP/1.1 200 OK\r\n\r\n" + SSE_BODY, hang=60,
        )
        transport = CurlTransport(str(script), kill_grace=2)
        stream = transport.send_streaming(_request())

        started = time.monotonic()
        first = await stream.__anext__()
        await stream.aclose()

        assert first == SSE_BODY
        assert time.monotonic() - started < 30
        pid = int((tmp_path / "pid").read_text())
        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)


class TestCurlSend:
    async def test_send_buffers_body(self, tmp_path):
        script = make_fake_curl(tmp_path, b'HTTP/1.1 200 OK\r\n\r\n{"ok": true}')
        resp = await CurlTransport(str(script)).send(_request())
        assert resp.status_code == 200
        assert resp.json() == {"ok": True}

    async def test_upload_multipart_sends_form_body(self, tmp_path):
        script = make_fake_curl(tmp_path, b"HTTP/1.1 200 OK\r\n\r\n{}")
        await CurlTransport(str(script)).upload_multipart(
            _request(body=None), b"payload", "a.txt", "text/plain",
        )
        argv = json.loads((tmp_path / "argv.json").read_text())
        content_types = [a for a in argv if a.lower().startswith("content-type:")]
        assert len(content_types) == 1
        assert "multipart/form-data; boundary=" in content_types[0]
        sent = (tmp_path / "stdin.bin").read_bytes()
        assert b'filename="a.txt"' in sent
        assert b"\r\n\r\npayload\r\n--" in sent


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

class TestCreateTransport:
    def test_native(self):
        assert isinstance(create_transport(ClientConfig(api_key="k", transport="native")), NativeTransport)

    def test_auto_prefers_native(self):
        assert isinstance(create_transport(ClientConfig(api_key="k")), NativeTransport)

    def test_auto_without_tls_uses_curl(self, tmp_path):
        script = make_fake_curl(tmp_path, b"")
        config = ClientConfig(api_key="k", curl_command=str(script))
        with patch("msgstream.transport._has_tls", return_value=False):
            assert isinstance(create_transport(config), CurlTransport)

    def test_auto_without_tls_plain_http_uses_native(self):
        config = ClientConfig(api_key="k", base_url="http://localhost:8080")
        with patch("msgstream.transport._has_tls", return_value=False):
            assert isinstance(create_transport(config), NativeTransport)

    def test_curl_missing_binary(self, tmp_path):
        config = ClientConfig(
            api_key="k", transport="curl", curl_command=str(tmp_path / "nope"),
        )
        with pytest.raises(InvalidConfigurationError):
            create_transport(config)

    def test_unknown_name(self):
        with pytest.raises(InvalidConfigurationError):
            create_transport(ClientConfig(api_key="k", transport="carrier-pigeon"))
