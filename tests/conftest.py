"""Pytest configuration and fixtures for outline-api tests.

This file provides:
- FakeStream / FakeBackend: scripted network streams for transport tests
- make_http_response: raw HTTP/1.1 response bytes
- Fixtures: patched DNS resolution, fake backends, insecure SSL context
"""

from __future__ import annotations

import socket
import ssl
from typing import Any, Callable, Generator
from unittest.mock import patch

import httpcore
import httpx
import pytest

from outline_api.models import ExchangeResult

API_URL = "https://203.0.113.7:8081/SecretPath"


def make_http_response(
    status_code: int = 200,
    body: bytes = b"",
    reason: str = "OK",
    headers: dict[str, str] | None = None,
) -> bytes:
    """Build a complete HTTP/1.1 response with Content-Length set."""
    lines = [f"HTTP/1.1 {status_code} {reason}"]
    all_headers = {"Content-Length": str(len(body))}
    if body:
        all_headers["Content-Type"] = "application/json"
    all_headers.update(headers or {})
    lines.extend(f"{key}: {value}" for key, value in all_headers.items())
    return ("\r\n".join(lines) + "\r\n\r\n").encode("ascii") + body


def make_exchange_result(status_code: int = 200, body: str = "") -> ExchangeResult:
    return ExchangeResult(status_code=status_code, body=body)


class FakeStream(httpcore.NetworkStream):
    """Network stream that replays scripted response chunks and records writes.

    Failures can be injected per step by passing an exception instance.
    """

    def __init__(
        self,
        chunks: list[bytes],
        tls_error: Exception | None = None,
        write_error: Exception | None = None,
        read_error: Exception | None = None,
        sock: Any = None,
    ) -> None:
        self._chunks = list(chunks)
        self._tls_error = tls_error
        self._write_error = write_error
        self._read_error = read_error
        self._sock = sock
        self.written = b""
        self.tls_hostname: str | None = None
        self.tls_context: ssl.SSLContext | None = None
        self.tls_timeout: float | None = None
        self.read_timeouts: list[float | None] = []
        self.closed = False

    def read(self, max_bytes: int, timeout: float | None = None) -> bytes:
        self.read_timeouts.append(timeout)
        if self._read_error is not None:
            raise self._read_error
        if not self._chunks:
            return b""
        return self._chunks.pop(0)

    def write(self, buffer: bytes, timeout: float | None = None) -> None:
        if self._write_error is not None:
            raise self._write_error
        self.written += buffer

    def close(self) -> None:
        self.closed = True

    def start_tls(
        self,
        ssl_context: ssl.SSLContext,
        server_hostname: str | None = None,
        timeout: float | None = None,
    ) -> httpcore.NetworkStream:
        if self._tls_error is not None:
            raise self._tls_error
        self.tls_context = ssl_context
        self.tls_hostname = server_hostname
        self.tls_timeout = timeout
        return self

    def get_extra_info(self, info: str) -> Any:
        if info == "socket":
            return self._sock
        return None


class FakeBackend(httpcore.NetworkBackend):
    """Network backend handing out one FakeStream per connect_tcp call.

    Usage:
        backend = FakeBackend(lambda: FakeStream([make_http_response(200, b"{}")]))
        transport = StagedTransport(ssl_context, network_backend=backend)
    """

    def __init__(
        self,
        stream_factory: Callable[[], FakeStream],
        connect_error: Exception | None = None,
    ) -> None:
        self._stream_factory = stream_factory
        self._connect_error = connect_error
        self.connects: list[tuple[str, int, float | None]] = []
        self.streams: list[FakeStream] = []

    def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: Any = None,
    ) -> httpcore.NetworkStream:
        self.connects.append((host, port, timeout))
        if self._connect_error is not None:
            raise self._connect_error
        stream = self._stream_factory()
        self.streams.append(stream)
        return stream

    def connect_unix_socket(
        self,
        path: str,
        timeout: float | None = None,
        socket_options: Any = None,
    ) -> httpcore.NetworkStream:
        raise NotImplementedError

    def sleep(self, seconds: float) -> None:
        pass


def backend_replying(status_code: int = 200, body: bytes = b"") -> FakeBackend:
    """FakeBackend whose every connection answers with the same response."""
    return FakeBackend(lambda: FakeStream([make_http_response(status_code, body)]))


# =============================================================================
# Pytest Fixtures
# =============================================================================


@pytest.fixture
def fake_dns() -> Generator[Any, None, None]:
    """Patch getaddrinfo in the transport to resolve every host to 203.0.113.7."""

    def resolve(host: str, port: int, *args: Any, **kwargs: Any) -> list[Any]:
        return [(socket.AF_INET, socket.SOCK_STREAM, 6, "", ("203.0.113.7", port))]

    with patch("outline_api.transport.socket.getaddrinfo", side_effect=resolve) as mock_dns:
        yield mock_dns


@pytest.fixture
def insecure_context() -> ssl.SSLContext:
    ssl_context = ssl.create_default_context()
    ssl_context.check_hostname = False
    ssl_context.verify_mode = ssl.CERT_NONE
    return ssl_context


@pytest.fixture
def mock_transport_factory() -> Callable[..., tuple[httpx.MockTransport, list[httpx.Request]]]:
    """Build an httpx.MockTransport answering with a fixed status/body and recording requests."""

    def factory(status_code: int = 200, content: bytes = b"") -> tuple[httpx.MockTransport, list[httpx.Request]]:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(status_code, content=content)

        return httpx.MockTransport(handler), seen

    return factory

