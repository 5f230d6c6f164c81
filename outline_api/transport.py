"""Transport - one fresh TLS connection per exchange.

StagedTransport plugs into httpx.Client as its transport. For every request it
resolves the host, opens a TCP connection, performs the TLS handshake, sends
the request, reads the complete response and shuts the connection down.
Nothing is pooled or kept alive between calls.

A failure at any step raises TransportError tagged with that step, so callers
can tell a DNS problem from a refused connection or a bad certificate.
"""

from __future__ import annotations

import errno
import logging
import socket
import ssl
import time

import httpcore
import httpx

from outline_api.errors import TransportError, TransportStage
from outline_api.models import HTTPS_DEFAULT_PORT

logger = logging.getLogger(__name__)

# Seconds allowed for the TLS close_notify exchange, independent of the call deadline.
SHUTDOWN_TIMEOUT = 1.0

# Shutdown errors meaning the peer already closed its side.
_PEER_CLOSED_ERRORS = (
    ssl.SSLEOFError,
    ssl.SSLZeroReturnError,
    ConnectionResetError,
    BrokenPipeError,
)


def build_ssl_context(ca_cert: str | None = None, insecure: bool = False) -> ssl.SSLContext:
    """Build the client TLS context.

    Args:
        ca_cert: PEM file holding the certificate(s) to trust. When set, only
                 these are trusted; the system store is not consulted.
        insecure: Accept any server certificate. Mutually exclusive with ca_cert.

    Returns:
        A context that verifies against ca_cert, the system store, or nothing
        (insecure).

    Raises:
        TransportError: If ca_cert cannot be loaded (stage: handshake).
    """
    if insecure:
        ssl_context = ssl.create_default_context()
        ssl_context.check_hostname = False
        ssl_context.verify_mode = ssl.CERT_NONE
        logger.warning("TLS certificate verification is disabled")
        return ssl_context

    if ca_cert:
        ssl_context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        try:
            ssl_context.load_verify_locations(cafile=ca_cert)
        except (OSError, ssl.SSLError) as e:
            raise TransportError(
                TransportStage.HANDSHAKE, f"cannot load CA certificate '{ca_cert}': {e}"
            ) from e
        return ssl_context

    return ssl.create_default_context()


class Deadline:
    """Time budget shared by every step of one exchange.

    A None timeout means no limit.
    """

    def __init__(self, timeout: float | None) -> None:
        self._timeout = timeout
        self._expires_at = None if timeout is None else time.monotonic() + timeout

    def remaining(self, stage: TransportStage) -> float | None:
        """Seconds left for the given step.

        Raises:
            TransportError: If the budget is already spent.
        """
        if self._expires_at is None:
            return None
        left = self._expires_at - time.monotonic()
        if left <= 0:
            raise TransportError(
                stage, f"deadline of {self._timeout}s exceeded", timed_out=True
            )
        return left

    @classmethod
    def for_request(cls, request: httpx.Request) -> Deadline:
        """Use the tightest timeout httpx attached to the request."""
        timeouts = request.extensions.get("timeout", {})
        values = [value for value in timeouts.values() if value is not None]
        return cls(min(values) if values else None)


class _DeadlineStream(httpcore.NetworkStream):
    """Delegating stream that charges every read and write to the call's deadline.

    Also remembers the first failed write.
    """

    def __init__(self, stream: httpcore.NetworkStream, deadline: Deadline) -> None:
        self._stream = stream
        self._deadline = deadline
        self.write_error: httpcore.WriteError | None = None

    def read(self, max_bytes: int, timeout: float | None = None) -> bytes:
        remaining = self._deadline.remaining(TransportStage.READ)
        return self._stream.read(max_bytes, timeout=remaining)

    def write(self, buffer: bytes, timeout: float | None = None) -> None:
        remaining = self._deadline.remaining(TransportStage.WRITE)
        try:
            self._stream.write(buffer, timeout=remaining)
        except httpcore.WriteError as e:
            if self.write_error is None:
                self.write_error = e
            raise

    def close(self) -> None:
        self._stream.close()

    def start_tls(
        self,
        ssl_context: ssl.SSLContext,
        server_hostname: str | None = None,
        timeout: float | None = None,
    ) -> httpcore.NetworkStream:
        return self._stream.start_tls(ssl_context, server_hostname, timeout)

    def get_extra_info(self, info: str) -> object:
        return self._stream.get_extra_info(info)


class StagedTransport(httpx.BaseTransport):
    """httpx transport that runs each request on its own short-lived connection.

    Usage:
        transport = StagedTransport(build_ssl_context(ca_cert="server.pem"))
        with httpx.Client(transport=transport, timeout=30.0) as client:
            response = client.get("https://1.2.3.4:8081/secret/access-keys")

    Not safe for concurrent use: one exchange at a time.
    """

    def __init__(
        self,
        ssl_context: ssl.SSLContext,
        network_backend: httpcore.NetworkBackend | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            ssl_context: TLS context used for every handshake.
            network_backend: Opens TCP streams. Defaults to httpcore.SyncBackend.
        """
        self._ssl_context = ssl_context
        self._network_backend = network_backend or httpcore.SyncBackend()
        self._open_stream: httpcore.NetworkStream | None = None

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        deadline = Deadline.for_request(request)
        host = request.url.host
        port = request.url.port or HTTPS_DEFAULT_PORT

        address = self._resolve(host, port, deadline)
        self._open_stream = self._connect(address, port, deadline)
        try:
            self._open_stream = self._handshake(self._open_stream, host, deadline)
            response = self._exchange(self._open_stream, request, deadline)
            self._shutdown(self._open_stream)
        finally:
            self._release_stream()

        return response

    def close(self) -> None:
        """Tear down a stream left open by an interrupted exchange.

        Errors are logged, never raised.
        """
        if self._open_stream is not None:
            try:
                self._shutdown(self._open_stream)
            except TransportError as e:
                logger.warning("Shutdown error: %s", e)
        self._release_stream()

    def _resolve(self, host: str, port: int, deadline: Deadline) -> str:
        """Look up host and return the first address to connect to."""
        deadline.remaining(TransportStage.RESOLVE)
        try:
            infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
        except (OSError, UnicodeError) as e:
            raise TransportError(TransportStage.RESOLVE, f"{host}:{port}: {e}") from e

        # getaddrinfo cannot be interrupted; check the budget once it returns.
        deadline.remaining(TransportStage.RESOLVE)
        if not infos:
            raise TransportError(TransportStage.RESOLVE, f"{host}:{port}: no addresses")

        address = infos[0][4][0]
        logger.debug("Resolved %s to %s", host, address)
        return address

    def _connect(self, address: str, port: int, deadline: Deadline) -> httpcore.NetworkStream:
        timeout = deadline.remaining(TransportStage.CONNECT)
        try:
            return self._network_backend.connect_tcp(address, port, timeout=timeout)
        except httpcore.ConnectTimeout as e:
            raise TransportError(
                TransportStage.CONNECT, f"{address}:{port}: {e}", timed_out=True
            ) from e
        except (httpcore.ConnectError, OSError) as e:
            raise TransportError(TransportStage.CONNECT, f"{address}:{port}: {e}") from e

    def _handshake(
        self,
        stream: httpcore.NetworkStream,
        host: str,
        deadline: Deadline,
    ) -> httpcore.NetworkStream:
        timeout = deadline.remaining(TransportStage.HANDSHAKE)
        try:
            return stream.start_tls(self._ssl_context, server_hostname=host, timeout=timeout)
        except httpcore.ConnectTimeout as e:
            raise TransportError(TransportStage.HANDSHAKE, str(e), timed_out=True) from e
        except (httpcore.ConnectError, OSError) as e:
            raise TransportError(TransportStage.HANDSHAKE, str(e)) from e

    def _exchange(
        self,
        stream: httpcore.NetworkStream,
        request: httpx.Request,
        deadline: Deadline,
    ) -> httpx.Response:
        """Write the request and read the full response over an open stream."""
        core_request = httpcore.Request(
            method=request.method,
            url=httpcore.URL(
                scheme=request.url.raw_scheme,
                host=request.url.raw_host,
                port=request.url.port,
                target=request.url.raw_path,
            ),
            headers=request.headers.raw,
            content=request.read(),
        )
        tracked = _DeadlineStream(stream, deadline)
        connection = httpcore.HTTP11Connection(origin=core_request.url.origin, stream=tracked)

        try:
            core_response = connection.handle_request(core_request)
            content = core_response.read()
        except (httpcore.WriteTimeout, httpcore.ReadTimeout) as e:
            stage = (
                TransportStage.WRITE
                if isinstance(e, httpcore.WriteTimeout)
                else TransportStage.READ
            )
            raise TransportError(stage, str(e) or "timed out", timed_out=True) from e
        except (httpcore.WriteError, httpcore.LocalProtocolError) as e:
            raise TransportError(TransportStage.WRITE, str(e)) from e
        except (httpcore.ReadError, httpcore.RemoteProtocolError) as e:
            # httpcore swallows a failed write and goes on to read, so the
            # read error is only a symptom when the write already failed.
            if tracked.write_error is not None:
                raise TransportError(
                    TransportStage.WRITE, str(tracked.write_error)
                ) from tracked.write_error
            raise TransportError(TransportStage.READ, str(e)) from e

        logger.debug("%s %s -> %d", request.method, request.url, core_response.status)
        return httpx.Response(
            status_code=core_response.status,
            headers=core_response.headers,
            # Content-Encoding is decoded by httpx.Client, outside the staged exchange.
            stream=httpx.ByteStream(content),
            request=request,
            extensions={
                key: value
                for key, value in core_response.extensions.items()
                if key in ("http_version", "reason_phrase")
            },
        )

    def _shutdown(self, stream: httpcore.NetworkStream) -> None:
        """Send TLS close_notify, tolerating a peer that is already gone.

        Runs on its own short timeout so that a response read in full is not
        lost to a deadline that ran out just after the read.
        """
        sock = stream.get_extra_info("socket")
        if not isinstance(sock, ssl.SSLSocket) or sock.fileno() == -1:
            return

        try:
            sock.settimeout(SHUTDOWN_TIMEOUT)
            sock.unwrap()
        except _PEER_CLOSED_ERRORS as e:
            logger.debug("Peer closed before TLS shutdown: %s", e)
        except TimeoutError as e:
            raise TransportError(TransportStage.SHUTDOWN, "timed out", timed_out=True) from e
        except OSError as e:
            if e.errno == errno.ENOTCONN:
                logger.debug("Socket already disconnected at shutdown")
                return
            raise TransportError(TransportStage.SHUTDOWN, str(e)) from e

    def _release_stream(self) -> None:
        stream, self._open_stream = self._open_stream, None
        if stream is None:
            return
        try:
            stream.close()
        except OSError as e:
            logger.warning("Error closing connection: %s", e)
