"""Error taxonomy for outline-api.

Every failure a caller can see is an OutlineError subclass. Each carries the
context needed to log or display it (operation name, transport stage, status
code) without re-deriving it from the message.
"""

from __future__ import annotations

from enum import Enum


class TransportStage(str, Enum):
    """Step of a single exchange at which a transport failure occurred."""

    RESOLVE = "resolve"
    CONNECT = "connect"
    HANDSHAKE = "handshake"
    WRITE = "write"
    READ = "read"
    SHUTDOWN = "shutdown"


class OutlineError(Exception):
    """Base class for outline-api errors."""


class UrlError(OutlineError):
    """Raised when the API URL cannot be parsed or an endpoint cannot be composed."""


class ConfigError(OutlineError):
    """Raised when configuration loading fails."""


class TransportError(OutlineError):
    """Raised when an exchange fails below the HTTP layer.

    Attributes:
        stage: The step that failed.
        timed_out: True if the per-call deadline ran out during that step.
    """

    def __init__(self, stage: TransportStage, message: str, timed_out: bool = False) -> None:
        self.stage = stage
        self.timed_out = timed_out
        super().__init__(f"{stage.value} failed: {message}")


class ServerError(OutlineError):
    """Raised when the server answers with a status other than the expected one."""

    def __init__(self, operation: str, status_code: int) -> None:
        self.operation = operation
        self.status_code = status_code
        super().__init__(f"{operation}: unexpected status {status_code}")


class ParseError(OutlineError):
    """Raised when a successful response body is not valid JSON."""

    def __init__(self, operation: str, cause: str) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation}: invalid JSON in response body: {cause}")
