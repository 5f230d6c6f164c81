"""Internal data models for outline-api.

All models use Pydantic v2.
"""

from __future__ import annotations

from typing import Any, Self

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from outline_api.errors import UrlError

TOOL_VERSION = "0.1.0"
DEFAULT_USER_AGENT = f"outline-api/{TOOL_VERSION}"
DEFAULT_TIMEOUT = 30.0
HTTPS_DEFAULT_PORT = 443


# =============================================================================
# URL Model
# =============================================================================


class ApiUrl(BaseModel):
    """Parsed, immutable management API URL.

    path and query are kept in their encoded form; they are sent on the wire
    exactly as stored. port is always set (443 when the URL omits it).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    scheme: str = Field(description="Always 'https'")
    host: str = Field(min_length=1, description="Hostname or IP literal (no brackets)")
    port: int = Field(ge=1, le=65535, description="TCP port")
    path: str = Field(default="", description="Encoded path, e.g. /SecretPath")
    query: str = Field(default="", description="Encoded query without the leading '?'")

    @field_validator("scheme")
    @classmethod
    def validate_scheme(cls, v: str) -> str:
        if v != "https":
            raise ValueError(f"scheme must be 'https', got '{v}'")
        return v

    @classmethod
    def parse(cls, text: str) -> ApiUrl:
        """Parse an API URL string.

        Raises:
            UrlError: If the text is not an absolute https URL with a host.
        """
        try:
            url = httpx.URL(text)
        except (httpx.InvalidURL, TypeError) as e:
            raise UrlError(f"Unable to parse API URL '{text}': {e}") from e

        if url.scheme != "https":
            raise UrlError(f"API URL must use https, got '{url.scheme or '<none>'}' in '{text}'")
        if not url.host:
            raise UrlError(f"API URL has no host: '{text}'")

        path, _, _ = url.raw_path.decode("ascii").partition("?")
        try:
            return cls(
                scheme=url.scheme,
                host=url.host,
                port=url.port or HTTPS_DEFAULT_PORT,
                path=path if path != "/" else "",
                query=url.query.decode("ascii"),
            )
        except ValueError as e:
            raise UrlError(f"Invalid API URL '{text}': {e}") from e

    @property
    def target(self) -> str:
        """Request target: path[?query], never empty."""
        target = self.path or "/"
        if self.query:
            target += "?" + self.query
        return target

    @property
    def authority(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"

    def to_string(self) -> str:
        return f"{self.scheme}://{self.authority}{self.target}"

    def __str__(self) -> str:
        return self.to_string()


# =============================================================================
# Request / Response Models
# =============================================================================


class AccessKeyParams(BaseModel):
    """Fields for creating or updating an access key.

    Every field is optional and independent. Unset fields are left out of the
    request body entirely, never sent as null.
    """

    model_config = ConfigDict(extra="forbid")

    name: str | None = Field(default=None, description="Display name")
    password: str | None = Field(default=None, description="Shadowsocks secret")
    method: str | None = Field(default=None, description="Cipher, e.g. chacha20-ietf-poly1305")
    data_limit_bytes: int | None = Field(
        default=None, ge=0, description="Data limit, sent as limit.bytes"
    )

    def to_payload(self) -> dict[str, Any]:
        """Build the JSON request body from the fields that are set."""
        payload: dict[str, Any] = {}
        if self.name is not None:
            payload["name"] = self.name
        if self.password is not None:
            payload["password"] = self.password
        if self.method is not None:
            payload["method"] = self.method
        if self.data_limit_bytes is not None:
            payload["limit"] = {"bytes": self.data_limit_bytes}
        return payload


class ExchangeResult(BaseModel):
    """Status code and raw body of one completed exchange."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    status_code: int = Field(description="HTTP status code")
    body: str = Field(default="", description="Response body as text")


class Operation(BaseModel):
    """One logical API operation: where it goes and what success looks like."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(description="Operation name used in errors, e.g. createAccessKey")
    method: str = Field(description="HTTP method")
    template: str = Field(description="Endpoint template, e.g. /access-keys/{id}")
    expected_status: int = Field(description="The single status code that means success")
    expects_body: bool = Field(default=True, description="Whether success carries a JSON body")


# =============================================================================
# Runtime Configuration Models
# =============================================================================


class ClientConfig(BaseModel):
    """Connection settings for one management API."""

    model_config = ConfigDict(extra="forbid")

    api_url: str = Field(description="Management API URL, e.g. https://1.2.3.4:8081/SecretPath")
    ca_cert: str | None = Field(
        default=None, description="PEM file trusted for the server certificate"
    )
    insecure: bool = Field(
        default=False, description="Skip server certificate verification entirely"
    )
    timeout: float = Field(default=DEFAULT_TIMEOUT, gt=0, description="Per-call deadline in seconds")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, description="User-Agent header value")

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        try:
            ApiUrl.parse(v)
        except UrlError as e:
            raise ValueError(str(e)) from e
        return v

    @model_validator(mode="after")
    def check_tls_exclusivity(self) -> Self:
        if self.insecure and self.ca_cert is not None:
            raise ValueError("ca_cert and insecure are mutually exclusive")
        return self
