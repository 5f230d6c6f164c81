"""Tests for outline_api.models.

Tests cover:
- ApiUrl parsing, invariants and rendering
- AccessKeyParams request body construction
- ClientConfig validation
"""

import pytest
from pydantic import ValidationError

from outline_api.errors import UrlError
from outline_api.models import (
    DEFAULT_TIMEOUT,
    AccessKeyParams,
    ApiUrl,
    ClientConfig,
    ExchangeResult,
)


class TestApiUrlParse:
    def test_full_url(self) -> None:
        url = ApiUrl.parse("https://203.0.113.7:8081/SecretPath")
        assert url.scheme == "https"
        assert url.host == "203.0.113.7"
        assert url.port == 8081
        assert url.path == "/SecretPath"
        assert url.query == ""

    def test_default_port_filled_in(self) -> None:
        url = ApiUrl.parse("https://outline.example.com/abc")
        assert url.port == 443

    def test_query_kept_encoded(self) -> None:
        url = ApiUrl.parse("https://outline.example.com:8081/abc?token=a%20b")
        assert url.query == "token=a%20b"
        assert url.target == "/abc?token=a%20b"

    def test_root_path_is_empty(self) -> None:
        """A bare '/' path is stored as empty so endpoints join cleanly."""
        url = ApiUrl.parse("https://outline.example.com:8081/")
        assert url.path == ""
        assert url.target == "/"

    def test_ipv6_host(self) -> None:
        url = ApiUrl.parse("https://[2001:db8::1]:8443/Secret")
        assert url.host == "2001:db8::1"
        assert url.authority == "[2001:db8::1]:8443"
        assert url.to_string() == "https://[2001:db8::1]:8443/Secret"

    def test_http_rejected(self) -> None:
        with pytest.raises(UrlError, match="https"):
            ApiUrl.parse("http://203.0.113.7:8081/SecretPath")

    def test_missing_scheme_rejected(self) -> None:
        with pytest.raises(UrlError):
            ApiUrl.parse("203.0.113.7/SecretPath")

    def test_garbage_rejected(self) -> None:
        with pytest.raises(UrlError):
            ApiUrl.parse("not a url")

    def test_out_of_range_port_rejected(self) -> None:
        with pytest.raises(UrlError):
            ApiUrl.parse("https://203.0.113.7:99999/SecretPath")

    def test_round_trip_string(self) -> None:
        text = "https://203.0.113.7:8081/SecretPath"
        assert str(ApiUrl.parse(text)) == text

    def test_frozen(self) -> None:
        url = ApiUrl.parse("https://203.0.113.7:8081/SecretPath")
        with pytest.raises(ValidationError):
            url.path = "/other"

    def test_direct_construction_enforces_https(self) -> None:
        with pytest.raises(ValidationError):
            ApiUrl(scheme="http", host="example.com", port=80)


class TestAccessKeyParams:
    def test_empty_params_empty_payload(self) -> None:
        assert AccessKeyParams().to_payload() == {}

    def test_only_name(self) -> None:
        assert AccessKeyParams(name="alice").to_payload() == {"name": "alice"}

    def test_all_fields(self) -> None:
        params = AccessKeyParams(
            name="alice",
            password="s3cret",
            method="chacha20-ietf-poly1305",
            data_limit_bytes=1_000_000,
        )
        assert params.to_payload() == {
            "name": "alice",
            "password": "s3cret",
            "method": "chacha20-ietf-poly1305",
            "limit": {"bytes": 1_000_000},
        }

    def test_data_limit_nested_under_limit(self) -> None:
        assert AccessKeyParams(data_limit_bytes=0).to_payload() == {"limit": {"bytes": 0}}

    def test_empty_string_is_present(self) -> None:
        """Only None means absent; an empty name is still sent."""
        assert AccessKeyParams(name="").to_payload() == {"name": ""}

    def test_negative_limit_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AccessKeyParams(data_limit_bytes=-1)

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            AccessKeyParams(port=8080)


class TestExchangeResult:
    def test_body_defaults_to_empty(self) -> None:
        assert ExchangeResult(status_code=204).body == ""


class TestClientConfig:
    def test_defaults(self) -> None:
        config = ClientConfig(api_url="https://203.0.113.7:8081/SecretPath")
        assert config.timeout == DEFAULT_TIMEOUT
        assert config.insecure is False
        assert config.ca_cert is None
        assert config.user_agent.startswith("outline-api/")

    def test_invalid_api_url(self) -> None:
        with pytest.raises(ValidationError, match="https"):
            ClientConfig(api_url="http://203.0.113.7:8081/SecretPath")

    def test_non_positive_timeout(self) -> None:
        with pytest.raises(ValidationError):
            ClientConfig(api_url="https://203.0.113.7:8081/SecretPath", timeout=0)

    def test_insecure_and_ca_cert_exclusive(self) -> None:
        with pytest.raises(ValidationError, match="mutually exclusive"):
            ClientConfig(
                api_url="https://203.0.113.7:8081/SecretPath",
                ca_cert="server.pem",
                insecure=True,
            )
