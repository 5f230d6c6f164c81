"""Client - management API operations over single-use TLS connections.

OutlineClient composes the target URL for each call from the immutable base
URL, sends it through one parameterized exchange and classifies the result.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from outline_api.classifier import classify
from outline_api.endpoints import (
    CREATE_ACCESS_KEY,
    DELETE_ACCESS_KEY,
    GET_ACCESS_KEY,
    GET_ACCESS_KEYS,
    GET_SERVER_INFO,
    GET_TRANSFER_METRICS,
    KEY_ID,
    REMOVE_ACCESS_KEY_DATA_LIMIT,
    RENAME_ACCESS_KEY,
    SET_ACCESS_KEY_DATA_LIMIT,
    UPDATE_ACCESS_KEY,
    resolve_endpoint,
)
from outline_api.errors import TransportError, TransportStage, UrlError
from outline_api.models import (
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    AccessKeyParams,
    ApiUrl,
    ClientConfig,
    ExchangeResult,
    Operation,
)
from outline_api.transport import StagedTransport, build_ssl_context

logger = logging.getLogger(__name__)

# Stage for httpx errors raised while decoding a response or by transports
# other than StagedTransport.
# Order matters: timeouts are checked before their parent classes.
_HTTPX_ERROR_STAGES: tuple[tuple[type[httpx.RequestError], TransportStage], ...] = (
    (httpx.ConnectTimeout, TransportStage.CONNECT),
    (httpx.ConnectError, TransportStage.CONNECT),
    (httpx.WriteTimeout, TransportStage.WRITE),
    (httpx.WriteError, TransportStage.WRITE),
    (httpx.LocalProtocolError, TransportStage.WRITE),
    (httpx.ReadTimeout, TransportStage.READ),
    (httpx.ReadError, TransportStage.READ),
    (httpx.RemoteProtocolError, TransportStage.READ),
    (httpx.DecodingError, TransportStage.READ),
)


class OutlineClient:
    """Client for one Outline server's management API.

    Usage:
        client = OutlineClient("https://1.2.3.4:8081/SecretPath", ca_cert="server.pem")
        try:
            keys = client.list_access_keys()
        finally:
            client.close()

    Or with context manager:
        with OutlineClient.from_config(config) as client:
            client.delete_access_key("7")

    Every call opens its own connection. The client is not thread-safe.
    """

    def __init__(
        self,
        api_url: str,
        ca_cert: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        insecure: bool = False,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_url: Management API URL, including the secret path.
            ca_cert: PEM file trusted for the server certificate.
            timeout: Per-call deadline in seconds, covering every step.
            insecure: Skip server certificate verification.
            user_agent: User-Agent header value.
            transport: Replaces the default StagedTransport (used by tests).

        Raises:
            UrlError: If api_url is not a valid https URL.
            TransportError: If ca_cert cannot be loaded.
        """
        self._api_url = ApiUrl.parse(api_url)
        self._timeout = timeout

        if transport is None:
            transport = StagedTransport(build_ssl_context(ca_cert=ca_cert, insecure=insecure))

        self._client = httpx.Client(
            transport=transport,
            headers={"User-Agent": user_agent, "Connection": "close"},
            timeout=timeout,
        )

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        transport: httpx.BaseTransport | None = None,
    ) -> OutlineClient:
        return cls(
            config.api_url,
            ca_cert=config.ca_cert,
            timeout=config.timeout,
            insecure=config.insecure,
            user_agent=config.user_agent,
            transport=transport,
        )

    def __enter__(self) -> OutlineClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    def close(self) -> None:
        """Release the transport. Shutdown problems are logged, not raised."""
        self._client.close()

    @property
    def api_url(self) -> ApiUrl:
        return self._api_url

    # -------------------------------------------------------------------------
    # Access keys
    # -------------------------------------------------------------------------

    def list_access_keys(self) -> str:
        """Return all access keys as canonical JSON."""
        return self._call(GET_ACCESS_KEYS)

    def get_access_key(self, access_key_id: str) -> str:
        return self._call(GET_ACCESS_KEY, {KEY_ID: _key_id(access_key_id)})

    def create_access_key(self, params: AccessKeyParams | None = None) -> str:
        """Create a key; the server picks the id. Returns the new key as canonical JSON."""
        params = params or AccessKeyParams()
        return self._call(CREATE_ACCESS_KEY, body=params.to_payload())

    def update_access_key(self, access_key_id: str, params: AccessKeyParams | None = None) -> str:
        """Create or replace the key with the given id."""
        params = params or AccessKeyParams()
        return self._call(
            UPDATE_ACCESS_KEY, {KEY_ID: _key_id(access_key_id)}, body=params.to_payload()
        )

    def delete_access_key(self, access_key_id: str) -> None:
        self._call(DELETE_ACCESS_KEY, {KEY_ID: _key_id(access_key_id)})

    def rename_access_key(self, access_key_id: str, name: str) -> None:
        self._call(RENAME_ACCESS_KEY, {KEY_ID: _key_id(access_key_id)}, body={"name": name})

    def set_access_key_data_limit(self, access_key_id: str, limit_bytes: int) -> None:
        if limit_bytes < 0:
            raise ValueError(f"Data limit must be non-negative, got {limit_bytes}")
        self._call(
            SET_ACCESS_KEY_DATA_LIMIT,
            {KEY_ID: _key_id(access_key_id)},
            body={"limit": {"bytes": limit_bytes}},
        )

    def remove_access_key_data_limit(self, access_key_id: str) -> None:
        self._call(REMOVE_ACCESS_KEY_DATA_LIMIT, {KEY_ID: _key_id(access_key_id)})

    # -------------------------------------------------------------------------
    # Server
    # -------------------------------------------------------------------------

    def get_server_info(self) -> str:
        return self._call(GET_SERVER_INFO)

    def get_transfer_metrics(self) -> str:
        """Return bytes transferred per access key id as canonical JSON."""
        return self._call(GET_TRANSFER_METRICS)

    # -------------------------------------------------------------------------
    # Exchange
    # -------------------------------------------------------------------------

    def _call(
        self,
        operation: Operation,
        placeholders: Mapping[str, str] | None = None,
        body: Any = None,
    ) -> Any:
        url = resolve_endpoint(self._api_url, operation.template, placeholders)
        result = self.execute(operation.method, url, body)
        logger.debug("%s -> %d", operation.name, result.status_code)
        return classify(operation, result)

    def execute(self, verb: str, url: ApiUrl, body: Any = None) -> ExchangeResult:
        """Run one exchange and return its status code and body.

        Args:
            verb: HTTP method.
            url: Fully resolved target.
            body: JSON-serializable request body, or None for no body.

        Returns:
            ExchangeResult with the status code and body text. The status is
            not checked here.

        Raises:
            TransportError: If any step below HTTP fails.
        """
        try:
            response = self._client.request(
                method=verb,
                url=url.to_string(),
                json=body,
                timeout=self._timeout,
            )
        except httpx.RequestError as e:
            raise _to_transport_error(e) from e

        return ExchangeResult(status_code=response.status_code, body=response.text)


def _key_id(access_key_id: str | int) -> str:
    value = str(access_key_id)
    if not value:
        # An empty id would address the collection instead of one key.
        raise UrlError("Access key id must not be empty")
    return value


def _to_transport_error(error: httpx.RequestError) -> TransportError:
    for error_type, stage in _HTTPX_ERROR_STAGES:
        if isinstance(error, error_type):
            return TransportError(
                stage, str(error), timed_out=isinstance(error, httpx.TimeoutException)
            )
    # Other transport failures happen before a connection is usable; anything
    # else concerns the response.
    stage = (
        TransportStage.CONNECT
        if isinstance(error, httpx.TransportError)
        else TransportStage.READ
    )
    return TransportError(stage, str(error))
