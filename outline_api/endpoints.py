"""Endpoint templates and URL composition.

Each API operation is declared once in OPERATIONS. resolve_endpoint() turns
the client's immutable base URL, an operation's template and the call's
placeholder values into the concrete target for that call.
"""

from __future__ import annotations

import re
from typing import Mapping

from outline_api.errors import UrlError
from outline_api.models import ApiUrl, Operation

KEY_ID = "id"

# Matches {name} markers left in a template after substitution.
_PLACEHOLDER_PATTERN = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


GET_ACCESS_KEYS = Operation(
    name="getAccessKeys", method="GET", template="/access-keys", expected_status=200
)
GET_ACCESS_KEY = Operation(
    name="getAccessKey", method="GET", template="/access-keys/{id}", expected_status=200
)
CREATE_ACCESS_KEY = Operation(
    name="createAccessKey", method="POST", template="/access-keys", expected_status=201
)
# PUT /access-keys/{id} creates or replaces the key with that id, hence 201.
UPDATE_ACCESS_KEY = Operation(
    name="updateAccessKey", method="PUT", template="/access-keys/{id}", expected_status=201
)
DELETE_ACCESS_KEY = Operation(
    name="deleteAccessKey",
    method="DELETE",
    template="/access-keys/{id}",
    expected_status=204,
    expects_body=False,
)
GET_SERVER_INFO = Operation(
    name="getServerInfo", method="GET", template="/server", expected_status=200
)
RENAME_ACCESS_KEY = Operation(
    name="renameAccessKey",
    method="PUT",
    template="/access-keys/{id}/name",
    expected_status=204,
    expects_body=False,
)
SET_ACCESS_KEY_DATA_LIMIT = Operation(
    name="setAccessKeyDataLimit",
    method="PUT",
    template="/access-keys/{id}/data-limit",
    expected_status=204,
    expects_body=False,
)
REMOVE_ACCESS_KEY_DATA_LIMIT = Operation(
    name="removeAccessKeyDataLimit",
    method="DELETE",
    template="/access-keys/{id}/data-limit",
    expected_status=204,
    expects_body=False,
)
GET_TRANSFER_METRICS = Operation(
    name="getTransferMetrics", method="GET", template="/metrics/transfer", expected_status=200
)

OPERATIONS: dict[str, Operation] = {
    op.name: op
    for op in (
        GET_ACCESS_KEYS,
        GET_ACCESS_KEY,
        CREATE_ACCESS_KEY,
        UPDATE_ACCESS_KEY,
        DELETE_ACCESS_KEY,
        GET_SERVER_INFO,
        RENAME_ACCESS_KEY,
        SET_ACCESS_KEY_DATA_LIMIT,
        REMOVE_ACCESS_KEY_DATA_LIMIT,
        GET_TRANSFER_METRICS,
    )
}


def render_template(
    template: str,
    placeholders: Mapping[str, str] | None = None,
    strict: bool = True,
) -> str:
    """Substitute {name} markers in a template with their mapped values.

    Substitution is literal (str.replace), so values are inserted as-is and
    must already be percent-encoded where needed.

    Args:
        template: Endpoint template, e.g. "/access-keys/{id}".
        placeholders: Placeholder name (without braces) -> value.
        strict: If True, markers left unresolved raise UrlError. If False they
                stay in the result as literal text.

    Returns:
        The rendered template.

    Raises:
        UrlError: In strict mode, if any marker has no value.
    """
    rendered = template
    for key, value in (placeholders or {}).items():
        rendered = rendered.replace(f"{{{key}}}", str(value))

    if strict:
        unresolved = _PLACEHOLDER_PATTERN.findall(rendered)
        if unresolved:
            names = ", ".join(sorted(set(unresolved)))
            raise UrlError(f"Unresolved placeholders in '{template}': {names}")

    return rendered


def join_paths(base_path: str, endpoint_path: str) -> str:
    """Append endpoint_path onto base_path with exactly one '/' between them."""
    if not endpoint_path:
        return base_path
    if not base_path:
        return endpoint_path if endpoint_path.startswith("/") else "/" + endpoint_path
    return base_path.rstrip("/") + "/" + endpoint_path.lstrip("/")


def resolve_endpoint(
    base: ApiUrl,
    template: str,
    placeholders: Mapping[str, str] | None = None,
    *,
    strict: bool = True,
) -> ApiUrl:
    """Build the target URL for one call.

    The base is never modified; a new ApiUrl is returned. Its path is the
    base path followed by the rendered template path. Its query is the
    template's query when the template has one, otherwise the base's.

    Raises:
        UrlError: If placeholders are unresolved (strict mode).
    """
    rendered = render_template(template, placeholders, strict=strict)
    endpoint_path, _, endpoint_query = rendered.partition("?")

    return base.model_copy(
        update={
            "path": join_paths(base.path, endpoint_path),
            "query": endpoint_query or base.query,
        }
    )
