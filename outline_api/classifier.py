"""Classify exchange results for an operation.

Turns an ExchangeResult into the caller-facing outcome: canonical JSON text,
None for operations without a response body, or ServerError / ParseError.
"""

from __future__ import annotations

import json
from typing import Any

from outline_api.errors import ParseError, ServerError
from outline_api.models import ExchangeResult, Operation


def canonical_json(value: Any) -> str:
    """Serialize JSON with sorted keys and no insignificant whitespace."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def classify(operation: Operation, result: ExchangeResult) -> str | None:
    """Check an exchange against what success means for the operation.

    The status code is checked first; the body is only parsed when the
    status is the expected one.

    Returns:
        Canonical JSON of the response body, or None when the operation has
        no response body.

    Raises:
        ServerError: If the status code is not operation.expected_status.
        ParseError: If the body should be JSON and is not.
    """
    if result.status_code != operation.expected_status:
        raise ServerError(operation.name, result.status_code)

    if not operation.expects_body:
        return None

    try:
        value = json.loads(result.body)
    except json.JSONDecodeError as e:
        raise ParseError(operation.name, str(e)) from e

    return canonical_json(value)
