"""Turn request descriptors into wire requests."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlencode

from outbound_dispatch.dispatch.models import CachePolicy, RequestDescriptor, WireRequest

JSON_CONTENT_TYPE = "application/json"

_CACHE_HEADERS: dict[CachePolicy, dict[str, str]] = {
    CachePolicy.USE_PROTOCOL: {},
    CachePolicy.IGNORE_LOCAL: {"Cache-Control": "no-cache"},
    CachePolicy.IGNORE_LOCAL_AND_REMOTE: {
        "Cache-Control": "no-cache, no-store, max-age=0",
        "Pragma": "no-cache",
    },
}


class EncodingError(ValueError):
    """Request parameters cannot be represented on the wire."""


def build_query(parameters: Mapping[str, Any] | None) -> str:
    """Encode the string-valued entries of ``parameters`` as a query string.

    Non-string values are dropped. Returns an empty string when nothing is left,
    otherwise the encoded pairs prefixed with ``?``.
    """

    if not parameters:
        return ""
    pairs = [(key, value) for key, value in parameters.items() if isinstance(value, str)]
    if not pairs:
        return ""
    return "?" + urlencode(pairs)


def build_body(parameters: Mapping[str, Any] | None) -> bytes:
    """Serialize ``parameters`` as a JSON object."""

    try:
        return json.dumps(dict(parameters or {}), allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise EncodingError(f"Cannot encode request body: {exc}") from exc


def cache_headers(policy: CachePolicy) -> dict[str, str]:
    return dict(_CACHE_HEADERS[policy])


def build_request(descriptor: RequestDescriptor) -> WireRequest:
    """Build the wire request: query string for read verbs, JSON body for writes."""

    headers = cache_headers(descriptor.cache_policy)
    body: bytes | None = None
    url = descriptor.target.url
    if descriptor.verb.is_read_style:
        url += build_query(descriptor.parameters)
    else:
        body = build_body(descriptor.parameters)
        headers["Content-Type"] = JSON_CONTENT_TYPE
    overridden = {name.lower() for name in descriptor.headers}
    headers = {name: value for name, value in headers.items() if name.lower() not in overridden}
    headers.update(descriptor.headers)
    return WireRequest(
        method=descriptor.verb.value,
        url=url,
        headers=headers,
        timeout_seconds=descriptor.timeout_seconds,
        body=body,
    )
