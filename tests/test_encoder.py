from __future__ import annotations

import json

import allure
import pytest

from outbound_dispatch.dispatch.models import CachePolicy, RequestDescriptor, Target, Verb
from outbound_dispatch.http.encoder import (
    EncodingError,
    build_body,
    build_query,
    build_request,
    cache_headers,
)

pytestmark = [
    allure.epic("Dispatcher"),
    allure.feature("Request Encoding"),
]


def test_build_query_keeps_only_string_values() -> None:
    assert build_query({"a": "1", "b": 2}) == "?a=1"


def test_build_query_empty_mapping_is_empty_string() -> None:
    assert build_query({}) == ""
    assert build_query(None) == ""
    assert build_query({"n": 1, "f": 1.5, "none": None}) == ""


def test_build_query_preserves_insertion_order_and_escapes() -> None:
    assert build_query({"q": "New York", "units": "metric"}) == "?q=New+York&units=metric"


def test_build_body_serializes_full_mapping() -> None:
    assert json.loads(build_body({"a": "1", "b": 2, "c": [True, None]})) == {
        "a": "1",
        "b": 2,
        "c": [True, None],
    }
    assert build_body(None) == b"{}"


@pytest.mark.parametrize("value", [object(), {1, 2}, float("nan")])
def test_build_body_rejects_unencodable_values(value) -> None:
    with pytest.raises(EncodingError, match="Cannot encode request body"):
        build_body({"value": value})


def test_target_url_joins_base_and_endpoint() -> None:
    assert Target("https://api.openweathermap.org/data/2.5", "weather").url == (
        "https://api.openweathermap.org/data/2.5/weather"
    )
    assert Target("http://www.apple.com/", "/account").url == "http://www.apple.com/account"
    assert Target("http://www.apple.com").url == "http://www.apple.com"


@pytest.mark.parametrize("verb", [Verb.GET, Verb.DELETE])
def test_read_verbs_put_parameters_in_query_string(verb: Verb) -> None:
    request = build_request(
        RequestDescriptor(
            target=Target("https://api.example.com", "weather"),
            verb=verb,
            parameters={"q": "London", "days": 3},
            timeout_seconds=5.0,
        ),
    )

    assert request.method == verb.value
    assert request.url == "https://api.example.com/weather?q=London"
    assert request.body is None
    assert request.timeout_seconds == 5.0
    assert "Content-Type" not in request.headers


@pytest.mark.parametrize("verb", [Verb.POST, Verb.PUT])
def test_write_verbs_send_json_body(verb: Verb) -> None:
    request = build_request(
        RequestDescriptor(
            target=Target("https://api.example.com", "account"),
            verb=verb,
            parameters={"name": "x", "age": 30},
        ),
    )

    assert request.method == verb.value
    assert request.url == "https://api.example.com/account"
    assert json.loads(request.body) == {"name": "x", "age": 30}
    assert request.headers["Content-Type"] == "application/json"


def test_default_cache_policy_ignores_local_and_remote_cache() -> None:
    request = build_request(RequestDescriptor(target=Target("https://api.example.com")))

    assert request.headers["Pragma"] == "no-cache"
    assert "no-store" in request.headers["Cache-Control"]


def test_use_protocol_cache_policy_adds_no_headers() -> None:
    assert cache_headers(CachePolicy.USE_PROTOCOL) == {}
    assert cache_headers(CachePolicy.IGNORE_LOCAL) == {"Cache-Control": "no-cache"}


def test_caller_headers_override_generated_ones_case_insensitively() -> None:
    request = build_request(
        RequestDescriptor(
            target=Target("https://api.example.com", "account"),
            verb=Verb.POST,
            headers={"content-type": "application/vnd.api+json", "X-Api-Key": "k"},
        ),
    )

    assert request.headers["content-type"] == "application/vnd.api+json"
    assert "Content-Type" not in request.headers
    assert request.headers["X-Api-Key"] == "k"
