"""Tests for SearchIndexBridge against a mocked HTTP transport."""

import json

import httpx
import pytest
from conftest import change_record

from orderstream.changefeed.models import parse_stream_record
from orderstream.core.errors import ErrorCategory, PermanentError, RetryableError
from orderstream.core.result import Err, Ok
from orderstream.search.bridge import SearchIndexBridge


def make_bridge(handler, index="orders"):
    client = httpx.Client(base_url="http://search.local", transport=httpx.MockTransport(handler))
    return SearchIndexBridge(client, index=index)


def respond(status, payload=None, headers=None):
    def handler(request):
        return httpx.Response(status, json=payload or {}, headers=headers)

    return handler


class TestUpsert:
    def test_puts_document_with_id(self, sample_order):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json={"result": "created", "_version": 1})

        result = make_bridge(handler).upsert("o-1", sample_order)

        assert isinstance(result, Ok)
        assert result.value == {"id": "o-1", "index": "orders", "result": "created", "version": 1}
        request = seen[0]
        assert request.method == "PUT"
        assert request.url.path == "/orders/_doc/o-1"
        assert json.loads(request.content) == {**sample_order, "id": "o-1"}

    def test_replay_replaces_same_document(self, sample_order):
        store = {}

        def handler(request):
            store[request.url.path] = json.loads(request.content)
            return httpx.Response(200, json={"result": "updated"})

        bridge = make_bridge(handler)
        bridge.upsert("o-1", sample_order)
        bridge.upsert("o-1", sample_order)
        assert store == {"/orders/_doc/o-1": {**sample_order, "id": "o-1"}}

    def test_document_path_escapes_id(self):
        bridge = make_bridge(respond(200))
        assert bridge.document_path("o/1 2") == "/orders/_doc/o%2F1%202"

    def test_empty_index_rejected(self):
        with pytest.raises(ValueError):
            SearchIndexBridge(httpx.Client(), index="")

    def test_sink_adapter(self, sample_order):
        bridge = make_bridge(respond(200, {"result": "updated"}))
        event = parse_stream_record(change_record(sample_order))
        assert isinstance(bridge("o-1", sample_order, event), Ok)
        assert bridge.name == "search"


class TestFailureClassification:
    @pytest.mark.parametrize("status", [408, 429, 500, 502, 503])
    def test_transient_statuses_are_retryable(self, status):
        result = make_bridge(respond(status)).upsert("o-1", {})
        assert isinstance(result, Err)
        assert isinstance(result.error, RetryableError)
        assert result.error.context.http_status == status
        assert result.error.context.sink == "search"

    def test_retry_after_header(self):
        result = make_bridge(respond(429, headers={"Retry-After": "7"})).upsert("o-1", {})
        assert result.error.retry_after == 7.0

    @pytest.mark.parametrize("status", [400, 404, 409])
    def test_client_errors_are_permanent(self, status):
        payload = {"error": {"type": "mapper_parsing_exception", "reason": "failed to parse [total]"}}
        result = make_bridge(respond(status, payload)).upsert("o-1", {})
        assert isinstance(result.error, PermanentError)
        assert "failed to parse [total]" in result.error.message

    def test_timeout_is_retryable(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        result = make_bridge(handler).upsert("o-1", {})
        assert isinstance(result.error, RetryableError)
        assert result.error.category is ErrorCategory.TIMEOUT

    def test_connection_failure_is_retryable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        result = make_bridge(handler).upsert("o-1", {})
        assert isinstance(result.error, RetryableError)
        assert result.error.category is ErrorCategory.NETWORK
