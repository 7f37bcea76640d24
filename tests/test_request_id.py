"""Tests for the request correlation id middleware."""

import uuid

import pytest

from listingscope.middleware.request_id import get_request_id, resolve_request_id


class TestResolveRequestId:
    def test_safe_token_kept(self):
        assert resolve_request_id("trace-42.a_b") == "trace-42.a_b"

    @pytest.mark.parametrize(
        "incoming",
        [None, "", "x" * 65, "has space", 'forged"}\n{"level":"ERROR"'],
    )
    def test_unsafe_or_missing_replaced(self, incoming):
        rid = resolve_request_id(incoming)
        assert rid != incoming
        assert uuid.UUID(rid).version == 4

    def test_empty_outside_request(self):
        assert get_request_id() == ""


class TestRequestIdHeader:
    @pytest.mark.asyncio
    async def test_echoes_caller_id(self, client):
        resp = await client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert resp.headers["X-Request-ID"] == "abc-123"

    @pytest.mark.asyncio
    async def test_generates_id_when_absent(self, client):
        resp = await client.get("/health")
        assert uuid.UUID(resp.headers["X-Request-ID"]).version == 4

    @pytest.mark.asyncio
    async def test_rejects_injected_id(self, client):
        resp = await client.get("/health", headers={"X-Request-ID": "a b c"})
        assert resp.headers["X-Request-ID"] != "a b c"
        assert uuid.UUID(resp.headers["X-Request-ID"]).version == 4
