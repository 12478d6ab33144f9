# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for the origin reverse proxy."""

from __future__ import annotations

import json

import httpx

from botgate.proxy import OriginProxy
from tests._helpers import OriginStub, body_receive, collect_response, make_scope

ORIGIN = "http://origin.test:8000"


def _proxy(stub: OriginStub, **kwargs) -> OriginProxy:
    return OriginProxy(stub.client(), ORIGIN, **kwargs)


class TestForwarding:
    async def test_status_and_body_relayed(self):
        stub = OriginStub(status_code=201, body=b"created")
        status, body, headers = await collect_response(_proxy(stub), make_scope("/login"))
        assert status == 201
        assert body == b"created"
        assert headers["x-origin"] == "1"

    async def test_method_path_and_query(self):
        stub = OriginStub()
        scope = make_scope("/other/page", method="GET", query_string=b"a=1&b=2")
        await collect_response(_proxy(stub), scope)
        request = stub.requests[0]
        assert request.method == "GET"
        assert str(request.url) == "http://origin.test:8000/other/page?a=1&b=2"

    async def test_body_forwarded(self):
        stub = OriginStub()
        await collect_response(_proxy(stub), make_scope("/login"), receive=body_receive(b"user=alice"))
        assert stub.requests[0].content == b"user=alice"

    async def test_chunked_body_reassembled(self):
        stub = OriginStub()
        messages = iter(
            [
                {"type": "http.request", "body": b"user=", "more_body": True},
                {"type": "http.request", "body": b"alice", "more_body": False},
            ]
        )

        async def receive():
            return next(messages)

        await collect_response(_proxy(stub), make_scope("/login"), receive=receive)
        assert stub.requests[0].content == b"user=alice"

    async def test_annotation_headers_forwarded(self):
        stub = OriginStub()
        scope = make_scope("/login", headers=[(b"fpjs-bot-prob", b"0.20"), (b"cookie", b"a=1")])
        await collect_response(_proxy(stub), scope)
        assert stub.requests[0].headers["fpjs-bot-prob"] == "0.20"
        assert stub.requests[0].headers["cookie"] == "a=1"

    async def test_hop_by_hop_dropped(self):
        stub = OriginStub()
        scope = make_scope("/login", headers=[(b"connection", b"close"), (b"te", b"trailers"), (b"x-keep", b"1")])
        await collect_response(_proxy(stub), scope)
        headers = stub.requests[0].headers
        assert headers["x-keep"] == "1"
        assert "te" not in headers
        assert headers.get("connection") != "close"

    async def test_client_host_replaced_by_origin(self):
        stub = OriginStub()
        scope = make_scope("/login", headers=[(b"host", b"public.example")])
        await collect_response(_proxy(stub), scope)
        assert stub.requests[0].headers["host"] == "origin.test:8000"

    async def test_host_override(self):
        stub = OriginStub()
        scope = make_scope("/login", headers=[(b"host", b"public.example")])
        await collect_response(_proxy(stub, host="www.example.com"), scope)
        assert stub.requests[0].headers["host"] == "www.example.com"

    async def test_trailing_slash_in_origin_url(self):
        stub = OriginStub()
        proxy = OriginProxy(stub.client(), ORIGIN + "/")
        assert proxy.build_url(make_scope("/login")) == "http://origin.test:8000/login"


class TestOriginFailure:
    async def test_connect_error_502(self):
        stub = OriginStub(error=httpx.ConnectError("refused"))
        status, body, headers = await collect_response(_proxy(stub), make_scope("/login"))
        assert status == 502
        assert headers["content-type"] == "application/problem+json"
        problem = json.loads(body)
        assert problem["title"] == "Origin Unavailable"
        assert problem["instance"] == "/login"
        assert "ConnectError" in problem["detail"]

    async def test_failure_logged(self, caplog):
        stub = OriginStub(error=httpx.ReadTimeout("slow"))
        await collect_response(_proxy(stub), make_scope("/login"))
        assert "Origin unavailable" in caplog.text

    async def test_single_attempt(self):
        stub = OriginStub(error=httpx.ConnectError("refused"))
        await collect_response(_proxy(stub), make_scope("/login"))
        assert len(stub.requests) == 1


async def test_non_http_ignored():
    stub = OriginStub()
    await _proxy(stub)({"type": "lifespan"}, None, None)
    assert stub.requests == []
