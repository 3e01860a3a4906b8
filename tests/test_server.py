"""
Tests for exposer-side request handling.
"""

import json
from unittest.mock import AsyncMock, patch

import pytest
from aiohttp import test_utils

from pymirror.errors import TransportError
from pymirror.serialize import decode, encode
from pymirror.server import MirrorServer, create_app
from pymirror.transport import CALL, ENCODING_HEADER, EXPOSE, LocalTransport, MirrorOptions
from sample_api import Calculator


def call_body(method, target_class=None, instance=None, args=()):
    return json.dumps({
        "class": target_class,
        "instance": encode(instance),
        "method": method,
        "args": [encode(a) for a in args],
    })


class TestHandle:
    """Test the transport-agnostic handler."""

    @pytest.mark.asyncio
    async def test_expose(self, server):
        status, text = await server.handle(EXPOSE, json.dumps({"page": 1}))
        assert status == 200
        page = json.loads(text)
        assert page["totalPages"] == 6
        assert page["elements"][0]["info"]["name"] == "double"

    @pytest.mark.asyncio
    async def test_expose_out_of_range(self, server):
        status, text = await server.handle(EXPOSE, json.dumps({"page": 99}))
        assert status == 200
        assert json.loads(text) == {"page": 99, "totalPages": 6, "elements": []}

    @pytest.mark.asyncio
    async def test_expose_defaults_to_first_page(self, server):
        status, text = await server.handle(EXPOSE, "")
        assert json.loads(text)["page"] == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", ["{bad", '{"page": "one"}', '{"page": true}', "[1]"])
    async def test_expose_bad_request(self, server, body):
        status, text = await server.handle(EXPOSE, body)
        assert status == 400
        assert "message" in json.loads(text)

    @pytest.mark.asyncio
    async def test_call(self, server):
        status, text = await server.handle(CALL, call_body("add", "Calculator", Calculator(), [2, 3]))
        assert status == 200
        result = json.loads(text)
        assert set(result) == {"time", "class", "method", "result", "executionTime", "memoryUsage"}
        assert result["result"] == 5

    @pytest.mark.asyncio
    async def test_call_failure_is_error_envelope(self, server):
        status, text = await server.handle(CALL, call_body("fail", "Calculator", Calculator(), ["boom"]))
        assert status == 500
        error = decode(json.loads(text)["error"])
        assert isinstance(error, ValueError)
        assert str(error) == "boom"

    @pytest.mark.asyncio
    async def test_undecodable_call_is_null(self, server):
        assert await server.handle(CALL, "garbage") == (200, "null")

    @pytest.mark.asyncio
    async def test_unknown_operation(self, server):
        with pytest.raises(ValueError):
            await server.handle("delete", "{}")


class TestLocalTransport:
    """Test the in-process transport."""

    @pytest.mark.asyncio
    async def test_error_envelope_passes_through(self, server):
        transport = LocalTransport(server)
        text = await transport.request(CALL, call_body("fail", "Calculator", Calculator(), ["x"]))
        assert "error" in json.loads(text)

    @pytest.mark.asyncio
    async def test_bad_request_raises(self, server):
        transport = LocalTransport(server)
        with pytest.raises(TransportError):
            await transport.request(EXPOSE, "{bad")


class TestHttpApp:
    """Test the aiohttp application."""

    @pytest.mark.asyncio
    async def test_routing(self, catalog):
        async with test_utils.TestClient(test_utils.TestServer(create_app(catalog))) as client:
            response = await client.post("/mirror", params={"expose": "true"}, data=json.dumps({"page": 5}))
            assert response.status == 200
            page = await response.json()
            assert page["elements"][0]["info"]["class"] == "Calculator"

            response = await client.post("/mirror", data="{}")
            assert response.status == 404

            response = await client.post("/elsewhere", params={"expose": "true"}, data="{}")
            assert response.status == 404

    @pytest.mark.asyncio
    async def test_encoding_version_mismatch(self, catalog):
        async with test_utils.TestClient(test_utils.TestServer(create_app(catalog))) as client:
            response = await client.post("/mirror", params={"expose": "true"}, data="{}",
                                         headers={ENCODING_HEADER: "99"})
            assert response.status == 400
            assert "message" in await response.json()

    @pytest.mark.asyncio
    async def test_custom_path(self, catalog):
        app = create_app(catalog, MirrorOptions(path="/api/rpc"))
        async with test_utils.TestClient(test_utils.TestServer(app)) as client:
            response = await client.post("/api/rpc", params={"call": "true"},
                                         data=call_body("double", args=[4]))
            assert (await response.json())["result"] == 8

    @pytest.mark.asyncio
    async def test_unexpected_error_is_500(self, catalog):
        with patch.object(MirrorServer, "handle", new_callable=AsyncMock, side_effect=RuntimeError("boom")):
            async with test_utils.TestClient(test_utils.TestServer(create_app(catalog))) as client:
                response = await client.post("/mirror", params={"call": "true"}, data="{}")
                assert response.status == 500
                assert await response.json() == {"message": "Internal server error"}
