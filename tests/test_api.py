"""
Tests for the HTTP API layer.
"""

import asyncio
import json
import os
import tempfile
from urllib.parse import quote, urlencode

import pytest

from http_server.server import HTTPServer
from kvrest.engine import Engine
from kvrest.models.write_batch import WriteBatch
from serve import register_routes


class HTTPClient:
    """Simple HTTP client for testing."""

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port

    async def request(
        self,
        method: str,
        path: str,
        body: dict | bytes | None = None,
        query_params: dict | None = None,
    ) -> tuple[int, dict, object]:
        """
        Make an HTTP request.

        Returns:
            Status code, lower-cased headers, and the body: decoded JSON
            for JSON responses, raw bytes otherwise.
        """
        reader, writer = await asyncio.open_connection(self.host, self.port)

        try:
            # Build query string
            query_string = ""
            if query_params:
                query_string = "?" + urlencode(query_params)

            # Build request body
            body_bytes = b""
            if isinstance(body, bytes):
                body_bytes = body
            elif body is not None:
                body_bytes = json.dumps(body).encode()

            # Build HTTP request
            request_line = f"{method} {path}{query_string} HTTP/1.1\r\n"
            headers = f"Host: {self.host}\r\n"

            if isinstance(body, dict):
                headers += "Content-Type: application/json\r\n"
            headers += f"Content-Length: {len(body_bytes)}\r\n"
            headers += "Connection: close\r\n"
            headers += "\r\n"

            writer.write(request_line.encode() + headers.encode() + body_bytes)
            await writer.drain()

            # Read response
            response = await reader.read()

            head, _, payload = response.partition(b"\r\n\r\n")
            lines = head.decode().split("\r\n")
            status_code = int(lines[0].split(" ")[1])

            response_headers = {}
            for line in lines[1:]:
                key, _, value = line.partition(":")
                response_headers[key.strip().lower()] = value.strip()

            if response_headers.get("content-type") == "application/json":
                return status_code, response_headers, json.loads(payload)
            return status_code, response_headers, payload

        finally:
            writer.close()
            await writer.wait_closed()


async def _start(server: HTTPServer) -> tuple[asyncio.AbstractServer, HTTPClient]:
    test_server = await asyncio.start_server(server.handle_client, server.host, server.port)
    actual_port = test_server.sockets[0].getsockname()[1]
    return test_server, HTTPClient(server.host, actual_port)


@pytest.fixture
async def api_server():
    """Start HTTP server with routes for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        server = HTTPServer(host="127.0.0.1", port=0)  # Use port 0 for random free port
        engine = await Engine.create(os.path.join(tmpdir, "db"))

        await register_routes(server, engine)
        test_server, client = await _start(server)

        try:
            yield client, engine, tmpdir
        finally:
            test_server.close()
            await test_server.wait_closed()
            await engine.close()


@pytest.fixture
async def abcd_server(api_server):
    """API server whose database holds {a: A, b: B, c: C, d: D}."""
    client, engine, tmpdir = api_server
    batch = WriteBatch()
    for key in (b"a", b"b", b"c", b"d"):
        batch.put(key, key.upper())
    await engine.write(batch)
    return api_server


class TestKeyEndpoints:
    """Tests for GET/PUT/DELETE /key/<name>."""

    async def test_put_then_get(self, api_server):
        client, engine, _ = api_server

        status, _, _ = await client.request("PUT", "/key/test_key", body=b"test_value")
        assert status == 204
        assert await engine.get(b"test_key") == b"test_value"

        status, headers, body = await client.request("GET", "/key/test_key")
        assert status == 200
        assert headers["content-type"] == "text/plain"
        assert body == b"test_value"

    async def test_get_missing(self, api_server):
        client, _, _ = api_server

        status, _, body = await client.request("GET", "/key/nonexistent")

        assert status == 404
        assert "error" in body

    async def test_delete(self, api_server):
        client, engine, _ = api_server
        await engine.put(b"gone", b"soon")

        status, _, _ = await client.request("DELETE", "/key/gone")

        assert status == 204
        assert await engine.get(b"gone") is None

    async def test_delete_missing(self, api_server):
        client, _, _ = api_server
        status, _, _ = await client.request("DELETE", "/key/never")
        assert status == 204

    async def test_key_with_slashes(self, api_server):
        client, engine, _ = api_server

        await client.request("PUT", "/key/users/42/name", body=b"ann")

        assert await engine.get(b"users/42/name") == b"ann"

    async def test_percent_encoded_key(self, api_server):
        client, engine, _ = api_server

        await client.request("PUT", "/key/" + quote("hello world"), body=b"v")

        assert await engine.get(b"hello world") == b"v"

    async def test_binary_value(self, api_server):
        client, _, _ = api_server

        await client.request("PUT", "/key/bin", body=b"\x00\xff\xfe")
        status, _, body = await client.request("GET", "/key/bin")

        assert status == 200
        assert body == b"\x00\xff\xfe"

    async def test_empty_value(self, api_server):
        client, engine, _ = api_server

        await client.request("PUT", "/key/empty", body=b"")

        assert await engine.get(b"empty") == b""


class TestMultiGetEndpoint:
    """Tests for POST /keys."""

    async def test_missing_keys_omitted(self, abcd_server):
        client, _, _ = abcd_server

        status, _, body = await client.request("POST", "/keys", body={"keys": ["a", "x", "c"]})

        assert status == 200
        assert body["data"] == [{"key": "a", "value": "A"}, {"key": "c", "value": "C"}]

    @pytest.mark.parametrize("payload", [{}, {"keys": "a"}, {"keys": [1, 2]}])
    async def test_bad_request(self, api_server, payload):
        client, _, _ = api_server

        status, _, body = await client.request("POST", "/keys", body=payload)

        assert status == 400
        assert "error" in body


class TestIterateEndpoint:
    """Tests for GET /iterate."""

    async def test_range_with_values(self, abcd_server):
        client, _, _ = abcd_server

        status, _, body = await client.request(
            "GET", "/iterate", query_params={"start": "b", "end": "d"}
        )

        assert status == 200
        assert body == {
            "more": False,
            "data": [{"key": "b", "value": "B"}, {"key": "c", "value": "C"}],
        }

    async def test_keys_only(self, abcd_server):
        client, _, _ = abcd_server

        _, _, body = await client.request(
            "GET", "/iterate", query_params={"include_values": "no"}
        )

        assert body["data"] == ["a", "b", "c", "d"]

    async def test_backward_with_limit(self, abcd_server):
        client, _, _ = abcd_server

        _, _, body = await client.request(
            "GET", "/iterate", query_params={"forward": "no", "max": "2", "include_values": "no"}
        )

        assert body == {"more": False, "data": ["d", "c"]}

    async def test_more_reported_before_inclusive_end(self, abcd_server):
        client, _, _ = abcd_server

        _, _, body = await client.request(
            "GET",
            "/iterate",
            query_params={"start": "a", "end": "d", "include_end": "yes", "max": "3"},
        )

        assert body["more"] is True
        assert [item["key"] for item in body["data"]] == ["a", "b", "c"]

    async def test_exclusive_start(self, abcd_server):
        client, _, _ = abcd_server

        _, _, body = await client.request(
            "GET",
            "/iterate",
            query_params={"start": "b", "include_start": "no", "include_values": "no"},
        )

        assert body["data"] == ["c", "d"]

    @pytest.mark.parametrize("limit", ["0", "-3", "many"])
    async def test_bad_max(self, abcd_server, limit):
        client, _, _ = abcd_server

        status, _, body = await client.request("GET", "/iterate", query_params={"max": limit})

        assert status == 400
        assert "error" in body

    async def test_empty_database(self, api_server):
        client, _, _ = api_server

        status, _, body = await client.request("GET", "/iterate")

        assert status == 200
        assert body == {"more": False, "data": []}


class TestBatchEndpoint:
    """Tests for POST /batch."""

    async def test_apply(self, api_server):
        client, engine, _ = api_server
        await engine.put(b"foo", b"bar")

        status, _, _ = await client.request(
            "POST",
            "/batch",
            body={"ops": [
                {"op": "put", "key": "a", "value": "A"},
                {"op": "put", "key": "b", "value": "B"},
                {"op": "delete", "key": "foo"},
            ]},
        )

        assert status == 204
        assert await engine.get(b"a") == b"A"
        assert await engine.get(b"b") == b"B"
        assert await engine.get(b"foo") is None

    async def test_bad_op_commits_nothing(self, api_server):
        client, engine, _ = api_server

        status, _, body = await client.request(
            "POST",
            "/batch",
            body={"ops": [
                {"op": "put", "key": "a", "value": "A"},
                {"op": "increment", "key": "b"},
            ]},
        )

        assert status == 400
        assert "error" in body
        assert await engine.get(b"a") is None

    @pytest.mark.parametrize("item", ["put a", {"op": "put", "key": 5}, {"op": "put", "key": "k", "value": 1}])
    async def test_malformed_op(self, api_server, item):
        client, _, _ = api_server

        status, _, _ = await client.request("POST", "/batch", body={"ops": [item]})

        assert status == 400

    async def test_missing_ops(self, api_server):
        client, _, _ = api_server
        status, _, _ = await client.request("POST", "/batch", body={})
        assert status == 400

    async def test_oversize(self, api_server):
        client, engine, _ = api_server
        ops = [{"op": "put", "key": f"k{i}", "value": ""} for i in range(10_001)]

        status, _, body = await client.request("POST", "/batch", body={"ops": ops})

        assert status == 413
        assert "error" in body
        assert engine.property(Engine.PROP_NUM_ENTRIES) == "0"


class TestPropertyEndpoint:
    """Tests for GET /property/<name>."""

    async def test_num_entries(self, abcd_server):
        client, _, _ = abcd_server

        status, _, body = await client.request("GET", "/property/kvrest.num-entries")

        assert status == 200
        assert body == b"4"

    async def test_unknown(self, api_server):
        client, _, _ = api_server
        status, _, _ = await client.request("GET", "/property/leveldb.stats")
        assert status == 404


class TestSnapshotEndpoint:
    """Tests for POST /snapshot."""

    async def test_snapshot(self, abcd_server):
        client, _, tmpdir = abcd_server
        destination = os.path.join(tmpdir, "backup")

        status, _, _ = await client.request("POST", "/snapshot", body={"destination": destination})

        assert status == 204
        async with Engine(storage_dir=destination) as copy:
            assert await copy.get(b"c") == b"C"
            assert copy.property(Engine.PROP_NUM_ENTRIES) == "4"

    async def test_destination_exists(self, abcd_server):
        client, _, tmpdir = abcd_server
        destination = os.path.join(tmpdir, "backup")

        await client.request("POST", "/snapshot", body={"destination": destination})
        status, _, body = await client.request(
            "POST", "/snapshot", body={"destination": destination}
        )

        assert status == 409
        assert "error" in body

    async def test_missing_destination(self, api_server):
        client, _, _ = api_server
        status, _, _ = await client.request("POST", "/snapshot", body={})
        assert status == 400


class TestRouting:
    """Tests for unknown routes, wrong methods and path prefixes."""

    async def test_unknown_path(self, api_server):
        client, _, _ = api_server
        status, _, _ = await client.request("GET", "/nope")
        assert status == 404

    async def test_wrong_method(self, api_server):
        client, _, _ = api_server
        status, _, _ = await client.request("POST", "/iterate")
        assert status == 405

    async def test_prefix(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            server = HTTPServer(host="127.0.0.1", port=0, prefix="/api")
            engine = await Engine.create(os.path.join(tmpdir, "db"))
            await register_routes(server, engine)
            test_server, client = await _start(server)

            try:
                status, _, _ = await client.request("PUT", "/api/key/k", body=b"v")
                assert status == 204

                status, _, body = await client.request("GET", "/api/key/k")
                assert (status, body) == (200, b"v")

                status, _, _ = await client.request("GET", "/key/k")
                assert status == 404
            finally:
                test_server.close()
                await test_server.wait_closed()
                await engine.close()
