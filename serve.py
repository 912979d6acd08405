import asyncio
import logging
import os
import sys

from http_server.request import Request
from http_server.response import Response, no_content, response
from http_server.server import HTTPServer
from kvrest.config import ServerConfig, parse_args
from kvrest.engine import Engine
from kvrest.models.exceptions import (
    BadBatchError,
    DatabaseExistsError,
    EngineError,
    OversizeBatchError,
)
from kvrest.models.operation import Operation
from kvrest.models.scan import ABSOLUTE_MAX, Bound, Direction, ScanRequest
from kvrest.operations import BatchMutator, RangeIterator, SnapshotExporter, multi_get

logger = logging.getLogger(__name__)


def to_bytes(text: str) -> bytes:
    """Wire text to key/value bytes; non UTF-8 bytes travel as surrogates."""
    return text.encode("utf-8", "surrogateescape")


def to_text(data: bytes) -> str:
    return data.decode("utf-8", "surrogateescape")


def _flag(request: Request, name: str, default: bool) -> bool:
    """Query flags are "yes"/"no"; anything else keeps the default."""
    value = request.get(name)
    if value == "yes":
        return True
    if value == "no":
        return False
    return default


def _decode_op(item) -> Operation:
    # Malformed items become invalid operations so the whole batch is refused
    if not isinstance(item, dict):
        return Operation(op=None, key=b"")

    op, key, value = item.get("op"), item.get("key", ""), item.get("value", "")
    if not isinstance(key, str) or not isinstance(value, str):
        return Operation(op=None, key=b"")

    return Operation(op=op, key=to_bytes(key), value=to_bytes(value))


def _engine_failure(request: Request, e: EngineError) -> Response:
    logger.error(f"{request.method} {request.path} failed: {e}")
    return response(status_code=500).json({"error": f"Internal error: {str(e)}"})


async def main(config: ServerConfig):
    engine = await Engine.create(config.db_path, fsync_interval_ms=config.fsync_interval_ms)

    servers = []
    for address in config.addresses:
        server = HTTPServer(
            host=address.host,
            port=address.port,
            unix_path=address.unix_path,
            prefix=config.prefix,
        )
        await register_routes(server, engine)
        servers.append(server)

    logger.debug(f"Registered routes: {list(servers[0].routes)}")

    try:
        await asyncio.gather(*(server.start() for server in servers))
    finally:
        await engine.close()


async def register_routes(server: HTTPServer, engine: Engine):
    ranges = RangeIterator(engine)
    mutator = BatchMutator(engine)
    exporter = SnapshotExporter(engine)

    @server.route('/key/{name*}', ['GET'])
    async def get(request: Request) -> Response:
        key = to_bytes(request.path_params["name"])
        try:
            value = await engine.get(key)
        except EngineError as e:
            return _engine_failure(request, e)

        if value is None:
            return response(status_code=404).json({"error": "Key not found"})
        return response(status_code=200).text(value)

    @server.route('/key/{name*}', ['PUT'])
    async def put(request: Request) -> Response:
        key = to_bytes(request.path_params["name"])
        try:
            await engine.put(key, request.body)
        except EngineError as e:
            return _engine_failure(request, e)
        return no_content()

    @server.route('/key/{name*}', ['DELETE'])
    async def delete(request: Request) -> Response:
        key = to_bytes(request.path_params["name"])
        try:
            await engine.delete(key)
        except EngineError as e:
            return _engine_failure(request, e)
        return no_content()

    @server.route('/keys', ['POST'])
    async def get_many(request: Request) -> Response:
        keys = request.get("keys")
        if not isinstance(keys, list) or not all(isinstance(k, str) for k in keys):
            return response(status_code=400).json({"error": "'keys' must be an array of strings"})

        try:
            found = await multi_get(engine, [to_bytes(k) for k in keys])
        except EngineError as e:
            return _engine_failure(request, e)

        data = [{"key": to_text(k), "value": to_text(v)} for k, v in found]
        return response(status_code=200).json({"data": data})

    @server.route('/iterate', ['GET'])
    async def iterate(request: Request) -> Response:
        start = request.get("start", "")
        end = request.get("end", "")
        include_values = _flag(request, "include_values", True)

        try:
            limit = int(request.get("max") or ABSOLUTE_MAX)
            scan = ScanRequest(
                start=Bound(to_bytes(start), _flag(request, "include_start", True)) if start else None,
                end=Bound(to_bytes(end), _flag(request, "include_end", False)) if end else None,
                direction=Direction.FORWARD if _flag(request, "forward", True) else Direction.BACKWARD,
                limit=limit,
            )
        except ValueError as e:
            return response(status_code=400).json({"error": f"Bad iteration parameters: {e}"})

        try:
            result = ranges.scan(scan)
        except EngineError as e:
            return _engine_failure(request, e)

        if include_values:
            data = [{"key": to_text(k), "value": to_text(v)} for k, v in result.items]
        else:
            data = [to_text(k) for k in result.keys()]
        return response(status_code=200).json({"more": result.truncated, "data": data})

    @server.route('/batch', ['POST'])
    async def batch(request: Request) -> Response:
        ops = request.get("ops")
        if not isinstance(ops, list):
            return response(status_code=400).json({"error": "Missing 'ops' array in request body"})

        try:
            count = await mutator.apply([_decode_op(item) for item in ops])
        except OversizeBatchError as e:
            return response(status_code=413).json({"error": str(e)})
        except BadBatchError as e:
            return response(status_code=400).json({"error": str(e)})
        except EngineError as e:
            return _engine_failure(request, e)

        logger.debug(f"Applied batch of {count} operations")
        return no_content()

    @server.route('/property/{name}', ['GET'])
    async def get_property(request: Request) -> Response:
        try:
            value = engine.property(request.path_params["name"])
        except EngineError as e:
            return _engine_failure(request, e)

        if value is None:
            return response(status_code=404).json({"error": "Unknown property"})
        return response(status_code=200).text(value)

    @server.route('/snapshot', ['POST'])
    async def snapshot(request: Request) -> Response:
        destination = request.get("destination")
        if not isinstance(destination, str) or not destination:
            return response(status_code=400).json({"error": "Missing 'destination' in request body"})

        try:
            await exporter.export(destination)
        except DatabaseExistsError as e:
            return response(status_code=409).json({"error": str(e)})
        except EngineError as e:
            return _engine_failure(request, e)
        return no_content()


def run():
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(levelname)s - %(message)s",
    )
    try:
        asyncio.run(main(parse_args(sys.argv[1:])))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
