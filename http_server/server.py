import asyncio
import json
import logging
import os
import re
import time
from typing import Callable, Dict, List, Optional, Pattern, Tuple
from urllib.parse import parse_qs, unquote, urlparse

from .request import Request
from .response import Response

logger = logging.getLogger(__name__)

# {name} matches one path segment, {name*} the rest of the path
_PARAM_PATTERN = re.compile(r"\{(\w+)(\*?)\}")


def compile_path(path: str) -> Pattern:
    """Turn a route path with {param} placeholders into a regex."""
    regex = ""
    pos = 0
    for match in _PARAM_PATTERN.finditer(path):
        regex += re.escape(path[pos:match.start()])
        name, rest = match.group(1), match.group(2)
        regex += f"(?P<{name}>.+)" if rest else f"(?P<{name}>[^/]+)"
        pos = match.end()
    regex += re.escape(path[pos:])
    return re.compile(regex)


class HTTPServer:
    def __init__(
        self,
        host: str = '0.0.0.0',
        port: int = 8080,
        unix_path: Optional[str] = None,
        prefix: str = '',
    ):
        self.host = host
        self.port = port
        self.unix_path = unix_path
        self.prefix = prefix
        self.routes: Dict[Tuple[str, str], Callable] = {}
        self._patterns: Dict[str, Pattern] = {}

    @property
    def address(self) -> str:
        return self.unix_path if self.unix_path else f"{self.host}:{self.port}"

    def route(self, path: str, methods: Optional[List] = None):
        """Decorator for registering route handlers"""
        if methods is None:
            methods = ['GET']

        full_path = self.prefix + path
        self._patterns.setdefault(full_path, compile_path(full_path))

        def decorator(handler):
            for method in methods:
                self.routes[(method.upper(), full_path)] = handler
            return handler
        return decorator

    def match(self, method: str, path: str) -> Tuple[Optional[Callable], Dict[str, str], bool]:
        """
        Find the handler for a request.

        Returns:
            (handler, path_params, path_known). handler is None when no
            route matches; path_known tells 405 apart from 404.
        """
        path_known = False
        for route_path, pattern in self._patterns.items():
            found = pattern.fullmatch(path)
            if found is None:
                continue
            path_known = True
            handler = self.routes.get((method, route_path))
            if handler is not None:
                params = {
                    name: unquote(value, errors='surrogateescape')
                    for name, value in found.groupdict().items()
                }
                return handler, params, True
        return None, {}, path_known

    async def parse_request(self, reader: asyncio.StreamReader) -> Optional[Request]:
        """Parse HTTP request with timeout and size limits"""
        try:
            # Read request line with timeout
            request_line = await asyncio.wait_for(
                reader.readline(),
                timeout=5.0
            )

            if not request_line:
                return None

            request_line = request_line.decode('utf-8').strip()
            method, full_path, version = request_line.split(' ', 2)

            # Parse URL and query parameters
            parsed_url = urlparse(full_path)
            path = parsed_url.path
            query_params = parse_qs(
                parsed_url.query, keep_blank_values=True, errors='surrogateescape'
            )

            # Parse headers
            headers = {}
            while True:
                line = await asyncio.wait_for(reader.readline(), timeout=5.0)
                if line == b'\r\n' or line == b'\n' or not line:
                    break

                header_line = line.decode('utf-8').strip()
                if ':' in header_line:
                    key, value = header_line.split(':', 1)
                    headers[key.strip().lower()] = value.strip()

            # Read body if present
            body = b''
            content_length = int(headers.get('content-length', 0))

            if content_length > 0:
                # Limit body size to 10MB
                if content_length > 10 * 1024 * 1024:
                    raise ValueError("Request body too large")

                body = await asyncio.wait_for(
                    reader.readexactly(content_length),
                    timeout=30.0
                )

            return Request(
                method=method.upper(),
                path=path,
                headers=headers,
                query_params=query_params,
                body=body,
                version=version
            )

        except asyncio.TimeoutError:
            return None
        except Exception as e:
            logger.error(f"Error parsing request: {e}")
            return None

    def build_response(self, response: Response) -> bytes:
        """Build HTTP response bytes"""
        status_messages = {
            200: 'OK',
            201: 'Created',
            204: 'No Content',
            400: 'Bad Request',
            404: 'Not Found',
            405: 'Method Not Allowed',
            409: 'Conflict',
            413: 'Request Entity Too Large',
            500: 'Internal Server Error',
        }

        status_text = status_messages.get(response.status, 'Unknown')

        # Set default headers
        if 'content-type' not in response.headers and response.status != 204:
            response.headers['content-type'] = 'text/plain'

        response.headers['content-length'] = str(len(response.body))
        response.headers['connection'] = 'keep-alive'
        response.headers['server'] = 'KVRest/1.0'

        # Build response
        response_line = f"HTTP/1.1 {response.status} {status_text}\r\n"
        header_lines = ''.join(
            f"{key}: {value}\r\n"
            for key, value in response.headers.items()
        )

        response_bytes = (
            response_line.encode() +
            header_lines.encode() +
            b'\r\n' +
            response.body
        )

        return response_bytes

    async def handle_request(self, request: Request) -> Response:
        """Route request to appropriate handler"""
        handler, params, path_known = self.match(request.method, request.path)

        if handler is None:
            if path_known:
                return Response(status=405, body=b'Method Not Allowed')
            return Response(
                status=404,
                body=b'Route Not Found'
            )

        request.path_params = params

        try:
            # Call handler
            result = await handler(request)

            if isinstance(result, Response):
                return result
            elif isinstance(result, dict):
                return Response(
                    status=200,
                    headers={'content-type': 'application/json'},
                    body=json.dumps(result).encode()
                )
            elif isinstance(result, str):
                return Response(
                    status=200,
                    body=result.encode()
                )
            elif isinstance(result, bytes):
                return Response(
                    status=200,
                    body=result
                )

            raise TypeError("Response cannot be casted to appropriate HTTP response format")
        except Exception as e:
            logger.error(f"Handler error on {request.method} {request.path}: {e}")
            return Response(
                status=500,
                body=b'Internal Server Error'
            )

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Handle a single client connection with keep-alive"""
        peer = writer.get_extra_info('peername')

        try:
            # Keep-alive loop
            while True:
                request = await self.parse_request(reader)
                if request is None:
                    break

                start_time = time.perf_counter()
                logger.debug(f"--> {request.method} {request.path}")

                # Handle request
                response = await self.handle_request(request)

                # Send response
                response_bytes = self.build_response(response)
                writer.write(response_bytes)
                await writer.drain()

                elapsed_ms = (time.perf_counter() - start_time) * 1000
                logger.debug(
                    f"<-- {response.status} - {len(response.body)} bytes - {elapsed_ms:.2f}ms"
                )

                # Check if client wants to close connection
                connection_header = request.headers.get('connection', '').lower()
                if connection_header == 'close':
                    break

        except ConnectionResetError:
            pass
        except Exception as e:
            logger.error(f"Connection error from {peer}: {e}")
        finally:
            try:
                writer.close()
                await writer.wait_closed()
            except Exception:
                pass

    async def listen(self) -> asyncio.AbstractServer:
        """Bind the listening socket"""
        if self.unix_path:
            return await asyncio.start_unix_server(self.handle_client, path=self.unix_path)
        return await asyncio.start_server(
            self.handle_client,
            self.host,
            self.port
        )

    async def start(self):
        """Start the HTTP server"""
        server = await self.listen()

        if self.unix_path:
            logger.info(f'KVRest HTTP Server running on unix:{self.unix_path}')
        else:
            addr = server.sockets[0].getsockname()
            logger.info(f'KVRest HTTP Server running on http://{addr[0]}:{addr[1]}')

        try:
            async with server:
                await server.serve_forever()
        except asyncio.CancelledError:
            logger.info("Server shutdown requested")
        finally:
            await self.shutdown(server)

    async def shutdown(self, server):
        """Gracefully shutdown the server"""
        logger.info(f"Shutting down server on {self.address}...")
        server.close()
        await server.wait_closed()
        if self.unix_path and os.path.exists(self.unix_path):
            os.remove(self.unix_path)
        logger.info("Server shutdown complete")
