"""
WebSocket transport for pymirror.

Each request is one text frame ``{"op": ..., "body": ...}`` answered by one
frame ``{"status": ..., "body": ...}``. A connection carries one request at
a time.
"""

import asyncio
import json
import logging
from typing import Any, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from .errors import TransportError
from .server import MirrorServer
from .transport import MirrorOptions, MirrorTransport, check_operation, is_error_envelope

logger = logging.getLogger(__name__)


class WebSocketTransport(MirrorTransport):
    """Client side of the WebSocket transport."""

    def __init__(self, uri: str, options: Optional[MirrorOptions] = None):
        self.uri = uri
        self.options = options or MirrorOptions()
        self._websocket: Any = None
        self._lock = asyncio.Lock()

    async def _connect(self) -> Any:
        if self._websocket is None:
            try:
                self._websocket = await asyncio.wait_for(
                    websockets.connect(self.uri), self.options.request_timeout)
            except (OSError, WebSocketException, asyncio.TimeoutError) as e:
                raise TransportError(f"Cannot connect to {self.uri}: {e}") from e
            logger.debug(f"Connected to {self.uri}")
        return self._websocket

    async def request(self, operation: str, body: str) -> str:
        check_operation(operation)
        async with self._lock:
            websocket = await self._connect()
            if self.options.debug:
                logger.debug(f"Sending {operation} frame to {self.uri}: {body}")
            try:
                await websocket.send(json.dumps({"op": operation, "body": body}))
                message = await asyncio.wait_for(websocket.recv(), self.options.request_timeout)
            except (ConnectionClosed, WebSocketException, OSError) as e:
                self._websocket = None
                raise TransportError(f"WebSocket request to {self.uri} failed: {e}") from e
            except asyncio.TimeoutError as e:
                raise TransportError(f"WebSocket request to {self.uri} timed out") from e

        if isinstance(message, bytes):
            message = message.decode('utf-8')
        try:
            frame = json.loads(message)
            status, text = int(frame["status"]), frame["body"]
        except (TypeError, ValueError, KeyError) as e:
            raise TransportError(f"Malformed WebSocket frame from {self.uri}") from e

        if status >= 400 and not is_error_envelope(text):
            raise TransportError(f"Mirror request failed: {status} {text}")
        return text

    async def close(self) -> None:
        if self._websocket is not None:
            try:
                await self._websocket.close()
            except (ConnectionClosed, OSError) as e:
                logger.warning(f"Error closing WebSocket: {e}")
            self._websocket = None


class WebSocketMirrorServer:
    """Serves a MirrorServer over WebSockets."""

    def __init__(self, server: MirrorServer, host: str = "localhost", port: int = 8765):
        self.server = server
        self.host = host
        self.port = port
        self._ws_server: Any = None

    async def start(self) -> None:
        self._ws_server = await websockets.serve(self._handle_connection, self.host, self.port)
        if self.port == 0:
            self.port = list(self._ws_server.sockets)[0].getsockname()[1]
        logger.info(f"Mirror WebSocket server started on {self.host}:{self.port}")

    async def stop(self) -> None:
        if self._ws_server is not None:
            self._ws_server.close()
            await self._ws_server.wait_closed()
            self._ws_server = None
            logger.info("Mirror WebSocket server stopped")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    async def _handle_connection(self, websocket: Any) -> None:
        try:
            async for message in websocket:
                status, text = await self._handle_frame(message)
                await websocket.send(json.dumps({"status": status, "body": text}))
        except ConnectionClosed:
            logger.debug("WebSocket connection closed")

    async def _handle_frame(self, message: Any) -> Any:
        if isinstance(message, bytes):
            message = message.decode('utf-8')
        try:
            frame = json.loads(message)
            operation, body = frame["op"], frame["body"]
            check_operation(operation)
        except (TypeError, ValueError, KeyError):
            return 400, json.dumps({"message": "Malformed request frame"})

        try:
            return await self.server.handle(operation, body)
        except Exception:
            logger.exception(f"Error handling {operation} frame")
            return 500, json.dumps({"message": "Internal server error"})
