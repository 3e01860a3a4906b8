"""
Exposer-side request handling for pymirror.

``MirrorServer`` answers discovery and invocation requests for one catalog.
It is transport-agnostic; ``create_app`` mounts it on an aiohttp
application and ``pymirror.websocket`` serves it over WebSockets.
"""

import asyncio
import json
import logging
from typing import Any, Optional, Tuple

from aiohttp import web

from .catalog import ExposureCatalog
from .errors import InvocationError
from .receiver import CallReceiver
from .serialize import ENCODING_VERSION, encode
from .transport import CALL, ENCODING_HEADER, EXPOSE, MirrorOptions, check_operation

logger = logging.getLogger(__name__)


def _message(status: int, message: str) -> Tuple[int, str]:
    return status, json.dumps({"message": message})


class MirrorServer:
    """Serves one ExposureCatalog to remote callers."""

    def __init__(self, catalog: ExposureCatalog, options: Optional[MirrorOptions] = None):
        self.catalog = catalog
        self.receiver = CallReceiver(catalog)
        self.options = options or MirrorOptions()

    async def handle(self, operation: str, body: str) -> Tuple[int, str]:
        """
        Answer one request.

        Returns the HTTP-style status and the response body.
        """
        check_operation(operation)
        if self.options.debug:
            logger.debug(f"Handling {operation} request: {body}")

        if operation == EXPOSE:
            return self.handle_expose(body)
        return await self.handle_call(body)

    def handle_expose(self, body: str) -> Tuple[int, str]:
        try:
            payload = json.loads(body) if body else {}
        except (TypeError, ValueError):
            return _message(400, "Discovery request is not valid JSON")

        page = payload.get("page", 1) if isinstance(payload, dict) else None
        if not isinstance(page, int) or isinstance(page, bool):
            return _message(400, "Discovery request needs an integer page")

        return 200, json.dumps(self.catalog.serve_page(page).to_dict())

    async def handle_call(self, body: str) -> Tuple[int, str]:
        try:
            result = await self.receiver.receive(body)
        except InvocationError as e:
            logger.info(f"{e}")
            return 500, json.dumps({"error": self._encode_error(e.original)})

        if result is None:
            return 200, json.dumps(None)
        return 200, json.dumps(result.to_dict())

    def _encode_error(self, error: BaseException) -> Any:
        try:
            return encode(error, self.catalog.registry)
        except (TypeError, RuntimeError):
            return encode(Exception(str(error)))

    async def handle_http(self, request: web.Request) -> web.Response:
        """aiohttp handler for ``POST <path>?expose=true`` and ``POST <path>?call=true``."""
        version = request.headers.get(ENCODING_HEADER)
        if version is not None and version != str(ENCODING_VERSION):
            status, text = _message(400, f"Unsupported encoding version {version}")
            return web.json_response(text=text, status=status)

        if EXPOSE in request.query:
            operation = EXPOSE
        elif CALL in request.query:
            operation = CALL
        else:
            status, text = _message(404, "Expected ?expose=true or ?call=true")
            return web.json_response(text=text, status=status)

        body = await request.text()
        try:
            status, text = await self.handle(operation, body)
        except Exception:
            logger.exception(f"Error handling {operation} request")
            status, text = _message(500, "Internal server error")
        return web.json_response(text=text, status=status)


def create_app(catalog: ExposureCatalog, options: Optional[MirrorOptions] = None) -> web.Application:
    """
    Build an aiohttp application serving ``catalog``.

    Example:
        ```python
        catalog = ExposureCatalog()
        catalog.prepare(Calculator)
        web.run_app(create_app(catalog), port=8080)
        ```
    """
    options = options or MirrorOptions()
    server = MirrorServer(catalog, options)
    app = web.Application()
    app.router.add_post(options.path, server.handle_http)
    return app


async def serve_http(catalog: ExposureCatalog, host: str = "localhost", port: int = 8080,
                     options: Optional[MirrorOptions] = None) -> web.AppRunner:
    """Start serving ``catalog`` over HTTP and return the runner; call ``cleanup()`` to stop."""
    options = options or MirrorOptions()
    runner = web.AppRunner(create_app(catalog, options))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info(f"Mirror server listening on http://{host}:{port}{options.path}")
    return runner


async def run_forever(catalog: ExposureCatalog, host: str = "localhost", port: int = 8080,
                      options: Optional[MirrorOptions] = None) -> None:
    runner = await serve_http(catalog, host, port, options)
    try:
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()
