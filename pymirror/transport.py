"""
Transports for pymirror.

A transport carries one request body to the exposer and returns the response
body. Two operations share it: ``expose`` (discovery pages) and ``call``
(invocations). Every request is awaited to completion before the next one is
sent; there is no pipelining and no retry.
"""

import asyncio
import json
import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

import aiohttp

from .errors import TransportError
from .serialize import ENCODING_VERSION

if TYPE_CHECKING:
    from .server import MirrorServer

logger = logging.getLogger(__name__)

EXPOSE = "expose"
CALL = "call"
OPERATIONS = (EXPOSE, CALL)

ENCODING_HEADER = "X-Mirror-Encoding"


class MirrorOptions:
    """Configuration options for transports and servers."""

    def __init__(self,
                 debug: bool = False,
                 request_timeout: float = 30.0,
                 headers: Optional[Dict[str, str]] = None,
                 path: str = "/mirror"):
        """
        Initialize options.

        Args:
            debug: Log every request and response body at DEBUG level
            request_timeout: Timeout in seconds for one request/response exchange
            headers: Extra HTTP headers sent with every request
            path: URL path the exposer serves on
        """
        self.debug = debug
        self.request_timeout = request_timeout
        self.headers = dict(headers or {})
        self.path = path


class MirrorTransport(ABC):
    """Abstract base class for request/response transports."""

    @abstractmethod
    async def request(self, operation: str, body: str) -> str:
        """Send ``body`` for ``operation`` and return the response body."""
        pass

    async def close(self) -> None:
        """Release any connection held by the transport."""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def check_operation(operation: str) -> None:
    if operation not in OPERATIONS:
        raise ValueError(f"Unknown operation: {operation!r}")


class HttpTransport(MirrorTransport):
    """
    HTTP transport built on aiohttp.

    Both operations POST a JSON body to the same URL, told apart by the
    ``?expose=true`` and ``?call=true`` query flags.
    """

    def __init__(self, url: str, options: Optional[MirrorOptions] = None,
                 session: Optional[aiohttp.ClientSession] = None):
        self.url = url
        self.options = options or MirrorOptions()
        self._session = session
        self._owns_session = session is None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.options.request_timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._owns_session = True
        return self._session

    async def request(self, operation: str, body: str) -> str:
        check_operation(operation)
        session = await self._get_session()
        headers = {
            "Content-Type": "application/json",
            ENCODING_HEADER: str(ENCODING_VERSION),
            **self.options.headers,
        }

        if self.options.debug:
            logger.debug(f"POST {self.url} ({operation}): {body}")

        try:
            async with session.post(self.url, params={operation: "true"}, data=body,
                                    headers=headers) as response:
                text = await response.text()
                if response.status >= 400 and not is_error_envelope(text):
                    raise TransportError(f"Mirror request failed: {response.status} {response.reason}")
        except aiohttp.ClientError as e:
            raise TransportError(f"Mirror request to {self.url} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"Mirror request to {self.url} timed out") from e

        if self.options.debug:
            logger.debug(f"Response from {self.url} ({operation}): {text}")
        return text

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None


class LocalTransport(MirrorTransport):
    """In-process transport that hands requests straight to a MirrorServer."""

    def __init__(self, server: 'MirrorServer'):
        self.server = server

    async def request(self, operation: str, body: str) -> str:
        check_operation(operation)
        status, text = await self.server.handle(operation, body)
        if status >= 400 and not is_error_envelope(text):
            raise TransportError(f"Mirror request failed: {status}")
        return text


def is_error_envelope(text: str) -> bool:
    """Whether a response body is an ``{"error": ...}`` invocation failure."""
    try:
        parsed: Any = json.loads(text)
    except (TypeError, ValueError):
        return False
    return isinstance(parsed, dict) and "error" in parsed
