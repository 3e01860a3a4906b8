"""
Call forwarder for pymirror (caller side).

Encodes an invocation, sends it to the exposer and decodes the result. The
forwarder holds the one piece of mutable configuration the protocol needs:
the URL of the exposing server.
"""

import dataclasses
import json
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, TypeVar

from .descriptors import InvocationRequest, InvocationResult
from .errors import ConfigurationError, DecodingError, InvocationError, TransportError
from .serialize import TypeRegistry, decode, encode, object_fields
from .transport import CALL, HttpTransport, MirrorOptions, MirrorTransport

logger = logging.getLogger(__name__)

T = TypeVar('T')

TARGET_SEPARATOR = "::"


def split_target(target: str) -> Tuple[Optional[str], str]:
    """Split ``"Class::method"`` into its parts; bare names have no class."""
    class_name, separator, method = target.partition(TARGET_SEPARATOR)
    if not separator:
        return None, target
    return class_name, method


def hydrate(cls: Type[T], value: Any) -> T:
    """Turn the decoded state of a remote object into an instance of ``cls``."""
    if isinstance(value, cls):
        return value
    instance = cls.__new__(cls)
    if value is not None:
        for name, field in object_fields(value).items():
            object.__setattr__(instance, name, field)
    return instance


class CallForwarder:
    """
    Forwards calls to a remote exposer.

    Example:
        ```python
        forwarder = CallForwarder("http://localhost:8080/mirror")
        result = await forwarder.call("Calculator::add", [2, 3], Calculator())
        assert result.value == 5
        ```
    """

    def __init__(self, server: Optional[str] = None,
                 transport: Optional[MirrorTransport] = None,
                 options: Optional[MirrorOptions] = None,
                 registry: Optional[TypeRegistry] = None):
        self._server = server
        self._transport = transport
        self._owns_transport = False
        self._retired: List[MirrorTransport] = []
        self.options = options or MirrorOptions()
        self.registry = registry if registry is not None else TypeRegistry()

    @property
    def server(self) -> Optional[str]:
        return self._server

    @server.setter
    def server(self, url: Optional[str]) -> None:
        if self._owns_transport and self._transport is not None:
            self._retired.append(self._transport)
            self._transport = None
            self._owns_transport = False
        self._server = url

    def _get_transport(self) -> MirrorTransport:
        if self._transport is not None:
            return self._transport
        if not self._server:
            raise ConfigurationError("Server not set")
        self._transport = HttpTransport(self._server, self.options)
        self._owns_transport = True
        return self._transport

    async def call(self, target: str, args: Sequence[Any] = (), instance: Any = None,
                   kwargs: Optional[Dict[str, Any]] = None) -> InvocationResult:
        """
        Invoke ``target`` remotely.

        ``target`` is ``"Class::method"`` or a bare function name. Arguments
        and the instance travel as encoded copies. The returned result's
        ``value`` is the decoded return value.

        Raises:
            ConfigurationError: no server is configured (raised before any I/O)
            TransportError: the request failed or the response is unusable
            InvocationError: the remote callable raised
        """
        transport = self._get_transport()
        class_name, method = split_target(target)

        request = InvocationRequest(
            target_method=method,
            target_class=class_name,
            instance=encode(instance, self.registry),
            args=tuple(encode(arg, self.registry) for arg in args),
            kwargs={name: encode(value, self.registry) for name, value in (kwargs or {}).items()},
        )

        if self.options.debug:
            logger.debug(f"Forwarding call to {request.target}")

        text = await transport.request(CALL, json.dumps(request.to_dict()))
        return self._decode_response(text, request)

    def _decode_response(self, text: str, request: InvocationRequest) -> InvocationResult:
        try:
            payload = json.loads(text)
        except (TypeError, ValueError) as e:
            raise TransportError(f"Response to {request.target} is not valid JSON") from e

        if not isinstance(payload, dict):
            raise TransportError(f"Empty or malformed response to {request.target}")

        if "error" in payload:
            try:
                original = decode(payload["error"], self.registry)
            except DecodingError:
                original = None
            if not isinstance(original, BaseException):
                original = Exception(str(payload["error"]))
            raise InvocationError(original, request.target)

        try:
            result = InvocationResult.from_dict(payload)
            value = decode(result.result, self.registry)
        except (DecodingError, TypeError, ValueError) as e:
            raise TransportError(f"Malformed response to {request.target}: {e}") from e
        return dataclasses.replace(result, value=value)

    async def close(self) -> None:
        for transport in self._retired:
            await transport.close()
        self._retired.clear()
        if self._owns_transport and self._transport is not None:
            await self._transport.close()
            self._transport = None
            self._owns_transport = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
