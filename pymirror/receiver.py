"""
Call receiver for pymirror (exposer side).

Decodes an invocation request, dispatches it through the catalog's registry,
and encodes the result together with the execution time and memory delta.
"""

import inspect
import json
import logging
import sys
import time
import tracemalloc
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

try:
    import resource
except ImportError:  # not available on Windows
    resource = None

from .catalog import ExposureCatalog
from .descriptors import InvocationRequest, InvocationResult
from .errors import DecodingError, InvocationError
from .serialize import decode, encode

logger = logging.getLogger(__name__)


def memory_usage() -> Optional[int]:
    """
    Memory use in bytes, best effort.

    With tracemalloc tracing on this is the current traced size, so a delta
    can be negative. Otherwise it is the peak resident set size of the
    process, so a delta only shows peak growth and is often 0.
    """
    try:
        if tracemalloc.is_tracing():
            return tracemalloc.get_traced_memory()[0]
        if resource is not None:
            peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
            # ru_maxrss is in bytes on macOS, kilobytes elsewhere
            return peak if sys.platform == "darwin" else peak * 1024
    except (OSError, ValueError) as e:
        logger.warning(f"Memory measurement failed: {e}")
    return None


class CallReceiver:
    """Executes forwarded invocations against an ExposureCatalog."""

    def __init__(self, catalog: ExposureCatalog):
        self.catalog = catalog

    def decode_request(self, request_bytes: Union[bytes, str, None]) -> Optional[InvocationRequest]:
        """Parse a request body; anything not meaningful yields None."""
        if not request_bytes:
            return None
        try:
            payload = json.loads(request_bytes)
        except (TypeError, ValueError):
            logger.warning("Ignoring invocation request that is not valid JSON")
            return None
        if not payload or not isinstance(payload, dict):
            return None
        try:
            return InvocationRequest.from_dict(payload)
        except DecodingError as e:
            logger.warning(f"Ignoring malformed invocation request: {e}")
            return None

    def _decode_arguments(self, request: InvocationRequest) -> Tuple[Any, List[Any], Dict[str, Any]]:
        registry = self.catalog.registry
        instance = decode(request.instance, registry)
        args = [decode(arg, registry) for arg in request.args]
        kwargs = {name: decode(value, registry) for name, value in request.kwargs.items()}
        return instance, args, kwargs

    def resolve(self, request: InvocationRequest, instance: Any) -> Callable[..., Any]:
        """
        Find the callable a request targets.

        The decoded instance is the receiver when present, then the class,
        then a bare function. Only callables registered in the catalog are
        reachable.
        """
        if not request.target_class:
            func = self.catalog.lookup_function(request.target_method)
            if func is None:
                raise LookupError(f"Function {request.target_method} is not exposed")
            return func

        cls = self.catalog.lookup_class(request.target_class)
        method = self.catalog.lookup_method(request.target_class, request.target_method)
        if cls is None or method is None:
            raise LookupError(f"Method {request.target} is not exposed")

        if instance is not None and not isinstance(instance, cls):
            raise TypeError(f"Receiver for {request.target} is a {type(instance).__name__}, not {cls.__name__}")

        if method.is_constructor:
            if instance is None:
                return cls

            def construct_in_place(*args, **kwargs):
                cls.__init__(instance, *args, **kwargs)
                return instance
            return construct_in_place

        if instance is None and not method.is_static:
            raise TypeError(f"Instance method {request.target} needs a receiver instance")

        return getattr(instance if instance is not None else cls, request.target_method)

    async def receive(self, request_bytes: Union[bytes, str, None]) -> Optional[InvocationResult]:
        """
        Execute one invocation request.

        Returns None when the request cannot be decoded. Failures of the
        invoked callable, including an unknown target, raise InvocationError.
        """
        request = self.decode_request(request_bytes)
        if request is None:
            return None

        try:
            instance, args, kwargs = self._decode_arguments(request)
        except DecodingError as e:
            logger.warning(f"Ignoring invocation of {request.target} with undecodable arguments: {e}")
            return None

        try:
            target = self.resolve(request, instance)
        except (LookupError, TypeError) as e:
            raise InvocationError(e, request.target) from e

        memory_start = memory_usage()
        time_start = time.perf_counter()
        try:
            result = target(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.debug(f"Invocation of {request.target} raised {type(e).__name__}: {e}")
            raise InvocationError(e, request.target) from e
        time_end = time.perf_counter()
        memory_end = memory_usage()

        try:
            encoded = encode(result, self.catalog.registry)
        except (TypeError, RuntimeError) as e:
            raise InvocationError(e, request.target) from e

        memory_delta = 0
        if memory_start is not None and memory_end is not None:
            memory_delta = memory_end - memory_start

        return InvocationResult(
            time=InvocationResult.now(),
            target_class=request.target_class,
            target_method=request.target_method,
            result=encoded,
            execution_time=time_end - time_start,
            memory_usage=memory_delta,
        )
