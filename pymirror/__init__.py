"""
pymirror - expose Python classes and functions to remote callers

An exposer describes its callables as data and serves them page by page; a
caller discovers them, generates proxy source, and forwards invocations that
come back as encoded results with execution metrics.
"""

from .catalog import ExposureCatalog
from .descriptors import (
    ClassDescriptor, ExposurePage, FunctionDescriptor, InvocationRequest, InvocationResult,
    MethodDescriptor, ParameterDescriptor, PropertyDescriptor,
)
from .discovery import DiscoveryClient, DiscoveryResult, discover
from .errors import ConfigurationError, DecodingError, InvocationError, MirrorError, TransportError
from .forwarder import CallForwarder, hydrate
from .generate import ProxyGenerator, PythonSyntax, generate, load_proxies
from .receiver import CallReceiver
from .reflect import BY_REFERENCE, describe, resolve_callable
from .serialize import ForeignObject, TypeRegistry, decode, deserialize, encode, serialize
from .server import MirrorServer, create_app, serve_http
from .transport import HttpTransport, LocalTransport, MirrorOptions, MirrorTransport
from .websocket import WebSocketMirrorServer, WebSocketTransport

__version__ = "1.0.0"


def get_version() -> str:
    return __version__


__all__ = [
    "ExposureCatalog",
    "ClassDescriptor",
    "ExposurePage",
    "FunctionDescriptor",
    "InvocationRequest",
    "InvocationResult",
    "MethodDescriptor",
    "ParameterDescriptor",
    "PropertyDescriptor",
    "DiscoveryClient",
    "DiscoveryResult",
    "discover",
    "ConfigurationError",
    "DecodingError",
    "InvocationError",
    "MirrorError",
    "TransportError",
    "CallForwarder",
    "hydrate",
    "ProxyGenerator",
    "PythonSyntax",
    "generate",
    "load_proxies",
    "CallReceiver",
    "BY_REFERENCE",
    "describe",
    "resolve_callable",
    "ForeignObject",
    "TypeRegistry",
    "decode",
    "deserialize",
    "encode",
    "serialize",
    "MirrorServer",
    "create_app",
    "serve_http",
    "HttpTransport",
    "LocalTransport",
    "MirrorOptions",
    "MirrorTransport",
    "WebSocketMirrorServer",
    "WebSocketTransport",
    "get_version",
]
