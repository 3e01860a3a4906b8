"""
Data model for pymirror.

Descriptors describe the shape of an exposed callable. They are immutable
once built; ``to_dict``/``from_dict`` give the JSON wire form used in
discovery pages. The request and result envelopes for invocations live here
as well.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple, Union

from .errors import DecodingError

# Parameter kinds, named after inspect.Parameter kinds
POSITIONAL_ONLY = "positional_only"
POSITIONAL_OR_KEYWORD = "positional_or_keyword"
VAR_POSITIONAL = "var_positional"
KEYWORD_ONLY = "keyword_only"
VAR_KEYWORD = "var_keyword"

PARAMETER_KINDS = (POSITIONAL_ONLY, POSITIONAL_OR_KEYWORD, VAR_POSITIONAL, KEYWORD_ONLY, VAR_KEYWORD)

CONSTRUCTOR = "__init__"
TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


def _require(data: Any, key: str) -> Any:
    if not isinstance(data, dict) or key not in data:
        raise DecodingError(f"Missing '{key}' in descriptor")
    return data[key]


@dataclass(frozen=True)
class ParameterDescriptor:
    name: str
    type: Optional[str] = None
    default: Any = None
    has_default: bool = False
    by_reference: bool = False
    kind: str = POSITIONAL_OR_KEYWORD

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "default": self.default,
            "hasDefault": self.has_default,
            "byReference": self.by_reference,
            "kind": self.kind,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ParameterDescriptor':
        if not isinstance(data, dict):
            raise DecodingError(f"Malformed parameter descriptor: {data!r}")
        kind = data.get("kind", POSITIONAL_OR_KEYWORD)
        if kind not in PARAMETER_KINDS:
            raise DecodingError(f"Unknown parameter kind: {kind!r}")
        return cls(
            name=_require(data, "name"),
            type=data.get("type"),
            default=data.get("default"),
            has_default=bool(data.get("hasDefault", False)),
            by_reference=bool(data.get("byReference", False)),
            kind=kind,
        )


@dataclass(frozen=True)
class PropertyDescriptor:
    name: str
    type: Optional[str] = None
    default: Any = None
    modifiers: Tuple[str, ...] = ()

    @property
    def is_static(self) -> bool:
        return "static" in self.modifiers

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "default": self.default,
            "modifiers": list(self.modifiers),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PropertyDescriptor':
        return cls(
            name=_require(data, "name"),
            type=data.get("type"),
            default=data.get("default"),
            modifiers=tuple(data.get("modifiers") or ()),
        )


@dataclass(frozen=True)
class MethodDescriptor:
    name: str
    return_type: Optional[str] = None
    modifiers: Tuple[str, ...] = ()
    parameters: Tuple[ParameterDescriptor, ...] = ()

    @property
    def is_static(self) -> bool:
        return "static" in self.modifiers

    @property
    def is_classmethod(self) -> bool:
        return "class" in self.modifiers

    @property
    def is_constructor(self) -> bool:
        return self.name == CONSTRUCTOR

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "returnType": self.return_type,
            "modifiers": list(self.modifiers),
            "parameters": [p.to_dict() for p in self.parameters],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MethodDescriptor':
        return cls(
            name=_require(data, "name"),
            return_type=data.get("returnType"),
            modifiers=tuple(data.get("modifiers") or ()),
            parameters=tuple(ParameterDescriptor.from_dict(p) for p in data.get("parameters") or ()),
        )


@dataclass(frozen=True)
class FunctionDescriptor:
    name: str
    parameters: Tuple[ParameterDescriptor, ...] = ()
    return_type: Optional[str] = None

    kind = "function"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "parameters": [p.to_dict() for p in self.parameters],
            "returnType": self.return_type,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FunctionDescriptor':
        return cls(
            name=_require(data, "name"),
            parameters=tuple(ParameterDescriptor.from_dict(p) for p in data.get("parameters") or ()),
            return_type=data.get("returnType"),
        )


@dataclass(frozen=True)
class ClassDescriptor:
    name: str
    properties: Tuple[PropertyDescriptor, ...] = ()
    methods: Tuple[MethodDescriptor, ...] = ()

    kind = "class"

    @property
    def constructor(self) -> Optional[MethodDescriptor]:
        for method in self.methods:
            if method.is_constructor:
                return method
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "class": self.name,
            "properties": [p.to_dict() for p in self.properties],
            "methods": [m.to_dict() for m in self.methods],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClassDescriptor':
        return cls(
            name=_require(data, "class"),
            properties=tuple(PropertyDescriptor.from_dict(p) for p in data.get("properties") or ()),
            methods=tuple(MethodDescriptor.from_dict(m) for m in data.get("methods") or ()),
        )


CallableDescriptor = Union[FunctionDescriptor, ClassDescriptor]

DESCRIPTOR_KINDS = {
    FunctionDescriptor.kind: FunctionDescriptor,
    ClassDescriptor.kind: ClassDescriptor,
}


def element_for(descriptor: CallableDescriptor) -> Dict[str, Any]:
    """Wrap a descriptor in its ``{"kind", "info"}`` page element."""
    return {"kind": descriptor.kind, "info": descriptor.to_dict()}


def descriptor_from_element(element: Any) -> CallableDescriptor:
    """Rebuild a descriptor from a ``{"kind", "info"}`` page element."""
    if not isinstance(element, dict):
        raise DecodingError(f"Malformed page element: {element!r}")
    descriptor_cls = DESCRIPTOR_KINDS.get(element.get("kind"))
    if descriptor_cls is None:
        raise DecodingError(f"Unknown element kind: {element.get('kind')!r}")
    try:
        return descriptor_cls.from_dict(element.get("info"))
    except (TypeError, AttributeError) as e:
        raise DecodingError(f"Malformed {element.get('kind')} descriptor: {e}") from e


@dataclass(frozen=True)
class ExposurePage:
    page: int
    total_pages: int
    element: Optional[CallableDescriptor] = None

    @property
    def is_empty(self) -> bool:
        return self.element is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "page": self.page,
            "totalPages": self.total_pages,
            "elements": [] if self.element is None else [element_for(self.element)],
        }


@dataclass(frozen=True)
class InvocationRequest:
    target_method: str
    target_class: Optional[str] = None
    instance: Any = None
    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)

    @property
    def target(self) -> str:
        if self.target_class:
            return f"{self.target_class}::{self.target_method}"
        return self.target_method

    def to_dict(self) -> Dict[str, Any]:
        return {
            "class": self.target_class,
            "instance": self.instance,
            "method": self.target_method,
            "args": list(self.args),
            "kwargs": dict(self.kwargs),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InvocationRequest':
        method = _require(data, "method")
        args = data.get("args") or []
        kwargs = data.get("kwargs") or {}
        target_class = data.get("class")
        if not isinstance(method, str) or not isinstance(args, list) or not isinstance(kwargs, dict):
            raise DecodingError("Malformed invocation request")
        if target_class is not None and not isinstance(target_class, str):
            raise DecodingError(f"Invocation target class must be a string, not {type(target_class).__name__}")
        return cls(
            target_method=method,
            target_class=target_class,
            instance=data.get("instance"),
            args=tuple(args),
            kwargs=kwargs,
        )


@dataclass(frozen=True)
class InvocationResult:
    time: str
    target_method: str
    target_class: Optional[str] = None
    result: Any = None
    execution_time: float = 0.0
    memory_usage: int = 0
    # Decoded result, filled in on the caller side
    value: Any = field(default=None, compare=False, repr=False)

    @staticmethod
    def now() -> str:
        return datetime.now().strftime(TIME_FORMAT)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "time": self.time,
            "class": self.target_class,
            "method": self.target_method,
            "result": self.result,
            "executionTime": self.execution_time,
            "memoryUsage": self.memory_usage,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'InvocationResult':
        return cls(
            time=_require(data, "time"),
            target_method=_require(data, "method"),
            target_class=data.get("class"),
            result=_require(data, "result"),
            execution_time=float(data.get("executionTime") or 0.0),
            memory_usage=int(data.get("memoryUsage") or 0),
        )
