"""
Descriptor builder for pymirror.

Inspects classes and functions with ``inspect`` and ``typing`` and produces
the structural descriptors served by the exposure catalog. Names that do not
resolve to a class or a function produce no descriptor and no error, so
callers can try names speculatively.
"""

import dataclasses
import importlib
import inspect
import logging
import typing
from types import ModuleType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from .descriptors import (
    CallableDescriptor, ClassDescriptor, FunctionDescriptor, MethodDescriptor,
    ParameterDescriptor, PropertyDescriptor, KEYWORD_ONLY, POSITIONAL_ONLY,
    POSITIONAL_OR_KEYWORD, VAR_KEYWORD, VAR_POSITIONAL, CONSTRUCTOR,
)
from .serialize import encode

logger = logging.getLogger(__name__)

# Canonical rendering order for modifier sets
MODIFIER_ORDER = ("abstract", "final", "public", "protected", "private",
                  "static", "class", "readonly", "async")

KIND_NAMES = {
    inspect.Parameter.POSITIONAL_ONLY: POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD: POSITIONAL_OR_KEYWORD,
    inspect.Parameter.VAR_POSITIONAL: VAR_POSITIONAL,
    inspect.Parameter.KEYWORD_ONLY: KEYWORD_ONLY,
    inspect.Parameter.VAR_KEYWORD: VAR_KEYWORD,
}


class ByReference:
    """
    Marker for parameters whose mutations the caller expects to observe.

    Use it as ``Annotated[list, BY_REFERENCE]``. The flag is recorded in the
    descriptor and rendered on proxies, but values still cross the wire by
    copy, so remote mutations are not written back.
    """

    def __repr__(self) -> str:
        return "BY_REFERENCE"


BY_REFERENCE = ByReference()


def sort_modifiers(modifiers) -> Tuple[str, ...]:
    """Order a modifier set canonically; unknown modifiers go last, sorted."""
    known = [m for m in MODIFIER_ORDER if m in modifiers]
    extra = sorted(m for m in modifiers if m not in MODIFIER_ORDER)
    return tuple(known + extra)


def visibility(name: str) -> str:
    if name.startswith('__') and name.endswith('__'):
        return "public"
    if name.startswith('__') or (name.startswith('_') and '__' in name[1:]):
        return "private"
    if name.startswith('_'):
        return "protected"
    return "public"


def type_name(annotation: Any) -> Optional[str]:
    """Render a type annotation as a string, or None when there is none."""
    if annotation is inspect.Parameter.empty or annotation is inspect.Signature.empty:
        return None
    if isinstance(annotation, str):
        return annotation
    if annotation is None or annotation is type(None):
        return "None"
    if isinstance(annotation, type) and not typing.get_args(annotation):
        return annotation.__name__
    return repr(annotation).replace("typing.", "")


def _resolved_hints(obj: Any) -> Dict[str, Any]:
    # Unresolvable forward references fall back to the raw annotation strings
    try:
        return typing.get_type_hints(obj, include_extras=True)
    except (NameError, TypeError, AttributeError):
        return {}


def _unwrap_reference(annotation: Any) -> Tuple[Any, bool]:
    if typing.get_origin(annotation) is typing.Annotated:
        inner, *metadata = typing.get_args(annotation)
        return inner, any(isinstance(m, ByReference) for m in metadata)
    return annotation, False


def _unwrap_qualifier(annotation: Any) -> Tuple[Any, Optional[str]]:
    """Strip ClassVar/Final from a field annotation and report which one."""
    for qualifier, name in ((typing.ClassVar, "ClassVar"), (typing.Final, "Final")):
        if annotation is qualifier:
            return inspect.Parameter.empty, name
        if typing.get_origin(annotation) is qualifier:
            args = typing.get_args(annotation)
            return (args[0] if args else inspect.Parameter.empty), name
        if isinstance(annotation, str) and (annotation == name or annotation.startswith(f"{name}[")):
            inner = annotation[len(name) + 1:-1] if annotation.startswith(f"{name}[") else inspect.Parameter.empty
            return inner, name
    return annotation, None


def _encode_default(value: Any, owner: str) -> Any:
    try:
        return encode(value)
    except (TypeError, RuntimeError) as e:
        logger.warning(f"Default value of {owner} cannot be encoded, exposing null instead: {e}")
        return encode(None)


def describe_parameters(func: Any, skip_first: bool = False) -> Tuple[ParameterDescriptor, ...]:
    signature = inspect.signature(func)
    hints = _resolved_hints(func)
    parameters = list(signature.parameters.values())
    if skip_first and parameters:
        parameters = parameters[1:]

    described = []
    for param in parameters:
        annotation, by_reference = _unwrap_reference(hints.get(param.name, param.annotation))
        has_default = param.default is not inspect.Parameter.empty
        described.append(ParameterDescriptor(
            name=param.name,
            type=type_name(annotation),
            default=_encode_default(param.default if has_default else None,
                                    f"parameter '{param.name}' of {func.__qualname__}"),
            has_default=has_default,
            by_reference=by_reference,
            kind=KIND_NAMES[param.kind],
        ))
    return tuple(described)


def _return_type(func: Any) -> Optional[str]:
    hints = _resolved_hints(func)
    if 'return' in hints:
        return type_name(hints['return'])
    return type_name(inspect.signature(func).return_annotation)


def describe_function(func: Any) -> FunctionDescriptor:
    return FunctionDescriptor(
        name=func.__name__,
        parameters=describe_parameters(func),
        return_type=_return_type(func),
    )


def describe_method(name: str, member: Any) -> Optional[MethodDescriptor]:
    modifiers = {visibility(name)}
    if isinstance(member, staticmethod):
        func = member.__func__
        skip_first = False
        modifiers.add("static")
    elif isinstance(member, classmethod):
        func = member.__func__
        skip_first = True
        modifiers.update(("static", "class"))
    elif inspect.isfunction(member):
        func = member
        skip_first = True
    else:
        return None

    if getattr(func, '__isabstractmethod__', False):
        modifiers.add("abstract")
    if getattr(func, '__final__', False):
        modifiers.add("final")
    if inspect.iscoroutinefunction(func):
        modifiers.add("async")

    return MethodDescriptor(
        name=name,
        return_type=_return_type(func),
        modifiers=sort_modifiers(modifiers),
        parameters=describe_parameters(func, skip_first=skip_first),
    )


def _dataclass_defaults(cls: type) -> Dict[str, Any]:
    if not dataclasses.is_dataclass(cls):
        return {}
    defaults = {}
    for f in dataclasses.fields(cls):
        if f.default is not dataclasses.MISSING:
            defaults[f.name] = f.default
        elif f.default_factory is not dataclasses.MISSING:
            defaults[f.name] = f.default_factory()
    return defaults


def _is_frozen(cls: type) -> bool:
    params = getattr(cls, '__dataclass_params__', None)
    return bool(params and params.frozen)


def describe_properties(cls: type) -> Tuple[PropertyDescriptor, ...]:
    hints = _resolved_hints(cls)
    dataclass_defaults = _dataclass_defaults(cls)

    # Base classes first; an override keeps the position of the first declaration
    annotated: Dict[str, Any] = {}
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        for name, raw in inspect.get_annotations(klass).items():
            annotated[name] = hints.get(name, raw)

    properties = []
    for name, annotation in annotated.items():
        annotation, qualifier = _unwrap_qualifier(annotation)
        modifiers = {visibility(name)}
        if qualifier == "ClassVar":
            modifiers.add("static")
        if qualifier == "Final" or (_is_frozen(cls) and qualifier is None):
            modifiers.add("readonly")

        if name in dataclass_defaults:
            default = dataclass_defaults[name]
        else:
            default = getattr(cls, name, None)
            if isinstance(default, dataclasses.Field):
                default = None

        properties.append(PropertyDescriptor(
            name=name,
            type=type_name(annotation),
            default=_encode_default(default, f"{cls.__name__}.{name}"),
            modifiers=sort_modifiers(modifiers),
        ))

    for name, value in cls.__dict__.items():
        if name in annotated or visibility(name) != "public" or name.startswith('__'):
            continue
        if callable(value) or isinstance(value, (staticmethod, classmethod)) or inspect.isdatadescriptor(value):
            continue
        properties.append(PropertyDescriptor(
            name=name,
            type=None,
            default=_encode_default(value, f"{cls.__name__}.{name}"),
            modifiers=sort_modifiers({visibility(name), "static"}),
        ))

    return tuple(properties)


def describe_methods(cls: type) -> Tuple[MethodDescriptor, ...]:
    seen = set()
    methods: List[MethodDescriptor] = []
    for klass in cls.__mro__:
        if klass is object:
            continue
        for name, member in klass.__dict__.items():
            if name in seen:
                continue
            if name.startswith('__') and name.endswith('__') and name != CONSTRUCTOR:
                continue
            method = describe_method(name, member)
            if method is None:
                continue
            seen.add(name)
            methods.append(method)
    return tuple(methods)


def describe_class(cls: type) -> ClassDescriptor:
    return ClassDescriptor(
        name=cls.__name__,
        properties=describe_properties(cls),
        methods=describe_methods(cls),
    )


def describe(target: Any) -> Optional[CallableDescriptor]:
    """
    Build the descriptor for a class or a function.

    Anything else yields None rather than an error.
    """
    if inspect.isclass(target):
        return describe_class(target)
    if inspect.isfunction(target):
        return describe_function(target)
    return None


def resolve_callable(name: Union[str, Any],
                     namespace: Optional[Union[ModuleType, Mapping[str, Any]]] = None) -> Optional[Any]:
    """
    Resolve a name to the object it refers to.

    ``name`` is looked up in ``namespace`` first (a module or a mapping), then
    imported as a dotted ``module.attribute`` path. Objects pass through
    unchanged. Unresolvable names yield None.
    """
    if not isinstance(name, str):
        return name

    if namespace is not None:
        scope = vars(namespace) if isinstance(namespace, ModuleType) else namespace
        if name in scope:
            return scope[name]

    module_name, _, attribute = name.rpartition('.')
    if not module_name:
        return None
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        logger.debug(f"Cannot import {module_name} while resolving {name}")
        return None
    return getattr(module, attribute, None)
