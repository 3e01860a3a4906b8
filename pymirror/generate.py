"""
Proxy generation for pymirror.

Renders the descriptors found by discovery into Python source whose classes
and functions forward every call through a ``CallForwarder``. The template
only arranges text; everything language-specific (literals, annotations,
parameter lists, decorators) comes from a syntax object, so another target
language needs a new syntax object and template, nothing else.
"""

import ast
import logging
import math
import types
from typing import Any, Dict, List, Optional, Sequence, Union

import jinja2

from .descriptors import (
    ClassDescriptor, MethodDescriptor, ParameterDescriptor, PropertyDescriptor,
    KEYWORD_ONLY, POSITIONAL_ONLY, VAR_KEYWORD, VAR_POSITIONAL,
)
from .discovery import DiscoveryResult
from .forwarder import CallForwarder
from .serialize import decode, encode

logger = logging.getLogger(__name__)

PYTHON_TEMPLATE = '''\
"""
Proxies generated by pymirror{% if module_name %} for {{ module_name }}{% endif %}.

Every callable forwards to the exposing server through ``forwarder``.
"""

from __future__ import annotations

from typing import Annotated, Any, ClassVar, Final

from pymirror.forwarder import CallForwarder, hydrate
from pymirror.reflect import BY_REFERENCE
from pymirror.serialize import decode

forwarder = CallForwarder()
{% for cls in classes %}


class {{ cls.name }}:
{% for prop in cls.properties if prop.is_static %}
    {{ prop.name }}{{ syntax.property_annotation(prop) }} = {{ syntax.literal(syntax.default(prop)) }}  # {{ prop.modifiers | join(" ") }}
{% endfor %}
{% set instance_properties = cls.properties | rejectattr("is_static") | list %}
{% if cls.constructor %}

    def __init__(self, *args, **kwargs):
        raise TypeError("{{ cls.name }} is constructed remotely, use 'await {{ cls.name }}.construct(...)'")
{% elif instance_properties %}

    def __init__(self):
{% for prop in instance_properties %}
        self.{{ prop.name }}{{ syntax.property_annotation(prop) }} = {{ syntax.literal(syntax.default(prop)) }}  # {{ prop.modifiers | join(" ") }}
{% endfor %}
{% endif %}
{% for method in cls.methods %}

    # {{ method.modifiers | join(" ") }}
{% if method.is_constructor %}
    @classmethod
    async def construct({{ syntax.parameter_list(method.parameters, "cls") }}):
        result = await forwarder.call({{ syntax.target(cls.name, method.name) }}, {{ syntax.forward_args(method.parameters) }})
        return hydrate(cls, result.value)
{% else %}
{% for decorator in syntax.decorators(method.modifiers) %}
    {{ decorator }}
{% endfor %}
    async def {{ method.name }}({{ syntax.parameter_list(method.parameters, syntax.receiver(method)) }}){{ syntax.return_annotation(method.return_type) }}:
        result = await forwarder.call({{ syntax.target(cls.name, method.name) }}, {{ syntax.forward_args(method.parameters) }}{{ syntax.instance_arg(method) }})
        return result.value
{% endif %}
{% endfor %}
{% if not cls.properties and not cls.methods %}
    pass
{% endif %}
{% endfor %}
{% for function in functions %}


async def {{ function.name }}({{ syntax.parameter_list(function.parameters) }}){{ syntax.return_annotation(function.return_type) }}:
    result = await forwarder.call({{ syntax.target(None, function.name) }}, {{ syntax.forward_args(function.parameters) }})
    return result.value
{% endfor %}
'''


class PythonSyntax:
    """Rendering rules for Python proxy source."""

    def literal(self, value: Any) -> str:
        """Render ``value`` as a Python expression that evaluates to it."""
        if value is None or isinstance(value, (bool, int, str, bytes)):
            return repr(value)
        if isinstance(value, float):
            if math.isnan(value):
                return "float('nan')"
            if math.isinf(value):
                return "float('inf')" if value > 0 else "-float('inf')"
            return repr(value)
        if isinstance(value, list):
            return "[" + ", ".join(self.literal(item) for item in value) + "]"
        if isinstance(value, tuple):
            items = [self.literal(item) for item in value]
            return "(" + ", ".join(items) + ("," if len(items) == 1 else "") + ")"
        if isinstance(value, dict):
            return "{" + ", ".join(f"{self.literal(k)}: {self.literal(v)}" for k, v in value.items()) + "}"
        if isinstance(value, (set, frozenset)):
            items = ", ".join(sorted(self.literal(item) for item in value))
            body = "{" + items + "}" if items else ""
            if isinstance(value, frozenset):
                return f"frozenset({body})"
            return body or "set()"
        # No literal syntax: ship the encoded form and decode it at import time
        return f"decode({encode(value)!r})"

    def default(self, descriptor: Union[ParameterDescriptor, PropertyDescriptor]) -> Any:
        return decode(descriptor.default)

    def type_expression(self, type_name: Optional[str]) -> Optional[str]:
        """A type string usable as an annotation, or None."""
        if not type_name:
            return None
        try:
            ast.parse(type_name, mode="eval")
        except SyntaxError:
            logger.debug(f"Dropping annotation that is not a Python expression: {type_name}")
            return None
        return type_name

    def parameter_annotation(self, param: ParameterDescriptor) -> str:
        annotation = self.type_expression(param.type)
        if param.by_reference:
            annotation = f"Annotated[{annotation or 'Any'}, BY_REFERENCE]"
        return f": {annotation}" if annotation else ""

    def property_annotation(self, prop: PropertyDescriptor) -> str:
        annotation = self.type_expression(prop.type)
        if prop.is_static:
            qualifier = "ClassVar"
        elif "readonly" in prop.modifiers:
            qualifier = "Final"
        else:
            return f": {annotation}" if annotation else ""
        return f": {qualifier}[{annotation}]" if annotation else f": {qualifier}"

    def return_annotation(self, type_name: Optional[str]) -> str:
        annotation = self.type_expression(type_name)
        return f" -> {annotation}" if annotation else ""

    def parameter(self, param: ParameterDescriptor) -> str:
        if param.kind == VAR_POSITIONAL:
            return f"*{param.name}{self.parameter_annotation(param)}"
        if param.kind == VAR_KEYWORD:
            return f"**{param.name}{self.parameter_annotation(param)}"
        text = f"{param.name}{self.parameter_annotation(param)}"
        if param.has_default:
            separator = " = " if self.parameter_annotation(param) else "="
            text += separator + self.literal(self.default(param))
        return text

    def parameter_list(self, parameters: Sequence[ParameterDescriptor], receiver: Optional[str] = None) -> str:
        rendered: List[str] = [receiver] if receiver else []
        kinds = [p.kind for p in parameters]
        for index, param in enumerate(parameters):
            if param.kind == KEYWORD_ONLY and VAR_POSITIONAL not in kinds[:index] and KEYWORD_ONLY not in kinds[:index]:
                rendered.append("*")
            rendered.append(self.parameter(param))
            if param.kind == POSITIONAL_ONLY and (index + 1 == len(parameters) or parameters[index + 1].kind != POSITIONAL_ONLY):
                rendered.append("/")
        return ", ".join(rendered)

    def forward_args(self, parameters: Sequence[ParameterDescriptor]) -> str:
        """The positional list and, when needed, the keyword dict a proxy forwards."""
        positional: List[str] = []
        keywords: List[str] = []
        for param in parameters:
            if param.kind == VAR_POSITIONAL:
                positional.append(f"*{param.name}")
            elif param.kind == VAR_KEYWORD:
                keywords.append(f"**{param.name}")
            elif param.kind == KEYWORD_ONLY:
                keywords.append(f"{param.name!r}: {param.name}")
            else:
                positional.append(param.name)
        text = "[" + ", ".join(positional) + "]"
        if keywords:
            text += ", kwargs={" + ", ".join(keywords) + "}"
        return text

    def target(self, class_name: Optional[str], name: str) -> str:
        return repr(f"{class_name}::{name}" if class_name else name)

    def receiver(self, method: MethodDescriptor) -> Optional[str]:
        if method.is_classmethod:
            return "cls"
        if method.is_static:
            return None
        return "self"

    def instance_arg(self, method: MethodDescriptor) -> str:
        return "" if method.is_static else ", instance=self"

    def decorators(self, modifiers: Sequence[str]) -> List[str]:
        if "class" in modifiers:
            return ["@classmethod"]
        if "static" in modifiers:
            return ["@staticmethod"]
        return []


class ProxyGenerator:
    """Renders discovery results into proxy source text."""

    def __init__(self, syntax: Optional[PythonSyntax] = None, template: str = PYTHON_TEMPLATE):
        self.syntax = syntax or PythonSyntax()
        self.environment = jinja2.Environment(
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
            undefined=jinja2.StrictUndefined,
        )
        self.template = self.environment.from_string(template)

    def render(self, model: DiscoveryResult, module_name: Optional[str] = None) -> str:
        classes: List[ClassDescriptor] = list(model.classes)
        return self.template.render(
            classes=classes,
            functions=list(model.functions),
            module_name=module_name,
            syntax=self.syntax,
        )


def generate(model: Union[DiscoveryResult, Dict[str, Any]], module_name: Optional[str] = None) -> str:
    """
    Generate Python proxy source for a discovery result.

    ``model`` may also be the ``{"classes": [...], "functions": [...]}``
    dict form of a result.
    """
    if isinstance(model, dict):
        model = DiscoveryResult.from_dict(model)
    return ProxyGenerator().render(model, module_name)


def load_proxies(source: str, forwarder: Optional[CallForwarder] = None,
                 module_name: str = "pymirror_proxies") -> types.ModuleType:
    """
    Execute generated proxy source into a new module.

    The module's ``forwarder`` is replaced by ``forwarder`` when given, and
    every proxy class is registered in the forwarder's type registry so
    returned objects decode as proxies.
    """
    module = types.ModuleType(module_name)
    exec(compile(source, f"<{module_name}>", "exec"), module.__dict__)
    if forwarder is not None:
        module.forwarder = forwarder

    for obj in list(vars(module).values()):
        if isinstance(obj, type) and obj.__module__ == module_name:
            module.forwarder.registry.register(obj)
    return module
