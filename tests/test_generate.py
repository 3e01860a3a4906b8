"""
Tests for proxy generation.
"""

import ast
import math

import pytest

import sample_api
from pymirror.descriptors import (
    ClassDescriptor, FunctionDescriptor, ParameterDescriptor, KEYWORD_ONLY, POSITIONAL_ONLY,
)
from pymirror.discovery import DiscoveryResult
from pymirror.forwarder import CallForwarder
from pymirror.generate import ProxyGenerator, PythonSyntax, generate, load_proxies
from pymirror.reflect import describe
from pymirror.serialize import encode


@pytest.fixture
def model():
    return DiscoveryResult(
        classes=[describe(sample_api.Calculator), describe(sample_api.Point)],
        functions=[describe(f) for f in (sample_api.double, sample_api.greet,
                                         sample_api.total, sample_api.append_item)],
    )


@pytest.fixture
def source(model):
    return generate(model, "sample_api")


class TestGeneratedSource:
    """Test the rendered module text."""

    def test_is_valid_python(self, source):
        ast.parse(source)

    def test_header(self, source):
        assert source.startswith('"""\nProxies generated by pymirror for sample_api.')
        assert "forwarder = CallForwarder()" in source

    def test_classes_and_functions(self, source):
        tree = ast.parse(source)
        classes = [node.name for node in tree.body if isinstance(node, ast.ClassDef)]
        functions = [node.name for node in tree.body if isinstance(node, ast.AsyncFunctionDef)]
        assert classes == ["Calculator", "Point"]
        assert functions == ["double", "greet", "total", "append_item"]

    def test_properties(self, source):
        assert "    scale: ClassVar[int] = 10  # public static\n" in source
        assert "    label: ClassVar = 'calc'  # public static\n" in source
        assert "        self.x: int = 0  # public\n" in source
        assert "        self.precision" not in source

    def test_remote_constructor_blocks_local_init(self, source):
        assert "    def __init__(self, *args, **kwargs):\n        raise TypeError(" in source
        assert "use 'await Calculator.construct(...)'" in source

    def test_method_forwarding(self, source):
        assert "    # public\n    async def add(self, a, b):\n" in source
        assert "result = await forwarder.call('Calculator::add', [a, b], instance=self)" in source

    def test_static_and_class_methods(self, source):
        assert "    @staticmethod\n    async def version() -> str:\n" in source
        assert "forwarder.call('Calculator::version', [])\n" in source
        assert "    # public static class\n    @classmethod\n    async def unit(cls) -> Calculator:\n" in source

    def test_constructor(self, source):
        assert "    async def construct(cls, precision: int = 2):\n" in source
        assert "forwarder.call('Calculator::__init__', [precision])" in source
        assert "return hydrate(cls, result.value)" in source

    def test_function_signatures(self, source):
        assert "async def double(x: int) -> int:\n    result = await forwarder.call('double', [x])\n" in source
        assert "async def greet(name: str, *, punctuation: str = '!') -> str:" in source
        assert "forwarder.call('greet', [name], kwargs={'punctuation': punctuation})" in source
        assert "async def total(*values: int, **options) -> int:" in source
        assert "forwarder.call('total', [*values], kwargs={**options})" in source
        assert "async def append_item(items: Annotated[list, BY_REFERENCE], item) -> list:" in source

    def test_empty_model(self):
        source = generate(DiscoveryResult())
        tree = ast.parse(source)
        assert not [node for node in tree.body if isinstance(node, (ast.ClassDef, ast.AsyncFunctionDef))]

    def test_empty_class(self):
        source = generate(DiscoveryResult(classes=[ClassDescriptor("Empty")]))
        assert "class Empty:\n    pass\n" in source

    def test_dict_model(self, model):
        assert generate(model.to_dict(), "sample_api") == generate(model, "sample_api")

    def test_custom_template(self, model):
        generator = ProxyGenerator(template="{% for f in functions %}{{ f.name }} {% endfor %}")
        assert generator.render(model) == "double greet total append_item "


class TestLoadProxies:
    """Test executing generated source."""

    def test_module_contents(self, source):
        forwarder = CallForwarder("http://localhost:9/mirror")
        module = load_proxies(source, forwarder)
        assert module.forwarder is forwarder
        with pytest.raises(TypeError, match="construct"):
            module.Calculator()
        assert module.Point().x == 0
        assert module.Calculator.scale == 10
        assert forwarder.registry.resolve("Calculator") is module.Calculator

    def test_default_forwarder(self, source):
        module = load_proxies(source)
        assert isinstance(module.forwarder, CallForwarder)
        assert module.forwarder.server is None


class TestPythonSyntax:
    """Test the rendering rules."""

    def setup_method(self):
        self.syntax = PythonSyntax()

    def test_literals(self):
        assert self.syntax.literal(None) == "None"
        assert self.syntax.literal("a'b") == repr("a'b")
        assert self.syntax.literal((1,)) == "(1,)"
        assert self.syntax.literal([1, (2, 3)]) == "[1, (2, 3)]"
        assert self.syntax.literal({"k": [1]}) == "{'k': [1]}"
        assert self.syntax.literal(set()) == "set()"
        assert self.syntax.literal({2, 1}) == "{1, 2}"
        assert self.syntax.literal(frozenset()) == "frozenset()"

    def test_non_finite_floats(self):
        assert self.syntax.literal(float("inf")) == "float('inf')"
        assert self.syntax.literal(float("-inf")) == "-float('inf')"
        assert math.isnan(eval(self.syntax.literal(float("nan"))))

    def test_objects_fall_back_to_decode(self):
        text = self.syntax.literal(sample_api.Point(1, 2))
        assert text == "decode(['object', 'Point', {'x': 1, 'y': 2}])"

    def test_invalid_type_is_dropped(self):
        assert self.syntax.type_expression("list[int]") == "list[int]"
        assert self.syntax.type_expression("not a ] type") is None
        assert self.syntax.type_expression(None) is None

    def test_parameter_markers(self):
        params = [
            ParameterDescriptor("a", kind=POSITIONAL_ONLY),
            ParameterDescriptor("b"),
            ParameterDescriptor("c", kind=KEYWORD_ONLY, default=encode(None), has_default=True),
        ]
        assert self.syntax.parameter_list(params, "self") == "self, a, /, b, *, c=None"

    def test_by_reference_without_type(self):
        param = ParameterDescriptor("items", by_reference=True)
        assert self.syntax.parameter(param) == "items: Annotated[Any, BY_REFERENCE]"

    def test_function_with_no_parameters(self):
        function = FunctionDescriptor("ping")
        source = generate(DiscoveryResult(functions=[function]))
        assert "async def ping():\n    result = await forwarder.call('ping', [])\n" in source
