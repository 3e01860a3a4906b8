"""
Tests for the pymirror value encoding.
"""

import copy
import json
from datetime import date, datetime

import pytest

from pymirror.errors import DecodingError
from pymirror.serialize import (
    ForeignObject, MAX_DEPTH, TypeRegistry, decode, deserialize, encode, serialize, type_for_value,
)
from sample_api import Calculator, Money, Point, Slotted


class TestEncoding:
    """Test how values are written."""

    def test_primitives_pass_through(self):
        for value in (None, True, False, 0, -7, 3.5, "hello"):
            assert encode(value) == value

    def test_lists_are_escaped(self):
        assert encode([1, 2]) == [[1, 2]]
        assert encode([]) == [[]]
        assert encode([[1]]) == [[[[1]]]]

    def test_tagged_values(self):
        assert encode((1, "a")) == ["tuple", [1, "a"]]
        assert encode(2 ** 60) == ["bigint", str(2 ** 60)]
        assert encode(float("inf")) == ["float", "inf"]
        assert encode(float("-inf")) == ["float", "-inf"]
        assert encode(float("nan")) == ["float", "nan"]
        assert encode(b"\x00\x01") == ["bytes", "AAE="]
        assert encode(date(2024, 1, 31)) == ["day", "2024-01-31"]
        assert encode(datetime(2024, 1, 31, 12, 30)) == ["date", "2024-01-31T12:30:00"]

    def test_string_keyed_dict_is_plain_object(self):
        assert encode({"a": [1]}) == {"a": [[1]]}

    def test_other_keys_use_map(self):
        assert encode({1: "one"}) == ["map", [[1, "one"]]]

    def test_error(self):
        assert encode(ValueError("bad")) == ["error", "ValueError", "bad"]

    def test_object_uses_class_name(self):
        assert encode(Point(1, 2)) == ["object", "Point", {"x": 1, "y": 2}]

    def test_object_uses_registered_alias(self):
        registry = TypeRegistry()
        registry.register(Point, "geometry.Point")
        assert encode(Point(), registry)[1] == "geometry.Point"

    def test_functions_are_rejected(self):
        with pytest.raises(TypeError):
            encode(len)
        with pytest.raises(TypeError):
            encode(Calculator)

    def test_cycles_hit_depth_limit(self):
        loop = []
        loop.append(loop)
        with pytest.raises(RuntimeError):
            encode(loop)

    def test_type_categories(self):
        assert type_for_value(True) == "primitive"
        assert type_for_value(2 ** 54) == "bigint"
        assert type_for_value(frozenset()) == "set"
        assert type_for_value(Point()) == "object"
        assert type_for_value(print) == "unsupported"


class TestDecoding:
    """Test how encoded trees are read back."""

    def test_values_survive(self):
        values = [
            None, 1, "x", [1, [2, 3]], (1, 2), {1, 2}, frozenset({"a"}),
            {"k": (1,)}, {(1, 2): "pair"}, b"bytes", 2 ** 70,
            date(2020, 2, 29), datetime(2020, 2, 29, 8, 0, 1),
        ]
        for value in values:
            assert decode(encode(value)) == value

    def test_registered_object_is_rebuilt_without_init(self):
        registry = TypeRegistry([Calculator])
        calc = decode(["object", "Calculator", {"precision": 5}], registry)
        assert isinstance(calc, Calculator)
        assert calc.precision == 5

    def test_frozen_dataclass_is_rebuilt(self):
        registry = TypeRegistry([Money])
        money = decode(encode(Money(3, "USD")), registry)
        assert money == Money(3, "USD")

    def test_unknown_type_becomes_foreign_object(self):
        value = decode(["object", "Elsewhere", {"a": [[1, 2]]}])
        assert isinstance(value, ForeignObject)
        assert value.a == [1, 2]
        with pytest.raises(AttributeError):
            value.b
        assert encode(value) == ["object", "Elsewhere", {"a": [[1, 2]]}]

    def test_slotted_object_is_rebuilt(self):
        registry = TypeRegistry([Slotted])
        assert encode(Slotted(3)) == ["object", "Slotted", {"x": 3}]
        assert decode(encode(Slotted(3)), registry).get() == 3

    def test_undeclared_slot_is_malformed(self):
        registry = TypeRegistry([Slotted])
        with pytest.raises(DecodingError):
            decode(["object", "Slotted", {"y": 1}], registry)

    def test_foreign_object_copies(self):
        value = ForeignObject("Elsewhere", {"a": 1})
        duplicate = copy.copy(value)
        assert duplicate == value
        assert duplicate.a == 1
        assert copy.deepcopy(value).a == 1

    def test_bare_foreign_object_has_no_fields(self):
        bare = ForeignObject.__new__(ForeignObject)
        assert not hasattr(bare, "a")
        with pytest.raises(AttributeError):
            bare._fields

    def test_errors_are_rebuilt(self):
        error = decode(["error", "KeyError", "missing"])
        assert isinstance(error, KeyError)
        assert error.args == ("missing",)

    def test_unknown_error_falls_back_to_exception(self):
        error = decode(["error", "SomethingOdd", "boom"])
        assert type(error) is Exception
        assert str(error) == "boom"

    def test_registered_error_class(self):
        class QuotaExceeded(Exception):
            pass

        registry = TypeRegistry([QuotaExceeded])
        assert isinstance(decode(["error", "QuotaExceeded", "x"], registry), QuotaExceeded)

    @pytest.mark.parametrize("data", [
        [],
        ["nope", 1],
        [1, 2],
        ["tuple", 5],
        ["float", "zero"],
        ["object", "Point"],
        ["bytes", "***"],
        ["day", "yesterday"],
    ])
    def test_malformed_input(self, data):
        with pytest.raises(DecodingError):
            decode(data)

    def test_nesting_beyond_limit(self):
        data = 1
        for _ in range(MAX_DEPTH + 1):
            data = [[data]]
        with pytest.raises(DecodingError):
            decode(data)


class TestJsonText:
    """Test the JSON text helpers."""

    def test_serialize_is_json(self):
        assert json.loads(serialize((1, [2]))) == ["tuple", [1, [[2]]]]

    def test_deserialize(self):
        assert deserialize('["tuple", [1, 2]]') == (1, 2)

    def test_invalid_json(self):
        with pytest.raises(DecodingError):
            deserialize("{not json")
