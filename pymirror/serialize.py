"""
Value encoding for pymirror.

Every argument, receiver instance, default value and result that crosses the
wire travels in this encoding: a versioned, self-describing tagged tree made
only of JSON-compatible values. Plain lists are escaped by wrapping them in a
second list, so an array whose first element is a string tag is never
ambiguous:

    [1, 2]              -> [[1, 2]]
    (1, 2)              -> ["tuple", [1, 2]]
    Point(x=1, y=2)     -> ["object", "Point", {"x": 1, "y": 2}]

Objects travel as their instance state under a type id. The receiving side
rebuilds them through a ``TypeRegistry``; type ids it does not know come back
as ``ForeignObject`` values.
"""

import base64
import json
import math
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from .errors import DecodingError

ENCODING_VERSION = 1

MAX_DEPTH = 64
MAX_SAFE_INTEGER = 2 ** 53

# Exception types that can be rebuilt by name without a registry entry
ERROR_TYPES = {
    'Exception': Exception,
    'ValueError': ValueError,
    'TypeError': TypeError,
    'KeyError': KeyError,
    'IndexError': IndexError,
    'AttributeError': AttributeError,
    'LookupError': LookupError,
    'RuntimeError': RuntimeError,
    'RecursionError': RecursionError,
    'NotImplementedError': NotImplementedError,
    'AssertionError': AssertionError,
    'ArithmeticError': ArithmeticError,
    'OverflowError': OverflowError,
    'ZeroDivisionError': ZeroDivisionError,
    'FileNotFoundError': FileNotFoundError,
    'PermissionError': PermissionError,
    'OSError': OSError,
    'ConnectionError': ConnectionError,
    'TimeoutError': TimeoutError,
    'UnicodeError': UnicodeError,
    'StopIteration': StopIteration,
}


class TypeRegistry:
    """Maps type ids to classes so encoded objects can be rebuilt."""

    def __init__(self, types: Optional[Iterable[type]] = None):
        self._by_name: Dict[str, type] = {}
        self._names: Dict[type, str] = {}
        for cls in types or ():
            self.register(cls)

    def register(self, cls: type, name: Optional[str] = None) -> type:
        """Register ``cls`` under ``name`` (default: its unqualified name)."""
        type_id = name or cls.__name__
        self._by_name[type_id] = cls
        self._names[cls] = type_id
        return cls

    def resolve(self, type_id: str) -> Optional[type]:
        return self._by_name.get(type_id)

    def name_for(self, cls: type) -> str:
        return self._names.get(cls, cls.__name__)

    def clear(self) -> None:
        self._by_name.clear()
        self._names.clear()

    def __contains__(self, type_id: str) -> bool:
        return type_id in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)


class ForeignObject:
    """
    An object whose type id has no class registered on this side.

    Fields are readable as attributes, and the value re-encodes to the same
    form it arrived in.
    """

    def __init__(self, type_name: str, fields: Dict[str, Any]):
        object.__setattr__(self, '_type_name', type_name)
        object.__setattr__(self, '_fields', dict(fields))

    def __getattr__(self, name: str) -> Any:
        # copy and pickle look up attributes before __init__ has run
        state = self.__dict__
        fields = state.get('_fields', {})
        if name in fields:
            return fields[name]
        type_name = state.get('_type_name', type(self).__name__)
        raise AttributeError(f"'{type_name}' object has no attribute '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        self._fields[name] = value

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, ForeignObject):
            return NotImplemented
        return self._type_name == other._type_name and self._fields == other._fields

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self._fields.items())
        return f"<ForeignObject {self._type_name}({fields})>"


def object_fields(value: Any) -> Dict[str, Any]:
    """Return the instance state of an object as a dict."""
    if isinstance(value, ForeignObject):
        return dict(value._fields)
    if hasattr(value, '__dict__'):
        return dict(vars(value))
    fields = {}
    for klass in type(value).__mro__:
        for slot in getattr(klass, '__slots__', ()):
            if slot not in ('__dict__', '__weakref__') and hasattr(value, slot):
                fields[slot] = getattr(value, slot)
    return fields


def type_for_value(value: Any) -> str:
    """Determine the encoding category for a value."""
    if value is None or isinstance(value, (bool, str)):
        return "primitive"

    if isinstance(value, int):
        return "primitive" if abs(value) <= MAX_SAFE_INTEGER else "bigint"

    if isinstance(value, float):
        return "primitive" if math.isfinite(value) else "float"

    if isinstance(value, list):
        return "array"

    if isinstance(value, tuple):
        return "tuple"

    if isinstance(value, (set, frozenset)):
        return "set"

    if isinstance(value, dict):
        return "mapping"

    if isinstance(value, (bytes, bytearray)):
        return "bytes"

    # datetime is a date subclass, check it first
    if isinstance(value, datetime):
        return "date"

    if isinstance(value, date):
        return "day"

    if isinstance(value, BaseException):
        return "error"

    if isinstance(value, ForeignObject):
        return "object"

    if isinstance(value, type) or callable(value):
        return "unsupported"

    if hasattr(value, '__dict__') or hasattr(type(value), '__slots__'):
        return "object"

    return "unsupported"


class Devaluator:
    """Converts Python values into their encoded tree form."""

    def __init__(self, registry: Optional[TypeRegistry] = None):
        self.registry = registry

    @classmethod
    def devaluate(cls, value: Any, registry: Optional[TypeRegistry] = None) -> Any:
        return cls(registry)._devaluate_impl(value, 0)

    def _type_id(self, value: Any) -> str:
        if isinstance(value, ForeignObject):
            return value._type_name
        if self.registry is not None:
            return self.registry.name_for(type(value))
        return type(value).__name__

    def _devaluate_impl(self, value: Any, depth: int) -> Any:
        if depth >= MAX_DEPTH:
            raise RuntimeError("Serialization exceeded maximum allowed depth")

        kind = type_for_value(value)

        if kind == "unsupported":
            raise TypeError(f"Cannot serialize value of type {type(value)}")

        elif kind == "primitive":
            return value

        elif kind == "bigint":
            return ["bigint", str(value)]

        elif kind == "float":
            if math.isnan(value):
                return ["float", "nan"]
            return ["float", "inf" if value > 0 else "-inf"]

        elif kind == "array":
            # Escape arrays by wrapping in another array
            return [[self._devaluate_impl(item, depth + 1) for item in value]]

        elif kind == "tuple":
            return ["tuple", [self._devaluate_impl(item, depth + 1) for item in value]]

        elif kind == "set":
            tag = "frozenset" if isinstance(value, frozenset) else "set"
            return [tag, [self._devaluate_impl(item, depth + 1) for item in value]]

        elif kind == "mapping":
            if all(isinstance(key, str) for key in value):
                return {key: self._devaluate_impl(val, depth + 1) for key, val in value.items()}
            return ["map", [
                [self._devaluate_impl(key, depth + 1), self._devaluate_impl(val, depth + 1)]
                for key, val in value.items()
            ]]

        elif kind == "bytes":
            return ["bytes", base64.b64encode(bytes(value)).decode('ascii')]

        elif kind == "date":
            return ["date", value.isoformat()]

        elif kind == "day":
            return ["day", value.isoformat()]

        elif kind == "error":
            if len(value.args) == 1 and isinstance(value.args[0], str):
                message = value.args[0]
            else:
                message = str(value)
            return ["error", type(value).__name__, message]

        elif kind == "object":
            fields = {
                name: self._devaluate_impl(field, depth + 1)
                for name, field in object_fields(value).items()
            }
            return ["object", self._type_id(value), fields]

        raise RuntimeError(f"Unsupported type for encoding: {kind}")


class Evaluator:
    """Converts encoded trees back into Python values."""

    def __init__(self, registry: Optional[TypeRegistry] = None):
        self.registry = registry

    def evaluate(self, value: Any) -> Any:
        return self._evaluate_impl(value, 0)

    def _evaluate_impl(self, value: Any, depth: int) -> Any:
        if depth >= MAX_DEPTH:
            raise DecodingError("Encoded value exceeded maximum allowed depth")

        if value is None or isinstance(value, (str, int, float, bool)):
            return value

        if isinstance(value, dict):
            return {key: self._evaluate_impl(val, depth + 1) for key, val in value.items()}

        if not isinstance(value, list) or not value:
            raise DecodingError(f"Malformed encoded value: {value!r}")

        # Escaped array [[...]] -> [...]
        if len(value) == 1 and isinstance(value[0], list):
            return [self._evaluate_impl(item, depth + 1) for item in value[0]]

        tag = value[0]
        if not isinstance(tag, str):
            raise DecodingError(f"Malformed encoded value: {value!r}")

        try:
            return self._evaluate_tagged(tag, value, depth)
        except DecodingError:
            raise
        except (TypeError, ValueError, IndexError) as e:
            raise DecodingError(f"Malformed {tag} value: {e}") from e

    def _evaluate_tagged(self, tag: str, value: List[Any], depth: int) -> Any:
        if tag == "bigint":
            return int(value[1])

        elif tag == "float":
            if value[1] not in ("nan", "inf", "-inf"):
                raise DecodingError(f"Unknown float literal: {value[1]!r}")
            return float(value[1])

        elif tag in ("tuple", "set", "frozenset"):
            items = [self._evaluate_impl(item, depth + 1) for item in self._items(value)]
            if tag == "tuple":
                return tuple(items)
            return set(items) if tag == "set" else frozenset(items)

        elif tag == "map":
            return {
                self._evaluate_impl(key, depth + 1): self._evaluate_impl(val, depth + 1)
                for key, val in self._items(value)
            }

        elif tag == "bytes":
            return base64.b64decode(value[1], validate=True)

        elif tag == "date":
            return datetime.fromisoformat(value[1])

        elif tag == "day":
            return date.fromisoformat(value[1])

        elif tag == "error":
            return self._evaluate_error(value[1], value[2])

        elif tag == "object":
            if len(value) != 3 or not isinstance(value[1], str) or not isinstance(value[2], dict):
                raise DecodingError("Invalid object expression")
            fields = {name: self._evaluate_impl(field, depth + 1) for name, field in value[2].items()}
            return self._build_object(value[1], fields)

        raise DecodingError(f"Unknown encoding tag: {tag!r}")

    @staticmethod
    def _items(value: List[Any]) -> List[Any]:
        if len(value) != 2 or not isinstance(value[1], list):
            raise DecodingError(f"Invalid {value[0]} expression")
        return value[1]

    def _evaluate_error(self, name: str, message: str) -> BaseException:
        error_class = ERROR_TYPES.get(name)
        if error_class is None and self.registry is not None:
            registered = self.registry.resolve(name)
            if isinstance(registered, type) and issubclass(registered, BaseException):
                error_class = registered
        if error_class is None:
            error_class = Exception
        try:
            return error_class(message)
        except TypeError:
            return Exception(message)

    def _build_object(self, type_id: str, fields: Dict[str, Any]) -> Any:
        cls = self.registry.resolve(type_id) if self.registry is not None else None
        if cls is None:
            return ForeignObject(type_id, fields)

        # Rebuild state without running __init__, the way unpickling does
        instance = cls.__new__(cls)
        for name, field in fields.items():
            try:
                object.__setattr__(instance, name, field)
            except AttributeError as e:
                raise DecodingError(f"Cannot restore field '{name}' of {type_id}: {e}") from e
        return instance


def encode(value: Any, registry: Optional[TypeRegistry] = None) -> Any:
    """Encode a value into its tagged tree form."""
    return Devaluator.devaluate(value, registry)


def decode(data: Any, registry: Optional[TypeRegistry] = None) -> Any:
    """Decode a tagged tree back into a Python value."""
    return Evaluator(registry).evaluate(data)


def serialize(value: Any, registry: Optional[TypeRegistry] = None) -> str:
    """Serialize a value to a JSON string."""
    return json.dumps(encode(value, registry))


def deserialize(data: str, registry: Optional[TypeRegistry] = None) -> Any:
    """Deserialize a JSON string back to a Python value."""
    try:
        parsed = json.loads(data)
    except (TypeError, ValueError) as e:
        raise DecodingError(f"Invalid JSON payload: {e}") from e
    return decode(parsed, registry)
