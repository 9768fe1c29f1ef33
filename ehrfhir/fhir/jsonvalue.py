"""Generic JSON document model used by the patch engine.

A JSON value is exactly one of six variants: JsonNull, JsonBool, JsonNumber,
JsonString, JsonArray, JsonObject. Path traversal and the `test` operation
dispatch over these variants instead of probing untyped dicts and lists.

Equality is structural: object member order is irrelevant, array order is
relevant, and a boolean never equals a number (true != 1).

Not tied to any resource schema.
"""

import json
from dataclasses import dataclass, field
from typing import Any, TypeAlias


@dataclass(frozen=True)
class JsonNull:
    pass


@dataclass(frozen=True)
class JsonBool:
    value: bool


@dataclass(frozen=True)
class JsonNumber:
    value: int | float


@dataclass(frozen=True)
class JsonString:
    value: str


@dataclass
class JsonArray:
    items: list["JsonValue"] = field(default_factory=list)


@dataclass
class JsonObject:
    members: dict[str, "JsonValue"] = field(default_factory=dict)


JsonValue: TypeAlias = JsonNull | JsonBool | JsonNumber | JsonString | JsonArray | JsonObject

JSON_NULL = JsonNull()


def from_python(obj: Any) -> JsonValue:
    """Build a fresh JsonValue tree from decoded JSON (dict/list/str/int/float/bool/None).

    The result shares no mutable state with *obj*, so it can serve as a
    working copy.
    """
    if obj is None:
        return JSON_NULL
    # bool before int: bool is an int subclass
    if isinstance(obj, bool):
        return JsonBool(obj)
    if isinstance(obj, (int, float)):
        return JsonNumber(obj)
    if isinstance(obj, str):
        return JsonString(obj)
    if isinstance(obj, (list, tuple)):
        return JsonArray([from_python(item) for item in obj])
    if isinstance(obj, dict):
        members: dict[str, JsonValue] = {}
        for key, item in obj.items():
            if not isinstance(key, str):
                raise TypeError(f"JSON object keys must be strings, got {type(key).__name__}")
            members[key] = from_python(item)
        return JsonObject(members)
    raise TypeError(f"{type(obj).__name__} is not a JSON value")


def to_python(value: JsonValue) -> Any:
    """Convert a JsonValue tree back to plain Python JSON data."""
    if isinstance(value, JsonNull):
        return None
    if isinstance(value, (JsonBool, JsonNumber, JsonString)):
        return value.value
    if isinstance(value, JsonArray):
        return [to_python(item) for item in value.items]
    if isinstance(value, JsonObject):
        return {key: to_python(item) for key, item in value.members.items()}
    raise TypeError(f"{type(value).__name__} is not a JsonValue")


def deep_copy(value: JsonValue) -> JsonValue:
    """Copy containers recursively; scalar variants are immutable and shared."""
    if isinstance(value, JsonArray):
        return JsonArray([deep_copy(item) for item in value.items])
    if isinstance(value, JsonObject):
        return JsonObject({key: deep_copy(item) for key, item in value.members.items()})
    return value


def loads(raw: str | bytes) -> JsonValue:
    """Decode JSON text. Raises ValueError (json.JSONDecodeError) on invalid input."""
    return from_python(json.loads(raw))


def type_name(value: JsonValue) -> str:
    """JSON type name used in error messages."""
    if isinstance(value, JsonNull):
        return "null"
    if isinstance(value, JsonBool):
        return "boolean"
    if isinstance(value, JsonNumber):
        return "number"
    if isinstance(value, JsonString):
        return "string"
    if isinstance(value, JsonArray):
        return "array"
    return "object"
