"""Tests for the tagged JSON document model and JSON Pointer parsing."""

import pytest

from ehrfhir.fhir.errors import MalformedPatchError
from ehrfhir.fhir.jsonvalue import (
    JSON_NULL,
    JsonArray,
    JsonBool,
    JsonNumber,
    JsonObject,
    JsonString,
    deep_copy,
    from_python,
    loads,
    to_python,
    type_name,
)
from ehrfhir.fhir.pointer import format_pointer, is_proper_prefix, parse_pointer


class TestFromPython:
    def test_scalars(self) -> None:
        assert from_python(None) == JSON_NULL
        assert from_python(True) == JsonBool(True)
        assert from_python(3) == JsonNumber(3)
        assert from_python(2.5) == JsonNumber(2.5)
        assert from_python("x") == JsonString("x")

    def test_bool_is_not_a_number(self) -> None:
        assert from_python(True) != from_python(1)
        assert isinstance(from_python(False), JsonBool)

    def test_containers(self) -> None:
        value = from_python({"a": [1, {"b": None}]})
        assert isinstance(value, JsonObject)
        inner = value.members["a"]
        assert isinstance(inner, JsonArray)
        assert inner.items[1] == JsonObject({"b": JSON_NULL})

    def test_rejects_non_string_keys(self) -> None:
        with pytest.raises(TypeError):
            from_python({1: "a"})

    def test_rejects_non_json_values(self) -> None:
        with pytest.raises(TypeError):
            from_python({"a": object()})

    def test_result_shares_nothing_with_input(self) -> None:
        source = {"a": [1, 2]}
        value = from_python(source)
        value.members["a"].items.append(JsonNumber(3))
        assert source == {"a": [1, 2]}


class TestEquality:
    def test_object_member_order_is_irrelevant(self) -> None:
        assert from_python({"a": 1, "b": 2}) == from_python({"b": 2, "a": 1})

    def test_array_order_is_relevant(self) -> None:
        assert from_python([1, 2]) != from_python([2, 1])

    def test_integer_equals_float(self) -> None:
        assert from_python(1) == from_python(1.0)


class TestHelpers:
    def test_to_python_round_trip(self) -> None:
        doc = {"name": "Acme", "tags": ["a", None, True, 1.5], "nested": {}}
        assert to_python(from_python(doc)) == doc

    def test_deep_copy_is_independent(self) -> None:
        original = from_python({"a": {"b": [1]}})
        copy = deep_copy(original)
        copy.members["a"].members["b"].items.clear()
        assert to_python(original) == {"a": {"b": [1]}}

    def test_loads(self) -> None:
        assert loads('{"x": [true]}') == JsonObject({"x": JsonArray([JsonBool(True)])})
        with pytest.raises(ValueError):
            loads("{nope")

    def test_type_name(self) -> None:
        assert type_name(JSON_NULL) == "null"
        assert type_name(from_python([])) == "array"
        assert type_name(from_python({})) == "object"
        assert type_name(from_python("s")) == "string"


class TestPointer:
    def test_empty_pointer_is_whole_document(self) -> None:
        assert parse_pointer("") == []

    def test_slash_is_empty_key(self) -> None:
        assert parse_pointer("/") == [""]

    def test_unescapes_tilde_sequences(self) -> None:
        assert parse_pointer("/a~1b/m~0n") == ["a/b", "m~n"]
        assert parse_pointer("/~01") == ["~1"]

    def test_must_start_with_slash(self) -> None:
        with pytest.raises(MalformedPatchError):
            parse_pointer("a/b")

    def test_rejects_bad_escape(self) -> None:
        with pytest.raises(MalformedPatchError):
            parse_pointer("/a~2")

    def test_format_pointer_escapes(self) -> None:
        assert format_pointer(["a/b", "m~n", "0"]) == "/a~1b/m~0n/0"

    def test_is_proper_prefix(self) -> None:
        assert is_proper_prefix(["a"], ["a", "b"])
        assert not is_proper_prefix(["a"], ["a"])
        assert not is_proper_prefix(["a", "b"], ["a"])
        assert not is_proper_prefix(["x"], ["a", "b"])
