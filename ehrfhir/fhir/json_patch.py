"""JSON Patch (RFC 6902).

apply_json_patch(document, operations) applies operations strictly in order to
a working copy of *document*. If any operation fails the whole patch is
rejected with PatchApplicationError and the caller's document is untouched;
there is no partial application.

Pointer rules (RFC 6901): "" is the whole document, "/a/b/0" walks object keys
and array indices, and "/a/-" means "after the last element of a" (add only).
Parents are never created implicitly: adding "/a/b" requires "/a" to exist.

Deterministic and stateless; safe to call concurrently.
"""

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from ehrfhir.fhir.errors import MalformedPatchError, PatchApplicationError
from ehrfhir.fhir.jsonvalue import (
    JsonArray,
    JsonObject,
    JsonValue,
    deep_copy,
    from_python,
    to_python,
    type_name,
)
from ehrfhir.fhir.pointer import (
    ARRAY_INDEX_RE,
    END_OF_ARRAY,
    format_pointer,
    is_proper_prefix,
    parse_pointer,
)

logger = logging.getLogger(__name__)


class PatchOp(StrEnum):
    ADD = "add"
    REMOVE = "remove"
    REPLACE = "replace"
    MOVE = "move"
    COPY = "copy"
    TEST = "test"


_OPS_WITH_VALUE = frozenset({PatchOp.ADD, PatchOp.REPLACE, PatchOp.TEST})
_OPS_WITH_FROM = frozenset({PatchOp.MOVE, PatchOp.COPY})


@dataclass(frozen=True)
class PatchOperation:
    """One JSON Patch operation.

    value is None when absent; a JSON null value is JSON_NULL.
    """

    op: PatchOp
    path: str
    value: JsonValue | None = None
    from_path: str | None = None

    def __post_init__(self) -> None:
        if self.op in _OPS_WITH_VALUE and self.value is None:
            raise MalformedPatchError(f"{self.op} operation requires a value")
        if self.op in _OPS_WITH_FROM and self.from_path is None:
            raise MalformedPatchError(f"{self.op} operation requires 'from'")

    @classmethod
    def from_dict(cls, raw: Any, index: int | None = None) -> "PatchOperation":
        """Validate one decoded operation object. Raises MalformedPatchError."""
        where = f"operation {index}" if index is not None else "operation"
        if not isinstance(raw, Mapping):
            raise MalformedPatchError(f"{where} must be a JSON object")

        op_name = raw.get("op")
        if not isinstance(op_name, str):
            raise MalformedPatchError(f"{where} is missing the 'op' member")
        try:
            op = PatchOp(op_name)
        except ValueError:
            raise MalformedPatchError(f"{where} has unknown op {op_name!r}") from None

        path = raw.get("path")
        if not isinstance(path, str):
            raise MalformedPatchError(f"{where} ({op}) is missing the 'path' member")
        parse_pointer(path)

        value: JsonValue | None = None
        if op in _OPS_WITH_VALUE:
            if "value" not in raw:
                raise MalformedPatchError(f"{where} ({op}) is missing the 'value' member")
            try:
                value = from_python(raw["value"])
            except TypeError as exc:
                raise MalformedPatchError(f"{where} ({op}) has a non-JSON value: {exc}") from exc

        from_path: str | None = None
        if op in _OPS_WITH_FROM:
            from_path = raw.get("from")
            if not isinstance(from_path, str):
                raise MalformedPatchError(f"{where} ({op}) is missing the 'from' member")
            parse_pointer(from_path)

        return cls(op=op, path=path, value=value, from_path=from_path)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"op": self.op.value, "path": self.path}
        if self.value is not None:
            out["value"] = to_python(self.value)
        if self.from_path is not None:
            out["from"] = self.from_path
        return out


def parse_json_patch(raw: str | bytes) -> list[PatchOperation]:
    """Parse an application/json-patch+json body into validated operations."""
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise MalformedPatchError(f"Invalid JSON Patch document: {exc}") from exc
    if not isinstance(data, list):
        raise MalformedPatchError("JSON Patch document must be an array of operations")
    return [PatchOperation.from_dict(item, index=i) for i, item in enumerate(data)]


def apply_json_patch(
    document: Any,
    operations: Iterable[PatchOperation | Mapping[str, Any]],
) -> Any:
    """Apply *operations* to plain JSON data and return the patched copy."""
    return to_python(patch_value(from_python(document), operations))


def patch_value(
    document: JsonValue,
    operations: Iterable[PatchOperation | Mapping[str, Any]],
) -> JsonValue:
    """Apply *operations* to a JsonValue tree and return the patched copy.

    All operations are validated before the first one is applied.
    """
    ops = [
        op if isinstance(op, PatchOperation) else PatchOperation.from_dict(op, index=i)
        for i, op in enumerate(operations)
    ]
    working = deep_copy(document)
    for index, op in enumerate(ops):
        try:
            working = _apply_operation(working, op)
        except PatchApplicationError as exc:
            logger.debug("JSON Patch rejected at operation %d (%s %s)", index, op.op, op.path)
            raise PatchApplicationError(exc.message, index=index) from exc
    return working


# ---------------------------------------------------------------------------
# Operations: each mutates the working copy and returns the (possibly new) root
# ---------------------------------------------------------------------------


def _apply_operation(doc: JsonValue, op: PatchOperation) -> JsonValue:
    tokens = parse_pointer(op.path)

    if op.op == PatchOp.ADD:
        return _add(doc, tokens, deep_copy(op.value), op.path)

    if op.op == PatchOp.REMOVE:
        _remove(doc, tokens, op.path)
        return doc

    if op.op == PatchOp.REPLACE:
        return _replace(doc, tokens, deep_copy(op.value), op.path)

    if op.op == PatchOp.MOVE:
        from_tokens = parse_pointer(op.from_path)
        if from_tokens == tokens:
            _resolve(doc, from_tokens, op.from_path)
            return doc
        if is_proper_prefix(from_tokens, tokens):
            raise PatchApplicationError(
                f"cannot move {op.from_path!r} into its own child {op.path!r}"
            )
        value = _remove(doc, from_tokens, op.from_path)
        return _add(doc, tokens, value, op.path)

    if op.op == PatchOp.COPY:
        from_tokens = parse_pointer(op.from_path)
        value = deep_copy(_resolve(doc, from_tokens, op.from_path))
        return _add(doc, tokens, value, op.path)

    if op.op == PatchOp.TEST:
        actual = _resolve(doc, tokens, op.path)
        if actual != op.value:
            raise PatchApplicationError(f"test failed: value at {op.path!r} does not match")
        return doc

    raise PatchApplicationError(f"unsupported op {op.op!r}")


def _add(doc: JsonValue, tokens: list[str], value: JsonValue, pointer: str) -> JsonValue:
    if not tokens:
        return value
    parent, key = _parent(doc, tokens, pointer)
    if isinstance(parent, JsonObject):
        parent.members[key] = value
    else:
        index = _array_index(key, len(parent.items), pointer, allow_end=True)
        parent.items.insert(index, value)
    return doc


def _remove(doc: JsonValue, tokens: list[str], pointer: str) -> JsonValue:
    if not tokens:
        raise PatchApplicationError("cannot remove the whole document")
    parent, key = _parent(doc, tokens, pointer)
    if isinstance(parent, JsonObject):
        if key not in parent.members:
            raise PatchApplicationError(f"path {pointer!r} does not exist")
        return parent.members.pop(key)
    index = _array_index(key, len(parent.items), pointer)
    return parent.items.pop(index)


def _replace(doc: JsonValue, tokens: list[str], value: JsonValue, pointer: str) -> JsonValue:
    if not tokens:
        return value
    parent, key = _parent(doc, tokens, pointer)
    if isinstance(parent, JsonObject):
        if key not in parent.members:
            raise PatchApplicationError(f"path {pointer!r} does not exist")
        parent.members[key] = value
    else:
        index = _array_index(key, len(parent.items), pointer)
        parent.items[index] = value
    return doc


# ---------------------------------------------------------------------------
# Path resolution
# ---------------------------------------------------------------------------


def _resolve(doc: JsonValue, tokens: list[str], pointer: str) -> JsonValue:
    current = doc
    for depth, token in enumerate(tokens):
        if isinstance(current, JsonObject):
            if token not in current.members:
                missing = format_pointer(tokens[: depth + 1])
                raise PatchApplicationError(
                    f"path {pointer!r} does not exist ({missing!r} is missing)"
                )
            current = current.members[token]
        elif isinstance(current, JsonArray):
            current = current.items[_array_index(token, len(current.items), pointer)]
        else:
            raise PatchApplicationError(
                f"path {pointer!r} traverses into a {type_name(current)}"
            )
    return current


def _parent(
    doc: JsonValue, tokens: list[str], pointer: str,
) -> tuple[JsonObject | JsonArray, str]:
    parent = _resolve(doc, tokens[:-1], pointer)
    if not isinstance(parent, (JsonObject, JsonArray)):
        raise PatchApplicationError(
            f"parent of {pointer!r} is a {type_name(parent)}, not an object or array"
        )
    return parent, tokens[-1]


def _array_index(token: str, length: int, pointer: str, *, allow_end: bool = False) -> int:
    """Index into an array of *length*; with allow_end, *length* itself (or "-") is valid."""
    if token == END_OF_ARRAY:
        if allow_end:
            return length
        raise PatchApplicationError(f"'-' in {pointer!r} is only valid for add")
    if not ARRAY_INDEX_RE.match(token):
        raise PatchApplicationError(f"invalid array index {token!r} in {pointer!r}")
    index = int(token)
    upper = length if allow_end else length - 1
    if index > upper:
        raise PatchApplicationError(
            f"array index {index} in {pointer!r} is out of bounds (length {length})"
        )
    return index
