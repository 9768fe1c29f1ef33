"""JSON Merge Patch (RFC 7396).

For each member of an object patch: null removes the member from the target,
an object merges recursively, anything else (arrays included) replaces the
target member wholesale. A patch that is not an object replaces the whole
target. The target is never mutated.
"""

import json
from typing import Any

from ehrfhir.fhir.errors import MalformedPatchError
from ehrfhir.fhir.jsonvalue import (
    JsonNull,
    JsonObject,
    JsonValue,
    deep_copy,
    from_python,
    to_python,
)


def parse_merge_patch(raw: str | bytes) -> Any:
    """Decode an application/merge-patch+json body."""
    try:
        return json.loads(raw)
    except ValueError as exc:
        raise MalformedPatchError(f"Invalid merge patch JSON: {exc}") from exc


def apply_merge_patch(target: Any, patch: Any) -> Any:
    """Merge *patch* into plain JSON *target* and return the merged copy."""
    return to_python(merge_value(from_python(target), from_python(patch)))


def merge_value(target: JsonValue | None, patch: JsonValue) -> JsonValue:
    """RFC 7396 MergePatch(Target, Patch) over JsonValue trees.

    *target* None means the member is absent in the enclosing object.
    """
    if not isinstance(patch, JsonObject):
        return deep_copy(patch)

    source = target.members if isinstance(target, JsonObject) else {}
    merged: dict[str, JsonValue] = {}

    # Existing members keep their order
    for key, item in source.items():
        if key not in patch.members:
            merged[key] = deep_copy(item)
            continue
        value = patch.members[key]
        if not isinstance(value, JsonNull):
            merged[key] = merge_value(item, value)

    for key, value in patch.members.items():
        if key not in source and not isinstance(value, JsonNull):
            merged[key] = merge_value(None, value)

    return JsonObject(merged)
