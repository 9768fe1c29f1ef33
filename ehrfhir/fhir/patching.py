"""PATCH entry point: content-type dispatch to JSON Patch or JSON Merge Patch.

apply_patch(content_type, raw_body, current) is a pure function. It takes no
web-framework objects; the HTTP layer maps the raised errors to status codes.
"""

from enum import StrEnum
from typing import Any

from ehrfhir.fhir.errors import UnsupportedPatchMediaTypeError
from ehrfhir.fhir.json_patch import apply_json_patch, parse_json_patch
from ehrfhir.fhir.merge_patch import apply_merge_patch, parse_merge_patch


class PatchMediaType(StrEnum):
    JSON_PATCH = "application/json-patch+json"
    MERGE_PATCH = "application/merge-patch+json"


def patch_media_type(content_type: str | None) -> PatchMediaType:
    """Classify a Content-Type header. Parameters such as charset are ignored."""
    essence = (content_type or "").split(";", 1)[0].strip().lower()
    try:
        return PatchMediaType(essence)
    except ValueError:
        raise UnsupportedPatchMediaTypeError(content_type) from None


def apply_patch(content_type: str | None, raw_body: str | bytes, current: Any) -> Any:
    """Patch *current* (plain JSON) with *raw_body* interpreted per *content_type*.

    Raises:
        UnsupportedPatchMediaTypeError: neither patch media type.
        MalformedPatchError: the body cannot be parsed.
        PatchApplicationError: a well-formed patch could not be applied.
    """
    media_type = patch_media_type(content_type)
    if media_type == PatchMediaType.JSON_PATCH:
        return apply_json_patch(current, parse_json_patch(raw_body))
    return apply_merge_patch(current, parse_merge_patch(raw_body))
