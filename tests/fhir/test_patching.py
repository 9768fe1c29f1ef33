"""Tests for the PATCH entry point's content-type dispatch."""

import pytest

from ehrfhir.fhir.errors import (
    MalformedPatchError,
    PatchApplicationError,
    UnsupportedPatchMediaTypeError,
)
from ehrfhir.fhir.patching import PatchMediaType, apply_patch, patch_media_type

ORG = {"resourceType": "Organization", "id": "org-1", "name": "Acme", "telecom": [{"value": "1"}]}


class TestPatchMediaType:
    def test_json_patch(self) -> None:
        assert patch_media_type("application/json-patch+json") == PatchMediaType.JSON_PATCH

    def test_merge_patch_with_parameters(self) -> None:
        media_type = patch_media_type("Application/Merge-Patch+JSON; charset=utf-8")
        assert media_type == PatchMediaType.MERGE_PATCH

    @pytest.mark.parametrize("content_type", [None, "", "application/json", "text/plain"])
    def test_unsupported(self, content_type) -> None:
        with pytest.raises(UnsupportedPatchMediaTypeError):
            patch_media_type(content_type)


class TestApplyPatch:
    def test_dispatches_json_patch(self) -> None:
        body = b'[{"op": "replace", "path": "/name", "value": "Zen"}]'
        result = apply_patch("application/json-patch+json", body, ORG)
        assert result["name"] == "Zen"
        assert ORG["name"] == "Acme"

    def test_dispatches_merge_patch(self) -> None:
        result = apply_patch("application/merge-patch+json", '{"telecom": null}', ORG)
        assert "telecom" not in result
        assert result["name"] == "Acme"

    def test_unsupported_media_type(self) -> None:
        with pytest.raises(UnsupportedPatchMediaTypeError) as exc_info:
            apply_patch("application/json", "{}", ORG)
        assert exc_info.value.status_code == 415

    def test_malformed_body(self) -> None:
        with pytest.raises(MalformedPatchError) as exc_info:
            apply_patch("application/json-patch+json", "{}", ORG)
        assert exc_info.value.status_code == 400

    def test_failed_application(self) -> None:
        body = '[{"op": "test", "path": "/name", "value": "Other"}]'
        with pytest.raises(PatchApplicationError) as exc_info:
            apply_patch("application/json-patch+json", body, ORG)
        assert exc_info.value.status_code == 422
