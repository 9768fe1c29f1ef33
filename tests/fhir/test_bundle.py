"""Tests for Bundle and OperationOutcome builders."""

from datetime import datetime, timezone

from ehrfhir.fhir.bundle import history_bundle, operation_outcome, searchset_bundle
from ehrfhir.models.common import HistoryAction
from ehrfhir.models.history import HistoryEntry

RECORDED = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _entry(version: int, action: HistoryAction) -> HistoryEntry:
    return HistoryEntry(
        resource_type="Organization",
        resource_id="org-1",
        version_id=version,
        snapshot={"resourceType": "Organization", "id": "org-1", "meta": {"versionId": str(version)}},
        action=action,
        recorded_at=RECORDED,
    )


class TestHistoryBundle:
    def test_envelope(self) -> None:
        bundle = history_bundle([], 0, "/fhir")
        assert bundle["resourceType"] == "Bundle"
        assert bundle["type"] == "history"
        assert bundle["total"] == 0
        assert bundle["entry"] == []

    def test_request_and_response_follow_action(self) -> None:
        entries = [
            _entry(1, HistoryAction.CREATE),
            _entry(2, HistoryAction.UPDATE),
            _entry(3, HistoryAction.DELETE),
        ]
        bundle = history_bundle(entries, 3, "/fhir/")
        methods = [e["request"]["method"] for e in bundle["entry"]]
        statuses = [e["response"]["status"] for e in bundle["entry"]]
        assert methods == ["POST", "PUT", "DELETE"]
        assert statuses == ["201 Created", "200 OK", "204 No Content"]

    def test_entry_urls_and_etag(self) -> None:
        bundle = history_bundle([_entry(2, HistoryAction.UPDATE)], 1, "http://ehr/fhir")
        entry = bundle["entry"][0]
        assert entry["fullUrl"] == "http://ehr/fhir/Organization/org-1/_history/2"
        assert entry["request"]["url"] == "Organization/org-1"
        assert entry["response"]["etag"] == 'W/"2"'
        assert entry["response"]["lastModified"] == RECORDED.isoformat()
        assert entry["resource"]["meta"]["versionId"] == "2"

    def test_keeps_given_order(self) -> None:
        entries = [_entry(3, HistoryAction.DELETE), _entry(1, HistoryAction.CREATE)]
        bundle = history_bundle(entries, 5, "/fhir")
        assert [e["fullUrl"][-1] for e in bundle["entry"]] == ["3", "1"]
        assert bundle["total"] == 5


class TestSearchsetBundle:
    def test_entries(self) -> None:
        resources = [{"resourceType": "Organization", "id": "a"}]
        bundle = searchset_bundle(resources, 7, "/fhir", "Organization")
        assert bundle["type"] == "searchset"
        assert bundle["total"] == 7
        assert bundle["entry"][0]["fullUrl"] == "/fhir/Organization/a"
        assert bundle["entry"][0]["search"] == {"mode": "match"}


class TestOperationOutcome:
    def test_single_issue(self) -> None:
        outcome = operation_outcome("error", "conflict", "Version conflict")
        assert outcome == {
            "resourceType": "OperationOutcome",
            "issue": [{"severity": "error", "code": "conflict", "diagnostics": "Version conflict"}],
        }
