"""Tests for OrganizationService wiring: primary rows + version tracker + patch engine."""

import pytest

from ehrfhir.fhir.errors import (
    ConflictError,
    InvalidResourceError,
    NotFoundError,
    PatchApplicationError,
    UnsupportedPatchMediaTypeError,
)
from ehrfhir.fhir.versioning import VersionTracker
from ehrfhir.models.common import HistoryAction
from ehrfhir.repositories.organizations import OrganizationRepository
from ehrfhir.services.organizations import OrganizationService

ACME = {
    "resourceType": "Organization",
    "name": "Acme Health",
    "identifier": [{"system": "urn:npi", "value": "123"}],
    "telecom": [{"system": "phone", "value": "555-0100"}],
}

JSON_PATCH = "application/json-patch+json"
MERGE_PATCH = "application/merge-patch+json"


@pytest.fixture
def service(db_session, tracker) -> OrganizationService:
    return OrganizationService(OrganizationRepository(db_session), version_tracker=tracker)


class TestCreateAndRead:
    @pytest.mark.anyio
    async def test_create_records_version_one(self, service, tracker: VersionTracker) -> None:
        org = await service.create(ACME)
        assert org.version_id == 1
        assert org.identifier_value == "123"
        history = await tracker.get_history("Organization", org.id)
        assert [e.action for e in history] == [HistoryAction.CREATE]
        assert history[0].snapshot["meta"]["versionId"] == "1"
        assert history[0].snapshot["name"] == "Acme Health"

    @pytest.mark.anyio
    async def test_get_unknown(self, service) -> None:
        with pytest.raises(NotFoundError):
            await service.get("missing")

    @pytest.mark.anyio
    async def test_create_requires_name(self, service) -> None:
        with pytest.raises(InvalidResourceError):
            await service.create({"resourceType": "Organization"})

    @pytest.mark.anyio
    async def test_create_rejects_other_resource_types(self, service) -> None:
        with pytest.raises(InvalidResourceError):
            await service.create({"resourceType": "Patient", "name": "x"})


class TestUpdate:
    @pytest.mark.anyio
    async def test_update_bumps_version(self, service, tracker: VersionTracker) -> None:
        org = await service.create(ACME)
        updated = await service.update(org.id, {**ACME, "name": "Acme Two"}, if_match=1)
        assert updated.version_id == 2
        assert updated.name == "Acme Two"
        state = await tracker.get_state("Organization", org.id)
        assert state.current_version == 2

    @pytest.mark.anyio
    async def test_update_without_if_match_uses_current(self, service) -> None:
        org = await service.create(ACME)
        await service.update(org.id, ACME)
        assert (await service.update(org.id, ACME)).version_id == 3

    @pytest.mark.anyio
    async def test_stale_if_match_conflicts(self, service) -> None:
        org = await service.create(ACME)
        await service.update(org.id, {**ACME, "name": "Winner"}, if_match=1)
        with pytest.raises(ConflictError):
            await service.update(org.id, {**ACME, "name": "Loser"}, if_match=1)
        assert (await service.get(org.id)).name == "Winner"

    @pytest.mark.anyio
    async def test_id_mismatch_rejected(self, service) -> None:
        org = await service.create(ACME)
        with pytest.raises(InvalidResourceError):
            await service.update(org.id, {**ACME, "id": "other"})


class TestPatch:
    @pytest.mark.anyio
    async def test_json_patch(self, service, tracker: VersionTracker) -> None:
        org = await service.create(ACME)
        body = b'[{"op": "test", "path": "/name", "value": "Acme Health"},' \
               b' {"op": "replace", "path": "/name", "value": "Patched"}]'
        patched = await service.patch(org.id, JSON_PATCH, body, if_match=1)
        assert patched.name == "Patched"
        assert patched.version_id == 2
        history = await tracker.get_history("Organization", org.id)
        assert history[-1].snapshot["name"] == "Patched"

    @pytest.mark.anyio
    async def test_merge_patch_removes_element(self, service) -> None:
        org = await service.create(ACME)
        patched = await service.patch(org.id, MERGE_PATCH, b'{"telecom": null}')
        assert patched.phone is None
        assert patched.identifier_value == "123"

    @pytest.mark.anyio
    async def test_failed_patch_changes_nothing(self, service, tracker: VersionTracker) -> None:
        org = await service.create(ACME)
        body = b'[{"op": "replace", "path": "/name", "value": "X"}, {"op": "remove", "path": "/nope"}]'
        with pytest.raises(PatchApplicationError):
            await service.patch(org.id, JSON_PATCH, body)
        assert (await service.get(org.id)).name == "Acme Health"
        assert len(await tracker.get_history("Organization", org.id)) == 1

    @pytest.mark.anyio
    async def test_patch_cannot_change_id(self, service) -> None:
        org = await service.create(ACME)
        with pytest.raises(InvalidResourceError):
            await service.patch(org.id, MERGE_PATCH, b'{"id": "hijack"}')

    @pytest.mark.anyio
    async def test_unsupported_media_type(self, service) -> None:
        org = await service.create(ACME)
        with pytest.raises(UnsupportedPatchMediaTypeError):
            await service.patch(org.id, "application/json", b"{}")


class TestDelete:
    @pytest.mark.anyio
    async def test_delete_records_version_and_removes_row(
        self, service, tracker: VersionTracker,
    ) -> None:
        org = await service.create(ACME)
        assert await service.delete(org.id) == 2
        with pytest.raises(NotFoundError):
            await service.get(org.id)
        history = await tracker.get_history("Organization", org.id)
        assert [e.action for e in history] == [HistoryAction.CREATE, HistoryAction.DELETE]

    @pytest.mark.anyio
    async def test_stale_delete_conflicts(self, service) -> None:
        org = await service.create(ACME)
        await service.update(org.id, ACME)
        with pytest.raises(ConflictError):
            await service.delete(org.id, if_match=1)
        assert (await service.get(org.id)).version_id == 2


class TestWithoutTracker:
    @pytest.mark.anyio
    async def test_null_tracker_keeps_service_working(self, db_session) -> None:
        service = OrganizationService(OrganizationRepository(db_session))
        org = await service.create(ACME)
        updated = await service.update(org.id, {**ACME, "name": "Still works"})
        assert updated.version_id == 2
        tracker = VersionTracker(db_session)
        assert await tracker.get_history("Organization", org.id) == []


class TestSearch:
    @pytest.mark.anyio
    async def test_search_by_name_and_paging(self, service) -> None:
        for name in ("Acme North", "Acme South", "Zenith"):
            await service.create({**ACME, "name": name})
        found, total = await service.search({"name": ["acme"], "_sort": ["-name"]}, count=1)
        assert total == 2
        assert [org.name for org in found] == ["Acme South"]

    @pytest.mark.anyio
    async def test_search_by_identifier(self, service) -> None:
        org = await service.create(ACME)
        found, total = await service.search({"identifier": "urn:npi|123"}, count=10)
        assert total == 1
        assert found[0].id == org.id
        assert found[0].active is True
