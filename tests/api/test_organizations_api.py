"""Tests for the Organization FHIR endpoints."""

import pytest
from httpx import AsyncClient

BASE = "/fhir/Organization"
ACME = {
    "resourceType": "Organization",
    "name": "Acme Health",
    "identifier": [{"system": "urn:npi", "value": "123"}],
}


async def _create(client: AsyncClient, **overrides) -> dict:
    response = await client.post(BASE, json={**ACME, **overrides})
    assert response.status_code == 201
    return response.json()


class TestCreateRead:
    @pytest.mark.anyio
    async def test_create_returns_201_with_etag_and_location(self, client: AsyncClient) -> None:
        response = await client.post(BASE, json=ACME)
        assert response.status_code == 201
        body = response.json()
        assert body["resourceType"] == "Organization"
        assert body["meta"]["versionId"] == "1"
        assert response.headers["etag"] == 'W/"1"'
        assert response.headers["location"].endswith(f"/Organization/{body['id']}/_history/1")
        assert response.headers["content-type"].startswith("application/fhir+json")

    @pytest.mark.anyio
    async def test_read(self, client: AsyncClient) -> None:
        created = await _create(client)
        response = await client.get(f"{BASE}/{created['id']}")
        assert response.status_code == 200
        assert response.json()["name"] == "Acme Health"
        assert "last-modified" in response.headers

    @pytest.mark.anyio
    async def test_read_unknown_is_operation_outcome(self, client: AsyncClient) -> None:
        response = await client.get(f"{BASE}/missing")
        assert response.status_code == 404
        body = response.json()
        assert body["resourceType"] == "OperationOutcome"
        assert body["issue"][0]["code"] == "not-found"

    @pytest.mark.anyio
    async def test_invalid_resource_is_400(self, client: AsyncClient) -> None:
        response = await client.post(BASE, json={"resourceType": "Organization"})
        assert response.status_code == 400
        assert response.json()["issue"][0]["code"] == "invalid"


class TestConditionalRead:
    @pytest.mark.anyio
    async def test_matching_if_none_match_is_304(self, client: AsyncClient) -> None:
        created = await _create(client)
        response = await client.get(f"{BASE}/{created['id']}", headers={"If-None-Match": 'W/"1"'})
        assert response.status_code == 304
        assert response.content == b""
        assert response.headers["etag"] == 'W/"1"'

    @pytest.mark.anyio
    async def test_strong_and_wildcard_etags_match(self, client: AsyncClient) -> None:
        created = await _create(client)
        for value in ('"1"', "*", 'W/"7", W/"1"'):
            response = await client.get(f"{BASE}/{created['id']}", headers={"If-None-Match": value})
            assert response.status_code == 304, value

    @pytest.mark.anyio
    async def test_stale_if_none_match_returns_resource(self, client: AsyncClient) -> None:
        created = await _create(client)
        await client.put(f"{BASE}/{created['id']}", json={**ACME, "name": "Renamed"})
        response = await client.get(f"{BASE}/{created['id']}", headers={"If-None-Match": 'W/"1"'})
        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert response.headers["etag"] == 'W/"2"'

    @pytest.mark.anyio
    async def test_unparseable_if_none_match_returns_resource(self, client: AsyncClient) -> None:
        created = await _create(client)
        response = await client.get(f"{BASE}/{created['id']}", headers={"If-None-Match": "invalid"})
        assert response.status_code == 200

    @pytest.mark.anyio
    async def test_if_modified_since_later_is_304(self, client: AsyncClient) -> None:
        created = await _create(client)
        response = await client.get(
            f"{BASE}/{created['id']}", headers={"If-Modified-Since": "Fri, 01 Jan 2999 00:00:00 GMT"},
        )
        assert response.status_code == 304

    @pytest.mark.anyio
    async def test_if_modified_since_own_last_modified_is_304(self, client: AsyncClient) -> None:
        created = await _create(client)
        first = await client.get(f"{BASE}/{created['id']}")
        response = await client.get(
            f"{BASE}/{created['id']}",
            headers={"If-Modified-Since": first.headers["last-modified"]},
        )
        assert response.status_code == 304

    @pytest.mark.anyio
    async def test_if_modified_since_earlier_returns_resource(self, client: AsyncClient) -> None:
        created = await _create(client)
        response = await client.get(
            f"{BASE}/{created['id']}", headers={"If-Modified-Since": "2000-01-01T00:00:00Z"},
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Acme Health"

    @pytest.mark.anyio
    async def test_unknown_id_is_still_404(self, client: AsyncClient) -> None:
        response = await client.get(f"{BASE}/missing", headers={"If-None-Match": "*"})
        assert response.status_code == 404


class TestUpdate:
    @pytest.mark.anyio
    async def test_conditional_update(self, client: AsyncClient) -> None:
        created = await _create(client)
        url = f"{BASE}/{created['id']}"
        response = await client.put(
            url, json={**ACME, "id": created["id"], "name": "Renamed"}, headers={"If-Match": 'W/"1"'},
        )
        assert response.status_code == 200
        assert response.headers["etag"] == 'W/"2"'
        assert response.json()["name"] == "Renamed"

    @pytest.mark.anyio
    async def test_stale_if_match_is_409(self, client: AsyncClient) -> None:
        created = await _create(client)
        url = f"{BASE}/{created['id']}"
        first = await client.put(url, json=ACME, headers={"If-Match": 'W/"1"'})
        assert first.status_code == 200
        second = await client.put(url, json=ACME, headers={"If-Match": 'W/"1"'})
        assert second.status_code == 409
        assert second.json()["issue"][0]["code"] == "conflict"

    @pytest.mark.anyio
    async def test_malformed_if_match_is_400(self, client: AsyncClient) -> None:
        created = await _create(client)
        response = await client.put(
            f"{BASE}/{created['id']}", json=ACME, headers={"If-Match": "banana"},
        )
        assert response.status_code == 400
        assert response.json()["resourceType"] == "OperationOutcome"


class TestPatch:
    @pytest.mark.anyio
    async def test_json_patch(self, client: AsyncClient) -> None:
        created = await _create(client)
        response = await client.patch(
            f"{BASE}/{created['id']}",
            content=b'[{"op": "replace", "path": "/name", "value": "Patched"}]',
            headers={"Content-Type": "application/json-patch+json", "If-Match": 'W/"1"'},
        )
        assert response.status_code == 200
        assert response.json()["name"] == "Patched"
        assert response.headers["etag"] == 'W/"2"'

    @pytest.mark.anyio
    async def test_merge_patch(self, client: AsyncClient) -> None:
        created = await _create(client)
        response = await client.patch(
            f"{BASE}/{created['id']}",
            content=b'{"active": false, "identifier": null}',
            headers={"Content-Type": "application/merge-patch+json; charset=utf-8"},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["active"] is False
        assert "identifier" not in body

    @pytest.mark.anyio
    @pytest.mark.parametrize(
        ("content_type", "body", "status", "code"),
        [
            ("text/plain", b"{}", 415, "not-supported"),
            ("application/json-patch+json", b"{not json", 400, "invalid"),
            ("application/json-patch+json", b'[{"op": "remove", "path": "/nope"}]', 422, "processing"),
        ],
    )
    async def test_patch_errors(
        self, client: AsyncClient, content_type: str, body: bytes, status: int, code: str,
    ) -> None:
        created = await _create(client)
        response = await client.patch(
            f"{BASE}/{created['id']}", content=body, headers={"Content-Type": content_type},
        )
        assert response.status_code == status
        assert response.json()["issue"][0]["code"] == code


class TestDelete:
    @pytest.mark.anyio
    async def test_delete_then_read_is_404(self, client: AsyncClient) -> None:
        created = await _create(client)
        url = f"{BASE}/{created['id']}"
        response = await client.delete(url)
        assert response.status_code == 204
        assert response.headers["etag"] == 'W/"2"'
        assert (await client.get(url)).status_code == 404


class TestSearch:
    @pytest.mark.anyio
    async def test_search_query_string(self, client: AsyncClient) -> None:
        await _create(client, name="Acme North")
        await _create(client, name="Zenith")
        response = await client.get(BASE, params={"name": "acme"})
        assert response.status_code == 200
        bundle = response.json()
        assert bundle["type"] == "searchset"
        assert bundle["total"] == 1
        assert bundle["entry"][0]["resource"]["name"] == "Acme North"

    @pytest.mark.anyio
    async def test_search_ignores_unknown_params(self, client: AsyncClient) -> None:
        await _create(client)
        response = await client.get(BASE, params={"bogus": "1", "_count": "abc"})
        assert response.status_code == 200
        assert response.json()["total"] == 1

    @pytest.mark.anyio
    async def test_post_search_form(self, client: AsyncClient) -> None:
        await _create(client, name="Acme North")
        await _create(client, name="Acme South")
        response = await client.post(f"{BASE}/_search", data={"name": "acme", "_count": "1"})
        assert response.status_code == 200
        bundle = response.json()
        assert bundle["total"] == 2
        assert len(bundle["entry"]) == 1
