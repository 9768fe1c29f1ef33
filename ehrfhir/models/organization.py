"""Organization models: flat column fields and their FHIR JSON form."""

from typing import Any

from pydantic import Field, ValidationError

from ehrfhir.fhir.errors import InvalidResourceError
from ehrfhir.models.common import FHIRBase, UTCTimestamp, VersionNumber

RESOURCE_TYPE = "Organization"


def _first(items: Any) -> dict[str, Any]:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return {}


class OrganizationFields(FHIRBase):
    """Writable Organization fields, one per organizations column."""

    name: str = Field(..., min_length=1, max_length=255)
    active: bool = True
    type_system: str | None = Field(default=None, max_length=255)
    type_code: str | None = Field(default=None, max_length=64)
    identifier_system: str | None = Field(default=None, max_length=255)
    identifier_value: str | None = Field(default=None, max_length=128)
    phone: str | None = Field(default=None, max_length=64)
    address_city: str | None = Field(default=None, max_length=128)
    partof_id: str | None = Field(default=None, max_length=64)

    @classmethod
    def from_fhir(cls, resource: Any) -> "OrganizationFields":
        """Read the supported elements of an Organization resource.

        Only the first coding, identifier, phone telecom and address are kept.
        Raises InvalidResourceError for anything that is not an Organization.
        """
        if not isinstance(resource, dict):
            raise InvalidResourceError("Organization must be a JSON object.")
        resource_type = resource.get("resourceType", RESOURCE_TYPE)
        if resource_type != RESOURCE_TYPE:
            raise InvalidResourceError(
                f"Expected resourceType {RESOURCE_TYPE!r}, got {resource_type!r}."
            )

        coding = _first(_first(resource.get("type")).get("coding"))
        identifier = _first(resource.get("identifier"))
        telecom = resource.get("telecom")
        phones = [
            t for t in (telecom if isinstance(telecom, list) else [])
            if isinstance(t, dict) and t.get("system") == "phone"
        ]
        address = _first(resource.get("address"))
        part_of = resource.get("partOf")
        reference = part_of.get("reference") if isinstance(part_of, dict) else None

        try:
            return cls(
                name=resource.get("name"),
                active=resource.get("active", True),
                type_system=coding.get("system"),
                type_code=coding.get("code"),
                identifier_system=identifier.get("system"),
                identifier_value=identifier.get("value"),
                phone=phones[0].get("value") if phones else None,
                address_city=address.get("city"),
                partof_id=reference.rsplit("/", 1)[-1] if isinstance(reference, str) else None,
            )
        except ValidationError as exc:
            raise InvalidResourceError(f"Invalid Organization: {exc}") from exc


class Organization(OrganizationFields):
    """Stored Organization: fields plus identity, version and timestamps."""

    id: str = Field(..., min_length=1, max_length=64)
    version_id: VersionNumber = 1
    created_at: UTCTimestamp
    updated_at: UTCTimestamp

    def to_fhir(self) -> dict[str, Any]:
        resource: dict[str, Any] = {
            "resourceType": RESOURCE_TYPE,
            "id": self.id,
            "meta": {
                "versionId": str(self.version_id),
                "lastUpdated": self.updated_at.isoformat(),
            },
            "active": self.active,
            "name": self.name,
        }
        if self.type_code or self.type_system:
            coding = {k: v for k, v in (("system", self.type_system), ("code", self.type_code)) if v}
            resource["type"] = [{"coding": [coding]}]
        if self.identifier_value or self.identifier_system:
            resource["identifier"] = [{
                k: v
                for k, v in (("system", self.identifier_system), ("value", self.identifier_value))
                if v
            }]
        if self.phone:
            resource["telecom"] = [{"system": "phone", "value": self.phone}]
        if self.address_city:
            resource["address"] = [{"city": self.address_city}]
        if self.partof_id:
            resource["partOf"] = {"reference": f"{RESOURCE_TYPE}/{self.partof_id}"}
        return resource
