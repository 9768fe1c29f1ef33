"""Static search-parameter schemas, one per resource type.

These maps are the allow-list for SQL identifiers: a search parameter that is
not listed here never reaches a query, and only the columns named here are
ever placed in SQL text.
"""

from collections.abc import Mapping

from ehrfhir.fhir.search import SearchParamConfig, SearchParamType

TOKEN = SearchParamType.TOKEN
REFERENCE = SearchParamType.REFERENCE
DATE = SearchParamType.DATE
STRING = SearchParamType.STRING
NUMBER = SearchParamType.NUMBER


ORGANIZATION_SEARCH_PARAMS: dict[str, SearchParamConfig] = {
    "_id": SearchParamConfig(TOKEN, "id"),
    "_lastUpdated": SearchParamConfig(DATE, "updated_at"),
    "name": SearchParamConfig(STRING, "name"),
    "type": SearchParamConfig(TOKEN, "type_code", system_column="type_system"),
    "identifier": SearchParamConfig(TOKEN, "identifier_value", system_column="identifier_system"),
    "phone": SearchParamConfig(TOKEN, "phone"),
    "address-city": SearchParamConfig(STRING, "address_city"),
    "partof": SearchParamConfig(REFERENCE, "partof_id", reference_table="organizations"),
}

LOCATION_SEARCH_PARAMS: dict[str, SearchParamConfig] = {
    "_id": SearchParamConfig(TOKEN, "id"),
    "name": SearchParamConfig(STRING, "name"),
    "status": SearchParamConfig(TOKEN, "status"),
    "address-city": SearchParamConfig(STRING, "address_city"),
    "organization": SearchParamConfig(REFERENCE, "organization_id", reference_table="organizations"),
    "partof": SearchParamConfig(REFERENCE, "partof_id", reference_table="locations"),
}

PATIENT_SEARCH_PARAMS: dict[str, SearchParamConfig] = {
    "_id": SearchParamConfig(TOKEN, "id"),
    "family": SearchParamConfig(STRING, "last_name"),
    "given": SearchParamConfig(STRING, "first_name"),
    "birthdate": SearchParamConfig(DATE, "birth_date"),
    "gender": SearchParamConfig(TOKEN, "gender"),
    "identifier": SearchParamConfig(TOKEN, "mrn"),
}

PRACTITIONER_ROLE_SEARCH_PARAMS: dict[str, SearchParamConfig] = {
    "practitioner": SearchParamConfig(REFERENCE, "practitioner_id", reference_table="practitioners"),
    "organization": SearchParamConfig(REFERENCE, "organization_id", reference_table="organizations"),
    "role": SearchParamConfig(TOKEN, "role_code"),
}

ENCOUNTER_SEARCH_PARAMS: dict[str, SearchParamConfig] = {
    "patient": SearchParamConfig(REFERENCE, "patient_id", reference_table="patients"),
    "status": SearchParamConfig(TOKEN, "status"),
    "class": SearchParamConfig(TOKEN, "class_code"),
    "date": SearchParamConfig(DATE, "period_start"),
}

IMMUNIZATION_SEARCH_PARAMS: dict[str, SearchParamConfig] = {
    "patient": SearchParamConfig(REFERENCE, "patient_id", reference_table="patients"),
    "status": SearchParamConfig(TOKEN, "status"),
    "vaccine-code": SearchParamConfig(TOKEN, "vaccine_code"),
    "date": SearchParamConfig(DATE, "occurrence_datetime"),
    "lot-number": SearchParamConfig(STRING, "lot_number"),
    "dose-number": SearchParamConfig(NUMBER, "dose_number"),
}

CDS_RULE_SEARCH_PARAMS: dict[str, SearchParamConfig] = {
    "name": SearchParamConfig(STRING, "name"),
    "status": SearchParamConfig(TOKEN, "status"),
    "category": SearchParamConfig(TOKEN, "category"),
    "priority": SearchParamConfig(NUMBER, "priority"),
}

SEARCH_PARAMS_BY_TYPE: Mapping[str, Mapping[str, SearchParamConfig]] = {
    "Organization": ORGANIZATION_SEARCH_PARAMS,
    "Location": LOCATION_SEARCH_PARAMS,
    "Patient": PATIENT_SEARCH_PARAMS,
    "PractitionerRole": PRACTITIONER_ROLE_SEARCH_PARAMS,
    "Encounter": ENCOUNTER_SEARCH_PARAMS,
    "Immunization": IMMUNIZATION_SEARCH_PARAMS,
    "CDSRule": CDS_RULE_SEARCH_PARAMS,
}


def search_params_for(resource_type: str) -> Mapping[str, SearchParamConfig]:
    """Schema for *resource_type*; unknown types have no searchable parameters."""
    return SEARCH_PARAMS_BY_TYPE.get(resource_type, {})
