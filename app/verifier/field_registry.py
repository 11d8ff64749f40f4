from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional


@dataclass(frozen=True)
class FieldSpec:
    key: str
    label: str
    # Lowercase barcode field names that map onto this canonical field.
    synonyms: List[str] = field(default_factory=list)
    normalizer: Optional[str] = None


FIELDS: List[FieldSpec] = [
    FieldSpec(
        key="first_name",
        label="First name",
        synonyms=["givenname", "firstname", "given_name", "first_name", "dcdname", "customerfirstname"],
    ),
    FieldSpec(
        key="last_name",
        label="Last name",
        synonyms=[
            "familyname",
            "lastname",
            "family_name",
            "last_name",
            "surname",
            "dcsname",
            "customerfamilyname",
        ],
    ),
    FieldSpec(
        key="middle_name",
        label="Middle name",
        synonyms=["middlename", "middle_name", "ddename"],
    ),
    FieldSpec(
        key="date_of_birth",
        label="Date of birth",
        synonyms=["birthdate", "dateofbirth", "birth_date", "date_of_birth", "dob", "dbbname"],
        normalizer="age",
    ),
    FieldSpec(
        key="document_number",
        label="Document number",
        synonyms=["documentnumber", "document_number", "docnumber"],
        normalizer="document_number",
    ),
    FieldSpec(
        key="license_number",
        label="License number",
        synonyms=["licensenumber", "license_number", "dlnumber", "daqname", "customernumber"],
        normalizer="document_number",
    ),
    FieldSpec(
        key="issuing_country",
        label="Issuing country",
        synonyms=["issuingcountry", "issuing_country", "issuingjurisdiction", "country", "jurisdiction"],
        normalizer="country",
    ),
    FieldSpec(
        key="document_expiry",
        label="Document expiry",
        synonyms=["expirationdate", "expirydate", "documentexpirationdate", "expiry", "dba"],
        normalizer="date",
    ),
    FieldSpec(
        key="nationality",
        label="Nationality",
        synonyms=["nationality", "citizenship"],
        normalizer="country",
    ),
    FieldSpec(
        key="sex",
        label="Sex",
        synonyms=["sex", "gender", "dbc", "dbcname"],
        normalizer="sex",
    ),
]


FIELD_REGISTRY: Dict[str, FieldSpec] = {spec.key: spec for spec in FIELDS}
SYNONYM_INDEX: Dict[str, str] = {synonym: spec.key for spec in FIELDS for synonym in spec.synonyms}


def iter_fields() -> Iterable[FieldSpec]:
    return FIELDS


def get_field_spec(key: str) -> Optional[FieldSpec]:
    return FIELD_REGISTRY.get(key)


def canonical_key_for(field_name: Optional[str]) -> Optional[str]:
    if not field_name:
        return None
    return SYNONYM_INDEX.get(str(field_name).strip().lower())


def field_registry_payload() -> Dict[str, object]:
    return {
        "fields": [
            {
                "key": spec.key,
                "label": spec.label,
                "synonyms": list(spec.synonyms),
                "normalizer": spec.normalizer,
            }
            for spec in FIELDS
        ],
        "order": [spec.key for spec in FIELDS],
    }
