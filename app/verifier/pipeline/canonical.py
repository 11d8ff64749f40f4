from __future__ import annotations

import datetime as dt
from typing import Mapping, Optional

from ..schemas import CanonicalIdentity
from .normalize import (
    calculate_age,
    clean_name,
    normalize_country_code,
    normalize_date_string,
    normalize_document_number,
    normalize_sex,
)


def build_identity(
    raw: Mapping[str, Optional[str]],
    *,
    document_type: str,
    source: str,
    today: Optional[dt.date] = None,
) -> CanonicalIdentity:
    """Apply the canonical field rules shared by the barcode and MRZ parsers.

    ``raw`` is keyed by canonical field name (see ``field_registry``). Missing or
    unparseable values end up empty rather than raising.
    """
    document_number = normalize_document_number(raw.get("document_number"))
    license_number = normalize_document_number(raw.get("license_number"))
    if not document_number and license_number:
        document_number = license_number
    if license_number:
        license_number = document_number

    issuing_country = normalize_country_code(raw.get("issuing_country"))
    nationality = normalize_country_code(raw.get("nationality")) or issuing_country

    birth = calculate_age(raw.get("date_of_birth"), today=today)
    expiry = normalize_date_string(raw.get("document_expiry"))

    return CanonicalIdentity(
        first_name=clean_name(raw.get("first_name")),
        last_name=clean_name(raw.get("last_name")),
        middle_name=clean_name(raw.get("middle_name")),
        date_of_birth=birth.iso if birth else None,
        date_of_birth_formatted=birth.formatted if birth else None,
        document_type=document_type,
        document_number=document_number,
        license_number=license_number,
        issuing_country=issuing_country,
        nationality=nationality,
        document_expiry=expiry or None,
        sex=normalize_sex(raw.get("sex")),
        source=source,
    )


def identity_age(identity: CanonicalIdentity, today: Optional[dt.date] = None) -> Optional[int]:
    result = calculate_age(identity.date_of_birth, today=today)
    return result.age if result else None
