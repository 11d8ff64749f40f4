from __future__ import annotations

import datetime as dt
import re
from typing import List, Optional

from dateutil import parser

from ..schemas import CanonicalIdentity, RuleIssue, ScanResultRequest

RE_TRANSACTION_ID = re.compile(r"^[A-Za-z0-9_-]{1,100}$")
RE_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
MIN_BIRTH_DATE = dt.date(1900, 1, 1)
MAX_NAME_LENGTH = 100
MAX_AGE = 150


def is_valid_transaction_id(value: Optional[str]) -> bool:
    return bool(value) and bool(RE_TRANSACTION_ID.match(value))


def _check_birth_date(value: Optional[str], today: dt.date) -> Optional[RuleIssue]:
    if not value:
        return None
    if not RE_ISO_DATE.match(value):
        return RuleIssue(
            field="identity.date_of_birth",
            rule="format",
            message="Date of birth must be in YYYY-MM-DD format",
            current_value=value,
        )
    try:
        parsed = parser.isoparse(value).date()
    except (ValueError, OverflowError):
        return RuleIssue(
            field="identity.date_of_birth",
            rule="calendar",
            message="Date of birth is not a real date",
            current_value=value,
        )
    if parsed > today:
        return RuleIssue(
            field="identity.date_of_birth",
            rule="future",
            message="Date of birth cannot be in the future",
            current_value=value,
        )
    if parsed < MIN_BIRTH_DATE:
        return RuleIssue(
            field="identity.date_of_birth",
            rule="too_old",
            message="Date of birth is too old",
            current_value=value,
        )
    return None


def _check_identity(identity: CanonicalIdentity, today: dt.date) -> List[RuleIssue]:
    issues: List[RuleIssue] = []
    for key in ("first_name", "last_name", "middle_name"):
        value = getattr(identity, key)
        if len(value) > MAX_NAME_LENGTH:
            issues.append(
                RuleIssue(
                    field=f"identity.{key}",
                    rule="length",
                    message=f"Name must be under {MAX_NAME_LENGTH} characters",
                    current_value=value[:MAX_NAME_LENGTH],
                )
            )
    birth_issue = _check_birth_date(identity.date_of_birth, today)
    if birth_issue:
        issues.append(birth_issue)
    return issues


def validate_scan_result(payload: ScanResultRequest, today: Optional[dt.date] = None) -> List[RuleIssue]:
    current = today or dt.date.today()
    issues: List[RuleIssue] = []
    if payload.age is not None and not 0 <= payload.age <= MAX_AGE:
        issues.append(
            RuleIssue(
                field="age",
                rule="range",
                message=f"Age must be between 0 and {MAX_AGE}",
                current_value=str(payload.age),
            )
        )
    if payload.customer_name and len(payload.customer_name) > MAX_NAME_LENGTH * 2:
        issues.append(
            RuleIssue(
                field="customer_name",
                rule="length",
                message="Customer name is too long",
                current_value=payload.customer_name[:MAX_NAME_LENGTH],
            )
        )
    if payload.identity is not None:
        issues.extend(_check_identity(payload.identity, current))
    return issues
