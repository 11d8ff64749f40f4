from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass
from typing import Optional

ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})")
STRICT_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


@dataclass(frozen=True)
class AgeResult:
    age: int
    formatted: str
    iso: str


def _today(today: Optional[dt.date]) -> dt.date:
    return today or dt.date.today()


def format_iso(year: int, month: int, day: int) -> str:
    return f"{year:04d}-{month:02d}-{day:02d}"


def format_us(year: int, month: int, day: int) -> str:
    return f"{month:02d}/{day:02d}/{year:04d}"


def _split_eight_digits(digits: str):
    """Split an 8 digit date, reading YYYYMMDD when the lead pair cannot be a month."""
    if int(digits[0:2]) > 12:
        return int(digits[0:4]), int(digits[4:6]), int(digits[6:8])
    return int(digits[4:8]), int(digits[0:2]), int(digits[2:4])


def age_on(birth: dt.date, today: Optional[dt.date] = None) -> int:
    current = _today(today)
    age = current.year - birth.year
    if (current.month, current.day) < (birth.month, birth.day):
        age -= 1
    return age


def calculate_age(dob: Optional[str], today: Optional[dt.date] = None) -> Optional[AgeResult]:
    """Compute age in whole years from an MMDDYYYY, YYYYMMDD or YYYY-MM-DD string.

    Returns None for anything too short or not a real calendar date.
    """
    if not dob:
        return None
    raw = str(dob).strip()
    if len(raw) < 8:
        return None

    if len(raw) == 8:
        if not raw.isdigit():
            return None
        year, month, day = _split_eight_digits(raw)
    else:
        match = ISO_DATE_RE.match(raw)
        if not match:
            return None
        year, month, day = (int(part) for part in match.groups())

    try:
        birth = dt.date(year, month, day)
    except ValueError:
        return None

    return AgeResult(
        age=age_on(birth, today),
        formatted=format_us(year, month, day),
        iso=format_iso(year, month, day),
    )


def normalize_date_string(value: Optional[str]) -> str:
    if not value:
        return ""
    trimmed = str(value).strip()
    if STRICT_ISO_DATE_RE.match(trimmed):
        return trimmed

    digits = re.sub(r"\D", "", trimmed)
    if len(digits) != 8:
        return ""
    year, month, day = _split_eight_digits(digits)
    if 1 <= month <= 12 and 1 <= day <= 31:
        return format_iso(year, month, day)
    return ""


def expand_two_digit_year(two_digit: str, today: Optional[dt.date] = None) -> Optional[int]:
    # Pivot on the current two digit year; a year equal to it reads as this century.
    try:
        value = int(two_digit)
    except (TypeError, ValueError):
        return None
    current = _today(today).year % 100
    century = 1900 if value > current else 2000
    return century + value


def normalize_sex(value: Optional[str]) -> str:
    if not value:
        return ""
    v = str(value).strip().upper()
    if v == "M" or v.startswith("MALE"):
        return "M"
    if v == "F" or v.startswith("FEMALE"):
        return "F"
    if v == "X" or v.startswith("NON"):
        return "X"
    return ""


def normalize_document_number(value: Optional[str]) -> str:
    if not value:
        return ""
    return re.sub(r"\s+", "", str(value).strip()).upper()


def normalize_country_code(value: Optional[str]) -> str:
    if not value:
        return ""
    return str(value).strip().upper()


def clean_name(value: Optional[str]) -> str:
    if not value:
        return ""
    return re.sub(r"\s+", " ", str(value).strip())
