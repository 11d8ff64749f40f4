from __future__ import annotations

import datetime as dt
import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from ..schemas import CanonicalIdentity
from .canonical import build_identity
from .normalize import expand_two_digit_year, format_iso

LOGGER = logging.getLogger(__name__)

MRZ_NOISE_RE = re.compile(r"[^A-Z0-9<]")
MIN_LINE_LENGTH = 30
TD3_MIN_LINE_LENGTH = 40


@dataclass
class MRZResult:
    fields: Dict[str, Optional[str]]
    raw_lines: List[str]
    document_type: str


def _normalize_mrz_line(raw: str) -> str:
    line = re.sub(r"\s+", "", raw).upper()
    return MRZ_NOISE_RE.sub("", line)


def sanitize_mrz_lines(lines: Iterable[object]) -> List[str]:
    cleaned: List[str] = []
    for raw in lines or []:
        if not isinstance(raw, str):
            continue
        line = _normalize_mrz_line(raw)
        # Short lines are partial captures or printed text near the zone.
        if len(line) >= MIN_LINE_LENGTH:
            cleaned.append(line)
    return cleaned


def _strip_filler(value: str) -> str:
    return re.sub(r"<+", "", value).strip()


def _filler_to_spaces(value: str) -> str:
    return re.sub(r"<+", " ", value).strip()


def extract_mrz_names(raw: str) -> Dict[str, str]:
    parts = (raw or "").split("<<")
    surname = parts[0]
    given = parts[1] if len(parts) > 1 else ""
    given_parts = [part for part in given.split("<") if part]
    first = given_parts[0] if given_parts else ""
    middle = " ".join(given_parts[1:])
    return {
        "last_name": _filler_to_spaces(surname),
        "first_name": _filler_to_spaces(first),
        "middle_name": _filler_to_spaces(middle),
    }


def parse_mrz_date(raw: str, today: Optional[dt.date] = None) -> Optional[str]:
    """Decode a YYMMDD field into an ISO date string.

    Two digit years use the current-year pivot from ``expand_two_digit_year``, so a
    year exactly one past the pivot reads as last century. Only month/day ranges are
    checked here.
    """
    if not raw or len(raw) < 6 or not raw[:6].isdigit():
        return None
    year = expand_two_digit_year(raw[0:2], today=today)
    month = int(raw[2:4])
    day = int(raw[4:6])
    if year is None or not 1 <= month <= 12 or not 1 <= day <= 31:
        return None
    return format_iso(year, month, day)


def _sex_field(raw: str) -> str:
    return raw.replace("<", "") or "U"


def parse_td3(lines: List[str], today: Optional[dt.date] = None) -> MRZResult:
    line1, line2 = lines[0], lines[1]
    fields: Dict[str, Optional[str]] = {
        "issuing_country": _strip_filler(line1[2:5]),
        "document_number": _strip_filler(line2[0:9]),
        "nationality": _strip_filler(line2[10:13]),
        "date_of_birth": parse_mrz_date(line2[13:19], today=today),
        "sex": _sex_field(line2[20:21]),
        "document_expiry": parse_mrz_date(line2[21:27], today=today),
    }
    fields.update(extract_mrz_names(line1[5:]))
    return MRZResult(fields=fields, raw_lines=[line1, line2], document_type="passport")


def parse_td1(lines: List[str], today: Optional[dt.date] = None) -> MRZResult:
    line1, line2, line3 = lines[0], lines[1], lines[2]
    fields: Dict[str, Optional[str]] = {
        "document_number": _strip_filler(line1[5:14]),
        "issuing_country": _strip_filler(line1[2:5]),
        "date_of_birth": parse_mrz_date(line2[0:6], today=today),
        "sex": _sex_field(line2[7:8]),
        "document_expiry": parse_mrz_date(line2[8:14], today=today),
        "nationality": _strip_filler(line2[15:18]),
    }
    fields.update(extract_mrz_names(line3))
    return MRZResult(fields=fields, raw_lines=[line1, line2, line3], document_type="mrz_id")


def detect_mrz(lines: Iterable[object], today: Optional[dt.date] = None) -> Optional[MRZResult]:
    sanitized = sanitize_mrz_lines(lines)
    if not sanitized:
        return None
    if len(sanitized) == 2 and all(len(line) >= TD3_MIN_LINE_LENGTH for line in sanitized):
        return parse_td3(sanitized, today=today)
    if len(sanitized) >= 3 and all(len(line) >= MIN_LINE_LENGTH for line in sanitized[:2]):
        return parse_td1(sanitized[:3], today=today)
    LOGGER.info("MRZ shape not recognised (%d usable lines)", len(sanitized))
    return None


def parse_mrz(lines: Iterable[object], today: Optional[dt.date] = None) -> Optional[CanonicalIdentity]:
    """Parse TD3 (passport) or TD1 (ID card) MRZ lines.

    Returns None when the input does not look like either layout so the caller can
    fall back to manual entry. Check digits are not verified.
    """
    result = detect_mrz(lines, today=today)
    if result is None:
        return None
    return build_identity(result.fields, document_type=result.document_type, source="mrz", today=today)


def parse_mrz_text(text: Optional[str], today: Optional[dt.date] = None) -> Optional[CanonicalIdentity]:
    if not text:
        return None
    return parse_mrz(text.splitlines(), today=today)
