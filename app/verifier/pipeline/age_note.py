from __future__ import annotations

from typing import Optional

# Raw barcode payloads occasionally leak into POS notes; drop everything from the marker on.
RAW_SCAN_MARKERS = ("@ANSI", "]L")
MAX_AGE = 130


def coerce_age(age: object) -> Optional[int]:
    try:
        parsed = int(str(age).strip())
    except (TypeError, ValueError):
        return None
    if parsed < 0 or parsed > MAX_AGE:
        return None
    return parsed


def build_age_note_line(age: object) -> Optional[str]:
    value = coerce_age(age)
    if value is None:
        return None
    return f"Age: {value}"


def strip_raw_scan(note: Optional[str]) -> str:
    text = str(note or "")
    positions = [text.find(marker) for marker in RAW_SCAN_MARKERS if marker in text]
    if positions:
        return text[: min(positions)].rstrip()
    return text


def append_age_note(existing_note: Optional[str], age: object) -> str:
    """Append an ``Age: NN`` line unless the note already ends with the same one."""
    cleaned = strip_raw_scan(existing_note)
    age_line = build_age_note_line(age)
    if age_line is None:
        return cleaned

    lines = [line.rstrip() for line in cleaned.splitlines() if line.strip()]
    if lines and lines[-1].strip() == age_line:
        return "\n".join(lines)
    return "\n".join(lines + [age_line])
