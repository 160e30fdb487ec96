# Taskboard - field normalizer
#
# Every imported header list and row passes through here before a Task is
# built from it.
#
# RULES:
#   - Headers are trimmed, blanks dropped, duplicates removed (first seen wins)
#   - Canonical headers always hold an assignee column and a Status column
#   - Assignee aliases resolve in a fixed priority order
#   - Nothing here raises: missing data degrades to "" or the default status

import math
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .schema import (
    ASSIGNEE_ALIASES,
    DEFAULT_STATUS,
    STATUS_ALIASES,
    SYSTEM_FIELDS_LOWER,
)

ASSIGNEE_HEADER = "Assigned To"
STATUS_HEADER = "Status"

_ASSIGNEE_LOWER = {name.lower() for name in ASSIGNEE_ALIASES}


# ═══════════════════════════════════════════════════════════════
# HEADERS
# ═══════════════════════════════════════════════════════════════

def _dedupe(items: Iterable[str]) -> List[str]:
    seen = set()
    out = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def clean_headers(raw_headers: Optional[Iterable[Any]]) -> List[str]:
    """Trim, drop empty entries, de-duplicate preserving first-seen order."""
    cleaned = []
    for header in raw_headers or []:
        if header is None:
            continue
        text = str(header).strip()
        if text:
            cleaned.append(text)
    return _dedupe(cleaned)


def is_assignee_header(name: str) -> bool:
    return name.strip().lower() in _ASSIGNEE_LOWER


def is_status_header(name: str) -> bool:
    return name.strip().lower() == "status"


def is_system_field(name: str) -> bool:
    """True for columns the core struct owns (never copied into task fields)."""
    return name.strip().lower() in SYSTEM_FIELDS_LOWER


def canonical_headers(raw_headers: Optional[Iterable[Any]]) -> List[str]:
    """
    Clean a header list and guarantee the assignee and Status columns.

    Idempotent: a list that already holds both comes back unchanged.
    """
    headers = clean_headers(raw_headers)
    if not any(is_assignee_header(h) for h in headers):
        headers.append(ASSIGNEE_HEADER)
    if not any(is_status_header(h) for h in headers):
        headers.append(STATUS_HEADER)
    return _dedupe(headers)


# ═══════════════════════════════════════════════════════════════
# ROW VALUES
# ═══════════════════════════════════════════════════════════════

def is_blank(value: Any) -> bool:
    """None, NaN and whitespace-only strings count as blank."""
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return not str(value).strip()


def resolve_assignee(row: Mapping[str, Any]) -> str:
    for alias in ASSIGNEE_ALIASES:
        value = row.get(alias)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def resolve_status(row: Mapping[str, Any]) -> str:
    for alias in STATUS_ALIASES:
        value = row.get(alias)
        if not is_blank(value):
            return str(value)
    return DEFAULT_STATUS


def clean_value(value: Any) -> Any:
    """Map one cell to a storable scalar, or None when it should be omitted."""
    if value is None or value == "":
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, (str, int, float, datetime, date)):
        return value
    # pandas Timestamp and friends
    to_py = getattr(value, "to_pydatetime", None)
    if callable(to_py):
        return to_py()
    return str(value)


def clean_row(row: Mapping[Any, Any]) -> Dict[str, Any]:
    """Trim keys, drop blank keys, and drop empty cells."""
    cleaned: Dict[str, Any] = {}
    for key, value in row.items():
        if key is None:
            continue
        name = str(key).strip()
        if not name:
            continue
        try:
            value = clean_value(value)
        except Exception:
            # Unrepresentable cell: omit it from this task only
            continue
        if value is not None:
            cleaned[name] = value
    return cleaned
