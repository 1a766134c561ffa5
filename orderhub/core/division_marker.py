"""
Split marker helpers.

Divisions created before the original_order_id column existed only carry
their parent reference inside the free-text details field, e.g.

    "split from original order ORD-20260101-0007"

These helpers read and write that marker. They never raise: anything that
is not a string containing a well-formed marker is simply "not a division".
"""
import re
from typing import Optional

DIVISION_MARKER = "split from original order "

_MARKER_PATTERN = re.compile(re.escape(DIVISION_MARKER) + r"(\S+)")


def is_division(details: Optional[str]) -> bool:
    """True iff details contains the split marker."""
    if not isinstance(details, str):
        return False
    return DIVISION_MARKER in details


def extract_original_order_id(details: Optional[str]) -> Optional[str]:
    """Return the token following the split marker, or None."""
    if not isinstance(details, str):
        return None
    match = _MARKER_PATTERN.search(details)
    return match.group(1) if match else None


def build_division_marker(original_ref: str) -> str:
    return f"{DIVISION_MARKER}{original_ref}"
