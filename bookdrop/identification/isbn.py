"""
ISBN validation and normalization.
"""

import re
from typing import Optional

_SEPARATORS = re.compile(r"[-\s]")


def normalize_isbn(isbn: str) -> str:
    """Strip hyphens and whitespace."""
    return _SEPARATORS.sub("", isbn or "")


def is_valid_isbn10(isbn: str) -> bool:
    """
    Validate an ISBN-10 checksum.

    The first nine characters must be digits; the check character is
    ``(11 - sum % 11) % 11`` with 10 written as ``X``.
    """
    if len(isbn) != 10:
        return False

    total = 0
    for i in range(9):
        if not isbn[i].isdigit():
            return False
        total += int(isbn[i]) * (10 - i)

    expected = (11 - (total % 11)) % 11
    check = "X" if expected == 10 else str(expected)
    return isbn[9].upper() == check


def is_valid_isbn13(isbn: str) -> bool:
    """Validate an ISBN-13 checksum (alternating 1/3 weights)."""
    if len(isbn) != 13 or not isbn.isdigit():
        return False

    total = sum(int(isbn[i]) * (1 if i % 2 == 0 else 3) for i in range(12))
    expected = (10 - (total % 10)) % 10
    return int(isbn[12]) == expected


def is_valid_isbn(isbn: str) -> bool:
    """Normalize, then accept a valid ISBN-10 or ISBN-13."""
    clean = normalize_isbn(isbn)
    return is_valid_isbn10(clean) or is_valid_isbn13(clean)


def clean_isbn(isbn: Optional[str]) -> Optional[str]:
    """Return the normalized ISBN, or None when absent or invalid."""
    if not isbn:
        return None
    clean = normalize_isbn(isbn).upper()
    if is_valid_isbn10(clean) or is_valid_isbn13(clean):
        return clean
    return None
