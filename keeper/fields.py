"""Field extraction helpers for loosely-typed catalog documents.

Catalog APIs are inconsistent about field names and types: a value may be
a string in one document and a list in the next, a count may be spelled in
two ways, and identifiers arrive as strings or numbers. Each helper here
narrows one such field and returns ``None`` (or an empty list) instead of
raising.
"""
import re
from typing import Any, Iterable, List, Optional, Tuple


def is_int(value: Any) -> bool:
    """True for real integers; ``bool`` is excluded."""
    return isinstance(value, int) and not isinstance(value, bool)


def as_int(value: Any) -> Optional[int]:
    """Narrow ints, integral floats and digit strings to ``int``."""
    if is_int(value):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    return None


def first_string(value: Any) -> Optional[str]:
    """
    Collapse a string-or-sequence field to a single string.

    Args:
        value: A string, a list/tuple of values, or anything else

    Returns:
        The string itself, the first non-empty string of a sequence, or None
    """
    if isinstance(value, str):
        return value if value.strip() else None
    if isinstance(value, (list, tuple)):
        for item in value:
            if isinstance(item, str) and item.strip():
                return item
    return None


def string_list(value: Any) -> List[str]:
    """Return the string entries of a sequence; wrap a bare string."""
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [item for item in value if isinstance(item, str) and item.strip()]
    return []


def resolve_count(response: Any, fields: Iterable[str], fallback: int) -> int:
    """
    Read a result count that may live under several field names.

    Args:
        response: Raw response mapping
        fields: Candidate field names, highest priority first
        fallback: Value used when no field holds an integer

    Returns:
        The first integer-valued field, or ``fallback``
    """
    if isinstance(response, dict):
        for name in fields:
            value = response.get(name)
            if is_int(value):
                return value
            if isinstance(value, float) and value.is_integer():
                return int(value)
    return fallback


def clean_isbn(value: Any) -> str:
    """Stringify an identifier and keep only digits and ``X``."""
    return re.sub(r"[^0-9X]", "", str(value).upper())


def is_valid_isbn10(isbn: str) -> bool:
    """Validate ISBN-10 using check digit."""
    if not re.match(r"^[0-9]{9}[0-9X]$", isbn):
        return False
    total = sum((10 - i) * (10 if ch == "X" else int(ch)) for i, ch in enumerate(isbn))
    return total % 11 == 0


def is_valid_isbn13(isbn: str) -> bool:
    """Validate ISBN-13 using check digit."""
    if not re.match(r"^[0-9]{13}$", isbn):
        return False
    total = sum(int(ch) if i % 2 == 0 else int(ch) * 3 for i, ch in enumerate(isbn[:12]))
    return (10 - total % 10) % 10 == int(isbn[-1])


def classify_isbns(values: Any) -> Tuple[Optional[str], Optional[str]]:
    """
    Pick an ISBN-10 and an ISBN-13 out of a mixed identifier list.

    Entries may be strings or numbers. The first valid entry of each
    length wins; entries of any other length, or with a bad check digit,
    are ignored.

    Returns:
        ``(isbn10, isbn13)``, either of which may be None
    """
    if values is None or isinstance(values, bool):
        return None, None
    if not isinstance(values, (list, tuple)):
        values = [values]

    isbn10 = None
    isbn13 = None
    for value in values:
        if value is None or isinstance(value, bool):
            continue
        candidate = clean_isbn(value)
        if len(candidate) == 10 and isbn10 is None and is_valid_isbn10(candidate):
            isbn10 = candidate
        elif len(candidate) == 13 and isbn13 is None and is_valid_isbn13(candidate):
            isbn13 = candidate
        if isbn10 and isbn13:
            break
    return isbn10, isbn13


def cover_id(value: Any, invalid: Iterable[int] = (0,)) -> Optional[int]:
    """Accept a positive cover id that is not a known sentinel."""
    number = as_int(value)
    if number is None or number <= 0 or number in set(invalid):
        return None
    return number
