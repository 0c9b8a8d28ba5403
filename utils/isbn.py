"""
ISBN validation and conversion.

Every ISBN that enters the system is normalized to ISBN-13 before it is
stored, so the rest of the app only ever compares one form.
"""
import re
from typing import Optional

_SEPARATORS = re.compile(r"[-\s]")
_ISBN10 = re.compile(r"^[0-9]{9}[0-9Xx]$")
_ISBN13 = re.compile(r"^[0-9]{13}$")


def clean(value: str) -> str:
    """Strip hyphens and whitespace."""
    return _SEPARATORS.sub("", value)


def _isbn13_check_digit(base: str) -> int:
    total = sum(int(ch) * (1 if i % 2 == 0 else 3) for i, ch in enumerate(base[:12]))
    return (10 - (total % 10)) % 10


def is_valid_isbn10(value: str) -> bool:
    digits = clean(value)
    if not _ISBN10.match(digits):
        return False

    total = sum(int(digits[i]) * (10 - i) for i in range(9))
    last = digits[9].upper()
    total += 10 if last == "X" else int(last)
    return total % 11 == 0


def is_valid_isbn13(value: str) -> bool:
    digits = clean(value)
    if not _ISBN13.match(digits):
        return False
    return _isbn13_check_digit(digits) == int(digits[12])


def isbn10_to_13(value: str) -> str:
    # caller validates first; the check digit of the ISBN-10 is dropped
    base = "978" + clean(value)[:9]
    return base + str(_isbn13_check_digit(base))


def normalize_isbn(value: str) -> Optional[str]:
    """
    Returns the ISBN-13 form of value, or None when it is neither a valid
    ISBN-10 nor a valid ISBN-13.
    """
    digits = clean(value or "")
    if is_valid_isbn13(digits):
        return digits
    if is_valid_isbn10(digits):
        return isbn10_to_13(digits)
    return None
