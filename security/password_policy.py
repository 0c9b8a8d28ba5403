from typing import List, Tuple

from flask import current_app

_DEFAULTS = {
    "PASSWORD_MIN_LEN": 6,
    "PASSWORD_MAX_LEN": 128,
}


def _cfg(name: str) -> int:
    try:
        return int(current_app.config.get(name, _DEFAULTS[name]))
    except RuntimeError:  # outside app context
        return _DEFAULTS[name]


def validate_password(pw) -> Tuple[bool, List[str]]:
    errors: List[str] = []

    if not isinstance(pw, str):
        return False, ["Password must be a string"]

    min_len = _cfg("PASSWORD_MIN_LEN")
    max_len = _cfg("PASSWORD_MAX_LEN")

    if len(pw) < min_len:
        errors.append(f"Password must be at least {min_len} characters")
    if len(pw) > max_len:
        errors.append(f"Password must be at most {max_len} characters")

    return (len(errors) == 0), errors
