# utils.py - request parsing and validation helpers shared by the blueprints

from decimal import Decimal

from flask import request

from ledger.exceptions import ValidationError
from ledger.money import to_decimal

_MISSING = object()


def get_json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid or missing JSON body")
    return data


def parse_id(raw, label: str = "ID") -> int:
    """Path / query identifiers. Raises ValidationError('Invalid <label>')."""
    try:
        value = int(str(raw))
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {label}")
    return value


def require_int(data: dict, key: str, positive: bool = False, non_negative: bool = False,
                default=_MISSING):
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        if default is not _MISSING:
            return default
        raise ValidationError(f"{key} is required")
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer")
    if positive and value <= 0:
        raise ValidationError(f"{key} must be a positive integer")
    if non_negative and value < 0:
        raise ValidationError(f"{key} must not be negative")
    return value


def optional_int(data: dict, key: str, **kwargs):
    return require_int(data, key, default=None, **kwargs)


def require_number(data: dict, key: str, minimum=None, maximum=None, non_negative: bool = False,
                   default=_MISSING) -> Decimal:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        if default is not _MISSING:
            return default
        raise ValidationError(f"{key} is required")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(f"{key} must be a number")
    try:
        number = to_decimal(value, key)
    except ValueError as e:
        raise ValidationError(str(e))
    if non_negative and number < 0:
        raise ValidationError(f"{key} must not be negative")
    if minimum is not None and number < Decimal(str(minimum)):
        raise ValidationError(f"{key} must be at least {minimum}")
    if maximum is not None and number > Decimal(str(maximum)):
        raise ValidationError(f"{key} must be at most {maximum}")
    return number


def optional_number(data: dict, key: str, **kwargs):
    return require_number(data, key, default=None, **kwargs)


def require_string(data: dict, key: str, min_length: int = 1, strip: bool = False,
                   message: str = None, default=_MISSING) -> str:
    value = data.get(key, _MISSING)
    if value is _MISSING or value is None:
        if default is not _MISSING:
            return default
        raise ValidationError(message or f"{key} is required")
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string")
    if strip:
        value = value.strip()
    if len(value) < min_length:
        raise ValidationError(message or f"{key} must be at least {min_length} characters")
    return value


def optional_string(data: dict, key: str, **kwargs):
    kwargs.setdefault("min_length", 0)
    return require_string(data, key, default=None, **kwargs)


def optional_bool(data: dict, key: str):
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, bool):
        raise ValidationError(f"{key} must be a boolean")
    return value


def require_choice(data: dict, key: str, choices) -> str:
    value = data.get(key)
    if value not in choices:
        raise ValidationError(f"{key} must be one of: {', '.join(choices)}")
    return value


