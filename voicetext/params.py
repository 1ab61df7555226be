"""Typed access to JSON request bodies; wrong types become ValidationError (400)."""
from .errors import ValidationError


def str_param(data, key, default=''):
    """Stripped string value of ``key``; missing or null gives ``default``."""
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValidationError(f'{key} must be a string')
    return value.strip()


def float_param(data, key, default=1.0):
    value = data.get(key, default)
    if isinstance(value, bool):
        raise ValidationError(f'{key} must be a number')
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be a number') from None


def int_param(data, key, default=None):
    """Non-negative integer value of ``key``; numeric strings are accepted."""
    value = data.get(key)
    if value is None or value == '':
        return default
    if isinstance(value, bool):
        raise ValidationError(f'{key} must be a whole number')
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{key} must be a whole number') from None
    if number < 0:
        raise ValidationError(f'{key} cannot be negative')
    return number
