"""Coercion helpers for loosely typed vendor payloads."""

from typing import Any, Mapping, Optional


def to_int(value: Any, default: int = 0) -> int:
    """Coerce strings like ``"12"`` or ``"12.0"`` and None to int."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return default


def safe_ratio(numerator: float, denominator: float) -> float:
    """``numerator / denominator``, or 0.0 when the denominator is not positive."""
    if not denominator or denominator <= 0:
        return 0.0
    return numerator / denominator


def first_present(data: Optional[Mapping[str, Any]], *keys: str, default: Any = None) -> Any:
    """Return the first value in ``data`` that is neither None nor empty string."""
    if not data:
        return default
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return default
