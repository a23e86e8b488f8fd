"""
Param parsing utilities for request dicts coming from the UI or the API.
Supports dotted keys for nested dicts; validation raises InvalidParameter.
"""
import math
from typing import Any, Optional

from remix_engine.core.errors import InvalidParameter


# -----------------------------------------------------------------------------
# Lookup helpers
# -----------------------------------------------------------------------------

def get_param(params: dict, name: str, default: Any = None) -> Any:
    """
    Read a value from params, supporting dotted keys for nested dicts.
    E.g. get_param(p, "effect.params.delay", 0.3) -> p["effect"]["params"]["delay"] or default.
    If any intermediate key is missing or not a dict, returns default.
    """
    if not params or not name:
        return default
    keys = name.split(".")
    current = params
    for key in keys[:-1]:
        next_val = current.get(key)
        if next_val is None or not isinstance(next_val, dict):
            return default
        current = next_val
    return current.get(keys[-1], default)


def to_float(value: Any, name: str) -> float:
    """Coerce to a finite float or raise InvalidParameter naming the field."""
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise InvalidParameter(f"{name} must be a number, got {value!r}")
    if not math.isfinite(v):
        raise InvalidParameter(f"{name} must be finite, got {v}")
    return v


def require_range(
    name: str,
    value: Any,
    min: Optional[float] = None,
    max: Optional[float] = None,
    min_inclusive: bool = True,
    max_inclusive: bool = True,
) -> float:
    """
    Validate value against [min, max] (open ends when *_inclusive is False).
    Returns the value as float. Bounds that are None are not checked.
    """
    v = to_float(value, name)
    if min is not None:
        if v < min or (not min_inclusive and v == min):
            op = ">=" if min_inclusive else ">"
            raise InvalidParameter(f"{name} must be {op} {min}, got {v}")
    if max is not None:
        if v > max or (not max_inclusive and v == max):
            op = "<=" if max_inclusive else "<"
            raise InvalidParameter(f"{name} must be {op} {max}, got {v}")
    return v
