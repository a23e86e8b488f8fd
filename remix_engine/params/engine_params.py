"""
Engine params contract: request dicts from the UI use camelCase keys
(wetLevel, originalVolume, mixMode...). Everything that reaches resolve goes through
to_engine_params first, which converts keys to snake_case at every nesting level.
In dev mode, unknown top-level keys are logged.
"""
import logging
import re
from typing import Any, Dict

from remix_engine.core import config
from remix_engine.core.errors import InvalidParameter

logger = logging.getLogger("remix-engine")

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")

KNOWN_REMIX_KEYS = frozenset({
    "original_volume",
    "remix_volume",
    "mix_mode",
    "fade_in",
    "fade_out",
    "trim_start",
    "trim_end",
    "effect",
    "original_effect",
    "clips",
    "template",
    "sample_rate",
    "channels",
})


def snake_case(key: str) -> str:
    """wetLevel -> wet_level; already-snake keys pass through."""
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def normalize_keys(value: Any) -> Any:
    """Recursively snake_case dict keys; lists are walked, scalars returned as-is."""
    if isinstance(value, dict):
        return {snake_case(str(k)): normalize_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [normalize_keys(v) for v in value]
    return value


def to_engine_params(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize a raw remix params body to engine params.
    This is the single entry point for params that reach resolve_remix_params.
    """
    params = normalize_keys(raw or {})
    if not isinstance(params, dict):
        raise InvalidParameter(f"params must be an object, got {type(params).__name__}")
    unknown = sorted(k for k in params if k not in KNOWN_REMIX_KEYS)
    if unknown and config.DEV:
        logger.warning("[Parameter Contract] Unknown remix params ignored: %s", unknown)
    return params
