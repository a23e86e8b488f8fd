"""
Parameter resolution: deep-merge schema defaults with incoming params, validate against
PARAM_SCHEMA, and build typed requests (EffectRequest, RemixParams).
Incoming params override defaults at any nesting level. Input dicts are never mutated.
"""
import base64
import binascii
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional

from remix_engine.core import config
from remix_engine.core.errors import DecodeError, InvalidFormat, InvalidParameter, UnsupportedEffect
from remix_engine.core.params import get_param, require_range
from remix_engine.core.types import Echo, EffectRequest, NoEffect, Reverb, VoiceFilter, VoiceFilterKind
from remix_engine.params.schema import PARAM_SCHEMA, defaults_for

MIX_MODES = ("overlay", "sequential")
TEMPLATE_TYPES = ("overlay", "sequential", "custom")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dicts. override values take precedence.
    Returns a new dict (does not mutate inputs).
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def validate_param(section: str, name: str, value: Any) -> Any:
    """Check one value against its schema entry. Returns the coerced value."""
    entry = PARAM_SCHEMA[section][name]
    label = f"{section}.{name}"
    if entry["type"] == "enum":
        if value not in entry["choices"]:
            raise InvalidParameter(f"{label} must be one of {entry['choices']}, got {value!r}")
        return value
    return require_range(
        label,
        value,
        entry["min"],
        entry["max"],
        min_inclusive=not entry.get("min_exclusive", False),
        max_inclusive=not entry.get("max_exclusive", False),
    )


def _resolve_section(section: str, params: Dict[str, Any]) -> Dict[str, Any]:
    merged = _deep_merge(defaults_for(section), params)
    return {name: validate_param(section, name, merged[name]) for name in PARAM_SCHEMA[section]}


# -----------------------------------------------------------------------------
# Effects
# -----------------------------------------------------------------------------

def resolve_effect(spec: Optional[Dict[str, Any]]) -> EffectRequest:
    """
    Build an EffectRequest from {"type": ..., "params": {...}, "enabled": bool}.
    Effect params may also sit next to "type" instead of under "params".
    type: none | echo | reverb | filter (voice filter).
    """
    if not spec:
        return NoEffect()
    if isinstance(spec, str):
        spec = {"type": spec}
    if not isinstance(spec, dict):
        raise InvalidParameter(f"effect must be an object or a type name, got {spec!r}")
    if not get_param(spec, "enabled", True):
        return NoEffect()

    effect_type = spec.get("type", "none")
    params = {k: v for k, v in spec.items() if k not in ("type", "params", "enabled")}
    nested = spec.get("params")
    if isinstance(nested, dict):
        params = _deep_merge(params, nested)

    if effect_type in (None, "none"):
        return NoEffect()
    if effect_type == "echo":
        p = _resolve_section("echo", params)
        return Echo(delay_s=p["delay"], feedback=p["feedback"], wet_level=p["wet_level"])
    if effect_type == "reverb":
        p = _resolve_section("reverb", params)
        return Reverb(room_size=p["room_size"], damping=p["damping"], wet_level=p["wet_level"])
    if effect_type in ("filter", "voice_filter"):
        kind = _deep_merge(defaults_for("voice_filter"), params)["type"]
        try:
            kind = VoiceFilterKind(kind)
        except ValueError:
            raise UnsupportedEffect(f"unknown voice filter {kind!r}")
        p = _resolve_section("voice_filter", {**params, "type": kind.value})
        return VoiceFilter(kind=kind, intensity=p["intensity"])
    raise UnsupportedEffect(f"unknown effect type {effect_type!r}")


# -----------------------------------------------------------------------------
# Remix params
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class RemixTemplate:
    """Saved mix preset. overlay/sequential set the mode; custom keeps the caller's mode."""
    template_type: str = "overlay"
    original_volume: float = 0.5
    remix_volume: float = 1.0
    name: Optional[str] = None


@dataclass(frozen=True)
class ClipParams:
    """An additional clip layered into the mix."""
    data: bytes
    mime_type: str
    volume: float = 1.0
    start_offset: float = 0.0


@dataclass(frozen=True)
class RemixParams:
    original_volume: float = 0.5
    remix_volume: float = 1.0
    mix_mode: str = "overlay"
    fade_in: float = 0.0
    fade_out: float = 0.0
    trim_start: float = 0.0
    trim_end: float = 0.0
    effect: EffectRequest = field(default_factory=NoEffect)
    original_effect: EffectRequest = field(default_factory=NoEffect)
    clips: List[ClipParams] = field(default_factory=list)
    sample_rate: int = config.DEFAULT_SAMPLE_RATE
    channels: int = config.DEFAULT_CHANNELS


def decode_audio_field(value: Any, name: str) -> bytes:
    """Audio arrives as raw bytes or base64 text."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodeError(f"{name} is not valid base64") from e
    raise DecodeError(f"{name} missing or not audio data")


def resolve_template(spec: Optional[Dict[str, Any]]) -> Optional[RemixTemplate]:
    if not spec:
        return None
    if not isinstance(spec, dict):
        raise InvalidParameter(f"template must be an object, got {spec!r}")
    template_type = spec.get("template_type", "custom")
    if template_type not in TEMPLATE_TYPES:
        raise InvalidParameter(f"template_type must be one of {TEMPLATE_TYPES}, got {template_type!r}")
    return RemixTemplate(
        template_type=template_type,
        original_volume=validate_param("mix", "original_volume", spec.get("original_volume", 0.5)),
        remix_volume=validate_param("mix", "remix_volume", spec.get("remix_volume", 1.0)),
        name=spec.get("name"),
    )


def apply_template(params: RemixParams, template: Optional[RemixTemplate]) -> RemixParams:
    """Template volumes replace the caller's; overlay/sequential templates also set the mode."""
    if template is None:
        return params
    mix_mode = params.mix_mode if template.template_type == "custom" else template.template_type
    return replace(
        params,
        original_volume=template.original_volume,
        remix_volume=template.remix_volume,
        mix_mode=mix_mode,
    )


def _resolve_clip(index: int, spec: Dict[str, Any]) -> ClipParams:
    if not isinstance(spec, dict):
        raise InvalidParameter(f"clips[{index}] must be an object")
    p = _resolve_section("clip", {k: v for k, v in spec.items() if k in PARAM_SCHEMA["clip"]})
    return ClipParams(
        data=decode_audio_field(spec.get("audio"), f"clips[{index}].audio"),
        mime_type=spec.get("mime_type", "audio/webm"),
        volume=p["volume"],
        start_offset=p["start_offset"],
    )


def resolve_remix_params(params: Dict[str, Any]) -> RemixParams:
    """
    Resolve normalized (snake_case) remix params into RemixParams.
    Missing values take schema defaults; a template, when present, overrides volumes/mode.
    """
    params = params or {}
    if not isinstance(params, dict):
        raise InvalidParameter(f"params must be an object, got {type(params).__name__}")
    mix_keys = {k: v for k, v in params.items() if k in PARAM_SCHEMA["mix"]}
    p = _resolve_section("mix", mix_keys)

    sample_rate = params.get("sample_rate", config.DEFAULT_SAMPLE_RATE)
    channels = params.get("channels", config.DEFAULT_CHANNELS)
    try:
        sample_rate, channels = int(sample_rate), int(channels)
    except (TypeError, ValueError):
        raise InvalidFormat(f"invalid output format {sample_rate!r} Hz, {channels!r} ch")
    if sample_rate <= 0 or channels <= 0:
        raise InvalidFormat(f"invalid output format {sample_rate} Hz, {channels} ch")

    clips = params.get("clips") or []
    if not isinstance(clips, list):
        raise InvalidParameter(f"clips must be a list, got {type(clips).__name__}")
    resolved = RemixParams(
        original_volume=p["original_volume"],
        remix_volume=p["remix_volume"],
        mix_mode=p["mix_mode"],
        fade_in=p["fade_in"],
        fade_out=p["fade_out"],
        trim_start=p["trim_start"],
        trim_end=p["trim_end"],
        effect=resolve_effect(params.get("effect")),
        original_effect=resolve_effect(params.get("original_effect")),
        clips=[_resolve_clip(i, c) for i, c in enumerate(clips)],
        sample_rate=sample_rate,
        channels=channels,
    )
    return apply_template(resolved, resolve_template(params.get("template")))
