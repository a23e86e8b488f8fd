"""
Parameter schema and defaults for effect and mix controls.
Keys are the snake_case engine names; UI camelCase keys are normalised in engine_params.
"""
from typing import Any, Dict, Literal, Optional

from remix_engine.core.types import VoiceFilterKind

ParamType = Literal["float", "enum", "bool"]
ParamGroup = Literal["echo", "reverb", "voice_filter", "mix", "track", "trim"]

ParamSchemaEntry = Dict[str, Any]


def _make_param(
    param_type: ParamType,
    default: Any,
    min_val: Optional[float],
    max_val: Optional[float],
    group: ParamGroup,
    description: str,
    min_exclusive: bool = False,
    max_exclusive: bool = False,
    choices: Optional[list] = None,
) -> ParamSchemaEntry:
    """Helper to create a schema entry."""
    entry = {
        "type": param_type,
        "default": default,
        "min": min_val,
        "max": max_val,
        "group": group,
        "description": description,
    }
    if min_exclusive:
        entry["min_exclusive"] = True
    if max_exclusive:
        entry["max_exclusive"] = True
    if choices is not None:
        entry["choices"] = choices
    return entry


# -----------------------------------------------------------------------------
# PARAM_SCHEMA: metadata for UI and validation
# -----------------------------------------------------------------------------

PARAM_SCHEMA: Dict[str, Dict[str, ParamSchemaEntry]] = {
    "echo": {
        "delay": _make_param(
            "float", 0.3, 0.0, None, "echo", "Delay between repeats (seconds)", min_exclusive=True
        ),
        "feedback": _make_param(
            "float", 0.4, 0.0, 1.0, "echo", "Share of each repeat fed back (must stay below 1)", max_exclusive=True
        ),
        "wet_level": _make_param(
            "float", 0.5, 0.0, 1.0, "echo", "Echo level mixed against the dry signal"
        ),
    },
    "reverb": {
        "room_size": _make_param(
            "float", 0.5, 0.0, 1.0, "reverb", "Decay length (0.3s to 3s RT60)"
        ),
        "damping": _make_param(
            "float", 0.5, 0.0, 1.0, "reverb", "High-frequency loss across the tail"
        ),
        "wet_level": _make_param(
            "float", 0.3, 0.0, 1.0, "reverb", "Reverb level mixed against the dry signal"
        ),
    },
    "voice_filter": {
        "type": _make_param(
            "enum", VoiceFilterKind.NONE.value, None, None, "voice_filter", "Voice character",
            choices=[k.value for k in VoiceFilterKind],
        ),
        "intensity": _make_param(
            "float", 0.5, 0.0, 1.0, "voice_filter", "0 = unchanged, 1 = full effect"
        ),
    },
    "mix": {
        "original_volume": _make_param(
            "float", 0.5, 0.0, 1.0, "mix", "Gain of the original clip"
        ),
        "remix_volume": _make_param(
            "float", 1.0, 0.0, 1.0, "mix", "Gain of the new recording"
        ),
        "mix_mode": _make_param(
            "enum", "overlay", None, None, "mix", "overlay = together, sequential = recording after clip",
            choices=["overlay", "sequential"],
        ),
        "fade_in": _make_param(
            "float", 0.0, 0.0, None, "track", "Recording fade-in (seconds)"
        ),
        "fade_out": _make_param(
            "float", 0.0, 0.0, None, "track", "Recording fade-out (seconds)"
        ),
        "trim_start": _make_param(
            "float", 0.0, 0.0, None, "trim", "Seconds cut from the start of the recording"
        ),
        "trim_end": _make_param(
            "float", 0.0, 0.0, None, "trim", "Seconds cut from the end of the recording"
        ),
    },
    "clip": {
        "volume": _make_param(
            "float", 1.0, 0.0, 1.0, "track", "Gain of an additional clip"
        ),
        "start_offset": _make_param(
            "float", 0.0, 0.0, None, "track", "Where the clip starts in the mix (seconds)"
        ),
    },
}

def defaults_for(section: str) -> Dict[str, Any]:
    """Default values for one schema section."""
    return {name: entry["default"] for name, entry in PARAM_SCHEMA[section].items()}
