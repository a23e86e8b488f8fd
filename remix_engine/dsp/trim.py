"""
Sample-accurate trimming. Offsets are removed from the head and tail of a buffer.
"""
import math

from remix_engine.core.errors import InvalidRange
from remix_engine.core.types import AudioBuffer
from remix_engine.dsp.envelopes import seconds_to_frames


def _check_offset(name: str, value: float) -> float:
    try:
        v = float(value)
    except (TypeError, ValueError):
        raise InvalidRange(f"{name} must be a number, got {value!r}")
    if not math.isfinite(v) or v < 0:
        raise InvalidRange(f"{name} must be a finite value >= 0, got {v}")
    return v


def trim(buffer: AudioBuffer, start_s: float = 0.0, end_s: float = 0.0) -> AudioBuffer:
    """
    Remove start_s seconds from the head and end_s seconds from the tail.
    Raises InvalidRange unless start_s + end_s < duration and at least one frame remains.
    Returns a new buffer; the input is not modified.
    """
    start_s = _check_offset("start_s", start_s)
    end_s = _check_offset("end_s", end_s)
    if start_s + end_s >= buffer.duration_s:
        raise InvalidRange(
            f"trim of {start_s:.3f}s + {end_s:.3f}s leaves nothing of a {buffer.duration_s:.3f}s buffer"
        )

    head = seconds_to_frames(start_s, buffer.sample_rate)
    tail = seconds_to_frames(end_s, buffer.sample_rate)
    if head + tail >= buffer.frames:
        raise InvalidRange(f"trim removes {head + tail} of {buffer.frames} frames")

    return AudioBuffer(buffer.samples[:, head:buffer.frames - tail].clone(), buffer.sample_rate)


def trim_window(buffer: AudioBuffer, from_s: float, to_s: float) -> AudioBuffer:
    """Keep only [from_s, to_s) of the buffer, expressed as a head/tail trim."""
    from_s = _check_offset("from_s", from_s)
    to_s = _check_offset("to_s", to_s)
    if to_s <= from_s or to_s > buffer.duration_s:
        raise InvalidRange(f"window [{from_s:.3f}, {to_s:.3f}) invalid for {buffer.duration_s:.3f}s buffer")
    return trim(buffer, from_s, buffer.duration_s - to_s)
