"""
Time-domain effects for remix tracks: echo, reverb, voice filters, speed and pitch.
Every effect works on a copy and returns a new AudioBuffer; inputs are never mutated.
"""
import logging
import math

import torch

from remix_engine.core.errors import InvalidParameter, UnsupportedEffect
from remix_engine.core.params import require_range
from remix_engine.core.types import (
    AudioBuffer,
    Echo,
    EffectRequest,
    NoEffect,
    Reverb,
    VoiceFilter,
    VoiceFilterKind,
)
from remix_engine.dsp.delay import feedback_delay
from remix_engine.dsp.filters import Effects, Filter
from remix_engine.dsp.noise import Noise
from remix_engine.dsp.oversample import apply_tanh_distortion
from remix_engine.dsp.resample import change_rate, fit_length

logger = logging.getLogger(__name__)

# Echo tail stops once feedback^k falls below -60 dB, never longer than this
ECHO_FLOOR_LIN = 1e-3
MAX_ECHO_TAIL_S = 8.0

# Reverb RT60 range (seconds) mapped from room_size 0..1
REVERB_RT60_MIN_S = 0.3
REVERB_RT60_SPAN_S = 2.7
REVERB_SEED = 1337
# Damping lowpass corner, from bright (damping 0) to dark (damping 1)
DAMPING_CUTOFF_MAX_HZ = 8000.0
DAMPING_CUTOFF_MIN_HZ = 1000.0

ROBOT_CARRIER_HZ = 50.0
RADIO_DRIVE = 2.5


# -----------------------------------------------------------------------------
# Echo
# -----------------------------------------------------------------------------

def echo_tail_frames(delay_frames: int, feedback: float, sample_rate: int) -> int:
    """Frames appended after the input: enough delayed copies to reach -60 dB, capped."""
    if feedback <= 0.0:
        repeats = 1
    else:
        repeats = 1 + int(math.ceil(math.log(ECHO_FLOOR_LIN) / math.log(feedback)))
    cap = int(MAX_ECHO_TAIL_S * sample_rate)
    return max(delay_frames, min(delay_frames * repeats, cap))


def apply_echo(buffer: AudioBuffer, request: Echo) -> AudioBuffer:
    """
    Feedback delay line mixed with the dry signal:
        y[n] = x[n - d] + feedback * y[n - d]
        out  = (1 - wet) * x + wet * y
    Output is longer than the input by the echo tail.
    """
    delay_s = require_range("echo.delay", request.delay_s, min=0.0, min_inclusive=False)
    feedback = require_range("echo.feedback", request.feedback, 0.0, 1.0, max_inclusive=False)
    wet = require_range("echo.wet_level", request.wet_level, 0.0, 1.0)

    sr = buffer.sample_rate
    delay_frames = int(round(delay_s * sr))
    if delay_frames < 1:
        raise InvalidParameter(f"echo.delay {delay_s}s is shorter than one sample at {sr} Hz")

    out_frames = buffer.frames + echo_tail_frames(delay_frames, feedback, sr)
    wet_path = feedback_delay(buffer.samples, delay_frames, feedback, out_frames)

    out = wet * wet_path
    out[:, :buffer.frames] += (1.0 - wet) * buffer.samples
    return AudioBuffer(out, sr)


# -----------------------------------------------------------------------------
# Reverb
# -----------------------------------------------------------------------------

def reverb_impulse(room_size: float, damping: float, sample_rate: int, channels: int = 1) -> torch.Tensor:
    """
    Synthetic room impulse response [channels, frames], seeded so it is identical across calls.
    Exponential decay to -60 dB at RT60; damping blends in a lowpassed copy as the tail progresses.
    Normalised to unit energy per channel.
    """
    rt60 = REVERB_RT60_MIN_S + REVERB_RT60_SPAN_S * room_size
    n = max(1, int(rt60 * sample_rate))
    noise = Noise.white(n, channels, seed=REVERB_SEED)
    noise = noise / (noise.abs().max() + 1e-9)

    cutoff = DAMPING_CUTOFF_MAX_HZ - (DAMPING_CUTOFF_MAX_HZ - DAMPING_CUTOFF_MIN_HZ) * damping
    dark = Filter.lowpass(noise, sample_rate, cutoff)

    t = torch.arange(n, dtype=torch.float32) / sample_rate
    progress = t / rt60
    blend = damping * progress
    shaped = (1.0 - blend) * noise + blend * dark

    decay = torch.exp(-6.907755 * t / rt60)  # ln(1000): -60 dB at rt60
    ir = shaped * decay
    energy = torch.sqrt(torch.sum(ir ** 2, dim=-1, keepdim=True)) + 1e-12
    return ir / energy


def _fft_convolve(x: torch.Tensor, h: torch.Tensor) -> torch.Tensor:
    """Full linear convolution along the last dim via FFT. Output frames = nx + nh - 1."""
    n = x.shape[-1] + h.shape[-1] - 1
    n_fft = 1 << (n - 1).bit_length()
    spectrum = torch.fft.rfft(x.double(), n=n_fft) * torch.fft.rfft(h.double(), n=n_fft)
    return torch.fft.irfft(spectrum, n=n_fft)[..., :n].float()


def apply_reverb(buffer: AudioBuffer, request: Reverb) -> AudioBuffer:
    """Convolution reverb. Output = input length + impulse length - 1."""
    room = require_range("reverb.room_size", request.room_size, 0.0, 1.0)
    damping = require_range("reverb.damping", request.damping, 0.0, 1.0)
    wet = require_range("reverb.wet_level", request.wet_level, 0.0, 1.0)

    ir = reverb_impulse(room, damping, buffer.sample_rate, buffer.channels)
    wet_signal = _fft_convolve(buffer.samples, ir)

    out = wet * wet_signal
    out[:, :buffer.frames] += (1.0 - wet) * buffer.samples
    return AudioBuffer(out, buffer.sample_rate)


# -----------------------------------------------------------------------------
# Voice filters
# -----------------------------------------------------------------------------

def _blend(dry: torch.Tensor, wet: torch.Tensor, amount: float) -> torch.Tensor:
    return (1.0 - amount) * dry + amount * wet


def _rate_shift(samples: torch.Tensor, rate: float) -> torch.Tensor:
    """Playback-rate change kept at the original length (pad or truncate)."""
    return fit_length(change_rate(samples, rate), samples.shape[-1])


def apply_voice_filter(buffer: AudioBuffer, request: VoiceFilter) -> AudioBuffer:
    """
    Character voice filters. intensity 0 is identity, 1 is the full effect.
    Output length always equals input length.
    """
    try:
        kind = VoiceFilterKind(request.kind)
    except ValueError:
        raise UnsupportedEffect(f"unknown voice filter {request.kind!r}")
    intensity = require_range("voice_filter.intensity", request.intensity, 0.0, 1.0)

    x = buffer.samples
    sr = buffer.sample_rate
    if kind == VoiceFilterKind.NONE or intensity == 0.0:
        return buffer.copy()

    if kind == VoiceFilterKind.ROBOT:
        ringed = Effects.ring_modulate(x, sr, ROBOT_CARRIER_HZ)
        out = _blend(x, Filter.bandpass(ringed, sr, 1000.0 + 500.0 * intensity, q=10.0), intensity)
    elif kind == VoiceFilterKind.CHIPMUNK:
        out = _rate_shift(x, 1.0 + 0.5 * intensity)
    elif kind == VoiceFilterKind.DEEP:
        out = _rate_shift(x, 1.0 - 0.3 * intensity)
    elif kind == VoiceFilterKind.ALIEN:
        out = _blend(x, Filter.highpass(x, sr, 500.0 + 1000.0 * intensity, q=5.0), intensity)
    elif kind == VoiceFilterKind.TELEPHONE:
        out = _blend(x, Filter.bandpass(x, sr, 2000.0, q=1.0), intensity)
    else:  # radio
        band = Filter.bandpass(x, sr, 1500.0, q=2.0)
        out = _blend(x, apply_tanh_distortion(band, RADIO_DRIVE), intensity)

    return AudioBuffer(out, sr)


# -----------------------------------------------------------------------------
# Speed and pitch
# -----------------------------------------------------------------------------

def change_speed(buffer: AudioBuffer, speed: float) -> AudioBuffer:
    """Play faster or slower (0.5 .. 2.0); pitch follows speed, length changes."""
    speed = require_range("speed", speed, 0.5, 2.0)
    return AudioBuffer(change_rate(buffer.samples, speed), buffer.sample_rate)


def shift_pitch(buffer: AudioBuffer, semitones: float) -> AudioBuffer:
    """Shift by semitones (-12 .. 12) at rate 2^(st/12); length scales by the inverse rate."""
    semitones = require_range("semitones", semitones, -12.0, 12.0)
    if semitones == 0.0:
        return buffer.copy()
    return AudioBuffer(change_rate(buffer.samples, 2.0 ** (semitones / 12.0)), buffer.sample_rate)


# -----------------------------------------------------------------------------
# Dispatch
# -----------------------------------------------------------------------------

def apply(buffer: AudioBuffer, request: EffectRequest) -> AudioBuffer:
    """Apply one effect request to a buffer. Unknown request types raise UnsupportedEffect."""
    if request is None or isinstance(request, NoEffect):
        return buffer.copy()
    if isinstance(request, Echo):
        return apply_echo(buffer, request)
    if isinstance(request, Reverb):
        return apply_reverb(buffer, request)
    if isinstance(request, VoiceFilter):
        return apply_voice_filter(buffer, request)
    raise UnsupportedEffect(f"unsupported effect request {type(request).__name__}")
