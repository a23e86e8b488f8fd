"""
Format conversion: sample rate, channel count, playback rate.
All conversions are deterministic for identical inputs.
"""
import math

import torch
import torchaudio.functional as F

from remix_engine.core.errors import InvalidFormat
from remix_engine.core.types import AudioBuffer


def resample_rate(samples: torch.Tensor, orig_sr: int, new_sr: int) -> torch.Tensor:
    """Band-limited (windowed sinc) sample-rate conversion of a [channels, frames] tensor."""
    if orig_sr == new_sr:
        return samples.clone()
    return F.resample(samples, int(orig_sr), int(new_sr))


def convert_channels(samples: torch.Tensor, channels: int) -> torch.Tensor:
    """
    Map [src, frames] to [channels, frames].
    mono -> N duplicates, N -> mono averages, otherwise channel c reads source min(c, src - 1).
    """
    src = samples.shape[0]
    if src == channels:
        return samples.clone()
    if src == 1:
        return samples.expand(channels, -1).clone()
    if channels == 1:
        return samples.mean(dim=0, keepdim=True)
    index = torch.tensor([min(c, src - 1) for c in range(channels)])
    return samples.index_select(0, index)


def to_format(buffer: AudioBuffer, sample_rate: int, channels: int) -> AudioBuffer:
    """Return a new buffer at the requested rate and channel count."""
    if sample_rate <= 0 or channels <= 0:
        raise InvalidFormat(f"target format invalid: {sample_rate} Hz, {channels} ch")
    if buffer.sample_rate <= 0:
        raise InvalidFormat(f"buffer sample rate must be > 0, got {buffer.sample_rate}")
    if buffer.channels <= 0:
        raise InvalidFormat("buffer has no channels")
    samples = resample_rate(buffer.samples, buffer.sample_rate, sample_rate)
    samples = convert_channels(samples, channels)
    return AudioBuffer(samples, sample_rate)


def change_rate(samples: torch.Tensor, rate: float) -> torch.Tensor:
    """
    Play [channels, frames] back at `rate` (2.0 = twice as fast, pitch follows).
    Linear interpolation; output has ceil(frames / rate) frames.
    """
    n = samples.shape[-1]
    if rate == 1.0 or n == 0:
        return samples.clone()
    new_len = max(1, int(math.ceil(n / rate)))
    src = torch.arange(new_len, dtype=torch.float64) * rate
    idx_floor = torch.floor(src).long().clamp(max=n - 1)
    idx_ceil = (idx_floor + 1).clamp(max=n - 1)
    frac = (src - idx_floor.to(torch.float64)).clamp(0.0, 1.0).to(samples.dtype)
    return samples[:, idx_floor] * (1.0 - frac) + samples[:, idx_ceil] * frac


def fit_length(samples: torch.Tensor, frames: int) -> torch.Tensor:
    """Zero-pad or truncate the last dimension to exactly `frames`."""
    n = samples.shape[-1]
    if n > frames:
        return samples[..., :frames].clone()
    if n < frames:
        return torch.nn.functional.pad(samples, (0, frames - n))
    return samples.clone()
