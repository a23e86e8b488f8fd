"""
Oversampled saturation for the radio voice filter.
The signal is driven at factor x the input rate and brought back with torchaudio's
band-limited resampler, so harmonics above the input Nyquist do not fold back.
"""

import torch
import torchaudio.functional as AF

DEFAULT_FACTOR = 4


def _fit(signal: torch.Tensor, frames: int) -> torch.Tensor:
    n = signal.shape[-1]
    if n > frames:
        return signal[..., :frames]
    if n < frames:
        return torch.nn.functional.pad(signal, (0, frames - n))
    return signal


def oversampled(signal: torch.Tensor, factor: int, shaper) -> torch.Tensor:
    """
    Run shaper(signal) at factor x the rate. Rates only enter as a ratio, so the
    caller's sample rate is not needed. Output has the input's shape.
    """
    if factor <= 1:
        return shaper(signal)
    up = AF.resample(signal, 1, factor)
    down = AF.resample(shaper(up), factor, 1)
    return _fit(down, signal.shape[-1])


def apply_tanh_distortion(signal: torch.Tensor, drive: float, factor: int = DEFAULT_FACTOR) -> torch.Tensor:
    """
    tanh drive normalised by tanh(drive): full scale in stays near full scale out.
    drive 1.0 is gentle; larger values square the wave off.
    """
    norm = float(torch.tanh(torch.tensor(drive)))
    return oversampled(signal, factor, lambda x: torch.tanh(x * drive) / norm)
