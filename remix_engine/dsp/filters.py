"""
Audio filters using torchaudio biquad implementations.
All filters are IIR (minimum-phase) and accept [channels, frames] or 1-D tensors.
torchaudio clamps biquad output to [-1, 1].
"""

import torch
import torchaudio.functional as F


def _safe_freq(freq: float, sample_rate: int) -> float:
    """Keep a corner/center frequency strictly inside (0, Nyquist)."""
    return max(1.0, min(float(freq), sample_rate / 2 - 1))


class Filter:
    @staticmethod
    def lowpass(waveform: torch.Tensor, sample_rate: int, cutoff_freq: float, q: float = 0.707) -> torch.Tensor:
        """Apply a LowPass Biquad filter (minimum-phase IIR)."""
        return F.lowpass_biquad(waveform, sample_rate, _safe_freq(cutoff_freq, sample_rate), q)

    @staticmethod
    def highpass(waveform: torch.Tensor, sample_rate: int, cutoff_freq: float, q: float = 0.707) -> torch.Tensor:
        """Apply a HighPass Biquad filter (minimum-phase IIR)."""
        return F.highpass_biquad(waveform, sample_rate, _safe_freq(cutoff_freq, sample_rate), q)

    @staticmethod
    def bandpass(waveform: torch.Tensor, sample_rate: int, center_freq: float, q: float = 0.707) -> torch.Tensor:
        """
        Apply a BandPass Biquad filter (minimum-phase IIR).
        Used for the telephone/radio/robot voice filters.
        """
        return F.bandpass_biquad(waveform, sample_rate, _safe_freq(center_freq, sample_rate), q)


class Effects:
    @staticmethod
    def ring_modulate(waveform: torch.Tensor, sample_rate: int, carrier_hz: float) -> torch.Tensor:
        """Multiply by a fixed-frequency sine carrier (classic robot voice)."""
        n = waveform.shape[-1]
        t = torch.arange(n, dtype=torch.float64) / sample_rate
        carrier = torch.sin(2.0 * torch.pi * carrier_hz * t).to(waveform.dtype)
        return waveform * carrier
