"""
Master-bus post processing: clipping prevention, peak normalisation, crossfade.
Deterministic; no randomness.

Clipping policy: global rescale. When the summed mix peaks above the ceiling,
the whole buffer is divided by peak / ceiling. Samples are never clamped one by one,
so the waveform shape is preserved and the output peak equals the ceiling.
"""
import logging
from typing import Tuple

import torch

from remix_engine.core.errors import InvalidParameter
from remix_engine.core.types import AudioBuffer
from remix_engine.dsp.envelopes import crossfade_curve, seconds_to_frames

logger = logging.getLogger(__name__)

CEILING_LIN = 1.0
NORMALIZE_TARGET = 0.95


class PostChain:

    @staticmethod
    def peak(samples: torch.Tensor) -> float:
        if samples.numel() == 0:
            return 0.0
        return float(torch.max(torch.abs(samples)))

    @classmethod
    def limit(cls, samples: torch.Tensor, ceiling: float = CEILING_LIN) -> Tuple[torch.Tensor, float, float]:
        """
        Rescale so max|x| <= ceiling. Returns (samples, peak_before, gain_applied).
        Buffers already within the ceiling come back unchanged (gain 1.0).
        """
        peak = cls.peak(samples)
        if peak <= ceiling:
            return samples, peak, 1.0
        divisor = peak / ceiling
        logger.warning("mix peak %.3f above ceiling %.3f, rescaling by %.4f", peak, ceiling, 1.0 / divisor)
        return samples / divisor, peak, 1.0 / divisor

    @classmethod
    def normalize_peak(cls, buffer: AudioBuffer, target_peak: float = NORMALIZE_TARGET) -> AudioBuffer:
        """
        Raise quiet audio so its peak reaches target_peak.
        Audio at or above the target, and silence, are returned as copies.
        """
        if not 0.0 < target_peak <= 1.0:
            raise InvalidParameter(f"target_peak must be in (0, 1], got {target_peak}")
        peak = cls.peak(buffer.samples)
        if peak == 0.0 or peak >= target_peak:
            return buffer.copy()
        gain = target_peak / peak
        return AudioBuffer(torch.clamp(buffer.samples * gain, -1.0, 1.0), buffer.sample_rate)

    @staticmethod
    def crossfade(first: AudioBuffer, second: AudioBuffer, duration_s: float, curve: str = "linear") -> AudioBuffer:
        """
        Join two buffers, overlapping the tail of `first` with the head of `second`.
        Output frames = len(first) + len(second) - fade frames. Formats must already match.
        """
        if first.sample_rate != second.sample_rate or first.channels != second.channels:
            raise InvalidParameter("crossfade inputs must share sample rate and channel count")
        if duration_s < 0:
            raise InvalidParameter(f"crossfade duration must be >= 0, got {duration_s}")
        if curve not in ("linear", "exponential", "logarithmic"):
            raise InvalidParameter(f"unknown crossfade curve {curve!r}")

        n_fade = min(seconds_to_frames(duration_s, first.sample_rate), first.frames, second.frames)
        total = first.frames + second.frames - n_fade
        out = torch.zeros(first.channels, total)
        out[:, :first.frames] = first.samples

        if n_fade > 0:
            progress = torch.arange(n_fade, dtype=torch.float32) / n_fade
            fade_in = crossfade_curve(progress, curve)
            out[:, first.frames - n_fade:first.frames] *= 1.0 - fade_in
            second_samples = second.samples.clone()
            second_samples[:, :n_fade] *= fade_in
        else:
            second_samples = second.samples

        start = first.frames - n_fade
        out[:, start:] += second_samples
        return AudioBuffer(out, first.sample_rate)
