"""
Quality Control analysis for recordings and finished mixes.
Detects common failure modes: too quiet, clipping, background noise, long silences.
"""
import operator

import torch
import numpy as np
from typing import Dict

from remix_engine.core.types import AudioBuffer
from remix_engine.qc.thresholds import QC_THRESHOLDS

NOISE_WINDOW_S = 0.1


DB_FLOOR = -120.0


def _db(x: float) -> float:
    """Convert linear to dB, floored so reports stay JSON-safe."""
    if x <= 0:
        return DB_FLOOR
    return max(DB_FLOOR, float(20.0 * np.log10(abs(x))))


def _window_rms(audio: torch.Tensor, sample_rate: int) -> torch.Tensor:
    """RMS of consecutive 100 ms windows (trailing partial window dropped)."""
    window = max(1, int(sample_rate * NOISE_WINDOW_S))
    n_windows = audio.shape[-1] // window
    if n_windows == 0:
        return torch.zeros(0)
    frames = audio[: n_windows * window].reshape(n_windows, window)
    return torch.sqrt(torch.mean(frames ** 2, dim=-1))


def background_noise(audio: torch.Tensor, sample_rate: int, threshold: float) -> Dict:
    """
    Estimate the noise floor from quiet windows (RMS below threshold).
    Excessive when the floor exceeds twice the threshold.
    """
    rms = _window_rms(audio, sample_rate)
    quiet = rms[rms < threshold]
    noise_level = float(quiet.mean()) if quiet.numel() > 0 else 0.0
    silent_pct = float(quiet.numel() / rms.numel() * 100.0) if rms.numel() > 0 else 0.0
    return {
        "noise_level": noise_level,
        "has_excessive_noise": noise_level > threshold * 2,
        "silence_pct": silent_pct,
    }


def analyze(buffer: AudioBuffer, kind: str = "recording") -> Dict:
    """
    Analyze a recording or mix for QC issues. Uses the first channel.

    Returns:
        Dict with metrics, 0-100 quality score, suggestions and pass/fail flags
    """
    thresholds = QC_THRESHOLDS.get(kind, QC_THRESHOLDS["recording"])
    audio = buffer.samples[0].float() if buffer.frames > 0 else torch.zeros(1)

    peak = float(torch.max(torch.abs(audio)))
    rms = float(torch.sqrt(torch.mean(audio ** 2) + 1e-12))
    over = operator.ge if thresholds.get("peak_max_inclusive", True) else operator.gt
    clipping_pct = float(over(torch.abs(audio), thresholds["peak_max"]).float().mean() * 100.0)
    noise = background_noise(audio, buffer.sample_rate, thresholds["noise_threshold"])

    metrics = {
        "peak_linear": peak,
        "peak_dbfs": _db(peak),
        "rms_linear": rms,
        "rms_dbfs": _db(rms),
        "crest_factor": peak / (rms + 1e-12),
        "clipping_pct": clipping_pct,
        "duration_s": buffer.duration_s,
        **noise,
    }

    failures = []
    warnings = []
    suggestions = []
    score = 100

    if peak < thresholds["peak_min"]:
        failures.append(f"Peak too low: {peak:.3f} < {thresholds['peak_min']:.3f}")
        suggestions.append("Audio is too quiet. Speak closer to the microphone or increase input volume.")
        score -= 20
    elif over(peak, thresholds["peak_max"]):
        warnings.append(f"Peak at {peak:.3f} (clipping risk)")
        suggestions.append("Audio may be clipping. Reduce input volume or move away from the microphone.")
        score -= 15

    if rms < thresholds["rms_min"]:
        warnings.append(f"Average level low: {rms:.3f} < {thresholds['rms_min']:.3f}")
        suggestions.append("Average level is low. Consider speaking louder or closer to the microphone.")
        score -= 15

    if noise["has_excessive_noise"]:
        warnings.append(f"Background noise {noise['noise_level']:.4f}")
        suggestions.append("Background noise detected. Record somewhere quieter.")
        score -= 25
    elif noise["noise_level"] > thresholds["noise_threshold"] / 2:
        suggestions.append("Some background noise detected.")
        score -= 10

    if noise["silence_pct"] > thresholds["silence_max_pct"]:
        warnings.append(f"Silence {noise['silence_pct']:.1f}% > {thresholds['silence_max_pct']:.1f}%")
        suggestions.append("Long periods of silence. Consider trimming the start or end.")
        score -= 10

    if clipping_pct > thresholds["clipping_max_pct"]:
        failures.append(f"Clipping on {clipping_pct:.2f}% of samples")
        suggestions.append("Clipping detected. Reduce input volume to prevent distortion.")
        score -= 20

    status = "PASS"
    if failures:
        status = "FAIL"
    elif warnings:
        status = "WARN"

    return {
        "kind": kind,
        "status": status,
        "quality_score": max(0, min(100, score)),
        "metrics": metrics,
        "failures": failures,
        "warnings": warnings,
        "suggestions": suggestions,
    }
