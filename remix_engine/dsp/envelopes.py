import torch


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------

def seconds_to_frames(seconds: float, sample_rate: int) -> int:
    """Nearest whole frame count for a duration. Negative durations map to 0."""
    return max(0, int(round(seconds * sample_rate)))


# -----------------------------------------------------------------------------
# Fade envelopes (track windows in the mixer, crossfades)
# -----------------------------------------------------------------------------

def fade_in_ramp(n: int) -> torch.Tensor:
    """Linear ramp 0 -> (n-1)/n over n samples; sample i has gain i/n."""
    if n <= 0:
        return torch.ones(0)
    return torch.arange(n, dtype=torch.float32) / n


def fade_out_ramp(n: int) -> torch.Tensor:
    """Linear ramp ending exactly at 0 on the last sample."""
    if n <= 0:
        return torch.ones(0)
    return torch.arange(n - 1, -1, -1, dtype=torch.float32) / n


def fade_envelope(length: int, fade_in_samples: int, fade_out_samples: int, gain: float = 1.0) -> torch.Tensor:
    """
    Per-sample gain for a track window of `length` samples:
    0 -> gain over fade_in_samples, constant gain, gain -> 0 over fade_out_samples.
    Fades longer than the window are clipped to it; overlapping fades multiply.
    """
    env = torch.full((length,), float(gain), dtype=torch.float32)
    if length == 0:
        return env
    n_in = min(max(0, int(fade_in_samples)), length)
    n_out = min(max(0, int(fade_out_samples)), length)
    if n_in > 0:
        env[:n_in] = env[:n_in] * fade_in_ramp(n_in)
    if n_out > 0:
        env[length - n_out:] = env[length - n_out:] * fade_out_ramp(n_out)
    return env


def crossfade_curve(progress: torch.Tensor, curve: str = "linear") -> torch.Tensor:
    """Fade-in gain for progress in [0, 1]. 'exponential' is slow-start, 'logarithmic' fast-start."""
    if curve == "exponential":
        return progress ** 2
    if curve == "logarithmic":
        return 1.0 - (1.0 - progress) ** 2
    return progress
