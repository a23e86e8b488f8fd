"""
Default QC thresholds per audio kind.
"""
QC_THRESHOLDS = {
    "recording": {
        "peak_min": 0.3,  # Below this the take is too quiet
        "peak_max": 0.98,  # At or above this the take likely clipped
        "rms_min": 0.1,  # Minimum average level
        "noise_threshold": 0.02,  # Window RMS below this counts as background/silence
        "silence_max_pct": 30.0,  # Max % of 100 ms windows that are silent
        "clipping_max_pct": 0.1,  # Max % of samples at |x| >= peak_max
        "peak_max_inclusive": True,  # Reaching peak_max counts as clipping
    },
    "mix": {
        "peak_min": 0.1,
        "peak_max": 1.0,  # Limiter ceiling: a mix may touch it, only samples above it clip
        "peak_max_inclusive": False,
        "rms_min": 0.02,
        "noise_threshold": 0.02,
        "silence_max_pct": 50.0,
        "clipping_max_pct": 0.1,
    },
}
