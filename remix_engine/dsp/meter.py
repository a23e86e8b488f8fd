"""
Real-time level metering for capture.

Each display tick hands over one array of frequency-bin magnitudes. The meter reports
the peak bin (current), the RMS of all bins (average) and a held peak that freezes for
a hold period and then decays in fixed steps. The held peak is the only state carried
between ticks; advance() is a pure function so a host scheduler drives time explicitly.
"""
from dataclasses import dataclass, replace
from typing import Sequence, Tuple, Union

import numpy as np

from remix_engine.core.types import LevelSnapshot, LevelStatus

PEAK_HOLD_MS = 1000.0
PEAK_DECAY_STEP = 0.05
PEAK_DECAY_INTERVAL_MS = 50.0

QUIET_AVERAGE_MAX = 0.15
QUIET_CURRENT_MAX = 0.20
LOUD_CURRENT_MIN = 0.95
LOUD_AVERAGE_MIN = 0.85


@dataclass(frozen=True)
class MeterConfig:
    hold_ms: float = PEAK_HOLD_MS
    decay_step: float = PEAK_DECAY_STEP
    decay_interval_ms: float = PEAK_DECAY_INTERVAL_MS


@dataclass(frozen=True)
class LevelState:
    held_peak: float = 0.0
    since_peak_ms: float = 0.0
    since_decay_ms: float = 0.0


def normalize_bins(bins: Union[np.ndarray, Sequence[float]]) -> np.ndarray:
    """Integer bins are analyser bytes (0..255); float bins are already 0..1 and get clipped."""
    arr = np.asarray(bins)
    if arr.size == 0:
        return np.zeros(0, dtype=np.float64)
    if np.issubdtype(arr.dtype, np.integer):
        return np.clip(arr.astype(np.float64) / 255.0, 0.0, 1.0)
    return np.clip(arr.astype(np.float64), 0.0, 1.0)


def measure(bins: Union[np.ndarray, Sequence[float]]) -> Tuple[float, float]:
    """Return (current, average): max normalised bin and RMS of normalised bins."""
    values = normalize_bins(bins)
    if values.size == 0:
        return 0.0, 0.0
    current = float(np.max(values))
    average = float(np.sqrt(np.mean(values ** 2)))
    return current, average


def classify(current: float, average: float) -> LevelStatus:
    if current > LOUD_CURRENT_MIN or average > LOUD_AVERAGE_MIN:
        return LevelStatus.LOUD
    if average < QUIET_AVERAGE_MAX and current < QUIET_CURRENT_MAX:
        return LevelStatus.QUIET
    return LevelStatus.GOOD


def advance(state: LevelState, current: float, elapsed_ms: float, config: MeterConfig = MeterConfig()) -> LevelState:
    """
    Move the held peak forward by one tick.

    A louder tick replaces the held peak and restarts the hold. Otherwise, once the hold
    has elapsed, the peak drops by decay_step for every decay_interval_ms that passes.
    Decay never takes the held peak below the current tick's level.
    """
    elapsed_ms = max(0.0, float(elapsed_ms))
    if current > state.held_peak:
        return LevelState(held_peak=current)

    since_peak = state.since_peak_ms + elapsed_ms
    if since_peak < config.hold_ms:
        return replace(state, since_peak_ms=since_peak)

    # only time past the hold counts toward decay
    decay_time = state.since_decay_ms + min(elapsed_ms, since_peak - config.hold_ms)
    steps = int(decay_time // config.decay_interval_ms)
    if steps == 0:
        return LevelState(state.held_peak, since_peak, decay_time)

    held = max(0.0, state.held_peak - steps * config.decay_step)
    if held < current:
        return LevelState(held_peak=current)
    return LevelState(held, since_peak, decay_time - steps * config.decay_interval_ms)


class LevelMeter:
    """Stateful wrapper over advance() for capture hosts; one snapshot per tick."""

    def __init__(self, config: MeterConfig = MeterConfig()):
        self.config = config
        self.state = LevelState()

    def tick(self, bins: Union[np.ndarray, Sequence[float]], elapsed_ms: float) -> LevelSnapshot:
        current, average = measure(bins)
        self.state = advance(self.state, current, elapsed_ms, self.config)
        return LevelSnapshot(
            current_level=current,
            peak_level=max(self.state.held_peak, current),
            average_level=average,
            status=classify(current, average),
        )

    def reset(self) -> None:
        self.state = LevelState()
