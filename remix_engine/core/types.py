from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Sequence, Union

import torch


@dataclass
class AudioBuffer:
    samples: torch.Tensor  # float32, [channels, frames]
    sample_rate: int

    def __post_init__(self):
        if self.samples.dim() == 1:
            self.samples = self.samples.unsqueeze(0)
        if self.samples.dtype != torch.float32:
            self.samples = self.samples.float()

    @property
    def channels(self) -> int:
        return self.samples.shape[0]

    @property
    def frames(self) -> int:
        return self.samples.shape[-1]

    @property
    def duration_s(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return self.frames / self.sample_rate

    def copy(self) -> "AudioBuffer":
        return AudioBuffer(self.samples.clone(), self.sample_rate)

    @classmethod
    def from_mono(cls, samples: torch.Tensor, sample_rate: int) -> "AudioBuffer":
        return cls(samples.reshape(1, -1).float(), sample_rate)

    @classmethod
    def silence(cls, duration_s: float, sample_rate: int, channels: int = 1) -> "AudioBuffer":
        n = max(0, int(round(duration_s * sample_rate)))
        return cls(torch.zeros(channels, n), sample_rate)


@dataclass
class Track:
    """One layer of a mix. gain in [0, 2]; offsets and fades in seconds."""
    buffer: AudioBuffer
    gain: float = 1.0
    start_offset_s: float = 0.0
    fade_in_s: float = 0.0
    fade_out_s: float = 0.0
    name: Optional[str] = None

    @property
    def end_s(self) -> float:
        return self.start_offset_s + self.buffer.duration_s


@dataclass
class MixRequest:
    tracks: Sequence[Track]
    sample_rate: int
    channels: int = 1

    @property
    def duration_s(self) -> float:
        if not self.tracks:
            return 0.0
        return max(t.end_s for t in self.tracks)


@dataclass
class MixResult:
    """Mixed buffer plus what the limiter did. stems only filled when requested."""
    buffer: AudioBuffer
    stems: Dict[str, torch.Tensor] = field(default_factory=dict)
    peak_before_limit: float = 0.0
    gain_applied: float = 1.0


# -----------------------------------------------------------------------------
# Effect requests
# -----------------------------------------------------------------------------

class VoiceFilterKind(str, Enum):
    NONE = "none"
    ROBOT = "robot"
    CHIPMUNK = "chipmunk"
    DEEP = "deep"
    ALIEN = "alien"
    TELEPHONE = "telephone"
    RADIO = "radio"


@dataclass(frozen=True)
class NoEffect:
    pass


@dataclass(frozen=True)
class Echo:
    delay_s: float = 0.3
    feedback: float = 0.4
    wet_level: float = 0.5


@dataclass(frozen=True)
class Reverb:
    room_size: float = 0.5
    damping: float = 0.5
    wet_level: float = 0.3


@dataclass(frozen=True)
class VoiceFilter:
    kind: VoiceFilterKind = VoiceFilterKind.NONE
    intensity: float = 0.5


EffectRequest = Union[NoEffect, Echo, Reverb, VoiceFilter]


# -----------------------------------------------------------------------------
# Metering and output
# -----------------------------------------------------------------------------

class LevelStatus(str, Enum):
    QUIET = "quiet"
    GOOD = "good"
    LOUD = "loud"


@dataclass(frozen=True)
class LevelSnapshot:
    current_level: float
    peak_level: float
    average_level: float
    status: LevelStatus = LevelStatus.GOOD


@dataclass(frozen=True)
class EncodedAudio:
    data: bytes
    mime_type: str = "audio/wav"

    @property
    def size(self) -> int:
        return len(self.data)
