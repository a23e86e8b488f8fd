"""
Multi-track mix with per-track gain, start offset and fades.
Tracks are converted to the request format, enveloped, summed at their offsets,
then passed through the master limiter (see postchain for the clipping policy).
"""
import logging
from typing import Dict, List, Tuple

import torch

from remix_engine.core.errors import EmptyMix, InvalidFormat, InvalidParameter
from remix_engine.core.params import require_range
from remix_engine.core.types import AudioBuffer, MixRequest, MixResult, Track
from remix_engine.dsp.envelopes import fade_envelope, seconds_to_frames
from remix_engine.dsp.postchain import CEILING_LIN, PostChain
from remix_engine.dsp.resample import to_format

logger = logging.getLogger(__name__)

MAX_TRACK_GAIN = 2.0


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------

def _validate(request: MixRequest) -> None:
    if not request.tracks:
        raise EmptyMix("mix requires at least one track")
    if request.sample_rate <= 0:
        raise InvalidFormat(f"target sample rate must be > 0, got {request.sample_rate}")
    if request.channels <= 0:
        raise InvalidFormat(f"target channel count must be > 0, got {request.channels}")
    for i, track in enumerate(request.tracks):
        label = track.name or f"track_{i}"
        if track.buffer.sample_rate <= 0:
            raise InvalidFormat(f"{label}: sample rate must be > 0, got {track.buffer.sample_rate}")
        if track.buffer.channels <= 0:
            raise InvalidFormat(f"{label}: buffer has no channels")
        require_range(f"{label}.gain", track.gain, 0.0, MAX_TRACK_GAIN)
        require_range(f"{label}.start_offset_s", track.start_offset_s, min=0.0)
        require_range(f"{label}.fade_in_s", track.fade_in_s, min=0.0)
        require_range(f"{label}.fade_out_s", track.fade_out_s, min=0.0)


# -----------------------------------------------------------------------------
# Track mixer
# -----------------------------------------------------------------------------

class TrackMixer:
    """
    Sum an ordered set of tracks into one buffer.
    Output length = max over tracks of (start offset + duration), at the target rate.
    """

    def __init__(self, ceiling: float = CEILING_LIN):
        if ceiling <= 0:
            raise InvalidParameter(f"ceiling must be > 0, got {ceiling}")
        self.ceiling = ceiling

    def _prepare(self, request: MixRequest) -> List[Tuple[str, int, torch.Tensor]]:
        """Convert every track and build (name, start_frame, enveloped samples)."""
        sr = request.sample_rate
        prepared = []
        for i, track in enumerate(request.tracks):
            name = track.name or f"track_{i}"
            buf = to_format(track.buffer, sr, request.channels)
            env = fade_envelope(
                buf.frames,
                seconds_to_frames(track.fade_in_s, sr),
                seconds_to_frames(track.fade_out_s, sr),
                gain=track.gain,
            )
            start = seconds_to_frames(track.start_offset_s, sr)
            prepared.append((name, start, buf.samples * env))
        return prepared

    def mix(self, request: MixRequest, with_stems: bool = False) -> MixResult:
        """
        Mix all tracks. Returns MixResult; stems (per-track contributions placed on
        the mix timeline) are only kept when with_stems is true.
        """
        _validate(request)
        prepared = self._prepare(request)

        total = max(start + contrib.shape[-1] for _, start, contrib in prepared)
        master = torch.zeros(request.channels, total)
        stems: Dict[str, torch.Tensor] = {}

        for name, start, contrib in prepared:
            end = start + contrib.shape[-1]
            master[:, start:end] += contrib
            if with_stems:
                stem = torch.zeros(request.channels, total)
                stem[:, start:end] = contrib
                stems[name] = stem

        limited, peak, gain = PostChain.limit(master, self.ceiling)
        logger.debug("mixed %d tracks into %d frames (peak %.3f)", len(prepared), total, peak)
        return MixResult(
            buffer=AudioBuffer(limited, request.sample_rate),
            stems=stems,
            peak_before_limit=peak,
            gain_applied=gain,
        )


def mix_tracks(tracks: List[Track], sample_rate: int, channels: int = 1) -> AudioBuffer:
    """Convenience wrapper: mix with the default ceiling and return only the buffer."""
    return TrackMixer().mix(MixRequest(list(tracks), sample_rate, channels)).buffer
