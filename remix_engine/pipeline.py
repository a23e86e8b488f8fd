"""
Remix session state machine and async processing pipeline.

    IDLE -> CAPTURING -> CAPTURED -> [TRIMMING] -> [EFFECT_PROCESSING] -> MIXING -> ENCODING -> READY

An uploaded recording moves straight from IDLE to CAPTURED. Any state short of READY
may move to FAILED; READY and FAILED return to IDLE for the next take.
Sessions are immutable: every transition returns a new RemixSession.
"""
import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import AsyncIterator, Dict, FrozenSet, List, Optional, Tuple

from remix_engine.capture import CaptureDevice, LevelCallback, record
from remix_engine.core.errors import DeviceError, InvalidTransition, RemixError
from remix_engine.core.types import (
    AudioBuffer,
    EffectRequest,
    EncodedAudio,
    MixRequest,
    MixResult,
    NoEffect,
    Track,
)
from remix_engine.core.io import BlobDecoder, Decoder
from remix_engine.dsp import effects
from remix_engine.dsp.mixer import TrackMixer
from remix_engine.dsp.trim import trim as trim_buffer
from remix_engine.export import wav
from remix_engine.params.resolve import RemixParams

logger = logging.getLogger(__name__)


class RemixState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    CAPTURED = "captured"
    TRIMMING = "trimming"
    EFFECT_PROCESSING = "effect_processing"
    MIXING = "mixing"
    ENCODING = "encoding"
    READY = "ready"
    FAILED = "failed"


_S = RemixState
TRANSITIONS: Dict[RemixState, FrozenSet[RemixState]] = {
    _S.IDLE: frozenset({_S.CAPTURING, _S.CAPTURED, _S.FAILED}),
    _S.CAPTURING: frozenset({_S.CAPTURED, _S.FAILED}),
    _S.CAPTURED: frozenset({_S.TRIMMING, _S.EFFECT_PROCESSING, _S.MIXING, _S.FAILED}),
    _S.TRIMMING: frozenset({_S.EFFECT_PROCESSING, _S.MIXING, _S.FAILED}),
    _S.EFFECT_PROCESSING: frozenset({_S.MIXING, _S.FAILED}),
    _S.MIXING: frozenset({_S.ENCODING, _S.FAILED}),
    _S.ENCODING: frozenset({_S.READY, _S.FAILED}),
    _S.READY: frozenset({_S.IDLE}),
    _S.FAILED: frozenset({_S.IDLE}),
}


@dataclass(frozen=True)
class RemixSession:
    state: RemixState = RemixState.IDLE
    recording: Optional[AudioBuffer] = None
    processed: Optional[AudioBuffer] = None
    result: Optional[MixResult] = None
    encoded: Optional[EncodedAudio] = None
    error: Optional[RemixError] = None
    history: Tuple[RemixState, ...] = (RemixState.IDLE,)


def can_transition(current: RemixState, target: RemixState) -> bool:
    return target in TRANSITIONS[current]


def transition(session: RemixSession, target: RemixState, **changes) -> RemixSession:
    """Move to target, returning a new session. Raises InvalidTransition if not allowed."""
    if not can_transition(session.state, target):
        raise InvalidTransition(f"cannot go from {session.state.value} to {target.value}")
    return replace(session, state=target, history=session.history + (target,), **changes)


def begin_capture(session: RemixSession) -> RemixSession:
    return transition(session, RemixState.CAPTURING)


def finish_capture(session: RemixSession, recording: AudioBuffer) -> RemixSession:
    return transition(session, RemixState.CAPTURED, recording=recording)


def fail(session: RemixSession, error: RemixError) -> RemixSession:
    """Failed sessions never carry an artifact."""
    return transition(session, RemixState.FAILED, error=error, result=None, encoded=None)


def reset(session: RemixSession) -> RemixSession:
    return transition(session, RemixState.IDLE, recording=None, processed=None, result=None, encoded=None, error=None)


# -----------------------------------------------------------------------------
# Jobs
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class RemixJob:
    """
    Inputs for one remix. recording may be None when the session already holds
    a captured take. original is the clip being remixed; clips come from params.
    """
    params: RemixParams = field(default_factory=RemixParams)
    recording: Optional[bytes] = None
    recording_mime: str = "audio/webm"
    original: Optional[bytes] = None
    original_mime: str = "audio/webm"


def _has_effect(request: EffectRequest) -> bool:
    return not isinstance(request, NoEffect)


def build_tracks(
    recording: AudioBuffer,
    params: RemixParams,
    original: Optional[AudioBuffer] = None,
    clips: Optional[List[AudioBuffer]] = None,
) -> List[Track]:
    """
    Lay out mix tracks. overlay starts the recording with the original; sequential
    starts it when the original ends. Extra clips keep their own offsets.
    """
    tracks = []
    offset = 0.0
    if original is not None:
        tracks.append(Track(original, gain=params.original_volume, name="original"))
        if params.mix_mode == "sequential":
            offset = original.duration_s
    tracks.append(Track(
        recording,
        gain=params.remix_volume,
        start_offset_s=offset,
        fade_in_s=params.fade_in,
        fade_out_s=params.fade_out,
        name="recording",
    ))
    for i, (buffer, clip) in enumerate(zip(clips or [], params.clips)):
        tracks.append(Track(buffer, gain=clip.volume, start_offset_s=clip.start_offset, name=f"clip_{i}"))
    return tracks


# -----------------------------------------------------------------------------
# Pipeline
# -----------------------------------------------------------------------------

class RemixPipeline:
    """
    Async stages over the blocking DSP. Each stage runs in a worker thread; the
    pipeline itself only holds the decoder and mixer, so requests can run concurrently.
    """

    def __init__(self, decoder: Optional[Decoder] = None, mixer: Optional[TrackMixer] = None):
        self.decoder = decoder or BlobDecoder()
        self.mixer = mixer or TrackMixer()

    async def decode(self, data: bytes, mime_type: str) -> AudioBuffer:
        return await asyncio.to_thread(self.decoder.decode, data, mime_type)

    async def trim(self, buffer: AudioBuffer, start_s: float, end_s: float) -> AudioBuffer:
        return await asyncio.to_thread(trim_buffer, buffer, start_s, end_s)

    async def apply_effect(self, buffer: AudioBuffer, request: EffectRequest) -> AudioBuffer:
        return await asyncio.to_thread(effects.apply, buffer, request)

    async def mix(self, request: MixRequest, with_stems: bool = False) -> MixResult:
        return await asyncio.to_thread(self.mixer.mix, request, with_stems)

    async def encode(self, buffer: AudioBuffer) -> EncodedAudio:
        return await asyncio.to_thread(wav.encode, buffer)

    async def capture(
        self,
        session: RemixSession,
        device: CaptureDevice,
        duration_s: Optional[float] = None,
        stop_event: Optional[asyncio.Event] = None,
        on_level: Optional[LevelCallback] = None,
    ) -> RemixSession:
        """Record a take into the session. A device failure yields a FAILED session."""
        session = begin_capture(session)
        try:
            buffer = await record(device, duration_s=duration_s, stop_event=stop_event, on_level=on_level)
        except DeviceError as e:
            logger.error("capture failed: %s", e)
            return fail(session, e)
        return finish_capture(session, buffer)

    async def stages(
        self, job: RemixJob, session: Optional[RemixSession] = None, with_stems: bool = False
    ) -> AsyncIterator[RemixSession]:
        """Yield the session after every transition, ending in READY."""
        session = session or RemixSession()
        params = job.params

        if session.state == RemixState.IDLE:
            if job.recording is None:
                raise InvalidTransition("no recording to process")
            recording = await self.decode(job.recording, job.recording_mime)
            session = finish_capture(session, recording)
            yield session
        elif session.state != RemixState.CAPTURED:
            raise InvalidTransition(f"cannot start processing from {session.state.value}")

        original = None
        if job.original is not None:
            original = await self.decode(job.original, job.original_mime)
        clips = [await self.decode(c.data, c.mime_type) for c in params.clips]

        processed = session.recording
        if params.trim_start > 0 or params.trim_end > 0:
            session = transition(session, RemixState.TRIMMING)
            yield session
            processed = await self.trim(processed, params.trim_start, params.trim_end)

        if _has_effect(params.effect) or (original is not None and _has_effect(params.original_effect)):
            session = transition(session, RemixState.EFFECT_PROCESSING, processed=processed)
            yield session
            if original is not None:
                processed, original = await asyncio.gather(
                    self.apply_effect(processed, params.effect),
                    self.apply_effect(original, params.original_effect),
                )
            else:
                processed = await self.apply_effect(processed, params.effect)

        session = transition(session, RemixState.MIXING, processed=processed)
        yield session
        request = MixRequest(build_tracks(processed, params, original, clips), params.sample_rate, params.channels)
        result = await self.mix(request, with_stems)

        session = transition(session, RemixState.ENCODING, result=result)
        yield session
        encoded = await self.encode(result.buffer)

        session = transition(session, RemixState.READY, encoded=encoded)
        logger.info(
            "remix ready: %.2fs, %d tracks, %d bytes", result.buffer.duration_s, len(request.tracks), encoded.size
        )
        yield session

    async def run(
        self, job: RemixJob, session: Optional[RemixSession] = None, with_stems: bool = False
    ) -> RemixSession:
        """Process a job to READY. Errors propagate to the caller."""
        async for session in self.stages(job, session, with_stems):
            pass
        return session

    async def run_session(
        self, job: RemixJob, session: Optional[RemixSession] = None, with_stems: bool = False
    ) -> RemixSession:
        """Like run(), but a RemixError ends the session in FAILED instead of raising."""
        current = session or RemixSession()
        try:
            async for current in self.stages(job, current, with_stems):
                pass
        except RemixError as e:
            if not can_transition(current.state, RemixState.FAILED):
                raise
            logger.error("remix failed in %s: %s: %s", current.state.value, type(e).__name__, e)
            return fail(current, e)
        return current
