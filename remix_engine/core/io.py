"""
Blob decoding and file I/O.
Decoders turn (bytes, mime_type) into an AudioBuffer; BlobDecoder routes by MIME type.
"""
import io
import logging
import subprocess
from abc import ABC, abstractmethod
from typing import Dict, Optional

import numpy as np
import soundfile as sf
import torch

from remix_engine.core import config
from remix_engine.core.errors import DecodeError, InvalidParameter
from remix_engine.core.types import AudioBuffer, EncodedAudio

logger = logging.getLogger(__name__)


def base_mime(mime_type: str) -> str:
    """'audio/webm;codecs=opus' -> 'audio/webm'."""
    return (mime_type or "").split(";", 1)[0].strip().lower()


class Decoder(ABC):
    @abstractmethod
    def decode(self, data: bytes, mime_type: str) -> AudioBuffer:
        """Decode a complete blob. Raises DecodeError on failure."""


class SoundFileDecoder(Decoder):
    """libsndfile containers: WAV, OGG (Vorbis/Opus), FLAC."""

    def decode(self, data: bytes, mime_type: str) -> AudioBuffer:
        try:
            frames, sample_rate = sf.read(io.BytesIO(data), dtype="float32", always_2d=True)
        except (RuntimeError, TypeError, ValueError) as e:
            raise DecodeError(f"could not decode {mime_type} blob: {e}") from e
        samples = torch.from_numpy(np.ascontiguousarray(frames.T))
        return AudioBuffer(samples, int(sample_rate))


class FFmpegDecoder(Decoder):
    """
    Pipes the blob through ffmpeg to raw float32 PCM. Used for WebM, which libsndfile
    cannot read. Output rate and channel count are fixed by the decoder settings.
    """

    def __init__(
        self,
        sample_rate: int = config.DEFAULT_SAMPLE_RATE,
        channels: int = config.DEFAULT_CHANNELS,
        binary: str = config.FFMPEG_BIN,
    ):
        self.sample_rate = sample_rate
        self.channels = channels
        self.binary = binary

    def decode(self, data: bytes, mime_type: str) -> AudioBuffer:
        cmd = [
            self.binary,
            "-hide_banner",
            "-loglevel", "error",
            "-i", "pipe:0",
            "-f", "f32le",
            "-acodec", "pcm_f32le",
            "-ac", str(self.channels),
            "-ar", str(self.sample_rate),
            "pipe:1",
        ]
        try:
            result = subprocess.run(cmd, input=data, capture_output=True, check=True)
        except FileNotFoundError as e:
            raise DecodeError(f"{self.binary} not found; cannot decode {mime_type}") from e
        except subprocess.CalledProcessError as e:
            stderr = e.stderr.decode(errors="replace").strip()
            raise DecodeError(f"ffmpeg failed to decode {mime_type}: {stderr}") from e

        raw = np.frombuffer(result.stdout, dtype="<f4")
        usable = raw.size - raw.size % self.channels
        frames = raw[:usable].reshape(-1, self.channels)
        samples = torch.from_numpy(np.ascontiguousarray(frames.T, dtype=np.float32))
        return AudioBuffer(samples, self.sample_rate)


# -----------------------------------------------------------------------------
# MIME routing
# -----------------------------------------------------------------------------

SOUNDFILE_TYPES = (
    "audio/wav",
    "audio/x-wav",
    "audio/wave",
    "audio/vnd.wave",
    "audio/ogg",
    "audio/flac",
    "audio/x-flac",
)
FFMPEG_TYPES = ("audio/webm", "video/webm")


class BlobDecoder(Decoder):
    """
    Routes a blob to the decoder registered for its MIME type (codec parameters ignored).
    Rejects empty blobs, empty results and inputs longer than max_duration_s.
    """

    def __init__(
        self,
        decoders: Optional[Dict[str, Decoder]] = None,
        max_duration_s: float = config.MAX_DURATION_S,
    ):
        if decoders is None:
            soundfile_decoder = SoundFileDecoder()
            ffmpeg_decoder = FFmpegDecoder()
            decoders = {t: soundfile_decoder for t in SOUNDFILE_TYPES}
            decoders.update({t: ffmpeg_decoder for t in FFMPEG_TYPES})
        self.decoders = decoders
        self.max_duration_s = max_duration_s

    def supports(self, mime_type: str) -> bool:
        return base_mime(mime_type) in self.decoders

    def decode(self, data: bytes, mime_type: str) -> AudioBuffer:
        if not data:
            raise DecodeError("empty audio blob")
        decoder = self.decoders.get(base_mime(mime_type))
        if decoder is None:
            raise DecodeError(f"unsupported audio type {mime_type!r}")
        buffer = decoder.decode(data, mime_type)
        if buffer.frames == 0:
            raise DecodeError(f"{mime_type} blob decoded to no audio")
        if buffer.duration_s > self.max_duration_s:
            raise InvalidParameter(
                f"audio is {buffer.duration_s:.1f}s; limit is {self.max_duration_s:.0f}s"
            )
        logger.debug("decoded %s: %d ch, %d Hz, %.3fs", mime_type, buffer.channels, buffer.sample_rate, buffer.duration_s)
        return buffer


# -----------------------------------------------------------------------------
# Files (CLI)
# -----------------------------------------------------------------------------

class AudioIO:
    @staticmethod
    def load(path: str) -> AudioBuffer:
        """Read any libsndfile-supported file into a buffer."""
        try:
            frames, sample_rate = sf.read(path, dtype="float32", always_2d=True)
        except (RuntimeError, TypeError, ValueError) as e:
            raise DecodeError(f"could not read {path}: {e}") from e
        return AudioBuffer(torch.from_numpy(np.ascontiguousarray(frames.T)), int(sample_rate))

    @staticmethod
    def save(encoded: EncodedAudio, path: str) -> None:
        """Write an encoded blob to disk as-is."""
        with open(path, "wb") as f:
            f.write(encoded.data)
