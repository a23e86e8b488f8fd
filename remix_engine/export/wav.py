"""
Canonical 16-bit PCM WAV encoding through soundfile.
Samples are clamped and rounded to int16 here; libsndfile only writes the container,
so the bytes are identical for identical buffers.
"""
import io

import numpy as np
import soundfile as sf
import torch

from remix_engine.core.errors import DecodeError, InvalidFormat
from remix_engine.core.types import AudioBuffer, EncodedAudio

WAV_MIME = "audio/wav"
PCM_SCALE = 32767.0


def pcm16_samples(buffer: AudioBuffer) -> np.ndarray:
    """int16 frames [frames, channels]: round(clamp(x, -1, 1) * 32767)."""
    planar = buffer.samples.detach().cpu().numpy().astype(np.float64)
    clipped = np.clip(planar, -1.0, 1.0)
    return np.ascontiguousarray(np.rint(clipped * PCM_SCALE).astype(np.int16).T)


def encode(buffer: AudioBuffer) -> EncodedAudio:
    """Serialize a buffer to a byte-exact canonical WAV blob."""
    if buffer.sample_rate <= 0 or buffer.channels <= 0:
        raise InvalidFormat(f"cannot encode {buffer.channels} ch at {buffer.sample_rate} Hz")
    out = io.BytesIO()
    sf.write(out, pcm16_samples(buffer), buffer.sample_rate, format="WAV", subtype="PCM_16")
    return EncodedAudio(out.getvalue(), WAV_MIME)


def decode_wav(data: bytes) -> AudioBuffer:
    """Read a WAV blob back into a float buffer (int16 / 32767)."""
    try:
        with sf.SoundFile(io.BytesIO(data)) as f:
            if f.format != "WAV":
                raise DecodeError(f"expected a WAV blob, got {f.format}")
            sample_rate = f.samplerate
            ints = f.read(dtype="int16", always_2d=True)
    except (RuntimeError, TypeError, ValueError) as e:
        raise DecodeError(f"could not decode WAV blob: {e}") from e
    samples = torch.from_numpy(ints.T.astype(np.float32) / PCM_SCALE)
    return AudioBuffer(samples.contiguous(), int(sample_rate))
