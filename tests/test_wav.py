"""
Tests for remix_engine/export/wav: canonical header, PCM rounding, round trip and decode errors.
Run from project root: python -m pytest tests/test_wav.py -v
"""
import sys
import os
import io
import struct

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import numpy as np
import pytest
import soundfile as sf
import torch

from remix_engine.core.errors import DecodeError, InvalidFormat
from remix_engine.core.types import AudioBuffer
from remix_engine.export.wav import decode_wav, encode, pcm16_samples

# canonical PCM WAV: RIFF + fmt (16) + data chunk headers
HEADER_SIZE = 44


def random_buffer(channels: int = 2, frames: int = 1000, sr: int = 44100) -> AudioBuffer:
    g = torch.Generator().manual_seed(11)
    return AudioBuffer(torch.rand(channels, frames, generator=g) * 2.0 - 1.0, sr)


# -----------------------------------------------------------------------------
# Header
# -----------------------------------------------------------------------------

def test_header_layout():
    buf = random_buffer(channels=2, frames=10, sr=48000)
    data = encode(buf).data
    assert len(data) == HEADER_SIZE + 10 * 2 * 2
    assert data[0:4] == b"RIFF"
    assert struct.unpack_from("<I", data, 4)[0] == 36 + 40
    assert data[8:16] == b"WAVEfmt "
    fmt_size, audio_format, channels, sr, byte_rate, block_align, bits = struct.unpack_from("<IHHIIHH", data, 16)
    assert (fmt_size, audio_format, channels, sr) == (16, 1, 2, 48000)
    assert byte_rate == 48000 * 4
    assert block_align == 4
    assert bits == 16
    assert data[36:40] == b"data"
    assert struct.unpack_from("<I", data, 40)[0] == 40


def test_pcm_payload_follows_header():
    buf = random_buffer(channels=1, frames=5, sr=8000)
    assert encode(buf).data[HEADER_SIZE:] == pcm16_samples(buf).tobytes()


def test_encoded_metadata():
    encoded = encode(random_buffer())
    assert encoded.mime_type == "audio/wav"
    assert encoded.size == len(encoded.data)


# -----------------------------------------------------------------------------
# Samples
# -----------------------------------------------------------------------------

def test_samples_rounded_and_clamped():
    x = torch.tensor([[0.0, 1.0, -1.0, 1.5, -2.0, 0.5, 1.0 / 32767 * 0.6]])
    data = encode(AudioBuffer(x, 8000)).data
    ints = np.frombuffer(data[HEADER_SIZE:], dtype="<i2")
    np.testing.assert_array_equal(ints, [0, 32767, -32767, 32767, -32767, 16384, 1])


def test_stereo_is_interleaved():
    x = torch.tensor([[1.0, 0.0], [0.0, -1.0]])
    ints = np.frombuffer(encode(AudioBuffer(x, 8000)).data[HEADER_SIZE:], dtype="<i2")
    np.testing.assert_array_equal(ints, [32767, 0, 0, -32767])


def test_encoding_is_deterministic():
    buf = random_buffer()
    assert encode(buf).data == encode(buf).data


def test_round_trip_within_quantisation():
    buf = random_buffer(channels=2)
    back = decode_wav(encode(buf).data)
    assert back.sample_rate == buf.sample_rate
    assert back.samples.shape == buf.samples.shape
    assert float((back.samples - buf.samples).abs().max()) <= 1.0 / 32767 + 1e-6


def test_empty_buffer_encodes_header_only():
    data = encode(AudioBuffer(torch.zeros(1, 0), 8000)).data
    assert len(data) == HEADER_SIZE
    assert decode_wav(data).frames == 0


def test_soundfile_reads_encoded_output():
    buf = random_buffer(channels=2, frames=256, sr=22050)
    frames, sr = sf.read(io.BytesIO(encode(buf).data), dtype="float32", always_2d=True)
    assert sr == 22050
    assert frames.shape == (256, 2)


def test_invalid_format_raises():
    with pytest.raises(InvalidFormat):
        encode(AudioBuffer(torch.zeros(1, 10), 0))


# -----------------------------------------------------------------------------
# Decode
# -----------------------------------------------------------------------------

def test_decode_skips_unknown_chunks():
    buf = random_buffer(channels=1, frames=20, sr=8000)
    data = encode(buf).data
    junk = b"JUNK" + struct.pack("<I", 6) + b"\x00" * 6
    patched = bytearray(data[:36] + junk + data[36:])
    struct.pack_into("<I", patched, 4, len(patched) - 8)
    back = decode_wav(bytes(patched))
    torch.testing.assert_close(back.samples, decode_wav(data).samples)


def test_decode_matches_soundfile_int16_read():
    buf = AudioBuffer(torch.linspace(-1.3, 1.3, 2 * 501).reshape(2, 501), 16000)
    data = encode(buf).data
    ints, sr = sf.read(io.BytesIO(data), dtype="int16", always_2d=True)
    expected = torch.from_numpy(ints.T.astype(np.float32) / 32767.0)
    back = decode_wav(data)
    assert sr == 16000
    torch.testing.assert_close(back.samples, expected)
    assert float(back.samples.abs().max()) == 1.0


@pytest.mark.parametrize("blob", [
    b"",
    b"RIFF",
    b"RIFX" + b"\x00" * 40,
    b"RIFF" + struct.pack("<I", 4) + b"WAVE",
])
def test_decode_rejects_malformed(blob):
    with pytest.raises(DecodeError):
        decode_wav(blob)


def test_decode_rejects_other_containers():
    out = io.BytesIO()
    sf.write(out, np.zeros((64, 1), dtype=np.int16), 8000, format="FLAC", subtype="PCM_16")
    with pytest.raises(DecodeError):
        decode_wav(out.getvalue())
