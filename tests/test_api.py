"""
Tests for remix_engine/main: FastAPI endpoints and error mapping.
Run from project root: python -m pytest tests/test_api.py -v
"""
import sys
import os
import base64
import io
import math
import zipfile

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
import torch
from fastapi.testclient import TestClient

from remix_engine.core.errors import DeviceError, InvalidTransition, UnsupportedEffect
from remix_engine.core.types import AudioBuffer
from remix_engine.export.wav import decode_wav, encode
from remix_engine.main import app, status_for

SR = 8000

client = TestClient(app)


def b64_tone(seconds: float = 1.0, amp: float = 0.5) -> str:
    t = torch.arange(int(seconds * SR), dtype=torch.float64) / SR
    buf = AudioBuffer.from_mono((amp * torch.sin(2 * math.pi * 440.0 * t)).float(), SR)
    return base64.b64encode(encode(buf).data).decode("utf-8")


def decoded(payload: dict) -> AudioBuffer:
    return decode_wav(base64.b64decode(payload["audio"]))


def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_params_schema():
    r = client.get("/params/schema")
    assert r.status_code == 200
    schema = r.json()
    assert set(schema) >= {"echo", "reverb", "voice_filter", "mix"}
    assert schema["echo"]["feedback"]["max_exclusive"] is True


def test_remix_sequential():
    body = {
        "recording": b64_tone(),
        "recordingMime": "audio/wav",
        "original": b64_tone(),
        "originalMime": "audio/wav",
        "params": {"mixMode": "sequential", "originalVolume": 0.5, "remixVolume": 0.5, "sampleRate": SR},
    }
    r = client.post("/remix", json=body)
    assert r.status_code == 200, r.text
    payload = r.json()
    assert payload["mime_type"] == "audio/wav"
    assert payload["duration_s"] == pytest.approx(2.0)
    assert payload["states"][-1] == "ready"
    assert payload["qc"]["kind"] == "mix"
    assert decoded(payload).frames == 2 * SR


def test_remix_with_effect_and_trim():
    body = {
        "recording": b64_tone(),
        "recordingMime": "audio/wav",
        "params": {
            "sampleRate": SR,
            "trimEnd": 0.5,
            "effect": {"type": "filter", "params": {"type": "telephone", "intensity": 1.0}},
        },
    }
    r = client.post("/remix", json=body)
    assert r.status_code == 200, r.text
    payload = r.json()
    assert "trimming" in payload["states"]
    assert "effect_processing" in payload["states"]
    assert payload["duration_s"] == pytest.approx(0.5)


def test_effects_apply_echo():
    body = {
        "audio": b64_tone(0.5),
        "mimeType": "audio/wav",
        "effect": {"type": "echo", "params": {"delay": 0.1, "feedback": 0.0, "wetLevel": 0.5}},
    }
    r = client.post("/effects/apply", json=body)
    assert r.status_code == 200, r.text
    assert r.json()["effect"] == "Echo"
    assert decoded(r.json()).frames == int(0.5 * SR) + int(0.1 * SR)


def test_trim_endpoint():
    r = client.post("/trim", json={"audio": b64_tone(), "mimeType": "audio/wav", "start": 0.25, "end": 0.25})
    assert r.status_code == 200, r.text
    assert decoded(r.json()).frames == SR // 2


def test_qc_endpoint():
    r = client.post("/qc", json={"audio": b64_tone(amp=0.02), "mimeType": "audio/wav"})
    assert r.status_code == 200
    assert r.json()["status"] == "FAIL"


def test_export_remix_zip():
    body = {
        "recording": b64_tone(),
        "recordingMime": "audio/wav",
        "original": b64_tone(0.5),
        "originalMime": "audio/wav",
        "params": {"sampleRate": SR},
        "metadata": {"name": "duet"},
    }
    r = client.post("/export/remix", json=body)
    assert r.status_code == 200, r.text
    assert r.headers["content-type"] == "application/zip"
    with zipfile.ZipFile(io.BytesIO(r.content)) as zf:
        assert "stems/original.wav" in zf.namelist()
        assert "stems/recording.wav" in zf.namelist()


# -----------------------------------------------------------------------------
# Error mapping
# -----------------------------------------------------------------------------

def test_bad_audio_is_415():
    r = client.post("/remix", json={"recording": base64.b64encode(b"nope").decode(), "recordingMime": "audio/wav"})
    assert r.status_code == 415
    assert r.json()["error"] == "DecodeError"


def test_unknown_mime_is_415():
    r = client.post("/trim", json={"audio": b64_tone(), "mimeType": "audio/mpeg"})
    assert r.status_code == 415


def test_invalid_range_is_422():
    r = client.post("/trim", json={"audio": b64_tone(), "mimeType": "audio/wav", "start": 0.8, "end": 0.5})
    assert r.status_code == 422
    assert r.json()["error"] == "InvalidRange"


def test_invalid_effect_param_is_422():
    body = {"audio": b64_tone(), "mimeType": "audio/wav", "effect": {"type": "echo", "params": {"feedback": 1.0}}}
    r = client.post("/effects/apply", json=body)
    assert r.status_code == 422
    assert r.json()["error"] == "InvalidParameter"


def test_unsupported_effect_is_422():
    body = {"audio": b64_tone(), "mimeType": "audio/wav", "effect": {"type": "flanger"}}
    r = client.post("/effects/apply", json=body)
    assert r.status_code == 422
    assert r.json()["error"] == "UnsupportedEffect"


def test_status_mapping():
    assert status_for(DeviceError("x")) == 503
    assert status_for(InvalidTransition("x")) == 409
    assert status_for(UnsupportedEffect("x")) == 422


def test_effect_given_as_type_name():
    r = client.post("/effects/apply", json={"audio": b64_tone(0.5), "mimeType": "audio/wav", "effect": "echo"})
    assert r.status_code == 200, r.text
    assert r.json()["effect"] == "Echo"


def test_malformed_effect_is_422():
    r = client.post("/effects/apply", json={"audio": b64_tone(0.5), "mimeType": "audio/wav", "effect": ["echo"]})
    assert r.status_code == 422
    assert r.json()["error"] == "InvalidParameter"


def test_remix_effect_given_as_type_name():
    body = {"recording": b64_tone(0.5), "recordingMime": "audio/wav",
            "params": {"sampleRate": SR, "effect": "reverb"}}
    r = client.post("/remix", json=body)
    assert r.status_code == 200, r.text
    assert "effect_processing" in r.json()["states"]


@pytest.mark.parametrize("params", [
    {"effect": 42},
    {"template": "sequential"},
    {"clips": "abc"},
    ["overlay"],
])
def test_remix_malformed_params_is_422(params):
    body = {"recording": b64_tone(0.5), "recordingMime": "audio/wav", "params": params}
    r = client.post("/remix", json=body)
    assert r.status_code == 422
    assert r.json()["error"] == "InvalidParameter"
