"""
Tests for tools/remix.py subcommands on temporary WAV files.
Run from project root: python -m pytest tests/test_cli.py -v
"""
import sys
import os
import json
import math
import zipfile

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import torch

from remix_engine.core.io import AudioIO
from remix_engine.core.types import AudioBuffer
from remix_engine.export import wav
from tools.remix import main

SR = 8000


def write_tone(path, seconds: float = 1.0, amp: float = 0.5) -> str:
    t = torch.arange(int(seconds * SR), dtype=torch.float64) / SR
    buf = AudioBuffer.from_mono((amp * torch.sin(2 * math.pi * 330.0 * t)).float(), SR)
    AudioIO.save(wav.encode(buf), str(path))
    return str(path)


def test_mix_sequential(tmp_path):
    rec = write_tone(tmp_path / "rec.wav")
    orig = write_tone(tmp_path / "orig.wav", seconds=0.5)
    out = tmp_path / "out.wav"
    params = json.dumps({"sampleRate": SR})

    code = main(["mix", rec, "--original", orig, "--mode", "sequential", "--params", params, "--output", str(out)])

    assert code == 0
    mixed = AudioIO.load(str(out))
    assert mixed.frames == int(1.5 * SR)


def test_mix_with_extra_clip_and_stems(tmp_path):
    rec = write_tone(tmp_path / "rec.wav")
    clip = write_tone(tmp_path / "clip.wav", seconds=0.25)
    out = tmp_path / "out.zip"

    code = main(["mix", rec, "--clip", f"{clip}:0.5:1.0", "--params", json.dumps({"sampleRate": SR}),
                 "--stems", "--output", str(out)])

    assert code == 0
    with zipfile.ZipFile(out) as zf:
        assert {"remix.wav", "stems/recording.wav", "stems/clip_0.wav"} <= set(zf.namelist())
        info = json.loads(zf.read("remix_info.json"))
    assert info["duration_s"] == 1.25


def test_effect_writes_default_output(tmp_path):
    src = write_tone(tmp_path / "voice.wav")
    code = main(["effect", src, "echo", "--params", json.dumps({"delay": 0.2, "feedback": 0.0})])
    assert code == 0
    out = AudioIO.load(str(tmp_path / "voice_echo.wav"))
    assert out.frames == SR + int(0.2 * SR)


def test_trim(tmp_path):
    src = write_tone(tmp_path / "voice.wav")
    out = tmp_path / "cut.wav"
    assert main(["trim", src, "--start", "0.25", "--end", "0.25", "--output", str(out)]) == 0
    assert AudioIO.load(str(out)).frames == SR // 2


def test_qc_exit_codes(tmp_path, capsys):
    good = write_tone(tmp_path / "good.wav", amp=0.8)
    quiet = write_tone(tmp_path / "quiet.wav", amp=0.01)
    assert main(["qc", good]) == 0
    assert main(["qc", quiet]) == 1
    assert "QC Status: FAIL" in capsys.readouterr().out


def test_remix_error_returns_2(tmp_path, capsys):
    src = write_tone(tmp_path / "voice.wav")
    assert main(["trim", src, "--start", "0.8", "--end", "0.8"]) == 2
    assert "InvalidRange" in capsys.readouterr().out


def test_no_command_prints_help():
    assert main([]) == 1
