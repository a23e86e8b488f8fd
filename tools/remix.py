#!/usr/bin/env python3
"""
Command-line remix tool: mix, effects, trim and QC on audio files.

Usage:
    python tools/remix.py <subcommand> [options]

Subcommands:
    mix <recording> [--original <clip>] [--clip <path>[:volume[:offset]]] [--params <json>]
                                             Mix a recording with an original clip and extra clips
    effect <input> <type> [--params <json>] Apply echo, reverb or a voice filter
    trim <input> --start <s> --end <s>      Cut seconds from the head and tail
    qc <input> [--kind recording|mix]       Print a quality report

Options:
    --output <path>       Output WAV (default: <input stem>_<subcommand>.wav)
    --qc                  Run QC analysis on the result
    --stems               (mix) Write a ZIP with the mix, stems and metadata instead of a WAV
"""
import sys
import os
import json
import argparse
from dataclasses import replace
from pathlib import Path

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from remix_engine.core.errors import RemixError
from remix_engine.core.io import AudioIO
from remix_engine.core.types import AudioBuffer, MixRequest
from remix_engine.dsp import effects
from remix_engine.dsp.mixer import TrackMixer
from remix_engine.dsp.trim import trim
from remix_engine.export import wav
from remix_engine.export.exporter import Exporter
from remix_engine.params.engine_params import to_engine_params
from remix_engine.params.resolve import ClipParams, resolve_effect, resolve_remix_params
from remix_engine.pipeline import build_tracks
from remix_engine.qc import analyze


def _load_json(value):
    """Accept a path to a JSON file or an inline JSON string."""
    if not value:
        return {}
    if os.path.exists(value):
        with open(value, "r") as f:
            return json.load(f)
    return json.loads(value)


def _output_path(args, suffix: str, ext: str = ".wav") -> Path:
    if args.output:
        return Path(args.output)
    return Path(args.input).with_name(f"{Path(args.input).stem}_{suffix}{ext}")


def _print_qc(buffer: AudioBuffer, kind: str):
    qc = analyze(buffer, kind=kind)
    m = qc["metrics"]
    print(f"QC Status: {qc['status']}  (score {qc['quality_score']}/100)")
    print(f"  Peak: {m['peak_dbfs']:.1f} dBFS, RMS: {m['rms_dbfs']:.1f} dBFS, crest {m['crest_factor']:.2f}")
    print(f"  Silence: {m['silence_pct']:.1f}%, noise floor {m['noise_level']:.4f}, clipping {m['clipping_pct']:.3f}%")
    if qc['failures']:
        print("  FAILURES:")
        for f in qc['failures']:
            print(f"    - {f}")
    if qc['warnings']:
        print("  WARNINGS:")
        for w in qc['warnings']:
            print(f"    - {w}")
    for s in qc['suggestions']:
        print(f"  > {s}")
    return qc


def _write(buffer: AudioBuffer, path: Path):
    path.parent.mkdir(parents=True, exist_ok=True)
    AudioIO.save(wav.encode(buffer), str(path))
    print(f"Output: {path} ({buffer.duration_s:.2f}s, {buffer.sample_rate} Hz, {buffer.channels} ch)")


def _parse_clip(spec: str):
    """path[:volume[:offset]]"""
    parts = spec.split(":")
    volume = float(parts[1]) if len(parts) > 1 else 1.0
    offset = float(parts[2]) if len(parts) > 2 else 0.0
    return parts[0], volume, offset


def cmd_mix(args):
    """Mix a recording with an optional original clip and extra clips."""
    params = to_engine_params(_load_json(args.params))
    if args.mode:
        params["mix_mode"] = args.mode
    resolved = resolve_remix_params(params)

    recording = trim(AudioIO.load(args.input), resolved.trim_start, resolved.trim_end)
    recording = effects.apply(recording, resolved.effect)

    original = None
    if args.original:
        original = effects.apply(AudioIO.load(args.original), resolved.original_effect)

    clip_buffers = []
    clip_params = []
    for spec in args.clip or []:
        path, volume, offset = _parse_clip(spec)
        clip_buffers.append(AudioIO.load(path))
        clip_params.append(ClipParams(data=b"", mime_type="audio/wav", volume=volume, start_offset=offset))
    if clip_params:
        resolved = replace(resolved, clips=clip_params)

    tracks = build_tracks(recording, resolved, original, clip_buffers)
    result = TrackMixer().mix(MixRequest(tracks, resolved.sample_rate, resolved.channels), with_stems=args.stems)

    print(f"\n=== Mix Complete ===")
    print(f"Mode: {resolved.mix_mode}, tracks: {len(tracks)}")
    print(f"Peak before limit: {result.peak_before_limit:.4f}, gain applied: {result.gain_applied:.4f}")

    if args.stems:
        out = _output_path(args, "remix", ".zip")
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(Exporter.create_remix_zip(result, metadata={"name": out.stem, "mix_mode": resolved.mix_mode}))
        print(f"Output: {out}")
    else:
        _write(result.buffer, _output_path(args, "remix"))

    if args.qc:
        _print_qc(result.buffer, "mix")
    return 0


def cmd_effect(args):
    """Apply one effect to a file."""
    spec = {"type": args.type, "params": _load_json(args.params)}
    request = resolve_effect(to_engine_params(spec))
    processed = effects.apply(AudioIO.load(args.input), request)
    print(f"Effect: {type(request).__name__} {request}")
    _write(processed, _output_path(args, args.type))
    if args.qc:
        _print_qc(processed, "recording")
    return 0


def cmd_trim(args):
    """Cut seconds from the head and tail of a file."""
    source = AudioIO.load(args.input)
    trimmed = trim(source, args.start, args.end)
    print(f"Trimmed {source.duration_s:.3f}s -> {trimmed.duration_s:.3f}s")
    _write(trimmed, _output_path(args, "trim"))
    if args.qc:
        _print_qc(trimmed, "recording")
    return 0


def cmd_qc(args):
    """Print a QC report; non-zero exit on FAIL."""
    qc = _print_qc(AudioIO.load(args.input), args.kind)
    return 1 if qc["status"] == "FAIL" else 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Remix tool: mix, effects, trim and QC on audio files"
    )

    subparsers = parser.add_subparsers(dest="command", help="Subcommand")

    # Common arguments
    def add_common_args(p):
        p.add_argument("input", help="Input audio file (WAV, FLAC, OGG)")
        p.add_argument("--output", type=str, help="Output path (default: next to input)")
        p.add_argument("--qc", action="store_true", help="Run QC analysis on the result")

    # mix subcommand
    p_mix = subparsers.add_parser("mix", help="Mix a recording with clips")
    add_common_args(p_mix)
    p_mix.add_argument("--original", type=str, help="Original clip to remix")
    p_mix.add_argument("--clip", action="append", help="Extra clip path[:volume[:offset]] (repeatable)")
    p_mix.add_argument("--params", type=str, help="Remix params (JSON file or inline JSON)")
    p_mix.add_argument("--mode", choices=["overlay", "sequential"], help="Override mix mode")
    p_mix.add_argument("--stems", action="store_true", help="Write a ZIP with mix, stems and metadata")

    # effect subcommand
    p_fx = subparsers.add_parser("effect", help="Apply an effect")
    add_common_args(p_fx)
    p_fx.add_argument("type", choices=["echo", "reverb", "filter"])
    p_fx.add_argument("--params", type=str, help="Effect params (JSON file or inline JSON)")

    # trim subcommand
    p_trim = subparsers.add_parser("trim", help="Trim head and tail")
    add_common_args(p_trim)
    p_trim.add_argument("--start", type=float, default=0.0, help="Seconds cut from the start")
    p_trim.add_argument("--end", type=float, default=0.0, help="Seconds cut from the end")

    # qc subcommand
    p_qc = subparsers.add_parser("qc", help="Quality report")
    p_qc.add_argument("input", help="Input audio file")
    p_qc.add_argument("--kind", choices=["recording", "mix"], default="recording")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "mix": cmd_mix,
        "effect": cmd_effect,
        "trim": cmd_trim,
        "qc": cmd_qc,
    }
    try:
        return commands[args.command](args)
    except RemixError as e:
        print(f"Error ({type(e).__name__}): {e}")
        return 2


if __name__ == "__main__":
    sys.exit(main())
