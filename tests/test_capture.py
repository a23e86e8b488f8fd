"""
Tests for remix_engine/capture: scoped device release, level polling and recording.
Run from project root: python -m pytest tests/test_capture.py -v
"""
import sys
import os
import asyncio

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import numpy as np
import pytest
import torch

from remix_engine.capture import (
    CaptureDevice,
    LevelMonitor,
    ReplayDevice,
    analyser_bins,
    capture_session,
    record,
)
from remix_engine.core.errors import DeviceError, InvalidParameter
from remix_engine.core.types import AudioBuffer
from remix_engine.pipeline import RemixPipeline, RemixSession, RemixState

SR = 8000


class FakeDevice(CaptureDevice):
    """Counts acquire/release; optionally fails on start or on the nth analyser read."""

    def __init__(self, level: int = 128, fail_on_start: bool = False, fail_after: int = None):
        self.sample_rate = SR
        self.channels = 1
        self.level = level
        self.fail_on_start = fail_on_start
        self.fail_after = fail_after
        self.starts = 0
        self.stops = 0
        self.reads = 0
        self.callbacks = []

    def start(self):
        if self.fail_on_start:
            raise OSError("permission denied")
        self.starts += 1

    def stop(self):
        self.stops += 1

    def on_data(self, callback):
        self.callbacks.append(callback)

    def off_data(self, callback):
        if callback in self.callbacks:
            self.callbacks.remove(callback)

    def read_frequency_bins(self):
        self.reads += 1
        if self.fail_after is not None and self.reads > self.fail_after:
            raise RuntimeError("device unplugged")
        for cb in self.callbacks:
            cb(np.full(80, 0.25, dtype=np.float32))
        return np.full(32, self.level, dtype=np.uint8)


# -----------------------------------------------------------------------------
# Scoped acquisition
# -----------------------------------------------------------------------------

def test_session_releases_on_normal_exit():
    device = FakeDevice()

    async def main():
        async with capture_session(device):
            assert device.starts == 1
            assert device.stops == 0

    asyncio.run(main())
    assert device.stops == 1


def test_session_releases_on_error():
    device = FakeDevice()

    async def main():
        async with capture_session(device):
            raise ValueError("processing blew up")

    with pytest.raises(ValueError):
        asyncio.run(main())
    assert device.stops == 1


def test_session_releases_on_cancellation():
    device = FakeDevice()

    async def hold():
        async with capture_session(device):
            await asyncio.sleep(10)

    async def main():
        task = asyncio.create_task(hold())
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(main())
    assert device.stops == 1


def test_start_failure_is_device_error():
    device = FakeDevice(fail_on_start=True)

    async def main():
        async with capture_session(device):
            pass

    with pytest.raises(DeviceError):
        asyncio.run(main())
    assert device.stops == 0


# -----------------------------------------------------------------------------
# Level polling
# -----------------------------------------------------------------------------

def test_monitor_polls_and_publishes_snapshots():
    device = FakeDevice(level=128)
    seen = []

    async def main():
        monitor = LevelMonitor(device, interval_s=0.005, on_level=seen.append)
        monitor.start()
        await asyncio.sleep(0.05)
        await monitor.close()
        return monitor

    monitor = asyncio.run(main())
    assert monitor.ticks >= 1
    assert len(seen) == monitor.ticks
    assert seen[-1].current_level == pytest.approx(128 / 255)
    assert seen[-1].peak_level >= seen[-1].current_level
    assert not monitor.running


def test_monitor_stop_halts_ticks():
    device = FakeDevice()

    async def main():
        monitor = LevelMonitor(device, interval_s=0.005)
        monitor.start()
        await asyncio.sleep(0.03)
        monitor.stop()
        await asyncio.sleep(0)
        ticks = monitor.ticks
        await asyncio.sleep(0.03)
        return ticks, monitor.ticks

    before, after = asyncio.run(main())
    assert before == after


def test_monitor_poll_wraps_device_failure():
    monitor = LevelMonitor(FakeDevice(fail_after=0))
    with pytest.raises(DeviceError):
        monitor.poll(16.0)


# -----------------------------------------------------------------------------
# Recording
# -----------------------------------------------------------------------------

def test_record_collects_chunks_and_releases():
    device = FakeDevice()
    levels = []
    buf = asyncio.run(record(device, duration_s=0.05, on_level=levels.append, interval_s=0.005))
    assert device.stops == 1
    assert buf.sample_rate == SR
    assert buf.frames == 80 * device.reads
    assert torch.allclose(buf.samples, torch.full_like(buf.samples, 0.25))
    assert levels


def test_record_until_stop_event():
    device = FakeDevice()

    async def main():
        stop = asyncio.Event()
        asyncio.get_running_loop().call_later(0.03, stop.set)
        return await record(device, stop_event=stop, interval_s=0.005)

    buf = asyncio.run(main())
    assert buf.frames > 0
    assert device.stops == 1


def test_record_device_failure_releases_and_raises():
    device = FakeDevice(fail_after=2)
    with pytest.raises(DeviceError):
        asyncio.run(record(device, duration_s=1.0, interval_s=0.005))
    assert device.stops == 1


def test_record_needs_an_end_condition():
    with pytest.raises(InvalidParameter):
        asyncio.run(record(FakeDevice()))


def test_record_detaches_its_collector():
    device = FakeDevice()
    first = asyncio.run(record(device, duration_s=0.03, interval_s=0.005))
    assert device.callbacks == []

    reads_before = device.reads
    second = asyncio.run(record(device, duration_s=0.03, interval_s=0.005))
    assert device.callbacks == []
    assert second.frames == 80 * (device.reads - reads_before)
    assert first.frames == 80 * reads_before


def test_session_detaches_callback_when_start_fails():
    device = FakeDevice(fail_on_start=True)
    seen = []

    async def main():
        async with capture_session(device, on_data=seen.append):
            pass

    with pytest.raises(DeviceError):
        asyncio.run(main())
    assert device.callbacks == []


def test_replay_device_delivers_whole_buffer():
    source = AudioBuffer(torch.linspace(-0.5, 0.5, 800).unsqueeze(0), SR)
    device = ReplayDevice(source, chunk_frames=100)

    async def main():
        return await record(device, duration_s=0.2, interval_s=0.002)

    buf = asyncio.run(main())
    assert not device.active
    assert buf.frames <= source.frames
    torch.testing.assert_close(buf.samples, source.samples[:, :buf.frames])


def test_replay_device_rejects_double_start():
    device = ReplayDevice(AudioBuffer(torch.zeros(1, 10), SR))
    device.start()
    with pytest.raises(DeviceError):
        device.start()


def test_analyser_bins_scale():
    silent = analyser_bins(np.zeros(512, dtype=np.float32))
    assert silent.dtype == np.uint8
    assert silent.max() == 0
    t = np.arange(512) / SR
    loud = analyser_bins(np.sin(2 * np.pi * 1000 * t).astype(np.float32))
    assert loud.max() > 200


def test_pipeline_capture_into_session():
    device = FakeDevice()

    async def main():
        return await RemixPipeline().capture(RemixSession(), device, duration_s=0.1)

    session = asyncio.run(main())
    assert session.state == RemixState.CAPTURED
    assert session.recording.frames > 0


def test_pipeline_capture_failure_marks_session_failed():
    device = FakeDevice(fail_on_start=True)
    session = asyncio.run(RemixPipeline().capture(RemixSession(), device, duration_s=0.03))
    assert session.state == RemixState.FAILED
    assert isinstance(session.error, DeviceError)
    assert session.history == (RemixState.IDLE, RemixState.CAPTURING, RemixState.FAILED)
