"""
Voice capture: device capability, scoped acquire/release and the level polling loop.

A CaptureDevice is supplied by the host (browser bridge, sound card, test double).
capture_session() owns the device for the duration of an async with block, and
LevelMonitor polls frequency bins once per display tick and feeds a LevelMeter.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Callable, List, Optional

import numpy as np
import torch

from remix_engine.core.errors import DeviceError, InvalidParameter
from remix_engine.core.types import AudioBuffer, LevelSnapshot
from remix_engine.dsp.meter import LevelMeter

logger = logging.getLogger(__name__)

DISPLAY_TICK_S = 1.0 / 60.0

# Analyser byte scaling: magnitudes between these dB values map onto 0..255
ANALYSER_MIN_DB = -100.0
ANALYSER_MAX_DB = -30.0
ANALYSER_FFT_SIZE = 256

DataCallback = Callable[[np.ndarray], None]
LevelCallback = Callable[[LevelSnapshot], None]


class CaptureDevice(ABC):
    """
    Audio input. PCM arrives through the on_data callback as float32 arrays shaped
    [frames] or [frames, channels]; read_frequency_bins() returns the analyser's
    current magnitudes (uint8 0..255 or float 0..1).
    """
    sample_rate: int
    channels: int

    @abstractmethod
    def start(self) -> None:
        """Acquire the device and begin delivering data. Raises DeviceError."""

    @abstractmethod
    def stop(self) -> None:
        """Release the device. Safe to call more than once."""

    @abstractmethod
    def read_frequency_bins(self) -> np.ndarray:
        ...

    @abstractmethod
    def on_data(self, callback: DataCallback) -> None:
        ...

    @abstractmethod
    def off_data(self, callback: DataCallback) -> None:
        """Stop delivering to callback. Unknown callbacks are ignored."""


def analyser_bins(chunk: np.ndarray, fft_size: int = ANALYSER_FFT_SIZE) -> np.ndarray:
    """Byte magnitudes of the last fft_size frames, scaled like a browser AnalyserNode."""
    mono = chunk if chunk.ndim == 1 else chunk.mean(axis=1)
    frame = np.zeros(fft_size, dtype=np.float64)
    tail = mono[-fft_size:]
    frame[:tail.size] = tail
    spectrum = np.abs(np.fft.rfft(frame * np.blackman(fft_size)))[: fft_size // 2] / fft_size
    db = 20.0 * np.log10(spectrum + 1e-12)
    scaled = (db - ANALYSER_MIN_DB) / (ANALYSER_MAX_DB - ANALYSER_MIN_DB) * 255.0
    return np.clip(scaled, 0, 255).astype(np.uint8)


class ReplayDevice(CaptureDevice):
    """
    Plays an existing buffer back as if it were live input.
    Each analyser read advances playback by chunk_frames and delivers that chunk.
    """

    def __init__(self, buffer: AudioBuffer, chunk_frames: int = 800):
        self.buffer = buffer
        self.sample_rate = buffer.sample_rate
        self.channels = buffer.channels
        self.chunk_frames = chunk_frames
        self.position = 0
        self.active = False
        self._callbacks: List[DataCallback] = []

    def start(self) -> None:
        if self.active:
            raise DeviceError("device already in use")
        self.active = True

    def stop(self) -> None:
        self.active = False

    def on_data(self, callback: DataCallback) -> None:
        self._callbacks.append(callback)

    def off_data(self, callback: DataCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def read_frequency_bins(self) -> np.ndarray:
        if not self.active:
            raise DeviceError("device is not started")
        end = min(self.position + self.chunk_frames, self.buffer.frames)
        chunk = self.buffer.samples[:, self.position:end].numpy().T.copy()
        self.position = end
        if chunk.shape[0] > 0:
            for callback in self._callbacks:
                callback(chunk)
        return analyser_bins(chunk)


# -----------------------------------------------------------------------------
# Scoped acquisition
# -----------------------------------------------------------------------------

@asynccontextmanager
async def capture_session(device: CaptureDevice, on_data: Optional[DataCallback] = None):
    """
    Acquire the device; it is released on normal exit, error and cancellation.
    on_data, when given, receives PCM only for the lifetime of the session.
    """
    if on_data is not None:
        device.on_data(on_data)
    try:
        try:
            device.start()
        except DeviceError:
            raise
        except (OSError, RuntimeError) as e:
            raise DeviceError(f"could not start capture device: {e}") from e
        logger.info("capture started (%d Hz, %d ch)", device.sample_rate, device.channels)
        try:
            yield device
        finally:
            device.stop()
            logger.info("capture device released")
    finally:
        if on_data is not None:
            device.off_data(on_data)


# -----------------------------------------------------------------------------
# Level polling
# -----------------------------------------------------------------------------

class LevelMonitor:
    """Polls the device analyser once per tick and publishes LevelSnapshots."""

    def __init__(
        self,
        device: CaptureDevice,
        meter: Optional[LevelMeter] = None,
        interval_s: float = DISPLAY_TICK_S,
        on_level: Optional[LevelCallback] = None,
    ):
        self.device = device
        self.meter = meter or LevelMeter()
        self.interval_s = interval_s
        self.on_level = on_level
        self.latest: Optional[LevelSnapshot] = None
        self.ticks = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def poll(self, elapsed_ms: float) -> LevelSnapshot:
        try:
            bins = self.device.read_frequency_bins()
        except DeviceError:
            raise
        except (OSError, RuntimeError) as e:
            raise DeviceError(f"capture device failed: {e}") from e
        snapshot = self.meter.tick(bins, elapsed_ms)
        self.latest = snapshot
        self.ticks += 1
        if self.on_level is not None:
            self.on_level(snapshot)
        return snapshot

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        last = loop.time()
        while True:
            await asyncio.sleep(self.interval_s)
            now = loop.time()
            self.poll((now - last) * 1000.0)
            last = now

    def start(self) -> None:
        if self.running:
            return
        self.meter.reset()
        self._task = asyncio.create_task(self._run())

    def stop(self) -> None:
        """Cancel the polling task; no further ticks are delivered."""
        if self._task is not None:
            self._task.cancel()

    async def close(self) -> None:
        """Stop and wait for the task to finish. Re-raises a device failure from the loop."""
        task = self._task
        if task is None:
            return
        self.stop()
        self._task = None
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise


def _collect(chunks: List[np.ndarray], sample_rate: int) -> AudioBuffer:
    if not chunks:
        raise DeviceError("capture device delivered no audio")
    frames = np.concatenate([c.reshape(c.shape[0], -1) for c in chunks], axis=0)
    samples = torch.from_numpy(np.ascontiguousarray(frames.T, dtype=np.float32))
    return AudioBuffer(samples, sample_rate)


async def record(
    device: CaptureDevice,
    duration_s: Optional[float] = None,
    stop_event: Optional[asyncio.Event] = None,
    meter: Optional[LevelMeter] = None,
    on_level: Optional[LevelCallback] = None,
    interval_s: float = DISPLAY_TICK_S,
) -> AudioBuffer:
    """
    Capture until duration_s elapses or stop_event is set, metering levels meanwhile.
    Returns the PCM delivered through on_data as one buffer.
    """
    if duration_s is None and stop_event is None:
        raise InvalidParameter("record needs duration_s or stop_event")

    chunks: List[np.ndarray] = []
    async with capture_session(device, on_data=chunks.append):
        monitor = LevelMonitor(device, meter, interval_s, on_level)
        monitor.start()
        waiters = {monitor.task}
        stop_waiter = None
        if stop_event is not None:
            stop_waiter = asyncio.ensure_future(stop_event.wait())
            waiters.add(stop_waiter)
        try:
            await asyncio.wait(waiters, timeout=duration_s, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if stop_waiter is not None:
                stop_waiter.cancel()
            await monitor.close()

    buffer = _collect(chunks, device.sample_rate)
    logger.info("captured %.2fs of audio", buffer.duration_s)
    return buffer
