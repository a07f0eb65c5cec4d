"""
Microphone capture for voice samples.

Uses sounddevice (PortAudio) for real devices; SimulatedInput stands in
for a microphone in tests and headless runs.

The input device is exclusive to the process: only one capture session may
be open at a time and a second open() fails instead of waiting.

Example:
    capture = AudioCapture()
    session = capture.open()
    audio = capture.capture(session, duration_bound=30.0,
                            on_level=lambda t, v: print(f"{t:5.1f}s {v:.2f}"))

Install: pip install sounddevice
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Protocol

import numpy as np

from .config import CaptureConfig
from .datatypes import AudioBuffer, FULL_SCALE
from .errors import DeviceUnavailable, RecordingInterrupted

logger = logging.getLogger(__name__)

# Process-wide: held for the lifetime of an open capture session
_DEVICE_LOCK = threading.Lock()

LevelCallback = Callable[[float, float], None]


@dataclass(frozen=True)
class AudioFormat:
    """Requested PCM format."""
    sample_rate: int = 22050
    channels: int = 1
    bit_depth: int = 16


class AudioDevice(Protocol):
    """Input device interface."""
    def supports(self, fmt: AudioFormat) -> bool: ...
    def open(self, fmt: AudioFormat, blocksize: int) -> Any: ...
    def read(self, handle: Any) -> np.ndarray: ...
    def close(self, handle: Any) -> None: ...


def block_level(block: np.ndarray) -> float:
    """RMS of an int16 block normalized to full scale."""
    if block.size == 0:
        return 0.0
    x = block.astype(np.float64)
    return float(np.sqrt(np.mean(x * x)) / FULL_SCALE)


class SoundDeviceInput:
    """
    PortAudio input via sounddevice, read in blocking mode.

    Args:
        device: Device index or name (None for the system default)
    """

    def __init__(self, device: int | str | None = None):
        self.device = device

    @staticmethod
    def _sd():
        try:
            import sounddevice as sd
        except ImportError:
            raise ImportError("sounddevice not installed. Run: pip install sounddevice")
        return sd

    def supports(self, fmt: AudioFormat) -> bool:
        if fmt.bit_depth != 16:
            return False
        sd = self._sd()
        try:
            sd.check_input_settings(
                device=self.device,
                channels=fmt.channels,
                dtype="int16",
                samplerate=fmt.sample_rate,
            )
        except (ValueError, sd.PortAudioError) as e:
            logger.info(f"Input format rejected by device: {e}")
            return False
        return True

    def open(self, fmt: AudioFormat, blocksize: int) -> Any:
        sd = self._sd()
        stream = sd.InputStream(
            samplerate=fmt.sample_rate,
            channels=fmt.channels,
            dtype="int16",
            blocksize=blocksize,
            device=self.device,
        )
        stream.start()
        return stream

    def read(self, handle: Any) -> np.ndarray:
        data, overflowed = handle.read(handle.blocksize)
        if overflowed:
            logger.debug("Input overflow; samples dropped by PortAudio")
        # Extract mono
        return np.asarray(data[:, 0], dtype=np.int16).copy()

    def close(self, handle: Any) -> None:
        handle.stop()
        handle.close()


class SimulatedInput:
    """
    Simulated microphone (no sounddevice required).

    Plays back ``source`` in a loop, or synthesizes a deterministic voiced
    signal (harmonic tone with slow pitch glide and syllable-rate envelope).

    Args:
        source: Optional int16 samples to play back
        sample_rates: Rates this fake device accepts
        fail_after_blocks: Raise OSError on this read (None = never)
        realtime: Sleep one block duration per read
        f0: Base pitch of the synthesized voice
    """

    def __init__(
        self,
        source: np.ndarray | None = None,
        sample_rates: tuple[int, ...] = (8000, 16000, 22050, 24000, 44100, 48000),
        fail_after_blocks: int | None = None,
        realtime: bool = False,
        f0: float = 140.0,
    ):
        self.source = None if source is None else np.asarray(source, dtype=np.int16)
        self.sample_rates = tuple(sample_rates)
        self.fail_after_blocks = fail_after_blocks
        self.realtime = realtime
        self.f0 = f0
        self.open_handles = 0
        self.reads = 0

    def supports(self, fmt: AudioFormat) -> bool:
        return fmt.channels == 1 and fmt.bit_depth == 16 and fmt.sample_rate in self.sample_rates

    def open(self, fmt: AudioFormat, blocksize: int) -> Any:
        self.open_handles += 1
        return {"fmt": fmt, "blocksize": blocksize, "pos": 0}

    def read(self, handle: Any) -> np.ndarray:
        if self.fail_after_blocks is not None and self.reads >= self.fail_after_blocks:
            raise OSError("simulated input device failure")
        self.reads += 1

        n = handle["blocksize"]
        sr = handle["fmt"].sample_rate
        pos = handle["pos"]
        handle["pos"] = pos + n

        if self.realtime:
            time.sleep(n / sr)

        if self.source is not None and self.source.size:
            idx = (np.arange(pos, pos + n) % self.source.size)
            return self.source[idx].copy()
        return synth_voice(pos, n, sr, self.f0)

    def close(self, handle: Any) -> None:
        self.open_handles -= 1


def synth_voice(start: int, n: int, sample_rate: int, f0: float = 140.0) -> np.ndarray:
    """Deterministic voice-like test signal, sample-accurate from ``start``."""
    t = np.arange(start, start + n, dtype=np.float64) / sample_rate
    # Slow glide around f0 keeps pitch tracking non-trivial
    phase = 2 * np.pi * (f0 * t - f0 * 0.1 * np.cos(2 * np.pi * 0.5 * t) / (2 * np.pi * 0.5))
    x = np.zeros_like(t)
    for k, amp in enumerate((1.0, 0.6, 0.35, 0.2, 0.12), start=1):
        x += amp * np.sin(k * phase)
    envelope = 0.55 + 0.45 * np.sin(2 * np.pi * 4.0 * t) ** 2
    x = 0.25 * x * envelope
    return np.round(np.clip(x, -1.0, 1.0) * FULL_SCALE).astype(np.int16)


class CaptureSession:
    """Open capture on the exclusive input device."""

    def __init__(self, fmt: AudioFormat, blocksize: int, handle: Any):
        self.fmt = fmt
        self.blocksize = blocksize
        self.handle = handle
        self.cancelled = False
        self.closed = False
        self.started_at: float | None = None
        self._stop = threading.Event()
        self._lock = threading.Lock()
        self._latest = np.zeros(0, dtype=np.int16)

    def cancel(self):
        """Stop capture early (user request)."""
        self.cancelled = True
        self._stop.set()

    def _expire(self):
        """Duration bound reached."""
        self._stop.set()

    def _push(self, block: np.ndarray):
        with self._lock:
            self._latest = block

    @property
    def level(self) -> float:
        """Volume of the most recent block."""
        with self._lock:
            return block_level(self._latest)

    @property
    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        return time.monotonic() - self.started_at


class AudioCapture:
    """
    Bounded, cancellable recording from an AudioDevice.

    Reads run on a dedicated worker thread; a timer enforces the duration
    bound and an optional monitor thread reports (elapsed, level).
    """

    def __init__(self, device: AudioDevice | None = None, config: CaptureConfig | None = None):
        self.cfg = config or CaptureConfig()
        self.device = device if device is not None else SoundDeviceInput(self.cfg.device)
        self._active: CaptureSession | None = None

    def default_format(self) -> AudioFormat:
        return AudioFormat(self.cfg.sample_rate, self.cfg.channels, self.cfg.bit_depth)

    @property
    def active_session(self) -> CaptureSession | None:
        return self._active

    def open(self, fmt: AudioFormat | None = None) -> CaptureSession:
        """
        Open the input device.

        Raises:
            DeviceUnavailable: format unsupported, device busy, or open failed
        """
        fmt = fmt or self.default_format()
        if not self.device.supports(fmt):
            raise DeviceUnavailable(
                f"Input device does not support {fmt.sample_rate} Hz / "
                f"{fmt.channels} ch / {fmt.bit_depth} bit"
            )
        if not _DEVICE_LOCK.acquire(blocking=False):
            raise DeviceUnavailable("Another capture session is already active")

        blocksize = max(1, int(fmt.sample_rate * self.cfg.block_ms / 1000))
        try:
            handle = self.device.open(fmt, blocksize)
        except Exception as e:
            _DEVICE_LOCK.release()
            raise DeviceUnavailable(f"Failed to open input device: {e}") from e

        session = CaptureSession(fmt, blocksize, handle)
        self._active = session
        logger.info(f"Capture session opened ({fmt.sample_rate} Hz, block {blocksize})")
        return session

    def cancel(self, session: CaptureSession | None = None):
        """Cancel the given (or active) session."""
        session = session or self._active
        if session is not None:
            session.cancel()

    def capture(
        self,
        session: CaptureSession,
        duration_bound: float,
        on_level: LevelCallback | None = None,
    ) -> AudioBuffer:
        """
        Record until ``duration_bound`` seconds are captured, the bound
        elapses on the wall clock, or the session is cancelled.

        The device is closed before this returns, on every path.

        Raises:
            RecordingInterrupted: device read failed
        """
        if session.closed:
            raise DeviceUnavailable("Capture session already closed")
        if duration_bound <= 0:
            self._release(session)
            raise ValueError("duration_bound must be positive")

        target = int(round(duration_bound * session.fmt.sample_rate))
        blocks: list[np.ndarray] = []
        failures: list[BaseException] = []

        def _worker():
            collected = 0
            try:
                while not session._stop.is_set() and collected < target:
                    block = self.device.read(session.handle)
                    block = block[: target - collected]
                    blocks.append(block)
                    collected += block.size
                    session._push(block)
            except Exception as e:
                failures.append(e)
            finally:
                session._stop.set()

        def _monitor():
            while not session._stop.wait(self.cfg.monitor_interval):
                on_level(session.elapsed, session.level)

        worker = threading.Thread(target=_worker, name="voxclone-capture", daemon=True)
        timer = threading.Timer(duration_bound, session._expire)
        timer.daemon = True
        monitor = None
        if on_level is not None:
            monitor = threading.Thread(target=_monitor, name="voxclone-level", daemon=True)

        session.started_at = time.monotonic()
        try:
            worker.start()
            timer.start()
            if monitor is not None:
                monitor.start()
            worker.join()
        finally:
            timer.cancel()
            session._stop.set()
            if monitor is not None and monitor.is_alive():
                monitor.join()
            self._release(session)

        if failures:
            logger.error(f"Capture failed after {sum(b.size for b in blocks)} samples: {failures[0]}")
            raise RecordingInterrupted(f"Recording failed: {failures[0]}") from failures[0]

        samples = np.concatenate(blocks) if blocks else np.zeros(0, dtype=np.int16)
        audio = AudioBuffer(samples, session.fmt.sample_rate, session.fmt.channels, session.fmt.bit_depth)
        logger.info(
            f"Captured {audio.duration:.2f}s"
            + (" (cancelled)" if session.cancelled else "")
        )
        return audio

    def record(self, duration_bound: float, on_level: LevelCallback | None = None) -> AudioBuffer:
        """open() + capture() in one call."""
        return self.capture(self.open(), duration_bound, on_level)

    def probe_level(self, seconds: float = 5.0) -> float:
        """Peak block level over a short test recording."""
        session = self.open()
        audio = self.capture(session, seconds)
        if audio.is_empty:
            return 0.0
        n = session.blocksize
        return max(block_level(audio.samples[i:i + n]) for i in range(0, len(audio), n))

    def _release(self, session: CaptureSession):
        if session.closed:
            return
        try:
            self.device.close(session.handle)
        finally:
            session.closed = True
            if self._active is session:
                self._active = None
            _DEVICE_LOCK.release()
            logger.debug("Capture device released")


def list_input_devices() -> list[str]:
    """Names of input-capable devices known to PortAudio."""
    sd = SoundDeviceInput._sd()
    return [d["name"] for d in sd.query_devices() if d.get("max_input_channels", 0) > 0]
