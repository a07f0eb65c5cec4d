"""
Signal conditioning for recorded voice samples.

Includes:
- Peak normalization to 95% of full scale
- First-order RC high-pass (rumble removal)
- Spectral subtraction denoising (best effort: falls back to the input)
- Polyphase resampling
- Concatenation of same-format buffers
"""

import logging
import math

import numpy as np
from scipy.signal import lfilter, resample_poly

from .config import ConditioningConfig
from .datatypes import AudioBuffer, FULL_SCALE
from .errors import UnsupportedAudioFormat

logger = logging.getLogger(__name__)

PEAK_TARGET = 0.95


def _require_samples(buffer: AudioBuffer, stage: str):
    if buffer.is_empty:
        raise UnsupportedAudioFormat(f"{stage}: audio buffer is empty")


def _to_int16(x: np.ndarray) -> np.ndarray:
    return np.clip(np.round(x), -FULL_SCALE - 1, FULL_SCALE).astype(np.int16)


def normalize(buffer: AudioBuffer) -> AudioBuffer:
    """
    Scale so the peak magnitude is 95% of full scale.

    A silent buffer is returned unchanged.
    """
    _require_samples(buffer, "normalize")
    peak = int(np.max(np.abs(buffer.samples.astype(np.int32))))
    if peak == 0:
        return buffer
    scale = PEAK_TARGET * FULL_SCALE / peak
    return buffer.with_samples(_to_int16(buffer.samples.astype(np.float64) * scale))


def high_pass(buffer: AudioBuffer, cutoff_hz: float) -> AudioBuffer:
    """
    First-order recursive high-pass.

        y[0] = x[0]
        y[i] = alpha * (y[i-1] + x[i] - x[i-1]),  alpha = rc / (rc + dt)
    """
    _require_samples(buffer, "high_pass")
    if cutoff_hz <= 0:
        raise ValueError("cutoff_hz must be positive")
    rc = 1.0 / (2.0 * math.pi * cutoff_hz)
    dt = 1.0 / buffer.sample_rate
    alpha = rc / (rc + dt)

    x = buffer.samples.astype(np.float64)
    # Initial state chosen so the first output equals the first input
    y, _ = lfilter([alpha, -alpha], [1.0, -alpha], x, zi=[(1.0 - alpha) * x[0]])
    return buffer.with_samples(_to_int16(y))


def _spectral_subtract(x: np.ndarray, cfg: ConditioningConfig) -> np.ndarray:
    n = int(cfg.denoise_window)
    hop = n // 2
    # Periodic Hann sums to one at 50% overlap
    window = 0.5 - 0.5 * np.cos(2 * np.pi * np.arange(n) / n)

    padded = np.pad(x, (hop, hop + n))
    n_frames = 1 + (padded.size - n) // hop
    idx = np.arange(n)[None, :] + hop * np.arange(n_frames)[:, None]
    spec = np.fft.rfft(padded[idx] * window, axis=1)
    mag = np.abs(spec)
    phase = np.angle(spec)

    energy = np.sum(mag ** 2, axis=1)
    k = max(1, int(math.ceil(n_frames * cfg.noise_percentile / 100.0)))
    quiet = np.argsort(energy, kind="stable")[:k]
    noise = mag[quiet].mean(axis=0)

    clean = np.maximum(mag - cfg.over_subtraction * noise, cfg.spectral_floor * mag)
    frames = np.fft.irfft(clean * np.exp(1j * phase), n=n, axis=1)

    out = np.zeros(padded.size)
    for i in range(n_frames):
        out[i * hop:i * hop + n] += frames[i]
    return out[hop:hop + x.size]


def denoise(buffer: AudioBuffer, config: ConditioningConfig | None = None) -> AudioBuffer:
    """
    Windowed spectral subtraction (50% overlap).

    Best effort: any internal failure returns the original buffer.
    """
    cfg = config or ConditioningConfig()
    try:
        _require_samples(buffer, "denoise")
        if cfg.denoise_window < 4 or cfg.denoise_window % 2:
            raise ValueError(f"denoise_window must be even and >= 4, got {cfg.denoise_window}")
        y = _spectral_subtract(buffer.samples.astype(np.float64), cfg)
        if not np.all(np.isfinite(y)):
            raise FloatingPointError("non-finite samples after spectral subtraction")
        return buffer.with_samples(_to_int16(y))
    except Exception as e:
        logger.warning(f"Noise reduction skipped, keeping original audio: {e}")
        return buffer


def resample(buffer: AudioBuffer, target_rate: int) -> AudioBuffer:
    """Polyphase resampling to ``target_rate``."""
    _require_samples(buffer, "resample")
    if target_rate <= 0:
        raise UnsupportedAudioFormat(f"Invalid target sample rate: {target_rate}")
    if target_rate == buffer.sample_rate:
        return buffer
    g = math.gcd(buffer.sample_rate, target_rate)
    y = resample_poly(buffer.samples.astype(np.float64), target_rate // g, buffer.sample_rate // g)
    return AudioBuffer(_to_int16(y), target_rate, buffer.channels, buffer.bit_depth)


def concatenate(buffers: list[AudioBuffer]) -> AudioBuffer:
    """
    Join buffers in order.

    Raises:
        UnsupportedAudioFormat: empty input, or sample rate / channel mismatch
    """
    if not buffers:
        raise UnsupportedAudioFormat("Nothing to concatenate")
    first = buffers[0]
    for i, b in enumerate(buffers[1:], start=1):
        if b.sample_rate != first.sample_rate or b.channels != first.channels:
            raise UnsupportedAudioFormat(
                f"Buffer {i} is {b.sample_rate} Hz / {b.channels} ch, "
                f"expected {first.sample_rate} Hz / {first.channels} ch"
            )
    samples = np.concatenate([b.samples for b in buffers])
    return AudioBuffer(samples, first.sample_rate, first.channels, first.bit_depth)


class SignalConditioner:
    """
    Conditioning stage bound to a config.

    Example:
        conditioner = SignalConditioner()
        clean = conditioner.condition(raw, sample_rate=22050)
    """

    def __init__(self, config: ConditioningConfig | None = None):
        self.cfg = config or ConditioningConfig()

    def normalize(self, buffer: AudioBuffer) -> AudioBuffer:
        return normalize(buffer)

    def high_pass(self, buffer: AudioBuffer, cutoff_hz: float | None = None) -> AudioBuffer:
        return high_pass(buffer, cutoff_hz or self.cfg.highpass_cutoff_hz)

    def denoise(self, buffer: AudioBuffer) -> AudioBuffer:
        return denoise(buffer, self.cfg)

    def resample(self, buffer: AudioBuffer, target_rate: int) -> AudioBuffer:
        return resample(buffer, target_rate)

    def concatenate(self, buffers: list[AudioBuffer]) -> AudioBuffer:
        return concatenate(buffers)

    def enhance(self, buffer: AudioBuffer) -> AudioBuffer:
        """
        Normalize, high-pass and denoise.

        Best effort like denoise(): on failure the input is returned.
        """
        try:
            out = self.normalize(buffer)
            out = self.high_pass(out)
        except (ValueError, FloatingPointError, UnsupportedAudioFormat) as e:
            logger.warning(f"Audio enhancement skipped, keeping original audio: {e}")
            return buffer
        return self.denoise(out)

    def condition(self, buffer: AudioBuffer, sample_rate: int) -> AudioBuffer:
        """
        Full clean-up for a training sample: resample to the model rate,
        then enhance.

        Raises:
            UnsupportedAudioFormat: empty or multi-channel input
        """
        _require_samples(buffer, "condition")
        if buffer.channels != 1:
            raise UnsupportedAudioFormat(f"Expected mono audio, got {buffer.channels} channels")
        return self.enhance(self.resample(buffer, sample_rate))
