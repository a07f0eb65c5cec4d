"""
Acoustic and prosodic feature extraction.

Produces a fixed-length FeatureVector from a conditioned AudioBuffer.
All sub-features are deterministic numpy computations over 1024-sample
Hann frames with a 256-sample hop (defaults):

- mfcc (13): log mel energies (40 bands) -> DCT-II, averaged over frames
- pitch (10): autocorrelation pitch track, median per tenth of the sample
- formants (5): LPC root frequencies over the loudest frames
- spectral centroid, zero-crossing rate, spectral rolloff
- fundamental frequency (median voiced pitch), intensity (dBFS), duration

Vector layout is the order above, zero-padded to the canonical length.
Training and inference both rely on this layout, see field_slices().
"""

import logging

import numpy as np
from scipy.fft import dct
from scipy.linalg import LinAlgError, solve_toeplitz

from .config import FeatureConfig
from .datatypes import AudioBuffer, VoiceCharacteristics, VoiceFeatures
from .errors import UnsupportedAudioFormat

logger = logging.getLogger(__name__)

SILENCE_DBFS = -120.0
_EPS = 1e-10


def feature_layout(cfg: FeatureConfig | None = None) -> list[tuple[str, int]]:
    """Ordered (field, width) pairs making up the vector."""
    cfg = cfg or FeatureConfig()
    return [
        ("mfcc", cfg.n_mfcc),
        ("pitch", cfg.pitch_points),
        ("formants", cfg.n_formants),
        ("spectral_centroid", 1),
        ("zero_crossing_rate", 1),
        ("spectral_rolloff", 1),
        ("fundamental_frequency", 1),
        ("intensity", 1),
        ("duration", 1),
    ]


def field_slices(cfg: FeatureConfig | None = None) -> dict[str, slice]:
    """Position of each field inside the vector."""
    out = {}
    offset = 0
    for name, width in feature_layout(cfg):
        out[name] = slice(offset, offset + width)
        offset += width
    return out


# ---------------------------------------------------------------------------
# Spectral helpers (shared with the trainer and the synthesizer)
# ---------------------------------------------------------------------------

def hz_to_mel(f):
    return 2595.0 * np.log10(1.0 + np.asarray(f, dtype=np.float64) / 700.0)


def mel_to_hz(m):
    return 700.0 * (10.0 ** (np.asarray(m, dtype=np.float64) / 2595.0) - 1.0)


def mel_frequencies(sample_rate: int, n_mels: int) -> np.ndarray:
    """Band edges (n_mels + 2) in Hz, equally spaced on the mel scale."""
    return mel_to_hz(np.linspace(0.0, hz_to_mel(sample_rate / 2.0), n_mels + 2))


def mel_filterbank(sample_rate: int, n_fft: int, n_mels: int) -> np.ndarray:
    """Triangular filters, shape (n_mels, n_fft // 2 + 1)."""
    edges = mel_frequencies(sample_rate, n_mels)
    bins = np.fft.rfftfreq(n_fft, 1.0 / sample_rate)
    fb = np.zeros((n_mels, bins.size))
    for m in range(n_mels):
        lo, center, hi = edges[m], edges[m + 1], edges[m + 2]
        up = (bins - lo) / (center - lo)
        down = (hi - bins) / (hi - center)
        fb[m] = np.maximum(0.0, np.minimum(up, down))
    return fb


def frame_signal(x: np.ndarray, frame_length: int, hop_length: int) -> np.ndarray:
    """Split into overlapping frames, zero-padding short input to one frame."""
    if x.size < frame_length:
        x = np.pad(x, (0, frame_length - x.size))
    n_frames = 1 + (x.size - frame_length) // hop_length
    idx = np.arange(frame_length)[None, :] + hop_length * np.arange(n_frames)[:, None]
    return x[idx]


def power_spectrum(frames: np.ndarray) -> np.ndarray:
    window = np.hanning(frames.shape[1])
    return np.abs(np.fft.rfft(frames * window, axis=1)) ** 2


def log_mel_db(x: np.ndarray, sample_rate: int, n_fft: int, hop_length: int, n_mels: int) -> np.ndarray:
    """
    Log mel spectrogram in dB relative to full scale, shape (frames, n_mels).

    Values are floored at -80 dB and normalized so a full-scale sine sits
    near 0 dB.
    """
    frames = frame_signal(x, n_fft, hop_length)
    power = power_spectrum(frames)
    fb = mel_filterbank(sample_rate, n_fft, n_mels)
    # Full-scale sine through a Hann window peaks at (n_fft / 4) ** 2
    ref = (n_fft / 4.0) ** 2
    mel = power @ fb.T / ref
    return np.maximum(10.0 * np.log10(mel + _EPS), -80.0)


# ---------------------------------------------------------------------------
# Sub-features
# ---------------------------------------------------------------------------

def compute_mfcc(power: np.ndarray, sample_rate: int, n_fft: int, n_bands: int, n_mfcc: int) -> np.ndarray:
    fb = mel_filterbank(sample_rate, n_fft, n_bands)
    log_mel = np.log(power @ fb.T + _EPS)
    coeffs = dct(log_mel, type=2, axis=1, norm="ortho")[:, :n_mfcc]
    return coeffs.mean(axis=0)


def track_pitch(frames: np.ndarray, sample_rate: int, fmin: float, fmax: float,
                threshold: float) -> np.ndarray:
    """
    Autocorrelation pitch per frame (Hz, 0 = unvoiced).

    The lag is picked on the biased autocorrelation (discourages octave-down
    errors); voicing uses the lag-compensated normalized peak.
    """
    x = frames - frames.mean(axis=1, keepdims=True)
    n = x.shape[1]
    spec = np.fft.rfft(x, n=2 * n, axis=1)
    ac = np.fft.irfft(np.abs(spec) ** 2, axis=1)[:, :n]
    energy = ac[:, 0]

    lag_min = max(1, int(sample_rate / fmax))
    lag_max = min(int(sample_rate / fmin), n - 2)
    if lag_max <= lag_min:
        return np.zeros(frames.shape[0])

    seg = ac[:, lag_min:lag_max + 1]
    rows = np.arange(seg.shape[0])
    best = np.argmax(seg, axis=1)
    peak = seg[rows, best]
    lag = (best + lag_min).astype(np.float64)

    # Parabolic refinement of the peak position
    left = ac[rows, np.maximum(best + lag_min - 1, 0)]
    right = ac[rows, best + lag_min + 1]
    denom = left - 2.0 * peak + right
    shift = np.where(np.abs(denom) > _EPS, 0.5 * (left - right) / np.where(denom == 0, 1.0, denom), 0.0)
    lag = lag + np.clip(shift, -0.5, 0.5)

    with np.errstate(divide="ignore", invalid="ignore"):
        strength = np.where(energy > 0, peak / energy * n / (n - lag), 0.0)
    loud = energy / n > 1e-5
    voiced = (strength >= threshold) & loud
    return np.where(voiced, sample_rate / lag, 0.0)


def summarize_pitch(track: np.ndarray, points: int) -> np.ndarray:
    """Median voiced pitch in each of ``points`` equal spans of the track."""
    out = np.zeros(points)
    for i, span in enumerate(np.array_split(track, points)):
        voiced = span[span > 0]
        if voiced.size:
            out[i] = float(np.median(voiced))
    return out


def _lpc_formants(frame: np.ndarray, sample_rate: int, order: int) -> list[float]:
    r = np.array([np.dot(frame[:frame.size - k], frame[k:]) for k in range(order + 1)])
    if r[0] <= _EPS:
        return []
    r[0] *= 1.0 + 1e-9
    try:
        a = solve_toeplitz(r[:order], r[1:order + 1])
    except LinAlgError:
        return []
    if not np.all(np.isfinite(a)):
        return []
    roots = np.roots(np.concatenate([[1.0], -a]))
    roots = roots[np.imag(roots) > 0.01]
    if roots.size == 0:
        return []
    freqs = np.arctan2(np.imag(roots), np.real(roots)) * sample_rate / (2 * np.pi)
    bandwidths = -0.5 * (sample_rate / (2 * np.pi)) * np.log(np.abs(roots))
    keep = (freqs > 90.0) & (bandwidths < 400.0)
    return sorted(float(f) for f in freqs[keep])


def estimate_formants(frames: np.ndarray, sample_rate: int, n_formants: int, max_frames: int) -> np.ndarray:
    """Average LPC formants over the highest-energy frames."""
    order = 2 + sample_rate // 1000
    energy = np.sum(frames ** 2, axis=1)
    loudest = np.argsort(-energy, kind="stable")[:max_frames]
    window = np.hamming(frames.shape[1])

    sums = np.zeros(n_formants)
    counts = np.zeros(n_formants)
    for i in sorted(loudest):
        if energy[i] <= _EPS:
            continue
        frame = frames[i]
        emphasized = np.append(frame[0], frame[1:] - 0.63 * frame[:-1]) * window
        for k, f in enumerate(_lpc_formants(emphasized, sample_rate, order)[:n_formants]):
            sums[k] += f
            counts[k] += 1
    return np.where(counts > 0, sums / np.maximum(counts, 1), 0.0)


def spectral_centroid_rolloff(power: np.ndarray, sample_rate: int, n_fft: int,
                              rolloff_percent: float) -> tuple[float, float]:
    freqs = np.fft.rfftfreq(n_fft, 1.0 / sample_rate)
    total = power.sum(axis=1)
    active = total > _EPS
    if not np.any(active):
        return 0.0, 0.0
    p = power[active]
    t = total[active]
    centroid = (p @ freqs) / t
    cumulative = np.cumsum(p, axis=1)
    idx = np.argmax(cumulative >= rolloff_percent * t[:, None], axis=1)
    return float(centroid.mean()), float(freqs[idx].mean())


def zero_crossing_rate(x: np.ndarray) -> float:
    if x.size < 2:
        return 0.0
    signs = x >= 0
    return float(np.count_nonzero(signs[1:] != signs[:-1]) / (x.size - 1))


def intensity_dbfs(x: np.ndarray) -> float:
    rms = float(np.sqrt(np.mean(x * x)))
    if rms <= 0:
        return SILENCE_DBFS
    return max(20.0 * np.log10(rms), SILENCE_DBFS)


# ---------------------------------------------------------------------------
# Extractor
# ---------------------------------------------------------------------------

class FeatureExtractor:
    """
    Deterministic feature extraction.

    Example:
        extractor = FeatureExtractor()
        vector = extractor.extract(buffer)        # (128,) float64
        features = extractor.analyze(buffer)      # structured VoiceFeatures
    """

    def __init__(self, config: FeatureConfig | None = None):
        self.cfg = config or FeatureConfig()
        self.slices = field_slices(self.cfg)

    @property
    def vector_size(self) -> int:
        return self.cfg.vector_size

    def analyze(self, buffer: AudioBuffer) -> VoiceFeatures:
        """Run every sub-feature over the buffer."""
        if buffer.is_empty:
            raise UnsupportedAudioFormat("Cannot extract features from an empty buffer")
        cfg = self.cfg
        sr = buffer.sample_rate
        x = buffer.to_float()

        frames = frame_signal(x, cfg.frame_length, cfg.hop_length)
        power = power_spectrum(frames)

        mfcc = compute_mfcc(power, sr, cfg.frame_length, cfg.n_mfcc_bands, cfg.n_mfcc)
        track = track_pitch(frames, sr, cfg.fmin, cfg.fmax, cfg.voicing_threshold)
        voiced = track[track > 0]
        centroid, rolloff = spectral_centroid_rolloff(power, sr, cfg.frame_length, cfg.rolloff_percent)

        return VoiceFeatures(
            mfcc=mfcc,
            pitch=summarize_pitch(track, cfg.pitch_points),
            formants=estimate_formants(frames, sr, cfg.n_formants, cfg.formant_frames),
            spectral_centroid=centroid,
            zero_crossing_rate=zero_crossing_rate(x),
            spectral_rolloff=rolloff,
            fundamental_frequency=float(np.median(voiced)) if voiced.size else 0.0,
            intensity=intensity_dbfs(x),
            duration=buffer.duration,
            voiced_pitch=voiced,
        )

    def vectorize(self, features: VoiceFeatures) -> np.ndarray:
        """Pack features in layout order, padded/truncated to the canonical size."""
        parts = [
            features.mfcc,
            features.pitch,
            features.formants,
            [features.spectral_centroid],
            [features.zero_crossing_rate],
            [features.spectral_rolloff],
            [features.fundamental_frequency],
            [features.intensity],
            [features.duration],
        ]
        flat = np.concatenate([np.asarray(p, dtype=np.float64).reshape(-1) for p in parts])
        out = np.zeros(self.cfg.vector_size)
        n = min(flat.size, out.size)
        out[:n] = flat[:n]
        return out

    def extract(self, buffer: AudioBuffer) -> np.ndarray:
        """FeatureVector of exactly ``vector_size`` values."""
        return self.vectorize(self.analyze(buffer))

    @staticmethod
    def characteristics(features: VoiceFeatures, profile_id: str, language: str) -> VoiceCharacteristics:
        """Summary statistics kept with a trained profile."""
        # Spread of the frame-level track, not the 10-point summary
        voiced = features.voiced_pitch
        pitch_range = float(voiced.max() - voiced.min()) if voiced.size else 0.0
        return VoiceCharacteristics(
            profile_id=profile_id,
            language=language,
            fundamental_frequency=float(features.fundamental_frequency),
            formants=tuple(float(f) for f in features.formants),
            spectral_centroid=float(features.spectral_centroid),
            mfcc_mean=float(np.mean(features.mfcc)) if features.mfcc.size else 0.0,
            pitch_range=pitch_range,
        )
