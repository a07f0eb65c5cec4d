"""
Text chunk to waveform synthesis.

Pipeline per chunk:
1. Graphemes -> phonemes (language table or per-character)
2. Phoneme embedding in feature-vector layout, built from the profile's
   VoiceCharacteristics and a stable per-phoneme code
3. Standardize, scale by speed x pitch x emotion, run the acoustic model
4. Additive harmonic reconstruction driven by the mel envelopes

Each phoneme (pauses included) spans frames_per_phoneme x hop_size samples,
so output length depends only on the phoneme count.
"""

import hashlib
import logging
import math

import numpy as np
import torch
import torch.nn.functional as F

from .config import FeatureConfig, SynthesisConfig
from .datatypes import AudioBuffer, Emotion, TextChunk, VoiceCharacteristics
from .errors import SynthesisFailed
from .features import field_slices, mel_frequencies
from .phonemes import PAUSE, to_phonemes
from .trainer import LoadedModel, unit_to_db

logger = logging.getLogger(__name__)

DEFAULT_F0 = 120.0
PEAK_LIMIT = 0.95


def phoneme_code(phoneme: str, size: int) -> np.ndarray:
    """Deterministic values in [-1, 1] identifying a phoneme."""
    digest = b""
    counter = 0
    while len(digest) < size:
        digest += hashlib.sha256(f"{phoneme}:{counter}".encode("utf-8")).digest()
        counter += 1
    raw = np.frombuffer(digest[:size], dtype=np.uint8).astype(np.float64)
    return raw / 127.5 - 1.0


class SpeechSynthesizer:
    """
    Per-chunk speech synthesis against a loaded profile model.

    Example:
        synth = SpeechSynthesizer()
        audio = synth.synthesize(chunk, loaded, characteristics,
                                 speed=1.0, pitch=1.1, emotion="happy")
    """

    def __init__(
        self,
        config: SynthesisConfig | None = None,
        feature_config: FeatureConfig | None = None,
        sample_rate: int = 22050,
    ):
        self.cfg = config or SynthesisConfig()
        self.feature_cfg = feature_config or FeatureConfig()
        self.sample_rate = sample_rate
        self.slices = field_slices(self.feature_cfg)

    @property
    def samples_per_phoneme(self) -> int:
        return self.cfg.frames_per_phoneme * self.cfg.hop_size

    def embed(self, phoneme: str, characteristics: VoiceCharacteristics, sample_rate: int | None = None) -> np.ndarray:
        """Phoneme embedding in feature-vector layout."""
        sr = sample_rate or self.sample_rate
        s = self.slices
        code = phoneme_code(phoneme, self.feature_cfg.vector_size)
        v = np.zeros(self.feature_cfg.vector_size)
        f0 = characteristics.fundamental_frequency or DEFAULT_F0

        v[s["mfcc"]] = characteristics.mfcc_mean + 5.0 * code[s["mfcc"]]
        v[s["pitch"]] = f0 * (1.0 + 0.1 * code[s["pitch"]])

        formants = np.zeros(s["formants"].stop - s["formants"].start)
        known = np.asarray(characteristics.formants[:formants.size], dtype=np.float64)
        formants[:known.size] = known
        v[s["formants"]] = formants * (1.0 + 0.15 * code[s["formants"]])

        centroid = characteristics.spectral_centroid * (1.0 + 0.2 * code[s["spectral_centroid"]][0])
        v[s["spectral_centroid"]] = centroid
        v[s["zero_crossing_rate"]] = min(1.0, 2.0 * centroid / sr)
        v[s["spectral_rolloff"]] = 1.5 * centroid
        v[s["fundamental_frequency"]] = f0
        v[s["intensity"]] = -20.0 + 3.0 * code[s["intensity"]][0]
        v[s["duration"]] = self.samples_per_phoneme / sr
        return v

    def acoustic_vectors(
        self,
        phonemes: list[str],
        model: LoadedModel,
        characteristics: VoiceCharacteristics,
        scale: float,
    ) -> np.ndarray:
        """(P, n_mels) model outputs; pause rows are left at -1 (silence)."""
        voiced = [i for i, p in enumerate(phonemes) if p != PAUSE]
        n_mels = model.model.output_size
        out = -np.ones((len(phonemes), n_mels))
        if voiced:
            emb = np.stack([self.embed(phonemes[i], characteristics, model.sample_rate) for i in voiced])
            out[voiced] = model.infer(model.standardize(emb) * scale)
        return out

    def reconstruct(
        self,
        acoustic: np.ndarray,
        pause: np.ndarray,
        f0: float,
        sample_rate: int | None = None,
    ) -> np.ndarray:
        """
        Additive synthesis from per-phoneme mel envelopes.

        Args:
            acoustic: (P, n_mels) vectors in [-1, 1]
            pause: (P,) bool, True where the phoneme is silent
            f0: oscillator fundamental (Hz)
            sample_rate: output rate (defaults to the synthesizer rate)

        Returns:
            float waveform of P * samples_per_phoneme samples
        """
        sr = sample_rate or self.sample_rate
        n = self.samples_per_phoneme
        num_samples = acoustic.shape[0] * n
        if num_samples == 0:
            return np.zeros(0)

        centers = mel_frequencies(sr, acoustic.shape[1])[1:-1]
        amps_db = unit_to_db(acoustic)
        k_max = max(1, min(self.cfg.num_harmonics, int((sr / 2) // f0)))

        # Gate: 1 on voiced samples with linear fades at run edges, 0 on pauses
        gate = torch.from_numpy(np.repeat((~pause).astype(np.float64), n))
        fade = min(self.cfg.fade_samples, n)
        if fade > 1:
            kernel = torch.full((1, 1, fade), 1.0 / fade, dtype=torch.float64)
            padded = F.pad(gate.view(1, 1, -1), (fade - 1, 0))
            ramp_in = F.conv1d(padded, kernel).view(-1)
            padded = F.pad(gate.flip(0).view(1, 1, -1), (fade - 1, 0))
            ramp_out = F.conv1d(padded, kernel).view(-1).flip(0)
            gate = torch.minimum(ramp_in, ramp_out) * gate

        # Continuous phase across phoneme boundaries
        phase = torch.cumsum(torch.full((num_samples,), 2 * math.pi * f0 / sr, dtype=torch.float64), dim=0)

        waveform = torch.zeros(num_samples, dtype=torch.float64)
        for k in range(1, k_max + 1):
            per_phoneme = np.array([np.interp(k * f0, centers, row) for row in amps_db])
            amp = torch.from_numpy(10.0 ** (per_phoneme / 20.0)).repeat_interleave(n)
            waveform += amp * torch.sin(k * phase)

        waveform = waveform * gate
        peak = float(waveform.abs().max())
        if peak > PEAK_LIMIT:
            waveform = waveform * (PEAK_LIMIT / peak)
        return waveform.numpy()

    def synthesize(
        self,
        chunk: TextChunk,
        model: LoadedModel | None,
        characteristics: VoiceCharacteristics,
        speed: float = 1.0,
        pitch: float = 1.0,
        emotion: str | Emotion = Emotion.NEUTRAL,
        language: str | None = None,
    ) -> AudioBuffer:
        """
        Render one chunk.

        Raises:
            SynthesisFailed: missing model, bad modulation values, inference error
        """
        if model is None:
            raise SynthesisFailed(f"No model loaded for chunk {chunk.index}")
        for name, value in (("speed", speed), ("pitch", pitch)):
            if not math.isfinite(value) or value <= 0:
                raise SynthesisFailed(f"{name} must be a positive number, got {value}")

        language = language or characteristics.language
        phonemes = to_phonemes(chunk.text, language) or [PAUSE]
        scale = speed * pitch * Emotion.parse(emotion).factor
        f0 = (characteristics.fundamental_frequency or DEFAULT_F0) * pitch

        try:
            acoustic = self.acoustic_vectors(phonemes, model, characteristics, scale)
            pause = np.array([p == PAUSE for p in phonemes])
            wave = self.reconstruct(acoustic, pause, f0, model.sample_rate)
        except Exception as e:
            raise SynthesisFailed(f"Chunk {chunk.index} failed: {e}") from e
        if not np.all(np.isfinite(wave)):
            raise SynthesisFailed(f"Chunk {chunk.index} produced non-finite samples")

        logger.debug(f"Chunk {chunk.index}: {len(phonemes)} phonemes -> {wave.size} samples")
        # Rendered at the rate the profile was trained at
        return AudioBuffer.from_float(wave, model.sample_rate)
