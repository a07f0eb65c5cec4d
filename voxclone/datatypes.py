"""
Core data types shared across the capture, training and synthesis stages.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any

import numpy as np

FULL_SCALE = 32767


@dataclass(eq=False)
class AudioBuffer:
    """
    Mono 16-bit PCM audio at a fixed sample rate.

    Samples are stored as a 1-D int16 array; sample rate, channel count
    and bit depth never change for the lifetime of the buffer. Processing
    stages return new buffers instead of mutating this one.
    """
    samples: np.ndarray
    sample_rate: int
    channels: int = 1
    bit_depth: int = 16

    def __post_init__(self):
        self.samples = np.asarray(self.samples, dtype=np.int16).reshape(-1)

    def __len__(self) -> int:
        return int(self.samples.shape[0])

    @property
    def duration(self) -> float:
        """Length in seconds."""
        return len(self) / float(self.sample_rate)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    def to_float(self) -> np.ndarray:
        """Samples as float64 in [-1, 1]."""
        return self.samples.astype(np.float64) / FULL_SCALE

    def with_samples(self, samples: np.ndarray) -> "AudioBuffer":
        """New buffer with the same format and different samples."""
        return AudioBuffer(samples, self.sample_rate, self.channels, self.bit_depth)

    @classmethod
    def from_float(cls, audio: np.ndarray, sample_rate: int) -> "AudioBuffer":
        """Build a buffer from float audio in [-1, 1] (clipped)."""
        audio = np.clip(np.asarray(audio, dtype=np.float64), -1.0, 1.0)
        return cls(np.round(audio * FULL_SCALE).astype(np.int16), sample_rate)


@dataclass(frozen=True)
class ModelHandle:
    """Reference to a persisted TrainedModel artifact."""
    profile_id: str
    key: str


@dataclass(frozen=True)
class VoiceCharacteristics:
    """Per-profile summary statistics derived once at training time."""
    profile_id: str
    language: str = "en"
    fundamental_frequency: float = 150.0
    formants: tuple[float, ...] = (800.0, 1200.0, 2400.0)
    spectral_centroid: float = 2000.0
    mfcc_mean: float = 0.0
    pitch_range: float = 100.0

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["formants"] = list(self.formants)
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "VoiceCharacteristics":
        d = dict(d)
        d["formants"] = tuple(float(f) for f in d.get("formants", ()))
        return cls(**d)


@dataclass(frozen=True)
class VoiceProfile:
    """Named, trained voice identity."""
    id: str
    name: str
    language: str
    model: ModelHandle
    created_at: float
    duration: float
    sample_rate: int = 22050

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "language": self.language,
            "model": {"profile_id": self.model.profile_id, "key": self.model.key},
            "created_at": self.created_at,
            "duration": self.duration,
            "sample_rate": self.sample_rate,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> "VoiceProfile":
        return cls(
            id=d["id"],
            name=d["name"],
            language=d["language"],
            model=ModelHandle(**d["model"]),
            created_at=float(d["created_at"]),
            duration=float(d["duration"]),
            sample_rate=int(d.get("sample_rate", 22050)),
        )


class Emotion(str, Enum):
    """Emotion tags accepted by the synthesizer."""
    NEUTRAL = "neutral"
    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    CALM = "calm"

    @property
    def factor(self) -> float:
        return EMOTION_FACTORS[self]

    @classmethod
    def parse(cls, tag: "str | Emotion | None") -> "Emotion":
        """Unknown or missing tags fall back to neutral."""
        if isinstance(tag, Emotion):
            return tag
        try:
            return cls(str(tag).strip().lower())
        except ValueError:
            return cls.NEUTRAL


EMOTION_FACTORS = {
    Emotion.NEUTRAL: 1.0,
    Emotion.HAPPY: 1.2,
    Emotion.SAD: 0.8,
    Emotion.ANGRY: 1.5,
    Emotion.CALM: 0.9,
}


@dataclass
class CloneRequest:
    """Single synthesis request; consumed synchronously."""
    text: str
    profile_id: str
    language: str = "auto"
    speed: float = 1.0
    pitch: float = 1.0
    emotion: str = "neutral"


@dataclass(frozen=True)
class TextChunk:
    """Ordered piece of a request's text."""
    text: str
    index: int


@dataclass
class VoiceFeatures:
    """Structured result of one feature extraction pass."""
    mfcc: np.ndarray
    pitch: np.ndarray
    formants: np.ndarray
    spectral_centroid: float
    zero_crossing_rate: float
    spectral_rolloff: float
    fundamental_frequency: float
    intensity: float
    duration: float
    voiced_pitch: np.ndarray = field(default_factory=lambda: np.zeros(0))
