"""
Pipeline configuration.

Each stage has its own dataclass; VoxCloneConfig bundles them. Configs can
be loaded from JSON, where every section is optional and only overrides the
keys it names:

    {
        "storage_dir": "voice_data",
        "training": {"epochs": 300},
        "synthesis": {"workers": 2}
    }
"""

import json
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any


@dataclass
class CaptureConfig:
    """Microphone capture settings."""
    sample_rate: int = 22050
    channels: int = 1
    bit_depth: int = 16
    block_ms: int = 100
    monitor_interval: float = 0.05   # seconds between level callbacks
    device: int | str | None = None  # None = default input device


@dataclass
class ConditioningConfig:
    """Sample clean-up settings."""
    highpass_cutoff_hz: float = 80.0
    denoise_window: int = 1024
    noise_percentile: float = 10.0   # quietest frames used as the noise estimate
    over_subtraction: float = 1.5
    spectral_floor: float = 0.05


@dataclass
class FeatureConfig:
    """Feature extraction settings."""
    vector_size: int = 128
    frame_length: int = 1024
    hop_length: int = 256
    n_mfcc: int = 13
    n_mfcc_bands: int = 40
    pitch_points: int = 10
    n_formants: int = 5
    fmin: float = 60.0
    fmax: float = 500.0
    voicing_threshold: float = 0.3
    rolloff_percent: float = 0.85
    formant_frames: int = 20


@dataclass
class TrainingConfig:
    """Acoustic model fitting settings."""
    epochs: int = 200
    lr: float = 1e-3
    segment_seconds: float = 0.5
    n_mels: int = 80
    hidden_sizes: tuple[int, ...] = (256, 512, 512, 256)
    grad_clip: float = 1.0
    seed: int = 123
    device: str = "cpu"


@dataclass
class SynthesisConfig:
    """Waveform reconstruction settings."""
    hop_size: int = 256
    frames_per_phoneme: int = 8
    num_harmonics: int = 32
    workers: int = 4
    fade_samples: int = 64


@dataclass
class VoxCloneConfig:
    """Top-level configuration."""
    storage_dir: str = "voice_data"
    sample_rate: int = 22050
    max_text_length: int = 50000
    max_chunk_size: int = 1000
    capture: CaptureConfig = field(default_factory=CaptureConfig)
    conditioning: ConditioningConfig = field(default_factory=ConditioningConfig)
    features: FeatureConfig = field(default_factory=FeatureConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)
    synthesis: SynthesisConfig = field(default_factory=SynthesisConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "VoxCloneConfig":
        """Merge a (partial) mapping over the defaults."""
        cfg = cls()
        sections = {f.name: f for f in fields(cls)}
        updates = {}
        for key, value in data.items():
            if key not in sections:
                raise ValueError(f"Unknown config key: {key}")
            current = getattr(cfg, key)
            if hasattr(current, "__dataclass_fields__"):
                updates[key] = _merge_section(current, value, key)
            else:
                updates[key] = value
        return replace(cfg, **updates)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if hasattr(value, "__dataclass_fields__"):
                value = {sf.name: getattr(value, sf.name) for sf in fields(value)}
            out[f.name] = value
        return out


def _merge_section(section: Any, values: dict[str, Any], name: str) -> Any:
    known = {f.name for f in fields(section)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown keys in '{name}' config: {sorted(unknown)}")
    if "hidden_sizes" in values:
        values = dict(values, hidden_sizes=tuple(values["hidden_sizes"]))
    return replace(section, **values)


def load_config(path: str | Path) -> VoxCloneConfig:
    """Load configuration from a JSON file."""
    with open(path, encoding="utf-8") as f:
        return VoxCloneConfig.from_dict(json.load(f))
