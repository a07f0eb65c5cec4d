"""
VoxClone - Voice Profile Training and Chunked Speech Cloning

A voice cloning pipeline featuring:
- Microphone capture with live level monitoring and cancellation
- Signal conditioning (normalize, high-pass, spectral subtraction)
- Deterministic acoustic/prosodic feature extraction (128-dim vectors)
- Per-profile feed-forward acoustic models with atomic publish
- Chunked synthesis of long text, merged in order from a thread pool

Example:
    >>> from voxclone import PipelineOrchestrator, CloneRequest, save_audio
    >>>
    >>> orch = PipelineOrchestrator()
    >>> profile = orch.upload_profile("sample.wav", name="Alice").unwrap()
    >>> audio = orch.clone(CloneRequest("Hello world.", profile.id)).unwrap()
    >>> save_audio(audio, "hello.wav")
"""

__version__ = "1.0.0"

from .errors import (
    ErrorKind, VoxCloneError, Result,
    UnsupportedAudioFormat, DeviceUnavailable, RecordingInterrupted,
    TextTooLong, ProfileNotFound, TrainingFailed, SynthesisFailed, StorageFailed,
)
from .datatypes import (
    AudioBuffer, ModelHandle, VoiceCharacteristics, VoiceProfile,
    Emotion, CloneRequest, TextChunk, VoiceFeatures,
)
from .config import (
    VoxCloneConfig, CaptureConfig, ConditioningConfig, FeatureConfig,
    TrainingConfig, SynthesisConfig, load_config,
)
from .audio import load_audio, save_audio
from .capture import AudioCapture, AudioFormat, SimulatedInput, SoundDeviceInput, list_input_devices
from .conditioning import SignalConditioner
from .features import FeatureExtractor, feature_layout, field_slices
from .text_chunker import TextSegmenter, segment
from .languages import LanguageInfo, StaticLanguageCatalog, detect_language, supported_languages
from .model import AcousticModel
from .trainer import VoiceModelTrainer, LoadedModel
from .synthesizer import SpeechSynthesizer
from .storage import FileStore, MemoryStore
from .registry import ProfileRegistry
from .orchestrator import PipelineOrchestrator, CreateState, CloneState

__all__ = [
    # Errors
    "ErrorKind",
    "VoxCloneError",
    "Result",
    "UnsupportedAudioFormat",
    "DeviceUnavailable",
    "RecordingInterrupted",
    "TextTooLong",
    "ProfileNotFound",
    "TrainingFailed",
    "SynthesisFailed",
    "StorageFailed",
    # Data
    "AudioBuffer",
    "ModelHandle",
    "VoiceCharacteristics",
    "VoiceProfile",
    "Emotion",
    "CloneRequest",
    "TextChunk",
    "VoiceFeatures",
    # Config
    "VoxCloneConfig",
    "CaptureConfig",
    "ConditioningConfig",
    "FeatureConfig",
    "TrainingConfig",
    "SynthesisConfig",
    "load_config",
    # Audio
    "load_audio",
    "save_audio",
    "AudioCapture",
    "AudioFormat",
    "SimulatedInput",
    "SoundDeviceInput",
    "list_input_devices",
    "SignalConditioner",
    # Analysis / models
    "FeatureExtractor",
    "feature_layout",
    "field_slices",
    "AcousticModel",
    "VoiceModelTrainer",
    "LoadedModel",
    "SpeechSynthesizer",
    # Text
    "TextSegmenter",
    "segment",
    "LanguageInfo",
    "StaticLanguageCatalog",
    "detect_language",
    "supported_languages",
    # Storage / pipeline
    "FileStore",
    "MemoryStore",
    "ProfileRegistry",
    "PipelineOrchestrator",
    "CreateState",
    "CloneState",
]
