"""
Audio file helpers for uploaded samples and synthesized output.

- load_audio(): any soundfile-readable file -> mono 16-bit AudioBuffer
- save_audio(): AudioBuffer -> 16-bit PCM WAV

Install: pip install soundfile
"""

from pathlib import Path

import numpy as np

from .datatypes import AudioBuffer
from .errors import UnsupportedAudioFormat


def _soundfile():
    try:
        import soundfile as sf
    except ImportError:
        raise ImportError("soundfile not installed. Run: pip install soundfile")
    return sf


def load_audio(path: str | Path, sample_rate: int | None = None) -> AudioBuffer:
    """
    Load an audio file as a mono AudioBuffer.

    Args:
        path: Audio file (WAV, FLAC, OGG, ...)
        sample_rate: Resample to this rate (None keeps the file's rate)

    Returns:
        AudioBuffer with int16 samples
    """
    sf = _soundfile()
    try:
        audio, sr = sf.read(str(path), dtype="float32", always_2d=True)
    except RuntimeError as e:
        raise UnsupportedAudioFormat(f"Cannot decode {path}: {e}") from e

    # Mono
    audio = audio.mean(axis=1)
    if audio.size == 0:
        raise UnsupportedAudioFormat(f"{path} contains no samples")

    buffer = AudioBuffer.from_float(audio, int(sr))
    if sample_rate and sample_rate != buffer.sample_rate:
        from .conditioning import resample
        buffer = resample(buffer, sample_rate)
    return buffer


def save_audio(buffer: AudioBuffer, path: str | Path) -> Path:
    """Write buffer to a 16-bit PCM WAV file."""
    sf = _soundfile()
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    sf.write(str(path), np.asarray(buffer.samples, dtype=np.int16), buffer.sample_rate, subtype="PCM_16")
    return path
