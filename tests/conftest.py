"""
Pytest configuration for VoxClone tests.

Fixes:
- Torch thread cap to prevent hangs in constrained environments
- Adds repo root to sys.path for import stability
"""

import os
import sys
from pathlib import Path

# Add repo root to path for imports
repo_root = Path(__file__).parent.parent
sys.path.insert(0, str(repo_root))

# Thread cap for Torch - prevents hangs in containers/CI
os.environ.setdefault("OMP_NUM_THREADS", "1")
os.environ.setdefault("MKL_NUM_THREADS", "1")

import torch
torch.set_num_threads(1)

import pytest

from voxclone.capture import AudioCapture, SimulatedInput, synth_voice
from voxclone.config import CaptureConfig, TrainingConfig, VoxCloneConfig
from voxclone.datatypes import AudioBuffer
from voxclone.storage import MemoryStore

SR = 22050


def voice(seconds: float = 2.0, f0: float = 140.0, sample_rate: int = SR) -> AudioBuffer:
    """Deterministic voiced test buffer."""
    return AudioBuffer(synth_voice(0, int(seconds * sample_rate), sample_rate, f0), sample_rate)


@pytest.fixture
def voice_buffer():
    """2 seconds of synthetic voice at 22.05kHz."""
    return voice()


@pytest.fixture
def small_config():
    """Fast training settings for tests."""
    return VoxCloneConfig(
        training=TrainingConfig(epochs=10, hidden_sizes=(64, 64)),
        capture=CaptureConfig(monitor_interval=0.02),
    )


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def sim_capture(small_config):
    """Capture backed by a simulated microphone."""
    return AudioCapture(SimulatedInput(), small_config.capture)


@pytest.fixture
def make_voice():
    """Factory for voiced buffers with a chosen length and pitch."""
    return voice
