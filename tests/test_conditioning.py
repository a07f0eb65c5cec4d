"""
Signal conditioning tests.
"""

import numpy as np
import pytest

from voxclone.conditioning import (
    PEAK_TARGET, SignalConditioner, concatenate, denoise, high_pass, normalize, resample,
)
from voxclone.config import ConditioningConfig
from voxclone.datatypes import FULL_SCALE, AudioBuffer
from voxclone.errors import ErrorKind, UnsupportedAudioFormat


def _buf(samples, sr=22050):
    return AudioBuffer(np.asarray(samples, dtype=np.int16), sr)


def test_normalize_silent_unchanged():
    """Peak 0 returns the same buffer, no division by zero."""
    silent = _buf(np.zeros(1000))
    assert normalize(silent) is silent


@pytest.mark.parametrize("peak", [1, 1000, -2000, 32767, -32768])
def test_normalize_reaches_95_percent(peak):
    x = np.zeros(500, dtype=np.int16)
    x[100] = peak
    x[200] = peak // 2
    out = normalize(_buf(x))
    new_peak = int(np.max(np.abs(out.samples.astype(np.int32))))
    assert abs(new_peak - PEAK_TARGET * FULL_SCALE) <= 1
    # Sign preserved
    assert np.sign(out.samples[100]) == np.sign(peak)


def test_normalize_preserves_shape(voice_buffer):
    out = normalize(voice_buffer)
    a = voice_buffer.to_float()
    b = out.to_float()
    assert np.corrcoef(a, b)[0, 1] > 0.9999


def test_high_pass_first_sample_passthrough(voice_buffer):
    out = high_pass(voice_buffer, 80.0)
    assert out.samples[0] == voice_buffer.samples[0]
    assert len(out) == len(voice_buffer)


def test_high_pass_removes_dc():
    dc = _buf(np.full(22050, 8000))
    out = high_pass(dc, 80.0)
    assert abs(int(out.samples[-1])) < 10


def test_high_pass_rejects_bad_cutoff(voice_buffer):
    with pytest.raises(ValueError):
        high_pass(voice_buffer, 0.0)


def test_denoise_keeps_length_and_reduces_noise():
    rng = np.random.default_rng(0)
    sr = 22050
    t = np.arange(sr) / sr
    tone = 0.5 * np.sin(2 * np.pi * 220 * t) * (t > 0.5)
    noise = 0.02 * rng.standard_normal(sr)
    buf = AudioBuffer.from_float(tone + noise, sr)
    out = denoise(buf)
    assert len(out) == len(buf)
    # First half is noise only
    before = np.sqrt(np.mean(buf.to_float()[: sr // 2 - 1024] ** 2))
    after = np.sqrt(np.mean(out.to_float()[: sr // 2 - 1024] ** 2))
    assert after < before


def test_denoise_falls_back_to_input():
    """Internal failure returns the original buffer instead of raising."""
    buf = _buf(np.arange(100))
    assert denoise(buf, ConditioningConfig(denoise_window=3)) is buf
    empty = _buf([])
    assert denoise(empty) is empty


def test_resample_changes_rate(voice_buffer):
    out = resample(voice_buffer, 16000)
    assert out.sample_rate == 16000
    assert abs(out.duration - voice_buffer.duration) < 1e-3
    assert resample(voice_buffer, voice_buffer.sample_rate) is voice_buffer


def test_concatenate_in_order():
    a = _buf([1, 2, 3])
    b = _buf([4, 5])
    out = concatenate([a, b])
    assert out.samples.tolist() == [1, 2, 3, 4, 5]


def test_concatenate_rate_mismatch():
    with pytest.raises(UnsupportedAudioFormat) as exc:
        concatenate([_buf([1, 2], 22050), _buf([3], 16000)])
    assert exc.value.kind is ErrorKind.UNSUPPORTED_AUDIO_FORMAT


def test_concatenate_empty_list():
    with pytest.raises(UnsupportedAudioFormat):
        concatenate([])


def test_empty_buffer_rejected():
    with pytest.raises(UnsupportedAudioFormat):
        normalize(_buf([]))


def test_condition_resamples_and_enhances(make_voice):
    raw = make_voice(1.0, sample_rate=16000)
    out = SignalConditioner().condition(raw, 22050)
    assert out.sample_rate == 22050
    assert abs(out.duration - 1.0) < 1e-3
    peak = np.max(np.abs(out.samples.astype(np.int32)))
    assert 0 < peak <= FULL_SCALE


def test_condition_rejects_stereo(voice_buffer):
    stereo = AudioBuffer(voice_buffer.samples, voice_buffer.sample_rate, channels=2)
    with pytest.raises(UnsupportedAudioFormat):
        SignalConditioner().condition(stereo, 22050)
