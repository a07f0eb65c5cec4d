"""
End-to-end pipeline tests.

These lock the workflow guarantees:
- Train then clone round trip
- Text length limit checked before any work
- Chunk audio merged by index, not completion order
- No cross-profile leakage between concurrent clones
- Failed creation leaves no registry entry or artifacts
"""

import threading
import time

import numpy as np
import pytest

from voxclone.audio import save_audio
from voxclone.capture import AudioCapture, SimulatedInput
from voxclone.cli import main
from voxclone.datatypes import AudioBuffer, CloneRequest
from voxclone.errors import ErrorKind
from voxclone.orchestrator import CLONE, CREATE, CloneState, CreateState, PipelineOrchestrator
from voxclone.storage import FileStore, MemoryStore
from voxclone.trainer import characteristics_key, model_key


@pytest.fixture
def orch(small_config, memory_store, sim_capture):
    return PipelineOrchestrator(small_config, store=memory_store, capture=sim_capture)


def test_train_then_clone_roundtrip(orch, voice_buffer):
    created = orch.upload_profile(voice_buffer, name="Alice", language="en")
    assert created.ok, created.error
    profile = created.value
    assert [p.id for p in orch.list_profiles()] == [profile.id]

    result = orch.clone(CloneRequest("Hello there. How are you?", profile.id))
    assert result.ok, result.error
    assert len(result.value) > 0
    assert result.value.sample_rate == 22050


def test_create_profile_from_microphone(small_config, memory_store, sim_capture):
    states = []
    orch = PipelineOrchestrator(
        small_config, store=memory_store, capture=sim_capture,
        on_state=lambda wf, st: states.append((wf, st)),
    )
    result = orch.create_profile("Bob", duration_bound=1.5, language="en")
    assert result.ok, result.error
    assert result.value.duration == pytest.approx(1.5)
    assert states == [
        (CREATE, CreateState.CAPTURING),
        (CREATE, CreateState.CONDITIONING),
        (CREATE, CreateState.TRAINING),
        (CREATE, CreateState.PUBLISHED),
    ]


def test_capture_failure_leaves_nothing(small_config, memory_store):
    capture = AudioCapture(SimulatedInput(fail_after_blocks=1), small_config.capture)
    orch = PipelineOrchestrator(small_config, store=memory_store, capture=capture)
    result = orch.create_profile("Bob", duration_bound=2.0)
    assert result.error.kind is ErrorKind.RECORDING_INTERRUPTED
    assert orch.list_profiles() == []
    assert memory_store.keys() == []


def test_device_busy(orch, small_config):
    holder = AudioCapture(SimulatedInput(), small_config.capture)
    session = holder.open()
    try:
        result = orch.create_profile("Bob", duration_bound=1.0)
        assert result.error.kind is ErrorKind.DEVICE_UNAVAILABLE
    finally:
        holder.capture(session, 0.01)


def test_cancelled_recording_is_interrupted(small_config, memory_store):
    capture = AudioCapture(SimulatedInput(realtime=True), small_config.capture)
    orch = PipelineOrchestrator(small_config, store=memory_store, capture=capture)
    threading.Timer(0.2, orch.cancel_capture).start()
    result = orch.create_profile("Bob", duration_bound=10.0)
    assert result.error.kind is ErrorKind.RECORDING_INTERRUPTED
    assert orch.list_profiles() == []
    assert orch.cancel_capture() is False


def test_training_failure_leaves_nothing(orch, memory_store):
    silent_empty = AudioBuffer(np.zeros(0, dtype=np.int16), 22050)
    result = orch.upload_profile(silent_empty, name="Empty")
    assert not result.ok
    assert orch.list_profiles() == []
    assert memory_store.keys() == []


def test_text_too_long_rejected_before_segmenting(small_config, memory_store, sim_capture, voice_buffer):
    small_config.max_text_length = 100
    states = []
    orch = PipelineOrchestrator(small_config, store=memory_store, capture=sim_capture)
    profile = orch.upload_profile(voice_buffer, name="A").unwrap()
    orch.on_state = lambda wf, st: states.append((wf, st))

    result = orch.clone(CloneRequest("x" * 101, profile.id))
    assert result.error.kind is ErrorKind.TEXT_TOO_LONG
    assert states == [(CLONE, CloneState.FAILED)]

    assert orch.clone(CloneRequest("x" * 100, profile.id)).ok


def test_clone_unknown_profile(orch):
    result = orch.clone(CloneRequest("hello", "missing"))
    assert result.error.kind is ErrorKind.PROFILE_NOT_FOUND


def test_delete_unknown_has_no_side_effects(orch, voice_buffer, memory_store):
    orch.upload_profile(voice_buffer, name="A").unwrap()
    before_profiles = orch.list_profiles()
    before_keys = memory_store.keys()

    result = orch.delete_profile("does-not-exist")
    assert result.error.kind is ErrorKind.PROFILE_NOT_FOUND
    assert orch.list_profiles() == before_profiles
    assert memory_store.keys() == before_keys


def test_delete_removes_profile_and_artifacts(orch, voice_buffer, memory_store):
    profile = orch.upload_profile(voice_buffer, name="A").unwrap()
    assert orch.delete_profile(profile.id).ok
    assert orch.list_profiles() == []
    assert memory_store.get(model_key(profile.id)) is None
    assert orch.clone(CloneRequest("hi", profile.id)).error.kind is ErrorKind.PROFILE_NOT_FOUND


class OutOfOrderSynth:
    """Later chunks finish first; each chunk renders as its 1-based index."""

    def synthesize(self, chunk, model, characteristics, speed, pitch, emotion, language):
        time.sleep(0.1 * (3 - chunk.index))
        return AudioBuffer(np.full(10, chunk.index + 1, dtype=np.int16), 22050)


def test_merge_follows_index_not_completion(small_config, memory_store, sim_capture, voice_buffer):
    small_config.max_chunk_size = 7
    small_config.synthesis.workers = 3
    orch = PipelineOrchestrator(small_config, store=memory_store, capture=sim_capture, synthesizer=OutOfOrderSynth())
    profile = orch.upload_profile(voice_buffer, name="A").unwrap()

    result = orch.clone(CloneRequest("One. Two. Three.", profile.id))
    assert result.ok, result.error
    assert result.value.samples.tolist() == [1] * 10 + [2] * 10 + [3] * 10


class FailingSynth:
    def synthesize(self, chunk, *args):
        if chunk.index == 1:
            raise RuntimeError("boom")
        return AudioBuffer(np.ones(10, dtype=np.int16), 22050)


def test_chunk_failure_fails_whole_request(small_config, memory_store, sim_capture, voice_buffer):
    small_config.max_chunk_size = 7
    orch = PipelineOrchestrator(small_config, store=memory_store, capture=sim_capture, synthesizer=FailingSynth())
    profile = orch.upload_profile(voice_buffer, name="A").unwrap()
    result = orch.clone(CloneRequest("One. Two. Three.", profile.id))
    assert result.value is None
    assert result.error.kind is ErrorKind.SYNTHESIS_FAILED


def test_concurrent_clones_do_not_leak(orch, make_voice):
    low = orch.upload_profile(make_voice(2.0, f0=110.0), name="Low").unwrap()
    high = orch.upload_profile(make_voice(2.0, f0=220.0), name="High").unwrap()
    req_low = CloneRequest("Testing one two three. Another sentence.", low.id, speed=1.0, emotion="calm")
    req_high = CloneRequest("Testing one two three. Another sentence.", high.id, pitch=1.3, emotion="angry")

    expected_low = orch.clone(req_low).unwrap().samples
    expected_high = orch.clone(req_high).unwrap().samples

    results = {}

    def run(name, req):
        results[name] = orch.clone(req).unwrap().samples

    threads = [threading.Thread(target=run, args=("low", req_low)), threading.Thread(target=run, args=("high", req_high))]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert np.array_equal(results["low"], expected_low)
    assert np.array_equal(results["high"], expected_high)
    assert not np.array_equal(expected_low, expected_high)


def test_auto_language_detection(orch, voice_buffer):
    profile = orch.upload_profile(voice_buffer, name="A", language="en").unwrap()
    text = chr(0x067E) + chr(0x062F) + chr(0x0631)
    result = orch.clone(CloneRequest(text, profile.id, language="auto"))
    assert result.ok
    # Three Persian phonemes, no pauses
    assert len(result.value) == 3 * 8 * 256


def test_registry_survives_restart(tmp_path, small_config, sim_capture, voice_buffer):
    store = FileStore(tmp_path)
    orch = PipelineOrchestrator(small_config, store=store, capture=sim_capture)
    keep = orch.upload_profile(voice_buffer, name="Keep").unwrap()
    lost = orch.upload_profile(voice_buffer, name="Lost").unwrap()
    store.delete(model_key(lost.id))

    restarted = PipelineOrchestrator(small_config, store=store, capture=sim_capture)
    assert [p.id for p in restarted.list_profiles()] == [keep.id]
    assert restarted.clone(CloneRequest("hello", keep.id)).ok


def test_upload_from_file(tmp_path, orch, voice_buffer):
    path = save_audio(voice_buffer, tmp_path / "sample.wav")
    result = orch.upload_profile(path, name="File")
    assert result.ok, result.error
    assert result.value.duration == pytest.approx(voice_buffer.duration, abs=1e-3)


def test_upload_unreadable_file(tmp_path, orch):
    path = tmp_path / "bad.wav"
    path.write_bytes(b"definitely not audio")
    result = orch.upload_profile(path, name="Bad")
    assert result.error.kind is ErrorKind.UNSUPPORTED_AUDIO_FORMAT


def test_supported_languages(orch):
    assert {"en", "fa", "ar"} <= set(orch.supported_languages())


def test_cli_list_and_delete(tmp_path, capsys):
    assert main(["--storage", str(tmp_path), "list"]) == 0
    assert main(["--storage", str(tmp_path), "delete", "nope"]) == 1
    assert "profile_not_found" in capsys.readouterr().err
    assert main(["--storage", str(tmp_path), "languages"]) == 0


class FlakyStore:
    """MemoryStore wrapper whose reads, writes or deletes can be made to fail."""

    def __init__(self, fail_get=False, fail_put=False, fail_delete=False):
        self.inner = MemoryStore()
        self.fail_get = fail_get
        self.fail_put = fail_put
        self.fail_delete = fail_delete

    def put(self, key, data):
        if self.fail_put:
            raise OSError("read-only filesystem")
        self.inner.put(key, data)

    def get(self, key):
        if self.fail_get:
            raise OSError("I/O error")
        return self.inner.get(key)

    def delete(self, key):
        if self.fail_delete:
            raise OSError("permission denied")
        self.inner.delete(key)

    def keys(self):
        return self.inner.keys()


def test_corrupt_characteristics_is_a_failed_result(orch, voice_buffer, memory_store):
    profile = orch.upload_profile(voice_buffer, name="A").unwrap()
    memory_store.put(characteristics_key(profile.id), b"{not json")
    states = []
    orch.on_state = lambda wf, st: states.append(st)

    result = orch.clone(CloneRequest("hello", profile.id))
    assert result.error.kind is ErrorKind.SYNTHESIS_FAILED
    assert states[-1] is CloneState.FAILED


def test_storage_read_error_is_a_failed_result(small_config, sim_capture, voice_buffer):
    store = FlakyStore()
    orch = PipelineOrchestrator(small_config, store=store, capture=sim_capture)
    profile = orch.upload_profile(voice_buffer, name="A").unwrap()

    store.fail_get = True
    result = orch.clone(CloneRequest("hello", profile.id))
    assert result.error.kind is ErrorKind.SYNTHESIS_FAILED
    assert isinstance(result.error.__cause__, OSError)


def test_unexpected_chunk_error_is_a_failed_result(small_config, memory_store, sim_capture, voice_buffer):
    class BrokenMerge:
        def synthesize(self, chunk, *args):
            return "not audio"

    orch = PipelineOrchestrator(small_config, store=memory_store, capture=sim_capture, synthesizer=BrokenMerge())
    profile = orch.upload_profile(voice_buffer, name="A").unwrap()
    result = orch.clone(CloneRequest("One. Two.", profile.id))
    assert result.error.kind is ErrorKind.SYNTHESIS_FAILED


def test_delete_artifact_failure_keeps_profile(small_config, sim_capture, voice_buffer):
    store = FlakyStore()
    orch = PipelineOrchestrator(small_config, store=store, capture=sim_capture)
    profile = orch.upload_profile(voice_buffer, name="A").unwrap()

    store.fail_delete = True
    result = orch.delete_profile(profile.id)
    assert result.error.kind is ErrorKind.STORAGE_FAILED
    assert [p.id for p in orch.list_profiles()] == [profile.id]
    assert store.get(model_key(profile.id)) is not None

    # Retry once storage recovers
    store.fail_delete = False
    assert orch.delete_profile(profile.id).ok
    assert orch.list_profiles() == []
    assert store.get(model_key(profile.id)) is None


def test_delete_registry_failure_keeps_profile(small_config, sim_capture, voice_buffer):
    store = FlakyStore()
    orch = PipelineOrchestrator(small_config, store=store, capture=sim_capture)
    profile = orch.upload_profile(voice_buffer, name="A").unwrap()

    store.fail_put = True
    result = orch.delete_profile(profile.id)
    assert result.error.kind is ErrorKind.STORAGE_FAILED
    assert [p.id for p in orch.list_profiles()] == [profile.id]
    assert store.get(model_key(profile.id)) is not None


def test_unknown_deletes_leave_no_lock_state(orch):
    for i in range(1000):
        assert orch.delete_profile(f"missing-{i}").error.kind is ErrorKind.PROFILE_NOT_FOUND
    assert orch.registry.lock_count == 0


def test_publish_releases_id_lock(orch, voice_buffer):
    orch.upload_profile(voice_buffer, name="A").unwrap()
    assert orch.registry.lock_count == 0


@pytest.mark.parametrize("bound", [0, -1.0, float("nan")])
def test_nonpositive_duration_is_a_failed_result(orch, bound):
    result = orch.create_profile("Bob", duration_bound=bound)
    assert result.error.kind is ErrorKind.RECORDING_INTERRUPTED
    assert orch.capture.active_session is None
