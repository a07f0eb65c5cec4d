"""
Pipeline orchestrator.

Two workflows:
- create profile: capture/upload -> condition -> extract + train -> publish
- clone: segment -> synthesize(chunk) x N on a thread pool -> merge by index

Public operations return a Result instead of raising pipeline errors.
Profile creation publishes atomically; cloning never returns partial audio.

Example:
    orch = PipelineOrchestrator(VoxCloneConfig(storage_dir="voice_data"))
    created = orch.upload_profile("me.wav", name="Me", language="en")
    if created.ok:
        out = orch.clone(CloneRequest("Hello there.", created.value.id))
        save_audio(out.unwrap(), "hello.wav")
"""

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from enum import Enum
from pathlib import Path
from typing import Callable

from .audio import load_audio
from .capture import AudioCapture, LevelCallback
from .conditioning import SignalConditioner, concatenate
from .config import VoxCloneConfig
from .datatypes import AudioBuffer, CloneRequest, TextChunk, VoiceCharacteristics, VoiceProfile
from .errors import (
    ProfileNotFound, RecordingInterrupted, Result, StorageFailed,
    SynthesisFailed, TextTooLong, TrainingFailed, VoxCloneError,
)
from .languages import LanguageCatalog, StaticLanguageCatalog, detect_language
from .registry import ProfileRegistry
from .storage import FileStore, KeyValueStore
from .synthesizer import SpeechSynthesizer
from .text_chunker import TextSegmenter
from .trainer import LoadedModel, VoiceModelTrainer

logger = logging.getLogger(__name__)


class CreateState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    CONDITIONING = "conditioning"
    TRAINING = "training"
    PUBLISHED = "published"
    FAILED = "failed"


class CloneState(str, Enum):
    IDLE = "idle"
    SEGMENTING = "segmenting"
    SYNTHESIZING = "synthesizing"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


CREATE = "create_profile"
CLONE = "clone"

StateCallback = Callable[[str, Enum], None]


class PipelineOrchestrator:
    """
    Owns the profile registry and wires the pipeline stages together.

    Args:
        config: Pipeline configuration (defaults if None)
        store: Artifact store (FileStore at config.storage_dir if None)
        capture: Audio capture (sounddevice input if None)
        catalog: Language metadata (built-in table if None)
        synthesizer: Chunk synthesizer (SpeechSynthesizer if None)
        on_state: Called with (workflow, state) on every transition
    """

    def __init__(
        self,
        config: VoxCloneConfig | None = None,
        store: KeyValueStore | None = None,
        capture: AudioCapture | None = None,
        catalog: LanguageCatalog | None = None,
        synthesizer: SpeechSynthesizer | None = None,
        on_state: StateCallback | None = None,
    ):
        self.cfg = config or VoxCloneConfig()
        self.store = store if store is not None else FileStore(self.cfg.storage_dir)
        self.capture = capture or AudioCapture(config=self.cfg.capture)
        self.catalog = catalog or StaticLanguageCatalog()
        self.conditioner = SignalConditioner(self.cfg.conditioning)
        self.trainer = VoiceModelTrainer(self.store, self.cfg.training, self.cfg.features)
        self.synthesizer = synthesizer or SpeechSynthesizer(
            self.cfg.synthesis, self.cfg.features, self.cfg.sample_rate
        )
        self.segmenter = TextSegmenter(self.cfg.max_chunk_size)
        self.on_state = on_state

        self.registry = ProfileRegistry(self.store)
        self.registry.load(self.trainer.exists)

    # ------------------------------------------------------------------
    # State reporting
    # ------------------------------------------------------------------

    def _transition(self, workflow: str, state: Enum):
        logger.info(f"[{workflow}] -> {state.value}")
        if self.on_state is not None:
            self.on_state(workflow, state)

    def _fail(self, workflow: str, error: VoxCloneError) -> Result:
        logger.error(f"[{workflow}] failed: {error}")
        state = CreateState.FAILED if workflow == CREATE else CloneState.FAILED
        self._transition(workflow, state)
        return Result.failure(error)

    # ------------------------------------------------------------------
    # Profile creation
    # ------------------------------------------------------------------

    def create_profile(
        self,
        name: str,
        duration_bound: float,
        language: str = "en",
        on_level: LevelCallback | None = None,
    ) -> Result[VoiceProfile]:
        """
        Record from the input device, then train and publish.

        A cancelled recording, or a non-positive duration_bound, fails with
        RecordingInterrupted.
        """
        if not duration_bound > 0:
            return self._fail(CREATE, RecordingInterrupted(f"duration_bound must be positive, got {duration_bound}"))
        self._transition(CREATE, CreateState.CAPTURING)
        try:
            session = self.capture.open(self.capture.default_format())
            audio = self.capture.capture(session, duration_bound, on_level)
            if session.cancelled:
                raise RecordingInterrupted(f"Recording cancelled after {audio.duration:.2f}s")
            if audio.is_empty:
                raise RecordingInterrupted("No audio captured")
        except VoxCloneError as e:
            return self._fail(CREATE, e)
        return self._publish(audio, name, language)

    def upload_profile(
        self,
        audio: AudioBuffer | str | Path,
        name: str,
        language: str = "en",
    ) -> Result[VoiceProfile]:
        """Train and publish from an AudioBuffer or an audio file path."""
        try:
            if not isinstance(audio, AudioBuffer):
                audio = load_audio(audio)
        except VoxCloneError as e:
            return self._fail(CREATE, e)
        return self._publish(audio, name, language)

    def _publish(self, audio: AudioBuffer, name: str, language: str) -> Result[VoiceProfile]:
        self._transition(CREATE, CreateState.CONDITIONING)
        try:
            conditioned = self.conditioner.condition(audio, self.cfg.sample_rate)

            self._transition(CREATE, CreateState.TRAINING)
            profile_id = uuid.uuid4().hex
            with self.registry.lock(profile_id):
                handle, _ = self.trainer.train(conditioned, profile_id, language)
                profile = VoiceProfile(
                    id=profile_id,
                    name=name,
                    language=language,
                    model=handle,
                    created_at=time.time(),
                    duration=audio.duration,
                    sample_rate=self.cfg.sample_rate,
                )
                try:
                    self.registry.add(profile)
                except Exception as e:
                    self.trainer.delete(profile_id)
                    raise TrainingFailed(f"Failed to register profile: {e}") from e
        except VoxCloneError as e:
            return self._fail(CREATE, e)

        self._transition(CREATE, CreateState.PUBLISHED)
        logger.info(f"Published profile {profile.id} ({profile.name}, {profile.language})")
        return Result.success(profile)

    def cancel_capture(self) -> bool:
        """Cancel the active recording, if any."""
        session = self.capture.active_session
        if session is None:
            return False
        self.capture.cancel(session)
        return True

    # ------------------------------------------------------------------
    # Cloning
    # ------------------------------------------------------------------

    def clone(self, request: CloneRequest) -> Result[AudioBuffer]:
        """
        Synthesize ``request.text`` in the voice of ``request.profile_id``.

        Fails with TextTooLong before any work when the text exceeds
        max_text_length.
        """
        if len(request.text) > self.cfg.max_text_length:
            return self._fail(CLONE, TextTooLong(
                f"Text is {len(request.text)} characters, maximum is {self.cfg.max_text_length}"
            ))
        profile = self.registry.get(request.profile_id)
        if profile is None:
            return self._fail(CLONE, ProfileNotFound(f"Unknown profile: {request.profile_id}"))

        try:
            # Resolved once, shared read-only by every chunk worker
            model = self.trainer.load(profile.model)
            characteristics = self.trainer.load_characteristics(profile.id)
            language = detect_language(request.text) if request.language == "auto" else request.language

            self._transition(CLONE, CloneState.SEGMENTING)
            chunks = self.segmenter.segment(request.text)
            if not chunks:
                raise SynthesisFailed("Text contains nothing to synthesize")

            self._transition(CLONE, CloneState.SYNTHESIZING)
            segments = self._synthesize_chunks(chunks, model, characteristics, request, language)

            self._transition(CLONE, CloneState.MERGING)
            audio = concatenate(segments)
            del segments
        except VoxCloneError as e:
            return self._fail(CLONE, e)
        except Exception as e:
            error = SynthesisFailed(f"Clone failed: {e!r}")
            error.__cause__ = e
            return self._fail(CLONE, error)

        self._transition(CLONE, CloneState.DONE)
        logger.info(f"Cloned {len(chunks)} chunk(s) -> {audio.duration:.2f}s for profile {profile.id}")
        return Result.success(audio)

    def _synthesize_chunks(
        self,
        chunks: list[TextChunk],
        model: LoadedModel,
        characteristics: VoiceCharacteristics,
        request: CloneRequest,
        language: str,
    ) -> list[AudioBuffer]:
        """Run chunks on the pool; results are placed by chunk index."""
        results: list[AudioBuffer | None] = [None] * len(chunks)
        workers = max(1, min(self.cfg.synthesis.workers, len(chunks)))

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="voxclone-synth") as pool:
            futures = {
                pool.submit(
                    self.synthesizer.synthesize, chunk, model, characteristics,
                    request.speed, request.pitch, request.emotion, language,
                ): chunk
                for chunk in chunks
            }
            try:
                for future in as_completed(futures):
                    chunk = futures[future]
                    try:
                        results[chunk.index] = future.result()
                    except VoxCloneError:
                        raise
                    except Exception as e:
                        raise SynthesisFailed(f"Chunk {chunk.index} failed: {e}") from e
                    logger.debug(f"Chunk {chunk.index + 1}/{len(chunks)} done")
            except BaseException:
                pool.shutdown(wait=False, cancel_futures=True)
                raise
        return results

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def list_profiles(self) -> list[VoiceProfile]:
        return self.registry.snapshot()

    def get_profile(self, profile_id: str) -> Result[VoiceProfile]:
        profile = self.registry.get(profile_id)
        if profile is None:
            return Result.failure(ProfileNotFound(f"Unknown profile: {profile_id}"))
        return Result.success(profile)

    def delete_profile(self, profile_id: str) -> Result[VoiceProfile]:
        """
        Unregister the profile and delete its artifacts.

        If the artifacts cannot be deleted the profile is registered again,
        so a failed delete leaves the profile usable and can be retried.
        """
        with self.registry.lock(profile_id):
            try:
                profile = self.registry.remove(profile_id)
            except Exception as e:
                return self._storage_failure(f"Cannot update registry for {profile_id}", e)
            if profile is None:
                return Result.failure(ProfileNotFound(f"Unknown profile: {profile_id}"))
            try:
                self.trainer.delete(profile_id)
            except Exception as e:
                try:
                    self.registry.add(profile)
                except Exception as restore_error:
                    logger.error(f"Cannot restore profile {profile_id} after failed delete: {restore_error}")
                return self._storage_failure(f"Cannot delete artifacts for {profile_id}", e)
        logger.info(f"Deleted profile {profile_id} ({profile.name})")
        return Result.success(profile)

    @staticmethod
    def _storage_failure(message: str, cause: Exception) -> Result:
        error = StorageFailed(f"{message}: {cause}")
        error.__cause__ = cause
        logger.error(str(error))
        return Result.failure(error)

    def supported_languages(self) -> list[str]:
        return self.catalog.codes()
