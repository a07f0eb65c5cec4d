"""
Training and loading of per-profile acoustic models.

Includes:
- Example building: 0.5 s segments, feature vector -> mean log-mel target
- Input standardization (statistics travel with the checkpoint)
- AdamW optimizer with cosine annealing and gradient clipping
- Atomic persist of checkpoint + characteristics through a KeyValueStore
"""

import io
import json
import logging
import threading
from dataclasses import asdict, dataclass

import numpy as np
import torch
import torch.nn.functional as F

from .config import FeatureConfig, TrainingConfig
from .datatypes import AudioBuffer, ModelHandle, VoiceCharacteristics
from .errors import SynthesisFailed, TrainingFailed, VoxCloneError
from .features import FeatureExtractor, log_mel_db
from .model import AcousticModel
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

# Serializes seeded weight init across concurrent trainings
_INIT_LOCK = threading.Lock()

MEL_FLOOR_DB = -80.0


def model_key(profile_id: str) -> str:
    return f"models/{profile_id}.pt"


def characteristics_key(profile_id: str) -> str:
    return f"models/{profile_id}_characteristics.json"


def db_to_unit(mel_db: np.ndarray) -> np.ndarray:
    """Map [-80, 0] dB to [-1, 1]."""
    return np.clip((mel_db - MEL_FLOOR_DB) / -MEL_FLOOR_DB * 2.0 - 1.0, -1.0, 1.0)


def unit_to_db(unit: np.ndarray) -> np.ndarray:
    return (np.asarray(unit) + 1.0) / 2.0 * -MEL_FLOOR_DB + MEL_FLOOR_DB


@dataclass
class LoadedModel:
    """Trained model resolved for inference; shared read-only by workers."""
    handle: ModelHandle
    model: AcousticModel
    input_mean: np.ndarray
    input_std: np.ndarray
    sample_rate: int

    def standardize(self, vectors: np.ndarray) -> np.ndarray:
        return (np.asarray(vectors, dtype=np.float64) - self.input_mean) / self.input_std

    def infer(self, inputs: np.ndarray) -> np.ndarray:
        """
        Run the network on already standardized inputs.

        Args:
            inputs: (N, input_size)

        Returns:
            (N, n_mels) acoustic vectors in [-1, 1]
        """
        x = torch.as_tensor(np.atleast_2d(inputs), dtype=torch.float32)
        with torch.no_grad():
            return self.model(x).numpy().astype(np.float64)


class VoiceModelTrainer:
    """
    Fits and persists one AcousticModel per profile.

    Example:
        trainer = VoiceModelTrainer(FileStore("voice_data"))
        handle, characteristics = trainer.train(buffer, profile_id, "en")
        loaded = trainer.load(handle)
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: TrainingConfig | None = None,
        feature_config: FeatureConfig | None = None,
    ):
        self.store = store
        self.cfg = config or TrainingConfig()
        self.extractor = FeatureExtractor(feature_config)

    # ------------------------------------------------------------------
    # Examples
    # ------------------------------------------------------------------

    def segments(self, buffer: AudioBuffer) -> list[AudioBuffer]:
        """Consecutive segment_seconds slices; a trailing slice shorter than half is dropped."""
        seg_len = max(1, int(round(self.cfg.segment_seconds * buffer.sample_rate)))
        if len(buffer) <= seg_len:
            return [buffer]
        out = []
        for start in range(0, len(buffer), seg_len):
            piece = buffer.samples[start:start + seg_len]
            if piece.size < seg_len // 2:
                break
            out.append(buffer.with_samples(piece))
        return out

    def target(self, buffer: AudioBuffer) -> np.ndarray:
        fcfg = self.extractor.cfg
        mel = log_mel_db(buffer.to_float(), buffer.sample_rate, fcfg.frame_length, fcfg.hop_length, self.cfg.n_mels)
        return db_to_unit(mel.mean(axis=0))

    def build_examples(self, buffer: AudioBuffer) -> tuple[np.ndarray, np.ndarray]:
        """(inputs (N, vector_size), targets (N, n_mels))."""
        pieces = self.segments(buffer)
        inputs = np.stack([self.extractor.extract(p) for p in pieces])
        targets = np.stack([self.target(p) for p in pieces])
        return inputs, targets

    # ------------------------------------------------------------------
    # Fit
    # ------------------------------------------------------------------

    def fit(self, inputs: np.ndarray, targets: np.ndarray) -> tuple[AcousticModel, float]:
        """
        Full-batch regression for a bounded number of epochs.

        Raises:
            TrainingFailed: loss became non-finite
        """
        cfg = self.cfg
        with _INIT_LOCK, torch.random.fork_rng(devices=[]):
            torch.manual_seed(cfg.seed)
            model = AcousticModel(inputs.shape[1], targets.shape[1], cfg.hidden_sizes)
        model = model.to(cfg.device)

        x = torch.as_tensor(inputs, dtype=torch.float32, device=cfg.device)
        y = torch.as_tensor(targets, dtype=torch.float32, device=cfg.device)

        optimizer = torch.optim.AdamW(model.parameters(), lr=cfg.lr)
        scheduler = torch.optim.lr_scheduler.CosineAnnealingLR(optimizer, T_max=max(1, cfg.epochs))

        loss_value = float("nan")
        model.train()
        for epoch in range(cfg.epochs):
            optimizer.zero_grad()
            loss = F.mse_loss(model(x), y)
            loss_value = loss.item()
            if not np.isfinite(loss_value):
                raise TrainingFailed(f"Training diverged at epoch {epoch} (loss={loss_value})")
            loss.backward()
            torch.nn.utils.clip_grad_norm_(model.parameters(), cfg.grad_clip)
            optimizer.step()
            scheduler.step()
            if epoch % 50 == 0 or epoch == cfg.epochs - 1:
                logger.debug(f"epoch {epoch}: loss={loss_value:.5f}")

        model.eval()
        return model.cpu(), loss_value

    # ------------------------------------------------------------------
    # Train + persist
    # ------------------------------------------------------------------

    def train(self, buffer: AudioBuffer, profile_id: str, language: str) -> tuple[ModelHandle, VoiceCharacteristics]:
        """
        Extract, fit and persist.

        Either both the checkpoint and the characteristics are stored, or
        neither is.

        Raises:
            TrainingFailed: on any failure, with the cause chained
        """
        if self.cfg.epochs < 1:
            raise TrainingFailed(f"epochs must be >= 1, got {self.cfg.epochs}")
        try:
            features = self.extractor.analyze(buffer)
            characteristics = self.extractor.characteristics(features, profile_id, language)
            inputs, targets = self.build_examples(buffer)
        except VoxCloneError as e:
            raise TrainingFailed(f"Feature extraction failed: {e.message}") from e
        except Exception as e:
            raise TrainingFailed(f"Feature extraction failed: {e}") from e

        mean = inputs.mean(axis=0)
        std = inputs.std(axis=0)
        std = np.where(std < 1e-6, 1.0, std)

        logger.info(f"Training profile {profile_id}: {len(inputs)} examples, {self.cfg.epochs} epochs")
        try:
            model, final_loss = self.fit((inputs - mean) / std, targets)
        except TrainingFailed:
            raise
        except Exception as e:
            raise TrainingFailed(f"Model fit failed: {e}") from e

        checkpoint = {
            "model_state_dict": model.state_dict(),
            "model_config": model.config(),
            "input_mean": torch.as_tensor(mean, dtype=torch.float64),
            "input_std": torch.as_tensor(std, dtype=torch.float64),
            "sample_rate": buffer.sample_rate,
            "feature_config": asdict(self.extractor.cfg),
            "final_loss": final_loss,
        }
        handle = ModelHandle(profile_id, model_key(profile_id))
        self._persist(handle, checkpoint, characteristics)
        logger.info(f"Profile {profile_id} trained (loss={final_loss:.5f})")
        return handle, characteristics

    def _persist(self, handle: ModelHandle, checkpoint: dict, characteristics: VoiceCharacteristics):
        buf = io.BytesIO()
        try:
            torch.save(checkpoint, buf)
            self.store.put(handle.key, buf.getvalue())
            payload = json.dumps(characteristics.to_dict(), indent=2).encode("utf-8")
            self.store.put(characteristics_key(handle.profile_id), payload)
        except Exception as e:
            logger.error(f"Persist failed for {handle.profile_id}, rolling back: {e}")
            self.delete(handle.profile_id)
            raise TrainingFailed(f"Failed to persist model: {e}") from e

    # ------------------------------------------------------------------
    # Load / delete
    # ------------------------------------------------------------------

    def exists(self, handle: ModelHandle) -> bool:
        return self.store.get(handle.key) is not None

    def load(self, handle: ModelHandle) -> LoadedModel:
        """
        Read a checkpoint back for inference.

        Raises:
            SynthesisFailed: artifact missing or unreadable
        """
        try:
            data = self.store.get(handle.key)
        except OSError as e:
            raise SynthesisFailed(f"Cannot read model for profile {handle.profile_id}: {e}") from e
        if data is None:
            raise SynthesisFailed(f"Model artifact missing for profile {handle.profile_id}")
        try:
            checkpoint = torch.load(io.BytesIO(data), map_location="cpu", weights_only=True)
            model = AcousticModel(**checkpoint["model_config"])
            model.load_state_dict(checkpoint["model_state_dict"])
        except Exception as e:
            raise SynthesisFailed(f"Cannot load model for profile {handle.profile_id}: {e}") from e
        model.eval()
        return LoadedModel(
            handle=handle,
            model=model,
            input_mean=checkpoint["input_mean"].numpy(),
            input_std=checkpoint["input_std"].numpy(),
            sample_rate=int(checkpoint["sample_rate"]),
        )

    def load_characteristics(self, profile_id: str) -> VoiceCharacteristics:
        """
        Raises:
            SynthesisFailed: artifact missing, unreadable or malformed
        """
        try:
            data = self.store.get(characteristics_key(profile_id))
        except OSError as e:
            raise SynthesisFailed(f"Cannot read voice characteristics for profile {profile_id}: {e}") from e
        if data is None:
            raise SynthesisFailed(f"Voice characteristics missing for profile {profile_id}")
        try:
            return VoiceCharacteristics.from_dict(json.loads(data.decode("utf-8")))
        except (ValueError, TypeError, KeyError) as e:
            raise SynthesisFailed(f"Corrupt voice characteristics for profile {profile_id}: {e}") from e

    def delete(self, profile_id: str):
        """Remove both artifacts (missing keys are ignored)."""
        self.store.delete(model_key(profile_id))
        self.store.delete(characteristics_key(profile_id))
