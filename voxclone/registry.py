"""
In-memory profile registry with a durable JSON snapshot.

Owned by one PipelineOrchestrator. Train and delete on the same profile id
are serialized through per-id locks; different ids proceed independently.
"""

import json
import logging
import threading
from contextlib import contextmanager
from typing import Callable, Iterator

from .datatypes import ModelHandle, VoiceProfile
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "profiles/registry.json"


class ProfileRegistry:
    """id -> VoiceProfile map, persisted after every change."""

    def __init__(self, store: KeyValueStore):
        self.store = store
        self._profiles: dict[str, VoiceProfile] = {}
        self._lock = threading.RLock()
        # id -> [lock, holders + waiters]; dropped when the count reaches zero
        self._id_locks: dict[str, list] = {}

    @contextmanager
    def lock(self, profile_id: str) -> Iterator[None]:
        """Exclusive section for one profile id."""
        with self._lock:
            entry = self._id_locks.get(profile_id)
            if entry is None:
                entry = self._id_locks[profile_id] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._id_locks[profile_id]

    @property
    def lock_count(self) -> int:
        """Number of ids with a held or awaited lock."""
        with self._lock:
            return len(self._id_locks)

    def __contains__(self, profile_id: str) -> bool:
        with self._lock:
            return profile_id in self._profiles

    def __len__(self) -> int:
        with self._lock:
            return len(self._profiles)

    def get(self, profile_id: str) -> VoiceProfile | None:
        with self._lock:
            return self._profiles.get(profile_id)

    def snapshot(self) -> list[VoiceProfile]:
        """Snapshot ordered by creation time."""
        with self._lock:
            return sorted(self._profiles.values(), key=lambda p: (p.created_at, p.id))

    def add(self, profile: VoiceProfile):
        """
        Register and persist. On snapshot failure the entry is removed
        again and the error propagates.
        """
        with self._lock:
            if profile.id in self._profiles:
                raise ValueError(f"Profile id already registered: {profile.id}")
            self._profiles[profile.id] = profile
            try:
                self.save()
            except Exception:
                del self._profiles[profile.id]
                raise

    def remove(self, profile_id: str) -> VoiceProfile | None:
        """Unregister and persist; None when the id is unknown."""
        with self._lock:
            profile = self._profiles.pop(profile_id, None)
            if profile is None:
                return None
            try:
                self.save()
            except Exception:
                self._profiles[profile_id] = profile
                raise
            return profile

    def save(self):
        with self._lock:
            payload = [p.to_dict() for p in self.snapshot()]
            self.store.put(SNAPSHOT_KEY, json.dumps(payload, indent=2).encode("utf-8"))

    def load(self, model_exists: Callable[[ModelHandle], bool]) -> int:
        """
        Restore from the snapshot, skipping profiles whose model artifact
        is gone. Returns the number of profiles loaded.
        """
        data = self.store.get(SNAPSHOT_KEY)
        if data is None:
            return 0
        entries = json.loads(data.decode("utf-8"))
        loaded = {}
        for entry in entries:
            profile = VoiceProfile.from_dict(entry)
            if not model_exists(profile.model):
                logger.warning(f"Skipping profile {profile.id} ({profile.name}): model artifact missing")
                continue
            loaded[profile.id] = profile
        with self._lock:
            self._profiles = loaded
        logger.info(f"Loaded {len(loaded)} profile(s) from registry snapshot")
        return len(loaded)
