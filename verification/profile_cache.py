"""In-process cache of decrypted enrollment descriptors.

Readers look up an immutable snapshot without taking a lock. Writers build a
new snapshot and swap the reference under a lock, so a reader never observes
a half-updated mapping. Re-enrollment and deletion invalidate entries; they
never mutate a cached profile in place.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CachedProfile:
    """Decrypted descriptors for one user, in template storage order."""

    descriptors: Tuple[np.ndarray, ...]
    template_hashes: Tuple[str, ...]
    average_quality: float = 0.0

    def __post_init__(self) -> None:
        for descriptor in self.descriptors:
            descriptor.setflags(write=False)


class ProfileCache:
    """Lazily populated, snapshot-swapped profile cache."""

    def __init__(self) -> None:
        self._snapshot: Mapping[str, CachedProfile] = MappingProxyType({})
        self._epochs: Dict[str, int] = {}
        self._generation = 0
        self._write_lock = threading.Lock()
        self._load_locks: Dict[str, threading.Lock] = {}

    def __len__(self) -> int:
        return len(self._snapshot)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._snapshot

    def get(self, user_id: str) -> Optional[CachedProfile]:
        return self._snapshot.get(user_id)

    def _swap(self, updated: Dict[str, CachedProfile]) -> None:
        self._snapshot = MappingProxyType(updated)

    def load(
        self, user_id: str, loader: Callable[[], Optional[CachedProfile]]
    ) -> Optional[CachedProfile]:
        """Return the cached profile, populating it with ``loader`` on a miss.

        Loads are single-flight per user: concurrent misses wait for the
        first loader and reuse its result. ``loader`` runs outside the write
        lock. If the entry is invalidated while the loader runs, the freshly
        loaded value is returned to the caller but not stored.
        """

        cached = self.get(user_id)
        if cached is not None:
            return cached

        with self._write_lock:
            load_lock = self._load_locks.setdefault(user_id, threading.Lock())

        with load_lock:
            cached = self.get(user_id)
            if cached is not None:
                return cached

            with self._write_lock:
                epoch = (self._generation, self._epochs.get(user_id, 0))

            profile = loader()
            if profile is None:
                return None

            with self._write_lock:
                if (self._generation, self._epochs.get(user_id, 0)) != epoch:
                    logger.debug("Discarding stale profile load for user %s", user_id)
                    return profile
                updated = dict(self._snapshot)
                updated[user_id] = profile
                self._swap(updated)
            return profile

    def invalidate(self, user_id: str) -> None:
        with self._write_lock:
            self._epochs[user_id] = self._epochs.get(user_id, 0) + 1
            if user_id in self._snapshot:
                updated = dict(self._snapshot)
                del updated[user_id]
                self._swap(updated)
        logger.debug("Invalidated cached profile for user %s", user_id)

    def clear(self) -> None:
        with self._write_lock:
            self._generation += 1
            self._swap({})


__all__ = ["CachedProfile", "ProfileCache"]
