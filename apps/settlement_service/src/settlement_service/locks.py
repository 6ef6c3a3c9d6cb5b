from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager


class ChallengeLocks:
    """One mutex per challenge id; different challenges never contend.

    An entry lives only while some thread holds or waits on it, so the
    registry stays bounded by the number of in-flight calls.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # challenge id -> [lock, holders + waiters]
        self._locks: dict[str, list] = {}

    def _acquire_entry(self, challenge_id: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(challenge_id)
            if entry is None:
                entry = self._locks[challenge_id] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _release_entry(self, challenge_id: str) -> None:
        with self._guard:
            entry = self._locks[challenge_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[challenge_id]

    @contextmanager
    def hold(self, challenge_id: str) -> Iterator[None]:
        lock = self._acquire_entry(challenge_id)
        try:
            with lock:
                yield
        finally:
            self._release_entry(challenge_id)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)
