"""
Per-request mutual exclusion inside one process.

The conditional UPDATE in the lifecycle is what makes an award indivisible
across processes; this lock additionally serializes attempts on the same
request id within a worker so they never contend inside the database.
"""

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, List


class KeyedLock:
    """A lock per key, created on first use and dropped when nobody holds or waits for it."""

    def __init__(self):
        self._guard = threading.Lock()
        # key -> [lock, number of holders and waiters]
        self._locks: Dict[Hashable, List] = {}

    @contextmanager
    def hold(self, key: Hashable):
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        lock = entry[0]
        lock.acquire()
        try:
            yield
        finally:
            lock.release()
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    def __len__(self):
        with self._guard:
            return len(self._locks)


_request_locks = KeyedLock()


def request_lock(request_id):
    """Context manager serializing lifecycle writes for one request id."""
    return _request_locks.hold(str(request_id))
