"""
Per-student write serialization.
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class StudentLockRegistry:
    """
    Hands out one re-entrant lock per student so that heartbeats, submissions and
    weak-area updates for the same student never interleave inside this process.
    Cross-process races are caught by the progress record's version counter.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.RLock] = {}

    def lock_for(self, student_id: int) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(student_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[student_id] = lock
            return lock

    @contextmanager
    def hold(self, student_id: int) -> Iterator[None]:
        lock = self.lock_for(student_id)
        with lock:
            yield


# Process-wide default so ledgers, detectors and in-process tracker clients share locks
student_locks = StudentLockRegistry()
