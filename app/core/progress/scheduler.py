"""
Debounced background weak-area detection.

Ledger writes mark a student dirty; once no write has arrived for
DETECTION_DEBOUNCE_SECONDS the detector runs for that student.
"""
import asyncio
import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings as default_settings, Settings
from app.core.exceptions import AppError
from app.core.progress.detector import WeakAreaDetector
from app.core.progress.locks import StudentLockRegistry, student_locks

logger = logging.getLogger(__name__)


class DetectionScheduler:

    def __init__(
        self,
        session_factory: Callable[[], Session],
        locks: Optional[StudentLockRegistry] = None,
        settings: Settings = default_settings,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.session_factory = session_factory
        self.locks = locks or student_locks
        self.settings = settings
        self.monotonic = monotonic
        self._guard = threading.Lock()
        self._dirty: Dict[int, float] = {}

    def mark_dirty(self, student_id: int) -> None:
        """Restart the debounce window for a student."""
        with self._guard:
            self._dirty[student_id] = self.monotonic()

    @property
    def pending(self) -> List[int]:
        with self._guard:
            return sorted(self._dirty)

    def run_due(self) -> List[int]:
        """
        Run detection for every student whose debounce window has elapsed.

        Returns:
            IDs of students processed
        """
        now = self.monotonic()
        with self._guard:
            due = [
                student_id for student_id, marked in self._dirty.items()
                if now - marked >= self.settings.DETECTION_DEBOUNCE_SECONDS
            ]
            for student_id in due:
                del self._dirty[student_id]

        processed = []
        for student_id in due:
            db = self.session_factory()
            try:
                WeakAreaDetector(db, settings=self.settings, locks=self.locks).detect(student_id)
                processed.append(student_id)
            except AppError as e:
                logger.warning(f"Background detection skipped student {student_id}: {e.message}")
            finally:
                db.close()
        return processed

    async def run_forever(self, interval: Optional[float] = None) -> None:
        """Poll for due students until cancelled."""
        interval = interval or max(1.0, self.settings.DETECTION_DEBOUNCE_SECONDS / 2)
        logger.info(f"Weak-area detection loop started (interval {interval}s)")
        while True:
            await asyncio.sleep(interval)
            try:
                await asyncio.to_thread(self.run_due)
            except Exception as e:
                logger.error(f"Weak-area detection pass failed: {e}")
