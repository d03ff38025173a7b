"""
Progress Writer

Fire-and-forget persistence of progression state. Saves are coalesced per
lesson over a short debounce window; the last state scheduled wins. Writes
for one lesson are serialized, and a flush waits for a write already under
way. The repository write is absolute and only lands on a newer revision,
so replaying a save is harmless.
"""

import logging
import threading
from contextlib import AbstractContextManager
from typing import Callable, Optional

from sqlalchemy.orm import Session

from config import get_settings
from database import get_db_manager
from lessons.models.progression import ProgressionState
from shared.repositories.lesson_repository import LessonRepository

logger = logging.getLogger("lessons.progress_writer")

SessionScope = Callable[[], AbstractContextManager[Session]]


class ProgressWriter:
    """Debounced, per-lesson progress saves."""

    def __init__(
        self,
        debounce_seconds: Optional[float] = None,
        session_scope: Optional[SessionScope] = None,
    ):
        if debounce_seconds is None:
            debounce_seconds = get_settings().progress_save_debounce_seconds
        self.debounce_seconds = debounce_seconds
        self._session_scope = session_scope
        self._pending: dict[str, ProgressionState] = {}
        self._timers: dict[str, threading.Timer] = {}
        self._write_locks: dict[str, threading.Lock] = {}
        self._lock = threading.Lock()

    def schedule(self, lesson_id: str, state: ProgressionState) -> None:
        """Queue a save. With no debounce window the write happens inline."""
        if self.debounce_seconds <= 0:
            with self._write_lock(lesson_id):
                self._write(lesson_id, state)
            return

        with self._lock:
            self._pending[lesson_id] = state
            timer = self._timers.pop(lesson_id, None)
            if timer:
                timer.cancel()
            timer = threading.Timer(self.debounce_seconds, self.flush, args=(lesson_id,))
            timer.daemon = True
            self._timers[lesson_id] = timer
            timer.start()

    def flush(self, lesson_id: str) -> bool:
        """
        Write any pending state for a lesson now. Returns True if this call wrote.

        Blocks while another thread is writing the same lesson, so once flush
        returns the stored progress is at least as new as anything scheduled
        before the call.
        """
        with self._write_lock(lesson_id):
            with self._lock:
                state = self._pending.pop(lesson_id, None)
                timer = self._timers.pop(lesson_id, None)
            if timer:
                timer.cancel()
            if state is None:
                return False
            self._write(lesson_id, state)
            return True

    def flush_all(self) -> None:
        with self._lock:
            lesson_ids = list(self._pending.keys())
        for lesson_id in lesson_ids:
            self.flush(lesson_id)

    def has_pending(self, lesson_id: str) -> bool:
        with self._lock:
            return lesson_id in self._pending

    def _write_lock(self, lesson_id: str) -> threading.Lock:
        with self._lock:
            return self._write_locks.setdefault(lesson_id, threading.Lock())

    def _write(self, lesson_id: str, state: ProgressionState) -> None:
        scope = self._session_scope or get_db_manager().session_scope
        try:
            with scope() as session:
                LessonRepository(session).save_progress(lesson_id, state)
            logger.debug(f"Saved progress for lesson {lesson_id}: {state.describe()} rev={state.revision}")
        except Exception as e:
            # The next transition writes absolute values again
            logger.error(f"Progress save failed for lesson {lesson_id}: {e}", exc_info=True)


# Global writer instance
_progress_writer: Optional[ProgressWriter] = None


def get_progress_writer() -> ProgressWriter:
    global _progress_writer
    if _progress_writer is None:
        _progress_writer = ProgressWriter()
    return _progress_writer


def reset_progress_writer() -> None:
    """Flush and drop the global writer (useful for testing and shutdown)."""
    global _progress_writer
    if _progress_writer is not None:
        _progress_writer.flush_all()
    _progress_writer = None
