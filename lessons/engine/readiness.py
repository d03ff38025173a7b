"""
Content Readiness Gate

Tracks which nodes have generated content and pre-generates the current
and next node so the learner is not blocked mid-lesson. At most one
generation per node is in flight at any time, process-wide.
"""

import json
import logging
import threading
import time
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from database import get_db_manager
from lessons.exceptions import LessonEngineError
from lessons.models.nodes import CompleteContent, KnowledgeNode, NodeSequence

logger = logging.getLogger("lessons.readiness")

# (node) -> generated content
ContentGenerator = Callable[[KnowledgeNode], CompleteContent]
# (db session, node, content) -> True if stored, False if the node was already complete
ContentSink = Callable[[Session, KnowledgeNode, CompleteContent], bool]
# (db session, node) -> content already stored for the node, or None while pending
ContentReader = Callable[[Session, KnowledgeNode], Optional[CompleteContent]]
# (job, job name) -> handle; the job receives a DB session owned by the runner
JobRunner = Callable[[Callable[[Session], None], str], Any]


class InFlightRegistry:
    """Node ids with a generation request outstanding, thread-safe."""

    def __init__(self):
        self._in_flight: set[str] = set()
        self._lock = threading.Lock()

    def try_acquire(self, node_id: str) -> bool:
        """Mark a node in flight. False if it already was."""
        with self._lock:
            if node_id in self._in_flight:
                return False
            self._in_flight.add(node_id)
            return True

    def release(self, node_id: str) -> None:
        with self._lock:
            self._in_flight.discard(node_id)

    def is_in_flight(self, node_id: str) -> bool:
        with self._lock:
            return node_id in self._in_flight

    def clear(self) -> None:
        with self._lock:
            self._in_flight.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._in_flight)


# Global registry instance
_inflight_registry: Optional[InFlightRegistry] = None


def get_inflight_registry() -> InFlightRegistry:
    global _inflight_registry
    if _inflight_registry is None:
        _inflight_registry = InFlightRegistry()
    return _inflight_registry


def reset_inflight_registry() -> None:
    """Reset the global registry (useful for testing)."""
    global _inflight_registry
    _inflight_registry = None


def run_in_background(job: Callable[[Session], None], job_name: str) -> threading.Thread:
    """
    Run a generation job in a daemon thread with its own DB session.

    The session is committed when the job returns and rolled back if it
    raises. Errors are logged here; the caller has already moved on.
    """
    def wrapper():
        try:
            with get_db_manager().session_scope() as session:
                job(session)
        except Exception as e:
            logger.error(f"Background job {job_name} failed: {e}", exc_info=True)

    thread = threading.Thread(target=wrapper, daemon=True, name=f"generate-{job_name}")
    thread.start()
    return thread


class ContentReadinessGate:
    """
    Ensures node content exists, dispatching at most one generation per node.

    The node sequence is a snapshot taken when the request loaded the lesson.
    With a `reader`, the gate checks the database before dispatching, using
    the request's `session`, and again inside the job, using the session
    the runner hands it, so content another request stored meanwhile is
    picked up instead of generated twice.
    """

    def __init__(
        self,
        nodes: NodeSequence,
        generator: ContentGenerator,
        sink: ContentSink,
        runner: Optional[JobRunner] = None,
        registry: Optional[InFlightRegistry] = None,
        lookahead: bool = True,
        reader: Optional[ContentReader] = None,
        session: Optional[Session] = None,
    ):
        self.nodes = nodes
        self.generator = generator
        self.sink = sink
        self.reader = reader
        self.session = session
        self.runner = runner or run_in_background
        self.registry = registry or get_inflight_registry()
        self.lookahead = lookahead

    def is_ready(self, node_index: int) -> bool:
        return self.nodes[node_index].is_complete

    def is_generating(self, node_index: int) -> bool:
        return self.registry.is_in_flight(self.nodes[node_index].id)

    def refresh(self, node_index: int) -> bool:
        """Pick up content stored since the snapshot. Returns True if the node is ready."""
        node = self.nodes.get(node_index)
        if node is None:
            return False
        return node.is_complete or self._adopt_stored(self.session, node)

    def ensure_ready(self, node_index: int) -> bool:
        """
        Make sure content for a node exists or is being generated.

        Returns True if this call dispatched a generation request. Indices
        outside the sequence are ignored so callers can pass index+1 freely.
        """
        node = self.nodes.get(node_index)
        if node is None or node.is_complete:
            return False
        if self._adopt_stored(self.session, node):
            return False
        if not self.registry.try_acquire(node.id):
            logger.debug(f"Generation already in flight for node {node.id}")
            return False

        logger.info(json.dumps({
            "step": "CONTENT_GENERATION",
            "status": "dispatched",
            "node_id": node.id,
            "node_index": node_index,
        }))
        try:
            self.runner(self._generation_job(node), node.id)
        except Exception:
            self.registry.release(node.id)
            raise
        return True

    def ensure_window(self, node_index: int) -> list[int]:
        """One-node look-ahead: ensure node_index and, unless disabled, node_index + 1."""
        window = (node_index, node_index + 1) if self.lookahead else (node_index,)
        return [i for i in window if self.ensure_ready(i)]

    def _generation_job(self, node: KnowledgeNode) -> Callable[[Session], None]:
        def job(session: Session) -> None:
            start_time = time.time()
            try:
                if self._adopt_stored(session, node):
                    logger.info(json.dumps({
                        "step": "CONTENT_GENERATION",
                        "status": "already_stored",
                        "node_id": node.id,
                    }))
                    return
                content = self.generator(node)
                stored = self.sink(session, node, content)
                if stored and not node.is_complete:
                    node.complete(content)
                logger.info(json.dumps({
                    "step": "CONTENT_GENERATION",
                    "status": "complete" if stored else "discarded",
                    "node_id": node.id,
                    "duration_ms": int((time.time() - start_time) * 1000),
                }))
            except LessonEngineError as e:
                # Node stays PENDING_CONTENT and can be retried
                logger.warning(json.dumps({
                    "step": "CONTENT_GENERATION",
                    "status": "failed",
                    "node_id": node.id,
                    "error": e.message,
                }))
            finally:
                self.registry.release(node.id)

        return job

    def _adopt_stored(self, session: Optional[Session], node: KnowledgeNode) -> bool:
        if self.reader is None or session is None:
            return False
        content = self.reader(session, node)
        if content is None:
            return False
        if not node.is_complete:
            node.complete(content)
        return True
