"""Lesson data access layer."""
import json
import logging
import uuid
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import Session as DBSession

from shared.models.entities import Lesson, KnowledgeNode as NodeRow
from lessons.models.nodes import CompleteContent, KnowledgeNode, NodeSequence, VocabularyEntry
from lessons.models.progression import ProgressionState

logger = logging.getLogger(__name__)


class LessonRepository:
    """Repository for lessons, their node structure and progression state."""

    def __init__(self, db: DBSession):
        self.db = db

    def create(
        self,
        topic: str,
        subject: str,
        difficulty_level: str,
        outlines: list[dict],
        lesson_id: Optional[str] = None,
    ) -> Lesson:
        """
        Create a lesson with its full node structure.

        Args:
            topic: Lesson topic
            subject: Subject area
            difficulty_level: beginner, intermediate or advanced
            outlines: Ordered dicts with title, vocabulary_terms, metadata_hint
            lesson_id: Optional explicit id

        Returns:
            Created Lesson row
        """
        lesson = Lesson(
            id=lesson_id or str(uuid.uuid4()),
            topic=topic,
            subject=subject,
            difficulty_level=difficulty_level,
            status="STRUCTURE_COMPLETE",
            node_count=len(outlines),
            current_node_index=0,
            current_phase="teaching",
            sub_phase="content",
            created_at=datetime.utcnow(),
            updated_at=datetime.utcnow(),
        )
        for position, outline in enumerate(outlines):
            lesson.nodes.append(NodeRow(
                id=str(uuid.uuid4()),
                position=position,
                title=outline["title"],
                vocabulary_terms_json=json.dumps(list(outline.get("vocabulary_terms", []))),
                metadata_hint=outline.get("metadata_hint"),
                status="PENDING_CONTENT",
            ))
        self.db.add(lesson)
        self.db.commit()
        self.db.refresh(lesson)
        return lesson

    def get_by_id(self, lesson_id: str) -> Optional[Lesson]:
        return self.db.query(Lesson).filter(Lesson.id == lesson_id).first()

    def list_all(self) -> list[dict]:
        """Return lightweight lesson summaries, newest first."""
        rows = self.db.query(Lesson).order_by(Lesson.created_at.desc()).all()
        return [
            {
                "lesson_id": row.id,
                "topic": row.topic,
                "subject": row.subject,
                "difficulty_level": row.difficulty_level,
                "status": row.status,
                "node_count": row.node_count,
                "current_node_index": row.current_node_index,
                "current_phase": row.current_phase,
                "created_at": row.created_at.isoformat() if row.created_at else None,
            }
            for row in rows
        ]

    def delete(self, lesson_id: str) -> bool:
        lesson = self.get_by_id(lesson_id)
        if not lesson:
            return False
        self.db.delete(lesson)
        self.db.commit()
        return True

    # ─── Progression state ────────────────────────────────────────────

    def load_state(self, lesson: Lesson) -> ProgressionState:
        """Rebuild the progression state from the persisted columns."""
        return ProgressionState(
            current_node_index=lesson.current_node_index,
            current_phase=lesson.current_phase,
            sub_phase=lesson.sub_phase,
            recall_cycle=lesson.recall_cycle,
            recall_step=lesson.recall_step,
            resume_index=lesson.resume_index,
            completed_cycles=lesson.completed_cycles,
            resolved_terms=json.loads(lesson.resolved_terms_json or "[]"),
            revision=lesson.progress_revision,
        )

    def save_progress(self, lesson_id: str, state: ProgressionState) -> bool:
        """
        Overwrite the progression record with absolute values.

        Only a newer revision than the stored one is written. A replayed save
        and a late or competing save built from the same starting state are
        both ignored, so progress never moves backwards or forks.

        Returns:
            True if the row was updated
        """
        values = state.to_record()
        values["resolved_terms_json"] = json.dumps(values.pop("resolved_terms"))
        values["updated_at"] = datetime.utcnow()
        if state.is_complete:
            values["status"] = "COMPLETE"
            values["completed_at"] = datetime.utcnow()

        updated = (
            self.db.query(Lesson)
            .filter(Lesson.id == lesson_id, Lesson.progress_revision < state.revision)
            .update(values, synchronize_session="fetch")
        )
        self.db.commit()
        if not updated:
            logger.info(f"Skipped progress write for lesson {lesson_id} (revision {state.revision})")
        return bool(updated)

    # ─── Nodes ────────────────────────────────────────────────────────

    def load_nodes(self, lesson: Lesson) -> NodeSequence:
        """Map node rows onto the domain sequence."""
        return NodeSequence([node_from_row(row) for row in lesson.nodes])


def node_from_row(row: NodeRow) -> KnowledgeNode:
    node = KnowledgeNode(
        id=row.id,
        position=row.position,
        title=row.title,
        vocabulary_terms=json.loads(row.vocabulary_terms_json or "[]"),
        metadata_hint=row.metadata_hint,
    )
    content = content_from_row(row)
    if content is not None:
        node.complete(content)
    return node


def content_from_row(row: NodeRow) -> Optional[CompleteContent]:
    if row.status != "COMPLETE":
        return None
    return CompleteContent(
        summary=row.summary or "",
        vocabulary=[VocabularyEntry(**entry) for entry in json.loads(row.vocabulary_json or "[]")],
        thinking_question=row.thinking_question or "",
        metadata=json.loads(row.metadata_json or "{}"),
        generated_at=row.generated_at or datetime.utcnow(),
    )
