"""Mastery record data access layer. Records are append-only."""
import json
import uuid
from typing import Optional
from sqlalchemy.orm import Session as DBSession

from shared.models.entities import NodeMastery
from lessons.models.mastery import MasteryRecord


class MasteryRepository:
    """Repository for recall evaluation results."""

    def __init__(self, db: DBSession):
        self.db = db

    def append(self, lesson_id: str, record: MasteryRecord) -> NodeMastery:
        row = NodeMastery(
            id=str(uuid.uuid4()),
            lesson_id=lesson_id,
            node_id=record.node_id,
            recall_type=record.recall_type,
            learner_response=record.learner_response,
            mastery_score=record.mastery_score,
            grade=record.grade,
            feedback=record.feedback,
            cycle_number=record.cycle_number,
            term=record.term,
            hint_node_ids_json=json.dumps(record.hint_node_ids),
            created_at=record.created_at,
        )
        self.db.add(row)
        self.db.commit()
        return row

    def list_for_lesson(self, lesson_id: str, node_id: Optional[str] = None) -> list[MasteryRecord]:
        query = self.db.query(NodeMastery).filter(NodeMastery.lesson_id == lesson_id)
        if node_id:
            query = query.filter(NodeMastery.node_id == node_id)
        rows = query.order_by(NodeMastery.created_at.asc()).all()
        return [
            MasteryRecord(
                node_id=row.node_id,
                recall_type=row.recall_type,
                learner_response=row.learner_response,
                mastery_score=row.mastery_score,
                grade=row.grade,
                feedback=row.feedback,
                cycle_number=row.cycle_number,
                term=row.term,
                hint_node_ids=json.loads(row.hint_node_ids_json or "[]"),
                created_at=row.created_at,
            )
            for row in rows
        ]
