"""Knowledge node data access layer."""
import json
import logging
from typing import Optional
from sqlalchemy.orm import Session as DBSession

from shared.models.entities import KnowledgeNode as NodeRow
from lessons.models.nodes import CompleteContent
from shared.repositories.lesson_repository import content_from_row

logger = logging.getLogger(__name__)


class NodeRepository:
    """Repository for knowledge node content."""

    def __init__(self, db: DBSession):
        self.db = db

    def get_by_id(self, node_id: str) -> Optional[NodeRow]:
        return self.db.query(NodeRow).filter(NodeRow.id == node_id).first()

    def load_content(self, node_id: str) -> Optional[CompleteContent]:
        """Stored content for a node, read fresh from the database. None while pending."""
        row = (
            self.db.query(NodeRow)
            .filter(NodeRow.id == node_id)
            .populate_existing()
            .first()
        )
        return content_from_row(row) if row else None

    def save_content(self, node_id: str, content: CompleteContent) -> bool:
        """
        Write generated content, PENDING_CONTENT -> COMPLETE.

        The update is conditional on the node still being pending, so a
        second writer cannot overwrite content that already landed.

        Returns:
            True if this call stored the content
        """
        updated = (
            self.db.query(NodeRow)
            .filter(NodeRow.id == node_id, NodeRow.status == "PENDING_CONTENT")
            .update(
                {
                    "status": "COMPLETE",
                    "summary": content.summary,
                    "vocabulary_json": json.dumps([entry.model_dump() for entry in content.vocabulary]),
                    "thinking_question": content.thinking_question,
                    "metadata_json": json.dumps(content.metadata),
                    "generated_at": content.generated_at,
                },
                synchronize_session="fetch",
            )
        )
        self.db.commit()
        if not updated:
            logger.info(f"Content for node {node_id} already stored, discarding duplicate")
        return bool(updated)
