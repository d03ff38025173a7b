"""SQLAlchemy ORM database models."""
from datetime import datetime
from sqlalchemy import Column, String, Integer, Float, Text, DateTime, ForeignKey, Index
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import relationship

Base = declarative_base()


class Lesson(Base):
    """Lesson table - one topic taught as an ordered chain of knowledge nodes.

    The progression columns are the persisted form of ProgressionState and are
    overwritten as a whole on every save.
    """
    __tablename__ = "lessons"

    id = Column(String, primary_key=True)
    topic = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    difficulty_level = Column(String, nullable=False, default="beginner")  # beginner, intermediate, advanced
    status = Column(String, nullable=False, default="STRUCTURE_COMPLETE")  # STRUCTURE_COMPLETE, COMPLETE
    node_count = Column(Integer, nullable=False)

    # Progression state
    current_node_index = Column(Integer, nullable=False, default=0)
    current_phase = Column(String, nullable=False, default="teaching")  # teaching, recall, complete
    sub_phase = Column(String, nullable=False, default="content")  # content, continue, question
    recall_cycle = Column(Integer, nullable=False, default=0)
    recall_step = Column(Integer, nullable=False, default=0)
    resume_index = Column(Integer, nullable=True)
    completed_cycles = Column(Integer, nullable=False, default=0)
    resolved_terms_json = Column(Text, nullable=False, default="[]")  # JSON array, terms answered in the current partial task
    progress_revision = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    completed_at = Column(DateTime, nullable=True)

    nodes = relationship(
        "KnowledgeNode",
        back_populates="lesson",
        cascade="all, delete-orphan",
        order_by="KnowledgeNode.position",
    )
    mastery_records = relationship("NodeMastery", back_populates="lesson", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_lesson_subject", "subject"),
    )


class KnowledgeNode(Base):
    """Knowledge node table - one teaching unit, content filled in once by generation."""
    __tablename__ = "knowledge_nodes"

    id = Column(String, primary_key=True)
    lesson_id = Column(String, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False)  # 0-based order within the lesson
    title = Column(String, nullable=False)
    vocabulary_terms_json = Column(Text, nullable=False)  # JSON array of strings, fixed at structure time
    metadata_hint = Column(String, nullable=True)

    status = Column(String, nullable=False, default="PENDING_CONTENT")  # PENDING_CONTENT, COMPLETE
    summary = Column(Text, nullable=True)
    vocabulary_json = Column(Text, nullable=True)  # JSON: [{term, definition}]
    thinking_question = Column(Text, nullable=True)
    metadata_json = Column(Text, nullable=True)  # JSON: free-form
    generated_at = Column(DateTime, nullable=True)

    lesson = relationship("Lesson", back_populates="nodes")

    __table_args__ = (
        Index("idx_node_lesson_position", "lesson_id", "position", unique=True),
    )


class NodeMastery(Base):
    """Mastery records - append-only recall evaluation results."""
    __tablename__ = "node_mastery"

    id = Column(String, primary_key=True)
    lesson_id = Column(String, ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False)
    node_id = Column(String, ForeignKey("knowledge_nodes.id", ondelete="CASCADE"), nullable=False)
    recall_type = Column(String, nullable=False)
    learner_response = Column(Text, nullable=False)
    mastery_score = Column(Float, nullable=False)
    grade = Column(String, nullable=False)
    feedback = Column(Text, nullable=False)
    cycle_number = Column(Integer, nullable=False)
    term = Column(String, nullable=True)  # partial recall only
    hint_node_ids_json = Column(Text, nullable=False, default="[]")
    created_at = Column(DateTime, default=datetime.utcnow)

    lesson = relationship("Lesson", back_populates="mastery_records")

    __table_args__ = (
        Index("idx_mastery_lesson_node", "lesson_id", "node_id"),
    )
