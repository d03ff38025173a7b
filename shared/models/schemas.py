"""Pydantic API request/response schemas."""
from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Dict, Any, Optional

from lessons.models.mastery import RecallEvaluation
from lessons.models.nodes import DifficultyLevel
from lessons.models.progression import PresentationInstruction, ProgressionState


class CreateLessonRequest(BaseModel):
    """Request to generate a lesson structure."""
    topic: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    difficulty_level: DifficultyLevel = "beginner"


class LessonSummary(BaseModel):
    """Lightweight lesson entry for listings."""
    lesson_id: str
    topic: str
    subject: str
    difficulty_level: str
    status: str
    node_count: int
    current_node_index: int
    current_phase: str
    created_at: Optional[str] = None


class VocabularyItem(BaseModel):
    term: str
    definition: str


class NodeResponse(BaseModel):
    """Knowledge node as shown to the client."""
    id: str
    position: int
    title: str
    status: str  # PENDING_CONTENT or COMPLETE
    vocabulary_terms: List[str]
    metadata_hint: Optional[str] = None
    summary: Optional[str] = None
    vocabulary: List[VocabularyItem] = Field(default_factory=list)
    thinking_question: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    generated_at: Optional[datetime] = None


class LessonResponse(BaseModel):
    """Lesson with nodes and progression."""
    lesson_id: str
    topic: str
    subject: str
    difficulty_level: str
    status: str
    nodes: List[NodeResponse]
    progression: ProgressionState


class ProgressionResponse(BaseModel):
    """Result of one learner action."""
    lesson_id: str
    progression: ProgressionState
    instruction: PresentationInstruction
    evaluation: Optional[RecallEvaluation] = None
    feedback: Optional[str] = None
    answer: Optional[str] = None


class RecallAnswerRequest(BaseModel):
    """A recall answer. `term` is required for partial (fill-in-the-blank) recall."""
    response: str = Field(min_length=1)
    term: Optional[str] = None


class ThinkingResponseRequest(BaseModel):
    response: str = Field(min_length=1)


class AskQuestionRequest(BaseModel):
    question: str = Field(min_length=1)


class GenerateNodeResponse(BaseModel):
    """Outcome of a manual generation request."""
    node_id: str
    status: str
    dispatched: bool


class CycleStats(BaseModel):
    cycle_number: int
    average_score: float
    attempts: int


class WeakNode(BaseModel):
    node_id: str
    title: str
    average_score: float
    attempts: int


class LessonMetricsResponse(BaseModel):
    """Aggregated mastery metrics for a lesson."""
    lesson_id: str
    total_nodes: int
    total_cycles: int
    total_attempts: int
    average_grade: float  # GPA scale, A+ = 4.3
    average_score: float
    vocabulary_mastery: float  # mean partial recall score
    weak_nodes: List[WeakNode]
    cycle_breakdown: List[CycleStats]
