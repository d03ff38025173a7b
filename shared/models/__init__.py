"""Shared models: ORM entities and API schemas."""
from shared.models.entities import Base, Lesson, KnowledgeNode, NodeMastery
from shared.models.schemas import (
    CreateLessonRequest,
    LessonSummary,
    NodeResponse,
    LessonResponse,
    ProgressionResponse,
    RecallAnswerRequest,
    ThinkingResponseRequest,
    AskQuestionRequest,
    GenerateNodeResponse,
    LessonMetricsResponse,
)
