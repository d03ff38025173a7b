"""Lesson models."""
from lessons.models.nodes import (
    KnowledgeNode,
    NodeSequence,
    NodeContent,
    PendingContent,
    CompleteContent,
    VocabularyEntry,
    LessonContext,
)
from lessons.models.mastery import MasteryRecord, RecallEvaluation, create_mastery_record
from lessons.models.progression import (
    ProgressionState,
    RecallTask,
    CameraHint,
    PresentationInstruction,
    TransitionResult,
)
