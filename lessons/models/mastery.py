"""
Mastery Models

Evaluation results for recall answers. Records are append-only.
"""

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from shared.utils.constants import SCORE_EXCELLENT, SCORE_GOOD, SCORE_PARTIAL


class RecallEvaluation(BaseModel):
    """Score for one recall answer, as returned by the evaluation service."""

    model_config = ConfigDict(populate_by_name=True)

    mastery_score: float = Field(ge=0.0, le=1.0, alias="masteryScore")
    grade: str = Field(min_length=1, description="Letter grade F..A+")
    feedback: str = Field(default="")

    @property
    def band(self) -> str:
        if self.mastery_score >= SCORE_EXCELLENT:
            return "excellent"
        if self.mastery_score >= SCORE_GOOD:
            return "good"
        if self.mastery_score >= SCORE_PARTIAL:
            return "partial"
        return "incorrect"


class MasteryRecord(BaseModel):
    """Append-only result of one evaluated recall answer."""

    model_config = ConfigDict(frozen=True)

    node_id: str
    recall_type: str
    learner_response: str
    mastery_score: float = Field(ge=0.0, le=1.0)
    grade: str
    feedback: str
    cycle_number: int = Field(ge=1)
    term: Optional[str] = None
    hint_node_ids: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.utcnow)


def create_mastery_record(
    node_id: str,
    recall_type: str,
    learner_response: str,
    evaluation: RecallEvaluation,
    cycle_number: int,
    hint_node_ids: Optional[list[str]] = None,
    term: Optional[str] = None,
) -> MasteryRecord:
    """Build a record from an evaluation."""
    return MasteryRecord(
        node_id=node_id,
        recall_type=recall_type,
        learner_response=learner_response,
        mastery_score=evaluation.mastery_score,
        grade=evaluation.grade,
        feedback=evaluation.feedback,
        cycle_number=cycle_number,
        term=term,
        hint_node_ids=list(hint_node_ids or []),
    )
