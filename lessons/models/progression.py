"""
Progression Models

The explicit, serializable progression context. Every controller transition
takes a ProgressionState and returns a new one; nothing about the learner's
position lives anywhere else.
"""

from typing import Literal, Optional
from pydantic import BaseModel, ConfigDict, Field

from lessons.models.mastery import MasteryRecord, RecallEvaluation


Phase = Literal["teaching", "recall", "complete"]
SubPhase = Literal["content", "continue", "question"]
RecallType = Literal["partial", "full-forward", "full-backward", "full-comprehensive"]
ZoomIntent = Literal["follow", "focus", "context-forward", "context-back", "overview"]


class RecallTask(BaseModel):
    """One recall test inside a cycle. Rebuilt on demand, never persisted."""

    model_config = ConfigDict(frozen=True)

    node_index: int = Field(ge=0, description="Index of the erased node")
    node_id: str
    recall_type: RecallType
    hint_node_indices: list[int] = Field(default_factory=list, description="0-2 neighbouring nodes shown as context")
    hint_node_ids: list[str] = Field(default_factory=list)
    is_retention: bool = Field(default=False, description="Re-test of the previous block")
    is_capstone: bool = Field(default=False, description="Synthesis check of the final cycle")


class ProgressionState(BaseModel):
    """Where the learner is in a lesson."""

    current_node_index: int = Field(default=0, ge=0)
    current_phase: Phase = "teaching"
    sub_phase: SubPhase = "content"
    recall_cycle: int = Field(default=0, ge=0, description="1-based, 0 = no cycle yet")
    recall_step: int = Field(default=0, ge=0, le=4)
    resume_index: Optional[int] = Field(default=None, ge=0, description="Teaching index to return to after recall")
    completed_cycles: int = Field(default=0, ge=0)
    resolved_terms: list[str] = Field(default_factory=list, description="Terms answered in the current partial task")
    revision: int = Field(default=0, ge=0, description="Bumped on every transition")

    @property
    def is_complete(self) -> bool:
        return self.current_phase == "complete"

    @property
    def in_recall(self) -> bool:
        return self.current_phase == "recall"

    def describe(self) -> str:
        if self.current_phase == "recall":
            return f"recall(cycle={self.recall_cycle}, step={self.recall_step})"
        if self.current_phase == "teaching":
            return f"teaching(node={self.current_node_index}, {self.sub_phase})"
        return "complete"

    def to_record(self) -> dict:
        """The persisted progression record."""
        return {
            "current_node_index": self.current_node_index,
            "current_phase": self.current_phase,
            "sub_phase": self.sub_phase,
            "recall_cycle": self.recall_cycle,
            "recall_step": self.recall_step,
            "resume_index": self.resume_index,
            "completed_cycles": self.completed_cycles,
            "resolved_terms": list(self.resolved_terms),
            "progress_revision": self.revision,
        }


class CameraHint(BaseModel):
    """Which nodes must be on screen and how to frame them."""

    model_config = ConfigDict(frozen=True)

    visible_node_indices: list[int]
    zoom: ZoomIntent


class PresentationInstruction(BaseModel):
    """What the presentation layer should show after a transition."""

    phase: Phase
    sub_phase: Optional[SubPhase] = None
    node_index: int
    node_id: str
    content_ready: bool = True
    recall_type: Optional[RecallType] = None
    recall_cycle: Optional[int] = None
    recall_step: Optional[int] = None
    hint_node_indices: list[int] = Field(default_factory=list)
    visible_node_indices: list[int] = Field(default_factory=list)
    camera: CameraHint
    context_message: Optional[str] = None
    pending_terms: list[str] = Field(default_factory=list, description="Blanked terms still to answer (partial)")
    is_retention: bool = False
    is_capstone: bool = False


class TransitionResult(BaseModel):
    """Outcome of one controller transition."""

    state: ProgressionState
    instruction: PresentationInstruction
    evaluation: Optional[RecallEvaluation] = None
    record: Optional[MasteryRecord] = None
    feedback: Optional[str] = None
    answer: Optional[str] = None
