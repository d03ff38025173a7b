"""
Knowledge Node Models

A lesson is a fixed, ordered sequence of knowledge nodes. Structure (title,
vocabulary terms, position) is decided once when the lesson is created;
content is generated later, exactly once per node.
"""

from datetime import datetime
from typing import Annotated, Any, Iterator, Literal, Optional, Sequence, Union
from pydantic import BaseModel, ConfigDict, Field

from shared.utils.constants import MAX_LESSON_NODES, MIN_LESSON_NODES
from lessons.exceptions import ContentAlreadyGeneratedError, NodeSequenceError


NodeStatus = Literal["PENDING_CONTENT", "COMPLETE"]
DifficultyLevel = Literal["beginner", "intermediate", "advanced"]


class LessonContext(BaseModel):
    """Lesson-level facts every prompt needs."""

    model_config = ConfigDict(frozen=True)

    lesson_id: str
    topic: str
    subject: str
    difficulty_level: DifficultyLevel = "beginner"


class VocabularyEntry(BaseModel):
    """A vocabulary term with its generated definition."""

    term: str = Field(description="Vocabulary term")
    definition: str = Field(description="Definition written for this lesson")


class PendingContent(BaseModel):
    """Content has not been generated yet."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["pending"] = "pending"


class CompleteContent(BaseModel):
    """Generated node body."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["complete"] = "complete"
    summary: str = Field(description="2-3 sentence explanation of the node")
    vocabulary: list[VocabularyEntry] = Field(default_factory=list)
    thinking_question: str = Field(description="Question bridging to the next node")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Badge, location, key figure, ...")
    generated_at: datetime = Field(default_factory=datetime.utcnow)

    def definition_for(self, term: str) -> Optional[str]:
        for entry in self.vocabulary:
            if entry.term == term:
                return entry.definition
        return None


NodeContent = Annotated[Union[PendingContent, CompleteContent], Field(discriminator="kind")]


class KnowledgeNode(BaseModel):
    """One teaching unit."""

    id: str = Field(description="Stable node identifier")
    position: int = Field(ge=0, description="0-based order within the lesson")
    title: str = Field(description="Short descriptive title")
    vocabulary_terms: list[str] = Field(default_factory=list, description="Terms fixed at structure time")
    metadata_hint: Optional[str] = Field(default=None, description="Hint from structure generation")
    content: NodeContent = Field(default_factory=PendingContent)

    @property
    def status(self) -> NodeStatus:
        return "COMPLETE" if isinstance(self.content, CompleteContent) else "PENDING_CONTENT"

    @property
    def is_complete(self) -> bool:
        return isinstance(self.content, CompleteContent)

    @property
    def summary(self) -> Optional[str]:
        return self.content.summary if isinstance(self.content, CompleteContent) else None

    @property
    def thinking_question(self) -> Optional[str]:
        return self.content.thinking_question if isinstance(self.content, CompleteContent) else None

    def complete(self, content: CompleteContent) -> None:
        """Write generated content. Content transitions PENDING -> COMPLETE once."""
        if self.is_complete:
            raise ContentAlreadyGeneratedError(self.id)
        self.content = content


class NodeSequence:
    """Immutable, order-indexed list of the nodes belonging to one lesson."""

    __slots__ = ("_nodes",)

    def __init__(self, nodes: Sequence[KnowledgeNode]):
        ordered = tuple(nodes)
        if not MIN_LESSON_NODES <= len(ordered) <= MAX_LESSON_NODES:
            raise NodeSequenceError(
                f"Lesson must have {MIN_LESSON_NODES}-{MAX_LESSON_NODES} nodes, got {len(ordered)}"
            )
        for index, node in enumerate(ordered):
            if node.position != index:
                raise NodeSequenceError(
                    f"Node {node.id} has position {node.position} but sits at index {index}"
                )
        self._nodes = ordered

    def __len__(self) -> int:
        return len(self._nodes)

    def __getitem__(self, index: int) -> KnowledgeNode:
        return self._nodes[index]

    def __iter__(self) -> Iterator[KnowledgeNode]:
        return iter(self._nodes)

    def __repr__(self) -> str:
        return f"NodeSequence(len={len(self._nodes)})"

    @property
    def last_index(self) -> int:
        return len(self._nodes) - 1

    def contains_index(self, index: int) -> bool:
        return 0 <= index < len(self._nodes)

    def get(self, index: int) -> Optional[KnowledgeNode]:
        if self.contains_index(index):
            return self._nodes[index]
        return None

    def index_of(self, node_id: str) -> int:
        for node in self._nodes:
            if node.id == node_id:
                return node.position
        raise KeyError(node_id)

    def neighbors(self, index: int) -> tuple[Optional[KnowledgeNode], Optional[KnowledgeNode]]:
        """Return (previous, next) nodes around an index."""
        return self.get(index - 1), self.get(index + 1)
