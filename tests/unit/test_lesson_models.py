"""Unit tests for lessons/models — nodes, progression state and mastery records."""

import pytest
from pydantic import ValidationError

from lessons.exceptions import ContentAlreadyGeneratedError, NodeSequenceError
from lessons.models.mastery import RecallEvaluation, create_mastery_record
from lessons.models.nodes import (
    CompleteContent,
    KnowledgeNode,
    NodeSequence,
    PendingContent,
    VocabularyEntry,
)
from lessons.models.progression import ProgressionState


def _node(position: int, **kwargs) -> KnowledgeNode:
    return KnowledgeNode(id=f"n{position}", position=position, title=f"Node {position}", **kwargs)


def _content() -> CompleteContent:
    return CompleteContent(
        summary="Plants turn light into sugar.",
        vocabulary=[VocabularyEntry(term="chlorophyll", definition="Green pigment")],
        thinking_question="Where does the oxygen come from?",
    )


# ===========================================================================
# KnowledgeNode
# ===========================================================================

class TestKnowledgeNode:

    def test_new_node_is_pending(self):
        node = _node(0)
        assert isinstance(node.content, PendingContent)
        assert node.status == "PENDING_CONTENT"
        assert node.summary is None
        assert node.thinking_question is None

    def test_complete(self):
        node = _node(0, vocabulary_terms=["chlorophyll"])
        node.complete(_content())

        assert node.status == "COMPLETE"
        assert node.is_complete
        assert node.summary == "Plants turn light into sugar."
        assert node.content.definition_for("chlorophyll") == "Green pigment"
        assert node.content.definition_for("stomata") is None

    def test_content_is_written_once(self):
        node = _node(0)
        node.complete(_content())
        with pytest.raises(ContentAlreadyGeneratedError):
            node.complete(_content())

    def test_content_union_from_dict(self):
        node = KnowledgeNode.model_validate({
            "id": "n0",
            "position": 0,
            "title": "Light",
            "content": {"kind": "complete", "summary": "s", "thinking_question": "q"},
        })
        assert node.is_complete


# ===========================================================================
# NodeSequence
# ===========================================================================

class TestNodeSequence:

    def test_valid_sequence(self):
        seq = NodeSequence([_node(i) for i in range(5)])
        assert len(seq) == 5
        assert seq.last_index == 4
        assert seq[2].id == "n2"
        assert [n.id for n in seq] == ["n0", "n1", "n2", "n3", "n4"]

    @pytest.mark.parametrize("count", [4, 26])
    def test_length_bounds(self, count):
        with pytest.raises(NodeSequenceError):
            NodeSequence([_node(i) for i in range(count)])

    def test_positions_must_match_order(self):
        nodes = [_node(i) for i in range(5)]
        nodes[1], nodes[2] = nodes[2], nodes[1]
        with pytest.raises(NodeSequenceError):
            NodeSequence(nodes)

    def test_lookups(self):
        seq = NodeSequence([_node(i) for i in range(5)])
        assert seq.get(7) is None
        assert seq.index_of("n3") == 3
        with pytest.raises(KeyError):
            seq.index_of("missing")

    def test_neighbors(self):
        seq = NodeSequence([_node(i) for i in range(5)])
        prev, nxt = seq.neighbors(0)
        assert prev is None
        assert nxt.id == "n1"
        prev, nxt = seq.neighbors(4)
        assert prev.id == "n3"
        assert nxt is None


# ===========================================================================
# ProgressionState
# ===========================================================================

class TestProgressionState:

    def test_defaults(self):
        state = ProgressionState()
        assert state.current_phase == "teaching"
        assert state.sub_phase == "content"
        assert state.recall_cycle == 0
        assert state.resume_index is None
        assert state.describe() == "teaching(node=0, content)"

    def test_recall_step_bounds(self):
        with pytest.raises(ValidationError):
            ProgressionState(recall_step=5)

    def test_negative_index_rejected(self):
        with pytest.raises(ValidationError):
            ProgressionState(current_node_index=-1)

    def test_to_record_carries_resolved_terms(self):
        state = ProgressionState(
            current_phase="recall", current_node_index=1, recall_cycle=1, recall_step=1,
            resume_index=2, resolved_terms=["a"], revision=9,
        )
        record = state.to_record()

        assert record["resume_index"] == 2
        assert record["progress_revision"] == 9
        assert record["resolved_terms"] == ["a"]
        assert state.describe() == "recall(cycle=1, step=1)"


# ===========================================================================
# Mastery
# ===========================================================================

class TestMastery:

    def test_evaluation_accepts_camel_case(self):
        evaluation = RecallEvaluation.model_validate({"masteryScore": 0.75, "grade": "B", "feedback": "ok"})
        assert evaluation.mastery_score == 0.75
        assert evaluation.band == "good"

    @pytest.mark.parametrize("score,band", [(0.95, "excellent"), (0.5, "partial"), (0.1, "incorrect")])
    def test_bands(self, score, band):
        assert RecallEvaluation(mastery_score=score, grade="C").band == band

    def test_score_out_of_range(self):
        with pytest.raises(ValidationError):
            RecallEvaluation(mastery_score=1.5, grade="A")

    def test_create_mastery_record(self):
        evaluation = RecallEvaluation(mastery_score=0.6, grade="C", feedback="Partly.")
        record = create_mastery_record(
            node_id="n1",
            recall_type="partial",
            learner_response="a green thing",
            evaluation=evaluation,
            cycle_number=1,
            term="chlorophyll",
        )
        assert record.mastery_score == 0.6
        assert record.term == "chlorophyll"
        assert record.hint_node_ids == []
        with pytest.raises(ValidationError):
            record.grade = "A"
