"""Unit tests for lessons/services/metrics_service.py and export_service.py"""

from datetime import datetime

import pytest

from lessons.models.mastery import MasteryRecord
from lessons.services.export_service import export_lesson_markdown
from lessons.services.metrics_service import calculate_lesson_metrics, grade_to_points


def _record(node_id, score, grade="B", cycle=1, recall_type="full-forward", term=None):
    return MasteryRecord(
        node_id=node_id,
        recall_type=recall_type,
        learner_response="answer",
        mastery_score=score,
        grade=grade,
        feedback="",
        cycle_number=cycle,
        term=term,
    )


# ===========================================================================
# Metrics
# ===========================================================================

class TestGradeToPoints:

    @pytest.mark.parametrize("grade,points", [("A+", 4.3), ("b-", 2.7), (" C ", 2.0), ("F", 0.0), ("Z", 0.0), ("", 0.0)])
    def test_values(self, grade, points):
        assert grade_to_points(grade) == points


class TestLessonMetrics:

    def test_no_records(self, make_nodes):
        metrics = calculate_lesson_metrics("lesson-1", make_nodes(6), [], 0)

        assert metrics.total_nodes == 6
        assert metrics.total_attempts == 0
        assert metrics.average_grade == 0.0
        assert metrics.weak_nodes == []
        assert metrics.cycle_breakdown == []

    def test_aggregates(self, make_nodes):
        records = [
            _record("node-1", 0.4, "D", recall_type="partial", term="term-1a"),
            _record("node-1", 0.6, "C", recall_type="partial", term="term-1b"),
            _record("node-0", 0.9, "A"),
            _record("node-2", 0.65, "C", cycle=1),
            _record("node-4", 1.0, "A+", cycle=2),
        ]
        metrics = calculate_lesson_metrics("lesson-1", make_nodes(6), records, 2)

        assert metrics.total_cycles == 2
        assert metrics.total_attempts == 5
        assert metrics.vocabulary_mastery == pytest.approx(0.5)
        assert metrics.average_score == pytest.approx(0.71)
        assert metrics.average_grade == pytest.approx((1.0 + 2.0 + 4.0 + 2.0 + 4.3) / 5)
        assert [w.node_id for w in metrics.weak_nodes] == ["node-1", "node-2"]
        assert metrics.weak_nodes[0].attempts == 2
        assert [(c.cycle_number, c.attempts) for c in metrics.cycle_breakdown] == [(1, 4), (2, 1)]


# ===========================================================================
# Export
# ===========================================================================

class TestExport:

    def test_in_progress_lesson(self, make_nodes):
        markdown = export_lesson_markdown(
            topic="The French Revolution",
            difficulty_level="beginner",
            nodes=make_nodes(6, pending={5}),
            records=[],
            completed_cycles=1,
        )

        assert markdown.startswith("# The French Revolution")
        assert "**Completed:** In Progress" in markdown
        assert "- **Cycles Completed:** 1" in markdown
        assert "### 1. Concept 0" in markdown
        assert "- **term-0a:** Definition of term-0a" in markdown
        assert "**Reflection:** What does concept 0 lead to?" in markdown
        assert "_Content not generated yet._" in markdown
        assert "Vocabulary to Review" not in markdown

    def test_completed_lesson_with_performance(self, make_nodes):
        records = [
            _record("node-1", 0.3, "F", recall_type="partial", term="term-1a"),
            _record("node-1", 0.9, "A", recall_type="partial", term="term-1b"),
        ]
        markdown = export_lesson_markdown(
            topic="Cells",
            difficulty_level="intermediate",
            nodes=make_nodes(6),
            records=records,
            completed_cycles=2,
            completed_at=datetime(2026, 3, 1, 12, 0),
        )

        assert "**Completed:** 2026-03-01" in markdown
        assert "- **Average Score:** 60%" in markdown
        assert "- Grades: F, A" in markdown
        assert "## Vocabulary to Review" in markdown
        assert "- **term-1a** (Concept 1) - 30%" in markdown
        assert "term-1b** (" not in markdown
