"""Mastery metrics over a lesson's recall history."""

from collections import defaultdict
from statistics import mean

from shared.models.schemas import CycleStats, LessonMetricsResponse, WeakNode
from shared.utils.constants import GRADE_POINTS, WEAK_NODE_THRESHOLD
from lessons.models.mastery import MasteryRecord
from lessons.models.nodes import NodeSequence


def grade_to_points(grade: str) -> float:
    """GPA-style value of a letter grade. Unknown grades count as 0."""
    return GRADE_POINTS.get(grade.strip().upper(), 0.0) if grade else 0.0


def calculate_lesson_metrics(
    lesson_id: str,
    nodes: NodeSequence,
    records: list[MasteryRecord],
    completed_cycles: int,
) -> LessonMetricsResponse:
    grades = [grade_to_points(r.grade) for r in records if r.grade]
    partial_scores = [r.mastery_score for r in records if r.recall_type == "partial"]

    titles = {node.id: node.title for node in nodes}
    scores_by_node: dict[str, list[float]] = defaultdict(list)
    scores_by_cycle: dict[int, list[float]] = defaultdict(list)
    for record in records:
        if record.node_id in titles:
            scores_by_node[record.node_id].append(record.mastery_score)
        scores_by_cycle[record.cycle_number].append(record.mastery_score)

    weak_nodes = [
        WeakNode(node_id=node_id, title=titles[node_id], average_score=mean(scores), attempts=len(scores))
        for node_id, scores in scores_by_node.items()
        if mean(scores) < WEAK_NODE_THRESHOLD
    ]
    weak_nodes.sort(key=lambda node: node.average_score)

    cycle_breakdown = [
        CycleStats(cycle_number=cycle, average_score=mean(scores), attempts=len(scores))
        for cycle, scores in sorted(scores_by_cycle.items())
    ]

    return LessonMetricsResponse(
        lesson_id=lesson_id,
        total_nodes=len(nodes),
        total_cycles=completed_cycles,
        total_attempts=len(records),
        average_grade=mean(grades) if grades else 0.0,
        average_score=mean(r.mastery_score for r in records) if records else 0.0,
        vocabulary_mastery=mean(partial_scores) if partial_scores else 0.0,
        weak_nodes=weak_nodes,
        cycle_breakdown=cycle_breakdown,
    )
