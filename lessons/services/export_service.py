"""Markdown export of a lesson with the learner's performance."""

from datetime import datetime
from statistics import mean
from typing import Optional

from shared.utils.constants import WEAK_NODE_THRESHOLD
from lessons.models.mastery import MasteryRecord
from lessons.models.nodes import NodeSequence


def _percent(score: float) -> str:
    return f"{round(score * 100)}%"


def export_lesson_markdown(
    topic: str,
    difficulty_level: str,
    nodes: NodeSequence,
    records: list[MasteryRecord],
    completed_cycles: int,
    completed_at: Optional[datetime] = None,
) -> str:
    lines: list[str] = [
        f"# {topic}",
        f"**Difficulty:** {difficulty_level}",
        f"**Completed:** {completed_at.date().isoformat() if completed_at else 'In Progress'}",
        "",
        "## Summary",
        f"- **Nodes:** {len(nodes)}",
        f"- **Cycles Completed:** {completed_cycles}",
        f"- **Average Score:** {_percent(mean(r.mastery_score for r in records) if records else 0.0)}",
        "",
        "## Lesson Content",
        "",
    ]

    for node in nodes:
        lines.append(f"### {node.position + 1}. {node.title}")
        lines.append("")

        if node.is_complete:
            content = node.content
            lines.extend([content.summary, ""])
            if content.vocabulary:
                lines.extend(["**Key Terms:**", ""])
                lines.extend(f"- **{entry.term}:** {entry.definition}" for entry in content.vocabulary)
                lines.append("")
            if content.thinking_question:
                lines.extend([f"**Reflection:** {content.thinking_question}", ""])
        else:
            lines.extend(["_Content not generated yet._", ""])

        node_records = [r for r in records if r.node_id == node.id]
        if node_records:
            lines.append("**Your Performance:**")
            lines.append(f"- Average Score: {_percent(mean(r.mastery_score for r in node_records))}")
            grades = [r.grade for r in node_records if r.grade]
            if grades:
                lines.append(f"- Grades: {', '.join(grades)}")
            lines.append("")

        lines.extend(["---", ""])

    titles = {node.id: node.title for node in nodes}
    struggled = [
        r for r in records
        if r.recall_type == "partial" and r.mastery_score < WEAK_NODE_THRESHOLD
    ]
    if struggled:
        lines.extend(["## Vocabulary to Review", ""])
        for record in struggled:
            term = record.term or record.learner_response or "Unknown"
            title = titles.get(record.node_id, "Unknown")
            lines.append(f"- **{term}** ({title}) - {_percent(record.mastery_score)}")
        lines.append("")

    return "\n".join(lines)
