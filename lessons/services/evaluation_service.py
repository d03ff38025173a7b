"""
Evaluation Service

Scores recall answers and produces the informational tutor replies
(thinking-question feedback, answers to free-form questions). Only the
recall score feeds back into progression, and only as "a grade arrived".
"""

import json
import logging
import time
from typing import Optional

from pydantic import ValidationError

from shared.services.llm_service import LLMResponseParseError, LLMService, LLMServiceError
from lessons.exceptions import EvaluationError, FeedbackGenerationError, MalformedResponseError
from lessons.models.mastery import RecallEvaluation
from lessons.models.nodes import KnowledgeNode, LessonContext, NodeSequence
from lessons.models.progression import RecallTask
from lessons.prompts.templates import (
    ASK_SYSTEM_TEMPLATE,
    ASK_TEMPLATE,
    EVALUATION_SYSTEM_TEMPLATE,
    FULL_RECALL_TEMPLATE,
    PARTIAL_RECALL_TEMPLATE,
    THINKING_FEEDBACK_TEMPLATE,
    THINKING_SYSTEM_TEMPLATE,
    format_list_for_prompt,
    format_terms,
)

logger = logging.getLogger("lessons.evaluation_service")


class EvaluationService:
    """LLM-backed recall scoring and tutor feedback."""

    def __init__(self, llm_service: LLMService):
        self.llm = llm_service

    # ─── Recall ───────────────────────────────────────────────────────

    def build_recall_prompt(
        self,
        context: LessonContext,
        nodes: NodeSequence,
        task: RecallTask,
        response: str,
        term: Optional[str] = None,
    ) -> str:
        node = nodes[task.node_index]
        if task.recall_type == "partial":
            definition = None
            if node.is_complete and term:
                definition = node.content.definition_for(term)
            return PARTIAL_RECALL_TEMPLATE.render(
                topic=context.topic,
                title=node.title,
                term=term or "Unknown Term",
                definition=definition or "Definition not found",
                response=response,
            )

        hint_lines = [
            f"{nodes[index].title}: {nodes[index].summary or 'Not generated yet'}"
            for index in task.hint_node_indices
        ]
        return FULL_RECALL_TEMPLATE.render(
            topic=context.topic,
            title=node.title,
            summary=node.summary or "Not generated yet",
            vocabulary_terms=format_terms(node.vocabulary_terms),
            response=response,
            hint_context=format_list_for_prompt(hint_lines),
            recall_type=task.recall_type,
        )

    def evaluate_recall(
        self,
        context: LessonContext,
        nodes: NodeSequence,
        task: RecallTask,
        response: str,
        term: Optional[str] = None,
    ) -> RecallEvaluation:
        """
        Score one recall answer.

        Raises:
            EvaluationError: LLM call failed
            MalformedResponseError: Output could not be parsed or validated
        """
        start_time = time.time()
        prompt = self.build_recall_prompt(context, nodes, task, response, term)
        system_prompt = EVALUATION_SYSTEM_TEMPLATE.render(subject=context.subject)

        try:
            result = self.llm.call(prompt, json_mode=True, system_prompt=system_prompt, temperature=0.2)
        except LLMResponseParseError as e:
            raise MalformedResponseError("evaluation", str(e), e.raw_output) from e
        except LLMServiceError as e:
            raise EvaluationError(task.node_id, str(e)) from e

        parsed = result.get("parsed")
        if not isinstance(parsed, dict):
            raise MalformedResponseError("evaluation", "expected a JSON object", result.get("output_text"))
        try:
            evaluation = RecallEvaluation.model_validate(parsed)
        except ValidationError as e:
            raise MalformedResponseError("evaluation", str(e), result.get("output_text")) from e

        logger.info(json.dumps({
            "step": "RECALL_EVALUATION",
            "status": "complete",
            "lesson_id": context.lesson_id,
            "node_id": task.node_id,
            "recall_type": task.recall_type,
            "term": term,
            "mastery_score": evaluation.mastery_score,
            "grade": evaluation.grade,
            "duration_ms": int((time.time() - start_time) * 1000),
        }))
        return evaluation

    # ─── Thinking feedback and questions ──────────────────────────────

    def thinking_feedback(self, context: LessonContext, node: KnowledgeNode, response: str) -> str:
        """Brief encouraging feedback on a thinking-question answer."""
        prompt = THINKING_FEEDBACK_TEMPLATE.render(
            topic=context.topic,
            title=node.title,
            thinking_question=node.thinking_question or "",
            response=response,
        )
        system_prompt = THINKING_SYSTEM_TEMPLATE.render(subject=context.subject)
        return self._plain_text(node.id, prompt, system_prompt)

    def answer_question(self, context: LessonContext, node: KnowledgeNode, question: str) -> str:
        """Answer a free-form learner question about the current node."""
        prompt = ASK_TEMPLATE.render(
            topic=context.topic,
            title=node.title,
            summary=node.summary or "",
            vocabulary_terms=format_terms(node.vocabulary_terms),
            question=question,
        )
        system_prompt = ASK_SYSTEM_TEMPLATE.render(subject=context.subject)
        return self._plain_text(node.id, prompt, system_prompt)

    def _plain_text(self, node_id: str, prompt: str, system_prompt: str) -> str:
        try:
            result = self.llm.call(prompt, json_mode=False, system_prompt=system_prompt)
        except LLMServiceError as e:
            raise FeedbackGenerationError(node_id, str(e)) from e

        text = (result.get("output_text") or "").strip()
        if not text:
            raise FeedbackGenerationError(node_id, "empty response")
        return text
