"""
Content Generation Service

Produces the body of one knowledge node: summary, vocabulary definitions,
a thinking question that bridges to the next node, and free-form metadata.
"""

import json
import logging
import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.services.llm_service import LLMResponseParseError, LLMService, LLMServiceError
from lessons.exceptions import ContentGenerationError, MalformedResponseError
from lessons.models.nodes import (
    CompleteContent,
    KnowledgeNode,
    LessonContext,
    NodeSequence,
    VocabularyEntry,
)
from lessons.prompts.templates import (
    CONTENT_SYSTEM_TEMPLATE,
    CONTENT_TEMPLATE,
    FINAL_CONTENT_TEMPLATE,
    format_terms,
)

logger = logging.getLogger("lessons.content_service")


class GeneratedNodeContent(BaseModel):
    """Shape of the content generation output."""

    model_config = ConfigDict(populate_by_name=True)

    summary: str = Field(min_length=1)
    vocabulary: list[VocabularyEntry] = Field(default_factory=list)
    thinking_question: str = Field(min_length=1, alias="thinkingQuestion")
    metadata: dict[str, Any] = Field(default_factory=dict)


class ContentService:
    """Generates node content through the LLM."""

    def __init__(self, llm_service: LLMService):
        self.llm = llm_service

    def build_prompt(self, context: LessonContext, nodes: NodeSequence, node: KnowledgeNode) -> str:
        previous_node, next_node = nodes.neighbors(node.position)
        values = {
            "topic": context.topic,
            "title": node.title,
            "previous_title": previous_node.title if previous_node else "None (Start of lesson)",
            "vocabulary_terms": format_terms(node.vocabulary_terms),
        }
        if next_node is None:
            return FINAL_CONTENT_TEMPLATE.render(**values)
        return CONTENT_TEMPLATE.render(next_title=next_node.title, **values)

    def generate_node_content(
        self,
        context: LessonContext,
        nodes: NodeSequence,
        node: KnowledgeNode,
    ) -> CompleteContent:
        """
        Generate content for one node.

        Raises:
            ContentGenerationError: LLM call failed
            MalformedResponseError: Output could not be parsed or validated
        """
        start_time = time.time()
        prompt = self.build_prompt(context, nodes, node)
        system_prompt = CONTENT_SYSTEM_TEMPLATE.render(subject=context.subject)

        try:
            result = self.llm.call(prompt, json_mode=True, system_prompt=system_prompt)
        except LLMResponseParseError as e:
            raise MalformedResponseError("content", str(e), e.raw_output) from e
        except LLMServiceError as e:
            raise ContentGenerationError(node.id, str(e)) from e

        content = self.parse_content(result.get("parsed"), result.get("output_text", ""))

        missing = [
            term for term in node.vocabulary_terms
            if content.definition_for(term) is None
        ]
        if missing:
            logger.warning(f"Generated content for node {node.id} has no definition for: {missing}")

        logger.info(json.dumps({
            "step": "NODE_CONTENT",
            "status": "complete",
            "lesson_id": context.lesson_id,
            "node_id": node.id,
            "position": node.position,
            "vocabulary_count": len(content.vocabulary),
            "duration_ms": int((time.time() - start_time) * 1000),
        }))
        return content

    @staticmethod
    def parse_content(parsed: Any, raw_output: str = "") -> CompleteContent:
        if not isinstance(parsed, dict):
            raise MalformedResponseError("content", "expected a JSON object", raw_output)
        try:
            generated = GeneratedNodeContent.model_validate(parsed)
        except ValidationError as e:
            raise MalformedResponseError("content", str(e), raw_output) from e

        return CompleteContent(
            summary=generated.summary,
            vocabulary=generated.vocabulary,
            thinking_question=generated.thinking_question,
            metadata=generated.metadata,
        )
