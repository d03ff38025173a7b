"""
Structure Generation Service

Produces the ordered outline of a new lesson: node titles, the vocabulary
terms each node will define, and a short metadata hint. Content for the
nodes is generated later, one node at a time.
"""

import json
import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shared.services.llm_service import LLMResponseParseError, LLMService, LLMServiceError
from shared.utils.constants import MAX_LESSON_NODES, MIN_LESSON_NODES, NODE_COUNT_BY_DIFFICULTY
from lessons.exceptions import GenerationError, MalformedResponseError
from lessons.prompts.templates import STRUCTURE_SYSTEM_TEMPLATE, STRUCTURE_TEMPLATE

logger = logging.getLogger("lessons.structure_service")


class NodeOutline(BaseModel):
    """One node of a generated lesson structure."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(min_length=1)
    vocabulary_terms: list[str] = Field(default_factory=list, alias="vocabularyTerms")
    metadata_hint: Optional[str] = Field(default=None, alias="metadataHint")


class StructureGenerationError(GenerationError):
    """Raised when the lesson outline could not be generated."""

    def __init__(self, topic: str, reason: str):
        super().__init__(f"Structure generation failed for '{topic}': {reason}")
        self.topic = topic
        self.reason = reason


def node_count_range(difficulty_level: str) -> str:
    low, high = NODE_COUNT_BY_DIFFICULTY.get(difficulty_level, NODE_COUNT_BY_DIFFICULTY["beginner"])
    return f"{low}-{high}"


def extract_outline_items(parsed: Any) -> Optional[list]:
    """Accept a bare array, {"nodes": [...]}, or any object holding one array."""
    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict):
        if isinstance(parsed.get("nodes"), list):
            return parsed["nodes"]
        for value in parsed.values():
            if isinstance(value, list):
                return value
    return None


class StructureService:
    """Generates lesson outlines through the LLM."""

    def __init__(self, llm_service: LLMService):
        self.llm = llm_service

    def generate_structure(self, topic: str, subject: str, difficulty_level: str) -> list[NodeOutline]:
        """
        Generate the node outline for a new lesson.

        Raises:
            StructureGenerationError: LLM call failed
            MalformedResponseError: Output was not a 5-25 item node list
        """
        prompt = STRUCTURE_TEMPLATE.render(
            topic=topic,
            difficulty_level=difficulty_level,
            node_count_range=node_count_range(difficulty_level),
        )
        system_prompt = STRUCTURE_SYSTEM_TEMPLATE.render(subject=subject)

        try:
            result = self.llm.call(prompt, json_mode=True, system_prompt=system_prompt, max_tokens=4096)
        except LLMResponseParseError as e:
            raise MalformedResponseError("structure", str(e), e.raw_output) from e
        except LLMServiceError as e:
            raise StructureGenerationError(topic, str(e)) from e

        outlines = self.parse_outlines(result.get("parsed"), result.get("output_text", ""))

        logger.info(json.dumps({
            "step": "LESSON_STRUCTURE",
            "status": "complete",
            "topic": topic,
            "difficulty_level": difficulty_level,
            "node_count": len(outlines),
        }))
        return outlines

    @staticmethod
    def parse_outlines(parsed: Any, raw_output: str = "") -> list[NodeOutline]:
        items = extract_outline_items(parsed)
        if items is None:
            raise MalformedResponseError("structure", "response holds no node array", raw_output)
        if not MIN_LESSON_NODES <= len(items) <= MAX_LESSON_NODES:
            raise MalformedResponseError(
                "structure",
                f"expected {MIN_LESSON_NODES}-{MAX_LESSON_NODES} nodes, got {len(items)}",
                raw_output,
            )
        try:
            return [NodeOutline.model_validate(item) for item in items]
        except ValidationError as e:
            raise MalformedResponseError("structure", str(e), raw_output) from e
