"""
Prompt Template System

Reusable prompt templates with variable interpolation and validation.
"""

from typing import Any, Optional
from string import Formatter

from lessons.exceptions import PromptTemplateError


class PromptTemplate:
    """Reusable template for generating prompts with {variable} placeholders."""

    def __init__(
        self,
        template: str,
        name: Optional[str] = None,
        defaults: Optional[dict[str, Any]] = None,
    ):
        self.template = template.strip()
        self.name = name or "unnamed"
        self.defaults = defaults or {}
        self.required_vars = self._extract_variables()

    def _extract_variables(self) -> set[str]:
        formatter = Formatter()
        variables = set()
        for _, field_name, _, _ in formatter.parse(self.template):
            if field_name is not None:
                base_name = field_name.split(".")[0].split("[")[0]
                if base_name:
                    variables.add(base_name)
        return variables

    def render(self, **kwargs: Any) -> str:
        values = {**self.defaults, **kwargs}
        missing = self.required_vars - set(values.keys())
        if missing:
            raise PromptTemplateError(template_name=self.name, missing_vars=sorted(missing))
        try:
            return self.template.format(**values)
        except KeyError as e:
            raise PromptTemplateError(template_name=self.name, missing_vars=[str(e)]) from e

    def __repr__(self) -> str:
        return f"PromptTemplate(name='{self.name}', vars={self.required_vars})"


# Structure Generation

STRUCTURE_SYSTEM_TEMPLATE = PromptTemplate(
    "You are an expert curriculum designer for {subject}. Create a logical, sequential "
    "learning path where each concept naturally flows into the next.",
    name="structure_system",
)

STRUCTURE_TEMPLATE = PromptTemplate(
    """Topic: {topic}
Difficulty: {difficulty_level}

Create {node_count_range} connected concept nodes that build on each other.

CRITICAL: Each node should create a clear bridge to the next node. The sequence should feel like a story unfolding, where understanding one concept naturally raises questions about the next.

For each node, provide ONLY:
1. Title (2-4 words, descriptive)
2. Vocabulary terms (2-4 key terms, NO definitions)
3. Brief metadata hint (e.g., '1776' for history, 'Pavlov' for psychology)

Respond with JSON:
{{
    "nodes": [
        {{"title": "string", "vocabularyTerms": ["string"], "metadataHint": "string"}}
    ]
}}""",
    name="structure",
)


# Node Content Generation

CONTENT_SYSTEM_TEMPLATE = PromptTemplate(
    "You are a master teacher for {subject}. Expand this concept with rich detail and "
    "create bridges to the next concept.",
    name="content_system",
)

_CONTENT_OUTPUT = """Respond with JSON:
{{
    "summary": "string",
    "vocabulary": [{{"term": "string", "definition": "string"}}],
    "thinkingQuestion": "string",
    "metadata": {{"badge": "string", "location": "string", "keyFigure": "string"}}
}}"""

CONTENT_TEMPLATE = PromptTemplate(
    """Lesson Topic: {topic}
Current Node: {title}
Previous Node: {previous_title}
Next Node: {next_title} (this is where we're heading)
Vocabulary Terms to Define: {vocabulary_terms}

Generate:
1. Summary (2-3 sentences explaining this concept and how it connects to the previous node)
2. Vocabulary Definitions (clear, concise definitions for each term)
3. Thinking Question (ONE question that helps the student see how this concept leads naturally into '{next_title}'. The question should create curiosity about what comes next.)
4. Complete Metadata (dates, locations, key figures relevant to this concept)

""" + _CONTENT_OUTPUT,
    name="content",
)

FINAL_CONTENT_TEMPLATE = PromptTemplate(
    """Lesson Topic: {topic}
Current Node: {title} (FINAL NODE)
Previous Node: {previous_title}
Vocabulary Terms to Define: {vocabulary_terms}

Generate:
1. Summary (2-3 sentences explaining this concept and how it connects to the previous node)
2. Vocabulary Definitions (clear, concise definitions for each term)
3. Thinking Question (ONE question that helps the student synthesize and wrap up the key concepts from the entire lesson. Start with something like 'Now that we've covered...' or 'Looking back at the whole story...')
4. Complete Metadata (dates, locations, key figures relevant to this concept)

""" + _CONTENT_OUTPUT,
    name="final_content",
)


# Recall Evaluation

EVALUATION_SYSTEM_TEMPLATE = PromptTemplate(
    "You are an expert evaluator for {subject}. Assess the student's recall accuracy "
    "and understanding depth.",
    name="evaluation_system",
)

PARTIAL_RECALL_TEMPLATE = PromptTemplate(
    """Lesson Topic: {topic}
Node: {title}
Vocabulary Term: {term}
Correct Definition: {definition}
Student Answer: {response}

Evaluate the student's answer and provide:
1. Mastery Score (0.0 to 1.0, where 1.0 = perfect match, 0.7-0.9 = good understanding with minor errors, 0.4-0.6 = partial understanding, 0.0-0.3 = incorrect)
2. Letter Grade (F, D, C, B-, B, B+, A-, A, A+)
3. Brief Feedback (1 sentence explaining the score)

Respond with JSON:
{{
    "masteryScore": <0.0-1.0>,
    "grade": "<letter>",
    "feedback": "<one sentence>"
}}""",
    name="partial_recall",
)

FULL_RECALL_TEMPLATE = PromptTemplate(
    """Lesson Topic: {topic}
Node: {title}
Correct Summary: {summary}
Key Concepts: {vocabulary_terms}
Student Recall: {response}

Context / Hint Nodes Shown:
{hint_context}

Recall Type: {recall_type}
- full-forward: Recalling this node with the next node as a hint.
- full-backward: Recalling this node with the previous node as a hint.
- full-comprehensive: Recalling this node with both neighbors as hints (Mastery Check).

Evaluate the student's recall and provide:
1. Mastery Score (0.0 to 1.0):
   - 1.0: Captures all key concepts with accurate causal connections
   - 0.7-0.9: Captures most concepts, minor gaps in connections
   - 0.4-0.6: Captures some concepts but missing key details
   - 0.0-0.3: Significant gaps or misconceptions
2. Letter Grade (F to A+)
3. Detailed Feedback (2-3 sentences): what they got right, what they missed, encouragement

Respond with JSON:
{{
    "masteryScore": <0.0-1.0>,
    "grade": "<letter>",
    "feedback": "<2-3 sentences>"
}}""",
    name="full_recall",
)


# Thinking Feedback and Questions

THINKING_SYSTEM_TEMPLATE = PromptTemplate(
    "You are an encouraging tutor for {subject}. Evaluate the student's thinking and "
    "provide brief, positive feedback.",
    name="thinking_system",
)

THINKING_FEEDBACK_TEMPLATE = PromptTemplate(
    """Lesson Topic: {topic}
Current Node: {title}
Thinking Question: {thinking_question}
Student Response: {response}

Evaluate the student's response and provide brief feedback (1-2 sentences) that:
1. Validates correct understanding
2. Gently corrects misconceptions if needed
3. Bridges to the next concept
4. Is encouraging and positive

Output format: Plain text feedback""",
    name="thinking_feedback",
)

ASK_SYSTEM_TEMPLATE = PromptTemplate(
    "You are a helpful tutor for {subject}. Answer the student's question clearly and "
    "concisely, relating it back to the current concept.",
    name="ask_system",
)

ASK_TEMPLATE = PromptTemplate(
    """Lesson Topic: {topic}
Current Node: {title}
Node Summary: {summary}
Vocabulary: {vocabulary_terms}

Student Question: {question}

Provide a clear, conversational answer (2-3 sentences) that:
1. Directly addresses their question
2. Relates back to the current concept
3. Uses simple language
4. Encourages further learning

Output format: Plain text response""",
    name="ask",
)


# Helper Functions

def format_list_for_prompt(items: list[str], bullet: str = "-") -> str:
    if not items:
        return "None"
    return "\n".join(f"{bullet} {item}" for item in items)


def format_terms(terms: list[str]) -> str:
    return ", ".join(terms) if terms else "None"
