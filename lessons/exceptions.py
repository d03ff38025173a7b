"""
Custom Exception Hierarchy for the Lesson Engine

Exception Hierarchy:
    LessonEngineError (base)
    ├── GenerationError
    │   ├── ContentGenerationError
    │   ├── FeedbackGenerationError
    │   └── MalformedResponseError (also an EvaluationError)
    ├── EvaluationError
    ├── ContentNotReadyError
    ├── ContractViolationError
    │   ├── RecallQueueContractError
    │   ├── ProgressionContractError
    │   └── LessonAlreadyCompleteError
    ├── NodeSequenceError
    │   └── ContentAlreadyGeneratedError
    ├── StateError
    │   ├── StateValidationError
    │   └── StateTransitionError
    └── PromptTemplateError

GenerationError, EvaluationError and ContentNotReadyError are recoverable:
state is left untouched and the learner may retry. ContractViolationError
marks a programming error and is never offered as a retry.
"""

from typing import Optional


class LessonEngineError(Exception):
    """Base exception for all lesson engine errors."""

    retryable = False

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


# Service Errors

class GenerationError(LessonEngineError):
    """Base exception for content and feedback generation failures."""

    retryable = True


class ContentGenerationError(GenerationError):
    """Raised when node content generation fails."""

    def __init__(self, node_id: str, reason: str):
        super().__init__(f"Content generation failed for node {node_id}: {reason}")
        self.node_id = node_id
        self.reason = reason


class FeedbackGenerationError(GenerationError):
    """Raised when thinking feedback or question answering fails."""

    def __init__(self, node_id: str, reason: str):
        super().__init__(f"Feedback generation failed for node {node_id}: {reason}")
        self.node_id = node_id
        self.reason = reason


class EvaluationError(LessonEngineError):
    """Raised when a recall answer could not be scored."""

    retryable = True

    def __init__(self, node_id: str, reason: str):
        super().__init__(f"Recall evaluation failed for node {node_id}: {reason}")
        self.node_id = node_id
        self.reason = reason


class MalformedResponseError(GenerationError, EvaluationError):
    """Raised when a service returns output that cannot be parsed or validated."""

    def __init__(self, service: str, reason: str, raw_output: Optional[str] = None):
        LessonEngineError.__init__(
            self,
            f"Malformed response from {service} service: {reason}",
            {"raw_output": (raw_output or "")[:200]},
        )
        self.service = service
        self.reason = reason
        self.node_id = None


class ContentNotReadyError(LessonEngineError):
    """Raised when a transition needs a node whose content is not generated yet."""

    retryable = True

    def __init__(self, node_index: int, generating: bool):
        state = "still generating" if generating else "not generated"
        super().__init__(f"Content for node {node_index} is {state}")
        self.node_index = node_index
        self.generating = generating


# Contract Violations

class ContractViolationError(LessonEngineError):
    """Base exception for programming errors in the progression engine."""
    pass


class RecallQueueContractError(ContractViolationError):
    """Raised when a recall cycle is requested for a block that does not exist."""

    def __init__(self, cycle_number: int, node_count: int):
        end_index = (cycle_number - 1) * 3 + 2
        message = (
            f"Recall cycle {cycle_number} needs nodes up to index {end_index}, "
            f"lesson has {node_count}"
        )
        super().__init__(message)
        self.cycle_number = cycle_number
        self.node_count = node_count


class ProgressionContractError(ContractViolationError):
    """Raised when the controller is driven into an invalid index or step."""
    pass


class LessonAlreadyCompleteError(ContractViolationError):
    """Raised when an action is applied to a completed lesson."""

    def __init__(self, lesson_id: Optional[str] = None):
        message = "Lesson is already complete"
        if lesson_id:
            message += f": {lesson_id}"
        super().__init__(message)
        self.lesson_id = lesson_id


# Node Errors

class NodeSequenceError(LessonEngineError):
    """Raised when a node sequence is malformed."""
    pass


class ContentAlreadyGeneratedError(NodeSequenceError):
    """Raised when content is written to a node that is already complete."""

    def __init__(self, node_id: str):
        super().__init__(f"Node {node_id} already has generated content")
        self.node_id = node_id


# State Errors

class StateError(LessonEngineError):
    """Base exception for progression state errors."""
    pass


class StateValidationError(StateError):
    """Raised when restored state data fails validation."""

    def __init__(self, field: str, reason: str):
        message = f"State validation failed for '{field}': {reason}"
        super().__init__(message)
        self.field = field
        self.reason = reason


class StateTransitionError(StateError):
    """Raised when an action is not valid in the current phase."""

    def __init__(self, from_state: str, action: str, reason: str):
        message = f"Invalid action '{action}' in state '{from_state}': {reason}"
        super().__init__(message)
        self.from_state = from_state
        self.action = action
        self.reason = reason


# Prompt Errors

class PromptTemplateError(LessonEngineError):
    """Raised when prompt template rendering fails."""

    def __init__(self, template_name: str, missing_vars: list[str]):
        message = f"Prompt template '{template_name}' missing variables: {', '.join(missing_vars)}"
        super().__init__(message)
        self.template_name = template_name
        self.missing_vars = missing_vars
