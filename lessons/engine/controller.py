"""
Lesson Progression Controller

State machine over (phase, sub-phase, recall cycle, recall step). Every
operation takes a ProgressionState and returns a TransitionResult holding
a new state; the input state is never modified. On any error the caller
keeps the state it passed in, which is what makes every failure retriable.

Teaching sub-phases per node:
    content -> continue (block-end nodes only) -> question -> next node

Leaving `continue` or `question` on a block-end node whose recall cycle has
not run yet enters recall. When the cycle finishes, teaching resumes at
that node's `question` sub-phase.
"""

import json
import logging
from typing import Optional

from shared.utils.constants import NODES_PER_BLOCK
from lessons.exceptions import (
    ContentNotReadyError,
    LessonAlreadyCompleteError,
    ProgressionContractError,
    RecallQueueContractError,
    StateTransitionError,
    StateValidationError,
)
from lessons.engine.presentation import (
    complete_instruction,
    recall_instruction,
    teaching_instruction,
)
from lessons.engine.readiness import ContentReadinessGate
from lessons.engine.recall_queue import (
    cycle_fits,
    first_recall_step,
    generate_recall_queue,
    is_final_cycle,
    max_recall_step,
    task_for_step,
)
from lessons.models.mastery import create_mastery_record
from lessons.models.nodes import LessonContext, NodeSequence
from lessons.models.progression import (
    PresentationInstruction,
    ProgressionState,
    RecallTask,
    TransitionResult,
)
from lessons.services.evaluation_service import EvaluationService

logger = logging.getLogger("lessons.controller")


def is_block_end(node_index: int) -> bool:
    return (node_index + 1) % NODES_PER_BLOCK == 0


class LessonProgressionController:
    """Drives one lesson's progression."""

    def __init__(
        self,
        context: LessonContext,
        nodes: NodeSequence,
        gate: ContentReadinessGate,
        evaluator: EvaluationService,
    ):
        self.context = context
        self.nodes = nodes
        self.gate = gate
        self.evaluator = evaluator

    # ─── Entry ────────────────────────────────────────────────────────

    def start(self, state: ProgressionState) -> TransitionResult:
        """
        Present the current position of a new or restored lesson.

        The state is validated against the node sequence, the current recall
        task is rebuilt from the cycle number when in recall, and look-ahead
        generation is kicked off. The state itself is returned unchanged.

        Raises:
            StateValidationError: Restored state does not fit this lesson
        """
        self.validate(state)
        if not state.is_complete:
            self._look_ahead(state)
        return TransitionResult(state=state, instruction=self.instruction_for(state))

    resume = start

    def validate(self, state: ProgressionState) -> None:
        n = len(self.nodes)
        if not self.nodes.contains_index(state.current_node_index):
            raise StateValidationError(
                "current_node_index", f"{state.current_node_index} is outside 0..{n - 1}"
            )
        if state.resume_index is not None and not self.nodes.contains_index(state.resume_index):
            raise StateValidationError("resume_index", f"{state.resume_index} is outside 0..{n - 1}")

        if state.current_phase == "recall":
            if not cycle_fits(state.recall_cycle, n):
                raise StateValidationError(
                    "recall_cycle", f"cycle {state.recall_cycle} has no full block in a {n}-node lesson"
                )
            low = first_recall_step(state.recall_cycle)
            high = max_recall_step(is_final_cycle(state.recall_cycle, n))
            if not low <= state.recall_step <= high:
                raise StateValidationError(
                    "recall_step", f"{state.recall_step} is outside {low}..{high} for cycle {state.recall_cycle}"
                )
            task = self.current_task(state)
            if task.node_index != state.current_node_index:
                raise StateValidationError(
                    "current_node_index",
                    f"recall step {state.recall_step} targets node {task.node_index}, "
                    f"state points at {state.current_node_index}",
                )
        elif state.current_phase == "teaching":
            if state.resume_index is not None:
                raise StateValidationError("resume_index", "must be empty outside recall")
            if state.sub_phase == "continue" and not is_block_end(state.current_node_index):
                raise StateValidationError(
                    "sub_phase", f"node {state.current_node_index} is not the end of a block"
                )

    # ─── Teaching ─────────────────────────────────────────────────────

    def advance(self, state: ProgressionState) -> TransitionResult:
        """
        The learner pressed continue.

        Raises:
            LessonAlreadyCompleteError: Lesson is complete
            StateTransitionError: Called during recall
            ContentNotReadyError: Current or next node content is not generated yet
        """
        self._require_not_complete(state)
        if state.in_recall:
            raise StateTransitionError(
                state.describe(), "continue", "recall advances only through evaluated answers"
            )

        index = state.current_node_index
        if state.sub_phase == "content":
            self._require_ready(index)
            next_sub_phase = "continue" if is_block_end(index) else "question"
            new_state = self._next(state, sub_phase=next_sub_phase)
            return self._result(new_state)

        if self._recall_due(state):
            return self._result(self._enter_recall(state))
        return self._result(self._move_to_next_node(state))

    def submit_thinking_response(self, state: ProgressionState, response: str) -> TransitionResult:
        """
        Informational feedback on the thinking question. Never changes phase.

        Raises:
            StateTransitionError: Not in teaching `question`
            FeedbackGenerationError: Feedback service failed
        """
        self._require_not_complete(state)
        if state.current_phase != "teaching" or state.sub_phase != "question":
            raise StateTransitionError(
                state.describe(), "submit_thinking_response", "no thinking question is shown"
            )
        node = self.nodes[state.current_node_index]
        feedback = self.evaluator.thinking_feedback(self.context, node, response)
        return TransitionResult(state=state, instruction=self.instruction_for(state), feedback=feedback)

    def ask_question(self, state: ProgressionState, question: str) -> TransitionResult:
        """
        Answer a free-form question about the current teaching node.

        Raises:
            StateTransitionError: Not in teaching
            ContentNotReadyError: Node content is not generated yet
            FeedbackGenerationError: Answer service failed
        """
        self._require_not_complete(state)
        if state.current_phase != "teaching":
            raise StateTransitionError(state.describe(), "ask_question", "questions are answered during teaching")
        self._require_ready(state.current_node_index)
        node = self.nodes[state.current_node_index]
        answer = self.evaluator.answer_question(self.context, node, question)
        return TransitionResult(state=state, instruction=self.instruction_for(state), answer=answer)

    # ─── Recall ───────────────────────────────────────────────────────

    def submit_recall_answer(
        self,
        state: ProgressionState,
        response: str,
        term: Optional[str] = None,
    ) -> TransitionResult:
        """
        Evaluate one recall answer and move the cycle on.

        Full recall tasks advance after one evaluation. Partial tasks advance
        once every vocabulary term of the target node has been answered,
        whatever the scores were.

        Raises:
            StateTransitionError: Not in recall
            StateValidationError: Partial answer without a valid, unanswered term
            EvaluationError: Scoring failed (state unchanged, resubmit)
        """
        self._require_not_complete(state)
        if not state.in_recall:
            raise StateTransitionError(state.describe(), "submit_recall_answer", "no recall task is active")

        task = self.current_task(state)
        terms = self._partial_terms(task)
        if terms:
            if term is None:
                raise StateValidationError("term", "partial recall answers are given per term")
            if term not in terms:
                raise StateValidationError("term", f"'{term}' is not a vocabulary term of node {task.node_id}")
            if term in state.resolved_terms:
                raise StateValidationError("term", f"'{term}' was already answered")
        else:
            term = None

        evaluation = self.evaluator.evaluate_recall(self.context, self.nodes, task, response, term)
        record = create_mastery_record(
            node_id=task.node_id,
            recall_type=task.recall_type,
            learner_response=response,
            evaluation=evaluation,
            cycle_number=state.recall_cycle,
            hint_node_ids=task.hint_node_ids,
            term=term,
        )

        resolved = [*state.resolved_terms, term] if term else list(state.resolved_terms)
        if terms and set(terms) - set(resolved):
            new_state = self._next(state, resolved_terms=resolved)
        else:
            new_state = self._advance_recall_step(state)

        logger.info(json.dumps({
            "step": "RECALL_ANSWER",
            "lesson_id": self.context.lesson_id,
            "cycle": state.recall_cycle,
            "recall_step": state.recall_step,
            "recall_type": task.recall_type,
            "node_index": task.node_index,
            "term": term,
            "grade": evaluation.grade,
            "next": new_state.describe(),
        }))
        return TransitionResult(
            state=new_state,
            instruction=self.instruction_for(new_state),
            evaluation=evaluation,
            record=record,
        )

    def current_task(self, state: ProgressionState) -> RecallTask:
        """Rebuild the active recall task from the cycle number and step."""
        n = len(self.nodes)
        if not cycle_fits(state.recall_cycle, n):
            raise RecallQueueContractError(state.recall_cycle, n)
        queue = generate_recall_queue(state.recall_cycle, self.nodes, is_final_cycle(state.recall_cycle, n))
        task = task_for_step(queue, state.recall_cycle, state.recall_step)
        if task is None:
            raise ProgressionContractError(
                f"Recall step {state.recall_step} has no task in cycle {state.recall_cycle}"
            )
        return task

    # ─── Presentation ─────────────────────────────────────────────────

    def instruction_for(self, state: ProgressionState) -> PresentationInstruction:
        if state.is_complete:
            return complete_instruction(self.nodes)
        if state.in_recall:
            return recall_instruction(state, self.nodes, self.current_task(state))
        return teaching_instruction(state, self.nodes)

    # ─── Transitions ──────────────────────────────────────────────────

    def _recall_due(self, state: ProgressionState) -> bool:
        index = state.current_node_index
        block_number = (index + 1) // NODES_PER_BLOCK
        return is_block_end(index) and state.recall_cycle < block_number

    def _enter_recall(self, state: ProgressionState) -> ProgressionState:
        index = state.current_node_index
        n = len(self.nodes)
        cycle = (index + 1) // NODES_PER_BLOCK
        if not cycle_fits(cycle, n):
            raise RecallQueueContractError(cycle, n)

        final = is_final_cycle(cycle, n)
        queue = generate_recall_queue(cycle, self.nodes, final)
        step = first_recall_step(cycle)
        task = task_for_step(queue, cycle, step)
        if task is None:
            raise ProgressionContractError(f"Recall cycle {cycle} produced no task for step {step}")

        new_state = self._next(
            state,
            current_phase="recall",
            recall_cycle=cycle,
            recall_step=step,
            resume_index=index,
            current_node_index=task.node_index,
            resolved_terms=[],
        )
        logger.info(json.dumps({
            "step": "RECALL_CYCLE",
            "status": "started",
            "lesson_id": self.context.lesson_id,
            "cycle": cycle,
            "final": final,
            "tasks": len(queue),
            "resume_index": index,
        }))
        self._look_ahead(new_state)
        return new_state

    def _advance_recall_step(self, state: ProgressionState) -> ProgressionState:
        n = len(self.nodes)
        step = state.recall_step + 1
        if step > max_recall_step(is_final_cycle(state.recall_cycle, n)):
            return self._finish_recall(state)

        new_state = self._next(state, recall_step=step, resolved_terms=[])
        task = self.current_task(new_state)
        new_state = new_state.model_copy(update={"current_node_index": task.node_index})
        self._look_ahead(new_state)
        return new_state

    def _finish_recall(self, state: ProgressionState) -> ProgressionState:
        resume_index = state.resume_index
        if resume_index is None:
            # Restored without a snapshot: the block end is where recall began
            resume_index = state.recall_cycle * NODES_PER_BLOCK - 1

        new_state = self._next(
            state,
            current_phase="teaching",
            sub_phase="question",
            current_node_index=resume_index,
            resume_index=None,
            recall_step=0,
            completed_cycles=state.completed_cycles + 1,
            resolved_terms=[],
        )
        logger.info(json.dumps({
            "step": "RECALL_CYCLE",
            "status": "complete",
            "lesson_id": self.context.lesson_id,
            "cycle": state.recall_cycle,
            "resume_index": resume_index,
        }))
        self._look_ahead(new_state)
        return new_state

    def _move_to_next_node(self, state: ProgressionState) -> ProgressionState:
        index = state.current_node_index
        if index > self.nodes.last_index:
            raise ProgressionContractError(f"Node index {index} is past the last node {self.nodes.last_index}")

        if index == self.nodes.last_index:
            logger.info(json.dumps({
                "step": "LESSON",
                "status": "complete",
                "lesson_id": self.context.lesson_id,
                "completed_cycles": state.completed_cycles,
            }))
            return self._next(state, current_phase="complete", sub_phase="content")

        next_index = index + 1
        self.gate.ensure_window(next_index)
        self._require_ready(next_index)
        return self._next(state, current_node_index=next_index, sub_phase="content")

    # ─── Helpers ──────────────────────────────────────────────────────

    def _partial_terms(self, task: RecallTask) -> list[str]:
        if task.recall_type != "partial":
            return []
        return list(self.nodes[task.node_index].vocabulary_terms)

    def _require_ready(self, node_index: int) -> None:
        if self.gate.refresh(node_index):
            return
        self.gate.ensure_ready(node_index)
        if not self.gate.is_ready(node_index):
            raise ContentNotReadyError(node_index, self.gate.is_generating(node_index))

    def _require_not_complete(self, state: ProgressionState) -> None:
        if state.is_complete:
            raise LessonAlreadyCompleteError(self.context.lesson_id)

    def _look_ahead(self, state: ProgressionState) -> None:
        self.gate.ensure_window(state.current_node_index)
        if state.resume_index is not None:
            self.gate.ensure_ready(state.resume_index + 1)

    @staticmethod
    def _next(state: ProgressionState, **changes) -> ProgressionState:
        changes["revision"] = state.revision + 1
        return state.model_copy(update=changes)

    def _result(self, state: ProgressionState) -> TransitionResult:
        return TransitionResult(state=state, instruction=self.instruction_for(state))
