"""
Recall Queue Generator

Pure functions that turn a cycle number and a node sequence into the
ordered recall tasks for that cycle. Cycle k covers the block of nodes
3(k-1), 3(k-1)+1, 3(k-1)+2 (start, middle, end).

Step space of a cycle:
    0 retention   full-comprehensive on the previous block's middle (cycle > 1)
    1 cloze       partial on middle
    2 backward    full-backward on start, hint middle
    3 forward     full-forward on end, hint middle
    4 capstone    full-comprehensive on middle, hints start/end (final cycle)
"""

import logging
from typing import Optional

from shared.utils.constants import (
    NODES_PER_BLOCK,
    RECALL_STEP_CAPSTONE,
    RECALL_STEP_CLOZE,
    RECALL_STEP_FORWARD,
    RECALL_STEP_RETENTION,
)
from lessons.models.nodes import NodeSequence
from lessons.models.progression import RecallTask, RecallType

logger = logging.getLogger("lessons.recall_queue")


def block_bounds(cycle_number: int) -> tuple[int, int, int]:
    """Return (start, middle, end) indices of the block a cycle covers."""
    start = (cycle_number - 1) * NODES_PER_BLOCK
    return start, start + 1, start + 2


def is_final_cycle(cycle_number: int, node_count: int) -> bool:
    return cycle_number * NODES_PER_BLOCK >= node_count


def cycle_fits(cycle_number: int, node_count: int) -> bool:
    """Whether the block for this cycle exists in a lesson of node_count nodes."""
    if cycle_number < 1:
        return False
    _, _, end = block_bounds(cycle_number)
    return end < node_count


def max_recall_step(final_cycle: bool) -> int:
    return RECALL_STEP_CAPSTONE if final_cycle else RECALL_STEP_FORWARD


def first_recall_step(cycle_number: int) -> int:
    # Cycle 1 has no previous block to retest
    return RECALL_STEP_RETENTION if cycle_number > 1 else RECALL_STEP_CLOZE


def _task(
    nodes: NodeSequence,
    index: int,
    recall_type: RecallType,
    hints: list[int],
    is_retention: bool = False,
    is_capstone: bool = False,
) -> RecallTask:
    return RecallTask(
        node_index=index,
        node_id=nodes[index].id,
        recall_type=recall_type,
        hint_node_indices=hints,
        hint_node_ids=[nodes[h].id for h in hints],
        is_retention=is_retention,
        is_capstone=is_capstone,
    )


def generate_recall_queue(
    cycle_number: int,
    nodes: NodeSequence,
    final_cycle: bool,
) -> list[RecallTask]:
    """
    Build the ordered recall tasks for one cycle.

    Returns an empty list when the cycle's block does not fit in the
    sequence. Callers must check cycle_fits() first; an empty queue here
    means the caller skipped that check.
    """
    if not cycle_fits(cycle_number, len(nodes)):
        logger.warning(
            f"Recall queue requested for cycle {cycle_number} but lesson has {len(nodes)} nodes"
        )
        return []

    start, middle, end = block_bounds(cycle_number)
    queue: list[RecallTask] = []

    if cycle_number > 1:
        prev_start, prev_middle, prev_end = block_bounds(cycle_number - 1)
        queue.append(_task(
            nodes, prev_middle, "full-comprehensive", [prev_start, prev_end], is_retention=True,
        ))

    queue.append(_task(nodes, middle, "partial", []))
    queue.append(_task(nodes, start, "full-backward", [middle]))
    queue.append(_task(nodes, end, "full-forward", [middle]))

    if final_cycle:
        queue.append(_task(
            nodes, middle, "full-comprehensive", [start, end], is_capstone=True,
        ))

    return queue


def task_for_step(queue: list[RecallTask], cycle_number: int, step: int) -> Optional[RecallTask]:
    """Map a recall step onto the cycle's queue. None if the step has no task."""
    position = step - first_recall_step(cycle_number)
    if position < 0 or position >= len(queue):
        return None
    return queue[position]
