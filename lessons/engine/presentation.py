"""
Presentation hints.

Derived, never stored: which nodes must be on screen for a recall type at
a given index, and how the view should frame them.
"""

from typing import Optional

from shared.utils.constants import RECALL_CONTEXT_MESSAGES
from lessons.models.nodes import NodeSequence
from lessons.models.progression import (
    CameraHint,
    PresentationInstruction,
    ProgressionState,
    RecallTask,
    RecallType,
    ZoomIntent,
)

_ZOOM_BY_RECALL_TYPE: dict[str, ZoomIntent] = {
    "full-comprehensive": "overview",
    "full-forward": "context-forward",
    "full-backward": "context-back",
    "partial": "focus",
}

_OFFSETS_BY_RECALL_TYPE: dict[str, tuple[int, ...]] = {
    "full-comprehensive": (-1, 0, 1),
    "full-forward": (0, 1),
    "full-backward": (-1, 0),
    "partial": (0,),
}


def camera_hint(recall_type: Optional[RecallType], node_index: int, node_count: int) -> CameraHint:
    """Visible nodes and zoom intent. recall_type None means teaching."""
    if recall_type is None:
        return CameraHint(visible_node_indices=[node_index], zoom="follow")

    visible = [
        node_index + offset
        for offset in _OFFSETS_BY_RECALL_TYPE[recall_type]
        if 0 <= node_index + offset < node_count
    ]
    return CameraHint(visible_node_indices=visible, zoom=_ZOOM_BY_RECALL_TYPE[recall_type])


def teaching_instruction(state: ProgressionState, nodes: NodeSequence) -> PresentationInstruction:
    index = state.current_node_index
    node = nodes[index]
    camera = camera_hint(None, index, len(nodes))
    return PresentationInstruction(
        phase="teaching",
        sub_phase=state.sub_phase,
        node_index=index,
        node_id=node.id,
        content_ready=node.is_complete,
        visible_node_indices=list(camera.visible_node_indices),
        camera=camera,
    )


def recall_instruction(
    state: ProgressionState,
    nodes: NodeSequence,
    task: RecallTask,
) -> PresentationInstruction:
    camera = camera_hint(task.recall_type, task.node_index, len(nodes))
    # Hint nodes are always shown even where the camera would not frame them
    visible = sorted(set(camera.visible_node_indices) | set(task.hint_node_indices) | {task.node_index})

    pending_terms: list[str] = []
    if task.recall_type == "partial":
        pending_terms = [
            term for term in nodes[task.node_index].vocabulary_terms
            if term not in state.resolved_terms
        ]

    return PresentationInstruction(
        phase="recall",
        node_index=task.node_index,
        node_id=task.node_id,
        content_ready=nodes[task.node_index].is_complete,
        recall_type=task.recall_type,
        recall_cycle=state.recall_cycle,
        recall_step=state.recall_step,
        hint_node_indices=list(task.hint_node_indices),
        visible_node_indices=visible,
        camera=camera,
        context_message=RECALL_CONTEXT_MESSAGES.get(state.recall_step),
        pending_terms=pending_terms,
        is_retention=task.is_retention,
        is_capstone=task.is_capstone,
    )


def complete_instruction(nodes: NodeSequence) -> PresentationInstruction:
    last = nodes[nodes.last_index]
    camera = CameraHint(visible_node_indices=list(range(len(nodes))), zoom="overview")
    return PresentationInstruction(
        phase="complete",
        node_index=last.position,
        node_id=last.id,
        visible_node_indices=list(camera.visible_node_indices),
        camera=camera,
    )
