"""Lesson business logic: load a lesson, run one controller transition, persist."""

import json
import logging
import re
from typing import Optional

from sqlalchemy.orm import Session as DBSession

from config import get_settings
from shared.models.entities import Lesson
from shared.models.schemas import (
    AskQuestionRequest,
    CreateLessonRequest,
    GenerateNodeResponse,
    LessonMetricsResponse,
    LessonResponse,
    NodeResponse,
    ProgressionResponse,
    RecallAnswerRequest,
    ThinkingResponseRequest,
    VocabularyItem,
)
from shared.repositories import LessonRepository, MasteryRepository, NodeRepository
from shared.services.llm_service import LLMService, get_llm_service
from shared.utils.exceptions import LessonNotFoundException, NodeNotFoundException

from lessons.engine.controller import LessonProgressionController
from lessons.engine.progress_writer import ProgressWriter, get_progress_writer
from lessons.engine.readiness import ContentReadinessGate, InFlightRegistry, JobRunner
from lessons.models.nodes import CompleteContent, KnowledgeNode, LessonContext, NodeSequence
from lessons.models.progression import ProgressionState, TransitionResult
from lessons.services.content_service import ContentService
from lessons.services.evaluation_service import EvaluationService
from lessons.services.export_service import export_lesson_markdown
from lessons.services.metrics_service import calculate_lesson_metrics
from lessons.services.structure_service import StructureService

logger = logging.getLogger("lessons.lesson_service")


class LoadedLesson:
    """A lesson row with its domain view and a controller wired to it."""

    def __init__(self, row: Lesson, context: LessonContext, nodes: NodeSequence,
                 state: ProgressionState, controller: LessonProgressionController):
        self.row = row
        self.context = context
        self.nodes = nodes
        self.state = state
        self.controller = controller


class LessonService:
    """Orchestrates lesson creation and learner actions."""

    def __init__(
        self,
        db: DBSession,
        llm_service: Optional[LLMService] = None,
        runner: Optional[JobRunner] = None,
        writer: Optional[ProgressWriter] = None,
        registry: Optional[InFlightRegistry] = None,
    ):
        self.db = db
        self.lesson_repo = LessonRepository(db)
        self.mastery_repo = MasteryRepository(db)
        self.llm_service = llm_service or get_llm_service()
        self.content_service = ContentService(self.llm_service)
        self.structure_service = StructureService(self.llm_service)
        self.evaluation_service = EvaluationService(self.llm_service)
        self.runner = runner
        self.writer = writer or get_progress_writer()
        self.registry = registry
        self.lookahead = get_settings().lookahead_enabled

    # ─── Lessons ──────────────────────────────────────────────────────

    def create_lesson(self, request: CreateLessonRequest) -> LessonResponse:
        """Generate the outline, store the lesson and start generating its first nodes."""
        outlines = self.structure_service.generate_structure(
            request.topic, request.subject, request.difficulty_level
        )
        row = self.lesson_repo.create(
            topic=request.topic,
            subject=request.subject,
            difficulty_level=request.difficulty_level,
            outlines=[outline.model_dump() for outline in outlines],
        )
        logger.info(f"Created lesson {row.id} '{row.topic}' with {row.node_count} nodes")

        loaded = self._wire(row)
        loaded.controller.start(loaded.state)
        return self._lesson_response(loaded)

    def list_lessons(self) -> list[dict]:
        return self.lesson_repo.list_all()

    def get_lesson(self, lesson_id: str) -> LessonResponse:
        return self._lesson_response(self._load(lesson_id))

    def delete_lesson(self, lesson_id: str) -> None:
        self.writer.flush(lesson_id)
        if not self.lesson_repo.delete(lesson_id):
            raise LessonNotFoundException(lesson_id)
        logger.info(f"Deleted lesson {lesson_id}")

    # ─── Learner actions ──────────────────────────────────────────────

    def get_presentation(self, lesson_id: str) -> ProgressionResponse:
        loaded = self._load(lesson_id)
        return self._respond(loaded, loaded.controller.start(loaded.state))

    def continue_lesson(self, lesson_id: str) -> ProgressionResponse:
        loaded = self._load(lesson_id)
        return self._respond(loaded, loaded.controller.advance(loaded.state))

    def submit_recall(self, lesson_id: str, request: RecallAnswerRequest) -> ProgressionResponse:
        loaded = self._load(lesson_id)
        result = loaded.controller.submit_recall_answer(loaded.state, request.response, request.term)
        return self._respond(loaded, result)

    def submit_thinking_response(self, lesson_id: str, request: ThinkingResponseRequest) -> ProgressionResponse:
        loaded = self._load(lesson_id)
        result = loaded.controller.submit_thinking_response(loaded.state, request.response)
        return self._respond(loaded, result)

    def ask_question(self, lesson_id: str, request: AskQuestionRequest) -> ProgressionResponse:
        loaded = self._load(lesson_id)
        result = loaded.controller.ask_question(loaded.state, request.question)
        return self._respond(loaded, result)

    def generate_node(self, lesson_id: str, node_id: str) -> GenerateNodeResponse:
        """Ask for a node's content, e.g. after a failed generation. Idempotent."""
        loaded = self._load(lesson_id)
        try:
            index = loaded.nodes.index_of(node_id)
        except KeyError:
            raise NodeNotFoundException(lesson_id, node_id)

        dispatched = loaded.controller.gate.ensure_ready(index)
        node = loaded.nodes[index]
        return GenerateNodeResponse(node_id=node_id, status=node.status, dispatched=dispatched)

    # ─── Reporting ────────────────────────────────────────────────────

    def get_metrics(self, lesson_id: str) -> LessonMetricsResponse:
        loaded = self._load(lesson_id)
        records = self.mastery_repo.list_for_lesson(lesson_id)
        return calculate_lesson_metrics(lesson_id, loaded.nodes, records, loaded.row.completed_cycles)

    def export_markdown(self, lesson_id: str) -> tuple[str, str]:
        """Returns (filename, markdown)."""
        loaded = self._load(lesson_id)
        records = self.mastery_repo.list_for_lesson(lesson_id)
        markdown = export_lesson_markdown(
            topic=loaded.row.topic,
            difficulty_level=loaded.row.difficulty_level,
            nodes=loaded.nodes,
            records=records,
            completed_cycles=loaded.row.completed_cycles,
            completed_at=loaded.row.completed_at,
        )
        slug = re.sub(r"[^a-z0-9]+", "-", loaded.row.topic.lower()).strip("-") or "lesson"
        return f"{slug}.md", markdown

    # ─── Helpers ──────────────────────────────────────────────────────

    def _load(self, lesson_id: str) -> LoadedLesson:
        # A pending debounced save must land before we read progress back
        self.writer.flush(lesson_id)
        row = self.lesson_repo.get_by_id(lesson_id)
        if not row:
            raise LessonNotFoundException(lesson_id)
        self.db.refresh(row)
        return self._wire(row)

    def _wire(self, row: Lesson) -> LoadedLesson:
        context = LessonContext(
            lesson_id=row.id,
            topic=row.topic,
            subject=row.subject,
            difficulty_level=row.difficulty_level,
        )
        nodes = self.lesson_repo.load_nodes(row)
        state = self.lesson_repo.load_state(row)

        def generate(node: KnowledgeNode) -> CompleteContent:
            return self.content_service.generate_node_content(context, nodes, node)

        def store(session: DBSession, node: KnowledgeNode, content: CompleteContent) -> bool:
            return NodeRepository(session).save_content(node.id, content)

        def stored(session: DBSession, node: KnowledgeNode) -> Optional[CompleteContent]:
            return NodeRepository(session).load_content(node.id)

        gate = ContentReadinessGate(
            nodes,
            generator=generate,
            sink=store,
            runner=self.runner,
            registry=self.registry,
            lookahead=self.lookahead,
            reader=stored,
            session=self.db,
        )
        controller = LessonProgressionController(context, nodes, gate, self.evaluation_service)
        return LoadedLesson(row, context, nodes, state, controller)

    def _respond(self, loaded: LoadedLesson, result: TransitionResult) -> ProgressionResponse:
        if result.record is not None:
            self.mastery_repo.append(loaded.context.lesson_id, result.record)
        if result.state.revision != loaded.state.revision:
            self.writer.schedule(loaded.context.lesson_id, result.state)
            logger.info(json.dumps({
                "step": "PROGRESSION",
                "lesson_id": loaded.context.lesson_id,
                "from": loaded.state.describe(),
                "to": result.state.describe(),
                "revision": result.state.revision,
            }))

        return ProgressionResponse(
            lesson_id=loaded.context.lesson_id,
            progression=result.state,
            instruction=result.instruction,
            evaluation=result.evaluation,
            feedback=result.feedback,
            answer=result.answer,
        )

    def _lesson_response(self, loaded: LoadedLesson) -> LessonResponse:
        return LessonResponse(
            lesson_id=loaded.row.id,
            topic=loaded.row.topic,
            subject=loaded.row.subject,
            difficulty_level=loaded.row.difficulty_level,
            status=loaded.row.status,
            nodes=[node_response(node) for node in loaded.nodes],
            progression=loaded.state,
        )


def node_response(node: KnowledgeNode) -> NodeResponse:
    response = NodeResponse(
        id=node.id,
        position=node.position,
        title=node.title,
        status=node.status,
        vocabulary_terms=list(node.vocabulary_terms),
        metadata_hint=node.metadata_hint,
    )
    if isinstance(node.content, CompleteContent):
        content = node.content
        response.summary = content.summary
        response.vocabulary = [VocabularyItem(term=v.term, definition=v.definition) for v in content.vocabulary]
        response.thinking_question = content.thinking_question
        response.metadata = dict(content.metadata)
        response.generated_at = content.generated_at
    return response
