"""Lesson API endpoints."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session as DBSession

from database import get_db
from shared.models.schemas import (
    AskQuestionRequest,
    CreateLessonRequest,
    GenerateNodeResponse,
    LessonMetricsResponse,
    LessonResponse,
    LessonSummary,
    ProgressionResponse,
    RecallAnswerRequest,
    ThinkingResponseRequest,
)
from shared.utils.exceptions import RecallBoardException
from lessons.exceptions import (
    ContentNotReadyError,
    ContractViolationError,
    LessonEngineError,
    NodeSequenceError,
    StateError,
)
from lessons.services.lesson_service import LessonService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/lessons", tags=["lessons"])


def get_lesson_service(db: DBSession = Depends(get_db)) -> LessonService:
    return LessonService(db)


def engine_error_to_http(error: LessonEngineError, submitted: Optional[str] = None) -> HTTPException:
    """
    Map engine errors onto HTTP responses.

    Retryable failures carry the learner's submitted text back so the client
    can keep it in the input box.
    """
    if error.retryable:
        detail = {"message": error.message, "retryable": True, "type": type(error).__name__}
        if isinstance(error, ContentNotReadyError):
            detail["node_index"] = error.node_index
            detail["generating"] = error.generating
        if submitted is not None:
            detail["submitted"] = submitted
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)

    if isinstance(error, ContractViolationError):
        logger.error(f"Contract violation: {error.message}", exc_info=error)
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"message": "Lesson could not be updated", "retryable": False},
        )

    if isinstance(error, (StateError, NodeSequenceError)):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"message": error.message, "retryable": False, "type": type(error).__name__},
        )

    logger.error(f"Lesson engine error: {error.message}", exc_info=error)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"message": error.message, "retryable": False},
    )


def _unexpected(action: str, error: Exception) -> HTTPException:
    logger.error(f"Error {action}: {error}", exc_info=True)
    return HTTPException(
        status_code=500,
        detail={"message": f"Error {action}: {str(error)}", "type": type(error).__name__},
    )


@router.post("", response_model=LessonResponse, status_code=status.HTTP_201_CREATED)
def create_lesson(request: CreateLessonRequest, service: LessonService = Depends(get_lesson_service)):
    """Generate a lesson structure and start generating the first nodes."""
    try:
        return service.create_lesson(request)
    except RecallBoardException as e:
        raise e.to_http_exception()
    except LessonEngineError as e:
        raise engine_error_to_http(e)
    except Exception as e:
        raise _unexpected("creating lesson", e)


@router.get("", response_model=list[LessonSummary])
def list_lessons(service: LessonService = Depends(get_lesson_service)):
    return service.list_lessons()


@router.get("/{lesson_id}", response_model=LessonResponse)
def get_lesson(lesson_id: str, service: LessonService = Depends(get_lesson_service)):
    try:
        return service.get_lesson(lesson_id)
    except RecallBoardException as e:
        raise e.to_http_exception()
    except LessonEngineError as e:
        raise engine_error_to_http(e)


@router.delete("/{lesson_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_lesson(lesson_id: str, service: LessonService = Depends(get_lesson_service)):
    try:
        service.delete_lesson(lesson_id)
    except RecallBoardException as e:
        raise e.to_http_exception()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{lesson_id}/presentation", response_model=ProgressionResponse)
def get_presentation(lesson_id: str, service: LessonService = Depends(get_lesson_service)):
    """Current instruction for a new or resumed lesson. Triggers look-ahead generation."""
    try:
        return service.get_presentation(lesson_id)
    except RecallBoardException as e:
        raise e.to_http_exception()
    except LessonEngineError as e:
        raise engine_error_to_http(e)


@router.post("/{lesson_id}/continue", response_model=ProgressionResponse)
def continue_lesson(lesson_id: str, service: LessonService = Depends(get_lesson_service)):
    try:
        return service.continue_lesson(lesson_id)
    except RecallBoardException as e:
        raise e.to_http_exception()
    except LessonEngineError as e:
        raise engine_error_to_http(e)
    except Exception as e:
        raise _unexpected("advancing lesson", e)


@router.post("/{lesson_id}/recall", response_model=ProgressionResponse)
def submit_recall(
    lesson_id: str,
    request: RecallAnswerRequest,
    service: LessonService = Depends(get_lesson_service),
):
    """Submit a recall answer. Partial recall answers one blanked term at a time."""
    try:
        return service.submit_recall(lesson_id, request)
    except RecallBoardException as e:
        raise e.to_http_exception()
    except LessonEngineError as e:
        raise engine_error_to_http(e, submitted=request.response)
    except Exception as e:
        raise _unexpected("evaluating recall", e)


@router.post("/{lesson_id}/thinking-response", response_model=ProgressionResponse)
def submit_thinking_response(
    lesson_id: str,
    request: ThinkingResponseRequest,
    service: LessonService = Depends(get_lesson_service),
):
    try:
        return service.submit_thinking_response(lesson_id, request)
    except RecallBoardException as e:
        raise e.to_http_exception()
    except LessonEngineError as e:
        raise engine_error_to_http(e, submitted=request.response)
    except Exception as e:
        raise _unexpected("generating feedback", e)


@router.post("/{lesson_id}/ask", response_model=ProgressionResponse)
def ask_question(
    lesson_id: str,
    request: AskQuestionRequest,
    service: LessonService = Depends(get_lesson_service),
):
    try:
        return service.ask_question(lesson_id, request)
    except RecallBoardException as e:
        raise e.to_http_exception()
    except LessonEngineError as e:
        raise engine_error_to_http(e, submitted=request.question)
    except Exception as e:
        raise _unexpected("answering question", e)


@router.post("/{lesson_id}/nodes/{node_id}/generate", response_model=GenerateNodeResponse)
def generate_node(lesson_id: str, node_id: str, service: LessonService = Depends(get_lesson_service)):
    """Request generation of a node's content. No-op if complete or already generating."""
    try:
        return service.generate_node(lesson_id, node_id)
    except RecallBoardException as e:
        raise e.to_http_exception()
    except LessonEngineError as e:
        raise engine_error_to_http(e)


@router.get("/{lesson_id}/metrics", response_model=LessonMetricsResponse)
def get_metrics(lesson_id: str, service: LessonService = Depends(get_lesson_service)):
    try:
        return service.get_metrics(lesson_id)
    except RecallBoardException as e:
        raise e.to_http_exception()


@router.get("/{lesson_id}/export")
def export_lesson(lesson_id: str, service: LessonService = Depends(get_lesson_service)):
    """Markdown export of the lesson content and performance."""
    try:
        filename, markdown = service.export_markdown(lesson_id)
    except RecallBoardException as e:
        raise e.to_http_exception()
    return Response(
        content=markdown,
        media_type="text/markdown",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
