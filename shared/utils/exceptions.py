"""Custom exception hierarchy for better error handling."""
from fastapi import HTTPException, status


class RecallBoardException(Exception):
    """Base exception for all application errors."""
    pass


class LessonNotFoundException(RecallBoardException):
    """Raised when a lesson is not found."""

    def __init__(self, lesson_id: str):
        self.lesson_id = lesson_id
        super().__init__(f"Lesson {lesson_id} not found")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Lesson {self.lesson_id} not found"
        )


class NodeNotFoundException(RecallBoardException):
    """Raised when a knowledge node is not found in a lesson."""

    def __init__(self, lesson_id: str, node_id: str):
        self.lesson_id = lesson_id
        self.node_id = node_id
        super().__init__(f"Node {node_id} not found in lesson {lesson_id}")

    def to_http_exception(self) -> HTTPException:
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Node {self.node_id} not found in lesson {self.lesson_id}"
        )
