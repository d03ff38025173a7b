"""Unit tests for shared/utils/exceptions.py — application exceptions."""
import pytest
from fastapi import HTTPException

from shared.utils.exceptions import (
    LessonNotFoundException,
    NodeNotFoundException,
    RecallBoardException,
)


# ---------------------------------------------------------------------------
# RecallBoardException — base class
# ---------------------------------------------------------------------------

class TestRecallBoardException:

    def test_is_exception_subclass(self):
        assert issubclass(RecallBoardException, Exception)

    def test_can_be_raised_and_caught(self):
        with pytest.raises(RecallBoardException, match="test"):
            raise RecallBoardException("test")


# ---------------------------------------------------------------------------
# LessonNotFoundException
# ---------------------------------------------------------------------------

class TestLessonNotFoundException:

    def test_message_and_attribute(self):
        exc = LessonNotFoundException("lesson-9")
        assert exc.lesson_id == "lesson-9"
        assert str(exc) == "Lesson lesson-9 not found"
        assert isinstance(exc, RecallBoardException)

    def test_to_http_exception(self):
        http_exc = LessonNotFoundException("lesson-9").to_http_exception()
        assert isinstance(http_exc, HTTPException)
        assert http_exc.status_code == 404
        assert http_exc.detail == "Lesson lesson-9 not found"


# ---------------------------------------------------------------------------
# NodeNotFoundException
# ---------------------------------------------------------------------------

class TestNodeNotFoundException:

    def test_message_and_attributes(self):
        exc = NodeNotFoundException("lesson-9", "node-3")
        assert exc.lesson_id == "lesson-9"
        assert exc.node_id == "node-3"
        assert str(exc) == "Node node-3 not found in lesson lesson-9"

    def test_to_http_exception(self):
        http_exc = NodeNotFoundException("lesson-9", "node-3").to_http_exception()
        assert http_exc.status_code == 404
        assert http_exc.detail == "Node node-3 not found in lesson lesson-9"
