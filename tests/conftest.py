"""Pytest configuration and shared fixtures."""
import json
import os
import re
from contextlib import contextmanager

os.environ.setdefault("OPENAI_API_KEY", "test-key-fake")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

# Import all models to ensure they are registered with Base.metadata
from shared.models.entities import *
from shared.models.entities import Base
from shared.services.llm_service import LLMService
from lessons.engine.progress_writer import ProgressWriter
from lessons.engine.readiness import InFlightRegistry
from lessons.models.nodes import (
    CompleteContent,
    KnowledgeNode,
    LessonContext,
    NodeSequence,
    VocabularyEntry,
)
from main import app


@pytest.fixture(scope="function")
def db_session():
    """
    Create a test database session with in-memory SQLite.

    StaticPool keeps a single connection so the TestClient's worker thread
    sees the same database as the test.
    """
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()

    yield session

    session.close()
    Base.metadata.drop_all(engine)


@pytest.fixture
def client():
    """Create a test client for the FastAPI app."""
    return TestClient(app)


# ---------------------------------------------------------------------------
# Nodes
# ---------------------------------------------------------------------------

def _content_for(index: int, terms: list[str]) -> CompleteContent:
    return CompleteContent(
        summary=f"Summary of concept {index}.",
        vocabulary=[VocabularyEntry(term=t, definition=f"Definition of {t}") for t in terms],
        thinking_question=f"What does concept {index} lead to?",
        metadata={"badge": f"B{index}"},
    )


@pytest.fixture
def make_nodes():
    """
    Factory for node sequences.

    make_nodes(6) -> six complete nodes with two terms each.
    make_nodes(6, pending={1, 2}) leaves those indices PENDING_CONTENT.
    make_nodes(6, terms={1: []}) overrides the terms of a node.
    """
    def _make(count: int = 6, pending=(), terms=None) -> NodeSequence:
        terms = terms or {}
        nodes = []
        for i in range(count):
            node_terms = terms.get(i, [f"term-{i}a", f"term-{i}b"])
            node = KnowledgeNode(
                id=f"node-{i}",
                position=i,
                title=f"Concept {i}",
                vocabulary_terms=node_terms,
                metadata_hint=f"hint {i}",
            )
            if i not in pending:
                node.complete(_content_for(i, node_terms))
            nodes.append(node)
        return NodeSequence(nodes)

    return _make


@pytest.fixture
def content_for():
    return _content_for


@pytest.fixture
def lesson_context():
    return LessonContext(
        lesson_id="lesson-1",
        topic="The French Revolution",
        subject="History",
        difficulty_level="beginner",
    )


# ---------------------------------------------------------------------------
# Generation plumbing
# ---------------------------------------------------------------------------

@pytest.fixture
def registry():
    """A private in-flight registry so tests never share state."""
    return InFlightRegistry()


@pytest.fixture
def inline_runner(db_session):
    """Runs generation jobs synchronously on the test session."""
    def _run(job, job_name):
        job(db_session)
    return _run


class DeferredRunner:
    """Captures generation jobs so a test can run them later, or never."""

    def __init__(self):
        self.jobs = []

    def __call__(self, job, job_name):
        self.jobs.append((job_name, job))

    @property
    def names(self):
        return [name for name, _ in self.jobs]

    def run_all(self, session=None):
        jobs, self.jobs = self.jobs, []
        for _, job in jobs:
            job(session)


@pytest.fixture
def deferred_runner():
    return DeferredRunner()


@pytest.fixture
def session_scope(db_session):
    """A session_scope() stand-in that hands out the test session."""
    @contextmanager
    def _scope():
        yield db_session
    return _scope


@pytest.fixture
def writer(session_scope):
    """Progress writer that saves inline on the test session."""
    return ProgressWriter(debounce_seconds=0, session_scope=session_scope)


# ---------------------------------------------------------------------------
# LLM
# ---------------------------------------------------------------------------

_TERMS_LINE = re.compile(r"Vocabulary Terms to Define: (.*)")


def _fake_llm_call(node_count: int, mastery_score: float, grade: str):
    def _call(prompt, json_mode=True, system_prompt=None, temperature=0.7, max_tokens=2048):
        if "connected concept nodes" in prompt:
            payload = {"nodes": [
                {"title": f"Concept {i}", "vocabularyTerms": [f"term-{i}a", f"term-{i}b"], "metadataHint": f"{1780 + i}"}
                for i in range(node_count)
            ]}
        elif "Vocabulary Terms to Define:" in prompt:
            line = _TERMS_LINE.search(prompt).group(1).strip()
            terms = [] if line == "None" else [t.strip() for t in line.split(",")]
            payload = {
                "summary": "A generated summary.",
                "vocabulary": [{"term": t, "definition": f"Generated {t}"} for t in terms],
                "thinkingQuestion": "What happens next?",
                "metadata": {"badge": "1789"},
            }
        elif "Student Answer:" in prompt or "Student Recall:" in prompt:
            payload = {"masteryScore": mastery_score, "grade": grade, "feedback": "Good recall."}
        elif "Student Question:" in prompt:
            return {"output_text": "Here is an answer.", "parsed": None}
        else:
            return {"output_text": "Nice thinking.", "parsed": None}
        return {"output_text": json.dumps(payload), "parsed": payload}
    return _call


@pytest.fixture
def make_fake_llm(mocker):
    """Factory for an LLMService mock that answers every prompt type the lesson engine sends."""
    def _make(node_count: int = 6, mastery_score: float = 0.8, grade: str = "B+"):
        llm = mocker.MagicMock(spec=LLMService)
        llm.call.side_effect = _fake_llm_call(node_count, mastery_score, grade)
        return llm
    return _make


@pytest.fixture
def fake_llm(make_fake_llm):
    return make_fake_llm()
