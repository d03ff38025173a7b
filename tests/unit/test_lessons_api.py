"""
Tests for lessons/api/lessons.py

The end-to-end classes run the real LessonService over the in-memory
database with a fake LLM and inline generation. The error-mapping class
mocks the service.
"""

import pytest
from unittest.mock import MagicMock
from fastapi import FastAPI
from fastapi.testclient import TestClient

from lessons.api.lessons import get_lesson_service, router
from lessons.exceptions import (
    ContentNotReadyError,
    EvaluationError,
    LessonAlreadyCompleteError,
    MalformedResponseError,
    StateValidationError,
)
from lessons.services.lesson_service import LessonService
from shared.models.schemas import CreateLessonRequest
from shared.services.llm_service import LLMServiceError
from shared.utils.exceptions import LessonNotFoundException


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _client_for(service) -> TestClient:
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_lesson_service] = lambda: service
    return TestClient(app)


@pytest.fixture
def make_client(db_session, inline_runner, writer, registry):
    def _make(llm):
        service = LessonService(db_session, llm_service=llm, runner=inline_runner, writer=writer, registry=registry)
        return _client_for(service)
    return _make


@pytest.fixture
def client(make_client, fake_llm):
    return make_client(fake_llm)


@pytest.fixture
def lesson_id(client):
    resp = client.post("/lessons", json={"topic": "The French Revolution", "subject": "History"})
    assert resp.status_code == 201
    return resp.json()["lesson_id"]


def _step(client, lesson_id, progression):
    """Take the one action the current presentation asks for."""
    instruction = progression["instruction"]
    if instruction["phase"] == "recall":
        payload = {"response": "what I remember"}
        if instruction["pending_terms"]:
            payload["term"] = instruction["pending_terms"][0]
        return client.post(f"/lessons/{lesson_id}/recall", json=payload)
    return client.post(f"/lessons/{lesson_id}/continue")


def _run_to_completion(client, lesson_id):
    body = client.get(f"/lessons/{lesson_id}/presentation").json()
    steps = 0
    while body["instruction"]["phase"] != "complete":
        resp = _step(client, lesson_id, body)
        assert resp.status_code == 200, resp.json()
        body = resp.json()
        steps += 1
        assert steps < 100
    return body


# ===========================================================================
# Lesson lifecycle
# ===========================================================================

class TestLessonLifecycle:

    def test_create_generates_first_two_nodes(self, client):
        resp = client.post("/lessons", json={"topic": "The French Revolution", "subject": "History"})

        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "STRUCTURE_COMPLETE"
        assert [n["status"] for n in data["nodes"]] == [
            "COMPLETE", "COMPLETE", "PENDING_CONTENT", "PENDING_CONTENT", "PENDING_CONTENT", "PENDING_CONTENT",
        ]
        assert data["nodes"][0]["vocabulary"][0] == {"term": "term-0a", "definition": "Generated term-0a"}
        assert data["progression"]["current_phase"] == "teaching"

    def test_create_rejects_bad_structure(self, make_client, make_fake_llm):
        client = make_client(make_fake_llm(node_count=3))
        resp = client.post("/lessons", json={"topic": "Tiny", "subject": "History"})

        assert resp.status_code == 503
        assert resp.json()["detail"]["retryable"] is True
        assert resp.json()["detail"]["type"] == "MalformedResponseError"

    def test_list_get_delete(self, client, lesson_id):
        listing = client.get("/lessons").json()
        assert [row["lesson_id"] for row in listing] == [lesson_id]

        assert client.get(f"/lessons/{lesson_id}").status_code == 200
        assert client.delete(f"/lessons/{lesson_id}").status_code == 204
        assert client.get(f"/lessons/{lesson_id}").status_code == 404
        assert client.delete(f"/lessons/{lesson_id}").status_code == 404

    def test_unknown_lesson(self, client):
        assert client.get("/lessons/missing/presentation").status_code == 404
        assert client.post("/lessons/missing/continue").status_code == 404


# ===========================================================================
# Progression over HTTP
# ===========================================================================

class TestProgression:

    def test_presentation_of_new_lesson(self, client, lesson_id):
        data = client.get(f"/lessons/{lesson_id}/presentation").json()

        assert data["progression"]["revision"] == 0
        assert data["instruction"]["phase"] == "teaching"
        assert data["instruction"]["sub_phase"] == "content"
        assert data["instruction"]["content_ready"] is True

    def test_continue_is_persisted(self, client, lesson_id):
        client.post(f"/lessons/{lesson_id}/continue")
        data = client.get(f"/lessons/{lesson_id}").json()

        assert data["progression"]["sub_phase"] == "question"
        assert data["progression"]["revision"] == 1

    def test_thinking_response_and_question(self, client, lesson_id):
        client.post(f"/lessons/{lesson_id}/continue")

        resp = client.post(f"/lessons/{lesson_id}/thinking-response", json={"response": "It leads to unrest"})
        assert resp.status_code == 200
        assert resp.json()["feedback"] == "Nice thinking."
        assert resp.json()["progression"]["revision"] == 1

        resp = client.post(f"/lessons/{lesson_id}/ask", json={"question": "Who was Louis XVI?"})
        assert resp.json()["answer"] == "Here is an answer."

    def test_partial_recall_over_several_requests(self, client, lesson_id):
        body = client.get(f"/lessons/{lesson_id}/presentation").json()
        while body["instruction"]["phase"] != "recall":
            body = client.post(f"/lessons/{lesson_id}/continue").json()

        assert body["instruction"]["recall_type"] == "partial"
        assert body["instruction"]["pending_terms"] == ["term-1a", "term-1b"]

        body = client.post(f"/lessons/{lesson_id}/recall", json={"response": "a", "term": "term-1a"}).json()
        assert body["evaluation"]["grade"] == "B+"
        assert body["instruction"]["pending_terms"] == ["term-1b"]

        body = client.post(f"/lessons/{lesson_id}/recall", json={"response": "b", "term": "term-1b"}).json()
        assert body["instruction"]["recall_type"] == "full-backward"
        assert body["instruction"]["node_index"] == 0

    def test_whole_lesson(self, client, lesson_id):
        final = _run_to_completion(client, lesson_id)

        assert final["progression"]["current_phase"] == "complete"
        assert final["progression"]["completed_cycles"] == 2
        assert client.get(f"/lessons/{lesson_id}").json()["status"] == "COMPLETE"

        metrics = client.get(f"/lessons/{lesson_id}/metrics").json()
        assert metrics["total_attempts"] == 10
        assert metrics["total_cycles"] == 2
        assert metrics["average_score"] == pytest.approx(0.8)
        assert [c["cycle_number"] for c in metrics["cycle_breakdown"]] == [1, 2]

        resp = client.post(f"/lessons/{lesson_id}/continue")
        assert resp.status_code == 500
        assert resp.json()["detail"]["retryable"] is False

    def test_recall_during_teaching_conflicts(self, client, lesson_id):
        resp = client.post(f"/lessons/{lesson_id}/recall", json={"response": "too early"})
        assert resp.status_code == 409
        assert resp.json()["detail"]["type"] == "StateTransitionError"

    def test_failed_evaluation_keeps_state(self, client, fake_llm, lesson_id):
        body = client.get(f"/lessons/{lesson_id}/presentation").json()
        while body["instruction"]["phase"] != "recall":
            body = client.post(f"/lessons/{lesson_id}/continue").json()
        revision = body["progression"]["revision"]

        working = fake_llm.call.side_effect
        fake_llm.call.side_effect = LLMServiceError("rate limited")
        resp = client.post(f"/lessons/{lesson_id}/recall", json={"response": "my answer", "term": "term-1a"})

        assert resp.status_code == 503
        assert resp.json()["detail"]["submitted"] == "my answer"
        assert client.get(f"/lessons/{lesson_id}").json()["progression"]["revision"] == revision

        fake_llm.call.side_effect = working
        resp = client.post(f"/lessons/{lesson_id}/recall", json={"response": "my answer", "term": "term-1a"})
        assert resp.status_code == 200


# ===========================================================================
# Generation and reporting
# ===========================================================================

class TestGenerationAndExport:

    def test_generate_pending_node(self, client, lesson_id):
        node_id = client.get(f"/lessons/{lesson_id}").json()["nodes"][4]["id"]
        resp = client.post(f"/lessons/{lesson_id}/nodes/{node_id}/generate")

        assert resp.status_code == 200
        assert resp.json() == {"node_id": node_id, "status": "COMPLETE", "dispatched": True}

        again = client.post(f"/lessons/{lesson_id}/nodes/{node_id}/generate").json()
        assert again["dispatched"] is False

    def test_generate_unknown_node(self, client, lesson_id):
        assert client.post(f"/lessons/{lesson_id}/nodes/nope/generate").status_code == 404

    def test_export(self, client, lesson_id):
        resp = client.get(f"/lessons/{lesson_id}/export")

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/markdown")
        assert 'filename="the-french-revolution.md"' in resp.headers["content-disposition"]
        assert resp.text.startswith("# The French Revolution")


# ===========================================================================
# Requests that overlap
# ===========================================================================

class TestOverlappingRequests:

    def test_node_stored_after_load_is_not_generated_again(
        self, db_session, fake_llm, deferred_runner, writer, registry,
    ):
        service = LessonService(
            db_session, llm_service=fake_llm, runner=deferred_runner, writer=writer, registry=registry,
        )
        lesson_id = service.create_lesson(
            CreateLessonRequest(topic="The French Revolution", subject="History")
        ).lesson_id
        assert len(deferred_runner.jobs) == 2

        # Loaded before the first request's jobs store anything
        late = service._load(lesson_id)
        assert not late.nodes[1].is_complete

        deferred_runner.run_all(db_session)
        calls = fake_llm.call.call_count

        assert late.controller.gate.ensure_ready(1) is False
        assert late.nodes[1].is_complete
        assert fake_llm.call.call_count == calls
        assert deferred_runner.jobs == []

        result = late.controller.advance(late.state.model_copy(update={"sub_phase": "question"}))
        assert result.state.current_node_index == 1
        assert fake_llm.call.call_count == calls


# ===========================================================================
# Error mapping
# ===========================================================================

class TestErrorMapping:

    @pytest.fixture
    def service(self):
        return MagicMock(spec=LessonService)

    def test_content_not_ready(self, service):
        service.continue_lesson.side_effect = ContentNotReadyError(3, generating=True)
        resp = _client_for(service).post("/lessons/l1/continue")

        assert resp.status_code == 503
        detail = resp.json()["detail"]
        assert detail["retryable"] is True
        assert detail["node_index"] == 3
        assert detail["generating"] is True

    def test_evaluation_error_returns_submission(self, service):
        service.submit_recall.side_effect = EvaluationError("n1", "timeout")
        resp = _client_for(service).post("/lessons/l1/recall", json={"response": "keep me"})

        assert resp.status_code == 503
        assert resp.json()["detail"]["submitted"] == "keep me"

    def test_malformed_response_is_retryable(self, service):
        service.submit_recall.side_effect = MalformedResponseError("evaluation", "not json")
        resp = _client_for(service).post("/lessons/l1/recall", json={"response": "x"})
        assert resp.status_code == 503

    def test_contract_violation_is_generic(self, service):
        service.continue_lesson.side_effect = LessonAlreadyCompleteError("l1")
        resp = _client_for(service).post("/lessons/l1/continue")

        assert resp.status_code == 500
        assert resp.json()["detail"] == {"message": "Lesson could not be updated", "retryable": False}

    def test_state_error_conflicts(self, service):
        service.get_presentation.side_effect = StateValidationError("recall_step", "out of range")
        assert _client_for(service).get("/lessons/l1/presentation").status_code == 409

    def test_not_found(self, service):
        service.get_metrics.side_effect = LessonNotFoundException("l1")
        assert _client_for(service).get("/lessons/l1/metrics").status_code == 404

    def test_unexpected_error(self, service):
        service.continue_lesson.side_effect = RuntimeError("boom")
        resp = _client_for(service).post("/lessons/l1/continue")

        assert resp.status_code == 500
        assert resp.json()["detail"]["type"] == "RuntimeError"

    def test_empty_answer_rejected(self, service):
        resp = _client_for(service).post("/lessons/l1/recall", json={"response": ""})
        assert resp.status_code == 422
        service.submit_recall.assert_not_called()
