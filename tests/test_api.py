import threading

import pytest
from fastapi.testclient import TestClient

from talent_search import main
from talent_search.backend_client import BackendError

from conftest import make_response


client = TestClient(main.app)


@pytest.fixture(autouse=True)
def _use_fake_session(monkeypatch, session):
    monkeypatch.setattr(main, "session", session)
    yield session


def test_search_then_refine_via_api(session, backend):
    backend.search_queue.extend([make_response("S1"), make_response("S1", n_results=1)])

    first = client.post("/api/search", json={"query": "Software engineers with React experience"})
    second = client.post("/api/search", json={"query": "only senior ones", "top_k": 3})

    assert first.status_code == 200
    assert first.json()["route"] == "search"
    assert second.json()["route"] == "refine"
    assert len(second.json()["message"]["results"]) == 1
    assert backend.calls[1][1].top_k == 3

    state = client.get("/api/session").json()
    assert state["session_id"] == "S1"
    assert state["established"] is True
    assert state["is_searching"] is False
    assert [m["type"] for m in state["messages"]] == ["query", "response", "query", "response"]


def test_backend_failure_is_reported_in_outcome(backend):
    backend.search_queue.append(BackendError("API error: 500", status_code=500))

    rsp = client.post("/api/search", json={"query": "React engineers"})

    assert rsp.status_code == 200
    assert rsp.json()["error"] == "API error: 500"
    assert rsp.json()["message"]["content"] == "Error: API error: 500"


def test_blank_query_is_rejected(backend):
    rsp = client.post("/api/search", json={"query": "   "})

    assert rsp.status_code == 422
    assert backend.calls == []


def test_overlapping_search_returns_conflict(session, backend):
    entered = threading.Event()
    release = threading.Event()

    def slow_search(request):
        entered.set()
        release.wait(5)
        return make_response("S1")

    backend.search = slow_search
    worker = threading.Thread(target=session.submit, args=("React engineers",))
    worker.start()
    try:
        assert entered.wait(5)
        rsp = client.post("/api/search", json={"query": "only senior ones"})
    finally:
        release.set()
        worker.join(5)

    assert rsp.status_code == 409
    assert rsp.json()["detail"]["error_code"] == "submission_in_progress"


def test_clear_conversation_keeps_session(session, backend):
    backend.search_queue.append(make_response("S1"))
    client.post("/api/search", json={"query": "React engineers"})

    rsp = client.delete("/api/conversation")

    assert rsp.status_code == 200
    assert rsp.json() == {"session_id": "S1", "messages": 0}
    assert session.conversation.is_empty()
    assert session.identity.is_established() is True


def test_feedback_endpoint(backend, clock):
    backend.search_queue.append(make_response("S1"))
    client.post("/api/search", json={"query": "React engineers"})
    clock.advance(7)

    rsp = client.post(
        "/api/feedback",
        json={"profile_id": "p1", "feedback_id": "fb-p1", "feedback_type": "like"},
    )

    assert rsp.status_code == 200
    assert rsp.json() == {"message": "Feedback recorded", "status": "success"}
    assert backend.calls[-1][1].time_to_feedback == 7


def test_feedback_backend_failure_maps_to_502(backend):
    backend.feedback_result = BackendError("API error: 503", status_code=503)

    rsp = client.post(
        "/api/feedback",
        json={"profile_id": "p1", "feedback_id": "fb-p1", "feedback_type": "dislike"},
    )

    assert rsp.status_code == 502
    assert rsp.json()["detail"]["message"] == "API error: 503"


def test_feedback_rejects_unknown_judgment(backend):
    rsp = client.post(
        "/api/feedback",
        json={"profile_id": "p1", "feedback_id": "fb-p1", "feedback_type": "love"},
    )

    assert rsp.status_code == 422
    assert backend.calls == []


def test_upload_starts_polling_and_reports_progress(session, backend):
    backend.status_queue.extend(["PENDING", "SUCCESS"])

    rsp = client.post(
        "/api/uploads",
        files={"resume_file": ("cv.pdf", b"%PDF-1.4", "application/pdf")},
    )

    assert rsp.status_code == 200
    body = rsp.json()
    assert body["task_id"] == "T1"
    assert body["poll"]["state"] == "created"

    session.poller.get("T1").run()
    snap = client.get("/api/uploads/T1").json()
    assert snap["state"] == "success"
    assert snap["transitions"] == ["created", "polling", "success"]


def test_upload_failure_maps_to_502(backend):
    backend.upload_result = BackendError("Upload failed: 415", status_code=415)

    rsp = client.post("/api/uploads", files={"resume_file": ("cv.pdf", b"%PDF-1.4", "application/pdf")})

    assert rsp.status_code == 502
    assert rsp.json()["detail"]["message"] == "Upload failed: 415"


def test_empty_upload_is_rejected(backend):
    rsp = client.post("/api/uploads", files={"resume_file": ("cv.pdf", b"", "application/pdf")})

    assert rsp.status_code == 400
    assert backend.calls == []


def test_unsupported_upload_type_is_rejected_before_backend(backend):
    rsp = client.post("/api/uploads", files={"resume_file": ("cv.exe", b"MZ", "application/x-msdownload")})

    assert rsp.status_code == 415
    assert ".pdf" in rsp.json()["detail"]
    assert backend.calls == []


def test_stop_upload_and_unknown_task(session):
    client.post("/api/uploads", files={"resume_file": ("cv.pdf", b"data", "application/pdf")})

    stopped = client.post("/api/uploads/T1/stop")

    assert stopped.json()["state"] == "stopped"
    assert client.get("/api/uploads/nope").status_code == 404
    assert client.post("/api/uploads/nope/stop").status_code == 404
    assert client.get("/api/uploads/nope/events").status_code == 404


def test_events_stream_ends_at_terminal_state(session, backend):
    backend.status_queue.append("SUCCESS")
    client.post("/api/uploads", files={"resume_file": ("cv.pdf", b"data", "application/pdf")})
    session.poller.get("T1").run()

    rsp = client.get("/api/uploads/T1/events")

    assert rsp.status_code == 200
    assert rsp.headers["content-type"].startswith("text/event-stream")
    assert "event: task_status" in rsp.text
    assert '"state": "success"' in rsp.text


def test_profile_not_found(backend):
    rsp = client.get("/api/profiles/p404")

    assert rsp.status_code == 404


def test_health_reports_unreachable_backend(backend, monkeypatch):
    def check_health():
        raise BackendError("Could not connect to backend: refused")

    monkeypatch.setattr(backend, "check_health", check_health, raising=False)

    rsp = client.get("/api/health")

    assert rsp.json() == {"status": "unreachable", "checks": {"backend": False}}
