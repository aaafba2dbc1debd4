from contextlib import asynccontextmanager
from queue import Empty, Queue
from typing import AsyncIterator, Iterator

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.responses import StreamingResponse

from talent_search.backend_client import BackendError
from talent_search.config import load_client_config
from talent_search.models import (
    FeedbackAck,
    HealthResponse,
    PollSnapshot,
    ProfessionalProfile,
    SearchOutcome,
    SessionStateResponse,
    SubmitFeedbackRequest,
    SubmitQueryRequest,
    UploadStartedResponse,
)
from talent_search.orchestrator import SubmissionInProgressError
from talent_search.session import build_session
from talent_search.sse import KEEP_ALIVE, format_sse
from talent_search.task_poller import FINAL_POLL_STATES


CLIENT_CONFIG = load_client_config()
session = build_session(CLIENT_CONFIG)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    yield
    session.close()


app = FastAPI(title="Talent Search", lifespan=lifespan)


def _backend_failure(exc: BackendError) -> HTTPException:
    return HTTPException(
        status_code=502,
        detail={
            "error_code": "backend_error",
            "message": exc.message,
            "backend_status": exc.status_code,
        },
    )


@app.get("/api/session", response_model=SessionStateResponse)
def get_session() -> SessionStateResponse:
    return SessionStateResponse(
        session_id=session.session_id,
        established=session.identity.is_established(),
        is_searching=session.is_searching,
        messages=session.conversation.messages(),
    )


@app.post("/api/search", response_model=SearchOutcome)
def submit_search(req: SubmitQueryRequest) -> SearchOutcome:
    try:
        return session.submit(req.query, top_k=req.top_k)
    except SubmissionInProgressError as exc:
        raise HTTPException(
            status_code=409,
            detail={"error_code": "submission_in_progress", "message": str(exc)},
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


@app.delete("/api/conversation")
def clear_conversation() -> dict:
    session.clear_conversation()
    return {"session_id": session.session_id, "messages": 0}


@app.post("/api/feedback", response_model=FeedbackAck)
def submit_feedback(req: SubmitFeedbackRequest) -> FeedbackAck:
    try:
        return session.record_feedback(
            req.profile_id,
            req.feedback_id,
            req.feedback_type,
            comment=req.comment,
            rank_position=req.rank_position,
        )
    except BackendError as exc:
        raise _backend_failure(exc)


@app.post("/api/uploads", response_model=UploadStartedResponse)
def upload_resume(resume_file: UploadFile = File(...)) -> UploadStartedResponse:
    filename = resume_file.filename or "resume"
    content = resume_file.file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    try:
        uploaded, handle = session.upload_resume(
            filename,
            content,
            resume_file.content_type or "application/octet-stream",
        )
    except ValueError as exc:
        raise HTTPException(status_code=415, detail=str(exc))
    except BackendError as exc:
        raise _backend_failure(exc)
    return UploadStartedResponse(
        task_id=uploaded.task_id,
        filename=uploaded.filename or filename,
        message=uploaded.message,
        poll=handle.snapshot(),
    )


@app.get("/api/uploads/{task_id}", response_model=PollSnapshot)
def get_upload(task_id: str) -> PollSnapshot:
    handle = session.poller.get(task_id)
    if handle is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return handle.snapshot()


@app.post("/api/uploads/{task_id}/stop", response_model=PollSnapshot)
def stop_upload(task_id: str) -> PollSnapshot:
    handle = session.poller.get(task_id)
    if handle is None:
        raise HTTPException(status_code=404, detail="Task not found")
    handle.stop()
    return handle.snapshot()


def _event_stream(task_id: str, q: Queue) -> Iterator[str]:
    try:
        handle = session.poller.get(task_id)
        if handle is not None:
            current = handle.snapshot()
            yield format_sse({"event_type": "task_status", **current.model_dump(mode="json")})
            if current.state in FINAL_POLL_STATES:
                return
        while True:
            try:
                event = q.get(timeout=15)
            except Empty:
                yield KEEP_ALIVE
                continue
            yield format_sse(event)
            if event.get("state") in FINAL_POLL_STATES:
                return
    finally:
        session.poller.unsubscribe(task_id, q)


@app.get("/api/uploads/{task_id}/events")
def stream_upload_events(task_id: str) -> StreamingResponse:
    q = session.poller.subscribe(task_id)
    if q is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return StreamingResponse(
        _event_stream(task_id, q),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.get("/api/profiles/{profile_id}", response_model=ProfessionalProfile)
def get_profile(profile_id: str) -> ProfessionalProfile:
    try:
        return session.backend.get_profile(profile_id)
    except BackendError as exc:
        if exc.status_code == 404:
            raise HTTPException(status_code=404, detail="Profile not found")
        raise _backend_failure(exc)


@app.get("/api/health", response_model=HealthResponse)
def health() -> HealthResponse:
    try:
        return session.backend.check_health()
    except BackendError as exc:
        print(f"[backend] health check failed: {exc.message}")
        return HealthResponse(status="unreachable", checks={"backend": False})
