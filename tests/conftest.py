from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import pytest

from talent_search.backend_client import BackendError
from talent_search.models import (
    FeedbackAck,
    ProfileUploadResponse,
    SearchQueryResponse,
    TaskStatusResponse,
)
from talent_search.session import SearchSession
from talent_search.storage import InMemoryStorage


def make_result(profile_id: str, score: float = 0.8, name: str = "") -> Dict[str, Any]:
    return {
        "profile": {
            "profile_id": profile_id,
            "contact_info": {"name": name or f"Candidate {profile_id}", "location": "Berlin"},
            "skills": ["React", "TypeScript"],
        },
        "score": score,
        "explanation": f"Strong match for {profile_id}",
        "feedback_id": f"fb-{profile_id}",
    }


def make_response(session_id: str = "S1", n_results: int = 2, **extra: Any) -> SearchQueryResponse:
    payload = {
        "query": extra.pop("query", "q"),
        "session_id": session_id,
        "results": [make_result(f"p{i}") for i in range(1, n_results + 1)],
        **extra,
    }
    return SearchQueryResponse.model_validate(payload)


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current = self.current + timedelta(seconds=seconds)


class FakeBackend:
    """Scripted stand-in for BackendClient; queued items that are exceptions get raised."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.search_queue: List[Any] = []
        self.status_queue: List[Any] = []
        self.feedback_result: Any = FeedbackAck(message="Feedback recorded", status="success")
        self.upload_result: Any = ProfileUploadResponse(
            task_id="T1", filename="cv.pdf", message="Upload accepted"
        )
        self.closed = False

    def _next(self, queue: List[Any]) -> Any:
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def search(self, request):
        self.calls.append(("search", request))
        return self._next(self.search_queue)

    def refine(self, request):
        self.calls.append(("refine", request))
        return self._next(self.search_queue)

    def send_feedback(self, feedback):
        self.calls.append(("feedback", feedback))
        if isinstance(self.feedback_result, Exception):
            raise self.feedback_result
        return self.feedback_result

    def upload_resume(self, filename, content, content_type="application/octet-stream"):
        self.calls.append(("upload", filename, content, content_type))
        if isinstance(self.upload_result, Exception):
            raise self.upload_result
        return self.upload_result

    def check_task_status(self, task_id):
        self.calls.append(("status", task_id))
        item = self._next(self.status_queue)
        if isinstance(item, str):
            return TaskStatusResponse(task_id=task_id, status=item)
        return item

    def get_profile(self, profile_id):
        self.calls.append(("profile", profile_id))
        raise BackendError("API error: 404", status_code=404)

    def close(self) -> None:
        self.closed = True

    def routes(self) -> List[str]:
        return [c[0] for c in self.calls if c[0] in {"search", "refine"}]


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 5, 1, 9, 30, 0, tzinfo=timezone.utc))


@pytest.fixture
def session(backend, storage, clock) -> SearchSession:
    return SearchSession(
        backend,
        storage,
        poll_interval_sec=0,
        user_agent="pytest-agent",
        poll_in_background=False,
        now=clock,
    )
