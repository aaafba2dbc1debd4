import threading
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol, Union

from talent_search.backend_client import BackendError
from talent_search.conversation import ConversationLog
from talent_search.models import (
    QueryMessage,
    RefineQueryRequest,
    ResponseMessage,
    SearchOutcome,
    SearchQueryRequest,
    SearchQueryResponse,
)
from talent_search.session_store import SessionIdentityStore


DEFAULT_TOP_K = 5
DEFAULT_SEARCH_MESSAGE = "Here are the search results:"
DEFAULT_REFINE_MESSAGE = "Here are the refined results:"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SearchBackend(Protocol):
    def search(self, request: SearchQueryRequest) -> SearchQueryResponse: ...

    def refine(self, request: RefineQueryRequest) -> SearchQueryResponse: ...


class SubmissionInProgressError(RuntimeError):
    pass


class SearchOrchestrator:
    def __init__(
        self,
        backend: SearchBackend,
        identity: SessionIdentityStore,
        conversation: ConversationLog,
        default_top_k: int = DEFAULT_TOP_K,
        now: Callable[[], datetime] = _now,
    ) -> None:
        self._backend = backend
        self._identity = identity
        self._conversation = conversation
        self._default_top_k = max(1, int(default_top_k))
        self._now = now
        self._in_flight = threading.Lock()

    @property
    def is_searching(self) -> bool:
        return self._in_flight.locked()

    def next_route(self) -> str:
        # Topic changes do not reset to a fresh search; the backend owns continuity.
        return "refine" if self._identity.is_established() else "search"

    def submit(self, utterance: str, top_k: Optional[int] = None) -> SearchOutcome:
        query = str(utterance or "")
        if not query.strip():
            raise ValueError("Query must not be empty.")
        k = self._default_top_k if top_k is None else int(top_k)
        if k < 1:
            raise ValueError("top_k must be at least 1.")
        if not self._in_flight.acquire(blocking=False):
            raise SubmissionInProgressError("A search is already in progress.")
        try:
            return self._run_turn(query, k)
        finally:
            self._in_flight.release()

    def _error_turn(self, route: str, query: str, error: str) -> SearchOutcome:
        message = ResponseMessage(
            content=f"Error: {error}",
            results=[],
            timestamp=self._now(),
        )
        self._conversation.append(message)
        return SearchOutcome(route=route, query=query, message=message, error=error)

    def _run_turn(self, query: str, top_k: int) -> SearchOutcome:
        route = self.next_route()
        # Built before the query is logged so a rejected request leaves no orphan entry.
        request: Union[SearchQueryRequest, RefineQueryRequest]
        if route == "refine":
            request = RefineQueryRequest(
                refinement_query=query,
                session_id=self._identity.established_session_id() or "",
                top_k=top_k,
            )
        else:
            request = SearchQueryRequest(query=query, top_k=top_k)
        self._conversation.append(QueryMessage(content=query, timestamp=self._now()))

        try:
            if isinstance(request, RefineQueryRequest):
                response = self._backend.refine(request)
            else:
                response = self._backend.search(request)
        except BackendError as exc:
            print(f"[search] {route} failed: {exc.message}")
            return self._error_turn(route, query, exc.message)
        except Exception as exc:
            print(f"[search] {route} raised {type(exc).__name__}: {exc}")
            return self._error_turn(route, query, str(exc) or type(exc).__name__)

        if response.session_id:
            if self._identity.adopt_session_id(response.session_id):
                print(f"[session] adopted backend session id {response.session_id}")

        default_text = DEFAULT_REFINE_MESSAGE if route == "refine" else DEFAULT_SEARCH_MESSAGE
        message = ResponseMessage(
            content=response.message or default_text,
            summary=response.generated_summary,
            results=list(response.results),
            timestamp=self._now(),
        )
        self._conversation.append(message)
        return SearchOutcome(route=route, query=query, message=message, response=response)
