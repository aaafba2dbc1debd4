from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from talent_search.backend_client import BackendClient
from talent_search.config import ClientConfig, load_client_config
from talent_search.conversation import ConversationLog
from talent_search.feedback import FeedbackRecorder
from talent_search.models import (
    FeedbackAck,
    ProfileUploadResponse,
    SearchOutcome,
)
from talent_search.orchestrator import SearchOrchestrator
from talent_search.session_store import SessionIdentityStore
from talent_search.storage import KeyValueStorage, open_storage
from talent_search.task_poller import PollHandle, TaskPoller


ALLOWED_RESUME_SUFFIXES = (".pdf", ".docx", ".doc", ".txt")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SearchSession:
    """Everything a UI needs for one user's search conversation.

    The backend may be a ``BackendClient`` or any object with the same
    methods; storage may be any ``KeyValueStorage``.
    """

    def __init__(
        self,
        backend: Any,
        storage: KeyValueStorage,
        default_top_k: int = 5,
        poll_interval_sec: float = 3.0,
        user_agent: str = "",
        poll_in_background: bool = True,
        now: Callable[[], datetime] = _now,
    ) -> None:
        self.backend = backend
        self.storage = storage
        self.identity = SessionIdentityStore(storage)
        self.identity.get_or_create_session_id()
        self.conversation = ConversationLog(storage)
        self.orchestrator = SearchOrchestrator(
            backend, self.identity, self.conversation, default_top_k=default_top_k, now=now
        )
        self.feedback = FeedbackRecorder(
            backend, self.identity, self.conversation, user_agent=user_agent, now=now
        )
        self.poller = TaskPoller(backend, interval_sec=poll_interval_sec, background=poll_in_background)

    @property
    def session_id(self) -> str:
        return self.identity.get_or_create_session_id()

    @property
    def is_searching(self) -> bool:
        return self.orchestrator.is_searching

    def submit(self, utterance: str, top_k: Optional[int] = None) -> SearchOutcome:
        return self.orchestrator.submit(utterance, top_k=top_k)

    def record_feedback(
        self,
        profile_id: str,
        feedback_id: str,
        feedback_type: str,
        comment: Optional[str] = None,
        rank_position: Optional[int] = None,
    ) -> FeedbackAck:
        return self.feedback.record(
            profile_id,
            feedback_id,
            feedback_type,
            comment=comment,
            rank_position=rank_position,
        )

    def clear_conversation(self) -> None:
        self.conversation.clear()

    def upload_resume(
        self,
        filename: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> tuple[ProfileUploadResponse, PollHandle]:
        suffix = Path(filename).suffix.lower()
        if suffix not in ALLOWED_RESUME_SUFFIXES:
            raise ValueError(
                f"Unsupported file type {suffix or filename!r}; expected one of "
                + ", ".join(ALLOWED_RESUME_SUFFIXES)
            )
        uploaded = self.backend.upload_resume(filename, content, content_type)
        print(f"[upload] {uploaded.filename or filename} accepted as task {uploaded.task_id}")
        return uploaded, self.poller.start(uploaded.task_id)

    def close(self) -> None:
        self.poller.stop_all()
        close = getattr(self.backend, "close", None)
        if callable(close):
            close()


def build_session(cfg: Optional[ClientConfig] = None) -> SearchSession:
    cfg = cfg or load_client_config()
    backend = BackendClient(
        cfg.api_base_url,
        timeout_sec=cfg.request_timeout_sec,
        upload_timeout_sec=cfg.upload_timeout_sec,
    )
    return SearchSession(
        backend,
        open_storage(Path(cfg.state_dir)),
        default_top_k=cfg.default_top_k,
        poll_interval_sec=cfg.poll_interval_sec,
        user_agent=cfg.user_agent,
    )
