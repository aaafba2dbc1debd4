import math
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from talent_search.conversation import ConversationLog
from talent_search.models import FeedbackAck, FeedbackRequest
from talent_search.session_store import SessionIdentityStore


FEEDBACK_TYPES = ("like", "dislike")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class FeedbackBackend(Protocol):
    def send_feedback(self, feedback: FeedbackRequest) -> FeedbackAck: ...


def seconds_between(start: Optional[datetime], end: datetime) -> int:
    """Whole seconds from ``start`` to ``end``, never negative; 0 without a start."""
    if start is None:
        return 0
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    delta = (end - start).total_seconds()
    return max(0, int(math.floor(delta)))


class FeedbackRecorder:
    def __init__(
        self,
        backend: FeedbackBackend,
        identity: SessionIdentityStore,
        conversation: ConversationLog,
        user_agent: str = "",
        now: Callable[[], datetime] = _now,
    ) -> None:
        self._backend = backend
        self._identity = identity
        self._conversation = conversation
        self._user_agent = user_agent
        self._now = now

    def build_event(
        self,
        profile_id: str,
        correlation_id: str,
        judgment: str,
        comment: Optional[str] = None,
        rank_position: Optional[int] = None,
    ) -> FeedbackRequest:
        if judgment not in FEEDBACK_TYPES:
            raise ValueError(f"Unknown feedback type: {judgment!r}")
        last_query = self._conversation.last_query()
        query_ts = last_query.timestamp if last_query else None
        return FeedbackRequest(
            session_id=self._identity.get_or_create_session_id(),
            profile_id=str(profile_id),
            search_result_feedback_id=str(correlation_id),
            feedback_type=judgment,
            comment=comment,
            query_text=last_query.content if last_query else None,
            user_agent=self._user_agent or None,
            search_rank_position=rank_position,
            search_timestamp=query_ts.isoformat() if query_ts else None,
            time_to_feedback=seconds_between(query_ts, self._now()),
        )

    def record(
        self,
        profile_id: str,
        correlation_id: str,
        judgment: str,
        comment: Optional[str] = None,
        rank_position: Optional[int] = None,
    ) -> FeedbackAck:
        event = self.build_event(
            profile_id,
            correlation_id,
            judgment,
            comment=comment,
            rank_position=rank_position,
        )
        return self._backend.send_feedback(event)
