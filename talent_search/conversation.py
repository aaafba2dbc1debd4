import threading
from typing import List, Optional

from pydantic import TypeAdapter, ValidationError

from talent_search.models import Message, QueryMessage, ResponseMessage
from talent_search.storage import KeyValueStorage


CONVERSATION_KEY = "search_messages"

_MESSAGES_ADAPTER = TypeAdapter(List[Message])


class ConversationLog:
    """Append-only, chronologically ordered list of query/response messages.

    Every mutation is written through to storage before returning.
    """

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage
        self._lock = threading.Lock()
        self._messages: List[Message] = self.restore()

    def restore(self) -> List[Message]:
        raw = self._storage.get(CONVERSATION_KEY)
        if not raw:
            return []
        try:
            messages = _MESSAGES_ADAPTER.validate_json(raw)
        except ValidationError as exc:
            print(f"[conversation] discarding unreadable stored conversation: {exc.error_count()} errors")
            self._storage.remove(CONVERSATION_KEY)
            return []
        return list(messages)

    def _persist_locked(self) -> None:
        payload = _MESSAGES_ADAPTER.dump_json(self._messages).decode("utf-8")
        self._storage.set(CONVERSATION_KEY, payload)

    def append(self, message: Message) -> None:
        if not isinstance(message, (QueryMessage, ResponseMessage)):
            raise TypeError(f"Unsupported message type: {type(message).__name__}")
        with self._lock:
            self._messages.append(message)
            self._persist_locked()

    def clear(self) -> None:
        with self._lock:
            self._messages = []
            self._storage.remove(CONVERSATION_KEY)

    def messages(self) -> List[Message]:
        with self._lock:
            return list(self._messages)

    def last_query(self) -> Optional[QueryMessage]:
        with self._lock:
            for message in reversed(self._messages):
                if isinstance(message, QueryMessage):
                    return message
        return None

    def last_response(self) -> Optional[ResponseMessage]:
        with self._lock:
            for message in reversed(self._messages):
                if isinstance(message, ResponseMessage):
                    return message
        return None

    def is_empty(self) -> bool:
        with self._lock:
            return not self._messages

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)
