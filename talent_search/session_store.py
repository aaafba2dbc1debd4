import threading
import uuid
from typing import Optional

from talent_search.storage import KeyValueStorage


SESSION_ID_KEY = "search_session_id"
SESSION_ESTABLISHED_KEY = "search_session_established"


class SessionIdentityStore:
    """Owns the durable session id.

    An id is generated locally on first use. It becomes *established* once a
    backend response has confirmed it via ``adopt_session_id``; from then on the
    backend's id is authoritative.
    """

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage
        self._lock = threading.Lock()
        self._session_id: Optional[str] = None
        self._established = False
        self._load()

    def _load(self) -> None:
        stored = str(self._storage.get(SESSION_ID_KEY) or "").strip()
        if stored:
            self._session_id = stored
            self._established = str(self._storage.get(SESSION_ESTABLISHED_KEY) or "") == "1"

    def get_or_create_session_id(self) -> str:
        with self._lock:
            if not self._session_id:
                self._session_id = str(uuid.uuid4())
                self._established = False
                self._storage.set(SESSION_ID_KEY, self._session_id)
                self._storage.remove(SESSION_ESTABLISHED_KEY)
            return self._session_id

    def adopt_session_id(self, session_id: str) -> bool:
        """Store ``session_id`` as established. Returns True if the id changed."""
        sid = str(session_id or "").strip()
        if not sid:
            return False
        with self._lock:
            changed = sid != self._session_id
            if changed:
                self._session_id = sid
                self._storage.set(SESSION_ID_KEY, sid)
            if not self._established:
                self._established = True
                self._storage.set(SESSION_ESTABLISHED_KEY, "1")
            return changed

    def established_session_id(self) -> Optional[str]:
        with self._lock:
            return self._session_id if self._established else None

    def is_established(self) -> bool:
        with self._lock:
            return self._established

    def clear(self) -> None:
        with self._lock:
            self._session_id = None
            self._established = False
            self._storage.remove(SESSION_ID_KEY)
            self._storage.remove(SESSION_ESTABLISHED_KEY)
