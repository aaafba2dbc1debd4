import threading
from datetime import datetime, timezone
from queue import Queue
from typing import Any, Callable, Dict, List, Optional, Protocol

from talent_search.backend_client import BackendError
from talent_search.models import PollSnapshot, PollState, TaskStatusResponse


DEFAULT_POLL_INTERVAL_SEC = 3.0
FINAL_POLL_STATES = frozenset({"success", "failure", "poll_error", "stopped"})
DEFAULT_MAX_FINISHED_HANDLES = 50


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatusBackend(Protocol):
    def check_task_status(self, task_id: str) -> TaskStatusResponse: ...


def _state_for_status(status: str) -> PollState:
    if status == "SUCCESS":
        return "success"
    if status == "FAILURE":
        return "failure"
    return "polling"


class PollHandle:
    """Poll loop for one ingestion task.

    ``run`` waits one interval, polls, and repeats until the backend reports
    SUCCESS or FAILURE, the status call itself fails, or ``stop`` is called.
    The wait is an Event so ``stop`` interrupts it immediately.
    """

    def __init__(
        self,
        task_id: str,
        backend: TaskStatusBackend,
        interval_sec: float = DEFAULT_POLL_INTERVAL_SEC,
        on_update: Optional[Callable[[PollSnapshot], None]] = None,
    ) -> None:
        self.task_id = task_id
        self._backend = backend
        self._interval_sec = max(0.0, float(interval_sec))
        self._on_update = on_update
        self._stop_event = threading.Event()
        self._done = threading.Event()
        self._lock = threading.Lock()
        self._state: PollState = "created"
        self._status: Optional[str] = None
        self._error: Optional[str] = None
        self._metadata: Optional[Dict[str, Any]] = None
        self._polls = 0
        self._transitions: List[PollState] = ["created"]
        self._updated_at = _now()

    @property
    def state(self) -> PollState:
        with self._lock:
            return self._state

    @property
    def status(self) -> Optional[str]:
        with self._lock:
            return self._status

    @property
    def error(self) -> Optional[str]:
        with self._lock:
            return self._error

    @property
    def polls(self) -> int:
        with self._lock:
            return self._polls

    @property
    def transitions(self) -> List[PollState]:
        with self._lock:
            return list(self._transitions)

    @property
    def done(self) -> bool:
        with self._lock:
            return self._state in FINAL_POLL_STATES

    def snapshot(self) -> PollSnapshot:
        with self._lock:
            return self._snapshot_locked()

    def _snapshot_locked(self) -> PollSnapshot:
        return PollSnapshot(
            task_id=self.task_id,
            state=self._state,
            status=self._status,
            error=self._error,
            polls=self._polls,
            transitions=list(self._transitions),
            metadata=self._metadata,
            updated_at=self._updated_at,
        )

    def _notify(self, snapshot: PollSnapshot) -> None:
        if self._on_update is None:
            return
        try:
            self._on_update(snapshot)
        except Exception as exc:
            print(f"[poller] update callback failed for task {self.task_id}: {exc}")

    def stop(self) -> None:
        self._stop_event.set()
        snapshot = None
        with self._lock:
            if self._state not in FINAL_POLL_STATES:
                self._state = "stopped"
                self._transitions.append("stopped")
                self._updated_at = _now()
                snapshot = self._snapshot_locked()
        if snapshot is not None:
            self._notify(snapshot)

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._done.wait(timeout)

    def _apply_response(self, rsp: TaskStatusResponse) -> Optional[PollSnapshot]:
        with self._lock:
            if self._stop_event.is_set():
                return None
            self._polls += 1
            self._status = rsp.status
            self._metadata = rsp.metadata
            self._state = _state_for_status(rsp.status)
            if self._state == "failure":
                self._error = rsp.error or "Processing failed."
            self._transitions.append(self._state)
            self._updated_at = _now()
            return self._snapshot_locked()

    def _apply_poll_error(self, message: str) -> Optional[PollSnapshot]:
        with self._lock:
            if self._stop_event.is_set():
                return None
            self._polls += 1
            self._state = "poll_error"
            self._error = message
            self._transitions.append("poll_error")
            self._updated_at = _now()
            return self._snapshot_locked()

    def run(self) -> PollState:
        with self._lock:
            if self._state == "created":
                self._state = "polling"
        try:
            while not self._stop_event.wait(self._interval_sec):
                try:
                    rsp = self._backend.check_task_status(self.task_id)
                except BackendError as exc:
                    snapshot = self._apply_poll_error(exc.message)
                    if snapshot is not None:
                        print(f"[poller] status check for task {self.task_id} failed: {exc.message}")
                        self._notify(snapshot)
                    break
                snapshot = self._apply_response(rsp)
                if snapshot is None:
                    # Stopped while the request was in flight.
                    break
                self._notify(snapshot)
                if snapshot.state != "polling":
                    break
        finally:
            self._done.set()
        return self.state


class TaskPoller:
    """Tracks one poll loop per task id and fans snapshots out to subscribers."""

    def __init__(
        self,
        backend: TaskStatusBackend,
        interval_sec: float = DEFAULT_POLL_INTERVAL_SEC,
        background: bool = True,
        max_finished: int = DEFAULT_MAX_FINISHED_HANDLES,
    ) -> None:
        self._backend = backend
        self._interval_sec = interval_sec
        self._background = background
        self._max_finished = max(0, int(max_finished))
        self._handles: Dict[str, PollHandle] = {}
        self._subscribers: Dict[str, List[Queue]] = {}
        self._lock = threading.Lock()

    def start(
        self,
        task_id: str,
        on_update: Optional[Callable[[PollSnapshot], None]] = None,
    ) -> PollHandle:
        with self._lock:
            existing = self._handles.get(task_id)
            if existing is not None and not existing.done:
                return existing

            def publish(snapshot: PollSnapshot) -> None:
                self._publish(snapshot)
                if on_update is not None:
                    on_update(snapshot)

            handle = PollHandle(task_id, self._backend, self._interval_sec, on_update=publish)
            self._handles.pop(task_id, None)
            self._handles[task_id] = handle
            self._subscribers.setdefault(task_id, [])
            self._prune_finished_locked()

        if self._background:
            t = threading.Thread(target=handle.run, name=f"poll-{task_id}", daemon=True)
            t.start()
        return handle

    def _prune_finished_locked(self) -> None:
        # Oldest finished handles go first; running loops are never dropped.
        finished = [tid for tid, h in self._handles.items() if h.done]
        for tid in finished[: max(0, len(finished) - self._max_finished)]:
            self._handles.pop(tid, None)
            self._subscribers.pop(tid, None)

    def get(self, task_id: str) -> Optional[PollHandle]:
        with self._lock:
            return self._handles.get(task_id)

    def stop(self, task_id: str) -> bool:
        handle = self.get(task_id)
        if handle is None:
            return False
        handle.stop()
        return True

    def stop_all(self) -> None:
        with self._lock:
            handles = list(self._handles.values())
        for handle in handles:
            handle.stop()

    def subscribe(self, task_id: str) -> Optional[Queue]:
        with self._lock:
            if task_id not in self._handles:
                return None
            q: Queue = Queue()
            self._subscribers.setdefault(task_id, []).append(q)
            return q

    def unsubscribe(self, task_id: str, queue: Queue) -> None:
        with self._lock:
            subs = self._subscribers.get(task_id, [])
            if queue in subs:
                subs.remove(queue)
            handle = self._handles.get(task_id)
            if not subs and (handle is None or handle.done):
                self._subscribers.pop(task_id, None)

    def _publish(self, snapshot: PollSnapshot) -> None:
        with self._lock:
            subscribers = list(self._subscribers.get(snapshot.task_id, []))
        event = {"event_type": "task_status", **snapshot.model_dump(mode="json")}
        for q in subscribers:
            q.put(event)
