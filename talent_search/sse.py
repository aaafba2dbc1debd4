import json
from typing import Any, Dict


KEEP_ALIVE = ": keep-alive\n\n"


def format_sse(event: Dict[str, Any]) -> str:
    event_type = event.get("event_type", "task_status")
    payload = json.dumps(event, ensure_ascii=False, default=str)
    task_id = str(event.get("task_id", "") or "")
    prefix = f"id: {task_id}:{event.get('polls', 0)}\n" if task_id else ""
    return f"{prefix}event: {event_type}\ndata: {payload}\n\n"
