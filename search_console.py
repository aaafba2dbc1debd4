import argparse
import mimetypes
import os
import shlex
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from talent_search.backend_client import BackendError
from talent_search.config import load_client_config
from talent_search.models import (
    Message,
    ProfessionalProfile,
    QueryMessage,
    ResponseMessage,
    SearchResultItem,
)
from talent_search.orchestrator import SubmissionInProgressError
from talent_search.session import SearchSession, build_session


EXAMPLE_QUERIES = [
    "Software engineers with 5+ years of React experience",
    "Product managers who worked at Google",
    "Data scientists with machine learning expertise",
    "UX designers with healthcare industry background",
]

HELP_TEXT = """Commands:
  <text>          search, or refine the current results
  /like N         like result N of the latest response
  /dislike N      dislike result N of the latest response
  /profile N      show full profile for result N
  /upload PATH    upload a résumé and wait for indexing
  /history        reprint the conversation
  /clear          clear the conversation (keeps the session)
  /session        show the session id
  /quit           exit"""


def match_percent(score: float) -> int:
    return max(0, min(100, round(float(score) * 100)))


def format_date_range(start: Optional[str], end: Optional[str]) -> str:
    if not start and not end:
        return ""
    if not start:
        return str(end)
    if not end:
        return f"{start} - Present"
    return f"{start} - {end}"


def render_result(index: int, item: SearchResultItem) -> str:
    contact = item.profile.contact_info
    name = (contact.name if contact else None) or "Unnamed Profile"
    location = f" ({contact.location})" if contact and contact.location else ""
    lines = [f"  {index}. {name}{location}  Match: {match_percent(item.score)}%"]
    if item.explanation:
        lines.append(f"     {item.explanation}")
    return "\n".join(lines)


def render_message(message: Message) -> str:
    if isinstance(message, QueryMessage):
        return f"> {message.content}"
    if isinstance(message, ResponseMessage):
        lines = [message.content]
        if message.summary:
            lines.append(message.summary)
        for i, item in enumerate(message.results, start=1):
            lines.append(render_result(i, item))
        return "\n".join(lines)
    raise TypeError(f"Unknown message type: {type(message).__name__}")


def render_profile(profile: ProfessionalProfile) -> str:
    contact = profile.contact_info
    lines = [(contact.name if contact else None) or "Unnamed Profile"]
    if contact and contact.location:
        lines.append(contact.location)
    if profile.summary:
        lines.append("")
        lines.append(profile.summary)
    if profile.work_experience:
        lines.append("")
        lines.append("Experience:")
        for job in profile.work_experience:
            dates = format_date_range(job.start_date, job.end_date)
            title = " @ ".join(part for part in (job.role, job.company) if part)
            lines.append(f"  - {title}" + (f" ({dates})" if dates else ""))
    if profile.education:
        lines.append("")
        lines.append("Education:")
        for edu in profile.education:
            degree = ", ".join(part for part in (edu.degree, edu.field_of_study) if part)
            lines.append(f"  - {edu.institution or ''}" + (f": {degree}" if degree else ""))
    if profile.skills:
        lines.append("")
        lines.append("Skills: " + ", ".join(profile.skills))
    return "\n".join(lines)


def _latest_results(session: SearchSession) -> List[SearchResultItem]:
    last = session.conversation.last_response()
    return list(last.results) if last else []


def _pick_result(session: SearchSession, arg: str) -> Optional[SearchResultItem]:
    results = _latest_results(session)
    try:
        idx = int(arg)
    except (TypeError, ValueError):
        print("[console] expected a result number")
        return None
    if idx < 1 or idx > len(results):
        print(f"[console] no result #{idx} in the latest response")
        return None
    return results[idx - 1]


def _feedback(session: SearchSession, judgment: str, arg: str) -> None:
    item = _pick_result(session, arg)
    if item is None:
        return
    try:
        session.record_feedback(
            item.profile.profile_id,
            item.feedback_id,
            judgment,
            rank_position=int(arg),
        )
    except BackendError as exc:
        print(f"[feedback] could not be submitted: {exc.message}")
        return
    if judgment == "like":
        print("[feedback] Thanks for the positive feedback!")
    else:
        print("[feedback] Thanks for your feedback")


def _upload(session: SearchSession, arg: str) -> None:
    path = Path(arg).expanduser()
    if not path.is_file():
        print(f"[upload] not a file: {path}")
        return
    content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    try:
        uploaded, handle = session.upload_resume(path.name, path.read_bytes(), content_type)
    except ValueError as exc:
        print(f"[upload] rejected: {exc}")
        return
    except BackendError as exc:
        print(f"[upload] failed: {exc.message}")
        return
    print(f"[upload] {uploaded.message or 'Uploaded'} (task {uploaded.task_id}); waiting...")
    try:
        handle.wait()
    except KeyboardInterrupt:
        handle.stop()
    state = handle.state
    if state == "success":
        print("[upload] Processing complete: the résumé has been indexed.")
    elif state == "failure":
        print(f"[upload] Processing failed: {handle.error}")
    elif state == "poll_error":
        print(f"[upload] Status unknown, polling stopped: {handle.error}")
    else:
        print(f"[upload] Stopped following task {uploaded.task_id}.")


def handle_line(session: SearchSession, line: str) -> bool:
    text = line.strip()
    if not text:
        return True
    if not text.startswith("/"):
        try:
            outcome = session.submit(text)
        except SubmissionInProgressError as exc:
            print(f"[search] {exc}")
            return True
        print(render_message(outcome.message))
        return True

    parts = shlex.split(text)
    cmd, args = parts[0].lower(), parts[1:]
    arg = args[0] if args else ""
    if cmd in {"/quit", "/exit"}:
        return False
    if cmd in {"/like", "/dislike"}:
        _feedback(session, cmd[1:], arg)
    elif cmd == "/profile":
        item = _pick_result(session, arg)
        if item is not None:
            try:
                print(render_profile(session.backend.get_profile(item.profile.profile_id)))
            except BackendError as exc:
                print(f"[profile] Could not load profile details: {exc.message}")
    elif cmd == "/upload":
        _upload(session, arg)
    elif cmd == "/history":
        for message in session.conversation.messages():
            print(render_message(message))
    elif cmd == "/clear":
        session.clear_conversation()
        print("[console] Conversation cleared")
    elif cmd == "/session":
        state = "established" if session.identity.is_established() else "local"
        print(f"[console] session {session.session_id} ({state})")
    else:
        print(HELP_TEXT)
    return True


def main() -> None:
    parser = argparse.ArgumentParser(description="Conversational résumé search")
    parser.add_argument(
        "--api-url",
        default=os.getenv("TALENT_SEARCH_API_URL", ""),
        help="Backend base URL (default: client_config.json or http://localhost:8000)",
    )
    parser.add_argument("--top-k", type=int, default=0, help="Results per turn")
    parser.add_argument("--state-dir", default="", help="Directory for session and conversation state")
    args = parser.parse_args()

    cfg = load_client_config()
    if args.api_url:
        cfg = replace(cfg, api_base_url=args.api_url.rstrip("/"))
    if args.top_k > 0:
        cfg = replace(cfg, default_top_k=args.top_k)
    if args.state_dir:
        cfg = replace(cfg, state_dir=args.state_dir)

    session = build_session(cfg)
    try:
        if session.conversation.is_empty():
            print("Ask a question to search through résumés in your network. Try:")
            for q in EXAMPLE_QUERIES:
                print(f'  "{q}"')
        else:
            for message in session.conversation.messages():
                print(render_message(message))
        print("Type /help for commands.")
        while True:
            try:
                line = input("search> ")
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if not handle_line(session, line):
                break
    finally:
        session.close()


if __name__ == "__main__":
    main()
