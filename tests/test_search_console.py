import pytest

import search_console
from talent_search.backend_client import BackendError
from talent_search.models import ProfessionalProfile, QueryMessage

from conftest import make_response


def test_match_percent_clamps_for_display():
    assert search_console.match_percent(0.834) == 83
    assert search_console.match_percent(1.7) == 100
    assert search_console.match_percent(-0.2) == 0


def test_format_date_range():
    assert search_console.format_date_range(None, None) == ""
    assert search_console.format_date_range("2019-01", None) == "2019-01 - Present"
    assert search_console.format_date_range(None, "2020-06") == "2020-06"
    assert search_console.format_date_range("2019-01", "2020-06") == "2019-01 - 2020-06"


def test_render_message_rejects_unknown_variant():
    with pytest.raises(TypeError):
        search_console.render_message(object())


def test_text_line_submits_turn(session, backend, capsys):
    backend.search_queue.append(make_response("S1", generated_summary="Two React developers."))

    assert search_console.handle_line(session, "React engineers") is True

    out = capsys.readouterr().out
    assert "Here are the search results:" in out
    assert "Two React developers." in out
    assert "1. Candidate p1 (Berlin)  Match: 80%" in out


def test_like_command_targets_latest_results(session, backend, capsys):
    backend.search_queue.append(make_response("S1"))
    search_console.handle_line(session, "React engineers")

    search_console.handle_line(session, "/like 2")

    kind, event = backend.calls[-1]
    assert kind == "feedback"
    assert event.profile_id == "p2"
    assert event.search_result_feedback_id == "fb-p2"
    assert event.search_rank_position == 2
    assert "Thanks for the positive feedback!" in capsys.readouterr().out


def test_dislike_out_of_range_does_not_call_backend(session, backend, capsys):
    search_console.handle_line(session, "/dislike 3")

    assert backend.calls == []
    assert "no result #3" in capsys.readouterr().out


def test_feedback_failure_is_reported(session, backend, capsys):
    backend.search_queue.append(make_response("S1"))
    search_console.handle_line(session, "React engineers")
    backend.feedback_result = BackendError("API error: 503", status_code=503)

    search_console.handle_line(session, "/like 1")

    assert "could not be submitted: API error: 503" in capsys.readouterr().out


def test_upload_command_follows_task(session, backend, tmp_path, monkeypatch, capsys):
    cv = tmp_path / "cv.txt"
    cv.write_text("Jane Doe, React developer", encoding="utf-8")
    backend.status_queue.extend(["STARTED", "SUCCESS"])

    def upload_and_run(filename, content, content_type="application/octet-stream"):
        uploaded, handle = type(session).upload_resume(session, filename, content, content_type)
        handle.run()
        return uploaded, handle

    monkeypatch.setattr(session, "upload_resume", upload_and_run)

    search_console.handle_line(session, f"/upload {cv}")

    out = capsys.readouterr().out
    assert "Processing complete" in out
    assert backend.calls[0][1:] == ("cv.txt", b"Jane Doe, React developer", "text/plain")


def test_upload_command_rejects_unsupported_file(session, backend, tmp_path, capsys):
    exe = tmp_path / "cv.exe"
    exe.write_bytes(b"MZ")

    assert search_console.handle_line(session, f"/upload {exe}") is True

    assert "[upload] rejected" in capsys.readouterr().out
    assert backend.calls == []


def test_clear_and_quit_commands(session, backend):
    session.conversation.append(QueryMessage(content="React engineers"))

    assert search_console.handle_line(session, "/clear") is True
    assert session.conversation.is_empty()
    assert search_console.handle_line(session, "/quit") is False


def test_render_profile_lists_experience():
    profile = ProfessionalProfile.model_validate(
        {
            "profile_id": "p1",
            "contact_info": {"name": "Jane Doe", "location": "Berlin"},
            "work_experience": [{"company": "Acme", "role": "Engineer", "start_date": "2019-01"}],
            "skills": ["React", "Go"],
        }
    )

    text = search_console.render_profile(profile)

    assert "Jane Doe" in text
    assert "Engineer @ Acme (2019-01 - Present)" in text
    assert "Skills: React, Go" in text
