"""Tests for session log normalization, assembly and loading."""

from __future__ import annotations

import json
import os
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from promptcoach.sessions import normalizer as normalizer_module
from promptcoach.sessions import (
    ClaudeCodeNormalizer,
    Event,
    EventType,
    assemble_session,
    discover_session_files,
    group_sessions,
    interleave_commits,
    iter_log_lines,
    load_sessions,
    normalize_session,
    parse_timestamp,
    resolve_since,
)


def _line(entry_type: str, ts: str | int = "2026-01-01T10:00:00Z", **fields: Any) -> str:
    return json.dumps({"type": entry_type, "timestamp": ts, **fields})


def _user(text: str, ts: str | int = "2026-01-01T10:00:00Z", **fields: Any) -> str:
    return _line("user", ts, message={"role": "user", "content": text}, **fields)


def _text(text: str, ts: str = "2026-01-01T10:00:00Z") -> str:
    return _line("assistant", ts, message={"content": [{"type": "text", "text": text}]})


def _tool(name: str, tool_input: dict[str, Any], ts: str = "2026-01-01T10:00:00Z") -> str:
    return _line(
        "assistant",
        ts,
        message={"content": [{"type": "tool_use", "id": "t1", "name": name, "input": tool_input}]},
    )


def _events(*lines: str) -> list[Event]:
    return normalize_session(list(lines), project="-home-dev-shop", project_name="shop", session_id="s1")


class TestEventTypes:
    """Tests for the raw-line to event type mapping."""

    def test_correction_scenario(self) -> None:
        """A negation after an assistant turn is both a prompt and a correction."""
        events = _events(
            _user("fix the tests"),
            _tool("Bash", {"command": "pytest"}),
            _text("Fixed the failing assertion."),
            _user("no, the auth test"),
            _tool("Read", {"file_path": "/src/auth_test.py"}),
        )

        assert [e.type for e in events] == [
            EventType.PROMPT,
            EventType.TOOL_CALL,
            EventType.ASSISTANT_RESPONSE,
            EventType.PROMPT,
            EventType.TOOL_CALL,
        ]
        assert events[3].labels == frozenset({EventType.PROMPT, EventType.CORRECTION})
        assert not events[0].is_a(EventType.CORRECTION)

    def test_cue_without_prior_assistant_turn_is_not_correction(self) -> None:
        """Two user messages in a row never produce a correction."""
        events = _events(_user("add a login page"), _user("no wait, a signup page"))
        assert all(not e.is_a(EventType.CORRECTION) for e in events)

    def test_correction_cue_is_word_bounded(self) -> None:
        """'no' inside another word is not a cue."""
        events = _events(_text("Done."), _user("now add the footer"))
        assert not events[1].is_a(EventType.CORRECTION)

    def test_task_tool_is_sub_agent_spawn(self) -> None:
        """Task dispatches are tool calls labelled as sub-agent spawns."""
        events = _events(_tool("Task", {"prompt": "Investigate the flaky test"}))
        assert events[0].type == EventType.TOOL_CALL
        assert events[0].is_a(EventType.SUB_AGENT_SPAWN)
        assert events[0].content.startswith("Task ")
        assert events[0].metadata["tool"] == "Task"

    def test_tool_call_content_includes_input(self) -> None:
        """Tool call content carries the JSON input for downstream searches."""
        events = _events(_tool("Edit", {"file_path": "/src/app.py"}))
        assert '"file_path": "/src/app.py"' in events[0].content

    def test_compaction_from_system_subtype(self) -> None:
        """compact_boundary system lines become compactions."""
        events = _events(_line("system", subtype="compact_boundary"))
        assert events[0].type == EventType.COMPACTION

    def test_compaction_from_summary(self) -> None:
        """Compact summaries are compactions, not prompts."""
        events = _events(_user("Summary of earlier conversation", isCompactSummary=True))
        assert [e.type for e in events] == [EventType.COMPACTION]

    def test_failed_tool_result_is_error(self) -> None:
        """Errored tool_result blocks become error events."""
        events = _events(_line(
            "user",
            message={"content": [
                {"type": "tool_result", "tool_use_id": "t1", "is_error": True, "content": "exit 1"},
            ]},
        ))
        assert [e.type for e in events] == [EventType.ERROR]
        assert events[0].content == "exit 1"

    def test_successful_tool_result_produces_nothing(self) -> None:
        """Successful tool results are not prompts."""
        normalizer = ClaudeCodeNormalizer()
        events = normalizer.normalize([_line(
            "user",
            message={"content": [{"type": "tool_result", "tool_use_id": "t1", "content": "ok"}]},
        )])
        assert events == []
        assert len(normalizer.skipped) == 1

    def test_standalone_tool_result_error(self) -> None:
        """Top-level tool_result lines flagged is_error become errors."""
        events = _events(_line("tool_result", content="boom", is_error=True))
        assert events[0].type == EventType.ERROR

    def test_commit_entry(self) -> None:
        """Version-control log entries become commits."""
        events = _events(_line("commit", hash="abc123", message="Fix auth expiry"))
        assert events[0].type == EventType.COMMIT
        assert events[0].metadata["hash"] == "abc123"

    def test_system_noise_and_meta_skipped(self) -> None:
        """Harness-injected user content is not a prompt."""
        events = _events(
            _user("<command-name>/clear</command-name>"),
            _user("Caveat: The messages below were generated by the user"),
            _user("injected", isMeta=True),
        )
        assert events == []


class TestMalformedInput:
    """Tests for skip-and-continue behavior."""

    def test_bad_lines_are_skipped_with_reasons(self) -> None:
        """Corrupt lines are skipped; valid ones still parse."""
        normalizer = ClaudeCodeNormalizer()
        events = normalizer.normalize([
            "not json",
            "[1, 2, 3]",
            json.dumps({"type": "progress"}),
            "",
            _user("Valid prompt"),
        ])

        assert len(events) == 1
        assert events[0].content == "Valid prompt"
        reasons = [s.reason for s in normalizer.skipped]
        assert reasons[0] == "invalid JSON"
        assert reasons[1] == "not a JSON object"
        assert "progress" in reasons[2]
        assert [s.line for s in normalizer.skipped] == [1, 2, 3]

    def test_empty_input(self) -> None:
        """No lines, no events."""
        assert normalize_session([]) == []

    def test_oversized_integer_is_skipped(self) -> None:
        """Integers past the conversion limit skip the line, not the session."""
        normalizer = ClaudeCodeNormalizer()
        events = normalizer.normalize([
            _user("First prompt"),
            '{"type": "user", "n": 1' + "0" * 5000 + "}",
            _user("Second prompt"),
        ])

        assert [e.content for e in events] == ["First prompt", "Second prompt"]
        assert [(s.line, s.reason) for s in normalizer.skipped] == [(2, "invalid JSON")]

    def test_deeply_nested_line_is_skipped(self) -> None:
        """Nesting deeper than the decoder can recurse skips the line."""
        normalizer = ClaudeCodeNormalizer()
        events = normalizer.normalize([_user("Valid prompt"), "[" * 100_000 + "]" * 100_000])

        assert len(events) == 1
        assert normalizer.skipped[0].reason == "invalid JSON"


class TestProvenance:
    """Tests for ids, timestamps and provenance fields."""

    def test_fields_are_populated(self) -> None:
        """Events carry project, branch and source line."""
        events = _events(_user("hello", uuid="u1", gitBranch="main"))
        event = events[0]
        assert event.id == "u1"
        assert event.session_id == "s1"
        assert event.project_name == "shop"
        assert event.branch == "main"
        assert event.source_line == 1

    def test_multiple_events_from_one_line_get_distinct_ids(self) -> None:
        """Several blocks in one line get suffixed ids."""
        line = _line("assistant", uuid="a1", message={"content": [
            {"type": "text", "text": "Reading it."},
            {"type": "tool_use", "name": "Read", "input": {"file_path": "/a.py"}},
        ]})
        events = _events(line)
        assert [e.id for e in events] == ["a1", "a1#1"]

    def test_epoch_millisecond_timestamp(self) -> None:
        """Numeric epoch timestamps become ISO strings."""
        events = _events(_user("hello", ts=1767261600000))
        assert events[0].parsed_timestamp == datetime(2026, 1, 1, 10, 0, tzinfo=UTC)

    def test_session_id_falls_back_to_entry(self) -> None:
        """Without an explicit session id, the entry's sessionId is used."""
        events = normalize_session([_user("hello", sessionId="abc")])
        assert events[0].session_id == "abc"

    def test_parse_timestamp_rejects_garbage(self) -> None:
        """Unparseable timestamps become None."""
        assert parse_timestamp("yesterday-ish") is None
        assert parse_timestamp(None) is None


class TestSessionAssembly:
    """Tests for Session views and duration."""

    def test_views_are_subsets_in_order(self) -> None:
        """Views filter the same events without copying or reordering."""
        events = _events(
            _user("fix the tests", ts="2026-01-01T10:00:00Z"),
            _tool("Task", {"prompt": "look"}, ts="2026-01-01T10:05:00Z"),
            _text("Done.", ts="2026-01-01T10:10:00Z"),
            _user("no, the auth test", ts="2026-01-01T10:30:00Z"),
        )
        session = assemble_session(events)

        assert session.user_messages == [events[0], events[3]]
        assert session.corrections == [events[3]]
        assert session.tool_calls == [events[1]]
        assert session.sub_agent_spawns == [events[1]]
        assert session.assistant_messages == [events[2]]
        for view in (session.user_messages, session.corrections, session.tool_calls):
            assert all(session.index_of(e) >= 0 for e in view)
        assert session.duration_minutes == 30

    def test_duration_zero_for_single_or_unparseable(self) -> None:
        """Duration is 0 with fewer than two events or bad timestamps."""
        assert assemble_session(_events(_user("hi"))).duration_minutes == 0
        bad = _events(_user("a", ts="bad"), _user("b", ts="2026-01-01T10:00:00Z"))
        assert assemble_session(bad).duration_minutes == 0

    def test_group_sessions(self) -> None:
        """Mixed streams are grouped by session id."""
        a = normalize_session([_user("one")], session_id="a")
        b = normalize_session([_user("two")], session_id="b")
        sessions = group_sessions(a + b + a)
        assert [s.session_id for s in sessions] == ["a", "b"]
        assert len(sessions[0].events) == 2

    def test_interleave_commits(self) -> None:
        """Commits are placed by timestamp among session events."""
        session = assemble_session(_events(
            _user("start", ts="2026-01-01T10:00:00Z"),
            _text("working", ts="2026-01-01T10:20:00Z"),
        ))
        commit = Event(
            id="c1",
            type=EventType.COMMIT,
            content="wip",
            timestamp="2026-01-01T10:10:00Z",
            session_id="s1",
        )
        merged = interleave_commits(session, [commit])
        assert [e.type for e in merged.events] == [
            EventType.PROMPT,
            EventType.COMMIT,
            EventType.ASSISTANT_RESPONSE,
        ]
        assert merged.commits == [commit]


class TestLoading:
    """Tests for discovering and loading session files."""

    def _write_project(self, root: Path, encoded: str, session_id: str, *lines: str) -> Path:
        project_dir = root / encoded
        project_dir.mkdir(parents=True, exist_ok=True)
        path = project_dir / f"{session_id}.jsonl"
        path.write_text("\n".join(lines) + "\n")
        return path

    def test_discover_decodes_project(self, tmp_path: Path) -> None:
        """Project names come from the encoded directory."""
        self._write_project(tmp_path, "-home-dev-shop", "s1", _user("hi"))
        files = discover_session_files(tmp_path)
        assert len(files) == 1
        assert files[0].project == "-home-dev-shop"
        assert files[0].project_name == "shop"
        assert files[0].session_id == "s1"

    def test_load_filters_project_and_session(self, tmp_path: Path) -> None:
        """Project substring and session id narrow the result."""
        self._write_project(tmp_path, "-home-dev-shop", "s1", _user("hi"))
        self._write_project(tmp_path, "-home-dev-blog", "s2", _user("hello"))

        shop = load_sessions(tmp_path, project="shop", period="session")
        assert [s.session_id for s in shop] == ["s1"]
        assert shop[0].project_name == "shop"

        only = load_sessions(tmp_path, session_id="s2", period="session")
        assert [s.session_id for s in only] == ["s2"]

    def test_load_filters_by_modification_time(self, tmp_path: Path) -> None:
        """Old files fall outside the period."""
        old = self._write_project(tmp_path, "-p", "old", _user("hi"))
        self._write_project(tmp_path, "-p", "new", _user("hi"))
        stale = time.time() - 10 * 86400
        os.utime(old, (stale, stale))

        assert [s.session_id for s in load_sessions(tmp_path, period="week")] == ["new"]
        assert len(load_sessions(tmp_path, period="session")) == 2

    def test_load_skips_files_without_events(self, tmp_path: Path) -> None:
        """A file of garbage yields no session."""
        self._write_project(tmp_path, "-p", "junk", "not json")
        assert load_sessions(tmp_path, period="session") == []

    def test_corrupt_lines_do_not_abort_batch(self, tmp_path: Path) -> None:
        """Undecodable lines in one file leave the other sessions intact."""
        self._write_project(
            tmp_path,
            "-p",
            "bad",
            _user("before"),
            '{"type": "user", "n": 1' + "0" * 5000 + "}",
            "[" * 100_000 + "]" * 100_000,
            _user("after"),
        )
        self._write_project(tmp_path, "-p", "good", _user("hello"))

        sessions = {s.session_id: s for s in load_sessions(tmp_path, period="session")}

        assert set(sessions) == {"bad", "good"}
        assert [e.content for e in sessions["bad"].events] == ["before", "after"]


class TestStreaming:
    """Tests for reading large logs line by line."""

    def _write_crlf(self, path: Path) -> Path:
        lines = [_user("fix the tests"), "not json", _text("Done."), _user("no, the auth test")]
        path.write_bytes(("\r\n".join(lines) + "\r\n").encode("utf-8"))
        return path

    def test_streamed_lines_match_whole_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """The streaming branch yields the same lines as a whole-file read."""
        path = self._write_crlf(tmp_path / "s1.jsonl")
        whole = list(iter_log_lines(path))

        monkeypatch.setattr(normalizer_module, "STREAM_THRESHOLD_BYTES", 16)
        streamed = list(iter_log_lines(path))

        assert streamed == whole
        assert len(streamed) == 4
        assert not any(line.endswith("\r") for line in streamed)

    def test_streamed_file_normalizes_identically(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Events and skips are the same whichever read path is taken."""
        path = self._write_crlf(tmp_path / "s1.jsonl")
        whole_normalizer = ClaudeCodeNormalizer()
        whole = whole_normalizer.normalize_file(path)

        monkeypatch.setattr(normalizer_module, "STREAM_THRESHOLD_BYTES", 16)
        streamed_normalizer = ClaudeCodeNormalizer()
        streamed = streamed_normalizer.normalize_file(path)

        assert [(e.type, e.content) for e in streamed] == [(e.type, e.content) for e in whole]
        assert [e.type for e in streamed] == [
            EventType.PROMPT,
            EventType.ASSISTANT_RESPONSE,
            EventType.PROMPT,
        ]
        assert EventType.CORRECTION in streamed[-1].labels
        assert streamed_normalizer.skipped == whole_normalizer.skipped == [
            normalizer_module.SkippedLine(line=2, reason="invalid JSON"),
        ]

    def test_resolve_since(self) -> None:
        """Relative and ISO since values, and period fallbacks."""
        now = datetime(2026, 1, 10, tzinfo=UTC)
        assert resolve_since("7days", "day", now) == datetime(2026, 1, 3, tzinfo=UTC)
        assert resolve_since("2026-01-05", "day", now) == datetime(2026, 1, 5, tzinfo=UTC)
        assert resolve_since(None, "month", now) == datetime(2025, 12, 11, tzinfo=UTC)
        assert resolve_since(None, "session", now) is None
