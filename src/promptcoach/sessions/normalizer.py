"""Event normalizer for Claude Code session logs.

Each JSONL line is decoded through a discriminated union keyed on its
``type`` tag and turned into zero or more canonical Events. Lines that are
not JSON, not objects, or carry an unknown tag are skipped and recorded,
never coerced.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from ..signals import has_correction_cue
from .models import Event, EventType, parse_timestamp

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)

# Files above this size are streamed line by line instead of read whole
STREAM_THRESHOLD_BYTES = 10 * 1024 * 1024

SUB_AGENT_TOOLS = frozenset({"Task", "Agent"})

COMPACTION_SUBTYPES = frozenset({"compact_boundary", "microcompact_boundary"})

# Harness-injected user content that is not a real prompt
SYSTEM_NOISE_PATTERNS = [
    re.compile(r"^\s*<command-(?:name|message|args)>"),
    re.compile(r"^\s*<local-command-std(?:out|err)>"),
    re.compile(r"^\s*<system-reminder>"),
    re.compile(r"^\s*Caveat: The messages below were generated"),
    re.compile(r"^\s*\[Request interrupted by user"),
]


class _RawEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    uuid: str | None = None
    timestamp: str | float | int | None = None
    session_id: str | None = Field(default=None, alias="sessionId")
    git_branch: str | None = Field(default=None, alias="gitBranch")


class RawUserEntry(_RawEntry):
    """A user-authored line (prompt or tool results)."""

    type: Literal["user", "human"]
    message: dict[str, Any] | str | None = None
    is_compact_summary: bool = Field(default=False, alias="isCompactSummary")
    is_meta: bool = Field(default=False, alias="isMeta")


class RawAssistantEntry(_RawEntry):
    """An assistant-authored line (text and/or tool invocations)."""

    type: Literal["assistant"]
    message: dict[str, Any] | str | None = None


class RawSystemEntry(_RawEntry):
    """A harness/system line."""

    type: Literal["system"]
    subtype: str | None = None
    content: str | None = None


class RawToolResultEntry(_RawEntry):
    """A standalone tool result line."""

    type: Literal["tool_result"]
    content: Any = None
    is_error: bool = False
    tool_use_id: str | None = None


class RawCommitEntry(_RawEntry):
    """A version-control log entry."""

    type: Literal["commit"]
    hash: str = ""
    message: str = ""
    author: str | None = None


RawEntry = Annotated[
    RawUserEntry | RawAssistantEntry | RawSystemEntry | RawToolResultEntry | RawCommitEntry,
    Field(discriminator="type"),
]

_ENTRY_ADAPTER: TypeAdapter[RawEntry] = TypeAdapter(RawEntry)


@dataclass(frozen=True)
class SkippedLine:
    """A raw line that produced no event, with the reason."""

    line: int
    reason: str


def iter_log_lines(path: Path) -> Iterator[str]:
    """Yield the lines of a log file, streaming large files."""
    if path.stat().st_size > STREAM_THRESHOLD_BYTES:
        logger.debug("Streaming large session log %s", path)
        with path.open(encoding="utf-8", errors="replace") as f:
            for line in f:
                yield line.rstrip("\n")
        return
    yield from path.read_text(encoding="utf-8", errors="replace").splitlines()


def _block_text(content: Any) -> str:
    """Flatten a string or list of content blocks into text."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        chunks: list[str] = []
        for block in content:
            if isinstance(block, str):
                chunks.append(block)
            elif isinstance(block, dict) and block.get("type", "text") == "text":
                text = block.get("text")
                if isinstance(text, str):
                    chunks.append(text)
        return "\n".join(chunks)
    return ""


def _message_content(message: dict[str, Any] | str | None) -> Any:
    if isinstance(message, dict):
        return message.get("content", "")
    return message or ""


class LogParser(ABC):
    """Abstract base class for session log normalizers."""

    @abstractmethod
    def normalize(
        self,
        raw_lines: Iterable[str],
        project: str = "",
        project_name: str = "",
        session_id: str | None = None,
        source_file: str = "",
    ) -> list[Event]:
        """Convert one session's raw lines into ordered Events."""

    @abstractmethod
    def discover(self, root: Path) -> list[Path]:
        """Discover parseable log files under the given root."""


class ClaudeCodeNormalizer(LogParser):
    """Normalizer for Claude Code JSONL session logs.

    Claude Code stores logs at ~/.claude/projects/{encoded-project-path}/{uuid}.jsonl.
    Each line is a JSON object representing a message or harness event.
    """

    DEFAULT_PATH = Path.home() / ".claude" / "projects"

    def __init__(self) -> None:
        self.skipped: list[SkippedLine] = []

    def discover(self, root: Path | None = None) -> list[Path]:
        """Discover Claude Code JSONL log files.

        Args:
            root: Root path to search (defaults to ~/.claude/projects)

        Returns:
            Sorted list of paths to .jsonl files
        """
        search_root = root or self.DEFAULT_PATH
        if not search_root.exists():
            return []
        return sorted(search_root.rglob("*.jsonl"))

    def normalize_file(
        self,
        path: Path,
        project: str = "",
        project_name: str = "",
    ) -> list[Event]:
        """Normalize a session log file; the file stem is the session id."""
        return self.normalize(
            iter_log_lines(path),
            project=project,
            project_name=project_name,
            session_id=path.stem,
            source_file=str(path),
        )

    def normalize(
        self,
        raw_lines: Iterable[str],
        project: str = "",
        project_name: str = "",
        session_id: str | None = None,
        source_file: str = "",
    ) -> list[Event]:
        """Convert raw lines into ordered Events.

        Unparsable lines are skipped and recorded in ``self.skipped``; a
        session with some corrupt lines still yields the events that parsed.

        Args:
            raw_lines: Lines of one session log
            project: Project path or identifier
            project_name: Human-readable project name
            session_id: Session id; falls back to the entries' sessionId
            source_file: Provenance path stored on each event

        Returns:
            Events in log order
        """
        self.skipped = []
        events: list[Event] = []
        last_speaker: str | None = None

        for line_no, raw_line in enumerate(raw_lines, start=1):
            line = raw_line.strip()
            if not line:
                continue

            try:
                payload = json.loads(line)
            except (ValueError, RecursionError):
                self._skip(line_no, "invalid JSON")
                continue
            if not isinstance(payload, dict):
                self._skip(line_no, "not a JSON object")
                continue

            try:
                entry = _ENTRY_ADAPTER.validate_python(payload)
            except ValidationError:
                self._skip(line_no, f"unsupported entry type {payload.get('type')!r}")
                continue

            context = _LineContext(
                line_no=line_no,
                session_id=session_id or entry.session_id or "unknown",
                project=project,
                project_name=project_name,
                branch=entry.git_branch or "",
                source_file=source_file,
                timestamp=_timestamp_string(entry.timestamp),
                base_id=entry.uuid,
            )

            if isinstance(entry, RawUserEntry):
                produced = self._from_user(entry, context, last_speaker)
            elif isinstance(entry, RawAssistantEntry):
                produced = self._from_assistant(entry, context)
            elif isinstance(entry, RawSystemEntry):
                produced = self._from_system(entry, context)
            elif isinstance(entry, RawToolResultEntry):
                produced = self._from_tool_result(entry, context)
            elif isinstance(entry, RawCommitEntry):
                produced = self._from_commit(entry, context)
            else:  # pragma: no cover - the union is closed
                produced = []

            if not produced:
                self._skip(line_no, f"no events in {entry.type} entry")
            for event in produced:
                if event.type == EventType.PROMPT:
                    last_speaker = "user"
                elif event.type in (EventType.ASSISTANT_RESPONSE, EventType.TOOL_CALL):
                    last_speaker = "assistant"
            events.extend(produced)

        if self.skipped:
            logger.debug(
                "Skipped %d line(s) while normalizing %s",
                len(self.skipped),
                source_file or session_id or "session",
            )
        return events

    def _skip(self, line_no: int, reason: str) -> None:
        self.skipped.append(SkippedLine(line=line_no, reason=reason))

    def _is_system_noise(self, text: str) -> bool:
        return any(pattern.search(text) for pattern in SYSTEM_NOISE_PATTERNS)

    def _from_user(
        self,
        entry: RawUserEntry,
        context: _LineContext,
        last_speaker: str | None,
    ) -> list[Event]:
        content = _message_content(entry.message)

        if entry.is_compact_summary:
            return [context.event(EventType.COMPACTION, _block_text(content))]

        events: list[Event] = []
        if isinstance(content, list):
            for block in content:
                if not isinstance(block, dict) or block.get("type") != "tool_result":
                    continue
                if block.get("is_error"):
                    events.append(context.event(
                        EventType.ERROR,
                        _block_text(block.get("content", "")),
                        metadata={"tool_use_id": block.get("tool_use_id")},
                    ))

        text = _block_text(content).strip()
        if text and not entry.is_meta and not self._is_system_noise(text):
            labels = frozenset({EventType.PROMPT})
            if last_speaker == "assistant" and has_correction_cue(text):
                labels = labels | {EventType.CORRECTION}
            events.append(context.event(EventType.PROMPT, text, labels=labels))
        return events

    def _from_assistant(self, entry: RawAssistantEntry, context: _LineContext) -> list[Event]:
        content = _message_content(entry.message)
        metadata: dict[str, Any] = {}
        if isinstance(entry.message, dict) and entry.message.get("model"):
            metadata["model"] = entry.message["model"]

        if isinstance(content, str):
            if not content.strip():
                return []
            return [context.event(EventType.ASSISTANT_RESPONSE, content, metadata=metadata)]

        events: list[Event] = []
        if not isinstance(content, list):
            return events
        for block in content:
            if not isinstance(block, dict):
                continue
            block_type = block.get("type")
            if block_type == "text" and str(block.get("text", "")).strip():
                events.append(context.event(
                    EventType.ASSISTANT_RESPONSE,
                    str(block["text"]),
                    metadata=metadata,
                ))
            elif block_type == "tool_use":
                name = str(block.get("name") or "unknown")
                tool_input = block.get("input") or {}
                labels = frozenset({EventType.TOOL_CALL})
                if name in SUB_AGENT_TOOLS:
                    labels = labels | {EventType.SUB_AGENT_SPAWN}
                events.append(context.event(
                    EventType.TOOL_CALL,
                    f"{name} {json.dumps(tool_input, ensure_ascii=False, default=str)}",
                    labels=labels,
                    metadata={**metadata, "tool": name, "tool_use_id": block.get("id")},
                ))
        return events

    def _from_system(self, entry: RawSystemEntry, context: _LineContext) -> list[Event]:
        subtype = (entry.subtype or "").strip().lower()
        if subtype in COMPACTION_SUBTYPES:
            return [context.event(
                EventType.COMPACTION,
                entry.content or "Conversation compacted",
                metadata={"subtype": subtype},
            )]
        return []

    def _from_tool_result(self, entry: RawToolResultEntry, context: _LineContext) -> list[Event]:
        if not entry.is_error:
            return []
        return [context.event(
            EventType.ERROR,
            _block_text(entry.content) or str(entry.content or ""),
            metadata={"tool_use_id": entry.tool_use_id},
        )]

    def _from_commit(self, entry: RawCommitEntry, context: _LineContext) -> list[Event]:
        return [context.event(
            EventType.COMMIT,
            entry.message,
            metadata={"hash": entry.hash, "author": entry.author},
        )]


def _timestamp_string(ts: str | float | int | None) -> str:
    """Keep ISO strings as-is; convert epoch numbers to ISO-8601 UTC."""
    if isinstance(ts, str):
        return ts
    parsed = parse_timestamp(ts)
    return parsed.isoformat() if parsed else ""


@dataclass
class _LineContext:
    """Shared provenance for every event produced from one raw line."""

    line_no: int
    session_id: str
    project: str
    project_name: str
    branch: str
    source_file: str
    timestamp: str
    base_id: str | None
    produced: int = 0

    def event(
        self,
        event_type: EventType,
        content: str,
        labels: frozenset[EventType] = frozenset(),
        metadata: dict[str, Any] | None = None,
    ) -> Event:
        base = self.base_id or f"{self.session_id}:{self.line_no}"
        event_id = base if self.produced == 0 else f"{base}#{self.produced}"
        self.produced += 1
        return Event(
            id=event_id,
            type=event_type,
            content=content,
            timestamp=self.timestamp,
            session_id=self.session_id,
            project=self.project,
            project_name=self.project_name,
            branch=self.branch,
            source_file=self.source_file,
            source_line=self.line_no,
            labels=labels,
            metadata=metadata or {},
        )


def normalize_session(
    raw_lines: Iterable[str],
    project: str = "",
    project_name: str = "",
    session_id: str | None = None,
) -> list[Event]:
    """Convert one session's raw log lines into ordered Events."""
    return ClaudeCodeNormalizer().normalize(
        raw_lines,
        project=project,
        project_name=project_name,
        session_id=session_id,
    )
