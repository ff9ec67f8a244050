"""Data models for recorded sessions.

Pure Python dataclasses for the canonical event stream and the session
aggregate built from it. Events are frozen once the normalizer creates them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from functools import cached_property
from typing import Any


class EventType(str, Enum):
    """Kind of thing that happened during a session."""

    PROMPT = "prompt"
    ASSISTANT_RESPONSE = "assistant_response"
    TOOL_CALL = "tool_call"
    SUB_AGENT_SPAWN = "sub_agent_spawn"
    CORRECTION = "correction"
    COMPACTION = "compaction"
    ERROR = "error"
    COMMIT = "commit"


def parse_timestamp(ts: str | float | int | None) -> datetime | None:
    """Parse an ISO-8601 string or epoch number into an aware datetime."""
    if ts is None or ts == "":
        return None
    if isinstance(ts, float | int):
        # Millisecond epochs are far larger than any plausible second epoch
        if ts > 1e12:
            ts = ts / 1000
        try:
            return datetime.fromtimestamp(ts, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    try:
        parsed = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


@dataclass(frozen=True)
class Event:
    """An immutable record of one thing that happened during a session.

    ``type`` is the primary kind; ``labels`` always contains it plus any
    additional classifications (a correcting prompt is labelled both
    ``prompt`` and ``correction``, a Task dispatch both ``tool_call`` and
    ``sub_agent_spawn``).
    """

    id: str
    type: EventType
    content: str
    timestamp: str
    session_id: str
    project: str = ""
    project_name: str = ""
    branch: str = ""
    source_file: str = ""
    source_line: int = 0
    labels: frozenset[EventType] = frozenset()
    metadata: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)

    def __post_init__(self) -> None:
        """Ensure the primary type is always one of the labels."""
        if self.type not in self.labels:
            object.__setattr__(self, "labels", self.labels | {self.type})

    def is_a(self, event_type: EventType) -> bool:
        """Check whether the event carries the given label."""
        return event_type in self.labels

    def preview(self, limit: int = 120) -> str:
        """Content truncated for display."""
        if len(self.content) <= limit:
            return self.content
        return self.content[: limit - 3].rstrip() + "..."

    @property
    def parsed_timestamp(self) -> datetime | None:
        """Timestamp as a datetime, or None when it does not parse."""
        return parse_timestamp(self.timestamp)


@dataclass
class Session:
    """An ordered sequence of events sharing one session id.

    The filtered views are computed from ``events`` and never copy or
    reorder an event.
    """

    session_id: str
    events: list[Event]

    def _view(self, event_type: EventType) -> list[Event]:
        return [e for e in self.events if e.is_a(event_type)]

    @cached_property
    def user_messages(self) -> list[Event]:
        """User prompts, including prompts that are corrections."""
        return self._view(EventType.PROMPT)

    @cached_property
    def assistant_messages(self) -> list[Event]:
        """Assistant text responses."""
        return self._view(EventType.ASSISTANT_RESPONSE)

    @cached_property
    def tool_calls(self) -> list[Event]:
        """Structured tool invocations, including sub-agent dispatches."""
        return self._view(EventType.TOOL_CALL)

    @cached_property
    def corrections(self) -> list[Event]:
        """Prompts that corrected the previous assistant turn."""
        return self._view(EventType.CORRECTION)

    @cached_property
    def compactions(self) -> list[Event]:
        """Context compression markers."""
        return self._view(EventType.COMPACTION)

    @cached_property
    def commits(self) -> list[Event]:
        """Version-control commits."""
        return self._view(EventType.COMMIT)

    @cached_property
    def sub_agent_spawns(self) -> list[Event]:
        """Task/agent dispatch tool calls."""
        return self._view(EventType.SUB_AGENT_SPAWN)

    @cached_property
    def errors(self) -> list[Event]:
        """Failed tool results."""
        return self._view(EventType.ERROR)

    @cached_property
    def duration_minutes(self) -> float:
        """Minutes between the first and last event; 0 when unmeasurable."""
        if len(self.events) < 2:
            return 0.0
        first = self.events[0].parsed_timestamp
        last = self.events[-1].parsed_timestamp
        if first is None or last is None:
            return 0.0
        return (last - first).total_seconds() / 60

    @property
    def project_name(self) -> str:
        """Project name of the first event that has one."""
        for event in self.events:
            if event.project_name:
                return event.project_name
        return ""

    def index_of(self, event: Event) -> int:
        """Position of an event in the session (identity match)."""
        for i, candidate in enumerate(self.events):
            if candidate is event:
                return i
        return -1
