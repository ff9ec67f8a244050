"""Sessions: canonical event model, log normalization and session assembly.

Raw Claude Code session logs are decoded into immutable Events, which are
grouped into Session aggregates. Every downstream component (triage,
pattern learning, scoring) reads Sessions; none of them touch raw logs.
"""

from .assembler import assemble_session, group_sessions, interleave_commits
from .loader import SessionFile, discover_session_files, load_sessions, resolve_since
from .models import Event, EventType, Session, parse_timestamp
from .normalizer import (
    ClaudeCodeNormalizer,
    LogParser,
    SkippedLine,
    iter_log_lines,
    normalize_session,
)

__all__ = [
    "ClaudeCodeNormalizer",
    "Event",
    "EventType",
    "LogParser",
    "Session",
    "SessionFile",
    "SkippedLine",
    "assemble_session",
    "discover_session_files",
    "group_sessions",
    "interleave_commits",
    "iter_log_lines",
    "load_sessions",
    "normalize_session",
    "parse_timestamp",
    "resolve_since",
]
