"""Session assembly: group normalized events into Session aggregates."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

from .models import Event, EventType, Session

logger = logging.getLogger(__name__)

_EARLIEST = datetime.min.replace(tzinfo=UTC)
_LATEST = datetime.max.replace(tzinfo=UTC)


def assemble_session(events: list[Event]) -> Session:
    """Build a Session from the events of a single session id.

    Events keep their original order. Should the list mix session ids, the
    first id wins and the mismatch is logged.
    """
    session_id = events[0].session_id if events else "unknown"
    mixed = {e.session_id for e in events} - {session_id}
    if mixed:
        logger.warning(
            "Assembling session %s with events from %d other session id(s)",
            session_id,
            len(mixed),
        )
    return Session(session_id=session_id, events=list(events))


def group_sessions(events: list[Event]) -> list[Session]:
    """Group a mixed event stream by session id, preserving first-seen order."""
    by_session: dict[str, list[Event]] = {}
    for event in events:
        by_session.setdefault(event.session_id, []).append(event)
    return [assemble_session(group) for group in by_session.values()]


def interleave_commits(session: Session, commits: list[Event]) -> Session:
    """Merge commit events from a git log into a session by timestamp.

    Session events stay in their recorded order; each commit is placed
    before the first session event with a later timestamp. Session events
    without a parseable timestamp inherit the previous one; commits without
    one go to the end.
    """
    ordered_commits = sorted(
        (c for c in commits if c.is_a(EventType.COMMIT)),
        key=lambda c: c.parsed_timestamp or _LATEST,
    )
    if not ordered_commits:
        return session

    merged: list[Event] = []
    pending = iter(ordered_commits)
    next_commit = next(pending, None)
    current = _EARLIEST
    for event in session.events:
        current = event.parsed_timestamp or current
        while next_commit is not None and (next_commit.parsed_timestamp or _LATEST) < current:
            merged.append(next_commit)
            next_commit = next(pending, None)
        merged.append(event)
    if next_commit is not None:
        merged.append(next_commit)
        merged.extend(pending)

    return Session(session_id=session.session_id, events=merged)
