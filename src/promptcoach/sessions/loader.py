"""Load sessions from a Claude Code projects directory."""

from __future__ import annotations

import logging
import re
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

from .assembler import assemble_session
from .models import Session, parse_timestamp
from .normalizer import ClaudeCodeNormalizer

logger = logging.getLogger(__name__)

PERIOD_DAYS = {"day": 1, "week": 7, "month": 30}

_RELATIVE_SINCE = re.compile(r"^(\d+)\s*days?$", re.IGNORECASE)


@dataclass(frozen=True)
class SessionFile:
    """A discovered session log with its project identity."""

    path: Path
    project: str
    project_name: str

    @property
    def session_id(self) -> str:
        return self.path.stem

    @property
    def mtime(self) -> datetime:
        return datetime.fromtimestamp(self.path.stat().st_mtime, tz=UTC)


def decode_project_dir(encoded: str) -> str:
    """Decode an encoded project directory: -Users-foo-myproject -> /Users/foo/myproject."""
    return "/" + encoded.replace("-", "/").lstrip("/")


def discover_session_files(root: Path | None = None) -> list[SessionFile]:
    """Find session logs grouped under their encoded project directory."""
    normalizer = ClaudeCodeNormalizer()
    search_root = root or normalizer.DEFAULT_PATH
    files: list[SessionFile] = []
    for path in normalizer.discover(search_root):
        encoded = path.parent.name if path.parent != search_root else ""
        decoded = decode_project_dir(encoded) if encoded else ""
        files.append(SessionFile(
            path=path,
            project=encoded,
            project_name=decoded.rstrip("/").rsplit("/", 1)[-1] if decoded else "",
        ))
    return files


def resolve_since(
    since: str | None,
    period: str,
    now: datetime | None = None,
) -> datetime | None:
    """Turn a ``since`` value or a period name into a cutoff datetime.

    ``since`` accepts an ISO date or a relative value like "7days". Without
    it, day/week/month map to 1/7/30 days; "session" means no cutoff.
    """
    now = now or datetime.now(tz=UTC)
    if since:
        relative = _RELATIVE_SINCE.match(since.strip())
        if relative:
            return now - timedelta(days=int(relative.group(1)))
        parsed = parse_timestamp(since.strip())
        if parsed is None:
            logger.warning("Ignoring unparseable since value %r", since)
        return parsed
    days = PERIOD_DAYS.get(period)
    return now - timedelta(days=days) if days else None


def _load_file(path: Path, project: str, project_name: str) -> Session | None:
    """Normalize and assemble one log file (module level so it pickles)."""
    try:
        events = ClaudeCodeNormalizer().normalize_file(path, project, project_name)
    except (OSError, ValueError) as e:
        logger.warning("Failed to read session log %s: %s", path, e)
        return None
    if not events:
        return None
    return assemble_session(events)


def load_sessions(
    root: Path | None = None,
    project: str | None = None,
    session_id: str | None = None,
    since: str | None = None,
    period: str = "day",
    max_workers: int = 1,
) -> list[Session]:
    """Load and assemble sessions matching the given filters.

    Args:
        root: Projects directory (defaults to ~/.claude/projects)
        project: Case-insensitive substring of the project dir or name
        session_id: Only load this session
        since: ISO date or relative "Ndays" cutoff on file modification time
        period: day, week, month or session; used when ``since`` is absent
        max_workers: Process pool size; 1 loads sequentially

    Returns:
        Sessions ordered by file path
    """
    cutoff = resolve_since(since, period)
    needle = project.lower() if project else None

    selected: list[SessionFile] = []
    for session_file in discover_session_files(root):
        if needle and needle not in session_file.project.lower() and (
            needle not in session_file.project_name.lower()
        ):
            continue
        if session_id and session_file.session_id != session_id:
            continue
        if cutoff and session_file.mtime < cutoff:
            continue
        selected.append(session_file)

    if max_workers <= 1 or len(selected) <= 1:
        loaded = [_load_file(f.path, f.project, f.project_name) for f in selected]
        return [s for s in loaded if s is not None]

    results: dict[Path, Session] = {}
    with ProcessPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(_load_file, f.path, f.project, f.project_name): f.path
            for f in selected
        }
        for future in as_completed(futures):
            session = future.result()
            if session is not None:
                results[futures[future]] = session
    return [results[f.path] for f in selected if f.path in results]
