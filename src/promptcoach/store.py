"""Append-only correction log and derived pattern snapshot for one project."""

from __future__ import annotations

import fcntl
import json
import logging
import os
import tempfile
import time
from collections import Counter
from collections.abc import Generator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from .exceptions import StoreError
from .models import CorrectionEntry, CorrectionPattern, CorrectionSummary
from .patterns import extract_patterns

logger = logging.getLogger(__name__)

STATE_DIR_NAME = Path(".claude") / "prompt-coach-state"
CORRECTIONS_FILE = "corrections.jsonl"
PATTERNS_FILE = "patterns.json"
LOCK_FILE = "corrections.lock"

CATEGORY_HINTS = {
    "vague_prompt": "Most errors come from vague prompts. Classify instructions before acting on them.",
    "stale_context": "Most errors come from stale context. Checkpoint more often and re-read workspace docs at session start.",
    "wrong_file": "Most errors come from wrong files. Verify file paths before editing.",
}


class CorrectionStore:
    """Durable correction log plus pattern cache for a single project.

    The log is append-only. The pattern snapshot is a derived view that is
    fully replaced on every refresh. Writers are serialized with an exclusive
    file lock so logging a correction never interleaves with a refresh.
    """

    def __init__(self, state_dir: Path, lock_timeout: float = 5.0) -> None:
        """Initialize the store.

        Args:
            state_dir: Directory holding the log, snapshot and lock file
            lock_timeout: Seconds to wait for the writer lock
        """
        self.state_dir = Path(state_dir)
        self.lock_timeout = lock_timeout

    @classmethod
    def for_project(cls, project_dir: Path) -> CorrectionStore:
        """Store rooted at <project>/.claude/prompt-coach-state."""
        return cls(Path(project_dir) / STATE_DIR_NAME)

    @property
    def log_path(self) -> Path:
        return self.state_dir / CORRECTIONS_FILE

    @property
    def patterns_path(self) -> Path:
        return self.state_dir / PATTERNS_FILE

    @contextmanager
    def lock(self) -> Generator[None]:
        """Hold the exclusive writer lock for this project.

        Raises:
            StoreError: If the lock cannot be acquired within the timeout
        """
        self._ensure_dir()
        start_time = time.time()
        lock_fd = open(self.state_dir / LOCK_FILE, "w")  # noqa: SIM115
        acquired = False
        try:
            while True:
                try:
                    fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    acquired = True
                    break
                except OSError:
                    if time.time() - start_time >= self.lock_timeout:
                        break
                    time.sleep(0.05)
            if not acquired:
                msg = f"Timed out waiting for correction store lock in {self.state_dir}"
                raise StoreError(msg, details={"timeout": self.lock_timeout})
            yield
        finally:
            if acquired:
                try:
                    fcntl.flock(lock_fd, fcntl.LOCK_UN)
                except OSError as e:
                    logger.debug("Failed to unlock correction store: %s", e)
            lock_fd.close()

    def _ensure_dir(self) -> None:
        try:
            self.state_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            msg = f"Cannot create state directory {self.state_dir}: {e}"
            raise StoreError(msg) from e

    def read_corrections(self) -> list[CorrectionEntry]:
        """Read the correction log, skipping malformed lines."""
        if not self.log_path.exists():
            return []
        try:
            raw = self.log_path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning("Failed to read correction log %s: %s", self.log_path, e)
            return []

        entries: list[CorrectionEntry] = []
        for line_no, line in enumerate(raw.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                entries.append(CorrectionEntry.model_validate_json(line))
            except ValidationError as e:
                logger.debug(
                    "Skipping malformed correction at %s:%d (%d error(s))",
                    self.log_path,
                    line_no,
                    e.error_count(),
                )
        return entries

    def log_correction(self, entry: CorrectionEntry) -> CorrectionSummary:
        """Append a correction and return the updated category summary.

        The entry is stamped with the current UTC time when it has none.

        Raises:
            StoreError: If the log cannot be written
        """
        if entry.timestamp is None:
            entry = entry.model_copy(update={"timestamp": datetime.now(tz=UTC).isoformat()})

        with self.lock():
            try:
                with self.log_path.open("a", encoding="utf-8") as f:
                    f.write(entry.model_dump_json(exclude_none=True) + "\n")
            except OSError as e:
                msg = f"Failed to append to correction log {self.log_path}: {e}"
                raise StoreError(msg) from e
            corrections = self.read_corrections()

        logger.info("Logged %s correction (%d total)", entry.category.value, len(corrections))
        return summarize_corrections(corrections)

    def refresh_patterns(self) -> list[CorrectionPattern]:
        """Recompute patterns from the full log and replace the snapshot."""
        with self.lock():
            patterns = extract_patterns(self.read_corrections())
            self._write_snapshot(patterns)
        logger.info("Refreshed %d correction pattern(s)", len(patterns))
        return patterns

    def load_patterns(self) -> list[CorrectionPattern]:
        """Load the last pattern snapshot; empty when missing or unreadable."""
        if not self.patterns_path.exists():
            return []
        try:
            data = json.loads(self.patterns_path.read_text(encoding="utf-8", errors="replace"))
        except (ValueError, RecursionError, OSError) as e:
            logger.warning("Ignoring unreadable pattern snapshot %s: %s", self.patterns_path, e)
            return []

        patterns: list[CorrectionPattern] = []
        raw_patterns = data.get("patterns") if isinstance(data, dict) else None
        if not isinstance(raw_patterns, list):
            logger.warning("Ignoring pattern snapshot without a pattern list: %s", self.patterns_path)
            return []
        for raw in raw_patterns:
            try:
                patterns.append(CorrectionPattern.model_validate(raw))
            except ValidationError:
                logger.debug("Skipping invalid pattern in snapshot: %r", raw)
        return patterns

    def _write_snapshot(self, patterns: list[CorrectionPattern]) -> None:
        payload = {
            "patterns": [p.model_dump() for p in patterns],
            "updated": datetime.now(tz=UTC).isoformat(),
        }
        tmp_name: str | None = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.state_dir, prefix=".patterns-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            os.replace(tmp_name, self.patterns_path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            msg = f"Failed to write pattern snapshot {self.patterns_path}: {e}"
            raise StoreError(msg) from e


def summarize_corrections(corrections: list[CorrectionEntry]) -> CorrectionSummary:
    """Count corrections per category and pick the most common one."""
    counts = Counter(c.category.value for c in corrections)
    top = counts.most_common(1)
    top_category = top[0][0] if top else None
    return CorrectionSummary(
        total=len(corrections),
        counts=dict(counts),
        top_category=top_category,
        hint=CATEGORY_HINTS.get(top_category) if top_category else None,
    )
