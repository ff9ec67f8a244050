"""Correction pattern learning.

Clusters the correction log by keyword overlap so recurring mistakes can be
flagged before they happen again. Greedy single-pass clustering, recomputed
wholesale on every refresh.
"""

from __future__ import annotations

import re
from collections import Counter
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .models import CorrectionEntry, CorrectionPattern
from .sessions.models import parse_timestamp

if TYPE_CHECKING:
    from collections.abc import Sequence

STOP_WORDS = frozenset({
    "the", "and", "that", "this", "with", "for", "not", "but", "was", "are",
    "you", "your", "have", "has", "had", "been", "were", "will", "would",
    "could", "should", "can", "did", "does", "don", "isn", "isn't", "don't",
    "use", "used", "using", "from", "into", "about", "just", "wrong", "again",
    "said", "instead", "meant", "want", "wanted", "need", "like",
})

OVERLAP_THRESHOLD = 0.3
MIN_CLUSTER_SIZE = 2
MIN_KEYWORD_HITS = 2
TOP_KEYWORDS = 8
MAX_EXAMPLES = 3
MAX_CONTEXT_CHARS = 300

_NON_KEYWORD_CHARS = re.compile(r"[^a-zA-Z0-9_\-/.]")


def extract_keywords(text: str) -> list[str]:
    """Extract meaningful keywords: 3+ chars, lowercased, deduplicated, no stop words."""
    seen: dict[str, None] = {}
    for word in _NON_KEYWORD_CHARS.sub(" ", text).split():
        if len(word) < 3:
            continue
        word = word.lower()
        if word in STOP_WORDS:
            continue
        seen.setdefault(word, None)
    return list(seen)


def keyword_overlap(a: Sequence[str], b: Sequence[str]) -> float:
    """Shared keywords divided by the size of the smaller keyword set."""
    if not a or not b:
        return 0.0
    set_b = set(b)
    shared = sum(1 for word in a if word in set_b)
    return shared / min(len(a), len(b))


def cluster_corrections(
    corrections: Sequence[CorrectionEntry],
    threshold: float = OVERLAP_THRESHOLD,
) -> list[list[int]]:
    """Greedily group corrections by keyword overlap.

    Each unassigned correction seeds a cluster and absorbs every later
    unassigned correction whose overlap with the seed meets the threshold.
    Clusters smaller than two are dropped.

    Returns:
        Index groups into ``corrections``, in seed order
    """
    keywords = [extract_keywords(c.text) for c in corrections]
    used: set[int] = set()
    groups: list[list[int]] = []

    for i in range(len(corrections)):
        if i in used:
            continue
        group = [i]
        used.add(i)
        for j in range(i + 1, len(corrections)):
            if j in used:
                continue
            if keyword_overlap(keywords[i], keywords[j]) >= threshold:
                group.append(j)
                used.add(j)
        if len(group) >= MIN_CLUSTER_SIZE:
            groups.append(group)

    return groups


def _last_seen(entries: Sequence[CorrectionEntry]) -> str:
    stamps = [e.timestamp for e in entries if e.timestamp]
    if not stamps:
        return datetime.now(tz=UTC).isoformat()
    return max(stamps)


def _build_pattern(index: int, entries: Sequence[CorrectionEntry]) -> CorrectionPattern:
    freq: Counter[str] = Counter()
    for entry in entries:
        freq.update(extract_keywords(entry.text))
    # most_common keeps first-seen order among equal counts
    top_keywords = [word for word, _count in freq.most_common(TOP_KEYWORDS)]

    longest = max(entries, key=lambda e: len(e.text))
    examples = [e.what_user_said for e in entries if e.what_user_said][:MAX_EXAMPLES]

    return CorrectionPattern(
        id=f"p{index + 1}",
        pattern=f"Recurring correction: {', '.join(top_keywords[:4])}",
        keywords=top_keywords,
        frequency=len(entries),
        last_seen=_last_seen(entries),
        context=longest.text.strip()[:MAX_CONTEXT_CHARS],
        examples=examples,
    )


def extract_patterns(corrections: Sequence[CorrectionEntry]) -> list[CorrectionPattern]:
    """Derive recurring patterns from the full correction log.

    Args:
        corrections: Correction log in append order

    Returns:
        Patterns sorted by descending frequency
    """
    if not corrections:
        return []
    groups = cluster_corrections(corrections)
    patterns = [
        _build_pattern(idx, [corrections[i] for i in group])
        for idx, group in enumerate(groups)
    ]
    return sorted(patterns, key=lambda p: p.frequency, reverse=True)


def match_patterns(
    instruction: str,
    patterns: Sequence[CorrectionPattern],
) -> list[CorrectionPattern]:
    """Return patterns with at least two keywords present in the instruction."""
    if not patterns:
        return []
    lowered = instruction.lower()
    matches: list[CorrectionPattern] = []
    for pattern in patterns:
        hits = sum(1 for kw in pattern.keywords if kw.lower() in lowered)
        if hits >= MIN_KEYWORD_HITS:
            matches.append(pattern)
    return matches


def format_time_ago(iso_date: str, now: datetime | None = None) -> str:
    """Render an ISO timestamp as today / yesterday / N days ago."""
    parsed = parse_timestamp(iso_date)
    if parsed is None:
        return "unknown"
    now = now or datetime.now(tz=UTC)
    days = (now - parsed).days
    if days <= 0:
        return "today"
    if days == 1:
        return "yesterday"
    return f"{days} days ago"


def format_pattern_matches(
    matches: Sequence[CorrectionPattern],
    now: datetime | None = None,
) -> str:
    """Format matched patterns as a warning block."""
    if not matches:
        return ""
    lines = ["Known patterns matched:", ""]
    for i, pattern in enumerate(matches, start=1):
        lines.append(f'{i}. "{pattern.pattern}" (corrected {pattern.frequency}x)')
        lines.append(f"   Context: {pattern.context[:150]}")
        lines.append(f"   Last triggered: {format_time_ago(pattern.last_seen, now)}")
        lines.append("")
    return "\n".join(lines)
