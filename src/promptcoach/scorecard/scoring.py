"""The twelve scoring functions.

Each function takes the full session collection and returns one
CategoryScore. None of them raise on empty or missing signal; they fall
back to a documented neutral score and record why in ``fallback``.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Sequence

from ..models import CategoryScore, ScoreExamples
from ..sessions.models import EventType, Session
from ..signals import has_file_ref, work_area

NEUTRAL_SCORE = 75

PLANNING_PROMPT_MIN_CHARS = 100
DELEGATION_MIN_CHARS = 200
FOLLOW_UP_MIN_CHARS = 50
BLOATED_SESSION_TOOL_CALLS = 200
COMPACTION_LOOKBACK_EVENTS = 10
RECOVERY_WINDOW_EVENTS = 2
MAX_EXAMPLES = 3

_TOOL_FILE_PATH = re.compile(r"""(?:file_path|path)["']?\s*[:=]\s*["']([^"']+)""")
_WORKSPACE_DOCS = re.compile(r"\.claude/|CLAUDE\.md")
_CONTEXT_DOCS = re.compile(r"CLAUDE\.md|\.claude/|checkpoint|context|README", re.IGNORECASE)
_VERIFICATION_COMMANDS = re.compile(
    r"test|build|lint|check|verify|jest|vitest|pytest|cargo.test",
    re.IGNORECASE,
)


def clamp(value: float) -> int:
    """Round half up and clamp into [0, 100]."""
    return max(0, min(100, math.floor(value + 0.5)))


def pct(numerator: float, denominator: float) -> int:
    """Rounded percentage; callers handle a zero denominator first."""
    return clamp(numerator / denominator * 100)


def _neutral(name: str, reason: str, score: int = NEUTRAL_SCORE) -> CategoryScore:
    return CategoryScore(name=name, score=score, evidence=reason, fallback=reason)


def score_plans(sessions: Sequence[Session]) -> CategoryScore:
    """Sessions whose first three prompts include a detailed, file-specific plan."""
    name = "Plans"
    if not sessions:
        return _neutral(name, "No sessions to analyze.")

    planned = 0
    for session in sessions:
        first3 = session.user_messages[:3]
        if any(
            len(m.content) > PLANNING_PROMPT_MIN_CHARS and has_file_ref(m.content)
            for m in first3
        ):
            planned += 1

    return CategoryScore(
        name=name,
        score=pct(planned, len(sessions)),
        evidence=(
            f"{planned}/{len(sessions)} sessions began with file-specific planning prompts "
            f"(>{PLANNING_PROMPT_MIN_CHARS} chars with file references)."
        ),
    )


def score_clarification(sessions: Sequence[Session]) -> CategoryScore:
    """User prompts that name a file or path."""
    name = "Clarification"
    prompts = [m for s in sessions for m in s.user_messages]
    if not prompts:
        return _neutral(name, "No user prompts to analyze.")

    specific = sum(1 for m in prompts if has_file_ref(m.content))
    return CategoryScore(
        name=name,
        score=pct(specific, len(prompts)),
        evidence=f"{specific}/{len(prompts)} user prompts contained file paths or specific identifiers.",
    )


def score_delegation(sessions: Sequence[Session]) -> CategoryScore:
    """Sub-agent tasks dispatched with a detailed description."""
    name = "Delegation"
    spawns = [e for s in sessions for e in s.sub_agent_spawns]
    if not spawns:
        return _neutral(name, "No sub-agent spawns detected. Default score.")

    quality = sum(1 for e in spawns if len(e.content) > DELEGATION_MIN_CHARS)
    return CategoryScore(
        name=name,
        score=pct(quality, len(spawns)),
        evidence=(
            f"{quality}/{len(spawns)} sub-agent tasks had detailed descriptions "
            f"(>{DELEGATION_MIN_CHARS} chars)."
        ),
    )


def score_follow_up_specificity(sessions: Sequence[Session]) -> CategoryScore:
    """Prompts answering an assistant turn that are specific or detailed."""
    name = "Follow-up Specificity"
    follow_ups = 0
    specific = 0
    good: list[str] = []
    bad: list[str] = []

    for session in sessions:
        previous_turn: EventType | None = None
        for event in session.events:
            if event.is_a(EventType.PROMPT):
                if previous_turn == EventType.ASSISTANT_RESPONSE:
                    follow_ups += 1
                    if has_file_ref(event.content) or len(event.content) >= FOLLOW_UP_MIN_CHARS:
                        specific += 1
                        if len(good) < MAX_EXAMPLES and has_file_ref(event.content):
                            good.append(event.content[:120])
                    elif len(bad) < MAX_EXAMPLES:
                        bad.append(event.content[:80])
                previous_turn = EventType.PROMPT
            elif event.is_a(EventType.ASSISTANT_RESPONSE):
                previous_turn = EventType.ASSISTANT_RESPONSE

    if follow_ups == 0:
        return _neutral(name, "No follow-up prompts after assistant responses.")

    return CategoryScore(
        name=name,
        score=pct(specific, follow_ups),
        evidence=f"{specific}/{follow_ups} follow-up prompts had specific file references or sufficient detail.",
        examples=ScoreExamples(good=good, bad=bad) if good or bad else None,
    )


def _efficiency_step(ratio: float) -> int:
    if ratio <= 5:
        return 100
    if ratio <= 10:
        return 90
    if ratio <= 20:
        return 75
    if ratio <= 40:
        return 60
    return 40


def score_token_efficiency(sessions: Sequence[Session]) -> CategoryScore:
    """Tool calls per distinct file touched, penalizing bloated sessions."""
    name = "Token Efficiency"
    total_calls = sum(len(s.tool_calls) for s in sessions)
    if total_calls == 0:
        return _neutral(name, "No tool calls to analyze.")

    total_files = 0
    for session in sessions:
        files = set()
        for call in session.tool_calls:
            match = _TOOL_FILE_PATH.search(call.content)
            if match:
                files.add(match.group(1))
        total_files += len(files) or 1

    ratio = total_calls / total_files
    bloated = sum(1 for s in sessions if len(s.tool_calls) > BLOATED_SESSION_TOOL_CALLS)
    score = clamp(_efficiency_step(ratio) - bloated * 10)

    return CategoryScore(
        name=name,
        score=score,
        evidence=(
            f"{total_calls} tool calls across {total_files} unique files (ratio: {ratio:.1f}). "
            f"{bloated} session(s) exceeded {BLOATED_SESSION_TOOL_CALLS} tool calls."
        ),
    )


def _sequencing_step(switch_rate: float) -> int:
    if switch_rate <= 0.05:
        return 100
    if switch_rate <= 0.1:
        return 90
    if switch_rate <= 0.2:
        return 75
    if switch_rate <= 0.35:
        return 60
    return 45


def score_sequencing(
    sessions: Sequence[Session],
    pathless_prompts_keep_area: bool = True,
) -> CategoryScore:
    """Rate of topic switches between consecutive prompts.

    A prompt's area is the directory of its first path. With
    ``pathless_prompts_keep_area`` a prompt without a path leaves the current
    area unchanged; otherwise it resets it, so the next path starts fresh.
    """
    name = "Sequencing"
    switches = 0
    prompts = 0
    for session in sessions:
        last_area = ""
        for message in session.user_messages:
            prompts += 1
            area = work_area(message.content)
            if area and last_area and area != last_area:
                switches += 1
            if area or not pathless_prompts_keep_area:
                last_area = area

    if prompts == 0:
        return _neutral(name, "No user prompts to analyze.")

    switch_rate = switches / prompts
    return CategoryScore(
        name=name,
        score=clamp(_sequencing_step(switch_rate)),
        evidence=f"{switches} topic switches across {prompts} prompts ({switch_rate * 100:.0f}% switch rate).",
    )


def score_compaction_management(sessions: Sequence[Session]) -> CategoryScore:
    """Compactions preceded by a commit within the prior ten events."""
    name = "Compaction Management"
    total = 0
    covered = 0
    for session in sessions:
        for index, event in enumerate(session.events):
            if not event.is_a(EventType.COMPACTION):
                continue
            total += 1
            window = session.events[max(0, index - COMPACTION_LOOKBACK_EVENTS):index]
            if any(e.is_a(EventType.COMMIT) for e in window):
                covered += 1

    if total == 0:
        return _neutral(name, "No compactions needed; sessions stayed manageable.", score=100)

    return CategoryScore(
        name=name,
        score=pct(covered, total),
        evidence=(
            f"{covered}/{total} compactions were preceded by a commit within "
            f"{COMPACTION_LOOKBACK_EVENTS} events."
        ),
    )


def score_session_lifecycle(sessions: Sequence[Session]) -> CategoryScore:
    """Sessions that commit at a healthy cadence."""
    name = "Session Lifecycle"
    if not sessions:
        return _neutral(name, "No sessions to analyze.")

    healthy = 0.0
    for session in sessions:
        duration = session.duration_minutes
        commits = len(session.commits)
        if duration <= 0:
            healthy += 1
            continue
        if duration > 180 and commits == 0:
            continue
        interval = duration / commits if commits else duration
        if interval <= 30:
            healthy += 1
        elif interval <= 60:
            healthy += 0.5

    healthy_count = math.floor(healthy + 0.5)
    return CategoryScore(
        name=name,
        score=pct(healthy_count, len(sessions)),
        evidence=f"{healthy_count}/{len(sessions)} sessions had healthy commit frequency (every 30 min or less).",
    )


def score_error_recovery(sessions: Sequence[Session]) -> CategoryScore:
    """Correction rate, offset by how quickly corrections were acted on."""
    name = "Error Recovery"
    corrections = 0
    fast_recoveries = 0
    messages = 0
    for session in sessions:
        messages += len(session.events)
        for index, event in enumerate(session.events):
            if not event.is_a(EventType.CORRECTION):
                continue
            corrections += 1
            after = session.events[index + 1:index + 1 + RECOVERY_WINDOW_EVENTS]
            if any(e.is_a(EventType.TOOL_CALL) or e.is_a(EventType.ASSISTANT_RESPONSE) for e in after):
                fast_recoveries += 1

    if corrections == 0:
        return _neutral(name, "No corrections needed.", score=95)

    correction_rate = corrections / messages if messages else 0.0
    score = clamp(100 - correction_rate * 500)
    score = clamp(score + pct(fast_recoveries, corrections) * 0.2)
    return CategoryScore(
        name=name,
        score=score,
        evidence=(
            f"{corrections} corrections ({correction_rate * 100:.1f}% of messages). "
            f"{fast_recoveries} recovered within {RECOVERY_WINDOW_EVENTS} messages."
        ),
    )


def score_workspace_hygiene(sessions: Sequence[Session]) -> CategoryScore:
    """Baseline plus a bonus for sessions that use workspace docs."""
    name = "Workspace Hygiene"
    referencing = sum(
        1 for s in sessions
        if any(_WORKSPACE_DOCS.search(e.content) for e in s.events)
    )
    score = clamp(NEUTRAL_SCORE + min(referencing * 5, 20))
    return CategoryScore(
        name=name,
        score=score,
        evidence=(
            f"Default baseline {NEUTRAL_SCORE}. {referencing} session(s) referenced "
            ".claude/ workspace docs (+bonus)."
        ),
        fallback=None if referencing else "No sessions referenced workspace docs; baseline score.",
    )


def score_cross_session_continuity(sessions: Sequence[Session]) -> CategoryScore:
    """Sessions that start by reading project context docs."""
    name = "Cross-Session Continuity"
    if not sessions:
        return _neutral(name, "No sessions to analyze.")

    good = sum(
        1 for s in sessions
        if any(_CONTEXT_DOCS.search(call.content) for call in s.tool_calls[:3])
    )
    return CategoryScore(
        name=name,
        score=pct(good, len(sessions)),
        evidence=f"{good}/{len(sessions)} sessions started by reading project context docs.",
    )


def score_verification(sessions: Sequence[Session]) -> CategoryScore:
    """Sessions that ran tests or builds near the end."""
    name = "Verification"
    if not sessions:
        return _neutral(name, "No sessions to analyze.")

    verified = 0
    for session in sessions:
        tail = session.events[math.floor(len(session.events) * 0.9):]
        if any(
            e.is_a(EventType.TOOL_CALL) and _VERIFICATION_COMMANDS.search(e.content)
            for e in tail
        ):
            verified += 1

    return CategoryScore(
        name=name,
        score=pct(verified, len(sessions)),
        evidence=f"{verified}/{len(sessions)} sessions ran tests/builds in the final 10% of events.",
    )


ScoringFunction = Callable[[Sequence[Session]], CategoryScore]

# Fixed report order
SCORING_FUNCTIONS: tuple[ScoringFunction, ...] = (
    score_plans,
    score_clarification,
    score_delegation,
    score_follow_up_specificity,
    score_token_efficiency,
    score_sequencing,
    score_compaction_management,
    score_session_lifecycle,
    score_error_recovery,
    score_workspace_hygiene,
    score_cross_session_continuity,
    score_verification,
)
