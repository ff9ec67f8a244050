"""Triage classification of incoming instructions.

An ordered list of guards is evaluated once per instruction; the first match
wins. Learned correction patterns can then escalate a low-severity result to
AMBIGUOUS, never demote it.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .models import CorrectionPattern, TriageConfig, TriageLevel
from .patterns import match_patterns
from .signals import contains_keyword, has_file_ref

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

SHORT_COMMAND_MAX_CHARS = 20

IMPERATIVE_VERBS = frozenset({
    "add", "build", "change", "commit", "create", "delete", "deploy", "fix",
    "implement", "migrate", "move", "push", "refactor", "remove", "rename",
    "replace", "run", "test", "update", "write",
})

_CLAUSE_SPLIT = re.compile(r"[,;]|\band\b|\.\s+", re.IGNORECASE)
_VAGUE_PRONOUN = re.compile(r"\b(?:it|them|that)\b", re.IGNORECASE)
_VAGUE_VERB = re.compile(
    r"\b(?:fix|update|improve|clean up|refactor|handle|tidy up|polish)\s+"
    r"(?:things|stuff|everything|the code|the issue|the bug|the problem)\b",
    re.IGNORECASE,
)
_BARE_VERB = re.compile(
    r"^\s*(?:please\s+)?(?:fix|update|improve|clean up|refactor|handle|tidy up|polish)\s*[.!?]*\s*$",
    re.IGNORECASE,
)


@dataclass
class TriageResult:
    """Outcome of classifying one instruction, with the rule that fired."""

    level: TriageLevel
    rule: str
    reason: str
    matched_patterns: list[CorrectionPattern] = field(default_factory=list)
    escalated: bool = False


class TriageClassifier:
    """Classifies instructions by ambiguity before they are acted on."""

    def __init__(
        self,
        config: TriageConfig | None = None,
        patterns: Sequence[CorrectionPattern] | None = None,
    ) -> None:
        """Initialize the classifier.

        Args:
            config: Keyword lists and strictness, defaults when not provided
            patterns: Learned correction patterns used for escalation
        """
        self.config = config or TriageConfig()
        self.patterns = list(patterns or [])

    def triage(self, instruction: str) -> TriageResult:
        """Classify an instruction and explain the decision."""
        text = instruction.strip()
        result = self._evaluate_guards(text)

        matches = match_patterns(text, self.patterns)
        if matches:
            result.matched_patterns = matches
            if result.level.severity < TriageLevel.AMBIGUOUS.severity:
                logger.debug(
                    "Escalating %s to AMBIGUOUS: matched %d learned pattern(s)",
                    result.level.value,
                    len(matches),
                )
                result = TriageResult(
                    level=TriageLevel.AMBIGUOUS,
                    rule="pattern_escalation",
                    reason=f"Matches known correction pattern {matches[0].id} ({matches[0].pattern})",
                    matched_patterns=matches,
                    escalated=True,
                )
        return result

    def _evaluate_guards(self, text: str) -> TriageResult:
        cfg = self.config

        keyword = self._first_keyword(text, cfg.skip)
        if keyword:
            return TriageResult(TriageLevel.TRIVIAL, "skip_keyword", f"Contains skip keyword '{keyword}'")

        keyword = self._first_keyword(text, cfg.multi_step)
        if keyword:
            return TriageResult(TriageLevel.MULTI_STEP, "multi_step", f"Contains sequencing phrase '{keyword}'")
        verbs = self._clause_verbs(text)
        if len(verbs) >= 2:
            return TriageResult(
                TriageLevel.MULTI_STEP,
                "multi_step",
                f"Contains several actions: {', '.join(verbs)}",
            )

        keyword = self._first_keyword(text, cfg.cross_service)
        if keyword:
            return TriageResult(
                TriageLevel.CROSS_SERVICE,
                "cross_service",
                f"Contains cross-service keyword '{keyword}'",
            )

        keyword = self._first_keyword(text, cfg.always_check)
        if keyword:
            return TriageResult(TriageLevel.AMBIGUOUS, "always_check", f"Touches '{keyword}', which always needs a check")

        if len(text) < SHORT_COMMAND_MAX_CHARS and self._is_short_command(text):
            return TriageResult(TriageLevel.TRIVIAL, "short_command", "Short, common command")

        if len(text) < cfg.ambiguous_length_threshold and not has_file_ref(text):
            return TriageResult(
                TriageLevel.AMBIGUOUS,
                "short_without_file",
                f"Under {cfg.ambiguous_length_threshold} characters with no file or path reference",
            )

        if cfg.check_vague_references:
            if _VAGUE_PRONOUN.search(text):
                return TriageResult(TriageLevel.AMBIGUOUS, "vague_reference", "Refers to something only by pronoun")
            if _VAGUE_VERB.search(text) or _BARE_VERB.match(text):
                return TriageResult(TriageLevel.AMBIGUOUS, "vague_reference", "Action has no concrete object")

        return TriageResult(TriageLevel.CLEAR, "clear", "Specific enough to act on")

    @staticmethod
    def _first_keyword(text: str, keywords: Sequence[str]) -> str | None:
        for keyword in keywords:
            if contains_keyword(text, keyword):
                return keyword
        return None

    @staticmethod
    def _clause_verbs(text: str) -> list[str]:
        """Distinct imperative verbs that open a clause, in order."""
        verbs: list[str] = []
        for clause in _CLAUSE_SPLIT.split(text.lower()):
            words = clause.split()
            if words and words[0] in IMPERATIVE_VERBS and words[0] not in verbs:
                verbs.append(words[0])
        return verbs

    def _is_short_command(self, text: str) -> bool:
        words = re.findall(r"[a-z']+", text.lower())
        return bool(words) and words[0] in self.config.short_commands


def classify(
    instruction: str,
    config: TriageConfig | None = None,
    patterns: Sequence[CorrectionPattern] | None = None,
) -> TriageLevel:
    """Classify an instruction into a triage level."""
    return TriageClassifier(config, patterns).triage(instruction).level
