"""Core data models for Prompt Coach.

Configuration, persisted correction/pattern records and the scorecard report
are pydantic models so they validate on load and serialize to JSON. Session
events live in :mod:`promptcoach.sessions.models` as plain dataclasses.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)

from .exceptions import CapabilityError


class TriageLevel(str, Enum):
    """Ambiguity classification assigned to an instruction."""

    TRIVIAL = "TRIVIAL"
    CLEAR = "CLEAR"
    AMBIGUOUS = "AMBIGUOUS"
    CROSS_SERVICE = "CROSS_SERVICE"
    MULTI_STEP = "MULTI_STEP"

    @property
    def severity(self) -> int:
        """Rank used when escalating; higher is more severe."""
        return _TRIAGE_SEVERITY[self]


_TRIAGE_SEVERITY = {
    TriageLevel.TRIVIAL: 0,
    TriageLevel.CLEAR: 1,
    TriageLevel.AMBIGUOUS: 2,
    TriageLevel.CROSS_SERVICE: 3,
    TriageLevel.MULTI_STEP: 4,
}


class Strictness(str, Enum):
    """How eagerly short or vague instructions are treated as ambiguous."""

    RELAXED = "relaxed"
    STANDARD = "standard"
    STRICT = "strict"


# Rule-6 length threshold per strictness level
AMBIGUOUS_LENGTH_THRESHOLDS = {
    Strictness.RELAXED: 30,
    Strictness.STANDARD: 50,
    Strictness.STRICT: 80,
}


class TriageConfig(BaseModel):
    """Keyword lists and strictness for the triage classifier.

    Every field has a built-in default so a missing config file (or a file
    that only overrides one list) still yields a usable configuration.
    """

    skip: list[str] = Field(
        default_factory=lambda: ["git status", "git log", "format", "lint", "typo"],
        description="Keywords that mark an instruction as trivial",
    )
    always_check: list[str] = Field(
        default_factory=list,
        description="Domain keywords that always require clarification",
    )
    cross_service: list[str] = Field(
        default_factory=lambda: [
            "api contract",
            "schema",
            "migration",
            "frontend and backend",
            "across services",
            "microservice",
        ],
        description="Keywords indicating work spanning several services",
    )
    multi_step: list[str] = Field(
        default_factory=lambda: [
            "then",
            "after that",
            "afterwards",
            "and also",
            "first,",
            "finally",
            "step 1",
            "next,",
        ],
        description="Sequencing phrases indicating a multi-step instruction",
    )
    short_commands: list[str] = Field(
        default_factory=lambda: [
            "fix", "run", "commit", "push", "test", "lint", "build", "deploy",
            "format", "undo", "revert", "continue", "yes", "no", "ok", "go",
            "proceed", "stop", "retry",
        ],
        description="Leading words of common short commands",
    )
    strictness: Strictness = Field(
        default=Strictness.STANDARD,
        description="Widens or narrows the ambiguity thresholds",
    )

    @field_validator("skip", "always_check", "cross_service", "multi_step", "short_commands")
    @classmethod
    def normalize_keywords(cls, v: list[str]) -> list[str]:
        """Lowercase keywords and drop blanks."""
        return [k.strip().lower() for k in v if k and k.strip()]

    @property
    def ambiguous_length_threshold(self) -> int:
        """Instructions shorter than this without a file reference are ambiguous."""
        return AMBIGUOUS_LENGTH_THRESHOLDS[self.strictness]

    @property
    def check_vague_references(self) -> bool:
        """Whether vague pronouns and object-less verbs trigger ambiguity."""
        return self.strictness != Strictness.RELAXED


class Profile(str, Enum):
    """Capability profile selecting which operations are enabled."""

    MINIMAL = "minimal"
    STANDARD = "standard"
    FULL = "full"


ALL_OPERATIONS = frozenset({
    "classify",
    "check_patterns",
    "log_correction",
    "refresh_patterns",
    "scorecard",
    "session_stats",
    "estimate_cost",
})

MINIMAL_OPERATIONS = frozenset({"classify", "check_patterns", "session_stats"})


def capabilities_for(profile: Profile) -> frozenset[str]:
    """Return the set of operation names enabled for a profile."""
    if profile == Profile.MINIMAL:
        return MINIMAL_OPERATIONS
    # standard and full expose the same operations; they differ only in config
    return ALL_OPERATIONS


class CoachConfig(BaseModel):
    """Explicit configuration value threaded into classify/score calls."""

    profile: Profile = Field(default=Profile.STANDARD)
    triage: TriageConfig = Field(default_factory=TriageConfig)
    state_dir: Path | None = Field(
        default=None,
        description="Directory holding the correction log and pattern snapshot",
    )

    @property
    def capabilities(self) -> frozenset[str]:
        """Operations enabled for this configuration."""
        return capabilities_for(self.profile)

    def require(self, operation: str) -> None:
        """Raise CapabilityError unless the operation is enabled."""
        if operation not in self.capabilities:
            msg = f"Operation '{operation}' is not enabled in the {self.profile.value} profile"
            raise CapabilityError(msg, details={"profile": self.profile.value})


class CorrectionCategory(str, Enum):
    """Why a correction was needed."""

    VAGUE_PROMPT = "vague_prompt"
    STALE_CONTEXT = "stale_context"
    WRONG_ASSUMPTION = "wrong_assumption"
    WRONG_FILE = "wrong_file"
    WRONG_SCOPE = "wrong_scope"
    OTHER = "other"


class CorrectionEntry(BaseModel):
    """One logged correction. Entries are appended, never edited."""

    model_config = ConfigDict(populate_by_name=True)

    what_user_said: str = Field(
        ...,
        validation_alias=AliasChoices("what_user_said", "user_said"),
    )
    what_you_did_wrong: str = Field(
        ...,
        validation_alias=AliasChoices("what_you_did_wrong", "wrong_action"),
    )
    root_cause: str
    category: CorrectionCategory
    timestamp: str | None = None
    branch: str | None = None

    @property
    def text(self) -> str:
        """Combined text used for keyword extraction."""
        return f"{self.what_user_said} {self.what_you_did_wrong} {self.root_cause}"


class CorrectionSummary(BaseModel):
    """Category-frequency summary returned after logging a correction."""

    total: int
    counts: dict[str, int] = Field(default_factory=dict)
    top_category: str | None = None
    hint: str | None = None

    def percentage(self, category: str) -> int:
        """Share of the log in the given category, rounded."""
        if self.total == 0:
            return 0
        return round(self.counts.get(category, 0) / self.total * 100)


class CorrectionPattern(BaseModel):
    """A recurring cluster of two or more similar corrections."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    pattern: str
    keywords: list[str] = Field(default_factory=list)
    frequency: int = Field(..., ge=2)
    last_seen: str = Field(..., validation_alias=AliasChoices("last_seen", "lastSeen"))
    context: str = ""
    examples: list[str] = Field(default_factory=list)


def letter_grade(score: float) -> str:
    """Map a 0-100 score onto the fixed letter ladder."""
    if score >= 95:
        return "A+"
    if score >= 90:
        return "A"
    if score >= 85:
        return "A-"
    if score >= 80:
        return "B+"
    if score >= 75:
        return "B"
    if score >= 70:
        return "B-"
    if score >= 65:
        return "C+"
    if score >= 60:
        return "C"
    if score >= 55:
        return "C-"
    if score >= 50:
        return "D"
    return "F"


class ScoreExamples(BaseModel):
    """Illustrative prompts attached to a category."""

    good: list[str] = Field(default_factory=list)
    bad: list[str] = Field(default_factory=list)


class CategoryScore(BaseModel):
    """One dimension of the scorecard."""

    name: str
    score: int = Field(..., ge=0, le=100)
    evidence: str
    examples: ScoreExamples | None = None
    fallback: str | None = Field(
        default=None,
        description="Reason a neutral default was used instead of a measurement",
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def grade(self) -> str:
        """Letter grade derived from the score."""
        return letter_grade(self.score)


class Highlights(BaseModel):
    """Best and worst categories of a scorecard."""

    best: CategoryScore
    worst: CategoryScore


class Scorecard(BaseModel):
    """Aggregated discipline report over one or more sessions."""

    project: str
    period: str
    date: str
    categories: list[CategoryScore]
    overall: int = Field(..., ge=0, le=100)
    highlights: Highlights
    sessions_analyzed: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def overall_grade(self) -> str:
        """Letter grade derived from the overall score."""
        return letter_grade(self.overall)
