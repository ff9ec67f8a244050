"""Prompt Coach: session analytics for AI pair-programming."""

__version__ = "0.1.0"
__author__ = "Prompt Coach Contributors"
__description__ = "Instruction triage, correction pattern learning and session scorecards"

from .models import CoachConfig, CorrectionEntry, CorrectionPattern, Scorecard, TriageConfig, TriageLevel
from .patterns import extract_patterns, match_patterns
from .scorecard import compute_scorecard
from .store import CorrectionStore
from .triage import TriageClassifier, classify

__all__ = [
    "CoachConfig",
    "CorrectionEntry",
    "CorrectionPattern",
    "CorrectionStore",
    "Scorecard",
    "TriageClassifier",
    "TriageConfig",
    "TriageLevel",
    "classify",
    "compute_scorecard",
    "extract_patterns",
    "match_patterns",
]
