"""Lexical signals shared by the normalizer, classifier and scoring engine.

Heuristic regexes only - no ML, no embeddings.
"""

from __future__ import annotations

import re

# Path-like substrings: "/src/app.py" or "app.py"
PATH_PATTERN = re.compile(r"(?:/[\w./-]+\.\w{1,6}|\b\w+\.\w{2,6}\b)")

FILE_EXTENSION_PATTERN = re.compile(
    r"\.\b(?:ts|tsx|js|jsx|py|rs|go|rb|java|c|cpp|h|css|scss|html|json|yaml|yml"
    r"|toml|md|sql|sh)\b",
)

# First absolute-looking path in a prompt, used to derive a work area
DIRECTORY_PATH_PATTERN = re.compile(r"/[\w./-]+")

# Negation/correction cues a user sends after an assistant turn
CORRECTION_CUES = [
    re.compile(r"(?i)\bno\b"),
    re.compile(r"(?i)\bwrong\b"),
    re.compile(r"(?i)\bnot that\b"),
    re.compile(r"(?i)\bi meant\b"),
    re.compile(r"(?i)\bactually\b"),
    re.compile(r"(?i)\binstead\b"),
    re.compile(r"(?i)\bundo\b"),
    re.compile(r"(?i)\brevert\b"),
]


def has_file_ref(text: str) -> bool:
    """Check whether text names a file or path."""
    return bool(PATH_PATTERN.search(text) or FILE_EXTENSION_PATTERN.search(text))


def has_correction_cue(text: str) -> bool:
    """Check whether text contains a negation or correction cue."""
    return any(pattern.search(text) for pattern in CORRECTION_CUES)


def contains_keyword(text: str, keyword: str) -> bool:
    """Case-insensitive keyword match anchored on word boundaries.

    Boundaries are only enforced on sides where the keyword starts or ends
    with a word character, so "next," and "api contract" still match.
    """
    keyword = keyword.strip().lower()
    if not keyword:
        return False
    prefix = r"\b" if re.match(r"\w", keyword) else ""
    suffix = r"\b" if re.search(r"\w$", keyword) else ""
    return re.search(prefix + re.escape(keyword) + suffix, text.lower()) is not None


def work_area(text: str) -> str:
    """Directory part of the first path-like substring, or "" when none."""
    match = DIRECTORY_PATH_PATTERN.search(text)
    if not match:
        return ""
    return "/".join(match.group(0).split("/")[:-1])
