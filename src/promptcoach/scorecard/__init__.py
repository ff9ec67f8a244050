"""Twelve-category session discipline scorecard."""

from .engine import ScoringOptions, compute_highlights, compute_scorecard
from .render import render_html, render_markdown, render_radar_svg
from .scoring import NEUTRAL_SCORE, SCORING_FUNCTIONS, clamp, pct

__all__ = [
    "NEUTRAL_SCORE",
    "SCORING_FUNCTIONS",
    "ScoringOptions",
    "clamp",
    "compute_highlights",
    "compute_scorecard",
    "pct",
    "render_html",
    "render_markdown",
    "render_radar_svg",
]
