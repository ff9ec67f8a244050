"""Scorecard aggregation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import partial
from typing import TYPE_CHECKING

from ..models import CategoryScore, Highlights, Scorecard
from .scoring import SCORING_FUNCTIONS, ScoringFunction, clamp, score_sequencing

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..sessions.models import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoringOptions:
    """Tunable heuristics for the scoring functions."""

    pathless_prompts_keep_area: bool = True


def _scoring_functions(options: ScoringOptions) -> list[ScoringFunction]:
    functions = list(SCORING_FUNCTIONS)
    index = functions.index(score_sequencing)
    functions[index] = partial(
        score_sequencing,
        pathless_prompts_keep_area=options.pathless_prompts_keep_area,
    )
    return functions


def compute_highlights(categories: Sequence[CategoryScore]) -> Highlights:
    """Best and worst category by score.

    Categories are ranked with a stable descending sort and the two ends of
    the ranking are taken. Ties keep category order, so the earliest of
    several top scores is best and the latest (not the earliest) of several
    bottom scores is worst.
    """
    ranked = sorted(categories, key=lambda c: c.score, reverse=True)
    return Highlights(best=ranked[0], worst=ranked[-1])


def compute_scorecard(
    sessions: Sequence[Session],
    project: str,
    period: str,
    date: str | None = None,
    options: ScoringOptions | None = None,
) -> Scorecard:
    """Run all twelve scoring functions and aggregate the results.

    Args:
        sessions: Assembled sessions to score; may be empty
        project: Project name shown in the report
        period: Period label (day, week, month, session)
        date: Report date, defaults to today's UTC date
        options: Heuristic toggles, defaults when not provided

    Returns:
        Scorecard with categories in fixed order and the rounded mean as overall
    """
    options = options or ScoringOptions()
    categories = [score(sessions) for score in _scoring_functions(options)]

    for category in categories:
        if category.fallback:
            logger.debug("%s used default %d: %s", category.name, category.score, category.fallback)

    mean = sum(c.score for c in categories) / len(categories)
    overall = clamp(mean)

    return Scorecard(
        project=project,
        period=period,
        date=date or datetime.now(tz=UTC).strftime("%Y-%m-%d"),
        categories=categories,
        overall=overall,
        highlights=compute_highlights(categories),
        sessions_analyzed=len(sessions),
    )

