"""Scorecard renderers: markdown, radar SVG and standalone HTML.

Presentation only. Every number shown here comes from the Scorecard.
"""

from __future__ import annotations

import math
from html import escape
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence

    from ..models import CategoryScore, Scorecard

RADAR_SIZE = 400
RADAR_RADIUS = 150
RADAR_GRID_LEVELS = (0.25, 0.5, 0.75, 1.0)
RADAR_LABEL_CHARS = 12

_CELL = "padding:8px;border-bottom:1px solid #e5e7eb"


def render_markdown(scorecard: Scorecard) -> str:
    """Render the scorecard as a markdown report."""
    sections = [
        "# 📊 Prompt Discipline Scorecard",
        f"**Project:** {scorecard.project} | **Period:** {scorecard.period} ({scorecard.date}) | "
        f"**Overall: {scorecard.overall_grade} ({scorecard.overall}/100)**",
        "",
        "## Category Scores",
        "| # | Category | Score | Grade |",
        "|---|----------|-------|-------|",
    ]
    for i, category in enumerate(scorecard.categories, start=1):
        sections.append(f"| {i} | {category.name} | {category.score} | {category.grade} |")

    best = scorecard.highlights.best
    worst = scorecard.highlights.worst
    sections.extend([
        "",
        "## Highlights",
        f"- 🏆 **Best:** {best.name} ({best.grade}): {best.evidence}",
        f"- ⚠️ **Worst:** {worst.name} ({worst.grade}): {worst.evidence}",
        "",
        "## Detailed Breakdown",
    ])

    for i, category in enumerate(scorecard.categories, start=1):
        sections.extend([
            "",
            f"### {i}. {category.name}: {category.grade} ({category.score}/100)",
            f"Evidence: {category.evidence}",
        ])
        if category.examples and category.examples.bad:
            sections.append("\nExamples of vague follow-ups:")
            sections.extend(f'- ❌ "{example}"' for example in category.examples.bad)
        if category.examples and category.examples.good:
            sections.append("\nExamples of specific follow-ups:")
            sections.extend(f'- ✅ "{example}"' for example in category.examples.good)

    return "\n".join(sections)


def grade_color(grade: str) -> str:
    """Badge color for a letter grade."""
    if grade.startswith("A"):
        return "#22c55e"
    if grade.startswith("B"):
        return "#eab308"
    if grade.startswith("C"):
        return "#f97316"
    return "#ef4444"


def _angle(index: int, count: int) -> float:
    return math.pi * 2 * index / count - math.pi / 2


def _label_anchor(angle: float) -> str:
    if abs(angle) < 0.1 or abs(angle - math.pi) < 0.1:
        return "middle"
    if -math.pi / 2 < angle < math.pi / 2:
        return "start"
    return "end"


def render_radar_svg(categories: Sequence[CategoryScore]) -> str:
    """Render category scores as a radar chart."""
    center = RADAR_SIZE / 2
    count = len(categories)
    if count == 0:
        return f'<svg viewBox="0 0 {RADAR_SIZE} {RADAR_SIZE}" xmlns="http://www.w3.org/2000/svg"></svg>'

    grid = []
    for level in RADAR_GRID_LEVELS:
        radius = RADAR_RADIUS * level
        points = " ".join(
            f"{center + radius * math.cos(_angle(i, count)):.1f},"
            f"{center + radius * math.sin(_angle(i, count)):.1f}"
            for i in range(count)
        )
        grid.append(f'<polygon points="{points}" fill="none" stroke="#e5e7eb" stroke-width="1"/>')

    vertices = []
    labels = []
    for i, category in enumerate(categories):
        angle = _angle(i, count)
        distance = category.score / 100 * RADAR_RADIUS
        vertices.append((center + distance * math.cos(angle), center + distance * math.sin(angle)))
        lx = center + (RADAR_RADIUS + 30) * math.cos(angle)
        ly = center + (RADAR_RADIUS + 30) * math.sin(angle)
        labels.append(
            f'<text x="{lx:.1f}" y="{ly:.1f}" text-anchor="{_label_anchor(angle)}" '
            f'font-size="10" fill="#6b7280">{escape(category.name[:RADAR_LABEL_CHARS])}</text>'
        )

    polygon = " ".join(f"{x:.1f},{y:.1f}" for x, y in vertices)
    dots = "".join(f'<circle cx="{x:.1f}" cy="{y:.1f}" r="4" fill="#3b82f6"/>' for x, y in vertices)

    return "\n".join([
        f'<svg viewBox="0 0 {RADAR_SIZE} {RADAR_SIZE}" width="{RADAR_SIZE}" height="{RADAR_SIZE}" '
        'xmlns="http://www.w3.org/2000/svg">',
        "".join(grid),
        f'<polygon points="{polygon}" fill="rgba(59,130,246,0.2)" stroke="#3b82f6" stroke-width="2"/>',
        dots,
        "".join(labels),
        "</svg>",
    ])


def _category_row(index: int, category: CategoryScore) -> str:
    return (
        f'<tr><td style="{_CELL}">{index}</td>'
        f'<td style="{_CELL};font-weight:600">{escape(category.name)}</td>'
        f'<td style="{_CELL};text-align:center">{category.score}</td>'
        f'<td style="{_CELL};text-align:center"><span style="background:{grade_color(category.grade)};'
        f'color:white;padding:2px 8px;border-radius:4px;font-weight:700">{category.grade}</span></td></tr>'
    )


def _category_detail(index: int, category: CategoryScore) -> str:
    parts = [
        '<div style="margin-bottom:16px">',
        f'<h3 style="margin:0 0 4px">{index}. {escape(category.name)}: '
        f'<span style="color:{grade_color(category.grade)}">{category.grade}</span> ({category.score}/100)</h3>',
        f'<p style="color:#6b7280;margin:0">{escape(category.evidence)}</p>',
    ]
    if category.examples:
        parts.extend(
            f'<div style="color:#ef4444;font-size:13px">❌ "{escape(e)}"</div>' for e in category.examples.bad
        )
        parts.extend(
            f'<div style="color:#22c55e;font-size:13px">✅ "{escape(e)}"</div>' for e in category.examples.good
        )
    parts.append("</div>")
    return "".join(parts)


def render_html(scorecard: Scorecard) -> str:
    """Render a standalone HTML page with the table, radar chart and breakdown."""
    rows = "".join(_category_row(i, c) for i, c in enumerate(scorecard.categories, start=1))
    details = "".join(_category_detail(i, c) for i, c in enumerate(scorecard.categories, start=1))
    best = scorecard.highlights.best
    worst = scorecard.highlights.worst

    return f"""<!DOCTYPE html>
<html><head><meta charset="utf-8"/><title>Prompt Discipline Scorecard: {escape(scorecard.project)}</title></head>
<body style="font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;margin:0;color:#1f2937">
<div style="background:linear-gradient(135deg,#1e293b,#0f172a);color:white;padding:32px 40px;display:flex;align-items:center;justify-content:space-between">
  <div>
    <h1 style="margin:0;font-size:28px">📊 Prompt Discipline Scorecard</h1>
    <p style="margin:8px 0 0;opacity:0.8">Project: <strong>{escape(scorecard.project)}</strong> | Period: {escape(scorecard.period)} | {scorecard.date}</p>
  </div>
  <div style="width:100px;height:100px;border-radius:50%;background:{grade_color(scorecard.overall_grade)};display:flex;align-items:center;justify-content:center;flex-direction:column">
    <div style="font-size:28px;font-weight:800;line-height:1">{scorecard.overall_grade}</div>
    <div style="font-size:14px;opacity:0.9">{scorecard.overall}/100</div>
  </div>
</div>
<div style="padding:32px 40px;display:flex;gap:40px;flex-wrap:wrap">
  <div style="flex:1;min-width:300px">
    <h2 style="margin:0 0 12px">Category Scores</h2>
    <table style="width:100%;border-collapse:collapse;font-size:14px">
      <thead><tr style="background:#f9fafb"><th style="padding:8px;text-align:left">#</th><th style="padding:8px;text-align:left">Category</th><th style="padding:8px;text-align:center">Score</th><th style="padding:8px;text-align:center">Grade</th></tr></thead>
      <tbody>{rows}</tbody>
    </table>
  </div>
  <div style="flex:0 0 auto">{render_radar_svg(scorecard.categories)}</div>
</div>
<div style="padding:0 40px 20px">
  <div style="background:#f0fdf4;border-left:4px solid #22c55e;padding:12px 16px;margin-bottom:8px;border-radius:4px">🏆 <strong>Best:</strong> {escape(best.name)} ({best.grade}): {escape(best.evidence)}</div>
  <div style="background:#fef2f2;border-left:4px solid #ef4444;padding:12px 16px;border-radius:4px">⚠️ <strong>Needs work:</strong> {escape(worst.name)} ({worst.grade}): {escape(worst.evidence)}</div>
</div>
<div style="padding:20px 40px 40px">
  <h2 style="margin:0 0 16px">Detailed Breakdown</h2>
  {details}
</div>
</body></html>
"""
