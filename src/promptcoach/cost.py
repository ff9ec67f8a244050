"""Token and cost estimation for a single session.

Tokens are approximated at four characters each. Output wasted by a
correction is the last assistant response that preceded it.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field, computed_field

from .sessions.models import EventType

if TYPE_CHECKING:
    from .sessions.models import Session

# USD per million tokens
PRICING: dict[str, tuple[float, float]] = {
    "claude-sonnet-4": (3.0, 15.0),
    "claude-opus-4": (15.0, 75.0),
    "claude-haiku-3.5": (0.8, 4.0),
}

DEFAULT_MODEL = "claude-sonnet-4"

PREFLIGHT_TOOLS = frozenset({
    "preflight_check",
    "clarify_intent",
    "scope_work",
    "sharpen_followup",
    "token_audit",
    "prompt_score",
})

CORRECTIONS_PREVENTED_PER_PREFLIGHT = 0.5
DEFAULT_WASTE_PER_CORRECTION = 500


def estimate_tokens(text: str) -> int:
    """Rough token count: one token per four characters, rounded up."""
    return math.ceil(len(text) / 4)


def _per_million(tokens: float, price: float) -> float:
    return tokens / 1_000_000 * price


class CostEstimate(BaseModel):
    """Estimated token usage and spend for one session."""

    session_id: str
    model: str
    input_price: float
    output_price: float
    input_tokens: int = 0
    output_tokens: int = 0
    prompt_count: int = 0
    tool_call_count: int = 0
    corrections: int = 0
    wasted_output_tokens: int = 0
    preflight_calls: int = 0
    preflight_tokens: int = 0
    duration_minutes: float = Field(default=0.0, ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_cost(self) -> float:
        return _per_million(self.input_tokens, self.input_price) + _per_million(
            self.output_tokens, self.output_price
        )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def waste_cost(self) -> float:
        return _per_million(self.wasted_output_tokens, self.output_price)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def waste_percent(self) -> float:
        return self.waste_cost / self.total_cost * 100 if self.total_cost > 0 else 0.0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def preflight_cost(self) -> float:
        return _per_million(self.preflight_tokens, self.input_price)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def estimated_prevented(self) -> int:
        """Corrections the preflight calls are assumed to have prevented."""
        return math.floor(self.preflight_calls * CORRECTIONS_PREVENTED_PER_PREFLIGHT + 0.5)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def estimated_savings(self) -> float:
        if self.corrections:
            per_correction = self.wasted_output_tokens / self.corrections
        else:
            per_correction = DEFAULT_WASTE_PER_CORRECTION
        return _per_million(self.estimated_prevented * per_correction, self.output_price)


def estimate_cost(session: Session, model: str = DEFAULT_MODEL) -> CostEstimate:
    """Estimate what a session cost and how much of it corrections wasted.

    Args:
        session: Assembled session
        model: Pricing model name; unknown names use the default model

    Returns:
        Token and cost breakdown
    """
    if model not in PRICING:
        model = DEFAULT_MODEL
    input_price, output_price = PRICING[model]
    estimate = CostEstimate(
        session_id=session.session_id,
        model=model,
        input_price=input_price,
        output_price=output_price,
        duration_minutes=max(session.duration_minutes, 0.0),
    )

    last_response_tokens = 0
    for event in session.events:
        tokens = estimate_tokens(event.content)
        if event.is_a(EventType.PROMPT):
            estimate.input_tokens += tokens
            estimate.prompt_count += 1
            if event.is_a(EventType.CORRECTION):
                estimate.corrections += 1
                estimate.wasted_output_tokens += last_response_tokens
        elif event.is_a(EventType.ERROR):
            estimate.input_tokens += tokens
        elif event.is_a(EventType.ASSISTANT_RESPONSE):
            estimate.output_tokens += tokens
            last_response_tokens = tokens
        elif event.is_a(EventType.TOOL_CALL):
            estimate.output_tokens += tokens
            estimate.tool_call_count += 1
            tool = event.metadata.get("tool") or event.content.split(" ", 1)[0]
            if tool in PREFLIGHT_TOOLS:
                estimate.preflight_calls += 1
                estimate.preflight_tokens += estimate_tokens(event.content[len(tool) + 1:])

    return estimate


def format_tokens(n: int) -> str:
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 1_000:
        return f"{n / 1_000:.1f}k"
    return str(n)


def format_cost(dollars: float) -> str:
    if dollars < 0.01:
        return "<$0.01"
    return f"${dollars:.2f}"


def format_duration(minutes: float) -> str:
    if minutes <= 0:
        return "unknown"
    whole = math.floor(minutes)
    if whole < 60:
        return f"{whole}m"
    return f"{whole // 60}h {whole % 60}m"


def format_cost_report(estimate: CostEstimate) -> str:
    """Render a cost estimate as a plain-text report."""
    lines = [
        "📊 Session Cost Estimate",
        f"Duration: {format_duration(estimate.duration_minutes)} | {estimate.prompt_count} prompts | "
        f"{estimate.tool_call_count} tool calls",
        f"Session: {estimate.session_id}",
        "",
        "Token Usage (estimated):",
        f"  Input:   ~{format_tokens(estimate.input_tokens)} tokens",
        f"  Output:  ~{format_tokens(estimate.output_tokens)} tokens",
        f"  Total:   ~{format_tokens(estimate.total_tokens)} tokens",
        "",
        f"Estimated Cost: ~{format_cost(estimate.total_cost)} ({estimate.model})",
        "",
        "Waste Analysis:",
    ]
    if estimate.corrections:
        lines.extend([
            f"  Corrections detected: {estimate.corrections}",
            f"  Wasted output tokens: ~{format_tokens(estimate.wasted_output_tokens)}",
            f"  Estimated waste: ~{format_cost(estimate.waste_cost)} ({estimate.waste_percent:.1f}% of total)",
        ])
    else:
        lines.append("  No corrections detected 🎯")

    lines.extend(["", "Preflight Impact:"])
    if estimate.preflight_calls:
        lines.extend([
            f"  Preflight checks: {estimate.preflight_calls} calls "
            f"(~{format_tokens(estimate.preflight_tokens)} tokens)",
            f"  Preflight cost: ~{format_cost(estimate.preflight_cost)}",
        ])
        if estimate.estimated_prevented:
            net = estimate.estimated_savings - estimate.preflight_cost
            lines.extend([
                f"  Estimated corrections prevented: {estimate.estimated_prevented}",
                f"  Estimated savings: ~{format_cost(estimate.estimated_savings)}",
                "",
                f"💡 Net benefit: preflight saved ~{format_cost(net)} this session",
            ])
    else:
        lines.extend([
            "  No preflight checks used this session",
            "  💡 Tip: classify instructions before acting on them to catch issues early",
        ])
    return "\n".join(lines)
