"""Prompt Coach command-line interface."""

from __future__ import annotations

import json
import logging
import sys
from enum import Enum
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config import ConfigLoader, discover_project_dir
from .cost import DEFAULT_MODEL, estimate_cost, format_cost_report
from .exceptions import PromptCoachError
from .models import CoachConfig, CorrectionCategory, CorrectionEntry, Profile, TriageLevel
from .patterns import format_pattern_matches, match_patterns
from .scorecard import ScoringOptions, compute_scorecard, render_html, render_markdown
from .sessions import ClaudeCodeNormalizer, assemble_session, discover_session_files, load_sessions
from .store import CorrectionStore
from .triage import TriageClassifier

app = typer.Typer(
    name="coach",
    help="Prompt Coach: triage instructions, learn from corrections, score session discipline",
    add_completion=False,
)
console = Console()

logger = logging.getLogger(__name__)

LEVEL_STYLES = {
    TriageLevel.TRIVIAL: "dim",
    TriageLevel.CLEAR: "green",
    TriageLevel.AMBIGUOUS: "yellow",
    TriageLevel.CROSS_SERVICE: "magenta",
    TriageLevel.MULTI_STEP: "cyan",
}


class OutputFormat(str, Enum):
    """Scorecard output formats."""

    MARKDOWN = "markdown"
    JSON = "json"
    HTML = "html"


def _get_version_string() -> str:
    try:
        return get_version("promptcoach")
    except PackageNotFoundError:
        return f"{__version__} (development)"


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Callback for --version flag."""
    if value:
        console.print(f"Prompt Coach version {_get_version_string()}")
        raise typer.Exit


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
) -> None:
    """Prompt Coach: triage instructions, learn from corrections, score session discipline."""
    _configure_logging(verbose)


ProjectDirOption = typer.Option(
    None,
    "--project-dir",
    "-p",
    help="Project root (defaults to the nearest directory containing .claude/)",
)
ConfigOption = typer.Option(
    None,
    "--config",
    "-c",
    help="Config file (defaults to .claude/prompt-coach.yaml)",
)
ProfileOption = typer.Option(
    None,
    "--profile",
    envvar="PROMPT_COACH_PROFILE",
    help="Capability profile: minimal, standard or full",
)


def _load_config(
    project_dir: Path | None,
    config_path: Path | None,
    profile: Profile | None,
) -> tuple[Path, CoachConfig]:
    """Resolve the project root and build the configuration for one command."""
    root = project_dir or discover_project_dir()
    loader = ConfigLoader(root)
    config = loader.load(config_path) if config_path else loader.load_or_default()
    if profile is not None:
        config = config.model_copy(update={"profile": profile})
    logger.debug("Using %s profile for %s", config.profile.value, root)
    return root, config


def _store_for(root: Path, config: CoachConfig) -> CorrectionStore:
    if config.state_dir is not None:
        return CorrectionStore(config.state_dir)
    return CorrectionStore.for_project(root)


def _fail(error: PromptCoachError) -> typer.Exit:
    console.print(f"[red]Error:[/red] {error}")
    return typer.Exit(1)


@app.command()
def version() -> None:
    """Show Prompt Coach version information."""
    console.print(f"Prompt Coach version {_get_version_string()}")


@app.command()
def classify(
    instruction: str = typer.Argument(..., help="Instruction to classify"),
    as_json: bool = typer.Option(False, "--json", help="Emit the result as JSON"),
    project_dir: Path | None = ProjectDirOption,
    config_path: Path | None = ConfigOption,
    profile: Profile | None = ProfileOption,
) -> None:
    """Classify an instruction's ambiguity before acting on it.

    Examples:
        coach classify "fix the tests"
        coach classify "add rewards tier validation" --json
    """
    try:
        root, config = _load_config(project_dir, config_path, profile)
        config.require("classify")
        patterns = _store_for(root, config).load_patterns()
    except PromptCoachError as e:
        raise _fail(e) from e

    result = TriageClassifier(config.triage, patterns).triage(instruction)

    if as_json:
        typer.echo(json.dumps({
            "level": result.level.value,
            "rule": result.rule,
            "reason": result.reason,
            "escalated": result.escalated,
            "matched_patterns": [p.id for p in result.matched_patterns],
        }, indent=2))
        return

    style = LEVEL_STYLES[result.level]
    console.print(f"[bold {style}]{result.level.value}[/bold {style}]  [dim]({result.rule})[/dim]")
    console.print(f"  {result.reason}")
    if result.matched_patterns:
        console.print()
        console.print(format_pattern_matches(result.matched_patterns), markup=False)


@app.command("log-correction")
def log_correction(
    user_said: str = typer.Option(..., "--user-said", help="What the user said to correct you"),
    wrong: str = typer.Option(..., "--wrong", help="What was done wrong"),
    root_cause: str = typer.Option(..., "--root-cause", help="Why it went wrong"),
    category: CorrectionCategory = typer.Option(..., "--category", help="Correction category"),
    branch: str | None = typer.Option(None, "--branch", help="Branch the correction happened on"),
    project_dir: Path | None = ProjectDirOption,
    config_path: Path | None = ConfigOption,
    profile: Profile | None = ProfileOption,
) -> None:
    """Append a correction to the project's correction log."""
    entry = CorrectionEntry(
        what_user_said=user_said,
        what_you_did_wrong=wrong,
        root_cause=root_cause,
        category=category,
        branch=branch,
    )
    try:
        root, config = _load_config(project_dir, config_path, profile)
        config.require("log_correction")
        summary = _store_for(root, config).log_correction(entry)
    except PromptCoachError as e:
        raise _fail(e) from e

    console.print(f"[green]✓[/green] Logged {category.value} correction ({summary.total} total)")

    table = Table(title="Corrections by category")
    table.add_column("Category", style="cyan")
    table.add_column("Count", justify="right")
    table.add_column("Share", justify="right")
    for name, count in sorted(summary.counts.items(), key=lambda item: item[1], reverse=True):
        table.add_row(name, str(count), f"{summary.percentage(name)}%")
    console.print(table)

    if summary.hint:
        console.print(f"[yellow]Hint:[/yellow] {summary.hint}")
    console.print("[dim]Run 'coach refresh-patterns' to update learned patterns.[/dim]")


@app.command("refresh-patterns")
def refresh_patterns(
    project_dir: Path | None = ProjectDirOption,
    config_path: Path | None = ConfigOption,
    profile: Profile | None = ProfileOption,
) -> None:
    """Recompute correction patterns from the full correction log."""
    try:
        root, config = _load_config(project_dir, config_path, profile)
        config.require("refresh_patterns")
        patterns = _store_for(root, config).refresh_patterns()
    except PromptCoachError as e:
        raise _fail(e) from e

    if not patterns:
        console.print("[yellow]No recurring patterns yet.[/yellow] A pattern needs two similar corrections.")
        return

    table = Table(title=f"{len(patterns)} correction pattern(s)")
    table.add_column("ID", style="cyan")
    table.add_column("Pattern")
    table.add_column("Frequency", justify="right")
    table.add_column("Keywords", style="dim")
    for pattern in patterns:
        table.add_row(pattern.id, pattern.pattern, str(pattern.frequency), ", ".join(pattern.keywords))
    console.print(table)


@app.command("check-patterns")
def check_patterns(
    instruction: str = typer.Argument(..., help="Instruction to check against learned patterns"),
    project_dir: Path | None = ProjectDirOption,
    config_path: Path | None = ConfigOption,
    profile: Profile | None = ProfileOption,
) -> None:
    """Warn when an instruction resembles past corrections."""
    try:
        root, config = _load_config(project_dir, config_path, profile)
        config.require("check_patterns")
        patterns = _store_for(root, config).load_patterns()
    except PromptCoachError as e:
        raise _fail(e) from e

    if not patterns:
        console.print("[dim]No learned patterns. Log corrections and run 'coach refresh-patterns'.[/dim]")
        return

    matches = match_patterns(instruction, patterns)
    if not matches:
        console.print(f"[green]No known patterns matched[/green] ({len(patterns)} checked)")
        return
    console.print(format_pattern_matches(matches), markup=False)


@app.command()
def scorecard(
    period: str = typer.Option("day", "--period", help="day, week, month or session"),
    since: str | None = typer.Option(None, "--since", help="ISO date or relative value like 7days"),
    session: str | None = typer.Option(None, "--session", help="Score a single session id"),
    project: str | None = typer.Option(None, "--project", help="Filter sessions by project name"),
    logs: Path | None = typer.Option(
        None,
        "--logs",
        help="Claude Code projects directory (defaults to ~/.claude/projects/)",
    ),
    output_format: OutputFormat = typer.Option(OutputFormat.MARKDOWN, "--format", "-f", help="Output format"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Write the report to a file"),
    workers: int = typer.Option(1, "--workers", help="Parallel session loaders"),
    pathless_resets_area: bool = typer.Option(
        False,
        "--pathless-resets-area",
        help="Treat prompts without a path as leaving the current work area",
    ),
    project_dir: Path | None = ProjectDirOption,
    config_path: Path | None = ConfigOption,
    profile: Profile | None = ProfileOption,
) -> None:
    """Score session discipline across twelve categories.

    Examples:
        coach scorecard --period week
        coach scorecard --project myapp --format html -o scorecard.html
    """
    try:
        root, config = _load_config(project_dir, config_path, profile)
        config.require("scorecard")
    except PromptCoachError as e:
        raise _fail(e) from e

    sessions = load_sessions(
        root=logs,
        project=project,
        session_id=session,
        since=since,
        period=period,
        max_workers=workers,
    )
    if not sessions:
        logger.warning("No sessions matched; reporting defaults")

    project_name = project or (sessions[0].project_name if sessions else "") or root.name
    result = compute_scorecard(
        sessions,
        project=project_name,
        period=period,
        options=ScoringOptions(pathless_prompts_keep_area=not pathless_resets_area),
    )

    if output_format == OutputFormat.JSON:
        rendered = result.model_dump_json(indent=2)
    elif output_format == OutputFormat.HTML:
        rendered = render_html(result)
    else:
        rendered = render_markdown(result)

    if output is None:
        typer.echo(rendered)
        return
    try:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(rendered, encoding="utf-8")
    except OSError as e:
        console.print(f"[red]Error:[/red] Cannot write {output}: {e}")
        raise typer.Exit(1) from e
    console.print(
        f"[green]✓[/green] Scorecard for {len(sessions)} session(s) written to {output} "
        f"(overall {result.overall_grade}, {result.overall}/100)",
    )


@app.command()
def cost(
    session_file: Path | None = typer.Option(None, "--session-file", help="Session JSONL file"),
    session: str | None = typer.Option(None, "--session", help="Session id (defaults to the latest)"),
    model: str = typer.Option(DEFAULT_MODEL, "--model", help="Pricing model"),
    logs: Path | None = typer.Option(
        None,
        "--logs",
        help="Claude Code projects directory (defaults to ~/.claude/projects/)",
    ),
    project_dir: Path | None = ProjectDirOption,
    config_path: Path | None = ConfigOption,
    profile: Profile | None = ProfileOption,
) -> None:
    """Estimate token usage and cost of a session."""
    try:
        _root, config = _load_config(project_dir, config_path, profile)
        config.require("estimate_cost")
    except PromptCoachError as e:
        raise _fail(e) from e

    if session_file is None:
        candidates = [
            f for f in discover_session_files(logs)
            if session is None or f.session_id == session
        ]
        if not candidates:
            console.print("[yellow]No session files found.[/yellow]")
            raise typer.Exit(1)
        session_file = max(candidates, key=lambda f: f.mtime).path
    elif not session_file.exists():
        console.print(f"[red]Error:[/red] Session file not found: {session_file}")
        raise typer.Exit(1)

    events = ClaudeCodeNormalizer().normalize_file(session_file)
    if not events:
        console.print(f"[yellow]No events in {session_file}[/yellow]")
        raise typer.Exit(1)
    estimate = estimate_cost(assemble_session(events), model=model)
    console.print(format_cost_report(estimate), markup=False)


def main() -> None:
    """Entry point for the CLI."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
