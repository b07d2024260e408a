"""
HLPE command line.

Runs the engine once over a snapshot stored as JSON (the same shape as an
INIT payload) and shows what the host would receive.

Commands:
- hlpe analyze   - Run one analysis pass over a snapshot file
- hlpe config    - Show effective settings
"""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Optional

import numpy as np
import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from config import get_settings
from src.hlpe.engine import EngineConfig
from src.hlpe.errors import SnapshotFormatError
from src.hlpe.messages import MessageType, patch_stored_payload
from src.hlpe.models import AnalysisSnapshot
from src.hlpe.orchestrator import HlpeOrchestrator


# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="hlpe",
    help="HLPE: learning analytics for the exam question bank",
    no_args_is_help=True,
)
console = Console()


def _load_snapshot(path: Path) -> tuple[dict[str, Any], AnalysisSnapshot]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        console.print(f"[red]Cannot read {path}: {exc}[/red]")
        raise typer.Exit(1)

    try:
        return payload, AnalysisSnapshot.from_payload(payload)
    except SnapshotFormatError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1)


def _never_schedule(delay: float, callback):
    raise RuntimeError("the CLI runs INIT passes only")


# =============================================================================
# Display Helpers
# =============================================================================

def display_data_update(payload: dict[str, Any]) -> None:
    """Summarize learner-state patches."""
    questions = payload.get("updatedQuestions", [])
    user_elo = payload.get("updatedUserMetrics", {}).get("userElo")

    console.print("\n[bold cyan]Data Updated[/bold cyan]")
    console.print(f"User rating: [bold]{user_elo if user_elo is not None else '-'}[/bold]")

    if not questions:
        console.print("[dim]No question patches (no exam history).[/dim]")
        return

    table = Table(show_header=True)
    table.add_column("Question")
    table.add_column("Elo", justify="right")
    table.add_column("Level", justify="right")
    table.add_column("EF", justify="right")
    table.add_column("Interval", justify="right")
    table.add_column("Next review")

    for patch in questions:
        ef = patch.get("srsEasinessFactor")
        table.add_row(
            patch["id"],
            str(patch.get("elo", "-")),
            str(patch.get("srsLevel", "-")),
            f"{ef:.2f}" if ef is not None else "-",
            f"{patch['srsInterval']}d" if "srsInterval" in patch else "-",
            patch.get("nextReviewDate", "-"),
        )
    console.print(table)


def display_report(report: dict[str, Any]) -> None:
    """Render the analysis report."""
    console.print("\n[bold cyan]Analysis[/bold cyan]")
    console.print("=" * 40)

    predicted = report.get("predictedScore")
    if predicted is not None:
        console.print(f"Predicted score: [bold]{predicted:.1f}%[/bold]")

    if "errorClusters" in report:
        table = Table(title="Error Patterns", show_header=True)
        table.add_column("Pattern")
        table.add_column("Errors", justify="right")
        for cluster in report["errorClusters"]:
            table.add_row(cluster["name"], str(cluster["count"]))
        console.print(table)

    plan = report.get("studyPlan") or []
    if plan:
        table = Table(title="Study Plan", show_header=True)
        table.add_column("Subject")
        table.add_column("Priority", justify="right")
        for entry in plan:
            table.add_row(entry["subject"] or "[dim](none)[/dim]", f"{entry['priority']:.3f}")
        console.print(table)

    gaps = report.get("knowledgeGaps") or []
    if gaps:
        table = Table(title="Knowledge Gaps", show_header=True)
        table.add_column("Topic")
        table.add_column("Gap", justify="right")
        for gap in gaps:
            table.add_row(gap["topic"], f"{gap['gapScore']:.4f}")
        console.print(table)

    if "scoreTrend" in report:
        table = Table(title="Score Trend", show_header=True)
        table.add_column("Date")
        table.add_column("Score", justify="right")
        table.add_column("EMA", justify="right")
        for point in report["scoreTrend"]:
            table.add_row(point["date"], f"{point['score']:g}", f"{point['ema']:.2f}")
        console.print(table)


# =============================================================================
# Commands
# =============================================================================

@app.command()
def analyze(
    snapshot_file: Path = typer.Argument(..., help="JSON file holding an INIT payload"),
    seed: Optional[int] = typer.Option(
        None,
        "--seed", "-s",
        help="Seed for error clustering (overrides HLPE_CLUSTER_SEED)",
    ),
    write: bool = typer.Option(
        False,
        "--write", "-w",
        help="Write the patched snapshot back to the file",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the emitted messages as JSON",
    ),
) -> None:
    """
    Run one full analysis pass over a snapshot file.

    Prints the DATA_UPDATED patches and the ANALYSIS_COMPLETE report.
    """
    settings = get_settings()
    payload, snapshot = _load_snapshot(snapshot_file)

    messages: list[dict[str, Any]] = []
    orchestrator = HlpeOrchestrator(
        emit=messages.append,
        config=EngineConfig.from_settings(settings),
        schedule=_never_schedule,
        rng=np.random.default_rng(seed) if seed is not None else None,
    )
    orchestrator.init(snapshot)
    by_type = {m["type"]: m["payload"] for m in messages}

    if as_json:
        print(json.dumps(messages, indent=2))
    else:
        display_data_update(by_type[MessageType.DATA_UPDATED.value])
        display_report(by_type[MessageType.ANALYSIS_COMPLETE.value])

    if write:
        patched = patch_stored_payload(payload, by_type[MessageType.DATA_UPDATED.value])
        snapshot_file.write_text(
            json.dumps(patched, indent=2),
            encoding="utf-8",
        )
        logger.info("Wrote patched snapshot to {}", snapshot_file)
        if not as_json:
            console.print(f"\n[green]Snapshot written to {snapshot_file}[/green]")


@app.command("config")
def show_config() -> None:
    """Show effective engine settings."""
    settings = get_settings()

    table = Table(show_header=False, box=None)
    table.add_column("Setting", style="dim")
    table.add_column("Value", style="bold")

    for name, value in settings.model_dump().items():
        if name == "syllabus_weights":
            continue
        table.add_row(name, str(value))
    console.print(table)

    weights = Table(title="Syllabus Weights", show_header=True)
    weights.add_column("Subject")
    weights.add_column("Weight", justify="right")
    for subject, weight in sorted(settings.syllabus_weights.items(), key=lambda kv: -kv[1]):
        weights.add_row(subject, f"{weight:.2f}")
    weights.add_row("[dim](other)[/dim]", f"{settings.default_syllabus_weight:.2f}")
    console.print(weights)


# =============================================================================
# Entry Point
# =============================================================================

def main() -> None:
    """CLI entry point."""
    settings = get_settings()

    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{level: <8}</level> | {message}",
    )
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, rotation="10 MB")

    app()


if __name__ == "__main__":
    main()
