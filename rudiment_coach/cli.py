"""
Rudiment Coach: terminal front end.

A Rich terminal interface over the practice engine.

Commands:
- rudiment-coach today    - Streak, today's drills and bottlenecks
- rudiment-coach skills   - Curriculum by tier
- rudiment-coach streak   - Recent practice calendar
- rudiment-coach drill    - Run a timed drill, then score and save it
- rudiment-coach score    - Record a drill outcome without running the timer
- rudiment-coach reset    - Clear all progress
"""
from __future__ import annotations

import asyncio
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from typing import List, Optional

import typer
from loguru import logger
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table
from rich.text import Text

from .catalog import RUDIMENT_RUBRIC, Rudiment, RudimentCatalog, curriculum_by_tier, load_catalog
from .clock import Clock, SystemClock
from .config import Settings, get_settings
from .drill import AsyncioTickSource, DrillSession
from .errors import CatalogError, InvalidInput, StorageUnavailable
from .media import MetronomeCue, RecordingToggle, TerminalAudio, VisualPulse
from .scheduler import PlanItem, build_today_overview
from .scoring import OutcomeRecord, ScoreSheet, record_outcome, suggest_next_drill
from .state_store import RudimentProgress, StateStore
from .streak import StreakSummary, compute_streak

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="rudiment-coach",
    help="Rudiment Coach: daily drum rudiment practice",
    no_args_is_help=True,
)
console = Console()


# =============================================================================
# Styling
# =============================================================================

STYLES = {
    "hit": "green",
    "miss": "grey50",
    "info": "bold cyan",
    "warning": "bold yellow",
    "error": "bold red",
    "tier": {1: "green", 2: "cyan", 3: "magenta", 4: "red"},
}


def style_tier(tier: int) -> str:
    color = STYLES["tier"].get(tier, "white")
    return f"[{color}]Tier {tier}[/{color}]"


# =============================================================================
# Context
# =============================================================================


@dataclass
class AppContext:
    settings: Settings
    store: StateStore
    catalog: RudimentCatalog
    clock: Clock


@contextmanager
def _context() -> Iterator[AppContext]:
    """Open the store and catalog described by the settings; the store is closed on exit."""
    settings = get_settings()
    try:
        catalog = load_catalog(settings.catalog_path)
    except CatalogError as exc:
        console.print(f"[{STYLES['error']}]{exc}[/{STYLES['error']}]")
        raise typer.Exit(code=2)
    try:
        store = StateStore(settings.db_path)
    except StorageUnavailable as exc:
        console.print(f"[{STYLES['error']}]{exc}[/{STYLES['error']}]")
        raise typer.Exit(code=1)
    with store:
        yield AppContext(settings=settings, store=store, catalog=catalog, clock=SystemClock())


def _require_rudiment(ctx: AppContext, rudiment_id: str) -> Rudiment:
    rudiment = ctx.catalog.get(rudiment_id)
    if rudiment is None:
        known = ", ".join(r.id for r in ctx.catalog)
        console.print(f"[{STYLES['error']}]Unknown rudiment '{rudiment_id}'.[/{STYLES['error']}] Known: {known}")
        raise typer.Exit(code=2)
    return rudiment


# =============================================================================
# Display Helpers
# =============================================================================


def render_streak(streak: StreakSummary) -> Panel:
    dots = Text()
    for day in streak.recent_window:
        dots.append("● ", style=STYLES["hit"] if day.hit else STYLES["miss"])
    if streak.recent_window:
        dots.append(f"\n{streak.recent_window[0].date} … {streak.recent_window[-1].date}", style="dim")
    return Panel(
        dots,
        title=f"[bold]Streak: {streak.label}[/bold]",
        subtitle=f"Last {len(streak.recent_window)} days",
        border_style="green",
    )


def render_plan(plan: list[PlanItem], catalog: RudimentCatalog) -> Table:
    table = Table(title="Today's drills", title_justify="left")
    table.add_column("#", justify="right")
    table.add_column("Rudiment")
    table.add_column("Tier")
    table.add_column("Params")
    table.add_column("ID", style="dim")
    for i, item in enumerate(plan, 1):
        rudiment = catalog.require(item.rudiment_id)
        table.add_row(
            str(i),
            rudiment.name,
            style_tier(rudiment.tier),
            f"{item.sets}×{item.duration_sec}s @ {item.bpm} bpm",
            rudiment.id,
        )
    return table


def render_rudiment(rudiment: Rudiment) -> Panel:
    body = Text()
    body.append(f"Sticking: {rudiment.sticking}\n\n", style="bold")
    body.append(rudiment.chart)
    return Panel(body, title=f"{rudiment.name}  |  {style_tier(rudiment.tier)}", title_align="left", border_style="cyan")


def render_drill(session: DrillSession, cue: MetronomeCue | None = None) -> Text:
    line = Text()
    for phase in range(1, 5):
        lit = session.running and session.beat_phase == phase
        line.append("● " if lit else "○ ", style="bold green" if lit else "grey50")
    line.append(f"  Time left: {session.seconds_left:>3}s", style="bold")
    line.append(f"  •  Set {session.set_index}/{session.sets}  •  {session.bpm} bpm")
    if cue is not None and not cue.audio_enabled:
        line.append("  (visual metronome)", style="dim")
    return line


# =============================================================================
# Drill Flow
# =============================================================================


async def _play_set(session: DrillSession, cue: MetronomeCue) -> None:
    """Run the timers until the countdown expires."""
    with Live(render_drill(session, cue), console=console, refresh_per_second=20, transient=False) as live:
        session.start()
        while session.running:
            live.update(render_drill(session, cue))
            await asyncio.sleep(0.05)
        live.update(render_drill(session, cue))


def run_drill(session: DrillSession, cue: MetronomeCue, recorder: RecordingToggle) -> bool:
    """
    Drive a drill interactively.

    Returns:
        True if the drill was finished, False if the user quit
    """
    while True:
        action = session.available_action
        if action == "finish":
            session.finish()
            return True
        if action == "next_set":
            Prompt.ask(f"Set {session.set_index} done. Press Enter for set {session.set_index + 1}", default="")
            session.next_set()
            continue

        choices = ["start", "reset", "+", "-", "quit"]
        if recorder.enabled:
            choices.insert(4, "rec")
        choice = Prompt.ask(
            f"Set {session.set_index}/{session.sets} • {session.seconds_left}s left • {session.bpm} bpm",
            choices=choices,
            default="start",
        )
        if choice == "quit":
            session.close()
            return False
        if choice == "reset":
            session.reset_time()
        elif choice in ("+", "-"):
            session.adjust_bpm(1 if choice == "+" else -1)
        elif choice == "rec":
            recording = recorder.toggle()
            if recording:
                console.print("[red]● Recording[/red]")
            elif recorder.last_uri:
                console.print(f"[dim]Saved recording: {recorder.last_uri}[/dim]")
            elif recorder.last_error:
                console.print(f"[{STYLES['warning']}]Recording disabled: {recorder.last_error}[/{STYLES['warning']}]")
        else:
            try:
                asyncio.run(_play_set(session, cue))
            except KeyboardInterrupt:
                session.close()
                console.print(f"[{STYLES['warning']}]Paused.[/{STYLES['warning']}]")


def collect_scores(rudiment: Rudiment) -> ScoreSheet:
    """Ask for the rubric ratings, overall stars and a reflection."""
    sheet = ScoreSheet()
    console.print(Panel(f"Score & Reflect: {rudiment.name}", border_style="magenta"))
    sheet.stars = IntPrompt.ask("Overall (1-5 stars)", choices=["1", "2", "3", "4", "5"], default=3)
    for criterion in sheet.rubric:
        score = IntPrompt.ask(
            f"{criterion.name} (w {criterion.weight})",
            choices=["1", "2", "3", "4", "5"],
            default=sheet.scores[criterion.id],
        )
        sheet.rate(criterion.id, score)
    sheet.reflection = Prompt.ask("What to change next time?", default="")
    console.print(f"[dim]RepScore (weighted): {sheet.rep_score}[/dim]")
    return sheet


def save_outcome(ctx: AppContext, rudiment_id: str, rep_score: float, interactive: bool = True) -> OutcomeRecord | None:
    """
    Record the outcome, blocking until the write commits or the user gives up.

    A failed save is always reported; nothing is silently dropped.
    """
    while True:
        try:
            with console.status("Saving…"):
                return record_outcome(
                    ctx.store,
                    rudiment_id,
                    rep_score,
                    clock=ctx.clock,
                    alpha=ctx.settings.ema_alpha,
                    default_rating=ctx.settings.default_rating,
                )
        except StorageUnavailable as exc:
            console.print(f"[{STYLES['error']}]{exc}[/{STYLES['error']}]")
            if not interactive or not Confirm.ask("Retry saving?", default=True):
                console.print(f"[{STYLES['warning']}]This session was NOT logged.[/{STYLES['warning']}]")
                return None


def show_summary(rudiment: Rudiment, item: PlanItem, outcome: OutcomeRecord, min_bpm: int) -> None:
    suggestion = suggest_next_drill(item.bpm, outcome.rep_score, min_bpm=min_bpm)
    due = outcome.progress.next_due_at
    content = Text()
    content.append(f"{rudiment.name}\n", style="bold")
    content.append(f"Params: {item.sets}×{item.duration_sec}s @ {item.bpm} bpm\n")
    content.append(f"RepScore: {outcome.rep_score}\n", style="bold")
    content.append(f"Rating: {outcome.previous_rating} → {outcome.progress.rating} ({outcome.rating_delta:+})\n")
    if due is not None:
        content.append(f"Next due: {due:%Y-%m-%d}\n")
    content.append(f"\nNext drill: {suggestion.describe()}", style="cyan")
    console.print(Panel(content, title="[bold]Session Summary[/bold]", border_style="green"))


# =============================================================================
# Commands
# =============================================================================


@app.command()
def today(
    bpm: Optional[int] = typer.Option(None, "--bpm", "-b", help="Tempo for today's drills"),
) -> None:
    """Show streak, today's drills and bottlenecks."""
    with _context() as ctx:
        settings = ctx.settings
        overview = build_today_overview(
            ctx.store.progress.load(),
            ctx.store.sessions.load(),
            fallback_bpm=settings.clamp_bpm(bpm if bpm is not None else settings.default_bpm),
            catalog=ctx.catalog,
            clock=ctx.clock,
            bottleneck_threshold=settings.bottleneck_threshold,
            window_days=settings.streak_window_days,
            plan_size=settings.plan_size,
            default_rating=settings.default_rating,
        )

    console.print(render_streak(overview.streak))
    if overview.plan:
        console.print(render_plan(overview.plan, ctx.catalog))
        console.print(f"[dim]~{overview.estimated_minutes} min of playing[/dim]")
    else:
        console.print(f"[{STYLES['warning']}]The catalog is empty.[/{STYLES['warning']}]")

    console.print(f"\n[bold]Bottlenecks (rating < {settings.bottleneck_threshold})[/bold]")
    if overview.bottlenecks:
        for rudiment in overview.bottlenecks:
            console.print(f"  • {rudiment.name}")
    else:
        console.print("  [dim]None yet. Keep practicing![/dim]")


def _due_label(entry: RudimentProgress, clock: Clock) -> str:
    if not entry.is_due(clock):
        return f"{entry.next_due_at:%Y-%m-%d}"
    late = entry.days_overdue(clock)
    return f"[yellow]due ({late}d late)[/yellow]" if late else "[yellow]due[/yellow]"


@app.command()
def skills() -> None:
    """Show the curriculum grouped by tier."""
    with _context() as ctx:
        progress = ctx.store.progress.load()

    for tier, rudiments in curriculum_by_tier(ctx.catalog).items():
        table = Table(title=style_tier(tier), title_justify="left", show_header=bool(rudiments))
        table.add_column("Rudiment")
        table.add_column("Rating", justify="right")
        table.add_column("Due")
        for rudiment in rudiments:
            entry = progress.get(rudiment.id)
            if entry is None:
                table.add_row(rudiment.name, "-", "[yellow]new[/yellow]")
                continue
            table.add_row(rudiment.name, f"{entry.rating:.2f}", _due_label(entry, ctx.clock))
        console.print(table)


@app.command()
def streak() -> None:
    """Show the recent practice calendar."""
    with _context() as ctx:
        summary = compute_streak(
            ctx.store.sessions.load(),
            clock=ctx.clock,
            window_days=ctx.settings.streak_window_days,
        )
    console.print(render_streak(summary))


@app.command()
def drill(
    rudiment_id: Optional[str] = typer.Argument(None, help="Rudiment to drill (default: first drill of today's plan)"),
    bpm: Optional[int] = typer.Option(None, "--bpm", "-b", help="Tempo"),
    sets: Optional[int] = typer.Option(None, "--sets", "-s", min=1, help="Number of sets"),
    duration: Optional[int] = typer.Option(None, "--duration", "-d", min=1, help="Seconds per set"),
    click: bool = typer.Option(True, "--click/--no-click", help="Sound the terminal bell on each beat"),
) -> None:
    """Run a timed drill, then score it and update progress."""
    with _context() as ctx:
        settings = ctx.settings

        if rudiment_id is None:
            overview = build_today_overview(
                ctx.store.progress.load(),
                ctx.store.sessions.load(),
                fallback_bpm=settings.default_bpm,
                catalog=ctx.catalog,
                clock=ctx.clock,
                plan_size=settings.plan_size,
                default_rating=settings.default_rating,
            )
            if not overview.plan:
                console.print(f"[{STYLES['warning']}]Nothing to practice: the catalog is empty.[/{STYLES['warning']}]")
                raise typer.Exit(code=1)
            rudiment_id = overview.plan[0].rudiment_id

        rudiment = _require_rudiment(ctx, rudiment_id)
        item = PlanItem(
            rudiment_id=rudiment.id,
            bpm=settings.clamp_bpm(bpm if bpm is not None else settings.default_bpm),
            sets=sets or settings.default_sets,
            duration_sec=duration or settings.default_duration_sec,
        )

        audio = TerminalAudio(console) if click else None
        cue = MetronomeCue(audio, VisualPulse())
        session = DrillSession(
            item,
            AsyncioTickSource(),
            min_bpm=settings.min_bpm,
            max_bpm=settings.max_bpm,
            bpm_step=settings.bpm_step,
        )
        session.add_beat_listener(cue)

        console.print(render_rudiment(rudiment))
        if not run_drill(session, cue, RecordingToggle(audio)):
            console.print("[dim]Drill abandoned; nothing was saved.[/dim]")
            return

        final_item = session.item
        sheet = collect_scores(rudiment)
        outcome = save_outcome(ctx, rudiment.id, sheet.rep_score)
        if outcome is None:
            raise typer.Exit(code=1)
        show_summary(rudiment, final_item, outcome, settings.min_bpm)


@app.command()
def score(
    rudiment_id: str = typer.Argument(..., help="Rudiment that was practiced"),
    scores: List[str] = typer.Option(
        [], "--score", "-s", help="Criterion score as id=value (1-5); unscored criteria count as 3"
    ),
    bpm: Optional[int] = typer.Option(None, "--bpm", "-b", help="Tempo the drill was played at"),
) -> None:
    """Record a drill outcome without running the timer."""
    with _context() as ctx:
        rudiment = _require_rudiment(ctx, rudiment_id)

        sheet = ScoreSheet()
        for raw in scores:
            criterion_id, sep, value = raw.partition("=")
            try:
                if not sep:
                    raise InvalidInput(f"Expected id=value, got '{raw}'")
                sheet.rate(criterion_id.strip(), int(value))
            except (InvalidInput, ValueError) as exc:
                console.print(f"[{STYLES['error']}]{exc}[/{STYLES['error']}]")
                console.print(f"Criteria: {', '.join(c.id for c in RUDIMENT_RUBRIC)}")
                raise typer.Exit(code=2)

        outcome = save_outcome(ctx, rudiment.id, sheet.rep_score, interactive=False)
        if outcome is None:
            raise typer.Exit(code=1)

    settings = ctx.settings
    item = PlanItem(
        rudiment_id=rudiment.id,
        bpm=settings.clamp_bpm(bpm if bpm is not None else settings.default_bpm),
        sets=settings.default_sets,
        duration_sec=settings.default_duration_sec,
    )
    show_summary(rudiment, item, outcome, settings.min_bpm)


@app.command()
def reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Clear all ratings, due dates and the session log."""
    with _context() as ctx:
        if not yes and not Confirm.ask("Delete all practice history?", default=False):
            console.print("[dim]Nothing changed.[/dim]")
            return
        try:
            ctx.store.clear()
        except StorageUnavailable as exc:
            console.print(f"[{STYLES['error']}]{exc}[/{STYLES['error']}]")
            raise typer.Exit(code=1)
    console.print("[green]Practice history cleared.[/green]")


# =============================================================================
# Entry Point
# =============================================================================


def configure_logging(settings: Settings) -> None:
    """Send loguru output to stderr and, if configured, a rotating file."""
    logger.remove()
    logger.add(
        sys.stderr,
        level=settings.log_level,
        format="<level>{message}</level>",
    )
    if settings.log_file:
        logger.add(settings.log_file, level="DEBUG", rotation="1 MB", retention=3)


def main() -> None:
    """CLI entry point."""
    configure_logging(get_settings())
    app()


if __name__ == "__main__":
    main()
