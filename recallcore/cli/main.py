"""
CLI entry point for recallcore.
"""

# Standard library imports
import json
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

# Third-party imports
import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

# Local application imports
from recallcore.config import settings
from recallcore.constants import VALID_QUALITIES
from recallcore.exceptions import RecallCoreError
from recallcore.history import get_milestone_progress, get_streak_message
from recallcore.models import Card, SourceType
from recallcore.review_manager import ReviewSessionManager
from recallcore.stats import calculate_computed_stats, export_all_data
from recallcore.storage.kv_store import DuckDBKeyValueStore
from recallcore.storage.safe_storage import SafeStorage
from recallcore.stores.local import LocalFlashcardStore


console = Console()

app = typer.Typer(
    name="recallcore",
    help="Recallcore: spaced-repetition flashcards for the AI history timeline.",
    add_completion=False,
    rich_markup_mode="markdown",
)


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


# Common typer options reused across commands
_db_option = typer.Option(  # noqa: B008
    None,
    "--db",
    help="Path to the DuckDB key-value file. "
    "Falls back to RECALLCORE_DB_PATH, then ~/.recallcore/recallcore.db.",
    envvar="RECALLCORE_DB_PATH",
)


@contextmanager
def _open_store(db: Optional[Path]) -> Iterator[LocalFlashcardStore]:
    """Open the local store for one command and close the database after."""
    kv = DuckDBKeyValueStore(db if db is not None else settings.db_path)
    try:
        store = LocalFlashcardStore(SafeStorage(kv))
        yield store
        for warning in store.storage_warnings:
            console.print(f"[yellow]Warning: {warning.user_message}[/yellow]")
    finally:
        kv.close()


def _resolve_pack(store: LocalFlashcardStore, pack: Optional[str]) -> Optional[str]:
    """Accept a pack id or an exact pack name. Exits if nothing matches."""
    if pack is None:
        return None
    for candidate in store.packs:
        if candidate.id == pack or candidate.name == pack:
            return candidate.id
    console.print(f"[bold red]Error: pack '{pack}' not found.[/bold red]")
    raise typer.Exit(code=1)


def _card_label(card: Card) -> str:
    return f"{card.source_type.value}:{card.source_id}"


# ---------------------------------------------------------------------------
# Card commands
# ---------------------------------------------------------------------------


@app.command()
def add(
    source_type: SourceType = typer.Argument(  # noqa: B008
        ..., help="Kind of content: milestone or concept."
    ),
    source_id: str = typer.Argument(..., help="Id of the milestone or concept."),
    pack: Optional[List[str]] = typer.Option(  # noqa: B008
        None, "--pack", "-p", help="Pack id or name to add the card to."
    ),
    db: Optional[Path] = _db_option,
):
    """Save a flashcard for a milestone or concept."""
    try:
        with _open_store(db) as store:
            pack_ids = [_resolve_pack(store, p) for p in pack or []]
            card = store.add_card(source_type, source_id, pack_ids=pack_ids)
            if card is None:
                console.print(
                    f"[yellow]A card for {source_type.value}:{source_id} "
                    "is already saved.[/yellow]"
                )
                return
            console.print(
                f"[bold green]Added card[/bold green] {card.id} "
                f"for [cyan]{_card_label(card)}[/cyan]"
            )
    except RecallCoreError as e:
        console.print(f"[bold red]Error: {escape(str(e))}[/bold red]")
        raise typer.Exit(code=1) from e


@app.command()
def remove(
    card_id: str = typer.Argument(..., help="Id of the card to delete."),
    db: Optional[Path] = _db_option,
):
    """Delete a flashcard."""
    with _open_store(db) as store:
        if store.get_card_by_id(card_id) is None:
            console.print(f"[bold red]Error: card {card_id} not found.[/bold red]")
            raise typer.Exit(code=1)
        store.remove_card(card_id)
        console.print(f"[green]Removed card {card_id}.[/green]")


@app.command()
def due(
    pack: Optional[str] = typer.Option(  # noqa: B008
        None, "--pack", "-p", help="Only cards in this pack (id or name)."
    ),
    db: Optional[Path] = _db_option,
):
    """List the cards that are due for review."""
    with _open_store(db) as store:
        cards = store.get_due_cards(pack_id=_resolve_pack(store, pack))
        if not cards:
            console.print("[green]No cards are due. Nice work![/green]")
            return
        table = Table(title=f"Due Cards ({len(cards)})")
        table.add_column("Id", style="dim")
        table.add_column("Content", style="cyan")
        table.add_column("Interval", style="magenta")
        table.add_column("Ease", style="yellow")
        for card in cards:
            table.add_row(
                card.id,
                _card_label(card),
                f"{card.interval}d",
                f"{card.ease_factor:.2f}",
            )
        console.print(table)


# ---------------------------------------------------------------------------
# Review command
# ---------------------------------------------------------------------------


def _get_user_quality() -> int:
    """Prompt until the user enters a recall quality between 0 and 5."""
    while True:
        quality_str = console.input(
            "[bold]Quality (0-2: forgot, 3: hard, 4: good, 5: easy): [/bold]"
        )
        try:
            quality = int(quality_str)
        except ValueError:
            console.print("[bold red]Invalid input. Please enter a number.[/bold red]")
            continue
        if quality in VALID_QUALITIES:
            return quality
        console.print(
            "[bold red]Invalid quality. Please enter a number between 0 and 5.[/bold red]"
        )


@app.command()
def review(
    pack: Optional[str] = typer.Option(  # noqa: B008
        None, "--pack", "-p", help="Review only this pack (id or name)."
    ),
    limit: int = typer.Option(
        20, "--limit", "-l", help="Maximum number of cards in the session."
    ),
    db: Optional[Path] = _db_option,
):
    """Start an interactive review session over the due cards."""
    with _open_store(db) as store:
        manager = ReviewSessionManager(
            store, pack_id=_resolve_pack(store, pack), limit=limit
        )
        manager.initialize_session()
        if manager.get_next_card() is None:
            console.print("[green]No cards are due for review.[/green]")
            return

        while True:
            card = manager.get_next_card()
            if card is None:
                break
            console.print(
                Panel(_card_label(card), title="Recall", border_style="green")
            )
            quality = _get_user_quality()
            updated = manager.submit_review(card.id, quality)
            console.print(
                f"Next review in [cyan]{updated.interval}[/cyan] day(s)."
            )

        session = manager.end_session()
        summary = manager.get_session_stats()
        console.print(
            f"[bold green]Session complete![/bold green] "
            f"{summary['reviewed_cards']} reviews, "
            f"{summary['correct_cards']} correct, "
            f"{session.duration_minutes or 0:.1f} minutes."
        )
        console.print(get_streak_message(store.streak_history.current_streak, True))


# ---------------------------------------------------------------------------
# Stats command
# ---------------------------------------------------------------------------


@app.command()
def stats(
    db: Optional[Path] = _db_option,
):
    """Display card counts, streaks and retention."""
    with _open_store(db) as store:
        computed = calculate_computed_stats(
            store.cards, store.review_history, store.streak_history
        )
        overall = Table(title="Flashcard Stats", show_header=False)
        overall.add_column("Metric", style="cyan")
        overall.add_column("Value", style="magenta")
        overall.add_row("Total Cards", str(store.stats.total_cards))
        overall.add_row("Due Today", str(store.stats.cards_due_today))
        overall.add_row("Reviewed Today", str(store.stats.cards_reviewed_today))
        overall.add_row("Mastered", str(computed.mastered_cards))
        overall.add_row("Learning", str(computed.learning_cards))
        overall.add_row("New", str(computed.new_cards))
        overall.add_row("Current Streak", str(store.stats.current_streak))
        overall.add_row("Longest Streak", str(store.stats.longest_streak))
        overall.add_row("Retention (7d)", f"{computed.retention_rate_7d:.0%}")
        overall.add_row("Retention (30d)", f"{computed.retention_rate_30d:.0%}")
        console.print(overall)

        progress = get_milestone_progress(store.stats.current_streak)
        if progress["next_milestone"] is not None:
            console.print(
                f"{progress['days_remaining']} day(s) to the "
                f"{progress['next_milestone']}-day milestone."
            )


# ---------------------------------------------------------------------------
# Pack commands
# ---------------------------------------------------------------------------


@app.command()
def packs(
    db: Optional[Path] = _db_option,
):
    """List packs with their card and due counts."""
    with _open_store(db) as store:
        table = Table(title="Packs")
        table.add_column("Id", style="dim")
        table.add_column("Name", style="cyan")
        table.add_column("Cards", style="magenta")
        table.add_column("Due", style="yellow")
        for pack in store.packs:
            name = f"{pack.name} (system)" if pack.is_default else pack.name
            table.add_row(
                pack.id,
                name,
                str(len(store.get_cards_by_pack(pack.id))),
                str(len(store.get_due_cards(pack_id=pack.id))),
            )
        console.print(table)


@app.command("pack-create")
def pack_create(
    name: str = typer.Argument(..., help="Pack name (1-50 characters)."),
    description: Optional[str] = typer.Option(None, "--description", "-d"),
    color: Optional[str] = typer.Option(None, "--color", help="#RRGGBB"),
    db: Optional[Path] = _db_option,
):
    """Create a pack."""
    try:
        with _open_store(db) as store:
            pack = store.create_pack(name, description=description, color=color)
            console.print(f"[bold green]Created pack[/bold green] '{pack.name}' ({pack.id})")
    except RecallCoreError as e:
        console.print(f"[bold red]Error: {escape(str(e))}[/bold red]")
        raise typer.Exit(code=1) from e


@app.command("pack-rename")
def pack_rename(
    pack: str = typer.Argument(..., help="Pack id or name."),
    name: str = typer.Argument(..., help="New name."),
    db: Optional[Path] = _db_option,
):
    """Rename a pack. System packs cannot be renamed."""
    try:
        with _open_store(db) as store:
            pack_id = _resolve_pack(store, pack)
            if store.get_pack_by_id(pack_id).is_default:
                console.print("[yellow]System packs cannot be renamed.[/yellow]")
                raise typer.Exit(code=1)
            store.rename_pack(pack_id, name)
            console.print(f"[green]Renamed pack to '{name}'.[/green]")
    except RecallCoreError as e:
        console.print(f"[bold red]Error: {escape(str(e))}[/bold red]")
        raise typer.Exit(code=1) from e


@app.command("pack-delete")
def pack_delete(
    pack: str = typer.Argument(..., help="Pack id or name."),
    db: Optional[Path] = _db_option,
):
    """Delete a pack. Its cards are kept."""
    with _open_store(db) as store:
        pack_id = _resolve_pack(store, pack)
        if store.get_pack_by_id(pack_id).is_default:
            console.print("[yellow]System packs cannot be deleted.[/yellow]")
            raise typer.Exit(code=1)
        store.delete_pack(pack_id)
        console.print("[green]Pack deleted.[/green]")


# ---------------------------------------------------------------------------
# Export and reset
# ---------------------------------------------------------------------------


@app.command()
def export(
    output: Optional[Path] = typer.Option(  # noqa: B008
        None,
        "--output",
        "-o",
        help="File to write the JSON backup to; stdout if omitted.",
        dir_okay=False,
        resolve_path=True,
    ),
    db: Optional[Path] = _db_option,
):
    """Export all cards, packs, stats and review history as JSON."""
    with _open_store(db) as store:
        data = export_all_data(
            store.cards,
            store.packs,
            store.stats,
            store.review_history,
            store.streak_history,
        )
    text = json.dumps(data, indent=2)
    if output is None:
        typer.echo(text)
        return
    try:
        output.write_text(text, encoding="utf-8")
    except OSError as e:
        console.print(f"[bold]An error occurred during export: {escape(str(e))}[/bold]")
        raise typer.Exit(code=1) from e
    console.print(f"Exported {len(data['cards'])} cards to [cyan]{output}[/cyan]")


@app.command()
def reset(
    db: Optional[Path] = _db_option,
    yes: bool = typer.Option(
        False, "--yes", "-y", help="Bypass confirmation prompt."
    ),
):
    """Delete every card and user pack. Review history is kept."""
    if not yes:
        confirmed = typer.confirm(
            "Are you sure you want to delete all cards and packs?"
        )
        if not confirmed:
            console.print("Reset cancelled.")
            raise typer.Exit()
    with _open_store(db) as store:
        store.reset_all()
    console.print("[bold green]All cards and packs were deleted.[/bold green]")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main():
    """
    Run the CLI application.

    If an unexpected exception occurs, print a bold red error message to the console and exit the process with status code 1.
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        app()
    except Exception as e:
        console.print(f"[bold red]UNEXPECTED ERROR: {escape(str(e))}[/bold red]")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
