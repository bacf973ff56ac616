import datetime
import logging
import os
from typing import Any, Dict

import click
from sqlalchemy.exc import SQLAlchemyError

from . import db
from .errors import DuplicateCandidate, PartialDeleteError, StorageError, StorageWriteError, ValidationError
from .ingest import add_card, remove_card
from .scheduler import Quality
from .selection import list_categories, select_due
from .session import InteractionMode, ReviewDesk, SessionState

DEFAULT_USER = os.environ.get("FISZKI_USER", "default_user")

GRADE_KEYS = {"1": Quality.FAIL, "2": Quality.PASS, "3": Quality.EASY}
NAV_KEYS = ["n", "p", "q"]


def _store(ctx: click.Context) -> db.SqlStore:
    try:
        if not db.is_db_initialized():
            db.init_db()
    except SQLAlchemyError as e:
        raise click.ClickException(f"Database unavailable: {e}")
    return ctx.obj["store"]


@click.group()
@click.option("--user", default=DEFAULT_USER, show_default=True, help="User whose cards to work with")
@click.pass_context
def cli(ctx: click.Context, user: str) -> None:
    """Flashcards reviewed on a spaced-repetition schedule."""
    logging.basicConfig(
        level=logging.DEBUG if db.DEBUG_MODE else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"user": user, "store": db.SqlStore()}


@cli.command("init-db")
def init_db() -> None:
    """Initialize the flashcard database."""
    db.init_db()
    click.echo("Database initialized.")


@cli.command("add")
@click.argument("front")
@click.argument("back")
@click.option("--category", default=None, help="Category, e.g. 'Basic vocabulary'")
@click.option("--language", "target_language", default=None, help="Target language of the back side")
@click.option("--example", default=None, help="Example sentence")
@click.option("--conjugation", default=None, help="Verb forms shown with the answer")
@click.pass_context
def add(ctx: click.Context, front: str, back: str, category: str, target_language: str,
        example: str, conjugation: str) -> None:
    """Add a card (FRONT is the prompt, BACK the translation)."""
    store = _store(ctx)
    try:
        card_id = add_card(store, ctx.obj["user"], front, back, category=category,
                           target_language=target_language, example=example, conjugation=conjugation)
    except ValidationError as e:
        raise click.BadParameter(str(e))
    except DuplicateCandidate:
        click.echo(f"Card '{front.strip()}' already exists (skipped).")
        return
    except StorageError as e:
        raise click.ClickException(f"Could not save card: {e}")
    click.echo(f"Card '{front.strip()}' added (id {card_id}), due today.")


@cli.command("list")
@click.option("--all", "show_all", is_flag=True, help="Include cards that are not due yet")
@click.option("--category", default=None, help="Only cards in this category")
@click.pass_context
def list_cards(ctx: click.Context, show_all: bool, category: str) -> None:
    """List due cards (or every card with --all)."""
    store = _store(ctx)
    try:
        records = store.fetch_progress_for_user(ctx.obj["user"], category)
    except StorageError as e:
        raise click.ClickException(f"Could not load cards: {e}")

    items = select_due(records, datetime.date.today(), category, only_due=not show_all)
    if not items:
        click.echo("No cards to show.")
        return
    for item in items:
        card, prog = item.card, item.progress
        mark = " ★" if prog.mastered else ""
        click.echo(f"{card.id:>5}  {card.front} → {card.back}  "
                   f"[{prog.interval_days}d, due {prog.next_due_date.isoformat()}]{mark}")


@cli.command("categories")
@click.pass_context
def categories(ctx: click.Context) -> None:
    """Show the categories in use."""
    store = _store(ctx)
    try:
        records = store.fetch_progress_for_user(ctx.obj["user"])
    except StorageError as e:
        raise click.ClickException(f"Could not load cards: {e}")
    names = list_categories(records)
    if not names:
        click.echo("No categories yet.")
    for name in names:
        click.echo(name)


@cli.command("delete")
@click.argument("card_id", type=int)
@click.pass_context
def delete(ctx: click.Context, card_id: int) -> None:
    """Delete a card and your progress on it."""
    store = _store(ctx)
    try:
        remove_card(store, card_id, ctx.obj["user"])
    except PartialDeleteError as e:
        raise click.ClickException(str(e))
    except StorageWriteError as e:
        raise click.ClickException(f"Could not delete card {card_id}: {e}")
    click.echo(f"Card {card_id} deleted.")


def _show_back(item: Any, result: Dict[str, Any]) -> None:
    if result.get("checked"):
        click.echo("✅ Correct!" if result["correct"] else "❌ Wrong. The answer is:")
    click.echo(f"  {item.card.back}")
    if item.card.conjugation:
        click.echo("  Forms:")
        for line in item.card.conjugation.splitlines():
            click.echo(f"    {line}")
    if item.card.example:
        click.echo(f"  Example: \"{item.card.example}\"")


@cli.command("review")
@click.option("--mode", type=click.Choice([m.value for m in InteractionMode]), default="flip",
              show_default=True, help="Flip the card, or type the answer")
@click.option("--shuffle", "shuffle_deck", is_flag=True, help="Shuffle the deck")
@click.option("--category", default=None, help="Only cards in this category")
@click.option("--all", "show_all", is_flag=True, help="Also review cards that are not due yet")
@click.pass_context
def review(ctx: click.Context, mode: str, shuffle_deck: bool, category: str, show_all: bool) -> None:
    """Review your due cards."""
    desk = ReviewDesk(_store(ctx), ctx.obj["user"])
    session = desk.open(category=category, only_due=not show_all, shuffle=shuffle_deck,
                        mode=InteractionMode(mode))
    if session.error is not None:
        desk.close()
        raise click.ClickException(f"Could not load cards: {session.error}")

    try:
        while session.state is not SessionState.EMPTY:
            item = session.current
            result: Dict[str, Any] = {}
            if session.state is SessionState.PRESENTING:
                header = (f"\nCard {session.position} of {session.remaining}"
                          f" ({session.reviewed}/{session.total} reviewed)")
                if item.progress.mastered:
                    header += " (mastered)"
                if item.card.category:
                    header += f" · {item.card.category}"
                click.echo(header)
                click.echo(f"  {item.card.front}")
                if session.mode is InteractionMode.TYPING:
                    answer = click.prompt("Your answer", default="", show_default=False)
                    if answer.strip():
                        result = {"checked": True, "correct": session.check_answer(answer)}
                    else:
                        session.reveal()
                else:
                    click.prompt("Press Enter to reveal", default="", show_default=False)
                    session.reveal()
                _show_back(item, result)

            days = session.grade_preview()
            choice = click.prompt(
                f"[1] fail ({days[Quality.FAIL]}d) [2] pass ({days[Quality.PASS]}d) "
                f"[3] easy ({days[Quality.EASY]}d) [n]ext [p]revious [q]uit",
                type=click.Choice(list(GRADE_KEYS) + NAV_KEYS),
                show_choices=False,
            )
            if choice == "q":
                break
            if choice == "n":
                session.next()
                continue
            if choice == "p":
                session.previous()
                continue
            try:
                schedule = session.grade(GRADE_KEYS[choice])
            except StorageWriteError as e:
                click.echo(f"⚠️  Could not save your grade: {e}. Try again.")
                continue
            click.echo(f"📅 Next review on {schedule.new_due_date.isoformat()}.")
    finally:
        desk.close()

    if session.state is SessionState.EMPTY:
        click.echo(f"\n🎉 Reviewed {session.reviewed} card(s). Nothing left to review!")
    else:
        click.echo(f"\nReviewed {session.reviewed} card(s), {session.remaining} left.")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
