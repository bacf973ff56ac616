import datetime
import logging
from typing import Iterable, List, Optional

from .errors import DuplicateCandidate, PartialDeleteError, StorageWriteError, ValidationError
from .guard import filter_new
from .intervals import DEFAULT_TABLE, IntervalTable
from .storage import ProgressStore
from .structured import CardCandidate, IngestReport

logger = logging.getLogger(__name__)


def _clean(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    text = text.strip()
    return text or None


def validate_candidate(candidate: CardCandidate) -> CardCandidate:
    """Trim every field; reject a candidate with an empty front or back."""
    front = _clean(candidate.front)
    back = _clean(candidate.back)
    if not front or not back:
        raise ValidationError("Both the front and the back of a card must be filled in")
    return CardCandidate(
        front=front,
        back=back,
        category=_clean(candidate.category),
        target_language=_clean(candidate.target_language),
        example=_clean(candidate.example),
        conjugation=_clean(candidate.conjugation),
    )


def add_cards(
    store: ProgressStore,
    user_id: str,
    candidates: Iterable[CardCandidate],
    today: Optional[datetime.date] = None,
    table: IntervalTable = DEFAULT_TABLE,
) -> IngestReport:
    """
    Insert new cards for a user, skipping fronts the user already has.

    Every candidate is validated before the store is touched. New cards start
    on the first rung of the interval ladder and are due immediately.
    """
    cleaned = [validate_candidate(c) for c in candidates]
    filtered = filter_new(cleaned, store.existing_fronts(user_id))
    if filtered.duplicate_count:
        logger.info("Skipped %d duplicate card(s) for %s", filtered.duplicate_count, user_id)

    report = IngestReport(duplicate_count=filtered.duplicate_count)
    if not filtered.unique:
        return report

    report.inserted_ids = store.insert_cards(
        user_id,
        filtered.unique,
        interval_days=table.first,
        next_due_date=today or datetime.date.today(),
    )
    return report


def add_card(
    store: ProgressStore,
    user_id: str,
    front: str,
    back: str,
    category: Optional[str] = None,
    target_language: Optional[str] = None,
    example: Optional[str] = None,
    conjugation: Optional[str] = None,
    today: Optional[datetime.date] = None,
) -> int:
    """Add one card. Returns its id; raises DuplicateCandidate if the front exists."""
    candidate = CardCandidate(front, back, category, target_language, example, conjugation)
    report = add_cards(store, user_id, [candidate], today=today)
    if not report.inserted_ids:
        raise DuplicateCandidate(front.strip())
    return report.inserted_ids[0]


def remove_card(store: ProgressStore, card_id: int, user_id: str) -> None:
    """
    Delete a user's progress for a card, then the card itself.

    If the progress delete fails nothing has changed and the StorageWriteError
    propagates. If the card delete fails afterwards a PartialDeleteError
    reports the half-done state. Neither step is retried.
    """
    store.delete_progress(card_id, user_id)
    try:
        store.delete_card(card_id)
    except StorageWriteError as e:
        logger.error("Card %s kept after its progress was removed: %s", card_id, e)
        raise PartialDeleteError(card_id, progress_deleted=True, card_deleted=False, cause=e) from e
