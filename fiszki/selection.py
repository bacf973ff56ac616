import datetime
import logging
from typing import Iterable, List, Optional, Union

from .structured import StudyItem

logger = logging.getLogger(__name__)

ALL_CATEGORIES = "all"


def _norm(text: Optional[str]) -> str:
    return (text or "").strip().lower()


def _as_date(value: Union[datetime.date, datetime.datetime]) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    return value


def category_key(category: Optional[str]) -> Optional[str]:
    """Normalised category to match on, or None when the filter is off."""
    wanted = _norm(category)
    if not wanted or wanted == ALL_CATEGORIES:
        return None
    return wanted


def select_due(
    records: Iterable[StudyItem],
    today: Union[datetime.date, datetime.datetime],
    category: Optional[str] = None,
    only_due: bool = True,
) -> List[StudyItem]:
    """
    Pick the study items eligible for a session.

    With ``only_due`` only items whose next due date is today or earlier are
    kept; otherwise every item is kept (browse mode). ``category`` matches the
    card's category case-insensitively after trimming; "all" disables it.
    Items whose card has been deleted are skipped. The result is ordered by
    due date, keeping input order among equal dates.
    """
    today = _as_date(today)
    wanted = category_key(category)

    selected: List[StudyItem] = []
    for item in records:
        if item.is_dangling:
            logger.warning(
                "Skipping progress %s: card %s no longer exists",
                item.progress.id, item.progress.card_id,
            )
            continue
        if only_due and _as_date(item.progress.next_due_date) > today:
            continue
        if wanted is not None and _norm(item.card.category) != wanted:
            continue
        selected.append(item)

    # sorted() is stable, so equal dates keep input order
    return sorted(selected, key=lambda item: _as_date(item.progress.next_due_date))


def list_categories(records: Iterable[StudyItem]) -> List[str]:
    """Distinct trimmed categories in first-seen order."""
    seen = set()
    categories: List[str] = []
    for item in records:
        if item.is_dangling or not item.card.category:
            continue
        name = item.card.category.strip()
        key = name.lower()
        if name and key not in seen:
            seen.add(key)
            categories.append(name)
    return categories
