"""
Storage contract consumed by the review core.

The store itself is external; anything offering these calls can back a
ReviewSession. ``fiszki.db.SqlStore`` is the bundled SQLAlchemy version and
tests substitute fakes.
"""
import datetime
import logging
import threading
from typing import Callable, List, Optional, Protocol, Sequence, Set

from .structured import CardCandidate, StudyItem

logger = logging.getLogger(__name__)

Listener = Callable[[str, Optional[str]], None]


class ChangeFeed:
    """
    "Data may be stale" notifications.

    Listeners receive ``(table, user_id)``. Delivery order and exactly-once
    delivery are not guaranteed; the only sane reaction is to reload.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def publish(self, table: str, user_id: Optional[str] = None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        logger.debug("Change on %s for user %s, notifying %d listener(s)", table, user_id, len(listeners))
        for listener in listeners:
            listener(table, user_id)


class ProgressStore(Protocol):
    feed: ChangeFeed

    def fetch_progress_for_user(self, user_id: str, category: Optional[str] = None) -> List[StudyItem]:
        """Raises StorageUnavailable or AuthRequired."""
        ...

    def update_progress(self, progress_id: int, interval_days: int,
                        next_due_date: datetime.date, mastered: bool) -> None:
        """Raises StorageWriteError."""
        ...

    def insert_cards(self, user_id: str, candidates: Sequence[CardCandidate],
                     interval_days: int, next_due_date: datetime.date) -> List[int]:
        """Insert cards with their first Progress row; returns card ids."""
        ...

    def existing_fronts(self, user_id: str) -> Set[str]:
        ...

    def delete_progress(self, card_id: int, user_id: str) -> None:
        ...

    def delete_card(self, card_id: int) -> None:
        ...
