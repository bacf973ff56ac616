"""ReviewSession: card presentation, reveal, grading and advancement."""
from __future__ import annotations

import datetime
import logging
import random
import uuid
from dataclasses import replace
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple, Union

from . import ordering, scheduler
from .errors import (
    AuthRequired,
    InvalidTransition,
    PartialDeleteError,
    SessionBusy,
    StorageError,
    StorageUnavailable,
    StorageWriteError,
)
from .ingest import remove_card
from .intervals import DEFAULT_TABLE, IntervalTable
from .ordering import DeckOrder
from .selection import select_due
from .storage import ProgressStore
from .structured import StudyItem

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    LOADING = "loading"
    EMPTY = "empty"
    PRESENTING = "presenting"
    REVEALED = "revealed"


class InteractionMode(str, Enum):
    FLIP = "flip"
    TYPING = "typing"


def answers_match(answer: str, expected: str) -> bool:
    return answer.strip().lower() == expected.strip().lower()


class ReviewSession:
    """
    One pass over a user's due cards.

    Usage:
        session = ReviewSession(store, "user-1", mode=InteractionMode.TYPING)
        session.load()
        while session.state is not SessionState.EMPTY:
            session.check_answer(input_text)   # or session.reveal()
            session.grade(Quality.PASS)

    Exactly one card is gradable at a time: the one under the cursor, and only
    once it has been revealed. The queue only changes after the store has
    accepted the new progress, so a failed write leaves the session on the
    same card.
    """

    def __init__(self, store: ProgressStore, user_id: str,
                 category: Optional[str] = None, only_due: bool = True,
                 shuffle: bool = False, mode: InteractionMode = InteractionMode.FLIP,
                 today: Optional[datetime.date] = None,
                 table: IntervalTable = DEFAULT_TABLE,
                 rng: Optional[random.Random] = None):
        self.store = store
        self.user_id = user_id
        self.category = category
        self.only_due = only_due
        self.shuffle_requested = shuffle
        self.mode = InteractionMode(mode)
        self.table = table
        self._today = today
        self._rng = rng
        self.session_id = str(uuid.uuid4())
        self.state = SessionState.LOADING
        self.error: Optional[StorageError] = None
        self.stale = False
        self.closed = False
        self.reviewed = 0
        self._order: DeckOrder[StudyItem] = DeckOrder([], rng)
        self._items: List[StudyItem] = []
        self._cursor = 0
        self._in_flight = False
        self._expected_echoes: List[Tuple[str, Optional[str]]] = []
        self._missed_change = False
        self._loaded_total = 0
        self.answer = ""
        self.is_correct: Optional[bool] = None

    # ── Properties ────────────────────────────────────────────────

    @property
    def today(self) -> datetime.date:
        return self._today or datetime.date.today()

    @property
    def busy(self) -> bool:
        """True while a grade or delete is waiting on the store."""
        return self._in_flight

    @property
    def current(self) -> Optional[StudyItem]:
        if self.state in (SessionState.PRESENTING, SessionState.REVEALED):
            return self._items[self._cursor]
        return None

    @property
    def items(self) -> List[StudyItem]:
        return list(self._items)

    @property
    def position(self) -> int:
        """1-based position of the current card, 0 when there is none."""
        return self._cursor + 1 if self.current is not None else 0

    @property
    def total(self) -> int:
        """Number of cards the session was loaded with."""
        return self._loaded_total

    @property
    def remaining(self) -> int:
        return len(self._items)

    @property
    def is_shuffled(self) -> bool:
        return self._order.is_shuffled

    def grade_preview(self) -> Dict[scheduler.Quality, int]:
        item = self._require_card()
        return scheduler.preview(item.progress.interval_days, self.table)

    # ── Loading ───────────────────────────────────────────────────

    def load(self) -> SessionState:
        """
        Fetch the user's progress and build the queue.

        A storage outage or missing user leaves the session in LOADING with
        ``error`` set; the caller retries with ``refresh()``.
        """
        if self.closed:
            raise InvalidTransition("Session is closed")
        if self._in_flight:
            raise SessionBusy("Cannot reload while a card is being saved")
        self.state = SessionState.LOADING
        self.error = None
        self.stale = False
        self._items = []
        self._cursor = 0
        self._loaded_total = 0
        self._reset_card_state()

        try:
            records = self.store.fetch_progress_for_user(self.user_id, self.category)
        except (StorageUnavailable, AuthRequired) as e:
            logger.error("Loading cards for %s failed: %s", self.user_id, e)
            self.error = e
            return self.state

        if self.closed:
            logger.info("Discarding load result for closed session %s", self.session_id)
            return self.state

        due = select_due(records, self.today, self.category, self.only_due)
        self._order = DeckOrder(due, self._rng)
        self._items = self._order.shuffled() if self.shuffle_requested else self._order.base
        self._loaded_total = len(self._items)
        self.state = SessionState.PRESENTING if self._items else SessionState.EMPTY
        logger.debug("Session %s loaded %d card(s)", self.session_id, len(self._items))
        return self.state

    def refresh(self) -> SessionState:
        return self.load()

    # ── Presenting / revealed ─────────────────────────────────────

    def check_answer(self, answer: str) -> bool:
        """Typing mode: compare the typed answer with the back side and reveal."""
        if self.mode is not InteractionMode.TYPING:
            raise InvalidTransition("Answers are only checked in typing mode")
        item = self._require_state(SessionState.PRESENTING)
        self.answer = answer
        self.is_correct = answers_match(answer, item.card.back)
        self.state = SessionState.REVEALED
        return self.is_correct

    def reveal(self) -> StudyItem:
        """Show the back side. In typing mode this counts as a wrong answer."""
        item = self._require_state(SessionState.PRESENTING)
        if self.mode is InteractionMode.TYPING:
            self.is_correct = False
        self.state = SessionState.REVEALED
        return item

    def hide(self) -> None:
        """Flip mode: turn a revealed card back to its front."""
        if self.mode is not InteractionMode.FLIP:
            raise InvalidTransition("Only flip-mode cards can be turned back")
        self._require_state(SessionState.REVEALED)
        if self._in_flight:
            raise SessionBusy("A grade is already being saved")
        self.state = SessionState.PRESENTING

    def grade(self, quality: Union[scheduler.Quality, str],
              progress_id: Optional[int] = None) -> scheduler.Schedule:
        """
        Grade the current card, persist it, then drop it from the queue.

        ``progress_id``, when given, must name the current card; grading any
        other card is refused.

        Raises:
            SessionBusy: a previous grade has not completed yet.
            InvalidTransition: the current card has not been revealed.
            StorageWriteError: the store rejected the update; nothing changed locally.
        """
        if self._in_flight:
            raise SessionBusy("A grade is already being saved")
        item = self._require_state(SessionState.REVEALED)
        if progress_id is not None and progress_id != item.progress.id:
            raise InvalidTransition(f"Card {progress_id} is not the current card")

        schedule = scheduler.grade(item.progress.interval_days, quality, self.today, self.table)

        self._begin_write([("user_cards", self.user_id)])
        try:
            self.store.update_progress(
                item.progress.id,
                schedule.new_interval,
                schedule.new_due_date,
                schedule.mastered,
            )
        except StorageWriteError as e:
            logger.error("Saving grade for progress %s failed: %s", item.progress.id, e)
            raise
        finally:
            self._end_write()

        if self.closed:
            logger.info("Discarding grade result for closed session %s", self.session_id)
            return schedule

        item.progress = replace(
            item.progress,
            interval_days=schedule.new_interval,
            next_due_date=schedule.new_due_date,
            mastered=schedule.mastered,
        )
        self.reviewed += 1
        self._drop_current()
        return schedule

    def delete_current(self) -> StudyItem:
        """Delete the current card for good and drop it from the queue."""
        if self._in_flight:
            raise SessionBusy("A grade is already being saved")
        item = self._require_card()

        self._begin_write([("user_cards", self.user_id), ("cards", None)])
        try:
            remove_card(self.store, item.progress.card_id, self.user_id)
        except PartialDeleteError:
            # progress is gone, the card is not: only a reload shows the truth
            self.stale = True
            raise
        finally:
            self._end_write()

        if not self.closed:
            self._drop_current()
        return item

    # ── Navigation ────────────────────────────────────────────────

    def next(self) -> Optional[StudyItem]:
        return self._move(1)

    def previous(self) -> Optional[StudyItem]:
        return self._move(-1)

    def shuffle(self) -> None:
        """Re-shuffle the remaining queue and start from its first card."""
        if self._in_flight:
            raise SessionBusy("A grade is already being saved")
        self._require_card()
        self._items = ordering.shuffle(self._items, self._rng)
        self._order.is_shuffled = True
        self._cursor = 0
        self._reset_card_state()
        self.state = SessionState.PRESENTING

    # ── Lifecycle ─────────────────────────────────────────────────

    def invalidate(self) -> None:
        """Mark the loaded data as possibly out of date."""
        self.stale = True

    def note_change(self, table: str, user_id: Optional[str]) -> None:
        """
        React to a change notification.

        While a write is in flight, the notifications that write itself
        produces are consumed once each. Anything else is held back and
        marks the session stale when the write finishes.
        """
        if not self._in_flight:
            self.invalidate()
            return
        key = (table, user_id)
        if key in self._expected_echoes:
            self._expected_echoes.remove(key)
            return
        self._missed_change = True

    def close(self) -> None:
        self.closed = True

    # ── Internals ─────────────────────────────────────────────────

    def _begin_write(self, echoes: List[Tuple[str, Optional[str]]]) -> None:
        self._in_flight = True
        self._expected_echoes = list(echoes)
        self._missed_change = False

    def _end_write(self) -> None:
        self._in_flight = False
        self._expected_echoes = []
        if self._missed_change:
            self._missed_change = False
            self.invalidate()

    def _reset_card_state(self) -> None:
        self.answer = ""
        self.is_correct = None

    def _require_card(self) -> StudyItem:
        item = self.current
        if item is None:
            raise InvalidTransition(f"No current card (session is {self.state.value})")
        return item

    def _require_state(self, state: SessionState) -> StudyItem:
        if self.state is not state:
            raise InvalidTransition(f"Expected {state.value}, session is {self.state.value}")
        return self._items[self._cursor]

    def _move(self, step: int) -> Optional[StudyItem]:
        if self._in_flight:
            raise SessionBusy("A grade is already being saved")
        self._require_card()
        self._cursor = (self._cursor + step) % len(self._items)
        self._reset_card_state()
        self.state = SessionState.PRESENTING
        return self._items[self._cursor]

    def _drop_current(self) -> None:
        del self._items[self._cursor]
        self._reset_card_state()
        if not self._items:
            self._cursor = 0
            self.state = SessionState.EMPTY
            return
        if self._cursor >= len(self._items):
            self._cursor = 0
        self.state = SessionState.PRESENTING


class ReviewDesk:
    """
    Owns the current ReviewSession for one user.

    Opening a session (new filters, refresh after going away) closes the
    previous one, so anything it still has in flight is discarded when it
    completes. Change notifications from the store mark the open session
    stale, except the ones its own writes produce. Reloading is left to the
    caller.
    """

    def __init__(self, store: ProgressStore, user_id: str,
                 table: IntervalTable = DEFAULT_TABLE,
                 rng: Optional[random.Random] = None) -> None:
        self.store = store
        self.user_id = user_id
        self.table = table
        self._rng = rng
        self.session: Optional[ReviewSession] = None
        self._unsubscribe: Optional[Callable[[], None]] = None
        feed = getattr(store, "feed", None)
        if feed is not None:
            self._unsubscribe = feed.subscribe(self._on_change)

    def open(self, category: Optional[str] = None, only_due: bool = True,
             shuffle: bool = False, mode: InteractionMode = InteractionMode.FLIP,
             today: Optional[datetime.date] = None) -> ReviewSession:
        if self.session is not None:
            self.session.close()
        session = ReviewSession(
            self.store, self.user_id,
            category=category, only_due=only_due, shuffle=shuffle, mode=mode,
            today=today, table=self.table, rng=self._rng,
        )
        self.session = session
        session.load()
        return session

    def refresh(self) -> Optional[SessionState]:
        if self.session is None:
            return None
        return self.session.refresh()

    def is_current(self, session_id: str) -> bool:
        return self.session is not None and self.session.session_id == session_id

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_change(self, table: str, user_id: Optional[str]) -> None:
        session = self.session
        if session is None or session.closed:
            return
        if user_id is not None and user_id != self.user_id:
            return
        session.note_change(table, user_id)
