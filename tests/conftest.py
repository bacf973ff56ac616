import datetime
from dataclasses import replace
from typing import Any, Callable, Dict, Generator, List, Optional, Sequence, Set

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from fiszki import db
from fiszki.errors import AuthRequired, StorageWriteError
from fiszki.storage import ChangeFeed
from fiszki.structured import Card, CardCandidate, Progress, StudyItem

TODAY = datetime.date(2024, 3, 10)


class FakeStore:
    """In-memory store with switchable failures, for session tests."""

    def __init__(self) -> None:
        self.feed = ChangeFeed()
        self.cards: Dict[int, Card] = {}
        self.progress: Dict[int, Progress] = {}
        self.updates: List[Dict[str, Any]] = []
        self.fetch_error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self.delete_progress_error: Optional[Exception] = None
        self.delete_card_error: Optional[Exception] = None
        self.on_update: Optional[Callable[[int], None]] = None
        self._next_id = 1

    def _new_id(self) -> int:
        new_id = self._next_id
        self._next_id += 1
        return new_id

    def add(self, front: str, back: str, interval: int = 1, due: datetime.date = TODAY,
            category: Optional[str] = None, user: str = "user-1", **extra: Any) -> Progress:
        card = Card(id=self._new_id(), front=front, back=back, category=category, **extra)
        self.cards[card.id] = card
        prog = Progress(id=self._new_id(), user_id=user, card_id=card.id,
                        interval_days=interval, next_due_date=due)
        self.progress[prog.id] = prog
        return prog

    def fetch_progress_for_user(self, user_id: str, category: Optional[str] = None) -> List[StudyItem]:
        if not user_id:
            raise AuthRequired("no user")
        if self.fetch_error is not None:
            raise self.fetch_error
        return [
            StudyItem(progress=replace(p), card=self.cards.get(p.card_id))
            for p in sorted(self.progress.values(), key=lambda p: p.id)
            if p.user_id == user_id
        ]

    def update_progress(self, progress_id: int, interval_days: int,
                        next_due_date: datetime.date, mastered: bool) -> None:
        if self.on_update is not None:
            self.on_update(progress_id)
        if self.update_error is not None:
            raise self.update_error
        if progress_id not in self.progress:
            raise StorageWriteError(f"Progress {progress_id} does not exist")
        prog = replace(self.progress[progress_id], interval_days=interval_days,
                       next_due_date=next_due_date, mastered=mastered)
        self.progress[progress_id] = prog
        self.updates.append({"id": progress_id, "interval_days": interval_days,
                             "next_due_date": next_due_date, "mastered": mastered})
        self.feed.publish("user_cards", prog.user_id)

    def insert_cards(self, user_id: str, candidates: Sequence[CardCandidate],
                     interval_days: int, next_due_date: datetime.date) -> List[int]:
        ids = []
        for c in candidates:
            prog = self.add(c.front, c.back, interval=interval_days, due=next_due_date,
                            category=c.category, user=user_id, target_language=c.target_language,
                            example=c.example, conjugation=c.conjugation)
            ids.append(prog.card_id)
        self.feed.publish("cards", user_id)
        return ids

    def existing_fronts(self, user_id: str) -> Set[str]:
        return {
            self.cards[p.card_id].front
            for p in self.progress.values()
            if p.user_id == user_id and p.card_id in self.cards
        }

    def delete_progress(self, card_id: int, user_id: str) -> None:
        if self.delete_progress_error is not None:
            raise self.delete_progress_error
        for pid in [p.id for p in self.progress.values() if p.card_id == card_id and p.user_id == user_id]:
            del self.progress[pid]
        self.feed.publish("user_cards", user_id)

    def delete_card(self, card_id: int) -> None:
        if self.delete_card_error is not None:
            raise self.delete_card_error
        self.cards.pop(card_id, None)
        self.feed.publish("cards")


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def temp_db(tmp_path: Any) -> Generator[str, None, None]:
    """Rebind the engine and session factory to a temporary SQLite file."""
    test_db = str(tmp_path / "test.db")
    original_engine, original_session = db.engine, db.SessionLocal
    db.engine = create_engine(f"sqlite:///{test_db}")
    db.SessionLocal = sessionmaker(bind=db.engine, expire_on_commit=False)
    db.init_db()
    yield test_db
    db.engine.dispose()
    db.engine, db.SessionLocal = original_engine, original_session
