from __future__ import annotations
import datetime
import logging
import os
from typing import List, Optional, Sequence, Set

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker

from .errors import AuthRequired, StorageUnavailable, StorageWriteError
from .intervals import DEFAULT_TABLE
from .selection import category_key
from .storage import ChangeFeed
from .structured import Card, CardCandidate, Progress, StudyItem

logger = logging.getLogger(__name__)

DEBUG_MODE = os.getenv("DEBUG", "0") == "1"


class Base(DeclarativeBase):
    pass


DB_PATH: str = os.environ.get("FISZKI_DB", "fiszki.db")
engine = create_engine(f"sqlite:///{DB_PATH}")
# Prevent attribute expiration on commit so returned objects remain accessible
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


class CardRow(Base):
    __tablename__ = "cards"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    front: Mapped[str] = mapped_column(String, nullable=False)
    back: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String)
    target_language: Mapped[Optional[str]] = mapped_column(String)
    example: Mapped[Optional[str]] = mapped_column(Text)
    conjugation: Mapped[Optional[str]] = mapped_column(Text)  # verb forms, one per line
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=lambda: datetime.datetime.now(datetime.timezone.utc))

    def to_card(self) -> Card:
        return Card(
            id=self.id,
            front=self.front,
            back=self.back,
            category=self.category,
            target_language=self.target_language,
            example=self.example,
            conjugation=self.conjugation,
        )


class ProgressRow(Base):
    __tablename__ = "user_cards"
    __table_args__ = (UniqueConstraint("user_id", "card_id", name="uq_user_card"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    # No cascade: a card deleted elsewhere leaves the row dangling until its own delete lands
    card_id: Mapped[int] = mapped_column(Integer, ForeignKey("cards.id"), nullable=False)
    interval_days: Mapped[int] = mapped_column(Integer, default=DEFAULT_TABLE.first)
    next_due_date: Mapped[datetime.date] = mapped_column(Date, default=datetime.date.today)
    mastered: Mapped[bool] = mapped_column(Boolean, default=False)

    def to_progress(self) -> Progress:
        return Progress(
            id=self.id,
            user_id=self.user_id,
            card_id=self.card_id,
            interval_days=self.interval_days,
            next_due_date=self.next_due_date,
            mastered=self.mastered,
        )


def is_db_initialized() -> bool:
    """Check if the database is already initialized by checking if tables exist."""
    from sqlalchemy import inspect
    inspector = inspect(engine)
    return {"cards", "user_cards"}.issubset(set(inspector.get_table_names()))


def init_db() -> None:
    """Initialize the database by creating all tables."""
    Base.metadata.create_all(bind=engine)


def get_session() -> Session:
    return SessionLocal()


class SqlStore:
    """Storage collaborator backed by the module-level SQLAlchemy engine."""

    def __init__(self, feed: Optional[ChangeFeed] = None) -> None:
        self.feed = feed or ChangeFeed()

    @staticmethod
    def _require_user(user_id: str) -> None:
        if not user_id:
            raise AuthRequired("A user id is required")

    def fetch_progress_for_user(self, user_id: str, category: Optional[str] = None) -> List[StudyItem]:
        self._require_user(user_id)
        stmt = (
            select(ProgressRow, CardRow)
            .outerjoin(CardRow, CardRow.id == ProgressRow.card_id)
            .where(ProgressRow.user_id == user_id)
            .order_by(ProgressRow.id)
        )
        session = get_session()
        try:
            rows = session.execute(stmt).all()
        except SQLAlchemyError as e:
            logger.error("Could not load progress for %s: %s", user_id, e)
            raise StorageUnavailable(str(e)) from e
        finally:
            session.close()

        items = [
            StudyItem(progress=prog.to_progress(), card=card.to_card() if card is not None else None)
            for prog, card in rows
        ]
        # SQLite lower/trim are ASCII-only, so categories are matched here
        wanted = category_key(category)
        if wanted is not None:
            items = [
                i for i in items
                if i.card is not None and category_key(i.card.category) == wanted
            ]
        return items

    def update_progress(self, progress_id: int, interval_days: int,
                        next_due_date: datetime.date, mastered: bool) -> None:
        session = get_session()
        try:
            row = session.get(ProgressRow, progress_id)
            if row is None:
                raise StorageWriteError(f"Progress {progress_id} does not exist")
            row.interval_days = interval_days
            row.next_due_date = next_due_date
            row.mastered = mastered
            session.commit()
            user_id = row.user_id
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Could not update progress %s: %s", progress_id, e)
            raise StorageWriteError(str(e)) from e
        finally:
            session.close()
        if DEBUG_MODE:
            logger.debug("Progress %s -> %s days, due %s", progress_id, interval_days, next_due_date)
        self.feed.publish("user_cards", user_id)

    def insert_cards(self, user_id: str, candidates: Sequence[CardCandidate],
                     interval_days: int, next_due_date: datetime.date) -> List[int]:
        self._require_user(user_id)
        if not candidates:
            return []
        session = get_session()
        try:
            cards = [
                CardRow(
                    front=c.front,
                    back=c.back,
                    category=c.category,
                    target_language=c.target_language,
                    example=c.example,
                    conjugation=c.conjugation,
                )
                for c in candidates
            ]
            session.add_all(cards)
            session.flush()  # Get the IDs
            session.add_all(
                ProgressRow(
                    user_id=user_id,
                    card_id=card.id,
                    interval_days=interval_days,
                    next_due_date=next_due_date,
                    mastered=False,
                )
                for card in cards
            )
            session.commit()
            card_ids = [card.id for card in cards]
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("Could not insert %d card(s): %s", len(candidates), e)
            raise StorageWriteError(str(e)) from e
        finally:
            session.close()
        self.feed.publish("cards", user_id)
        return card_ids

    def existing_fronts(self, user_id: str) -> Set[str]:
        self._require_user(user_id)
        stmt = (
            select(CardRow.front)
            .join(ProgressRow, ProgressRow.card_id == CardRow.id)
            .where(ProgressRow.user_id == user_id)
        )
        session = get_session()
        try:
            return set(session.scalars(stmt).all())
        except SQLAlchemyError as e:
            raise StorageUnavailable(str(e)) from e
        finally:
            session.close()

    def delete_progress(self, card_id: int, user_id: str) -> None:
        self._require_user(user_id)
        session = get_session()
        try:
            rows = session.scalars(
                select(ProgressRow).where(ProgressRow.card_id == card_id, ProgressRow.user_id == user_id)
            ).all()
            for row in rows:
                session.delete(row)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageWriteError(str(e)) from e
        finally:
            session.close()
        self.feed.publish("user_cards", user_id)

    def delete_card(self, card_id: int) -> None:
        session = get_session()
        try:
            card = session.get(CardRow, card_id)
            if card is not None:
                session.delete(card)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageWriteError(str(e)) from e
        finally:
            session.close()
        self.feed.publish("cards")
