import datetime
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class Card:
    id: int
    front: str
    back: str
    category: Optional[str] = None
    target_language: Optional[str] = None
    example: Optional[str] = None
    conjugation: Optional[str] = None


@dataclass
class Progress:
    id: int
    user_id: str
    card_id: int
    interval_days: int
    next_due_date: datetime.date
    mastered: bool = False


@dataclass
class StudyItem:
    """A Progress row joined with its Card (None when the card is gone)."""
    progress: Progress
    card: Optional[Card]

    @property
    def id(self) -> int:
        return self.progress.id

    @property
    def is_dangling(self) -> bool:
        return self.card is None


@dataclass
class CardCandidate:
    front: str
    back: str
    category: Optional[str] = None
    target_language: Optional[str] = None
    example: Optional[str] = None
    conjugation: Optional[str] = None


@dataclass
class FilterResult:
    unique: List[CardCandidate] = field(default_factory=list)
    duplicate_count: int = 0


@dataclass
class IngestReport:
    inserted_ids: List[int] = field(default_factory=list)
    duplicate_count: int = 0
