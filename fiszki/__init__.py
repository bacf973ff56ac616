"""
Fiszki

Flashcards for word/translation pairs, reviewed on a spaced-repetition ladder.
"""

from . import db
from . import intervals
from . import scheduler
from . import selection
from . import ordering
from . import guard
from . import ingest
from . import session

__version__ = "0.1.0"
__all__ = ["db", "intervals", "scheduler", "selection", "ordering", "guard", "ingest", "session"]
