import datetime
from enum import Enum
from typing import Dict, NamedTuple, Optional, Union

from .intervals import DEFAULT_TABLE, NOT_FOUND, IntervalTable


class Quality(str, Enum):
    """Self-reported recall outcome for a card."""
    FAIL = "fail"
    PASS = "pass"
    EASY = "easy"


class Schedule(NamedTuple):
    new_interval: int
    new_due_date: datetime.date
    mastered: bool


# Rungs climbed per quality, and where an unrecognised interval lands.
_STEPS = {Quality.PASS: 1, Quality.EASY: 2}
_UNKNOWN_LANDING = {Quality.PASS: 1, Quality.EASY: 2}


def _as_date(today: Optional[Union[datetime.date, datetime.datetime]]) -> datetime.date:
    if today is None:
        return datetime.date.today()
    if isinstance(today, datetime.datetime):
        return today.date()
    return today


def next_interval(
    current_interval: int,
    quality: Union[Quality, str],
    table: IntervalTable = DEFAULT_TABLE,
) -> int:
    """Return the interval that follows current_interval for the given quality."""
    quality = Quality(quality)
    if not isinstance(current_interval, int) or isinstance(current_interval, bool):
        raise ValueError(f"Interval must be an integer, got {current_interval!r}")
    if current_interval < 0:
        raise ValueError(f"Interval must not be negative, got {current_interval}")

    if quality is Quality.FAIL:
        return table.first

    position = table.index_of(current_interval)
    if position == NOT_FOUND:
        return table.at(_UNKNOWN_LANDING[quality])
    return table.at(position + _STEPS[quality])


def grade(
    current_interval: int,
    quality: Union[Quality, str],
    today: Optional[Union[datetime.date, datetime.datetime]] = None,
    table: IntervalTable = DEFAULT_TABLE,
) -> Schedule:
    """
    Interval-ladder scheduling.

    The card sits on one rung of ``table``:
      fail: drop back to the first rung, whatever the current interval
      pass: climb one rung
      easy: climb two rungs
    Climbing past the top stays on the top rung. An interval that is not on
    the ladder (seeded externally) lands on the second rung for pass and the
    third for easy, so it is never re-awarded the first-step interval.

    The due date is a calendar date: ``today + new_interval`` days, with any
    time of day discarded. A card is mastered once its interval reaches the
    second-highest rung.

    Raises:
        ValueError: for an unknown quality or a malformed interval.
    """
    new_interval = next_interval(current_interval, quality, table)
    due = _as_date(today) + datetime.timedelta(days=new_interval)
    return Schedule(new_interval, due, new_interval >= table.second_to_last)


def preview(current_interval: int, table: IntervalTable = DEFAULT_TABLE) -> Dict[Quality, int]:
    """Interval each quality would produce, for labelling grade buttons."""
    return {q: next_interval(current_interval, q, table) for q in Quality}
