from typing import Iterable, Iterator, Tuple

# Review ladder in days. A card climbs one rung on "pass", two on "easy".
DEFAULT_INTERVALS: Tuple[int, ...] = (1, 3, 7, 14, 30, 60, 90, 180, 365)

NOT_FOUND = -1


class IntervalTable:
    """Fixed ascending sequence of review intervals (days)."""

    def __init__(self, values: Iterable[int]) -> None:
        values = tuple(values)
        if not values:
            raise ValueError("Interval table must not be empty")
        for value in values:
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ValueError(f"Interval must be a positive integer, got {value!r}")
        if any(a >= b for a, b in zip(values, values[1:])):
            raise ValueError(f"Intervals must be strictly ascending: {values}")
        self._values = values

    def index_of(self, interval: int) -> int:
        """Position of interval in the table, or NOT_FOUND."""
        try:
            return self._values.index(interval)
        except ValueError:
            return NOT_FOUND

    def at(self, index: int) -> int:
        """Interval at index, clamped to the last rung."""
        if index < 0:
            raise IndexError(f"Negative interval index {index}")
        return self._values[min(index, len(self._values) - 1)]

    @property
    def first(self) -> int:
        return self._values[0]

    @property
    def last(self) -> int:
        return self._values[-1]

    @property
    def second_to_last(self) -> int:
        # single-rung tables master on their only value
        return self._values[-2] if len(self._values) > 1 else self._values[0]

    def __contains__(self, interval: object) -> bool:
        return interval in self._values

    def __iter__(self) -> Iterator[int]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"IntervalTable({list(self._values)})"


DEFAULT_TABLE = IntervalTable(DEFAULT_INTERVALS)

# Cards at or beyond this interval count as mastered.
MASTERY_THRESHOLD: int = DEFAULT_TABLE.second_to_last
