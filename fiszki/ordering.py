import random
from typing import Generic, Iterable, List, Optional, Sequence, TypeVar

T = TypeVar("T")


def shuffle(items: Sequence[T], rng: Optional[random.Random] = None) -> List[T]:
    """Return a uniformly shuffled copy of items (Fisher-Yates)."""
    rng = rng or random
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = rng.randint(0, i)
        result[i], result[j] = result[j], result[i]
    return result


class DeckOrder(Generic[T]):
    """
    Presentation order for a filtered deck.

    Holds the selector-provided order. A shuffle is only kept until the next
    refilter: changing the filters resets to the base order.
    """

    def __init__(self, items: Iterable[T], rng: Optional[random.Random] = None) -> None:
        self._base: List[T] = list(items)
        self._rng = rng
        self.is_shuffled = False

    @property
    def base(self) -> List[T]:
        return list(self._base)

    def shuffled(self) -> List[T]:
        self.is_shuffled = True
        return shuffle(self._base, self._rng)

    def refilter(self, items: Iterable[T]) -> List[T]:
        self._base = list(items)
        self.is_shuffled = False
        return self.base
