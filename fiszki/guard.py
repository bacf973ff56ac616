import logging
from typing import AbstractSet, Iterable

from .structured import CardCandidate, FilterResult

logger = logging.getLogger(__name__)


def normalize_front(front: str) -> str:
    return front.strip().lower()


def filter_new(candidates: Iterable[CardCandidate], existing_fronts: AbstractSet[str]) -> FilterResult:
    """
    Drop candidates whose front already exists.

    Only the front is compared, trimmed and case-insensitively. A candidate
    repeating an earlier candidate of the same batch is a duplicate as well.
    Input order is kept among the unique ones.

    This is a check-then-insert guard; two concurrent writers can still both
    pass it.
    """
    seen = {normalize_front(front) for front in existing_fronts}
    result = FilterResult()
    for candidate in candidates:
        key = normalize_front(candidate.front)
        if key in seen:
            result.duplicate_count += 1
            logger.debug("Skipping duplicate card '%s'", candidate.front)
            continue
        seen.add(key)
        result.unique.append(candidate)
    return result
