"""
Tests for due-set selection, deck ordering and the duplicate guard.
"""

import datetime
import random

from fiszki import ordering
from fiszki.guard import filter_new
from fiszki.selection import list_categories, select_due
from fiszki.structured import Card, CardCandidate, Progress, StudyItem

TODAY = datetime.date(2024, 3, 10)


def make_item(pid: int, due: datetime.date, category=None, card=True) -> StudyItem:
    prog = Progress(id=pid, user_id="user-1", card_id=100 + pid, interval_days=1, next_due_date=due)
    return StudyItem(
        progress=prog,
        card=Card(id=100 + pid, front=f"front{pid}", back=f"back{pid}", category=category) if card else None,
    )


# ── Due selection ─────────────────────────────────────────────────


def test_only_due_excludes_future_cards() -> None:
    """Cards due after today are left out unless browsing."""
    items = [
        make_item(1, TODAY),
        make_item(2, TODAY + datetime.timedelta(days=1)),
        make_item(3, TODAY - datetime.timedelta(days=3)),
    ]
    due = select_due(items, TODAY)
    assert [i.id for i in due] == [3, 1]

    browse = select_due(items, TODAY, only_due=False)
    assert [i.id for i in browse] == [3, 1, 2]


def test_ties_keep_input_order() -> None:
    """Cards due on the same day stay in the order they came in."""
    items = [make_item(5, TODAY), make_item(2, TODAY), make_item(9, TODAY)]
    assert [i.id for i in select_due(items, TODAY)] == [5, 2, 9]


def test_datetime_today_compares_by_date() -> None:
    """A card due today is due at any time of day."""
    items = [make_item(1, TODAY)]
    assert select_due(items, datetime.datetime(2024, 3, 10, 0, 1))
    assert select_due(items, datetime.datetime(2024, 3, 10, 23, 59))


def test_category_filter() -> None:
    """Category matches trimmed and case-insensitively; 'all' turns it off."""
    items = [make_item(1, TODAY, "Animals"), make_item(2, TODAY, " food "), make_item(3, TODAY)]
    assert [i.id for i in select_due(items, TODAY, "animals")] == [1]
    assert [i.id for i in select_due(items, TODAY, "  FOOD")] == [2]
    assert len(select_due(items, TODAY, "all")) == 3
    assert len(select_due(items, TODAY, "")) == 3
    assert select_due(items, TODAY, "travel") == []


def test_dangling_items_are_skipped(caplog) -> None:
    """Progress whose card is gone is dropped and logged."""
    items = [make_item(1, TODAY), make_item(2, TODAY, card=False)]
    with caplog.at_level("WARNING"):
        due = select_due(items, TODAY)
    assert [i.id for i in due] == [1]
    assert "no longer exists" in caplog.text


def test_list_categories() -> None:
    """Distinct categories in first-seen order, ignoring case and blanks."""
    items = [
        make_item(1, TODAY, "Animals"),
        make_item(2, TODAY, "food"),
        make_item(3, TODAY, " animals "),
        make_item(4, TODAY, None),
        make_item(5, TODAY, "Food", card=False),
    ]
    assert list_categories(items) == ["Animals", "food"]


# ── Ordering ──────────────────────────────────────────────────────


def test_shuffle_is_a_permutation() -> None:
    """Shuffling never drops or duplicates elements and leaves the input alone."""
    items = list(range(20))
    rng = random.Random(7)
    for _ in range(10):
        result = ordering.shuffle(items, rng)
        assert sorted(result) == items
        assert result is not items
    assert items == list(range(20))


def test_shuffle_short_sequences() -> None:
    """Empty and single-element sequences come back unchanged."""
    assert ordering.shuffle([]) == []
    assert ordering.shuffle(["x"]) == ["x"]


def test_shuffle_reaches_every_permutation() -> None:
    """All orderings of three cards show up."""
    rng = random.Random(1)
    seen = {tuple(ordering.shuffle("abc", rng)) for _ in range(300)}
    assert len(seen) == 6


def test_refilter_resets_shuffle() -> None:
    """Changing the filter goes back to the selector order."""
    deck = ordering.DeckOrder([1, 2, 3, 4], random.Random(3))
    shuffled = deck.shuffled()
    assert deck.is_shuffled
    assert sorted(shuffled) == [1, 2, 3, 4]

    assert deck.refilter([4, 2]) == [4, 2]
    assert deck.is_shuffled is False
    assert deck.base == [4, 2]


# ── Duplicate guard ───────────────────────────────────────────────


def test_filter_new_drops_existing_fronts() -> None:
    """'Dog' counts as a duplicate of an existing 'dog'."""
    candidates = [CardCandidate("Dog", "pies"), CardCandidate("cat", "kot")]
    result = filter_new(candidates, {"dog"})
    assert result.unique == [CardCandidate("cat", "kot")]
    assert result.duplicate_count == 1


def test_filter_new_is_idempotent() -> None:
    """Feeding the unique output back with its fronts known yields nothing new."""
    existing = {"dog"}
    candidates = [CardCandidate("Dog", "pies"), CardCandidate("cat", "kot"), CardCandidate("mouse", "mysz")]
    first = filter_new(candidates, existing)

    second = filter_new(first.unique, existing | {c.front for c in first.unique})
    assert second.unique == []
    assert second.duplicate_count == len(first.unique)


def test_filter_new_repeats_within_batch() -> None:
    """A front repeated in one batch is kept once."""
    candidates = [CardCandidate(" house ", "dom"), CardCandidate("House", "dom"), CardCandidate("tree", "drzewo")]
    result = filter_new(candidates, set())
    assert [c.back for c in result.unique] == ["dom", "drzewo"]
    assert result.duplicate_count == 1


def test_filter_new_ignores_back() -> None:
    """Only the front decides; a different translation is still a duplicate."""
    result = filter_new([CardCandidate("dog", "psiak")], {"DOG "})
    assert result.unique == []
    assert result.duplicate_count == 1
