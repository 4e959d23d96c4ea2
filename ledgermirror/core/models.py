from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Tuple

from .errors import InvalidCategoryError


class Category(IntEnum):
    """Counter classes deployed on the ledger contract."""

    RED = 0
    GREEN = 1
    BLUE = 2


DEFAULT_NUM_CATEGORIES = len(Category)


def validate_category(value: object, *, num_categories: int = DEFAULT_NUM_CATEGORIES) -> int:
    """Return `value` as a plain int, or raise InvalidCategoryError.

    The contract accepts any uint256 and silently ignores unknown values, so the
    range check has to happen locally.
    """

    # bool is an int subclass; True/False are never categories.
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidCategoryError(value, num_categories)
    if not 0 <= value < num_categories:
        raise InvalidCategoryError(value, num_categories)
    return int(value)


def category_label(category: int) -> str:
    try:
        return Category(category).name.capitalize()
    except ValueError:
        return f"Category {category}"


@dataclass(frozen=True)
class AggregateCounts:
    """Per-category totals from a single ledger read.

    `counts[i]` is the total for category i. Snapshots are replaced, never updated.
    """

    counts: Tuple[int, ...]

    def __post_init__(self) -> None:
        for c in self.counts:
            if isinstance(c, bool) or not isinstance(c, int) or c < 0:
                raise ValueError(f"counts must be non-negative ints, got {self.counts!r}")

    @property
    def total(self) -> int:
        return sum(self.counts)

    def count(self, category: int) -> int:
        return self.counts[category]

    def as_dict(self) -> Dict[int, int]:
        return {i: c for i, c in enumerate(self.counts)}
