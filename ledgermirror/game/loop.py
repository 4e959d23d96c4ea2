"""Fixed-tick control loop.

Stands in for the real-time application around the mirror: each tick it asks a
`CollectionSource` which categories were picked up and records them. It touches
the mirror only through `record`; the initial seed happens before the loop runs.
"""

from __future__ import annotations

import logging
import random
import time
from typing import Iterable, List, Protocol

from ledgermirror.core.errors import InvalidCategoryError
from ledgermirror.core.models import DEFAULT_NUM_CATEGORIES, category_label
from ledgermirror.mirror.state_mirror import CollectionLog, StateMirror


logger = logging.getLogger(__name__)


class CollectionSource(Protocol):
    """Pluggable source of collection events."""

    def poll(self, tick: int) -> Iterable[int]:
        """Return the categories collected during `tick`."""


class RandomCollectionSource:
    """Deterministic pseudo-random pickups (one roll per tick)."""

    def __init__(self, *, seed: int = 0, pickup_chance: float = 0.05, num_categories: int = DEFAULT_NUM_CATEGORIES):
        if not 0.0 <= pickup_chance <= 1.0:
            raise ValueError("pickup_chance must be in [0, 1]")
        self._rng = random.Random(seed)
        self.pickup_chance = float(pickup_chance)
        self.num_categories = num_categories

    def poll(self, tick: int) -> Iterable[int]:
        if self._rng.random() < self.pickup_chance:
            yield self._rng.randrange(self.num_categories)


def format_summary(log: CollectionLog) -> str:
    """HUD text: total followed by one line per category."""

    lines = [f"Total Swords: {len(log)}"]
    for category, n in enumerate(log.counts()):
        lines.append(f"{category_label(category)}: {n}")
    return "\n".join(lines)


class ControlLoop:
    def __init__(self, *, mirror: StateMirror, source: CollectionSource, tick_seconds: float = 1.0 / 60.0) -> None:
        if tick_seconds < 0:
            raise ValueError("tick_seconds must be >= 0")
        self.mirror = mirror
        self.source = source
        self.tick_seconds = float(tick_seconds)
        self.tick = 0

    def step(self) -> List[int]:
        """Run one tick. Returns the categories recorded this tick."""

        recorded: List[int] = []
        for category in self.source.poll(self.tick):
            try:
                self.mirror.record(category)
            except InvalidCategoryError as e:
                logger.warning("skip_invalid_category", extra={"tick": self.tick, "error": str(e)})
                continue
            recorded.append(category)
        self.tick += 1
        return recorded

    def run(self, ticks: int) -> None:
        next_at = time.monotonic()
        for _ in range(ticks):
            if self.step():
                logger.debug("tick_collected", extra={"tick": self.tick, "local_total": len(self.mirror.log)})
            if self.tick_seconds:
                next_at += self.tick_seconds
                delay = next_at - time.monotonic()
                if delay > 0:
                    time.sleep(delay)
