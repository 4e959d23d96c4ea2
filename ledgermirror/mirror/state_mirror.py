"""State mirror.

Owns the Local Collection Log: an append-only, in-memory list of category
values, one per locally observed collection event. It is seeded once from the
ledger at startup and afterwards only grows from local events. Every append is
paired with a best-effort remote increment that never feeds back into the log.

Contract rules:
- `record` never blocks on I/O and never raises on remote failure
- the log is never partially seeded; a failed read means an empty log
- the log is mutated only by the thread that calls `record` (the control loop);
  other threads read it through one `entries` snapshot per read
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Iterator, List, Tuple

from ledgermirror.bridge.executor import BridgeExecutor
from ledgermirror.core.errors import BridgeError
from ledgermirror.core.models import DEFAULT_NUM_CATEGORIES, AggregateCounts, validate_category
from ledgermirror.ledger.client import LedgerHandle


logger = logging.getLogger(__name__)


def tally(entries: Iterable[int], *, num_categories: int = DEFAULT_NUM_CATEGORIES) -> Tuple[int, ...]:
    out = [0] * num_categories
    for c in entries:
        out[c] += 1
    return tuple(out)


class CollectionLog:
    """Append-only ordered sequence of collected categories."""

    def __init__(self, entries: Iterable[int] = (), *, num_categories: int = DEFAULT_NUM_CATEGORIES) -> None:
        self.num_categories = num_categories
        self._entries: List[int] = [validate_category(c, num_categories=num_categories) for c in entries]

    @classmethod
    def from_counts(cls, counts: AggregateCounts, *, num_categories: int = DEFAULT_NUM_CATEGORIES) -> "CollectionLog":
        # Categories are fungible once collected; grouping by category is as good as any order.
        entries: List[int] = []
        for category in range(len(counts.counts)):
            entries.extend([category] * counts.count(category))
        return cls(entries, num_categories=num_categories)

    def append(self, category: int) -> None:
        self._entries.append(category)

    @property
    def entries(self) -> Tuple[int, ...]:
        return tuple(self._entries)

    def counts(self) -> Tuple[int, ...]:
        return tally(self.entries, num_categories=self.num_categories)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[int]:
        return iter(self.entries)

    def __repr__(self) -> str:
        return f"CollectionLog({self._entries!r})"


class StateMirror:
    def __init__(
        self,
        *,
        handle: LedgerHandle,
        executor: BridgeExecutor,
        num_categories: int = DEFAULT_NUM_CATEGORIES,
    ) -> None:
        self._handle = handle
        self._executor = executor
        self.num_categories = num_categories
        self._log = CollectionLog(num_categories=num_categories)
        self._seeded_total = 0
        self._recorded = 0
        self._remote_submitted = 0

    @property
    def log(self) -> CollectionLog:
        return self._log

    @property
    def online(self) -> bool:
        return bool(self._handle.online)

    def load_initial(self) -> CollectionLog:
        """Seed the log from ledger aggregate counts (empty when offline or on any failure)."""

        log = CollectionLog(num_categories=self.num_categories)
        if not self.online:
            logger.info("initial_load_skipped", extra={"reason": getattr(self._handle, "reason", "offline")})
        else:
            handle = self._handle
            categories = range(self.num_categories)
            try:
                counts = self._executor.run_blocking(
                    lambda: handle.read_aggregate_counts(categories),
                    label="read_aggregate_counts",
                )
            except BridgeError as e:
                logger.warning("initial_load_failed", extra={"error": str(e)})
            else:
                if len(counts.counts) != self.num_categories:
                    logger.warning(
                        "initial_load_rejected",
                        extra={"expected": self.num_categories, "got": len(counts.counts)},
                    )
                else:
                    log = CollectionLog.from_counts(counts, num_categories=self.num_categories)
                    logger.info("initial_load_done", extra={"counts": counts.as_dict(), "total": counts.total})

        self._log = log
        self._seeded_total = len(log)
        return log

    def record(self, category: int) -> None:
        """Append locally, then fire-and-forget the paired remote increment.

        Raises InvalidCategoryError (before touching the log) for out-of-range values.
        """

        c = validate_category(category, num_categories=self.num_categories)
        self._log.append(c)
        self._recorded += 1

        if not self.online:
            return
        handle = self._handle
        if self._executor.run_detached(lambda: handle.increment_category(c), label=f"increment_category:{c}"):
            self._remote_submitted += 1

    def summary(self) -> Dict[str, Any]:
        """Local vs remote bookkeeping, for logs and the status API.

        Safe to call from any thread: totals and counts come from one snapshot.
        """

        entries = self._log.entries
        return {
            "online": self.online,
            "seeded_total": self._seeded_total,
            "recorded": self._recorded,
            "local_total": len(entries),
            "remote_submitted": self._remote_submitted,
            "counts": list(tally(entries, num_categories=self.num_categories)),
        }
