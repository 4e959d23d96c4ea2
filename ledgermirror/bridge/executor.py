"""Bridge executor.

Two ways to run a unit of async remote work from synchronous code:

- `run_blocking(task)`: startup only. Runs `task` on a fresh short-lived thread
  with its own event loop and joins the result back. Any failure surfaces as
  BridgeError.
- `run_detached(task)`: steady state. Hands `task` to a bounded queue served by
  a fixed pool of worker threads (one event loop per worker) and returns
  immediately. The outcome is only logged.

A task is a zero-argument callable returning an awaitable, so nothing starts
running before a loop owns it.
"""

from __future__ import annotations

import asyncio
import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from ledgermirror.core.errors import BridgeError


logger = logging.getLogger(__name__)

T = TypeVar("T")

_IDLE_POLL_SECONDS = 0.1
Task = Callable[[], Awaitable[T]]


async def _drive(task: Task[T]) -> T:
    return await task()


@dataclass(frozen=True)
class BridgeStats:
    submitted: int
    succeeded: int
    failed: int
    dropped: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "submitted": self.submitted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "dropped": self.dropped,
        }


@dataclass(frozen=True)
class _Job:
    task: Task[Any]
    label: str
    submitted_at: float


class BridgeExecutor:
    def __init__(self, *, max_workers: int = 4, queue_size: int = 256, name: str = "ledger-bridge") -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        if queue_size <= 0:
            raise ValueError("queue_size must be > 0")
        self.name = name
        self.max_workers = max_workers
        self._queue: "queue.Queue[_Job]" = queue.Queue(maxsize=queue_size)
        self._workers: List[threading.Thread] = []
        self._lock = threading.Lock()
        self._closed = False

        self._submitted = 0
        self._succeeded = 0
        self._failed = 0
        self._dropped = 0

    # -- startup path --

    def run_blocking(self, task: Task[T], *, label: str = "blocking") -> T:
        """Drive `task` to completion on an isolated thread + event loop."""

        box: Dict[str, Any] = {}

        def target() -> None:
            try:
                box["value"] = asyncio.run(_drive(task))
            except Exception as e:
                box["error"] = e

        t0 = time.monotonic()
        t = threading.Thread(target=target, name=f"{self.name}-{label}", daemon=True)
        t.start()
        t.join()
        elapsed_ms = round((time.monotonic() - t0) * 1000.0, 1)

        if "error" in box:
            err = box["error"]
            logger.warning("blocking_task_failed", extra={"label": label, "error": str(err), "elapsed_ms": elapsed_ms})
            raise BridgeError(f"{label} failed: {err}") from err
        if "value" not in box:
            # Thread died on a BaseException (SystemExit etc.) before storing anything.
            logger.error("blocking_task_crashed", extra={"label": label, "elapsed_ms": elapsed_ms})
            raise BridgeError(f"{label} crashed without a result")

        logger.debug("blocking_task_done", extra={"label": label, "elapsed_ms": elapsed_ms})
        return box["value"]

    # -- steady-state path --

    def run_detached(self, task: Task[Any], *, label: str = "detached") -> bool:
        """Queue `task` and return at once. False means it was dropped (closed or full)."""

        self._ensure_workers()
        job = _Job(task=task, label=label, submitted_at=time.monotonic())
        # Closed-check and put happen under one lock so shutdown never strands a job.
        with self._lock:
            if self._closed:
                reason = "closed"
            else:
                try:
                    self._queue.put_nowait(job)
                except queue.Full:
                    reason = "queue_full"
                else:
                    self._submitted += 1
                    return True
            self._dropped += 1

        logger.warning("detached_task_dropped", extra={"label": label, "reason": reason})
        return False

    def _ensure_workers(self) -> None:
        if self._workers:
            return
        with self._lock:
            if self._workers:
                return
            for i in range(self.max_workers):
                t = threading.Thread(target=self._worker_main, name=f"{self.name}-worker-{i}", daemon=True)
                t.start()
                self._workers.append(t)

    def _worker_main(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            while True:
                try:
                    job = self._queue.get(timeout=_IDLE_POLL_SECONDS)
                except queue.Empty:
                    # Puts stop once _closed is set, so closed + empty means drained.
                    if self._closed and self._queue.empty():
                        return
                    continue
                try:
                    self._run_job(loop, job)
                finally:
                    self._queue.task_done()
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()

    def _run_job(self, loop: asyncio.AbstractEventLoop, job: _Job) -> None:
        started = time.monotonic()
        try:
            result = loop.run_until_complete(_drive(job.task))
        except BaseException as e:
            # Includes CancelledError: a detached task must never take its worker down.
            self._count_outcome(ok=False)
            logger.warning(
                "detached_task_failed",
                extra={
                    "label": job.label,
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "queued_ms": round((started - job.submitted_at) * 1000.0, 1),
                },
            )
            return

        self._count_outcome(ok=True)
        logger.info(
            "detached_task_done",
            extra={
                "label": job.label,
                "result": result,
                "elapsed_ms": round((time.monotonic() - started) * 1000.0, 1),
            },
        )

    def _count_outcome(self, *, ok: bool) -> None:
        with self._lock:
            if ok:
                self._succeeded += 1
            else:
                self._failed += 1

    # -- introspection / lifecycle --

    @property
    def stats(self) -> BridgeStats:
        with self._lock:
            return BridgeStats(
                submitted=self._submitted,
                succeeded=self._succeeded,
                failed=self._failed,
                dropped=self._dropped,
            )

    @property
    def pending(self) -> int:
        return self._queue.unfinished_tasks

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait until every queued job has finished. Returns False on timeout."""

        deadline = None if timeout is None else time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def shutdown(self, *, wait: bool = True, timeout: Optional[float] = None) -> None:
        """Stop accepting work; workers exit after draining what is already queued."""

        with self._lock:
            if self._closed:
                return
            self._closed = True
            workers = list(self._workers)

        if wait:
            for t in workers:
                t.join(timeout=timeout)
        logger.info("bridge_shutdown", extra={"executor": self.name, **self.stats.to_dict()})

    def __enter__(self) -> "BridgeExecutor":
        return self

    def __exit__(self, *exc: object) -> None:
        self.shutdown()
