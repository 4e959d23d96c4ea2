"""Headless collection service.

Startup (single-threaded, before the loop runs):
1. load settings, connect to the ledger through `run_blocking` (offline on any failure)
2. seed the mirror with one aggregate read

Steady state: fixed-tick loop, every collection is recorded locally and its
remote increment is fire-and-forget.
"""

from __future__ import annotations

import argparse
import logging
import threading

from ledgermirror.bridge.executor import BridgeExecutor
from ledgermirror.core.errors import BridgeError
from ledgermirror.core.settings import Settings, load_settings
from ledgermirror.ledger.client import LedgerHandle, OfflineHandle, connect
from ledgermirror.mirror.state_mirror import StateMirror

from .loop import ControlLoop, RandomCollectionSource, format_summary


logger = logging.getLogger(__name__)


def connect_ledger(settings: Settings, executor: BridgeExecutor) -> LedgerHandle:
    try:
        return executor.run_blocking(lambda: connect(settings.ledger), label="connect")
    except BridgeError as e:
        return OfflineHandle(reason=str(e))


def _start_api(settings: Settings, mirror: StateMirror, executor: BridgeExecutor) -> None:
    from ledgermirror.api.main import create_app, serve

    app = create_app(mirror=mirror, executor=executor)
    t = threading.Thread(
        target=serve,
        args=(app,),
        kwargs={"host": settings.api_host, "port": settings.api_port, "log_level": settings.log_level},
        name="status-api",
        daemon=True,
    )
    t.start()
    logger.info("status_api_started", extra={"host": settings.api_host, "port": settings.api_port})


def main(argv: list[str] | None = None) -> None:
    ap = argparse.ArgumentParser(description="Run the collection loop against the ledger mirror.")
    ap.add_argument("--config", default="config/settings.yaml")
    ap.add_argument("--ticks", type=int, default=600)
    ap.add_argument("--tick-seconds", type=float, default=None)
    ap.add_argument("--seed", type=int, default=0)
    ap.add_argument("--pickup-chance", type=float, default=0.05)
    ap.add_argument("--drain-timeout", type=float, default=30.0)
    args = ap.parse_args(argv)

    s = load_settings(args.config)
    logging.basicConfig(level=getattr(logging, s.log_level, logging.INFO))
    logger.info("Starting ledger mirror (env=%s)", s.env)

    executor = BridgeExecutor(max_workers=s.bridge_max_workers, queue_size=s.bridge_queue_size)
    handle = connect_ledger(s, executor)
    mirror = StateMirror(handle=handle, executor=executor, num_categories=s.num_categories)
    mirror.load_initial()
    print(format_summary(mirror.log))

    if s.api_enabled:
        _start_api(s, mirror, executor)

    source = RandomCollectionSource(seed=args.seed, pickup_chance=args.pickup_chance, num_categories=s.num_categories)
    tick_seconds = s.tick_seconds if args.tick_seconds is None else args.tick_seconds
    loop = ControlLoop(mirror=mirror, source=source, tick_seconds=tick_seconds)
    try:
        loop.run(args.ticks)
    except KeyboardInterrupt:
        logger.info("Interrupted at tick %d", loop.tick)
    finally:
        if not executor.join(timeout=args.drain_timeout):
            logger.warning("bridge_drain_timeout", extra={"pending": executor.pending})
        executor.shutdown(wait=False)
        # No reconciliation: lost remote writes stay lost, next start re-seeds from the ledger.
        logger.info("mirror_divergence", extra={**mirror.summary(), "bridge": executor.stats.to_dict()})

    print(format_summary(mirror.log))


if __name__ == "__main__":
    main()
