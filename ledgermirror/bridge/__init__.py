"""Sync ↔ async bridge.

This is the *only* allowed connector between the tick-driven control loop and
asynchronous ledger I/O. The control loop never awaits; it either drives a task
to completion once at startup or hands it off and moves on.
"""
