"""Contracts package.

This package defines the *public* on-chain contract consumed by the mirror:
function names, ABI fragments and argument semantics. Only `ledgermirror.ledger`
talks to the chain; everything else shares types via `ledgermirror.core`.
"""
