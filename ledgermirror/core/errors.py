from __future__ import annotations


class LedgerMirrorError(Exception):
    """Base class for every error raised by the mirror and its adapters."""


class ConfigError(LedgerMirrorError):
    """Ledger endpoint config is incomplete or malformed (=> offline mode)."""


class ConnectError(LedgerMirrorError):
    """Endpoint unreachable or the chain id query failed (=> offline mode)."""


class RemoteReadError(LedgerMirrorError):
    """Aggregate read failed. Never carries a partial result."""


class RemoteWriteError(LedgerMirrorError):
    """Increment submission failed. Logged and discarded by callers."""


class BridgeError(LedgerMirrorError):
    """A task driven by BridgeExecutor.run_blocking did not complete."""


class InvalidCategoryError(LedgerMirrorError, ValueError):
    def __init__(self, value: object, num_categories: int) -> None:
        super().__init__(f"category must be int in [0, {num_categories}), got {value!r}")
        self.value = value
        self.num_categories = num_categories
