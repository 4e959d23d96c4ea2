from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from .errors import ConfigError
from .models import DEFAULT_NUM_CATEGORIES


_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")

# Writes read the "pending" nonce; more than one worker lets two in-flight
# increments pick the same nonce and one of them is lost.
DEFAULT_BRIDGE_WORKERS = 1


@dataclass(frozen=True)
class LedgerEndpointConfig:
    """RPC endpoint + contract + signing key. Any missing field means offline."""

    rpc_url: Optional[str]
    contract_address: Optional[str]
    account_key: Optional[str] = field(default=None, repr=False)
    rpc_timeout_seconds: float = 10.0

    def validate(self) -> None:
        rpc_url = (self.rpc_url or "").strip()
        address = (self.contract_address or "").strip()
        key = (self.account_key or "").strip()

        missing = [
            name
            for name, v in (("RPC_URL", rpc_url), ("STYLUS_CONTRACT_ADDRESS", address), ("PRIVATE_KEY", key))
            if not v
        ]
        if missing:
            raise ConfigError(f"missing ledger config: {', '.join(missing)}")
        if not rpc_url.startswith(("http://", "https://")):
            raise ConfigError("RPC_URL must be an http(s) URL")
        if not _ADDRESS_RE.match(address):
            raise ConfigError("STYLUS_CONTRACT_ADDRESS must be a 0x-prefixed 20-byte hex address")
        if not _KEY_RE.match(key):
            raise ConfigError("PRIVATE_KEY must be a 32-byte hex string")


@dataclass(frozen=True)
class Settings:
    env: str
    ledger: LedgerEndpointConfig
    log_level: str = "INFO"
    num_categories: int = DEFAULT_NUM_CATEGORIES
    bridge_max_workers: int = DEFAULT_BRIDGE_WORKERS
    bridge_queue_size: int = 256
    tick_seconds: float = 1.0 / 60.0
    api_enabled: bool = False
    api_host: str = "127.0.0.1"
    api_port: int = 8000


def _read_yaml(p: Path) -> Dict[str, Any]:
    # Keep imports optional at module import time (tests/tools may not need YAML).
    try:
        import yaml  # type: ignore
    except ModuleNotFoundError as e:  # pragma: no cover
        raise ModuleNotFoundError(
            "PyYAML is required to load config/settings.yaml. Install with: pip install pyyaml"
        ) from e

    data = yaml.safe_load(p.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"{p} must contain a mapping at top level")
    return data


def _number(section: Dict[str, Any], key: str, default: Any, *, where: str, cast: Any = float) -> Any:
    """`section[key]` as int/float; absent or null falls back to `default`."""

    raw = section.get(key)
    if raw is None:
        return default
    if isinstance(raw, bool):
        raise ConfigError(f"{where}.{key} must be a number, got {raw!r}")
    try:
        return cast(raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{where}.{key} must be a number, got {raw!r}") from e


def load_settings(
    path: str | Path = "config/settings.yaml",
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build Settings from an optional YAML file plus environment overrides.

    The signing key is only ever taken from the environment (PRIVATE_KEY).
    """

    environ = os.environ if environ is None else environ
    p = Path(path)
    data: Dict[str, Any] = _read_yaml(p) if p.exists() else {}

    ledger_section = data.get("ledger", {}) or {}
    mirror_section = data.get("mirror", {}) or {}
    bridge_section = data.get("bridge", {}) or {}
    api_section = data.get("api", {}) or {}
    loop_section = data.get("loop", {}) or {}
    logging_section = data.get("logging", {}) or {}

    rpc_timeout = _number(ledger_section, "rpc_timeout_seconds", 10.0, where="ledger")
    if rpc_timeout <= 0:
        raise ConfigError("ledger.rpc_timeout_seconds must be > 0")
    ledger = LedgerEndpointConfig(
        rpc_url=environ.get("RPC_URL") or ledger_section.get("rpc_url"),
        contract_address=environ.get("STYLUS_CONTRACT_ADDRESS") or ledger_section.get("contract_address"),
        account_key=environ.get("PRIVATE_KEY"),
        rpc_timeout_seconds=rpc_timeout,
    )

    num_categories = _number(mirror_section, "num_categories", DEFAULT_NUM_CATEGORIES, where="mirror", cast=int)
    if num_categories <= 0:
        raise ConfigError("mirror.num_categories must be > 0")
    max_workers = _number(bridge_section, "max_workers", DEFAULT_BRIDGE_WORKERS, where="bridge", cast=int)
    queue_size = _number(bridge_section, "queue_size", 256, where="bridge", cast=int)
    if max_workers <= 0 or queue_size <= 0:
        raise ConfigError("bridge.max_workers and bridge.queue_size must be > 0")
    tick_seconds = _number(loop_section, "tick_seconds", 1.0 / 60.0, where="loop")
    if tick_seconds < 0:
        raise ConfigError("loop.tick_seconds must be >= 0")

    return Settings(
        env=data.get("env", "dev"),
        ledger=ledger,
        log_level=str(environ.get("LEDGERMIRROR_LOG_LEVEL") or logging_section.get("level") or "INFO").upper(),
        num_categories=num_categories,
        bridge_max_workers=max_workers,
        bridge_queue_size=queue_size,
        tick_seconds=tick_seconds,
        api_enabled=bool(api_section.get("enabled", False)),
        api_host=str(api_section.get("host") or "127.0.0.1"),
        api_port=_number(api_section, "port", 8000, where="api", cast=int),
    )
