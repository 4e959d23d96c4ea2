"""Ledger client.

The only module that talks to the chain. It owns the RPC endpoint, the local
signing account and the counter contract binding, and exposes exactly two
operations: an aggregate read and a single-category increment.

Offline is a first-class handle (`OfflineHandle`), not an error path: `connect`
never raises, callers branch on `handle.online` once.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol, Union

from aiohttp import ClientTimeout
from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3

from ledgermirror.contracts.counter import COUNTER_ABI, GET_COUNT_FN, INCREMENT_FN
from ledgermirror.core.errors import ConfigError, ConnectError, RemoteReadError, RemoteWriteError
from ledgermirror.core.models import AggregateCounts
from ledgermirror.core.settings import LedgerEndpointConfig


logger = logging.getLogger(__name__)


class LedgerHandle(Protocol):
    """What the mirror needs from a ledger connection."""

    @property
    def online(self) -> bool:
        ...

    async def read_aggregate_counts(self, categories: Iterable[int]) -> AggregateCounts:
        ...

    async def increment_category(self, category: int) -> str:
        ...


@dataclass(frozen=True)
class OfflineHandle:
    """Stand-in handle when config is absent/invalid or the endpoint is unreachable."""

    reason: str

    @property
    def online(self) -> bool:
        return False

    async def read_aggregate_counts(self, categories: Iterable[int]) -> AggregateCounts:
        raise RemoteReadError(f"ledger offline: {self.reason}")

    async def increment_category(self, category: int) -> str:
        raise RemoteWriteError(f"ledger offline: {self.reason}")


@dataclass(frozen=True)
class LedgerClient:
    """Connected handle. Never mutated after `connect`, safe to share across workers."""

    w3: Any = field(repr=False)
    contract: Any = field(repr=False)
    account: Any = field(repr=False)
    chain_id: int
    contract_address: str

    @property
    def online(self) -> bool:
        return True

    @property
    def sender(self) -> str:
        return str(self.account.address)

    async def _get_count(self, category: int) -> int:
        value = await getattr(self.contract.functions, GET_COUNT_FN)(category).call()
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise RemoteReadError(f"{GET_COUNT_FN}({category}) returned {value!r}")
        return value

    async def read_aggregate_counts(self, categories: Iterable[int]) -> AggregateCounts:
        """One view call per category; any failure fails the whole read."""

        cats = list(categories)
        try:
            values = await asyncio.gather(*(self._get_count(c) for c in cats))
        except RemoteReadError:
            raise
        except Exception as e:
            raise RemoteReadError(f"aggregate read failed: {e}") from e
        return AggregateCounts(counts=tuple(values))

    async def increment_category(self, category: int) -> str:
        """Sign and broadcast one increment. Returns the tx hash once submitted (not mined)."""

        try:
            nonce = await self.w3.eth.get_transaction_count(self.sender, "pending")
            tx = await getattr(self.contract.functions, INCREMENT_FN)(category).build_transaction(
                {"from": self.sender, "chainId": self.chain_id, "nonce": nonce}
            )
            signed = self.account.sign_transaction(tx)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            raise RemoteWriteError(f"{INCREMENT_FN}({category}) submission failed: {e}") from e
        return AsyncWeb3.to_hex(tx_hash)


def _build(config: LedgerEndpointConfig) -> tuple[Any, Any, str]:
    """Parse endpoint, key and address. Raises ConfigError, never touches the network."""

    config.validate()
    rpc_url = (config.rpc_url or "").strip()
    try:
        account = Account.from_key((config.account_key or "").strip())
    except Exception as e:
        raise ConfigError(f"PRIVATE_KEY rejected: {type(e).__name__}") from e
    try:
        address = AsyncWeb3.to_checksum_address((config.contract_address or "").strip())
    except Exception as e:
        raise ConfigError(f"STYLUS_CONTRACT_ADDRESS rejected: {e}") from e

    provider = AsyncHTTPProvider(
        rpc_url,
        request_kwargs={"timeout": ClientTimeout(total=config.rpc_timeout_seconds)},
        # No retry layer: the transport timeout is the only bound.
        exception_retry_configuration=None,
    )
    return AsyncWeb3(provider), account, address


async def _resolve_chain_id(w3: Any) -> int:
    try:
        return int(await w3.eth.chain_id)
    except Exception as e:
        raise ConnectError(f"chain id query failed: {e}") from e


async def connect(config: LedgerEndpointConfig) -> Union[LedgerClient, OfflineHandle]:
    """Build a connected handle, or an OfflineHandle on any config/connection failure.

    Costs one network round trip (chain id).
    """

    try:
        w3, account, address = _build(config)
    except ConfigError as e:
        logger.info("ledger_offline", extra={"reason": str(e)})
        return OfflineHandle(reason=str(e))

    try:
        chain_id = await _resolve_chain_id(w3)
    except ConnectError as e:
        logger.warning("ledger_offline", extra={"reason": str(e), "rpc_url": config.rpc_url})
        return OfflineHandle(reason=str(e))

    contract = w3.eth.contract(address=address, abi=COUNTER_ABI)
    client = LedgerClient(w3=w3, contract=contract, account=account, chain_id=chain_id, contract_address=address)
    logger.info("ledger_connected", extra={"chain_id": chain_id, "contract": address, "sender": client.sender})
    return client
