from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from ledgermirror.core.errors import RemoteReadError, RemoteWriteError
from ledgermirror.core.settings import LedgerEndpointConfig
from ledgermirror.ledger import client as client_mod
from ledgermirror.ledger.client import LedgerClient, OfflineHandle, connect


KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
ADDRESS = "0x" + "ab" * 20


class _Call:
    def __init__(self, value=None, exc: Exception | None = None) -> None:
        self._value = value
        self._exc = exc
        self.tx_params: dict | None = None

    async def call(self):
        if self._exc is not None:
            raise self._exc
        return self._value

    async def build_transaction(self, params: dict) -> dict:
        if self._exc is not None:
            raise self._exc
        self.tx_params = params
        return {"to": ADDRESS, "data": "0x", **params}


class _Functions:
    def __init__(self, counts: dict[int, object], *, fail_category: int | None = None) -> None:
        self.counts = counts
        self.fail_category = fail_category
        self.increment_calls: list[_Call] = []

    def getSwordCount(self, category: int) -> _Call:
        if category == self.fail_category:
            return _Call(exc=ConnectionError("rpc down"))
        return _Call(self.counts.get(category, 0))

    def incrementSword(self, category: int) -> _Call:
        c = _Call(exc=ConnectionError("rpc down") if category == self.fail_category else None)
        self.increment_calls.append(c)
        return c


class _Eth:
    def __init__(self) -> None:
        self.raw_sent: list[bytes] = []

    async def get_transaction_count(self, address: str, block: str) -> int:
        return 7

    async def send_raw_transaction(self, raw: bytes) -> bytes:
        self.raw_sent.append(raw)
        return b"\x12\x34"


class _Account:
    address = "0x" + "cd" * 20

    def sign_transaction(self, tx: dict):
        return SimpleNamespace(raw_transaction=b"signed")


def _client(functions: _Functions) -> LedgerClient:
    return LedgerClient(
        w3=SimpleNamespace(eth=_Eth()),
        contract=SimpleNamespace(functions=functions),
        account=_Account(),
        chain_id=421614,
        contract_address=ADDRESS,
    )


def test_read_aggregate_counts_one_call_per_category() -> None:
    c = _client(_Functions({0: 2, 1: 1, 2: 0}))
    counts = asyncio.run(c.read_aggregate_counts(range(3)))
    assert counts.counts == (2, 1, 0)


def test_read_aggregate_counts_all_or_nothing() -> None:
    c = _client(_Functions({0: 2, 1: 1, 2: 0}, fail_category=1))
    with pytest.raises(RemoteReadError):
        asyncio.run(c.read_aggregate_counts(range(3)))


def test_read_aggregate_counts_rejects_undecodable_value() -> None:
    c = _client(_Functions({0: 2, 1: "garbage", 2: 0}))
    with pytest.raises(RemoteReadError):
        asyncio.run(c.read_aggregate_counts(range(3)))


def test_increment_category_signs_and_returns_tx_hash() -> None:
    functions = _Functions({})
    c = _client(functions)
    tx_hash = asyncio.run(c.increment_category(2))
    assert tx_hash == "0x1234"
    params = functions.increment_calls[0].tx_params
    assert params == {"from": _Account.address, "chainId": 421614, "nonce": 7}
    assert c.w3.eth.raw_sent == [b"signed"]


def test_increment_category_failure_is_remote_write_error() -> None:
    c = _client(_Functions({}, fail_category=0))
    with pytest.raises(RemoteWriteError):
        asyncio.run(c.increment_category(0))


def test_offline_handle_operations_raise() -> None:
    h = OfflineHandle(reason="missing ledger config: PRIVATE_KEY")
    assert h.online is False
    with pytest.raises(RemoteReadError):
        asyncio.run(h.read_aggregate_counts(range(3)))
    with pytest.raises(RemoteWriteError):
        asyncio.run(h.increment_category(0))


@pytest.mark.parametrize(
    "cfg",
    [
        LedgerEndpointConfig(rpc_url=None, contract_address=None, account_key=None),
        LedgerEndpointConfig(rpc_url="http://127.0.0.1:8547", contract_address=ADDRESS, account_key=None),
        LedgerEndpointConfig(rpc_url="http://127.0.0.1:8547", contract_address="0xzz", account_key=KEY),
        # Well-formed hex but outside the secp256k1 range.
        LedgerEndpointConfig(rpc_url="http://127.0.0.1:8547", contract_address=ADDRESS, account_key="0x" + "00" * 32),
    ],
)
def test_connect_bad_config_goes_offline(cfg: LedgerEndpointConfig) -> None:
    handle = asyncio.run(connect(cfg))
    assert isinstance(handle, OfflineHandle)
    assert handle.online is False
    assert handle.reason


def test_connect_unreachable_endpoint_goes_offline() -> None:
    cfg = LedgerEndpointConfig(
        rpc_url="http://127.0.0.1:9",
        contract_address=ADDRESS,
        account_key=KEY,
        rpc_timeout_seconds=2.0,
    )
    handle = asyncio.run(connect(cfg))
    assert isinstance(handle, OfflineHandle)
    assert "chain id" in handle.reason


def test_connect_builds_client(monkeypatch: pytest.MonkeyPatch) -> None:
    async def fake_chain_id(w3) -> int:
        return 421614

    monkeypatch.setattr(client_mod, "_resolve_chain_id", fake_chain_id)
    cfg = LedgerEndpointConfig(rpc_url="http://127.0.0.1:8547", contract_address=ADDRESS, account_key=KEY)
    handle = asyncio.run(connect(cfg))
    assert isinstance(handle, LedgerClient)
    assert handle.online is True
    assert handle.chain_id == 421614
    assert handle.contract_address.lower() == ADDRESS
    assert handle.sender == "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
