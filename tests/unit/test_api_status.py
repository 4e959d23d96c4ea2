from __future__ import annotations

from fastapi.testclient import TestClient

from ledgermirror.api.main import create_app
from ledgermirror.bridge.executor import BridgeExecutor
from ledgermirror.ledger.client import OfflineHandle
from ledgermirror.mirror.state_mirror import StateMirror


def test_health_and_counts_in_offline_mode() -> None:
    ex = BridgeExecutor(max_workers=1, queue_size=1)
    mirror = StateMirror(handle=OfflineHandle(reason="missing ledger config: RPC_URL"), executor=ex)
    mirror.load_initial()
    mirror.record(0)
    mirror.record(2)

    client = TestClient(create_app(mirror=mirror, executor=ex))

    health = client.get("/health")
    assert health.status_code == 200
    body = health.json()
    assert body["status"] == "ok"
    assert body["ledger"] == "offline"
    assert body["bridge"]["submitted"] == 0
    assert body["mirror"]["local_total"] == 2

    counts = client.get("/counts").json()
    assert counts == {"total": 2, "by_category": {"Red": 1, "Green": 0, "Blue": 1}}
    ex.shutdown()
