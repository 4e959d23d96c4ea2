from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI
import uvicorn

from ledgermirror.bridge.executor import BridgeExecutor
from ledgermirror.core.models import category_label
from ledgermirror.mirror.state_mirror import StateMirror, tally


def create_app(*, mirror: StateMirror, executor: BridgeExecutor) -> FastAPI:
    """Read-only status surface. Never writes to the mirror."""

    app = FastAPI(title="Ledger Mirror API")

    @app.get("/health")
    def health() -> Dict[str, Any]:
        return {
            "status": "ok",
            "ledger": "online" if mirror.online else "offline",
            "bridge": executor.stats.to_dict(),
            "mirror": mirror.summary(),
        }

    @app.get("/counts")
    def counts() -> Dict[str, Any]:
        # The control loop keeps appending; read one snapshot.
        entries = mirror.log.entries
        return {
            "total": len(entries),
            "by_category": {
                category_label(c): n for c, n in enumerate(tally(entries, num_categories=mirror.num_categories))
            },
        }

    return app


def serve(app: FastAPI, *, host: str = "127.0.0.1", port: int = 8000, log_level: Optional[str] = None) -> None:
    uvicorn.run(app, host=host, port=port, log_level=(log_level or "info").lower())
