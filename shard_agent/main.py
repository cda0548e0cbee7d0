"""
FastAPI app for operating agents: deploy, stop, inspect, reconfigure.

Run with any ASGI server, e.g. `uvicorn shard_agent.main:app`.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from shard_agent import config
from shard_agent.manager import AgentManager
from shard_agent.routes import register_routes
from shard_agent.signer import InMemoryWalletSigner, WalletSigner
from shard_agent.store import AgentConfigStore, JsonFileAgentConfigStore

_log = logging.getLogger(__name__)


def create_app(store: Optional[AgentConfigStore] = None, signer: Optional[WalletSigner] = None,
               manager: Optional[AgentManager] = None, restore: bool = True) -> FastAPI:
    store = store if store is not None else JsonFileAgentConfigStore()
    signer = signer if signer is not None else InMemoryWalletSigner.from_file(config.CUSTODIAL_KEYS_PATH)
    manager = manager if manager is not None else AgentManager(store, signer)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        config.validate_config()
        if restore:
            manager.restore()
        yield
        manager.stop_all()

    app = FastAPI(title="Shard Agent Runner", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.store = store
    app.state.signer = signer
    app.state.manager = manager

    @app.get("/health")
    def health(request: Request):
        return {"ok": True, "running": request.app.state.manager.list_running()}

    register_routes(app)
    return app


app = create_app()
