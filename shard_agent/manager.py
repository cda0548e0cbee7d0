"""
Registry of running agents, one runner per owner wallet.
"""
from __future__ import annotations

import logging
import threading
from typing import Callable, Dict, List, Optional

from shard_agent.runner import AgentRunner, FirstTickError
from shard_agent.signer import WalletSigner
from shard_agent.store import AgentConfigStore
from shard_agent.utils import short_wallet
from shard_agent.world_api import WorldClient

_log = logging.getLogger(__name__)


class AgentManager:
    def __init__(self, store: AgentConfigStore, signer: WalletSigner,
                 client_factory: Callable[[], WorldClient] = WorldClient, **runner_kwargs):
        self.store = store
        self.signer = signer
        self.client_factory = client_factory
        self.runner_kwargs = runner_kwargs
        self._lock = threading.Lock()
        self._runners: Dict[str, AgentRunner] = {}

    def start(self, wallet: str, wait_for_first_tick: bool = False) -> AgentRunner:
        """
        Start the agent for this owner wallet, reusing its runner when one exists.

        With wait_for_first_tick=True a runner that is already mid first tick is
        waited on as well, so the caller always sees the first-tick outcome.
        """
        key = wallet.lower()
        with self._lock:
            runner = self._runners.get(key)
            if runner is None:
                runner = AgentRunner(key, self.store, self.signer, client=self.client_factory(), **self.runner_kwargs)
                self._runners[key] = runner
        try:
            runner.start(wait_for_first_tick=wait_for_first_tick)
        except FirstTickError:
            with self._lock:
                if self._runners.get(key) is runner:
                    del self._runners[key]
            raise
        return runner

    def stop(self, wallet: str) -> bool:
        """Stop the runner and persist enabled=False so it is not restored. True if it was running."""
        key = wallet.lower()
        with self._lock:
            runner = self._runners.get(key)
        was_running = bool(runner and runner.running)
        if runner is not None:
            runner.stop()
        if self.store.get_config(key) is not None:
            self.store.patch_config(key, enabled=False)
        return was_running

    def is_running(self, wallet: str) -> bool:
        runner = self.get_runner(wallet)
        return bool(runner and runner.running)

    def get_runner(self, wallet: str) -> Optional[AgentRunner]:
        with self._lock:
            return self._runners.get(wallet.lower())

    def list_running(self) -> List[str]:
        with self._lock:
            return sorted(k for k, r in self._runners.items() if r.running)

    def stop_all(self) -> None:
        """Stop every runner without touching stored configs (process shutdown)."""
        with self._lock:
            runners = list(self._runners.values())
            self._runners.clear()
        for runner in runners:
            runner.stop()

    def restore(self) -> List[str]:
        """Start every agent whose stored config is enabled. Returns the wallets started."""
        started = []
        for wallet in self.store.list_enabled():
            try:
                self.start(wallet)
                started.append(wallet)
            except Exception:
                _log.warning("[agent:%s] Restore failed", short_wallet(wallet), exc_info=True)
        if started:
            _log.info("Restored %d agent(s)", len(started))
        return started
