"""
AgentRunner: one autonomous agent's tick loop.

Each tick:
  1. read config; disabled -> stop
  2. authenticate (cached token, refreshed an hour before expiry)
  3. locate our entity (rescanning all zones if it moved)
  4. read our entity's state
  5. interrupts: low HP, gear repair, self-adaptation (first to fire wins the tick)
  6. run the focus routine

Failures in steps 2-4 are fatal before the first tick completes (start()'s
future fails with FirstTickError) and retried with backoff afterwards.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from enum import Enum
from typing import Callable, Optional

from shard_agent import config
from shard_agent.actions import AgentContext
from shard_agent.auth import AuthSession
from shard_agent.backoff import BackoffPolicy
from shard_agent.behaviors import FocusDispatcher
from shard_agent.interrupts import handle_gear_repair, handle_low_hp, maybe_self_adapt
from shard_agent.locator import EntityLocator
from shard_agent.models import AgentConfig, Entity, RunnerState
from shard_agent.signer import WalletSigner
from shard_agent.store import AgentConfigStore
from shard_agent.utils import short_wallet
from shard_agent.world_api import WorldClient

_log = logging.getLogger(__name__)


class FirstTickError(Exception):
    """The runner could not complete its first tick; it has already stopped."""


class RunnerPhase(str, Enum):
    STARTING = "starting"
    AUTHENTICATING = "authenticating"
    LOCATING_ENTITY = "locating_entity"
    TICKING = "ticking"
    STOPPED = "stopped"
    FAILED_FIRST_TICK = "failed_first_tick"


class AgentRunner:
    def __init__(self, owner_wallet: str, store: AgentConfigStore, signer: WalletSigner,
                 client: Optional[WorldClient] = None, tick_seconds: float = config.TICK_SECONDS,
                 backoff: Optional[BackoffPolicy] = None, clock: Callable[[], float] = time.time):
        self.owner_wallet = owner_wallet.lower()
        self.store = store
        self.client = client or WorldClient()
        self.tick_seconds = tick_seconds
        self.backoff = backoff or BackoffPolicy()
        self.state = RunnerState()
        self.phase = RunnerPhase.STOPPED

        self.auth = AuthSession(self.owner_wallet, store, signer, self.client, clock=clock)
        self.locator = EntityLocator(self.owner_wallet, store, self.client)
        self.ctx = AgentContext(self.owner_wallet, self.client, store, self.auth, self.locator, self.state)
        self.dispatcher = FocusDispatcher(self.ctx)

        self._stop_event = threading.Event()
        self._start_lock = threading.Lock()
        # Held for a whole tick and for each direct helper, so only one of them
        # touches the session, locator and context at a time.
        self._tick_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._first_tick: Optional[Future] = None

    @property
    def running(self) -> bool:
        return self.state.running

    @property
    def tag(self) -> str:
        return short_wallet(self.owner_wallet)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, wait_for_first_tick: bool = False) -> Future:
        """
        Launch the loop on a daemon thread and return a future for the first tick.

        With wait_for_first_tick=True this blocks and raises FirstTickError on
        failure, also when the loop was already started and its first tick is
        still in flight. Otherwise the failure is logged and recorded in the
        activity log when it happens.
        """
        with self._start_lock:
            if self.running and self._first_tick is not None:
                fut = self._first_tick
            else:
                fut = self._spawn(report=not wait_for_first_tick)
        if wait_for_first_tick:
            fut.result()
        return fut

    def _spawn(self, report: bool) -> Future:
        prev = self._thread
        if prev is not None and prev.is_alive():
            # A stopped loop may still be inside a world call; never run two.
            _log.info("[agent:%s] Waiting for the previous loop to exit", self.tag)
            self._stop_event.set()
            prev.join()

        self.state.running = True
        self.state.first_tick_done = False
        self.phase = RunnerPhase.STARTING
        self._stop_event = threading.Event()
        self.backoff.reset()

        fut: Future = Future()
        self._first_tick = fut
        if report:
            fut.add_done_callback(self._report_first_tick)

        self._thread = threading.Thread(target=self._loop, args=(fut, self._stop_event),
                                        name=f"agent-{self.tag}", daemon=True)
        self._thread.start()
        _log.info("[agent:%s] Started", self.tag)
        return fut

    def stop(self) -> None:
        self.state.running = False
        self._stop_event.set()
        _log.info("[agent:%s] Stopped", self.tag)

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _report_first_tick(self, fut: Future) -> None:
        err = fut.exception()
        if err is None:
            return
        _log.warning("[agent:%s] Failed to start: %s", self.tag, err)
        self.store.append_activity(self.owner_wallet, "system", f"Agent failed to start: {err}")

    def _fail_first_tick(self, fut: Future, reason: str) -> None:
        self.state.running = False
        self.phase = RunnerPhase.FAILED_FIRST_TICK
        if not fut.done():
            fut.set_exception(FirstTickError(reason))

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    def _loop(self, fut: Future, stop_event: threading.Event) -> None:
        while self.state.running and not stop_event.is_set():
            try:
                with self._tick_lock:
                    if stop_event.is_set():
                        break
                    delay = self._tick(fut)
            except Exception as e:
                if not self.state.first_tick_done:
                    _log.warning("[agent:%s] First tick crashed: %s", self.tag, e, exc_info=True)
                    self._fail_first_tick(fut, f"Tick error: {e}")
                    break
                _log.error("[agent:%s] Tick error: %s", self.tag, e, exc_info=True)
                delay = self.tick_seconds
            if delay is None:
                break
            stop_event.wait(max(0.0, delay))

        self.state.running = False
        if self.phase != RunnerPhase.FAILED_FIRST_TICK:
            self.phase = RunnerPhase.STOPPED
        if not fut.done():
            # stop() raced the first tick
            fut.set_exception(FirstTickError("Agent stopped before first tick"))
        _log.info("[agent:%s] Loop exited (%s)", self.tag, self.phase.value)

    def _tick(self, fut: Future) -> Optional[float]:
        """Run one tick. Returns seconds to sleep before the next, or None to exit."""
        cfg = self.store.get_config(self.owner_wallet)
        if cfg is None or not cfg.enabled:
            if not self.state.first_tick_done:
                self._fail_first_tick(fut, "Agent config disabled")
            else:
                _log.info("[agent:%s] Disabled in config, stopping", self.tag)
                self.state.running = False
            return None

        self.phase = RunnerPhase.AUTHENTICATING
        if not self.auth.ensure_authenticated():
            return self._transient(fut, "Agent auth failed: custodial wallet missing or invalid")

        self.phase = RunnerPhase.LOCATING_ENTITY
        if not self.locator.ensure_entity_located():
            return self._transient(fut, "Agent entity not found in any zone")

        me = self.locator.read_entity()
        if me is None:
            return self._transient(fut, "Could not read entity state from zone")

        self.backoff.reset()
        self.phase = RunnerPhase.TICKING
        if not self.state.first_tick_done:
            self.state.first_tick_done = True
            if not fut.done():
                fut.set_result(None)
            _log.info("[agent:%s] First tick OK: entity %s in %s", self.tag, self.locator.entity_id, self.locator.zone_id)

        self.state.tick_count += 1
        self._track_focus(cfg)
        if self._run_interrupts(me, cfg):
            return self.tick_seconds
        self.dispatcher.run(cfg)
        return self.tick_seconds

    def _transient(self, fut: Future, reason: str) -> Optional[float]:
        if not self.state.first_tick_done:
            _log.warning("[agent:%s] %s", self.tag, reason)
            self._fail_first_tick(fut, reason)
            return None
        delay = self.backoff.next_delay()
        _log.warning("[agent:%s] %s; retrying in %.1fs", self.tag, reason, delay)
        return delay

    def _track_focus(self, cfg: AgentConfig) -> None:
        if cfg.focus != self.state.last_focus:
            self.state.last_focus = cfg.focus
            self.state.ticks_since_focus_change = 0
        else:
            self.state.ticks_since_focus_change += 1

    def _run_interrupts(self, me: Entity, cfg: AgentConfig) -> bool:
        if handle_low_hp(self.ctx, me, cfg.strategy):
            return True
        zone = self.locator.read_zone()
        if zone is not None and handle_gear_repair(self.ctx, me, zone):
            return True
        return maybe_self_adapt(self.ctx, me, cfg)


    # ------------------------------------------------------------------
    # On-demand helpers (called from the HTTP surface, outside the loop)
    # ------------------------------------------------------------------

    def _ready(self) -> bool:
        return self.auth.ensure_authenticated() and self.locator.ensure_entity_located()

    def buy_item(self, token_id: int) -> bool:
        with self._tick_lock:
            return self._ready() and self.ctx.buy_item(token_id)

    def equip_item(self, token_id: int) -> bool:
        with self._tick_lock:
            return self._ready() and self.ctx.equip_item(token_id)

    def repair_gear(self) -> bool:
        with self._tick_lock:
            return self._ready() and self.ctx.repair_gear()

    def learn_profession(self, profession_id: str) -> bool:
        with self._tick_lock:
            return self._ready() and self.ctx.learn_profession(profession_id)

    def read_entity(self) -> Optional[Entity]:
        """Live snapshot of our entity from its last known zone, or None."""
        with self._tick_lock:
            if not self.locator.entity_id:
                return None
            return self.locator.read_entity()
