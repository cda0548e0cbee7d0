"""
Per-agent action helpers shared by the interrupt handlers, the focus
routines, and the on-demand helpers exposed by the runner.

Every helper treats a world call as possibly failing: reads return None or an
empty list on WorldApiError, and writes report success as a bool.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Literal, Optional, Set, Tuple

from shard_agent import strategy as rules
from shard_agent.auth import AuthSession
from shard_agent.locator import EntityLocator
from shard_agent.models import Entity, RunnerState, WalletBalance, ZoneState
from shard_agent.store import AgentConfigStore
from shard_agent.utils import short_wallet
from shard_agent.world_api import WorldApiError, WorldClient

_log = logging.getLogger(__name__)

ProfessionStatus = Literal["ready", "walking", "missing"]


def nearest(me: Entity, candidates: Iterable[Entity]) -> Optional[Entity]:
    return min(candidates, key=me.distance_to, default=None)


class AgentContext:
    def __init__(self, owner_wallet: str, client: WorldClient, store: AgentConfigStore,
                 auth: AuthSession, locator: EntityLocator, state: Optional[RunnerState] = None):
        self.owner_wallet = owner_wallet.lower()
        self.client = client
        self.store = store
        self.auth = auth
        self.locator = locator
        self.state = state or RunnerState()
        self.known_professions: Set[str] = set()

    # ------------------------------------------------------------------
    # Identity / location
    # ------------------------------------------------------------------

    @property
    def wallet(self) -> str:
        """Custodial wallet that acts in the world (falls back to the owner before auth)."""
        return self.auth.identity.custodial_wallet or self.owner_wallet

    @property
    def zone_id(self) -> str:
        return self.locator.zone_id

    @property
    def entity_id(self) -> Optional[str]:
        return self.locator.entity_id

    def snapshot(self) -> Optional[Tuple[ZoneState, Entity]]:
        """Fresh read of the current zone plus our own entity, or None."""
        zone = self.locator.read_zone()
        if zone is None or not self.entity_id:
            return None
        me = zone.entities.get(self.entity_id)
        if me is None:
            return None
        return zone, me

    def balance(self) -> Optional[WalletBalance]:
        try:
            return self.client.wallet_balance(self.wallet)
        except WorldApiError as e:
            _log.debug("[agent:%s] balance read failed: %s", short_wallet(self.owner_wallet), e)
            return None

    def log_activity(self, text: str) -> None:
        _log.info("[agent:%s] %s", short_wallet(self.owner_wallet), text)
        self.store.append_activity(self.owner_wallet, "activity", text)

    def note_fallback(self, from_what: str, to_what: str) -> None:
        self.state.fallback_count += 1
        _log.debug("[agent:%s] %s -> %s fallback", short_wallet(self.owner_wallet), from_what, to_what)

    # ------------------------------------------------------------------
    # Movement
    # ------------------------------------------------------------------

    def move_to(self, x: float, y: float) -> bool:
        try:
            self.client.move(self.zone_id, self.entity_id, x, y)
            return True
        except WorldApiError as e:
            _log.debug("[agent:%s] move failed: %s", short_wallet(self.owner_wallet), e)
            return False

    def approach(self, me: Entity, target: Entity, within: float) -> bool:
        """Step toward target when out of range. True means we moved (the tick is spent)."""
        if me.distance_to(target) <= within:
            return False
        self.move_to(target.x, target.y)
        return True

    # ------------------------------------------------------------------
    # Professions
    # ------------------------------------------------------------------

    def knows(self, profession_id: str) -> bool:
        if profession_id in self.known_professions:
            return True
        try:
            self.known_professions.update(self.client.learned_professions(self.wallet))
        except WorldApiError as e:
            _log.debug("[agent:%s] professions read failed: %s", short_wallet(self.owner_wallet), e)
        return profession_id in self.known_professions

    def ensure_profession(self, profession_id: str) -> ProfessionStatus:
        if self.knows(profession_id):
            return "ready"

        snap = self.snapshot()
        if snap is None:
            return "missing"
        zone, me = snap
        trainers = [t for t in zone.of_type(*rules.TRAINER_TYPES) if t.teaches_profession == profession_id]
        trainer = nearest(me, trainers)
        if trainer is None:
            return "missing"
        if self.approach(me, trainer, rules.INTERACT_RANGE):
            return "walking"
        return "ready" if self._learn_at(trainer, profession_id) else "missing"

    def _learn_at(self, trainer: Entity, profession_id: str) -> bool:
        try:
            self.client.learn_profession(self.wallet, self.zone_id, self.entity_id, trainer.id, profession_id)
        except WorldApiError as e:
            if "already" not in str(e).lower():
                _log.debug("[agent:%s] learn %s failed: %s", short_wallet(self.owner_wallet), profession_id, e)
                return False
        self.known_professions.add(profession_id)
        self.log_activity(f"Learned {profession_id}")
        return True

    # ------------------------------------------------------------------
    # On-demand helpers (also used outside the tick loop)
    # ------------------------------------------------------------------

    def learn_profession(self, profession_id: str) -> bool:
        snap = self.snapshot()
        if snap is None:
            return False
        zone, me = snap
        trainers = [t for t in zone.of_type(*rules.TRAINER_TYPES) if t.teaches_profession == profession_id]
        trainer = nearest(me, trainers)
        if trainer is None:
            return False
        return self._learn_at(trainer, profession_id)

    def buy_item(self, token_id: int, quantity: int = 1) -> bool:
        try:
            self.client.buy(self.wallet, token_id, quantity)
        except WorldApiError as e:
            _log.debug("[agent:%s] buy %s failed: %s", short_wallet(self.owner_wallet), token_id, e)
            return False
        self.log_activity(f"Bought item #{token_id}")
        return True

    def equip_item(self, token_id: int) -> bool:
        try:
            self.client.equip(self.wallet, self.zone_id, self.entity_id, token_id)
        except WorldApiError as e:
            _log.debug("[agent:%s] equip %s failed: %s", short_wallet(self.owner_wallet), token_id, e)
            return False
        self.log_activity(f"Equipped item #{token_id}")
        return True

    def repair_gear(self, me: Optional[Entity] = None, zone: Optional[ZoneState] = None) -> bool:
        """Repair every damaged slot at the nearest blacksmith, walking there first if needed."""
        if me is None or zone is None:
            snap = self.snapshot()
            if snap is None:
                return False
            zone, me = snap
        slots = damaged_slots(me)
        if not slots:
            return False
        smith = nearest(me, zone.of_type(*rules.REPAIR_NPC_TYPES))
        if smith is None:
            _log.debug("[agent:%s] no blacksmith in %s", short_wallet(self.owner_wallet), self.zone_id)
            return False
        if self.approach(me, smith, rules.INTERACT_RANGE):
            return False
        try:
            self.client.repair(self.wallet, self.zone_id, self.entity_id, smith.id, slots)
        except WorldApiError as e:
            _log.debug("[agent:%s] repair failed: %s", short_wallet(self.owner_wallet), e)
            return False
        self.log_activity(f"Repaired {', '.join(slots)} at {smith.name or smith.id}")
        return True


def damaged_slots(me: Entity) -> List[str]:
    out = []
    for slot, item in me.equipment.items():
        if item is None:
            continue
        pct = item.durability_pct()
        if item.broken or (pct is not None and pct < rules.REPAIR_DURABILITY_PCT):
            out.append(slot)
    return out
