"""
Focus routines and the table that dispatches to them.

One routine per Focus. A routine performs at most one world action per tick
and, when its preconditions are not met, hands the tick to a simpler routine
(usually combat) so the agent never stalls. Each routine returns True when it
issued an action.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from shard_agent import strategy as rules
from shard_agent.actions import AgentContext, nearest
from shard_agent.models import AgentConfig, Entity, Focus, ShopItem, Strategy
from shard_agent.utils import short_wallet
from shard_agent.world_api import WorldApiError

_log = logging.getLogger(__name__)


def select_target(me: Entity, mobs: Sequence[Entity], strategy: Strategy) -> Optional[Entity]:
    """
    Pick a combat target among living mobs at or under our engagement cap.

    Aggressive goes for the highest level (ties break on distance); everyone
    else takes the nearest.
    """
    cap = rules.engagement_cap(strategy, me.level)
    eligible = [m for m in mobs if m.is_alive() and m.level <= cap]
    if not eligible:
        return None
    if strategy == Strategy.AGGRESSIVE:
        return min(eligible, key=lambda m: (-m.level, me.distance_to(m)))
    return min(eligible, key=me.distance_to)


def cheapest_for_empty_slot(me: Entity, catalog: List[ShopItem], gold: float) -> Optional[ShopItem]:
    """First empty equipment slot (in slot order) that has an affordable item; cheapest wins."""
    for slot in rules.EQUIPMENT_SLOTS:
        if me.equipped(slot) is not None:
            continue
        affordable = [it for it in catalog if it.slot == slot and it.gold_price <= gold]
        if affordable:
            return min(affordable, key=lambda it: it.gold_price)
    return None


class FocusDispatcher:
    def __init__(self, ctx: AgentContext):
        self.ctx = ctx

    def run(self, cfg: AgentConfig) -> bool:
        routine = getattr(self, ROUTINES[cfg.focus])
        try:
            return routine(cfg)
        except WorldApiError as e:
            _log.debug("[agent:%s] %s routine failed: %s", short_wallet(self.ctx.owner_wallet), cfg.focus.value, e)
            return False

    def _fallback(self, from_focus: str, to_focus: Focus, cfg: AgentConfig) -> bool:
        self.ctx.note_fallback(from_focus, to_focus.value)
        return getattr(self, ROUTINES[to_focus])(cfg)

    # ------------------------------------------------------------------
    # Combat / questing
    # ------------------------------------------------------------------

    def combat(self, cfg: AgentConfig) -> bool:
        ctx = self.ctx
        snap = ctx.snapshot()
        if snap is None:
            return False
        zone, me = snap
        target = select_target(me, zone.of_type(*rules.MOB_TYPES), cfg.strategy)
        if target is None:
            return False
        if ctx.approach(me, target, rules.ENGAGE_RANGE):
            return True
        ctx.client.attack(ctx.zone_id, ctx.entity_id, target.id)
        _log.debug("[agent:%s] attacking %s (L%d)", short_wallet(ctx.owner_wallet), target.name or target.id, target.level)
        return True

    def questing(self, cfg: AgentConfig) -> bool:
        ctx = self.ctx
        try:
            quests = ctx.client.available_quests(ctx.zone_id, ctx.entity_id)
        except WorldApiError:
            quests = []
        if quests:
            quest = quests[0]
            try:
                ctx.client.accept_quest(ctx.zone_id, ctx.entity_id, quest.id)
                ctx.log_activity(f"Accepted quest: {quest.title or quest.id}")
            except WorldApiError as e:
                _log.debug("[agent:%s] accept quest %s failed: %s", short_wallet(ctx.owner_wallet), quest.id, e)
        # Quest objectives are kills; progress them through combat.
        return self._fallback("questing", Focus.COMBAT, cfg)

    # ------------------------------------------------------------------
    # Gathering / crafting chains
    # ------------------------------------------------------------------

    def gathering(self, cfg: AgentConfig) -> bool:
        ctx = self.ctx
        snap = ctx.snapshot()
        if snap is None:
            return False
        zone, me = snap
        node = nearest(me, zone.of_type(*rules.NODE_PROFESSION))
        if node is None:
            return self._fallback("gathering", Focus.COMBAT, cfg)

        profession = rules.NODE_PROFESSION[node.type]
        status = ctx.ensure_profession(profession)
        if status == "walking":
            return True
        if status == "missing":
            return self._fallback("gathering", Focus.COMBAT, cfg)

        if ctx.approach(me, node, rules.GATHER_RANGE):
            return True
        ctx.client.gather(profession, ctx.wallet, ctx.zone_id, ctx.entity_id, node.id)
        ctx.log_activity(f"Gathered from {node.name or node.type}")
        return True

    def _craft_chain(self, profession: str, label: str, cfg: AgentConfig) -> bool:
        ctx = self.ctx
        status = ctx.ensure_profession(profession)
        if status == "walking":
            return True
        if status == "missing":
            return self._fallback(label, Focus.COMBAT, cfg)

        snap = ctx.snapshot()
        if snap is None:
            return False
        zone, me = snap
        station = nearest(me, zone.of_type(*rules.CRAFT_STATIONS[profession]))
        if station is None:
            return self._fallback(label, Focus.COMBAT, cfg)
        if ctx.approach(me, station, rules.INTERACT_RANGE):
            return True

        try:
            recipes = ctx.client.recipes(profession, ctx.zone_id, ctx.entity_id)
        except WorldApiError:
            recipes = []
        for recipe in recipes:
            if recipe.can_craft is False:
                continue
            try:
                ctx.client.craft(profession, ctx.wallet, ctx.zone_id, ctx.entity_id, station.id, recipe.id)
            except WorldApiError as e:
                _log.debug("[agent:%s] %s %s failed: %s", short_wallet(ctx.owner_wallet), label, recipe.id, e)
                continue
            ctx.log_activity(f"Made {recipe.name or recipe.id} at {station.name or station.type}")
            return True

        # Nothing craftable; go get materials.
        return self._fallback(label, Focus.GATHERING, cfg)

    def crafting(self, cfg: AgentConfig) -> bool:
        return self._craft_chain("blacksmithing", "crafting", cfg)

    def alchemy(self, cfg: AgentConfig) -> bool:
        return self._craft_chain("alchemy", "alchemy", cfg)

    def cooking(self, cfg: AgentConfig) -> bool:
        return self._craft_chain("cooking", "cooking", cfg)

    def enchanting(self, cfg: AgentConfig) -> bool:
        ctx = self.ctx
        snap = ctx.snapshot()
        if snap is None:
            return False
        zone, me = snap
        bal = ctx.balance()
        scrolls = bal.of_category(*rules.ENCHANTMENT_CATEGORIES) if bal else []
        if me.equipped("weapon") is None or not scrolls:
            # Brew enchantments if we can, otherwise stock up on materials.
            fallback = Focus.ALCHEMY if ctx.knows("alchemy") else Focus.GATHERING
            return self._fallback("enchanting", fallback, cfg)
        altar = nearest(me, zone.of_type(*rules.ALTAR_TYPES))
        if altar is None:
            return self._fallback("enchanting", Focus.COMBAT, cfg)
        if ctx.approach(me, altar, rules.INTERACT_RANGE):
            return True
        scroll = scrolls[0]
        ctx.client.enchant(ctx.wallet, ctx.zone_id, ctx.entity_id, altar.id, scroll.token_id, "weapon")
        ctx.log_activity(f"Enchanted weapon with {scroll.name or scroll.token_id}")
        return True

    # ------------------------------------------------------------------
    # Shopping / trading
    # ------------------------------------------------------------------

    def shopping(self, cfg: AgentConfig) -> bool:
        ctx = self.ctx
        snap = ctx.snapshot()
        if snap is None:
            return False
        zone, me = snap
        bal = ctx.balance()
        if bal is None or all(me.equipped(s) is not None for s in rules.EQUIPMENT_SLOTS):
            return self._fallback("shopping", Focus.COMBAT, cfg)
        merchant = nearest(me, zone.of_type(*rules.MERCHANT_TYPES))
        if merchant is None:
            return self._fallback("shopping", Focus.COMBAT, cfg)

        try:
            catalog = ctx.client.shop_catalog(ctx.zone_id, merchant.id)
        except WorldApiError:
            catalog = []
        item = cheapest_for_empty_slot(me, catalog, bal.gold)
        if item is None:
            return self._fallback("shopping", Focus.COMBAT, cfg)
        if ctx.approach(me, merchant, rules.INTERACT_RANGE):
            return True

        if not ctx.buy_item(item.token_id):
            return self._fallback("shopping", Focus.COMBAT, cfg)
        ctx.equip_item(item.token_id)
        return True

    def trading(self, cfg: AgentConfig) -> bool:
        return self.shopping(cfg)

    # ------------------------------------------------------------------
    # Traveling
    # ------------------------------------------------------------------

    def traveling(self, cfg: AgentConfig) -> bool:
        ctx = self.ctx
        current = ctx.zone_id
        target = cfg.target_zone
        if not target or target == current:
            ctx.store.patch_config(ctx.owner_wallet, focus=Focus.QUESTING, target_zone=None)
            if target:
                ctx.log_activity(f"Reached {target}, back to questing")
            return False

        snap = ctx.snapshot()
        if snap is None:
            return False
        _, me = snap
        try:
            neighbors = ctx.client.get_neighbors(current)
        except WorldApiError:
            neighbors = []

        hop = next((n for n in neighbors if n.zone == target), None)
        if hop is None:
            here = rules.zone_distance(current, target)
            closer = []
            for n in neighbors:
                d = rules.zone_distance(n.zone, target)
                if d is not None and (here is None or d < here):
                    closer.append((d, n.level_req, n))
            if closer:
                hop = min(closer, key=lambda t: (t[0], t[1]))[2]

        if hop is None or me.level < hop.level_req:
            _log.debug("[agent:%s] no usable route %s -> %s (level %d)",
                       short_wallet(ctx.owner_wallet), current, target, me.level)
            return self._fallback("traveling", Focus.COMBAT, cfg)

        ctx.client.travel(ctx.zone_id, ctx.entity_id, hop.zone)
        ctx.log_activity(f"Traveling {current} -> {hop.zone} (bound for {target})")
        return True

    def idle(self, cfg: AgentConfig) -> bool:
        return False


ROUTINES: Dict[Focus, str] = {
    Focus.QUESTING: "questing",
    Focus.COMBAT: "combat",
    Focus.GATHERING: "gathering",
    Focus.CRAFTING: "crafting",
    Focus.ALCHEMY: "alchemy",
    Focus.COOKING: "cooking",
    Focus.ENCHANTING: "enchanting",
    Focus.TRADING: "trading",
    Focus.SHOPPING: "shopping",
    Focus.TRAVELING: "traveling",
    Focus.IDLE: "idle",
}

_missing = [f.value for f in Focus if not callable(getattr(FocusDispatcher, ROUTINES.get(f, ""), None))]
if _missing:
    raise RuntimeError(f"No routine registered for focus: {', '.join(_missing)}")
