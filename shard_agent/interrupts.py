"""
Interrupt handlers checked every tick, in order, before the focus routine.

Each returns True when it consumed the tick; the scheduler then skips focus
execution for that tick.
"""
from __future__ import annotations

import logging

from shard_agent import strategy as rules
from shard_agent.actions import AgentContext, damaged_slots, nearest
from shard_agent.models import AgentConfig, Entity, Focus, Strategy
from shard_agent.utils import short_wallet
from shard_agent.world_api import WorldApiError

_log = logging.getLogger(__name__)


def handle_low_hp(ctx: AgentContext, me: Entity, strategy: Strategy) -> bool:
    """Eat or drink when HP is low; separately, flee to the rally point when critical."""
    pct = me.hp_pct()
    if pct > rules.REACT_HP_PCT[strategy]:
        return False

    used = False
    bal = ctx.balance()
    if bal is not None:
        options = [("food", it) for it in bal.of_category(*rules.FOOD_CATEGORIES)]
        options += [("potion", it) for it in bal.of_category(*rules.POTION_CATEGORIES)]
        for kind, item in options:
            try:
                ctx.client.consume(kind, ctx.wallet, ctx.zone_id, ctx.entity_id, item.token_id)
            except WorldApiError as e:
                _log.debug("[agent:%s] consume %s failed: %s", short_wallet(ctx.owner_wallet), item.name, e)
                continue
            ctx.log_activity(f"HP {pct:.0%}: used {item.name or kind}")
            used = True
            break

    if pct < rules.FLEE_HP_PCT[strategy]:
        x, y = rules.SAFE_RALLY_POINT
        ctx.move_to(x, y)
        ctx.log_activity(f"HP critical ({pct:.0%}), retreating to safety")

    return used


def handle_gear_repair(ctx: AgentContext, me: Entity, zone) -> bool:
    """
    Head for the nearest blacksmith when any equipped piece is broken or
    under 20% durability. Any attempt, even with no blacksmith in the zone,
    consumes the tick. The no-blacksmith stall is reported to the activity
    log once, until the gear is fixed or a blacksmith shows up.
    """
    slots = damaged_slots(me)
    if not slots:
        ctx.state.repair_stalled = False
        return False

    smith = nearest(me, zone.of_type(*rules.REPAIR_NPC_TYPES))
    if smith is None:
        _log.debug("[agent:%s] gear needs repair but no blacksmith in %s", short_wallet(ctx.owner_wallet), ctx.zone_id)
        if not ctx.state.repair_stalled:
            ctx.state.repair_stalled = True
            _log.warning("[agent:%s] stalled: %s need repair and %s has no blacksmith",
                         short_wallet(ctx.owner_wallet), ", ".join(slots), ctx.zone_id)
            ctx.store.append_activity(
                ctx.owner_wallet, "system",
                f"Stalled: {', '.join(slots)} need repair and there is no blacksmith in {ctx.zone_id}",
            )
        return True
    ctx.state.repair_stalled = False
    if ctx.approach(me, smith, rules.INTERACT_RANGE):
        return True
    try:
        ctx.client.repair(ctx.wallet, ctx.zone_id, ctx.entity_id, smith.id, slots)
        ctx.log_activity(f"Repaired {', '.join(slots)} at {smith.name or smith.id}")
    except WorldApiError as e:
        _log.debug("[agent:%s] repair failed: %s", short_wallet(ctx.owner_wallet), e)
    return True


def maybe_self_adapt(ctx: AgentContext, me: Entity, cfg: AgentConfig) -> bool:
    """
    Every 30th tick since the last focus change, override focus when the
    agent is clearly stuck. First matching rule wins:

      1. no weapon and enough gold to buy one -> shopping
      2. no food, no potions, HP under 70%   -> cooking
      3. out-levelled the zone by 5+         -> travel to the best zone
    """
    if cfg.focus == Focus.IDLE:
        return False
    since = ctx.state.ticks_since_focus_change
    if since <= 0 or since % rules.ADAPT_EVERY_TICKS != 0:
        return False

    bal = ctx.balance()
    gold = bal.gold if bal is not None else 0.0
    has_food = bool(bal and bal.of_category(*rules.FOOD_CATEGORIES))
    has_potion = bool(bal and bal.of_category(*rules.POTION_CATEGORIES))

    if me.equipped("weapon") is None and gold >= rules.SHOPPING_GOLD_THRESHOLD:
        return _override(ctx, cfg, Focus.SHOPPING, None, "no weapon equipped, going shopping")

    if not has_food and not has_potion and me.hp_pct() < rules.COOKING_HP_PCT:
        return _override(ctx, cfg, Focus.COOKING, None, "out of food and potions, switching to cooking")

    current = ctx.zone_id
    if me.level >= rules.zone_level(current) + rules.OVERLEVEL_MARGIN:
        best = rules.best_zone_for_level(me.level)
        if best != current:
            return _override(ctx, cfg, Focus.TRAVELING, best, f"level {me.level} has outgrown {current}, heading to {best}")

    return False


def _override(ctx: AgentContext, cfg: AgentConfig, focus: Focus, target_zone, reason: str) -> bool:
    ctx.store.patch_config(ctx.owner_wallet, focus=focus, target_zone=target_zone)
    ctx.log_activity(f"Adapting: {reason} ({cfg.focus.value} -> {focus.value})")
    return True
