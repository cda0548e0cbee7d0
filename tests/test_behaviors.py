"""Tests for focus routines and their fallbacks."""
from __future__ import annotations

import pytest

from conftest import HOME, OWNER, me_in
from shard_agent.behaviors import ROUTINES, FocusDispatcher, cheapest_for_empty_slot, select_target
from shard_agent.models import (
    AgentConfig, Entity, EquippedItem, Focus, Neighbor, Quest, Recipe, ShopItem, Strategy,
)
from shard_agent.world_api import WorldApiError


def _run(ctx, store, **cfg):
    store.patch_config(OWNER, **cfg)
    return FocusDispatcher(ctx).run(store.get_config(OWNER))


def test_every_focus_has_a_routine():
    assert set(ROUTINES) == set(Focus)


# --- Combat ---

def test_aggressive_picks_highest_eligible_level():
    me = Entity(id="me", level=10, x=0, y=0)
    mobs = [
        Entity(id="m8", type="mob", level=8, hp=10, x=5, y=0),
        Entity(id="m12", type="mob", level=12, hp=10, x=50, y=0),
        Entity(id="m16", type="mob", level=16, hp=10, x=1, y=0),
    ]
    assert select_target(me, mobs, Strategy.AGGRESSIVE).id == "m12"


def test_balanced_picks_nearest_eligible():
    me = Entity(id="me", level=10, x=0, y=0)
    mobs = [
        Entity(id="far", type="mob", level=9, hp=10, x=60, y=0),
        Entity(id="near", type="mob", level=11, hp=10, x=20, y=0),
        Entity(id="too-high", type="mob", level=13, hp=10, x=1, y=0),
        Entity(id="dead", type="mob", level=1, hp=0, x=2, y=0),
    ]
    assert select_target(me, mobs, Strategy.BALANCED).id == "near"


def test_combat_moves_then_attacks(ctx, world, store):
    world.add(HOME, "wolf", type="mob", level=4, hp=30, max_hp=30, x=300, y=100)
    assert _run(ctx, store, focus=Focus.COMBAT) is True
    assert world.called("move")[0][3:] == (300, 100)
    assert world.called("attack") == []

    world.calls.clear()
    assert _run(ctx, store, focus=Focus.COMBAT) is True
    assert world.called("attack")[0][3] == "wolf"


def test_combat_with_nothing_to_fight(ctx, world, store):
    assert _run(ctx, store, focus=Focus.COMBAT) is False


# --- Questing ---

def test_questing_accepts_then_fights(ctx, world, store):
    world.quests = [Quest(id="q-rats", title="Rat Problem")]
    world.add(HOME, "rat", type="mob", level=1, hp=5, x=110, y=100)
    _run(ctx, store, focus=Focus.QUESTING)
    assert world.called("accept_quest")[0][3] == "q-rats"
    assert len(world.called("attack")) == 1


def test_questing_tolerates_already_accepted(ctx, world, store):
    world.quests = [Quest(id="q-rats")]
    world.failing["accept_quest"] = WorldApiError("Quest already accepted", 400)
    world.add(HOME, "rat", type="mob", level=1, hp=5, x=110, y=100)
    assert _run(ctx, store, focus=Focus.QUESTING) is True
    assert len(world.called("attack")) == 1


# --- Gathering ---

def test_gathering_without_nodes_falls_back_to_combat(ctx, world, store):
    world.add(HOME, "rat", type="mob", level=1, hp=5, x=110, y=100)
    _run(ctx, store, focus=Focus.GATHERING)
    assert len(world.called("attack")) == 1
    assert ctx.state.fallback_count == 1


def test_gathering_learns_profession_then_gathers(ctx, world, store):
    world.add(HOME, "ore", type="ore-node", name="Copper Vein", x=120, y=100)
    world.add(HOME, "miner", type="profession-trainer", teaches_profession="mining", x=90, y=100)

    _run(ctx, store, focus=Focus.GATHERING)
    assert world.called("learn_profession")[0][5] == "mining"
    assert world.called("gather")[0][1:2] == ("mining",)


def test_gathering_walks_to_distant_trainer(ctx, world, store):
    world.add(HOME, "flower", type="flower-node", x=120, y=100)
    world.add(HOME, "herbalist", type="profession-trainer", teaches_profession="herbalism", x=500, y=500)

    assert _run(ctx, store, focus=Focus.GATHERING) is True
    assert world.called("move")[0][3:] == (500, 500)
    assert world.called("gather") == []


# --- Crafting chains ---

def test_forge_skips_recipe_missing_materials(ctx, world, store):
    """Recipes [A needs X, B needs Y] with only Y in hand: A fails, B succeeds, no gathering."""
    world.professions.add("blacksmithing")
    world.add(HOME, "forge", type="forge", name="Village Forge", x=110, y=100)
    world.add(HOME, "ore", type="ore-node", x=130, y=100)
    world.recipe_book["blacksmithing"] = [Recipe(id="A", name="Iron Sword"), Recipe(id="B", name="Copper Helm")]
    world.craftable = {"B"}

    assert _run(ctx, store, focus=Focus.CRAFTING) is True
    assert [c[6] for c in world.called("craft")] == ["A", "B"]
    assert world.called("gather") == []
    assert ctx.state.fallback_count == 0


def test_forge_with_nothing_craftable_goes_gathering(ctx, world, store):
    world.professions.update({"blacksmithing", "mining"})
    world.add(HOME, "forge", type="forge", x=110, y=100)
    world.add(HOME, "ore", type="ore-node", x=130, y=100)
    world.recipe_book["blacksmithing"] = [Recipe(id="A")]

    _run(ctx, store, focus=Focus.CRAFTING)
    assert len(world.called("gather")) == 1


def test_known_uncraftable_recipes_are_not_attempted(ctx, world, store):
    world.professions.add("alchemy")
    world.add(HOME, "lab", type="alchemy-lab", x=110, y=100)
    world.recipe_book["alchemy"] = [Recipe(id="P1", can_craft=False), Recipe(id="P2")]
    world.craftable = {"P2"}

    _run(ctx, store, focus=Focus.ALCHEMY)
    assert [c[6] for c in world.called("craft")] == ["P2"]


def test_cooking_without_campfire_falls_back_to_combat(ctx, world, store):
    world.professions.add("cooking")
    world.add(HOME, "rat", type="mob", level=1, hp=5, x=110, y=100)
    _run(ctx, store, focus=Focus.COOKING)
    assert world.called("craft") == []
    assert len(world.called("attack")) == 1


# --- Enchanting ---

def test_enchanting_without_weapon_goes_gathering(ctx, world, store):
    world.professions.add("mining")
    world.add(HOME, "ore", type="ore-node", x=110, y=100)
    _run(ctx, store, focus=Focus.ENCHANTING)
    assert len(world.called("gather")) == 1


def test_enchanting_without_scroll_goes_alchemy(ctx, world, store):
    me_in(world).equipment["weapon"] = EquippedItem(token_id=1, name="Sword")
    world.professions.add("alchemy")
    world.add(HOME, "lab", type="alchemy-lab", x=110, y=100)
    world.recipe_book["alchemy"] = [Recipe(id="scroll")]
    world.craftable = {"scroll"}

    _run(ctx, store, focus=Focus.ENCHANTING)
    assert world.called("craft")[0][1] == "alchemy"


def test_enchanting_applies_at_altar(ctx, world, store):
    me_in(world).equipment["weapon"] = EquippedItem(token_id=1, name="Sword")
    world.give(55, "Fire Rune", "enchantment")
    world.add(HOME, "altar", type="enchanting-altar", x=110, y=100)

    assert _run(ctx, store, focus=Focus.ENCHANTING) is True
    (call,) = world.called("enchant")
    assert call[4:] == ("altar", 55, "weapon")


# --- Shopping ---

def test_cheapest_affordable_item_for_first_empty_slot():
    me = Entity(id="me", equipment={"weapon": EquippedItem(token_id=1)})
    catalog = [
        ShopItem(token_id=10, name="Plate", gold_price=90, armor_slot="chest"),
        ShopItem(token_id=11, name="Leather Vest", gold_price=12, armor_slot="chest"),
        ShopItem(token_id=12, name="Cloth Shirt", gold_price=4, armor_slot="chest"),
        ShopItem(token_id=13, name="Axe", gold_price=1, equip_slot="weapon"),
    ]
    assert cheapest_for_empty_slot(me, catalog, gold=20).token_id == 12
    assert cheapest_for_empty_slot(me, catalog[:1], gold=20) is None


def test_shopping_buys_and_equips_one_item(ctx, world, store):
    world.balance.gold = 30
    world.add(HOME, "shop", type="merchant", x=110, y=100)
    world.catalog = [
        ShopItem(token_id=13, name="Axe", gold_price=10, equip_slot="weapon"),
        ShopItem(token_id=12, name="Cloth Shirt", gold_price=4, armor_slot="chest"),
    ]

    assert _run(ctx, store, focus=Focus.SHOPPING) is True
    assert [c[2] for c in world.called("buy")] == [13]
    assert [c[4] for c in world.called("equip")] == [13]


def test_shopping_when_broke_falls_back_to_combat(ctx, world, store):
    world.balance.gold = 1
    world.add(HOME, "shop", type="merchant", x=110, y=100)
    world.add(HOME, "rat", type="mob", level=1, hp=5, x=110, y=100)
    world.catalog = [ShopItem(token_id=13, gold_price=10, equip_slot="weapon")]

    _run(ctx, store, focus=Focus.TRADING)
    assert world.called("buy") == []
    assert len(world.called("attack")) == 1


# --- Traveling ---

def test_travel_arrived_reverts_to_questing(ctx, world, store):
    _run(ctx, store, focus=Focus.TRAVELING, target_zone=HOME)
    cfg = store.get_config(OWNER)
    assert cfg.focus == Focus.QUESTING
    assert cfg.target_zone is None
    assert world.called("travel") == []


def test_travel_direct_neighbor(ctx, world, store):
    world.neighbors[HOME] = [Neighbor(zone="wild-meadow", level_req=5)]
    assert _run(ctx, store, focus=Focus.TRAVELING, target_zone="wild-meadow") is True
    assert world.called("travel")[0][3] == "wild-meadow"


def test_travel_picks_hop_closer_to_target(ctx, world, store):
    world.neighbors[HOME] = [Neighbor(zone="wild-meadow", level_req=1)]
    world.neighbors["wild-meadow"] = [
        Neighbor(zone="village-square", level_req=1),
        Neighbor(zone="dark-forest", level_req=5),
    ]
    _run(ctx, store, focus=Focus.TRAVELING, target_zone="auroral-plains")
    assert ctx.locator.ensure_entity_located()
    _run(ctx, store, focus=Focus.TRAVELING, target_zone="auroral-plains")

    hops = [c[3] for c in world.called("travel")]
    assert hops == ["wild-meadow", "dark-forest"]


@pytest.mark.parametrize("neighbors", [
    [Neighbor(zone="wild-meadow", level_req=8)],
    [],
])
def test_travel_blocked_falls_back_to_combat(ctx, world, store, neighbors):
    world.neighbors[HOME] = neighbors
    world.add(HOME, "rat", type="mob", level=1, hp=5, x=110, y=100)
    _run(ctx, store, focus=Focus.TRAVELING, target_zone="dark-forest")
    assert world.called("travel") == []
    assert len(world.called("attack")) == 1
    assert store.get_config(OWNER).focus == Focus.TRAVELING


def test_idle_does_nothing(ctx, world, store):
    assert _run(ctx, store, focus=Focus.IDLE) is False
    assert world.calls == []


def test_routine_errors_are_absorbed(ctx, world, store):
    world.add(HOME, "wolf", type="mob", level=4, hp=30, x=110, y=100)
    world.failing["attack"] = WorldApiError("target already dead", 400)
    assert FocusDispatcher(ctx).run(AgentConfig(focus=Focus.COMBAT)) is False
