"""
Shared fixtures for agent runner tests.
Points DATA_DIR at a temp dir before any shard_agent import so tests never touch real data.
"""
from __future__ import annotations

import os
import tempfile
import threading

os.environ["DATA_DIR"] = tempfile.mkdtemp(prefix="shard_agent_test_")
os.environ["ADMIN_TOKEN"] = "test-admin-token"
os.environ["CUSTODIAL_KEYS_PATH"] = ""

from typing import Callable, Dict, List, Optional  # noqa: E402

import pytest  # noqa: E402

from shard_agent.actions import AgentContext  # noqa: E402
from shard_agent.auth import AuthSession  # noqa: E402
from shard_agent.backoff import BackoffPolicy  # noqa: E402
from shard_agent.locator import EntityLocator  # noqa: E402
from shard_agent.models import (  # noqa: E402
    AgentConfig, Entity, EntityRef, InventoryItem, Neighbor, Quest, Recipe,
    ShopItem, WalletBalance, WorldState, ZoneState,
)
from shard_agent.runner import AgentRunner  # noqa: E402
from shard_agent.signer import InMemoryWalletSigner, address_of  # noqa: E402
from shard_agent.store import AgentConfigStore  # noqa: E402
from shard_agent.world_api import WorldApiError  # noqa: E402

OWNER = "0xa11ce00000000000000000000000000000000001"
# Throwaway key from the eth-account docs; never funded.
CUSTODIAL_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
CUSTODIAL = address_of(CUSTODIAL_KEY).lower()
ME = "e-hero"
HOME = "village-square"


class FakeWorld:
    """
    In-process stand-in for WorldClient. Same method names and return types;
    records every call and mutates its own zone map for move/travel.
    """

    def __init__(self):
        self.zones: Dict[str, Dict[str, Entity]] = {}
        self.calls: List[tuple] = []
        self.failing: Dict[str, WorldApiError] = {}
        # called (no args) before the named method returns; used to hold a call open
        self.hooks: Dict[str, Callable[[], None]] = {}
        self.token: Optional[str] = None
        self.auth_ok = True
        self.quests: List[Quest] = []
        self.neighbors: Dict[str, List[Neighbor]] = {}
        self.professions: set = set()
        self.recipe_book: Dict[str, List[Recipe]] = {}
        self.craftable: set = set()
        self.balance = WalletBalance()
        self.catalog: List[ShopItem] = []

    # --- test helpers ---

    def add(self, zone_id: str, entity_id: str, **fields) -> Entity:
        ent = Entity(id=entity_id, **fields)
        self.zones.setdefault(zone_id, {})[entity_id] = ent
        return ent

    def give(self, token_id: int, name: str, category: str, balance: int = 1) -> None:
        self.balance.items.append(InventoryItem(token_id=token_id, name=name, category=category, balance=balance))

    def called(self, name: str) -> List[tuple]:
        return [c for c in self.calls if c[0] == name]

    def _call(self, name: str, *args) -> None:
        self.calls.append((name,) + args)
        hook = self.hooks.get(name)
        if hook is not None:
            hook()
        err = self.failing.get(name)
        if err is not None:
            raise err

    def _zone_state(self, zone_id: str) -> ZoneState:
        ents = {k: v.model_copy(deep=True) for k, v in self.zones[zone_id].items()}
        return ZoneState(zone_id=zone_id, entities=ents)

    # --- WorldClient surface ---

    def set_token(self, token):
        self.token = token

    def auth_challenge(self, wallet):
        self._call("auth_challenge", wallet)
        return {"message": f"Sign this message to authenticate: {wallet}", "timestamp": 1700000000}

    def auth_verify(self, wallet, signature, timestamp):
        self._call("auth_verify", wallet, signature, timestamp)
        if not self.auth_ok:
            return {"success": False, "error": "bad signature"}
        return {"success": True, "token": f"tok-{len(self.called('auth_verify'))}"}

    def get_zone(self, zone_id):
        self._call("get_zone", zone_id)
        if zone_id not in self.zones:
            raise WorldApiError(f"GET /zones/{zone_id} -> 404", 404)
        return self._zone_state(zone_id)

    def get_world_state(self):
        self._call("get_world_state")
        return WorldState(zones={z: self._zone_state(z) for z in self.zones})

    def get_neighbors(self, zone_id):
        self._call("get_neighbors", zone_id)
        return list(self.neighbors.get(zone_id, []))

    def move(self, zone_id, entity_id, x, y):
        self._call("move", zone_id, entity_id, x, y)
        ent = self.zones[zone_id][entity_id]
        ent.x, ent.y = x, y
        return {"ok": True}

    def attack(self, zone_id, entity_id, target_id):
        self._call("attack", zone_id, entity_id, target_id)
        return {"ok": True}

    def travel(self, zone_id, entity_id, target_zone):
        self._call("travel", zone_id, entity_id, target_zone)
        ent = self.zones[zone_id].pop(entity_id)
        self.zones.setdefault(target_zone, {})[entity_id] = ent
        return {"ok": True}

    def available_quests(self, zone_id, entity_id):
        self._call("available_quests", zone_id, entity_id)
        return list(self.quests)

    def accept_quest(self, zone_id, entity_id, quest_id):
        self._call("accept_quest", zone_id, entity_id, quest_id)
        return {"ok": True}

    def learned_professions(self, wallet):
        self._call("learned_professions", wallet)
        return sorted(self.professions)

    def learn_profession(self, wallet, zone_id, entity_id, trainer_id, profession_id):
        self._call("learn_profession", wallet, zone_id, entity_id, trainer_id, profession_id)
        self.professions.add(profession_id)
        return {"ok": True}

    def gather(self, kind, wallet, zone_id, entity_id, node_id):
        self._call("gather", kind, wallet, zone_id, entity_id, node_id)
        return {"ok": True}

    def recipes(self, profession, zone_id, entity_id):
        self._call("recipes", profession, zone_id, entity_id)
        return list(self.recipe_book.get(profession, []))

    def craft(self, profession, wallet, zone_id, entity_id, station_id, recipe_id):
        self._call("craft", profession, wallet, zone_id, entity_id, station_id, recipe_id)
        if recipe_id not in self.craftable:
            raise WorldApiError("POST /crafting/forge -> 400: Insufficient materials", 400)
        return {"ok": True}

    def consume(self, kind, wallet, zone_id, entity_id, token_id):
        self._call("consume", kind, wallet, zone_id, entity_id, token_id)
        return {"ok": True}

    def equip(self, wallet, zone_id, entity_id, token_id):
        self._call("equip", wallet, zone_id, entity_id, token_id)
        return {"ok": True}

    def repair(self, wallet, zone_id, entity_id, npc_id, slots):
        self._call("repair", wallet, zone_id, entity_id, npc_id, list(slots))
        return {"ok": True}

    def shop_catalog(self, zone_id, merchant_id):
        self._call("shop_catalog", zone_id, merchant_id)
        return list(self.catalog)

    def buy(self, wallet, token_id, quantity=1):
        self._call("buy", wallet, token_id, quantity)
        return {"ok": True}

    def wallet_balance(self, wallet):
        self._call("wallet_balance", wallet)
        return self.balance.model_copy(deep=True)

    def enchant(self, wallet, zone_id, entity_id, altar_id, token_id, slot="weapon"):
        self._call("enchant", wallet, zone_id, entity_id, altar_id, token_id, slot)
        return {"ok": True}


@pytest.fixture
def world() -> FakeWorld:
    w = FakeWorld()
    w.add(HOME, ME, type="player", name="Hero", x=100, y=100, hp=100, max_hp=100, level=5)
    return w


@pytest.fixture
def store() -> AgentConfigStore:
    s = AgentConfigStore()
    s.set_config(OWNER, AgentConfig(enabled=True))
    s.set_custodial_wallet(OWNER, CUSTODIAL)
    s.set_entity_ref(OWNER, EntityRef(entity_id=ME, zone_id=HOME))
    return s


@pytest.fixture
def signer() -> InMemoryWalletSigner:
    return InMemoryWalletSigner({CUSTODIAL: CUSTODIAL_KEY})


@pytest.fixture
def ctx(world, store, signer) -> AgentContext:
    """Authenticated, located context for driving routines directly."""
    auth = AuthSession(OWNER, store, signer, world)
    locator = EntityLocator(OWNER, store, world)
    assert auth.ensure_authenticated()
    assert locator.ensure_entity_located()
    world.calls.clear()
    return AgentContext(OWNER, world, store, auth, locator)


@pytest.fixture
def make_runner(world, store, signer):
    """Factory for runners with a fast tick and near-zero backoff."""
    runners = []

    def _make(**kwargs) -> AgentRunner:
        kwargs.setdefault("tick_seconds", 0.01)
        kwargs.setdefault("backoff", BackoffPolicy(base_seconds=0.01, multiplier=2.0, max_seconds=0.05))
        r = AgentRunner(OWNER, store, signer, client=world, **kwargs)
        runners.append(r)
        return r

    yield _make
    for r in runners:
        r.stop()
        r.join(timeout=2.0)


def me_in(world: FakeWorld) -> Entity:
    return world.zones[HOME][ME]


def hold_call(world: FakeWorld, name: str):
    """
    Make world.<name> block until released. Returns (entered, release) events;
    once release is set later calls pass straight through.
    """
    entered, release = threading.Event(), threading.Event()

    def _hold():
        entered.set()
        release.wait(5.0)

    world.hooks[name] = _hold
    return entered, release
