"""
All data models: enums, pydantic models for stored config and world payloads,
and the loop-private runner state dataclass.

World payloads are validated at the client boundary. Every field has a default
so a missing key reads as "absent" instead of raising.
"""
from __future__ import annotations

import math
import time
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class Focus(str, Enum):
    QUESTING = "questing"
    COMBAT = "combat"
    GATHERING = "gathering"
    CRAFTING = "crafting"
    ALCHEMY = "alchemy"
    COOKING = "cooking"
    ENCHANTING = "enchanting"
    TRADING = "trading"
    SHOPPING = "shopping"
    TRAVELING = "traveling"
    IDLE = "idle"


class Strategy(str, Enum):
    AGGRESSIVE = "aggressive"
    BALANCED = "balanced"
    DEFENSIVE = "defensive"


LogRole = Literal["user", "agent", "activity", "system"]


# --- Agent config store shapes ---

class ActivityLogEntry(BaseModel):
    role: LogRole
    text: str
    ts: float = Field(default_factory=time.time)


class AgentConfig(BaseModel):
    enabled: bool = False
    focus: Focus = Focus.QUESTING
    strategy: Strategy = Strategy.BALANCED
    target_zone: Optional[str] = None
    last_updated: float = Field(default_factory=time.time)
    chat_history: List[ActivityLogEntry] = Field(default_factory=list)


class EntityRef(BaseModel):
    entity_id: str
    zone_id: str


class AgentIdentity(BaseModel):
    owner_wallet: str
    custodial_wallet: Optional[str] = None
    token: Optional[str] = None
    token_expiry: float = 0.0


# --- World payloads ---

class _WorldModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class EquippedItem(_WorldModel):
    token_id: Optional[int] = Field(None, alias="tokenId")
    name: str = ""
    durability: Optional[float] = None
    max_durability: Optional[float] = Field(None, alias="maxDurability")
    broken: bool = False

    def durability_pct(self) -> Optional[float]:
        if self.durability is None or not self.max_durability:
            return None
        return self.durability / self.max_durability


class Entity(_WorldModel):
    id: str = ""
    type: str = ""
    name: str = ""
    x: float = 0.0
    y: float = 0.0
    hp: Optional[float] = None
    max_hp: Optional[float] = Field(None, alias="maxHp")
    level: int = 1
    wallet_address: Optional[str] = Field(None, alias="walletAddress")
    teaches_profession: Optional[str] = Field(None, alias="teachesProfession")
    equipment: Dict[str, Optional[EquippedItem]] = Field(default_factory=dict)

    @field_validator("level", mode="before")
    @classmethod
    def _level_default(cls, v):
        return 1 if v is None else v

    def hp_pct(self) -> float:
        if self.hp is None:
            return 1.0
        return float(self.hp) / float(self.max_hp or 1)

    def is_alive(self) -> bool:
        return self.hp is not None and self.hp > 0

    def distance_to(self, other: "Entity") -> float:
        return math.hypot(other.x - self.x, other.y - self.y)

    def equipped(self, slot: str) -> Optional[EquippedItem]:
        return self.equipment.get(slot)


class ZoneState(_WorldModel):
    zone_id: str = Field("", alias="zoneId")
    tick: Optional[int] = None
    entities: Dict[str, Entity] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _fill_entity_ids(self) -> "ZoneState":
        for eid, ent in self.entities.items():
            if not ent.id:
                ent.id = eid
        return self

    def of_type(self, *types: str) -> List[Entity]:
        return [e for e in self.entities.values() if e.type in types]


class WorldState(_WorldModel):
    zones: Dict[str, ZoneState] = Field(default_factory=dict)


class Neighbor(_WorldModel):
    zone: str
    level_req: int = Field(1, alias="levelReq")


class Quest(_WorldModel):
    id: str
    title: str = ""


class Recipe(_WorldModel):
    id: str = Field(alias="recipeId")
    name: str = ""
    can_craft: Optional[bool] = Field(None, alias="canCraft")

    @model_validator(mode="before")
    @classmethod
    def _accept_plain_id(cls, data):
        if isinstance(data, dict) and "recipeId" not in data and "id" in data:
            data = {**data, "recipeId": data["id"]}
        return data


class ShopItem(_WorldModel):
    token_id: int = Field(alias="tokenId")
    name: str = ""
    category: str = ""
    gold_price: float = Field(0.0, alias="goldPrice")
    equip_slot: Optional[str] = Field(None, alias="equipSlot")
    armor_slot: Optional[str] = Field(None, alias="armorSlot")

    @property
    def slot(self) -> Optional[str]:
        return self.armor_slot or self.equip_slot


class InventoryItem(_WorldModel):
    token_id: int = Field(alias="tokenId")
    name: str = ""
    category: str = ""
    balance: int = 0


class WalletBalance(_WorldModel):
    address: str = ""
    gold: float = 0.0
    items: List[InventoryItem] = Field(default_factory=list)

    def of_category(self, *categories: str) -> List[InventoryItem]:
        return [it for it in self.items if it.category in categories and it.balance > 0]


# --- Loop-private state ---

@dataclass
class RunnerState:
    running: bool = False
    first_tick_done: bool = False
    tick_count: int = 0
    ticks_since_focus_change: int = 0
    last_focus: Optional[Focus] = None
    fallback_count: int = 0
    repair_stalled: bool = False


# --- HTTP control surface requests ---

class DeployRequest(BaseModel):
    wallet_address: str
    custodial_wallet: Optional[str] = None
    entity_id: Optional[str] = None
    zone_id: Optional[str] = None
    focus: Optional[Focus] = None
    strategy: Optional[Strategy] = None


class StopRequest(BaseModel):
    wallet_address: str


class ConfigPatchRequest(BaseModel):
    wallet_address: str
    focus: Optional[Focus] = None
    strategy: Optional[Strategy] = None
    target_zone: Optional[str] = None
    message: str = ""


AgentActionKind = Literal["buy", "equip", "repair", "learn_profession"]


class AgentActionRequest(BaseModel):
    wallet_address: str
    action: AgentActionKind
    token_id: Optional[int] = None
    profession_id: Optional[str] = None


class ChatRequest(BaseModel):
    wallet_address: str
    message: str = ""
