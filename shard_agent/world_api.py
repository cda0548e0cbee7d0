"""
World API client: thin HTTP wrappers around the remote world shard.

Every call the agent loop makes against the world lives here. Each method
performs exactly one request (no retries) and returns a validated model;
non-2xx responses and transport failures raise WorldApiError.
"""
from __future__ import annotations

import logging
from typing import Any, List, Optional

import requests
from pydantic import ValidationError

from shard_agent import config
from shard_agent.models import (
    Neighbor, Quest, Recipe, ShopItem, WalletBalance, WorldState, ZoneState,
)

_log = logging.getLogger(__name__)


class WorldApiError(Exception):
    """A single world call failed (transport error, non-2xx, or malformed payload)."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class WorldClient:
    def __init__(self, base_url: str = config.WORLD_API_BASE, timeout: float = config.HTTP_TIMEOUT_SECONDS,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers["Content-Type"] = "application/json"

    def set_token(self, token: Optional[str]) -> None:
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"
        else:
            self._session.headers.pop("Authorization", None)

    def request(self, method: str, path: str, body: Optional[dict] = None, params: Optional[dict] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            r = self._session.request(method, url, json=body, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise WorldApiError(f"{method} {path} failed: {e}") from e
        if r.status_code >= 400:
            text = (r.text or "")[:200]
            raise WorldApiError(f"{method} {path} -> {r.status_code}: {text}", r.status_code, text)
        try:
            return r.json()
        except ValueError as e:
            raise WorldApiError(f"{method} {path} returned non-JSON body") from e

    def _get(self, path: str, params: Optional[dict] = None) -> dict:
        data = self.request("GET", path, params=params)
        return data if isinstance(data, dict) else {}

    def _post(self, path: str, body: dict) -> dict:
        data = self.request("POST", path, body)
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _parse(model, data):
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise WorldApiError(f"malformed {model.__name__} payload: {e.error_count()} error(s)") from e

    def _parse_list(self, model, rows) -> list:
        out = []
        for row in rows or []:
            try:
                out.append(model.model_validate(row))
            except ValidationError:
                _log.debug("Skipping malformed %s row", model.__name__, exc_info=True)
        return out

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def auth_challenge(self, wallet: str) -> dict:
        return self._get("/auth/challenge", params={"wallet": wallet})

    def auth_verify(self, wallet: str, signature: str, timestamp: Any) -> dict:
        return self._post("/auth/verify", {
            "walletAddress": wallet,
            "signature": signature,
            "timestamp": timestamp,
        })

    # ------------------------------------------------------------------
    # Zone / world reads
    # ------------------------------------------------------------------

    def get_zone(self, zone_id: str) -> ZoneState:
        return self._parse(ZoneState, self._get(f"/zones/{zone_id}"))

    def get_world_state(self) -> WorldState:
        return self._parse(WorldState, self._get("/state"))

    def get_neighbors(self, zone_id: str) -> List[Neighbor]:
        return self._parse_list(Neighbor, self._get(f"/neighbors/{zone_id}").get("neighbors"))

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def move(self, zone_id: str, entity_id: str, x: float, y: float) -> dict:
        return self._post("/command", {
            "zoneId": zone_id, "entityId": entity_id, "action": "move", "x": x, "y": y,
        })

    def attack(self, zone_id: str, entity_id: str, target_id: str) -> dict:
        return self._post("/command", {
            "zoneId": zone_id, "entityId": entity_id, "action": "attack", "targetId": target_id,
        })

    def travel(self, zone_id: str, entity_id: str, target_zone: str) -> dict:
        return self._post("/command", {
            "zoneId": zone_id, "entityId": entity_id, "action": "travel", "targetZone": target_zone,
        })

    # ------------------------------------------------------------------
    # Quests
    # ------------------------------------------------------------------

    def available_quests(self, zone_id: str, entity_id: str) -> List[Quest]:
        return self._parse_list(Quest, self._get(f"/quests/available/{zone_id}/{entity_id}").get("quests"))

    def accept_quest(self, zone_id: str, entity_id: str, quest_id: str) -> dict:
        return self._post("/quests/accept", {"zoneId": zone_id, "playerId": entity_id, "questId": quest_id})

    # ------------------------------------------------------------------
    # Professions / gathering
    # ------------------------------------------------------------------

    def learned_professions(self, wallet: str) -> List[str]:
        rows = self._get(f"/professions/{wallet}").get("professions") or []
        return [str(p) for p in rows if p]

    def learn_profession(self, wallet: str, zone_id: str, entity_id: str, trainer_id: str, profession_id: str) -> dict:
        return self._post("/professions/learn", {
            "walletAddress": wallet, "zoneId": zone_id, "entityId": entity_id,
            "trainerId": trainer_id, "professionId": profession_id,
        })

    def gather(self, kind: str, wallet: str, zone_id: str, entity_id: str, node_id: str) -> dict:
        path = "/mining/gather" if kind == "mining" else "/herbalism/gather"
        return self._post(path, {
            "walletAddress": wallet, "zoneId": zone_id, "entityId": entity_id, "nodeId": node_id,
        })

    # ------------------------------------------------------------------
    # Crafting stations (forge / alchemy lab / campfire)
    # ------------------------------------------------------------------

    def recipes(self, profession: str, zone_id: str, entity_id: str) -> List[Recipe]:
        path = {
            "blacksmithing": f"/crafting/recipes/{zone_id}/{entity_id}",
            "alchemy": "/alchemy/recipes",
            "cooking": "/cooking/recipes",
        }[profession]
        return self._parse_list(Recipe, self._get(path).get("recipes"))

    def craft(self, profession: str, wallet: str, zone_id: str, entity_id: str, station_id: str, recipe_id: str) -> dict:
        path = {
            "blacksmithing": "/crafting/forge",
            "alchemy": "/alchemy/brew",
            "cooking": "/cooking/cook",
        }[profession]
        return self._post(path, {
            "walletAddress": wallet, "zoneId": zone_id, "entityId": entity_id,
            "stationId": station_id, "recipeId": recipe_id,
        })

    def consume(self, kind: str, wallet: str, zone_id: str, entity_id: str, token_id: int) -> dict:
        path = "/cooking/consume" if kind == "food" else "/alchemy/consume"
        return self._post(path, {
            "walletAddress": wallet, "zoneId": zone_id, "entityId": entity_id, "tokenId": token_id,
        })

    # ------------------------------------------------------------------
    # Equipment / shop / wallet
    # ------------------------------------------------------------------

    def equip(self, wallet: str, zone_id: str, entity_id: str, token_id: int) -> dict:
        return self._post("/equipment/equip", {
            "walletAddress": wallet, "zoneId": zone_id, "entityId": entity_id, "tokenId": token_id,
        })

    def repair(self, wallet: str, zone_id: str, entity_id: str, npc_id: str, slots: List[str]) -> dict:
        return self._post("/equipment/repair", {
            "walletAddress": wallet, "zoneId": zone_id, "entityId": entity_id,
            "npcId": npc_id, "slots": list(slots),
        })

    def shop_catalog(self, zone_id: str, merchant_id: str) -> List[ShopItem]:
        return self._parse_list(ShopItem, self._get(f"/shop/npc/{zone_id}/{merchant_id}").get("items"))

    def buy(self, wallet: str, token_id: int, quantity: int = 1) -> dict:
        return self._post("/shop/buy", {"buyerAddress": wallet, "tokenId": token_id, "quantity": quantity})

    def wallet_balance(self, wallet: str) -> WalletBalance:
        return self._parse(WalletBalance, self._get(f"/wallet/{wallet}/balance"))

    def enchant(self, wallet: str, zone_id: str, entity_id: str, altar_id: str, token_id: int, slot: str = "weapon") -> dict:
        return self._post("/enchanting/apply", {
            "walletAddress": wallet, "zoneId": zone_id, "entityId": entity_id,
            "altarId": altar_id, "enchantmentTokenId": token_id, "slot": slot,
        })
