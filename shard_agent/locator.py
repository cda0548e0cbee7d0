"""
Resolves which world entity, in which zone, is this agent's avatar.

The world may move the avatar between zones without telling us, so the
stored ref is only a hint: confirm it against the zone, and fall back to a
full multi-zone scan when it has gone stale.
"""
from __future__ import annotations

import logging
from typing import Optional

from shard_agent import config
from shard_agent.models import Entity, EntityRef, ZoneState
from shard_agent.store import AgentConfigStore
from shard_agent.utils import short_wallet
from shard_agent.world_api import WorldApiError, WorldClient

_log = logging.getLogger(__name__)


class EntityLocator:
    def __init__(self, owner_wallet: str, store: AgentConfigStore, client: WorldClient):
        self.owner_wallet = owner_wallet.lower()
        self.store = store
        self.client = client
        self.entity_id: Optional[str] = None
        self.zone_id: str = config.DEFAULT_ZONE

    @property
    def ref(self) -> Optional[EntityRef]:
        if not self.entity_id:
            return None
        return EntityRef(entity_id=self.entity_id, zone_id=self.zone_id)

    def _read_zone(self, zone_id: str) -> Optional[ZoneState]:
        try:
            return self.client.get_zone(zone_id)
        except WorldApiError as e:
            _log.debug("[agent:%s] zone read %s failed: %s", short_wallet(self.owner_wallet), zone_id, e)
            return None

    def ensure_entity_located(self) -> bool:
        ref = self.store.get_entity_ref(self.owner_wallet)
        if not ref:
            return False
        self.entity_id = ref.entity_id
        self.zone_id = ref.zone_id

        zone = self._read_zone(self.zone_id)
        if zone is not None and self.entity_id in zone.entities:
            return True

        try:
            world = self.client.get_world_state()
        except WorldApiError as e:
            _log.warning("[agent:%s] world scan failed: %s", short_wallet(self.owner_wallet), e)
            return False

        for zone_id, zone_state in world.zones.items():
            if self.entity_id in zone_state.entities:
                previous = self.zone_id
                self.zone_id = zone_id
                self.store.set_entity_ref(self.owner_wallet, EntityRef(entity_id=self.entity_id, zone_id=zone_id))
                if zone_id != previous:
                    _log.info("[agent:%s] entity %s moved %s -> %s",
                              short_wallet(self.owner_wallet), self.entity_id, previous, zone_id)
                    self.store.append_activity(self.owner_wallet, "activity", f"Arrived in {zone_id} (from {previous})")
                return True
        return False

    def read_zone(self) -> Optional[ZoneState]:
        """Current zone snapshot, or None if unreadable."""
        return self._read_zone(self.zone_id)

    def read_entity(self) -> Optional[Entity]:
        if not self.entity_id:
            return None
        zone = self._read_zone(self.zone_id)
        if zone is None:
            return None
        return zone.entities.get(self.entity_id)
