"""
Agent config store: per-owner-wallet config, custodial wallet mapping, cached
entity ref, and the activity log sink.

Keys are lowercased owner wallets. The in-memory store is the default; the
JSON-file store persists everything to DATA_DIR so agents survive restarts.
"""
from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

from shard_agent import config
from shard_agent.models import ActivityLogEntry, AgentConfig, EntityRef, LogRole
from shard_agent.utils import append_jsonl, read_jsonl, write_json_atomic

_log = logging.getLogger(__name__)


def _key(wallet: str) -> str:
    return (wallet or "").strip().lower()


class AgentConfigStore:
    def __init__(self, max_history: int = config.MAX_CHAT_HISTORY):
        self.max_history = max_history
        self._lock = threading.Lock()
        self._configs: Dict[str, AgentConfig] = {}
        self._wallets: Dict[str, str] = {}
        self._entities: Dict[str, EntityRef] = {}

    def _changed(self) -> None:
        """Hook for persistent subclasses; called with the lock held."""

    # --- Config ---

    def get_config(self, wallet: str) -> Optional[AgentConfig]:
        with self._lock:
            cfg = self._configs.get(_key(wallet))
            return cfg.model_copy(deep=True) if cfg else None

    def set_config(self, wallet: str, cfg: AgentConfig) -> None:
        with self._lock:
            self._configs[_key(wallet)] = cfg.model_copy(deep=True)
            self._changed()

    def patch_config(self, wallet: str, **patch) -> AgentConfig:
        """Merge the given fields into the stored config (creating a default one if absent)."""
        patch.pop("chat_history", None)
        with self._lock:
            existing = self._configs.get(_key(wallet)) or AgentConfig()
            self._configs[_key(wallet)] = AgentConfig.model_validate(
                {**existing.model_dump(), **patch, "last_updated": time.time()}
            )
            self._changed()
            return self._configs[_key(wallet)].model_copy(deep=True)

    def append_activity(self, wallet: str, role: LogRole, text: str) -> ActivityLogEntry:
        entry = ActivityLogEntry(role=role, text=text)
        with self._lock:
            cfg = self._configs.get(_key(wallet)) or AgentConfig()
            cfg.chat_history = (cfg.chat_history + [entry])[-self.max_history:]
            cfg.last_updated = time.time()
            self._configs[_key(wallet)] = cfg
            self._record_activity(_key(wallet), entry)
            self._changed()
        return entry

    def _record_activity(self, key: str, entry: ActivityLogEntry) -> None:
        """Hook for an append-only activity sink; called with the lock held."""

    def read_activity(self, wallet: str, limit: int = 50) -> List[ActivityLogEntry]:
        """Most recent activity entries for this wallet, oldest first."""
        with self._lock:
            cfg = self._configs.get(_key(wallet))
            entries = list(cfg.chat_history) if cfg else []
        return [e.model_copy() for e in entries[-limit:]] if limit > 0 else []

    def list_enabled(self) -> List[str]:
        with self._lock:
            return [k for k, cfg in self._configs.items() if cfg.enabled]

    # --- Custodial wallet mapping ---

    def get_custodial_wallet(self, wallet: str) -> Optional[str]:
        with self._lock:
            return self._wallets.get(_key(wallet))

    def set_custodial_wallet(self, wallet: str, custodial_address: str) -> None:
        with self._lock:
            self._wallets[_key(wallet)] = custodial_address.lower()
            self._changed()

    # --- Entity ref ---

    def get_entity_ref(self, wallet: str) -> Optional[EntityRef]:
        with self._lock:
            ref = self._entities.get(_key(wallet))
            return ref.model_copy() if ref else None

    def set_entity_ref(self, wallet: str, ref: EntityRef) -> None:
        with self._lock:
            self._entities[_key(wallet)] = ref.model_copy()
            self._changed()


class JsonFileAgentConfigStore(AgentConfigStore):
    """Store that mirrors its state into a JSON file and appends activity to a JSONL log."""

    def __init__(self, path: Path = config.AGENTS_PATH, activity_path: Optional[Path] = None,
                 max_history: int = config.MAX_CHAT_HISTORY):
        super().__init__(max_history=max_history)
        self.path = Path(path)
        self.activity_path = activity_path or self.path.with_name("activity_log.jsonl")
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8", errors="replace") or "{}")
        except (OSError, ValueError):
            _log.warning("Failed to load agent configs from %s", self.path, exc_info=True)
            return
        for k, raw in (data.get("configs") or {}).items():
            try:
                self._configs[k] = AgentConfig.model_validate(raw)
            except ValidationError:
                _log.warning("Skipping bad agent config %s", k, exc_info=True)
        for k, addr in (data.get("wallets") or {}).items():
            if addr:
                self._wallets[k] = str(addr).lower()
        for k, raw in (data.get("entities") or {}).items():
            try:
                self._entities[k] = EntityRef.model_validate(raw)
            except ValidationError:
                _log.warning("Skipping bad entity ref %s", k, exc_info=True)

    def _changed(self) -> None:
        data = {
            "configs": {k: cfg.model_dump(mode="json") for k, cfg in self._configs.items()},
            "wallets": dict(self._wallets),
            "entities": {k: ref.model_dump() for k, ref in self._entities.items()},
        }
        try:
            write_json_atomic(self.path, data)
        except OSError:
            _log.warning("Failed to save agent configs to %s", self.path, exc_info=True)

    def _record_activity(self, key: str, entry: ActivityLogEntry) -> None:
        try:
            append_jsonl(self.activity_path, {"wallet": key, **entry.model_dump()})
        except OSError:
            _log.warning("Failed to append activity for %s", key, exc_info=True)

    def read_activity(self, wallet: str, limit: int = 50) -> List[ActivityLogEntry]:
        """Reads the full JSONL log, so history beyond the in-config cap is kept."""
        key = _key(wallet)
        out: List[ActivityLogEntry] = []
        for row in read_jsonl(self.activity_path):
            if row.get("wallet") != key:
                continue
            try:
                out.append(ActivityLogEntry.model_validate(row))
            except ValidationError:
                continue
        return out[-limit:] if limit > 0 else []
