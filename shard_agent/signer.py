"""
Custodial wallet signing material.

Keys are handed to the signer (from a keys file or by the deploy flow); the
signer never generates keys. Signing uses eth-account's personal-message
(EIP-191) scheme, which is what the world's /auth/verify expects.
"""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Dict, Optional

from eth_account import Account
from eth_account.messages import encode_defunct

_log = logging.getLogger(__name__)


class SignerError(Exception):
    pass


class WalletSigner:
    """Interface: export the private key for a custodial wallet address."""

    def export_private_key(self, address: str) -> str:
        raise NotImplementedError


class InMemoryWalletSigner(WalletSigner):
    def __init__(self, keys: Optional[Dict[str, str]] = None):
        self._lock = threading.Lock()
        self._keys: Dict[str, str] = {}
        for addr, key in (keys or {}).items():
            self.register(addr, key)

    @classmethod
    def from_file(cls, path: str) -> "InMemoryWalletSigner":
        """Load a JSON object of {custodial_address: private_key}. Missing file -> empty signer."""
        p = Path(path)
        if not path or not p.exists():
            return cls()
        try:
            data = json.loads(p.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError):
            _log.warning("Failed to read custodial keys from %s", path, exc_info=True)
            return cls()
        if not isinstance(data, dict):
            return cls()
        return cls({str(k): str(v) for k, v in data.items()})

    def register(self, address: str, private_key: str) -> None:
        with self._lock:
            self._keys[address.lower()] = private_key

    def export_private_key(self, address: str) -> str:
        with self._lock:
            key = self._keys.get((address or "").lower())
        if not key:
            raise SignerError(f"no signing material for {address}")
        return key


def address_of(private_key: str) -> str:
    return Account.from_key(private_key).address


def sign_message(private_key: str, message: str) -> str:
    signed = Account.sign_message(encode_defunct(text=message), private_key)
    sig_hex = signed.signature.hex()
    if not sig_hex.startswith("0x"):
        sig_hex = "0x" + sig_hex
    return sig_hex
