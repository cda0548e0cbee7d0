"""
Session authentication for one agent's custodial wallet.
"""
from __future__ import annotations

import logging
import time
from typing import Callable

from shard_agent import config
from shard_agent.models import AgentIdentity
from shard_agent.signer import SignerError, WalletSigner, address_of, sign_message
from shard_agent.store import AgentConfigStore
from shard_agent.utils import short_wallet
from shard_agent.world_api import WorldApiError, WorldClient

_log = logging.getLogger(__name__)


class AuthSession:
    """
    Obtains and caches a bearer token for the agent's custodial wallet.

    ensure_authenticated() never raises: the scheduler decides whether a
    False is fatal (first tick) or worth a retry (later ticks).
    """

    def __init__(self, owner_wallet: str, store: AgentConfigStore, signer: WalletSigner,
                 client: WorldClient, clock: Callable[[], float] = time.time):
        self.identity = AgentIdentity(owner_wallet=owner_wallet.lower())
        self.store = store
        self.signer = signer
        self.client = client
        self.clock = clock

    @property
    def token(self):
        return self.identity.token

    def token_fresh(self) -> bool:
        ident = self.identity
        return bool(ident.token) and self.clock() < ident.token_expiry - config.TOKEN_REFRESH_MARGIN_SECONDS

    def ensure_authenticated(self) -> bool:
        custodial = self.store.get_custodial_wallet(self.identity.owner_wallet)
        if not custodial:
            _log.warning("[agent:%s] No custodial wallet registered", short_wallet(self.identity.owner_wallet))
            return False
        if custodial != self.identity.custodial_wallet:
            # Re-registered wallet; the cached token belongs to the old one.
            self.identity.token = None
            self.identity.custodial_wallet = custodial

        if self.token_fresh():
            return True

        try:
            private_key = self.signer.export_private_key(custodial)
            token = self._handshake(private_key)
        except (SignerError, WorldApiError, ValueError) as e:
            _log.warning("[agent:%s] Auth failed: %s", short_wallet(self.identity.owner_wallet), str(e)[:80])
            return False

        self.identity.token = token
        self.identity.token_expiry = self.clock() + config.TOKEN_TTL_SECONDS
        self.client.set_token(token)
        _log.info("[agent:%s] Authenticated as %s", short_wallet(self.identity.owner_wallet), custodial)
        return True

    def _handshake(self, private_key: str) -> str:
        wallet = address_of(private_key)
        challenge = self.client.auth_challenge(wallet)
        message = challenge.get("message")
        if not message:
            raise WorldApiError("Failed to get authentication challenge")
        signature = sign_message(private_key, message)
        result = self.client.auth_verify(wallet, signature, challenge.get("timestamp"))
        if not result.get("success") or not result.get("token"):
            raise WorldApiError(f"Authentication failed: {result.get('error') or 'unknown error'}")
        return str(result["token"])
