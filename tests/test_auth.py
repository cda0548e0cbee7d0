"""Tests for session auth and entity location."""
from __future__ import annotations

from eth_account import Account
from eth_account.messages import encode_defunct

from conftest import CUSTODIAL, HOME, ME, OWNER
from shard_agent.auth import AuthSession
from shard_agent.locator import EntityLocator
from shard_agent.models import EntityRef
from shard_agent.signer import InMemoryWalletSigner

NOW = 1_700_000_000.0


def _session(world, store, signer):
    return AuthSession(OWNER, store, signer, world, clock=lambda: NOW)


def test_authenticates_and_caches_token(world, store, signer):
    auth = _session(world, store, signer)
    assert auth.ensure_authenticated() is True
    assert world.token == "tok-1"
    assert auth.identity.custodial_wallet == CUSTODIAL
    assert auth.identity.token_expiry == NOW + 23 * 3600

    # Second call reuses the cached token, no network.
    world.calls.clear()
    assert auth.ensure_authenticated() is True
    assert world.calls == []


def test_signature_recovers_to_custodial_wallet(world, store, signer):
    auth = _session(world, store, signer)
    auth.ensure_authenticated()
    _, wallet, signature, _ = world.called("auth_verify")[0]
    message = f"Sign this message to authenticate: {wallet}"
    recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
    assert recovered.lower() == CUSTODIAL
    assert signature.startswith("0x")


def test_token_near_expiry_is_refreshed(world, store, signer):
    auth = _session(world, store, signer)
    auth.ensure_authenticated()
    auth.identity.token_expiry = NOW + 30 * 60
    world.calls.clear()

    assert auth.ensure_authenticated() is True
    assert len(world.called("auth_challenge")) == 1
    assert auth.token == "tok-2"


def test_missing_custodial_wallet_returns_false(world, store, signer):
    store._wallets.clear()
    auth = _session(world, store, signer)
    assert auth.ensure_authenticated() is False
    assert world.calls == []


def test_missing_signing_material_returns_false(world, store):
    auth = _session(world, store, InMemoryWalletSigner())
    assert auth.ensure_authenticated() is False
    assert world.calls == []


def test_rejected_signature_returns_false(world, store, signer):
    world.auth_ok = False
    auth = _session(world, store, signer)
    assert auth.ensure_authenticated() is False
    assert auth.token is None


def test_locator_confirms_cached_zone(world, store):
    loc = EntityLocator(OWNER, store, world)
    assert loc.ensure_entity_located() is True
    assert world.called("get_world_state") == []
    assert loc.ref == EntityRef(entity_id=ME, zone_id=HOME)


def test_locator_rescans_after_zone_move(world, store):
    ent = world.zones[HOME].pop(ME)
    world.zones["wild-meadow"] = {ME: ent}
    loc = EntityLocator(OWNER, store, world)

    assert loc.ensure_entity_located() is True
    assert loc.zone_id == "wild-meadow"
    assert store.get_entity_ref(OWNER).zone_id == "wild-meadow"
    history = store.get_config(OWNER).chat_history
    assert history[-1].role == "activity"
    assert "Arrived in wild-meadow" in history[-1].text


def test_locator_gives_up_when_entity_is_gone(world, store):
    del world.zones[HOME][ME]
    loc = EntityLocator(OWNER, store, world)
    assert loc.ensure_entity_located() is False


def test_locator_without_ref(world, store):
    store._entities.clear()
    assert EntityLocator(OWNER, store, world).ensure_entity_located() is False
