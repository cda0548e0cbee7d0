"""
Run one agent in the foreground against the world API.

    python -m shard_agent --wallet 0xOwner --custodial 0xCustodial --entity e-123
"""
from __future__ import annotations

import argparse
import logging
import sys

from shard_agent import config
from shard_agent.models import EntityRef, Focus, Strategy
from shard_agent.runner import AgentRunner, FirstTickError
from shard_agent.signer import InMemoryWalletSigner
from shard_agent.store import JsonFileAgentConfigStore
from shard_agent.world_api import WorldClient


def main(argv=None) -> int:
    ap = argparse.ArgumentParser(description="Run one autonomous shard agent in the foreground.")
    ap.add_argument("--wallet", required=True, help="Owner wallet address (config key)")
    ap.add_argument("--custodial", default="", help="Custodial wallet address to sign in with (default: stored mapping)")
    ap.add_argument("--entity", default="", help="Entity id of the agent's avatar (default: stored ref)")
    ap.add_argument("--zone", default=config.DEFAULT_ZONE, help=f"Zone the entity was last seen in (default: {config.DEFAULT_ZONE})")
    ap.add_argument("--focus", choices=[f.value for f in Focus], default=None, help="Override the stored focus")
    ap.add_argument("--strategy", choices=[s.value for s in Strategy], default=None, help="Override the stored strategy")
    ap.add_argument("--keys", default=config.CUSTODIAL_KEYS_PATH, help="JSON file of {custodial_address: private_key}")
    ap.add_argument("--world", default=config.WORLD_API_BASE, help=f"World API base URL (default: {config.WORLD_API_BASE})")
    ap.add_argument("--tick", type=float, default=config.TICK_SECONDS, help="Seconds between ticks")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config.validate_config()

    store = JsonFileAgentConfigStore()
    wallet = args.wallet.lower()
    if args.custodial:
        store.set_custodial_wallet(wallet, args.custodial)
    if args.entity:
        store.set_entity_ref(wallet, EntityRef(entity_id=args.entity, zone_id=args.zone))
    patch = {"enabled": True}
    if args.focus:
        patch["focus"] = Focus(args.focus)
    if args.strategy:
        patch["strategy"] = Strategy(args.strategy)
    store.patch_config(wallet, **patch)

    runner = AgentRunner(
        wallet, store, InMemoryWalletSigner.from_file(args.keys),
        client=WorldClient(base_url=args.world), tick_seconds=args.tick,
    )
    try:
        runner.start(wait_for_first_tick=True)
    except FirstTickError as e:
        logging.getLogger(__name__).error("Agent failed to start: %s", e)
        return 1
    try:
        while runner.running:
            runner.join(timeout=1.0)
    except KeyboardInterrupt:
        runner.stop()
        runner.join(timeout=5.0)
    return 0


if __name__ == "__main__":
    sys.exit(main())
