"""
Player chat: turn a free-text directive into config changes and a short reply.

Directives are matched with keyword rules. The earliest focus keyword in the
message wins and a known zone name means "travel there". "learn <profession>"
asks the live runner to train it and switches focus to the matching activity.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from shard_agent import strategy as rules
from shard_agent.models import Focus, Strategy
from shard_agent.runner import AgentRunner
from shard_agent.store import AgentConfigStore
from shard_agent.utils import short_wallet

_log = logging.getLogger(__name__)

PROFESSIONS = (
    "mining", "herbalism", "skinning", "blacksmithing",
    "alchemy", "cooking", "leatherworking", "jewelcrafting",
)

PROFESSION_FOCUS: Dict[str, Focus] = {
    "alchemy": Focus.ALCHEMY,
    "cooking": Focus.COOKING,
    "blacksmithing": Focus.CRAFTING,
    "mining": Focus.GATHERING,
    "herbalism": Focus.GATHERING,
    "skinning": Focus.GATHERING,
}

_FOCUS_PATTERNS = [
    (Focus.QUESTING, re.compile(r"\bquest")),
    (Focus.COMBAT, re.compile(r"\b(fight|combat|kill|hunt|grind|attack)")),
    (Focus.GATHERING, re.compile(r"\b(gather|harvest|mining|herbs?\b)")),
    (Focus.CRAFTING, re.compile(r"\b(craft|smith|forge)")),
    (Focus.ALCHEMY, re.compile(r"\b(brew|potions?\b|alchemy)")),
    (Focus.COOKING, re.compile(r"\b(cook|food\b)")),
    (Focus.ENCHANTING, re.compile(r"\benchant")),
    (Focus.SHOPPING, re.compile(r"\b(shop|gear up|buy (some )?gear)")),
    (Focus.TRADING, re.compile(r"\b(trade|trading|sell)")),
    (Focus.IDLE, re.compile(r"\b(idle|rest|pause|stand by|wait)\b")),
]

_STRATEGY_PATTERNS = [
    (Strategy.AGGRESSIVE, re.compile(r"\baggressive")),
    (Strategy.DEFENSIVE, re.compile(r"\b(defensive|careful|cautious|play it safe)")),
    (Strategy.BALANCED, re.compile(r"\bbalanced")),
]

_LEARN = re.compile(r"\blearn\b(?:\s+\w+){0,3}?\s+(" + "|".join(PROFESSIONS) + r")\b")


@dataclass
class Directive:
    focus: Optional[Focus] = None
    strategy: Optional[Strategy] = None
    target_zone: Optional[str] = None
    learn: Optional[str] = None


def parse_directive(message: str) -> Directive:
    text = " ".join((message or "").lower().split())
    d = Directive()

    m = _LEARN.search(text)
    if m:
        d.learn = m.group(1)

    first = None
    for focus, pat in _FOCUS_PATTERNS:
        hit = pat.search(text)
        if hit and (first is None or hit.start() < first[0]):
            first = (hit.start(), focus)
    if first:
        d.focus = first[1]

    dashed = text.replace(" ", "-")
    zone = next((z for z in rules.ZONE_ORDER if z in dashed), None)
    if zone:
        d.focus = Focus.TRAVELING
        d.target_zone = zone

    for strategy, pat in _STRATEGY_PATTERNS:
        if pat.search(text):
            d.strategy = strategy
            break
    return d


def apply_directive(store: AgentConfigStore, wallet: str, d: Directive,
                    runner: Optional[AgentRunner] = None) -> Tuple[Dict[str, Any], Optional[bool]]:
    """
    Patch the stored config and run any requested training.

    Returns the applied patch and the learn outcome (None when nothing was
    learned or the agent is not running).
    """
    patch: Dict[str, Any] = {}
    if d.focus is not None:
        patch["focus"] = d.focus
    if d.strategy is not None:
        patch["strategy"] = d.strategy
    if d.target_zone:
        patch["target_zone"] = d.target_zone

    learned = None
    if d.learn:
        if runner is not None and runner.running:
            learned = runner.learn_profession(d.learn)
            _log.info("[agent:%s] chat learn_profession(%s) -> %s", short_wallet(wallet), d.learn, learned)
        mapped = PROFESSION_FOCUS.get(d.learn)
        if mapped is not None and not d.target_zone:
            patch["focus"] = mapped

    if patch:
        store.patch_config(wallet, **patch)
    return patch, learned


def compose_reply(d: Directive, patch: Dict[str, Any], learned: Optional[bool]) -> str:
    parts = []
    if d.learn:
        if learned:
            parts.append(f"learned {d.learn}")
        elif learned is False:
            parts.append(f"couldn't learn {d.learn} right now")
        else:
            parts.append(f"I'll pick up {d.learn} once I'm out in the world")
    if patch.get("target_zone"):
        parts.append(f"heading for {patch['target_zone']}")
    elif "focus" in patch:
        parts.append(f"focusing on {patch['focus'].value}")
    if "strategy" in patch:
        parts.append(f"playing {patch['strategy'].value}")

    if not parts:
        return "I didn't catch an order in that. Tell me what to focus on, where to go, or what to learn."
    text = "; ".join(parts)
    return text[0].upper() + text[1:] + "."
