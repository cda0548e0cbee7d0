"""Tests for chat directive parsing and application."""
from __future__ import annotations

from conftest import OWNER
from shard_agent.chat import apply_directive, compose_reply, parse_directive
from shard_agent.models import Focus, Strategy


def test_earliest_focus_keyword_wins():
    d = parse_directive("Quest for a while, then fight whatever is left")
    assert d.focus == Focus.QUESTING
    assert parse_directive("brew potions").focus == Focus.ALCHEMY
    assert parse_directive("go cook some food").focus == Focus.COOKING


def test_zone_name_means_travel():
    d = parse_directive("Let's go quest in Wild Meadow, carefully")
    assert d.focus == Focus.TRAVELING
    assert d.target_zone == "wild-meadow"
    assert d.strategy == Strategy.DEFENSIVE


def test_learn_picks_the_profession():
    assert parse_directive("learn how to do blacksmithing").learn == "blacksmithing"
    assert parse_directive("I like mining").learn is None


def test_learn_without_runner_still_switches_focus(store):
    d = parse_directive("learn alchemy")
    patch, learned = apply_directive(store, OWNER, d, runner=None)
    assert learned is None
    assert patch == {"focus": Focus.ALCHEMY}
    assert store.get_config(OWNER).focus == Focus.ALCHEMY
    assert "once I'm out in the world" in compose_reply(d, patch, learned)


def test_unknown_message_patches_nothing(store):
    before = store.get_config(OWNER)
    d = parse_directive("nice weather today")
    patch, learned = apply_directive(store, OWNER, d)
    assert patch == {} and learned is None
    assert store.get_config(OWNER).focus == before.focus
    assert compose_reply(d, patch, learned).startswith("I didn't catch")
