"""Evaluates parsed predicates against a player's state."""
from __future__ import annotations

import logging

from arcana.domain import progress_keys as keys
from arcana.domain.conditions import (
    AllOf,
    AnyOf,
    ArcUnlocked,
    AttributeCompare,
    ChainTriggered,
    ChoiceMade,
    Condition,
    EndingReached,
    FactionCompare,
    FactionMember,
    ItemCompare,
    ItemPresent,
    Not,
    RelationshipCompare,
    UnknownCondition,
    Visited,
    WorldEquals,
    compare,
    is_blank,
    parse_condition,
)
from arcana.domain.defs import StoryDef
from arcana.domain.player import PlayerState

logger = logging.getLogger(__name__)


def read_world_state(player: PlayerState, story: StoryDef, key: str) -> str | None:
    """Return the player's world state value, falling back to the authored one."""
    value = player.get_progress(keys.player_world_state_key(story.id, key))
    if value is not None:
        return value
    return story.metadata.get(keys.authored_world_state_key(key))


def read_item_count(player: PlayerState, item_id: str) -> int:
    raw = player.get_progress(keys.inventory_key(item_id))
    if raw is None:
        return 0
    try:
        return int(raw)
    except ValueError:
        return 0


class ConditionEvaluator:
    """Fail-closed evaluator for choice and consequence predicates."""

    def evaluate(self, predicate: str | Condition | None, player: PlayerState, story: StoryDef) -> bool:
        """Return True if the predicate holds; blank predicates always hold."""
        if predicate is None:
            return True
        if isinstance(predicate, str):
            if is_blank(predicate):
                return True
            predicate = parse_condition(predicate)
        return self._evaluate(predicate, player, story)

    def _evaluate(self, condition: Condition, player: PlayerState, story: StoryDef) -> bool:
        if isinstance(condition, AttributeCompare):
            return compare(player.get_attribute(condition.name), condition.op, condition.value)
        if isinstance(condition, RelationshipCompare):
            actual = player.get_attribute(keys.relationship_key(condition.npc_id))
            return compare(actual, condition.op, condition.value)
        if isinstance(condition, FactionCompare):
            actual = player.get_attribute(keys.faction_key(condition.faction_id))
            return compare(actual, condition.op, condition.value)
        if isinstance(condition, FactionMember):
            return player.has_progress(keys.faction_key(condition.faction_id))
        if isinstance(condition, ItemPresent):
            raw = player.get_progress(keys.inventory_key(condition.item_id))
            if raw is None:
                return False
            try:
                return int(raw) > 0
            except ValueError:
                return True
        if isinstance(condition, ItemCompare):
            return compare(read_item_count(player, condition.item_id), condition.op, condition.value)
        if isinstance(condition, WorldEquals):
            return read_world_state(player, story, condition.key) == condition.value
        if isinstance(condition, Visited):
            return player.has_progress(keys.visited_key(story.id, condition.beat_id))
        if isinstance(condition, ChoiceMade):
            return player.has_progress(keys.choice_key(story.id, condition.choice_id))
        if isinstance(condition, ChainTriggered):
            return player.get_progress(keys.chain_key(condition.chain_id)) == keys.TRIGGERED
        if isinstance(condition, EndingReached):
            return player.has_progress(keys.ending_key(story.id, condition.ending_id))
        if isinstance(condition, ArcUnlocked):
            journey = player.journeys.get(story.id)
            return journey is not None and journey.is_arc_unlocked(condition.arc_id)
        if isinstance(condition, AllOf):
            return all(self._evaluate(clause, player, story) for clause in condition.clauses)
        if isinstance(condition, AnyOf):
            return any(self._evaluate(clause, player, story) for clause in condition.clauses)
        if isinstance(condition, Not):
            return not self._evaluate(condition.clause, player, story)
        if isinstance(condition, UnknownCondition):
            logger.debug("Unrecognised predicate '%s' evaluated as False", condition.source)
        return False
