"""Fluent construction of composite conditions."""
from __future__ import annotations

from typing import List

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
    Visited,
    WorldEquals,
)


class ConditionBuilder:
    """Accumulates clauses that must all hold.

    ``negate``, ``and_`` and ``or_`` fold the clauses gathered so far into a
    single composite node, so later calls keep adding to the conjunction.
    """

    def __init__(self) -> None:
        self._clauses: List[Condition] = []

    def attribute_equals(self, name: str, value: int) -> "ConditionBuilder":
        return self._add(AttributeCompare(name, "eq", value))

    def attribute_greater_than(self, name: str, value: int) -> "ConditionBuilder":
        return self._add(AttributeCompare(name, "gt", value))

    def attribute_less_than(self, name: str, value: int) -> "ConditionBuilder":
        return self._add(AttributeCompare(name, "lt", value))

    def attribute_at_least(self, name: str, value: int) -> "ConditionBuilder":
        return self._add(AttributeCompare(name, "gte", value))

    def attribute_at_most(self, name: str, value: int) -> "ConditionBuilder":
        return self._add(AttributeCompare(name, "lte", value))

    def attribute_in_range(self, name: str, low: int, high: int) -> "ConditionBuilder":
        """Inclusive on both ends."""
        self._add(AttributeCompare(name, "gte", low))
        return self._add(AttributeCompare(name, "lte", high))

    def has_visited(self, beat_id: str) -> "ConditionBuilder":
        return self._add(Visited(beat_id))

    def has_made_choice(self, choice_id: str) -> "ConditionBuilder":
        return self._add(ChoiceMade(choice_id))

    def relationship_at_least(self, npc_id: str, value: int) -> "ConditionBuilder":
        return self._add(RelationshipCompare(npc_id, "gte", value))

    def relationship_at_most(self, npc_id: str, value: int) -> "ConditionBuilder":
        return self._add(RelationshipCompare(npc_id, "lte", value))

    def belongs_to_faction(self, faction_id: str) -> "ConditionBuilder":
        return self._add(FactionMember(faction_id))

    def faction_standing_at_least(self, faction_id: str, value: int) -> "ConditionBuilder":
        return self._add(FactionCompare(faction_id, "gte", value))

    def has_item(self, item_id: str) -> "ConditionBuilder":
        return self._add(ItemPresent(item_id))

    def has_item_quantity(self, item_id: str, quantity: int) -> "ConditionBuilder":
        return self._add(ItemCompare(item_id, "gte", quantity))

    def world_state_equals(self, key: str, value: str) -> "ConditionBuilder":
        return self._add(WorldEquals(key, value))

    def has_reached_ending(self, ending_id: str) -> "ConditionBuilder":
        return self._add(EndingReached(ending_id))

    def has_unlocked_arc(self, arc_id: str) -> "ConditionBuilder":
        return self._add(ArcUnlocked(arc_id))

    def chain_triggered(self, chain_id: str) -> "ConditionBuilder":
        return self._add(ChainTriggered(chain_id))

    def negate(self) -> "ConditionBuilder":
        current = self.build()
        self._clauses = [] if current is None else [Not(current)]
        return self

    def and_(self, other: "ConditionBuilder") -> "ConditionBuilder":
        return self._combine(other, any_of=False)

    def or_(self, other: "ConditionBuilder") -> "ConditionBuilder":
        return self._combine(other, any_of=True)

    def build(self) -> Condition | None:
        """Return the compiled condition; None when no clause was added."""
        if not self._clauses:
            return None
        if len(self._clauses) == 1:
            return self._clauses[0]
        return AllOf(tuple(self._clauses))

    def _add(self, clause: Condition) -> "ConditionBuilder":
        self._clauses.append(clause)
        return self

    def _combine(self, other: "ConditionBuilder", *, any_of: bool) -> "ConditionBuilder":
        left = self.build()
        right = other.build()
        if left is None or right is None:
            single = left if right is None else right
            self._clauses = [] if single is None else [single]
            return self
        self._clauses = [AnyOf((left, right)) if any_of else AllOf((left, right))]
        return self
