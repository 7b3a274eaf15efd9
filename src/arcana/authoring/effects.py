"""Fluent construction of consequence lists."""
from __future__ import annotations

import itertools
from typing import Callable, Iterator, List

from arcana.core.types import ConsequenceKind
from arcana.domain import progress_keys as keys
from arcana.domain.conditions import ChainTriggered, Condition
from arcana.domain.defs import ConsequenceDef, build_condition

EffectBlock = Callable[["EffectBuilder"], None]


class EffectBuilder:
    """Collects consequences; identifiers are ``<prefix>_<n>`` in creation order."""

    def __init__(self, prefix: str = "fx", *, _counter: Iterator[int] | None = None) -> None:
        self._prefix = prefix
        self._counter = _counter if _counter is not None else itertools.count(1)
        self._consequences: List[ConsequenceDef] = []

    def attribute(self, name: str, value: int) -> "EffectBuilder":
        """Add a signed delta to an attribute."""
        return self._add("attribute", name, _signed(value))

    def set_attribute(self, name: str, value: int) -> "EffectBuilder":
        return self._add("attribute", name, str(value))

    def relationship(self, npc_id: str, value: int) -> "EffectBuilder":
        return self._add("relationship", npc_id, _signed(value))

    def faction(self, faction_id: str, value: int) -> "EffectBuilder":
        return self._add("faction", faction_id, _signed(value))

    def add_item(self, item_id: str, quantity: int = 1) -> "EffectBuilder":
        return self._add("attribute", keys.inventory_key(item_id), f"+{quantity}")

    def remove_item(self, item_id: str, quantity: int = 1) -> "EffectBuilder":
        return self._add("attribute", keys.inventory_key(item_id), f"-{quantity}")

    def trigger_event(self, event_id: str) -> "EffectBuilder":
        return self._add("event", event_id, "trigger")

    def set_world_state(self, key: str, value: str) -> "EffectBuilder":
        return self._add("world_state", key, value)

    def cumulative(self, target: str, value: int, max_value: int | None = None) -> "EffectBuilder":
        return self._add("cumulative", target, f"{value}:{'' if max_value is None else max_value}")

    def delayed(self, turns: int, block: EffectBlock) -> "EffectBuilder":
        """Add every consequence built by ``block`` with a delay of ``turns``."""
        for consequence in self._nested(block):
            self._append(consequence, delay_turns=turns, condition=consequence.condition)
        return self

    def conditional(self, condition: str | Condition, block: EffectBlock) -> "EffectBuilder":
        """Gate every consequence built by ``block`` on ``condition``."""
        parsed = build_condition(condition) if isinstance(condition, str) else condition
        for consequence in self._nested(block):
            self._append(consequence, delay_turns=consequence.delay_turns, condition=parsed)
        return self

    def chain_reaction(self, block: EffectBlock, chain_id: str | None = None) -> "EffectBuilder":
        """Add a chain trigger followed by consequences that wait on it."""
        resolved_id = chain_id or f"{self._prefix}_chain_{next(self._counter)}"
        self._add("chain_reaction", resolved_id, "trigger")
        for consequence in self._nested(block):
            self._append(consequence, delay_turns=consequence.delay_turns, condition=ChainTriggered(resolved_id))
        return self

    def build(self) -> List[ConsequenceDef]:
        return list(self._consequences)

    def _nested(self, block: EffectBlock) -> List[ConsequenceDef]:
        nested = EffectBuilder(self._prefix, _counter=self._counter)
        block(nested)
        return nested.build()

    def _add(self, kind: ConsequenceKind, target: str, value: str) -> "EffectBuilder":
        self._consequences.append(ConsequenceDef.create(self._next_id(), kind, target, value))
        return self

    def _append(self, source: ConsequenceDef, *, delay_turns: int, condition: Condition | None) -> None:
        self._consequences.append(
            ConsequenceDef.create(
                self._next_id(),
                source.kind,
                source.target,
                source.value,
                delay_turns=delay_turns,
                condition=condition,
            )
        )

    def _next_id(self) -> str:
        return f"{self._prefix}_{next(self._counter)}"


def _signed(value: int) -> str:
    return f"+{value}" if value >= 0 else str(value)
