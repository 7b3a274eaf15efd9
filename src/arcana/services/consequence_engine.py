"""Applies, schedules and chains consequences against player state."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Sequence

from arcana.domain import progress_keys as keys
from arcana.domain.conditions import ChainTriggered
from arcana.domain.defs import ConsequenceDef, StoryDef
from arcana.domain.payloads import AddValue, CumulativeValue, SetValue, TextValue
from arcana.domain.player import PendingConsequence, PlayerState
from arcana.errors import ChainCycleDetected, MalformedConsequencePayload
from arcana.services.condition_evaluator import ConditionEvaluator

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHAIN_PASSES = 8


@dataclass(slots=True)
class ConsequenceReport:
    """What happened to each consequence handed to the engine."""

    applied: List[ConsequenceDef] = field(default_factory=list)
    scheduled: List[PendingConsequence] = field(default_factory=list)
    discarded: List[ConsequenceDef] = field(default_factory=list)
    abandoned: List[ConsequenceDef] = field(default_factory=list)

    def merge(self, other: "ConsequenceReport") -> None:
        self.applied.extend(other.applied)
        self.scheduled.extend(other.scheduled)
        self.discarded.extend(other.discarded)
        self.abandoned.extend(other.abandoned)


class _ChainStall(ChainCycleDetected):
    def __init__(self, remaining: Sequence[ConsequenceDef]) -> None:
        self.remaining = list(remaining)
        super().__init__(f"{len(self.remaining)} chained consequence(s) did not settle.")


class ConsequenceEngine:
    """Mutates player state from consequence definitions.

    Malformed content never aborts a batch: each consequence is applied in
    isolation and failures are logged.
    """

    def __init__(
        self,
        evaluator: ConditionEvaluator | None = None,
        *,
        max_chain_passes: int = DEFAULT_MAX_CHAIN_PASSES,
    ) -> None:
        self._evaluator = evaluator or ConditionEvaluator()
        self._max_chain_passes = max(1, max_chain_passes)

    def apply(self, consequence: ConsequenceDef, player: PlayerState, story: StoryDef) -> bool:
        """Apply one consequence if its condition holds. Returns True if applied."""
        if not self._evaluator.evaluate(consequence.condition, player, story):
            logger.debug("Consequence '%s' discarded: condition not met", consequence.id)
            return False
        try:
            self._mutate(consequence, player, story)
        except MalformedConsequencePayload as exc:
            logger.warning("Skipping consequence '%s': %s", consequence.id, exc)
            return False
        logger.debug(
            "Applied %s consequence '%s' to %s for player %s",
            consequence.kind,
            consequence.id,
            consequence.target,
            player.id,
        )
        return True

    def schedule_or_apply(
        self,
        consequences: Iterable[ConsequenceDef],
        player: PlayerState,
        story: StoryDef,
        current_turn: int,
    ) -> ConsequenceReport:
        """Queue delayed consequences and resolve the immediate ones."""
        report = ConsequenceReport()
        immediate: List[ConsequenceDef] = []
        for consequence in consequences:
            if consequence.is_delayed:
                entry = PendingConsequence(
                    player_id=player.id,
                    story_id=story.id,
                    due_turn=current_turn + consequence.delay_turns,
                    consequence=consequence,
                )
                player.pending.append(entry)
                report.scheduled.append(entry)
            else:
                immediate.append(consequence)
        report.merge(self._resolve(immediate, player, story))
        return report

    def apply_due(self, player: PlayerState, story: StoryDef, current_turn: int) -> ConsequenceReport:
        """Apply every pending consequence of this story due at or before the turn."""
        due: List[PendingConsequence] = []
        remaining: List[PendingConsequence] = []
        for entry in player.pending:
            if entry.story_id == story.id and entry.due_turn <= current_turn:
                due.append(entry)
            else:
                remaining.append(entry)
        if not due:
            return ConsequenceReport()
        player.pending = remaining
        due.sort(key=lambda entry: entry.due_turn)
        logger.debug("Firing %d delayed consequence(s) for player %s", len(due), player.id)
        return self._resolve([entry.consequence for entry in due], player, story)

    def _resolve(
        self, consequences: Sequence[ConsequenceDef], player: PlayerState, story: StoryDef
    ) -> ConsequenceReport:
        report = ConsequenceReport()
        try:
            self._run_passes(consequences, player, story, report)
        except _ChainStall as exc:
            logger.warning(
                "Chain resolution exceeded %d passes for player %s in story '%s'; abandoning %s",
                self._max_chain_passes,
                player.id,
                story.id,
                [consequence.id for consequence in exc.remaining],
            )
            report.abandoned.extend(exc.remaining)
        return report

    def _run_passes(
        self,
        consequences: Sequence[ConsequenceDef],
        player: PlayerState,
        story: StoryDef,
        report: ConsequenceReport,
    ) -> None:
        queue = list(consequences)
        for _ in range(self._max_chain_passes):
            deferred: List[ConsequenceDef] = []
            chain_fired = False
            for consequence in queue:
                if self._awaits_chain(consequence, player):
                    deferred.append(consequence)
                    continue
                if self.apply(consequence, player, story):
                    report.applied.append(consequence)
                    chain_fired = chain_fired or consequence.kind == "chain_reaction"
                else:
                    report.discarded.append(consequence)
            if not deferred:
                return
            if not chain_fired:
                # No chain fired this pass, so the deferred gates stay false.
                report.discarded.extend(deferred)
                return
            queue = deferred
        raise _ChainStall(queue)

    @staticmethod
    def _awaits_chain(consequence: ConsequenceDef, player: PlayerState) -> bool:
        condition = consequence.condition
        if not isinstance(condition, ChainTriggered):
            return False
        return player.get_progress(keys.chain_key(condition.chain_id)) != keys.TRIGGERED

    def _mutate(self, consequence: ConsequenceDef, player: PlayerState, story: StoryDef) -> None:
        kind = consequence.kind
        payload = consequence.payload
        target = consequence.target
        if kind == "attribute":
            if keys.is_inventory_key(target):
                self._apply_inventory(player, target, payload)
                return
            if isinstance(payload, AddValue):
                player.set_attribute(target, player.get_attribute(target) + payload.delta)
            elif isinstance(payload, SetValue):
                player.set_attribute(target, payload.amount)
            else:
                raise MalformedConsequencePayload(f"attribute payload {payload!r} is not numeric")
        elif kind in ("relationship", "faction"):
            key = keys.relationship_key(target) if kind == "relationship" else keys.faction_key(target)
            delta = payload.delta if isinstance(payload, AddValue) else 0
            player.set_attribute(key, player.get_attribute(key) + delta)
        elif kind == "world_state":
            text = payload.text if isinstance(payload, TextValue) else consequence.value
            player.set_progress(keys.player_world_state_key(story.id, target), text)
        elif kind == "event":
            player.set_progress(keys.event_key(target), keys.TRIGGERED)
        elif kind == "chain_reaction":
            player.set_progress(keys.chain_key(target), keys.TRIGGERED)
        elif kind == "cumulative":
            if not isinstance(payload, CumulativeValue):
                raise MalformedConsequencePayload(f"cumulative payload {payload!r} is not cumulative")
            value = player.get_attribute(target) + payload.delta
            if payload.max_value is not None and value > payload.max_value:
                value = payload.max_value
            player.set_attribute(target, value)
        else:
            raise MalformedConsequencePayload(f"unknown consequence kind '{kind}'")

    @staticmethod
    def _apply_inventory(player: PlayerState, key: str, payload: object) -> None:
        raw = player.get_progress(key)
        try:
            current = int(raw) if raw is not None else 0
        except ValueError:
            current = 0
        if isinstance(payload, AddValue):
            quantity = current + payload.delta
        elif isinstance(payload, SetValue):
            quantity = payload.amount
        else:
            raise MalformedConsequencePayload(f"inventory payload {payload!r} is not numeric")
        player.set_progress(key, str(max(0, quantity)))
