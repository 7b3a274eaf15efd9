"""Story definition structures used by the runtime."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Tuple

from arcana.core.types import (
    CHOICE_WEIGHT_FACTORS,
    ENDING_RARITY_SHARES,
    ChoiceWeight,
    ConsequenceKind,
    EndingCategory,
    EndingRarity,
    SubscriptionTier,
)
from arcana.domain.conditions import Condition, condition_from_payload, is_blank, parse_condition
from arcana.domain.localization import LocalizedText
from arcana.domain.payloads import ConsequencePayload, decode_payload
from arcana.errors import BeatNotFoundError


def build_condition(predicate: str | Mapping[str, Any] | None) -> Condition | None:
    """Parse an authored predicate; blank predicates mean "always".

    Accepts the text form or the nested form written by ``condition_to_payload``.
    """
    if predicate is None:
        return None
    if isinstance(predicate, str):
        return None if is_blank(predicate) else parse_condition(predicate)
    return condition_from_payload(predicate)


@dataclass(frozen=True, slots=True)
class ConsequenceDef:
    """Single state mutation attached to a choice or skill-check outcome."""

    id: str
    kind: ConsequenceKind
    target: str
    value: str
    payload: ConsequencePayload
    delay_turns: int = 0
    condition: Condition | None = None

    @classmethod
    def create(
        cls,
        id: str,
        kind: ConsequenceKind,
        target: str,
        value: str,
        *,
        delay_turns: int = 0,
        condition: str | Condition | None = None,
    ) -> "ConsequenceDef":
        """Build a consequence, decoding its value and predicate once."""
        parsed = build_condition(condition) if isinstance(condition, str) or condition is None else condition
        return cls(
            id=id,
            kind=kind,
            target=target,
            value=value,
            payload=decode_payload(kind, value, id),
            delay_turns=max(0, delay_turns),
            condition=parsed,
        )

    @property
    def is_delayed(self) -> bool:
        return self.delay_turns > 0


@dataclass(frozen=True, slots=True)
class SkillCheckOutcomeDef:
    """Text, destination and consequences of one skill-check branch."""

    text: LocalizedText
    next_beat_id: str
    consequences: Tuple[ConsequenceDef, ...] = ()


@dataclass(frozen=True, slots=True)
class SkillCheckDef:
    """Randomized attribute test attached to a choice."""

    attribute_name: str
    difficulty: int
    success: SkillCheckOutcomeDef
    failure: SkillCheckOutcomeDef
    bonus_modifier: int = 0
    critical_success_threshold: int = 18
    critical_failure_threshold: int = 3
    critical_success: SkillCheckOutcomeDef | None = None
    critical_failure: SkillCheckOutcomeDef | None = None

    def outcomes(self) -> Tuple[SkillCheckOutcomeDef, ...]:
        found = [self.success, self.failure, self.critical_success, self.critical_failure]
        return tuple(outcome for outcome in found if outcome is not None)


@dataclass(frozen=True, slots=True)
class ChoiceDef:
    """Represents a selectable choice on a story beat."""

    id: str
    text: LocalizedText
    next_beat_id: str
    condition: Condition | None = None
    consequences: Tuple[ConsequenceDef, ...] = ()
    weight: ChoiceWeight = "normal"
    skill_check: SkillCheckDef | None = None
    tags: FrozenSet[str] = frozenset()

    @property
    def display_factor(self) -> float:
        return CHOICE_WEIGHT_FACTORS.get(self.weight, 1.0)

    def target_beat_ids(self) -> Tuple[str, ...]:
        """Every beat this choice can lead to, skill-check branches included."""
        if self.skill_check is None:
            return (self.next_beat_id,)
        targets = [self.next_beat_id]
        targets.extend(outcome.next_beat_id for outcome in self.skill_check.outcomes())
        return tuple(dict.fromkeys(targets))


@dataclass(frozen=True, slots=True)
class EndingDef:
    """Named conclusion recorded when a player reaches its beat.

    ``requirements`` must hold on arrival for the ending to count; ``unlocks``
    are written to the player's progress as ``unlock:<key>`` entries.
    """

    id: str
    beat_id: str
    title: LocalizedText = field(default_factory=LocalizedText)
    description: LocalizedText = field(default_factory=LocalizedText)
    category: EndingCategory = "neutral"
    rarity: EndingRarity = "common"
    requirements: Condition | None = None
    unlocks: Mapping[str, str] = field(default_factory=dict)
    tags: FrozenSet[str] = frozenset()
    metadata: Mapping[str, str] = field(default_factory=dict)

    @property
    def rarity_share(self) -> float:
        return ENDING_RARITY_SHARES[self.rarity]


@dataclass(frozen=True, slots=True)
class StoryArcDef:
    """Narrative segment opened at ``start_beat_id`` and closed at any of ``end_beat_ids``."""

    id: str
    start_beat_id: str
    title: LocalizedText = field(default_factory=LocalizedText)
    description: LocalizedText = field(default_factory=LocalizedText)
    end_beat_ids: FrozenSet[str] = frozenset()
    dependency: str | None = None
    exclusive_with: FrozenSet[str] = frozenset()
    unlocks: FrozenSet[str] = frozenset()
    metadata: Mapping[str, str] = field(default_factory=dict)

    def is_exclusive_with(self, arc_id: str) -> bool:
        return arc_id in self.exclusive_with

    def unlocks_arc(self, arc_id: str) -> bool:
        return arc_id in self.unlocks


@dataclass(frozen=True, slots=True)
class BeatDef:
    """Fully parsed story beat."""

    id: str
    text: LocalizedText
    choices: Tuple[ChoiceDef, ...] = ()
    is_end: bool = False
    attributes: Mapping[str, str] = field(default_factory=dict)
    tags: FrozenSet[str] = frozenset()
    metadata: Mapping[str, str] = field(default_factory=dict)
    ending: EndingDef | None = None

    @property
    def is_terminal(self) -> bool:
        return self.is_end or not self.choices

    def get_choice(self, choice_id: str) -> ChoiceDef | None:
        for choice in self.choices:
            if choice.id == choice_id:
                return choice
        return None


@dataclass(frozen=True, slots=True)
class StoryDef:
    """Immutable story graph shared by every player."""

    id: str
    start_beat_id: str
    beats: Mapping[str, BeatDef]
    title: LocalizedText = field(default_factory=LocalizedText)
    description: LocalizedText = field(default_factory=LocalizedText)
    required_tier: SubscriptionTier = "free"
    tags: FrozenSet[str] = frozenset()
    metadata: Mapping[str, str] = field(default_factory=dict)
    arcs: Mapping[str, StoryArcDef] = field(default_factory=dict)

    def get_beat(self, beat_id: str) -> BeatDef | None:
        return self.beats.get(beat_id)

    def require_beat(self, beat_id: str) -> BeatDef:
        beat = self.beats.get(beat_id)
        if beat is None:
            raise BeatNotFoundError(f"Story '{self.id}' has no beat '{beat_id}'.")
        return beat

    @property
    def start_beat(self) -> BeatDef:
        return self.require_beat(self.start_beat_id)

    def get_arc(self, arc_id: str) -> StoryArcDef | None:
        return self.arcs.get(arc_id)

    def endings(self) -> Tuple[EndingDef, ...]:
        """Every ending declared on a beat, in beat order."""
        return tuple(beat.ending for beat in self.beats.values() if beat.ending is not None)

    def world_state_defaults(self) -> Dict[str, str]:
        """Authored initial world state, keyed without the namespace prefix."""
        prefix = "world_state:"
        return {
            key[len(prefix):]: value for key, value in self.metadata.items() if key.startswith(prefix)
        }
