"""Mutable per-player state."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Set

from arcana.core.types import SUBSCRIPTION_TIERS, SubscriptionTier
from arcana.domain.defs import ConsequenceDef


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class PendingConsequence:
    """A delayed consequence waiting for its turn."""

    player_id: str
    story_id: str
    due_turn: int
    consequence: ConsequenceDef


@dataclass(slots=True)
class JourneyStep:
    """A choice made during a story run."""

    turn: int
    beat_id: str
    choice_id: str


@dataclass(slots=True)
class Journey:
    """Recorded history of one player's run through a story."""

    story_id: str
    started_at: datetime = field(default_factory=utc_now)
    completed_at: datetime | None = None
    steps: List[JourneyStep] = field(default_factory=list)
    visited_beats: Set[str] = field(default_factory=set)
    ending_id: str | None = None
    unlocked_arcs: Set[str] = field(default_factory=set)

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    def record_step(self, turn: int, beat_id: str, choice_id: str) -> None:
        self.steps.append(JourneyStep(turn=turn, beat_id=beat_id, choice_id=choice_id))
        self.visited_beats.add(beat_id)

    def unlock_arc(self, arc_id: str) -> None:
        self.unlocked_arcs.add(arc_id)

    def is_arc_unlocked(self, arc_id: str) -> bool:
        return arc_id in self.unlocked_arcs


@dataclass
class PlayerState:
    """Attributes, progress and bookkeeping owned by one player."""

    id: str
    display_name: str = ""
    attributes: Dict[str, int] = field(default_factory=dict)
    progress: Dict[str, str] = field(default_factory=dict)
    subscription_tier: SubscriptionTier = "free"
    subscription_expires_at: datetime | None = None
    created_at: datetime = field(default_factory=utc_now)
    turns: Dict[str, int] = field(default_factory=dict)
    pending: List[PendingConsequence] = field(default_factory=list)
    journeys: Dict[str, Journey] = field(default_factory=dict)
    version: int = 0

    def get_attribute(self, key: str) -> int:
        return self.attributes.get(key, 0)

    def set_attribute(self, key: str, value: int) -> None:
        self.attributes[key] = value

    def get_progress(self, key: str) -> str | None:
        return self.progress.get(key)

    def set_progress(self, key: str, value: str) -> None:
        self.progress[key] = value

    def has_progress(self, key: str) -> bool:
        return key in self.progress

    def turn(self, story_id: str) -> int:
        return self.turns.get(story_id, 0)

    def advance_turn(self, story_id: str) -> int:
        self.turns[story_id] = self.turn(story_id) + 1
        return self.turns[story_id]

    def has_active_subscription(self, now: datetime | None = None) -> bool:
        if self.subscription_tier == "free":
            return False
        if self.subscription_expires_at is None:
            return True
        return self.subscription_expires_at > (now or utc_now())

    def has_premium_access(self, minimum_tier: SubscriptionTier, now: datetime | None = None) -> bool:
        """Return True if the player may open content gated at ``minimum_tier``."""
        if minimum_tier == "free":
            return True
        if not self.has_active_subscription(now):
            return False
        return SUBSCRIPTION_TIERS.index(self.subscription_tier) >= SUBSCRIPTION_TIERS.index(minimum_tier)
