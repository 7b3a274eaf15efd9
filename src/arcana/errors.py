"""Exceptions raised by the story core."""
from __future__ import annotations

from typing import Sequence


class ArcanaError(Exception):
    """Base exception for the story core."""


class StoryNotFoundError(ArcanaError, KeyError):
    """Raised when a story id is not known to the catalog."""


class PlayerNotFoundError(ArcanaError, KeyError):
    """Raised when a player id is not known to the player store."""


class BeatNotFoundError(ArcanaError, KeyError):
    """Raised when a beat reference cannot be resolved inside a story."""


class StoryIntegrityError(ArcanaError):
    """Raised when a loaded story graph fails validation."""

    def __init__(self, story_id: str, issues: Sequence[object]) -> None:
        self.story_id = story_id
        self.issues = list(issues)
        super().__init__(f"Story '{story_id}' failed validation with {len(self.issues)} error(s).")


class MalformedConsequencePayload(ArcanaError, ValueError):
    """Raised while decoding a consequence value that is not well formed."""


class ChainCycleDetected(ArcanaError):
    """Raised when chained consequences cannot settle within the allowed passes."""


class StaleStateError(ArcanaError):
    """Raised when a player save races with another writer."""
