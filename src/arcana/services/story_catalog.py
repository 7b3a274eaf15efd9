"""Cached, validated access to story definitions."""
from __future__ import annotations

import logging
import threading
from typing import Dict, List, Protocol

from arcana.domain.defs import StoryDef
from arcana.errors import StoryIntegrityError, StoryNotFoundError
from arcana.services.story_graph_validator import errors_only, format_issue, validate_story

logger = logging.getLogger(__name__)


class StoryProvider(Protocol):
    """Source of story definitions, usually a StoryRepository."""

    def load_story(self, story_id: str) -> StoryDef | None:
        ...

    def load_all_stories(self) -> List[StoryDef]:
        ...


class StoryCatalog:
    """Loads each story once, validates it and keeps it for the process lifetime."""

    def __init__(self, provider: StoryProvider) -> None:
        self._provider = provider
        self._stories: Dict[str, StoryDef] = {}
        self._lock = threading.Lock()

    def find(self, story_id: str) -> StoryDef | None:
        """Return the story, or None when the provider does not know it."""
        with self._lock:
            cached = self._stories.get(story_id)
            if cached is not None:
                return cached
            story = self._provider.load_story(story_id)
            if story is None:
                return None
            self._register(story)
            return story

    def get(self, story_id: str) -> StoryDef:
        story = self.find(story_id)
        if story is None:
            raise StoryNotFoundError(f"Story '{story_id}' is not defined.")
        return story

    def preload(self) -> List[StoryDef]:
        """Load and validate every story the provider exposes."""
        stories = self._provider.load_all_stories()
        with self._lock:
            for story in stories:
                if story.id not in self._stories:
                    self._register(story)
            return [self._stories[story.id] for story in stories]

    def story_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._stories)

    def _register(self, story: StoryDef) -> None:
        issues = validate_story(story)
        for issue in issues:
            if issue.is_error:
                logger.error(format_issue(issue))
            else:
                logger.warning(format_issue(issue))
        errors = errors_only(issues)
        if errors:
            raise StoryIntegrityError(story.id, errors)
        self._stories[story.id] = story
        logger.info("Registered story '%s' with %d beats", story.id, len(story.beats))
