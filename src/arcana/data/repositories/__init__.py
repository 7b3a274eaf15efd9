"""Repository exports."""

from .story_repo import StoryRepository, consequence_to_payload, story_to_payload

__all__ = [
    "StoryRepository",
    "consequence_to_payload",
    "story_to_payload",
]
