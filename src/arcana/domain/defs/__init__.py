"""Domain definition exports."""

from .story_def import (
    BeatDef,
    ChoiceDef,
    ConsequenceDef,
    EndingDef,
    SkillCheckDef,
    SkillCheckOutcomeDef,
    StoryArcDef,
    StoryDef,
    build_condition,
)

__all__ = [
    "BeatDef",
    "ChoiceDef",
    "ConsequenceDef",
    "EndingDef",
    "SkillCheckDef",
    "SkillCheckOutcomeDef",
    "StoryArcDef",
    "StoryDef",
    "build_condition",
]
