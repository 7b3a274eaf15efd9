"""Service layer exports."""

from .condition_evaluator import ConditionEvaluator
from .consequence_engine import ConsequenceEngine, ConsequenceReport
from .ending_analyzer import (
    category_distribution,
    ending_dependency_graph,
    rarity_distribution,
    undiscovered_ending_hints,
)
from .event_bus import EventBus, Events
from .progression_service import BeatView, ChoiceResult, ChoiceView, ProgressionService
from .save_service import PlayerSaveCodec
from .story_catalog import StoryCatalog
from .story_graph_validator import Issue, format_issue, validate_story

__all__ = [
    "BeatView",
    "ChoiceResult",
    "ChoiceView",
    "ConditionEvaluator",
    "ConsequenceEngine",
    "ConsequenceReport",
    "EventBus",
    "Events",
    "Issue",
    "PlayerSaveCodec",
    "ProgressionService",
    "StoryCatalog",
    "category_distribution",
    "ending_dependency_graph",
    "format_issue",
    "rarity_distribution",
    "undiscovered_ending_hints",
    "validate_story",
]
