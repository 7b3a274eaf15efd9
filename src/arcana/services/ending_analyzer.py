"""Summaries of the endings a story offers and hints toward the missing ones."""
from __future__ import annotations

import re
from typing import Dict, Iterable, List, Set

from arcana.core.types import ENDING_CATEGORIES, ENDING_RARITY_SHARES, EndingCategory, EndingRarity
from arcana.domain import progress_keys as keys
from arcana.domain.conditions import describe_condition
from arcana.domain.defs import EndingDef, StoryDef
from arcana.domain.player import PlayerState

_ENDING_REF = re.compile(r"ending:(\w+)")


def ending_dependencies(ending: EndingDef) -> List[str]:
    """Return the ids of endings named in ``ending``'s requirements."""
    if ending.requirements is None:
        return []
    return _ENDING_REF.findall(describe_condition(ending.requirements))


def ending_dependency_graph(endings: Iterable[EndingDef]) -> Dict[str, List[str]]:
    """Map each ending id to the ids of the endings that require it.

    References to endings outside ``endings`` are ignored.
    """
    endings = list(endings)
    graph: Dict[str, List[str]] = {ending.id: [] for ending in endings}
    for ending in endings:
        for dependency in ending_dependencies(ending):
            if dependency in graph:
                graph[dependency].append(ending.id)
    return graph


def rarity_distribution(endings: Iterable[EndingDef]) -> Dict[EndingRarity, int]:
    counts: Dict[EndingRarity, int] = {rarity: 0 for rarity in ENDING_RARITY_SHARES}
    for ending in endings:
        counts[ending.rarity] += 1
    return counts


def category_distribution(endings: Iterable[EndingDef]) -> Dict[EndingCategory, int]:
    counts: Dict[EndingCategory, int] = {category: 0 for category in ENDING_CATEGORIES}
    for ending in endings:
        counts[ending.category] += 1
    return counts


def discovered_endings(player: PlayerState, story: StoryDef) -> Set[str]:
    """Ids of the story's endings the player has reached in any run."""
    prefix = keys.ending_key(story.id, "")
    return {key[len(prefix):] for key in player.progress if key.startswith(prefix)}


def undiscovered_ending_hints(endings: Iterable[EndingDef], discovered_ids: Set[str]) -> List[str]:
    return [
        f"Try to find the {ending.category} ending with {ending.rarity} rarity."
        for ending in endings
        if ending.id not in discovered_ids
    ]
