"""Helpers for building namespaced player attribute and progress keys."""
from __future__ import annotations

TRIGGERED = "triggered"


def current_beat_key(story_id: str) -> str:
    return f"story:{story_id}:currentBeat"


def visited_key(story_id: str, beat_id: str) -> str:
    return f"visited:{story_id}:{beat_id}"


def choice_key(story_id: str, choice_id: str) -> str:
    return f"choice:{story_id}:{choice_id}"


def relationship_key(npc_id: str) -> str:
    return f"relationship:{npc_id}"


def faction_key(faction_id: str) -> str:
    return f"faction:{faction_id}"


def inventory_key(item_id: str) -> str:
    return f"inventory:{item_id}"


def event_key(event_id: str) -> str:
    return f"event:{event_id}"


def chain_key(chain_id: str) -> str:
    return f"chain:{chain_id}"


def ending_key(story_id: str, ending_id: str) -> str:
    return f"ending:{story_id}:{ending_id}"


def unlock_key(key: str) -> str:
    return f"unlock:{key}"


def authored_world_state_key(key: str) -> str:
    """Key of the initial world state value stored in story metadata."""
    return f"world_state:{key}"


def player_world_state_key(story_id: str, key: str) -> str:
    """Key of a world state value owned by one player's run of a story."""
    return f"world_state:{story_id}:{key}"


def is_inventory_key(key: str) -> bool:
    return key.startswith("inventory:")


def story_scoped_prefixes(story_id: str) -> tuple[str, ...]:
    """Progress key prefixes that belong to a single story run."""
    return (
        f"story:{story_id}:",
        f"visited:{story_id}:",
        f"choice:{story_id}:",
        f"world_state:{story_id}:",
    )
