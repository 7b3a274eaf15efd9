from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, List, Sequence

from arcana.domain.defs import (
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
from arcana.domain.conditions import Condition
from arcana.domain.localization import LocalizedText


class FixedRNG:
    """Returns queued rolls in order, repeating the last one."""

    def __init__(self, *rolls: int) -> None:
        self._rolls: List[int] = list(rolls) or [10]
        self.calls: List[tuple[int, int]] = []

    def randint(self, a: int, b: int) -> int:
        self.calls.append((a, b))
        if len(self._rolls) > 1:
            return self._rolls.pop(0)
        return self._rolls[0]


def consequence(
    consequence_id: str,
    kind: str,
    target: str,
    value: str,
    *,
    delay_turns: int = 0,
    condition: str | Condition | None = None,
) -> ConsequenceDef:
    return ConsequenceDef.create(
        consequence_id,
        kind,  # type: ignore[arg-type]
        target,
        value,
        delay_turns=delay_turns,
        condition=condition,
    )


def choice(
    choice_id: str,
    next_beat_id: str,
    *,
    condition: str | None = None,
    consequences: Iterable[ConsequenceDef] = (),
    skill_check: SkillCheckDef | None = None,
    text: str | None = None,
) -> ChoiceDef:
    return ChoiceDef(
        id=choice_id,
        text=LocalizedText.of(text or f"Choice {choice_id}"),
        next_beat_id=next_beat_id,
        condition=build_condition(condition),
        consequences=tuple(consequences),
        skill_check=skill_check,
    )


def beat(
    beat_id: str,
    *choices: ChoiceDef,
    is_end: bool = False,
    text: str | None = None,
    ending: EndingDef | None = None,
) -> BeatDef:
    return BeatDef(
        id=beat_id,
        text=LocalizedText.of(text or f"Beat {beat_id}"),
        choices=tuple(choices),
        is_end=is_end,
        ending=ending,
    )


def ending(
    ending_id: str,
    beat_id: str,
    *,
    category: str = "neutral",
    rarity: str = "common",
    requirements: str | None = None,
    unlocks: dict[str, str] | None = None,
) -> EndingDef:
    return EndingDef(
        id=ending_id,
        beat_id=beat_id,
        category=category,  # type: ignore[arg-type]
        rarity=rarity,  # type: ignore[arg-type]
        requirements=build_condition(requirements),
        unlocks=MappingProxyType(dict(unlocks or {})),
    )


def arc(
    arc_id: str,
    start_beat_id: str,
    *,
    end_beat_ids: Iterable[str] = (),
    dependency: str | None = None,
    exclusive_with: Iterable[str] = (),
    unlocks: Iterable[str] = (),
) -> StoryArcDef:
    return StoryArcDef(
        id=arc_id,
        start_beat_id=start_beat_id,
        end_beat_ids=frozenset(end_beat_ids),
        dependency=dependency,
        exclusive_with=frozenset(exclusive_with),
        unlocks=frozenset(unlocks),
    )


def outcome(next_beat_id: str, *consequences: ConsequenceDef, text: str = "") -> SkillCheckOutcomeDef:
    return SkillCheckOutcomeDef(
        text=LocalizedText.of(text or f"to {next_beat_id}"),
        next_beat_id=next_beat_id,
        consequences=tuple(consequences),
    )


def make_story(
    story_id: str,
    beats: Sequence[BeatDef],
    *,
    start_beat_id: str | None = None,
    required_tier: str = "free",
    metadata: dict[str, str] | None = None,
    arcs: Iterable[StoryArcDef] = (),
) -> StoryDef:
    return StoryDef(
        id=story_id,
        start_beat_id=start_beat_id or beats[0].id,
        beats=MappingProxyType({item.id: item for item in beats}),
        title=LocalizedText.of(story_id.replace("_", " ").title()),
        required_tier=required_tier,  # type: ignore[arg-type]
        metadata=MappingProxyType(dict(metadata or {})),
        arcs=MappingProxyType({item.id: item for item in arcs}),
    )


class InMemoryStoryProvider:
    def __init__(self, *stories: StoryDef) -> None:
        self._stories = {story.id: story for story in stories}
        self.load_calls: List[str] = []

    def load_story(self, story_id: str) -> StoryDef | None:
        self.load_calls.append(story_id)
        return self._stories.get(story_id)

    def load_all_stories(self) -> List[StoryDef]:
        return [self._stories[story_id] for story_id in sorted(self._stories)]


def corridor_story(story_id: str = "corridor", length: int = 6) -> StoryDef:
    """A straight line of beats joined by a single ``next`` choice each."""
    beats = [beat(f"room_{index}", choice("next", f"room_{index + 1}")) for index in range(length)]
    beats.append(beat(f"room_{length}", is_end=True))
    return make_story(story_id, beats)
