"""Repository for story graph definitions."""
from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List

from arcana.core.types import (
    CHOICE_WEIGHT_FACTORS,
    CONSEQUENCE_KINDS,
    ENDING_CATEGORIES,
    ENDING_RARITY_SHARES,
    SUBSCRIPTION_TIERS,
)
from arcana.data import paths
from arcana.data.errors import DataValidationError
from arcana.data.repositories.base import RepositoryBase
from arcana.domain.conditions import Condition, condition_to_payload
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
from arcana.domain.localization import LocalizedText, normalize_language

logger = logging.getLogger(__name__)


class StoryRepository(RepositoryBase[StoryDef]):
    """Loads ``<games_dir>/<story_id>.json`` files into story definitions."""

    def __init__(self, base_path: Path | str | None = None) -> None:
        super().__init__(paths.get_games_path(base_path))

    def load_story(self, story_id: str) -> StoryDef | None:
        """Return the parsed story, or None when no file exists for the id."""
        if not self._get_file_path(story_id).exists():
            logger.warning("Story file not found for '%s' in %s", story_id, self.directory)
            return None
        return self.parse(self._load_raw(story_id), story_id=story_id)

    def load_all_stories(self) -> List[StoryDef]:
        """Return every story in the directory, sorted by id."""
        stories = [self.parse(self._load_raw(story_id), story_id=story_id) for story_id in self._list_ids()]
        logger.info("Loaded %d stories from %s", len(stories), self.directory)
        return stories

    def story_ids(self) -> List[str]:
        return self._list_ids()

    def parse(self, raw: object, story_id: str | None = None) -> StoryDef:
        """Build a story definition from a JSON payload."""
        data = self._require_mapping(raw, "story")
        resolved_id = self._require_str(data.get("id", story_id), "story id")
        context = f"story '{resolved_id}'"
        start_beat_id = self._require_str(data.get("start_beat_id"), f"{context} start_beat_id")
        raw_beats = self._require_mapping(data.get("beats"), f"{context} beats")
        beats: Dict[str, BeatDef] = {}
        for beat_id, beat_payload in raw_beats.items():
            beats[beat_id] = self._parse_beat(beat_id, beat_payload, context)
        required_tier = data.get("required_tier", "free")
        if required_tier not in SUBSCRIPTION_TIERS:
            raise DataValidationError(f"{context} required_tier must be one of {SUBSCRIPTION_TIERS}.")
        return StoryDef(
            id=resolved_id,
            start_beat_id=start_beat_id,
            beats=MappingProxyType(beats),
            title=self._parse_text(data.get("title"), f"{context} title", required=False),
            description=self._parse_text(data.get("description"), f"{context} description", required=False),
            required_tier=required_tier,
            tags=frozenset(self._str_list(data.get("tags"), f"{context} tags")),
            metadata=MappingProxyType(self._str_mapping(data.get("metadata"), f"{context} metadata")),
            arcs=MappingProxyType(self._parse_arcs(data.get("arcs"), f"{context} arcs")),
        )

    def _parse_beat(self, beat_id: str, payload: object, story_context: str) -> BeatDef:
        context = f"{story_context} beat '{beat_id}'"
        beat_data = self._require_mapping(payload, context)
        raw_choices = beat_data.get("choices")
        if raw_choices is None:
            raw_choices = []
        if not isinstance(raw_choices, list):
            raise DataValidationError(f"{context} choices must be a list if provided.")
        choices = tuple(
            self._parse_choice(entry, f"{context} choices[{index}]") for index, entry in enumerate(raw_choices)
        )
        is_end = beat_data.get("is_end", False)
        if not isinstance(is_end, bool):
            raise DataValidationError(f"{context} is_end must be a boolean.")
        return BeatDef(
            id=beat_id,
            text=self._parse_text(beat_data.get("text"), f"{context} text"),
            choices=choices,
            is_end=is_end,
            attributes=MappingProxyType(self._str_mapping(beat_data.get("attributes"), f"{context} attributes")),
            tags=frozenset(self._str_list(beat_data.get("tags"), f"{context} tags")),
            metadata=MappingProxyType(self._str_mapping(beat_data.get("metadata"), f"{context} metadata")),
            ending=self._parse_ending(beat_data.get("ending"), beat_id, f"{context} ending"),
        )

    def _parse_ending(self, payload: object, beat_id: str, context: str) -> EndingDef | None:
        if payload is None:
            return None
        data = self._require_mapping(payload, context)
        category = self._require_str(data.get("category", "neutral"), f"{context} category").lower()
        if category not in ENDING_CATEGORIES:
            raise DataValidationError(f"{context} category '{category}' is not one of {ENDING_CATEGORIES}.")
        rarity = self._require_str(data.get("rarity", "common"), f"{context} rarity").lower()
        if rarity not in ENDING_RARITY_SHARES:
            raise DataValidationError(f"{context} rarity '{rarity}' is not one of {tuple(ENDING_RARITY_SHARES)}.")
        return EndingDef(
            id=self._require_str(data.get("id", beat_id), f"{context} id"),
            beat_id=beat_id,
            title=self._parse_text(data.get("title"), f"{context} title", required=False),
            description=self._parse_text(data.get("description"), f"{context} description", required=False),
            category=category,  # type: ignore[arg-type]
            rarity=rarity,  # type: ignore[arg-type]
            requirements=self._parse_condition(data.get("requirements"), f"{context} requirements"),
            unlocks=MappingProxyType(self._str_mapping(data.get("unlocks"), f"{context} unlocks")),
            tags=frozenset(self._str_list(data.get("tags"), f"{context} tags")),
            metadata=MappingProxyType(self._str_mapping(data.get("metadata"), f"{context} metadata")),
        )

    def _parse_arcs(self, raw: object, context: str) -> Dict[str, StoryArcDef]:
        if raw is None:
            return {}
        arcs: Dict[str, StoryArcDef] = {}
        for arc_id, payload in self._require_mapping(raw, context).items():
            arc_ctx = f"{context}['{arc_id}']"
            data = self._require_mapping(payload, arc_ctx)
            dependency = data.get("dependency")
            if dependency is not None:
                dependency = self._require_str(dependency, f"{arc_ctx} dependency")
            arcs[arc_id] = StoryArcDef(
                id=arc_id,
                start_beat_id=self._require_str(data.get("start_beat_id"), f"{arc_ctx} start_beat_id"),
                title=self._parse_text(data.get("title"), f"{arc_ctx} title", required=False),
                description=self._parse_text(data.get("description"), f"{arc_ctx} description", required=False),
                end_beat_ids=frozenset(self._str_list(data.get("end_beat_ids"), f"{arc_ctx} end_beat_ids")),
                dependency=dependency,
                exclusive_with=frozenset(self._str_list(data.get("exclusive_with"), f"{arc_ctx} exclusive_with")),
                unlocks=frozenset(self._str_list(data.get("unlocks"), f"{arc_ctx} unlocks")),
                metadata=MappingProxyType(self._str_mapping(data.get("metadata"), f"{arc_ctx} metadata")),
            )
        return arcs

    def _parse_choice(self, payload: object, context: str) -> ChoiceDef:
        data = self._require_mapping(payload, context)
        weight = data.get("weight", "normal")
        if not isinstance(weight, str):
            raise DataValidationError(f"{context} weight must be a string.")
        weight = weight.lower()
        if weight not in CHOICE_WEIGHT_FACTORS:
            logger.warning("%s has unknown weight '%s'; using 'normal'", context, weight)
            weight = "normal"
        skill_check = None
        if data.get("skill_check") is not None:
            skill_check = self._parse_skill_check(data["skill_check"], f"{context} skill_check")
        return ChoiceDef(
            id=self._require_str(data.get("id"), f"{context} id"),
            text=self._parse_text(data.get("text"), f"{context} text"),
            next_beat_id=self._require_str(data.get("next_beat_id"), f"{context} next_beat_id"),
            condition=self._parse_condition(data.get("condition"), f"{context} condition"),
            consequences=self._parse_consequences(data.get("consequences"), f"{context} consequences"),
            weight=weight,  # type: ignore[arg-type]
            skill_check=skill_check,
            tags=frozenset(self._str_list(data.get("tags"), f"{context} tags")),
        )

    def _parse_consequences(self, raw: object, context: str) -> tuple[ConsequenceDef, ...]:
        if raw is None:
            return ()
        if not isinstance(raw, list):
            raise DataValidationError(f"{context} must be a list if provided.")
        consequences: List[ConsequenceDef] = []
        for index, entry in enumerate(raw):
            entry_ctx = f"{context}[{index}]"
            data = self._require_mapping(entry, entry_ctx)
            kind = self._require_str(data.get("kind"), f"{entry_ctx} kind").lower()
            if kind not in CONSEQUENCE_KINDS:
                raise DataValidationError(f"{entry_ctx} kind '{kind}' is not one of {CONSEQUENCE_KINDS}.")
            value = data.get("value", "")
            if isinstance(value, bool) or not isinstance(value, (str, int)):
                raise DataValidationError(f"{entry_ctx} value must be a string or integer.")
            target = self._require_str(data.get("target"), f"{entry_ctx} target")
            delay = data.get("delay_turns", 0)
            consequences.append(
                ConsequenceDef.create(
                    id=self._require_str(data.get("id", f"{kind}:{target}:{index}"), f"{entry_ctx} id"),
                    kind=kind,  # type: ignore[arg-type]
                    target=target,
                    value=str(value),
                    delay_turns=self._require_int(delay, f"{entry_ctx} delay_turns"),
                    condition=self._parse_condition(data.get("condition"), f"{entry_ctx} condition"),
                )
            )
        return tuple(consequences)

    @staticmethod
    def _parse_condition(value: object, context: str) -> Condition | None:
        if value is not None and not isinstance(value, (str, dict)):
            raise DataValidationError(f"{context} must be a string or an object.")
        return build_condition(value)

    def _parse_skill_check(self, payload: object, context: str) -> SkillCheckDef:
        data = self._require_mapping(payload, context)
        return SkillCheckDef(
            attribute_name=self._require_str(data.get("attribute"), f"{context} attribute"),
            difficulty=self._require_int(data.get("difficulty"), f"{context} difficulty"),
            bonus_modifier=self._require_int(data.get("bonus_modifier", 0), f"{context} bonus_modifier"),
            critical_success_threshold=self._require_int(
                data.get("critical_success_threshold", 18), f"{context} critical_success_threshold"
            ),
            critical_failure_threshold=self._require_int(
                data.get("critical_failure_threshold", 3), f"{context} critical_failure_threshold"
            ),
            success=self._parse_outcome(data.get("success"), f"{context} success"),
            failure=self._parse_outcome(data.get("failure"), f"{context} failure"),
            critical_success=self._parse_optional_outcome(data.get("critical_success"), f"{context} critical_success"),
            critical_failure=self._parse_optional_outcome(data.get("critical_failure"), f"{context} critical_failure"),
        )

    def _parse_outcome(self, payload: object, context: str) -> SkillCheckOutcomeDef:
        data = self._require_mapping(payload, context)
        return SkillCheckOutcomeDef(
            text=self._parse_text(data.get("text"), f"{context} text"),
            next_beat_id=self._require_str(data.get("next_beat_id"), f"{context} next_beat_id"),
            consequences=self._parse_consequences(data.get("consequences"), f"{context} consequences"),
        )

    def _parse_optional_outcome(self, payload: object, context: str) -> SkillCheckOutcomeDef | None:
        if payload is None:
            return None
        return self._parse_outcome(payload, context)

    def _parse_text(self, value: object, context: str, *, required: bool = True) -> LocalizedText:
        if value is None and not required:
            return LocalizedText()
        if isinstance(value, str):
            return LocalizedText.of(value)
        mapping = self._require_mapping(value, context)
        texts: Dict[str, str] = {}
        for language, text in mapping.items():
            texts[normalize_language(language)] = self._require_str(text, f"{context}.{language}")
        return LocalizedText(texts=MappingProxyType(texts))


def story_to_payload(story: StoryDef) -> Dict[str, Any]:
    """Return the JSON form of a story; the inverse of ``StoryRepository.parse``."""
    return {
        "id": story.id,
        "start_beat_id": story.start_beat_id,
        "title": dict(story.title.texts),
        "description": dict(story.description.texts),
        "required_tier": story.required_tier,
        "tags": sorted(story.tags),
        "metadata": dict(story.metadata),
        "beats": {beat_id: _beat_to_payload(beat) for beat_id, beat in story.beats.items()},
        "arcs": {arc_id: _arc_to_payload(arc) for arc_id, arc in story.arcs.items()},
    }


def _beat_to_payload(beat: BeatDef) -> Dict[str, Any]:
    return {
        "text": dict(beat.text.texts),
        "is_end": beat.is_end,
        "attributes": dict(beat.attributes),
        "tags": sorted(beat.tags),
        "metadata": dict(beat.metadata),
        "choices": [_choice_to_payload(choice) for choice in beat.choices],
        "ending": _ending_to_payload(beat.ending),
    }


def _ending_to_payload(ending: EndingDef | None) -> Dict[str, Any] | None:
    if ending is None:
        return None
    return {
        "id": ending.id,
        "title": dict(ending.title.texts),
        "description": dict(ending.description.texts),
        "category": ending.category,
        "rarity": ending.rarity,
        "requirements": _condition_payload(ending.requirements),
        "unlocks": dict(ending.unlocks),
        "tags": sorted(ending.tags),
        "metadata": dict(ending.metadata),
    }


def _arc_to_payload(arc: StoryArcDef) -> Dict[str, Any]:
    return {
        "title": dict(arc.title.texts),
        "description": dict(arc.description.texts),
        "start_beat_id": arc.start_beat_id,
        "end_beat_ids": sorted(arc.end_beat_ids),
        "dependency": arc.dependency,
        "exclusive_with": sorted(arc.exclusive_with),
        "unlocks": sorted(arc.unlocks),
        "metadata": dict(arc.metadata),
    }


def _choice_to_payload(choice: ChoiceDef) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "id": choice.id,
        "text": dict(choice.text.texts),
        "next_beat_id": choice.next_beat_id,
        "condition": _condition_payload(choice.condition),
        "weight": choice.weight,
        "tags": sorted(choice.tags),
        "consequences": [consequence_to_payload(c) for c in choice.consequences],
    }
    if choice.skill_check is not None:
        check = choice.skill_check
        payload["skill_check"] = {
            "attribute": check.attribute_name,
            "difficulty": check.difficulty,
            "bonus_modifier": check.bonus_modifier,
            "critical_success_threshold": check.critical_success_threshold,
            "critical_failure_threshold": check.critical_failure_threshold,
            "success": _outcome_to_payload(check.success),
            "failure": _outcome_to_payload(check.failure),
            "critical_success": _outcome_to_payload(check.critical_success),
            "critical_failure": _outcome_to_payload(check.critical_failure),
        }
    return payload


def _outcome_to_payload(outcome: SkillCheckOutcomeDef | None) -> Dict[str, Any] | None:
    if outcome is None:
        return None
    return {
        "text": dict(outcome.text.texts),
        "next_beat_id": outcome.next_beat_id,
        "consequences": [consequence_to_payload(c) for c in outcome.consequences],
    }


def _condition_payload(condition: Condition | None) -> Any:
    return condition_to_payload(condition) if condition is not None else None


def consequence_to_payload(consequence: ConsequenceDef) -> Dict[str, Any]:
    return {
        "id": consequence.id,
        "kind": consequence.kind,
        "target": consequence.target,
        "value": consequence.value,
        "delay_turns": consequence.delay_turns,
        "condition": _condition_payload(consequence.condition),
    }
