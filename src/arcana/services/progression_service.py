"""Story progression services."""
from __future__ import annotations

import copy
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Sequence

from arcana.core.rng import RNG, DiceRoller
from arcana.data.player_store import PlayerStore
from arcana.domain import progress_keys as keys
from arcana.domain.defs import BeatDef, ChoiceDef, EndingDef, StoryArcDef, StoryDef
from arcana.domain.localization import DEFAULT_LANGUAGE
from arcana.domain.player import Journey, PlayerState, utc_now
from arcana.domain.skill_checks import SkillCheckResult, perform_skill_check
from arcana.errors import PlayerNotFoundError
from arcana.services.condition_evaluator import ConditionEvaluator
from arcana.services.consequence_engine import ConsequenceEngine, ConsequenceReport
from arcana.services.ending_analyzer import discovered_endings, undiscovered_ending_hints
from arcana.services.event_bus import Events, EventSink
from arcana.services.story_catalog import StoryCatalog

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ChoiceView:
    """Choice data returned to the presentation layer for rendering."""

    choice_id: str
    text: str
    weight: str
    display_factor: float
    has_skill_check: bool


@dataclass(slots=True)
class BeatView:
    """Data returned to the presentation layer for rendering."""

    beat_id: str
    text: str
    choices: List[ChoiceView]
    is_terminal: bool


@dataclass(slots=True)
class ChoiceResult:
    """Result returned after applying a choice."""

    beat: BeatDef
    turn: int
    skill_check: SkillCheckResult | None = None
    consequences: ConsequenceReport = field(default_factory=ConsequenceReport)
    ending: EndingDef | None = None
    unlocked_arcs: List[str] = field(default_factory=list)
    events: List[str] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.beat.is_terminal


@dataclass(slots=True)
class _LockEntry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class ProgressionService:
    """Application service that drives players through story graphs.

    Every mutation of a player happens on a private copy under that player's
    lock and is persisted as a unit; invalid or gated choices return None and
    leave the stored state untouched.
    """

    def __init__(
        self,
        catalog: StoryCatalog,
        player_store: PlayerStore,
        *,
        evaluator: ConditionEvaluator | None = None,
        engine: ConsequenceEngine | None = None,
        rng: DiceRoller | None = None,
        event_sink: EventSink | None = None,
        default_language: str = DEFAULT_LANGUAGE,
        fallback_language: str = DEFAULT_LANGUAGE,
    ) -> None:
        self._catalog = catalog
        self._player_store = player_store
        self._evaluator = evaluator or ConditionEvaluator()
        self._engine = engine or ConsequenceEngine(self._evaluator)
        self._rng = rng or RNG()
        self._event_sink = event_sink
        self._default_language = default_language
        self._fallback_language = fallback_language
        self._player_locks: Dict[str, _LockEntry] = {}
        self._locks_guard = threading.Lock()

    def get_or_create_player(self, player_id: str, display_name: str = "") -> PlayerState:
        with self._player_lock(player_id):
            player = self._player_store.load(player_id)
            if player is not None:
                return player
            player = PlayerState(id=player_id, display_name=display_name)
            self._player_store.save(player)
            logger.info("Created player %s", player_id)
            return player

    def get_player(self, player_id: str) -> PlayerState | None:
        return self._player_store.load(player_id)

    def require_player(self, player_id: str) -> PlayerState:
        player = self._player_store.load(player_id)
        if player is None:
            raise PlayerNotFoundError(f"Player '{player_id}' does not exist.")
        return player

    def start_story(self, player_id: str, story_id: str) -> BeatDef | None:
        """Begin (or restart) a story run and return its start beat."""
        story = self._catalog.find(story_id)
        if story is None:
            logger.warning("Cannot start unknown story '%s'", story_id)
            return None
        with self._player_lock(player_id):
            player = self._player_store.load(player_id)
            if player is None:
                logger.warning("Cannot start story '%s': player %s not found", story_id, player_id)
                return None
            if not player.has_premium_access(story.required_tier):
                logger.info("Player %s lacks the '%s' tier for story '%s'", player_id, story.required_tier, story_id)
                return None
            working = copy.deepcopy(player)
            self._reset_story_run(working, story)
            unlocked_arcs = self._update_arcs(working, story, story.start_beat)
            self._player_store.save(working)
        logger.info("Player %s started story '%s'", player_id, story_id)
        self._publish(Events.STORY_STARTED, {"player_id": player_id, "story_id": story_id})
        self._publish_beat_reached(player_id, story, story.start_beat)
        self._publish_arcs_unlocked(player_id, story, unlocked_arcs)
        return story.start_beat

    def make_choice(self, player_id: str, story_id: str, choice_id: str) -> BeatDef | None:
        """Apply a choice and return the next beat, or None when rejected."""
        result = self.resolve_choice(player_id, story_id, choice_id)
        return result.beat if result is not None else None

    def resolve_choice(self, player_id: str, story_id: str, choice_id: str) -> ChoiceResult | None:
        """Apply a choice and return the full resolution, or None when rejected."""
        story = self._catalog.find(story_id)
        if story is None:
            return None
        with self._player_lock(player_id):
            player = self._player_store.load(player_id)
            if player is None:
                return None
            beat = self._current_beat(player, story)
            if beat is None:
                return None
            if beat.is_terminal:
                logger.info("Player %s is at terminal beat '%s'; choice '%s' ignored", player_id, beat.id, choice_id)
                return None
            choice = beat.get_choice(choice_id)
            if choice is None or not self._evaluator.evaluate(choice.condition, player, story):
                logger.info("Rejected choice '%s' at beat '%s' for player %s", choice_id, beat.id, player_id)
                return None

            working = copy.deepcopy(player)
            turn = working.advance_turn(story.id)
            report = self._engine.apply_due(working, story, turn)
            skill_result: SkillCheckResult | None = None
            if choice.skill_check is not None:
                skill_result = perform_skill_check(choice.skill_check, working, self._rng)
                next_beat_id = skill_result.outcome.next_beat_id
                outcome_consequences = skill_result.outcome.consequences
                logger.debug(
                    "Skill check on %s rolled %d (total %d): %s",
                    choice.skill_check.attribute_name,
                    skill_result.roll,
                    skill_result.total,
                    skill_result.outcome_kind,
                )
            else:
                next_beat_id = choice.next_beat_id
                outcome_consequences = choice.consequences
            report.merge(self._engine.schedule_or_apply(outcome_consequences, working, story, turn))

            next_beat = story.get_beat(next_beat_id)
            if next_beat is None:
                logger.error("Story '%s' has no beat '%s'; choice '%s' ignored", story.id, next_beat_id, choice_id)
                return None
            self._record_transition(working, story, beat, choice, next_beat, turn)
            unlocked_arcs = self._update_arcs(working, story, next_beat)
            ending = self._record_ending(working, story, next_beat, turn)
            self._player_store.save(working)

        result = ChoiceResult(
            beat=next_beat,
            turn=turn,
            skill_check=skill_result,
            consequences=report,
            ending=ending,
            unlocked_arcs=unlocked_arcs,
        )
        self._publish_choice_events(player_id, story, beat, choice, result)
        return result

    def get_current_beat(self, player_id: str, story_id: str) -> BeatDef | None:
        story = self._catalog.find(story_id)
        player = self._player_store.load(player_id)
        if story is None or player is None:
            return None
        return self._current_beat(player, story)

    def get_available_choices(self, player_id: str, story_id: str) -> List[ChoiceDef]:
        """Return the current beat's choices whose conditions currently hold."""
        story = self._catalog.find(story_id)
        player = self._player_store.load(player_id)
        if story is None or player is None:
            return []
        beat = self._current_beat(player, story)
        if beat is None:
            return []
        return [choice for choice in beat.choices if self._evaluator.evaluate(choice.condition, player, story)]

    def render_beat(
        self,
        beat: BeatDef,
        language: str | None = None,
        variables: Mapping[str, object] | None = None,
        *,
        choices: Sequence[ChoiceDef] | None = None,
    ) -> BeatView:
        """Resolve localized text for a beat and the given (or all) choices.

        ``language`` defaults to the service's configured default language.
        """
        language = language or self._default_language
        shown = beat.choices if choices is None else choices
        return BeatView(
            beat_id=beat.id,
            text=beat.text.resolve(language, variables, self._fallback_language),
            choices=[
                ChoiceView(
                    choice_id=choice.id,
                    text=choice.text.resolve(language, variables, self._fallback_language),
                    weight=choice.weight,
                    display_factor=choice.display_factor,
                    has_skill_check=choice.skill_check is not None,
                )
                for choice in shown
            ],
            is_terminal=beat.is_terminal,
        )

    def render_current_beat(
        self,
        player_id: str,
        story_id: str,
        language: str | None = None,
        variables: Mapping[str, object] | None = None,
    ) -> BeatView | None:
        beat = self.get_current_beat(player_id, story_id)
        if beat is None:
            return None
        return self.render_beat(
            beat, language, variables, choices=self.get_available_choices(player_id, story_id)
        )

    def get_journey(self, player_id: str, story_id: str) -> Journey | None:
        player = self._player_store.load(player_id)
        if player is None:
            return None
        return player.journeys.get(story_id)

    def get_ending_hints(self, player_id: str, story_id: str) -> List[str]:
        """Hints toward the story's endings the player has not reached yet."""
        story = self._catalog.find(story_id)
        player = self._player_store.load(player_id)
        if story is None or player is None:
            return []
        return undiscovered_ending_hints(story.endings(), discovered_endings(player, story))

    @contextmanager
    def _player_lock(self, player_id: str) -> Iterator[None]:
        """Hold the lock for ``player_id``; the entry is dropped once no caller holds or awaits it."""
        with self._locks_guard:
            entry = self._player_locks.get(player_id)
            if entry is None:
                entry = _LockEntry()
                self._player_locks[player_id] = entry
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._player_locks[player_id]

    @staticmethod
    def _current_beat(player: PlayerState, story: StoryDef) -> BeatDef | None:
        beat_id = player.get_progress(keys.current_beat_key(story.id)) or story.start_beat_id
        beat = story.get_beat(beat_id)
        if beat is None:
            logger.error("Player %s is positioned at missing beat '%s' in story '%s'", player.id, beat_id, story.id)
        return beat

    @staticmethod
    def _reset_story_run(player: PlayerState, story: StoryDef) -> None:
        prefixes = keys.story_scoped_prefixes(story.id)
        player.progress = {key: value for key, value in player.progress.items() if not key.startswith(prefixes)}
        player.pending = [entry for entry in player.pending if entry.story_id != story.id]
        player.turns[story.id] = 0
        journey = Journey(story_id=story.id)
        journey.visited_beats.add(story.start_beat_id)
        player.journeys[story.id] = journey
        player.set_progress(keys.visited_key(story.id, story.start_beat_id), "0")
        player.set_progress(keys.current_beat_key(story.id), story.start_beat_id)

    @staticmethod
    def _record_transition(
        player: PlayerState,
        story: StoryDef,
        beat: BeatDef,
        choice: ChoiceDef,
        next_beat: BeatDef,
        turn: int,
    ) -> None:
        if not player.has_progress(keys.visited_key(story.id, beat.id)):
            player.set_progress(keys.visited_key(story.id, beat.id), str(turn))
        player.set_progress(keys.visited_key(story.id, next_beat.id), str(turn))
        player.set_progress(keys.choice_key(story.id, choice.id), str(turn))
        player.set_progress(keys.current_beat_key(story.id), next_beat.id)
        journey = player.journeys.get(story.id)
        if journey is None:
            journey = Journey(story_id=story.id)
            player.journeys[story.id] = journey
        journey.record_step(turn, beat.id, choice.id)
        journey.visited_beats.add(next_beat.id)
        if next_beat.is_terminal and journey.completed_at is None:
            journey.completed_at = utc_now()

    @staticmethod
    def _update_arcs(player: PlayerState, story: StoryDef, beat: BeatDef) -> List[str]:
        """Unlock arcs that open at ``beat`` or are granted by an unlocked arc ending there."""
        journey = player.journeys.get(story.id)
        if journey is None or not story.arcs:
            return []
        candidates: List[str] = []
        for arc in story.arcs.values():
            if arc.start_beat_id == beat.id:
                candidates.append(arc.id)
            if beat.id in arc.end_beat_ids and journey.is_arc_unlocked(arc.id):
                candidates.extend(sorted(arc.unlocks))
        unlocked: List[str] = []
        for arc_id in dict.fromkeys(candidates):
            arc = story.get_arc(arc_id)
            if arc is None:
                logger.warning("Story '%s' unlocks unknown arc '%s'", story.id, arc_id)
                continue
            if ProgressionService._can_unlock(journey, story, arc):
                journey.unlock_arc(arc.id)
                unlocked.append(arc.id)
        return unlocked

    @staticmethod
    def _can_unlock(journey: Journey, story: StoryDef, arc: StoryArcDef) -> bool:
        if journey.is_arc_unlocked(arc.id):
            return False
        if arc.dependency is not None and not journey.is_arc_unlocked(arc.dependency):
            return False
        for other_id in journey.unlocked_arcs:
            other = story.get_arc(other_id)
            if arc.is_exclusive_with(other_id) or (other is not None and other.is_exclusive_with(arc.id)):
                logger.debug("Arc '%s' is closed off by unlocked arc '%s'", arc.id, other_id)
                return False
        return True

    def _record_ending(self, player: PlayerState, story: StoryDef, beat: BeatDef, turn: int) -> EndingDef | None:
        ending = beat.ending
        if ending is None or not beat.is_terminal:
            return None
        if not self._evaluator.evaluate(ending.requirements, player, story):
            logger.info("Player %s reached '%s' without meeting ending '%s'", player.id, beat.id, ending.id)
            return None
        player.journeys[story.id].ending_id = ending.id
        ending_key = keys.ending_key(story.id, ending.id)
        if not player.has_progress(ending_key):
            player.set_progress(ending_key, str(turn))
        for key, value in ending.unlocks.items():
            player.set_progress(keys.unlock_key(key), value)
        logger.info("Player %s reached ending '%s' of story '%s'", player.id, ending.id, story.id)
        return ending

    def _publish_choice_events(
        self,
        player_id: str,
        story: StoryDef,
        beat: BeatDef,
        choice: ChoiceDef,
        result: ChoiceResult,
    ) -> None:
        payload: Dict[str, Any] = {
            "player_id": player_id,
            "story_id": story.id,
            "beat_id": beat.id,
            "choice_id": choice.id,
            "next_beat_id": result.beat.id,
            "turn": result.turn,
        }
        if result.skill_check is not None:
            payload["skill_check"] = {
                "outcome": result.skill_check.outcome_kind,
                "roll": result.skill_check.roll,
                "total": result.skill_check.total,
            }
        self._publish(Events.CHOICE_MADE, payload)
        result.events.append(Events.CHOICE_MADE)
        for consequence in result.consequences.applied:
            self._publish(
                Events.CONSEQUENCE_TRIGGERED,
                {
                    "player_id": player_id,
                    "story_id": story.id,
                    "consequence_id": consequence.id,
                    "kind": consequence.kind,
                    "target": consequence.target,
                },
            )
            result.events.append(Events.CONSEQUENCE_TRIGGERED)
        self._publish_beat_reached(player_id, story, result.beat)
        result.events.append(Events.BEAT_REACHED)
        result.events.extend(self._publish_arcs_unlocked(player_id, story, result.unlocked_arcs))
        if result.ending is not None:
            ending = result.ending
            self._publish(
                Events.ENDING_REACHED,
                {
                    "player_id": player_id,
                    "story_id": story.id,
                    "ending_id": ending.id,
                    "category": ending.category,
                    "rarity": ending.rarity,
                },
            )
            result.events.append(Events.ENDING_REACHED)

    def _publish_beat_reached(self, player_id: str, story: StoryDef, beat: BeatDef) -> None:
        self._publish(
            Events.BEAT_REACHED,
            {"player_id": player_id, "story_id": story.id, "beat_id": beat.id, "is_terminal": beat.is_terminal},
        )

    def _publish_arcs_unlocked(self, player_id: str, story: StoryDef, arc_ids: Sequence[str]) -> List[str]:
        for arc_id in arc_ids:
            self._publish(Events.ARC_UNLOCKED, {"player_id": player_id, "story_id": story.id, "arc_id": arc_id})
        return [Events.ARC_UNLOCKED] * len(arc_ids)

    def _publish(self, event_name: str, payload: Mapping[str, Any]) -> None:
        if self._event_sink is None:
            return
        try:
            self._event_sink.publish(event_name, payload)
        except Exception:
            logger.exception("Event sink failed to publish %s", event_name)
