import threading
from datetime import timedelta
from pathlib import Path

import pytest

from arcana.data.player_store import InMemoryPlayerStore, JsonPlayerStore
from arcana.domain.conditions import AllOf, AttributeCompare, Not, Visited
from arcana.domain.defs import BeatDef, SkillCheckDef
from arcana.domain.localization import LocalizedText
from arcana.domain.player import utc_now
from arcana.errors import PlayerNotFoundError
from arcana.services.event_bus import EventBus, Events
from arcana.services.progression_service import ProgressionService
from arcana.services.save_service import PlayerSaveCodec
from arcana.services.story_catalog import StoryCatalog
from tests.helpers.story_fixtures import (
    FixedRNG,
    InMemoryStoryProvider,
    beat,
    choice,
    consequence,
    corridor_story,
    make_story,
    outcome,
)


def _make_service(*stories, rng=None, event_sink=None) -> tuple[ProgressionService, InMemoryPlayerStore]:
    store = InMemoryPlayerStore()
    service = ProgressionService(
        StoryCatalog(InMemoryStoryProvider(*stories)),
        store,
        rng=rng or FixedRNG(10),
        event_sink=event_sink,
    )
    return service, store


def _set_attributes(store: InMemoryPlayerStore, player_id: str, **attributes: int) -> None:
    player = store.load(player_id)
    assert player is not None
    for name, value in attributes.items():
        player.set_attribute(name, value)
    store.save(player)


def _gate_story():
    return make_story(
        "gate",
        [
            beat(
                "gate",
                choice("force", "yard", condition="attribute:strength:gte:50"),
                choice("knock", "yard", consequences=[consequence("knock_gold", "attribute", "gold", "+5")]),
            ),
            beat("yard", is_end=True, text="Hello {name}, welcome to the yard."),
        ],
    )


def test_get_or_create_player_is_idempotent() -> None:
    service, store = _make_service(_gate_story())

    first = service.get_or_create_player("p1", "Ada")
    second = service.get_or_create_player("p1", "Someone else")

    assert first.display_name == "Ada"
    assert second.display_name == "Ada"
    assert store.player_ids() == ["p1"]


def test_start_story_returns_start_beat_and_records_progress() -> None:
    service, store = _make_service(_gate_story())
    service.get_or_create_player("p1", "Ada")

    start = service.start_story("p1", "gate")

    assert start is not None and start.id == "gate"
    player = store.load("p1")
    assert player.get_progress("story:gate:currentBeat") == "gate"
    assert player.has_progress("visited:gate:gate")
    assert player.turn("gate") == 0
    assert service.get_journey("p1", "gate").visited_beats == {"gate"}


def test_start_story_returns_none_for_unknown_story_or_player() -> None:
    service, _ = _make_service(_gate_story())
    service.get_or_create_player("p1")

    assert service.start_story("p1", "missing") is None
    assert service.start_story("ghost", "gate") is None


def test_gated_choice_is_rejected_without_state_change() -> None:
    service, store = _make_service(_gate_story())
    service.get_or_create_player("p1")
    service.start_story("p1", "gate")
    _set_attributes(store, "p1", strength=10)
    before = store.load("p1")

    assert service.make_choice("p1", "gate", "force") is None
    assert service.make_choice("p1", "gate", "no_such_choice") is None

    after = store.load("p1")
    assert after.attributes == before.attributes
    assert after.progress == before.progress
    assert after.turns == before.turns
    assert after.version == before.version


def test_make_choice_applies_consequences_and_moves_player() -> None:
    service, store = _make_service(_gate_story())
    service.get_or_create_player("p1")
    service.start_story("p1", "gate")

    next_beat = service.make_choice("p1", "gate", "knock")

    assert next_beat is not None and next_beat.id == "yard"
    player = store.load("p1")
    assert player.get_attribute("gold") == 5
    assert player.turn("gate") == 1
    assert player.get_progress("story:gate:currentBeat") == "yard"
    assert player.has_progress("visited:gate:yard")
    assert player.has_progress("choice:gate:knock")


def test_choice_without_started_story_uses_start_beat() -> None:
    service, store = _make_service(_gate_story())
    service.get_or_create_player("p1")

    assert service.make_choice("p1", "gate", "knock").id == "yard"


def test_delayed_consequence_fires_on_third_following_choice() -> None:
    beats = [
        beat("room_0", choice("go", "room_1", consequences=[consequence("late", "attribute", "gold", "+5", delay_turns=3)])),
        beat("room_1", choice("next_1", "room_2")),
        beat("room_2", choice("next_2", "room_3")),
        beat("room_3", choice("next_3", "room_4")),
        beat("room_4", is_end=True),
    ]
    service, store = _make_service(make_story("hall", beats))
    service.get_or_create_player("p1")
    service.start_story("p1", "hall")

    service.make_choice("p1", "hall", "go")
    assert len(store.load("p1").pending) == 1

    service.make_choice("p1", "hall", "next_1")
    service.make_choice("p1", "hall", "next_2")
    assert store.load("p1").get_attribute("gold") == 0

    service.make_choice("p1", "hall", "next_3")
    player = store.load("p1")
    assert player.get_attribute("gold") == 5
    assert player.pending == []


def test_cumulative_consequence_is_clamped_through_repeated_choices() -> None:
    forge = beat(
        "forge",
        choice("hammer", "forge", consequences=[consequence("skill", "cumulative", "smithing", "15:50")]),
    )
    service, store = _make_service(make_story("smithy", [forge]))
    service.get_or_create_player("p1")
    service.start_story("p1", "smithy")

    for _ in range(8):
        service.make_choice("p1", "smithy", "hammer")
        assert store.load("p1").get_attribute("smithing") <= 50

    assert store.load("p1").get_attribute("smithing") == 50


def test_skill_check_success_applies_outcome_and_moves_to_its_beat() -> None:
    check = SkillCheckDef(
        attribute_name="strength",
        difficulty=12,
        bonus_modifier=2,
        success=outcome("lifted", consequence("renown", "attribute", "renown", "+1")),
        failure=outcome("crushed"),
        critical_success_threshold=18,
        critical_success=outcome("legend"),
    )
    story = make_story(
        "boulder",
        [
            beat("boulder", choice("lift", "boulder", skill_check=check)),
            beat("lifted", is_end=True),
            beat("crushed", is_end=True),
            beat("legend", is_end=True),
        ],
    )
    rng = FixedRNG(15)
    service, store = _make_service(story, rng=rng)
    service.get_or_create_player("p1")
    _set_attributes(store, "p1", strength=10)
    service.start_story("p1", "boulder")

    result = service.resolve_choice("p1", "boulder", "lift")

    assert result is not None
    assert result.skill_check.outcome_kind == "success"
    assert result.skill_check.total == 27
    assert result.beat.id == "lifted"
    assert result.is_terminal
    player = store.load("p1")
    assert player.get_attribute("renown") == 1
    assert player.get_progress("story:boulder:currentBeat") == "lifted"
    assert rng.calls == [(1, 20)]


def test_world_state_changes_stay_with_the_player() -> None:
    story = make_story(
        "village",
        [
            beat(
                "square",
                choice("ring_bell", "square", consequences=[consequence("alarm", "world_state", "bell", "rung")]),
                choice("gather", "crowd", condition="world:bell:rung"),
            ),
            beat("crowd", is_end=True),
        ],
        metadata={"world_state:bell": "silent"},
    )
    service, _ = _make_service(story)
    for player_id in ("p1", "p2"):
        service.get_or_create_player(player_id)
        service.start_story(player_id, "village")

    service.make_choice("p1", "village", "ring_bell")

    assert [item.id for item in service.get_available_choices("p1", "village")] == ["ring_bell", "gather"]
    assert [item.id for item in service.get_available_choices("p2", "village")] == ["ring_bell"]
    assert story.metadata["world_state:bell"] == "silent"


def test_premium_story_requires_active_subscription() -> None:
    story = make_story("royal", [beat("throne", is_end=True)], required_tier="premium")
    service, store = _make_service(story)
    service.get_or_create_player("p1")

    assert service.start_story("p1", "royal") is None

    player = store.load("p1")
    player.subscription_tier = "premium"
    player.subscription_expires_at = utc_now() + timedelta(days=30)
    store.save(player)

    assert service.start_story("p1", "royal").id == "throne"


def test_expired_subscription_is_rejected() -> None:
    story = make_story("royal", [beat("throne", is_end=True)], required_tier="basic")
    service, store = _make_service(story)
    service.get_or_create_player("p1")
    player = store.load("p1")
    player.subscription_tier = "premium"
    player.subscription_expires_at = utc_now() - timedelta(days=1)
    store.save(player)

    assert service.start_story("p1", "royal") is None


def test_restart_resets_turns_pending_and_story_progress() -> None:
    beats = [
        beat("a", choice("go", "b", consequences=[consequence("late", "attribute", "gold", "+1", delay_turns=5)])),
        beat("b", is_end=True),
    ]
    service, store = _make_service(make_story("loop", beats))
    service.get_or_create_player("p1")
    service.start_story("p1", "loop")
    service.make_choice("p1", "loop", "go")

    service.start_story("p1", "loop")

    player = store.load("p1")
    assert player.turn("loop") == 0
    assert player.pending == []
    assert not player.has_progress("choice:loop:go")
    assert player.get_progress("story:loop:currentBeat") == "a"
    assert service.get_journey("p1", "loop").steps == []


def test_journey_records_steps_and_completion() -> None:
    service, _ = _make_service(corridor_story(length=3))
    service.get_or_create_player("p1")
    service.start_story("p1", "corridor")

    for _ in range(3):
        service.make_choice("p1", "corridor", "next")

    journey = service.get_journey("p1", "corridor")
    assert [step.beat_id for step in journey.steps] == ["room_0", "room_1", "room_2"]
    assert journey.visited_beats == {"room_0", "room_1", "room_2", "room_3"}
    assert journey.is_completed
    assert service.get_current_beat("p1", "corridor").is_terminal


def test_events_are_published_to_the_sink() -> None:
    bus = EventBus()
    service, _ = _make_service(_gate_story(), event_sink=bus)
    service.get_or_create_player("p1")
    service.start_story("p1", "gate")

    result = service.resolve_choice("p1", "gate", "knock")

    names = [event["type"] for event in bus.recent_events()]
    assert names == [
        Events.STORY_STARTED,
        Events.BEAT_REACHED,
        Events.CHOICE_MADE,
        Events.CONSEQUENCE_TRIGGERED,
        Events.BEAT_REACHED,
    ]
    assert result.events == [Events.CHOICE_MADE, Events.CONSEQUENCE_TRIGGERED, Events.BEAT_REACHED]
    assert bus.recent_events()[2]["data"]["choice_id"] == "knock"


def test_failing_event_sink_never_breaks_resolution() -> None:
    class ExplodingSink:
        def publish(self, event_name, payload=None) -> None:
            raise RuntimeError("sink offline")

    service, store = _make_service(_gate_story(), event_sink=ExplodingSink())
    service.get_or_create_player("p1")

    assert service.start_story("p1", "gate").id == "gate"
    assert service.make_choice("p1", "gate", "knock").id == "yard"
    assert store.load("p1").get_attribute("gold") == 5


def test_render_beat_resolves_language_and_variables() -> None:
    service, _ = _make_service(_gate_story())
    service.get_or_create_player("p1")
    service.start_story("p1", "gate")
    service.make_choice("p1", "gate", "knock")

    view = service.render_current_beat("p1", "gate", language="ru", variables={"name": "Ada"})

    assert view.beat_id == "yard"
    assert view.text == "Hello Ada, welcome to the yard."
    assert view.is_terminal
    assert view.choices == []


def test_render_current_beat_hides_gated_choices() -> None:
    service, _ = _make_service(_gate_story())
    service.get_or_create_player("p1")
    service.start_story("p1", "gate")

    view = service.render_current_beat("p1", "gate")

    assert [item.choice_id for item in view.choices] == ["knock"]


def test_concurrent_choices_for_one_player_do_not_lose_writes() -> None:
    loop = beat("loop", choice("tick", "loop", consequences=[consequence("count", "attribute", "ticks", "+1")]))
    service, store = _make_service(make_story("clock", [loop]))
    service.get_or_create_player("p1")
    service.start_story("p1", "clock")
    errors: list[BaseException] = []

    def worker() -> None:
        try:
            for _ in range(10):
                assert service.make_choice("p1", "clock", "tick") is not None
        except BaseException as exc:
            errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    player = store.load("p1")
    assert player.get_attribute("ticks") == 80
    assert player.turn("clock") == 80


def test_different_players_progress_independently() -> None:
    service, store = _make_service(_gate_story())
    for player_id in ("p1", "p2"):
        service.get_or_create_player(player_id)
        service.start_story(player_id, "gate")

    service.make_choice("p1", "gate", "knock")

    assert store.load("p1").get_attribute("gold") == 5
    assert store.load("p2").get_attribute("gold") == 0
    assert service.get_current_beat("p2", "gate").id == "gate"


def test_require_player_raises_for_unknown_id() -> None:
    service, _ = _make_service(corridor_story())
    service.get_or_create_player("p1", "Mira")

    assert service.require_player("p1").display_name == "Mira"
    with pytest.raises(PlayerNotFoundError):
        service.require_player("ghost")


def test_delayed_composite_consequence_fires_after_reloading_from_disk(tmp_path: Path) -> None:
    earned = AllOf((AttributeCompare("gold", "gte", 5), Not(Visited("trap"))))
    spoiled = Not(Visited("room_1"))
    beats = [
        beat(
            "room_0",
            choice(
                "go",
                "room_1",
                consequences=[
                    consequence("pay", "attribute", "gold", "+5"),
                    consequence("medal", "attribute", "medals", "+1", delay_turns=2, condition=earned),
                    consequence("bonus", "attribute", "bonus", "+1", delay_turns=2, condition=spoiled),
                ],
            ),
        ),
        beat("room_1", choice("next_1", "room_2")),
        beat("room_2", choice("next_2", "room_3")),
        beat("room_3", is_end=True),
        beat("trap", is_end=True),
    ]
    store = JsonPlayerStore(tmp_path, PlayerSaveCodec())
    service = ProgressionService(StoryCatalog(InMemoryStoryProvider(make_story("hall", beats))), store)
    service.get_or_create_player("p1")
    service.start_story("p1", "hall")

    service.make_choice("p1", "hall", "go")
    assert store.load("p1").pending[0].consequence.condition == earned
    service.make_choice("p1", "hall", "next_1")
    service.make_choice("p1", "hall", "next_2")

    player = store.load("p1")
    assert player.get_attribute("medals") == 1
    assert player.get_attribute("bonus") == 0
    assert player.pending == []


def test_choices_on_a_terminal_beat_are_rejected() -> None:
    story = make_story(
        "loop",
        [
            beat("start", choice("finish", "end")),
            beat("end", choice("again", "start"), is_end=True),
        ],
    )
    service, store = _make_service(story)
    service.get_or_create_player("p1")
    service.start_story("p1", "loop")
    service.make_choice("p1", "loop", "finish")
    before = store.load("p1")

    assert service.resolve_choice("p1", "loop", "again") is None
    after = store.load("p1")
    assert after.turn("loop") == 1
    assert after.version == before.version
    assert service.get_current_beat("p1", "loop").id == "end"


def test_player_locks_are_released_after_each_call() -> None:
    service, _ = _make_service(corridor_story())
    service.get_or_create_player("p1")
    service.start_story("p1", "corridor")
    service.make_choice("p1", "corridor", "next")

    for index in range(1000):
        assert service.make_choice(f"ghost-{index}", "corridor", "next") is None

    assert service._player_locks == {}


def test_render_beat_uses_the_default_language() -> None:
    story = make_story(
        "bilingual",
        [
            BeatDef(
                id="start",
                text=LocalizedText(texts={"en": "Hello", "ru": "Привет"}),
                choices=(choice("go", "end"),),
            ),
            beat("end", is_end=True),
        ],
    )
    service = ProgressionService(
        StoryCatalog(InMemoryStoryProvider(story)), InMemoryPlayerStore(), default_language="ru"
    )
    service.get_or_create_player("p1")
    service.start_story("p1", "bilingual")

    assert service.render_current_beat("p1", "bilingual").text == "Привет"
    assert service.render_current_beat("p1", "bilingual", language="en").text == "Hello"
