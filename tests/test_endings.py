from arcana.data.player_store import InMemoryPlayerStore
from arcana.domain.conditions import AllOf, EndingReached
from arcana.domain.defs import EndingDef
from arcana.services.ending_analyzer import (
    category_distribution,
    discovered_endings,
    ending_dependency_graph,
    rarity_distribution,
    undiscovered_ending_hints,
)
from arcana.services.event_bus import EventBus, Events
from arcana.services.progression_service import ProgressionService
from arcana.services.story_catalog import StoryCatalog
from tests.helpers.story_fixtures import InMemoryStoryProvider, beat, choice, ending, make_story


def _heist_story():
    return make_story(
        "heist",
        [
            beat(
                "vault",
                choice("sneak", "escape"),
                choice("surrender", "jail"),
                choice("bribe", "escape", condition="ending:caught"),
            ),
            beat(
                "escape",
                is_end=True,
                ending=ending(
                    "clean_getaway",
                    "escape",
                    category="heroic",
                    rarity="rare",
                    requirements="attribute:stealth:gte:5",
                    unlocks={"heist_sequel": "available"},
                ),
            ),
            beat("jail", is_end=True, ending=ending("caught", "jail", category="tragic")),
        ],
    )


def _make_service(event_sink=None) -> tuple[ProgressionService, InMemoryPlayerStore]:
    store = InMemoryPlayerStore()
    service = ProgressionService(StoryCatalog(InMemoryStoryProvider(_heist_story())), store, event_sink=event_sink)
    service.get_or_create_player("p1")
    return service, store


def _analysis_endings() -> list[EndingDef]:
    return [
        ending("a", "beat_a"),
        ending("b", "beat_b", requirements="ending:a"),
        EndingDef(
            id="c",
            beat_id="beat_c",
            category="secret",
            rarity="legendary",
            requirements=AllOf((EndingReached("a"), EndingReached("b"))),
        ),
    ]


def test_dependency_graph_lists_endings_that_require_each_ending() -> None:
    graph = ending_dependency_graph(_analysis_endings())

    assert graph == {"a": ["b", "c"], "b": ["c"], "c": []}


def test_dependency_graph_ignores_unknown_endings() -> None:
    graph = ending_dependency_graph([ending("solo", "beat_s", requirements="ending:elsewhere")])

    assert graph == {"solo": []}


def test_rarity_and_category_distributions_count_every_bucket() -> None:
    endings = _analysis_endings()

    assert rarity_distribution(endings) == {
        "common": 2,
        "uncommon": 0,
        "rare": 0,
        "very_rare": 0,
        "legendary": 1,
    }
    assert category_distribution(endings) == {
        "heroic": 0,
        "tragic": 0,
        "neutral": 2,
        "evil": 0,
        "secret": 1,
        "special": 0,
    }
    assert endings[2].rarity_share == 2.0


def test_hints_cover_only_undiscovered_endings() -> None:
    hints = undiscovered_ending_hints(_analysis_endings(), {"a"})

    assert hints == [
        "Try to find the neutral ending with common rarity.",
        "Try to find the secret ending with legendary rarity.",
    ]


def test_ending_is_recorded_when_requirements_hold() -> None:
    bus = EventBus()
    service, store = _make_service(event_sink=bus)
    player = store.load("p1")
    player.set_attribute("stealth", 5)
    store.save(player)
    service.start_story("p1", "heist")

    result = service.resolve_choice("p1", "heist", "sneak")

    assert result.ending.id == "clean_getaway"
    assert result.events[-1] == Events.ENDING_REACHED
    assert bus.recent_events()[-1]["data"]["rarity"] == "rare"
    player = store.load("p1")
    assert player.journeys["heist"].ending_id == "clean_getaway"
    assert player.get_progress("ending:heist:clean_getaway") == "1"
    assert player.get_progress("unlock:heist_sequel") == "available"


def test_unmet_requirements_complete_the_journey_without_an_ending() -> None:
    service, store = _make_service()
    service.start_story("p1", "heist")

    result = service.resolve_choice("p1", "heist", "sneak")

    journey = store.load("p1").journeys["heist"]
    assert result.ending is None
    assert journey.is_completed
    assert journey.ending_id is None
    assert discovered_endings(store.load("p1"), _heist_story()) == set()


def test_reached_endings_survive_a_restart_and_gate_choices() -> None:
    service, store = _make_service()
    service.start_story("p1", "heist")
    assert [item.id for item in service.get_available_choices("p1", "heist")] == ["sneak", "surrender"]

    service.make_choice("p1", "heist", "surrender")
    service.start_story("p1", "heist")

    assert [item.id for item in service.get_available_choices("p1", "heist")] == ["sneak", "surrender", "bribe"]
    assert store.load("p1").journeys["heist"].ending_id is None
    assert discovered_endings(store.load("p1"), _heist_story()) == {"caught"}
    assert service.get_ending_hints("p1", "heist") == ["Try to find the heroic ending with rare rarity."]
