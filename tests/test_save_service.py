import json
from datetime import datetime, timedelta, timezone

import pytest

from arcana.data.errors import SaveLoadError
from arcana.domain.conditions import AllOf, AttributeCompare, ChainTriggered, Not, Visited
from arcana.domain.defs import ConsequenceDef
from arcana.domain.player import Journey, PendingConsequence, PlayerState
from arcana.services.save_service import PlayerSaveCodec


def _sample_player() -> PlayerState:
    created = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)
    player = PlayerState(
        id="player-1",
        display_name="Mira",
        attributes={"gold": 40, "strength": 11},
        progress={"world_state:market:mood": "tense", "inventory:sealed_crate": "1"},
        subscription_tier="premium",
        subscription_expires_at=created + timedelta(days=30),
        created_at=created,
        turns={"market": 3},
        version=4,
    )
    player.pending.append(
        PendingConsequence(
            player_id=player.id,
            story_id="market",
            due_turn=5,
            consequence=ConsequenceDef.create(
                "suspicion", "cumulative", "suspicion", "10:50", delay_turns=2, condition="chain:rebel_contact"
            ),
        )
    )
    journey = Journey(story_id="market", started_at=created)
    journey.record_step(1, "market_square", "listen_carefully")
    journey.visited_beats.add("mysterious_offer")
    journey.completed_at = created + timedelta(minutes=5)
    journey.ending_id = "honest_trade"
    journey.unlock_arc("rebellion")
    player.journeys["market"] = journey
    return player


def test_round_trip_restores_player_state() -> None:
    codec = PlayerSaveCodec()
    player = _sample_player()

    payload = json.loads(json.dumps(codec.serialize(player)))
    restored = codec.deserialize(payload)

    assert payload["save_version"] == PlayerSaveCodec.SAVE_VERSION
    assert payload["metadata"]["player_id"] == "player-1"
    assert restored.id == player.id
    assert restored.display_name == "Mira"
    assert restored.attributes == player.attributes
    assert restored.progress == player.progress
    assert restored.subscription_tier == "premium"
    assert restored.subscription_expires_at == player.subscription_expires_at
    assert restored.created_at == player.created_at
    assert restored.turns == {"market": 3}
    assert restored.version == 4


def test_round_trip_keeps_pending_consequences() -> None:
    codec = PlayerSaveCodec()

    restored = codec.deserialize(codec.serialize(_sample_player()))

    assert len(restored.pending) == 1
    entry = restored.pending[0]
    assert entry.player_id == "player-1"
    assert entry.story_id == "market"
    assert entry.due_turn == 5
    assert entry.consequence.id == "suspicion"
    assert entry.consequence.delay_turns == 2
    assert entry.consequence.condition == ChainTriggered("rebel_contact")


def test_round_trip_keeps_journeys() -> None:
    codec = PlayerSaveCodec()

    journey = codec.deserialize(codec.serialize(_sample_player())).journeys["market"]

    assert journey.is_completed
    assert [(step.turn, step.beat_id, step.choice_id) for step in journey.steps] == [
        (1, "market_square", "listen_carefully")
    ]
    assert journey.visited_beats == {"market_square", "mysterious_offer"}
    assert journey.ending_id == "honest_trade"
    assert journey.is_arc_unlocked("rebellion")


def test_unsupported_version_is_rejected() -> None:
    codec = PlayerSaveCodec()
    payload = codec.serialize(_sample_player())
    payload["save_version"] = 99

    with pytest.raises(SaveLoadError):
        codec.deserialize(payload)


def test_missing_player_section_is_rejected() -> None:
    codec = PlayerSaveCodec()

    with pytest.raises(SaveLoadError):
        codec.deserialize({"save_version": PlayerSaveCodec.SAVE_VERSION})


@pytest.mark.parametrize(
    "field, value",
    [
        ("attributes", {"gold": "lots"}),
        ("subscription_tier", "platinum"),
        ("created_at", "yesterday"),
        ("pending", [{"story_id": "market", "due_turn": 2, "consequence": {"kind": "teleport"}}]),
    ],
)
def test_corrupt_fields_are_rejected(field: str, value: object) -> None:
    codec = PlayerSaveCodec()
    payload = codec.serialize(_sample_player())
    payload["player"][field] = value

    with pytest.raises(SaveLoadError):
        codec.deserialize(payload)


def test_round_trip_keeps_composite_pending_condition() -> None:
    codec = PlayerSaveCodec()
    player = _sample_player()
    composite = AllOf((AttributeCompare("gold", "gte", 30), Not(Visited("guard_post"))))
    player.pending = [
        PendingConsequence(
            player_id=player.id,
            story_id="market",
            due_turn=6,
            consequence=ConsequenceDef.create("bribe", "attribute", "gold", "-30", delay_turns=1, condition=composite),
        )
    ]

    payload = json.loads(json.dumps(codec.serialize(player)))
    restored = codec.deserialize(payload)

    assert payload["player"]["pending"][0]["consequence"]["condition"] == {
        "all": ["attribute:gold:gte:30", {"not": "visited:guard_post"}]
    }
    assert restored.pending[0].consequence.condition == composite


def test_pending_condition_of_wrong_type_is_rejected() -> None:
    codec = PlayerSaveCodec()
    payload = codec.serialize(_sample_player())
    payload["player"]["pending"][0]["consequence"]["condition"] = 42

    with pytest.raises(SaveLoadError):
        codec.deserialize(payload)
