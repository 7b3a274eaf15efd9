"""Serialization helpers for player persistence."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Set

from arcana.core.types import CONSEQUENCE_KINDS, SUBSCRIPTION_TIERS, SubscriptionTier
from arcana.data.errors import SaveLoadError
from arcana.data.repositories import consequence_to_payload
from arcana.domain.defs import ConsequenceDef, build_condition
from arcana.domain.player import Journey, JourneyStep, PendingConsequence, PlayerState, utc_now

SavePayload = Dict[str, Any]


class PlayerSaveCodec:
    """Converts player state to/from a validated, versioned payload."""

    SAVE_VERSION = 1

    def serialize(self, player: PlayerState) -> SavePayload:
        """Return a JSON-serializable payload for disk persistence."""
        return {
            "save_version": self.SAVE_VERSION,
            "metadata": {
                "player_id": player.id,
                "display_name": player.display_name,
                "saved_at": utc_now().isoformat(),
            },
            "player": self._serialize_player(player),
        }

    def deserialize(self, payload: Mapping[str, Any]) -> PlayerState:
        """Rehydrate a PlayerState from a persisted payload."""
        if not isinstance(payload, Mapping):
            raise SaveLoadError("Save data must be a JSON object.")
        version = payload.get("save_version")
        if version != self.SAVE_VERSION:
            raise SaveLoadError(f"Unsupported save version: {version!r}.")
        data = self._require_dict(payload.get("player"), "player")
        player_id = self._require_str(data.get("id"), "player.id")
        player = PlayerState(
            id=player_id,
            display_name=self._require_str(data.get("display_name", ""), "player.display_name"),
            attributes=self._coerce_int_dict(data.get("attributes"), "player.attributes"),
            progress=self._coerce_str_dict(data.get("progress"), "player.progress"),
            subscription_tier=self._require_tier(data.get("subscription_tier", "free")),
            subscription_expires_at=self._coerce_optional_datetime(
                data.get("subscription_expires_at"), "player.subscription_expires_at"
            ),
            created_at=self._require_datetime(data.get("created_at"), "player.created_at"),
            turns=self._coerce_int_dict(data.get("turns"), "player.turns"),
            version=self._require_int(data.get("version", 0), "player.version"),
        )
        player.pending = self._coerce_pending(data.get("pending"), player_id)
        player.journeys = self._coerce_journeys(data.get("journeys"))
        return player

    def _serialize_player(self, player: PlayerState) -> Dict[str, Any]:
        expires = player.subscription_expires_at
        return {
            "id": player.id,
            "display_name": player.display_name,
            "attributes": dict(player.attributes),
            "progress": dict(player.progress),
            "subscription_tier": player.subscription_tier,
            "subscription_expires_at": expires.isoformat() if expires is not None else None,
            "created_at": player.created_at.isoformat(),
            "turns": dict(player.turns),
            "version": player.version,
            "pending": [
                {
                    "story_id": entry.story_id,
                    "due_turn": entry.due_turn,
                    "consequence": consequence_to_payload(entry.consequence),
                }
                for entry in player.pending
            ],
            "journeys": {
                story_id: self._serialize_journey(journey) for story_id, journey in player.journeys.items()
            },
        }

    @staticmethod
    def _serialize_journey(journey: Journey) -> Dict[str, Any]:
        return {
            "started_at": journey.started_at.isoformat(),
            "completed_at": journey.completed_at.isoformat() if journey.completed_at else None,
            "steps": [
                {"turn": step.turn, "beat_id": step.beat_id, "choice_id": step.choice_id}
                for step in journey.steps
            ],
            "visited_beats": sorted(journey.visited_beats),
            "ending_id": journey.ending_id,
            "unlocked_arcs": sorted(journey.unlocked_arcs),
        }

    def _coerce_pending(self, value: Any, player_id: str) -> List[PendingConsequence]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise SaveLoadError("player.pending must be a list.")
        pending: List[PendingConsequence] = []
        for index, entry in enumerate(value):
            context = f"player.pending[{index}]"
            entry_map = self._require_dict(entry, context)
            pending.append(
                PendingConsequence(
                    player_id=player_id,
                    story_id=self._require_str(entry_map.get("story_id"), f"{context}.story_id"),
                    due_turn=self._require_int(entry_map.get("due_turn"), f"{context}.due_turn"),
                    consequence=self._coerce_consequence(entry_map.get("consequence"), f"{context}.consequence"),
                )
            )
        return pending

    def _coerce_consequence(self, value: Any, context: str) -> ConsequenceDef:
        data = self._require_dict(value, context)
        kind = self._require_str(data.get("kind"), f"{context}.kind")
        if kind not in CONSEQUENCE_KINDS:
            raise SaveLoadError(f"{context}.kind '{kind}' is not recognised.")
        raw_condition = data.get("condition")
        if raw_condition is not None and not isinstance(raw_condition, (str, Mapping)):
            raise SaveLoadError(f"{context}.condition must be a string or an object if provided.")
        return ConsequenceDef.create(
            id=self._require_str(data.get("id"), f"{context}.id"),
            kind=kind,  # type: ignore[arg-type]
            target=self._require_str(data.get("target"), f"{context}.target"),
            value=self._require_str(data.get("value"), f"{context}.value"),
            delay_turns=self._require_int(data.get("delay_turns", 0), f"{context}.delay_turns"),
            condition=build_condition(raw_condition),
        )

    def _coerce_journeys(self, value: Any) -> Dict[str, Journey]:
        if value is None:
            return {}
        mapping = self._require_dict(value, "player.journeys")
        journeys: Dict[str, Journey] = {}
        for story_id, raw in mapping.items():
            context = f"player.journeys['{story_id}']"
            data = self._require_dict(raw, context)
            raw_steps = data.get("steps", [])
            if not isinstance(raw_steps, list):
                raise SaveLoadError(f"{context}.steps must be a list.")
            steps: List[JourneyStep] = []
            for index, entry in enumerate(raw_steps):
                step = self._require_dict(entry, f"{context}.steps[{index}]")
                steps.append(
                    JourneyStep(
                        turn=self._require_int(step.get("turn"), f"{context}.steps[{index}].turn"),
                        beat_id=self._require_str(step.get("beat_id"), f"{context}.steps[{index}].beat_id"),
                        choice_id=self._require_str(step.get("choice_id"), f"{context}.steps[{index}].choice_id"),
                    )
                )
            ending_id = data.get("ending_id")
            if ending_id is not None:
                ending_id = self._require_str(ending_id, f"{context}.ending_id")
            journeys[story_id] = Journey(
                story_id=story_id,
                started_at=self._require_datetime(data.get("started_at"), f"{context}.started_at"),
                completed_at=self._coerce_optional_datetime(data.get("completed_at"), f"{context}.completed_at"),
                steps=steps,
                visited_beats=self._str_set(data.get("visited_beats"), f"{context}.visited_beats"),
                ending_id=ending_id,
                unlocked_arcs=self._str_set(data.get("unlocked_arcs"), f"{context}.unlocked_arcs"),
            )
        return journeys

    @staticmethod
    def _require_tier(value: Any) -> SubscriptionTier:
        if value not in SUBSCRIPTION_TIERS:
            raise SaveLoadError(f"player.subscription_tier must be one of {SUBSCRIPTION_TIERS}.")
        return value

    @staticmethod
    def _require_str(value: Any, context: str) -> str:
        if not isinstance(value, str):
            raise SaveLoadError(f"{context} must be a string.")
        return value

    @staticmethod
    def _require_int(value: Any, context: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise SaveLoadError(f"{context} must be an integer.")
        return value

    @staticmethod
    def _require_dict(value: Any, context: str) -> Dict[str, Any]:
        if not isinstance(value, Mapping):
            raise SaveLoadError(f"{context} must be an object.")
        return dict(value)

    def _require_datetime(self, value: Any, context: str) -> datetime:
        text = self._require_str(value, context)
        try:
            return datetime.fromisoformat(text)
        except ValueError as exc:
            raise SaveLoadError(f"{context} is not an ISO timestamp.") from exc

    def _coerce_optional_datetime(self, value: Any, context: str) -> datetime | None:
        if value is None:
            return None
        return self._require_datetime(value, context)

    @staticmethod
    def _str_set(value: Any, context: str) -> Set[str]:
        if value is None:
            return set()
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise SaveLoadError(f"{context} must be a list of strings.")
        return set(value)

    def _coerce_int_dict(self, value: Any, context: str) -> Dict[str, int]:
        if value is None:
            return {}
        mapping = self._require_dict(value, context)
        return {
            self._require_str(key, f"{context} key"): self._require_int(entry, f"{context}['{key}']")
            for key, entry in mapping.items()
        }

    def _coerce_str_dict(self, value: Any, context: str) -> Dict[str, str]:
        if value is None:
            return {}
        mapping = self._require_dict(value, context)
        return {
            self._require_str(key, f"{context} key"): self._require_str(entry, f"{context}['{key}']")
            for key, entry in mapping.items()
        }
