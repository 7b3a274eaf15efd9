"""Player persistence backends."""
from __future__ import annotations

import copy
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Protocol
from urllib.parse import quote, unquote

from arcana.data.errors import SaveLoadError
from arcana.data.json_loader import load_json, write_json_atomic
from arcana.domain.player import PlayerState
from arcana.errors import StaleStateError

logger = logging.getLogger(__name__)


class PlayerStore(Protocol):
    """Storage contract used by the progression service."""

    def load(self, player_id: str) -> PlayerState | None:
        ...

    def save(self, player: PlayerState) -> None:
        ...

    def delete(self, player_id: str) -> None:
        ...


class PlayerCodec(Protocol):
    def serialize(self, player: PlayerState) -> Dict[str, Any]:
        ...

    def deserialize(self, payload: Mapping[str, Any]) -> PlayerState:
        ...


def _check_version(player: PlayerState, stored_version: int | None) -> None:
    expected = 0 if stored_version is None else stored_version
    if player.version != expected:
        raise StaleStateError(
            f"Player '{player.id}' was saved concurrently (have version {player.version}, stored {expected})."
        )


class InMemoryPlayerStore:
    """Keeps independent copies of player state in a dictionary."""

    def __init__(self) -> None:
        self._players: Dict[str, PlayerState] = {}
        self._lock = threading.Lock()

    def load(self, player_id: str) -> PlayerState | None:
        with self._lock:
            stored = self._players.get(player_id)
            return copy.deepcopy(stored) if stored is not None else None

    def save(self, player: PlayerState) -> None:
        """Persist a copy of the player and bump its version."""
        with self._lock:
            stored = self._players.get(player.id)
            _check_version(player, stored.version if stored is not None else None)
            player.version += 1
            self._players[player.id] = copy.deepcopy(player)

    def delete(self, player_id: str) -> None:
        with self._lock:
            self._players.pop(player_id, None)

    def player_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._players)


class JsonPlayerStore:
    """Handles one JSON file per player on disk."""

    def __init__(self, base_dir: Path | str, codec: PlayerCodec) -> None:
        self._base_dir = Path(base_dir)
        self._codec = codec
        self._lock = threading.Lock()

    @property
    def directory(self) -> Path:
        return self._base_dir

    def load(self, player_id: str) -> PlayerState | None:
        """Return the stored player, or None when no save exists."""
        with self._lock:
            return self._read(player_id)

    def save(self, player: PlayerState) -> None:
        """Write the player through an atomic replace and bump its version."""
        with self._lock:
            stored = self._read(player.id)
            _check_version(player, stored.version if stored is not None else None)
            player.version += 1
            try:
                write_json_atomic(self._player_path(player.id), self._codec.serialize(player))
            except OSError:
                player.version -= 1
                raise
        logger.debug("Saved player %s at version %d", player.id, player.version)

    def delete(self, player_id: str) -> None:
        """Delete the player's save file if it exists."""
        with self._lock:
            try:
                self._player_path(player_id).unlink()
            except FileNotFoundError:
                return

    def player_ids(self) -> List[str]:
        if not self._base_dir.exists():
            return []
        return sorted(unquote(path.stem) for path in self._base_dir.glob("*.json"))

    def _read(self, player_id: str) -> PlayerState | None:
        path = self._player_path(player_id)
        if not path.exists():
            return None
        payload = load_json(path)
        if not isinstance(payload, dict):
            raise SaveLoadError(f"Save file for player '{player_id}' must contain a JSON object.")
        return self._codec.deserialize(payload)

    def _player_path(self, player_id: str) -> Path:
        return self._base_dir / f"{quote(player_id, safe='')}.json"
