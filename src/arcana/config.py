"""Application configuration helpers."""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from arcana.data.paths import get_games_path
from arcana.domain.localization import DEFAULT_LANGUAGE, SUPPORTED_LANGUAGES, normalize_language
from arcana.services.consequence_engine import DEFAULT_MAX_CHAIN_PASSES

logger = logging.getLogger(__name__)

ENV_PREFIX = "ARCANA_"


def get_user_data_dir() -> Path:
    """Return the per-user data directory."""
    if os.name == "nt":
        base = os.environ.get("APPDATA")
        if base:
            return Path(base) / "Arcana"
        return Path.home() / "Arcana"
    return Path.home() / ".config" / "arcana"


def get_default_config_path() -> Path:
    """Return the default per-user config path."""
    return get_user_data_dir() / "config.json"


def get_players_dir() -> Path:
    """Return the per-user player save directory."""
    return get_user_data_dir() / "players"


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Runtime settings for the story core."""

    games_directory: Path = get_games_path()
    players_directory: Path = get_players_dir()
    default_language: str = DEFAULT_LANGUAGE
    fallback_language: str = DEFAULT_LANGUAGE
    max_chain_passes: int = DEFAULT_MAX_CHAIN_PASSES
    log_level: str = "INFO"
    log_file: Path | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], base: "AppConfig | None" = None) -> "AppConfig":
        """Overlay recognised keys onto ``base``; invalid values keep the base value."""
        config = base or cls()
        updates: Dict[str, Any] = {}
        for key in ("games_directory", "players_directory"):
            value = raw.get(key)
            if isinstance(value, str) and value.strip():
                updates[key] = Path(value).expanduser()
        for key in ("default_language", "fallback_language"):
            value = raw.get(key)
            if not isinstance(value, str) or not value.strip():
                continue
            language = normalize_language(value)
            if language in SUPPORTED_LANGUAGES:
                updates[key] = language
            else:
                logger.warning("Ignoring unsupported %s '%s'", key, value)
        passes = _coerce_positive_int(raw.get("max_chain_passes"))
        if passes is not None:
            updates["max_chain_passes"] = passes
        level = raw.get("log_level")
        if isinstance(level, str) and level.strip():
            updates["log_level"] = level.strip().upper()
        log_file = raw.get("log_file")
        if isinstance(log_file, str) and log_file.strip():
            updates["log_file"] = Path(log_file).expanduser()
        return replace(config, **updates)

    @classmethod
    def from_environment(
        cls, environ: Mapping[str, str] | None = None, base: "AppConfig | None" = None
    ) -> "AppConfig":
        """Overlay ``ARCANA_<FIELD>`` environment variables onto ``base``."""
        env = os.environ if environ is None else environ
        raw = {
            field.name: env[ENV_PREFIX + field.name.upper()]
            for field in fields(cls)
            if ENV_PREFIX + field.name.upper() in env
        }
        return cls.from_mapping(raw, base)

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        for key, value in payload.items():
            if isinstance(value, Path):
                payload[key] = str(value)
        return payload


def load_config(path: Path | None = None) -> AppConfig:
    """Load config from disk or return defaults."""
    config_path = path or get_default_config_path()
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return AppConfig()
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", config_path, exc)
        return AppConfig()
    if not isinstance(raw, dict):
        logger.warning("Ignoring config %s: expected a JSON object", config_path)
        return AppConfig()
    return AppConfig.from_mapping(raw)


def save_config(config: AppConfig, path: Path | None = None) -> None:
    """Persist config to disk."""
    config_path = path or get_default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(config.to_payload(), indent=2, sort_keys=True), encoding="utf-8")


def _coerce_positive_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, str):
        try:
            value = int(value.strip())
        except ValueError:
            return None
    if isinstance(value, int) and value > 0:
        return value
    return None
