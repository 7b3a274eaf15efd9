"""Base repository implementation for per-file JSON definitions."""
from __future__ import annotations

from pathlib import Path
from typing import Generic, List, TypeVar

from arcana.data.errors import DataValidationError
from arcana.data.json_loader import load_json

T = TypeVar("T")


class RepositoryBase(Generic[T]):
    """Loads one definition per ``<id>.json`` file inside a directory."""

    def __init__(self, directory: Path | str) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def _get_file_path(self, def_id: str) -> Path:
        return self._directory / f"{def_id}.json"

    def _list_ids(self) -> List[str]:
        if not self._directory.is_dir():
            return []
        return sorted(path.stem for path in self._directory.glob("*.json") if path.is_file())

    def _load_raw(self, def_id: str) -> dict[str, object]:
        file_path = self._get_file_path(def_id)
        raw = load_json(file_path)
        if not isinstance(raw, dict):
            raise DataValidationError(f"Expected top-level object in {file_path}")
        return raw

    @staticmethod
    def _require_mapping(value: object, context: str) -> dict[str, object]:
        if not isinstance(value, dict):
            raise DataValidationError(f"{context} must be an object/dict.")
        return value

    @staticmethod
    def _require_str(value: object, context: str) -> str:
        if not isinstance(value, str):
            raise DataValidationError(f"{context} must be a string.")
        return value

    @staticmethod
    def _require_int(value: object, context: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int):
            raise DataValidationError(f"{context} must be an integer.")
        return value

    @staticmethod
    def _str_list(value: object, context: str) -> List[str]:
        if value is None:
            return []
        if not isinstance(value, list) or not all(isinstance(entry, str) for entry in value):
            raise DataValidationError(f"{context} must be a list of strings.")
        return list(value)

    @staticmethod
    def _str_mapping(value: object, context: str) -> dict[str, str]:
        if value is None:
            return {}
        if not isinstance(value, dict):
            raise DataValidationError(f"{context} must be an object/dict.")
        return {str(key): str(entry) for key, entry in value.items()}
