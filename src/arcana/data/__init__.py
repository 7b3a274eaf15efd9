"""Data layer utilities for loading stories and persisting players."""

from .errors import DataError, DataLoadError, DataValidationError, SaveLoadError
from .paths import get_games_path, get_repo_root

__all__ = [
    "DataError",
    "DataLoadError",
    "DataValidationError",
    "SaveLoadError",
    "get_games_path",
    "get_repo_root",
]
