"""Custom exceptions for story loading and player persistence."""


class DataError(Exception):
    """Base exception for the data layer."""


class DataLoadError(DataError):
    """Raised when JSON files are missing or invalid."""


class DataValidationError(DataError):
    """Raised when JSON content fails structural validation."""


class SaveLoadError(DataError):
    """Raised when a player save payload cannot be read back."""
