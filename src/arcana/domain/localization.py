"""Localized text with language fallback and variable substitution."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Mapping

DEFAULT_LANGUAGE = "en"
SUPPORTED_LANGUAGES: Dict[str, str] = {
    "en": "English",
    "ru": "Русский",
}

_TOKEN_PATTERN = re.compile(r"\{([^}]+)\}")


def normalize_language(code: str | None, default: str = DEFAULT_LANGUAGE) -> str:
    """Return a lower-cased language code, falling back to the default."""
    if not code:
        return default
    return code.strip().lower() or default


def substitute_variables(text: str, variables: Mapping[str, object] | None) -> str:
    """Replace {name} tokens using the supplied variables.

    Tokens without a matching variable are left untouched.
    """
    if not variables:
        return text

    def _replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in variables and variables[name] is not None:
            return str(variables[name])
        return match.group(0)

    return _TOKEN_PATTERN.sub(_replace, text)


@dataclass(frozen=True, slots=True)
class LocalizedText:
    """Text stored per language code."""

    texts: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def of(cls, text: str, language: str = DEFAULT_LANGUAGE) -> "LocalizedText":
        return cls(texts={normalize_language(language): text})

    def get(self, language: str) -> str | None:
        return self.texts.get(normalize_language(language))

    def has(self, language: str) -> bool:
        return normalize_language(language) in self.texts

    def resolve(
        self,
        language: str = DEFAULT_LANGUAGE,
        variables: Mapping[str, object] | None = None,
        fallback: str = DEFAULT_LANGUAGE,
    ) -> str:
        """Return text for the language, the fallback, or any stored language."""
        text = self.get(language)
        if text is None:
            text = self.get(fallback)
        if text is None and self.texts:
            text = next(iter(self.texts.values()))
        if text is None:
            return ""
        return substitute_variables(text, variables)
