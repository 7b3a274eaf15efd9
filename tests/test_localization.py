from types import MappingProxyType

from arcana.domain.localization import LocalizedText, normalize_language, substitute_variables


def test_normalize_language() -> None:
    assert normalize_language(" RU ") == "ru"
    assert normalize_language(None) == "en"
    assert normalize_language("   ", default="ru") == "ru"


def test_resolve_prefers_requested_language() -> None:
    text = LocalizedText(texts=MappingProxyType({"en": "Hello", "ru": "Привет"}))

    assert text.resolve("ru") == "Привет"
    assert text.resolve("RU") == "Привет"


def test_resolve_falls_back_to_fallback_then_any_language() -> None:
    text = LocalizedText(texts=MappingProxyType({"ru": "Привет"}))

    assert text.resolve("de", fallback="ru") == "Привет"
    assert text.resolve("de") == "Привет"
    assert LocalizedText().resolve("en") == ""


def test_variables_are_substituted_and_unknown_tokens_kept() -> None:
    text = LocalizedText.of("Welcome, {playerName}. You owe {debt} gold to {lender}.")

    assert text.resolve("en", {"playerName": "Mira", "debt": 40}) == (
        "Welcome, Mira. You owe 40 gold to {lender}."
    )


def test_substitute_without_variables_returns_text() -> None:
    assert substitute_variables("{name} waits", None) == "{name} waits"
    assert substitute_variables("{name} waits", {"name": None}) == "{name} waits"
