"""Typed consequence payloads decoded from their authored string form."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Union

from arcana.core.types import ConsequenceKind
from arcana.errors import MalformedConsequencePayload

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SetValue:
    """Replace the target with an absolute value."""

    amount: int


@dataclass(frozen=True, slots=True)
class AddValue:
    """Add a signed delta to the target."""

    delta: int


@dataclass(frozen=True, slots=True)
class CumulativeValue:
    """Add a delta and cap upward growth at ``max_value`` when present."""

    delta: int
    max_value: int | None = None


@dataclass(frozen=True, slots=True)
class TextValue:
    """Opaque text written as-is (world state, events, chain triggers)."""

    text: str


ConsequencePayload = Union[SetValue, AddValue, CumulativeValue, TextValue]


def parse_int(raw: str, context: str) -> int:
    """Parse an integer or raise MalformedConsequencePayload."""
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise MalformedConsequencePayload(f"{context}: '{raw}' is not an integer.") from exc


def decode_payload(kind: ConsequenceKind, value: str, consequence_id: str = "?") -> ConsequencePayload:
    """Decode an authored value string for a consequence kind.

    Malformed numbers degrade to 0 and are logged, never raised.
    """
    context = f"consequence '{consequence_id}' ({kind})"
    if kind == "attribute":
        return _decode_attribute(value, context)
    if kind in ("relationship", "faction"):
        return AddValue(_lenient_int(value, context))
    if kind == "cumulative":
        return _decode_cumulative(value, context)
    return TextValue(value)


def encode_payload(payload: ConsequencePayload) -> str:
    """Return the authored string form of a payload."""
    if isinstance(payload, SetValue):
        return str(payload.amount)
    if isinstance(payload, AddValue):
        return f"+{payload.delta}" if payload.delta >= 0 else str(payload.delta)
    if isinstance(payload, CumulativeValue):
        max_text = "" if payload.max_value is None else str(payload.max_value)
        return f"{payload.delta}:{max_text}"
    return payload.text


def _decode_attribute(value: str, context: str) -> ConsequencePayload:
    text = value.strip()
    if text.startswith("+"):
        return AddValue(_lenient_int(text[1:], context))
    if text.startswith("-"):
        return AddValue(-_lenient_int(text[1:], context))
    return SetValue(_lenient_int(text, context))


def _decode_cumulative(value: str, context: str) -> CumulativeValue:
    delta_text, _, max_text = value.partition(":")
    delta = _lenient_int(delta_text, context)
    max_value: int | None = None
    if max_text.strip():
        try:
            max_value = parse_int(max_text, context)
        except MalformedConsequencePayload as exc:
            logger.warning("Ignoring malformed cumulative cap: %s", exc)
    return CumulativeValue(delta=delta, max_value=max_value)


def _lenient_int(raw: str, context: str) -> int:
    try:
        return parse_int(raw, context)
    except MalformedConsequencePayload as exc:
        logger.warning("Malformed consequence payload, using 0: %s", exc)
        return 0


def check_payload(kind: ConsequenceKind, value: str, consequence_id: str = "?") -> None:
    """Raise MalformedConsequencePayload if ``value`` would not decode cleanly."""
    context = f"consequence '{consequence_id}' ({kind})"
    if kind == "attribute":
        text = value.strip()
        if text[:1] in ("+", "-"):
            text = text[1:]
        parse_int(text, context)
    elif kind in ("relationship", "faction"):
        parse_int(value, context)
    elif kind == "cumulative":
        delta_text, _, max_text = value.partition(":")
        parse_int(delta_text, context)
        if max_text.strip():
            parse_int(max_text, context)
