"""Parsed predicate trees used to gate choices and consequences.

Stored predicates are single namespaced clauses such as
``attribute:strength:gte:10`` or ``visited:cellar``. They are parsed once into
one of the condition records below. Composite records (``AllOf``, ``AnyOf``,
``Not``) are produced by the authoring builder and persist through
``condition_to_payload`` as nested ``{"all": [...]}`` / ``{"any": [...]}`` /
``{"not": ...}`` objects.
"""
from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Mapping, Tuple, Union

from arcana.core.types import COMPARISON_OPS, ComparisonOp


@dataclass(frozen=True, slots=True)
class AttributeCompare:
    name: str
    op: ComparisonOp
    value: int


@dataclass(frozen=True, slots=True)
class RelationshipCompare:
    npc_id: str
    op: ComparisonOp
    value: int


@dataclass(frozen=True, slots=True)
class FactionCompare:
    faction_id: str
    op: ComparisonOp
    value: int


@dataclass(frozen=True, slots=True)
class FactionMember:
    faction_id: str


@dataclass(frozen=True, slots=True)
class ItemPresent:
    item_id: str


@dataclass(frozen=True, slots=True)
class ItemCompare:
    item_id: str
    op: ComparisonOp
    value: int


@dataclass(frozen=True, slots=True)
class WorldEquals:
    key: str
    value: str


@dataclass(frozen=True, slots=True)
class Visited:
    beat_id: str


@dataclass(frozen=True, slots=True)
class ChoiceMade:
    choice_id: str


@dataclass(frozen=True, slots=True)
class ChainTriggered:
    chain_id: str


@dataclass(frozen=True, slots=True)
class EndingReached:
    ending_id: str


@dataclass(frozen=True, slots=True)
class ArcUnlocked:
    arc_id: str


@dataclass(frozen=True, slots=True)
class UnknownCondition:
    """A predicate that could not be understood. Always evaluates False."""

    source: str


@dataclass(frozen=True, slots=True)
class AllOf:
    clauses: Tuple["Condition", ...]


@dataclass(frozen=True, slots=True)
class AnyOf:
    clauses: Tuple["Condition", ...]


@dataclass(frozen=True, slots=True)
class Not:
    clause: "Condition"


Condition = Union[
    AttributeCompare,
    RelationshipCompare,
    FactionCompare,
    FactionMember,
    ItemPresent,
    ItemCompare,
    WorldEquals,
    Visited,
    ChoiceMade,
    ChainTriggered,
    EndingReached,
    ArcUnlocked,
    UnknownCondition,
    AllOf,
    AnyOf,
    Not,
]


def compare(actual: int, op: ComparisonOp, expected: int) -> bool:
    """Compare two integers using one of the predicate operators."""
    if op == "eq":
        return actual == expected
    if op == "gt":
        return actual > expected
    if op == "lt":
        return actual < expected
    if op == "gte":
        return actual >= expected
    if op == "lte":
        return actual <= expected
    return False


def is_blank(predicate: str | None) -> bool:
    return predicate is None or not predicate.strip()


@lru_cache(maxsize=4096)
def parse_condition(predicate: str) -> Condition:
    """Parse a stored predicate string.

    Never raises: anything unrecognised becomes an ``UnknownCondition``.
    """
    text = predicate.strip()
    namespace, _, rest = text.partition(":")
    if not rest:
        return UnknownCondition(text)
    parts = rest.split(":")

    if namespace == "attribute":
        parsed = _split_comparison(parts)
        if parsed is None:
            return UnknownCondition(text)
        return AttributeCompare(*parsed)
    if namespace == "relationship":
        parsed = _split_comparison(parts)
        if parsed is None:
            return UnknownCondition(text)
        return RelationshipCompare(*parsed)
    if namespace == "faction":
        if len(parts) == 2 and parts[1] == "member" and parts[0]:
            return FactionMember(parts[0])
        parsed = _split_comparison(parts)
        if parsed is None:
            return UnknownCondition(text)
        return FactionCompare(*parsed)
    if namespace == "item":
        if len(parts) == 1 and parts[0]:
            return ItemPresent(parts[0])
        parsed = _split_comparison(parts)
        if parsed is None:
            return UnknownCondition(text)
        return ItemCompare(*parsed)
    if namespace == "world":
        if len(parts) < 2 or not parts[0]:
            return UnknownCondition(text)
        return WorldEquals(key=parts[0], value=":".join(parts[1:]))
    if namespace == "visited":
        return Visited(rest)
    if namespace == "choice":
        return ChoiceMade(rest)
    if namespace == "chain":
        return ChainTriggered(rest)
    if namespace == "ending":
        return EndingReached(rest)
    if namespace == "arc":
        return ArcUnlocked(rest)
    return UnknownCondition(text)


def _split_comparison(parts: list[str]) -> tuple[str, ComparisonOp, int] | None:
    if len(parts) < 3:
        return None
    subject = ":".join(parts[:-2])
    op = parts[-2]
    if not subject or op not in COMPARISON_OPS:
        return None
    try:
        value = int(parts[-1])
    except ValueError:
        return None
    return subject, op, value  # type: ignore[return-value]


def describe_condition(condition: Condition) -> str:
    """Return a stable text form, mainly for logs and validation output."""
    if isinstance(condition, AttributeCompare):
        return f"attribute:{condition.name}:{condition.op}:{condition.value}"
    if isinstance(condition, RelationshipCompare):
        return f"relationship:{condition.npc_id}:{condition.op}:{condition.value}"
    if isinstance(condition, FactionCompare):
        return f"faction:{condition.faction_id}:{condition.op}:{condition.value}"
    if isinstance(condition, FactionMember):
        return f"faction:{condition.faction_id}:member"
    if isinstance(condition, ItemPresent):
        return f"item:{condition.item_id}"
    if isinstance(condition, ItemCompare):
        return f"item:{condition.item_id}:{condition.op}:{condition.value}"
    if isinstance(condition, WorldEquals):
        return f"world:{condition.key}:{condition.value}"
    if isinstance(condition, Visited):
        return f"visited:{condition.beat_id}"
    if isinstance(condition, ChoiceMade):
        return f"choice:{condition.choice_id}"
    if isinstance(condition, ChainTriggered):
        return f"chain:{condition.chain_id}"
    if isinstance(condition, EndingReached):
        return f"ending:{condition.ending_id}"
    if isinstance(condition, ArcUnlocked):
        return f"arc:{condition.arc_id}"
    if isinstance(condition, UnknownCondition):
        return condition.source
    if isinstance(condition, AllOf):
        return "(" + " AND ".join(describe_condition(c) for c in condition.clauses) + ")"
    if isinstance(condition, AnyOf):
        return "(" + " OR ".join(describe_condition(c) for c in condition.clauses) + ")"
    return f"NOT {describe_condition(condition.clause)}"


def contains_unknown(condition: Condition) -> bool:
    """Return True when any clause of the tree is unrecognised."""
    if isinstance(condition, UnknownCondition):
        return True
    if isinstance(condition, (AllOf, AnyOf)):
        return any(contains_unknown(clause) for clause in condition.clauses)
    if isinstance(condition, Not):
        return contains_unknown(condition.clause)
    return False


def is_satisfiable(condition: Condition | None) -> bool:
    """Return True when some player state could make the condition hold.

    Conjunctions are approximated clause by clause.
    """
    if condition is None:
        return True
    if isinstance(condition, UnknownCondition):
        return False
    if isinstance(condition, AllOf):
        return all(is_satisfiable(clause) for clause in condition.clauses)
    if isinstance(condition, AnyOf):
        return any(is_satisfiable(clause) for clause in condition.clauses)
    return True


def condition_to_payload(condition: Condition) -> Any:
    """Return the JSON form of a condition; the inverse of ``condition_from_payload``."""
    if isinstance(condition, AllOf):
        return {"all": [condition_to_payload(clause) for clause in condition.clauses]}
    if isinstance(condition, AnyOf):
        return {"any": [condition_to_payload(clause) for clause in condition.clauses]}
    if isinstance(condition, Not):
        return {"not": condition_to_payload(condition.clause)}
    return describe_condition(condition)


def condition_from_payload(raw: Any) -> Condition:
    """Rebuild a condition from its JSON form.

    Never raises: a structure that is not understood becomes an
    ``UnknownCondition`` so it fails closed like any other bad predicate.
    """
    if isinstance(raw, str):
        return parse_condition(raw)
    if isinstance(raw, Mapping) and len(raw) == 1:
        key, value = next(iter(raw.items()))
        if key in ("all", "any") and isinstance(value, list) and value:
            clauses = tuple(condition_from_payload(entry) for entry in value)
            return AllOf(clauses) if key == "all" else AnyOf(clauses)
        if key == "not":
            return Not(condition_from_payload(value))
    return UnknownCondition(repr(raw))
