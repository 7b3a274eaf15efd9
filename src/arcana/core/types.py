"""Shared type aliases for the core and domain layers."""
from typing import Dict, Literal, Tuple

ConsequenceKind = Literal[
    "attribute",
    "relationship",
    "faction",
    "world_state",
    "event",
    "chain_reaction",
    "cumulative",
]
ComparisonOp = Literal["eq", "gt", "lt", "gte", "lte"]
SubscriptionTier = Literal["free", "basic", "premium"]
ChoiceWeight = Literal["barely_visible", "normal", "prominent", "very_prominent"]
OutcomeKind = Literal["critical_success", "critical_failure", "success", "failure"]
Severity = Literal["ERROR", "WARN"]
EndingCategory = Literal["heroic", "tragic", "neutral", "evil", "secret", "special"]
EndingRarity = Literal["common", "uncommon", "rare", "very_rare", "legendary"]

CONSEQUENCE_KINDS: Tuple[ConsequenceKind, ...] = (
    "attribute",
    "relationship",
    "faction",
    "world_state",
    "event",
    "chain_reaction",
    "cumulative",
)
COMPARISON_OPS: Tuple[ComparisonOp, ...] = ("eq", "gt", "lt", "gte", "lte")
SUBSCRIPTION_TIERS: Tuple[SubscriptionTier, ...] = ("free", "basic", "premium")
CHOICE_WEIGHT_FACTORS: Dict[ChoiceWeight, float] = {
    "barely_visible": 0.5,
    "normal": 1.0,
    "prominent": 1.5,
    "very_prominent": 2.0,
}
ENDING_CATEGORIES: Tuple[EndingCategory, ...] = ("heroic", "tragic", "neutral", "evil", "secret", "special")
# Expected share of players, in percent, who reach an ending of each rarity.
ENDING_RARITY_SHARES: Dict[EndingRarity, float] = {
    "common": 50.0,
    "uncommon": 25.0,
    "rare": 15.0,
    "very_rare": 8.0,
    "legendary": 2.0,
}

__all__ = [
    "CHOICE_WEIGHT_FACTORS",
    "COMPARISON_OPS",
    "CONSEQUENCE_KINDS",
    "ENDING_CATEGORIES",
    "ENDING_RARITY_SHARES",
    "ChoiceWeight",
    "ComparisonOp",
    "ConsequenceKind",
    "EndingCategory",
    "EndingRarity",
    "OutcomeKind",
    "SUBSCRIPTION_TIERS",
    "Severity",
    "SubscriptionTier",
]
