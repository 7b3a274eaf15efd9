"""Authoring helpers that compile fluent definitions into condition and consequence records."""

from .conditions import ConditionBuilder
from .effects import EffectBuilder

__all__ = ["ConditionBuilder", "EffectBuilder"]
