"""Skill check resolution."""
from __future__ import annotations

from dataclasses import dataclass

from arcana.core.rng import DiceRoller
from arcana.core.types import OutcomeKind
from arcana.domain.defs import SkillCheckDef, SkillCheckOutcomeDef
from arcana.domain.player import PlayerState

DIE_SIDES = 20


@dataclass(frozen=True, slots=True)
class SkillCheckResult:
    """The selected outcome plus the numbers that produced it."""

    outcome: SkillCheckOutcomeDef
    outcome_kind: OutcomeKind
    roll: int
    total: int

    @property
    def succeeded(self) -> bool:
        return self.outcome_kind in ("success", "critical_success")


def perform_skill_check(check: SkillCheckDef, player: PlayerState, rng: DiceRoller) -> SkillCheckResult:
    """Roll a d20 and pick the first matching outcome.

    Critical branches only win when the check declares them; otherwise the
    roll falls through to the ordinary success/failure comparison.
    """
    roll = rng.randint(1, DIE_SIDES)
    total = roll + player.get_attribute(check.attribute_name) + check.bonus_modifier
    if roll >= check.critical_success_threshold and check.critical_success is not None:
        return SkillCheckResult(check.critical_success, "critical_success", roll, total)
    if roll <= check.critical_failure_threshold and check.critical_failure is not None:
        return SkillCheckResult(check.critical_failure, "critical_failure", roll, total)
    if total >= check.difficulty:
        return SkillCheckResult(check.success, "success", roll, total)
    return SkillCheckResult(check.failure, "failure", roll, total)
