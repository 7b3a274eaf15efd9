"""Static story graph validation utilities."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Sequence, Set, Tuple

from arcana.core.types import Severity
from arcana.domain.conditions import ChainTriggered, contains_unknown, describe_condition, is_satisfiable
from arcana.domain.defs import BeatDef, ChoiceDef, ConsequenceDef, StoryDef
from arcana.domain.payloads import check_payload
from arcana.errors import MalformedConsequencePayload


@dataclass(frozen=True, slots=True)
class Issue:
    severity: Severity
    code: str
    message: str
    context: Dict[str, str] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return self.severity == "ERROR"


def format_issue(issue: Issue) -> str:
    context = " ".join(f"{key}={value}" for key, value in issue.context.items())
    suffix = f" ({context})" if context else ""
    return f"[{issue.severity}] {issue.code}: {issue.message}{suffix}"


def errors_only(issues: Sequence[Issue]) -> List[Issue]:
    return [issue for issue in issues if issue.is_error]


def validate_story(story: StoryDef) -> List[Issue]:
    """Return every integrity issue found in a loaded story graph."""
    issues: List[Issue] = []
    beat_ids = set(story.beats.keys())
    if story.start_beat_id not in beat_ids:
        issues.append(
            Issue(
                severity="ERROR",
                code="MISSING_START_BEAT",
                message="Start beat is not defined in the story.",
                context={"story_id": story.id, "referenced_id": story.start_beat_id},
            )
        )
    for beat in story.beats.values():
        _validate_beat_references(story.id, beat, beat_ids, issues)
        if beat.is_end and beat.choices:
            issues.append(
                Issue(
                    severity="WARN",
                    code="TERMINAL_WITH_CHOICES",
                    message="Beat is marked as an ending; its choices can never be taken.",
                    context={"story_id": story.id, "beat_id": beat.id},
                )
            )
    _validate_conditions(story, issues)
    _validate_consequences(story, issues)
    _validate_arcs(story, beat_ids, issues)
    _validate_endings(story, issues)
    if story.start_beat_id in beat_ids:
        _validate_reachability(story, issues)
    return issues


def _validate_beat_references(story_id: str, beat: BeatDef, beat_ids: Set[str], issues: List[Issue]) -> None:
    for index, choice in enumerate(beat.choices):
        if choice.next_beat_id not in beat_ids:
            issues.append(
                Issue(
                    severity="ERROR",
                    code="MISSING_BEAT_REF",
                    message="Choice references missing beat.",
                    context={
                        "story_id": story_id,
                        "beat_id": beat.id,
                        "field_path": f"choices[{index}].next_beat_id",
                        "referenced_id": choice.next_beat_id,
                    },
                )
            )
        if choice.skill_check is None:
            continue
        branches = (
            ("success", choice.skill_check.success),
            ("failure", choice.skill_check.failure),
            ("critical_success", choice.skill_check.critical_success),
            ("critical_failure", choice.skill_check.critical_failure),
        )
        for name, outcome in branches:
            if outcome is None or outcome.next_beat_id in beat_ids:
                continue
            issues.append(
                Issue(
                    severity="ERROR",
                    code="MISSING_BEAT_REF",
                    message="Skill check outcome references missing beat.",
                    context={
                        "story_id": story_id,
                        "beat_id": beat.id,
                        "field_path": f"choices[{index}].skill_check.{name}.next_beat_id",
                        "referenced_id": outcome.next_beat_id,
                    },
                )
            )


def _validate_reachability(story: StoryDef, issues: List[Issue]) -> None:
    reachable: Set[str] = set()
    stack: List[str] = [story.start_beat_id]
    while stack:
        beat_id = stack.pop()
        if beat_id in reachable:
            continue
        reachable.add(beat_id)
        beat = story.beats[beat_id]
        if beat.is_terminal:
            continue
        for choice in beat.choices:
            if not is_satisfiable(choice.condition):
                continue
            for next_id in choice.target_beat_ids():
                if next_id in story.beats:
                    stack.append(next_id)
    for beat_id in sorted(set(story.beats.keys()) - reachable):
        issues.append(
            Issue(
                severity="ERROR",
                code="UNREACHABLE_BEAT",
                message="Beat is unreachable from the start beat.",
                context={"story_id": story.id, "beat_id": beat_id},
            )
        )


def _validate_conditions(story: StoryDef, issues: List[Issue]) -> None:
    for beat, choice in _iter_choices(story):
        if choice.condition is not None and contains_unknown(choice.condition):
            issues.append(
                Issue(
                    severity="WARN",
                    code="UNKNOWN_CONDITION",
                    message="Choice condition is not recognised and will never be met.",
                    context={
                        "story_id": story.id,
                        "beat_id": beat.id,
                        "choice_id": choice.id,
                        "condition": describe_condition(choice.condition),
                    },
                )
            )
    for beat, choice, consequence in _iter_consequences(story):
        if consequence.condition is not None and contains_unknown(consequence.condition):
            issues.append(
                Issue(
                    severity="WARN",
                    code="UNKNOWN_CONDITION",
                    message="Consequence condition is not recognised; the consequence will be discarded.",
                    context={
                        "story_id": story.id,
                        "beat_id": beat.id,
                        "choice_id": choice.id,
                        "consequence_id": consequence.id,
                        "condition": describe_condition(consequence.condition),
                    },
                )
            )


def _validate_consequences(story: StoryDef, issues: List[Issue]) -> None:
    fired_chains: Set[str] = set()
    awaited_chains: List[Tuple[BeatDef, ChoiceDef, ConsequenceDef, str]] = []
    for beat, choice, consequence in _iter_consequences(story):
        try:
            check_payload(consequence.kind, consequence.value, consequence.id)
        except MalformedConsequencePayload as exc:
            issues.append(
                Issue(
                    severity="WARN",
                    code="MALFORMED_PAYLOAD",
                    message=str(exc),
                    context={
                        "story_id": story.id,
                        "beat_id": beat.id,
                        "choice_id": choice.id,
                        "consequence_id": consequence.id,
                    },
                )
            )
        if consequence.kind == "chain_reaction":
            fired_chains.add(consequence.target)
        if isinstance(consequence.condition, ChainTriggered):
            awaited_chains.append((beat, choice, consequence, consequence.condition.chain_id))
    for beat, choice, consequence, chain_id in awaited_chains:
        if chain_id in fired_chains:
            continue
        issues.append(
            Issue(
                severity="WARN",
                code="ORPHAN_CHAIN",
                message="Consequence waits on a chain that no consequence triggers.",
                context={
                    "story_id": story.id,
                    "beat_id": beat.id,
                    "choice_id": choice.id,
                    "consequence_id": consequence.id,
                    "chain_id": chain_id,
                },
            )
        )


def _validate_arcs(story: StoryDef, beat_ids: Set[str], issues: List[Issue]) -> None:
    for arc in story.arcs.values():
        referenced = [("start_beat_id", arc.start_beat_id)]
        referenced.extend(("end_beat_ids", beat_id) for beat_id in sorted(arc.end_beat_ids))
        for field_path, beat_id in referenced:
            if beat_id in beat_ids:
                continue
            issues.append(
                Issue(
                    severity="ERROR",
                    code="MISSING_BEAT_REF",
                    message="Story arc references missing beat.",
                    context={
                        "story_id": story.id,
                        "arc_id": arc.id,
                        "field_path": field_path,
                        "referenced_id": beat_id,
                    },
                )
            )
        related = [("dependency", arc.dependency)] if arc.dependency is not None else []
        related.extend(("exclusive_with", arc_id) for arc_id in sorted(arc.exclusive_with))
        related.extend(("unlocks", arc_id) for arc_id in sorted(arc.unlocks))
        for field_path, arc_id in related:
            if arc_id in story.arcs:
                continue
            issues.append(
                Issue(
                    severity="WARN",
                    code="UNKNOWN_ARC_REF",
                    message="Story arc references an arc that is not declared.",
                    context={
                        "story_id": story.id,
                        "arc_id": arc.id,
                        "field_path": field_path,
                        "referenced_id": arc_id,
                    },
                )
            )


def _validate_endings(story: StoryDef, issues: List[Issue]) -> None:
    seen: Dict[str, str] = {}
    for beat in story.beats.values():
        ending = beat.ending
        if ending is None:
            continue
        context = {"story_id": story.id, "beat_id": beat.id, "ending_id": ending.id}
        if not beat.is_terminal:
            issues.append(
                Issue(
                    severity="WARN",
                    code="ENDING_ON_OPEN_BEAT",
                    message="Ending is declared on a beat that is not terminal and will never be recorded.",
                    context=context,
                )
            )
        if ending.id in seen:
            issues.append(
                Issue(
                    severity="WARN",
                    code="DUPLICATE_ENDING",
                    message=f"Ending id is also declared on beat '{seen[ending.id]}'.",
                    context=context,
                )
            )
        seen.setdefault(ending.id, beat.id)
        if ending.requirements is not None and contains_unknown(ending.requirements):
            issues.append(
                Issue(
                    severity="WARN",
                    code="UNKNOWN_CONDITION",
                    message="Ending requirements are not recognised; the ending will never be recorded.",
                    context=dict(context, condition=describe_condition(ending.requirements)),
                )
            )


def _iter_choices(story: StoryDef) -> Iterator[Tuple[BeatDef, ChoiceDef]]:
    for beat in story.beats.values():
        for choice in beat.choices:
            yield beat, choice


def _iter_consequences(story: StoryDef) -> Iterator[Tuple[BeatDef, ChoiceDef, ConsequenceDef]]:
    for beat, choice in _iter_choices(story):
        for consequence in choice.consequences:
            yield beat, choice, consequence
        if choice.skill_check is None:
            continue
        for outcome in choice.skill_check.outcomes():
            for consequence in outcome.consequences:
                yield beat, choice, consequence
