"""Developer entry point for inspecting story content."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Sequence

from arcana.config import AppConfig, load_config
from arcana.core.rng import DiceRoller
from arcana.data.errors import DataError
from arcana.data.player_store import JsonPlayerStore
from arcana.data.repositories import StoryRepository
from arcana.logging_setup import configure_logging
from arcana.services.consequence_engine import ConsequenceEngine
from arcana.services.ending_analyzer import category_distribution, ending_dependency_graph, rarity_distribution
from arcana.services.event_bus import EventSink
from arcana.services.progression_service import ProgressionService
from arcana.services.save_service import PlayerSaveCodec
from arcana.services.story_catalog import StoryCatalog
from arcana.services.story_graph_validator import Issue, format_issue, validate_story

logger = logging.getLogger(__name__)


def build_service(
    config: AppConfig, *, event_sink: EventSink | None = None, rng: DiceRoller | None = None
) -> ProgressionService:
    """Wire a progression service backed by the configured directories."""
    catalog = StoryCatalog(StoryRepository(config.games_directory))
    store = JsonPlayerStore(config.players_directory, PlayerSaveCodec())
    return ProgressionService(
        catalog,
        store,
        engine=ConsequenceEngine(max_chain_passes=config.max_chain_passes),
        rng=rng,
        event_sink=event_sink,
        default_language=config.default_language,
        fallback_language=config.fallback_language,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="arcana", description="Inspect arcana story content.")
    parser.add_argument("--config", type=Path, default=None, help="Path to a JSON config file.")
    parser.add_argument("--games-dir", type=Path, default=None, help="Directory of story JSON files.")
    subcommands = parser.add_subparsers(dest="command", required=True)
    subcommands.add_parser("validate", help="Load every story and report graph issues.")
    subcommands.add_parser("list", help="List story ids.")
    subcommands.add_parser("endings", help="Summarise the endings each story offers.")
    return parser


def _validate(repo: StoryRepository) -> int:
    failed = False
    for story_id in repo.story_ids():
        try:
            story = repo.load_story(story_id)
        except DataError as exc:
            print(f"[ERROR] LOAD_FAILED: {exc} (story_id={story_id})")
            failed = True
            continue
        if story is None:
            continue
        issues: List[Issue] = validate_story(story)
        for issue in issues:
            print(format_issue(issue))
        failed = failed or any(issue.is_error for issue in issues)
        if not issues:
            print(f"{story_id}: ok")
    return 1 if failed else 0


def _endings(repo: StoryRepository) -> int:
    for story in repo.load_all_stories():
        endings = story.endings()
        print(f"{story.id}: {len(endings)} endings")
        if not endings:
            continue
        categories = category_distribution(endings)
        rarities = rarity_distribution(endings)
        print("  categories: " + " ".join(f"{name}={count}" for name, count in categories.items() if count))
        print("  rarities: " + " ".join(f"{name}={count}" for name, count in rarities.items() if count))
        for ending_id, dependents in ending_dependency_graph(endings).items():
            if dependents:
                print(f"  {ending_id} -> {', '.join(dependents)}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    config = AppConfig.from_environment(base=load_config(args.config))
    configure_logging(config.log_level, config.log_file)
    games_dir = args.games_dir or config.games_directory
    repo = StoryRepository(games_dir)
    logger.debug("Using games directory %s", repo.directory)
    if args.command == "list":
        for story_id in repo.story_ids():
            print(story_id)
        return 0
    if args.command == "endings":
        return _endings(repo)
    return _validate(repo)


if __name__ == "__main__":
    sys.exit(main())
