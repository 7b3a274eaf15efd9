from pathlib import Path

from arcana.data import paths


def test_get_games_path_base_path(tmp_path: Path) -> None:
    assert paths.get_games_path(tmp_path) == tmp_path
    assert paths.get_games_path(str(tmp_path)) == tmp_path


def test_get_games_path_source_repo_exists() -> None:
    games_path = paths.get_games_path()
    assert games_path.name == "games"
    assert games_path.exists()
    assert games_path.parent == paths.get_repo_root()
