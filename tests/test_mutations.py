from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from dotsync.config import Config
from dotsync.filesystem import symlink_points_to
from dotsync.models import MutationAction, Operation
from dotsync.mutations import MutationEngine

CONFIG = Path("config.txt")


@pytest.fixture
def engine(make_config: Callable[..., Config]) -> MutationEngine:
    return MutationEngine(make_config().settings)


def test_link_backs_up_and_is_idempotent(engine: MutationEngine) -> None:
    (engine.repo_root / "config.txt").write_text("A")
    (engine.home_root / "config.txt").write_text("B")

    first = engine.link(CONFIG)
    assert first.action is MutationAction.CHANGED
    assert first.backup == engine.backup_root / "config.txt"
    assert first.backup.read_text() == "B"
    assert symlink_points_to(engine.home_root / "config.txt", engine.repo_root / "config.txt")

    first.backup.unlink()
    second = engine.link(CONFIG)
    assert second.action is MutationAction.SKIPPED
    assert second.backup is None
    assert not (engine.backup_root / "config.txt").exists()


def test_link_without_existing_target_makes_no_backup(engine: MutationEngine) -> None:
    (engine.repo_root / ".config" / "zed").mkdir(parents=True)
    (engine.repo_root / ".config" / "zed" / "settings.json").write_text("{}")

    result = engine.link(Path(".config/zed/settings.json"))

    assert result.action is MutationAction.CHANGED
    assert result.backup is None
    assert not engine.backup_root.exists()
    assert (engine.home_root / ".config" / "zed" / "settings.json").read_text() == "{}"


def test_link_requires_repo_copy(engine: MutationEngine) -> None:
    (engine.home_root / "config.txt").write_text("B")

    with pytest.raises(FileNotFoundError):
        engine.link(CONFIG)

    assert (engine.home_root / "config.txt").read_text() == "B"


def test_link_through_linked_parent_keeps_repo_file(engine: MutationEngine) -> None:
    (engine.repo_root / ".config" / "zed").mkdir(parents=True)
    repo_file = engine.repo_root / ".config" / "zed" / "settings.json"
    repo_file.write_text("{}")
    (engine.home_root / ".config").mkdir()
    (engine.home_root / ".config" / "zed").symlink_to(engine.repo_root / ".config" / "zed")

    result = engine.link(Path(".config/zed/settings.json"))

    assert result.action is MutationAction.SKIPPED
    assert repo_file.read_text() == "{}"
    assert not repo_file.is_symlink()


def test_copy_from_repo_backs_up_home_file_byte_for_byte(engine: MutationEngine) -> None:
    (engine.repo_root / "config.txt").write_bytes(b"repo\n")
    original = b"\x00\x01local edits\r\n"
    (engine.home_root / "config.txt").write_bytes(original)

    result = engine.copy_from_repo(CONFIG)

    assert result.action is MutationAction.CHANGED
    assert result.backup is not None
    assert result.backup.read_bytes() == original
    assert (engine.home_root / "config.txt").read_bytes() == b"repo\n"

    again = engine.copy_from_repo(CONFIG)
    assert again.action is MutationAction.SKIPPED


def test_copy_from_repo_into_project_skips_backup(engine: MutationEngine, tmp_path: Path) -> None:
    project = tmp_path / "project"
    (engine.repo_root / ".claude").mkdir()
    (engine.repo_root / ".claude" / "settings.json").write_text("repo")
    (project / ".claude").mkdir(parents=True)
    (project / ".claude" / "settings.json").write_text("project")

    result = engine.copy_from_repo(Path(".claude/settings.json"), project)

    assert result.action is MutationAction.CHANGED
    assert result.backup is None
    assert (project / ".claude" / "settings.json").read_text() == "repo"
    assert not engine.backup_root.exists()


def test_copy_from_repo_replaces_repo_link_with_real_file(engine: MutationEngine) -> None:
    repo_file = engine.repo_root / "config.txt"
    repo_file.write_text("A")
    home_file = engine.home_root / "config.txt"
    home_file.symlink_to(repo_file)

    result = engine.copy_from_repo(CONFIG)

    assert result.backup is None
    assert not home_file.is_symlink()
    assert home_file.read_text() == "A"
    assert repo_file.read_text() == "A"


def test_copy_to_repo_overwrites_and_creates_parents(engine: MutationEngine) -> None:
    (engine.home_root / ".ssh").mkdir()
    (engine.home_root / ".ssh" / "config").write_text("Host *\n")

    result = engine.copy_to_repo(Path(".ssh/config"))

    assert result.operation is Operation.COPY_TO_REPO
    assert result.action is MutationAction.CHANGED
    assert (engine.repo_root / ".ssh" / "config").read_text() == "Host *\n"
    assert engine.copy_to_repo(Path(".ssh/config")).action is MutationAction.SKIPPED


def test_copy_to_repo_skips_linked_source(engine: MutationEngine) -> None:
    repo_file = engine.repo_root / "config.txt"
    repo_file.write_text("keep")
    (engine.home_root / "config.txt").symlink_to(repo_file)

    result = engine.copy_to_repo(CONFIG)

    assert result.action is MutationAction.SKIPPED
    assert repo_file.read_text() == "keep"


def test_remove_from_repo_tolerates_absence(engine: MutationEngine) -> None:
    (engine.repo_root / "config.txt").write_text("A")

    assert engine.remove_from_repo(CONFIG).action is MutationAction.CHANGED
    assert not (engine.repo_root / "config.txt").exists()
    assert engine.remove_from_repo(CONFIG).action is MutationAction.SKIPPED


def test_repo_copy_backups_stay_apart_from_home_backups(engine: MutationEngine) -> None:
    (engine.repo_root / "config.txt").write_text("repo")
    (engine.home_root / "config.txt").write_text("home")

    home_backup = engine.backup(CONFIG)
    repo_backup = engine.backup_repo_copy(CONFIG)

    assert home_backup == engine.backup_root / "config.txt"
    assert repo_backup is not None and repo_backup != home_backup
    assert home_backup.read_text() == "home"
    assert repo_backup.read_text() == "repo"
