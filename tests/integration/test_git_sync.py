from __future__ import annotations

import shutil
from pathlib import Path

import git
import pytest

from dotsync.config import Config, Settings
from dotsync.filesystem import symlink_points_to
from dotsync.manager import SyncError, SyncManager
from dotsync.models import FileStatus, Resolution

pytestmark = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


@pytest.fixture
def git_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    global_config = tmp_path / "gitconfig"
    global_config.write_text("")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(global_config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    for prefix in ("GIT_AUTHOR", "GIT_COMMITTER"):
        monkeypatch.setenv(f"{prefix}_NAME", "dotsync tests")
        monkeypatch.setenv(f"{prefix}_EMAIL", "tests@example.com")


@pytest.fixture
def remote(tmp_path: Path, git_env: None) -> Path:
    bare = tmp_path / "remote.git"
    git.Repo.init(bare, bare=True, initial_branch="main")
    return bare


@pytest.fixture
def seed(tmp_path: Path, remote: Path) -> git.Repo:
    repo = git.Repo.init(tmp_path / "seed", initial_branch="main")
    (tmp_path / "seed" / "config.txt").write_text("A\n")
    repo.git.add("--all")
    repo.git.commit("-m", "initial")
    repo.git.remote("add", "origin", str(remote))
    repo.git.push("--set-upstream", "origin", "main")
    return repo


def _publish(repo: git.Repo, name: str, content: str) -> None:
    Path(repo.working_tree_dir, name).write_text(content)
    repo.git.add("--all")
    repo.git.commit("-m", f"edit {name}")
    repo.git.push()


def _fetch_content(repo: git.Repo, name: str) -> str:
    repo.git.pull("--ff-only")
    return Path(repo.working_tree_dir, name).read_text()


@pytest.fixture
def manager(tmp_path: Path, fake_home: Path, remote: Path, seed: git.Repo) -> SyncManager:
    settings = Settings(
        repo_root=tmp_path / "clone",
        home_root=fake_home,
        backup_root=tmp_path / "backup",
        repo_url=str(remote),
        branch="main",
        vcs_timeout=30,
    )
    return SyncManager(Config(config_path=None, settings=settings))


def _status(manager: SyncManager) -> FileStatus:
    (entry,) = manager.status().entries
    return entry.status


def test_clone_link_pull_and_push(manager: SyncManager, seed: git.Repo) -> None:
    home_file = manager.settings.home_root / "config.txt"
    repo_file = manager.settings.repo_root / "config.txt"

    first = manager.sync()
    assert manager.vcs.is_cloned()
    assert first.pulled is False
    assert symlink_points_to(home_file, repo_file)
    assert _status(manager) is FileStatus.SYNCED

    _publish(seed, "config.txt", "A remote\n")
    assert _status(manager) is FileStatus.REMOTE
    pulled = manager.sync()
    assert pulled.pulled is True
    assert home_file.read_text() == "A remote\n"

    home_file.write_text("A local\n")
    assert _status(manager) is FileStatus.LOCAL
    pushed = manager.sync(message="local edit")
    assert pushed.pushed is True
    assert _fetch_content(seed, "config.txt") == "A local\n"
    assert _status(manager) is FileStatus.SYNCED


def test_conflict_resolutions(manager: SyncManager, seed: git.Repo) -> None:
    home_file = manager.settings.home_root / "config.txt"
    manager.sync()

    _publish(seed, "config.txt", "theirs\n")
    home_file.write_text("mine\n")
    assert _status(manager) is FileStatus.CONFLICT

    manager.sync(decide=lambda _entry: Resolution.KEEP_LOCAL)
    assert home_file.read_text() == "mine\n"
    assert _fetch_content(seed, "config.txt") == "mine\n"

    _publish(seed, "config.txt", "theirs again\n")
    home_file.write_text("mine again\n")
    assert _status(manager) is FileStatus.CONFLICT

    result = manager.sync(decide=lambda _entry: Resolution.KEEP_REMOTE)
    assert result.pulled is True
    assert home_file.read_text() == "theirs again\n"
    assert (manager.settings.backup_root / ".dotsync-repo" / "config.txt").read_text() == "mine again\n"
    assert _status(manager) is FileStatus.SYNCED


def test_skipped_conflict_survives_other_pushes(manager: SyncManager, seed: git.Repo) -> None:
    home = manager.settings.home_root
    _publish(seed, "other.txt", "other\n")
    manager.sync()

    _publish(seed, "config.txt", "theirs\n")
    (home / "config.txt").write_text("mine\n")
    (home / "other.txt").write_text("other local\n")
    statuses = {entry.key(): entry.status for entry in manager.status().entries}
    assert statuses == {"config.txt": FileStatus.CONFLICT, "other.txt": FileStatus.LOCAL}

    with pytest.raises(SyncError, match="unresolved"):
        manager.sync(decide=lambda _entry: Resolution.SKIP)

    assert (home / "config.txt").read_text() == "mine\n"
    assert (home / "other.txt").read_text() == "other local\n"
    assert _fetch_content(seed, "other.txt") == "other\n"

    manager.sync(decide=lambda _entry: Resolution.KEEP_LOCAL)
    assert (home / "config.txt").read_text() == "mine\n"
    assert _fetch_content(seed, "config.txt") == "mine\n"
    assert _fetch_content(seed, "other.txt") == "other local\n"
