from __future__ import annotations

from pathlib import Path
from typing import Callable, Sequence

import pytest

from dotsync.config import Category, Config, Settings


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    return home


@pytest.fixture
def repo_root(tmp_path: Path) -> Path:
    repo = tmp_path / "repo"
    (repo / ".git").mkdir(parents=True)
    return repo


@pytest.fixture
def backup_root(tmp_path: Path) -> Path:
    return tmp_path / "backup"


@pytest.fixture
def make_config(fake_home: Path, repo_root: Path, backup_root: Path) -> Callable[..., Config]:
    def _make(categories: dict[str, Sequence[str]] | None = None, **overrides: object) -> Config:
        settings = Settings(repo_root=repo_root, home_root=fake_home, backup_root=backup_root, **overrides)
        parsed = tuple(Category(name=name, paths=tuple(paths)) for name, paths in (categories or {}).items())
        return Config(config_path=None, settings=settings, categories=parsed)

    return _make


class FakeVcs:
    """Records version control calls instead of running git."""

    def __init__(self) -> None:
        self.cloned = True
        self.local: set[str] = set()
        self.remote: set[str] = set()
        self.calls: list[tuple[object, ...]] = []
        self.failures: dict[str, Exception] = {}
        self.hooks: dict[str, Callable[[], None]] = {}

    def _call(self, name: str, *args: object) -> None:
        self.calls.append((name, *args))
        if name in self.hooks:
            self.hooks[name]()
        if name in self.failures:
            raise self.failures[name]

    def names(self) -> list[str]:
        return [str(call[0]) for call in self.calls]

    def is_cloned(self) -> bool:
        return self.cloned

    def clone(self) -> None:
        self._call("clone")
        self.cloned = True

    def pull(self) -> None:
        self._call("pull")

    def push(self, message: str, paths: Sequence[str] | None = None) -> None:
        self._call("push", message, list(paths or []))

    def fetch_remote_changed_paths(self) -> set[str]:
        self._call("fetch")
        return set(self.remote)

    def local_uncommitted_paths(self) -> set[str]:
        self._call("status")
        return set(self.local)

    def discard(self, paths: Sequence[str]) -> None:
        self._call("discard", list(paths))


@pytest.fixture
def fake_vcs() -> FakeVcs:
    return FakeVcs()
