"""Version control collaborator used by the sync orchestrator."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Protocol, Sequence

import git

from .filesystem import remove_path

logger = logging.getLogger(__name__)

NOTHING_TO_COMMIT = ("nothing to commit", "no changes added to commit")


class VcsError(RuntimeError):
    """Raised when a version control command fails."""


class VcsTimeout(VcsError):
    """Raised when a version control command does not finish in time."""


class VersionControl(Protocol):
    """Capabilities the orchestrator needs from version control."""

    def is_cloned(self) -> bool:
        ...  # pragma: no cover

    def clone(self) -> None:
        ...  # pragma: no cover

    def pull(self) -> None:
        ...  # pragma: no cover

    def push(self, message: str, paths: Sequence[str] | None = None) -> None:
        ...  # pragma: no cover

    def fetch_remote_changed_paths(self) -> set[str]:
        ...  # pragma: no cover

    def local_uncommitted_paths(self) -> set[str]:
        ...  # pragma: no cover

    def discard(self, paths: Sequence[str]) -> None:
        ...  # pragma: no cover


class GitVersionControl:
    """Drives a git working copy through GitPython.

    Every command is bounded by ``timeout`` seconds; a command killed by the
    watchdog surfaces as ``VcsTimeout``.
    """

    def __init__(
        self,
        repo_root: Path,
        repo_url: str | None = None,
        *,
        branch: str | None = None,
        timeout: float = 60.0,
    ) -> None:
        self.repo_root = repo_root
        self.repo_url = repo_url
        self.branch = branch
        self.timeout = timeout
        self._repo: git.Repo | None = None

    def is_cloned(self) -> bool:
        return (self.repo_root / ".git").exists()

    def clone(self) -> None:
        if not self.repo_url:
            raise VcsError(f"No repo_url configured; cannot clone into '{self.repo_root}'")
        if self.repo_root.exists() and any(self.repo_root.iterdir()):
            raise VcsError(f"Existing directory '{self.repo_root}' is not a git repository")

        self.repo_root.parent.mkdir(parents=True, exist_ok=True)
        args = ["clone"]
        if self.branch:
            args += ["--branch", self.branch]
        args += ["--", self.repo_url, str(self.repo_root)]
        logger.info("Cloning %s into %s", self.repo_url, self.repo_root)
        self._execute(git.Git(str(self.repo_root.parent)), args)

    def pull(self) -> None:
        self._git("pull", "--rebase", "--autostash")

    def push(self, message: str, paths: Sequence[str] | None = None) -> None:
        """Stage ``paths`` (or everything), commit, rebase onto the remote and push.

        While rebasing, hunks from the new commit win over the remote's, so a
        file explicitly pushed as "keep local" keeps its local content.
        """

        if paths:
            self._git("add", "--all", "--", *paths)
        else:
            self._git("add", "--all")

        try:
            self._git("commit", "-m", message)
        except VcsError as exc:
            if not any(marker in str(exc) for marker in NOTHING_TO_COMMIT):
                raise
            logger.info("Nothing to commit")

        if self._upstream() is None:
            self._git("push", "--set-upstream", "origin", "HEAD")
            return
        self._git("pull", "--rebase", "--autostash", "-X", "theirs")
        self._git("push")

    def fetch_remote_changed_paths(self) -> set[str]:
        self._git("fetch", "--quiet")
        upstream = self._upstream()
        if upstream is None:
            logger.debug("No upstream configured for %s", self.repo_root)
            return set()
        output = self._git("diff", "--name-only", "-z", f"HEAD...{upstream}")
        return set(_split_z(output))

    def local_uncommitted_paths(self) -> set[str]:
        output = self._git("status", "--porcelain", "-z", "--untracked-files=all")
        return set(_parse_porcelain_z(output))

    def discard(self, paths: Sequence[str]) -> None:
        """Restore ``paths`` to their committed state, deleting ones HEAD lacks."""

        if not paths:
            return
        known = set(_split_z(self._git("ls-tree", "-r", "-z", "--name-only", "HEAD", "--", *paths)))
        committed = [path for path in paths if path in known]
        if committed:
            self._git("checkout", "HEAD", "--", *committed)
        for path in paths:
            if path not in known:
                remove_path(self.repo_root / path)

    # ------------------------------------------------------------------
    # Internal helpers

    def _open(self) -> git.Repo:
        if self._repo is None:
            try:
                self._repo = git.Repo(self.repo_root)
            except (git.InvalidGitRepositoryError, git.NoSuchPathError) as exc:
                raise VcsError(f"'{self.repo_root}' is not a git repository") from exc
        return self._repo

    def _upstream(self) -> str | None:
        repo = self._open()
        try:
            tracking = repo.active_branch.tracking_branch()
        except TypeError:
            # detached HEAD
            return None
        return tracking.name if tracking is not None else None

    def _git(self, *args: str) -> str:
        return self._execute(self._open().git, list(args))

    def _execute(self, runner: git.Git, args: list[str]) -> str:
        logger.debug("git %s", " ".join(args))
        try:
            return runner.execute(["git", *args], kill_after_timeout=self.timeout)
        except git.GitCommandError as exc:
            stderr = str(exc.stderr or "").strip()
            stdout = str(exc.stdout or "").strip()
            if "Timeout:" in stderr:
                raise VcsTimeout(f"git {args[0]} did not finish within {self.timeout:g}s") from exc
            detail = "\n".join(part for part in (stderr, stdout) if part) or f"exit status {exc.status}"
            raise VcsError(f"git {args[0]} failed: {detail}") from exc
        except git.GitCommandNotFound as exc:
            raise VcsError("git is not installed or not on PATH") from exc


def _split_z(output: str) -> list[str]:
    return [item for item in output.split("\0") if item]


def _parse_porcelain_z(output: str) -> Iterable[str]:
    """Yield paths from ``git status --porcelain -z`` output.

    Each record is ``XY <path>``; renames and copies are followed by an extra
    record naming the source, which is skipped.
    """

    records = output.split("\0")
    index = 0
    while index < len(records):
        record = records[index]
        index += 1
        if len(record) < 4:
            continue
        status, path = record[:2], record[3:]
        if status[0] in "RC":
            index += 1
        yield path
