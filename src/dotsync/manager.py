"""High level orchestration for dotsync reconciliation passes."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Iterable

from .classifier import UNCLASSIFIED, group_of
from .config import Config
from .enumerator import enumerate_tracked
from .filesystem import ignore_matcher, lexists, symlink_points_to, walk_files
from .models import (
    FileStatus,
    ManagedPath,
    MutationAction,
    MutationResult,
    Operation,
    Resolution,
    StatusReport,
    SyncPlan,
    SyncResult,
    TargetMode,
    TrackedFile,
)
from .mutations import MutationEngine
from .resolver import VcsSignals, resolve
from .vcs import GitVersionControl, VcsError, VersionControl

logger = logging.getLogger(__name__)

ConflictDecider = Callable[[TrackedFile], Resolution | None]


class SyncError(RuntimeError):
    """Raised when a reconciliation pass cannot continue."""

    def __init__(self, message: str, results: Iterable[MutationResult] = ()) -> None:
        super().__init__(message)
        self.results = list(results)


class SyncManager:
    """Runs reconciliation passes between the repository and a target root."""

    def __init__(
        self,
        config: Config,
        vcs: VersionControl | None = None,
        engine: MutationEngine | None = None,
    ) -> None:
        self.config = config
        self.settings = config.settings
        self.vcs = vcs or GitVersionControl(
            self.settings.repo_root,
            self.settings.repo_url,
            branch=self.settings.branch,
            timeout=self.settings.vcs_timeout,
        )
        self.engine = engine or MutationEngine(self.settings)

    def ensure_repo(self) -> bool:
        """Clone the repository if needed. Returns ``True`` if it was cloned now."""

        if self.vcs.is_cloned():
            return False
        try:
            self.vcs.clone()
        except VcsError as exc:
            raise SyncError(f"Failed to clone repository: {exc}") from exc
        return True

    def tracked(self) -> list[ManagedPath]:
        return enumerate_tracked(self.config)

    def signals(self) -> VcsSignals:
        """Query version control once for local and remote change sets."""

        try:
            remote = self.vcs.fetch_remote_changed_paths()
        except VcsError as exc:
            logger.warning("Could not check the remote for changes: %s", exc)
            remote = set()
        try:
            local = self.vcs.local_uncommitted_paths()
        except VcsError as exc:
            logger.warning("Could not list uncommitted changes: %s", exc)
            local = set()
        return VcsSignals(local=frozenset(local), remote=frozenset(remote))

    def status(self, project_root: Path | None = None, *, use_vcs: bool = True) -> StatusReport:
        mode, target_root = self._target(project_root)
        signals = self.signals() if use_vcs else None
        entries = tuple(
            resolve(path, self.settings.repo_root, target_root, mode=mode, signals=signals)
            for path in self.tracked()
        )
        return StatusReport(mode=mode, target_root=target_root, entries=entries)

    def plan(
        self,
        report: StatusReport,
        selected: Iterable[str] | None = None,
        decide: ConflictDecider | None = None,
    ) -> SyncPlan:
        """Partition the selected entries of ``report`` into action buckets.

        Conflicting and diverged files are routed by ``decide``; without a
        decision they are deferred and left untouched.
        """

        entries = {entry.key(): entry for entry in report.entries}
        if selected is None:
            chosen = list(report.entries)
        else:
            chosen = []
            for raw in selected:
                key = Path(raw).as_posix()
                if key not in entries:
                    raise SyncError(f"'{raw}' is not a tracked path")
                chosen.append(entries[key])

        plan = SyncPlan(mode=report.mode, target_root=report.target_root)
        for entry in chosen:
            status = entry.status
            if status is FileStatus.SYNCED:
                continue
            if status is FileStatus.UNLINKED:
                if lexists(self.settings.repo_root / entry.path.relative_path):
                    plan.link.append(entry)
                else:
                    plan.deferred.append(entry)
            elif status is FileStatus.LOCAL:
                plan.push.append(entry)
            elif status is FileStatus.REMOTE:
                plan.pull.append(entry)
            else:
                resolution = decide(entry) if decide is not None else None
                if resolution is Resolution.KEEP_LOCAL:
                    plan.push.append(entry)
                elif resolution is Resolution.KEEP_REMOTE:
                    if status is FileStatus.CONFLICT:
                        plan.discard.append(entry)
                        plan.pull.append(entry)
                    else:
                        plan.link.append(entry)
                else:
                    plan.deferred.append(entry)

        resolving = {entry.key() for entry in plan.push + plan.discard}
        plan.held = [
            entry
            for entry in report.entries
            if entry.status is FileStatus.CONFLICT and entry.key() not in resolving
        ]
        return plan

    def execute(self, plan: SyncPlan, message: str | None = None) -> SyncResult:
        """Run the buckets of ``plan`` in order: pull, push, then link/copy."""

        if plan.held and plan.touches_vcs():
            # held edits must not be autostashed across a rebase
            raise SyncError(
                "Cannot pull or push while conflicts are unresolved: "
                + ", ".join(entry.key() for entry in plan.held)
                + ". Keep the local or the remote side of each first."
            )

        outcome = SyncResult(plan=plan)
        message = message or self.settings.commit_message
        place: list[TrackedFile] = []

        if plan.pull:
            discard: list[str] = []
            for entry in plan.discard:
                saved = self._record(outcome, entry.path.relative_path, Operation.BACKUP, self._backup_repo_copy)
                if saved.action is MutationAction.FAILED:
                    raise SyncError(f"Pull failed: could not back up '{entry.key()}'", outcome.results)
                discard.append(entry.key())
            try:
                if discard:
                    self.vcs.discard(discard)
                self.vcs.pull()
            except VcsError as exc:
                raise SyncError(f"Pull failed: {exc}", outcome.results) from exc
            outcome.pulled = True
            place.extend(plan.pull)

        if plan.push:
            pushed: list[str] = []
            for entry in plan.push:
                # local and conflict entries commit the repository copy as is
                if entry.status is FileStatus.DIVERGED:
                    result = self._record(
                        outcome,
                        entry.path.relative_path,
                        Operation.COPY_TO_REPO,
                        lambda path: self.engine.copy_to_repo(path, plan.target_root),
                    )
                    if result.action is MutationAction.FAILED:
                        continue
                pushed.append(entry.key())
                if plan.mode is TargetMode.LINK:
                    place.append(entry)
            if pushed:
                try:
                    self.vcs.push(message, pushed)
                except VcsError as exc:
                    raise SyncError(f"Push failed: {exc}", outcome.results) from exc
                outcome.pushed = True

        place.extend(plan.link)
        for entry in place:
            self._place(outcome, entry.path.relative_path, plan)

        return outcome

    def sync(
        self,
        selected: Iterable[str] | None = None,
        *,
        decide: ConflictDecider | None = None,
        message: str | None = None,
        project_root: Path | None = None,
    ) -> SyncResult:
        """Run one full pass: clone if needed, resolve, partition, execute."""

        self.ensure_repo()
        report = self.status(project_root)
        return self.execute(self.plan(report, selected, decide), message)

    def add(self, raw_path: Path | str, *, push: bool = True, message: str | None = None) -> list[MutationResult]:
        """Start tracking a file (or every file in a directory) under the home root."""

        relative = self._home_relative(raw_path)
        source = self.settings.home_root / relative
        if not lexists(source):
            raise SyncError(f"'{source}' does not exist")
        if symlink_points_to(source, self.settings.repo_root / relative):
            raise SyncError(f"'{source}' is already tracked")

        if source.is_dir() and not source.is_symlink():
            ignored = ignore_matcher(self.settings.ignore)
            paths = [relative / leaf for leaf in walk_files(source, ignored)]
        else:
            paths = [relative]

        if self.settings.tracking == "manifest":
            categories = self.config.category_map()
            unclaimed = [path for path in paths if group_of(path.as_posix(), categories) == UNCLASSIFIED]
            if unclaimed:
                raise SyncError(f"'{unclaimed[0].as_posix()}' does not belong to any configured category")

        self.ensure_repo()
        outcome = SyncResult(plan=SyncPlan(mode=TargetMode.LINK, target_root=self.settings.home_root))
        for path in paths:
            copied = self._record(outcome, path, Operation.COPY_TO_REPO, self.engine.copy_to_repo)
            if copied.action is not MutationAction.FAILED:
                self._record(outcome, path, Operation.LINK, self.engine.link)

        self._publish(outcome, push, message or f"add {relative.as_posix()}")
        return outcome.results

    def remove(self, raw_path: Path | str, *, push: bool = True, message: str | None = None) -> list[MutationResult]:
        """Stop tracking a path, leaving a real copy of it in the home root."""

        relative = self._home_relative(raw_path)
        repo_path = self.settings.repo_root / relative
        if not lexists(repo_path):
            raise SyncError(f"'{relative.as_posix()}' is not tracked")

        if repo_path.is_dir() and not repo_path.is_symlink():
            ignored = ignore_matcher(self.settings.ignore)
            paths = [relative / leaf for leaf in walk_files(repo_path, ignored)]
        else:
            paths = [relative]

        outcome = SyncResult(plan=SyncPlan(mode=TargetMode.LINK, target_root=self.settings.home_root))
        for path in paths:
            home_path = self.settings.home_root / path
            if symlink_points_to(home_path, self.settings.repo_root / path):
                restored = self._record(outcome, path, Operation.COPY_FROM_REPO, self.engine.copy_from_repo)
                if restored.action is MutationAction.FAILED:
                    continue
            self._record(outcome, path, Operation.REMOVE_FROM_REPO, self.engine.remove_from_repo)

        self._publish(outcome, push, message or f"remove {relative.as_posix()}")
        return outcome.results

    # ------------------------------------------------------------------
    # Internal helpers

    def _target(self, project_root: Path | None) -> tuple[TargetMode, Path]:
        project = project_root or self.settings.project_root
        if project is None:
            return TargetMode.LINK, self.settings.home_root
        return TargetMode.COPY, Path(os.path.abspath(project))

    def _home_relative(self, raw_path: Path | str) -> Path:
        candidate = Path(raw_path).expanduser()
        if not candidate.is_absolute():
            candidate = Path.cwd() / candidate
        absolute = Path(os.path.normpath(candidate))
        home = Path(os.path.normpath(self.settings.home_root))
        try:
            relative = absolute.relative_to(home)
        except ValueError:
            raise SyncError(f"'{absolute}' is outside the home directory '{home}'") from None
        if relative == Path():
            raise SyncError("Refusing to track the home directory itself")
        repo = Path(os.path.normpath(self.settings.repo_root))
        if absolute == repo or repo in absolute.parents:
            raise SyncError(f"'{absolute}' lives inside the repository")
        return relative

    def _place(self, outcome: SyncResult, path: Path, plan: SyncPlan) -> None:
        if plan.mode is TargetMode.LINK:
            self._record(outcome, path, Operation.LINK, self.engine.link)
        else:
            self._record(
                outcome,
                path,
                Operation.COPY_FROM_REPO,
                lambda item: self.engine.copy_from_repo(item, plan.target_root),
            )

    def _backup_repo_copy(self, path: Path) -> MutationResult:
        backup = self.engine.backup_repo_copy(path)
        action = MutationAction.CHANGED if backup else MutationAction.SKIPPED
        return MutationResult(path, Operation.BACKUP, action, backup=backup)

    def _publish(self, outcome: SyncResult, push: bool, message: str) -> None:
        changed = [
            result.path.as_posix()
            for result in outcome.results
            if result.operation in (Operation.COPY_TO_REPO, Operation.REMOVE_FROM_REPO)
            and result.action is MutationAction.CHANGED
        ]
        if not push or not changed:
            return
        try:
            self.vcs.push(message, changed)
        except VcsError as exc:
            raise SyncError(f"Push failed: {exc}", outcome.results) from exc
        outcome.pushed = True

    @staticmethod
    def _record(
        outcome: SyncResult,
        path: Path,
        operation: Operation,
        action: Callable[[Path], MutationResult],
    ) -> MutationResult:
        try:
            result = action(path)
        except OSError as exc:
            logger.error("%s failed for '%s': %s", operation.value, path, exc)
            result = MutationResult(path, operation, MutationAction.FAILED, details=str(exc))
        outcome.results.append(result)
        return result
