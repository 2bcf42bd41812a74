"""Shared models and enums for dotsync."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


@dataclass(frozen=True, slots=True)
class ManagedPath:
    """Identifies a tracked file by group and relative path."""

    group: str
    relative_path: Path

    def key(self) -> str:
        return self.relative_path.as_posix()


class FileStatus(str, Enum):
    """Reconciliation state of a tracked file for one pass."""

    SYNCED = "synced"
    UNLINKED = "unlinked"
    LOCAL = "local"
    REMOTE = "remote"
    CONFLICT = "conflict"
    DIVERGED = "diverged"


class TargetMode(str, Enum):
    """How files reach the target root."""

    LINK = "link"
    COPY = "copy"


class Comparison(str, Enum):
    """Outcome of comparing two file locations."""

    IDENTICAL = "identical"
    DIFFERENT = "different"
    MISSING = "missing"
    UNREADABLE = "unreadable"


class Resolution(str, Enum):
    """A user's decision for a conflicting or diverged file."""

    KEEP_LOCAL = "keep_local"
    KEEP_REMOTE = "keep_remote"
    SKIP = "skip"


class Operation(str, Enum):
    LINK = "link"
    COPY_TO_REPO = "copy_to_repo"
    COPY_FROM_REPO = "copy_from_repo"
    REMOVE_FROM_REPO = "remove_from_repo"
    BACKUP = "backup"


class MutationAction(str, Enum):
    """Outcome of a single mutation."""

    CHANGED = "changed"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class TrackedFile:
    """Status information for one tracked path."""

    path: ManagedPath
    status: FileStatus
    details: str | None = None

    def key(self) -> str:
        return self.path.key()


@dataclass(frozen=True, slots=True)
class StatusReport:
    """Collection of tracked files resolved in one pass."""

    mode: TargetMode
    target_root: Path
    entries: tuple[TrackedFile, ...]

    def by_status(self, status: FileStatus) -> tuple[TrackedFile, ...]:
        return tuple(entry for entry in self.entries if entry.status is status)

    def in_sync(self) -> bool:
        return all(entry.status is FileStatus.SYNCED for entry in self.entries)


@dataclass(frozen=True, slots=True)
class MutationResult:
    """Result emitted for each attempted mutation."""

    path: Path
    operation: Operation
    action: MutationAction
    backup: Path | None = None
    details: str | None = None


@dataclass(slots=True)
class SyncPlan:
    """Selected files partitioned into action buckets."""

    mode: TargetMode
    target_root: Path
    pull: list[TrackedFile] = field(default_factory=list)
    push: list[TrackedFile] = field(default_factory=list)
    link: list[TrackedFile] = field(default_factory=list)
    discard: list[TrackedFile] = field(default_factory=list)
    deferred: list[TrackedFile] = field(default_factory=list)
    # conflicts left unresolved this pass, selected or not
    held: list[TrackedFile] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.pull or self.push or self.link)

    def touches_vcs(self) -> bool:
        return bool(self.pull or self.push)


@dataclass(slots=True)
class SyncResult:
    """What one reconciliation pass did."""

    plan: SyncPlan
    results: list[MutationResult] = field(default_factory=list)
    pulled: bool = False
    pushed: bool = False

    @property
    def failures(self) -> list[MutationResult]:
        return [result for result in self.results if result.action is MutationAction.FAILED]
