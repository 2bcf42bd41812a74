"""Classify tracked paths into a single ``FileStatus``.

Status is derived from the filesystem first (is the repo copy there, is the
target there, is the target the right symlink, do the contents match) and is
then overridden by version-control signals when they are available:

* in both the local-uncommitted and remote-changed sets -> ``CONFLICT``
* remote-changed only -> ``REMOTE``
* local-uncommitted only -> ``LOCAL``

Nothing here raises; unreadable or missing files fold into ``UNLINKED`` or
"not identical".
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from .filesystem import compare_files, lexists, symlink_points_to
from .models import Comparison, FileStatus, ManagedPath, TargetMode, TrackedFile


@dataclass(frozen=True, slots=True)
class VcsSignals:
    """Repo-relative posix paths reported by version control for one pass."""

    local: frozenset[str] = frozenset()
    remote: frozenset[str] = frozenset()


def describe(
    relative_path: Path,
    repo_root: Path,
    target_root: Path,
    *,
    mode: TargetMode = TargetMode.LINK,
    signals: VcsSignals | None = None,
) -> tuple[FileStatus, str | None]:
    """Return the status of ``relative_path`` together with a short reason."""

    if signals is not None:
        key = relative_path.as_posix()
        is_local = key in signals.local
        is_remote = key in signals.remote
        if is_local and is_remote:
            return FileStatus.CONFLICT, "Changed locally and on the remote"
        if is_remote:
            return FileStatus.REMOTE, "Changed on the remote"
        if is_local:
            return FileStatus.LOCAL, "Uncommitted local changes"

    repo_path = repo_root / relative_path
    target_path = target_root / relative_path

    try:
        repo_present = lexists(repo_path)
        target_present = lexists(target_path)
    except OSError:
        return FileStatus.UNLINKED, "Path could not be inspected"

    if not repo_present:
        return FileStatus.UNLINKED, "Missing from repository"
    if not target_present:
        return FileStatus.UNLINKED, "Not present in target"

    if mode is TargetMode.LINK and symlink_points_to(target_path, repo_path):
        return FileStatus.SYNCED, None

    comparison = compare_files(target_path, repo_path)
    if comparison is Comparison.IDENTICAL:
        return FileStatus.SYNCED, None
    if comparison is Comparison.DIFFERENT:
        return FileStatus.DIVERGED, "Content differs from repository"
    return FileStatus.DIVERGED, f"Content could not be compared ({comparison.value})"


def resolve_status(
    relative_path: Path,
    repo_root: Path,
    target_root: Path,
    *,
    mode: TargetMode = TargetMode.LINK,
    signals: VcsSignals | None = None,
) -> FileStatus:
    status, _ = describe(relative_path, repo_root, target_root, mode=mode, signals=signals)
    return status


def resolve(
    path: ManagedPath,
    repo_root: Path,
    target_root: Path,
    *,
    mode: TargetMode = TargetMode.LINK,
    signals: VcsSignals | None = None,
) -> TrackedFile:
    status, details = describe(path.relative_path, repo_root, target_root, mode=mode, signals=signals)
    return TrackedFile(path=path, status=status, details=details)
