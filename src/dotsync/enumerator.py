"""Build the set of tracked paths for one reconciliation pass."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Mapping, Sequence

from .classifier import group_of
from .config import Config
from .filesystem import IgnorePredicate, ignore_matcher, walk_files
from .models import ManagedPath


def discover(repo_root: Path, ignored: IgnorePredicate) -> list[ManagedPath]:
    """Walk the whole repository; groups come from the first path segment."""

    return [
        ManagedPath(group=group_of(relative.as_posix()), relative_path=relative)
        for relative in walk_files(repo_root, ignored)
    ]


def from_manifest(
    repo_root: Path,
    categories: Mapping[str, Sequence[str]],
    ignored: IgnorePredicate,
) -> list[ManagedPath]:
    """Expand each configured category prefix into leaf paths.

    A prefix that is a directory in the repository expands to its files; any
    other prefix (a file, or something not yet in the repository) is tracked
    as-is. The first category to claim a path keeps it.
    """

    results: list[ManagedPath] = []
    seen: set[str] = set()

    for name, prefixes in categories.items():
        for prefix in prefixes:
            prefix_path = Path(prefix)
            if any(ignored(part) for part in prefix_path.parts):
                continue
            candidate = repo_root / prefix_path
            if candidate.is_dir() and not candidate.is_symlink():
                leaves: Iterable[Path] = (prefix_path / leaf for leaf in walk_files(candidate, ignored))
            else:
                leaves = (prefix_path,)

            for leaf in leaves:
                key = leaf.as_posix()
                if key in seen:
                    continue
                seen.add(key)
                results.append(ManagedPath(group=name, relative_path=leaf))

    return results


def enumerate_tracked(config: Config) -> list[ManagedPath]:
    """Return the tracked paths using the configured strategy."""

    settings = config.settings
    ignored = ignore_matcher(settings.ignore)
    if settings.tracking == "manifest":
        return from_manifest(settings.repo_root, config.category_map(), ignored)
    return discover(settings.repo_root, ignored)
