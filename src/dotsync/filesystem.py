"""Filesystem helpers for dotsync."""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from fnmatch import fnmatch
from hashlib import blake2b
from pathlib import Path
from typing import Callable, Iterable, Iterator

from .models import Comparison

logger = logging.getLogger(__name__)

IgnorePredicate = Callable[[str], bool]


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def lexists(path: Path) -> bool:
    """Return ``True`` if anything, including a dangling symlink, sits at ``path``."""

    return path.exists() or path.is_symlink()


def copy_entry(source: Path, destination: Path) -> None:
    """Copy ``source`` into ``destination`` preserving metadata and links."""

    ensure_parent(destination)
    remove_path(destination)

    if source.is_symlink():
        destination.symlink_to(os.readlink(source))
    elif source.is_dir():
        shutil.copytree(
            source,
            destination,
            symlinks=True,
            copy_function=shutil.copy2,
            dirs_exist_ok=False,
        )
    else:
        shutil.copy2(source, destination)


def atomic_copy(source: Path, destination: Path) -> None:
    """Replace ``destination`` with a copy of ``source`` in one rename.

    A symlink at ``destination`` is replaced, never written through.
    """

    if destination.is_dir() and not destination.is_symlink():
        remove_path(destination)

    ensure_parent(destination)
    fd, temp_name = tempfile.mkstemp(prefix=f".{destination.name}.dotsync-tmp-", dir=destination.parent)
    os.close(fd)
    temp_path = Path(temp_name)
    try:
        shutil.copy2(source, temp_path)
        os.replace(temp_path, destination)
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def hash_file(path: Path) -> str:
    """Return a BLAKE2 digest of the file contents at ``path``."""

    hasher = blake2b(digest_size=32)
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def compare_files(first: Path, second: Path) -> Comparison:
    """Compare the contents of two files without ever raising."""

    try:
        if not first.is_file() or not second.is_file():
            return Comparison.MISSING
        if first.stat().st_size != second.stat().st_size:
            return Comparison.DIFFERENT
        if hash_file(first) == hash_file(second):
            return Comparison.IDENTICAL
        return Comparison.DIFFERENT
    except OSError as exc:
        logger.debug("Cannot compare '%s' with '%s': %s", first, second, exc)
        return Comparison.UNREADABLE


def files_identical(first: Path, second: Path) -> bool:
    return compare_files(first, second) is Comparison.IDENTICAL


def same_file(first: Path, second: Path) -> bool:
    """Return ``True`` if both paths reach the same inode (e.g. via a linked parent)."""

    try:
        return os.path.samefile(first, second)
    except OSError:
        return False


def symlink_points_to(source: Path, target: Path) -> bool:
    """Return ``True`` if the ``source`` symlink names exactly ``target``.

    The link text is resolved against the link's (canonical) directory but
    not followed further, so a link to another link does not count.
    """

    try:
        if not source.is_symlink():
            return False
        link_text = os.readlink(source)
        current = os.path.normpath(os.path.join(source.parent.resolve(strict=False), link_text))
        expected = os.path.normpath(os.path.join(target.parent.resolve(strict=False), target.name))
    except (OSError, RuntimeError) as exc:
        logger.debug("Cannot inspect link '%s': %s", source, exc)
        return False
    return current == expected


def ensure_symlink(source: Path, target: Path) -> bool:
    """Ensure ``source`` is a symlink to ``target``.

    Returns ``True`` if a change was made.
    """

    if lexists(source):
        if source.is_symlink() and symlink_points_to(source, target):
            return False
        remove_path(source)

    ensure_parent(source)
    try:
        relative_target = os.path.relpath(target, start=source.parent)
        source.symlink_to(relative_target)
    except ValueError:
        source.symlink_to(target)
    return True


def remove_path(path: Path) -> bool:
    """Delete ``path`` whether it is a file, directory, or symlink.

    Returns ``False`` when there was nothing to delete.
    """

    if not lexists(path):
        return False
    if path.is_symlink() or not path.is_dir():
        path.unlink()
    else:
        shutil.rmtree(path)
    return True


def ignore_matcher(patterns: Iterable[str]) -> IgnorePredicate:
    """Build a predicate matching entry names against exact names or globs."""

    patterns = tuple(patterns)
    exact = frozenset(pattern for pattern in patterns if not any(ch in pattern for ch in "*?["))
    globs = tuple(pattern for pattern in patterns if pattern not in exact)

    def _ignored(name: str) -> bool:
        return name in exact or any(fnmatch(name, pattern) for pattern in globs)

    return _ignored


def walk_files(root: Path, ignored: IgnorePredicate) -> Iterator[Path]:
    """Yield leaf paths under ``root``, relative to it.

    Ignored names are skipped at any depth. Symlinks are never followed: a
    link (even to a directory) is reported as a leaf.
    """

    def _walk(directory: Path, relative: Path) -> Iterator[Path]:
        try:
            with os.scandir(directory) as scanner:
                entries = sorted(scanner, key=lambda item: item.name)
        except OSError as exc:
            logger.warning("Skipping unreadable directory '%s': %s", directory, exc)
            return

        for entry in entries:
            if ignored(entry.name):
                continue
            child = relative / entry.name
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError:
                is_dir = False
            if is_dir:
                yield from _walk(Path(entry.path), child)
            else:
                yield child

    if not root.is_dir():
        return
    yield from _walk(root, Path())
