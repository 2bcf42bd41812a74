"""Group classification for tracked paths."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Mapping, Sequence

ROOT_GROUP = "~"
UNCLASSIFIED = "unclassified"


def matches_prefix(path: str, prefix: str) -> bool:
    """Return ``True`` if ``path`` equals ``prefix`` or lives beneath it."""

    prefix = prefix.rstrip("/")
    return path == prefix or path.startswith(prefix + "/")


def group_of(path: str, categories: Mapping[str, Sequence[str]] | None = None) -> str:
    """Return the display group for ``path``.

    Without ``categories`` the group is the first path segment, or
    ``ROOT_GROUP`` for files directly under the root. With ``categories`` the
    first category (in mapping order) claiming the path wins, falling back to
    ``UNCLASSIFIED``.
    """

    posix = PurePosixPath(path).as_posix()
    if categories is None:
        parts = PurePosixPath(posix).parts
        return parts[0] if len(parts) > 1 else ROOT_GROUP

    for name, prefixes in categories.items():
        if any(matches_prefix(posix, prefix) for prefix in prefixes):
            return name
    return UNCLASSIFIED
