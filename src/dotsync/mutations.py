"""State-changing operations on tracked files."""

from __future__ import annotations

import logging
from pathlib import Path

from .config import Settings
from .filesystem import (
    atomic_copy,
    copy_entry,
    ensure_symlink,
    files_identical,
    lexists,
    remove_path,
    same_file,
    symlink_points_to,
)
from .models import MutationAction, MutationResult, Operation

logger = logging.getLogger(__name__)

REPO_BACKUP_DIRNAME = ".dotsync-repo"


class MutationEngine:
    """Links and copies files between the repository and a target root.

    Anything about to be overwritten in the home root is first copied under
    ``backup_root`` at the same relative path. Repository copies discarded in
    favour of the remote are kept under ``backup_root/.dotsync-repo``.
    """

    def __init__(self, settings: Settings) -> None:
        self.repo_root = settings.repo_root
        self.home_root = settings.home_root
        self.backup_root = settings.backup_root

    def backup(self, path: Path, target_root: Path | None = None, *, into: Path | None = None) -> Path | None:
        """Copy the entry at ``target_root/path`` into the backup root.

        Returns the backup location, or ``None`` if there was nothing to save.
        """

        source = (target_root or self.home_root) / path
        if not lexists(source):
            return None
        destination = (into or self.backup_root) / path
        copy_entry(source, destination)
        logger.info("Backed up '%s' to '%s'", source, destination)
        return destination

    def backup_repo_copy(self, path: Path) -> Path | None:
        """Save the repository copy of ``path`` apart from home backups."""

        return self.backup(path, self.repo_root, into=self.backup_root / REPO_BACKUP_DIRNAME)

    def link(self, path: Path) -> MutationResult:
        repo_path = self.repo_root / path
        home_path = self.home_root / path

        if not lexists(repo_path):
            raise FileNotFoundError(f"Repository copy '{repo_path}' does not exist")
        if symlink_points_to(home_path, repo_path):
            return MutationResult(path, Operation.LINK, MutationAction.SKIPPED, details="Already linked")
        if not home_path.is_symlink() and same_file(home_path, repo_path):
            return MutationResult(path, Operation.LINK, MutationAction.SKIPPED, details="Linked through a parent")

        backup = self.backup(path)
        ensure_symlink(home_path, repo_path)
        logger.info("Linked '%s' -> '%s'", home_path, repo_path)
        return MutationResult(path, Operation.LINK, MutationAction.CHANGED, backup=backup)

    def copy_to_repo(self, path: Path, source_root: Path | None = None) -> MutationResult:
        source = (source_root or self.home_root) / path
        repo_path = self.repo_root / path

        if not source.exists():
            return MutationResult(path, Operation.COPY_TO_REPO, MutationAction.SKIPPED, details="Source missing")
        if symlink_points_to(source, repo_path) or same_file(source, repo_path):
            return MutationResult(path, Operation.COPY_TO_REPO, MutationAction.SKIPPED, details="Source is linked")
        if files_identical(source, repo_path):
            return MutationResult(path, Operation.COPY_TO_REPO, MutationAction.SKIPPED, details="Already identical")

        atomic_copy(source, repo_path)
        logger.info("Copied '%s' into repository", source)
        return MutationResult(path, Operation.COPY_TO_REPO, MutationAction.CHANGED)

    def copy_from_repo(self, path: Path, target_root: Path | None = None) -> MutationResult:
        target_root = target_root or self.home_root
        repo_path = self.repo_root / path
        target = target_root / path

        if not repo_path.is_file():
            raise FileNotFoundError(f"Repository copy '{repo_path}' does not exist")
        if not target.is_symlink() and files_identical(target, repo_path):
            return MutationResult(path, Operation.COPY_FROM_REPO, MutationAction.SKIPPED, details="Already identical")

        backup = None
        if target_root == self.home_root and not symlink_points_to(target, repo_path):
            backup = self.backup(path, target_root)

        atomic_copy(repo_path, target)
        logger.info("Copied '%s' to '%s'", repo_path, target)
        return MutationResult(path, Operation.COPY_FROM_REPO, MutationAction.CHANGED, backup=backup)

    def remove_from_repo(self, path: Path) -> MutationResult:
        if not remove_path(self.repo_root / path):
            return MutationResult(path, Operation.REMOVE_FROM_REPO, MutationAction.SKIPPED, details="Already absent")
        logger.info("Removed '%s' from repository", path)
        return MutationResult(path, Operation.REMOVE_FROM_REPO, MutationAction.CHANGED)
