"""Core package for the dotsync project."""

from .cli import app, run
from .config import Category, Config, ConfigError, Settings, load_config
from .manager import SyncError, SyncManager
from .models import (
    FileStatus,
    ManagedPath,
    MutationAction,
    MutationResult,
    Resolution,
    StatusReport,
    SyncPlan,
    SyncResult,
    TargetMode,
    TrackedFile,
)
from .mutations import MutationEngine
from .resolver import VcsSignals, resolve_status
from .vcs import GitVersionControl, VcsError, VcsTimeout, VersionControl

__all__ = [
    "Category",
    "Config",
    "ConfigError",
    "Settings",
    "load_config",
    "SyncManager",
    "SyncError",
    "MutationEngine",
    "VcsSignals",
    "resolve_status",
    "GitVersionControl",
    "VersionControl",
    "VcsError",
    "VcsTimeout",
    "FileStatus",
    "ManagedPath",
    "MutationAction",
    "MutationResult",
    "Resolution",
    "StatusReport",
    "SyncPlan",
    "SyncResult",
    "TargetMode",
    "TrackedFile",
    "app",
    "run",
]
