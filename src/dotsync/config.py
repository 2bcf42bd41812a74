"""TOML configuration loading for dotsync."""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError

DEFAULT_CONFIG_FILENAME = "dotsync.toml"
DEFAULT_IGNORE = (".git", "README.md", ".DS_Store", "setup.sh")
DEFAULT_COMMIT_MESSAGE = "update dotfiles"


class ConfigError(RuntimeError):
    """Raised when a configuration file cannot be parsed or validated."""


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return Path(os.path.normpath(expanded))
    return Path(os.path.normpath(base_dir / expanded))


class Category(BaseModel):
    """An ordered group of path prefixes in the tracking manifest."""

    model_config = ConfigDict(frozen=True)

    name: str
    paths: tuple[str, ...]

    @classmethod
    def from_raw(cls, name: str, raw: Mapping[str, Any]) -> "Category":
        paths_raw = raw.get("paths")
        if not paths_raw:
            raise ConfigError(f"Category '{name}' must define at least one path")

        paths: list[str] = []
        for entry in paths_raw:
            candidate = Path(str(entry))
            if candidate.is_absolute():
                raise ConfigError(f"Category '{name}' path '{candidate}' must be relative to the home root")
            if ".." in candidate.parts:
                raise ConfigError(f"Category '{name}' path '{candidate}' must not escape the home root")
            paths.append(candidate.as_posix())

        return cls(name=name, paths=tuple(paths))


class Settings(BaseModel):
    """Roots and behaviour for one run. Built once at start-up."""

    model_config = ConfigDict(frozen=True)

    repo_root: Path
    home_root: Path
    backup_root: Path
    project_root: Path | None = None
    repo_url: str | None = None
    branch: str | None = None
    tracking: Literal["discover", "manifest"] = "discover"
    ignore: tuple[str, ...] = DEFAULT_IGNORE
    vcs_timeout: float = Field(default=60.0, gt=0)
    commit_message: str = DEFAULT_COMMIT_MESSAGE

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "Settings":
        home = _expand_path(raw.get("home_root", "~"), base_dir=base_dir)
        repo = _expand_path(raw.get("repo_root", home / ".dotfiles"), base_dir=base_dir)
        backup = _expand_path(raw.get("backup_root", home / ".dotfiles-backup"), base_dir=base_dir)
        project_raw = raw.get("project_root")
        project = _expand_path(project_raw, base_dir=base_dir) if project_raw is not None else None

        values: dict[str, Any] = {
            "repo_root": repo,
            "home_root": home,
            "backup_root": backup,
            "project_root": project,
        }
        for key in ("repo_url", "branch", "tracking", "vcs_timeout", "commit_message"):
            if key in raw:
                values[key] = raw[key]
        if "ignore" in raw:
            values["ignore"] = tuple(str(item) for item in raw["ignore"])

        try:
            return cls(**values)
        except ValidationError as exc:
            raise ConfigError(f"Invalid [settings]: {exc}") from exc


class Config(BaseModel):
    """Fully parsed configuration."""

    model_config = ConfigDict(frozen=True)

    config_path: Path | None
    settings: Settings
    categories: tuple[Category, ...] = ()

    def category_map(self) -> Dict[str, tuple[str, ...]]:
        return {category.name: category.paths for category in self.categories}

    @classmethod
    def defaults(cls) -> "Config":
        return cls(config_path=None, settings=Settings.from_raw({}, base_dir=Path.cwd()))


def load_config(path: Path | None = None) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Optional path to the TOML file or its directory. When omitted,
            ``dotsync.toml`` in the current directory and then in
            ``~/.config/dotsync`` are tried before falling back to defaults.
    """

    config_path = _resolve_config_path(path)
    if config_path is None:
        return Config.defaults()

    base_dir = config_path.parent
    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Configuration file '{config_path}' is not valid TOML: {exc}") from exc

    settings = Settings.from_raw(data.get("settings", {}), base_dir=base_dir)

    categories = tuple(
        Category.from_raw(name, body) for name, body in (data.get("categories") or {}).items()
    )
    if settings.tracking == "manifest" and not categories:
        raise ConfigError("Manifest tracking requires at least one [categories.<name>] table")

    return Config(config_path=config_path, settings=settings, categories=categories)


def _resolve_config_path(path: Path | None) -> Path | None:
    if path is None:
        for candidate in (
            Path.cwd() / DEFAULT_CONFIG_FILENAME,
            Path.home() / ".config" / "dotsync" / DEFAULT_CONFIG_FILENAME,
        ):
            if candidate.is_file():
                return candidate.resolve(strict=False)
        return None

    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)
