"""Configuration loading for gamedir (.gamedir.yml)."""

from __future__ import annotations

import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .errors import ConfigError

CONFIG_FILENAME = ".gamedir.yml"

_SIZE_PATTERN = re.compile(r"^(\d+)x(\d+)$")
_SYNC_BACKENDS = ("git", "local")


@dataclass
class SyncConfig:
    """Source synchronisation settings."""

    backend: str = "git"
    mirror_dir: Optional[Path] = None
    timeout: float = 600.0


@dataclass
class BuildConfig:
    """Build executor settings."""

    timeout: float = 900.0
    output_dir: str = "dist"
    max_output_kb: int = 64


@dataclass
class ThumbnailConfig:
    """Optional post-publish thumbnail capture."""

    enabled: bool = False
    command: Optional[str] = None
    size: str = "200x150"
    timeout: float = 120.0


@dataclass
class SiteConfig:
    """Presentation settings for generated pages."""

    title: str = "WASM Game Directory"
    footer: str = "Powered by Zig + WebAssembly"


@dataclass
class GamedirConfig:
    """Represents the settings defined in .gamedir.yml."""

    root: Path
    manifest: Path
    public_root: Path
    state_dir: Path
    scratch_dir: Optional[Path] = None
    workers: int = 4
    sync: SyncConfig = field(default_factory=SyncConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    thumbnails: ThumbnailConfig = field(default_factory=ThumbnailConfig)
    site: SiteConfig = field(default_factory=SiteConfig)

    @property
    def versions_dir(self) -> Path:
        return self.state_dir / "versions"

    @property
    def summary_path(self) -> Path:
        return self.state_dir / "last_run.json"

    @property
    def lock_path(self) -> Path:
        return self.state_dir / "run.lock"

    @property
    def scratch_root(self) -> Path:
        return self.scratch_dir or Path(tempfile.gettempdir())

    @classmethod
    def defaults(cls, root: Path) -> "GamedirConfig":
        root = root.resolve()
        return cls(
            root=root,
            manifest=root / "games.json",
            public_root=root / "public",
            state_dir=root / ".gamedir" / "state",
        )


def load_config(
    config_path: Path, *, environ: Mapping[str, str] | None = None
) -> GamedirConfig:
    """Load configuration from disk and apply environment overrides."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()
    env = os.environ if environ is None else environ

    config = GamedirConfig.defaults(root)
    if config_file.exists():
        data = _read_config(config_file)
        _apply_mapping(config, data, root)
    _apply_environment(config, env)
    _validate(config)
    return config


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"{path.name} must contain a mapping at the root")
    return loaded


def _apply_mapping(config: GamedirConfig, data: Dict[str, Any], root: Path) -> None:
    manifest = _as_str(data.get("manifest"))
    if manifest:
        config.manifest = _resolve_path(root, manifest)
    public_root = _as_str(data.get("public_root"))
    if public_root:
        config.public_root = _resolve_path(root, public_root)
    state_dir = _as_str(data.get("state_dir"))
    if state_dir:
        config.state_dir = _resolve_path(root, state_dir)
    scratch_dir = _as_str(data.get("scratch_dir"))
    if scratch_dir:
        config.scratch_dir = _resolve_path(root, scratch_dir)
    workers = _as_int(data.get("workers"))
    if workers is not None:
        config.workers = workers

    sync_data = _as_dict(data.get("sync"))
    if sync_data:
        backend = _as_str(sync_data.get("backend"))
        if backend:
            config.sync.backend = backend.strip().lower()
        mirror_dir = _as_str(sync_data.get("mirror_dir"))
        if mirror_dir:
            config.sync.mirror_dir = _resolve_path(root, mirror_dir)
        timeout = _as_float(sync_data.get("timeout"))
        if timeout is not None:
            config.sync.timeout = timeout

    build_data = _as_dict(data.get("build"))
    if build_data:
        timeout = _as_float(build_data.get("timeout"))
        if timeout is not None:
            config.build.timeout = timeout
        output_dir = _as_str(build_data.get("output_dir"))
        if output_dir:
            config.build.output_dir = output_dir
        max_output_kb = _as_int(build_data.get("max_output_kb"))
        if max_output_kb is not None:
            config.build.max_output_kb = max_output_kb

    thumb_data = _as_dict(data.get("thumbnails"))
    if thumb_data:
        enabled = _as_bool(thumb_data.get("enabled"))
        if enabled is not None:
            config.thumbnails.enabled = enabled
        config.thumbnails.command = _as_str(thumb_data.get("command"))
        size = _as_str(thumb_data.get("size"))
        if size:
            config.thumbnails.size = size
        timeout = _as_float(thumb_data.get("timeout"))
        if timeout is not None:
            config.thumbnails.timeout = timeout

    site_data = _as_dict(data.get("site"))
    if site_data:
        title = _as_str(site_data.get("title"))
        if title:
            config.site.title = title
        footer = _as_str(site_data.get("footer"))
        if footer is not None:
            config.site.footer = footer


def _apply_environment(config: GamedirConfig, env: Mapping[str, str]) -> None:
    workers = env.get("GAMEDIR_WORKERS")
    if workers is not None:
        parsed = _as_int(workers)
        if parsed is None:
            raise ConfigError(f"GAMEDIR_WORKERS must be an integer, got '{workers}'")
        config.workers = parsed

    timeout = env.get("GAMEDIR_BUILD_TIMEOUT")
    if timeout is not None:
        parsed_timeout = _as_float(timeout)
        if parsed_timeout is None:
            raise ConfigError(f"GAMEDIR_BUILD_TIMEOUT must be a number, got '{timeout}'")
        config.build.timeout = parsed_timeout

    thumbnails = env.get("GENERATE_THUMBNAILS")
    if thumbnails is not None:
        enabled = _as_bool(thumbnails)
        if enabled is not None:
            config.thumbnails.enabled = enabled


def _validate(config: GamedirConfig) -> None:
    if config.workers < 1:
        raise ConfigError("workers must be at least 1")
    if config.build.timeout <= 0:
        raise ConfigError("build.timeout must be positive")
    if config.sync.timeout <= 0:
        raise ConfigError("sync.timeout must be positive")
    if config.build.max_output_kb < 1:
        raise ConfigError("build.max_output_kb must be at least 1")
    output_dir = Path(config.build.output_dir)
    if output_dir.is_absolute() or ".." in output_dir.parts:
        raise ConfigError("build.output_dir must be a relative path inside the working copy")
    if config.sync.backend not in _SYNC_BACKENDS:
        raise ConfigError(
            f"sync.backend must be one of {', '.join(_SYNC_BACKENDS)}, got '{config.sync.backend}'"
        )
    if not _SIZE_PATTERN.match(config.thumbnails.size):
        raise ConfigError(f"thumbnails.size must look like 200x150, got '{config.thumbnails.size}'")
    if config.thumbnails.enabled and not config.thumbnails.command:
        raise ConfigError("thumbnails.enabled requires thumbnails.command")


def _resolve_path(root: Path, value: str) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = root / path
    return path


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1", "on"}:
            return True
        if lowered in {"false", "no", "0", "off"}:
            return False
    return None


__all__ = [
    "BuildConfig",
    "CONFIG_FILENAME",
    "ConfigError",
    "GamedirConfig",
    "SiteConfig",
    "SyncConfig",
    "ThumbnailConfig",
    "load_config",
]
