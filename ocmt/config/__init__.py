"""Configuration Management Package

Settings live in JSON files and are layered: built-in defaults, then the
global ``~/.oc/config.json``, then the project's ``<repo>/.oc/config.json``.
Each section is merged one level deep, so a project file can override a
single key without restating the rest of its section.
"""

import json
import os
import re
import subprocess
import sys
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Optional

from ocmt.llm.base import ModelRef, DEFAULT_COMMIT_MODEL, DEFAULT_CHANGELOG_MODEL
from ocmt.prompts.defaults import DEFAULT_GUIDELINES

CONFIG_DIR = ".oc"
CONFIG_FILENAME = "config.json"

GUIDELINE_FILES = ("commit", "branch", "changelog", "pr")


class ConfigError(Exception):
    """Raised when configuration cannot be read or written."""
    pass


def _valid_model(value) -> bool:
    if not isinstance(value, str):
        return False
    try:
        ModelRef.parse(value)
    except ValueError:
        return False
    return True


def _positive_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


@dataclass
class CommitConfig:
    model: str = DEFAULT_COMMIT_MODEL
    branch_model: Optional[str] = None
    deslop_model: Optional[str] = None
    auto_deslop: bool = False
    auto_stage_all: bool = False
    auto_create_branch_on_default: bool = True
    auto_create_branch_on_non_default: bool = False
    force_new_branch_on_default: bool = False
    auto_push: bool = False


@dataclass
class ChangelogConfig:
    model: str = DEFAULT_CHANGELOG_MODEL
    output_file: str = "CHANGELOG.md"
    auto_save: bool = False


@dataclass
class ReleaseConfig:
    auto_tag: bool = False
    auto_push: bool = False
    tag_prefix: str = "v"


@dataclass
class PRConfig:
    model: str = DEFAULT_COMMIT_MODEL
    auto_create: bool = False
    auto_open_in_browser: bool = False


@dataclass
class BackendConfig:
    url: Optional[str] = None
    timeout: float = 120
    permission_timeout: float = 60
    startup_timeout: float = 10
    auto_approve: bool = False


@dataclass
class GeneralConfig:
    verbose: bool = False


SECTIONS = {
    "commit": CommitConfig,
    "changelog": ChangelogConfig,
    "release": ReleaseConfig,
    "pr": PRConfig,
    "backend": BackendConfig,
    "general": GeneralConfig,
}


def _snake(key: str) -> str:
    """autoStageAll -> auto_stage_all (files written by other tools use camelCase)."""
    return re.sub(r'(?<!^)(?=[A-Z])', '_', key).lower()


@dataclass
class Config:
    """User configuration with sensible defaults."""
    commit: CommitConfig = field(default_factory=CommitConfig)
    changelog: ChangelogConfig = field(default_factory=ChangelogConfig)
    release: ReleaseConfig = field(default_factory=ReleaseConfig)
    pr: PRConfig = field(default_factory=PRConfig)
    backend: BackendConfig = field(default_factory=BackendConfig)
    general: GeneralConfig = field(default_factory=GeneralConfig)

    def to_dict(self) -> dict:
        return asdict(self)

    @property
    def branch_model(self) -> str:
        return self.commit.branch_model or self.commit.model

    @property
    def deslop_model(self) -> str:
        return self.commit.deslop_model or self.commit.model

    def validate(self) -> list[str]:
        """Validate config values and return list of warnings.

        Invalid values are replaced with defaults after warning.
        """
        warnings = []

        for section_name, section_cls in SECTIONS.items():
            section = getattr(self, section_name)
            defaults = section_cls()
            for f in fields(section_cls):
                value = getattr(section, f.name)
                default = getattr(defaults, f.name)
                if value == default:
                    continue
                key = f"{section_name}.{f.name}"

                if f.name.endswith("model"):
                    ok = (value is None and default is None) or _valid_model(value)
                elif isinstance(default, bool):
                    ok = isinstance(value, bool)
                elif isinstance(default, (int, float)):
                    ok = _positive_number(value)
                else:
                    ok = value is None or isinstance(value, str)

                if not ok:
                    warnings.append(f"Invalid {key} '{value}', using '{default}'")
                    setattr(section, f.name, default)

        return warnings

    @classmethod
    def from_dict(cls, data: dict) -> 'Config':
        config = cls()
        for section_name, values in (data or {}).items():
            section_name = _snake(section_name)
            section_cls = SECTIONS.get(section_name)
            if section_cls is None or not isinstance(values, dict):
                continue
            valid_keys = {f.name for f in fields(section_cls)}
            filtered = {_snake(k): v for k, v in values.items() if _snake(k) in valid_keys}
            setattr(config, section_name, section_cls(**filtered))

        for warning in config.validate():
            print(f"Config warning: {warning}", file=sys.stderr)
        return config


def merge_layers(base: dict, override: dict) -> dict:
    """Merge two raw config dicts, one level deep."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = {**result[key], **value}
        else:
            result[key] = value
    return result


def find_repo_root() -> Optional[Path]:
    try:
        result = subprocess.run(
            ['git', 'rev-parse', '--show-toplevel'],
            capture_output=True, text=True, check=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return None
    root = result.stdout.strip()
    return Path(root) if root else None


class ConfigManager:
    """Manages loading and saving layered configuration."""

    def __init__(self, home: Optional[Path] = None, repo_root: Optional[Path] = None):
        self._home = home
        self._repo_root = repo_root
        self._config: Optional[Config] = None
        self._sources: list[Path] = []
        self._env_overrides: dict[str, str] = {}

    @property
    def global_dir(self) -> Path:
        return (self._home or Path.home()) / CONFIG_DIR

    @property
    def project_dir(self) -> Optional[Path]:
        root = self._repo_root or find_repo_root()
        return root / CONFIG_DIR if root else None

    def load(self) -> Config:
        if self._config is not None:
            return self._config

        data: dict = {}
        self._sources = []

        global_path = self.global_dir / CONFIG_FILENAME
        if not global_path.exists():
            self._write_defaults(global_path)
        else:
            layer = self._read_layer(global_path)
            if layer is not None:
                data = merge_layers(data, layer)
                self._sources.append(global_path)

        project_dir = self.project_dir
        if project_dir is not None:
            project_path = project_dir / CONFIG_FILENAME
            if project_path.exists():
                layer = self._read_layer(project_path)
                if layer is not None:
                    data = merge_layers(data, layer)
                    self._sources.append(project_path)

        config = Config.from_dict(data)
        self._apply_env(config)
        self._config = config
        return config

    def _apply_env(self, config: Config) -> None:
        self._env_overrides = {}
        model = os.environ.get('OC_MODEL', '').strip()
        if model:
            if _valid_model(model):
                config.commit.model = model
                self._env_overrides['OC_MODEL'] = model
            else:
                print(f"Config warning: Invalid OC_MODEL '{model}', ignoring", file=sys.stderr)

        timeout = os.environ.get('OC_TIMEOUT', '').strip()
        if timeout:
            try:
                seconds = float(timeout)
                if seconds <= 0:
                    raise ValueError(timeout)
                config.backend.timeout = seconds
                self._env_overrides['OC_TIMEOUT'] = timeout
            except ValueError:
                print(f"Config warning: Invalid OC_TIMEOUT '{timeout}', ignoring", file=sys.stderr)

    def _read_layer(self, path: Path) -> Optional[dict]:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            print(f"Warning: Could not load {path}: {e}", file=sys.stderr)
            return None
        if not isinstance(data, dict):
            print(f"Warning: Could not load {path}: expected a JSON object", file=sys.stderr)
            return None
        return data

    def _write_defaults(self, path: Path) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(Config().to_dict(), f, indent=2)
        except OSError as e:
            print(f"Warning: Could not create {path}: {e}", file=sys.stderr)

    def save(self, config: Config, global_config: bool = True) -> Path:
        directory = self.global_dir if global_config else self.project_dir
        if directory is None:
            raise ConfigError("Not inside a git repository; cannot save project config")
        path = directory / CONFIG_FILENAME
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with open(path, 'w', encoding='utf-8') as f:
                json.dump(config.to_dict(), f, indent=2)
        except OSError as e:
            raise ConfigError(f"Could not write {path}: {e}") from e
        self._config = None
        return path

    def get_sources(self) -> list[Path]:
        return list(self._sources)

    def get_env_overrides(self) -> dict[str, str]:
        return dict(self._env_overrides)

    def guideline(self, name: str) -> str:
        """Return guideline text: project file, else global file.

        The global file is created from the built-in default on first use.
        """
        filename = f"{name}.md"
        project_dir = self.project_dir
        if project_dir is not None:
            project_path = project_dir / filename
            if project_path.exists():
                return project_path.read_text(encoding='utf-8')

        default = DEFAULT_GUIDELINES[name]
        global_path = self.global_dir / filename
        if not global_path.exists():
            try:
                global_path.parent.mkdir(parents=True, exist_ok=True)
                global_path.write_text(default, encoding='utf-8')
            except OSError as e:
                print(f"Warning: Could not create {global_path}: {e}", file=sys.stderr)
                return default
        try:
            return global_path.read_text(encoding='utf-8')
        except OSError:
            return default

    def reset(self) -> None:
        self._config = None


_manager = ConfigManager()


def load_config() -> Config:
    return _manager.load()


def save_config(config: Config, global_config: bool = True) -> Path:
    return _manager.save(config, global_config)


def get_config_sources() -> list[Path]:
    return _manager.get_sources()


def get_env_overrides() -> dict[str, str]:
    return _manager.get_env_overrides()


def get_guideline(name: str) -> str:
    return _manager.guideline(name)


def get_manager() -> ConfigManager:
    return _manager


__all__ = [
    "Config",
    "CommitConfig",
    "ChangelogConfig",
    "ReleaseConfig",
    "PRConfig",
    "BackendConfig",
    "GeneralConfig",
    "ConfigError",
    "ConfigManager",
    "merge_layers",
    "load_config",
    "save_config",
    "get_config_sources",
    "get_env_overrides",
    "get_guideline",
    "get_manager",
    "GUIDELINE_FILES",
]
