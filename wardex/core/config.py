"""
Layered configuration.

Sources, lowest precedence first:
    1. ./config.yaml
    2. $XDG_CONFIG_HOME/wardex/config.yaml (or an explicit file)
    3. Environment variables with the WX_ prefix, e.g.
       WX_PATHS__WORKSPACE=/tmp/workspace
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.yaml"
UNDO_LOG_NAME = ".undo_log.jsonl"

# Named roots and their default location relative to the workspace
ROOT_DEFAULTS: Dict[str, str] = {
    "inbox": "0_Inbox",
    "projects": "1_Projects",
    "areas": "2_Areas",
    "resources": "3_Resources",
    "archives": "4_Archives",
}

DEFAULT_FILENAME_TOKENS: Dict[str, List[str]] = {
    "web": ["web"],
    "pwn": ["pwn", "bof"],
    "crypto": ["crypto"],
    "rev": ["rev"],
    "misc": ["misc"],
}

DEFAULT_CONTENT_SIGNATURES: Dict[str, List[str]] = {
    "web": ["dockerfile", "package.json", "app.py", "server.js", "index.html"],
    "pwn": ["libc.so", "*.elf", "ld-", "pwntools"],
    "crypto": ["crypto", "cipher", "rsa", "aes", "key.txt"],
    "rev": ["*.exe", "*.dll", "ghidra", "ida"],
}

DEFAULT_EXTENSION_HINTS: Dict[str, str] = {
    "py": "web",
    "js": "web",
    "html": "web",
    "php": "web",
    "c": "pwn",
    "cpp": "pwn",
    "elf": "pwn",
    "enc": "crypto",
    "key": "crypto",
    "pem": "crypto",
    "exe": "rev",
    "dll": "rev",
    "asm": "rev",
    "pcap": "forensics",
    "pcapng": "forensics",
    "mem": "forensics",
    "jpg": "misc",
    "png": "misc",
    "gif": "misc",
}


class CleanRule(BaseModel):
    """Regex pattern matched against a base name, and where matches go."""

    pattern: str = Field(description="Regular expression searched in the name")
    target: str = Field(description="Destination template, e.g. resources/Documents")

    model_config = ConfigDict(frozen=True)


DEFAULT_CLEAN_RULES: List[CleanRule] = [
    CleanRule(pattern=r"(?i)\.pdf$", target="resources/Documents"),
    CleanRule(pattern=r"(?i)\.(jpe?g|png|gif|webp|svg)$", target="resources/Images"),
    CleanRule(pattern=r"(?i)\.(zip|tar|tgz|tar\.gz|7z|rar)$", target="archives"),
]


class PathsConfig(BaseModel):
    """Workspace roots. Extra keys are custom roots usable in rule targets."""

    workspace: Path = Field(default_factory=lambda: Path.home() / "workspace")
    inbox: Optional[Path] = None
    projects: Optional[Path] = None
    areas: Optional[Path] = None
    resources: Optional[Path] = None
    archives: Optional[Path] = None
    ctf_root: Optional[Path] = None

    model_config = ConfigDict(extra="allow")

    @field_validator(
        "workspace",
        "inbox",
        "projects",
        "areas",
        "resources",
        "archives",
        "ctf_root",
        mode="before",
    )
    @classmethod
    def expand_user(cls, value: Any) -> Any:
        if isinstance(value, (str, Path)):
            return Path(value).expanduser()
        return value

    @property
    def custom(self) -> Dict[str, Path]:
        return {
            key: Path(str(value)).expanduser()
            for key, value in (self.model_extra or {}).items()
        }


class RulesConfig(BaseModel):
    clean: List[CleanRule] = Field(default_factory=lambda: list(DEFAULT_CLEAN_RULES))


class CtfConfig(BaseModel):
    """Smart import settings."""

    filename_tokens: Dict[str, List[str]] = Field(
        default_factory=lambda: dict(DEFAULT_FILENAME_TOKENS)
    )
    content_signatures: Dict[str, List[str]] = Field(
        default_factory=lambda: dict(DEFAULT_CONTENT_SIGNATURES)
    )
    extension_hints: Dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_EXTENSION_HINTS)
    )


class WardexSettings(BaseSettings):
    """Application settings loaded from YAML files and WX_ environment variables."""

    paths: PathsConfig = Field(default_factory=PathsConfig)
    rules: RulesConfig = Field(default_factory=RulesConfig)
    ctf: CtfConfig = Field(default_factory=CtfConfig)

    undo_log: Optional[Path] = Field(
        default=None, description="Transaction log location (default: workspace)"
    )
    lock_timeout: float = Field(
        default=30.0, gt=0, description="Seconds to wait for the log lock"
    )

    model_config = SettingsConfigDict(
        env_prefix="WX_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment overrides values read from config files
        return (env_settings, init_settings, dotenv_settings, file_secret_settings)

    @property
    def undo_log_path(self) -> Path:
        if self.undo_log:
            return Path(self.undo_log).expanduser()
        return self.paths.workspace / UNDO_LOG_NAME

    def root_keys(self) -> List[str]:
        """All names usable as the first component of a rule target."""
        return ["workspace", *ROOT_DEFAULTS, "ctf_root", *self.paths.custom]

    def resolve_path(self, key: str) -> Path:
        """
        Resolve a root key to an absolute path.

        Args:
            key: workspace, inbox, projects, areas, resources, archives,
                ctf_root or a custom root name

        Returns:
            Path of the root. Unknown keys resolve below the projects root.
        """
        if key == "workspace":
            return self.paths.workspace
        if key in ROOT_DEFAULTS:
            configured = getattr(self.paths, key)
            return configured or self.paths.workspace / ROOT_DEFAULTS[key]
        if key == "ctf_root":
            return self.ctf_root()

        custom = self.paths.custom
        if key in custom:
            return custom[key]

        return self.resolve_path("projects") / key

    def ctf_root(self) -> Path:
        return self.paths.ctf_root or self.resolve_path("projects") / "CTFs"

    def resolve_target(self, template: str) -> Path:
        """
        Resolve a rule target template to an absolute directory.

        "resources/Documents" becomes <resources root>/Documents. Absolute
        and ~ templates are used as-is; anything else lands below projects.
        """
        if template.startswith("~") or Path(template).is_absolute():
            return Path(template).expanduser()

        head, _, rest = template.strip("/").partition("/")
        if head in self.root_keys():
            root = self.resolve_path(head)
            return root / rest if rest else root

        return self.resolve_path("projects") / template


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _read_yaml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def default_config_files() -> List[Path]:
    """Config files consulted when none is given explicitly, lowest first."""
    config_home = Path(
        os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
    ).expanduser()
    return [Path.cwd() / CONFIG_FILE_NAME, config_home / "wardex" / CONFIG_FILE_NAME]


def load_settings(config_file: Optional[Path] = None) -> WardexSettings:
    """
    Load layered settings.

    Args:
        config_file: Explicit YAML file; replaces the default file search

    Returns:
        Validated settings

    Raises:
        ConfigError: If a file is unreadable or a value is invalid
    """
    if config_file is not None:
        if not Path(config_file).exists():
            raise ConfigError(f"Config file not found: {config_file}")
        files = [Path(config_file)]
    else:
        files = [p for p in default_config_files() if p.exists()]

    data: Dict[str, Any] = {}
    for path in files:
        logger.debug(f"Loading config from {path}")
        data = _deep_merge(data, _read_yaml(path))

    try:
        return WardexSettings(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
