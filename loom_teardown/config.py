"""Configuration handling for loom-teardown"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from loom_teardown.constants import (
    DEFAULT_BASE_PORT,
    DEFAULT_CLI_BIN_DIR,
    DEFAULT_DATA_DIR,
    DEFAULT_PROTECTED_BRANCHES,
    SETTINGS_DIR,
    SETTINGS_FILE,
    SETTINGS_LOCAL_FILE,
)
from loom_teardown.exceptions import SettingsError
from loom_teardown.logging_config import get_logger

logger = get_logger(__name__)

# camelCase keys in .loom/settings.json mapped to Config fields
SETTINGS_KEY_MAP = {
    "mainBranch": "main_branch",
    "protectedBranches": "protected_branches",
    "remoteName": "remote_name",
    "basePort": "base_port",
    "databaseUrlEnvVar": "database_url_env_var",
    "neonProjectId": "neon_project_id",
    "neonParentBranch": "neon_parent_branch",
    "dataDir": "data_dir",
    "cliBinDir": "cli_bin_dir",
}


@dataclass
class Config:
    """Configuration for loom-teardown with validation."""

    # Branch handling
    main_branch: str = "main"
    protected_branches: Optional[List[str]] = None
    remote_name: str = "origin"

    # Dev server ports
    base_port: int = DEFAULT_BASE_PORT

    # Database branching
    database_url_env_var: str = "DATABASE_URL"
    neon_project_id: Optional[str] = None
    neon_parent_branch: Optional[str] = None

    # Storage locations
    data_dir: str = field(default_factory=lambda: str(DEFAULT_DATA_DIR))
    cli_bin_dir: str = field(default_factory=lambda: str(DEFAULT_CLI_BIN_DIR))

    # Execution modes
    verbose: bool = False
    debug: bool = False

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate_main_branch()
        self._validate_protected_branches()
        self._validate_remote_name()
        self._validate_base_port()

    def _validate_main_branch(self):
        """Validate main_branch is not empty."""
        if not self.main_branch or not self.main_branch.strip():
            raise ValueError("main_branch cannot be empty")
        self.main_branch = self.main_branch.strip()

    def _validate_protected_branches(self):
        """Validate protected_branches list."""
        if self.protected_branches is None:
            return
        if not isinstance(self.protected_branches, list):
            raise ValueError("protected_branches must be a list")
        if not all(isinstance(b, str) for b in self.protected_branches):
            raise ValueError("protected_branches must only contain strings")

    def _validate_remote_name(self):
        if not self.remote_name or not self.remote_name.strip():
            raise ValueError("remote_name cannot be empty")

    def _validate_base_port(self):
        """Validate base_port is a usable TCP port."""
        if not isinstance(self.base_port, int) or not 1 <= self.base_port <= 65535:
            raise ValueError(f"base_port must be between 1 and 65535, got {self.base_port}")

    def effective_protected_branches(self) -> List[str]:
        """Return the protected branch set with the main branch always included.

        A configured list gets the main branch prepended when it is missing;
        without a configured list the defaults apply. Order is preserved and
        duplicates are dropped.
        """
        if self.protected_branches is not None:
            candidates = list(self.protected_branches)
            if self.main_branch not in candidates:
                candidates.insert(0, self.main_branch)
        else:
            candidates = [self.main_branch, *DEFAULT_PROTECTED_BRANCHES]

        seen = set()
        result = []
        for branch in candidates:
            if branch not in seen:
                seen.add(branch)
                result.append(branch)
        return result

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        return {
            "main_branch": self.main_branch,
            "protected_branches": self.protected_branches,
            "remote_name": self.remote_name,
            "base_port": self.base_port,
            "database_url_env_var": self.database_url_env_var,
            "neon_project_id": self.neon_project_id,
            "neon_parent_branch": self.neon_parent_branch,
            "data_dir": self.data_dir,
            "cli_bin_dir": self.cli_bin_dir,
            "verbose": self.verbose,
            "debug": self.debug,
        }

    def get(self, key: str, default=None):
        """Get config value by key."""
        return getattr(self, key, default)

    @classmethod
    def from_dict(cls, config_dict: dict) -> "Config":
        """Create Config from dictionary."""
        known_fields = set(cls().to_dict().keys())
        filtered = {k: v for k, v in config_dict.items() if k in known_fields}
        return cls(**filtered)


def _read_settings_file(path: Path) -> Dict:
    """Read one settings file, returning {} when it does not exist."""
    if not path.exists():
        return {}
    try:
        with open(path, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise SettingsError(str(path), str(e)) from e
    except OSError as e:
        raise SettingsError(str(path), str(e)) from e
    if not isinstance(data, dict):
        raise SettingsError(str(path), "top-level value must be an object")
    return data


def settings_to_config_dict(settings: Dict) -> Dict:
    """Translate camelCase settings keys into Config field names."""
    return {
        SETTINGS_KEY_MAP[key]: value
        for key, value in settings.items()
        if key in SETTINGS_KEY_MAP
    }


class SettingsProvider:
    """Loads per-project settings from .loom/settings.json.

    Settings from ``settings.local.json`` overlay the shared file, and
    NEON_* environment variables override both. Explicit overrides passed
    to the constructor (usually from the command line) win over everything.
    """

    def __init__(self, default_root: str, overrides: Optional[Dict] = None):
        self.default_root = Path(default_root)
        self.overrides = dict(overrides or {})

    def read_raw(self, cwd: Optional[str] = None) -> Dict:
        """Return merged raw settings (camelCase keys) for a project root."""
        root = Path(cwd) if cwd else self.default_root
        settings_dir = root / SETTINGS_DIR
        merged = _read_settings_file(settings_dir / SETTINGS_FILE)
        merged.update(_read_settings_file(settings_dir / SETTINGS_LOCAL_FILE))
        return merged

    def load(self, cwd: Optional[str] = None) -> Config:
        """Build a validated Config for the given project root."""
        values = settings_to_config_dict(self.read_raw(cwd))

        env_project = os.environ.get("NEON_PROJECT_ID")
        if env_project:
            values["neon_project_id"] = env_project
        env_parent = os.environ.get("NEON_PARENT_BRANCH")
        if env_parent:
            values["neon_parent_branch"] = env_parent

        values.update({k: v for k, v in self.overrides.items() if v is not None})
        logger.debug(f"Loaded settings for {cwd or self.default_root}: {sorted(values)}")
        try:
            return Config.from_dict(values)
        except ValueError as e:
            raise SettingsError(str(cwd or self.default_root), str(e)) from e

    def protected_branches(self, cwd: Optional[str] = None) -> List[str]:
        """Protected branch list, always including the configured main branch."""
        return self.load(cwd).effective_protected_branches()

    def main_branch(self, cwd: Optional[str] = None) -> str:
        return self.load(cwd).main_branch

    def configured_main_branch(self, cwd: Optional[str] = None) -> Optional[str]:
        """Return mainBranch only when a settings file or override sets it."""
        if self.overrides.get("main_branch"):
            return self.overrides["main_branch"]
        value = self.read_raw(cwd).get("mainBranch")
        return value if isinstance(value, str) and value.strip() else None
