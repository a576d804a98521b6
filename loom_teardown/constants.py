"""Shared constants for loom-teardown."""

from pathlib import Path


# Settings locations inside a project root or worktree
SETTINGS_DIR = ".loom"
SETTINGS_FILE = "settings.json"
SETTINGS_LOCAL_FILE = "settings.local.json"

# Default storage locations
DEFAULT_DATA_DIR = Path.home() / ".config" / "loom-teardown"
DEFAULT_CLI_BIN_DIR = Path.home() / ".loom" / "bin"
LOOMS_DIR = "looms"
FINISHED_DIR = "finished"
RECAPS_DIR = "recaps"
ARCHIVED_DIR = "archived"

# Branches protected when no explicit list is configured (main branch is prepended)
DEFAULT_PROTECTED_BRANCHES = ["main", "master", "develop"]

# Dev server ports
DEFAULT_BASE_PORT = 3000
MAX_PORT = 65535

# Environment file read for database configuration
ENV_FILE_NAME = ".env"

# Name used in remediation messages
COMMAND_NAME = "loom-teardown"

# Prefix for every message describing a skipped mutation
DRY_RUN_PREFIX = "[DRY RUN]"


# Symbol constants
SYMBOL_SUCCESS = "✓"
SYMBOL_FAILURE = "✗"
SYMBOL_WARNING = "⚠"


# CLI colors (Rich color names)
CLI_COLORS = {
    "success": "green",
    "failure": "red",
    "warning": "yellow",
    "dry_run": "cyan",
}
