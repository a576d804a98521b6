"""Scoped database branch cleanup."""
import json
import shutil
import subprocess
from typing import Callable, List, Optional

from dotenv import dotenv_values
from rich.prompt import Confirm

from loom_teardown.logging_config import get_logger
from loom_teardown.models.cleanup import DatabaseDeletionResult

logger = get_logger(__name__)

AUTH_ERROR_MARKERS = (
    "not authenticated",
    "not logged in",
    "authentication required",
    "login required",
)


class DatabaseProviderError(Exception):
    """A database provider CLI call failed."""


class DatabaseProvider:
    """Interface for services that host per-branch databases."""

    def is_configured(self) -> bool:
        raise NotImplementedError

    def is_cli_available(self) -> bool:
        raise NotImplementedError

    def is_authenticated(self, cwd: Optional[str] = None) -> bool:
        raise NotImplementedError

    def delete_branch(self, name: str, is_preview: bool = False,
                      cwd: Optional[str] = None) -> DatabaseDeletionResult:
        raise NotImplementedError


class NeonProvider(DatabaseProvider):
    """Neon database branches managed through the ``neon`` CLI."""

    def __init__(self, project_id: Optional[str], parent_branch: Optional[str],
                 confirm: Optional[Callable[[str], bool]] = None, timeout: float = 30.0):
        self.project_id = project_id
        self.parent_branch = parent_branch
        self.confirm = confirm or (lambda prompt: Confirm.ask(prompt, default=False))
        self.timeout = timeout
        if not self.is_configured():
            logger.debug("Neon database branching will not be used (NEON_PROJECT_ID/NEON_PARENT_BRANCH unset)")

    def is_configured(self) -> bool:
        return bool(self.project_id and self.parent_branch)

    def is_cli_available(self) -> bool:
        return shutil.which("neon") is not None

    def _run(self, args: List[str], cwd: Optional[str] = None) -> str:
        if not self.is_configured():
            raise DatabaseProviderError(
                "NeonProvider is not configured. Check NEON_PROJECT_ID and NEON_PARENT_BRANCH."
            )
        logger.debug(f"Executing Neon CLI command: neon {' '.join(args)}")
        try:
            result = subprocess.run(
                ["neon", *args],
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise DatabaseProviderError(f"neon {args[0]} failed: {e}") from e
        if result.returncode != 0:
            raise DatabaseProviderError(
                f"neon {' '.join(args[:2])} failed (exit {result.returncode}): {result.stderr.strip()}"
            )
        return result.stdout

    def is_authenticated(self, cwd: Optional[str] = None) -> bool:
        """Check ``neon me``.

        Raises:
            DatabaseProviderError: For failures other than missing authentication
        """
        if not self.is_cli_available():
            return False
        try:
            result = subprocess.run(
                ["neon", "me"], cwd=cwd, capture_output=True, text=True, timeout=10
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise DatabaseProviderError(f"neon me failed: {e}") from e
        if result.returncode == 0:
            return True
        stderr = result.stderr.strip().lower()
        if any(marker in stderr for marker in AUTH_ERROR_MARKERS):
            return False
        raise DatabaseProviderError(f"neon me failed (exit {result.returncode}): {result.stderr.strip()}")

    @staticmethod
    def sanitize_branch_name(branch_name: str) -> str:
        return branch_name.replace("/", "_")

    def list_branches(self, cwd: Optional[str] = None) -> List[str]:
        output = self._run(
            ["branches", "list", "--project-id", self.project_id, "--output", "json"], cwd
        )
        try:
            branches = json.loads(output)
        except json.JSONDecodeError as e:
            raise DatabaseProviderError(f"Unexpected neon branches list output: {e}") from e
        return [branch.get("name") for branch in branches if isinstance(branch, dict)]

    def find_preview_branch(self, branch_name: str, cwd: Optional[str] = None) -> Optional[str]:
        """Find a Vercel preview database for ``branch_name``."""
        branches = self.list_branches(cwd)
        for candidate in (f"preview/{branch_name}", f"preview_{self.sanitize_branch_name(branch_name)}"):
            if candidate in branches:
                logger.info(f"Found Vercel preview database: {candidate}")
                return candidate
        return None

    def _delete(self, name: str, cwd: Optional[str]) -> None:
        self._run(["branches", "delete", name, "--project-id", self.project_id], cwd)

    def delete_branch(self, name: str, is_preview: bool = False,
                      cwd: Optional[str] = None) -> DatabaseDeletionResult:
        """Delete the database branch for a git branch.

        In preview contexts a Vercel preview database is only removed after
        the user confirms.
        """
        sanitized = self.sanitize_branch_name(name)
        try:
            if is_preview:
                preview = self.find_preview_branch(name, cwd)
                if preview:
                    logger.warning(f"Found Vercel preview database: {preview}")
                    logger.warning("Manual deletion may interfere with Vercel's preview deployments")
                    if not self.confirm("Delete preview database anyway?"):
                        logger.info("Skipping preview database deletion")
                        return DatabaseDeletionResult(
                            success=True, user_declined=True, branch_name=preview
                        )
                    logger.info(f"Deleting Vercel preview database: {preview}")
                    self._delete(preview, cwd)
                    return DatabaseDeletionResult(success=True, deleted=True, branch_name=preview)

            logger.info(f"Checking for Neon database branch: {sanitized}")
            if sanitized not in self.list_branches(cwd):
                logger.info(f"No database branch found for '{name}'")
                return DatabaseDeletionResult(success=True, not_found=True, branch_name=sanitized)

            logger.info(f"Deleting Neon database branch: {sanitized}")
            self._delete(sanitized, cwd)
            return DatabaseDeletionResult(success=True, deleted=True, branch_name=sanitized)
        except DatabaseProviderError as e:
            logger.error(f"Failed to delete database branch: {e}")
            return DatabaseDeletionResult(success=False, error=str(e), branch_name=sanitized)


class DatabaseManager:
    """Runs database branch cleanup only for projects that use one.

    Cleanup needs a configured provider and a worktree ``.env`` that defines
    the database URL variable.
    """

    def __init__(self, provider: DatabaseProvider, url_env_var: str = "DATABASE_URL"):
        self.provider = provider
        self.url_env_var = url_env_var

    def should_cleanup(self, env_file_path: str) -> bool:
        """Check whether a worktree has a scoped database to clean up.

        Reads only the local ``.env`` file, so it must run before the
        worktree directory is removed.
        """
        if not self.provider.is_configured():
            logger.debug("Skipping database cleanup: database provider not configured")
            return False
        try:
            values = dotenv_values(env_file_path)
        except OSError as e:
            logger.debug(f"Could not read {env_file_path}: {e}")
            return False
        except ValueError as e:
            # Undecodable bytes, e.g. a .env saved in a non-UTF-8 encoding
            logger.warning(f"Skipping database cleanup: cannot parse {env_file_path}: {e}")
            return False
        if not (values.get(self.url_env_var) or values.get("DATABASE_URI")):
            logger.debug(f"Skipping database cleanup: {self.url_env_var}/DATABASE_URI not found in {env_file_path}")
            return False
        return True

    def delete_branch_if_configured(self, branch_name: str, should_cleanup: bool,
                                    is_preview: bool = False,
                                    cwd: Optional[str] = None) -> DatabaseDeletionResult:
        """Delete a database branch if the pre-fetched config says one exists.

        Never raises; every outcome is encoded in the result.
        """
        if not should_cleanup or not self.provider.is_configured():
            return DatabaseDeletionResult(success=True, not_found=True, branch_name=branch_name)

        if not self.provider.is_cli_available():
            logger.info("Skipping database branch deletion: CLI tool not available")
            return DatabaseDeletionResult(
                success=False, not_found=True, error="CLI tool not available", branch_name=branch_name
            )

        try:
            if not self.provider.is_authenticated(cwd):
                logger.warning("Skipping database branch deletion: not authenticated with database provider")
                return DatabaseDeletionResult(
                    success=False, error="Not authenticated with database provider", branch_name=branch_name
                )
        except DatabaseProviderError as e:
            logger.error(f"Database authentication check failed: {e}")
            return DatabaseDeletionResult(
                success=False, error=f"Authentication check failed: {e}", branch_name=branch_name
            )

        return self.provider.delete_branch(branch_name, is_preview, cwd)
