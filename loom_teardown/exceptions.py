"""Custom exceptions for loom-teardown"""

from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from loom_teardown.models.cleanup import CleanupResult


class LoomTeardownError(Exception):
    """Base exception for all loom-teardown errors."""
    pass


class GitOperationError(LoomTeardownError):
    """Exception raised for errors in Git operations."""

    def __init__(self, operation: str, branch: Optional[str] = None, message: Optional[str] = None):
        self.operation = operation
        self.branch = branch
        self.message = message

        error_msg = f"Git operation '{operation}' failed"
        if branch:
            error_msg += f" for branch '{branch}'"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)


class BranchProtectedError(GitOperationError):
    """Exception raised when attempting to delete a protected branch."""

    def __init__(self, branch: str):
        super().__init__("delete_branch", branch, "Branch is protected")


class UnmergedBranchError(GitOperationError):
    """Exception raised when a safe delete refuses an unmerged branch."""

    def __init__(self, branch: str):
        super().__init__(
            "delete_branch",
            branch,
            f"Cannot delete unmerged branch '{branch}'. Use --force to delete anyway.",
        )


class WorktreeNotFoundError(LoomTeardownError):
    """Exception raised when no worktree matches a cleanup identifier.

    Carries the partial result gathered before the lookup failed, so callers
    can still report what (if anything) was done.
    """

    def __init__(self, identifier: str, result: Optional["CleanupResult"] = None):
        self.identifier = identifier
        self.result = result
        super().__init__(f"No worktree found for identifier: {identifier}")


class SafetyCheckError(LoomTeardownError):
    """Exception raised when the safety gate blocks a cleanup."""

    def __init__(self, blockers: List[str]):
        self.blockers = list(blockers)
        super().__init__("Cannot cleanup:\n\n" + "\n\n".join(self.blockers))


class DevServerError(LoomTeardownError):
    """Exception raised when a dev server survives termination."""

    def __init__(self, port: int):
        self.port = port
        super().__init__(f"Dev server may still be running on port {port}")


class SettingsError(LoomTeardownError):
    """Exception raised for unreadable or malformed settings files."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(f"Invalid settings file {path}: {message}")
