"""Boundary between loom-teardown and the git executable.

Every git invocation made by the teardown services goes through this module.
Expected "not found" outcomes come back as values (``RefState``) and git
error text is classified in exactly one place (``classify_git_error``).
"""

from enum import Enum
from typing import Tuple, Union

import git

from loom_teardown.logging_config import get_logger

logger = get_logger(__name__)


class RefState(Enum):
    """Whether a ref resolves in a repository."""
    EXISTS = "exists"
    ABSENT = "absent"


class GitErrorKind(Enum):
    """Classification of a failed git invocation."""
    NOT_FULLY_MERGED = "not-fully-merged"
    MISSING_REMOTE = "missing-remote"
    NETWORK = "network"
    NOT_FOUND = "not-found"
    OTHER = "other"


NOT_FULLY_MERGED_MARKERS = ("not fully merged",)

MISSING_REMOTE_MARKERS = (
    "no such remote",
)

NETWORK_MARKERS = (
    "could not resolve host",
    "could not read from remote repository",
    "connection refused",
    "connection timed out",
    "operation timed out",
    "network is unreachable",
    "unable to access",
    "failed to connect",
    "ssh: connect to host",
    "timed out",
)

NOT_FOUND_MARKERS = (
    "not found",
    "does not exist",
)


def classify_git_error(error: Union[Exception, str]) -> GitErrorKind:
    """Classify git error text.

    Markers are checked in a fixed order so that a message matching several
    categories always lands in the same one.

    Args:
        error: The exception raised by git, or its message

    Returns:
        The GitErrorKind for the message
    """
    if isinstance(error, git.exc.GitCommandError):
        text = f"{error.stderr or ''} {error}"
    else:
        text = str(error)
    text = text.lower()

    if any(marker in text for marker in NOT_FULLY_MERGED_MARKERS):
        return GitErrorKind.NOT_FULLY_MERGED
    if any(marker in text for marker in MISSING_REMOTE_MARKERS):
        return GitErrorKind.MISSING_REMOTE
    if any(marker in text for marker in NETWORK_MARKERS):
        return GitErrorKind.NETWORK
    if any(marker in text for marker in NOT_FOUND_MARKERS):
        return GitErrorKind.NOT_FOUND
    return GitErrorKind.OTHER


def describe_git_error(error: git.exc.GitCommandError, command: str) -> str:
    """Render a GitCommandError as a single readable line."""
    stderr = (error.stderr if hasattr(error, "stderr") and error.stderr else str(error)).strip()
    status = error.status if hasattr(error, "status") else "unknown"
    if stderr:
        return f"git {command} failed (exit {status}): {stderr}"
    return f"git {command} failed with exit code {status}"


def run_git(cwd: str, *args: str) -> str:
    """Run a git command in ``cwd`` and return its stdout.

    Raises:
        git.exc.GitCommandError: If git exits non-zero
    """
    logger.debug(f"git {' '.join(args)} (cwd={cwd})")
    return git.Git(cwd).execute(["git", *args])


def probe_git(cwd: str, *args: str) -> Tuple[int, str, str]:
    """Run a git command whose non-zero exit is an expected answer.

    Returns:
        Tuple of (exit status, stdout, stderr)
    """
    logger.debug(f"git {' '.join(args)} (cwd={cwd}, probe)")
    status, stdout, stderr = git.Git(cwd).execute(
        ["git", *args],
        with_exceptions=False,
        with_extended_output=True,
    )
    return status, stdout, stderr


def ref_state(cwd: str, branch: str) -> RefState:
    """Report whether ``refs/heads/<branch>`` resolves in ``cwd``."""
    status, _, _ = probe_git(cwd, "rev-parse", "--verify", "--quiet", f"refs/heads/{branch}")
    return RefState.EXISTS if status == 0 else RefState.ABSENT


def is_ancestor(cwd: str, ancestor: str, descendant: str) -> bool:
    """Return True if ``ancestor`` is reachable from ``descendant``.

    Raises:
        git.exc.GitCommandError: If either ref cannot be resolved
    """
    status, _, stderr = probe_git(cwd, "merge-base", "--is-ancestor", ancestor, descendant)
    if status == 0:
        return True
    if status == 1:
        return False
    raise git.exc.GitCommandError(
        ["git", "merge-base", "--is-ancestor", ancestor, descendant], status, stderr
    )


def remote_configured(cwd: str, remote: str) -> bool:
    """Report whether ``remote`` is defined in the repository at ``cwd``."""
    status, _, _ = probe_git(cwd, "remote", "get-url", remote)
    return status == 0
