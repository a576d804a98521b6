"""Remote branch status probing for loom-teardown."""

import git

from loom_teardown.logging_config import get_logger
from loom_teardown.models.cleanup import RemoteBranchStatus
from loom_teardown.services.git.commands import (
    GitErrorKind,
    classify_git_error,
    describe_git_error,
    is_ancestor,
    remote_configured,
    run_git,
)

logger = get_logger(__name__)


class RemoteStatusProbe:
    """Compares a local branch with its counterpart on a remote.

    Every call goes to the network; results are never cached.
    """

    def __init__(self, remote_name: str = "origin"):
        self.remote_name = remote_name

    def check(self, branch: str, cwd: str) -> RemoteBranchStatus:
        """Check whether ``branch`` exists on the remote and which side is ahead.

        Args:
            branch: Local branch name
            cwd: Directory to run git in

        Returns:
            RemoteBranchStatus. Network failures are reported through
            ``network_error`` rather than raised.
        """
        remote = self.remote_name

        if not remote_configured(cwd, remote):
            # Local-only repository: only the merge check can vouch for the branch
            logger.debug(f"Remote '{remote}' is not configured, treating '{branch}' as not on remote")
            return RemoteBranchStatus(exists=False)

        try:
            run_git(cwd, "fetch", remote, branch)
        except git.exc.GitCommandError as e:
            kind = classify_git_error(e)
            if kind == GitErrorKind.MISSING_REMOTE:
                return RemoteBranchStatus(exists=False)
            if kind == GitErrorKind.NETWORK:
                message = describe_git_error(e, "fetch")
                logger.warning(f"Network error checking remote branch '{branch}': {message}")
                return RemoteBranchStatus(exists=False, network_error=True, error_message=message)
            # Remote reachable but the ref is missing; ls-remote gives the answer
            logger.debug(f"Fetch of {remote}/{branch} failed: {e}")

        try:
            output = run_git(cwd, "ls-remote", "--heads", remote, branch)
        except git.exc.GitCommandError as e:
            message = describe_git_error(e, "ls-remote")
            logger.warning(f"Could not query remote for branch '{branch}': {message}")
            return RemoteBranchStatus(exists=False, network_error=True, error_message=message)

        remote_sha = ""
        for line in output.split("\n"):
            parts = line.split()
            if len(parts) == 2 and parts[1] == f"refs/heads/{branch}":
                remote_sha = parts[0]
                break
        if not remote_sha:
            logger.debug(f"Branch '{branch}' does not exist on {remote}")
            return RemoteBranchStatus(exists=False)

        try:
            local_sha = run_git(cwd, "rev-parse", f"refs/heads/{branch}").strip()
        except git.exc.GitCommandError as e:
            message = describe_git_error(e, "rev-parse")
            return RemoteBranchStatus(exists=True, network_error=True, error_message=message)

        if local_sha == remote_sha:
            return RemoteBranchStatus(exists=True)

        try:
            local_is_behind = is_ancestor(cwd, local_sha, remote_sha)
        except git.exc.GitCommandError as e:
            # Remote commit not available locally; cannot prove local is contained
            logger.debug(f"Ancestry check against {remote}/{branch} failed: {e}")
            local_is_behind = False

        if local_is_behind:
            return RemoteBranchStatus(exists=True, remote_ahead=True)
        return RemoteBranchStatus(exists=True, local_ahead=True)
