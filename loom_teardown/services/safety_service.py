"""Safety checks run before a worktree and its branch are destroyed."""

from typing import TYPE_CHECKING, List, Optional

import git

from loom_teardown.constants import COMMAND_NAME
from loom_teardown.exceptions import LoomTeardownError
from loom_teardown.logging_config import get_logger
from loom_teardown.models.cleanup import RemoteBranchStatus, SafetyCheck
from loom_teardown.models.worktree import WorkingTree

if TYPE_CHECKING:
    from loom_teardown.services.git.merge_detector import MergeDetector
    from loom_teardown.services.git.remote_status import RemoteStatusProbe
    from loom_teardown.services.git.worktrees import WorktreeService

logger = get_logger(__name__)


class SafetyClassifier:
    """Decides whether tearing down a worktree can lose work.

    Only irrecoverable loss of commits matters: a remote that is ahead of
    the local branch is safe, a local branch with unpushed commits is not.
    Every problem is reported as a blocker message telling the user how to
    resolve it; the classifier itself never raises.
    """

    def __init__(
        self,
        worktree_service: "WorktreeService",
        merge_detector: "MergeDetector",
        remote_probe: "RemoteStatusProbe",
        remote_name: str = "origin",
        command_name: str = COMMAND_NAME,
        default_merge_target: str = "main",
    ):
        self.worktree_service = worktree_service
        self.merge_detector = merge_detector
        self.remote_probe = remote_probe
        self.remote_name = remote_name
        self.command_name = command_name
        self.default_merge_target = default_merge_target

    def validate_worktree_safety(
        self,
        tree: WorkingTree,
        identifier: str,
        check_merge: bool = False,
        check_remote: bool = False,
    ) -> SafetyCheck:
        """Run every safety check for a located worktree.

        The main worktree and uncommitted-changes checks always run; the
        remote/merge checks run only when asked for.
        """
        blockers: List[str] = []
        main_blocker = self.main_worktree_blocker(tree)
        if main_blocker:
            blockers.append(main_blocker)

        check = self.classify(tree.branch, tree.path, check_merge, check_remote, identifier)
        return SafetyCheck(warnings=check.warnings, blockers=tuple(blockers) + check.blockers)

    def main_worktree_blocker(self, tree: WorkingTree) -> Optional[str]:
        """Blocker for the primary checkout, which is never a teardown target."""
        try:
            is_main = self.worktree_service.is_main_worktree(tree)
        except (LoomTeardownError, git.exc.GitError) as e:
            return f"Cannot determine whether \"{tree.path}\" is the main worktree: {e}"
        if is_main:
            return f"Cannot cleanup main worktree: \"{tree.branch}\" @ \"{tree.path}\""
        return None

    def classify(
        self,
        branch: Optional[str],
        worktree_path: str,
        check_merge: bool = False,
        check_remote: bool = False,
        identifier: Optional[str] = None,
    ) -> SafetyCheck:
        """Classify whether removing a worktree and its branch is safe.

        Args:
            branch: Branch checked out in the worktree (None if detached)
            worktree_path: Worktree directory, which must still exist
            check_merge: Verify the branch is pushed or merged
            check_remote: Verify the remote branch is not behind
            identifier: Identifier echoed in the suggested --force command

        Returns:
            SafetyCheck whose blockers each carry a full remediation message
        """
        identifier = identifier or branch or worktree_path
        warnings: List[str] = []
        blockers: List[str] = []

        uncommitted = self._uncommitted_changes_blocker(worktree_path, identifier)
        if uncommitted:
            blockers.append(uncommitted)
        elif (check_merge or check_remote) and branch:
            blocker = self._branch_loss_blocker(branch, worktree_path, identifier, warnings)
            if blocker:
                blockers.append(blocker)

        for warning in warnings:
            logger.warning(warning)
        return SafetyCheck(warnings=tuple(warnings), blockers=tuple(blockers))

    def _uncommitted_changes_blocker(self, worktree_path: str, identifier: str) -> Optional[str]:
        try:
            has_changes = self.worktree_service.has_uncommitted_changes(worktree_path)
        except (LoomTeardownError, git.exc.GitError, OSError) as e:
            return (
                f"Cannot check worktree for uncommitted changes.\n\n"
                f"Error: {e}\n\n"
                f"Use --force to proceed without verification."
            )
        if not has_changes:
            return None
        return (
            f"Worktree has uncommitted changes.\n\n"
            f"Please resolve before cleanup - you have some options:\n"
            f"  • Commit changes: cd {worktree_path} && git commit -am \"message\"\n"
            f"  • Stash changes: cd {worktree_path} && git stash\n"
            f"  • Force cleanup: {self.command_name} {identifier} --force (WARNING: will discard changes)"
        )

    def _branch_loss_blocker(
        self, branch: str, worktree_path: str, identifier: str, warnings: List[str]
    ) -> Optional[str]:
        try:
            merge_target = self.merge_detector.get_merge_target_branch(worktree_path)
        except (LoomTeardownError, OSError) as e:
            merge_target = self.default_merge_target
            warnings.append(f"Could not resolve merge target for '{branch}', using '{merge_target}': {e}")

        try:
            status = self.remote_probe.check(branch, worktree_path)
        except (LoomTeardownError, git.exc.GitError, OSError) as e:
            status = RemoteBranchStatus(exists=False, network_error=True, error_message=str(e))

        if status.network_error:
            return (
                f"Cannot verify remote branch status due to network error.\n\n"
                f"Error: {status.error_message or 'Unknown network error'}\n\n"
                f"Unable to determine if branch '{branch}' is safely backed up.\n"
                f"Use --force to proceed without verification."
            )

        if status.exists and status.local_ahead:
            return (
                f"Branch '{branch}' has unpushed commits that would be lost.\n"
                f"The remote branch exists but your local branch is ahead.\n\n"
                f"Please resolve before cleanup:\n"
                f"  • Push your commits: git push {self.remote_name} {branch}\n"
                f"  • Force cleanup: {self.command_name} {identifier} --force (WARNING: will lose commits)"
            )

        if status.exists:
            # Remote has every local commit
            return None

        try:
            merged = self.merge_detector.is_branch_merged(branch, merge_target, worktree_path)
        except (LoomTeardownError, git.exc.GitError, OSError) as e:
            return (
                f"Cannot verify whether branch '{branch}' is merged into '{merge_target}'.\n\n"
                f"Error: {e}\n\n"
                f"Use --force to proceed without verification."
            )
        if merged:
            return None

        return (
            f"Branch '{branch}' has not been pushed to remote and is not merged into '{merge_target}'.\n"
            f"Deleting this branch would result in data loss.\n\n"
            f"Please resolve before cleanup - you have some options:\n"
            f"  • Push to remote: git push -u {self.remote_name} {branch}\n"
            f"  • Merge to {merge_target}: git checkout {merge_target} && git merge {branch}\n"
            f"  • Force cleanup: {self.command_name} {identifier} --force (WARNING: will lose commits)"
        )
