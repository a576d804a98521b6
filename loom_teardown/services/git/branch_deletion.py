"""Local branch deletion for loom-teardown."""

from typing import TYPE_CHECKING, Optional, Tuple

import git

from loom_teardown.exceptions import (
    BranchProtectedError,
    GitOperationError,
    LoomTeardownError,
    UnmergedBranchError,
)
from loom_teardown.logging_config import get_logger
from loom_teardown.models.cleanup import BranchDeleteOptions
from loom_teardown.services.git.commands import (
    GitErrorKind,
    RefState,
    classify_git_error,
    ref_state,
    run_git,
)

if TYPE_CHECKING:
    from loom_teardown.config import SettingsProvider
    from loom_teardown.services.git.merge_detector import MergeDetector
    from loom_teardown.services.git.worktrees import WorktreeService

logger = get_logger(__name__)

SAFE_DELETE = "-d"
FORCE_DELETE = "-D"


class BranchDeletionStrategy:
    """Deletes one local branch with the right flag from the right directory.

    A safe delete (``git branch -d``) checks ancestry against the HEAD of the
    directory it runs in, so for a nested branch it has to run from the
    worktree where the merge target is checked out. When that worktree is
    gone, an explicit ancestry probe decides instead.
    """

    def __init__(
        self,
        settings_provider: "SettingsProvider",
        worktree_service: "WorktreeService",
        merge_detector: "MergeDetector",
    ):
        self.settings_provider = settings_provider
        self.worktree_service = worktree_service
        self.merge_detector = merge_detector

    def delete_branch(
        self,
        branch_name: str,
        options: Optional[BranchDeleteOptions] = None,
        cwd: Optional[str] = None,
    ) -> bool:
        """Delete a local branch.

        Args:
            branch_name: Branch to delete
            options: Dry-run, force and pre-resolved merge target
            cwd: Directory to run git in (defaults to the main worktree)

        Returns:
            True if the branch was deleted, would be deleted, or was already absent

        Raises:
            BranchProtectedError: If the branch is protected, regardless of options
            UnmergedBranchError: If a safe delete refused an unmerged branch
            GitOperationError: If merge status cannot be verified
            git.exc.GitCommandError: For any other git failure
        """
        options = options or BranchDeleteOptions()

        if branch_name in self.settings_provider.protected_branches(cwd):
            raise BranchProtectedError(branch_name)

        working_dir = cwd or self.worktree_service.find_main_worktree_path(
            self.settings_provider.configured_main_branch()
        )

        if ref_state(working_dir, branch_name) == RefState.ABSENT:
            logger.debug(f"Branch {branch_name} does not exist, skipping deletion")
            return True

        if options.dry_run:
            logger.info(f"[DRY RUN] Would delete branch: {branch_name}")
            return True

        delete_flag, delete_cwd = self._choose_flag_and_dir(branch_name, options, working_dir)

        try:
            run_git(delete_cwd, "branch", delete_flag, branch_name)
        except git.exc.GitCommandError as e:
            kind = classify_git_error(e)
            if kind == GitErrorKind.NOT_FOUND:
                logger.debug(f"Branch {branch_name} already deleted")
                return True
            if options.force:
                raise
            if kind == GitErrorKind.NOT_FULLY_MERGED:
                raise UnmergedBranchError(branch_name) from e
            raise

        logger.info(f"Branch deleted: {branch_name}")
        return True

    def _choose_flag_and_dir(
        self, branch_name: str, options: BranchDeleteOptions, working_dir: str
    ) -> Tuple[str, str]:
        if options.force:
            return FORCE_DELETE, working_dir

        merge_target = options.merge_target_branch
        if not merge_target and options.worktree_path:
            # Only usable while the worktree still exists
            logger.warning(
                "delete_branch called with worktree_path but no merge_target_branch; "
                "this may fail if the worktree was already removed"
            )
            try:
                merge_target = self.merge_detector.get_merge_target_branch(options.worktree_path)
            except LoomTeardownError as e:
                logger.debug(f"Could not read merge target from worktree_path: {e}")

        if not merge_target:
            return SAFE_DELETE, working_dir

        target_path = self.worktree_service.find_worktree_for_branch(merge_target)
        if target_path:
            logger.debug(
                f"Running branch delete from worktree where '{merge_target}' is checked out: {target_path}"
            )
            return SAFE_DELETE, target_path

        logger.debug(f"Could not find worktree for branch '{merge_target}', falling back to merge check")
        if ref_state(working_dir, merge_target) == RefState.ABSENT:
            raise GitOperationError(
                "delete_branch",
                branch_name,
                f"Cannot verify that '{branch_name}' is merged: merge target '{merge_target}' "
                f"is not checked out anywhere and does not exist. Use --force to delete anyway.",
            )

        if self.merge_detector.is_branch_merged(branch_name, merge_target, working_dir):
            logger.debug(f"Branch '{branch_name}' verified merged into '{merge_target}', using force delete")
            return FORCE_DELETE, working_dir
        return SAFE_DELETE, working_dir
