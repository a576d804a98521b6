"""Merge detection service for loom-teardown."""

from typing import TYPE_CHECKING, Optional

import git

from loom_teardown.exceptions import GitOperationError, SettingsError
from loom_teardown.logging_config import get_logger
from loom_teardown.services.git.commands import describe_git_error, is_ancestor

if TYPE_CHECKING:
    from loom_teardown.config import SettingsProvider
    from loom_teardown.services.metadata_service import MetadataStore

logger = get_logger(__name__)

DEFAULT_MERGE_TARGET = "main"


class MergeDetector:
    """Service for detecting if branches have been merged into their target."""

    def __init__(self, metadata_store: "MetadataStore", settings_provider: "SettingsProvider"):
        """Initialize the merge detector.

        Args:
            metadata_store: Store holding per-worktree metadata (parent looms)
            settings_provider: Source of per-worktree settings
        """
        self.metadata_store = metadata_store
        self.settings_provider = settings_provider

    def is_branch_merged(self, branch: str, target: str, cwd: str) -> bool:
        """Check whether every commit of ``branch`` is reachable from ``target``.

        Args:
            branch: Branch whose commits must be reachable
            target: Branch to check against
            cwd: Directory to run git in

        Returns:
            True if ``branch`` is an ancestor of ``target``

        Raises:
            GitOperationError: If either branch cannot be resolved
        """
        try:
            merged = is_ancestor(cwd, branch, target)
        except git.exc.GitCommandError as e:
            raise GitOperationError("merge-base", branch, describe_git_error(e, "merge-base")) from e
        logger.debug(f"Branch '{branch}' merged into '{target}': {merged}")
        return merged

    def get_merge_target_branch(self, worktree_path: str) -> str:
        """Resolve the branch a worktree's branch should be merged into.

        Reads configuration stored inside the worktree, so this must run
        before the worktree directory is removed.

        Returns:
            The parent loom's branch if this is a nested loom, else the
            worktree's configured main branch, else "main"
        """
        parent = self._parent_branch(worktree_path)
        if parent:
            logger.debug(f"Merge target for {worktree_path} is parent loom branch '{parent}'")
            return parent

        try:
            main_branch = self.settings_provider.main_branch(worktree_path)
        except SettingsError as e:
            logger.warning(f"Could not read settings in {worktree_path}, using '{DEFAULT_MERGE_TARGET}': {e}")
            return DEFAULT_MERGE_TARGET
        logger.debug(f"Merge target for {worktree_path} is '{main_branch}'")
        return main_branch or DEFAULT_MERGE_TARGET

    def _parent_branch(self, worktree_path: str) -> Optional[str]:
        metadata = self.metadata_store.read(worktree_path)
        if not metadata:
            return None
        parent = metadata.get("parentLoom")
        if isinstance(parent, dict):
            branch = parent.get("branchName")
            if isinstance(branch, str) and branch:
                return branch
        return None
