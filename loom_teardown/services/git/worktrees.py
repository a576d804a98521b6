"""Worktree lookup and removal service for loom-teardown."""

import os
import re
from typing import Any, Dict, List, Optional

import git

from loom_teardown.exceptions import GitOperationError
from loom_teardown.logging_config import get_logger
from loom_teardown.models.worktree import WorkingTree
from loom_teardown.services.git.commands import describe_git_error, run_git

logger = get_logger(__name__)

# Branch names carrying a PR number
PR_NUMBER_PATTERNS = [
    re.compile(r"^pr/(\d+)", re.IGNORECASE),  # pr/123
    re.compile(r"^pull/(\d+)", re.IGNORECASE),  # pull/123
    re.compile(r"^(\d+)[-_]"),  # 123-feature-name
    re.compile(r"^feature/pr[-_]?(\d+)", re.IGNORECASE),  # feature/pr123
    re.compile(r"^hotfix/pr[-_]?(\d+)", re.IGNORECASE),  # hotfix/pr123
    re.compile(r"pr[-_]?(\d+)", re.IGNORECASE),  # anywhere with pr123 or pr-123
]


def extract_pr_number(branch_name: str) -> Optional[int]:
    """Extract a PR number from a branch name, if it carries one."""
    for pattern in PR_NUMBER_PATTERNS:
        match = pattern.search(branch_name)
        if match:
            return int(match.group(1))
    return None


def _issue_pattern(number: int) -> "re.Pattern[str]":
    return re.compile(rf"(?:^|[^a-z0-9])issue[-_/]?{number}(?!\d)", re.IGNORECASE)


def parse_worktree_porcelain(output: str) -> List[WorkingTree]:
    """Parse ``git worktree list --porcelain`` output.

    Format:
        worktree /path/to/worktree
        HEAD commit_sha
        branch refs/heads/branch-name   (or "detached", or "bare")
        (blank line between worktrees)
    """
    worktrees: List[WorkingTree] = []
    current: Dict[str, Any] = {}

    def flush():
        if current.get("path"):
            worktrees.append(
                WorkingTree(
                    path=current["path"],
                    branch=current.get("branch"),
                    commit_hash=current.get("HEAD", ""),
                    is_bare=current.get("bare", False),
                    is_locked=current.get("locked", False),
                    is_prunable=current.get("prunable", False),
                )
            )

    for line in output.split("\n"):
        line = line.strip()

        if not line:
            # Empty line marks end of worktree entry
            flush()
            current = {}
            continue

        if line.startswith("worktree "):
            current["path"] = line.split(" ", 1)[1]
        elif line.startswith("HEAD "):
            current["HEAD"] = line.split(" ", 1)[1]
        elif line.startswith("branch "):
            branch_ref = line.split(" ", 1)[1]
            if branch_ref.startswith("refs/heads/"):
                current["branch"] = branch_ref[len("refs/heads/"):]
        elif line == "bare":
            current["bare"] = True
        elif line.startswith("locked"):
            current["locked"] = True
        elif line.startswith("prunable"):
            current["prunable"] = True

    # Handle last entry if no trailing blank line
    flush()
    return worktrees


class WorktreeService:
    """Service for locating and removing git worktrees."""

    def __init__(self, repo_path: str):
        """Initialize the worktree service.

        Args:
            repo_path: Path to any checkout of the git repository
        """
        self.repo_path = repo_path

    def _get_repo(self):
        """Get a fresh git.Repo instance.

        Returns:
            git.Repo: A fresh repository instance
        """
        return git.Repo(self.repo_path)

    def list_worktrees(self) -> List[WorkingTree]:
        """List all worktrees of the repository.

        Never cached: teardown removes worktrees between calls.

        Raises:
            GitOperationError: If git cannot list worktrees
        """
        try:
            output = self._get_repo().git.worktree("list", "--porcelain")
        except git.exc.GitCommandError as e:
            raise GitOperationError("worktree list", message=describe_git_error(e, "worktree list")) from e

        worktrees = parse_worktree_porcelain(output)
        logger.debug(f"Found {len(worktrees)} worktrees")
        for wt in worktrees:
            logger.debug(f"  {wt}")
        return worktrees

    def find_by_issue(self, number: int) -> Optional[WorkingTree]:
        """Find the worktree for an issue by branch or directory name."""
        pattern = _issue_pattern(number)
        for wt in self.list_worktrees():
            if wt.is_bare:
                continue
            if wt.branch and pattern.search(wt.branch):
                return wt
            if pattern.search(os.path.basename(wt.path.rstrip("/"))):
                return wt
        return None

    def find_by_pr(self, number: int, branch_hint: str = "") -> Optional[WorkingTree]:
        """Find the worktree for a pull request.

        Matches, in order of preference, the hinted branch name, a directory
        ending in ``_pr_<number>``, then a branch name carrying the number.
        """
        worktrees = [wt for wt in self.list_worktrees() if not wt.is_bare]
        if branch_hint:
            for wt in worktrees:
                if wt.branch == branch_hint:
                    return wt
        suffix = f"_pr_{number}"
        for wt in worktrees:
            if wt.path.rstrip("/").endswith(suffix):
                return wt
        for wt in worktrees:
            if wt.branch and extract_pr_number(wt.branch) == number:
                return wt
        return None

    def find_by_branch(self, branch_name: str) -> Optional[WorkingTree]:
        for wt in self.list_worktrees():
            if wt.branch == branch_name:
                return wt
        return None

    def find_worktree_for_branch(self, branch_name: str) -> Optional[str]:
        """Return the path where ``branch_name`` is checked out, if anywhere."""
        tree = self.find_by_branch(branch_name)
        return tree.path if tree else None

    def find_main_worktree_path(self, main_branch: Optional[str] = None) -> str:
        """Find the directory to run repository-wide git commands from.

        Args:
            main_branch: Configured main branch, if settings name one

        Returns:
            Path of the worktree with the configured main branch checked out,
            else of a ``main`` checkout, else of the first listed worktree

        Raises:
            GitOperationError: If the configured main branch is not checked
                out anywhere, or no worktrees exist
        """
        worktrees = self.list_worktrees()
        if not worktrees:
            raise GitOperationError("find main worktree", message="No worktrees found in repository")

        if main_branch:
            for wt in worktrees:
                if wt.branch == main_branch:
                    return wt.path
            raise GitOperationError(
                "find main worktree",
                main_branch,
                f"No worktree found with configured main branch '{main_branch}' checked out",
            )

        for wt in worktrees:
            if wt.branch == "main":
                return wt.path
        return worktrees[0].path

    def is_main_worktree(self, tree: WorkingTree, main_path: Optional[str] = None) -> bool:
        """Check whether ``tree`` is the repository's primary checkout.

        The first porcelain entry is always the primary checkout; a
        separately resolved main path also counts.
        """
        worktrees = self.list_worktrees()
        candidates = set()
        if worktrees:
            candidates.add(os.path.realpath(worktrees[0].path))
        if main_path:
            candidates.add(os.path.realpath(main_path))
        return os.path.realpath(tree.path) in candidates

    def has_uncommitted_changes(self, path: str) -> bool:
        """Check for staged, modified or untracked files in a worktree.

        Raises:
            GitOperationError: If git status cannot run in ``path``
        """
        if not os.path.exists(path):
            logger.debug(f"Worktree path {path} doesn't exist")
            return False
        try:
            status = run_git(path, "status", "--porcelain")
        except git.exc.GitCommandError as e:
            raise GitOperationError("status", message=describe_git_error(e, "status")) from e
        return any(line.strip() for line in status.split("\n"))

    def remove_worktree(self, path: str, force: bool = False) -> tuple[bool, Optional[str]]:
        """Remove a worktree at the specified path.

        Args:
            path: Path to the worktree directory
            force: Force removal even if working tree is dirty or locked

        Returns:
            Tuple of (success, error_message). error_message is None on success.
        """
        try:
            repo = self._get_repo()
            args = ["remove", path]
            if force:
                args.append("--force")

            repo.git.worktree(*args)
            logger.info(f"Removed worktree at {path}")
            return True, None
        except git.exc.GitCommandError as e:
            error_msg = describe_git_error(e, "worktree remove")
            logger.error(f"Failed to remove worktree at {path}: {error_msg}")
            return False, error_msg
