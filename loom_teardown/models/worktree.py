"""Worktree data models."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class WorkingTree:
    """One checked-out branch directory as reported by git."""

    path: str
    branch: Optional[str]  # None for a detached HEAD
    commit_hash: str
    is_bare: bool = False
    is_locked: bool = False
    is_prunable: bool = False  # Directory missing?

    def __str__(self) -> str:
        """String representation of worktree."""
        branch = self.branch or "(detached)"
        return f"{branch} @ {self.path}"
