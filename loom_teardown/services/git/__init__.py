"""Git-related services for loom-teardown."""

from .branch_deletion import BranchDeletionStrategy
from .merge_detector import MergeDetector
from .remote_status import RemoteStatusProbe
from .worktrees import WorktreeService

__all__ = [
    "BranchDeletionStrategy",
    "MergeDetector",
    "RemoteStatusProbe",
    "WorktreeService",
]
