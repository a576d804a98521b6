"""Data models for loom-teardown."""

from .cleanup import (
    BEST_EFFORT_OPERATIONS,
    BranchDeleteOptions,
    CleanupOptions,
    CleanupRequest,
    CleanupResult,
    DatabaseDeletionResult,
    IdentifierKind,
    OperationResult,
    OperationType,
    ProcessInfo,
    RemoteBranchStatus,
    SafetyCheck,
)
from .worktree import WorkingTree

__all__ = [
    "BEST_EFFORT_OPERATIONS",
    "BranchDeleteOptions",
    "CleanupOptions",
    "CleanupRequest",
    "CleanupResult",
    "DatabaseDeletionResult",
    "IdentifierKind",
    "OperationResult",
    "OperationType",
    "ProcessInfo",
    "RemoteBranchStatus",
    "SafetyCheck",
    "WorkingTree",
]
