"""Cleanup request, option and result models"""
from enum import Enum
from dataclasses import dataclass
from typing import Optional, Tuple


class IdentifierKind(Enum):
    """What a cleanup identifier refers to."""
    ISSUE = "issue"
    PR = "pr"
    BRANCH = "branch"


@dataclass(frozen=True)
class CleanupRequest:
    """A parsed cleanup target."""
    identifier_kind: IdentifierKind
    original_input: str
    number: Optional[int] = None
    branch_name: Optional[str] = None

    @property
    def display_identifier(self) -> str:
        """Identifier as used in messages, symlink names and results."""
        if self.number is not None:
            return str(self.number)
        return self.branch_name or self.original_input


@dataclass(frozen=True)
class CleanupOptions:
    """Options for one teardown invocation."""
    dry_run: bool = False
    force: bool = False
    delete_branch: bool = False
    keep_database: bool = False
    check_merge_safety: Optional[bool] = None  # None = follow delete_branch
    check_remote_branch: Optional[bool] = None  # None = off
    archive_metadata: bool = False  # Move metadata to looms/finished instead of deleting it

    def should_check_merge_safety(self) -> bool:
        if self.check_merge_safety is None:
            return self.delete_branch
        return self.check_merge_safety

    def should_check_remote_branch(self) -> bool:
        return bool(self.check_remote_branch)


@dataclass(frozen=True)
class RemoteBranchStatus:
    """Result of comparing a local branch with its remote counterpart."""
    exists: bool
    remote_ahead: bool = False
    local_ahead: bool = False
    network_error: bool = False
    error_message: Optional[str] = None


@dataclass(frozen=True)
class SafetyCheck:
    """Allow/block decision with remediation text for each blocker."""
    warnings: Tuple[str, ...] = ()
    blockers: Tuple[str, ...] = ()

    @property
    def is_safe(self) -> bool:
        return not self.blockers


class OperationType(Enum):
    """Teardown step kinds, in execution order."""
    DEV_SERVER = "dev-server"
    WORKTREE = "worktree"
    RECAP = "recap"
    BRANCH = "branch"
    CLI_SYMLINKS = "cli-symlinks"
    DATABASE = "database"
    METADATA = "metadata"


# Failures of these steps are reported but never fail the teardown
BEST_EFFORT_OPERATIONS = frozenset({
    OperationType.RECAP,
    OperationType.CLI_SYMLINKS,
    OperationType.METADATA,
})


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a single teardown step."""
    type: OperationType
    success: bool
    message: str
    error: Optional[str] = None
    deleted: Optional[bool] = None  # database step only

    @property
    def best_effort(self) -> bool:
        return self.type in BEST_EFFORT_OPERATIONS


@dataclass(frozen=True)
class CleanupResult:
    """Aggregated outcome of a teardown invocation."""
    identifier: str
    branch_name: Optional[str] = None
    operations: Tuple[OperationResult, ...] = ()
    errors: Tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return not self.errors

    def operation(self, op_type: OperationType) -> Optional[OperationResult]:
        """Return the first recorded operation of the given type."""
        for op in self.operations:
            if op.type == op_type:
                return op
        return None


@dataclass(frozen=True)
class BranchDeleteOptions:
    """Options for deleting a single branch."""
    dry_run: bool = False
    force: bool = False
    merge_target_branch: Optional[str] = None
    worktree_path: Optional[str] = None


@dataclass(frozen=True)
class DatabaseDeletionResult:
    """Terminal state of a scoped database branch deletion."""
    success: bool
    deleted: bool = False
    not_found: bool = False
    user_declined: bool = False
    error: Optional[str] = None
    branch_name: Optional[str] = None


@dataclass(frozen=True)
class ProcessInfo:
    """A process listening on a TCP port."""
    pid: int
    name: str
    port: int
    command: str = ""
    is_dev_server: bool = False
