"""Manual recovery instructions for failed teardown steps."""

from typing import List

from loom_teardown.models.cleanup import CleanupResult, OperationType


def format_recovery_instructions(result: CleanupResult) -> List[str]:
    """
    Build manual follow-up steps for every failed operation.

    Args:
        result: Outcome of a teardown

    Returns:
        Lines telling the user what to clean up by hand (empty if nothing failed)
    """
    branch = result.branch_name or "<branch>"
    lines = []
    for op in result.operations:
        if op.success:
            continue
        if op.type == OperationType.DEV_SERVER:
            lines.append("Check for stray dev server processes: lsof -i -P | grep LISTEN")
        elif op.type == OperationType.WORKTREE:
            lines.append("Remove the worktree directory manually, then run: git worktree prune")
        elif op.type == OperationType.BRANCH:
            lines.append(f"Delete the branch manually: git branch -D {branch}")
        elif op.type == OperationType.DATABASE:
            lines.append(f"Delete the database branch manually: neon branches delete {branch.replace('/', '_')}")
        elif op.type == OperationType.CLI_SYMLINKS:
            lines.append(f"Remove leftover CLI symlinks ending in -{result.identifier} from your loom bin directory")
        elif op.type == OperationType.RECAP:
            lines.append("Move the session recap to the recaps/archived directory manually")
        elif op.type == OperationType.METADATA:
            lines.append("Remove the loom metadata file from the looms directory manually")

    if not result.operations and result.errors:
        lines.append("Nothing was changed; resolve the errors above and re-run")
    return lines
