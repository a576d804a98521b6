"""Operation result formatting utilities."""

from rich.markup import escape

from loom_teardown.constants import CLI_COLORS, DRY_RUN_PREFIX, SYMBOL_FAILURE, SYMBOL_SUCCESS, SYMBOL_WARNING
from loom_teardown.models.cleanup import CleanupResult, OperationResult


def get_operation_style(operation: OperationResult) -> str:
    """
    Determine the style for an operation outcome.

    Args:
        operation: Result of one teardown step

    Returns:
        One of "success", "failure", "warning" or "dry_run"
    """
    if not operation.success:
        return "warning" if operation.best_effort else "failure"
    if operation.message.startswith(DRY_RUN_PREFIX):
        return "dry_run"
    return "success"


def format_operation(operation: OperationResult) -> str:
    """
    Format one operation as a Rich markup line.

    Args:
        operation: Result of one teardown step

    Returns:
        Line such as "[green]✓[/green] worktree: Worktree removed: /path"
    """
    style = get_operation_style(operation)
    symbol = {
        "success": SYMBOL_SUCCESS,
        "dry_run": SYMBOL_SUCCESS,
        "failure": SYMBOL_FAILURE,
        "warning": SYMBOL_WARNING,
    }[style]
    color = CLI_COLORS[style]
    line = f"[{color}]{symbol}[/{color}] {operation.type.value}: {escape(operation.message)}"
    if operation.error:
        line += f" [dim]({escape(operation.error)})[/dim]"
    return line


def format_result_header(result: CleanupResult) -> str:
    """Format the heading line for one cleanup result."""
    target = escape(result.identifier)
    if result.branch_name and result.branch_name != target:
        target = f"{target} ({escape(result.branch_name)})"
    if result.success:
        return f"[bold green]Cleaned up {target}[/bold green]"
    return f"[bold red]Cleanup of {target} incomplete[/bold red]"
