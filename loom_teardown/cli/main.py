"""Command-line entry point for loom-teardown"""

import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape

from loom_teardown.cli.args import parse_args
from loom_teardown.config import SettingsProvider
from loom_teardown.constants import ENV_FILE_NAME
from loom_teardown.core.teardown import build_teardown_orchestrator, resolve_repository_root
from loom_teardown.exceptions import LoomTeardownError, WorktreeNotFoundError
from loom_teardown.formatters import format_operation, format_recovery_instructions, format_result_header
from loom_teardown.identifiers import parse_identifier
from loom_teardown.logging_config import setup_logging
from loom_teardown.models.cleanup import CleanupOptions, CleanupResult

console = Console()

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def build_options(parsed_args) -> CleanupOptions:
    """Translate command-line flags into CleanupOptions."""
    return CleanupOptions(
        dry_run=parsed_args.dry_run,
        force=parsed_args.force,
        delete_branch=not parsed_args.keep_branch,
        keep_database=parsed_args.keep_database,
        check_merge_safety=False if parsed_args.no_merge_check else None,
        check_remote_branch=True if parsed_args.check_remote else None,
        archive_metadata=parsed_args.archive,
    )


def render_result(result: CleanupResult) -> None:
    """Print one cleanup result followed by any manual recovery steps."""
    console.print(format_result_header(result))
    for operation in result.operations:
        console.print(f"  {format_operation(operation)}")
    for error in result.errors:
        if not any(op.error == error for op in result.operations):
            console.print(f"  [red]{escape(error)}[/red]")

    instructions = format_recovery_instructions(result)
    if instructions:
        console.print("  [yellow]Manual follow-up needed:[/yellow]")
        for line in instructions:
            console.print(f"    • {escape(line)}")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    try:
        parsed_args = parse_args(argv)

        setup_logging(verbose=parsed_args.verbose, debug=parsed_args.debug)

        repo_root = resolve_repository_root(parsed_args.repo or os.getcwd())
        # NEON_* settings may live in the repository's .env
        load_dotenv(Path(repo_root) / ENV_FILE_NAME, override=False)

        config = SettingsProvider(
            repo_root, overrides={"verbose": parsed_args.verbose, "debug": parsed_args.debug}
        ).load()

        if parsed_args.debug:
            console.print("[yellow]Debug mode enabled[/yellow]")
            console.print("[yellow]Configuration:[/yellow]")
            for key, value in config.to_dict().items():
                console.print(f"  {key}: {value}")

        orchestrator = build_teardown_orchestrator(repo_root, config)
        options = build_options(parsed_args)

        if parsed_args.dry_run:
            console.print("[cyan]Dry run - no changes will be made[/cyan]")

        if len(parsed_args.identifiers) == 1:
            request = parse_identifier(parsed_args.identifiers[0])
            results = [orchestrator.cleanup_worktree(request, options)]
        else:
            results = orchestrator.cleanup_multiple_worktrees(parsed_args.identifiers, options)

        for result in results:
            render_result(result)

        return EXIT_OK if all(result.success for result in results) else EXIT_FAILURE

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return EXIT_INTERRUPTED
    except WorktreeNotFoundError as e:
        if e.result is not None and e.result.operations:
            render_result(e.result)
        else:
            console.print(f"[red]Error: {escape(str(e))}[/red]")
        return EXIT_FAILURE
    except LoomTeardownError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        return EXIT_FAILURE
    except ValueError as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
