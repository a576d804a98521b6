"""Command-line argument parsing for loom-teardown."""

import argparse
from typing import List, Optional

from loom_teardown.__version__ import __version__


def parse_args(argv: Optional[List[str]] = None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="loom-teardown",
        description="Safely tear down loom worktrees and their branch, dev server, database and metadata",
        epilog="Identifiers: issue-12, #12 or 12 (issue), pr-7 or pr/7 (pull request), "
        "anything else is a branch name.",
    )
    parser.add_argument("identifiers", nargs="+", metavar="IDENTIFIER", help="Loom(s) to tear down")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show verbose output")
    parser.add_argument("--version", action="version", version=f"loom-teardown {__version__}")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Preview mode - show what would be removed without changing anything",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Skip safety checks (uncommitted changes, unpushed or unmerged commits)",
    )
    parser.add_argument(
        "--keep-branch", action="store_true", help="Remove the worktree but keep its local branch"
    )
    parser.add_argument(
        "--keep-database", action="store_true", help="Do not delete the loom's database branch"
    )
    parser.add_argument(
        "--check-remote",
        action="store_true",
        help="Verify the remote branch even when the branch is kept",
    )
    parser.add_argument(
        "--no-merge-check",
        action="store_true",
        help="Skip the pushed-or-merged check before deleting the branch",
    )
    parser.add_argument(
        "--archive",
        action="store_true",
        help="Keep the loom's metadata in the finished archive instead of deleting it",
    )
    parser.add_argument("--repo", metavar="PATH", help="Repository to operate on (default: current directory)")
    parser.add_argument(
        "--debug", action="store_true", help="Show debug information for troubleshooting"
    )

    return parser.parse_args(argv)
