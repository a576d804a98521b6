"""Cleanup of per-loom versioned CLI executables."""
import os
from pathlib import Path
from typing import List, Optional, Union

from loom_teardown.logging_config import get_logger

logger = get_logger(__name__)


def _points_into(link: Path, directory: str) -> bool:
    """Check whether a symlink resolves to a path inside ``directory``.

    Works for dangling links, since the worktree may already be removed.
    """
    target = os.path.realpath(link)
    root = os.path.realpath(directory)
    try:
        return os.path.commonpath([target, root]) == root
    except ValueError:
        # Different drives on Windows
        return False


class CLIIsolationManager:
    """Manages ``<bin>-<identifier>`` symlinks created for isolated looms."""

    def __init__(self, bin_dir: str):
        self.bin_dir = Path(bin_dir)

    @staticmethod
    def suffix_for(identifier: Union[int, str]) -> str:
        return "-" + str(identifier).replace("/", "-")

    def cleanup_versioned_executables(
        self, identifier: Union[int, str], worktree_path: Optional[str] = None
    ) -> List[str]:
        """Remove every versioned symlink tied to ``identifier``.

        Regular files are never touched. With ``worktree_path``, only links
        that resolve into that worktree are removed, so ``tool-fix-login-1``
        survives the teardown of issue 1.

        Returns:
            Names of the removed symlinks

        Raises:
            OSError: If a matching symlink cannot be removed
        """
        if not self.bin_dir.is_dir():
            logger.debug(f"CLI bin directory {self.bin_dir} does not exist")
            return []

        suffix = self.suffix_for(identifier)
        removed = []
        for entry in sorted(self.bin_dir.iterdir()):
            if not entry.is_symlink():
                continue
            if not entry.name.endswith(suffix) or entry.name == suffix:
                continue
            if worktree_path is not None and not _points_into(entry, worktree_path):
                logger.debug(f"Keeping CLI symlink {entry}: it belongs to another loom")
                continue
            entry.unlink()
            logger.debug(f"Removed CLI symlink {entry}")
            removed.append(entry.name)
        return removed
