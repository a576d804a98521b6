"""Persisted per-worktree metadata and session recaps."""
import json
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from loom_teardown.constants import ARCHIVED_DIR, FINISHED_DIR, LOOMS_DIR, RECAPS_DIR
from loom_teardown.logging_config import get_logger

logger = get_logger(__name__)


def slugify_path(worktree_path: str) -> str:
    """Map an absolute worktree path to a metadata filename.

    Trailing separators are dropped, separators become ``___`` and any
    other character outside ``[A-Za-z0-9_-]`` becomes ``-``.
    """
    slug = re.sub(r"[/\\]+$", "", worktree_path)
    slug = re.sub(r"[/\\]", "___", slug)
    slug = re.sub(r"[^a-zA-Z0-9_-]", "-", slug)
    return f"{slug}.json"


def _move_with_timestamp(source: Path, target_dir: Path, stamp_key: str) -> Path:
    """Rewrite a JSON file into ``target_dir`` with a timestamp and drop the source."""
    with open(source, 'r') as f:
        data = json.load(f)
    if not isinstance(data, dict):
        data = {"content": data}
    data[stamp_key] = datetime.now().isoformat()

    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / source.name

    # Atomic write: write to temp file, then rename
    temp_file = target.with_suffix('.tmp')
    with open(temp_file, 'w') as f:
        json.dump(data, f, indent=2)
    temp_file.replace(target)
    source.unlink()
    return target


class MetadataStore:
    """JSON metadata files under ``<data_dir>/looms``, one per worktree."""

    def __init__(self, data_dir: str):
        self.looms_dir = Path(data_dir) / LOOMS_DIR
        self.finished_dir = self.looms_dir / FINISHED_DIR

    def path_for(self, worktree_path: str) -> Path:
        return self.looms_dir / slugify_path(worktree_path)

    def read(self, worktree_path: str) -> Optional[Dict]:
        """Read metadata for a worktree.

        Returns:
            The parsed metadata, or None if missing or unreadable
        """
        file_path = self.path_for(worktree_path)
        if not file_path.exists():
            return None
        try:
            with open(file_path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Could not read metadata for worktree {worktree_path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    def delete(self, worktree_path: str) -> bool:
        """Delete metadata for a worktree.

        Idempotent: returns False when there was nothing to delete.

        Raises:
            OSError: If the file exists but cannot be removed
        """
        file_path = self.path_for(worktree_path)
        if not file_path.exists():
            logger.debug(f"No metadata file to delete for worktree: {worktree_path}")
            return False
        file_path.unlink()
        logger.debug(f"Metadata deleted for worktree: {worktree_path}")
        return True

    def archive(self, worktree_path: str) -> bool:
        """Move metadata to ``looms/finished`` stamped with ``finishedAt``.

        Returns:
            False when there was no metadata to archive
        """
        file_path = self.path_for(worktree_path)
        if not file_path.exists():
            return False
        target = _move_with_timestamp(file_path, self.finished_dir, "finishedAt")
        logger.debug(f"Metadata archived to {target}")
        return True


class RecapArchiver:
    """Session recap files under ``<data_dir>/recaps``."""

    def __init__(self, data_dir: str):
        self.recaps_dir = Path(data_dir) / RECAPS_DIR
        self.archived_dir = self.recaps_dir / ARCHIVED_DIR

    def archive(self, worktree_path: str) -> bool:
        """Move a worktree's recap to ``recaps/archived`` with ``archivedAt``.

        Returns:
            False when the worktree has no recap
        """
        file_path = self.recaps_dir / slugify_path(worktree_path)
        if not file_path.exists():
            logger.debug(f"No recap to archive for worktree: {worktree_path}")
            return False
        target = _move_with_timestamp(file_path, self.archived_dir, "archivedAt")
        logger.debug(f"Recap archived to {target}")
        return True
