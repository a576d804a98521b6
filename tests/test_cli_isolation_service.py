"""Tests for CLIIsolationManager"""
import os

from loom_teardown.services.cli_isolation_service import CLIIsolationManager


def make_bin(temp_dir):
    bin_dir = temp_dir / "bin"
    bin_dir.mkdir()
    target = temp_dir / "tool"
    target.write_text("#!/bin/sh\n")
    for name in ("tool-42", "other-42", "tool-142", "tool-7"):
        os.symlink(target, bin_dir / name)
    (bin_dir / "notes-42").write_text("regular file")
    return bin_dir


class TestCLIIsolationManager:
    """Test removal of versioned symlinks."""

    def test_removes_matching_symlinks_only(self, temp_dir):
        bin_dir = make_bin(temp_dir)

        removed = CLIIsolationManager(str(bin_dir)).cleanup_versioned_executables(42)

        assert removed == ["other-42", "tool-42"]
        assert sorted(p.name for p in bin_dir.iterdir()) == ["notes-42", "tool-142", "tool-7"]

    def test_branch_identifier(self, temp_dir):
        bin_dir = temp_dir / "bin"
        bin_dir.mkdir()
        os.symlink(temp_dir, bin_dir / "tool-feat-login")

        removed = CLIIsolationManager(str(bin_dir)).cleanup_versioned_executables("feat/login")

        assert removed == ["tool-feat-login"]

    def test_missing_bin_dir(self, temp_dir):
        assert CLIIsolationManager(str(temp_dir / "nope")).cleanup_versioned_executables(42) == []

    def test_worktree_scope_keeps_other_looms(self, temp_dir):
        bin_dir = temp_dir / "bin"
        bin_dir.mkdir()
        issue_loom = temp_dir / "looms" / "issue-1"
        branch_loom = temp_dir / "looms" / "fix-login-1"
        for loom in (issue_loom, branch_loom):
            (loom / "bin").mkdir(parents=True)
            (loom / "bin" / "tool").write_text("#!/bin/sh\n")
        os.symlink(issue_loom / "bin" / "tool", bin_dir / "tool-1")
        os.symlink(branch_loom / "bin" / "tool", bin_dir / "tool-fix-login-1")

        removed = CLIIsolationManager(str(bin_dir)).cleanup_versioned_executables(1, str(issue_loom))

        assert removed == ["tool-1"]
        assert (bin_dir / "tool-fix-login-1").is_symlink()

    def test_worktree_scope_after_worktree_removed(self, temp_dir):
        bin_dir = temp_dir / "bin"
        bin_dir.mkdir()
        worktree = temp_dir / "looms" / "issue-42"
        os.symlink(worktree / "bin" / "tool", bin_dir / "tool-42")

        removed = CLIIsolationManager(str(bin_dir)).cleanup_versioned_executables(42, str(worktree))

        assert removed == ["tool-42"]
