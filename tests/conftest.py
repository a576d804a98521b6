"""Pytest fixtures for loom-teardown tests"""
import json
import tempfile
from pathlib import Path
from unittest.mock import Mock
import pytest
import git

from loom_teardown.config import Config, SettingsProvider
from loom_teardown.models.worktree import WorkingTree


@pytest.fixture
def temp_dir():
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        # Resolve so paths compare equal to what git reports (macOS /private/var)
        yield Path(tmpdir).resolve()


@pytest.fixture
def mock_config(temp_dir):
    """Create a mock configuration dictionary."""
    return {
        'verbose': False,
        'debug': False,
        'main_branch': 'main',
        'protected_branches': None,
        'remote_name': 'origin',
        'base_port': 3000,
        'data_dir': str(temp_dir / 'data'),
        'cli_bin_dir': str(temp_dir / 'bin'),
    }


def commit_file(repo, name, content, message):
    """Write a file in the repo's working tree and commit it."""
    path = Path(repo.working_tree_dir) / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    repo.git.add(name)
    repo.git.commit("-m", message)
    return repo.git.rev_parse("HEAD")


@pytest.fixture
def origin_repo(temp_dir):
    """Create a bare repository that serves as the 'origin' remote."""
    origin_path = temp_dir / "origin.git"
    origin = git.Repo.init(origin_path, bare=True)
    yield origin
    origin.close()


@pytest.fixture
def git_repo(temp_dir, origin_repo):
    """Create a real Git repository with main pushed to a local origin."""
    repo_path = temp_dir / "test_repo"
    repo_path.mkdir()

    # Initialize repository
    repo = git.Repo.init(repo_path)

    # Configure git user for commits
    repo.config_writer().set_value("user", "name", "Test User").release()
    repo.config_writer().set_value("user", "email", "test@example.com").release()

    # Create initial commit on main branch
    commit_file(repo, "README.md", "# Test Repository\n", "Initial commit")

    # Rename master to main if needed
    repo.git.branch('-M', 'main')

    repo.create_remote('origin', str(origin_repo.git_dir))
    repo.git.push('origin', 'main')

    yield repo

    # Cleanup
    repo.close()


@pytest.fixture
def repo_with_worktree(git_repo, temp_dir):
    """Create a repository with a linked worktree for issue 42.

    The worktree's branch has no commits of its own, so it is merged into main.
    """
    worktree_path = temp_dir / "looms" / "issue-42"
    git_repo.git.worktree('add', '-b', 'feat/issue-42-login', str(worktree_path), 'main')
    yield git_repo, worktree_path


@pytest.fixture
def worktree_repo(repo_with_worktree):
    """A git.Repo opened on the linked worktree."""
    _, worktree_path = repo_with_worktree
    repo = git.Repo(worktree_path)
    yield repo
    repo.close()


@pytest.fixture
def settings_provider(git_repo):
    """SettingsProvider rooted at the test repository."""
    return SettingsProvider(git_repo.working_tree_dir)


def write_settings(root, settings, local=False):
    """Write .loom/settings.json (or settings.local.json) under root."""
    settings_dir = Path(root) / ".loom"
    settings_dir.mkdir(parents=True, exist_ok=True)
    name = "settings.local.json" if local else "settings.json"
    (settings_dir / name).write_text(json.dumps(settings))


@pytest.fixture
def loom_tree():
    """A WorkingTree value for a typical loom."""
    return WorkingTree(path="/fake/looms/issue-42", branch="feat/issue-42-login", commit_hash="abc123")


@pytest.fixture
def mock_settings_provider():
    """A SettingsProvider mock with default protected branches."""
    provider = Mock(spec=SettingsProvider)
    config = Config()
    provider.load.return_value = config
    provider.protected_branches.return_value = config.effective_protected_branches()
    provider.main_branch.return_value = "main"
    provider.configured_main_branch.return_value = None
    return provider
