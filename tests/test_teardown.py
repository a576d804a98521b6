"""Tests for TeardownOrchestrator with mocked services"""
from unittest.mock import Mock

import git
import pytest

from loom_teardown.core.teardown import TeardownOrchestrator
from loom_teardown.exceptions import (
    BranchProtectedError,
    DevServerError,
    GitOperationError,
    SafetyCheckError,
    WorktreeNotFoundError,
)
from loom_teardown.identifiers import parse_identifier
from loom_teardown.models.cleanup import (
    CleanupOptions,
    DatabaseDeletionResult,
    OperationType,
    ProcessInfo,
    SafetyCheck,
)
from loom_teardown.models.worktree import WorkingTree
from loom_teardown.services import (
    CLIIsolationManager,
    DatabaseManager,
    MetadataStore,
    ProcessReaper,
    RecapArchiver,
)
from loom_teardown.services.git import BranchDeletionStrategy, MergeDetector, WorktreeService
from loom_teardown.services.safety_service import SafetyClassifier

BRANCH = "feat/issue-42-login"
WORKTREE = "/fake/looms/issue-42"
MAIN_PATH = "/fake/repo"


@pytest.fixture
def services(mock_settings_provider, loom_tree):
    """Mocked collaborators wired for a clean, safe teardown of issue 42."""
    worktree_service = Mock(spec=WorktreeService)
    worktree_service.find_by_issue.return_value = loom_tree
    worktree_service.find_by_pr.return_value = loom_tree
    worktree_service.find_by_branch.return_value = loom_tree
    worktree_service.find_main_worktree_path.return_value = MAIN_PATH
    worktree_service.remove_worktree.return_value = (True, None)

    safety_classifier = Mock(spec=SafetyClassifier)
    safety_classifier.validate_worktree_safety.return_value = SafetyCheck()
    safety_classifier.main_worktree_blocker.return_value = None

    merge_detector = Mock(spec=MergeDetector)
    merge_detector.get_merge_target_branch.return_value = "main"

    branch_deleter = Mock(spec=BranchDeletionStrategy)
    branch_deleter.delete_branch.return_value = True

    process_reaper = Mock(spec=ProcessReaper)
    process_reaper.port_for.side_effect = lambda number: 3000 + number
    process_reaper.detect.return_value = None
    process_reaper.verify_port_free.return_value = True

    metadata_store = Mock(spec=MetadataStore)
    metadata_store.delete.return_value = True

    recap_archiver = Mock(spec=RecapArchiver)
    recap_archiver.archive.return_value = False

    cli_isolation = Mock(spec=CLIIsolationManager)
    cli_isolation.cleanup_versioned_executables.return_value = []

    return {
        "settings_provider": mock_settings_provider,
        "worktree_service": worktree_service,
        "safety_classifier": safety_classifier,
        "branch_deleter": branch_deleter,
        "merge_detector": merge_detector,
        "process_reaper": process_reaper,
        "metadata_store": metadata_store,
        "recap_archiver": recap_archiver,
        "database_manager": None,
        "cli_isolation": cli_isolation,
    }


@pytest.fixture
def orchestrator(services):
    return TeardownOrchestrator(**services)


def full_options(**overrides):
    values = {"delete_branch": True}
    values.update(overrides)
    return CleanupOptions(**values)


class TestCleanupWorktree:
    """Test the ordered teardown of a single loom."""

    def test_successful_teardown(self, orchestrator, services):
        result = orchestrator.cleanup_worktree(parse_identifier("42"), full_options())

        assert result.success
        assert result.identifier == "42"
        assert result.branch_name == BRANCH
        assert [op.type for op in result.operations] == [
            OperationType.DEV_SERVER,
            OperationType.WORKTREE,
            OperationType.RECAP,
            OperationType.BRANCH,
            OperationType.CLI_SYMLINKS,
            OperationType.DATABASE,
            OperationType.METADATA,
        ]
        services["worktree_service"].remove_worktree.assert_called_once_with(WORKTREE, force=False)
        services["cli_isolation"].cleanup_versioned_executables.assert_called_once_with(42, WORKTREE)

    def test_no_dev_server_message(self, orchestrator):
        result = orchestrator.cleanup_worktree(parse_identifier("42"), full_options())
        assert result.operations[0].type == OperationType.DEV_SERVER
        assert "No dev server running" in result.operations[0].message
        assert "3042" in result.operations[0].message

    def test_dry_run_makes_no_changes(self, orchestrator, services):
        services["process_reaper"].detect.return_value = ProcessInfo(
            pid=1234, name="node", port=3042, is_dev_server=True
        )

        result = orchestrator.cleanup_worktree(parse_identifier("42"), full_options(dry_run=True))

        assert result.success
        assert len(result.operations) == 7
        for op in result.operations:
            assert op.message.startswith("[DRY RUN]"), op.message
        services["process_reaper"].terminate.assert_not_called()
        services["worktree_service"].remove_worktree.assert_not_called()
        services["recap_archiver"].archive.assert_not_called()
        services["branch_deleter"].delete_branch.assert_not_called()
        services["cli_isolation"].cleanup_versioned_executables.assert_not_called()
        services["metadata_store"].delete.assert_not_called()

    def test_merge_target_read_before_worktree_removal(self, orchestrator, services):
        manager = Mock()
        manager.attach_mock(services["merge_detector"].get_merge_target_branch, "get_merge_target_branch")
        manager.attach_mock(services["worktree_service"].remove_worktree, "remove_worktree")
        manager.attach_mock(services["branch_deleter"].delete_branch, "delete_branch")
        services["merge_detector"].get_merge_target_branch.return_value = "feat/parent"

        orchestrator.cleanup_worktree(parse_identifier("42"), full_options())

        names = [c[0] for c in manager.mock_calls]
        assert names == ["get_merge_target_branch", "remove_worktree", "delete_branch"]
        branch_options = services["branch_deleter"].delete_branch.call_args[0][1]
        assert branch_options.merge_target_branch == "feat/parent"
        assert services["branch_deleter"].delete_branch.call_args[0][2] == MAIN_PATH

    def test_merge_target_prefetched_in_dry_run(self, orchestrator, services):
        orchestrator.cleanup_worktree(parse_identifier("42"), full_options(dry_run=True))
        services["merge_detector"].get_merge_target_branch.assert_called_once_with(WORKTREE)

    def test_keep_branch_skips_branch_step(self, orchestrator, services):
        result = orchestrator.cleanup_worktree(parse_identifier("42"), CleanupOptions())

        assert result.operation(OperationType.BRANCH) is None
        services["branch_deleter"].delete_branch.assert_not_called()
        services["merge_detector"].get_merge_target_branch.assert_not_called()

    def test_branch_identifier_skips_dev_server(self, orchestrator, services):
        result = orchestrator.cleanup_worktree(parse_identifier(BRANCH), full_options())

        assert result.operation(OperationType.DEV_SERVER) is None
        services["process_reaper"].detect.assert_not_called()
        services["worktree_service"].find_by_branch.assert_called_once_with(BRANCH)
        services["cli_isolation"].cleanup_versioned_executables.assert_called_once_with(BRANCH, WORKTREE)

    def test_pr_identifier_uses_pr_lookup(self, orchestrator, services):
        orchestrator.cleanup_worktree(parse_identifier("pr-7"), full_options())
        services["worktree_service"].find_by_pr.assert_called_once_with(7, "")

    def test_archive_metadata_option(self, orchestrator, services):
        services["metadata_store"].archive.return_value = True

        result = orchestrator.cleanup_worktree(parse_identifier("42"), full_options(archive_metadata=True))

        assert result.operation(OperationType.METADATA).message == "Metadata archived"
        services["metadata_store"].archive.assert_called_once_with(WORKTREE)
        services["metadata_store"].delete.assert_not_called()

    def test_archive_metadata_dry_run(self, orchestrator, services):
        result = orchestrator.cleanup_worktree(
            parse_identifier("42"), full_options(archive_metadata=True, dry_run=True)
        )

        assert result.operation(OperationType.METADATA).message.startswith("[DRY RUN] Would archive metadata")
        services["metadata_store"].archive.assert_not_called()

    def test_detached_head(self, orchestrator, services):
        services["worktree_service"].find_by_issue.return_value = WorkingTree(
            path=WORKTREE, branch=None, commit_hash="abc123"
        )

        result = orchestrator.cleanup_worktree(parse_identifier("42"), full_options())

        assert result.operation(OperationType.BRANCH).message == "No branch to delete (detached HEAD)"
        services["branch_deleter"].delete_branch.assert_not_called()

    def test_force_passed_to_removal_and_branch_delete(self, orchestrator, services):
        orchestrator.cleanup_worktree(parse_identifier("42"), full_options(force=True))

        services["worktree_service"].remove_worktree.assert_called_once_with(WORKTREE, force=True)
        assert services["branch_deleter"].delete_branch.call_args[0][1].force is True
        services["safety_classifier"].validate_worktree_safety.assert_not_called()


class TestGate:
    """Nothing destructive may happen before the gate passes."""

    def test_worktree_not_found(self, orchestrator, services):
        services["worktree_service"].find_by_issue.return_value = None

        with pytest.raises(WorktreeNotFoundError) as exc_info:
            orchestrator.cleanup_worktree(parse_identifier("99"), full_options())

        result = exc_info.value.result
        assert not result.success
        assert "No worktree found for identifier: 99" in result.errors
        assert [op.type for op in result.operations] == [OperationType.DEV_SERVER]
        services["worktree_service"].remove_worktree.assert_not_called()

    def test_uncommitted_changes_block_before_removal(self, orchestrator, services):
        services["safety_classifier"].validate_worktree_safety.return_value = SafetyCheck(
            blockers=("Worktree has uncommitted changes.",)
        )

        with pytest.raises(SafetyCheckError) as exc_info:
            orchestrator.cleanup_worktree(parse_identifier("42"), full_options())

        assert "uncommitted changes" in str(exc_info.value)
        services["worktree_service"].remove_worktree.assert_not_called()
        services["branch_deleter"].delete_branch.assert_not_called()
        services["metadata_store"].delete.assert_not_called()

    def test_safety_flags_follow_options(self, orchestrator, services):
        orchestrator.cleanup_worktree(parse_identifier("issue-42"), full_options(check_remote_branch=True))
        services["safety_classifier"].validate_worktree_safety.assert_called_once_with(
            services["worktree_service"].find_by_issue.return_value, "issue-42", True, True
        )

    def test_merge_check_disabled(self, orchestrator, services):
        orchestrator.cleanup_worktree(parse_identifier("42"), full_options(check_merge_safety=False))
        args = services["safety_classifier"].validate_worktree_safety.call_args[0]
        assert args[2] is False

    def test_force_still_blocks_main_worktree(self, orchestrator, services):
        services["safety_classifier"].main_worktree_blocker.return_value = (
            'Cannot cleanup main worktree: "main" @ "/fake/repo"'
        )

        with pytest.raises(SafetyCheckError) as exc_info:
            orchestrator.cleanup_worktree(parse_identifier("main"), full_options(force=True))

        assert "main worktree" in str(exc_info.value)
        services["worktree_service"].remove_worktree.assert_not_called()

    def test_protected_branch_blocks_even_with_force(self, orchestrator, services):
        services["worktree_service"].find_by_branch.return_value = WorkingTree(
            path="/fake/looms/develop", branch="develop", commit_hash="abc123"
        )

        with pytest.raises(BranchProtectedError):
            orchestrator.cleanup_worktree(parse_identifier("develop"), full_options(force=True))

        services["worktree_service"].remove_worktree.assert_not_called()

    def test_protected_branch_allowed_when_kept(self, orchestrator, services):
        services["worktree_service"].find_by_branch.return_value = WorkingTree(
            path="/fake/looms/develop", branch="develop", commit_hash="abc123"
        )
        result = orchestrator.cleanup_worktree(parse_identifier("develop"), CleanupOptions())
        assert result.success


class TestStepFailures:
    """Step failures are recorded, not raised."""

    def test_worktree_removal_failure(self, orchestrator, services):
        services["worktree_service"].remove_worktree.return_value = (False, "locked")

        result = orchestrator.cleanup_worktree(parse_identifier("42"), full_options())

        assert not result.success
        assert "locked" in result.errors
        assert result.operation(OperationType.METADATA) is not None

    def test_branch_failure_recorded(self, orchestrator, services):
        services["branch_deleter"].delete_branch.side_effect = GitOperationError(
            "delete_branch", BRANCH, "not merged"
        )

        result = orchestrator.cleanup_worktree(parse_identifier("42"), full_options())

        branch_op = result.operation(OperationType.BRANCH)
        assert not branch_op.success
        assert "not merged" in branch_op.error
        assert not result.success

    def test_git_error_in_branch_step_recorded(self, orchestrator, services):
        services["branch_deleter"].delete_branch.side_effect = git.exc.GitCommandError(
            "branch", 1, stderr="fatal: weird"
        )
        result = orchestrator.cleanup_worktree(parse_identifier("42"), full_options())
        assert not result.operation(OperationType.BRANCH).success

    def test_best_effort_failures_do_not_fail(self, orchestrator, services):
        services["recap_archiver"].archive.side_effect = OSError("disk full")
        services["cli_isolation"].cleanup_versioned_executables.side_effect = OSError("permission denied")
        services["metadata_store"].delete.side_effect = OSError("read-only")

        result = orchestrator.cleanup_worktree(parse_identifier("42"), full_options())

        assert result.success
        assert not result.operation(OperationType.RECAP).success
        assert not result.operation(OperationType.CLI_SYMLINKS).success
        assert not result.operation(OperationType.METADATA).success

    def test_dev_server_failure_recorded(self, orchestrator, services):
        services["process_reaper"].detect.return_value = ProcessInfo(
            pid=1234, name="node", port=3042, is_dev_server=True
        )
        services["process_reaper"].verify_port_free.return_value = False

        result = orchestrator.cleanup_worktree(parse_identifier("42"), full_options())

        assert result.operations[0].message == "Failed to terminate dev server"
        assert not result.success


class TestDatabaseStep:
    """Test database branch cleanup outcomes."""

    @pytest.fixture
    def database_manager(self, services):
        manager = Mock(spec=DatabaseManager)
        manager.should_cleanup.return_value = True
        services["database_manager"] = manager
        return manager

    def test_database_absent_is_skipped(self, orchestrator):
        result = orchestrator.cleanup_worktree(parse_identifier("42"), full_options())

        op = result.operation(OperationType.DATABASE)
        assert op.success
        assert op.message == "Database cleanup skipped (not available)"
        assert op.deleted is False
        assert result.success

    def test_keep_database_skips_step(self, services, database_manager):
        orchestrator = TeardownOrchestrator(**services)
        result = orchestrator.cleanup_worktree(parse_identifier("42"), full_options(keep_database=True))
        assert result.operation(OperationType.DATABASE) is None
        database_manager.should_cleanup.assert_not_called()

    def test_env_read_before_worktree_removal(self, services, database_manager):
        calls = []
        database_manager.should_cleanup.side_effect = lambda path: calls.append(path) or True
        services["worktree_service"].remove_worktree.side_effect = (
            lambda path, force: calls.append("remove") or (True, None)
        )
        database_manager.delete_branch_if_configured.return_value = DatabaseDeletionResult(
            success=True, deleted=True
        )

        result = TeardownOrchestrator(**services).cleanup_worktree(parse_identifier("42"), full_options())

        assert calls == [f"{WORKTREE}/.env", "remove"]
        op = result.operation(OperationType.DATABASE)
        assert op.message == "Database branch deleted"
        assert op.deleted is True
        database_manager.delete_branch_if_configured.assert_called_once_with(BRANCH, True, False, MAIN_PATH)

    def test_unreadable_env_skips_database(self, services, database_manager):
        database_manager.should_cleanup.side_effect = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")

        result = TeardownOrchestrator(**services).cleanup_worktree(parse_identifier("42"), full_options())

        assert result.success
        assert result.operation(OperationType.DATABASE).message == "Database cleanup skipped (not available)"
        services["worktree_service"].remove_worktree.assert_called_once()
        database_manager.delete_branch_if_configured.assert_not_called()

    @pytest.mark.parametrize("deletion, message, success", [
        (DatabaseDeletionResult(success=True, not_found=True), "No database branch found (skipped)", True),
        (DatabaseDeletionResult(success=True, user_declined=True), "Database cleanup skipped (user declined)", True),
        (DatabaseDeletionResult(success=False, error="boom"), "Database cleanup failed", False),
        (DatabaseDeletionResult(success=True), "Database cleanup in an unknown state", False),
    ])
    def test_deletion_outcomes(self, services, database_manager, deletion, message, success):
        database_manager.delete_branch_if_configured.return_value = deletion

        result = TeardownOrchestrator(**services).cleanup_worktree(parse_identifier("42"), full_options())

        assert result.operation(OperationType.DATABASE).message == message
        assert result.success is success


class TestCleanupMultipleWorktrees:
    """Test batch teardown."""

    def test_batch_continues_after_failures(self, orchestrator, services, loom_tree):
        def find_by_issue(number):
            return loom_tree if number == 42 else None

        services["worktree_service"].find_by_issue.side_effect = find_by_issue
        services["safety_classifier"].validate_worktree_safety.side_effect = [
            SafetyCheck(blockers=("Worktree has uncommitted changes.",)),
            SafetyCheck(),
        ]

        results = orchestrator.cleanup_multiple_worktrees(["42", "99", "", "issue-42"], full_options())

        assert len(results) == 4
        assert not results[0].success
        assert "uncommitted changes" in results[0].errors[0]
        assert not results[1].success
        assert "No worktree found for identifier: 99" in results[1].errors
        assert not results[2].success
        assert results[3].success


class TestValidateCleanupSafety:
    """Test the read-only safety report."""

    def test_reports_classifier_result(self, orchestrator, services, loom_tree):
        services["safety_classifier"].validate_worktree_safety.return_value = SafetyCheck(warnings=("w",))
        check = orchestrator.validate_cleanup_safety("42")
        assert check.is_safe
        services["safety_classifier"].validate_worktree_safety.assert_called_once_with(loom_tree, "42")

    def test_missing_worktree_is_blocker(self, orchestrator, services):
        services["worktree_service"].find_by_issue.return_value = None
        check = orchestrator.validate_cleanup_safety("42")
        assert not check.is_safe

    def test_lookup_error_is_blocker(self, orchestrator, services):
        services["worktree_service"].find_by_issue.side_effect = GitOperationError("list worktrees", message="x")
        assert not orchestrator.validate_cleanup_safety("42").is_safe


class TestTerminateDevServer:
    """Test dev server termination decisions."""

    def test_non_dev_server_left_alone(self, orchestrator, services):
        services["process_reaper"].detect.return_value = ProcessInfo(pid=1, name="postgres", port=3042)
        assert orchestrator.terminate_dev_server(3042) is False
        services["process_reaper"].terminate.assert_not_called()

    def test_terminates_dev_server(self, orchestrator, services):
        services["process_reaper"].detect.return_value = ProcessInfo(
            pid=1234, name="node", port=3042, is_dev_server=True
        )
        assert orchestrator.terminate_dev_server(3042) is True
        services["process_reaper"].terminate.assert_called_once_with(1234)

    def test_port_still_bound_raises(self, orchestrator, services):
        services["process_reaper"].detect.return_value = ProcessInfo(
            pid=1234, name="node", port=3042, is_dev_server=True
        )
        services["process_reaper"].verify_port_free.return_value = False
        with pytest.raises(DevServerError):
            orchestrator.terminate_dev_server(3042)
