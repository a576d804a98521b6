"""Teardown of a loom: its worktree, branch, dev server, database and metadata."""

import os
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Union

import git
import psutil

from loom_teardown.config import Config, SettingsProvider
from loom_teardown.constants import DRY_RUN_PREFIX, ENV_FILE_NAME
from loom_teardown.core.results import ResultAggregator
from loom_teardown.exceptions import (
    BranchProtectedError,
    DevServerError,
    GitOperationError,
    LoomTeardownError,
    SafetyCheckError,
    WorktreeNotFoundError,
)
from loom_teardown.identifiers import parse_identifier
from loom_teardown.logging_config import get_logger
from loom_teardown.models.cleanup import (
    BranchDeleteOptions,
    CleanupOptions,
    CleanupRequest,
    CleanupResult,
    IdentifierKind,
    OperationResult,
    OperationType,
    SafetyCheck,
)
from loom_teardown.models.worktree import WorkingTree
from loom_teardown.services.cli_isolation_service import CLIIsolationManager
from loom_teardown.services.database_service import DatabaseManager, NeonProvider
from loom_teardown.services.git import (
    BranchDeletionStrategy,
    MergeDetector,
    RemoteStatusProbe,
    WorktreeService,
)
from loom_teardown.services.metadata_service import MetadataStore, RecapArchiver
from loom_teardown.services.process_service import ProcessReaper
from loom_teardown.services.safety_service import SafetyClassifier

if TYPE_CHECKING:
    from loom_teardown.models.cleanup import DatabaseDeletionResult

logger = get_logger(__name__)

# Failures a teardown step records instead of raising
STEP_ERRORS = (LoomTeardownError, git.exc.GitError, OSError, psutil.Error)


class TeardownOrchestrator:
    """Runs the ordered teardown of one or more looms.

    Nothing destructive happens until the worktree is located and the
    safety gate has passed. Anything the steps need from inside the
    worktree (database config, merge target) is read before the worktree
    is removed. Step failures are recorded in the result; only gate
    failures raise.
    """

    def __init__(
        self,
        *,
        settings_provider: SettingsProvider,
        worktree_service: WorktreeService,
        safety_classifier: SafetyClassifier,
        branch_deleter: BranchDeletionStrategy,
        merge_detector: MergeDetector,
        process_reaper: ProcessReaper,
        metadata_store: MetadataStore,
        recap_archiver: RecapArchiver,
        database_manager: Optional[DatabaseManager],
        cli_isolation: Optional[CLIIsolationManager],
    ):
        self.settings_provider = settings_provider
        self.worktree_service = worktree_service
        self.safety_classifier = safety_classifier
        self.branch_deleter = branch_deleter
        self.merge_detector = merge_detector
        self.process_reaper = process_reaper
        self.metadata_store = metadata_store
        self.recap_archiver = recap_archiver
        self.database_manager = database_manager
        self.cli_isolation = cli_isolation

    def cleanup_worktree(self, request: CleanupRequest, options: CleanupOptions) -> CleanupResult:
        """Tear down the loom named by ``request``.

        Args:
            request: Parsed identifier of the loom
            options: Dry-run, force and which resources to keep

        Returns:
            CleanupResult with one OperationResult per step run

        Raises:
            WorktreeNotFoundError: If no worktree matches (carries the partial result)
            SafetyCheckError: If the safety gate blocks and force is not set
            BranchProtectedError: If the loom's branch is protected and would be deleted
            GitOperationError: If worktrees cannot be listed
        """
        identifier = request.display_identifier
        logger.info(f"Starting cleanup for: {identifier}")
        results = ResultAggregator(identifier)

        # Dev server
        if request.number is not None and request.identifier_kind != IdentifierKind.BRANCH:
            results = results.record(self._dev_server_step(request.number, options))

        # Locate the worktree
        tree = self._locate(request)
        if tree is None:
            error_message = f"No worktree found for identifier: {identifier}"
            logger.error(error_message)
            raise WorktreeNotFoundError(identifier, results.with_error(error_message).build())
        logger.debug(f"Found worktree: path=\"{tree.path}\", branch=\"{tree.branch}\"")

        # Safety gate
        self._check_gate(tree, request, options)

        # Pre-fetches, while the worktree directory still exists
        should_cleanup_database = self._prefetch_database_config(tree, options)
        main_path = self._prefetch_main_worktree_path(tree)
        merge_target = self._prefetch_merge_target(tree, options)

        # Destructive steps
        results = results.record(self._remove_worktree_step(tree, options))
        results = results.record(self._archive_recap_step(tree, options))
        if options.delete_branch:
            results = results.record(self._delete_branch_step(tree, options, merge_target, main_path))
        cli_identifier = request.number if request.number is not None else request.branch_name
        if self.cli_isolation is not None and cli_identifier is not None:
            results = results.record(self._cli_symlinks_step(cli_identifier, tree, options))
        if should_cleanup_database is not None:
            results = results.record(
                self._database_step(tree, options, should_cleanup_database, main_path)
            )
        results = results.record(self._metadata_step(tree, options))

        result = results.build(tree.branch)
        if result.success:
            logger.info(f"Cleanup completed for: {identifier}")
        else:
            logger.warning(f"Cleanup for {identifier} finished with {len(result.errors)} error(s)")
        return result

    def cleanup_multiple_worktrees(self, identifiers: List[str], options: CleanupOptions) -> List[CleanupResult]:
        """Tear down several looms one after another.

        A gate error for one identifier becomes a failed result and the
        batch moves on to the next identifier.
        """
        results = []
        for identifier in identifiers:
            try:
                request = parse_identifier(identifier)
            except ValueError as e:
                results.append(CleanupResult(identifier=identifier, errors=(str(e),)))
                continue

            try:
                results.append(self.cleanup_worktree(request, options))
            except WorktreeNotFoundError as e:
                results.append(e.result or CleanupResult(identifier=request.display_identifier, errors=(str(e),)))
            except LoomTeardownError as e:
                logger.error(f"Cleanup blocked for {identifier}: {e}")
                results.append(CleanupResult(identifier=request.display_identifier, errors=(str(e),)))
        return results

    def validate_cleanup_safety(self, identifier: str) -> SafetyCheck:
        """Report whether a loom could be torn down, without changing anything."""
        try:
            tree = self._locate(parse_identifier(identifier))
        except (ValueError, LoomTeardownError) as e:
            return SafetyCheck(blockers=(f"Cannot locate worktree for {identifier}: {e}",))
        if tree is None:
            return SafetyCheck(blockers=(f"No worktree found for: {identifier}",))
        return self.safety_classifier.validate_worktree_safety(tree, identifier)

    def terminate_dev_server(self, port: int, dry_run: bool = False) -> bool:
        """Stop the dev server listening on ``port``.

        Returns:
            True if a dev server was (or in dry-run, would be) terminated

        Raises:
            DevServerError: If the port is still in use after termination
        """
        logger.debug(f"Checking for dev server on port {port}")
        info = self.process_reaper.detect(port)
        if info is None:
            logger.debug(f"No process found on port {port}")
            return False

        if not info.is_dev_server:
            logger.warning(
                f"Process on port {port} ({info.name}) doesn't appear to be a dev server, skipping"
            )
            return False

        if dry_run:
            logger.info(f"{DRY_RUN_PREFIX} Would terminate dev server: {info.name} (PID: {info.pid})")
            return True

        logger.info(f"Terminating dev server: {info.name} (PID: {info.pid})")
        self.process_reaper.terminate(info.pid)
        if not self.process_reaper.verify_port_free(port):
            raise DevServerError(port)
        return True

    def _locate(self, request: CleanupRequest) -> Optional[WorkingTree]:
        if request.identifier_kind == IdentifierKind.PR and request.number is not None:
            return self.worktree_service.find_by_pr(request.number, "")
        if request.identifier_kind == IdentifierKind.ISSUE and request.number is not None:
            return self.worktree_service.find_by_issue(request.number)
        if request.identifier_kind == IdentifierKind.BRANCH and request.branch_name:
            return self.worktree_service.find_by_branch(request.branch_name)
        return None

    def _check_gate(self, tree: WorkingTree, request: CleanupRequest, options: CleanupOptions) -> None:
        if options.force:
            # The primary checkout is protected even when forced
            main_blocker = self.safety_classifier.main_worktree_blocker(tree)
            if main_blocker:
                raise SafetyCheckError([main_blocker])
        else:
            check = self.safety_classifier.validate_worktree_safety(
                tree,
                request.original_input,
                options.should_check_merge_safety(),
                options.should_check_remote_branch(),
            )
            if not check.is_safe:
                raise SafetyCheckError(list(check.blockers))

        if options.delete_branch and tree.branch:
            if tree.branch in self.settings_provider.protected_branches(tree.path):
                raise BranchProtectedError(tree.branch)

    def _prefetch_database_config(self, tree: WorkingTree, options: CleanupOptions) -> Optional[bool]:
        """Read whether the worktree has a scoped database (None = database kept)."""
        if options.keep_database:
            return None
        if self.database_manager is None:
            return False
        env_file_path = os.path.join(tree.path, ENV_FILE_NAME)
        try:
            return self.database_manager.should_cleanup(env_file_path)
        except (LoomTeardownError, OSError, ValueError) as e:
            logger.warning(f"Could not read database config from {env_file_path}, skipping database cleanup: {e}")
            return False

    def _prefetch_main_worktree_path(self, tree: WorkingTree) -> Optional[str]:
        try:
            return self.worktree_service.find_main_worktree_path(
                self.settings_provider.configured_main_branch(tree.path)
            )
        except LoomTeardownError as e:
            logger.warning(f"Failed to find main worktree path: {e}")
            return None

    def _prefetch_merge_target(self, tree: WorkingTree, options: CleanupOptions) -> Optional[str]:
        if not options.delete_branch:
            return None
        try:
            merge_target = self.merge_detector.get_merge_target_branch(tree.path)
        except LoomTeardownError as e:
            logger.warning(f"Failed to pre-fetch merge target branch: {e}")
            return None
        logger.debug(f"Pre-fetched merge target branch: {merge_target}")
        return merge_target

    def _dev_server_step(self, number: int, options: CleanupOptions) -> OperationResult:
        port = self.process_reaper.port_for(number)
        try:
            terminated = self.terminate_dev_server(port, dry_run=options.dry_run)
        except STEP_ERRORS as e:
            logger.error(f"Failed to terminate dev server on port {port}: {e}")
            return OperationResult(OperationType.DEV_SERVER, False, "Failed to terminate dev server", error=str(e))

        if not terminated:
            message = f"No dev server running on port {port}"
        elif options.dry_run:
            message = f"{DRY_RUN_PREFIX} Would terminate dev server on port {port}"
        else:
            message = f"Dev server on port {port} terminated"
        return OperationResult(OperationType.DEV_SERVER, True, message)

    def _remove_worktree_step(self, tree: WorkingTree, options: CleanupOptions) -> OperationResult:
        if options.dry_run:
            return OperationResult(
                OperationType.WORKTREE, True, f"{DRY_RUN_PREFIX} Would remove worktree: {tree.path}"
            )
        try:
            removed, error = self.worktree_service.remove_worktree(tree.path, force=options.force)
        except STEP_ERRORS as e:
            removed, error = False, str(e)
        if not removed:
            return OperationResult(OperationType.WORKTREE, False, "Failed to remove worktree", error=error)
        return OperationResult(OperationType.WORKTREE, True, f"Worktree removed: {tree.path}")

    def _archive_recap_step(self, tree: WorkingTree, options: CleanupOptions) -> OperationResult:
        if options.dry_run:
            return OperationResult(
                OperationType.RECAP, True, f"{DRY_RUN_PREFIX} Would archive recap file for: {tree.path}"
            )
        try:
            archived = self.recap_archiver.archive(tree.path)
        except (STEP_ERRORS + (ValueError,)) as e:
            logger.warning(f"Recap archival failed: {e}")
            return OperationResult(
                OperationType.RECAP, False, "Recap archival failed (non-fatal)", error=str(e)
            )
        return OperationResult(
            OperationType.RECAP, True, "Recap file archived" if archived else "No recap file to archive"
        )

    def _delete_branch_step(
        self,
        tree: WorkingTree,
        options: CleanupOptions,
        merge_target: Optional[str],
        main_path: Optional[str],
    ) -> OperationResult:
        if not tree.branch:
            return OperationResult(OperationType.BRANCH, True, "No branch to delete (detached HEAD)")
        if options.dry_run:
            return OperationResult(
                OperationType.BRANCH, True, f"{DRY_RUN_PREFIX} Would delete branch: {tree.branch}"
            )
        branch_options = BranchDeleteOptions(
            dry_run=False,
            force=options.force,
            merge_target_branch=merge_target,
        )
        try:
            self.branch_deleter.delete_branch(tree.branch, branch_options, main_path)
        except STEP_ERRORS as e:
            logger.error(f"Failed to delete branch {tree.branch}: {e}")
            return OperationResult(OperationType.BRANCH, False, "Failed to delete branch", error=str(e))
        return OperationResult(OperationType.BRANCH, True, f"Branch deleted: {tree.branch}")

    def _cli_symlinks_step(
        self, cli_identifier: Union[int, str], tree: WorkingTree, options: CleanupOptions
    ) -> OperationResult:
        if options.dry_run:
            return OperationResult(
                OperationType.CLI_SYMLINKS, True,
                f"{DRY_RUN_PREFIX} Would cleanup CLI symlinks for: {cli_identifier}",
            )
        try:
            removed = self.cli_isolation.cleanup_versioned_executables(cli_identifier, tree.path)
        except OSError as e:
            logger.warning(f"CLI symlink cleanup failed: {e}")
            return OperationResult(
                OperationType.CLI_SYMLINKS, False, "CLI symlink cleanup failed (non-fatal)", error=str(e)
            )
        message = f"CLI symlinks removed: {len(removed)}" if removed else "No CLI symlinks to cleanup"
        return OperationResult(OperationType.CLI_SYMLINKS, True, message)

    def _database_step(
        self,
        tree: WorkingTree,
        options: CleanupOptions,
        should_cleanup: bool,
        main_path: Optional[str],
    ) -> OperationResult:
        branch = tree.branch or ""
        if options.dry_run:
            return OperationResult(
                OperationType.DATABASE, True,
                f"{DRY_RUN_PREFIX} Would cleanup database branch for: {branch}",
            )
        if not (should_cleanup and self.database_manager is not None and branch):
            return OperationResult(
                OperationType.DATABASE, True, "Database cleanup skipped (not available)", deleted=False
            )

        deletion = self.database_manager.delete_branch_if_configured(branch, should_cleanup, False, main_path)
        return self._database_operation(branch, deletion)

    @staticmethod
    def _database_operation(branch: str, deletion: "DatabaseDeletionResult") -> OperationResult:
        if deletion.deleted:
            logger.info(f"Database branch deleted: {branch}")
            return OperationResult(OperationType.DATABASE, True, "Database branch deleted", deleted=True)
        if deletion.not_found:
            logger.debug(f"No database branch found for: {branch}")
            return OperationResult(
                OperationType.DATABASE, True, "No database branch found (skipped)", deleted=False
            )
        if deletion.user_declined:
            logger.info("Preview database deletion declined by user")
            return OperationResult(
                OperationType.DATABASE, True, "Database cleanup skipped (user declined)", deleted=False
            )
        if not deletion.success:
            error = deletion.error or "Unknown error"
            logger.warning(f"Database cleanup failed: {error}")
            return OperationResult(
                OperationType.DATABASE, False, "Database cleanup failed", error=error, deleted=False
            )
        logger.warning("Database deletion returned unexpected result state")
        return OperationResult(
            OperationType.DATABASE, False, "Database cleanup in an unknown state",
            error="Database cleanup in an unknown state", deleted=False,
        )

    def _metadata_step(self, tree: WorkingTree, options: CleanupOptions) -> OperationResult:
        if options.archive_metadata:
            return self._archive_metadata_step(tree, options)
        if options.dry_run:
            return OperationResult(
                OperationType.METADATA, True,
                f"{DRY_RUN_PREFIX} Would delete metadata for worktree: {tree.path}",
            )
        try:
            deleted = self.metadata_store.delete(tree.path)
        except OSError as e:
            logger.warning(f"Metadata deletion failed: {e}")
            return OperationResult(
                OperationType.METADATA, False, "Metadata deletion failed (non-fatal)", error=str(e)
            )
        if deleted:
            logger.info(f"Metadata deleted for worktree: {tree.path}")
        return OperationResult(
            OperationType.METADATA, True, "Metadata deleted" if deleted else "No metadata to delete"
        )

    def _archive_metadata_step(self, tree: WorkingTree, options: CleanupOptions) -> OperationResult:
        if options.dry_run:
            return OperationResult(
                OperationType.METADATA, True,
                f"{DRY_RUN_PREFIX} Would archive metadata for worktree: {tree.path}",
            )
        try:
            archived = self.metadata_store.archive(tree.path)
        except OSError as e:
            logger.warning(f"Metadata archival failed: {e}")
            return OperationResult(
                OperationType.METADATA, False, "Metadata archival failed (non-fatal)", error=str(e)
            )
        if archived:
            logger.info(f"Metadata archived for worktree: {tree.path}")
        return OperationResult(
            OperationType.METADATA, True, "Metadata archived" if archived else "No metadata to archive"
        )


def resolve_repository_root(repo_path: str) -> str:
    """Return the primary checkout of the repository containing ``repo_path``.

    Raises:
        GitOperationError: If ``repo_path`` is not inside a git repository
    """
    try:
        repo = git.Repo(repo_path, search_parent_directories=True)
    except (git.exc.InvalidGitRepositoryError, git.exc.NoSuchPathError) as e:
        raise GitOperationError("open repository", message=f"Not a git repository: {repo_path}") from e
    common_dir = Path(repo.common_dir).resolve()
    if repo.bare:
        return str(common_dir)
    return str(common_dir.parent)


def build_teardown_orchestrator(repo_path: str, config: Optional[Config] = None) -> TeardownOrchestrator:
    """Wire the concrete services into a TeardownOrchestrator.

    Args:
        repo_path: Any directory inside the repository
        config: Settings to use; loaded from the repository root if omitted
    """
    root = resolve_repository_root(repo_path)
    settings_provider = SettingsProvider(root)
    config = config or settings_provider.load()

    worktree_service = WorktreeService(root)
    metadata_store = MetadataStore(config.data_dir)
    merge_detector = MergeDetector(metadata_store, settings_provider)
    safety_classifier = SafetyClassifier(
        worktree_service,
        merge_detector,
        RemoteStatusProbe(config.remote_name),
        remote_name=config.remote_name,
        default_merge_target=config.main_branch,
    )

    provider = NeonProvider(config.neon_project_id, config.neon_parent_branch)
    database_manager = (
        DatabaseManager(provider, config.database_url_env_var) if provider.is_configured() else None
    )

    return TeardownOrchestrator(
        settings_provider=settings_provider,
        worktree_service=worktree_service,
        safety_classifier=safety_classifier,
        branch_deleter=BranchDeletionStrategy(settings_provider, worktree_service, merge_detector),
        merge_detector=merge_detector,
        process_reaper=ProcessReaper(config.base_port),
        metadata_store=metadata_store,
        recap_archiver=RecapArchiver(config.data_dir),
        database_manager=database_manager,
        cli_isolation=CLIIsolationManager(config.cli_bin_dir),
    )
