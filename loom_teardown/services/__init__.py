"""Services for loom-teardown."""

from .cli_isolation_service import CLIIsolationManager
from .database_service import DatabaseManager, DatabaseProvider, NeonProvider
from .metadata_service import MetadataStore, RecapArchiver
from .process_service import ProcessReaper
from .safety_service import SafetyClassifier

__all__ = [
    "CLIIsolationManager",
    "DatabaseManager",
    "DatabaseProvider",
    "NeonProvider",
    "MetadataStore",
    "RecapArchiver",
    "ProcessReaper",
    "SafetyClassifier",
]
