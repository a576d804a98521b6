"""
loom-teardown - Safe teardown of per-task git worktrees
"""

from .__version__ import __version__
from .core import TeardownOrchestrator, build_teardown_orchestrator
from .cli.main import main

__all__ = ["TeardownOrchestrator", "build_teardown_orchestrator", "main", "__version__"]
