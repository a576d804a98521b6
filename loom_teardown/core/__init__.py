"""Core teardown orchestration for loom-teardown."""

from .results import ResultAggregator
from .teardown import TeardownOrchestrator, build_teardown_orchestrator

__all__ = ["ResultAggregator", "TeardownOrchestrator", "build_teardown_orchestrator"]
