"""Formatting utilities for loom-teardown.

- operations: per-step result lines and headings
- recovery: manual follow-up instructions for failed steps
"""

from .operations import format_operation, format_result_header, get_operation_style
from .recovery import format_recovery_instructions

__all__ = [
    "format_operation",
    "format_result_header",
    "get_operation_style",
    "format_recovery_instructions",
]
