"""Command-line interface for loom-teardown."""
