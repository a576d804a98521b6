"""Version information for loom-teardown."""

__version__ = "0.1.0"
