"""Execution Wall - trade signal approval and delayed execution backend."""

__version__ = "1.0.0"
