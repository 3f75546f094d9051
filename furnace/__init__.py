"""Furnace — local PHP development environment manager."""

__version__ = "0.1.0"
