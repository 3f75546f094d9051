"""Logging setup and health checks."""
