"""Use cases — one module per CLI-facing operation."""
