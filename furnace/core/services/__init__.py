"""Core services — config rendering and PHP runtimes."""
