"""Configuration — paths and YAML loading."""
