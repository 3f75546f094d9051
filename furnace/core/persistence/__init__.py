"""Durable state — atomic writes and the recipe store."""
