"""Shell access — command runner and process helpers."""
