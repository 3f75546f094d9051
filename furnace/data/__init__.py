"""Packaged defaults: runtime catalog and PHP-FPM pool template."""
