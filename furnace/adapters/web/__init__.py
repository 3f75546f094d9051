"""Web server backends."""
