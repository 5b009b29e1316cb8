"""Shared types, errors, Web-Mercator helpers, configuration and logging."""
