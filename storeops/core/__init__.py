"""Core infrastructure: configuration, database and exceptions."""
