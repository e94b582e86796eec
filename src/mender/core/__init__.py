"""Core infrastructure: logging, configuration and errors."""
