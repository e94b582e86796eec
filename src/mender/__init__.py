"""Mender - self-healing and pattern learning for generated end-to-end tests."""

__version__ = "0.4.0"
