"""Command groups for the Mender CLI."""

from .heal_log import heal_log_app
from .patterns import patterns_app
from .promotion import promotion_app

__all__ = ["heal_log_app", "patterns_app", "promotion_app"]
