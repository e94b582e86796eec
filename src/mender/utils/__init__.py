"""Shared utilities for Mender.

Contains cross-cutting utilities used by multiple modules.
"""

from mender.utils.fs import atomic_write_json, read_json_document
from mender.utils.time import Clock, epoch_millis, utc_now, utc_now_iso

__all__ = [
    "Clock",
    "atomic_write_json",
    "epoch_millis",
    "read_json_document",
    "utc_now",
    "utc_now_iso",
]
