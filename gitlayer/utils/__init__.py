"""Utility functions for gitlayer."""

from .inflight import InflightGroup, resolved, with_timeout
from .logging import setup_logging

__all__ = [
    "InflightGroup",
    "resolved",
    "with_timeout",
    "setup_logging",
]
