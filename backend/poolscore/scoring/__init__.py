"""Scoring engines."""

from . import straight_pool

__all__ = [
    "straight_pool",
]
