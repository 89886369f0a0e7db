"""
Filters Module - decide which descriptions reach the agent.

Usage:
    from scenecast.filters import has_changed
"""

from .significance import (
    has_changed,
    is_fallback,
)

__all__ = [
    "has_changed",
    "is_fallback",
]
