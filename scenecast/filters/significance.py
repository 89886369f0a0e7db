"""
Significance Filters

Scene-change detection for outgoing descriptions. A description is worth
forwarding when it says something new and is not the "nothing to see" fallback.
The result is only a notification decision; callers still store every result.
"""

import logging
from typing import Optional

from ..composer import FALLBACK_DESCRIPTION

logger = logging.getLogger(__name__)


def is_fallback(description: Optional[str]) -> bool:
    """True for the canonical empty-scene sentence."""
    return (description or "").strip() == FALLBACK_DESCRIPTION


def has_changed(new_description: Optional[str], last_description: Optional[str]) -> bool:
    """
    Check whether a new description should be forwarded.

    Args:
        new_description: Description from the current cycle
        last_description: Last description that was forwarded, or None/"" if
            nothing has been forwarded yet

    Returns:
        True if the description is new and meaningful
    """
    new = (new_description or "").strip()
    if not new or is_fallback(new):
        return False

    if not last_description:
        return True

    return new != last_description.strip()
