"""
mejour.constants — Shared Constants & Helpers
==============================================

Single source of truth for wire markers, cache defaults and presentation
constants.  Import from here instead of duplicating in services and engine.
"""

from __future__ import annotations

import random

# ---------------------------------------------------------------------------
# Post body markers (see mejour.engine.content)
# ---------------------------------------------------------------------------
TIME_MARKER_PREFIX = "[PHOTO_TIME:"
TAGS_MARKER_PREFIX = "[TAGS:"
MARKER_SUFFIX = "]"
TAG_SEPARATOR = "·"

# ---------------------------------------------------------------------------
# Remote sentinels & defaults
# ---------------------------------------------------------------------------
UNSAVED_REMOTE_ID = -1

# Placeholder values the backend hands back for an unset place metadata field
EMPTY_METADATA_VALUES: frozenset[str] = frozenset({"", "string"})

DEFAULT_POSTS_CACHE_TTL = 60 * 5  # seconds
DEFAULT_DEDUP_RADIUS_METERS = 30.0
DEFAULT_NEARBY_RADIUS_METERS = 30.0
DEFAULT_NEARBY_LIMIT = 10

# ---------------------------------------------------------------------------
# Friend avatar pool (decorative, assigned locally)
# ---------------------------------------------------------------------------
AVATAR_EMOJI: dict[int, str] = {
    1: "\U0001f60a",   # 😊
    2: "\U0001f60e",   # 😎
    3: "\U0001f917",   # 🤗
    4: "\U0001f604",   # 😄
    5: "\U0001f973",   # 🥳
    6: "\U0001f60d",   # 😍
    7: "\U0001f60c",   # 😌
    8: "\U0001f607",   # 😇
    9: "\U0001f914",   # 🤔
    10: "\U0001f60e",  # 😎
    11: "\U0001f31f",  # 🌟
    12: "\U0001f3af",  # 🎯
}

DEFAULT_AVATAR_EMOJI = "\U0001f464"  # 👤


def random_avatar_id() -> int:
    return random.choice(list(AVATAR_EMOJI))


def avatar_emoji(avatar_id: int | None) -> str:
    """Emoji for *avatar_id*, or the generic silhouette when unknown."""
    if avatar_id is None:
        return DEFAULT_AVATAR_EMOJI
    return AVATAR_EMOJI.get(avatar_id, DEFAULT_AVATAR_EMOJI)


def placeholder_display_name(user_id: int) -> str:
    return f"User #{user_id}"
