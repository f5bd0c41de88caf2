"""
mejour.services.display_names — Display-name resolution chain
==============================================================

A followed user's name is resolved by an ordered list of strategies, each
returning ``str | None``; the first non-empty answer wins:

  1. remote user lookup        (``GET /api/users/{id}/``)
  2. author name on the user's posts
  3. ``"User #<id>"`` placeholder

Strategies swallow only :class:`~mejour.errors.MejourError`, so a failing
lookup falls through to the next strategy instead of failing the follow.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import TYPE_CHECKING

from mejour.constants import placeholder_display_name
from mejour.errors import MejourError

if TYPE_CHECKING:
    from mejour.gateway.client import MapGateway
    from mejour.models import Post

logger = logging.getLogger(__name__)

NameStrategy = Callable[[int], Awaitable[str | None]]


def remote_lookup(gateway: MapGateway) -> NameStrategy:
    async def _resolve(user_id: int) -> str | None:
        try:
            user = await gateway.fetch_user(user_id)
        except MejourError as exc:
            logger.debug("User lookup for %d failed: %s", user_id, exc)
            return None
        return user.display_name or user.username or None

    return _resolve


def from_posts(load_posts: Callable[[int], Awaitable[Sequence[Post]]]) -> NameStrategy:
    async def _resolve(user_id: int) -> str | None:
        try:
            posts = await load_posts(user_id)
        except MejourError as exc:
            logger.debug("Post-based name lookup for %d failed: %s", user_id, exc)
            return None
        for post in posts:
            if post.author_name and post.author_name.strip():
                return post.author_name
        return None

    return _resolve


async def _placeholder(user_id: int) -> str | None:
    return placeholder_display_name(user_id)


class DisplayNameResolver:
    """Runs strategies in order, short-circuiting on the first hit."""

    def __init__(self, strategies: Sequence[NameStrategy], *, with_placeholder: bool = True) -> None:
        self._strategies = list(strategies)
        if with_placeholder:
            self._strategies.append(_placeholder)

    async def resolve(self, user_id: int) -> str | None:
        for strategy in self._strategies:
            name = await strategy(user_id)
            if name and name.strip():
                return name.strip()
        return None
