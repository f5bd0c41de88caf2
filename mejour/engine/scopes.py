"""
mejour.engine.scopes — Mine / Friends / Community Projections
==============================================================

Read-only views derived from the :class:`~mejour.engine.place_index.PlaceIndex`
and :class:`~mejour.engine.post_cache.PostCache`.  Nothing here is stored:
every call recomputes from the current cache contents, so a view can never
lag behind the caches it is built from.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

from mejour.models import MapScope, Place, Post

if TYPE_CHECKING:
    from mejour.engine.place_index import PlaceIndex
    from mejour.engine.post_cache import PostCache
    from mejour.models import CurrentUser


class ScopeProjection:
    """Derives scope views for the signed-in viewer.

    *current_user* and *followed_ids* are callables so the projection always
    reads the live session and follow list.
    """

    def __init__(
        self,
        index: PlaceIndex,
        posts: PostCache,
        current_user: Callable[[], CurrentUser | None],
        followed_ids: Callable[[], Iterable[int]],
    ) -> None:
        self._index = index
        self._posts = posts
        self._current_user = current_user
        self._followed_ids = followed_ids

    # -------------------------------------------------------------------
    # Place scopes
    # -------------------------------------------------------------------
    def mine(self) -> list[Place]:
        """Places owned by the current user."""
        return self._index.mine()

    def community(self) -> list[Place]:
        """Every public place."""
        return self._index.community()

    def friend_explored_place_ids(self) -> set[int]:
        out: set[int] = set()
        for uid in self._followed_ids():
            out |= self._posts.explored_place_ids(uid)
        return out

    def friends(self) -> list[Place]:
        """Public places where at least one followed user has posted."""
        ids = self.friend_explored_place_ids()
        if not ids:
            return []
        by_id = {pid: p for pid, p in self._index.by_remote_id().items() if p.is_public}
        return [by_id[pid] for pid in sorted(ids) if pid in by_id]

    def places_for(self, scope: MapScope) -> list[Place]:
        if scope is MapScope.MINE:
            return self.mine()
        if scope is MapScope.FRIENDS:
            return self.friends()
        return self.community()

    # -------------------------------------------------------------------
    # Explored places
    # -------------------------------------------------------------------
    def explored_place_ids(self, user_id: int) -> set[int]:
        return self._posts.explored_place_ids(user_id)

    def explored_places(self, user_id: int) -> list[Place]:
        """Places *user_id* has posted to, resolved against every visible place."""
        ids = self.explored_place_ids(user_id)
        if not ids:
            return []
        by_id = self._index.by_remote_id()
        return [by_id[pid] for pid in sorted(ids) if pid in by_id]

    def my_explored_places(self) -> list[Place]:
        me = self._current_user()
        if me is None:
            return []
        return self.explored_places(me.id)

    # -------------------------------------------------------------------
    # Post slices
    # -------------------------------------------------------------------
    def my_posts(self) -> list[Post]:
        me = self._current_user()
        if me is None:
            return []
        return list(self._posts.author_posts(me.id))

    def posts_of_user_at_place(self, user_id: int, place_remote_id: int) -> list[Post]:
        return [
            p for p in self._posts.author_posts(user_id)
            if p.place_remote_id == place_remote_id
        ]

    def my_posts_at_place(self, place_remote_id: int) -> list[Post]:
        me = self._current_user()
        if me is None:
            return []
        return self.posts_of_user_at_place(me.id, place_remote_id)

    def friend_posts_at_place(self, place_remote_id: int) -> list[Post]:
        """All followed users' cached posts at one place."""
        out: list[Post] = []
        for uid in self._followed_ids():
            out.extend(self.posts_of_user_at_place(uid, place_remote_id))
        return out
