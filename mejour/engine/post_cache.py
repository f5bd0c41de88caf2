"""
mejour.engine.post_cache — Multi-tier In-Memory Post Cache
===========================================================

Two independent keyings over the same logical post collection:

* **by place**  — ``place_remote_id → posts``.  A fetch fully replaces the
  entry; there is no merge of stale and fresh data.
* **by author** — ``author_id → AuthorEntry(posts, fetched_at)``.  Entries
  younger than ``ttl_seconds`` are served without a remote call.

Entries are stored as tuples, so the object handed to a caller can never be
mutated behind the cache's back.  Server-confirmed mutations are spliced into
every tier via :meth:`PostCache.splice_created` /
:meth:`PostCache.splice_updated`.  Nothing here performs I/O.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from mejour.constants import DEFAULT_POSTS_CACHE_TTL
from mejour.models import Post

logger = logging.getLogger(__name__)

# Marks a spliced-in author entry as already expired so the next read refetches
_STALE = float("-inf")


@dataclass(frozen=True, slots=True)
class AuthorEntry:
    posts: tuple[Post, ...]
    fetched_at: float


class PostCache:
    """Thread-safe post cache keyed by place and by author.

    Usage:
        cache = PostCache(ttl_seconds=300)
        if cache.place_needs_fetch(place_id, force=False):
            cache.store_place(place_id, fetched)
        posts = cache.place_posts(place_id)
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_POSTS_CACHE_TTL,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        # place_remote_id → posts (newest first as served)
        self._by_place: dict[int, tuple[Post, ...]] = {}
        # author_id → AuthorEntry
        self._by_author: dict[int, AuthorEntry] = {}

    # -------------------------------------------------------------------
    # By place
    # -------------------------------------------------------------------
    def place_posts(self, place_id: int) -> tuple[Post, ...]:
        with self._lock:
            return self._by_place.get(place_id, ())

    def place_needs_fetch(self, place_id: int, force: bool = False) -> bool:
        """True when forced, or when the entry is missing or empty."""
        if force:
            return True
        with self._lock:
            return not self._by_place.get(place_id)

    def store_place(self, place_id: int, posts: Iterable[Post]) -> tuple[Post, ...]:
        entry = tuple(posts)
        with self._lock:
            self._by_place[place_id] = entry
        logger.debug("Cached %d post(s) for place %d", len(entry), place_id)
        return entry

    # -------------------------------------------------------------------
    # By author (TTL)
    # -------------------------------------------------------------------
    def fresh_author_posts(self, author_id: int) -> tuple[Post, ...] | None:
        """Cached posts for *author_id* if still within the TTL, else None."""
        with self._lock:
            entry = self._by_author.get(author_id)
        if entry is None:
            return None
        if self._clock() - entry.fetched_at < self.ttl_seconds:
            return entry.posts
        return None

    def author_posts(self, author_id: int) -> tuple[Post, ...]:
        """Whatever is cached for *author_id*, regardless of age."""
        with self._lock:
            entry = self._by_author.get(author_id)
        return entry.posts if entry else ()

    def author_entry(self, author_id: int) -> AuthorEntry | None:
        with self._lock:
            return self._by_author.get(author_id)

    def store_author(self, author_id: int, posts: Iterable[Post]) -> tuple[Post, ...]:
        entry = AuthorEntry(posts=tuple(posts), fetched_at=self._clock())
        with self._lock:
            self._by_author[author_id] = entry
        logger.debug("Cached %d post(s) for author %d", len(entry.posts), author_id)
        return entry.posts

    def explored_place_ids(self, author_id: int) -> set[int]:
        """Distinct places *author_id* has posted to, derived on every call."""
        return {p.place_remote_id for p in self.author_posts(author_id)}

    # -------------------------------------------------------------------
    # Splicing confirmed mutations
    # -------------------------------------------------------------------
    def splice_created(self, post: Post) -> None:
        """Prepend a server-confirmed new post to its place and author lists.

        An author with no entry yet gets one that is already expired: the
        explored set reflects the post immediately while the next author read
        still performs a full fetch.
        """
        with self._lock:
            place_posts = self._by_place.get(post.place_remote_id, ())
            self._by_place[post.place_remote_id] = (
                post,
                *(p for p in place_posts if p.remote_id != post.remote_id),
            )

            entry = self._by_author.get(post.author_id)
            if entry is None:
                self._by_author[post.author_id] = AuthorEntry((post,), _STALE)
            else:
                self._by_author[post.author_id] = AuthorEntry(
                    (post, *(p for p in entry.posts if p.remote_id != post.remote_id)),
                    entry.fetched_at,
                )

    def splice_updated(self, post: Post) -> None:
        """Replace every cached copy of *post* with the confirmed version.

        If the post moved to another place it leaves the old place entry and
        is prepended to the new one.  TTL timestamps are left untouched.
        """
        with self._lock:
            for place_id, posts in list(self._by_place.items()):
                if place_id == post.place_remote_id:
                    continue
                if any(p.remote_id == post.remote_id for p in posts):
                    self._by_place[place_id] = tuple(
                        p for p in posts if p.remote_id != post.remote_id
                    )

            current = self._by_place.get(post.place_remote_id)
            if current is not None:
                if any(p.remote_id == post.remote_id for p in current):
                    self._by_place[post.place_remote_id] = tuple(
                        post if p.remote_id == post.remote_id else p for p in current
                    )
                else:
                    self._by_place[post.place_remote_id] = (post, *current)

            for author_id, entry in list(self._by_author.items()):
                if any(p.remote_id == post.remote_id for p in entry.posts):
                    self._by_author[author_id] = AuthorEntry(
                        tuple(post if p.remote_id == post.remote_id else p for p in entry.posts),
                        entry.fetched_at,
                    )

    # -------------------------------------------------------------------
    # Reset
    # -------------------------------------------------------------------
    def clear(self) -> None:
        with self._lock:
            self._by_place.clear()
            self._by_author.clear()
        logger.info("Post cache cleared")
