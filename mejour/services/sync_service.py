"""
mejour.services.sync_service — The Synchronization Layer
=========================================================

:class:`SyncService` is the single owner of all client-side cache state:
the :class:`~mejour.engine.place_index.PlaceIndex`, the
:class:`~mejour.engine.post_cache.PostCache` and the follow list.  Callers
read snapshots and request mutations through its coroutines; they never touch
the collections directly.

Concurrency model:
    Everything runs on one asyncio event loop, so cache writes are
    serialized by construction.  Remote calls for different keys overlap
    freely.  Two loads for the same key share one in-flight task.  Remote
    work runs in a shielded task: a caller that stops waiting does not
    cancel the call, and a successful result still lands in the cache.
    Results that arrive after a sign-out reset are discarded.

Mutation contract:
    Caches are only ever updated with the server's confirmed response, after
    it arrives.  A failed mutation leaves every cache entry untouched and the
    error propagates to the caller.  Nothing is retried automatically.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import TYPE_CHECKING, TypeVar

from mejour.constants import (
    DEFAULT_DEDUP_RADIUS_METERS,
    DEFAULT_NEARBY_LIMIT,
    DEFAULT_NEARBY_RADIUS_METERS,
    placeholder_display_name,
)
from mejour.engine.content import encode_body
from mejour.engine.place_index import PlaceIndex
from mejour.engine.post_cache import PostCache
from mejour.engine.scopes import ScopeProjection
from mejour.errors import InvalidInput, MejourError, MissingCredential, PlaceCreationFailed
from mejour.gateway.auth import AuthSession
from mejour.gateway.client import MapGateway, PhotoUpload, decimal6
from mejour.gateway.http import create_http_client
from mejour.gateway.mapping import place_from_api, places_from_api, post_from_api, posts_from_api
from mejour.gateway.schemas import APICreatePlaceRequest, encode_place_metadata
from mejour.models import (
    Coordinate,
    CurrentUser,
    Friend,
    Place,
    PlaceSource,
    PlaceType,
    Post,
    Reaction,
    Visibility,
    normalize_tags,
)
from mejour.services.display_names import DisplayNameResolver, from_posts, remote_lookup
from mejour.services.follow_store import FollowStore, is_placeholder_name

if TYPE_CHECKING:
    import httpx

    from mejour.config import Credentials, MejourConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _retrieve_exception(task: asyncio.Task) -> None:
    # Mark a detached task's failure as observed when nobody awaited it
    if not task.cancelled():
        task.exception()


class SyncService:
    """Owns the place index, the post cache and the follow list.

    Usage:
        sync = SyncService.from_config(cfg, creds)
        await sync.sign_in()
        await sync.refresh()
        nearby = sync.nearest_places(here, PlaceSource.COMMUNITY)
        post = await sync.create_post(nearby[0], "Lunch", "Great noodles", Visibility.PUBLIC)
        await sync.react(post.remote_id, Reaction.LIKE)
    """

    def __init__(
        self,
        gateway: MapGateway,
        auth: AuthSession,
        *,
        follows: FollowStore | None = None,
        index: PlaceIndex | None = None,
        posts: PostCache | None = None,
        dedup_radius_meters: float = DEFAULT_DEDUP_RADIUS_METERS,
        nearby_radius_meters: float = DEFAULT_NEARBY_RADIUS_METERS,
        nearby_limit: int = DEFAULT_NEARBY_LIMIT,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.gateway = gateway
        self.auth = auth
        self.follows = follows if follows is not None else FollowStore()
        self.index = index if index is not None else PlaceIndex()
        self.posts = posts if posts is not None else PostCache()
        self.dedup_radius_meters = dedup_radius_meters
        self.nearby_radius_meters = nearby_radius_meters
        self.nearby_limit = nearby_limit
        self._http_client = http_client

        self.scopes = ScopeProjection(
            self.index,
            self.posts,
            current_user=lambda: self.auth.current_user,
            followed_ids=lambda: self.follows.ids,
        )
        self._names = DisplayNameResolver(
            [remote_lookup(gateway), from_posts(self.load_posts_by_author)]
        )

        self._create_lock = asyncio.Lock()
        self._inflight_place: dict[int, asyncio.Task] = {}
        self._inflight_author: dict[int, asyncio.Task] = {}
        # Bumped on reset; results from an older generation are not cached
        self._generation = 0

    @classmethod
    def from_config(
        cls,
        cfg: MejourConfig,
        credentials: Credentials | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> SyncService:
        """Wire client, auth, gateway and stores from a loaded config."""
        client = create_http_client(cfg.base_url, timeout=cfg.request_timeout, transport=transport)
        auth = AuthSession(
            client,
            credentials.username if credentials else None,
            credentials.password if credentials else None,
        )
        return cls(
            MapGateway(client, auth, map_prefix=cfg.map_prefix),
            auth,
            follows=FollowStore(cfg.follow_store_path),
            index=PlaceIndex(merge_radius_m=cfg.dedup_radius_meters),
            posts=PostCache(ttl_seconds=cfg.posts_cache_ttl_seconds),
            dedup_radius_meters=cfg.dedup_radius_meters,
            nearby_radius_meters=cfg.nearby_radius_meters,
            nearby_limit=cfg.nearby_limit,
            http_client=client,
        )

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()

    # -------------------------------------------------------------------
    # Task plumbing
    # -------------------------------------------------------------------
    async def _detached(self, coro: Awaitable[T]) -> T:
        """Run *coro* so that cancelling the caller does not cancel it."""
        task = asyncio.ensure_future(coro)
        task.add_done_callback(_retrieve_exception)
        return await asyncio.shield(task)

    async def _collapsed(
        self,
        registry: dict[int, asyncio.Task],
        key: int,
        factory: Callable[[], Awaitable[T]],
    ) -> T:
        """Join the in-flight task for *key*, or start one."""
        task = registry.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            registry[key] = task

            def _forget(t: asyncio.Task, k: int = key) -> None:
                if registry.get(k) is t:
                    del registry[k]
                _retrieve_exception(t)

            task.add_done_callback(_forget)
        else:
            logger.debug("Joining in-flight fetch for key %d", key)
        return await asyncio.shield(task)

    def _owner_id(self) -> str | None:
        me = self.auth.current_user
        return me.uuid if me else None

    # -------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------
    @property
    def current_user(self) -> CurrentUser | None:
        return self.auth.current_user

    async def sign_in(self, username: str | None = None, password: str | None = None) -> CurrentUser:
        return await self.auth.login(username, password)

    def sign_out(self) -> None:
        self.auth.logout()
        self.reset()

    def reset(self) -> None:
        """Drop every cached place and post (e.g. on sign-out)."""
        self._generation += 1
        self.index.clear()
        self.posts.clear()
        # Loads started before the reset keep running detached but are no
        # longer joined by new callers.
        self._inflight_place.clear()
        self._inflight_author.clear()
        logger.info("Sync state reset (generation %d)", self._generation)

    async def refresh(self) -> list[Place]:
        """Warm everything: places, my posts, followed users' posts."""
        places = await self.load_places()
        if self.auth.current_user is not None:
            await self.load_my_posts()
        await self.load_followed_users_posts()
        return places

    # -------------------------------------------------------------------
    # Places
    # -------------------------------------------------------------------
    async def load_places(self) -> list[Place]:
        """Fetch the full catalog and rebuild the index.

        Any page or mapping failure aborts before the index is touched.
        """
        generation = self._generation

        async def _load() -> list[Place]:
            places = places_from_api(await self.gateway.fetch_places())
            if generation == self._generation:
                self.index.replace(places, owner_id=self._owner_id())
            return places

        await self._detached(_load())
        return self.index.canonical()

    async def fetch_place(self, remote_id: int) -> Place:
        if remote_id <= 0:
            raise InvalidInput(f"Place id must be positive, got {remote_id}")
        return place_from_api(await self.gateway.fetch_place(remote_id))

    def update_place(self, place: Place) -> None:
        """Replace a known place in the index (matched by local id)."""
        self.index.update(place)

    def canonical_places(self, external: Iterable[Place] = ()) -> list[Place]:
        """Indexed places merged with external POI candidates, deduplicated."""
        return self.index.canonical(external)

    def nearest_places(
        self,
        origin: Coordinate,
        source: PlaceSource = PlaceSource.ALL,
        *,
        limit: int | None = None,
        tag_filter: str | None = None,
        radius_meters: float | None = None,
    ) -> list[Place]:
        return self.index.nearest(
            origin,
            source,
            limit=self.nearby_limit if limit is None else limit,
            tag_filter=tag_filter,
            radius_meters=self.nearby_radius_meters if radius_meters is None else radius_meters,
        )

    async def get_or_create_place(
        self,
        name: str,
        description: str = "",
        *,
        coordinate: Coordinate,
        visibility: Visibility = Visibility.PUBLIC,
        place_type: PlaceType = PlaceType.OTHER,
        tags: Iterable[str] = (),
        dedup_radius_meters: float | None = None,
    ) -> Place:
        """Return a matching indexed place, or create one remotely.

        The local dedup check runs before any remote mutation.  Calls are
        serialized so a second call for the same place sees the first
        call's result instead of creating a duplicate.
        """
        cleaned_name = name.strip()
        if not cleaned_name:
            raise InvalidInput("Place name must not be empty")
        radius = self.dedup_radius_meters if dedup_radius_meters is None else dedup_radius_meters
        tags = normalize_tags(tags)

        await self.auth.ensure_token()

        request = APICreatePlaceRequest(
            name=cleaned_name,
            description=description,
            latitude=decimal6(coordinate.latitude),
            longitude=decimal6(coordinate.longitude),
            visibility=str(visibility),
            metadata=encode_place_metadata(place_type, tags),
        )
        generation = self._generation

        # The detached task owns the lock from dedup check to index upsert, so
        # an abandoned call still blocks the next one until its place is indexed.
        async def _get_or_create() -> Place:
            async with self._create_lock:
                existing = self.index.find_existing_near(
                    cleaned_name, coordinate, radius, include_private=True
                )
                if existing is not None:
                    logger.debug(
                        "Reusing place %r (id=%d) within %.0fm",
                        existing.name, existing.remote_id, radius,
                    )
                    return existing

                try:
                    created = place_from_api(await self.gateway.create_place(request))
                except MissingCredential:
                    raise
                except MejourError as exc:
                    raise PlaceCreationFailed(exc.user_message) from exc
                if generation == self._generation:
                    self.index.upsert(created, owner_id=self._owner_id())
                return created

        return await self._detached(_get_or_create())

    # -------------------------------------------------------------------
    # Post reads
    # -------------------------------------------------------------------
    async def load_posts(self, place: Place, force: bool = False) -> tuple[Post, ...]:
        """Posts at *place*; cached unless empty or *force*.

        A fetch fully replaces the entry.  Unsaved places have no posts.
        """
        if not place.is_persisted:
            return ()
        place_id = place.remote_id
        if not self.posts.place_needs_fetch(place_id, force):
            logger.debug("Place %d posts served from cache", place_id)
            return self.posts.place_posts(place_id)

        generation = self._generation

        async def _fetch() -> tuple[Post, ...]:
            posts = posts_from_api(await self.gateway.fetch_posts_by_place(place_id))
            if generation != self._generation:
                return tuple(posts)
            return self.posts.store_place(place_id, posts)

        return await self._collapsed(self._inflight_place, place_id, _fetch)

    async def load_posts_by_author(self, user_id: int, force_refresh: bool = False) -> tuple[Post, ...]:
        """Posts by *user_id*; served from cache within the TTL unless forced."""
        if not force_refresh:
            cached = self.posts.fresh_author_posts(user_id)
            if cached is not None:
                logger.debug("Author %d posts served from cache", user_id)
                return cached

        generation = self._generation

        async def _fetch() -> tuple[Post, ...]:
            posts = posts_from_api(await self.gateway.fetch_posts_by_user(user_id))
            if generation != self._generation:
                return tuple(posts)
            return self.posts.store_author(user_id, posts)

        return await self._collapsed(self._inflight_author, user_id, _fetch)

    async def load_my_posts(self, force_refresh: bool = False) -> tuple[Post, ...]:
        await self.auth.ensure_token()
        me = self.auth.current_user
        if me is None:
            raise MissingCredential("No signed-in user.")
        return await self.load_posts_by_author(me.id, force_refresh)

    async def load_followed_users_posts(self, force_refresh: bool = False) -> dict[int, tuple[Post, ...]]:
        """Load every followed user's posts concurrently (first failure propagates)."""
        ids = self.follows.ids
        if not ids:
            return {}
        results = await asyncio.gather(
            *(self.load_posts_by_author(uid, force_refresh) for uid in ids)
        )
        return dict(zip(ids, results, strict=True))

    async def fetch_post(self, post_id: int) -> Post:
        if post_id <= 0:
            raise InvalidInput(f"Post id must be positive, got {post_id}")
        return post_from_api(await self.gateway.fetch_post(post_id))

    # -------------------------------------------------------------------
    # Post mutations
    # -------------------------------------------------------------------
    async def create_post(
        self,
        place: Place,
        title: str,
        text: str,
        visibility: Visibility = Visibility.PUBLIC,
        *,
        photo: PhotoUpload | None = None,
        tags: Iterable[str] | None = None,
        captured_at: datetime | None = None,
    ) -> Post:
        """Create a post, persisting *place* first if it is only a candidate."""
        target = place
        if not place.is_persisted:
            target = await self.get_or_create_place(
                place.name,
                place.description,
                coordinate=place.coordinate,
                visibility=visibility,
                place_type=place.type,
                tags=place.tags,
            )

        body = encode_body(captured_at, list(normalize_tags(tags or ())), text)
        generation = self._generation

        async def _create() -> Post:
            api = await self.gateway.create_post(
                target.remote_id, title, body, str(visibility), photo
            )
            post = post_from_api(api)
            if generation == self._generation:
                self.posts.splice_created(post)
                self.index.upsert(target, owner_id=self._owner_id())
            return post

        return await self._detached(_create())

    async def edit_post(
        self,
        post_id: int,
        place_remote_id: int,
        title: str,
        text: str,
        visibility: Visibility = Visibility.PUBLIC,
        *,
        photo: PhotoUpload | None = None,
        tags: Iterable[str] | None = None,
        captured_at: datetime | None = None,
    ) -> Post:
        if post_id <= 0 or place_remote_id <= 0:
            raise InvalidInput("Post and place ids must be positive")
        body = encode_body(captured_at, list(normalize_tags(tags or ())), text)
        generation = self._generation

        async def _edit() -> Post:
            api = await self.gateway.edit_post(
                post_id, place_remote_id, title, body, str(visibility), photo
            )
            post = post_from_api(api)
            if generation == self._generation:
                self.posts.splice_updated(post)
            return post

        return await self._detached(_edit())

    async def react(self, post_id: int, reaction: Reaction | str) -> Post:
        """Like or dislike a post; caches take the server's counts."""
        try:
            reaction = Reaction(reaction)
        except ValueError:
            raise InvalidInput(f"Unknown reaction {reaction!r}") from None
        if post_id <= 0:
            raise InvalidInput(f"Post id must be positive, got {post_id}")
        generation = self._generation

        async def _react() -> Post:
            post = post_from_api(await self.gateway.react(post_id, str(reaction)))
            if generation == self._generation:
                self.posts.splice_updated(post)
            logger.info(
                "Reacted %s on post %d (likes=%d, dislikes=%d)",
                reaction, post_id, post.like_count, post.dislike_count,
            )
            return post

        return await self._detached(_react())

    # -------------------------------------------------------------------
    # Follows
    # -------------------------------------------------------------------
    async def resolve_display_name(self, user_id: int) -> str:
        cached = self.follows.friend(user_id)
        if cached is not None and not is_placeholder_name(cached):
            return cached.display_name  # type: ignore[return-value]
        return await self._names.resolve(user_id) or placeholder_display_name(user_id)

    async def follow_user(self, user_id: int | str) -> Friend:
        """Follow a user by id, resolving a display name on the way in."""
        try:
            uid = int(str(user_id).strip())
        except ValueError:
            raise InvalidInput("User id must be a positive integer") from None
        if uid <= 0:
            raise InvalidInput("User id must be a positive integer")

        existing = self.follows.friend(uid)
        if existing is not None:
            return existing

        name = await self._names.resolve(uid)
        if name == placeholder_display_name(uid):
            name = None
        self.follows.add(uid, display_name=name)
        return self.follows.friend(uid)  # type: ignore[return-value]

    def unfollow_user(self, user_id: int) -> bool:
        return self.follows.remove(user_id)

    async def refresh_display_names(self) -> int:
        """Re-resolve missing or placeholder names.  Returns how many changed."""
        resolved: dict[int, str] = {}
        for friend in self.follows.friends:
            if not is_placeholder_name(friend):
                continue
            name = await self._names.resolve(friend.user_id)
            if name and name != placeholder_display_name(friend.user_id):
                resolved[friend.user_id] = name
        return self.follows.set_display_names(resolved)
