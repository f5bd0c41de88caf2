"""
mejour.gateway.client — Remote Map Gateway
===========================================

Authenticated access to the places / posts / users endpoints.  Returns wire
DTOs (:mod:`mejour.gateway.schemas`); mapping to domain records happens in the
services layer.

Response-shape tolerance:
    ``GET places/`` may answer with a paginated envelope, a bare array, or a
    single object.  Shapes are tried in that order and normalized to a list;
    ``next`` links are followed until null.  A failure on any page aborts the
    whole fetch.

    ``GET posts/by-place/{id}/`` may answer with an array or a single object.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from mejour.errors import DecodeFailure
from mejour.gateway.auth import AuthSession
from mejour.gateway.http import decode, send
from mejour.gateway.schemas import (
    APICreatePlaceRequest,
    APIPaginatedPlaces,
    APIPlace,
    APIPost,
    APIReactionRequest,
    APIUserBrief,
)

logger = logging.getLogger(__name__)

DEFAULT_MAP_PREFIX = "/api/map"
USERS_PREFIX = "/api/users"

# Shape attempts for list endpoints, most specific first
_PAGE_ADAPTER = TypeAdapter(APIPaginatedPlaces)
_PLACE_LIST_ADAPTER = TypeAdapter(list[APIPlace])
_PLACE_ADAPTER = TypeAdapter(APIPlace)
_POST_LIST_ADAPTER = TypeAdapter(list[APIPost])
_POST_ADAPTER = TypeAdapter(APIPost)


@dataclass(frozen=True, slots=True)
class PhotoUpload:
    """An image attached to a post create/edit."""

    data: bytes
    filename: str = "photo.jpg"
    mime_type: str = "image/jpeg"


def decimal6(value: float) -> str:
    return f"{value:.6f}"


def _first_match(raw: bytes, *adapters: TypeAdapter) -> tuple[int, Any]:
    """Return ``(position, value)`` for the first adapter that validates *raw*."""
    for pos, adapter in enumerate(adapters):
        try:
            return pos, adapter.validate_json(raw)
        except ValidationError:
            continue
    raise DecodeFailure()


def _post_form(
    place_id: int,
    title: str,
    body: str,
    visibility: str,
    photo: PhotoUpload | None,
) -> dict[str, tuple]:
    # Text fields travel as filename-less parts so the request is always
    # multipart/form-data, with or without a photo.
    form: dict[str, tuple] = {
        "place_id": (None, str(place_id)),
        "title": (None, title),
        "body": (None, body),
        "visibility": (None, visibility),
    }
    if photo is not None:
        form["photo"] = (photo.filename, photo.data, photo.mime_type)
    return form


class MapGateway:
    """Thin async client over the backend's map API.

    Usage:
        gateway = MapGateway(client, auth)
        places = await gateway.fetch_places()
        post = await gateway.react(42, "like")
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        auth: AuthSession,
        *,
        map_prefix: str = DEFAULT_MAP_PREFIX,
    ) -> None:
        self._client = client
        self._auth = auth
        self._prefix = "/" + map_prefix.strip("/") if map_prefix.strip("/") else ""

    def _path(self, tail: str) -> str:
        return f"{self._prefix}/{tail.lstrip('/')}"

    async def _request(self, method: str, url: str | httpx.URL, **kwargs: Any) -> httpx.Response:
        token = await self._auth.ensure_token()
        return await send(self._client, method, url, token=token, **kwargs)

    # -------------------------------------------------------------------
    # Places
    # -------------------------------------------------------------------
    async def fetch_places(self) -> list[APIPlace]:
        """All places visible to the viewer, following pagination."""
        results: list[APIPlace] = []
        next_url: str | httpx.URL | None = self._path("places/")
        pages = 0

        while next_url is not None:
            resp = await self._request("GET", next_url)
            pages += 1
            shape, value = _first_match(
                resp.content, _PAGE_ADAPTER, _PLACE_LIST_ADAPTER, _PLACE_ADAPTER
            )
            if shape == 0:
                results.extend(value.results)
                next_url = resp.request.url.join(value.next) if value.next else None
            elif shape == 1:
                results.extend(value)
                next_url = None
            else:
                results.append(value)
                next_url = None

        logger.info("Fetched %d place(s) across %d page(s)", len(results), pages)
        return results

    async def fetch_place(self, place_id: int) -> APIPlace:
        resp = await self._request("GET", self._path(f"places/{place_id}/"))
        return decode(APIPlace, resp)

    async def create_place(self, request: APICreatePlaceRequest) -> APIPlace:
        resp = await self._request(
            "POST", self._path("places/"), json=request.model_dump()
        )
        place = decode(APIPlace, resp)
        logger.info("Created place %r (id=%d)", place.name, place.id)
        return place

    # -------------------------------------------------------------------
    # Posts
    # -------------------------------------------------------------------
    async def create_post(
        self,
        place_id: int,
        title: str,
        body: str,
        visibility: str,
        photo: PhotoUpload | None = None,
    ) -> APIPost:
        resp = await self._request(
            "POST",
            self._path("posts/"),
            files=_post_form(place_id, title, body, visibility, photo),
        )
        post = decode(APIPost, resp)
        logger.info("Created post id=%d at place id=%d", post.id, place_id)
        return post

    async def edit_post(
        self,
        post_id: int,
        place_id: int,
        title: str,
        body: str,
        visibility: str,
        photo: PhotoUpload | None = None,
    ) -> APIPost:
        resp = await self._request(
            "PATCH",
            self._path(f"posts/{post_id}/"),
            files=_post_form(place_id, title, body, visibility, photo),
        )
        return decode(APIPost, resp)

    async def fetch_post(self, post_id: int) -> APIPost:
        resp = await self._request("GET", self._path(f"posts/{post_id}/"))
        return decode(APIPost, resp)

    async def fetch_posts_by_place(self, place_id: int) -> list[APIPost]:
        resp = await self._request("GET", self._path(f"posts/by-place/{place_id}/"))
        shape, value = _first_match(resp.content, _POST_LIST_ADAPTER, _POST_ADAPTER)
        return value if shape == 0 else [value]

    async def fetch_posts_by_user(self, user_id: int) -> list[APIPost]:
        resp = await self._request("GET", self._path(f"posts/by-user/{user_id}/"))
        return decode(list[APIPost], resp)

    async def react(self, post_id: int, reaction: str) -> APIPost:
        resp = await self._request(
            "PATCH",
            self._path(f"posts/{post_id}/reaction/"),
            json=APIReactionRequest(reaction=reaction).model_dump(),
        )
        return decode(APIPost, resp)

    # -------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------
    async def fetch_user(self, user_id: int) -> APIUserBrief:
        resp = await self._request("GET", f"{USERS_PREFIX}/{user_id}/")
        return decode(APIUserBrief, resp)
