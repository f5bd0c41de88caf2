"""
mejour.gateway.mapping — DTO → Domain Mapping
==============================================

Turns syntactically valid DTOs into domain records.  Anything semantically
off (unparsable uuid, coordinate or timestamp) raises
:class:`~mejour.errors.MappingFailure`.  Bulk mapping aborts on the first bad
record rather than silently dropping it.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from datetime import UTC, datetime

from mejour.errors import InvalidInput, MappingFailure
from mejour.gateway.schemas import (
    APIMeUser,
    APIPlace,
    APIPost,
    decode_place_metadata,
)
from mejour.models import (
    Coordinate,
    CurrentUser,
    Place,
    PlaceOrigin,
    PlaceType,
    Post,
    Visibility,
    normalize_tags,
)


def _parse_uuid(raw: str, what: str) -> str:
    try:
        return str(uuid.UUID(raw))
    except (ValueError, AttributeError, TypeError):
        raise MappingFailure(f"invalid {what} uuid {raw!r}") from None


def _parse_visibility(raw: str) -> Visibility:
    try:
        return Visibility(raw.strip().lower())
    except ValueError:
        raise MappingFailure(f"unknown visibility {raw!r}") from None


def _parse_timestamp(raw: str, what: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(raw.strip())
    except (ValueError, AttributeError):
        raise MappingFailure(f"invalid {what} timestamp {raw!r}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def place_from_api(api: APIPlace) -> Place:
    try:
        coordinate = Coordinate(float(api.latitude), float(api.longitude))
    except (ValueError, InvalidInput) as exc:
        raise MappingFailure(
            f"place id={api.id} has bad coordinate ({api.latitude}, {api.longitude}): {exc}"
        ) from None

    meta = decode_place_metadata(api.metadata)
    return Place(
        local_id=_parse_uuid(api.uuid, f"place id={api.id}"),
        remote_id=api.id,
        name=api.name,
        description=api.description or "",
        coordinate=coordinate,
        type=PlaceType.parse(meta.type if meta else None),
        tags=normalize_tags(meta.tags if meta else ()),
        visibility=_parse_visibility(api.visibility),
        owner_id=_parse_uuid(api.created_by.uuid, f"owner of place id={api.id}"),
        origin=PlaceOrigin.USER,
    )


def places_from_api(apis: Iterable[APIPlace]) -> list[Place]:
    return [place_from_api(a) for a in apis]


def post_from_api(api: APIPost) -> Post:
    return Post(
        remote_id=api.id,
        uuid=_parse_uuid(api.uuid, f"post id={api.id}") if api.uuid else None,
        place_remote_id=api.place.id,
        author_id=api.author.id,
        author_name=api.author.display_name or api.author.username,
        title=api.title,
        body=api.body,
        visibility=_parse_visibility(api.visibility),
        created_at=_parse_timestamp(api.created_at, f"post id={api.id}"),
        like_count=api.like_count,
        dislike_count=api.dislike_count,
        photo_url=api.photo or None,
    )


def posts_from_api(apis: Iterable[APIPost]) -> list[Post]:
    return [post_from_api(a) for a in apis]


def user_from_api(api: APIMeUser) -> CurrentUser:
    return CurrentUser(
        id=api.id,
        uuid=_parse_uuid(api.uuid, "current user"),
        username=api.username,
        display_name=api.display_name or None,
    )
