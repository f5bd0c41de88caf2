"""
mejour.models — Domain Records
===============================

Client-side domain types.  Wire DTOs live in :mod:`mejour.gateway.schemas`;
:mod:`mejour.gateway.mapping` converts between the two.

Records:
- Coordinate   — validated (lat, lon) in decimal degrees
- Place        — a named, geocoded location (remote or candidate)
- Post         — a "log" attached to one place and one author
- Friend       — a followed user with cached display name + avatar
- CurrentUser  — the signed-in viewer
"""

from __future__ import annotations

import enum
import math
import uuid
from dataclasses import dataclass
from datetime import datetime

from mejour.constants import UNSAVED_REMOTE_ID
from mejour.engine.content import PostContent, decode_body
from mejour.errors import InvalidInput


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PlaceType(enum.StrEnum):
    RESTAURANT = "restaurant"
    CAFE = "cafe"
    SCENIC = "scenic"
    SHOP = "shop"
    OTHER = "other"

    @classmethod
    def parse(cls, raw: str | None) -> PlaceType:
        """Lenient parse; unknown or missing values fall back to OTHER."""
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            return cls.OTHER

    @classmethod
    def from_poi_category(cls, category: str | None) -> PlaceType:
        """Infer a type from an external POI category name (e.g. "park")."""
        return _POI_CATEGORY_TYPES.get((category or "").strip().lower(), cls.OTHER)


_POI_CATEGORY_TYPES: dict[str, PlaceType] = {
    "cafe": PlaceType.CAFE,
    "restaurant": PlaceType.RESTAURANT,
    "park": PlaceType.SCENIC,
}


class Visibility(enum.StrEnum):
    PUBLIC = "public"
    PRIVATE = "private"


class PlaceOrigin(enum.StrEnum):
    USER = "user"          # remote catalog / created by a user
    EXTERNAL = "external"  # external point-of-interest search


class Reaction(enum.StrEnum):
    LIKE = "like"
    DISLIKE = "dislike"


class PlaceSource(enum.StrEnum):
    """Which slice of the index a nearby query runs over."""
    MINE = "mine"
    COMMUNITY = "community"
    ALL = "all"


class MapScope(enum.StrEnum):
    MINE = "mine"
    FRIENDS = "friends"
    COMMUNITY = "community"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def normalize_tags(tags) -> tuple[str, ...]:
    """Trim, drop empties, and keep the first spelling of each tag (case-insensitive)."""
    seen: set[str] = set()
    out: list[str] = []
    for tag in tags or ():
        cleaned = str(tag).strip()
        if not cleaned:
            continue
        key = cleaned.casefold()
        if key in seen:
            continue
        seen.add(key)
        out.append(cleaned)
    return tuple(out)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        lat, lon = self.latitude, self.longitude
        if not (math.isfinite(lat) and math.isfinite(lon)):
            raise InvalidInput(f"Coordinate must be finite, got ({lat}, {lon})")
        if not -90.0 <= lat <= 90.0:
            raise InvalidInput(f"Latitude out of range: {lat}")
        if not -180.0 <= lon <= 180.0:
            raise InvalidInput(f"Longitude out of range: {lon}")


@dataclass(frozen=True, slots=True)
class Place:
    """A geocoded place.

    ``remote_id > 0`` iff the place exists on the remote service.  External
    candidates carry :data:`~mejour.constants.UNSAVED_REMOTE_ID` until they
    go through the get-or-create workflow.
    """

    local_id: str
    remote_id: int
    name: str
    coordinate: Coordinate
    type: PlaceType = PlaceType.OTHER
    tags: tuple[str, ...] = ()
    visibility: Visibility = Visibility.PUBLIC
    owner_id: str = ""
    origin: PlaceOrigin = PlaceOrigin.USER
    description: str = ""

    @property
    def is_persisted(self) -> bool:
        return self.remote_id > 0

    @property
    def is_public(self) -> bool:
        return self.visibility is Visibility.PUBLIC

    @classmethod
    def external(
        cls,
        name: str | None,
        coordinate: Coordinate,
        place_type: PlaceType = PlaceType.OTHER,
    ) -> Place:
        """Build an ephemeral candidate from an external POI search hit."""
        return cls(
            local_id=str(uuid.uuid4()),
            remote_id=UNSAVED_REMOTE_ID,
            name=(name or "").strip() or "Unnamed place",
            coordinate=coordinate,
            type=place_type,
            visibility=Visibility.PUBLIC,
            origin=PlaceOrigin.EXTERNAL,
        )


@dataclass(frozen=True, slots=True)
class Post:
    """A log entry.  Capture time and tags are derived from ``body`` on read."""

    remote_id: int
    place_remote_id: int
    author_id: int
    author_name: str
    title: str
    body: str
    visibility: Visibility
    created_at: datetime
    like_count: int = 0
    dislike_count: int = 0
    photo_url: str | None = None
    uuid: str | None = None

    @property
    def content(self) -> PostContent:
        return decode_body(self.body)

    @property
    def capture_time(self) -> datetime | None:
        return self.content.capture_time

    @property
    def tags(self) -> list[str]:
        return self.content.tags

    @property
    def text(self) -> str:
        return self.content.text


@dataclass(slots=True)
class Friend:
    user_id: int
    avatar_id: int | None = None
    display_name: str | None = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "avatar_id": self.avatar_id,
            "display_name": self.display_name,
        }

    @classmethod
    def from_dict(cls, raw: dict) -> Friend:
        return cls(
            user_id=int(raw["user_id"]),
            avatar_id=raw.get("avatar_id"),
            display_name=raw.get("display_name"),
        )


@dataclass(frozen=True, slots=True)
class CurrentUser:
    id: int
    uuid: str
    username: str = ""
    display_name: str | None = None
