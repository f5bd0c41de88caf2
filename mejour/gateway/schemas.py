"""
mejour.gateway.schemas — Wire DTOs
===================================

Pydantic models mirroring the backend's JSON.  Field names follow the wire
(snake_case); unknown fields are ignored so backend additions never break
decoding.

Place ``metadata`` is double-encoded: a JSON string whose value is itself JSON
text carrying ``{type, tags}``.  See :func:`decode_place_metadata`.
"""

from __future__ import annotations

import json
import logging

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mejour.constants import EMPTY_METADATA_VALUES

logger = logging.getLogger(__name__)


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
class APIUserBrief(_WireModel):
    id: int
    uuid: str
    username: str = ""
    display_name: str = ""
    profile_visibility: str | None = None
    avatar: str | None = None


class APIMeUser(APIUserBrief):
    email: str | None = None


class APITokenPair(_WireModel):
    access: str
    refresh: str | None = None


# ---------------------------------------------------------------------------
# Places
# ---------------------------------------------------------------------------
class APIPlace(_WireModel):
    id: int
    uuid: str
    name: str
    description: str | None = None
    latitude: str
    longitude: str
    visibility: str
    created_by: APIUserBrief
    metadata: str | None = None
    created_at: str = ""
    updated_at: str = ""


class APIPaginatedPlaces(_WireModel):
    count: int
    next: str | None = None
    previous: str | None = None
    results: list[APIPlace]


class APICreatePlaceRequest(_WireModel):
    name: str
    description: str
    latitude: str   # 6 decimal places
    longitude: str  # 6 decimal places
    visibility: str
    metadata: str


class PlaceMetadata(_WireModel):
    type: str | None = None
    tags: list[str] = Field(default_factory=list)


def encode_place_metadata(place_type: str, tags: list[str] | tuple[str, ...]) -> str:
    return json.dumps({"type": str(place_type), "tags": list(tags)}, ensure_ascii=False)


def decode_place_metadata(raw: str | None) -> PlaceMetadata | None:
    """Decode the inner metadata JSON; placeholders and garbage mean "none"."""
    if raw is None or raw.strip() in EMPTY_METADATA_VALUES:
        return None
    try:
        return PlaceMetadata.model_validate_json(raw)
    except ValidationError:
        logger.debug("Ignoring undecodable place metadata %r", raw)
        return None


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------
class APIPost(_WireModel):
    id: int
    uuid: str | None = None
    place: APIPlace
    author: APIUserBrief
    title: str
    body: str = ""
    visibility: str
    created_at: str
    updated_at: str = ""
    photo: str | None = None
    like_count: int = 0
    dislike_count: int = 0


class APIReactionRequest(_WireModel):
    reaction: str
