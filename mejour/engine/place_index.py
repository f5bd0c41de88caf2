"""
mejour.engine.place_index — Place Index & Deduplicator
=======================================================

Place candidates arrive from two uncorrelated sources: the remote catalog and
external point-of-interest search.  Both can surface the same physical place
under slightly different names or coordinates.  This module folds them into a
canonical set and answers nearby queries over it.

Dedup rules (first-seen wins):
  1. Exact key ``lower(name)-round(lat*1e4)/round(lon*1e4)`` (≈11 m cells).
  2. Same trimmed, case-folded name within ``merge_radius_m`` of an already
     kept place (catches pairs that straddle a cell boundary).

The :class:`PlaceIndex` holds the owner-scoped ("mine") and public-scoped
("community") lists, plus an undeduplicated remote-id catalog of every place
the viewer may see.  Posts reference places by remote id, so lookups by id go
through the catalog and never miss a place the merge dropped.  Reads return
copies; writes replace whole lists under a lock, so callers never see a
half-applied update.
"""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Iterable

from mejour.constants import (
    DEFAULT_DEDUP_RADIUS_METERS,
    DEFAULT_NEARBY_LIMIT,
    DEFAULT_NEARBY_RADIUS_METERS,
)
from mejour.engine.geo import distance_m
from mejour.models import Coordinate, Place, PlaceSource

logger = logging.getLogger(__name__)

__all__ = [
    "PlaceIndex",
    "dedup_key",
    "dedup_places",
    "find_existing_near",
    "index_by_remote_id",
    "nearest_places",
]


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def _name_key(name: str) -> str:
    return name.strip().casefold()


def dedup_key(place: Place) -> str:
    lat = _round_half_away(place.coordinate.latitude * 10_000)
    lon = _round_half_away(place.coordinate.longitude * 10_000)
    return f"{place.name.lower()}-{lat}/{lon}"


def dedup_places(
    places: Iterable[Place],
    merge_radius_m: float = DEFAULT_DEDUP_RADIUS_METERS,
) -> list[Place]:
    """Return the canonical subset of *places*, preserving input order."""
    seen: set[str] = set()
    kept_by_name: dict[str, list[Place]] = {}
    out: list[Place] = []

    for p in places:
        key = dedup_key(p)
        if key in seen:
            continue
        same_name = kept_by_name.setdefault(_name_key(p.name), [])
        if merge_radius_m > 0 and any(
            distance_m(p.coordinate, k.coordinate) <= merge_radius_m for k in same_name
        ):
            seen.add(key)
            continue
        seen.add(key)
        same_name.append(p)
        out.append(p)
    return out


def index_by_remote_id(places: Iterable[Place]) -> dict[int, Place]:
    """Map remote id → place, keeping the first occurrence of each id."""
    index: dict[int, Place] = {}
    for p in places:
        index.setdefault(p.remote_id, p)
    return index


def _matches_tag(place: Place, tag_filter: str | None) -> bool:
    if not tag_filter:
        return True
    needle = tag_filter.casefold()
    return any(needle in tag.casefold() for tag in place.tags)


def nearest_places(
    places: Iterable[Place],
    origin: Coordinate,
    *,
    limit: int = DEFAULT_NEARBY_LIMIT,
    tag_filter: str | None = None,
    radius_meters: float = DEFAULT_NEARBY_RADIUS_METERS,
    merge_radius_m: float = DEFAULT_DEDUP_RADIUS_METERS,
) -> list[Place]:
    """Places within *radius_meters* of *origin*, nearest first.

    Equal distances keep their index order (``sorted`` is stable).
    """
    if limit <= 0:
        return []
    scored: list[tuple[float, Place]] = []
    for p in dedup_places(places, merge_radius_m):
        if not _matches_tag(p, tag_filter):
            continue
        d = distance_m(origin, p.coordinate)
        if d <= radius_meters:
            scored.append((d, p))
    scored.sort(key=lambda pair: pair[0])
    return [p for _, p in scored[:limit]]


def find_existing_near(
    places: Iterable[Place],
    name: str,
    coordinate: Coordinate,
    within_m: float,
) -> Place | None:
    """Nearest place named *name* (trimmed, case-insensitive) within *within_m*."""
    target = _name_key(name)
    best: tuple[float, Place] | None = None
    for p in places:
        if _name_key(p.name) != target:
            continue
        d = distance_m(coordinate, p.coordinate)
        if d > within_m:
            continue
        if best is None or d < best[0]:
            best = (d, p)
    return best[1] if best else None


class PlaceIndex:
    """Thread-safe holder for the owner-scoped and public-scoped place lists.

    Usage:
        index = PlaceIndex()
        index.replace(fetched, owner_id=me.uuid)
        index.nearest(here, PlaceSource.COMMUNITY, tag_filter="cafe")
    """

    def __init__(self, merge_radius_m: float = DEFAULT_DEDUP_RADIUS_METERS) -> None:
        self._lock = threading.Lock()
        self._merge_radius_m = merge_radius_m
        self._mine: list[Place] = []
        self._community: list[Place] = []
        self._catalog: dict[int, Place] = {}

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def replace(self, places: Iterable[Place], owner_id: str | None) -> None:
        """Swap in a freshly fetched catalog, split into mine / community."""
        places = list(places)
        mine = (
            dedup_places((p for p in places if p.owner_id == owner_id), self._merge_radius_m)
            if owner_id
            else []
        )
        community = dedup_places((p for p in places if p.is_public), self._merge_radius_m)
        catalog = index_by_remote_id(
            p for p in places if p.is_persisted and _visible(p, owner_id)
        )
        with self._lock:
            self._mine = mine
            self._community = community
            self._catalog = catalog
        logger.info(
            "PlaceIndex loaded: %d fetched, %d mine, %d community",
            len(places), len(mine), len(community),
        )

    def upsert(self, place: Place, owner_id: str | None) -> None:
        """Insert a newly persisted place, or refresh it where already known."""
        with self._lock:
            mine = list(self._mine)
            pos = _position(mine, place)
            if pos is not None:
                mine[pos] = place
            elif owner_id and place.owner_id == owner_id:
                mine.insert(0, place)

            community = list(self._community)
            if place.is_public:
                pos = _position(community, place)
                if pos is not None:
                    community[pos] = place
                else:
                    community.insert(0, place)

            self._mine = mine
            self._community = community
            if place.is_persisted and _visible(place, owner_id):
                self._catalog[place.remote_id] = place

    def update(self, place: Place) -> None:
        """Replace a known place (matched by local id) in both lists."""
        with self._lock:
            self._mine = [place if p.local_id == place.local_id else p for p in self._mine]
            self._community = [
                place if p.local_id == place.local_id else p for p in self._community
            ]
            if place.remote_id in self._catalog:
                self._catalog[place.remote_id] = place

    def clear(self) -> None:
        with self._lock:
            self._mine = []
            self._community = []
            self._catalog = {}

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def mine(self) -> list[Place]:
        with self._lock:
            return list(self._mine)

    def community(self) -> list[Place]:
        with self._lock:
            return list(self._community)

    def all(self) -> list[Place]:
        """Mine followed by community; may contain the same place twice."""
        with self._lock:
            return self._mine + self._community

    def by_remote_id(self) -> dict[int, Place]:
        """Every visible persisted place keyed by remote id, merged or not."""
        with self._lock:
            return dict(self._catalog)

    def source(self, source: PlaceSource) -> list[Place]:
        if source is PlaceSource.MINE:
            return self.mine()
        if source is PlaceSource.COMMUNITY:
            return self.community()
        return self.all()

    def canonical(self, extra: Iterable[Place] = ()) -> list[Place]:
        """Deduplicated union of indexed places and *extra* candidates.

        Indexed places come first, so a remote place always wins over an
        external candidate for the same physical location.
        """
        return dedup_places([*self.all(), *extra], self._merge_radius_m)

    def nearest(
        self,
        origin: Coordinate,
        source: PlaceSource = PlaceSource.ALL,
        *,
        limit: int = DEFAULT_NEARBY_LIMIT,
        tag_filter: str | None = None,
        radius_meters: float = DEFAULT_NEARBY_RADIUS_METERS,
    ) -> list[Place]:
        return nearest_places(
            self.source(source),
            origin,
            limit=limit,
            tag_filter=tag_filter,
            radius_meters=radius_meters,
            merge_radius_m=self._merge_radius_m,
        )

    def find_existing_near(
        self,
        name: str,
        coordinate: Coordinate,
        within_m: float,
        *,
        include_private: bool = True,
    ) -> Place | None:
        base = self.all() if include_private else self.community()
        return find_existing_near(base, name, coordinate, within_m)


def _visible(place: Place, owner_id: str | None) -> bool:
    return place.is_public or (bool(owner_id) and place.owner_id == owner_id)


def _position(places: list[Place], place: Place) -> int | None:
    for i, p in enumerate(places):
        if p.local_id == place.local_id:
            return i
    return None
