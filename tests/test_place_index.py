"""
tests/test_place_index.py — Place Dedup & Nearby Query Tests
=============================================================

Covers the dedup key, the same-name proximity merge, nearest-first ordering
with radius, limit and tag filter, and the owner/public split held by
PlaceIndex.
"""

from __future__ import annotations

from factories import ME_UUID, make_place

from mejour.engine.place_index import (
    PlaceIndex,
    dedup_key,
    dedup_places,
    find_existing_near,
    index_by_remote_id,
    nearest_places,
)
from mejour.models import Coordinate, Place, PlaceSource, Visibility

ORIGIN = Coordinate(25.0, 121.0)
# 0.0001 degrees of latitude is about 11.1 m
STEP = 0.0001


class TestDedup:
    def test_daily_drip_pair_collapses(self):
        a = make_place(1, "Daily Drip", 25.0330, 121.5654)
        b = make_place(2, "Daily Drip", 25.0331, 121.5655)
        assert dedup_places([a, b]) == [a]

    def test_same_key_different_case_collapses(self):
        a = make_place(1, "Daily Drip", 25.0330, 121.5654)
        b = make_place(2, "daily drip", 25.0330, 121.5654)
        assert dedup_key(a) == dedup_key(b)
        assert dedup_places([a, b]) == [a]

    def test_key_format(self):
        assert dedup_key(make_place(1, "Daily Drip", 25.0330, 121.5654)) == "daily drip-250330/1215654"

    def test_different_names_are_kept(self):
        a = make_place(1, "Daily Drip", 25.0330, 121.5654)
        b = make_place(2, "Night Owl", 25.0330, 121.5654)
        assert dedup_places([a, b]) == [a, b]

    def test_same_name_far_apart_is_kept(self):
        a = make_place(1, "7-Eleven", 25.0, 121.0)
        b = make_place(2, "7-Eleven", 25.01, 121.0)
        assert dedup_places([a, b]) == [a, b]

    def test_merge_can_be_disabled(self):
        a = make_place(1, "Daily Drip", 25.0330, 121.5654)
        b = make_place(2, "Daily Drip", 25.0331, 121.5655)
        assert dedup_places([a, b], merge_radius_m=0) == [a, b]

    def test_index_by_remote_id_keeps_first(self):
        a = make_place(5, "A")
        b = make_place(5, "B")
        assert index_by_remote_id([a, b]) == {5: a}


class TestNearest:
    def _places(self) -> list[Place]:
        return [
            make_place(3, "Far", 25.0 + 10 * STEP, 121.0),
            make_place(2, "Mid", 25.0 + 2 * STEP, 121.0, tags=("Cafe",)),
            make_place(1, "Near", 25.0 + STEP, 121.0, tags=("books",)),
        ]

    def test_nearest_first_within_radius(self):
        names = [p.name for p in nearest_places(self._places(), ORIGIN, radius_meters=30)]
        assert names == ["Near", "Mid"]

    def test_limit(self):
        names = [p.name for p in nearest_places(self._places(), ORIGIN, limit=1, radius_meters=500)]
        assert names == ["Near"]

    def test_non_positive_limit_is_empty(self):
        assert nearest_places(self._places(), ORIGIN, limit=0, radius_meters=500) == []

    def test_tag_filter_is_case_insensitive_substring(self):
        result = nearest_places(self._places(), ORIGIN, tag_filter="caf", radius_meters=500)
        assert [p.name for p in result] == ["Mid"]

    def test_equal_distance_keeps_input_order(self):
        a = make_place(1, "Alpha", 25.0 + STEP, 121.0)
        b = make_place(2, "Beta", 25.0 + STEP, 121.0)
        assert nearest_places([b, a], ORIGIN, radius_meters=30) == [b, a]


class TestFindExistingNear:
    def test_matches_trimmed_case_insensitive_name_within_radius(self):
        p = make_place(1, "Test Cafe", 25.0 + STEP, 121.0)
        assert find_existing_near([p], "  test cafe ", ORIGIN, 30) is p

    def test_outside_radius(self):
        p = make_place(1, "Test Cafe", 25.0 + 10 * STEP, 121.0)
        assert find_existing_near([p], "Test Cafe", ORIGIN, 30) is None

    def test_picks_nearest(self):
        far = make_place(1, "Test Cafe", 25.0 + 2 * STEP, 121.0)
        near = make_place(2, "Test Cafe", 25.0 + STEP, 121.0)
        assert find_existing_near([far, near], "Test Cafe", ORIGIN, 30) is near


class TestPlaceIndex:
    def _catalog(self) -> list[Place]:
        return [
            make_place(1, "My Secret Spot", 25.0, 121.0, visibility=Visibility.PRIVATE, owner_id=ME_UUID),
            make_place(2, "My Cafe", 25.1, 121.0, owner_id=ME_UUID),
            make_place(3, "Their Cafe", 25.2, 121.0, owner_id="someone-else"),
            make_place(4, "Their Secret", 25.3, 121.0, visibility=Visibility.PRIVATE, owner_id="x"),
        ]

    def test_replace_splits_mine_and_community(self):
        index = PlaceIndex()
        index.replace(self._catalog(), owner_id=ME_UUID)
        assert [p.remote_id for p in index.mine()] == [1, 2]
        assert [p.remote_id for p in index.community()] == [2, 3]

    def test_private_places_of_others_are_not_community(self):
        index = PlaceIndex()
        index.replace(self._catalog(), owner_id=ME_UUID)
        assert 4 not in {p.remote_id for p in index.community()}

    def test_replace_without_owner_has_no_mine(self):
        index = PlaceIndex()
        index.replace(self._catalog(), owner_id=None)
        assert index.mine() == []

    def test_reads_are_copies(self):
        index = PlaceIndex()
        index.replace(self._catalog(), owner_id=ME_UUID)
        index.mine().clear()
        assert len(index.mine()) == 2

    def test_upsert_prepends_new_public_owned_place(self):
        index = PlaceIndex()
        index.replace(self._catalog(), owner_id=ME_UUID)
        new = make_place(9, "Fresh", 25.5, 121.0, owner_id=ME_UUID)
        index.upsert(new, owner_id=ME_UUID)
        assert index.mine()[0] == new
        assert index.community()[0] == new

    def test_upsert_known_place_replaces_in_position(self):
        index = PlaceIndex()
        index.replace(self._catalog(), owner_id=ME_UUID)
        renamed = make_place(3, "Their Cafe", 25.2, 121.0, owner_id="someone-else", tags=("new",))
        index.upsert(renamed, owner_id=ME_UUID)
        community = index.community()
        assert [p.remote_id for p in community] == [2, 3]
        assert community[1].tags == ("new",)

    def test_find_existing_near_can_exclude_private(self):
        index = PlaceIndex()
        index.replace(self._catalog(), owner_id=ME_UUID)
        here = Coordinate(25.0, 121.0)
        assert index.find_existing_near("My Secret Spot", here, 30) is not None
        assert index.find_existing_near("My Secret Spot", here, 30, include_private=False) is None

    def test_canonical_prefers_indexed_over_external(self):
        index = PlaceIndex()
        index.replace(self._catalog(), owner_id=ME_UUID)
        external = Place.external("their cafe", Coordinate(25.2 + STEP, 121.0))
        canonical = index.canonical([external])
        assert external not in canonical
        assert any(p.remote_id == 3 for p in canonical)

    def test_nearest_by_source(self):
        index = PlaceIndex()
        index.replace(self._catalog(), owner_id=ME_UUID)
        here = Coordinate(25.0, 121.0)
        assert [p.remote_id for p in index.nearest(here, PlaceSource.MINE)] == [1]
        assert index.nearest(here, PlaceSource.COMMUNITY) == []

    def test_clear(self):
        index = PlaceIndex()
        index.replace(self._catalog(), owner_id=ME_UUID)
        index.clear()
        assert index.all() == []
        assert index.by_remote_id() == {}

    def test_by_remote_id_keeps_merged_duplicates_and_hides_foreign_private(self):
        index = PlaceIndex()
        twin = make_place(5, "Their Cafe", 25.2 + STEP, 121.0, owner_id="someone-else")
        index.replace([*self._catalog(), twin], owner_id=ME_UUID)
        assert 5 not in {p.remote_id for p in index.community()}
        assert sorted(index.by_remote_id()) == [1, 2, 3, 5]

    def test_upsert_adds_to_remote_id_lookup(self):
        index = PlaceIndex()
        index.replace(self._catalog(), owner_id=ME_UUID)
        new = make_place(9, "Fresh", 25.5, 121.0, visibility=Visibility.PRIVATE, owner_id=ME_UUID)
        index.upsert(new, owner_id=ME_UUID)
        assert index.by_remote_id()[9] == new
