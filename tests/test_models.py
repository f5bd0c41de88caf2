"""
tests/test_models.py — Domain Record Tests
===========================================
"""

from __future__ import annotations

import math

import pytest

from mejour.constants import UNSAVED_REMOTE_ID
from mejour.errors import ErrorKind, InvalidInput
from mejour.models import Coordinate, Place, PlaceOrigin, PlaceType, normalize_tags


class TestCoordinate:
    @pytest.mark.parametrize(
        "lat, lon",
        [(91.0, 0.0), (-90.5, 0.0), (0.0, 180.5), (math.nan, 0.0), (0.0, math.inf)],
    )
    def test_rejects_out_of_range_or_non_finite(self, lat, lon):
        with pytest.raises(InvalidInput) as exc_info:
            Coordinate(lat, lon)
        assert exc_info.value.kind is ErrorKind.INVALID_INPUT

    def test_accepts_bounds(self):
        Coordinate(90.0, 180.0)
        Coordinate(-90.0, -180.0)


class TestPlaceType:
    def test_known_value(self):
        assert PlaceType.parse("Cafe") is PlaceType.CAFE

    @pytest.mark.parametrize("raw", [None, "", "string", "bar"])
    def test_unknown_falls_back_to_other(self, raw):
        assert PlaceType.parse(raw) is PlaceType.OTHER

    @pytest.mark.parametrize(
        "category, expected",
        [("Park", PlaceType.SCENIC), ("cafe", PlaceType.CAFE), ("museum", PlaceType.OTHER), (None, PlaceType.OTHER)],
    )
    def test_poi_category_inference(self, category, expected):
        assert PlaceType.from_poi_category(category) is expected


class TestNormalizeTags:
    def test_trims_drops_empty_and_dedups_case_insensitively(self):
        assert normalize_tags([" Cafe ", "", "cafe", "books", "  "]) == ("Cafe", "books")

    def test_none(self):
        assert normalize_tags(None) == ()


class TestExternalPlace:
    def test_candidate_is_unsaved(self):
        p = Place.external("  Noodle Bar ", Coordinate(25.0, 121.0), PlaceType.RESTAURANT)
        assert p.remote_id == UNSAVED_REMOTE_ID
        assert not p.is_persisted
        assert p.origin is PlaceOrigin.EXTERNAL
        assert p.name == "Noodle Bar"
        assert p.is_public

    def test_missing_name_gets_fallback(self):
        assert Place.external(None, Coordinate(0.0, 0.0)).name == "Unnamed place"

    def test_candidates_get_distinct_local_ids(self):
        c = Coordinate(0.0, 0.0)
        assert Place.external("a", c).local_id != Place.external("a", c).local_id
