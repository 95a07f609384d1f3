"""
Geohash codec tests
"""
import math

import pytest

from errors import InvalidCoordinate, InvalidInput, InvalidPrecision
from geohash import BASE32, decode, encode, prefix_for


class TestEncode:

    def test_known_value(self):
        assert encode(57.64911, 10.40744, 11) == "u4pruydqqvj"

    def test_origin(self):
        assert encode(0.0, 0.0, 6) == "s00000"

    def test_corners(self):
        assert encode(-90.0, -180.0, 6) == "000000"
        assert encode(90.0, 180.0, 6) == "zzzzzz"

    @pytest.mark.parametrize("precision", [1, 4, 6, 9, 12])
    def test_length_matches_precision(self, precision):
        gh = encode(12.9716, 77.5946, precision)
        assert len(gh) == precision
        assert all(c in BASE32 for c in gh)

    def test_longer_hash_extends_shorter(self):
        assert encode(12.9716, 77.5946, 6).startswith(encode(12.9716, 77.5946, 4))
        assert prefix_for(12.9716, 77.5946, 4) == encode(12.9716, 77.5946, 6)[:4]

    def test_nearby_points_share_prefix(self):
        a = encode(12.9716, 77.5946, 6)
        b = encode(12.9720, 77.5950, 6)
        assert a[:4] == b[:4]

    def test_zero_precision_rejected(self):
        with pytest.raises(InvalidPrecision):
            encode(12.9716, 77.5946, 0)

    @pytest.mark.parametrize("lat,lng", [
        (90.0001, 0.0),
        (-91.0, 0.0),
        (0.0, 180.5),
        (0.0, -181.0),
        (math.nan, 0.0),
        (0.0, math.nan),
    ])
    def test_out_of_range_rejected(self, lat, lng):
        with pytest.raises(InvalidCoordinate):
            encode(lat, lng)

    def test_invalid_coordinate_is_invalid_input(self):
        with pytest.raises(InvalidInput):
            encode(100.0, 0.0)


class TestDecode:

    @pytest.mark.parametrize("lat,lng", [
        (12.9716, 77.5946),
        (-33.8688, 151.2093),
        (40.7128, -74.0060),
        (0.0, 0.0),
        (-90.0, -180.0),
        (90.0, 180.0),
    ])
    def test_cell_contains_point(self, lat, lng):
        for precision in (1, 5, 9):
            assert decode(encode(lat, lng, precision)).contains(lat, lng)

    def test_cells_shrink_with_precision(self):
        coarse = decode(encode(12.9716, 77.5946, 4))
        fine = decode(encode(12.9716, 77.5946, 6))
        assert fine.max_lat - fine.min_lat < coarse.max_lat - coarse.min_lat
        assert coarse.contains(*fine.center)

    def test_uppercase_accepted(self):
        assert decode("TDR1") == decode("tdr1")

    def test_empty_rejected(self):
        with pytest.raises(InvalidPrecision):
            decode("")

    @pytest.mark.parametrize("bad", ["abc", "tdr1i", "tdr1!", "oooo"])
    def test_bad_characters_rejected(self, bad):
        with pytest.raises(InvalidInput):
            decode(bad)
