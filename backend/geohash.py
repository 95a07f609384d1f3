"""Safewatch Backend — Geohash codec

Standard base-32 geohash: bits alternate longitude/latitude (longitude first),
packed 5 per character. A shared prefix means the points fall in the same
cell, which says nothing about their actual distance: two points either side
of a cell edge can be metres apart and share no prefix at all.
"""

from typing import NamedTuple

from errors import InvalidCoordinate, InvalidInput, InvalidPrecision

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
_DECODE_MAP = {c: i for i, c in enumerate(BASE32)}


class BoundingBox(NamedTuple):
    min_lat: float
    min_lng: float
    max_lat: float
    max_lng: float

    @property
    def center(self) -> tuple[float, float]:
        return (self.min_lat + self.max_lat) / 2, (self.min_lng + self.max_lng) / 2

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng


def validate_coordinates(lat: float, lng: float):
    # Written so that NaN fails both checks
    if not -90.0 <= lat <= 90.0:
        raise InvalidCoordinate(f"latitude {lat} outside [-90, 90]")
    if not -180.0 <= lng <= 180.0:
        raise InvalidCoordinate(f"longitude {lng} outside [-180, 180]")


def encode(lat: float, lng: float, precision: int = 6) -> str:
    """Encode a point as a geohash of exactly ``precision`` characters."""
    if precision < 1:
        raise InvalidPrecision(f"precision must be >= 1, got {precision}")
    validate_coordinates(lat, lng)

    lat_lo, lat_hi = -90.0, 90.0
    lng_lo, lng_hi = -180.0, 180.0
    chars = []
    idx = 0
    bit = 0
    even = True

    while len(chars) < precision:
        if even:
            mid = (lng_lo + lng_hi) / 2
            if lng >= mid:
                idx = (idx << 1) | 1
                lng_lo = mid
            else:
                idx <<= 1
                lng_hi = mid
        else:
            mid = (lat_lo + lat_hi) / 2
            if lat >= mid:
                idx = (idx << 1) | 1
                lat_lo = mid
            else:
                idx <<= 1
                lat_hi = mid
        even = not even

        bit += 1
        if bit == 5:
            chars.append(BASE32[idx])
            bit = 0
            idx = 0

    return "".join(chars)


def decode(geohash: str) -> BoundingBox:
    """Return the cell a geohash (or any prefix of one) stands for."""
    if not geohash:
        raise InvalidPrecision("empty geohash")

    lat_lo, lat_hi = -90.0, 90.0
    lng_lo, lng_hi = -180.0, 180.0
    even = True

    for ch in geohash.lower():
        if ch not in _DECODE_MAP:
            raise InvalidInput(f"invalid geohash character {ch!r}")
        value = _DECODE_MAP[ch]
        for shift in range(4, -1, -1):
            bit_set = (value >> shift) & 1
            if even:
                mid = (lng_lo + lng_hi) / 2
                if bit_set:
                    lng_lo = mid
                else:
                    lng_hi = mid
            else:
                mid = (lat_lo + lat_hi) / 2
                if bit_set:
                    lat_lo = mid
                else:
                    lat_hi = mid
            even = not even

    return BoundingBox(lat_lo, lng_lo, lat_hi, lng_hi)


def prefix_for(lat: float, lng: float, length: int) -> str:
    """Cell prefix used for proximity lookups around a point."""
    return encode(lat, lng, length)
