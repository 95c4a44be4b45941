"""Bounding box around a center point on a spherical earth."""

from __future__ import annotations

import math

from models.records import BoundingBox

EARTH_RADIUS_KM = 6371.01

_MIN_LAT = math.radians(-90.0)
_MAX_LAT = math.radians(90.0)
_MIN_LNG = math.radians(-180.0)
_MAX_LNG = math.radians(180.0)


def bounding_box(latitude: float, longitude: float, radius_km: float) -> BoundingBox:
    """Return the smallest lat/lng box containing every point within ``radius_km``.

    Uses the bounding-coordinates method for great-circle distances. Near the
    poles the box widens to all longitudes; across the antimeridian the
    western bound is greater than the eastern one.
    """
    if not -90.0 <= latitude <= 90.0:
        raise ValueError(f"Latitude must be within [-90, 90], got {latitude!r}.")
    if not -180.0 <= longitude <= 180.0:
        raise ValueError(f"Longitude must be within [-180, 180], got {longitude!r}.")
    if radius_km < 0:
        raise ValueError(f"Radius must be non-negative, got {radius_km!r}.")

    rad_lat = math.radians(latitude)
    rad_lng = math.radians(longitude)
    angular = radius_km / EARTH_RADIUS_KM

    min_lat = rad_lat - angular
    max_lat = rad_lat + angular

    if min_lat > _MIN_LAT and max_lat < _MAX_LAT:
        delta_lng = math.asin(math.sin(angular) / math.cos(rad_lat))
        min_lng = rad_lng - delta_lng
        if min_lng < _MIN_LNG:
            min_lng += 2.0 * math.pi
        max_lng = rad_lng + delta_lng
        if max_lng > _MAX_LNG:
            max_lng -= 2.0 * math.pi
    else:
        min_lat = max(min_lat, _MIN_LAT)
        max_lat = min(max_lat, _MAX_LAT)
        min_lng = _MIN_LNG
        max_lng = _MAX_LNG

    return BoundingBox(
        nw_lat=math.degrees(max_lat),
        nw_lng=math.degrees(min_lng),
        se_lat=math.degrees(min_lat),
        se_lng=math.degrees(max_lng),
    )
