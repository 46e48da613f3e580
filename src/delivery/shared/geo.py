"""Geographic point value object and great-circle distance."""

import math

from protean.fields import Float

from delivery.domain import delivery

EARTH_RADIUS_M = 6_371_000.0


@delivery.value_object
class GeoPoint:
    """A WGS84 position. Stored as (longitude, latitude) like a GeoJSON point."""

    longitude = Float(required=True, min_value=-180.0, max_value=180.0)
    latitude = Float(required=True, min_value=-90.0, max_value=90.0)

    def as_coordinates(self) -> list[float]:
        return [self.longitude, self.latitude]

    def to_payload(self) -> dict:
        return {"lat": self.latitude, "lng": self.longitude}


def distance_m(a, b) -> float:
    """Haversine distance in meters between two points exposing latitude/longitude."""
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    dlat = lat2 - lat1
    dlng = math.radians(b.longitude - a.longitude)
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))
