import pytest
from delivery.shared.geo import GeoPoint, distance_m
from protean.exceptions import ValidationError


class TestGeoPoint:
    def test_payload_uses_lat_lng(self):
        point = GeoPoint(latitude=12.5, longitude=77.25)
        assert point.to_payload() == {"lat": 12.5, "lng": 77.25}
        assert point.as_coordinates() == [77.25, 12.5]

    def test_latitude_out_of_range_is_rejected(self):
        with pytest.raises(ValidationError):
            GeoPoint(latitude=95.0, longitude=0.0)


class TestDistance:
    def test_same_point_is_zero(self):
        point = GeoPoint(latitude=12.97, longitude=77.59)
        assert distance_m(point, point) == 0.0

    def test_one_degree_of_latitude(self):
        a = GeoPoint(latitude=0.0, longitude=0.0)
        b = GeoPoint(latitude=1.0, longitude=0.0)
        assert distance_m(a, b) == pytest.approx(111_195, rel=1e-3)

    def test_is_symmetric(self):
        a = GeoPoint(latitude=12.9716, longitude=77.5946)
        b = GeoPoint(latitude=13.0827, longitude=80.2707)
        assert distance_m(a, b) == pytest.approx(distance_m(b, a))
        assert 280_000 < distance_m(a, b) < 300_000
