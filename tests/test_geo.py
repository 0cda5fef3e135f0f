import math
import random

import pytest

from nearask.core.geo import EARTH_RADIUS_KM, GeoPoint, distance, distance_km, haversine_km, is_valid_point
from nearask.domain.models import Coordinate

TOKYO_STATION = GeoPoint(lat=35.6812, lon=139.7671)
OSAKA_STATION = GeoPoint(lat=34.7025, lon=135.4959)


def test_distance_is_zero_for_identical_points():
    assert haversine_km(TOKYO_STATION, TOKYO_STATION) == 0.0
    c = Coordinate(lat=-33.8688, lon=151.2093)
    assert distance_km(c, c) == 0.0


def test_distance_is_symmetric_for_random_pairs():
    rng = random.Random(20240601)
    for _ in range(500):
        a = GeoPoint(lat=rng.uniform(-90, 90), lon=rng.uniform(-180, 180))
        b = GeoPoint(lat=rng.uniform(-90, 90), lon=rng.uniform(-180, 180))
        assert abs(haversine_km(a, b) - haversine_km(b, a)) <= 1e-9


def test_one_degree_of_latitude_matches_the_spherical_model():
    d = haversine_km(GeoPoint(lat=0.0, lon=0.0), GeoPoint(lat=1.0, lon=0.0))
    assert d == pytest.approx(EARTH_RADIUS_KM * math.radians(1.0), rel=1e-9)


def test_tokyo_to_osaka_is_about_400_km():
    assert 390 < distance(TOKYO_STATION, OSAKA_STATION) < 410


def test_antipodal_points_do_not_overflow():
    d = haversine_km(GeoPoint(lat=0.0, lon=0.0), GeoPoint(lat=0.0, lon=180.0))
    assert d == pytest.approx(math.pi * EARTH_RADIUS_KM, rel=1e-9)


def test_is_valid_point_rejects_out_of_range_and_non_finite():
    assert is_valid_point(90.0, -180.0)
    assert not is_valid_point(90.5, 0.0)
    assert not is_valid_point(0.0, 181.0)
    assert not is_valid_point(float("nan"), 0.0)
    assert not is_valid_point(0.0, float("inf"))
