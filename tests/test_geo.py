import random

import pytest

from market_finder.geo import distance_km, estimate_travel_minutes, format_distance, format_duration
from market_finder.models import Coordinate


def _random_coordinates(n, seed=7):
    rng = random.Random(seed)
    return [Coordinate(rng.uniform(-90, 90), rng.uniform(-180, 180)) for _ in range(n)]


def test_distance_is_symmetric():
    points = _random_coordinates(20)
    for a, b in zip(points, reversed(points)):
        assert distance_km(a, b) == pytest.approx(distance_km(b, a))


def test_distance_to_self_is_zero():
    for p in _random_coordinates(10):
        assert distance_km(p, p) == pytest.approx(0.0, abs=1e-9)


def test_triangle_inequality():
    points = _random_coordinates(30, seed=11)
    for a, b, c in zip(points, points[1:], points[2:]):
        assert distance_km(a, c) <= distance_km(a, b) + distance_km(b, c) + 1e-6


def test_same_coordinate_as_market_has_zero_distance():
    user = Coordinate(3.8480, 11.5021)
    market = Coordinate(3.8480, 11.5021)
    assert distance_km(user, market) == 0.0


def test_known_city_distance():
    paris = Coordinate(48.8566, 2.3522)
    london = Coordinate(51.5074, -0.1278)
    assert distance_km(paris, london) == pytest.approx(343.5, abs=1.0)


def test_distance_grows_with_separation():
    origin = Coordinate(3.848, 11.502)
    distances = [distance_km(origin, Coordinate(3.848 + d, 11.502)) for d in (0.01, 0.1, 0.5, 1.0)]
    assert distances == sorted(distances)
    assert len(set(distances)) == len(distances)


def test_antipodal_points_are_half_circumference():
    a = Coordinate(0.0, 0.0)
    b = Coordinate(0.0, 180.0)
    assert distance_km(a, b) == pytest.approx(3.141592653589793 * 6371.0, rel=1e-9)


def test_format_distance():
    assert format_distance(0.85) == "850 m"
    assert format_distance(0.0) == "0 m"
    assert format_distance(2.345) == "2.3 km"
    assert format_distance(1.0) == "1.0 km"


def test_travel_estimates():
    assert estimate_travel_minutes(10, "walking") == 120
    assert estimate_travel_minutes(25, "transit") == 60
    assert estimate_travel_minutes(5, "driving", speeds_kmh={"driving": 30.0}) == 10
    with pytest.raises(ValueError):
        estimate_travel_minutes(1, "teleport")


def test_format_duration():
    assert format_duration(12) == "12 min"
    assert format_duration(60) == "1h 0 min"
    assert format_duration(125) == "2h 5 min"
