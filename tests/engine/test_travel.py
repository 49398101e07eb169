"""Tests for travel time estimation."""

import pytest

from room_coordinator.engine.travel import haversine_km, minutes_for_distance, travel_minutes
from room_coordinator.models import Member, TravelMode


class TestHaversine:
    """Tests for haversine_km."""

    def test_same_point(self):
        assert haversine_km(51.5, -0.1, 51.5, -0.1) == 0

    def test_one_degree_latitude(self):
        assert haversine_km(0, 0, 1, 0) == pytest.approx(111.19, abs=0.01)


class TestMinutesForDistance:
    """Tests for minutes_for_distance."""

    def test_twenty_km_driving(self):
        assert minutes_for_distance(20, TravelMode.DRIVING) == 30

    def test_rounds_up_to_ten(self):
        # 1 km walking at 5 km/h is 12 minutes
        assert minutes_for_distance(1, TravelMode.WALKING) == 20

    def test_none_mode(self):
        assert minutes_for_distance(20, TravelMode.NONE) == 0

    def test_zero_distance(self):
        assert minutes_for_distance(0, TravelMode.DRIVING) == 0

    def test_custom_speeds(self):
        speeds = {"driving": 60.0, "transit": 30.0, "walking": 5.0, "bicycling": 15.0}
        assert minutes_for_distance(30, TravelMode.DRIVING, speeds) == 30


class TestTravelMinutes:
    """Tests for travel_minutes between members."""

    def test_between_members(self):
        origin = Member(id="a", latitude=0.0, longitude=0.0)
        destination = Member(id="b", latitude=0.17, longitude=0.0)
        assert travel_minutes(origin, destination, TravelMode.DRIVING) == 30

    def test_missing_location(self):
        origin = Member(id="a", latitude=0.0, longitude=0.0)
        destination = Member(id="b")
        assert travel_minutes(origin, destination, TravelMode.DRIVING) == 0

    def test_unknown_member(self):
        origin = Member(id="a", latitude=0.0, longitude=0.0)
        assert travel_minutes(origin, None, TravelMode.DRIVING) == 0

    def test_none_mode(self):
        origin = Member(id="a", latitude=0.0, longitude=0.0)
        destination = Member(id="b", latitude=0.17, longitude=0.0)
        assert travel_minutes(origin, destination, TravelMode.NONE) == 0
