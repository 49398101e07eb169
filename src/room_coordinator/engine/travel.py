"""Travel time estimation between member locations."""

import math

from ..constants import EARTH_RADIUS_KM, TRAVEL_ROUNDING_MINUTES, TRAVEL_SPEEDS_KMH
from ..models import Member, TravelMode


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres between two coordinates."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.asin(math.sqrt(a))


def minutes_for_distance(
    distance_km: float,
    mode: TravelMode,
    speeds: dict[str, float] | None = None,
) -> int:
    """Travel minutes for a distance, rounded up to the next 10 minutes.

    Example: 20 km by driving (40 km/h) is 30 minutes.
    """
    if mode == TravelMode.NONE or distance_km <= 0:
        return 0
    speed = (speeds or TRAVEL_SPEEDS_KMH)[mode.value]
    increments = math.ceil((distance_km / speed) * 60 / TRAVEL_ROUNDING_MINUTES)
    return int(increments) * TRAVEL_ROUNDING_MINUTES


def travel_minutes(
    origin: Member | None,
    destination: Member | None,
    mode: TravelMode,
    speeds: dict[str, float] | None = None,
) -> int:
    """Travel minutes between two members' locations.

    0 when the mode is none, either member is unknown, or a location is missing.
    """
    if mode == TravelMode.NONE or origin is None or destination is None:
        return 0
    if not (origin.has_location and destination.has_location):
        return 0
    distance = haversine_km(
        origin.latitude, origin.longitude, destination.latitude, destination.longitude
    )
    return minutes_for_distance(distance, mode, speeds)
