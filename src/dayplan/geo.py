"""
Geospatial utilities for itinerary planning.
"""

import math
from typing import Tuple

Point = Tuple[float, float]

# Straight-line distances undercount road distance in cities.
ROAD_FACTOR = 1.4


def haversine_km(origin: Point, destination: Point) -> float:
    """
    Compute great-circle distance between two (lat, lon) points in kilometers.
    """
    lat1, lon1 = origin
    lat2, lon2 = destination
    r = 6371.0088  # mean Earth radius in km
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return r * c


def road_distance_km(origin: Point, destination: Point) -> float:
    """
    Conservative road distance estimate from the great-circle distance.
    """
    return haversine_km(origin, destination) * ROAD_FACTOR


def travel_time_minutes(distance_km: float, speed_kmph: float) -> float:
    """
    Convert distance (km) to travel time in minutes given speed (km/h).
    """
    if speed_kmph <= 0:
        raise ValueError("speed_kmph must be positive")
    if distance_km <= 0:
        return 0.0
    hours = distance_km / speed_kmph
    return hours * 60.0


def interpolate(origin: Point, destination: Point, fraction: float) -> Point:
    """
    Linear interpolation between two points; fraction 0 is origin, 1 is destination.
    Good enough at city scale.
    """
    lat = origin[0] + (destination[0] - origin[0]) * fraction
    lon = origin[1] + (destination[1] - origin[1]) * fraction
    return (lat, lon)


def midpoint(origin: Point, destination: Point) -> Point:
    return interpolate(origin, destination, 0.5)


def offset_point(center: Point, distance_km: float, bearing_rad: float) -> Point:
    """
    Destination point given a start, distance and initial bearing (spherical earth).
    """
    earth_radius_km = 6371.0
    ang_dist = distance_km / earth_radius_km
    lat1 = math.radians(center[0])
    lon1 = math.radians(center[1])
    lat2 = math.asin(math.sin(lat1) * math.cos(ang_dist) + math.cos(lat1) * math.sin(ang_dist) * math.cos(bearing_rad))
    lon2 = lon1 + math.atan2(
        math.sin(bearing_rad) * math.sin(ang_dist) * math.cos(lat1),
        math.cos(ang_dist) - math.sin(lat1) * math.sin(lat2),
    )
    return (math.degrees(lat2), math.degrees(lon2))
