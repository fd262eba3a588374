"""Geometrie spherique (haversine, cap) en version scalaire et vectorisee."""

from __future__ import annotations

import math

import numpy as np

from core.constants import EARTH_RADIUS_M


CARDINALS = ("N", "NE", "E", "SE", "S", "SW", "W", "NW")


def haversine_m(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Distance grand-cercle en metres entre deux points (degres)."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2.0) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2.0) ** 2
    )
    return EARTH_RADIUS_M * 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))


def haversine_m_array(lat1, lng1, lat2, lng2) -> np.ndarray:
    """Haversine vectorise (broadcast numpy)."""
    lat1 = np.radians(np.asarray(lat1, dtype=float))
    lat2 = np.radians(np.asarray(lat2, dtype=float))
    d_lat = lat2 - lat1
    d_lng = np.radians(np.asarray(lng2, dtype=float) - np.asarray(lng1, dtype=float))
    a = np.sin(d_lat / 2.0) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(d_lng / 2.0) ** 2
    a = np.clip(a, 0.0, 1.0)
    return EARTH_RADIUS_M * 2.0 * np.arctan2(np.sqrt(a), np.sqrt(1.0 - a))


def step_distances_m(lat: np.ndarray, lng: np.ndarray) -> np.ndarray:
    """Distances point a point; le premier element vaut 0."""
    lat = np.asarray(lat, dtype=float)
    lng = np.asarray(lng, dtype=float)
    if lat.size == 0:
        return np.zeros(0, dtype=float)
    steps = np.zeros(lat.size, dtype=float)
    if lat.size > 1:
        steps[1:] = haversine_m_array(lat[:-1], lng[:-1], lat[1:], lng[1:])
    return steps


def bearing_deg(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Cap initial de A vers B, dans [0, 360)."""
    d_lng = math.radians(lng2 - lng1)
    lat1_r = math.radians(lat1)
    lat2_r = math.radians(lat2)
    y = math.sin(d_lng) * math.cos(lat2_r)
    x = math.cos(lat1_r) * math.sin(lat2_r) - math.sin(lat1_r) * math.cos(lat2_r) * math.cos(d_lng)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def bearing_deg_array(lat1, lng1, lat2, lng2) -> np.ndarray:
    lat1_r = np.radians(np.asarray(lat1, dtype=float))
    lat2_r = np.radians(np.asarray(lat2, dtype=float))
    d_lng = np.radians(np.asarray(lng2, dtype=float) - np.asarray(lng1, dtype=float))
    y = np.sin(d_lng) * np.cos(lat2_r)
    x = np.cos(lat1_r) * np.sin(lat2_r) - np.sin(lat1_r) * np.cos(lat2_r) * np.cos(d_lng)
    return (np.degrees(np.arctan2(y, x)) + 360.0) % 360.0


def heading_change_deg(b1, b2):
    """Ecart angulaire absolu entre deux caps, dans [0, 180]."""
    diff = np.abs(np.asarray(b2, dtype=float) - np.asarray(b1, dtype=float))
    return np.where(diff > 180.0, 360.0 - diff, diff)


def bearing_to_cardinal(bearing: float) -> str:
    return CARDINALS[int(round(bearing / 45.0)) % 8]
