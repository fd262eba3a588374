"""Segment naming and description helpers.

No reverse geocoding here: names are derived from terrain, duration and,
when a home point is known, direction + distance from home.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from core.geo import bearing_deg, bearing_to_cardinal, haversine_m
from core.models import DetectedSegment


TERRAIN_LABELS = {
    "climb": "Climb",
    "descent": "Descent",
    "flat": "Flat",
    "rolling": "Rolling",
}


@dataclass(frozen=True)
class SegmentIdentity:
    auto_name: str  # "12 min Climb 4.2%"
    description: str  # "12 min sustained climb, 4.2% avg, no stops"
    short_description: str  # "12 min climb, 4.2%"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_duration(seconds: float) -> str:
    """Format like '45s', '12 min', '1h', '1h 5m'."""

    if seconds < 60:
        return f"{_round_half_up(seconds)}s"
    minutes = _round_half_up(seconds / 60.0)
    if minutes < 60:
        return f"{minutes} min"
    hours, rest = divmod(minutes, 60)
    if rest == 0:
        return f"{hours}h"
    return f"{hours}h {rest}m"


def terrain_description(segment: DetectedSegment) -> str:
    if segment.terrain_type == "climb":
        if segment.avg_gradient >= 8:
            return "steep climb"
        if segment.avg_gradient >= 5:
            return "sustained climb"
        return "gradual climb"
    return segment.terrain_type or "mixed terrain"


def fallback_name(
    segment: DetectedSegment,
    home_lat: float | None = None,
    home_lng: float | None = None,
) -> str:
    label = TERRAIN_LABELS.get(segment.terrain_type, "Segment")

    if home_lat is not None and home_lng is not None:
        direction = bearing_to_cardinal(bearing_deg(home_lat, home_lng, segment.start_lat, segment.start_lng))
        km_from_home = haversine_m(home_lat, home_lng, segment.start_lat, segment.start_lng) / 1000.0
        return f"{direction} {label} ({km_from_home:.1f}km)"

    if segment.terrain_type == "climb":
        return f"{format_duration(segment.duration_seconds)} {label} {segment.avg_gradient:.1f}%"
    return f"{label} {segment.distance_meters / 1000.0:.1f}km"


def describe_segment(segment: DetectedSegment) -> str:
    parts = [f"{format_duration(segment.duration_seconds)} {terrain_description(segment)}"]
    if segment.terrain_type in ("climb", "rolling"):
        parts.append(f"{segment.avg_gradient:.1f}% avg")
    if segment.stop_count == 0:
        parts.append("no stops")
    elif segment.stop_count == 1:
        parts.append("1 stop")
    else:
        parts.append(f"{segment.stop_count} stops")
    return ", ".join(parts)


def short_description(segment: DetectedSegment) -> str:
    duration = format_duration(segment.duration_seconds)
    if segment.terrain_type in ("climb", "rolling"):
        return f"{duration} {segment.terrain_type}, {segment.avg_gradient:.1f}%"
    return f"{duration} {segment.terrain_type}"


def segment_identity(
    segment: DetectedSegment,
    home_lat: float | None = None,
    home_lng: float | None = None,
) -> SegmentIdentity:
    return SegmentIdentity(
        auto_name=fallback_name(segment, home_lat, home_lng),
        description=describe_segment(segment),
        short_description=short_description(segment),
    )
