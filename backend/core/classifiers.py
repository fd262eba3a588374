"""Classificateurs derives (sans etat) appliques a un segment caracterise.

Les valeurs de reference (FTP, FC max, nombre de sorties, date de derniere
sortie...) sont des parametres: ce module ne va rien chercher lui-meme.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence

import numpy as np

from core import constants as C
from core.geo import haversine_m
from core.models import DetectedSegment, FrequencyTier, ObstructionScore, TopologyResult


POWER_ZONES: tuple[tuple[float, str], ...] = (
    (0.55, "recovery"),
    (0.75, "endurance"),
    (0.87, "tempo"),
    (0.95, "sweet_spot"),
    (1.05, "threshold"),
    (1.20, "vo2max"),
)

HR_ZONES: tuple[tuple[float, str], ...] = (
    (0.60, "recovery"),
    (0.70, "endurance"),
    (0.80, "tempo"),
    (0.90, "threshold"),
    (0.95, "vo2max"),
)

# (nombre minimal de sorties, score de base)
CONFIDENCE_LADDER: tuple[tuple[int, int], ...] = ((15, 95), (8, 85), (5, 70), (3, 50), (2, 35))
CONFIDENCE_FLOOR = 20
REFERENCE_CHANGE_PENALTY = 15


def _clamp_score(value: float) -> int:
    return int(max(0, min(100, round(value))))


def _max_uninterrupted_seconds(segment: DetectedSegment) -> int:
    if not segment.stops or segment.duration_seconds <= 0:
        return int(segment.duration_seconds)
    avg_speed = segment.distance_meters / segment.duration_seconds
    if avg_speed <= 0:
        return int(segment.duration_seconds)
    marks = [segment.start_distance_m]
    marks.extend(s.distance_m for s in segment.stops)
    marks.append(segment.end_distance_m)
    longest = float(np.max(np.abs(np.diff(np.asarray(marks, dtype=float)))))
    return int(round(longest / avg_speed))


def obstruction_score(segment: DetectedSegment) -> ObstructionScore:
    """Aptitude a l'effort continu (0-100) + drapeaux d'usage."""
    dist_km = segment.distance_meters / 1000.0
    turns_per_km = segment.sharp_turn_count / dist_km if dist_km > 0 else 0.0

    stop_frequency = _clamp_score(100 - segment.stops_per_km * 30)
    turn_sharpness = _clamp_score(100 - turns_per_km * 20)
    surface_consistency = _clamp_score(100 - segment.gradient_variability * 5)
    overall = int(round(stop_frequency * 0.40 + turn_sharpness * 0.25 + surface_consistency * 0.35))

    longest = _max_uninterrupted_seconds(segment)
    return ObstructionScore(
        overall=overall,
        stop_frequency=stop_frequency,
        turn_sharpness=turn_sharpness,
        surface_consistency=surface_consistency,
        max_uninterrupted_seconds=longest,
        suitable_for_steady_state=overall >= 75 and longest >= 300,
        suitable_for_short_intervals=overall >= 60 and longest >= 60,
        suitable_for_sprints=overall >= 50 and longest >= 15,
        suitable_for_recovery=segment.terrain_type in ("flat", "descent"),
    )


def classify_topology(
    segment: DetectedSegment,
    *,
    loop_max_gap_m: float = C.LOOP_MAX_GAP_M,
    out_and_back_max_gap_m: float = C.OUT_AND_BACK_MAX_GAP_M,
    midpoint_factor: float = C.OUT_AND_BACK_MIDPOINT_FACTOR,
) -> TopologyResult:
    start_end = haversine_m(segment.start_lat, segment.start_lng, segment.end_lat, segment.end_lng)
    if start_end < loop_max_gap_m:
        return TopologyResult(topology="loop", is_repeatable=True)

    coords = segment.coordinates
    if len(coords) > 4:
        mid_lng, mid_lat = coords[len(coords) // 2]
        to_start = haversine_m(mid_lat, mid_lng, segment.start_lat, segment.start_lng)
        to_end = haversine_m(mid_lat, mid_lng, segment.end_lat, segment.end_lng)
        far = start_end * midpoint_factor
        if to_start > far and to_end > far and start_end < out_and_back_max_gap_m:
            return TopologyResult(topology="out_and_back", is_repeatable=True)

    return TopologyResult(topology="point_to_point", is_repeatable=False)


def _zone(ratio: float, bands: tuple[tuple[float, str], ...]) -> str:
    for upper, name in bands:
        if ratio < upper:
            return name
    return "anaerobic"


def classify_power_zone(avg_power: float, ftp: float) -> str:
    if ftp <= 0 or avg_power <= 0:
        return "unknown"
    return _zone(avg_power / ftp, POWER_ZONES)


def classify_hr_zone(avg_hr: float, max_hr: float) -> str:
    if max_hr <= 0 or avg_hr <= 0:
        return "unknown"
    return _zone(avg_hr / max_hr, HR_ZONES)


def consistency_score(values: Sequence[float]) -> int:
    """100 - (ecart-type / moyenne) x 200, borne a [0, 100]; 0 si < 2 valeurs."""
    arr = np.asarray(list(values), dtype=float)
    if arr.size < 2:
        return 0
    mean = float(arr.mean())
    if mean <= 0:
        return 0
    sd = float(np.std(arr, ddof=1))
    return _clamp_score(100 - (sd / mean) * 200)


def days_since(moment: datetime, now: datetime | None = None) -> float:
    now = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (now - moment).total_seconds() / 86400.0


def confidence_score(
    ride_count: int,
    last_ridden_at: datetime | None,
    reference_changed: bool,
    now: datetime | None = None,
) -> int:
    score = CONFIDENCE_FLOOR
    for min_rides, base in CONFIDENCE_LADDER:
        if ride_count >= min_rides:
            score = base
            break

    if last_ridden_at is not None:
        age = days_since(last_ridden_at, now)
        if age < 14:
            score += 5
        elif age < 30:
            pass
        elif age < 90:
            score -= 10
        else:
            score -= 20

    if reference_changed:
        score -= REFERENCE_CHANGE_PENALTY
    return int(max(0, min(100, score)))


def relevance_score(ride_count: int, rides_last_30_days: int, rides_per_month: float) -> int:
    base = min(50, ride_count * 5)
    recency = (rides_last_30_days / ride_count) * 30 if ride_count > 0 else 0.0
    frequency = min(20.0, rides_per_month * 10)
    return int(min(100, round(base + recency + frequency)))


def classify_frequency_tier(rides_per_month: float) -> FrequencyTier:
    if rides_per_month >= 4:
        return "primary"
    if rides_per_month >= 2:
        return "regular"
    if rides_per_month >= 1:
        return "occasional"
    return "rare"
