"""Traces synthetiques partagees par les tests (flux "ActivityStreams" en dict)."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Sequence

import numpy as np


METERS_PER_DEG_LAT = 6_371_000.0 * math.pi / 180.0


def northward_coords(n: int, *, step_m: float = 10.0, lat0: float = 45.0, lng0: float = 6.0) -> list[list[float]]:
    """n points vers le nord, espaces de `step_m` (paires [lng, lat])."""
    dlat = step_m / METERS_PER_DEG_LAT
    return [[lng0, lat0 + i * dlat] for i in range(n)]


def profile_streams(
    grades_pct: Sequence[tuple[float, float]],
    *,
    step_m: float = 10.0,
    speed: float = 8.0,
    elev0: float = 100.0,
    lat0: float = 45.0,
    lng0: float = 6.0,
) -> dict:
    """Trace rectiligne par troncons (longueur_m, pente_%)."""
    elevations = [elev0]
    for length_m, grade in grades_pct:
        steps = int(round(length_m / step_m))
        for _ in range(steps):
            elevations.append(elevations[-1] + step_m * grade / 100.0)
    n = len(elevations)
    return {
        "coords": northward_coords(n, step_m=step_m, lat0=lat0, lng0=lng0),
        "elevation": elevations,
        "speed": [speed] * n,
    }


def flat_streams(n: int = 300, **kwargs) -> dict:
    step_m = kwargs.pop("step_m", 10.0)
    return profile_streams([((n - 1) * step_m, 0.0)], step_m=step_m, **kwargs)


def with_dwells(streams: dict, starts: Sequence[int], length: int = 3) -> dict:
    """Met la vitesse a 0 sur `length` points a partir de chaque indice de `starts`."""
    speed = list(streams["speed"])
    for start in starts:
        for i in range(start, min(start + length, len(speed))):
            speed[i] = 0.0
    return {**streams, "speed": speed}


def reversed_streams(streams: dict) -> dict:
    return {key: list(reversed(values)) for key, values in streams.items()}


def sensor_channels(n: int, *, power: float = 220.0, heart_rate: float = 145.0, cadence: float = 88.0) -> dict:
    rng = np.random.default_rng(7)
    return {
        "power": (power + rng.normal(0.0, 15.0, n)).round().tolist(),
        "heart_rate": [heart_rate] * n,
        "cadence": [cadence] * n,
    }


def gpx_bytes(streams: dict, *, start: datetime | None = None) -> bytes:
    """Serialise un flux synthetique en GPX horodate (temps deduit de la vitesse)."""
    import gpxpy.gpx

    start = start or datetime(2026, 5, 30, 8, 0, tzinfo=timezone.utc)
    gpx = gpxpy.gpx.GPX()
    track = gpxpy.gpx.GPXTrack(name="synthetic")
    segment = gpxpy.gpx.GPXTrackSegment()
    gpx.tracks.append(track)
    track.segments.append(segment)

    coords = streams["coords"]
    elevations = streams.get("elevation") or [None] * len(coords)
    speeds = streams.get("speed") or [8.0] * len(coords)
    elapsed = 0.0
    for i, (lng, lat) in enumerate(coords):
        if i > 0:
            lng0, lat0 = coords[i - 1]
            step = math.hypot(lat - lat0, (lng - lng0) * math.cos(math.radians(lat))) * METERS_PER_DEG_LAT
            elapsed += step / max(speeds[i], 1.0)
        segment.points.append(
            gpxpy.gpx.GPXTrackPoint(lat, lng, elevation=elevations[i], time=start + timedelta(seconds=elapsed))
        )
    return gpx.to_xml().encode("utf-8")
