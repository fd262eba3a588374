"""Detection des arrets (machine a etats MOVING / STOPPED)."""

from __future__ import annotations

import pandas as pd

from core.config import DetectionConfig
from core.models import DetectedStop


def _make_stop(frame: pd.DataFrame, start: int, duration: float) -> DetectedStop:
    return DetectedStop(
        point_index=int(start),
        lat=float(frame["lat"].iat[start]),
        lng=float(frame["lng"].iat[start]),
        distance_m=float(frame["distance_m"].iat[start]),
        duration_s=int(round(duration)),
    )


def detect_stops(frame: pd.DataFrame, config: DetectionConfig | None = None) -> list[DetectedStop]:
    """Intervalles ou la vitesse reste sous le seuil au moins `stop_min_duration_s`.

    Un arret est emis a la transition STOPPED -> MOVING, ou en fin de trace si
    l'activite se termine a l'arret. Les creux plus courts sont ignores.
    """
    config = config or DetectionConfig()
    n = len(frame)
    if n == 0:
        return []

    stopped = (frame["speed"].to_numpy(dtype=float) < config.stop_speed_threshold_m_s)
    elapsed = frame["elapsed_s"].to_numpy(dtype=float)

    stops: list[DetectedStop] = []
    stop_start = -1
    for i in range(n):
        if stopped[i] and stop_start == -1:
            stop_start = i
        elif not stopped[i] and stop_start != -1:
            duration = elapsed[i] - elapsed[stop_start]
            if duration >= config.stop_min_duration_s:
                stops.append(_make_stop(frame, stop_start, duration))
            stop_start = -1

    if stop_start != -1:
        duration = elapsed[n - 1] - elapsed[stop_start]
        if duration >= config.stop_min_duration_s:
            stops.append(_make_stop(frame, stop_start, duration))

    return stops
