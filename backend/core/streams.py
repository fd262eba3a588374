"""Stream Builder + Elevation Smoother.

Convertit des canaux paralleles (eventuellement de longueurs differentes) en un
DataFrame canonique par point ("stream frame", voir
`core.contracts.stream_contract`). La resolution des canaux optionnels est
faite ici, une seule fois: les etapes suivantes travaillent sur des colonnes
entierement renseignees.
"""

from __future__ import annotations

from typing import Any, Iterator, Mapping, Sequence

import numpy as np
import pandas as pd

from core.config import DetectionConfig
from core.contracts.stream_contract import STREAM_COLUMNS
from core.geo import step_distances_m
from core.models import ActivityStreams, StreamPoint


def _channel(values: Sequence[float] | None, n: int) -> np.ndarray:
    """Canal brut aligne sur n points; NaN pour les echantillons absents."""
    out = np.full(n, np.nan, dtype=float)
    if values is None:
        return out
    raw = pd.to_numeric(pd.Series(list(values)[:n], dtype=object), errors="coerce").to_numpy(dtype=float)
    out[: raw.size] = raw
    out[~np.isfinite(out)] = np.nan
    return out


def _time_speeds(speed_raw: np.ndarray, default_speed: float) -> np.ndarray:
    """Vitesse utilisee pour le temps: speed[i] -> speed[i-1] -> defaut."""
    previous = np.empty_like(speed_raw)
    previous[0] = np.nan
    previous[1:] = speed_raw[:-1]
    resolved = np.where(np.isfinite(speed_raw), speed_raw, previous)
    return np.where(np.isfinite(resolved), resolved, default_speed)


def empty_stream_frame() -> pd.DataFrame:
    return pd.DataFrame({col: pd.Series(dtype=float) for col in STREAM_COLUMNS})


def build_stream_frame(
    streams: ActivityStreams | Mapping[str, Any],
    config: DetectionConfig | None = None,
) -> pd.DataFrame:
    """Construit le stream frame (une ligne par point, index 0..n-1)."""
    config = config or DetectionConfig()
    if not isinstance(streams, ActivityStreams):
        streams = ActivityStreams.from_mapping(streams)

    n = len(streams.coords)
    if n == 0:
        return empty_stream_frame()

    coords = np.asarray(streams.coords, dtype=float).reshape(n, 2)
    lng = coords[:, 0]
    lat = coords[:, 1]

    steps = step_distances_m(lat, lng)
    distance = np.cumsum(steps)

    speed_raw = _channel(streams.speed, n)
    time_speed = _time_speeds(speed_raw, config.default_speed_m_s)
    # A l'arret, le temps est estime a l'allure de marche.
    effective = np.where(time_speed > config.stopped_speed_epsilon_m_s, time_speed, config.walking_pace_m_s)
    dt = steps / effective
    dt[0] = 0.0
    elapsed = np.cumsum(dt)

    frame = pd.DataFrame(
        {
            "lat": lat,
            "lng": lng,
            "elevation": _channel(streams.elevation, n),
            "speed": speed_raw,
            "power": _channel(streams.power, n),
            "heart_rate": _channel(streams.heart_rate, n),
            "cadence": _channel(streams.cadence, n),
            "distance_m": distance,
            "elapsed_s": elapsed,
        },
        columns=list(STREAM_COLUMNS),
    )
    return frame.fillna(0.0)


def smooth_elevation(frame: pd.DataFrame, window: int) -> pd.DataFrame:
    """Moyenne glissante centree de l'altitude (en place).

    Les fenetres de bord sont tronquees (min_periods=1). Sans effet si le flux
    est plus court que la fenetre.
    """
    if len(frame) < window or window <= 1:
        return frame
    frame["elevation"] = frame["elevation"].rolling(window=window, center=True, min_periods=1).mean()
    return frame


def stream_point(frame: pd.DataFrame, index: int) -> StreamPoint:
    row = frame.iloc[index]
    return StreamPoint(
        index=int(index),
        lat=float(row["lat"]),
        lng=float(row["lng"]),
        elevation=float(row["elevation"]),
        speed=float(row["speed"]),
        power=float(row["power"]),
        heart_rate=float(row["heart_rate"]),
        cadence=float(row["cadence"]),
        distance_m=float(row["distance_m"]),
        elapsed_s=float(row["elapsed_s"]),
    )


def iter_stream_points(frame: pd.DataFrame) -> Iterator[StreamPoint]:
    for i in range(len(frame)):
        yield stream_point(frame, i)
