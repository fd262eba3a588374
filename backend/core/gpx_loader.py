from __future__ import annotations

import math
from typing import IO
from xml.etree import ElementTree as ET

import gpxpy
import numpy as np
import pandas as pd

from core.constants import MAX_RECORDED_SPEED_M_S
from core.models import ActivityStreams


# Tableau "par enregistrement" produit par les loaders GPX/FIT, avant
# conversion en ActivityStreams.
RECORD_COLUMNS = [
    "lat",
    "lng",
    "elevation",
    "time",
    "speed",
    "power",
    "heart_rate",
    "cadence",
]

HR_TAGS = {"hr", "heart_rate", "heartrate"}
CAD_TAGS = {"cad", "cadence"}
POWER_TAGS = {"power", "watts"}


def _decode_gpx_bytes(content: bytes) -> str:
    try:
        return content.decode("utf-8")
    except UnicodeDecodeError:
        try:
            return content.decode("latin-1")
        except UnicodeDecodeError:
            return content.decode("utf-8", errors="replace")


def _local_tag(tag: str | None) -> str:
    if not tag:
        return ""
    return tag.split("}")[-1].lower()


def _extract_extension_value(extensions: list[ET.Element] | None, targets: set[str]) -> float:
    if not extensions:
        return math.nan
    for ext in extensions:
        for elem in ext.iter():
            local = _local_tag(elem.tag)
            if local in targets:
                try:
                    return float(elem.text)
                except (TypeError, ValueError):
                    continue
    return math.nan


def load_gpx(file: IO[bytes]) -> gpxpy.gpx.GPX:
    """Lit un fichier GPX (file-like) et retourne l'objet GPX.

    Leve ValueError si le contenu n'est pas un GPX valide.
    """
    content = file.read()
    if isinstance(content, (bytes, bytearray)):
        text = _decode_gpx_bytes(content)
    else:
        text = str(content)
    try:
        return gpxpy.parse(text)
    except gpxpy.gpx.GPXException as e:
        raise ValueError(f"GPX illisible: {e}") from e


def _recorded_speed(delta_distance: float, delta_time: float) -> float:
    """Vitesse point a point; NaN si le temps manque ou si la valeur est aberrante."""
    if not (delta_time > 0):
        return math.nan
    speed = delta_distance / delta_time
    if speed > MAX_RECORDED_SPEED_M_S:
        return math.nan
    return speed


def gpx_to_dataframe(gpx: gpxpy.gpx.GPX) -> pd.DataFrame:
    """Transforme un GPX en tableau par enregistrement (une ligne par trackpoint).

    Les routes sans trace sont aussi acceptees (trace planifiee, sans temps).
    """
    rows = []

    point_lists = [segment.points for track in gpx.tracks for segment in track.segments]
    if not any(point_lists):
        point_lists = [route.points for route in gpx.routes]

    for points in point_lists:
        prev_point = None
        for point in points:
            delta_distance = point.distance_2d(prev_point) if prev_point is not None else 0.0
            if delta_distance is None or (isinstance(delta_distance, float) and math.isnan(delta_distance)):
                delta_distance = 0.0

            delta_time = math.nan
            if prev_point is not None and point.time is not None and prev_point.time is not None:
                delta_time = (point.time - prev_point.time).total_seconds()

            rows.append(
                {
                    "lat": point.latitude,
                    "lng": point.longitude,
                    "elevation": point.elevation if point.elevation is not None else math.nan,
                    "time": point.time,
                    "speed": _recorded_speed(delta_distance, delta_time),
                    "power": _extract_extension_value(getattr(point, "extensions", None), POWER_TAGS),
                    "heart_rate": _extract_extension_value(getattr(point, "extensions", None), HR_TAGS),
                    "cadence": _extract_extension_value(getattr(point, "extensions", None), CAD_TAGS),
                }
            )
            prev_point = point

    if not rows:
        return pd.DataFrame(columns=RECORD_COLUMNS)

    return pd.DataFrame(rows, columns=RECORD_COLUMNS)


def _optional_channel(df: pd.DataFrame, col: str) -> list[float | None] | None:
    values = pd.to_numeric(df[col], errors="coerce")
    if not values.notna().any():
        return None
    return [None if not np.isfinite(v) else float(v) for v in values.to_numpy(dtype=float)]


def records_to_streams(df: pd.DataFrame) -> ActivityStreams:
    """Convertit un tableau par enregistrement en ActivityStreams.

    Les enregistrements sans position sont ignores. Les canaux entierement vides
    sont omis (absents), les trous individuels restent a None.
    """
    if df.empty:
        return ActivityStreams(coords=[])

    positioned = df.copy()
    positioned["lat"] = pd.to_numeric(positioned["lat"], errors="coerce")
    positioned["lng"] = pd.to_numeric(positioned["lng"], errors="coerce")
    positioned = positioned.dropna(subset=["lat", "lng"]).reset_index(drop=True)

    coords = list(zip(positioned["lng"].astype(float).tolist(), positioned["lat"].astype(float).tolist()))
    return ActivityStreams(
        coords=coords,
        elevation=_optional_channel(positioned, "elevation"),
        speed=_optional_channel(positioned, "speed"),
        power=_optional_channel(positioned, "power"),
        heart_rate=_optional_channel(positioned, "heart_rate"),
        cadence=_optional_channel(positioned, "cadence"),
    )
