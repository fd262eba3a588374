from __future__ import annotations

import datetime
import math
from typing import IO, Any

import pandas as pd
from fitparse import FitFile, FitParseError
from fitparse import processors as fit_processors
from gpxpy import geo as gpx_geo

from core.constants import MAX_RECORDED_SPEED_M_S
from core.gpx_loader import RECORD_COLUMNS


SEMICIRCLE_TO_DEG = 180.0 / (2**31)


def _patch_fitparse_datetime() -> None:
    """Remplace utcfromtimestamp (deprecated) par une conversion UTC moderne."""
    if getattr(fit_processors, "_segmentscope_datetime_patch", False):
        return

    def _to_utc_naive(value: float) -> datetime.datetime:
        dt = datetime.datetime.fromtimestamp(fit_processors.UTC_REFERENCE + value, datetime.timezone.utc)
        return dt.replace(tzinfo=None)

    def _process_type_date_time(self, field_data):
        value = field_data.value
        if value is not None and value >= 0x10000000:
            field_data.value = _to_utc_naive(value)
            field_data.units = None

    def _process_type_local_date_time(self, field_data):
        if field_data.value is not None:
            field_data.value = _to_utc_naive(field_data.value)
            field_data.units = None

    fit_processors.FitFileDataProcessor.process_type_date_time = _process_type_date_time
    fit_processors.FitFileDataProcessor.process_type_local_date_time = _process_type_local_date_time
    fit_processors._segmentscope_datetime_patch = True


_patch_fitparse_datetime()


def _build_field_lookup(record) -> dict[str, Any]:
    lookup: dict[str, Any] = {}
    for f in getattr(record, "fields", None) or []:
        fname = getattr(f, "name", None)
        if fname:
            lookup[str(fname)] = getattr(f, "value", None)
    return lookup


def _float_or_nan(value: Any) -> float:
    if value is None:
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _first_float(lookup: dict[str, Any], names: list[str]) -> float:
    for name in names:
        value = _float_or_nan(lookup.get(name))
        if math.isfinite(value):
            return value
    return math.nan


def _semicircle_to_deg(value: float | int | None) -> float:
    if value is None:
        return math.nan
    try:
        return float(value) * SEMICIRCLE_TO_DEG
    except (TypeError, ValueError):
        return math.nan


def load_fit(file: IO[bytes]) -> FitFile:
    """Lit un fichier FIT (file-like) et retourne l'objet FitFile.

    Leve ValueError si l'en-tete FIT est invalide.
    """
    try:
        fitfile = FitFile(file)
        fitfile.parse()
    except FitParseError as e:
        raise ValueError(f"FIT illisible: {e}") from e
    return fitfile


def fit_to_dataframe(fitfile: FitFile) -> pd.DataFrame:
    """Transforme un FIT en tableau par enregistrement (messages `record`).

    La vitesse enregistree par le capteur est preferee; a defaut, elle est
    deduite de la distance parcourue entre deux positions horodatees.
    """
    rows = []
    prev_lat = math.nan
    prev_lng = math.nan
    prev_time = None

    for record in fitfile.get_messages("record"):
        lookup = _build_field_lookup(record)

        lat = _semicircle_to_deg(lookup.get("position_lat"))
        lng = _semicircle_to_deg(lookup.get("position_long"))
        current_time = lookup.get("timestamp")

        speed = _first_float(lookup, ["enhanced_speed", "speed"])
        if not math.isfinite(speed) and prev_time is not None and current_time is not None:
            delta_time = (current_time - prev_time).total_seconds()
            if delta_time > 0 and math.isfinite(prev_lat) and math.isfinite(lat):
                speed = gpx_geo.haversine_distance(prev_lat, prev_lng, lat, lng) / delta_time
        if math.isfinite(speed) and speed > MAX_RECORDED_SPEED_M_S:
            speed = math.nan

        rows.append(
            {
                "lat": lat,
                "lng": lng,
                "elevation": _first_float(lookup, ["enhanced_altitude", "altitude"]),
                "time": current_time,
                "speed": speed,
                "power": _float_or_nan(lookup.get("power")),
                "heart_rate": _float_or_nan(lookup.get("heart_rate")),
                "cadence": _float_or_nan(lookup.get("cadence")),
            }
        )

        if math.isfinite(lat) and math.isfinite(lng):
            prev_lat, prev_lng = lat, lng
        if current_time is not None:
            prev_time = current_time

    if not rows:
        return pd.DataFrame(columns=RECORD_COLUMNS)

    return pd.DataFrame(rows, columns=RECORD_COLUMNS)
