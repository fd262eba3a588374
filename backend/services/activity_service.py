from __future__ import annotations

"""Chargement d'activite (GPX/FIT ou flux JSON) vers ActivityStreams.

Ce module est sans UI et sert l'API comme le service de bibliotheque.
"""

import io
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping

import pandas as pd

from core import fit_loader, gpx_loader
from core.config import DetectionConfig
from core.contracts.stream_contract import assert_stream_frame_contract
from core.models import ActivityStreams
from core.streams import build_stream_frame
from services.models import LoadedActivity


SUPPORTED_EXTENSIONS = (".gpx", ".fit")


def _started_at(df: pd.DataFrame) -> datetime | None:
    if df.empty or "time" not in df.columns:
        return None
    times = pd.to_datetime(df["time"], errors="coerce", utc=True).dropna()
    if times.empty:
        return None
    return times.iloc[0].to_pydatetime()


def load_activity_from_bytes(data: bytes, name: str) -> LoadedActivity:
    extension = Path(name).suffix.lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise ValueError(f"Format non supporte: {extension or name} (attendu: .gpx ou .fit)")

    if extension == ".fit":
        fit = fit_loader.load_fit(io.BytesIO(data))
        df = fit_loader.fit_to_dataframe(fit)
        source = "fit"
    else:
        gpx = gpx_loader.load_gpx(io.BytesIO(data))
        df = gpx_loader.gpx_to_dataframe(gpx)
        source = "gpx"

    streams = gpx_loader.records_to_streams(df)
    return LoadedActivity(
        name=name,
        streams=streams,
        source=source,
        point_count=len(streams.coords),
        started_at=_started_at(df),
    )


def load_activity_from_mapping(raw: Mapping[str, Any], name: str = "streams") -> LoadedActivity:
    streams = ActivityStreams.from_mapping(raw)
    return LoadedActivity(name=name, streams=streams, source="streams", point_count=len(streams.coords))


def build_validated_frame(streams: ActivityStreams, config: DetectionConfig | None = None) -> pd.DataFrame:
    """Stream frame valide une seule fois a la frontiere service."""
    frame = build_stream_frame(streams, config)
    assert_stream_frame_contract(frame)
    return frame
