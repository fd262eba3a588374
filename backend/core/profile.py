"""Historique de passages et profil agrege d'un segment de bibliotheque.

- `build_ride_record`: un passage (segment detecte dans une sortie) avec ses
  zones puissance / FC.
- `build_segment_profile`: agregats sur tous les passages d'un segment
  (puissance, zones, FC, cadence, frequence, recence, aptitudes, confiance).

Toutes les fonctions dependantes de la date recoivent `now` explicitement.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Sequence

import numpy as np
import pandas as pd

from core import constants as C
from core.classifiers import (
    classify_frequency_tier,
    classify_hr_zone,
    classify_power_zone,
    confidence_score,
    consistency_score,
    relevance_score,
)
from core.models import DetectedSegment, ObstructionScore, TerrainType


DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
MONTH = timedelta(days=30)


@dataclass(frozen=True)
class RideRecord:
    activity_id: str
    ridden_at: datetime
    duration_seconds: int
    avg_speed_kmh: float
    avg_power: int = 0
    normalized_power: int = 0
    max_power: int = 0
    power_zone: str | None = None
    avg_hr: int = 0
    max_hr: int = 0
    hr_zone: str | None = None
    avg_cadence: int = 0
    stop_count: int = 0
    stop_duration_seconds: int = 0
    ftp: float | None = None


@dataclass(frozen=True)
class SegmentProfile:
    ride_count: int
    mean_avg_power: float | None
    std_dev_power: float | None
    min_avg_power: float | None
    max_avg_power: float | None
    typical_power_zone: str | None
    zone_distribution: dict[str, float] = field(default_factory=dict)
    consistency_score: int = 0
    mean_avg_hr: int | None = None
    typical_hr_zone: str | None = None
    mean_cadence: int | None = None
    rides_last_30_days: int = 0
    rides_last_90_days: int = 0
    avg_rides_per_month: float = 0.0
    frequency_tier: str = "rare"
    typical_days: tuple[str, ...] = ()
    relevance_score: int = 0
    suitable_for_steady_state: bool = False
    suitable_for_short_intervals: bool = False
    suitable_for_sprints: bool = False
    suitable_for_recovery: bool = False
    confidence_score: int = 0
    last_ridden_at: datetime | None = None


def _utc(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=timezone.utc)


def build_ride_record(
    segment: DetectedSegment,
    activity_id: str,
    ridden_at: datetime,
    *,
    ftp: float | None = None,
    max_hr: float | None = None,
) -> RideRecord:
    power_zone = None
    if segment.avg_power > 0 and ftp and ftp > 0:
        power_zone = classify_power_zone(segment.avg_power, ftp)
    hr_zone = None
    if segment.avg_hr > 0 and max_hr and max_hr > 0:
        hr_zone = classify_hr_zone(segment.avg_hr, max_hr)

    return RideRecord(
        activity_id=str(activity_id),
        ridden_at=_utc(ridden_at),
        duration_seconds=segment.duration_seconds,
        avg_speed_kmh=segment.avg_speed_kmh,
        avg_power=segment.avg_power,
        normalized_power=segment.normalized_power,
        max_power=segment.max_power,
        power_zone=power_zone,
        avg_hr=segment.avg_hr,
        max_hr=segment.max_hr,
        hr_zone=hr_zone,
        avg_cadence=segment.avg_cadence,
        stop_count=segment.stop_count,
        stop_duration_seconds=int(sum(s.duration_s for s in segment.stops)),
        ftp=float(ftp) if ftp and ftp > 0 else None,
    )


def _most_common(values: Sequence[str]) -> str | None:
    counts = Counter(v for v in values if v)
    if not counts:
        return None
    return counts.most_common(1)[0][0]


def _zone_distribution(zones: Sequence[str | None]) -> dict[str, float]:
    counts = Counter(z for z in zones if z)
    total = sum(counts.values())
    if total == 0:
        return {}
    return {zone: round(count / total, 2) for zone, count in counts.items()}


def reference_threshold_changed(
    rides: Sequence[RideRecord],
    tolerance: float = C.REFERENCE_CHANGE_RATIO,
) -> bool:
    """FTP du passage le plus recent vs celle du passage precedent qui en porte une."""
    ftps = [r.ftp for r in sorted(rides, key=lambda r: _utc(r.ridden_at)) if r.ftp]
    if len(ftps) < 2:
        return False
    previous, latest = ftps[-2], ftps[-1]
    return abs(latest - previous) / previous > tolerance


def build_segment_profile(
    rides: Sequence[RideRecord],
    terrain_type: TerrainType,
    obstruction: ObstructionScore | None,
    now: datetime | None = None,
    *,
    reference_changed: bool = False,
) -> SegmentProfile:
    now = _utc(now or datetime.now(timezone.utc))
    if not rides:
        return SegmentProfile(
            ride_count=0,
            mean_avg_power=None,
            std_dev_power=None,
            min_avg_power=None,
            max_avg_power=None,
            typical_power_zone=None,
            suitable_for_recovery=terrain_type in ("flat", "descent"),
        )

    # Passages du plus recent au plus ancien.
    ordered = sorted(rides, key=lambda r: _utc(r.ridden_at), reverse=True)
    df = pd.DataFrame(
        {
            "ridden_at": pd.to_datetime([_utc(r.ridden_at) for r in ordered], utc=True),
            "avg_power": [r.avg_power for r in ordered],
            "power_zone": [r.power_zone for r in ordered],
            "avg_hr": [r.avg_hr for r in ordered],
            "hr_zone": [r.hr_zone for r in ordered],
            "avg_cadence": [r.avg_cadence for r in ordered],
        }
    )

    power_rides = df[df["avg_power"] > 0]
    power_values = power_rides["avg_power"].to_numpy(dtype=float)
    mean_power = round(float(power_values.mean()), 1) if power_values.size else None
    sd_power = round(float(np.std(power_values, ddof=1)), 1) if power_values.size >= 2 else None

    zone_distribution = _zone_distribution(power_rides["power_zone"].tolist())
    typical_zone = max(zone_distribution, key=zone_distribution.get) if zone_distribution else None

    hr_rides = df[df["avg_hr"] > 30]
    mean_hr = int(round(float(hr_rides["avg_hr"].mean()))) if len(hr_rides) else None
    typical_hr_zone = _most_common(hr_rides["hr_zone"].dropna().tolist())

    cad_rides = df[df["avg_cadence"] > 0]
    mean_cadence = int(round(float(cad_rides["avg_cadence"].mean()))) if len(cad_rides) else None

    ts_now = pd.Timestamp(now)
    rides_30 = int((df["ridden_at"] >= ts_now - pd.Timedelta(days=30)).sum())
    rides_90 = int((df["ridden_at"] >= ts_now - pd.Timedelta(days=90)).sum())

    first_ride = df["ridden_at"].iloc[-1].to_pydatetime()
    months_span = max(1.0, (now - first_ride) / MONTH)
    rides_per_month = round(len(df) / months_span, 1)

    weekdays = [DAY_NAMES[ts.weekday()] for ts in df["ridden_at"]]
    typical_days = tuple(day for day, _ in Counter(weekdays).most_common(3))

    last_ridden = df["ridden_at"].iloc[0].to_pydatetime()
    overall = obstruction.overall if obstruction is not None else 0
    longest = obstruction.max_uninterrupted_seconds if obstruction is not None else 0

    return SegmentProfile(
        ride_count=len(df),
        mean_avg_power=mean_power,
        std_dev_power=sd_power,
        min_avg_power=round(float(power_values.min()), 1) if power_values.size else None,
        max_avg_power=round(float(power_values.max()), 1) if power_values.size else None,
        typical_power_zone=typical_zone,
        zone_distribution=zone_distribution,
        consistency_score=consistency_score(power_values.tolist()),
        mean_avg_hr=mean_hr,
        typical_hr_zone=typical_hr_zone,
        mean_cadence=mean_cadence,
        rides_last_30_days=rides_30,
        rides_last_90_days=rides_90,
        avg_rides_per_month=rides_per_month,
        frequency_tier=classify_frequency_tier(rides_per_month),
        typical_days=typical_days,
        relevance_score=relevance_score(len(df), rides_30, rides_per_month),
        suitable_for_steady_state=overall >= 75 and longest >= 300,
        suitable_for_short_intervals=overall >= 60 and longest >= 60,
        suitable_for_sprints=overall >= 50 and longest >= 15,
        suitable_for_recovery=terrain_type in ("flat", "descent"),
        confidence_score=confidence_score(len(df), last_ridden, reference_changed, now),
        last_ridden_at=last_ridden,
    )
