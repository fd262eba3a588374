from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from core.models import (
    ActivityStreams,
    DetectedSegment,
    ObstructionScore,
    SegmentDetectionResult,
    StoredSegment,
    TopologyResult,
)
from core.naming import SegmentIdentity
from core.profile import RideRecord, SegmentProfile


ActivitySource = Literal["gpx", "fit", "streams"]


@dataclass(frozen=True)
class LoadedActivity:
    name: str
    streams: ActivityStreams
    source: ActivitySource
    point_count: int
    started_at: datetime | None = None


@dataclass(frozen=True)
class AnalyzedSegment:
    segment: DetectedSegment
    obstruction: ObstructionScore
    topology: TopologyResult
    identity: SegmentIdentity


@dataclass(frozen=True)
class DetectionReport:
    result: SegmentDetectionResult
    segments: list[AnalyzedSegment] = field(default_factory=list)


@dataclass(frozen=True)
class LibraryEntry:
    """Segment de bibliotheque: geometrie stockee + historique + profil."""

    id: str
    user_id: str
    stored: StoredSegment
    # Caracterisation du premier passage (terrain, pentes, arrets...).
    reference: DetectedSegment
    name: str
    description: str
    topology: TopologyResult
    obstruction: ObstructionScore
    rides: tuple[RideRecord, ...]
    profile: SegmentProfile
    created_at: datetime
    updated_at: datetime

    @property
    def ride_count(self) -> int:
        return len(self.rides)


@dataclass(frozen=True)
class LibraryUpdate:
    activity_id: str
    eligible: bool
    reason: str | None = None
    segments_detected: int = 0
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
