"""Types du moteur de detection de segments (sans couche UI ni I/O)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Mapping, Sequence


TerrainType = Literal["flat", "climb", "descent", "rolling"]
BoundaryReason = Literal["gradient_change", "extended_stop", "start", "end"]
Topology = Literal["loop", "out_and_back", "point_to_point"]
FrequencyTier = Literal["primary", "regular", "occasional", "rare"]

# Coordonnees au format GeoJSON: (lng, lat).
LngLat = tuple[float, float]

_CHANNEL_ALIASES = {
    "elevation": ("elevation", "altitude"),
    "speed": ("speed", "velocity_smooth"),
    "power": ("power", "watts"),
    "heart_rate": ("heart_rate", "heartRate", "heartrate"),
    "cadence": ("cadence",),
}


@dataclass(frozen=True)
class ActivityStreams:
    """Flux bruts d'une sortie: canaux paralleles, eventuellement de longueurs differentes."""

    coords: Sequence[LngLat]
    elevation: Sequence[float] | None = None
    speed: Sequence[float] | None = None
    power: Sequence[float] | None = None
    heart_rate: Sequence[float] | None = None
    cadence: Sequence[float] | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> ActivityStreams:
        coords_raw = raw.get("coords") or []
        coords: list[LngLat] = []
        for pair in coords_raw:
            if not isinstance(pair, Sequence) or isinstance(pair, str) or len(pair) < 2:
                raise ValueError("coords doit etre une liste de paires [lng, lat]")
            coords.append((float(pair[0]), float(pair[1])))

        channels: dict[str, Sequence[float] | None] = {}
        for name, aliases in _CHANNEL_ALIASES.items():
            values = None
            for alias in aliases:
                if raw.get(alias) is not None:
                    values = list(raw[alias])
                    break
            channels[name] = values
        return cls(coords=coords, **channels)


@dataclass(frozen=True)
class StreamPoint:
    index: int
    lat: float
    lng: float
    elevation: float
    speed: float
    power: float
    heart_rate: float
    cadence: float
    distance_m: float
    elapsed_s: float


@dataclass(frozen=True)
class DetectedStop:
    point_index: int
    lat: float
    lng: float
    distance_m: float
    duration_s: int
    # Classe plus tard par l'analyse inter-sorties.
    type: str = "unknown"


@dataclass(frozen=True)
class BoundaryPoint:
    index: int
    distance_m: float
    reason: BoundaryReason


@dataclass(frozen=True)
class CandidateSegment:
    start_idx: int
    end_idx: int
    start_distance_m: float
    end_distance_m: float

    @property
    def distance_m(self) -> float:
        return self.end_distance_m - self.start_distance_m


@dataclass(frozen=True)
class DetectedSegment:
    # Geographie
    start_idx: int
    end_idx: int
    start_lat: float
    start_lng: float
    end_lat: float
    end_lng: float
    coordinates: tuple[LngLat, ...]
    start_distance_m: float
    end_distance_m: float
    distance_meters: float

    # Terrain
    avg_gradient: float
    max_gradient: float
    min_gradient: float
    gradient_variability: float
    elevation_gain: float
    elevation_loss: float
    terrain_type: TerrainType

    # Vitesse / temps
    duration_seconds: int
    avg_speed_kmh: float

    # Capteurs (0 si indisponibles)
    avg_power: int = 0
    max_power: int = 0
    normalized_power: int = 0
    avg_hr: int = 0
    max_hr: int = 0
    avg_cadence: int = 0

    # Arrets / virages / qualite
    stops: tuple[DetectedStop, ...] = ()
    stop_count: int = 0
    stops_per_km: float = 0.0
    sharp_turn_count: int = 0
    quality_score: int = 0


@dataclass(frozen=True)
class StoredSegment:
    """Representation persistee d'un segment de bibliotheque (lecture seule ici)."""

    id: str
    start_lat: float
    start_lng: float
    end_lat: float
    end_lng: float
    distance_meters: float
    coordinates: tuple[LngLat, ...] = ()

    @classmethod
    def from_detected(cls, segment_id: str, segment: DetectedSegment) -> StoredSegment:
        return cls(
            id=segment_id,
            start_lat=segment.start_lat,
            start_lng=segment.start_lng,
            end_lat=segment.end_lat,
            end_lng=segment.end_lng,
            distance_meters=segment.distance_meters,
            coordinates=tuple(segment.coordinates),
        )


@dataclass(frozen=True)
class SegmentMatch:
    existing_segment_id: str
    overlap_ratio: float
    distance_ratio: float
    start_proximity_m: int
    end_proximity_m: int
    reversed: bool = False


@dataclass(frozen=True)
class SegmentDetectionResult:
    segments: list[DetectedSegment] = field(default_factory=list)
    stops: list[DetectedStop] = field(default_factory=list)
    total_points: int = 0
    total_distance_m: float = 0.0
    total_duration_s: float = 0.0


@dataclass(frozen=True)
class ObstructionScore:
    overall: int
    stop_frequency: int
    turn_sharpness: int
    surface_consistency: int
    max_uninterrupted_seconds: int
    suitable_for_steady_state: bool
    suitable_for_short_intervals: bool
    suitable_for_sprints: bool
    suitable_for_recovery: bool


@dataclass(frozen=True)
class TopologyResult:
    topology: Topology
    is_repeatable: bool
