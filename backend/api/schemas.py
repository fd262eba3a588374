from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Literal, Dict
from datetime import datetime


# 1. Flux d'activite (entree JSON)
class StreamsPayload(BaseModel):
    # Accepte aussi les alias (altitude, velocity_smooth, watts, heartRate).
    model_config = ConfigDict(extra="allow")

    coords: List[List[float]] = Field(..., description="Paires [lng, lat]")
    elevation: Optional[List[Optional[float]]] = None
    speed: Optional[List[Optional[float]]] = None
    power: Optional[List[Optional[float]]] = None
    heart_rate: Optional[List[Optional[float]]] = None
    cadence: Optional[List[Optional[float]]] = None


class HomePoint(BaseModel):
    lat: float
    lng: float


# 2. POST /segments/detect
class DetectRequest(BaseModel):
    streams: StreamsPayload
    home: Optional[HomePoint] = None


class StopOut(BaseModel):
    point_index: int
    lat: float
    lng: float
    distance_m: float
    duration_s: int
    type: str = "unknown"


class ObstructionOut(BaseModel):
    overall: int
    stop_frequency: int
    turn_sharpness: int
    surface_consistency: int
    max_uninterrupted_seconds: int
    suitable_for_steady_state: bool
    suitable_for_short_intervals: bool
    suitable_for_sprints: bool
    suitable_for_recovery: bool


class TopologyOut(BaseModel):
    topology: Literal["loop", "out_and_back", "point_to_point"]
    is_repeatable: bool


class SegmentOut(BaseModel):
    start_idx: int
    end_idx: int
    start_lat: float
    start_lng: float
    end_lat: float
    end_lng: float
    coordinates: List[List[float]]
    start_distance_m: float
    end_distance_m: float
    distance_meters: float
    avg_gradient: float
    max_gradient: float
    min_gradient: float
    gradient_variability: float
    elevation_gain: float
    elevation_loss: float
    terrain_type: Literal["flat", "climb", "descent", "rolling"]
    duration_seconds: int
    avg_speed_kmh: float
    avg_power: int = 0
    max_power: int = 0
    normalized_power: int = 0
    avg_hr: int = 0
    max_hr: int = 0
    avg_cadence: int = 0
    stops: List[StopOut] = []
    stop_count: int = 0
    stops_per_km: float = 0.0
    sharp_turn_count: int = 0
    quality_score: int = 0


class AnalyzedSegmentOut(BaseModel):
    segment: SegmentOut
    obstruction: ObstructionOut
    topology: TopologyOut
    name: str
    description: str
    short_description: str


class DetectResponse(BaseModel):
    segments: List[AnalyzedSegmentOut]
    stops: List[StopOut]
    total_points: int
    total_distance_m: float
    total_duration_s: float
    source: Optional[Literal["gpx", "fit", "streams"]] = None
    name: Optional[str] = None


# 3. POST /segments/match
class StoredSegmentIn(BaseModel):
    id: str
    start_lat: float
    start_lng: float
    end_lat: float
    end_lng: float
    distance_meters: float
    coordinates: List[List[float]] = []


class MatchRequest(BaseModel):
    segment: SegmentOut
    candidates: List[StoredSegmentIn]


class MatchOut(BaseModel):
    existing_segment_id: str
    overlap_ratio: float
    distance_ratio: float
    start_proximity_m: int
    end_proximity_m: int
    reversed: bool = False


class MatchResponse(BaseModel):
    matches: List[MatchOut]


# 4. Bibliotheque
class LibraryActivityRequest(BaseModel):
    streams: StreamsPayload
    activity_id: Optional[str] = None
    ridden_at: Optional[datetime] = None
    ftp: Optional[float] = Field(None, gt=0)
    max_hr: Optional[float] = Field(None, gt=0)
    home: Optional[HomePoint] = None


class LibraryUpdateResponse(BaseModel):
    activity_id: str
    eligible: bool
    reason: Optional[str] = None
    segments_detected: int = 0
    created: List[str] = []
    updated: List[str] = []


class RideOut(BaseModel):
    activity_id: str
    ridden_at: datetime
    duration_seconds: int
    avg_speed_kmh: float
    avg_power: int = 0
    normalized_power: int = 0
    max_power: int = 0
    power_zone: Optional[str] = None
    avg_hr: int = 0
    max_hr: int = 0
    hr_zone: Optional[str] = None
    avg_cadence: int = 0
    stop_count: int = 0
    stop_duration_seconds: int = 0
    ftp: Optional[float] = None


class ProfileOut(BaseModel):
    ride_count: int
    mean_avg_power: Optional[float] = None
    std_dev_power: Optional[float] = None
    min_avg_power: Optional[float] = None
    max_avg_power: Optional[float] = None
    typical_power_zone: Optional[str] = None
    zone_distribution: Dict[str, float] = {}
    consistency_score: int = 0
    mean_avg_hr: Optional[int] = None
    typical_hr_zone: Optional[str] = None
    mean_cadence: Optional[int] = None
    rides_last_30_days: int = 0
    rides_last_90_days: int = 0
    avg_rides_per_month: float = 0.0
    frequency_tier: str = "rare"
    typical_days: List[str] = []
    relevance_score: int = 0
    suitable_for_steady_state: bool = False
    suitable_for_short_intervals: bool = False
    suitable_for_sprints: bool = False
    suitable_for_recovery: bool = False
    confidence_score: int = 0
    last_ridden_at: Optional[datetime] = None


class LibrarySegmentSummary(BaseModel):
    id: str
    name: str
    description: str
    terrain_type: str
    distance_meters: float
    topology: Literal["loop", "out_and_back", "point_to_point"]
    ride_count: int
    frequency_tier: str
    relevance_score: int
    updated_at: datetime


class LibrarySegmentListResponse(BaseModel):
    segments: List[LibrarySegmentSummary]


class LibrarySegmentDetail(BaseModel):
    id: str
    user_id: str
    name: str
    description: str
    stored: StoredSegmentIn
    reference: SegmentOut
    topology: TopologyOut
    obstruction: ObstructionOut
    rides: List[RideOut]
    profile: ProfileOut
    created_at: datetime
    updated_at: datetime


# 5. Zones
class ZoneResponse(BaseModel):
    zone: str
    ratio: float
