"""Configuration explicite du moteur (sans etat global).

Chaque composant recoit sa configuration en parametre. Les valeurs par defaut
viennent de `core.constants`; une surcharge JSON peut etre chargee via
`load_config`.

Ordre de resolution de `load_config`:
- argument `path` (si fourni)
- variable d'environnement SEGMENTSCOPE_CONFIG_PATH (si definie et existante)
- valeurs par defaut
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Mapping

from core import constants as C


CONFIG_ENV_VAR = "SEGMENTSCOPE_CONFIG_PATH"


@dataclass(frozen=True)
class DetectionConfig:
    min_stream_points: int = C.MIN_STREAM_POINTS
    default_speed_m_s: float = C.DEFAULT_SPEED_M_S
    stopped_speed_epsilon_m_s: float = C.STOPPED_SPEED_EPSILON_M_S
    walking_pace_m_s: float = C.WALKING_PACE_M_S

    elevation_smooth_window: int = C.ELEVATION_SMOOTH_WINDOW
    elevation_noise_threshold_m: float = C.ELEVATION_NOISE_THRESHOLD_M

    gradient_window_m: float = C.GRADIENT_WINDOW_M
    gradient_min_span_m: float = C.GRADIENT_MIN_SPAN_M
    gradient_sample_min_step_m: float = C.GRADIENT_SAMPLE_MIN_STEP_M

    flat_threshold_pct: float = C.FLAT_THRESHOLD_PCT
    climb_threshold_pct: float = C.CLIMB_THRESHOLD_PCT
    rolling_variability: float = C.ROLLING_VARIABILITY
    flat_max_variability: float = C.FLAT_MAX_VARIABILITY
    climb_elevation_per_km_m: float = C.CLIMB_ELEVATION_PER_KM_M

    gradient_change_threshold_pct: float = C.GRADIENT_CHANGE_THRESHOLD_PCT
    gradient_sustain_distance_m: float = C.GRADIENT_SUSTAIN_DISTANCE_M
    rolling_gradient_decay: float = C.ROLLING_GRADIENT_DECAY
    rolling_gradient_seed_points: int = C.ROLLING_GRADIENT_SEED_POINTS
    boundary_merge_distance_m: float = C.BOUNDARY_MERGE_DISTANCE_M

    min_segment_distance_m: float = C.MIN_SEGMENT_DISTANCE_M

    stop_speed_threshold_m_s: float = C.STOP_SPEED_THRESHOLD_M_S
    stop_min_duration_s: float = C.STOP_MIN_DURATION_S
    extended_stop_duration_s: float = C.EXTENDED_STOP_DURATION_S

    sharp_turn_angle_deg: float = C.SHARP_TURN_ANGLE_DEG

    min_valid_speed_m_s: float = C.MIN_VALID_SPEED_M_S
    min_valid_heart_rate_bpm: float = C.MIN_VALID_HEART_RATE_BPM
    np_window_samples: int = C.NP_WINDOW_SAMPLES
    np_min_samples: int = C.NP_MIN_SAMPLES


@dataclass(frozen=True)
class MatchingConfig:
    start_end_proximity_m: float = C.MATCH_START_END_PROXIMITY_M
    min_overlap_ratio: float = C.MATCH_MIN_OVERLAP_RATIO
    max_distance_ratio_diff: float = C.MATCH_MAX_DISTANCE_RATIO_DIFF
    bbox_expansion_deg: float = C.MATCH_BBOX_EXPANSION_DEG
    overlap_sample_interval_m: float = C.OVERLAP_SAMPLE_INTERVAL_M
    overlap_proximity_m: float = C.OVERLAP_PROXIMITY_M
    geometry_replace_point_ratio: float = C.GEOMETRY_REPLACE_POINT_RATIO

    @property
    def min_distance_ratio(self) -> float:
        return 1.0 - self.max_distance_ratio_diff


@dataclass(frozen=True)
class LibraryConfig:
    min_activity_distance_m: float = C.LIBRARY_MIN_ACTIVITY_DISTANCE_M
    min_activity_duration_s: float = C.LIBRARY_MIN_ACTIVITY_DURATION_S
    min_stream_points: int = C.LIBRARY_MIN_STREAM_POINTS
    reference_change_ratio: float = C.REFERENCE_CHANGE_RATIO
    loop_max_gap_m: float = C.LOOP_MAX_GAP_M
    out_and_back_max_gap_m: float = C.OUT_AND_BACK_MAX_GAP_M
    out_and_back_midpoint_factor: float = C.OUT_AND_BACK_MIDPOINT_FACTOR


@dataclass(frozen=True)
class EngineConfig:
    detection: DetectionConfig = field(default_factory=DetectionConfig)
    matching: MatchingConfig = field(default_factory=MatchingConfig)
    library: LibraryConfig = field(default_factory=LibraryConfig)


def _build_section(cls, raw: Mapping[str, Any] | None):
    if not raw:
        return cls()
    if not isinstance(raw, Mapping):
        raise ValueError(f"Section {cls.__name__} invalide: objet JSON attendu")
    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(raw) - set(known))
    if unknown:
        raise ValueError(f"Cles inconnues pour {cls.__name__}: {', '.join(unknown)}")
    values: dict[str, Any] = {}
    for name, value in raw.items():
        default = getattr(cls, name)
        # Conserve le type de la valeur par defaut (int vs float).
        values[name] = int(value) if isinstance(default, int) else float(value)
    return cls(**values)


def config_from_mapping(raw: Mapping[str, Any] | None) -> EngineConfig:
    raw = raw or {}
    unknown = sorted(set(raw) - {"detection", "matching", "library"})
    if unknown:
        raise ValueError(f"Sections de configuration inconnues: {', '.join(unknown)}")
    return EngineConfig(
        detection=_build_section(DetectionConfig, raw.get("detection")),
        matching=_build_section(MatchingConfig, raw.get("matching")),
        library=_build_section(LibraryConfig, raw.get("library")),
    )


def load_config(path: str | Path | None = None) -> EngineConfig:
    if path is None:
        override = os.environ.get(CONFIG_ENV_VAR)
        if override and Path(override).exists():
            path = override
    if path is None:
        return EngineConfig()

    resolved = Path(path).expanduser().resolve()
    with resolved.open("r", encoding="utf-8") as f:
        try:
            raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Fichier de configuration illisible ({resolved}): {e}") from e
    return config_from_mapping(raw)
