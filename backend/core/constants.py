"""Constantes partagees (sans dependances hors stdlib).

Ce module centralise les valeurs par defaut des seuils utilises par le moteur
de detection de segments. Le moteur ne lit jamais ces constantes directement:
elles alimentent les dataclasses de `core.config`, qui sont passees
explicitement a chaque composant.
"""

from __future__ import annotations


# --- Construction du flux -------------------------------------------------

EARTH_RADIUS_M: float = 6_371_000.0

# Vitesse supposee quand aucun echantillon de vitesse n'est disponible (~18 km/h).
DEFAULT_SPEED_M_S: float = 5.0
# En dessous de ce seuil, le temps est estime a l'allure de marche.
STOPPED_SPEED_EPSILON_M_S: float = 0.1
WALKING_PACE_M_S: float = 1.4

# Nombre minimal de points pour lancer la detection.
MIN_STREAM_POINTS: int = 10

# --- Lissage / pente ------------------------------------------------------

ELEVATION_SMOOTH_WINDOW: int = 5
ELEVATION_NOISE_THRESHOLD_M: float = 3.0

GRADIENT_WINDOW_M: float = 100.0
GRADIENT_MIN_SPAN_M: float = 10.0
GRADIENT_SAMPLE_MIN_STEP_M: float = 5.0

# --- Classification du terrain (%) ----------------------------------------

FLAT_THRESHOLD_PCT: float = 2.0
CLIMB_THRESHOLD_PCT: float = 4.0
ROLLING_VARIABILITY: float = 3.0
FLAT_MAX_VARIABILITY: float = 2.0
CLIMB_ELEVATION_PER_KM_M: float = 30.0

# --- Frontieres -----------------------------------------------------------

GRADIENT_CHANGE_THRESHOLD_PCT: float = 3.0
GRADIENT_SUSTAIN_DISTANCE_M: float = 200.0
ROLLING_GRADIENT_DECAY: float = 0.9
ROLLING_GRADIENT_SEED_POINTS: int = 10
BOUNDARY_MERGE_DISTANCE_M: float = 50.0

# --- Segments -------------------------------------------------------------

MIN_SEGMENT_DISTANCE_M: float = 500.0

# --- Arrets ---------------------------------------------------------------

STOP_SPEED_THRESHOLD_M_S: float = 0.6  # ~2 km/h
STOP_MIN_DURATION_S: float = 3.0
EXTENDED_STOP_DURATION_S: float = 30.0

# --- Virages --------------------------------------------------------------

SHARP_TURN_ANGLE_DEG: float = 45.0

# --- Agregats capteurs ----------------------------------------------------

MIN_VALID_SPEED_M_S: float = 0.5
MIN_VALID_HEART_RATE_BPM: float = 30.0
NP_WINDOW_SAMPLES: int = 30
NP_MIN_SAMPLES: int = 10

# --- Appariement inter-sorties --------------------------------------------

MATCH_START_END_PROXIMITY_M: float = 200.0
MATCH_MIN_OVERLAP_RATIO: float = 0.60
MATCH_MAX_DISTANCE_RATIO_DIFF: float = 0.40
MATCH_BBOX_EXPANSION_DEG: float = 0.005  # ~500 m aux latitudes moyennes
OVERLAP_SAMPLE_INTERVAL_M: float = 50.0
OVERLAP_PROXIMITY_M: float = 50.0
GEOMETRY_REPLACE_POINT_RATIO: float = 1.2

# --- Bibliotheque ---------------------------------------------------------

LIBRARY_MIN_ACTIVITY_DISTANCE_M: float = 2000.0
LIBRARY_MIN_ACTIVITY_DURATION_S: float = 600.0
LIBRARY_MIN_STREAM_POINTS: int = 20

# Variation relative de FTP entre deux passages jugee significative.
REFERENCE_CHANGE_RATIO: float = 0.05

# Topologie.
LOOP_MAX_GAP_M: float = 200.0
OUT_AND_BACK_MAX_GAP_M: float = 500.0
OUT_AND_BACK_MIDPOINT_FACTOR: float = 1.5

# --- Ingestion GPX/FIT ----------------------------------------------------

# Au-dela, la vitesse calculee est consideree comme un artefact GPS (~108 km/h).
MAX_RECORDED_SPEED_M_S: float = 30.0
