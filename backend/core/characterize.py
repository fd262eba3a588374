"""Segment Characterizer.

Calcule, pour la sous-plage de points d'un candidat fusionne:
- geometrie (debut/fin, coordonnees GeoJSON)
- statistiques de pente (moyenne/max/min/ecart-type echantillon)
- denivele positif/negatif (accumulation avec seuil de bruit)
- terrain (flat/climb/descent/rolling)
- agregats vitesse/puissance/FC/cadence (echantillons valides uniquement)
- arrets embarques, virages serres, score de qualite 0-100

Fonction pure: meme entree -> meme sortie.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd

from core.config import DetectionConfig
from core.geo import bearing_deg_array, heading_change_deg
from core.models import CandidateSegment, DetectedSegment, DetectedStop, TerrainType


# (seuil, penalite): la premiere ligne satisfaite s'applique.
_DISTANCE_PENALTIES = ((1000.0, 15), (2000.0, 5))  # distance < seuil
_DURATION_PENALTIES = ((180.0, 15), (300.0, 5))  # duree < seuil
_VARIABILITY_PENALTIES = ((5.0, 20), (3.0, 10))  # ecart-type > seuil
_STOP_DENSITY_PENALTIES = ((2.0, 25), (1.0, 15), (0.5, 5))  # arrets/km > seuil
_TURN_DENSITY_PENALTIES = ((3.0, 15), (1.0, 5))  # virages/km > seuil


def elevation_gain_loss(elevations: Sequence[float] | np.ndarray, threshold_m: float) -> tuple[float, float]:
    """D+ / D- avec seuil de bruit.

    Les variations sont accumulees depuis la derniere altitude "significative";
    le cumul n'est valide que lorsqu'il atteint `threshold_m`. Le reliquat final
    sous le seuil n'est pas compte.
    """
    elev = np.asarray(elevations, dtype=float)
    if elev.size < 2:
        return 0.0, 0.0

    gain = 0.0
    loss = 0.0
    anchor = float(elev[0])
    for value in elev[1:]:
        change = float(value) - anchor
        if abs(change) >= threshold_m:
            if change > 0:
                gain += change
            else:
                loss -= change
            anchor = float(value)
    return gain, loss


def edge_gradients(distances: np.ndarray, elevations: np.ndarray, min_step_m: float) -> np.ndarray:
    """Pentes (%) par arete, sur les aretes plus longues que `min_step_m`."""
    d_dist = np.diff(np.asarray(distances, dtype=float))
    d_elev = np.diff(np.asarray(elevations, dtype=float))
    keep = d_dist > min_step_m
    return d_elev[keep] / d_dist[keep] * 100.0


def sample_std(values: Sequence[float] | np.ndarray) -> float:
    arr = np.asarray(values, dtype=float)
    if arr.size < 2:
        return 0.0
    return float(np.std(arr, ddof=1))


def classify_terrain(
    avg_gradient: float,
    gradient_variability: float,
    elevation_gain: float,
    distance_m: float,
    config: DetectionConfig | None = None,
) -> TerrainType:
    config = config or DetectionConfig()
    abs_gradient = abs(avg_gradient)
    elev_per_km = elevation_gain / (distance_m / 1000.0) if distance_m > 0 else 0.0

    # Forte variabilite sans pente de montee: terrain vallonne.
    if gradient_variability > config.rolling_variability and abs_gradient < config.climb_threshold_pct:
        return "rolling"
    if avg_gradient >= config.climb_threshold_pct or elev_per_km > config.climb_elevation_per_km_m:
        return "climb"
    if avg_gradient <= -config.climb_threshold_pct:
        return "descent"
    if abs_gradient < config.flat_threshold_pct and gradient_variability < config.flat_max_variability:
        return "flat"
    return "rolling"


def normalized_power(power: Sequence[float] | np.ndarray, config: DetectionConfig | None = None) -> float:
    """Normalized Power sur des echantillons de puissance deja filtres (> 0).

    Moyenne glissante sur min(30, n // 3) echantillons, puis racine quatrieme
    de la moyenne des puissances quatriemes. Moyenne simple sous 10 echantillons.
    """
    config = config or DetectionConfig()
    samples = np.asarray(power, dtype=float)
    if samples.size == 0:
        return 0.0
    if samples.size < config.np_min_samples:
        return float(samples.mean())

    window = max(1, min(config.np_window_samples, samples.size // 3))
    rolling = pd.Series(samples).rolling(window=window).mean().dropna().to_numpy(dtype=float)
    return float(np.mean(rolling**4) ** 0.25)


def count_sharp_turns(
    lat: Sequence[float] | np.ndarray,
    lng: Sequence[float] | np.ndarray,
    angle_deg: float,
) -> int:
    """Nombre de changements de cap >= `angle_deg` entre paires de points consecutives."""
    lat = np.asarray(lat, dtype=float)
    lng = np.asarray(lng, dtype=float)
    if lat.size < 3:
        return 0
    bearings = bearing_deg_array(lat[:-1], lng[:-1], lat[1:], lng[1:])
    changes = heading_change_deg(bearings[:-1], bearings[1:])
    return int(np.count_nonzero(changes >= angle_deg))


def _first_penalty(value: float, table, *, below: bool) -> int:
    for threshold, penalty in table:
        if (value < threshold) if below else (value > threshold):
            return penalty
    return 0


def quality_score(
    distance_m: float,
    duration_s: float,
    gradient_variability: float,
    stop_count: int,
    sharp_turn_count: int,
) -> int:
    dist_km = distance_m / 1000.0
    stops_per_km = stop_count / dist_km if dist_km > 0 else 0.0
    turns_per_km = sharp_turn_count / dist_km if dist_km > 0 else 0.0

    score = 100
    score -= _first_penalty(distance_m, _DISTANCE_PENALTIES, below=True)
    score -= _first_penalty(duration_s, _DURATION_PENALTIES, below=True)
    score -= _first_penalty(gradient_variability, _VARIABILITY_PENALTIES, below=False)
    score -= _first_penalty(stops_per_km, _STOP_DENSITY_PENALTIES, below=False)
    score -= _first_penalty(turns_per_km, _TURN_DENSITY_PENALTIES, below=False)
    return int(max(0, min(100, score)))


def _mean_above(values: np.ndarray, floor: float) -> tuple[float, float]:
    valid = values[values > floor]
    if valid.size == 0:
        return 0.0, 0.0
    return float(valid.mean()), float(valid.max())


def characterize_segment(
    frame: pd.DataFrame,
    candidate: CandidateSegment,
    stops: Sequence[DetectedStop],
    config: DetectionConfig | None = None,
) -> DetectedSegment:
    config = config or DetectionConfig()
    seg = frame.iloc[candidate.start_idx : candidate.end_idx + 1]

    lat = seg["lat"].to_numpy(dtype=float)
    lng = seg["lng"].to_numpy(dtype=float)
    dist = seg["distance_m"].to_numpy(dtype=float)
    elev = seg["elevation"].to_numpy(dtype=float)
    elapsed = seg["elapsed_s"].to_numpy(dtype=float)

    distance_m = candidate.end_distance_m - candidate.start_distance_m
    duration_s = float(elapsed[-1] - elapsed[0]) if len(seg) > 1 else 0.0

    gain, loss = elevation_gain_loss(elev, config.elevation_noise_threshold_m)
    grads = edge_gradients(dist, elev, config.gradient_sample_min_step_m)
    avg_gradient = float(grads.mean()) if grads.size else 0.0
    max_gradient = float(grads.max()) if grads.size else 0.0
    min_gradient = float(grads.min()) if grads.size else 0.0
    variability = sample_std(grads)

    terrain = classify_terrain(avg_gradient, variability, gain, distance_m, config)

    speed_avg, _ = _mean_above(seg["speed"].to_numpy(dtype=float), config.min_valid_speed_m_s)
    power = seg["power"].to_numpy(dtype=float)
    power_valid = power[power > 0]
    power_avg, power_max = _mean_above(power, 0.0)
    np_value = normalized_power(power_valid, config)
    hr_avg, hr_max = _mean_above(seg["heart_rate"].to_numpy(dtype=float), config.min_valid_heart_rate_bpm)
    cadence_avg, _ = _mean_above(seg["cadence"].to_numpy(dtype=float), 0.0)

    seg_stops = tuple(
        s for s in stops if candidate.start_distance_m <= s.distance_m <= candidate.end_distance_m
    )
    dist_km = distance_m / 1000.0
    turns = count_sharp_turns(lat, lng, config.sharp_turn_angle_deg)

    return DetectedSegment(
        start_idx=int(candidate.start_idx),
        end_idx=int(candidate.end_idx),
        start_lat=float(lat[0]),
        start_lng=float(lng[0]),
        end_lat=float(lat[-1]),
        end_lng=float(lng[-1]),
        coordinates=tuple(zip(lng.tolist(), lat.tolist())),
        start_distance_m=float(candidate.start_distance_m),
        end_distance_m=float(candidate.end_distance_m),
        distance_meters=float(distance_m),
        avg_gradient=round(avg_gradient, 2),
        max_gradient=round(max_gradient, 2),
        min_gradient=round(min_gradient, 2),
        gradient_variability=round(variability, 2),
        elevation_gain=round(gain, 1),
        elevation_loss=round(loss, 1),
        terrain_type=terrain,
        duration_seconds=int(round(duration_s)),
        avg_speed_kmh=round(speed_avg * 3.6, 1),
        avg_power=int(round(power_avg)),
        max_power=int(round(power_max)),
        normalized_power=int(round(np_value)),
        avg_hr=int(round(hr_avg)),
        max_hr=int(round(hr_max)),
        avg_cadence=int(round(cadence_avg)),
        stops=seg_stops,
        stop_count=len(seg_stops),
        stops_per_km=round(len(seg_stops) / dist_km, 2) if dist_km > 0 else 0.0,
        sharp_turn_count=turns,
        quality_score=quality_score(distance_m, duration_s, variability, len(seg_stops), turns),
    )
