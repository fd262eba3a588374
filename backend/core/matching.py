"""Segment Deduplicator: appariement d'un segment detecte avec la bibliotheque.

Trois etapes par candidat stocke:
1. rapport de distances (le plus court >= 60 % du plus long)
2. proximite des extremites, sens direct ou inverse (<= 200 m)
3. recouvrement echantillonne (echantillons tous les 50 m, couverts si un
   echantillon de l'autre trace est a <= 50 m)

Le prefiltrage spatial (boite englobante) est a la charge de l'appelant;
`segment_bounding_box` et `bbox_overlap` sont fournis pour cela.
"""

from __future__ import annotations

from typing import Any, Sequence, Union

import numpy as np

from core.config import MatchingConfig
from core.geo import haversine_m, haversine_m_array, step_distances_m
from core.models import DetectedSegment, LngLat, SegmentMatch, StoredSegment


BoundingBox = tuple[float, float, float, float]  # (min_lat, min_lng, max_lat, max_lng)
AnySegment = Union[DetectedSegment, StoredSegment]


def sample_along_path(coords: Sequence[LngLat], interval_m: float) -> np.ndarray:
    """Reechantillonne un trace (lng, lat) tous les `interval_m` metres.

    Retourne un tableau (k, 2) de (lat, lng): premier point, points interpoles,
    dernier point. Vide si moins de 2 coordonnees.
    """
    if len(coords) < 2:
        return np.zeros((0, 2), dtype=float)

    arr = np.asarray(coords, dtype=float).reshape(len(coords), 2)
    lng = arr[:, 0]
    lat = arr[:, 1]
    cum = np.cumsum(step_distances_m(lat, lng))
    total = float(cum[-1])

    count = int(np.floor(total / interval_m)) if interval_m > 0 else 0
    targets = interval_m * np.arange(1, count + 1, dtype=float)
    # Aretes contenant chaque cible: cum[i-1] < t <= cum[i].
    hi = np.clip(np.searchsorted(cum, targets, side="left"), 1, len(cum) - 1)
    lo = hi - 1
    seg = cum[hi] - cum[lo]
    frac = np.divide(targets - cum[lo], seg, out=np.zeros_like(targets), where=seg > 0)

    inner = np.column_stack(
        (lat[lo] + frac * (lat[hi] - lat[lo]), lng[lo] + frac * (lng[hi] - lng[lo]))
    )
    first = np.array([[lat[0], lng[0]]])
    last = np.array([[lat[-1], lng[-1]]])
    return np.vstack((first, inner.reshape(-1, 2), last))


def overlap_ratio(
    coords_a: Sequence[LngLat],
    coords_b: Sequence[LngLat],
    *,
    interval_m: float,
    proximity_m: float,
) -> float:
    """Part des echantillons de A situes a <= `proximity_m` d'un echantillon de B."""
    if len(coords_a) < 2 or len(coords_b) < 2:
        return 0.0
    samples_a = sample_along_path(coords_a, interval_m)
    samples_b = sample_along_path(coords_b, interval_m)
    if samples_a.size == 0 or samples_b.size == 0:
        return 0.0

    pairwise = haversine_m_array(
        samples_a[:, None, 0], samples_a[:, None, 1], samples_b[None, :, 0], samples_b[None, :, 1]
    )
    covered = np.any(pairwise <= proximity_m, axis=1)
    return float(np.count_nonzero(covered)) / float(len(samples_a))


def match_segment(
    segment: DetectedSegment,
    stored: StoredSegment,
    config: MatchingConfig | None = None,
) -> SegmentMatch | None:
    config = config or MatchingConfig()

    # Etape 1: longueurs comparables.
    longest = max(segment.distance_meters, stored.distance_meters)
    if longest <= 0:
        return None
    distance_ratio = min(segment.distance_meters, stored.distance_meters) / longest
    if distance_ratio < config.min_distance_ratio:
        return None

    # Etape 2: extremites proches, sens direct ou inverse.
    start_fwd = haversine_m(segment.start_lat, segment.start_lng, stored.start_lat, stored.start_lng)
    end_fwd = haversine_m(segment.end_lat, segment.end_lng, stored.end_lat, stored.end_lng)
    start_rev = haversine_m(segment.start_lat, segment.start_lng, stored.end_lat, stored.end_lng)
    end_rev = haversine_m(segment.end_lat, segment.end_lng, stored.start_lat, stored.start_lng)

    limit = config.start_end_proximity_m
    forward = start_fwd <= limit and end_fwd <= limit
    reverse = start_rev <= limit and end_rev <= limit
    if not forward and not reverse:
        return None
    start_prox, end_prox = (start_fwd, end_fwd) if forward else (start_rev, end_rev)

    # Etape 3: recouvrement echantillonne.
    ratio = overlap_ratio(
        segment.coordinates,
        stored.coordinates,
        interval_m=config.overlap_sample_interval_m,
        proximity_m=config.overlap_proximity_m,
    )
    if ratio < config.min_overlap_ratio:
        return None

    return SegmentMatch(
        existing_segment_id=stored.id,
        overlap_ratio=ratio,
        distance_ratio=distance_ratio,
        start_proximity_m=int(round(start_prox)),
        end_proximity_m=int(round(end_prox)),
        reversed=not forward,
    )


def find_matching_segments(
    segment: DetectedSegment,
    candidates: Sequence[StoredSegment],
    config: MatchingConfig | None = None,
) -> list[SegmentMatch]:
    """Segments stockes correspondant a `segment`, meilleur recouvrement d'abord.

    A recouvrement egal, le rapport de distances le plus proche de 1 passe devant.
    """
    config = config or MatchingConfig()
    matches = [m for m in (match_segment(segment, c, config) for c in candidates) if m is not None]
    matches.sort(key=lambda m: (-m.overlap_ratio, -m.distance_ratio))
    return matches


def segment_bounding_box(segment: AnySegment, expansion_deg: float = 0.0) -> BoundingBox:
    if segment.coordinates:
        arr = np.asarray(segment.coordinates, dtype=float).reshape(len(segment.coordinates), 2)
        lats = arr[:, 1]
        lngs = arr[:, 0]
    else:
        lats = np.array([segment.start_lat, segment.end_lat], dtype=float)
        lngs = np.array([segment.start_lng, segment.end_lng], dtype=float)
    return (
        float(lats.min()) - expansion_deg,
        float(lngs.min()) - expansion_deg,
        float(lats.max()) + expansion_deg,
        float(lngs.max()) + expansion_deg,
    )


def bbox_overlap(a: BoundingBox, b: BoundingBox) -> bool:
    return not (a[2] < b[0] or a[0] > b[2] or a[3] < b[1] or a[1] > b[3])


def merge_segment_geometry(
    existing: StoredSegment,
    new: DetectedSegment,
    replace_point_ratio: float,
) -> dict[str, Any]:
    """Champs geometriques a remplacer quand le nouveau trace est plus resolu.

    Dictionnaire vide si la geometrie stockee est conservee.
    """
    if len(new.coordinates) <= len(existing.coordinates) * replace_point_ratio:
        return {}
    return {
        "coordinates": tuple(new.coordinates),
        "distance_meters": new.distance_meters,
        "start_lat": new.start_lat,
        "start_lng": new.start_lng,
        "end_lat": new.end_lat,
        "end_lng": new.end_lng,
    }
