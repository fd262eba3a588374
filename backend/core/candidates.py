"""Candidate Builder / Merger."""

from __future__ import annotations

from typing import Sequence

from core.config import DetectionConfig
from core.models import BoundaryPoint, CandidateSegment


def _span(start: CandidateSegment, end: CandidateSegment) -> CandidateSegment:
    return CandidateSegment(
        start_idx=start.start_idx,
        end_idx=end.end_idx,
        start_distance_m=start.start_distance_m,
        end_distance_m=end.end_distance_m,
    )


def build_candidates(
    boundaries: Sequence[BoundaryPoint],
    config: DetectionConfig | None = None,
) -> list[CandidateSegment]:
    """Un candidat par paire de frontieres consecutives.

    Les intervalles plus courts que `min_segment_distance_m` sont ecartes ici
    (ils ne sont pas fusionnes a ce stade).
    """
    config = config or DetectionConfig()
    candidates: list[CandidateSegment] = []
    for start, end in zip(boundaries, boundaries[1:]):
        if end.distance_m - start.distance_m < config.min_segment_distance_m:
            continue
        candidates.append(
            CandidateSegment(
                start_idx=start.index,
                end_idx=end.index,
                start_distance_m=start.distance_m,
                end_distance_m=end.distance_m,
            )
        )
    return candidates


def merge_candidates(
    candidates: Sequence[CandidateSegment],
    config: DetectionConfig | None = None,
) -> list[CandidateSegment]:
    """Fusionne les candidats trop courts avec leurs voisins (gauche a droite).

    - courant trop court: absorbe le suivant;
    - suivant trop court et un troisieme existe: le courant s'etend jusqu'au
      troisieme, on avance de deux;
    - sinon le courant est valide.
    Un reste final non fusionnable passe tel quel.
    """
    config = config or DetectionConfig()
    if len(candidates) <= 1:
        return list(candidates)

    min_distance = config.min_segment_distance_m
    merged: list[CandidateSegment] = []
    current = candidates[0]
    i = 1
    while i < len(candidates):
        nxt = candidates[i]
        if current.distance_m < min_distance:
            current = _span(current, nxt)
        elif nxt.distance_m < min_distance and i < len(candidates) - 1:
            current = _span(current, candidates[i + 1])
            i += 1
        else:
            merged.append(current)
            current = nxt
        i += 1

    merged.append(current)
    return merged
