"""Gradient Calculator + Boundary Finder.

- `compute_gradients`: pente locale (%) par point sur une fenetre en distance
  (et non en nombre de points), robuste a un echantillonnage irregulier.
- `GradientBoundaryTracker`: petite machine a etats (moyenne glissante +
  distance soutenue) qui emet une frontiere quand un changement de pente
  persiste sur une distance minimale.
- `find_boundaries` / `deduplicate_boundaries`: assemblage des frontieres
  (debut, changements de pente, arrets prolonges, fin), tri et fusion.
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence

import numpy as np
import pandas as pd

from core.config import DetectionConfig
from core.models import BoundaryPoint, BoundaryReason, DetectedStop


# Priorite en cas de collision (< boundary_merge_distance_m).
REASON_PRIORITY: dict[str, int] = {
    "start": 3,
    "end": 3,
    "extended_stop": 2,
    "gradient_change": 1,
}


def compute_gradients(frame: pd.DataFrame, config: DetectionConfig | None = None) -> np.ndarray:
    """Pente (%) par point, alignee sur les lignes du stream frame.

    Pour chaque point, l'indice arriere recule (et l'indice avant avance)
    jusqu'a couvrir `gradient_window_m / 2` de chaque cote, ou jusqu'au bord.
    La pente vaut 0 quand l'ecart de distance est <= `gradient_min_span_m`.
    """
    config = config or DetectionConfig()
    n = len(frame)
    if n == 0:
        return np.zeros(0, dtype=float)

    dist = frame["distance_m"].to_numpy(dtype=float)
    elev = frame["elevation"].to_numpy(dtype=float)
    half = float(config.gradient_window_m) / 2.0
    idx = np.arange(n)

    back = np.searchsorted(dist, dist - half, side="right") - 1
    back = np.clip(back, 0, None)
    back = np.minimum(back, idx)

    forward = np.searchsorted(dist, dist + half, side="left")
    forward = np.clip(forward, None, n - 1)
    forward = np.maximum(forward, idx)

    span = dist[forward] - dist[back]
    rise = elev[forward] - elev[back]
    gradients = np.zeros(n, dtype=float)
    ok = span > float(config.gradient_min_span_m)
    gradients[ok] = rise[ok] / span[ok] * 100.0
    return gradients


class GradientBoundaryTracker:
    """Hysteresis sur la pente: un pic isole ne cree pas de frontiere."""

    def __init__(
        self,
        distances: Sequence[float] | np.ndarray,
        seed_gradient: float,
        config: DetectionConfig | None = None,
    ) -> None:
        self._config = config or DetectionConfig()
        self._distances = np.asarray(distances, dtype=float)
        self.rolling_gradient = float(seed_gradient)
        self.sustained_m = 0.0

    @classmethod
    def from_gradients(
        cls,
        distances: Sequence[float] | np.ndarray,
        gradients: Sequence[float] | np.ndarray,
        config: DetectionConfig | None = None,
    ) -> GradientBoundaryTracker:
        config = config or DetectionConfig()
        head = np.asarray(gradients, dtype=float)[: config.rolling_gradient_seed_points]
        seed = float(head.mean()) if head.size else 0.0
        return cls(distances, seed, config)

    def step(self, index: int, gradient: float) -> BoundaryPoint | None:
        if index < 1:
            return None
        cfg = self._config
        step_m = float(self._distances[index] - self._distances[index - 1])

        if abs(gradient - self.rolling_gradient) >= cfg.gradient_change_threshold_pct:
            self.sustained_m += step_m
            if self.sustained_m < cfg.gradient_sustain_distance_m:
                return None
            # La frontiere est placee la ou le changement a commence.
            back_steps = math.ceil(self.sustained_m / max(step_m, 1.0))
            boundary_idx = max(0, index - back_steps)
            self.rolling_gradient = float(gradient)
            self.sustained_m = 0.0
            return BoundaryPoint(
                index=boundary_idx,
                distance_m=float(self._distances[boundary_idx]),
                reason="gradient_change",
            )

        decay = cfg.rolling_gradient_decay
        self.rolling_gradient = self.rolling_gradient * decay + float(gradient) * (1.0 - decay)
        self.sustained_m = 0.0
        return None


def _priority(reason: BoundaryReason) -> int:
    return REASON_PRIORITY.get(reason, 0)


def deduplicate_boundaries(
    boundaries: Iterable[BoundaryPoint],
    merge_distance_m: float,
) -> list[BoundaryPoint]:
    """Trie par distance puis fusionne les frontieres trop proches.

    Une frontiere a moins de `merge_distance_m` de la derniere conservee est
    ecartee, sauf si sa raison est prioritaire (start/end > extended_stop >
    gradient_change): elle remplace alors la frontiere conservee. Le debut
    n'est jamais remplace.
    """
    ordered = sorted(boundaries, key=lambda b: (b.distance_m, -_priority(b.reason), b.index))
    if len(ordered) <= 2:
        return ordered

    result = [ordered[0]]
    for boundary in ordered[1:]:
        prev = result[-1]
        if boundary.distance_m - prev.distance_m > merge_distance_m:
            result.append(boundary)
            continue
        if prev.reason != "start" and _priority(boundary.reason) > _priority(prev.reason):
            result[-1] = boundary
    return result


def find_boundaries(
    frame: pd.DataFrame,
    gradients: Sequence[float] | np.ndarray,
    stops: Sequence[DetectedStop],
    config: DetectionConfig | None = None,
) -> list[BoundaryPoint]:
    config = config or DetectionConfig()
    n = len(frame)
    if n == 0:
        return []

    dist = frame["distance_m"].to_numpy(dtype=float)
    grads = np.asarray(gradients, dtype=float)

    boundaries = [BoundaryPoint(index=0, distance_m=float(dist[0]), reason="start")]

    tracker = GradientBoundaryTracker.from_gradients(dist, grads, config)
    for i in range(1, n):
        boundary = tracker.step(i, float(grads[i]))
        if boundary is not None:
            boundaries.append(boundary)

    # Les arrets prolonges coupent la continuite d'effort.
    for stop in stops:
        if stop.duration_s >= config.extended_stop_duration_s:
            boundaries.append(
                BoundaryPoint(index=stop.point_index, distance_m=stop.distance_m, reason="extended_stop")
            )

    boundaries.append(BoundaryPoint(index=n - 1, distance_m=float(dist[n - 1]), reason="end"))
    return deduplicate_boundaries(boundaries, config.boundary_merge_distance_m)
