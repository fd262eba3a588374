"""Orchestrateur de detection de segments.

Pipeline (strictement descendant):
flux -> lissage altitude -> arrets -> pentes -> frontieres -> candidats ->
fusion -> caracterisation.

Le detecteur ne garde aucun etat entre deux appels: une instance peut etre
partagee entre threads.
"""

from __future__ import annotations

from typing import Any, Mapping

from core.candidates import build_candidates, merge_candidates
from core.characterize import characterize_segment
from core.config import DetectionConfig
from core.gradients import compute_gradients, find_boundaries
from core.models import ActivityStreams, SegmentDetectionResult
from core.stops import detect_stops
from core.streams import build_stream_frame, smooth_elevation


class SegmentDetector:
    def __init__(self, config: DetectionConfig | None = None) -> None:
        self.config = config or DetectionConfig()

    def detect(self, streams: ActivityStreams | Mapping[str, Any]) -> SegmentDetectionResult:
        frame = build_stream_frame(streams, self.config)
        return self.detect_frame(frame)

    def detect_frame(self, frame) -> SegmentDetectionResult:
        """Detection a partir d'un stream frame deja construit (l'altitude est lissee en place)."""
        cfg = self.config
        n = len(frame)
        if n < cfg.min_stream_points:
            return SegmentDetectionResult(total_points=n)

        smooth_elevation(frame, cfg.elevation_smooth_window)
        stops = detect_stops(frame, cfg)
        gradients = compute_gradients(frame, cfg)
        boundaries = find_boundaries(frame, gradients, stops, cfg)
        candidates = merge_candidates(build_candidates(boundaries, cfg), cfg)
        segments = [characterize_segment(frame, c, stops, cfg) for c in candidates]

        return SegmentDetectionResult(
            segments=segments,
            stops=stops,
            total_points=n,
            total_distance_m=float(frame["distance_m"].iat[-1]),
            total_duration_s=float(frame["elapsed_s"].iat[-1]),
        )


def detect_segments(
    streams: ActivityStreams | Mapping[str, Any],
    config: DetectionConfig | None = None,
) -> SegmentDetectionResult:
    return SegmentDetector(config).detect(streams)
